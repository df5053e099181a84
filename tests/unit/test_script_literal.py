"""
Unit Tests for the Script Literal Codec
=======================================

Diagram text crosses from data into script source and back; these tests pin the
escaping rules and the decoding of values returned by the page.
"""

import json

import pytest

from mermaid_service.core.rendering.script_literal import (
    decode_render_value,
    escape_script_literal,
    unescape_script_literal,
)


class TestEscapeScriptLiteral:
    """Test escaping for single-quoted script literals."""

    def test_plain_text_unchanged(self):
        assert escape_script_literal("graph TD; A-->B") == "graph TD; A-->B"

    def test_quotes_and_backslashes(self):
        assert escape_script_literal("it's \"x\" \\ y") == "it\\'s \\\"x\\\" \\\\ y"

    def test_newlines_and_tabs(self):
        assert escape_script_literal("graph TD\n\tA-->B\r\n") == "graph TD\\n\\tA-->B\\r\\n"

    def test_control_characters_use_unicode_escapes(self):
        assert escape_script_literal("a\x00b\x1bc\x7f") == "a\\u0000b\\u001bc\\u007f"

    def test_line_separators_are_escaped(self):
        assert escape_script_literal("a\u2028b\u2029c") == "a\\u2028b\\u2029c"

    def test_escaped_text_has_no_raw_breaking_characters(self):
        escaped = escape_script_literal("x'\n\r\u2028\u2029")
        for char in ("\n", "\r", "\u2028", "\u2029"):
            assert char not in escaped
        assert "'" not in escaped.replace("\\'", "")

    def test_non_ascii_left_intact(self):
        assert escape_script_literal("graph LR; café-->日本 🚀") == "graph LR; café-->日本 🚀"


class TestUnescapeScriptLiteral:
    """Test decoding of backslash escapes."""

    @pytest.mark.parametrize(
        "text",
        [
            "graph TD; A-->B",
            "graph TD\n  A[\"quoted\"] --> B['single']",
            "back\\slash and \\n literal",
            "tabs\tand\rreturns\x00nul\x1f",
            "unicode café 日本 🚀 \u2028\u2029",
            "",
        ],
    )
    def test_round_trip(self, text):
        assert unescape_script_literal(escape_script_literal(text)) == text

    def test_decodes_json_stringify_output(self):
        svg = '<svg><text x="1">A & "B" \\ 日本 🚀</text>\n</svg>'
        encoded = json.dumps(svg)  # ASCII-escaped, like JSON.stringify plus \u escapes
        assert unescape_script_literal(encoded[1:-1]) == svg

    def test_surrogate_pairs_are_joined(self):
        assert unescape_script_literal("\\ud83d\\ude80") == "🚀"

    def test_forward_slash_escape(self):
        assert unescape_script_literal("<\\/svg>") == "</svg>"

    def test_unknown_escape_yields_character(self):
        assert unescape_script_literal("\\q") == "q"

    def test_dangling_backslash_rejected(self):
        with pytest.raises(ValueError):
            unescape_script_literal("abc\\")

    def test_truncated_unicode_escape_rejected(self):
        with pytest.raises(ValueError):
            unescape_script_literal("\\u12")

    def test_invalid_unicode_digits_rejected(self):
        with pytest.raises(ValueError):
            unescape_script_literal("\\uZZZZ")


class TestDecodeRenderValue:
    """Test validation of the page's render() result."""

    def test_svg_string(self):
        svg = '<svg xmlns="http://www.w3.org/2000/svg"></svg>'
        assert decode_render_value(json.dumps(svg)) == svg

    def test_null_sentinel(self):
        assert decode_render_value("null") == ""

    def test_quoted_null_sentinel(self):
        assert decode_render_value('"null"') == ""

    def test_none(self):
        assert decode_render_value(None) == ""

    def test_empty_string(self):
        assert decode_render_value('""') == ""

    def test_undecodable_value(self):
        assert decode_render_value('"<svg>\\"') == ""

    def test_raw_line_separators_from_stringify(self):
        svg = "<svg><text>a\u2028b\u2029c</text></svg>"
        assert decode_render_value('"' + svg + '"') == svg

    def test_escaped_non_bmp_text(self):
        assert decode_render_value('"<svg>\\ud83d\\ude80</svg>"') == "<svg>🚀</svg>"

    def test_lone_surrogate_is_rejected(self):
        assert decode_render_value('"<svg>\\ud800</svg>"') == ""

    def test_trailing_garbage_is_rejected(self):
        assert decode_render_value('"<svg></svg>" extra') == ""

    def test_unquoted_escaped_literal(self):
        assert decode_render_value("<svg>\\n</svg>") == "<svg>\n</svg>"

    def test_non_string_values(self):
        assert decode_render_value(42) == "42"
        assert decode_render_value('"42"') == "42"
