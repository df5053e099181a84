"""
Script Literal Codec
====================

Embeds diagram text into JavaScript source as a single-quoted string literal,
and decodes the JSON-encoded strings the page hands back.

``unescape_script_literal(escape_script_literal(s)) == s`` holds for every
string that contains no lone surrogates.
"""

import json
from typing import Any, Dict

_ESCAPES: Dict[str, str] = {
    "\\": "\\\\",
    "'": "\\'",
    '"': '\\"',
    "\n": "\\n",
    "\r": "\\r",
    "\t": "\\t",
    "\b": "\\b",
    "\f": "\\f",
    "\v": "\\v",
    # Valid inside JSON but terminate a JavaScript string literal
    "\u2028": "\\u2028",
    "\u2029": "\\u2029",
}

_UNESCAPES: Dict[str, str] = {
    "\\": "\\",
    "'": "'",
    '"': '"',
    "/": "/",
    "n": "\n",
    "r": "\r",
    "t": "\t",
    "b": "\b",
    "f": "\f",
    "v": "\v",
    "0": "\0",
}


def escape_script_literal(text: str) -> str:
    """
    Escape text so it can be placed between single quotes in a script.

    Args:
        text: Raw diagram text

    Returns:
        Escaped text, without the surrounding quotes
    """
    parts = []
    for char in text:
        escaped = _ESCAPES.get(char)
        if escaped is not None:
            parts.append(escaped)
        elif ord(char) < 0x20 or ord(char) == 0x7F:
            parts.append(f"\\u{ord(char):04x}")
        else:
            parts.append(char)
    return "".join(parts)


def unescape_script_literal(text: str) -> str:
    """
    Reverse backslash escapes produced by ``escape_script_literal`` or JSON.stringify.

    Unknown escapes yield the escaped character, as in JavaScript.

    Raises:
        ValueError: On a trailing backslash or a truncated ``\\u`` escape
    """
    parts = []
    index = 0
    length = len(text)

    while index < length:
        char = text[index]
        if char != "\\":
            parts.append(char)
            index += 1
            continue

        if index + 1 >= length:
            raise ValueError("Dangling backslash at end of literal")

        marker = text[index + 1]
        if marker == "u":
            digits = text[index + 2 : index + 6]
            if len(digits) != 4 or not all(c in "0123456789abcdefABCDEF" for c in digits):
                raise ValueError(f"Invalid unicode escape at offset {index}")
            parts.append(chr(int(digits, 16)))
            index += 6
        else:
            parts.append(_UNESCAPES.get(marker, marker))
            index += 2

    # Escaped surrogate pairs arrive as two halves; join them back into one code point
    return "".join(parts).encode("utf-16", "surrogatepass").decode("utf-16")


def decode_render_value(value: Any) -> str:
    """
    Turn the value returned by the page's ``render()`` into SVG markup.

    ``render()`` resolves to ``JSON.stringify(svg)`` or ``JSON.stringify(null)``,
    so quoted values are decoded as JSON. Anything else is taken as a bare
    escaped literal. Returns an empty string for ``None``, the ``"null"``
    sentinel, and anything that does not decode.
    """
    if value is None:
        return ""
    if not isinstance(value, str):
        value = str(value)

    if value.startswith('"'):
        try:
            markup = json.loads(value)
        except ValueError:
            return ""
        if not isinstance(markup, str):
            return ""
        try:
            markup.encode("utf-8")
        except UnicodeEncodeError:
            return ""
    else:
        try:
            markup = unescape_script_literal(value)
        except (ValueError, UnicodeError):
            return ""

    if markup == "null":
        return ""
    return markup
