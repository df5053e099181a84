"""
Application Settings
===================

Main application settings and environment configuration using Pydantic Settings.
Supports development, testing, and production environments.
"""

from typing import Optional, List, Union
from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict
import json
from pathlib import Path

PAYLOAD_DIR = Path(__file__).resolve().parent.parent / "payload"


class Settings(BaseSettings):
    """Main application settings with environment variable support."""

    # Application Configuration
    app_name: str = Field(default="Mermaid Render Service", description="Application name")
    app_version: str = Field(default="1.0.0", description="Application version")
    environment: str = Field(
        default="development", description="Environment: development, testing, production"
    )
    debug: bool = Field(default=False, description="Debug mode")

    # Server Configuration
    host: str = Field(default="0.0.0.0", description="Server host")
    port: int = Field(default=8080, description="Server port")

    # Payload Configuration
    sandbox_html_path: Path = Field(
        default=PAYLOAD_DIR / "index.html", description="Sandbox page loaded into every tab"
    )
    mermaid_js_path: Path = Field(
        default=PAYLOAD_DIR / "mermaid.min.js", description="Mermaid runtime script"
    )
    bootstrap_js_path: Path = Field(
        default=PAYLOAD_DIR / "render.js", description="Script defining render() in the page"
    )

    # Rendering Configuration
    render_timeout: float = Field(
        default=30.0, description="Deadline for one render in seconds (0 disables)"
    )
    optimize_png: bool = Field(default=False, description="Re-encode PNG output with Pillow")

    # Browser Configuration
    playwright_headless: bool = Field(default=True, description="Run browser in headless mode")
    playwright_timeout: int = Field(default=30000, description="Playwright timeout in milliseconds")
    browser_args: List[str] = Field(
        default=[
            "--no-sandbox",
            "--disable-setuid-sandbox",
            "--disable-dev-shm-usage",
            "--disable-features=VizDisplayCompositor",
        ],
        description="Extra Chromium launch arguments",
    )

    # Security Configuration
    allowed_origins: List[str] = Field(default=["*"], description="Allowed origins for CORS")

    # Monitoring Configuration
    log_level: str = Field(default="INFO", description="Logging level")
    log_file: Optional[Path] = Field(default=None, description="Optional rotating log file")

    @field_validator("environment")
    @classmethod
    def validate_environment(cls, v: str) -> str:
        """Validate environment value."""
        allowed = {"development", "testing", "production"}
        if v not in allowed:
            raise ValueError(f"Environment must be one of: {allowed}")
        return v

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        """Validate log level."""
        allowed = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}
        if v.upper() not in allowed:
            raise ValueError(f"Log level must be one of: {allowed}")
        return v.upper()

    @field_validator("allowed_origins", "browser_args", mode="before")
    @classmethod
    def parse_string_list(cls, v: Union[str, List[str]]) -> List[str]:
        """Parse a list from a JSON array or comma-separated string."""
        if isinstance(v, str):
            v = v.strip()
            if v.startswith("[") and v.endswith("]"):
                try:
                    return json.loads(v)
                except json.JSONDecodeError:
                    pass
            return [item.strip() for item in v.split(",") if item.strip()]
        return v

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        env_prefix="MERMAID_SERVICE_",
    )


# Global settings instance - will be initialized when needed
settings = None


def get_settings() -> Settings:
    """Get the global settings instance."""
    global settings
    if settings is None:
        settings = Settings()
    return settings


def reload_settings() -> Settings:
    """Reload settings from environment."""
    global settings
    settings = Settings()
    return settings
