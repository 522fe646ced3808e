"""Configuration management for the web tester.

Two layers:
- ``Settings``: process-wide settings loaded from ``WEB_TESTER_*`` environment
  variables or a ``.env`` file (logging, browser mode, output locations).
- ``ScanConfig``: immutable per-run options, resolved once when a scan starts.
"""

from enum import Enum
from typing import Any, Literal, Optional, get_args

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from web_tester.models import Severity, Viewport
from web_tester.utils.helpers import origin_of


class WaitStrategy(str, Enum):
    """Page load state that navigation waits for."""
    LOAD = "load"
    DOMCONTENTLOADED = "domcontentloaded"
    NETWORKIDLE = "networkidle"


ResourceType = Literal["image", "stylesheet", "font", "media"]
LogLevel = Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]

LOG_LEVELS: tuple[str, ...] = get_args(LogLevel)


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_prefix="WEB_TESTER_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore"
    )

    # Logging
    log_level: LogLevel = Field("INFO", description="Log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)")
    log_json: bool = Field(False, description="Render logs as JSON instead of console lines")

    # Browser
    headless: bool = Field(True, description="Run the browser without a window")

    # Paths
    screenshot_dir: str = Field("/tmp/web-tester/screenshots", description="Directory for screenshots")
    output_path: str = Field("/tmp/web-tester/scan.jsonl", description="Default JSONL output file")

    @field_validator("log_level", mode="before")
    @classmethod
    def _normalize_log_level(cls, value: Any) -> Any:
        return value.upper() if isinstance(value, str) else value


def get_settings() -> Settings:
    """Get application settings."""
    return Settings()


class ScanConfig(BaseModel):
    """Options for one scan run. Frozen once built.

    Defaults are merged under explicit caller values; use ``from_options`` to
    treat ``None`` as "not given".
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    base_url: str = Field(..., description="Seed address; defines the crawl origin")
    max_pages: int = Field(100, ge=1, description="Maximum pages to visit")
    max_depth: int = Field(3, ge=0, description="Declared link depth limit (not enforced)")
    parallel_pages: int = Field(1, ge=1, description="Concurrent page sessions")
    viewports: tuple[Viewport, ...] = Field(("desktop",), description="Screenshot viewports")

    # Progressive mode
    progressive: bool = Field(True, description="Emit per-page progress events")
    prioritize_critical: bool = Field(True, description="Emit CRITICAL issues before the page event")

    # Output
    output_path: Optional[str] = Field(None, description="JSONL output path")
    format: Literal["jsonl", "json"] = Field("jsonl", description="Output format")

    # Filtering
    include_patterns: tuple[str, ...] = Field((), description="Glob patterns a URL must match")
    exclude_patterns: tuple[str, ...] = Field((), description="Glob patterns that reject a URL")

    # Performance & loading
    wait_strategy: WaitStrategy = Field(WaitStrategy.LOAD, description="Navigation wait strategy")
    block_external_resources: bool = Field(False, description="Abort cross-origin sub-requests")
    allowed_domains: tuple[str, ...] = Field((), description="External domains allowed when blocking")
    blocked_resource_types: tuple[ResourceType, ...] = Field((), description="Resource types to abort")

    # Issue filtering (applied by the output layer)
    critical_only: bool = Field(False, description="Only report CRITICAL issues")
    min_severity: Optional[Severity] = Field(None, description="Minimum severity to report")

    # Features
    capture_screenshots: bool = True
    capture_console_logs: bool = True
    capture_network_requests: bool = True
    measure_performance: bool = True
    analyze_patterns: bool = Field(False, description="Emit a pattern analysis before completion")

    @field_validator("base_url")
    @classmethod
    def _require_http_url(cls, value: str) -> str:
        if not value.startswith(("http://", "https://")):
            raise ValueError(f"base_url must be an http(s) URL: {value!r}")
        origin_of(value)
        return value

    @classmethod
    def from_options(cls, **options: Any) -> "ScanConfig":
        """Build a config, ignoring options explicitly passed as ``None``."""
        return cls(**{key: value for key, value in options.items() if value is not None})

    @property
    def resource_blocking_enabled(self) -> bool:
        return self.block_external_resources or bool(self.blocked_resource_types)
