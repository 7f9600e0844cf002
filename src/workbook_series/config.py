"""Configuration management for workbook series extraction.

This module provides centralized configuration using pydantic-settings.
All configuration options can be set via environment variables with the
WBS_ prefix, or via a .env file in the project root.

Environment Variables:
    WBS_MAX_FILE_SIZE_MB: Maximum workbook upload size in MB (default: 30)
    WBS_DEFAULT_BLANK_THRESHOLD: Blank run that ends a header scan (default: 3)
    WBS_MAX_SCAN_COLUMNS: Hard cap on columns walked per scan (default: 500)
    WBS_STALE_NULL_RATIO: Null ratio above which a series is flagged (default: 0.5)
    WBS_REPORT_CONFIG_PATH: Optional JSON file replacing the built-in reports
    WBS_GRAPH_BASE_URL: Microsoft Graph base URL
    WBS_GRAPH_ACCESS_TOKEN: Bearer token used by the sync endpoint
    WBS_FACTURACION_LINK: Sharing link of the billing workbook
    WBS_BALANCE_LINK: Sharing link of the balance workbook
    WBS_SYNC_STATE_PATH: JSON file recording last-seen eTags
    WBS_SYNC_MAX_ATTEMPTS: Attempts per Graph request on 429/503 (default: 4)
    WBS_SYNC_BACKOFF_MIN_SECONDS: Minimum backoff wait (default: 1.0)
    WBS_SYNC_BACKOFF_MAX_SECONDS: Maximum backoff wait (default: 30.0)
    WBS_SYNC_TIMEOUT_SECONDS: HTTP timeout for Graph calls (default: 30.0)
    WBS_AUTO_REFRESH: Run a sync pass periodically in the server (default: false)
    WBS_REFRESH_INTERVAL_MINUTES: Minutes between auto-refresh passes (default: 15)
    WBS_LOG_LEVEL: Logging level (default: INFO)
    WBS_DEBUG: Enable debug mode (default: false)
    WBS_CORS_ORIGINS: Comma-separated CORS origins (default: *)
    WBS_SERVER_HOST: Server bind host (default: 0.0.0.0)
    WBS_SERVER_PORT: Server bind port (default: 8000)
"""

import logging
from typing import Any

from pydantic import SecretStr, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables.

    Example .env file:
        WBS_FACTURACION_LINK=https://contoso.sharepoint.com/:x:/s/fin/Facturacion.xlsx
        WBS_LOG_LEVEL=DEBUG
    """

    model_config = SettingsConfigDict(
        env_prefix="WBS_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # =========================================================================
    # Upload Settings
    # =========================================================================

    max_file_size_mb: int = 30
    """Maximum workbook upload size in megabytes."""

    # =========================================================================
    # Extraction Settings
    # =========================================================================

    default_blank_threshold: int = 3
    """Consecutive blank cells that signal the end of a header row."""

    max_scan_columns: int = 500
    """Safety cap on the number of columns a header scan may walk."""

    stale_null_ratio: float = 0.5
    """Series whose null ratio exceeds this are reported as possibly stale."""

    report_config_path: str | None = None
    """Optional JSON file with report definitions (defaults to built-ins)."""

    # =========================================================================
    # Sync Settings (Microsoft Graph)
    # =========================================================================

    graph_base_url: str = "https://graph.microsoft.com/v1.0"
    """Base URL of the Microsoft Graph API."""

    graph_access_token: SecretStr = SecretStr("")
    """Bearer token for Graph. Token acquisition happens outside this service."""

    facturacion_link: str = ""
    """Sharing link of the billing (facturacion) workbook."""

    balance_link: str = ""
    """Sharing link of the balance workbook."""

    sync_state_path: str = ".wbs_sync_state.json"
    """File recording the last-seen eTag per workbook."""

    sync_max_attempts: int = 4
    """Attempts per Graph request when throttled (429/503)."""

    sync_backoff_min_seconds: float = 1.0
    """Lower bound of the exponential backoff wait."""

    sync_backoff_max_seconds: float = 30.0
    """Upper bound of any single backoff wait, including Retry-After."""

    sync_timeout_seconds: float = 30.0
    """HTTP timeout for Graph calls."""

    auto_refresh: bool = False
    """Run a sync pass every refresh_interval_minutes while the server is up."""

    refresh_interval_minutes: int = 15
    """Minutes between auto-refresh passes."""

    # =========================================================================
    # Logging Settings
    # =========================================================================

    log_level: str = "INFO"
    """Logging level: DEBUG, INFO, WARNING, ERROR, or CRITICAL."""

    debug: bool = False
    """Enable debug mode with additional error details."""

    # =========================================================================
    # Server Settings
    # =========================================================================

    cors_origins: str = "*"
    """Comma-separated list of allowed CORS origins, or * for all."""

    server_host: str = "0.0.0.0"
    """Host address for the server to bind to."""

    server_port: int = 8000
    """Port for the server to listen on."""

    # =========================================================================
    # Validators
    # =========================================================================

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        """Validate log level is a valid Python logging level."""
        valid_levels = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}
        upper_v = v.upper()
        if upper_v not in valid_levels:
            raise ValueError(
                f"Invalid log level: {v}. Must be one of: {', '.join(valid_levels)}"
            )
        return upper_v

    @field_validator("max_file_size_mb")
    @classmethod
    def validate_file_size(cls, v: int) -> int:
        """Validate file size is positive and reasonable."""
        if not 1 <= v <= 500:
            raise ValueError(f"max_file_size_mb must be between 1 and 500, got {v}")
        return v

    @field_validator("default_blank_threshold")
    @classmethod
    def validate_blank_threshold(cls, v: int) -> int:
        """A single blank never ends a scan."""
        if v < 2:
            raise ValueError(f"default_blank_threshold must be at least 2, got {v}")
        return v

    @field_validator("max_scan_columns")
    @classmethod
    def validate_max_scan_columns(cls, v: int) -> int:
        """Validate the scan cap stays within the sheet column limit."""
        if not 1 <= v <= 16384:
            raise ValueError(f"max_scan_columns must be between 1 and 16384, got {v}")
        return v

    @field_validator("stale_null_ratio")
    @classmethod
    def validate_ratio(cls, v: float) -> float:
        """Validate ratio is between 0.0 and 1.0."""
        if not 0.0 <= v <= 1.0:
            raise ValueError(f"stale_null_ratio must be between 0.0 and 1.0, got {v}")
        return v

    @field_validator("sync_max_attempts")
    @classmethod
    def validate_max_attempts(cls, v: int) -> int:
        """Validate the retry budget is bounded."""
        if not 1 <= v <= 10:
            raise ValueError(f"sync_max_attempts must be between 1 and 10, got {v}")
        return v

    @field_validator("refresh_interval_minutes")
    @classmethod
    def validate_refresh_interval(cls, v: int) -> int:
        """Validate the auto-refresh interval is at least a minute."""
        if v < 1:
            raise ValueError(f"refresh_interval_minutes must be at least 1, got {v}")
        return v

    @field_validator("graph_base_url")
    @classmethod
    def validate_graph_base_url(cls, v: str) -> str:
        """Strip trailing slashes so paths can be appended."""
        return v.rstrip("/")

    @field_validator("server_port")
    @classmethod
    def validate_port(cls, v: int) -> int:
        """Validate port is in valid range."""
        if not 1 <= v <= 65535:
            raise ValueError(f"server_port must be between 1 and 65535, got {v}")
        return v

    @model_validator(mode="after")
    def validate_backoff_bounds(self) -> "Settings":
        """Validate the backoff window is ordered."""
        if self.sync_backoff_min_seconds > self.sync_backoff_max_seconds:
            raise ValueError(
                f"sync_backoff_min_seconds ({self.sync_backoff_min_seconds}) must "
                f"not exceed sync_backoff_max_seconds ({self.sync_backoff_max_seconds})"
            )
        return self

    # =========================================================================
    # Computed Properties
    # =========================================================================

    @property
    def max_file_size_bytes(self) -> int:
        """Get max file size in bytes."""
        return self.max_file_size_mb * 1024 * 1024

    @property
    def cors_origins_list(self) -> list[str]:
        """Get CORS origins as a list."""
        if self.cors_origins == "*":
            return ["*"]
        return [origin.strip() for origin in self.cors_origins.split(",")]

    @property
    def log_level_int(self) -> int:
        """Get log level as integer for logging module."""
        level: int = getattr(logging, self.log_level)
        return level

    def get_graph_access_token(self) -> str:
        """Get the Graph access token value (empty string if unset)."""
        return self.graph_access_token.get_secret_value()

    def to_safe_dict(self) -> dict[str, Any]:
        """Convert settings to dictionary with the access token masked."""
        return {
            "max_file_size_mb": self.max_file_size_mb,
            "default_blank_threshold": self.default_blank_threshold,
            "max_scan_columns": self.max_scan_columns,
            "stale_null_ratio": self.stale_null_ratio,
            "report_config_path": self.report_config_path,
            "graph_base_url": self.graph_base_url,
            "graph_access_token": (
                "***" if self.get_graph_access_token() else "(not set)"
            ),
            "facturacion_link": self.facturacion_link,
            "balance_link": self.balance_link,
            "sync_state_path": self.sync_state_path,
            "sync_max_attempts": self.sync_max_attempts,
            "sync_backoff_min_seconds": self.sync_backoff_min_seconds,
            "sync_backoff_max_seconds": self.sync_backoff_max_seconds,
            "sync_timeout_seconds": self.sync_timeout_seconds,
            "auto_refresh": self.auto_refresh,
            "refresh_interval_minutes": self.refresh_interval_minutes,
            "log_level": self.log_level,
            "debug": self.debug,
            "cors_origins": self.cors_origins,
            "server_host": self.server_host,
            "server_port": self.server_port,
        }


def validate_settings_on_startup(s: Settings) -> None:
    """Log warnings for settings that limit functionality.

    Args:
        s: Settings instance to validate.
    """
    logger = logging.getLogger(__name__)

    if (s.facturacion_link or s.balance_link) and not s.get_graph_access_token():
        logger.warning(
            "Sharing links are configured but WBS_GRAPH_ACCESS_TOKEN is not set. "
            "POST /sync will require a bearer token in the request."
        )

    if s.auto_refresh and not s.get_graph_access_token():
        logger.warning(
            "WBS_AUTO_REFRESH is enabled but WBS_GRAPH_ACCESS_TOKEN is not set. "
            "Workbooks will not be refreshed automatically."
        )

    if s.cors_origins == "*" and not s.debug:
        logger.warning(
            "CORS is configured to allow all origins (*). "
            "Consider restricting this in production."
        )

    logger.info(
        f"Configuration loaded: log_level={s.log_level}, debug={s.debug}, "
        f"max_file_size_mb={s.max_file_size_mb}, "
        f"blank_threshold={s.default_blank_threshold}"
    )


settings = Settings()
