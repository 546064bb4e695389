"""
Centralized settings for httpbridge.

Manifesto:
    One validated, cached settings object holds the whole outbound template
    configuration and the worker pool tuning. Every field can be set via an
    ``HTTPBRIDGE_*`` environment variable or a ``.env`` file.

    Numeric values that cannot be used are logged and replaced by their
    default instead of failing startup: a bad timeout degrades to the
    transport default, it does not stop the connector.

Tags:
    httpbridge, configuration, settings, pydantic, caching, validation
"""

from __future__ import annotations

from datetime import UTC, datetime, timedelta

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from httpbridge.core.enums import HttpMethod, OverflowPolicy, ResponseFormat
from httpbridge.core.logging import get_logger

logger = get_logger(__name__)

# Timeouts are handed to the transport in milliseconds as a signed 32-bit int.
_MAX_TIMEOUT_MS = 2**31 - 1


class BridgeSettings(BaseSettings):
    """httpbridge configuration.

    All fields can be set via ``HTTPBRIDGE_*`` environment variables (e.g.
    ``HTTPBRIDGE_CLIENT_URL=http://host/{id}``) or through a ``.env`` file.
    """

    model_config = SettingsConfigDict(
        env_prefix="HTTPBRIDGE_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # ── Outbound request templates ───────────────────────────────
    client_url: str = Field(default="", description="URL template, e.g. http://host/{id}?since={$lastPollingDateTime}")
    http_method: HttpMethod = Field(default=HttpMethod.GET)
    headers: str = Field(default="", description="Pipe-separated name:value header templates")
    post_body: str = Field(default="", description="Body template for POST/PUT")
    post_content_type: str = Field(default="application/json")
    http_timeout_seconds: int = Field(default=0, description="Per-request timeout; 0 uses the transport default")

    # ── Time tokens ──────────────────────────────────────────────
    use_epoch_milliseconds: bool = Field(default=False)
    historical_timespan_seconds: int = Field(default=0)

    # ── Inbound normalization ────────────────────────────────────
    response_format: ResponseFormat = Field(default=ResponseFormat.JSON)
    field_separator: str = Field(default=",")
    schema_name: str = Field(default="httpbridge")
    create_schema: bool = Field(default=True, description="Synthesize field0..fieldN keys for delimited text")
    build_geometry_from_fields: bool = Field(default=False)

    # ── Worker pool ──────────────────────────────────────────────
    max_workers: int = Field(default=20, ge=1)
    max_pending: int | None = Field(default=None, ge=1, description="Bounded backlog; None means unbounded")
    overflow_policy: OverflowPolicy = Field(default=OverflowPolicy.BLOCK)
    shutdown_timeout_seconds: float = Field(default=30.0, gt=0)

    # ── Logging ──────────────────────────────────────────────────
    log_level: str = Field(default="INFO")
    log_format: str = Field(default="json")

    @field_validator("http_method", mode="before")
    @classmethod
    def _upper_method(cls, value: object) -> object:
        return value.strip().upper() if isinstance(value, str) else value

    @field_validator("response_format", mode="before")
    @classmethod
    def _lower_format(cls, value: object) -> object:
        return value.strip().lower() if isinstance(value, str) else value

    @field_validator("http_timeout_seconds", mode="before")
    @classmethod
    def _lenient_timeout(cls, value: object) -> int:
        try:
            seconds = int(str(value).strip())
        except (TypeError, ValueError):
            logger.error("settings.int_parse_error", key="http_timeout_seconds", value=value)
            return 0
        if seconds < 0 or seconds * 1000 > _MAX_TIMEOUT_MS:
            logger.error("settings.invalid_timeout_value", value=seconds, using=0)
            return 0
        return seconds

    @field_validator("historical_timespan_seconds", mode="before")
    @classmethod
    def _lenient_timespan(cls, value: object) -> int:
        try:
            seconds = int(str(value).strip())
        except (TypeError, ValueError):
            logger.error("settings.int_parse_error", key="historical_timespan_seconds", value=value)
            return 0
        return max(seconds, 0)

    @field_validator("field_separator")
    @classmethod
    def _non_empty_separator(cls, value: str) -> str:
        if value == "":
            raise ValueError("field_separator must not be empty")
        return value

    # ── Derived properties ───────────────────────────────────────

    @property
    def timeout(self) -> float | None:
        """Per-request timeout in seconds, ``None`` for the transport default."""
        return float(self.http_timeout_seconds) if self.http_timeout_seconds else None

    def initial_polling_time(self, now: datetime | None = None) -> datetime:
        """Start of the first polling window: ``now - historical_timespan_seconds``."""
        now = now or datetime.now(UTC)
        return now - timedelta(seconds=self.historical_timespan_seconds)


# ── Settings factory with caching ────────────────────────────────────────

_settings_cache: dict[str, BridgeSettings] = {}


def get_settings(*, env_file: str | None = None, _force_reload: bool = False) -> BridgeSettings:
    """Load, validate, and cache a :class:`BridgeSettings` instance."""
    cache_key = env_file or ".env"

    if not _force_reload and cache_key in _settings_cache:
        return _settings_cache[cache_key]

    settings = BridgeSettings(_env_file=cache_key)  # type: ignore[call-arg]
    _settings_cache[cache_key] = settings
    return settings


def clear_settings_cache() -> None:
    """Clear the settings cache (primarily for testing)."""
    _settings_cache.clear()
