from datetime import timedelta
from pathlib import Path
from typing import Annotated
import logging

from croniter import croniter
from pydantic import field_validator, model_validator
from pydantic_settings import BaseSettings, NoDecode, SettingsConfigDict

from epg_guide.services.fetch_types import (
    CorrelationStrategy,
    ParserStrategy,
    PipelineConfig,
    SourceMode,
)
from epg_guide.utils.file_operations import sanitize_url_for_logging
from epg_guide.utils.timezone import resolve_timezone


logger = logging.getLogger(__name__)

DEFAULT_CHANNEL_LANGUAGES = ["fra", "fre", "ar", "eng"]
DEFAULT_CHANNEL_COUNTRIES = [
    "fr", "be", "ch", "ca", "dz", "ma", "tn", "sn", "ci", "cm", "cd",
    "bf", "ml", "ne", "tg", "bj", "gn", "rw", "bi", "td", "cf", "ga",
    "cg", "mg", "km", "sc", "mu", "dj", "za", "ng", "ke", "gh", "ug",
    "tz", "et", "zw", "zm", "mw", "ao", "mz", "na", "bw", "ls", "sz",
]


class CustomSettings(BaseSettings):
    """Application settings loaded from environment variables.

    Validates configuration at startup to catch misconfiguration early.
    """

    database_path: str = "./data/epg.db"
    snapshot_path: str | None = None

    epg_source_url: str = "https://iptv-org.github.io/epg/epg.xml.gz"
    epg_source_mode: SourceMode = SourceMode.XMLTV
    channel_playlist_url: str | None = None
    channel_api_url: str | None = None
    channel_api_streams_url: str = "https://iptv-org.github.io/api/streams.json"
    channel_api_logos_url: str = "https://iptv-org.github.io/api/logos.json"
    channel_api_languages: Annotated[list[str], NoDecode] = DEFAULT_CHANNEL_LANGUAGES
    channel_api_countries: Annotated[list[str], NoDecode] = DEFAULT_CHANNEL_COUNTRIES

    cap_per_channel: int | None = 10
    past_horizon_hours: float | None = 0
    future_horizon_hours: float | None = 48
    max_programs: int | None = None
    presort_by_start: bool = False
    xmltv_parser: ParserStrategy = ParserStrategy.STRUCTURAL
    resilient_threshold_mb: float = 50
    correlation: CorrelationStrategy = CorrelationStrategy.EXACT
    xmltv_naive_timezone: str = "local"  # 'local', 'UTC' or an IANA name
    display_timezone: str = "Europe/Paris"
    unknown_channel_name: str = "Inconnu"
    empty_is_error: bool = False

    refresh_cron: str = "0 * * * *"  # Hourly
    refresh_misfire_grace_sec: int = 600
    refresh_on_startup: bool = True
    cache_ttl_sec: int = 6 * 3600
    fetch_timeout_sec: float = 120.0
    fetch_max_retries: int = 3
    parse_timeout_sec: int = 600  # 0 disables timeout

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    @field_validator("channel_api_languages", "channel_api_countries", mode="before")
    @classmethod
    def parse_code_lists(cls, value):
        """Parse comma-separated codes or list."""
        if value is None:
            return []
        if isinstance(value, str):
            return [code.strip().lower() for code in value.split(",") if code.strip()]
        if isinstance(value, (list, tuple)):
            return [str(code).strip().lower() for code in value if str(code).strip()]
        return []

    @field_validator(
        "channel_playlist_url",
        "channel_api_url",
        "snapshot_path",
        "cap_per_channel",
        "past_horizon_hours",
        "future_horizon_hours",
        "max_programs",
        mode="before",
    )
    @classmethod
    def parse_optional(cls, value):
        """Treat empty strings and 'none' as unset."""
        if isinstance(value, str) and value.strip().lower() in ("", "none", "null"):
            return None
        return value

    @field_validator("epg_source_url", "channel_playlist_url")
    @classmethod
    def validate_source_location(cls, value: str | None, info) -> str | None:
        """Validate sources are HTTP/HTTPS URLs or local paths."""
        if value is None:
            return value
        value = value.strip()
        if "://" in value and not value.lower().startswith(("http://", "https://")):
            raise ValueError(f"{info.field_name} must be an HTTP/HTTPS URL or a local path: {value}")
        return value

    @field_validator("channel_api_url", "channel_api_streams_url", "channel_api_logos_url")
    @classmethod
    def validate_api_urls(cls, value: str | None, info) -> str | None:
        """Validate channel API URLs are HTTP/HTTPS."""
        if value is not None and not value.lower().startswith(("http://", "https://")):
            raise ValueError(f"{info.field_name} must be HTTP/HTTPS: {value}")
        return value

    @field_validator("database_path")
    @classmethod
    def validate_database_path(cls, value: str) -> str:
        """Validate database path is accessible."""
        path = Path(value)
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            return value
        except (OSError, PermissionError) as exc:
            raise ValueError(f"Cannot access database path '{value}': {exc}") from exc

    @field_validator("cap_per_channel", "max_programs")
    @classmethod
    def validate_limits(cls, value: int | None, info) -> int | None:
        """Validate limits are non-negative."""
        if value is not None and value < 0:
            raise ValueError(f"{info.field_name} must be >= 0")
        return value

    @field_validator("past_horizon_hours", "future_horizon_hours")
    @classmethod
    def validate_horizons(cls, value: float | None, info) -> float | None:
        """Validate window horizons are non-negative and reasonable."""
        if value is None:
            return value
        if value < 0:
            raise ValueError(f"{info.field_name} must be >= 0")
        if value > 24 * 365:
            raise ValueError(f"{info.field_name} must be <= one year")
        return value

    @field_validator("xmltv_naive_timezone", "display_timezone")
    @classmethod
    def validate_timezone(cls, value: str, info) -> str:
        """Validate timezone names resolve."""
        try:
            resolve_timezone(value)
        except ValueError as exc:
            raise ValueError(f"{info.field_name}: {exc}") from exc
        return value

    @field_validator("resilient_threshold_mb", "fetch_timeout_sec", "cache_ttl_sec")
    @classmethod
    def validate_positive(cls, value, info):
        """Ensure sizes and durations are positive."""
        if value <= 0:
            raise ValueError(f"{info.field_name} must be > 0")
        return value

    @field_validator("fetch_max_retries")
    @classmethod
    def validate_retries(cls, value: int) -> int:
        """At least one attempt is always made."""
        if value < 1:
            raise ValueError("fetch_max_retries must be >= 1")
        return value

    @field_validator("parse_timeout_sec", "refresh_misfire_grace_sec")
    @classmethod
    def validate_non_negative_seconds(cls, value: int, info) -> int:
        """Validate timeouts and grace periods (seconds)."""
        if value < 0:
            raise ValueError(f"{info.field_name} must be >= 0")
        return value

    @field_validator("refresh_cron")
    @classmethod
    def validate_cron_expression(cls, value: str) -> str:
        """Validate cron expression is valid."""
        try:
            croniter(value)
            return value
        except (ValueError, KeyError) as exc:
            raise ValueError(f"Invalid cron expression '{value}': {exc}") from exc

    @model_validator(mode="after")
    def validate_source_configuration(self):
        """Validate cross-field configuration."""
        if not self.epg_source_url:
            raise ValueError("epg_source_url must be set")

        if self.epg_source_mode is SourceMode.M3U and self.channel_playlist_url:
            logger.warning(
                "channel_playlist_url is ignored when the primary source is already an M3U playlist"
            )

        if self.past_horizon_hours == 0 and self.future_horizon_hours == 0:
            logger.warning(
                "Both window horizons are 0 - only programs airing at refresh time will be kept"
            )

        return self

    def __init__(self, **data):
        """Initialize settings and log configuration."""
        super().__init__(**data)

        logger.info("Configuration loaded:")
        logger.info("  Database: %s", self.database_path)
        logger.info("  Guide Source: %s (%s)", _display_location(self.epg_source_url), self.epg_source_mode.value)
        logger.info(
            "  Channel Directory: playlist=%s api=%s",
            _display_location(self.channel_playlist_url) if self.channel_playlist_url else "none",
            self.channel_api_url or "none",
        )
        logger.info("  Refresh Schedule: %s", self.refresh_cron)
        logger.info("  Refresh Misfire Grace: %ss", self.refresh_misfire_grace_sec)
        logger.info("  Cap Per Channel: %s", self.cap_per_channel if self.cap_per_channel is not None else "unbounded")
        logger.info(
            "  Window: past=%sh future=%s",
            self.past_horizon_hours if self.past_horizon_hours is not None else "unbounded",
            f"{self.future_horizon_hours}h" if self.future_horizon_hours is not None else "unbounded",
        )
        logger.info("  XMLTV Parser: %s (correlation: %s)", self.xmltv_parser.value, self.correlation.value)
        logger.info("  Naive Timestamps: %s", self.xmltv_naive_timezone)
        logger.info("  Display Timezone: %s", self.display_timezone)
        logger.info("  Cache TTL: %s seconds", self.cache_ttl_sec)
        logger.info(
            "  Parse Timeout: %s seconds",
            self.parse_timeout_sec or "disabled",
        )

    def pipeline_config(self) -> PipelineConfig:
        """Build the immutable pipeline configuration from these settings."""
        return PipelineConfig(
            cap_per_channel=self.cap_per_channel,
            past_horizon=_hours(self.past_horizon_hours),
            future_horizon=_hours(self.future_horizon_hours),
            presort_by_start=self.presort_by_start,
            max_programs=self.max_programs,
            parser=self.xmltv_parser,
            correlation=self.correlation,
            resilient_threshold_bytes=int(self.resilient_threshold_mb * 1024 * 1024),
            naive_timezone=resolve_timezone(self.xmltv_naive_timezone),
            unknown_channel_name=self.unknown_channel_name,
            empty_is_error=self.empty_is_error,
        )


def _hours(value: float | None) -> timedelta | None:
    return None if value is None else timedelta(hours=value)


def _display_location(location: str) -> str:
    return sanitize_url_for_logging(location)


settings = CustomSettings()


def setup_logging() -> None:
    """Configure application logging."""
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )
