from __future__ import annotations

from datetime import date, datetime, tzinfo

from pydantic import BaseModel, Field, field_validator

from epg_guide.services.fetch_types import ChannelDirectoryEntry, NormalizedProgram, NormalizedResult
from epg_guide.utils.categories import ProgramCategory
from epg_guide.utils.timezone import format_for_display, resolve_timezone


def timezone_label(tz: tzinfo | None) -> str:
    if tz is None:
        return "local"
    return getattr(tz, "key", None) or str(tz)


class GuideQuery(BaseModel):
    """Filters for guide requests"""
    category: ProgramCategory | None = Field(None, description="Only programs of this category (e.g. 'Sport')")
    search: str | None = Field(None, description="Case-insensitive text searched in title, channel and description")
    channel: str | None = Field(None, description="Channel id or display name")
    day: date | None = Field(None, description="Only programs starting on this day (YYYY-MM-DD, display timezone)")
    live_only: bool = Field(False, description="Only programs airing now")
    timezone: str | None = Field(None, description="Display timezone ('UTC', IANA name or 'local'); defaults to the configured one")

    @field_validator("search", "channel")
    @classmethod
    def blank_to_none(cls, v: str | None) -> str | None:
        if v is None or not v.strip():
            return None
        return v.strip()

    @field_validator("timezone")
    @classmethod
    def validate_timezone(cls, v: str | None) -> str | None:
        """Validate timezone string"""
        if v is None:
            return v
        try:
            resolve_timezone(v)
            return v
        except ValueError:
            raise ValueError(f"Invalid timezone: {v}. Must be a valid IANA timezone (e.g., 'Europe/Paris'), 'UTC' or 'local'")


class ChannelResponse(BaseModel):
    """Channel data"""
    id: str = Field(..., description="Unique channel ID")
    name: str = Field(..., description="Display name of the channel")
    logo_url: str | None = Field(None, description="URL to channel logo")
    categories: list[str] = Field(default_factory=list)
    languages: list[str] = Field(default_factory=list)
    country: str | None = None
    stream_url: str | None = None

    @classmethod
    def from_entry(cls, entry: ChannelDirectoryEntry) -> ChannelResponse:
        return cls(
            id=entry.id,
            name=entry.name,
            logo_url=entry.logo_url,
            categories=list(entry.categories),
            languages=list(entry.languages),
            country=entry.country,
            stream_url=entry.stream_url,
        )


class ProgramResponse(BaseModel):
    """Single program data"""
    id: str
    channel_id: str
    channel: str = Field(..., description="Channel display name")
    title: str
    category: ProgramCategory
    start: datetime = Field(..., description="ISO8601 UTC start time")
    end: datetime = Field(..., description="ISO8601 UTC end time")
    start_date: str = Field(..., description="Start date in display timezone (dd/mm/YYYY)")
    start_time: str = Field(..., description="Start time in display timezone (HH:MM)")
    end_time: str = Field(..., description="End time in display timezone (HH:MM)")
    duration: int = Field(..., description="Duration in minutes")
    description: str = ""
    logo: str | None = None
    is_live: bool = False
    actors: list[str] = Field(default_factory=list)

    @classmethod
    def from_program(cls, program: NormalizedProgram, tz: tzinfo | None) -> ProgramResponse:
        return cls(
            id=program.id,
            channel_id=program.channel_id,
            channel=program.channel_name,
            title=program.title,
            category=program.category,
            start=program.start,
            end=program.end,
            start_date=format_for_display(program.start, "date", tz),
            start_time=format_for_display(program.start, "time", tz),
            end_time=format_for_display(program.end, "time", tz),
            duration=program.duration_minutes,
            description=program.description,
            logo=program.logo_url,
            is_live=program.is_live,
            actors=list(program.actors),
        )


class GuideResponse(BaseModel):
    """Guide data response"""
    generated_at: datetime
    timezone: str = Field(..., description="Timezone used for display fields")
    source_mode: str
    stale: bool = Field(False, description="True when served from an expired cache entry after a failed refresh")
    total_channels: int
    total_programs: int
    channels: list[ChannelResponse]
    programs: list[ProgramResponse]

    @classmethod
    def from_result(
        cls,
        result: NormalizedResult,
        tz: tzinfo | None,
        *,
        programs: list[NormalizedProgram] | None = None,
        stale: bool = False,
    ) -> GuideResponse:
        selected = list(result.programs) if programs is None else programs
        return cls(
            generated_at=result.generated_at,
            timezone=timezone_label(tz),
            source_mode=result.source_mode.value,
            stale=stale,
            total_channels=len(result.channels),
            total_programs=len(selected),
            channels=[ChannelResponse.from_entry(channel) for channel in result.channels],
            programs=[ProgramResponse.from_program(program, tz) for program in selected],
        )


class StatsResponse(BaseModel):
    """Guide statistics"""
    generated_at: datetime
    total_programs: int
    live_programs: int
    channels: int = Field(..., description="Channel count in the published guide")
    by_category: dict[str, int] = Field(..., description="Program count per category")
    channel_groups: dict[str, int] = Field(default_factory=dict, description="Channel count per directory group")


class ErrorDetail(BaseModel):
    """Standard error detail"""
    code: str = Field(..., description="Error code (e.g., 'GUIDE_UNAVAILABLE', 'REFRESH_FAILED')")
    message: str = Field(..., description="Human-readable error message")
    context: dict | None = Field(None, description="Additional context about the error")


class StandardErrorResponse(BaseModel):
    """Standardized error response for all endpoints"""
    status: str = Field("error", description="Status indicator")
    timestamp: str = Field(..., description="ISO8601 timestamp of error")
    error: ErrorDetail = Field(..., description="Error details")
