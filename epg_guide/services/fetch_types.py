"""
Shared dataclasses used across the guide pipeline.
"""
from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta, tzinfo
from enum import Enum

from epg_guide.utils.categories import ProgramCategory


class SourceMode(str, Enum):
    """Kind of raw payload handed to the pipeline."""
    XMLTV = "xmltv"
    M3U = "m3u"


class ParserStrategy(str, Enum):
    """XMLTV parsing strategy."""
    STRUCTURAL = "structural"
    RESILIENT = "resilient"
    AUTO = "auto"


class CorrelationStrategy(str, Enum):
    """How programmes are joined to channels."""
    EXACT = "exact"
    FUZZY = "fuzzy"


@dataclass(frozen=True, slots=True)
class RawChannel:
    """Channel as read from one source document."""
    id: str
    display_name: str
    logo_url: str | None = None


@dataclass(frozen=True, slots=True)
class RawProgramme:
    """Programme as read from one source document. Invariant: start <= stop."""
    channel_id: str
    start: datetime
    stop: datetime
    title: str
    description: str = ""
    raw_category_text: str = ""
    actors: tuple[str, ...] = ()


@dataclass(frozen=True, slots=True)
class ChannelDirectoryEntry:
    """Externally visible channel listing entry."""
    id: str
    name: str
    logo_url: str | None = None
    categories: tuple[str, ...] = ()
    languages: tuple[str, ...] = ()
    country: str | None = None
    stream_url: str | None = None

    @classmethod
    def from_raw_channel(cls, channel: RawChannel) -> ChannelDirectoryEntry:
        return cls(id=channel.id, name=channel.display_name, logo_url=channel.logo_url)


@dataclass(frozen=True, slots=True)
class NormalizedProgram:
    """Display-ready programme built once per pipeline run."""
    id: str
    channel_id: str
    title: str
    channel_name: str
    category: ProgramCategory
    start: datetime
    end: datetime
    duration_minutes: int
    description: str = ""
    logo_url: str | None = None
    is_live: bool = False
    actors: tuple[str, ...] = ()


@dataclass(frozen=True, slots=True)
class ParsedDocument:
    """Output of a document parser, before correlation."""
    channels: tuple[RawChannel, ...]
    programmes: tuple[RawProgramme, ...]


@dataclass(frozen=True, slots=True)
class NormalizedResult:
    """Complete, consistent output of one pipeline run."""
    channels: tuple[ChannelDirectoryEntry, ...]
    programs: tuple[NormalizedProgram, ...]
    generated_at: datetime
    source_mode: SourceMode = SourceMode.XMLTV

    @property
    def is_empty(self) -> bool:
        if self.source_mode is SourceMode.M3U:
            return not self.channels
        return not self.programs


@dataclass(frozen=True, slots=True)
class PipelineConfig:
    """Per-run pipeline configuration.

    A ``None`` horizon is unbounded. ``naive_timezone`` is the zone used for
    XMLTV timestamps without an explicit offset; ``None`` means host local time.
    """
    cap_per_channel: int | None = 10
    past_horizon: timedelta | None = timedelta(0)
    future_horizon: timedelta | None = None
    presort_by_start: bool = False
    max_programs: int | None = None
    parser: ParserStrategy = ParserStrategy.STRUCTURAL
    correlation: CorrelationStrategy = CorrelationStrategy.EXACT
    resilient_threshold_bytes: int = 50 * 1024 * 1024
    naive_timezone: tzinfo | None = None
    unknown_channel_name: str = "Inconnu"
    empty_is_error: bool = False


__all__ = [
    "SourceMode",
    "ParserStrategy",
    "CorrelationStrategy",
    "RawChannel",
    "RawProgramme",
    "ChannelDirectoryEntry",
    "NormalizedProgram",
    "ParsedDocument",
    "NormalizedResult",
    "PipelineConfig",
]
