"""
EPG Query Service

Read operations over a published guide: program filtering (category,
free-text search, channel, day, live), live-flag refresh and statistics.
All functions are pure; the reference instant and timezone are passed in.
"""
from collections.abc import Iterable, Sequence
from dataclasses import replace
from datetime import date, datetime, tzinfo
import logging

from epg_guide.services.channel_directory_service import categorize_channels
from epg_guide.services.fetch_types import ChannelDirectoryEntry, NormalizedProgram, NormalizedResult
from epg_guide.utils.categories import ProgramCategory

logger = logging.getLogger(__name__)


def is_airing(program: NormalizedProgram, now: datetime) -> bool:
    return program.start <= now <= program.end


def refresh_live_flags(programs: Iterable[NormalizedProgram], now: datetime) -> list[NormalizedProgram]:
    """
    Recompute is_live against ``now``

    Results are generated at refresh time; served programs must reflect the
    request time instead.
    """
    refreshed = []
    for program in programs:
        live = is_airing(program, now)
        refreshed.append(program if live == program.is_live else replace(program, is_live=live))
    return refreshed


def matches_search(program: NormalizedProgram, search: str) -> bool:
    needle = search.casefold()
    return (
        needle in program.title.casefold()
        or needle in program.channel_name.casefold()
        or needle in program.description.casefold()
    )


def matches_channel(program: NormalizedProgram, channel: str) -> bool:
    wanted = channel.casefold()
    return program.channel_id.casefold() == wanted or program.channel_name.casefold() == wanted


def starts_on(program: NormalizedProgram, day: date, tz: tzinfo | None) -> bool:
    local_start = program.start.astimezone(tz) if tz is not None else program.start.astimezone()
    return local_start.date() == day


def filter_programs(
    programs: Sequence[NormalizedProgram],
    now: datetime,
    *,
    category: ProgramCategory | None = None,
    search: str | None = None,
    channel: str | None = None,
    day: date | None = None,
    tz: tzinfo | None = None,
    live_only: bool = False,
) -> list[NormalizedProgram]:
    """
    Filter programs, preserving their order

    Args:
        programs: Programs of a published result
        now: Reference instant for live flags

    Keyword Args:
        category: Keep only this category
        search: Case-insensitive substring of title, channel name or description
        channel: Channel id or display name (case-insensitive)
        day: Keep programs starting on this calendar day in ``tz``
        tz: Timezone for ``day`` (None for host local time)
        live_only: Keep only programs airing at ``now``

    Returns:
        Matching programs with is_live recomputed against ``now``
    """
    selected = []
    for program in refresh_live_flags(programs, now):
        if category is not None and program.category is not category:
            continue
        if search and not matches_search(program, search):
            continue
        if channel and not matches_channel(program, channel):
            continue
        if day is not None and not starts_on(program, day, tz):
            continue
        if live_only and not program.is_live:
            continue
        selected.append(program)

    logger.debug("Filtered %s programs down to %s", len(programs), len(selected))
    return selected


def filter_channels(
    channels: Sequence[ChannelDirectoryEntry],
    group: str | None = None,
) -> list[ChannelDirectoryEntry]:
    """
    Channels of a directory group (sports, news, ...), or all channels

    Raises:
        ValueError: If the group name is unknown
    """
    if group is None:
        return list(channels)
    groups = categorize_channels(channels)
    if group not in groups:
        raise ValueError(f"Unknown channel group '{group}'. Must be one of {sorted(groups)}")
    return groups[group]


def compute_stats(result: NormalizedResult, now: datetime) -> dict:
    """
    Program counts per category and live count

    Every category is reported, including those with no programs.
    """
    by_category = {category.value: 0 for category in ProgramCategory}
    live = 0
    for program in result.programs:
        by_category[program.category.value] += 1
        if is_airing(program, now):
            live += 1

    return {
        "generated_at": result.generated_at,
        "total_programs": len(result.programs),
        "live_programs": live,
        "channels": len(result.channels),
        "by_category": by_category,
        "channel_groups": {
            name: len(entries) for name, entries in categorize_channels(result.channels).items()
        },
    }
