"""
Data merging utilities

This module handles de-duplication of parsed records and merging of
channel directory entries into XMLTV channels.
"""
import logging
from collections.abc import Iterable, MutableMapping, Sequence

from epg_guide.services.fetch_types import ChannelDirectoryEntry, RawChannel, RawProgramme

logger = logging.getLogger(__name__)


def unique_channels(channels: Iterable[RawChannel]) -> dict[str, RawChannel]:
    """
    Index channels by id, keeping the first occurrence of each id.

    Args:
        channels: Parsed channels in document order

    Returns:
        Ordered dictionary of xmltv_id -> RawChannel
    """
    unique: dict[str, RawChannel] = {}
    for channel in channels:
        if channel.id in unique:
            logger.debug("Skipping duplicate channel: %s", channel.id)
            continue
        unique[channel.id] = channel
    return unique


def merge_channels(
    existing_channels: MutableMapping[str, RawChannel],
    new_channels: Sequence[RawChannel]
) -> tuple[MutableMapping[str, RawChannel], int]:
    """
    Merge new channels into existing channel dictionary.

    Updates existing channel data if new source has display name or logo.
    Counts as 'new' only if channel was not previously seen.

    Args:
        existing_channels: Dictionary of existing channels (id -> RawChannel)
        new_channels: Iterable of new channels to merge

    Returns:
        Tuple of (updated_channels_dict, count_of_new_channels_added)
    """
    new_count = 0

    for channel in new_channels:
        current = existing_channels.get(channel.id)
        if current is None:
            existing_channels[channel.id] = channel
            new_count += 1
        else:
            updated_display = channel.display_name or current.display_name
            updated_logo = channel.logo_url or current.logo_url

            if (
                updated_display != current.display_name
                or updated_logo != current.logo_url
            ):
                existing_channels[channel.id] = RawChannel(
                    id=channel.id,
                    display_name=updated_display,
                    logo_url=updated_logo,
                )
                logger.debug("Updated channel %s with merged data", channel.id)

    return existing_channels, new_count


def directory_to_channels(entries: Iterable[ChannelDirectoryEntry]) -> list[RawChannel]:
    """Convert channel directory entries to RawChannel records"""
    return [RawChannel(id=entry.id, display_name=entry.name, logo_url=entry.logo_url) for entry in entries]


def dedupe_programmes(programmes: Iterable[RawProgramme]) -> tuple[list[RawProgramme], int]:
    """
    Drop repeated programmes (same channel, start and title), first wins.

    Args:
        programmes: Parsed programmes in document order

    Returns:
        Tuple of (unique_programmes, count_of_duplicates_dropped)
    """
    seen: set[str] = set()
    unique: list[RawProgramme] = []
    duplicates = 0

    for programme in programmes:
        program_key = create_program_key(programme)
        if program_key in seen:
            duplicates += 1
            logger.debug("Skipping duplicate program: %s on %s", programme.title, programme.channel_id)
            continue
        seen.add(program_key)
        unique.append(programme)

    return unique, duplicates


def create_program_key(program: RawProgramme) -> str:
    """
    Create a unique key for a program based on channel, time, and title.

    Args:
        program: RawProgramme instance

    Returns:
        Unique program key string
    """
    return f"{program.channel_id}_{program.start.isoformat()}_{program.title}"


def channels_to_entries(
    channels: Iterable[RawChannel],
    directory: Iterable[ChannelDirectoryEntry] = (),
) -> list[ChannelDirectoryEntry]:
    """
    Build output channel entries, carrying directory metadata (stream URL,
    groups, languages, country) onto the merged channels.
    """
    by_id = {}
    for entry in directory:
        by_id.setdefault(entry.id, entry)

    entries: list[ChannelDirectoryEntry] = []
    for channel in channels:
        listed = by_id.get(channel.id)
        if listed is None:
            entries.append(ChannelDirectoryEntry.from_raw_channel(channel))
            continue
        entries.append(
            ChannelDirectoryEntry(
                id=channel.id,
                name=channel.display_name,
                logo_url=channel.logo_url,
                categories=listed.categories,
                languages=listed.languages,
                country=listed.country,
                stream_url=listed.stream_url,
            )
        )
    return entries
