"""
M3U playlist parsing

Line-oriented state machine turning #EXTINF metadata + URL line pairs into
channel directory entries.
"""
from enum import Enum
from typing import Optional
import logging
import re

from epg_guide.services.fetch_types import ChannelDirectoryEntry

logger = logging.getLogger(__name__)

EXTINF_SENTINEL = "#EXTINF"

_ATTRIBUTE_RE = re.compile(r'([A-Za-z0-9_-]+)\s*=\s*"([^"]*)"')


class ParserState(Enum):
    AWAITING_METADATA = "awaiting_metadata"
    AWAITING_URL = "awaiting_url"


def _split_list(value: Optional[str]) -> tuple[str, ...]:
    if not value:
        return ()
    return tuple(part.strip() for part in value.split(";") if part.strip())


def parse_extinf(line: str) -> dict[str, str]:
    """
    Extract attributes and the display name from one #EXTINF line

    Args:
        line: '#EXTINF:-1 tvg-id="x" tvg-name="X" tvg-logo="..." group-title="News",X HD'

    Returns:
        Dict of lower-cased attribute names to values, plus 'display_name'
    """
    attributes: dict[str, str] = {}
    tail_start = 0
    for match in _ATTRIBUTE_RE.finditer(line):
        attributes[match.group(1).lower()] = match.group(2).strip()
        tail_start = match.end()

    # commas inside quoted attribute values are not name separators
    tail = line[tail_start:]
    attributes["display_name"] = tail.rsplit(",", 1)[1].strip() if "," in tail else ""
    return attributes


def _build_entry(metadata: dict[str, str], url: str) -> Optional[ChannelDirectoryEntry]:
    display_name = metadata.get("display_name") or metadata.get("tvg-name", "")
    channel_id = metadata.get("tvg-id") or metadata.get("tvg-name") or display_name
    if not channel_id:
        return None

    return ChannelDirectoryEntry(
        id=channel_id,
        name=display_name or channel_id,
        logo_url=metadata.get("tvg-logo") or None,
        categories=_split_list(metadata.get("group-title")),
        languages=_split_list(metadata.get("tvg-language")),
        country=metadata.get("tvg-country") or None,
        stream_url=url,
    )


def parse_m3u(payload: bytes | str) -> list[ChannelDirectoryEntry]:
    """
    Parse an M3U playlist into channel directory entries

    A metadata line is completed by the next non-blank, non-comment line
    (the stream URL). A metadata line with no URL before the next #EXTINF
    or the end of input is discarded.

    Args:
        payload: Playlist text or UTF-8 bytes

    Returns:
        Entries in playlist order
    """
    text = payload.decode("utf-8-sig", errors="replace") if isinstance(payload, bytes) else payload

    entries: list[ChannelDirectoryEntry] = []
    state = ParserState.AWAITING_METADATA
    pending: dict[str, str] = {}
    discarded = 0

    for raw_line in text.splitlines():
        line = raw_line.strip()
        if not line:
            continue

        if line.startswith(EXTINF_SENTINEL):
            if state is ParserState.AWAITING_URL:
                discarded += 1
                logger.debug("Discarding #EXTINF entry without URL: %s", pending.get("display_name"))
            pending = parse_extinf(line)
            state = ParserState.AWAITING_URL
            continue

        if line.startswith("#") or state is ParserState.AWAITING_METADATA:
            continue

        entry = _build_entry(pending, line)
        if entry is None:
            discarded += 1
            logger.debug("Discarding #EXTINF entry without id or name for URL %s", line)
        else:
            entries.append(entry)
        pending = {}
        state = ParserState.AWAITING_METADATA

    if state is ParserState.AWAITING_URL:
        discarded += 1
        logger.debug("Discarding trailing #EXTINF entry without URL: %s", pending.get("display_name"))

    logger.info("M3U parsing complete: %s channels (%s incomplete entries discarded)", len(entries), discarded)
    return entries
