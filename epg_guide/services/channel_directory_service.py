"""
Channel Directory Service

Builds the optional channel directory merged into XMLTV channels: either an
M3U playlist or an iptv-org style JSON listing (channels, streams and logos
endpoints), filtered to relevant channels that have a stream.
"""
import json
import logging
from collections.abc import Iterable, Sequence

import httpx

from epg_guide.errors import UpstreamFetchError
from epg_guide.services.fetch_types import ChannelDirectoryEntry
from epg_guide.services.m3u_parser_service import parse_m3u
from epg_guide.utils.file_operations import download_bytes, read_source


logger = logging.getLogger(__name__)

SPORTS_KEYWORD = "sport"

# Group name -> category substrings (case-insensitive)
CHANNEL_GROUPS: dict[str, tuple[str, ...]] = {
    "sports": ("sport",),
    "news": ("news", "actualit", "info"),
    "entertainment": ("entertainment", "general", "généraliste", "divertissement"),
    "kids": ("kids", "enfant", "jeunesse"),
    "movies": ("movie", "cinéma", "cinema", "film"),
    "series": ("serie", "série"),
    "documentary": ("documentary", "documentaire"),
}


def _first_url_by_channel(records: Iterable[dict]) -> dict[str, str]:
    mapping: dict[str, str] = {}
    for record in records:
        channel_id = record.get("channel")
        url = record.get("url")
        if channel_id and url and channel_id not in mapping:
            mapping[channel_id] = url
    return mapping


def _codes(values) -> list[str]:
    codes = []
    for value in values or ():
        # Older listings use plain codes, newer ones {"code": ...} objects
        code = value.get("code") if isinstance(value, dict) else value
        if isinstance(code, str) and code:
            codes.append(code.lower())
    return codes


def is_relevant_channel(
    channel: dict,
    languages: Sequence[str],
    countries: Sequence[str],
) -> bool:
    """Relevant when it speaks a wanted language, is from a wanted country, or is a sports channel"""
    wanted_languages = {code.lower() for code in languages}
    wanted_countries = {code.lower() for code in countries}

    if any(code in wanted_languages for code in _codes(channel.get("languages"))):
        return True
    country = _codes([channel.get("country")])
    if country and country[0] in wanted_countries:
        return True
    return any(SPORTS_KEYWORD in str(category).lower() for category in channel.get("categories") or ())


def build_directory(
    channels: Sequence[dict],
    streams: Sequence[dict],
    logos: Sequence[dict],
    languages: Sequence[str],
    countries: Sequence[str],
) -> list[ChannelDirectoryEntry]:
    """
    Build directory entries from an iptv-org style listing.

    Args:
        channels: Channel records (id, name, country, categories, languages)
        streams: Stream records (channel, url)
        logos: Logo records (channel, url)
        languages: Wanted language codes
        countries: Wanted country codes

    Returns:
        Relevant channels that have a stream, in listing order
    """
    stream_map = _first_url_by_channel(streams)
    logo_map = _first_url_by_channel(logos)

    entries: list[ChannelDirectoryEntry] = []
    for channel in channels:
        channel_id = channel.get("id")
        if not channel_id or channel_id not in stream_map:
            continue
        if not is_relevant_channel(channel, languages, countries):
            continue

        country = _codes([channel.get("country")])
        entries.append(
            ChannelDirectoryEntry(
                id=channel_id,
                name=channel.get("name") or channel_id,
                logo_url=logo_map.get(channel_id) or channel.get("logo") or None,
                categories=tuple(str(category) for category in channel.get("categories") or ()),
                languages=tuple(_codes(channel.get("languages"))),
                country=country[0] if country else None,
                stream_url=stream_map[channel_id],
            )
        )

    logger.info(
        "Channel listing filtered to %s relevant channels with streams (%s listed, %s streams)",
        len(entries),
        len(channels),
        len(stream_map),
    )
    return entries


def categorize_channels(entries: Iterable[ChannelDirectoryEntry]) -> dict[str, list[ChannelDirectoryEntry]]:
    """
    Group channels by their directory categories.

    A channel appears in every group one of its categories matches.
    """
    groups: dict[str, list[ChannelDirectoryEntry]] = {name: [] for name in CHANNEL_GROUPS}
    for entry in entries:
        lowered = [category.lower() for category in entry.categories]
        for name, keywords in CHANNEL_GROUPS.items():
            if any(keyword in category for category in lowered for keyword in keywords):
                groups[name].append(entry)
    return groups


def _decode_json_list(payload: bytes, url: str) -> list[dict]:
    try:
        data = json.loads(payload)
    except ValueError as exc:
        raise UpstreamFetchError(f"Invalid JSON from {url}: {exc}", url=url) from exc
    if not isinstance(data, list):
        raise UpstreamFetchError(f"Expected a JSON list from {url}", url=url)
    return [record for record in data if isinstance(record, dict)]


async def _fetch_optional_list(url: str, client: httpx.AsyncClient | None, **kwargs) -> list[dict]:
    try:
        return _decode_json_list(await download_bytes(url, client=client, **kwargs), url)
    except UpstreamFetchError as exc:
        logger.warning("Optional listing %s unavailable, continuing without it: %s", url, exc)
        return []


async def fetch_channel_api(
    channels_url: str,
    streams_url: str,
    logos_url: str,
    languages: Sequence[str],
    countries: Sequence[str],
    *,
    timeout: float = 120.0,
    max_retries: int = 3,
    client: httpx.AsyncClient | None = None,
) -> list[ChannelDirectoryEntry]:
    """
    Fetch and filter an iptv-org style channel listing.

    The channels endpoint is required; streams and logos are optional.

    Raises:
        UpstreamFetchError: If the channels endpoint fails or returns invalid JSON
    """
    channels = _decode_json_list(
        await download_bytes(channels_url, timeout=timeout, max_retries=max_retries, client=client),
        channels_url,
    )
    logger.info("Fetched %s channels from %s", len(channels), channels_url)
    streams = await _fetch_optional_list(streams_url, client, timeout=timeout, max_retries=max_retries)
    logos = await _fetch_optional_list(logos_url, client, timeout=timeout, max_retries=max_retries)
    return build_directory(channels, streams, logos, languages, countries)


async def fetch_playlist_directory(
    location: str,
    *,
    timeout: float = 120.0,
    max_retries: int = 3,
    client: httpx.AsyncClient | None = None,
) -> list[ChannelDirectoryEntry]:
    """Fetch an M3U playlist and parse it into directory entries."""
    payload = await read_source(location, timeout=timeout, max_retries=max_retries, client=client)
    return parse_m3u(payload)
