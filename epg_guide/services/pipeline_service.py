"""
Guide Pipeline

Turns one raw payload (XMLTV or M3U, optionally compressed) into a complete
NormalizedResult: decompress -> parse -> de-duplicate -> window filter ->
correlate + cap -> categorize -> build display records.

A run is synchronous and owns all intermediate collections; the caller only
ever sees a complete result or an exception.
"""
from __future__ import annotations

from collections.abc import Sequence
from datetime import datetime, timezone
from io import BytesIO
import gzip
import logging
import math
import zipfile
import zlib

from epg_guide.errors import DecompressionError, NoData
from epg_guide.services.correlation_service import Correlation, create_correlator
from epg_guide.services.fetch_types import (
    ChannelDirectoryEntry,
    NormalizedProgram,
    NormalizedResult,
    PipelineConfig,
    RawChannel,
    SourceMode,
)
from epg_guide.services.m3u_parser_service import parse_m3u
from epg_guide.services.window_filter import filter_window
from epg_guide.services.xmltv_parser_service import create_parser
from epg_guide.utils.categories import categorize
from epg_guide.utils.data_merging import (
    channels_to_entries,
    dedupe_programmes,
    directory_to_channels,
    merge_channels,
    unique_channels,
)
from epg_guide.utils.logos import resolve_logo
from epg_guide.utils.timezone import format_xmltv_time

logger = logging.getLogger(__name__)

GZIP_MAGIC = b"\x1f\x8b"
ZIP_MAGIC = b"PK\x03\x04"


def decompress_payload(payload: bytes | str) -> bytes | str:
    """
    Transparently decompress gzip or zip payloads

    Args:
        payload: Raw bytes (text is returned untouched)

    Returns:
        Decompressed bytes, or the payload itself when it is not compressed

    Raises:
        DecompressionError: If the compressed stream is corrupt
    """
    if isinstance(payload, str):
        return payload

    if payload[:2] == GZIP_MAGIC:
        try:
            data = gzip.decompress(payload)
        except (OSError, EOFError, zlib.error) as exc:
            raise DecompressionError(f"Corrupt gzip stream: {exc}") from exc
        logger.info("Decompressed gzip payload: %.2f KB -> %.2f KB", len(payload) / 1024, len(data) / 1024)
        return data

    if payload[:4] == ZIP_MAGIC:
        try:
            with zipfile.ZipFile(BytesIO(payload)) as archive:
                names = [name for name in archive.namelist() if not name.endswith("/")]
                xml_names = [name for name in names if name.lower().endswith(".xml")]
                if not (xml_names or names):
                    raise DecompressionError("Zip archive is empty")
                data = archive.read((xml_names or names)[0])
        except (zipfile.BadZipFile, OSError, EOFError, zlib.error) as exc:
            raise DecompressionError(f"Corrupt zip archive: {exc}") from exc
        logger.info("Extracted zip payload: %.2f KB -> %.2f KB", len(payload) / 1024, len(data) / 1024)
        return data

    return payload


def duration_minutes(start: datetime, end: datetime) -> int:
    """Whole minutes between two instants, halves rounded up"""
    return max(0, math.floor((end - start).total_seconds() / 60 + 0.5))


class GuidePipeline:
    """Composes the parsing, correlation and windowing stages into one run"""

    def run(
        self,
        payload: bytes | str,
        mode: SourceMode,
        now: datetime | None = None,
        config: PipelineConfig | None = None,
        *,
        directory: Sequence[ChannelDirectoryEntry] | None = None,
    ) -> NormalizedResult:
        """
        Run the pipeline on one payload

        Args:
            payload: Raw XMLTV or M3U bytes/text, optionally gzip or zip compressed
            mode: Kind of payload
            now: Reference instant for windowing and is_live (defaults to current UTC time)
            config: Pipeline configuration (defaults to PipelineConfig())

        Keyword Args:
            directory: Optional channel directory merged into XMLTV channels

        Returns:
            Complete NormalizedResult

        Raises:
            DecompressionError: If a compressed payload is corrupt
            InvalidDocument: If the XMLTV document is structurally unusable
            NoData: If nothing survives and config.empty_is_error is set
        """
        config = config or PipelineConfig()
        now = now or datetime.now(timezone.utc)
        if now.tzinfo is None:
            raise ValueError("now must be timezone-aware")

        data = decompress_payload(payload)

        if mode is SourceMode.M3U:
            result = self._run_playlist(data, now)
        else:
            result = self._run_xmltv(data, now, config, directory or ())

        if result.is_empty:
            logger.warning("Pipeline produced no %s", "channels" if mode is SourceMode.M3U else "programs")
            if config.empty_is_error:
                raise NoData(f"No records survived filtering for {mode.value} payload")

        return result

    def _run_playlist(self, data: bytes | str, now: datetime) -> NormalizedResult:
        entries = parse_m3u(data)
        seen: set[str] = set()
        unique_entries = []
        for entry in entries:
            if entry.id not in seen:
                seen.add(entry.id)
                unique_entries.append(entry)

        return NormalizedResult(
            channels=tuple(unique_entries),
            programs=(),
            generated_at=now,
            source_mode=SourceMode.M3U,
        )

    def _run_xmltv(
        self,
        data: bytes | str,
        now: datetime,
        config: PipelineConfig,
        directory: Sequence[ChannelDirectoryEntry],
    ) -> NormalizedResult:
        parser = create_parser(config.parser, config.naive_timezone, config.resilient_threshold_bytes)
        document = parser.parse(data)

        channel_map = unique_channels(document.channels)
        if directory:
            channel_map, added = merge_channels(channel_map, directory_to_channels(directory))
            logger.info("Merged channel directory: %s entries, %s new channels", len(directory), added)
        channels = list(channel_map.values())

        programmes, duplicates = dedupe_programmes(document.programmes)
        if duplicates:
            logger.info("Dropped %s duplicate programmes", duplicates)

        windowed = filter_window(programmes, now, config.past_horizon, config.future_horizon)
        if config.presort_by_start:
            windowed.sort(key=lambda programme: programme.start)

        correlations = create_correlator(config.correlation).correlate(
            channels, windowed, config.cap_per_channel
        )
        if config.max_programs is not None and len(correlations) > config.max_programs:
            logger.info("Limiting output to %s programs (%s available)", config.max_programs, len(correlations))
            correlations = correlations[:config.max_programs]

        programs = tuple(
            self._normalize(index, correlation, now, config)
            for index, correlation in enumerate(correlations)
        )

        logger.info(
            "Pipeline complete: %s channels, %s programs (%s parsed, %s in window)",
            len(channels),
            len(programs),
            len(document.programmes),
            len(windowed),
        )
        return NormalizedResult(
            channels=tuple(channels_to_entries(channels, directory)),
            programs=programs,
            generated_at=now,
            source_mode=SourceMode.XMLTV,
        )

    def _normalize(
        self,
        index: int,
        correlation: Correlation,
        now: datetime,
        config: PipelineConfig,
    ) -> NormalizedProgram:
        programme = correlation.programme
        channel: RawChannel | None = correlation.channel

        if channel is not None:
            channel_name = channel.display_name
            logo_url = channel.logo_url or resolve_logo(channel.display_name)
        else:
            channel_name = config.unknown_channel_name
            logo_url = None

        return NormalizedProgram(
            id=f"{programme.channel_id}-{format_xmltv_time(programme.start, include_offset=False)}-{index}",
            channel_id=channel.id if channel is not None else programme.channel_id,
            title=programme.title,
            channel_name=channel_name,
            category=categorize(programme.raw_category_text, programme.description),
            start=programme.start,
            end=programme.stop,
            duration_minutes=duration_minutes(programme.start, programme.stop),
            description=programme.description,
            logo_url=logo_url,
            is_live=programme.start <= now <= programme.stop,
            actors=programme.actors,
        )
