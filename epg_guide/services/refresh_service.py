"""
Guide Refresh Service

Coordinates one refresh cycle: fetch the upstream payload (and the optional
channel directory), run the pipeline off the event loop, publish the result
to the cache, persist the snapshot and optionally write a JSON export.
"""
from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone, tzinfo
from typing import Literal, Sequence

import httpx

from epg_guide import database
from epg_guide.config import CustomSettings
from epg_guide.errors import GuideError
from epg_guide.schemas import GuideResponse
from epg_guide.services.cache import GuideCache
from epg_guide.services.channel_directory_service import fetch_channel_api, fetch_playlist_directory
from epg_guide.services.db_service import replace_guide
from epg_guide.services.fetch_coordinator import get_fetch_coordinator
from epg_guide.services.fetch_types import (
    ChannelDirectoryEntry,
    NormalizedResult,
    PipelineConfig,
    SourceMode,
)
from epg_guide.services.pipeline_service import GuidePipeline
from epg_guide.utils.file_operations import read_source, sanitize_url_for_logging, write_json_snapshot
from epg_guide.utils.logging_helpers import (
    log_pipeline_summary,
    log_refresh_end,
    log_refresh_start,
    log_section_end,
    log_section_start,
)
from epg_guide.utils.timezone import resolve_timezone


logger = logging.getLogger(__name__)


@dataclass(slots=True)
class RefreshSummary:
    source_url: str
    sanitized_url: str
    mode: SourceMode
    started_at: datetime
    completed_at: datetime | None = None
    status: Literal["success", "failed"] = "failed"
    channels: int = 0
    programs: int = 0
    live_programs: int = 0
    directory_entries: int = 0
    cache_updated: bool = False
    persisted: bool = False
    snapshot_path: str | None = None
    warnings: list[str] = field(default_factory=list)
    error: str | None = None

    @property
    def duration_seconds(self) -> float:
        if self.completed_at is None:
            return 0.0
        return max(0.0, (self.completed_at - self.started_at).total_seconds())

    def to_dict(self) -> dict:
        payload = {
            "status": self.status,
            "source_url": self.sanitized_url,
            "mode": self.mode.value,
            "channels": self.channels,
            "programs": self.programs,
            "live_programs": self.live_programs,
            "directory_entries": self.directory_entries,
            "cache_updated": self.cache_updated,
            "persisted": self.persisted,
            "started_at": self.started_at.isoformat(),
            "completed_at": (self.completed_at or self.started_at).isoformat(),
            "duration_seconds": self.duration_seconds,
        }
        if self.snapshot_path:
            payload["snapshot_path"] = self.snapshot_path
        if self.warnings:
            payload["warnings"] = list(self.warnings)
        if self.error:
            payload["error"] = self.error
        return payload


class GuideRefreshPipeline:
    """Runs fetch, pipeline and publication stages for one upstream source."""

    def __init__(
        self,
        source_url: str,
        mode: SourceMode,
        config: PipelineConfig,
        cache: GuideCache,
        *,
        playlist_url: str | None = None,
        channel_api_url: str | None = None,
        channel_api_streams_url: str | None = None,
        channel_api_logos_url: str | None = None,
        channel_api_languages: Sequence[str] = (),
        channel_api_countries: Sequence[str] = (),
        fetch_timeout: float = 120.0,
        fetch_max_retries: int = 3,
        parse_timeout: int | None = None,
        persist: bool = True,
        snapshot_path: str | None = None,
        display_tz: tzinfo | None = timezone.utc,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self.source_url = source_url
        self.mode = mode
        self.config = config
        self.cache = cache
        self.playlist_url = playlist_url
        self.channel_api_url = channel_api_url
        self.channel_api_streams_url = channel_api_streams_url
        self.channel_api_logos_url = channel_api_logos_url
        self.channel_api_languages = list(channel_api_languages)
        self.channel_api_countries = list(channel_api_countries)
        self.fetch_timeout = fetch_timeout
        self.fetch_max_retries = fetch_max_retries
        self.parse_timeout = parse_timeout if parse_timeout and parse_timeout > 0 else None
        self.persist = persist
        self.snapshot_path = snapshot_path
        self.display_tz = display_tz
        self.client = client
        self._pipeline = GuidePipeline()

    @classmethod
    def from_settings(
        cls,
        cfg: CustomSettings,
        cache: GuideCache,
        *,
        client: httpx.AsyncClient | None = None,
    ) -> GuideRefreshPipeline:
        return cls(
            cfg.epg_source_url,
            cfg.epg_source_mode,
            cfg.pipeline_config(),
            cache,
            playlist_url=cfg.channel_playlist_url,
            channel_api_url=cfg.channel_api_url,
            channel_api_streams_url=cfg.channel_api_streams_url,
            channel_api_logos_url=cfg.channel_api_logos_url,
            channel_api_languages=cfg.channel_api_languages,
            channel_api_countries=cfg.channel_api_countries,
            fetch_timeout=cfg.fetch_timeout_sec,
            fetch_max_retries=cfg.fetch_max_retries,
            parse_timeout=cfg.parse_timeout_sec,
            snapshot_path=cfg.snapshot_path,
            display_tz=resolve_timezone(cfg.display_timezone),
            client=client,
        )

    async def run(self, now: datetime | None = None) -> RefreshSummary:
        """
        Run one refresh cycle.

        Args:
            now: Reference instant for the pipeline (defaults to current UTC time)

        Returns:
            RefreshSummary of the cycle

        Raises:
            GuideError: If fetching or the pipeline fails; the cache is left untouched
        """
        now = now or datetime.now(timezone.utc)
        summary = RefreshSummary(
            source_url=self.source_url,
            sanitized_url=sanitize_url_for_logging(self.source_url),
            mode=self.mode,
            started_at=datetime.now(timezone.utc),
        )

        log_section_start(logger, "Fetch")
        payload = await read_source(
            self.source_url,
            timeout=self.fetch_timeout,
            max_retries=self.fetch_max_retries,
            client=self.client,
        )
        directory = await self._load_directory(summary)
        log_section_end(logger, "Fetch")

        log_section_start(logger, "Pipeline")
        result = await self._run_pipeline(payload, now, directory)
        log_section_end(logger, "Pipeline")

        summary.channels = len(result.channels)
        summary.programs = len(result.programs)
        summary.live_programs = sum(1 for program in result.programs if program.is_live)
        log_pipeline_summary(logger, summary.channels, summary.programs, summary.live_programs)

        summary.cache_updated = self.cache.put(self.source_url, result)
        if not summary.cache_updated:
            summary.warnings.append("A newer result was already published")
        else:
            await self._publish(result, summary)

        summary.status = "success"
        summary.completed_at = datetime.now(timezone.utc)
        return summary

    async def _load_directory(self, summary: RefreshSummary) -> list[ChannelDirectoryEntry]:
        if self.mode is SourceMode.M3U:
            return []

        entries: list[ChannelDirectoryEntry] = []
        try:
            if self.playlist_url:
                entries.extend(
                    await fetch_playlist_directory(
                        self.playlist_url,
                        timeout=self.fetch_timeout,
                        max_retries=self.fetch_max_retries,
                        client=self.client,
                    )
                )
            if self.channel_api_url:
                entries.extend(
                    await fetch_channel_api(
                        self.channel_api_url,
                        self.channel_api_streams_url or "",
                        self.channel_api_logos_url or "",
                        self.channel_api_languages,
                        self.channel_api_countries,
                        timeout=self.fetch_timeout,
                        max_retries=self.fetch_max_retries,
                        client=self.client,
                    )
                )
        except GuideError as exc:
            # The directory only enriches channel names and logos
            logger.warning("Channel directory unavailable, continuing without it: %s", exc)
            summary.warnings.append(f"Channel directory unavailable: {exc}")
            return []

        summary.directory_entries = len(entries)
        return entries

    async def _run_pipeline(
        self,
        payload: bytes,
        now: datetime,
        directory: Sequence[ChannelDirectoryEntry],
    ) -> NormalizedResult:
        loop = asyncio.get_running_loop()
        timeout_display = f"{self.parse_timeout}s" if self.parse_timeout else "disabled"
        logger.debug("Offloading pipeline to thread pool executor (timeout: %s)...", timeout_display)
        task = loop.run_in_executor(
            None,
            lambda: self._pipeline.run(payload, self.mode, now, self.config, directory=directory),
        )
        try:
            if self.parse_timeout:
                return await asyncio.wait_for(task, timeout=self.parse_timeout)
            return await task
        except asyncio.TimeoutError as exc:
            logger.error("Pipeline timed out after %s", timeout_display)
            raise GuideError(f"Guide processing timed out after {timeout_display}") from exc

    async def _publish(self, result: NormalizedResult, summary: RefreshSummary) -> None:
        if self.persist and database.is_initialized():
            log_section_start(logger, "Persist")
            async with database.session_scope() as session:
                await replace_guide(session, self.source_url, result)
            summary.persisted = True
            log_section_end(logger, "Persist")

        if self.snapshot_path:
            snapshot = GuideResponse.from_result(result, self.display_tz)
            try:
                path = await write_json_snapshot(self.snapshot_path, snapshot.model_dump(mode="json"))
                summary.snapshot_path = str(path)
            except OSError as exc:
                logger.error("Failed to write JSON snapshot to %s: %s", self.snapshot_path, exc)
                summary.warnings.append(f"Snapshot not written: {exc}")


async def refresh_guide(
    cache: GuideCache,
    cfg: CustomSettings,
    *,
    now: datetime | None = None,
    client: httpx.AsyncClient | None = None,
) -> dict:
    """
    Main entry point for guide refresh with concurrency protection.

    At most one refresh runs per source; a concurrent request is skipped.
    On failure the previously published guide stays in the cache.

    Returns:
        Dictionary with refresh statistics, or skip/error message
    """
    pipeline = GuideRefreshPipeline.from_settings(cfg, cache, client=client)
    log_refresh_start(logger, pipeline.mode.value, sanitize_url_for_logging(pipeline.source_url))

    async def _run() -> dict:
        try:
            summary = await pipeline.run(now)
        except GuideError as exc:
            logger.error("Guide refresh failed: %s", exc, exc_info=True)
            return {
                "status": "failed",
                "error": str(exc),
                "timestamp": datetime.now(timezone.utc).isoformat(),
            }
        except Exception as exc:  # Catch-all to ensure API stability
            logger.error("Unexpected error during guide refresh: %s", exc, exc_info=True)
            return {
                "status": "failed",
                "error": str(exc),
                "timestamp": datetime.now(timezone.utc).isoformat(),
            }
        return summary.to_dict()

    result = await get_fetch_coordinator().execute(pipeline.source_url, _run)
    log_refresh_end(logger, result.get("status", "unknown"))
    return result
