from datetime import datetime, timezone
from typing import Annotated
import logging

from fastapi import APIRouter, Depends, HTTPException, Query, Request

from epg_guide import __version__
from epg_guide.config import CustomSettings, settings
from epg_guide.schemas import (
    ChannelResponse,
    ErrorDetail,
    GuideQuery,
    GuideResponse,
    StatsResponse,
)
from epg_guide.services.cache import GuideCache
from epg_guide.services.epg_query_service import compute_stats, filter_channels, filter_programs
from epg_guide.services.fetch_coordinator import get_fetch_coordinator
from epg_guide.services.fetch_types import NormalizedResult
from epg_guide.services.refresh_service import refresh_guide
from epg_guide.services.scheduler_service import guide_scheduler
from epg_guide.utils.timezone import resolve_timezone


logger = logging.getLogger(__name__)

main_router = APIRouter()


def get_settings() -> CustomSettings:
    return settings


def get_cache(request: Request) -> GuideCache:
    return request.app.state.cache


def get_now() -> datetime:
    return datetime.now(timezone.utc)


SettingsDep = Annotated[CustomSettings, Depends(get_settings)]
CacheDep = Annotated[GuideCache, Depends(get_cache)]
NowDep = Annotated[datetime, Depends(get_now)]


def _error(status_code: int, code: str, message: str, context: dict | None = None) -> HTTPException:
    return HTTPException(
        status_code=status_code,
        detail=ErrorDetail(code=code, message=message, context=context).model_dump(),
    )


async def _current_guide(cache: GuideCache, cfg: CustomSettings, now: datetime) -> tuple[NormalizedResult, bool]:
    """
    Return the published guide, refreshing it first when missing or expired

    Returns:
        Tuple of (result, stale); stale is True when the refresh failed and an
        expired result is served instead
    """
    key = cfg.epg_source_url
    result = cache.get(key)
    if result is not None:
        return result, False

    logger.info("Cached guide missing or expired, refreshing before serving")
    summary = await refresh_guide(cache, cfg, now=now)

    result = cache.get(key)
    if result is not None:
        return result, False

    entry = cache.peek(key)
    if entry is not None:
        logger.warning("Serving expired guide generated at %s", entry.result.generated_at.isoformat())
        return entry.result, True

    raise _error(
        503,
        "GUIDE_UNAVAILABLE",
        "No guide has been published yet",
        {"refresh_status": summary.get("status"), "refresh_error": summary.get("error")},
    )


@main_router.get("/")
async def root() -> dict:
    """Root endpoint with service information"""
    next_run = guide_scheduler.get_next_run_time()

    return {
        "service": "EPG Guide Service",
        "version": __version__,
        "next_scheduled_refresh": next_run.isoformat() if next_run else None,
        "endpoints": {
            "refresh": "/refresh - Manually trigger a guide refresh (POST)",
            "epg": "/epg - Get normalized programs (filters: category, search, channel, day, live_only)",
            "channels": "/channels - Get channels (optional group filter)",
            "stats": "/stats - Program counts per category",
            "health": "/health - Health check"
        }
    }


@main_router.get("/health")
async def health_check(cache: CacheDep, cfg: SettingsDep) -> dict:
    """Health check endpoint"""
    next_run = guide_scheduler.get_next_run_time()
    entry = cache.peek(cfg.epg_source_url)
    return {
        "status": "ok",
        "scheduler_running": guide_scheduler.running,
        "next_refresh": next_run.isoformat() if next_run else None,
        "refresh_in_progress": get_fetch_coordinator().is_fetching(cfg.epg_source_url),
        "guide_generated_at": entry.result.generated_at.isoformat() if entry else None,
        "guide_stale": cache.is_stale(cfg.epg_source_url),
    }


@main_router.post("/refresh")
async def trigger_refresh(cache: CacheDep, cfg: SettingsDep) -> dict:
    """
    Manually trigger a guide refresh

    This will fetch, normalize, publish and store the guide
    """
    logger.info("Manual guide refresh triggered via API")
    result = await refresh_guide(cache, cfg)

    if result.get("status") == "failed":
        raise _error(502, "REFRESH_FAILED", result.get("error") or "Guide refresh failed")

    return result


@main_router.get("/epg", response_model=GuideResponse)
async def get_epg(
    query: Annotated[GuideQuery, Query()],
    cache: CacheDep,
    cfg: SettingsDep,
    now: NowDep,
) -> GuideResponse:
    """
    Get the normalized guide

    Args:
        query: Optional filters and display timezone

    Returns:
        Channels and matching programs with display fields in the requested timezone
    """
    result, stale = await _current_guide(cache, cfg, now)
    tz = resolve_timezone(query.timezone if query.timezone is not None else cfg.display_timezone)

    programs = filter_programs(
        result.programs,
        now,
        category=query.category,
        search=query.search,
        channel=query.channel,
        day=query.day,
        tz=tz,
        live_only=query.live_only,
    )
    logger.info(
        "Guide request: %s of %s programs selected (category=%s, search=%s, channel=%s, day=%s, live_only=%s)",
        len(programs),
        len(result.programs),
        query.category.value if query.category else None,
        query.search,
        query.channel,
        query.day,
        query.live_only,
    )
    return GuideResponse.from_result(result, tz, programs=programs, stale=stale)


@main_router.get("/channels", response_model=list[ChannelResponse])
async def get_channels(
    cache: CacheDep,
    cfg: SettingsDep,
    now: NowDep,
    group: Annotated[str | None, Query(description="Directory group, e.g. 'sports' or 'news'")] = None,
) -> list[ChannelResponse]:
    """Get the channels of the published guide"""
    result, _ = await _current_guide(cache, cfg, now)
    try:
        channels = filter_channels(result.channels, group)
    except ValueError as exc:
        raise _error(400, "UNKNOWN_GROUP", str(exc))
    return [ChannelResponse.from_entry(channel) for channel in channels]


@main_router.get("/stats", response_model=StatsResponse)
async def get_stats(cache: CacheDep, cfg: SettingsDep, now: NowDep) -> StatsResponse:
    """Program counts per category for the published guide"""
    result, _ = await _current_guide(cache, cfg, now)
    return StatsResponse(**compute_stats(result, now))
