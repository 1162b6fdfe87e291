from contextlib import asynccontextmanager
from datetime import timedelta
import asyncio
import logging

from fastapi import FastAPI, Request

from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from epg_guide import __version__
from epg_guide.config import settings, setup_logging
from epg_guide.database import close_db, init_db, session_scope
from epg_guide.services.cache import GuideCache
from epg_guide.services.db_service import load_guide
from epg_guide.services.refresh_service import refresh_guide
from epg_guide.services.scheduler_service import guide_scheduler

from epg_guide.routers import main_router


setup_logging()
logger = logging.getLogger(__name__)


async def warm_cache(cache: GuideCache) -> bool:
    """
    Publish the stored guide snapshot to the cache

    The entry ages from its generation time, so an old snapshot is
    already stale and will be refreshed on first use.

    Returns:
        True if a snapshot for the configured source was loaded
    """
    async with session_scope() as session:
        stored = await load_guide(session)
    if stored is None:
        return False

    source, result = stored
    if source != settings.epg_source_url:
        logger.info("Stored guide belongs to a different source, ignoring it")
        return False

    cache.put(source, result, now=result.generated_at)
    return True


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Lifespan context manager for startup and shutdown events"""
    logger.info("Starting EPG Guide Service...")

    cache = GuideCache(ttl=timedelta(seconds=settings.cache_ttl_sec))
    app.state.cache = cache
    startup_refresh: asyncio.Task | None = None

    async def scheduled_refresh() -> dict:
        return await refresh_guide(cache, settings)

    try:
        logger.info("Initializing database...")
        await init_db()

        if await warm_cache(cache):
            logger.info("Guide cache warmed from stored snapshot")

        logger.info("Starting scheduler...")
        guide_scheduler.start(scheduled_refresh)

        if settings.refresh_on_startup and cache.is_stale(settings.epg_source_url):
            logger.info("Scheduling initial guide refresh")
            startup_refresh = asyncio.create_task(scheduled_refresh())

        logger.info("EPG Guide Service started successfully")
    except Exception as e:
        logger.error(f"Failed to start EPG Guide Service: {e}", exc_info=True)
        raise

    yield

    logger.info("Shutting down EPG Guide Service...")

    if startup_refresh is not None and not startup_refresh.done():
        startup_refresh.cancel()

    try:
        guide_scheduler.shutdown()
    except Exception as e:
        logger.error(f"Error during scheduler shutdown: {e}", exc_info=True)

    await close_db()
    logger.info("EPG Guide Service stopped")


app = FastAPI(
    title="EPG Guide Service",
    version=__version__,
    lifespan=lifespan
)

app.include_router(main_router)

@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    """Log validation errors with details"""
    logger.error(f"Validation error for {request.method} {request.url.path}")
    logger.error(f"Validation details: {exc.errors()}")

    errors = []
    for error in exc.errors():
        error_dict = {
            "type": error.get("type"),
            "loc": error.get("loc"),
            "msg": error.get("msg"),
            "input": str(error.get("input", ""))[:100]
        }
        errors.append(error_dict)

    return JSONResponse(
        status_code=422,
        content={
            "detail": errors
        }
    )
