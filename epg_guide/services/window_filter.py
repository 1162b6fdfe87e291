"""
Retention window filtering

Keeps programmes whose interval touches [now - past_horizon, now + future_horizon].
"""
from collections.abc import Iterable
from datetime import datetime, timedelta
import logging

from epg_guide.services.fetch_types import RawProgramme

logger = logging.getLogger(__name__)


def in_window(
    programme: RawProgramme,
    now: datetime,
    past_horizon: timedelta | None,
    future_horizon: timedelta | None,
) -> bool:
    """Check if a programme intersects the retention window"""
    if past_horizon is not None and programme.stop < now - past_horizon:
        return False

    if future_horizon is not None and programme.start > now + future_horizon:
        return False

    return True


def filter_window(
    programmes: Iterable[RawProgramme],
    now: datetime,
    past_horizon: timedelta | None = timedelta(0),
    future_horizon: timedelta | None = None,
) -> list[RawProgramme]:
    """
    Retain programmes inside the retention window

    Args:
        programmes: Parsed programmes
        now: Reference instant (timezone-aware)
        past_horizon: Drop programmes that ended before now - past_horizon (None = unbounded)
        future_horizon: Drop programmes starting after now + future_horizon (None = unbounded)

    Returns:
        New list with the retained programmes, in input order
    """
    if now.tzinfo is None:
        raise ValueError("now must be timezone-aware")

    retained = [
        programme for programme in programmes
        if in_window(programme, now, past_horizon, future_horizon)
    ]
    logger.debug(
        "Window filter (past=%s, future=%s) kept %s programmes",
        past_horizon,
        future_horizon,
        len(retained),
    )
    return retained
