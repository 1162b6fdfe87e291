"""
Database operations for the guide snapshot

The published guide is persisted as a whole: a refresh replaces every
channel and program in one transaction, and startup rebuilds the last
NormalizedResult from the stored rows.
"""
import logging
from collections.abc import Sequence
from time import perf_counter

from sqlalchemy import delete, insert, select
from sqlalchemy.ext.asyncio import AsyncSession

from epg_guide.models import Channel, GuideMeta, Program
from epg_guide.services.fetch_types import (
    ChannelDirectoryEntry,
    NormalizedProgram,
    NormalizedResult,
    SourceMode,
)
from epg_guide.utils.categories import ProgramCategory
from epg_guide.utils.logging_helpers import log_storage_stats
from epg_guide.utils.timezone import parse_iso8601_to_utc


logger = logging.getLogger(__name__)

CHUNK_SIZE = 5000


def _channel_row(position: int, channel: ChannelDirectoryEntry) -> dict[str, object]:
    return {
        "id": channel.id,
        "position": position,
        "name": channel.name,
        "logo_url": channel.logo_url,
        "categories": list(channel.categories),
        "languages": list(channel.languages),
        "country": channel.country,
        "stream_url": channel.stream_url,
    }


def _program_row(position: int, program: NormalizedProgram) -> dict[str, object]:
    return {
        "id": program.id,
        "position": position,
        "channel_id": program.channel_id,
        "channel_name": program.channel_name,
        "title": program.title,
        "category": program.category.value,
        "start_time": program.start.isoformat(),
        "end_time": program.end.isoformat(),
        "duration_minutes": program.duration_minutes,
        "description": program.description,
        "logo_url": program.logo_url,
        "is_live": program.is_live,
        "actors": list(program.actors),
    }


async def _insert_chunked(db: AsyncSession, model, rows: Sequence[dict[str, object]]) -> None:
    for start_index in range(0, len(rows), CHUNK_SIZE):
        chunk = rows[start_index:start_index + CHUNK_SIZE]
        await db.execute(insert(model), chunk)


async def replace_guide(db: AsyncSession, source: str, result: NormalizedResult) -> None:
    """
    Replace the stored guide with a new result.

    Must run inside a transaction (see database.session_scope) so readers
    never observe a half-written snapshot.

    Args:
        db: Database session
        source: Source key of the result (typically the upstream URL)
        result: Complete pipeline result
    """
    loop_start = perf_counter()
    log_storage_stats(logger, len(result.channels), len(result.programs))

    await db.execute(delete(Program))
    await db.execute(delete(Channel))
    await db.execute(delete(GuideMeta))

    # Channel ids are unique in a result; guard anyway since id is the primary key
    channel_rows: list[dict[str, object]] = []
    seen: set[str] = set()
    for position, channel in enumerate(result.channels):
        if channel.id in seen:
            continue
        seen.add(channel.id)
        channel_rows.append(_channel_row(position, channel))

    await _insert_chunked(db, Channel, channel_rows)
    await _insert_chunked(
        db, Program, [_program_row(position, program) for position, program in enumerate(result.programs)]
    )
    db.add(
        GuideMeta(
            source=source,
            source_mode=result.source_mode.value,
            generated_at=result.generated_at.isoformat(),
        )
    )
    await db.flush()

    logger.info(
        "Guide snapshot replaced: %s channels, %s programs in %.2fs",
        len(channel_rows),
        len(result.programs),
        perf_counter() - loop_start,
    )


def _to_channel(row: Channel) -> ChannelDirectoryEntry:
    return ChannelDirectoryEntry(
        id=row.id,
        name=row.name,
        logo_url=row.logo_url,
        categories=tuple(row.categories or ()),
        languages=tuple(row.languages or ()),
        country=row.country,
        stream_url=row.stream_url,
    )


def _to_program(row: Program) -> NormalizedProgram:
    return NormalizedProgram(
        id=row.id,
        channel_id=row.channel_id,
        title=row.title,
        channel_name=row.channel_name,
        category=ProgramCategory(row.category),
        start=parse_iso8601_to_utc(row.start_time),
        end=parse_iso8601_to_utc(row.end_time),
        duration_minutes=row.duration_minutes,
        description=row.description or "",
        logo_url=row.logo_url,
        is_live=row.is_live,
        actors=tuple(row.actors or ()),
    )


async def load_guide(db: AsyncSession) -> tuple[str, NormalizedResult] | None:
    """
    Load the stored guide snapshot.

    Args:
        db: Database session

    Returns:
        Tuple of (source, result), or None if nothing has been stored yet
    """
    meta = (await db.execute(select(GuideMeta).limit(1))).scalar_one_or_none()
    if meta is None:
        logger.info("No stored guide snapshot found")
        return None

    channels = (await db.execute(select(Channel).order_by(Channel.position))).scalars().all()
    programs = (await db.execute(select(Program).order_by(Program.position))).scalars().all()

    result = NormalizedResult(
        channels=tuple(_to_channel(row) for row in channels),
        programs=tuple(_to_program(row) for row in programs),
        generated_at=parse_iso8601_to_utc(meta.generated_at),
        source_mode=SourceMode(meta.source_mode),
    )
    logger.info(
        "Loaded stored guide snapshot from %s (%s channels, %s programs, generated at %s)",
        meta.source,
        len(result.channels),
        len(result.programs),
        meta.generated_at,
    )
    return meta.source, result
