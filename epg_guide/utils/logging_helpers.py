"""
Structured logging helpers for consistent log formatting.

Provides utilities for structured, clean logging without excessive decorative separators.
"""
import logging
from datetime import datetime, timezone


def log_section_start(logger: logging.Logger, section_name: str) -> None:
    """
    Log the start of a processing section.

    Args:
        logger: Logger instance
        section_name: Name of the section being started
    """
    logger.info(f"Starting: {section_name}")


def log_section_end(logger: logging.Logger, section_name: str) -> None:
    """
    Log the end of a processing section.

    Args:
        logger: Logger instance
        section_name: Name of the section being ended
    """
    logger.info(f"Completed: {section_name}")


def log_refresh_start(logger: logging.Logger, mode: str, source: str) -> None:
    """Log guide refresh start."""
    logger.info(f"Guide refresh ({mode}) from {source} started at {datetime.now(timezone.utc).isoformat()}")


def log_refresh_end(logger: logging.Logger, status: str) -> None:
    """Log guide refresh end."""
    logger.info(f"Guide refresh finished with status '{status}' at {datetime.now(timezone.utc).isoformat()}")


def log_pipeline_summary(
    logger: logging.Logger,
    channels_count: int,
    programs_count: int,
    live_count: int
) -> None:
    """
    Log pipeline result summary.

    Args:
        logger: Logger instance
        channels_count: Number of published channels
        programs_count: Number of published programs
        live_count: Number of programs airing at the reference instant
    """
    logger.info(
        f"Pipeline summary - Channels: {channels_count}, Programs: {programs_count}, Live: {live_count}"
    )


def log_storage_stats(
    logger: logging.Logger,
    total_channels: int,
    total_programs: int
) -> None:
    """
    Log storage statistics.

    Args:
        logger: Logger instance
        total_channels: Total channels to store
        total_programs: Total programs to store
    """
    logger.info(
        f"Storing guide snapshot: {total_channels} channels, {total_programs} programs"
    )
