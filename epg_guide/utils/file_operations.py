"""
File operation utilities

This module handles fetching raw guide payloads (HTTP with retry logic or
local files) and writing JSON snapshots.
"""
import asyncio
import json
import logging
import os
from pathlib import Path

import aiofiles
import httpx

from epg_guide.errors import UpstreamFetchError


logger = logging.getLogger(__name__)


def is_remote(location: str) -> bool:
    return location.lower().startswith(("http://", "https://"))


def sanitize_url_for_logging(url: str) -> str:
    """Remove credentials from URL for safe logging."""
    if "://" not in url:
        return url
    try:
        protocol, rest = url.split("://", 1)
        if "@" in rest.split("/", 1)[0]:
            rest = rest.split("@", 1)[1]
            return f"{protocol}://***:***@{rest}"
        return url
    except (ValueError, IndexError):
        return url


async def download_bytes(
    url: str,
    timeout: float = 120.0,
    max_retries: int = 3,
    backoff_factor: float = 2.0,
    client: httpx.AsyncClient | None = None,
) -> bytes:
    """
    Download a payload from URL with exponential backoff retry logic

    Retries on transient network errors (timeouts, connection errors) and 5xx.
    Does NOT retry on 4xx HTTP errors (client errors).

    Args:
        url: URL to download from
        timeout: HTTP timeout in seconds
        max_retries: Maximum number of attempts
        backoff_factor: Exponential backoff multiplier (wait = backoff_factor ^ attempt)
        client: Optional pre-configured client (not closed by this function)

    Returns:
        Raw response body

    Raises:
        UpstreamFetchError: If download fails after all retries or on a 4xx
    """
    safe_url = sanitize_url_for_logging(url)
    logger.info(f"Downloading payload from {safe_url}...")

    last_error: UpstreamFetchError | None = None
    attempts = max(1, max_retries)

    for attempt in range(attempts):
        try:
            if client is not None:
                response = await client.get(url, timeout=timeout)
            else:
                async with httpx.AsyncClient(timeout=timeout, follow_redirects=True) as own_client:
                    response = await own_client.get(url)
            response.raise_for_status()

            content = response.content
            logger.info(f"Downloaded {len(content) / (1024 * 1024):.2f} MB from {safe_url}")
            return content

        except httpx.HTTPStatusError as e:
            status_code = e.response.status_code
            if 400 <= status_code < 500:
                logger.error(f"HTTP {status_code} (client error) for {safe_url}")
                raise UpstreamFetchError(
                    f"HTTP {status_code} fetching {safe_url}", status_code=status_code, url=safe_url
                ) from e

            # 5xx server error - retry
            last_error = UpstreamFetchError(
                f"HTTP {status_code} fetching {safe_url}", status_code=status_code, url=safe_url
            )
            last_error.__cause__ = e
            description = f"HTTP {status_code} server error"

        except httpx.TransportError as e:
            # Transient network errors - retry
            last_error = UpstreamFetchError(f"Network error fetching {safe_url}: {type(e).__name__}", url=safe_url)
            last_error.__cause__ = e
            description = f"transient error: {type(e).__name__}"

        if attempt < attempts - 1:
            wait_time = backoff_factor ** attempt
            logger.warning(
                f"Download attempt {attempt + 1}/{attempts} failed ({description}). "
                f"Retrying in {wait_time:.1f}s..."
            )
            await asyncio.sleep(wait_time)
        else:
            logger.error(f"Download failed after {attempts} attempts ({description})")

    if last_error is not None:
        raise last_error

    raise UpstreamFetchError(f"Failed to download {safe_url} after {attempts} attempts", url=safe_url)


async def read_local_file(path: str | Path) -> bytes:
    """
    Read a local payload

    Raises:
        UpstreamFetchError: If the file is missing or unreadable
    """
    try:
        async with aiofiles.open(path, "rb") as f:
            content = await f.read()
    except OSError as e:
        raise UpstreamFetchError(f"Cannot read local source '{path}': {e}") from e

    logger.info(f"Read {len(content) / (1024 * 1024):.2f} MB from {path}")
    return content


async def read_source(
    location: str,
    timeout: float = 120.0,
    max_retries: int = 3,
    client: httpx.AsyncClient | None = None,
) -> bytes:
    """Fetch a payload from an HTTP(S) URL or a local path"""
    if is_remote(location):
        return await download_bytes(location, timeout=timeout, max_retries=max_retries, client=client)
    return await read_local_file(location)


async def write_json_snapshot(path: str | Path, payload: dict) -> Path:
    """
    Write a JSON snapshot atomically (temporary file then rename)

    Args:
        path: Destination file
        payload: JSON-serializable data

    Returns:
        Path of the written snapshot
    """
    target = Path(path)
    target.parent.mkdir(parents=True, exist_ok=True)
    temp_file = target.with_name(f".{target.name}.tmp")

    content = json.dumps(payload, ensure_ascii=False)
    try:
        async with aiofiles.open(temp_file, "w", encoding="utf-8") as f:
            await f.write(content)
        os.replace(temp_file, target)
    except OSError:
        cleanup_temp_file(temp_file)
        raise

    logger.info(f"Wrote snapshot ({len(content) / 1024:.2f} KB) to {target}")
    return target


def cleanup_temp_file(file_path: Path) -> bool:
    """
    Safely delete a temporary file

    Args:
        file_path: Path to file to delete

    Returns:
        True if deleted successfully, False otherwise
    """
    if not file_path or not file_path.exists():
        return False

    try:
        file_path.unlink()
        logger.debug(f"Cleaned up temporary file: {file_path}")
        return True
    except (OSError, PermissionError) as e:
        logger.warning(f"Failed to delete temporary file {file_path}: {e}")
        return False
