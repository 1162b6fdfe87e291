"""
Typed failures raised by the guide pipeline.

Per-record failures (MalformedTimestamp) are recovered inside the parsers;
whole-document failures abort a pipeline run.
"""
from __future__ import annotations


class GuideError(Exception):
    """Base class for all pipeline failures"""
    pass


class UpstreamFetchError(GuideError):
    """Raised when the raw payload cannot be fetched (network error or non-2xx)"""

    def __init__(self, message: str, *, status_code: int | None = None, url: str | None = None):
        super().__init__(message)
        self.status_code = status_code
        self.url = url


class DecompressionError(GuideError):
    """Raised when a gzip or zip payload is corrupt"""
    pass


class MalformedTimestamp(GuideError, ValueError):
    """Raised when an XMLTV timestamp cannot be parsed"""
    pass


class InvalidDocument(GuideError):
    """Raised when a whole document is structurally unusable"""
    pass


class NoData(GuideError):
    """Raised when nothing survives filtering and the caller treats empty as failure"""
    pass


__all__ = [
    "GuideError",
    "UpstreamFetchError",
    "DecompressionError",
    "MalformedTimestamp",
    "InvalidDocument",
    "NoData",
]
