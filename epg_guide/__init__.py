"""EPG guide: XMLTV/M3U normalization and windowing service."""

__version__ = "0.1.0"
