"""Utility helpers."""

from .time_utils import current_timestamp_ms, current_timezone_offset

__all__ = [
    "current_timestamp_ms",
    "current_timezone_offset",
]
