"""Timestamp helpers for queue entries and indexed documents."""

import time
from datetime import datetime


def current_timestamp_ms() -> int:
    """Current wall-clock time in epoch milliseconds."""
    return int(time.time() * 1000)


def current_timezone_offset() -> int:
    """Local UTC offset in whole hours, clamped to [-12, 12]."""
    offset = datetime.now().astimezone().utcoffset()
    hours = int(offset.total_seconds() // 3600) if offset else 0
    return max(-12, min(12, hours))
