"""Time utilities for database models."""

import time


def now_ms() -> int:
    """Return the current wall-clock time in integer milliseconds."""
    return int(time.time() * 1000)
