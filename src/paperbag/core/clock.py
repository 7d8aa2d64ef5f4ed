"""Wall-clock helpers.

Record timestamps and rate-limit windows are epoch milliseconds, the same unit
clients send back as pagination cursors and `since` filters.
"""

import time
from datetime import datetime, timezone


def now_ms() -> int:
    """Current UTC time as integer epoch milliseconds."""
    return int(time.time() * 1000)


def ms_to_datetime(value: int) -> datetime:
    """Convert epoch milliseconds to an aware UTC datetime."""
    return datetime.fromtimestamp(value / 1000, tz=timezone.utc)
