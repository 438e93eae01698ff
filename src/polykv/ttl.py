"""
TTL Policy
==========

Expiry is stored as an absolute epoch timestamp in milliseconds (or None for
"never expires") and evaluated lazily by the collection layer on every read.
Backends never look at it.
"""

import math
import time
from typing import Optional

from .error_handling import InvalidValueError


def now_ms() -> int:
    """Current time in epoch milliseconds."""
    return int(time.time() * 1000)


def is_expired(ttl: Optional[int], now: Optional[int] = None) -> bool:
    """
    Return True when an absolute expiry timestamp has passed.

    Args:
        ttl: Absolute expiry in epoch milliseconds, or None (never expires)
        now: Reference time in epoch milliseconds (defaults to now_ms())
    """
    if ttl is None:
        return False
    if now is None:
        now = now_ms()
    return now > ttl


def compute_expiry(duration_ms) -> Optional[int]:
    """
    Turn a relative duration into an absolute expiry timestamp.

    A duration of 0 yields a timestamp already in the past, so the very next
    read observes the entry as expired.

    Raises:
        InvalidValueError: If the duration is negative or not a number
    """
    if duration_ms is None:
        return None

    if isinstance(duration_ms, bool) or not isinstance(duration_ms, (int, float)):
        raise InvalidValueError(
            f"ttl must be a number of milliseconds, got {type(duration_ms).__name__}",
            {"ttl": repr(duration_ms)},
        )
    if not math.isfinite(duration_ms):
        raise InvalidValueError("ttl must be finite", {"ttl": duration_ms})
    if duration_ms < 0:
        raise InvalidValueError("ttl must not be negative", {"ttl": duration_ms})

    current = now_ms()
    if duration_ms == 0:
        return current - 1
    return current + int(duration_ms)


def remaining_ms(ttl: Optional[int], now: Optional[int] = None) -> Optional[int]:
    """Milliseconds left before expiry; None when the entry never expires."""
    if ttl is None:
        return None
    if now is None:
        now = now_ms()
    return max(0, ttl - now)
