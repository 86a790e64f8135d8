from datetime import datetime, timedelta, timezone
from typing import Optional

DEFAULT_BASE_DELAY_MS = 1000
DEFAULT_MAX_DELAY_MS = 60000

def backoff_ms(
    attempts: int,
    base_delay_ms: int = DEFAULT_BASE_DELAY_MS,
    max_delay_ms: int = DEFAULT_MAX_DELAY_MS,
) -> int:
    """
    Exponential backoff delay in milliseconds.

    Formula:
        delay = min(base * (2 ^ attempts), max_delay)

    Args:
        attempts: Attempts made so far. The lease increments attempts before the
                  handler runs, so the first failure is evaluated with attempts=1.
                  Negative values are treated as 0.
    """
    if attempts < 0:
        attempts = 0

    # 2^16 * 1000ms is already far past any sane cap; avoid huge ints.
    safe_attempts = min(attempts, 16)

    return min(base_delay_ms * (2 ** safe_attempts), max_delay_ms)

def calculate_next_run(
    attempts: int,
    now: Optional[datetime] = None,
    base_delay_ms: int = DEFAULT_BASE_DELAY_MS,
    max_delay_ms: int = DEFAULT_MAX_DELAY_MS,
) -> datetime:
    """Returns the time a failed job becomes eligible for leasing again."""
    now = now or datetime.now(timezone.utc)
    return now + timedelta(milliseconds=backoff_ms(attempts, base_delay_ms, max_delay_ms))
