"""Exponential retry backoff for failed deliveries."""

from datetime import datetime, timedelta
from typing import Optional

BASE_DELAY_MS = 1000
MAX_DELAY_MS = 300_000


def retry_delay_ms(retry_count: int) -> int:
    """Delay before the next attempt after `retry_count` failures.

    1000 * 2**retry_count milliseconds, capped at five minutes.

    Example:
        >>> [retry_delay_ms(n) for n in (1, 2, 3, 9)]
        [2000, 4000, 8000, 300000]
    """
    if retry_count < 0:
        raise ValueError(f"retry_count must be non-negative, got {retry_count}")
    # past 2**9 the cap always wins; skip computing huge powers
    if retry_count > 16:
        return MAX_DELAY_MS
    return min(BASE_DELAY_MS * 2**retry_count, MAX_DELAY_MS)


def next_retry_at(failed_at: datetime, retry_count: int, max_retries: int) -> Optional[datetime]:
    """When a record that just failed may be retried, or None once terminal."""
    if retry_count >= max_retries:
        return None
    return failed_at + timedelta(milliseconds=retry_delay_ms(retry_count))
