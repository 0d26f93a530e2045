"""Per-entity exponential backoff after upstream failures.

Backoff is a pure calculation over the stored ``(last_error_at, error_count)``
pair, so an entity leaves backoff simply because enough time has passed.
"""

from __future__ import annotations

MAX_BACKOFF_SECONDS = 30 * 60


def backoff_window(error_count: int, max_seconds: float = MAX_BACKOFF_SECONDS) -> float:
    """Seconds an entity must wait after its last error: min(max, 2^errors)."""
    if error_count <= 0:
        return 1.0
    # 2**11 already exceeds the default cap; avoid huge ints for runaway counters.
    if error_count >= 64:
        return float(max_seconds)
    return float(min(max_seconds, 2**error_count))


def is_backing_off(
    last_error_at: float | None,
    error_count: int,
    now: float,
    max_seconds: float = MAX_BACKOFF_SECONDS,
) -> bool:
    """Whether an entity is still inside its backoff window at `now`."""
    if last_error_at is None:
        return False
    return now - last_error_at < backoff_window(error_count, max_seconds)
