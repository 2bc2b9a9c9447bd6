from __future__ import annotations

from mathcoach.tracking.constants import DURATION_BUCKETS


def classify_duration(max_timer_seen: int) -> int | None:
    """Map the highest countdown value seen to the game's nominal length."""
    for threshold, duration in DURATION_BUCKETS:
        if max_timer_seen > threshold:
            return duration
    return None
