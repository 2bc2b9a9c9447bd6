from __future__ import annotations

PLACEHOLDER_ANSWER = "ultra-fast"
UNKNOWN_ANSWER = "unknown"
MISSED_QUESTION_PREFIX = "missed-problem"
FINAL_MISSED_QUESTION_PREFIX = "final-missed"

# (exclusive lower bound on max countdown seen, nominal duration), checked in order.
DURATION_BUCKETS: tuple[tuple[int, int], ...] = (
    (90, 120),
    (60, 90),
    (30, 60),
    (0, 30),
)
