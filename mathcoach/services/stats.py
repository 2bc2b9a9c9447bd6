from __future__ import annotations

from collections import defaultdict
from collections.abc import Sequence
from dataclasses import dataclass

from mathcoach.capture.extractor import OPERATION_UNKNOWN, operation_type
from mathcoach.storage.documents import StoredSession
from mathcoach.tracking.constants import PLACEHOLDER_ANSWER

DEFAULT_RECOMMENDATION = "Keep practicing to improve your mental math skills!"


@dataclass(frozen=True, slots=True)
class QuickStats:
    recent_score: int
    best_score: int
    average_score: int
    session_count: int
    slowest_operation: str | None
    recommendation: str


def slowest_operation(sessions: Sequence[StoredSession]) -> str | None:
    latencies: dict[str, list[int]] = defaultdict(list)
    for session in sessions:
        for problem in session.problems:
            # Placeholders carry no measured latency.
            if problem.answer == PLACEHOLDER_ANSWER:
                continue
            latencies[operation_type(problem.question)].append(problem.latency_ms)

    slowest: str | None = None
    max_average = 0.0
    for operation, values in latencies.items():
        average = sum(values) / len(values)
        if average > max_average:
            max_average = average
            slowest = operation
    return slowest


def recommendation_for(operation: str | None) -> str:
    if operation is None or operation == OPERATION_UNKNOWN:
        return DEFAULT_RECOMMENDATION
    return f"Focus on {operation} practice to improve your speed"


def summarize_sessions(sessions: Sequence[StoredSession]) -> QuickStats | None:
    """Summarize sessions ordered newest first; the latency breakdown uses the latest one."""
    if not sessions:
        return None

    scores = [session.score for session in sessions]
    slowest = slowest_operation(sessions[:1])
    return QuickStats(
        recent_score=scores[0],
        best_score=max(scores),
        average_score=round(sum(scores) / len(scores)),
        session_count=len(sessions),
        slowest_operation=slowest,
        recommendation=recommendation_for(slowest),
    )
