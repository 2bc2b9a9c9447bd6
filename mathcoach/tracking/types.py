from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum

from mathcoach.capture.extractor import operation_type
from mathcoach.tracking.answers import AnswerRegister


class TrackerState(str, Enum):
    IDLE = "idle"
    ACTIVE = "active"
    FINALIZING = "finalizing"


@dataclass(frozen=True, slots=True)
class Problem:
    question: str
    answer: str
    latency_ms: int
    operation_type: str

    @classmethod
    def observed(cls, *, question: str, answer: str, latency_ms: int) -> Problem:
        return cls(
            question=question,
            answer=answer,
            latency_ms=max(0, int(latency_ms)),
            operation_type=operation_type(question),
        )


@dataclass(frozen=True, slots=True)
class CompletedSession:
    score: int
    problems: tuple[Problem, ...]
    detected_duration_seconds: int | None
    finished_at: datetime


@dataclass(slots=True)
class SessionContext:
    max_timer_seen: int = 0
    last_score: int = 0
    problems: list[Problem] = field(default_factory=list)
    current_problem: str | None = None
    problem_started_ms: int | None = None
    detected_duration_seconds: int | None = None
    answers: AnswerRegister = field(default_factory=AnswerRegister)
    committed: bool = False
