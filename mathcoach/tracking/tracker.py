from __future__ import annotations

import asyncio
import time
from collections.abc import Callable, Coroutine
from datetime import datetime, timezone
from typing import Any, Protocol

import structlog

from mathcoach.capture.extractor import (
    extract_answer,
    extract_countdown,
    extract_problem,
    extract_score,
)
from mathcoach.capture.types import DocumentSnapshot
from mathcoach.tracking.constants import (
    FINAL_MISSED_QUESTION_PREFIX,
    MISSED_QUESTION_PREFIX,
    PLACEHOLDER_ANSWER,
    UNKNOWN_ANSWER,
)
from mathcoach.tracking.durations import classify_duration
from mathcoach.tracking.types import CompletedSession, Problem, SessionContext, TrackerState

logger = structlog.get_logger(__name__)


class SessionSink(Protocol):
    async def save_session(self, session: CompletedSession) -> bool: ...


def _monotonic_ms() -> int:
    return int(time.monotonic() * 1000)


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


def _placeholder(prefix: str, position: int) -> Problem:
    return Problem(
        question=f"{prefix}-{position}",
        answer=PLACEHOLDER_ANSWER,
        latency_ms=0,
        operation_type="unknown",
    )


class SessionTracker:
    """Turns page mutation notifications into finished, reconciled sessions.

    Every handler runs synchronously to completion; the only suspension points
    are the finalize grace delay and the persistence tasks it spawns.
    """

    def __init__(
        self,
        *,
        sink: SessionSink,
        target_duration_seconds: int,
        finalize_delay_seconds: float = 1.0,
        clock: Callable[[], int] = _monotonic_ms,
        wall_clock: Callable[[], datetime] = _utc_now,
    ) -> None:
        self._sink = sink
        self._target_duration_seconds = target_duration_seconds
        self._finalize_delay_seconds = finalize_delay_seconds
        self._clock = clock
        self._wall_clock = wall_clock

        self._context: SessionContext | None = None
        self._ended = True
        self._latest_snapshot = DocumentSnapshot()
        self._tasks: set[asyncio.Task[Any]] = set()

    @property
    def state(self) -> TrackerState:
        if self._context is None:
            return TrackerState.IDLE
        if self._ended:
            return TrackerState.FINALIZING
        return TrackerState.ACTIVE

    @property
    def context(self) -> SessionContext | None:
        return self._context

    def handle_mutation(self, snapshot: DocumentSnapshot) -> None:
        countdown = extract_countdown(snapshot)
        if countdown is not None and countdown > 0 and self._ended and self._context is not None:
            # A new game shown before the pending commit must not leak into it.
            logger.debug("mutation_ignored_while_finalizing", countdown=countdown)
            return

        self._latest_snapshot = snapshot

        if countdown is not None and countdown > 0 and self._context is None:
            self._start_session(countdown)

        context = self._context
        if context is None:
            return

        now_ms = self._clock()
        self._reconcile_score(context, extract_score(snapshot))
        self._track_problem(context, extract_problem(snapshot), now_ms)
        self._offer_answer(context, extract_answer(snapshot), source="mutation")

        if countdown is not None:
            self._track_countdown(context, countdown)

    def capture_answer(self, value: str | None, *, source: str = "input") -> bool:
        context = self._context
        if context is None:
            return False
        return self._offer_answer(context, value.strip() if value else value, source=source)

    def commit(self, context: SessionContext) -> CompletedSession | None:
        if context.committed:
            logger.info("session_commit_skipped_already_committed")
            return None
        context.committed = True

        score = extract_score(self._latest_snapshot)
        if score is None:
            score = context.last_score

        if context.current_problem is not None and context.problem_started_ms is not None:
            self._close_problem(context, self._clock())

        self._reconcile_final_count(context, score)

        session = CompletedSession(
            score=score,
            problems=tuple(context.problems),
            detected_duration_seconds=context.detected_duration_seconds,
            finished_at=self._wall_clock(),
        )
        logger.info(
            "session_finalized",
            score=session.score,
            problems_count=len(session.problems),
            detected_duration_seconds=session.detected_duration_seconds,
        )

        if session.detected_duration_seconds == self._target_duration_seconds:
            self._spawn(self._persist(session))
        else:
            logger.info(
                "session_discarded_duration_mismatch",
                detected_duration_seconds=session.detected_duration_seconds,
                target_duration_seconds=self._target_duration_seconds,
            )

        if self._context is context:
            self._context = None
        return session

    async def drain(self) -> None:
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    def _start_session(self, countdown: int) -> None:
        context = SessionContext(max_timer_seen=countdown)
        context.detected_duration_seconds = classify_duration(countdown)
        self._context = context
        self._ended = False
        logger.info(
            "session_started",
            countdown=countdown,
            detected_duration_seconds=context.detected_duration_seconds,
        )

    def _reconcile_score(self, context: SessionContext, score: int | None) -> None:
        if score is None or score <= context.last_score:
            return

        delta = score - context.last_score
        # One real transition per tick is expected to show up as a problem change.
        missed = delta - 1
        if missed > 0:
            logger.warning(
                "score_jump_untracked_problems",
                previous_score=context.last_score,
                score=score,
                missed=missed,
            )
            for _ in range(missed):
                context.problems.append(
                    _placeholder(MISSED_QUESTION_PREFIX, len(context.problems) + 1)
                )
        context.last_score = score

    def _track_problem(self, context: SessionContext, problem: str | None, now_ms: int) -> None:
        if problem is None or problem == context.current_problem:
            return

        if context.current_problem is not None and context.problem_started_ms is not None:
            self._close_problem(context, now_ms)

        logger.debug("problem_opened", problem=problem)
        context.current_problem = problem
        context.problem_started_ms = now_ms
        context.answers.start_problem()

    def _close_problem(self, context: SessionContext, now_ms: int) -> None:
        assert context.current_problem is not None
        assert context.problem_started_ms is not None
        problem = Problem.observed(
            question=context.current_problem,
            answer=context.answers.resolve(UNKNOWN_ANSWER),
            latency_ms=now_ms - context.problem_started_ms,
        )
        context.problems.append(problem)
        context.current_problem = None
        context.problem_started_ms = None
        logger.debug(
            "problem_logged",
            position=len(context.problems),
            question=problem.question,
            answer=problem.answer,
            latency_ms=problem.latency_ms,
            operation_type=problem.operation_type,
        )

    def _offer_answer(self, context: SessionContext, value: str | None, *, source: str) -> bool:
        captured = context.answers.offer(value)
        if captured:
            logger.debug(
                "answer_captured",
                answer=value,
                problem=context.current_problem,
                source=source,
            )
        return captured

    def _track_countdown(self, context: SessionContext, countdown: int) -> None:
        if countdown > context.max_timer_seen:
            context.max_timer_seen = countdown
        if context.detected_duration_seconds is None:
            context.detected_duration_seconds = classify_duration(context.max_timer_seen)
            if context.detected_duration_seconds is not None:
                logger.info(
                    "session_duration_detected",
                    detected_duration_seconds=context.detected_duration_seconds,
                    max_timer_seen=context.max_timer_seen,
                    countdown=countdown,
                )

        if countdown == 0 and not self._ended:
            logger.info("session_countdown_reached_zero", max_timer_seen=context.max_timer_seen)
            self._ended = True
            self._spawn(self._commit_later(context))

    def _reconcile_final_count(self, context: SessionContext, score: int) -> None:
        deficit = score - len(context.problems)
        if deficit > 0:
            logger.warning("session_final_placeholders_added", score=score, added=deficit)
            for _ in range(deficit):
                context.problems.append(
                    _placeholder(FINAL_MISSED_QUESTION_PREFIX, len(context.problems) + 1)
                )
        elif deficit < 0:
            logger.warning("session_excess_problems_truncated", score=score, removed=-deficit)
            del context.problems[score:]

    async def _commit_later(self, context: SessionContext) -> None:
        await asyncio.sleep(self._finalize_delay_seconds)
        self.commit(context)

    async def _persist(self, session: CompletedSession) -> None:
        try:
            saved = await self._sink.save_session(session)
        except Exception:
            logger.exception("session_persist_failed", score=session.score)
            return
        if not saved:
            logger.warning("session_persist_rejected", score=session.score)

    def _spawn(self, coro: Coroutine[Any, Any, None]) -> None:
        task = asyncio.get_running_loop().create_task(coro)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
