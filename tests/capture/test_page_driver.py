from __future__ import annotations

import asyncio
from typing import Any

import pytest

from mathcoach.capture.browser import PageDriver
from mathcoach.capture.page_scripts import (
    ANSWER_SCRIPT,
    INPUT_BINDING,
    NOTIFY_BINDING,
    OBSERVER_SCRIPT,
    SNAPSHOT_SCRIPT,
)
from mathcoach.tracking.tracker import SessionTracker
from mathcoach.tracking.types import CompletedSession, TrackerState

GAME_PAYLOAD = {
    "nodes": [
        {"text": "Score: 0", "height": 18},
        {"text": "3 + 5 =", "height": 24},
    ],
    "selectors": {"span.left": "Seconds left: 120"},
    "inputs": [{"type": "text", "id": "", "value": ""}],
}


class _Sink:
    async def save_session(self, session: CompletedSession) -> bool:
        del session
        return True


class _Page:
    def __init__(self, payload: dict[str, Any], *, answer: str | None = None) -> None:
        self.payload = payload
        self.answer = answer
        self.evaluated: list[str] = []
        self.bindings: dict[str, Any] = {}
        self.init_scripts: list[str] = []
        self.visited: list[str] = []

    async def expose_function(self, name: str, callback: Any) -> None:
        self.bindings[name] = callback

    async def add_init_script(self, script: str) -> None:
        self.init_scripts.append(script)

    async def goto(self, url: str, **kwargs: Any) -> None:
        del kwargs
        self.visited.append(url)

    async def evaluate(self, script: str) -> Any:
        self.evaluated.append(script)
        if script == SNAPSHOT_SCRIPT:
            return self.payload
        if script == ANSWER_SCRIPT:
            return self.answer
        return None

    async def wait_for_event(self, event: str, **kwargs: Any) -> None:
        del event, kwargs
        return None


def _tracker() -> SessionTracker:
    return SessionTracker(sink=_Sink(), target_duration_seconds=120, finalize_delay_seconds=0)


def _driver(page: _Page, tracker: SessionTracker) -> PageDriver:
    return PageDriver(
        page=page,  # type: ignore[arg-type]
        tracker=tracker,
        answer_poll_interval_seconds=0.001,
        diagnostics_interval_seconds=60,
    )


@pytest.mark.asyncio
async def test_run_installs_bindings_and_detects_initial_problem() -> None:
    page = _Page(GAME_PAYLOAD)
    tracker = _tracker()

    await _driver(page, tracker).run("https://game.example.local")

    assert set(page.bindings) == {NOTIFY_BINDING, INPUT_BINDING}
    assert page.init_scripts == [OBSERVER_SCRIPT]
    assert page.visited == ["https://game.example.local"]
    assert tracker.state is TrackerState.ACTIVE
    assert tracker.context is not None
    assert tracker.context.current_problem == "3 + 5"


@pytest.mark.asyncio
async def test_mutation_notifications_are_coalesced_into_one_scan() -> None:
    page = _Page(GAME_PAYLOAD)
    driver = _driver(page, _tracker())

    driver._on_mutation()
    driver._on_mutation()
    driver._on_mutation()
    assert driver._scan_task is not None
    await driver._scan_task

    assert page.evaluated.count(SNAPSHOT_SCRIPT) == 1


@pytest.mark.asyncio
async def test_input_events_feed_answer_register() -> None:
    page = _Page(GAME_PAYLOAD)
    tracker = _tracker()
    driver = _driver(page, tracker)
    await driver.scan()

    driver._on_input("8")
    driver._on_input(None)

    assert tracker.context is not None
    assert tracker.context.answers.current == "8"


@pytest.mark.asyncio
async def test_answer_polling_feeds_answer_register(monkeypatch) -> None:
    page = _Page(GAME_PAYLOAD, answer=" 8 ")
    tracker = _tracker()
    driver = _driver(page, tracker)
    await driver.scan()
    captured: list[tuple[str, str]] = []
    original_capture = tracker.capture_answer

    def _capture(value: str | None, *, source: str = "input") -> bool:
        captured.append((value or "", source))
        if len(captured) >= 2:
            raise asyncio.CancelledError
        return original_capture(value, source=source)

    monkeypatch.setattr(tracker, "capture_answer", _capture)

    with pytest.raises(asyncio.CancelledError):
        await driver._poll_answers()

    assert captured[0] == (" 8 ", "poll")
    assert tracker.context is not None
    assert tracker.context.answers.current == "8"


@pytest.mark.asyncio
async def test_answer_polling_skips_idle_tracker() -> None:
    page = _Page(GAME_PAYLOAD, answer="8")
    tracker = _tracker()
    driver = _driver(page, tracker)

    task = asyncio.create_task(driver._poll_answers())
    await asyncio.sleep(0.05)
    task.cancel()
    await asyncio.gather(task, return_exceptions=True)

    assert tracker.state is TrackerState.IDLE
    assert ANSWER_SCRIPT not in page.evaluated
