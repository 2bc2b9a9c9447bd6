from __future__ import annotations

import asyncio
from typing import Any

import structlog
from playwright.async_api import Error as PlaywrightError
from playwright.async_api import Page, async_playwright

from mathcoach.capture.page_scripts import (
    ANSWER_SCRIPT,
    INPUT_BINDING,
    INPUT_STATUS_SCRIPT,
    NOTIFY_BINDING,
    OBSERVER_SCRIPT,
    SNAPSHOT_SCRIPT,
)
from mathcoach.capture.types import DocumentSnapshot
from mathcoach.core.config import Settings
from mathcoach.tracking.tracker import SessionTracker
from mathcoach.tracking.types import TrackerState

logger = structlog.get_logger(__name__)

INITIAL_PROBLEM_ATTEMPTS = 10
INITIAL_PROBLEM_RETRY_SECONDS = 0.1


class PageDriver:
    """Feeds a live game page into a SessionTracker.

    Mutation notifications are coalesced: while a scan is in flight further
    notifications only mark the page dirty, and one more scan follows.
    """

    def __init__(
        self,
        *,
        page: Page,
        tracker: SessionTracker,
        answer_poll_interval_seconds: float,
        diagnostics_interval_seconds: float,
    ) -> None:
        self._page = page
        self._tracker = tracker
        self._answer_poll_interval_seconds = answer_poll_interval_seconds
        self._diagnostics_interval_seconds = diagnostics_interval_seconds
        self._dirty = False
        self._scan_task: asyncio.Task[None] | None = None

    async def install(self) -> None:
        await self._page.expose_function(NOTIFY_BINDING, self._on_mutation)
        await self._page.expose_function(INPUT_BINDING, self._on_input)
        await self._page.add_init_script(OBSERVER_SCRIPT)

    async def run(self, url: str) -> None:
        await self.install()
        await self._page.goto(url, wait_until="domcontentloaded")
        logger.info("page_observation_started", url=url)

        background = [
            asyncio.create_task(self._poll_answers()),
            asyncio.create_task(self._log_input_status()),
        ]
        try:
            await self._detect_initial_problem()
            await self._page.wait_for_event("close", timeout=0)
        finally:
            for task in background:
                task.cancel()
            await asyncio.gather(*background, return_exceptions=True)
            if self._scan_task is not None:
                await asyncio.gather(self._scan_task, return_exceptions=True)
            logger.info("page_observation_stopped")

    async def scan(self) -> DocumentSnapshot | None:
        try:
            payload = await self._page.evaluate(SNAPSHOT_SCRIPT)
        except PlaywrightError as exc:
            logger.debug("page_snapshot_failed", error=str(exc))
            return None
        snapshot = DocumentSnapshot.from_payload(payload)
        self._tracker.handle_mutation(snapshot)
        return snapshot

    def _on_mutation(self) -> None:
        self._dirty = True
        if self._scan_task is None or self._scan_task.done():
            self._scan_task = asyncio.get_running_loop().create_task(self._drain_mutations())

    async def _drain_mutations(self) -> None:
        while self._dirty:
            self._dirty = False
            await self.scan()

    def _on_input(self, value: Any) -> None:
        if isinstance(value, str):
            self._tracker.capture_answer(value, source="input_event")

    async def _detect_initial_problem(self) -> None:
        for attempt in range(1, INITIAL_PROBLEM_ATTEMPTS + 1):
            await self.scan()
            context = self._tracker.context
            if context is not None and context.current_problem is not None:
                logger.info("initial_problem_detected", attempt=attempt, problem=context.current_problem)
                return
            await asyncio.sleep(INITIAL_PROBLEM_RETRY_SECONDS)
        logger.info("initial_problem_not_detected", attempts=INITIAL_PROBLEM_ATTEMPTS)

    async def _poll_answers(self) -> None:
        while True:
            await asyncio.sleep(self._answer_poll_interval_seconds)
            if self._tracker.state is TrackerState.IDLE:
                continue
            try:
                value = await self._page.evaluate(ANSWER_SCRIPT)
            except PlaywrightError:
                continue
            if isinstance(value, str):
                self._tracker.capture_answer(value, source="poll")

    async def _log_input_status(self) -> None:
        while True:
            await asyncio.sleep(self._diagnostics_interval_seconds)
            if self._tracker.state is TrackerState.IDLE:
                continue
            try:
                status = await self._page.evaluate(INPUT_STATUS_SCRIPT)
            except PlaywrightError:
                continue
            if status is None:
                logger.debug("answer_input_missing")
            else:
                logger.debug("answer_input_status", **status)


async def observe_game(settings: Settings, tracker: SessionTracker) -> None:
    async with async_playwright() as playwright:
        browser = await playwright.chromium.launch(headless=settings.browser_headless)
        try:
            page = await browser.new_page()
            driver = PageDriver(
                page=page,
                tracker=tracker,
                answer_poll_interval_seconds=settings.answer_poll_interval_seconds,
                diagnostics_interval_seconds=settings.diagnostics_interval_seconds,
            )
            await driver.run(settings.game_url)
        finally:
            await browser.close()
