from __future__ import annotations

import argparse
import asyncio
import sys

import httpx

from mathcoach.auth.manager import CredentialManager
from mathcoach.auth.store import build_store
from mathcoach.capture.browser import observe_game
from mathcoach.core.config import Settings, get_settings
from mathcoach.core.logging import configure_logging
from mathcoach.services.stats import summarize_sessions
from mathcoach.storage.client import SessionStoreClient
from mathcoach.storage.errors import SessionStoreError
from mathcoach.tracking.tracker import SessionTracker


async def watch(settings: Settings) -> int:
    store = build_store(settings.credential_store_url)
    async with httpx.AsyncClient(timeout=settings.http_timeout_seconds) as client:
        credentials = CredentialManager.from_settings(settings, store=store, http_client=client)
        sink = SessionStoreClient.from_settings(settings, credentials=credentials, http_client=client)
        tracker = SessionTracker(
            sink=sink,
            target_duration_seconds=settings.target_duration_seconds,
            finalize_delay_seconds=settings.finalize_delay_seconds,
        )
        try:
            await observe_game(settings, tracker)
        finally:
            await tracker.drain()
            await store.close()
    return 0


async def list_recent(settings: Settings, *, limit: int) -> int:
    store = build_store(settings.credential_store_url)
    try:
        async with httpx.AsyncClient(timeout=settings.http_timeout_seconds) as client:
            credentials = CredentialManager.from_settings(settings, store=store, http_client=client)
            sessions_client = SessionStoreClient.from_settings(
                settings,
                credentials=credentials,
                http_client=client,
            )
            sessions = await sessions_client.list_sessions()
    except SessionStoreError as exc:
        print(f"Error loading sessions: {exc}", file=sys.stderr)
        return 1
    finally:
        await store.close()

    stats = summarize_sessions(sessions)
    if stats is None:
        print("No sessions recorded yet.")
        return 0

    print(f"Sessions: {stats.session_count}")
    print(f"Recent score: {stats.recent_score}")
    print(f"Best score: {stats.best_score}")
    print(f"Average score: {stats.average_score}")
    print(stats.recommendation)
    print()
    for session in sessions[:limit]:
        played_at = session.timestamp.isoformat() if session.timestamp else "-"
        print(f"{played_at}  score={session.score}  problems={len(session.problems)}")
    return 0


def _parse_args(argv: list[str] | None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Arithmetic game session capture and review.")
    subparsers = parser.add_subparsers(dest="command", required=True)

    subparsers.add_parser("watch", help="Open the game page and record finished sessions.")

    sessions_parser = subparsers.add_parser("sessions", help="List recently stored sessions.")
    sessions_parser.add_argument("--limit", type=int, default=10)
    return parser.parse_args(argv)


def main(argv: list[str] | None = None) -> int:
    args = _parse_args(argv)
    settings = get_settings()
    configure_logging(settings.log_level, json_output=settings.app_env != "dev")

    if args.command == "watch":
        return asyncio.run(watch(settings))
    return asyncio.run(list_recent(settings, limit=max(0, args.limit)))


def run() -> None:
    raise SystemExit(main())


if __name__ == "__main__":
    run()
