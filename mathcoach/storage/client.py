from __future__ import annotations

from datetime import datetime, timezone

import httpx
import structlog

from mathcoach.auth.credentials import Credential
from mathcoach.auth.errors import CredentialUnavailableError
from mathcoach.auth.manager import CredentialManager
from mathcoach.core.config import Settings
from mathcoach.storage.documents import StoredSession, decode_session_document, encode_session_document
from mathcoach.storage.errors import SessionStoreError, SessionStoreUnauthorizedError
from mathcoach.tracking.types import CompletedSession

logger = structlog.get_logger(__name__)

HTTP_UNAUTHORIZED = 401
SESSIONS_COLLECTION = "sessions"


def sessions_collection_url(settings: Settings) -> str:
    base_url = settings.firestore_base_url.rstrip("/")
    return (
        f"{base_url}/projects/{settings.firestore_project_id}"
        f"/databases/(default)/documents/{SESSIONS_COLLECTION}"
    )


def _is_success(response: httpx.Response) -> bool:
    return 200 <= response.status_code < 300


def _error_excerpt(response: httpx.Response) -> str:
    return response.text[:500]


def _newest_first(session: StoredSession) -> datetime:
    return session.timestamp or datetime.min.replace(tzinfo=timezone.utc)


class SessionStoreClient:
    """Remote session store access with a single re-authenticated retry."""

    def __init__(
        self,
        *,
        credentials: CredentialManager,
        http_client: httpx.AsyncClient,
        collection_url: str,
    ) -> None:
        self._credentials = credentials
        self._http_client = http_client
        self._collection_url = collection_url

    @classmethod
    def from_settings(
        cls,
        settings: Settings,
        *,
        credentials: CredentialManager,
        http_client: httpx.AsyncClient,
    ) -> SessionStoreClient:
        return cls(
            credentials=credentials,
            http_client=http_client,
            collection_url=sessions_collection_url(settings),
        )

    async def save_session(self, session: CompletedSession) -> bool:
        try:
            credential = await self._credentials.acquire()
        except CredentialUnavailableError:
            logger.error("session_save_no_credential", score=session.score)
            return False

        try:
            response = await self._create(session, credential)
            if response.status_code == HTTP_UNAUTHORIZED:
                logger.info("session_save_unauthorized_retrying", subject_id=credential.subject_id)
                credential = await self._credentials.force_refresh()
                response = await self._create(session, credential)
                logger.info("session_save_retry_completed", status_code=response.status_code)
        except CredentialUnavailableError:
            logger.error("session_save_refresh_failed", score=session.score)
            return False
        except httpx.HTTPError:
            logger.exception("session_save_transport_failed", score=session.score)
            return False

        if not _is_success(response):
            logger.error(
                "session_save_failed",
                status_code=response.status_code,
                body=_error_excerpt(response),
                score=session.score,
            )
            return False

        logger.info(
            "session_saved",
            score=session.score,
            problems_count=len(session.problems),
            subject_id=credential.subject_id,
        )
        return True

    async def list_sessions(self) -> list[StoredSession]:
        try:
            credential = await self._credentials.acquire()
            response = await self._list(credential)
            if response.status_code == HTTP_UNAUTHORIZED:
                logger.info("session_list_unauthorized_retrying", subject_id=credential.subject_id)
                credential = await self._credentials.force_refresh()
                response = await self._list(credential)
        except CredentialUnavailableError as exc:
            raise SessionStoreError("no credential available for the session store") from exc
        except httpx.HTTPError as exc:
            logger.exception("session_list_transport_failed")
            raise SessionStoreError("session store is unreachable") from exc

        if response.status_code == HTTP_UNAUTHORIZED:
            raise SessionStoreUnauthorizedError("session store rejected the refreshed credential")
        if not _is_success(response):
            logger.error("session_list_failed", status_code=response.status_code, body=_error_excerpt(response))
            raise SessionStoreError(f"failed to fetch sessions: {response.status_code}")

        try:
            payload = response.json()
        except ValueError:
            logger.warning("session_list_invalid_json")
            return []

        documents = payload.get("documents") if isinstance(payload, dict) else None
        if not isinstance(documents, list):
            return []

        sessions = [
            stored
            for stored in (decode_session_document(document) for document in documents)
            if stored is not None and stored.user_id == credential.subject_id
        ]
        sessions.sort(key=_newest_first, reverse=True)
        return sessions

    async def _create(self, session: CompletedSession, credential: Credential) -> httpx.Response:
        body = encode_session_document(
            score=session.score,
            timestamp=session.finished_at,
            user_id=credential.subject_id,
            problems=session.problems,
        )
        return await self._http_client.post(
            self._collection_url,
            json=body,
            headers=self._headers(credential),
        )

    async def _list(self, credential: Credential) -> httpx.Response:
        return await self._http_client.get(self._collection_url, headers=self._headers(credential))

    @staticmethod
    def _headers(credential: Credential) -> dict[str, str]:
        return {"Authorization": f"Bearer {credential.auth_token}"}
