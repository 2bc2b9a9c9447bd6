from __future__ import annotations

import asyncio
import time
from collections.abc import Callable
from typing import Any, Protocol

import httpx
import structlog

from mathcoach.auth.credentials import CREDENTIAL_KEYS, Credential
from mathcoach.auth.errors import CredentialUnavailableError
from mathcoach.auth.store import KeyValueStore
from mathcoach.core.config import Settings

logger = structlog.get_logger(__name__)


class ApiKeyProvider(Protocol):
    async def get_api_key(self) -> str | None: ...


class SettingsApiKeyProvider:
    def __init__(self, settings: Settings) -> None:
        self._settings = settings

    async def get_api_key(self) -> str | None:
        value = self._settings.identity_api_key.strip()
        return value or None


def _epoch_ms() -> int:
    return int(time.time() * 1000)


class CredentialManager:
    """Keeps one bearer credential valid for the remote session store.

    Stale credentials are replaced by exchanging the cached refresh token and,
    when that is impossible, by signing up a brand-new anonymous identity.
    """

    def __init__(
        self,
        *,
        store: KeyValueStore,
        api_key_provider: ApiKeyProvider,
        http_client: httpx.AsyncClient,
        signup_url: str,
        token_url: str,
        lifetime_ms: int = 3600 * 1000,
        refresh_buffer_ms: int = 5 * 60 * 1000,
        clock: Callable[[], int] = _epoch_ms,
    ) -> None:
        self._store = store
        self._api_key_provider = api_key_provider
        self._http_client = http_client
        self._signup_url = signup_url
        self._token_url = token_url
        self._lifetime_ms = lifetime_ms
        self._refresh_buffer_ms = refresh_buffer_ms
        self._clock = clock
        self._lock = asyncio.Lock()

    @classmethod
    def from_settings(
        cls,
        settings: Settings,
        *,
        store: KeyValueStore,
        http_client: httpx.AsyncClient,
        api_key_provider: ApiKeyProvider | None = None,
    ) -> CredentialManager:
        return cls(
            store=store,
            api_key_provider=api_key_provider or SettingsApiKeyProvider(settings),
            http_client=http_client,
            signup_url=settings.identity_signup_url,
            token_url=settings.identity_token_url,
            lifetime_ms=settings.token_lifetime_seconds * 1000,
            refresh_buffer_ms=settings.token_refresh_buffer_seconds * 1000,
        )

    async def load(self) -> Credential | None:
        values = await self._store.get_many(CREDENTIAL_KEYS)
        return Credential.from_store(values)

    def is_fresh(self, credential: Credential) -> bool:
        return credential.is_fresh(
            now_epoch_ms=self._clock(),
            lifetime_ms=self._lifetime_ms,
            refresh_buffer_ms=self._refresh_buffer_ms,
        )

    async def acquire(self) -> Credential:
        async with self._lock:
            cached = await self.load()
            if cached is not None and self.is_fresh(cached):
                return cached

            logger.info(
                "credential_stale_or_missing",
                has_credential=cached is not None,
                has_refresh_token=bool(cached and cached.refresh_token),
            )
            return await self._refresh(cached)

    async def force_refresh(self) -> Credential:
        async with self._lock:
            cached = await self.load()
            return await self._refresh(cached)

    async def _refresh(self, cached: Credential | None) -> Credential:
        api_key = await self._api_key_provider.get_api_key()
        if not api_key:
            logger.error("identity_api_key_unavailable")
            raise CredentialUnavailableError("identity service api key is not configured")

        credential: Credential | None = None
        if cached is not None and cached.refresh_token:
            credential = await self._exchange_refresh_token(
                api_key=api_key,
                refresh_token=cached.refresh_token,
                previous=cached,
            )
        if credential is None:
            credential = await self._sign_up_anonymous(api_key=api_key)
        if credential is None:
            raise CredentialUnavailableError("identity service did not issue a credential")

        await self._store.set_many(credential.to_store())
        return credential

    async def _exchange_refresh_token(
        self,
        *,
        api_key: str,
        refresh_token: str,
        previous: Credential,
    ) -> Credential | None:
        payload = await self._post_json(
            self._token_url,
            api_key=api_key,
            body={"grant_type": "refresh_token", "refresh_token": refresh_token},
            event="identity_token_refresh_failed",
        )
        if payload is None:
            return None

        access_token = payload.get("access_token")
        if not isinstance(access_token, str) or not access_token:
            logger.warning("identity_token_refresh_malformed", fields=sorted(payload))
            return None

        new_refresh_token = payload.get("refresh_token")
        if not isinstance(new_refresh_token, str) or not new_refresh_token:
            new_refresh_token = refresh_token
        user_id = payload.get("user_id")
        if not isinstance(user_id, str) or not user_id:
            user_id = previous.subject_id

        credential = Credential(
            auth_token=access_token,
            refresh_token=new_refresh_token,
            subject_id=user_id,
            issued_at_epoch_ms=self._clock(),
        )
        logger.info("credential_refreshed", subject_id=credential.subject_id)
        return credential

    async def _sign_up_anonymous(self, *, api_key: str) -> Credential | None:
        payload = await self._post_json(
            self._signup_url,
            api_key=api_key,
            body={"returnSecureToken": True},
            event="identity_signup_failed",
        )
        if payload is None:
            return None

        id_token = payload.get("idToken")
        local_id = payload.get("localId")
        if not isinstance(id_token, str) or not id_token or not isinstance(local_id, str) or not local_id:
            logger.warning("identity_signup_malformed", fields=sorted(payload))
            return None

        refresh_token = payload.get("refreshToken")
        credential = Credential(
            auth_token=id_token,
            refresh_token=refresh_token if isinstance(refresh_token, str) and refresh_token else None,
            subject_id=local_id,
            issued_at_epoch_ms=self._clock(),
        )
        logger.info("credential_issued_anonymous", subject_id=credential.subject_id)
        return credential

    async def _post_json(
        self,
        url: str,
        *,
        api_key: str,
        body: dict[str, Any],
        event: str,
    ) -> dict[str, Any] | None:
        try:
            response = await self._http_client.post(url, params={"key": api_key}, json=body)
        except httpx.HTTPError:
            logger.exception(event, url=url)
            return None

        if response.status_code >= 400:
            logger.warning(event, url=url, status_code=response.status_code)
            return None

        try:
            payload = response.json()
        except ValueError:
            logger.warning(event, url=url, status_code=response.status_code, reason="invalid_json")
            return None

        if not isinstance(payload, dict):
            logger.warning(event, url=url, reason="invalid_shape")
            return None
        return payload
