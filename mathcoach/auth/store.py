from __future__ import annotations

import asyncio
import json
import os
import tempfile
from collections.abc import Iterable
from pathlib import Path
from typing import Protocol

import structlog
from redis.asyncio import Redis

logger = structlog.get_logger(__name__)

REDIS_URL_SCHEMES = ("redis://", "rediss://", "unix://")
REDIS_KEY_PREFIX = "mathcoach:"


class KeyValueStore(Protocol):
    async def get_many(self, keys: Iterable[str]) -> dict[str, str | None]: ...

    async def set_many(self, values: dict[str, str]) -> None: ...

    async def close(self) -> None: ...


class JsonFileStore:
    """Flat string map kept in one JSON file, rewritten via atomic rename."""

    def __init__(self, path: Path) -> None:
        self._path = path

    def _read(self) -> dict[str, str]:
        try:
            raw = self._path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return {}

        try:
            parsed = json.loads(raw)
        except json.JSONDecodeError:
            logger.warning("credential_store_parse_failed", path=str(self._path))
            return {}

        if not isinstance(parsed, dict):
            logger.warning("credential_store_invalid_shape", path=str(self._path))
            return {}
        return {key: value for key, value in parsed.items() if isinstance(value, str)}

    def _merge(self, values: dict[str, str]) -> None:
        data = self._read()
        data.update(values)

        self._path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_name = tempfile.mkstemp(dir=self._path.parent, prefix=f".{self._path.name}.")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as handle:
                json.dump(data, handle, sort_keys=True)
            os.replace(tmp_name, self._path)
        except BaseException:
            Path(tmp_name).unlink(missing_ok=True)
            raise

    async def get_many(self, keys: Iterable[str]) -> dict[str, str | None]:
        data = await asyncio.to_thread(self._read)
        return {key: data.get(key) for key in keys}

    async def set_many(self, values: dict[str, str]) -> None:
        await asyncio.to_thread(self._merge, values)

    async def close(self) -> None:
        return None


class RedisStore:
    def __init__(self, client: Redis, *, prefix: str = REDIS_KEY_PREFIX) -> None:
        self._client = client
        self._prefix = prefix

    async def get_many(self, keys: Iterable[str]) -> dict[str, str | None]:
        key_list = list(keys)
        if not key_list:
            return {}
        values = await self._client.mget([f"{self._prefix}{key}" for key in key_list])
        return {
            key: (value.decode("utf-8") if isinstance(value, bytes) else value)
            for key, value in zip(key_list, values)
        }

    async def set_many(self, values: dict[str, str]) -> None:
        if not values:
            return
        await self._client.mset({f"{self._prefix}{key}": value for key, value in values.items()})

    async def close(self) -> None:
        await self._client.aclose()


def build_store(url: str) -> KeyValueStore:
    if url.startswith(REDIS_URL_SCHEMES):
        return RedisStore(Redis.from_url(url))
    return JsonFileStore(Path(url).expanduser())
