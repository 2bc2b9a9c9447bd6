from __future__ import annotations

import json
import threading

import pytest

from mathcoach.auth import store as store_module
from mathcoach.auth.store import JsonFileStore, RedisStore, build_store


@pytest.mark.asyncio
async def test_json_store_merges_and_persists_values(tmp_path) -> None:
    path = tmp_path / "nested" / "credentials.json"
    store = JsonFileStore(path)

    await store.set_many({"authToken": "a", "userId": "u"})
    await store.set_many({"authToken": "b", "tokenTimestamp": "5"})

    assert json.loads(path.read_text(encoding="utf-8")) == {
        "authToken": "b",
        "tokenTimestamp": "5",
        "userId": "u",
    }
    assert await store.get_many(["authToken", "refreshToken"]) == {
        "authToken": "b",
        "refreshToken": None,
    }
    assert [entry.name for entry in path.parent.iterdir()] == ["credentials.json"]


@pytest.mark.asyncio
async def test_json_store_treats_corrupt_file_as_empty(tmp_path) -> None:
    path = tmp_path / "credentials.json"
    path.write_text("{not json", encoding="utf-8")

    values = await JsonFileStore(path).get_many(["authToken"])

    assert values == {"authToken": None}


@pytest.mark.asyncio
async def test_json_store_file_access_runs_off_event_loop_thread(tmp_path, monkeypatch) -> None:
    store = JsonFileStore(tmp_path / "credentials.json")
    loop_thread = threading.get_ident()
    io_threads: list[int] = []
    original_read = JsonFileStore._read

    def _recording_read(self: JsonFileStore) -> dict[str, str]:
        io_threads.append(threading.get_ident())
        return original_read(self)

    monkeypatch.setattr(JsonFileStore, "_read", _recording_read)

    await store.set_many({"authToken": "a"})
    assert await store.get_many(["authToken"]) == {"authToken": "a"}

    assert len(io_threads) == 2
    assert loop_thread not in io_threads

class _FakeRedis:
    def __init__(self) -> None:
        self.data: dict[str, bytes] = {}
        self.closed = False

    async def mget(self, keys: list[str]) -> list[bytes | None]:
        return [self.data.get(key) for key in keys]

    async def mset(self, mapping: dict[str, str]) -> None:
        self.data.update({key: value.encode("utf-8") for key, value in mapping.items()})

    async def aclose(self) -> None:
        self.closed = True


@pytest.mark.asyncio
async def test_redis_store_prefixes_keys_and_decodes_values() -> None:
    client = _FakeRedis()
    store = RedisStore(client)  # type: ignore[arg-type]

    await store.set_many({"authToken": "t"})
    values = await store.get_many(["authToken", "userId"])
    await store.close()

    assert client.data == {"mathcoach:authToken": b"t"}
    assert values == {"authToken": "t", "userId": None}
    assert client.closed is True


def test_build_store_selects_backend(monkeypatch, tmp_path) -> None:
    monkeypatch.setattr(store_module.Redis, "from_url", classmethod(lambda cls, url: _FakeRedis()))

    assert isinstance(build_store("redis://localhost:6379/0"), RedisStore)
    assert isinstance(build_store(str(tmp_path / "creds.json")), JsonFileStore)
