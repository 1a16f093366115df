"""
Sessions storage: MemoryStore, FileStore, RedisStore and the store factory.
"""

import asyncio
from unittest.mock import AsyncMock

import pytest
from redis.exceptions import ConnectionError as RedisConnectionError

from sessionkeeper.sessions.backends.redis import RedisStore
from sessionkeeper.sessions.faults import (
    SessionNotFoundFault,
    SessionSerializationFault,
    SessionStoreCorruptedFault,
    SessionStoreTimeoutFault,
    SessionStoreUnavailableFault,
)
from sessionkeeper.sessions.policy import PersistencePolicy
from sessionkeeper.sessions.serializers import MsgpackSessionSerializer
from sessionkeeper.sessions.store import BaseStore, FileStore, MemoryStore, create_store

from tests.conftest import FakeClock, FakeRedis


PAYLOADS = [
    {"counter": 0},
    {"nested": {"list": [1, 2.5, "x", None, True, False]}, "unicode": "héllo ✓"},
    [1, "two", {"three": 3}],
    "plain string",
    42,
    None,
]


# ============================================================================
# MemoryStore
# ============================================================================

class TestMemoryStore:

    @pytest.mark.asyncio
    async def test_missing_record_is_not_found(self, store):
        with pytest.raises(SessionNotFoundFault):
            await store.load("nope")

    @pytest.mark.asyncio
    @pytest.mark.parametrize("payload", PAYLOADS)
    async def test_payload_survives_save_and_load(self, store, payload):
        await store.save("abc", payload)
        assert await store.load("abc") == payload

    @pytest.mark.asyncio
    async def test_save_replaces_value(self, store):
        await store.save("abc", {"counter": 0})
        await store.save("abc", {"counter": 1})
        assert await store.load("abc") == {"counter": 1}

    @pytest.mark.asyncio
    async def test_record_expires_after_ttl(self, store, clock):
        await store.save("abc", {"counter": 0})
        clock.advance(61)
        with pytest.raises(SessionNotFoundFault):
            await store.load("abc")
        assert await store.exists("abc") is False

    @pytest.mark.asyncio
    async def test_save_resets_ttl(self, store, clock):
        await store.save("abc", {"counter": 0})
        clock.advance(50)
        await store.save("abc", {"counter": 1})
        clock.advance(50)
        assert await store.load("abc") == {"counter": 1}

    @pytest.mark.asyncio
    async def test_no_ttl_never_expires(self, clock):
        store = MemoryStore(clock=clock)
        await store.save("abc", 1)
        clock.advance(10**9)
        assert await store.load("abc") == 1

    @pytest.mark.asyncio
    async def test_delete_is_idempotent(self, store):
        await store.save("abc", 1)
        await store.delete("abc")
        await store.delete("abc")
        with pytest.raises(SessionNotFoundFault):
            await store.load("abc")

    @pytest.mark.asyncio
    async def test_lru_eviction(self, clock):
        store = MemoryStore(max_sessions=2, clock=clock)
        await store.save("a", 1)
        await store.save("b", 2)
        await store.load("a")  # b becomes least recently used
        await store.save("c", 3)
        assert await store.exists("a")
        assert not await store.exists("b")
        assert await store.exists("c")
        assert store.get_stats()["total_sessions"] == 2

    @pytest.mark.asyncio
    async def test_cleanup_expired(self, store, clock):
        await store.save("a", 1)
        clock.advance(30)
        await store.save("b", 2)
        clock.advance(31)
        assert await store.cleanup_expired() == 1
        assert await store.load("b") == 2

    @pytest.mark.asyncio
    async def test_keys_use_prefix(self, store):
        assert store.format_key("abc") == "sess:abc"
        await store.save("abc", 1)
        assert "sess:abc" in store._records

    @pytest.mark.asyncio
    async def test_custom_key_formatter(self, clock):
        store = MemoryStore(clock=clock, key_formatter=lambda sid: f"app/{sid}")
        await store.save("abc", 1)
        assert "app/abc" in store._records

    @pytest.mark.asyncio
    async def test_unencodable_payload_rejected(self, store):
        with pytest.raises(SessionSerializationFault):
            await store.save("abc", {"when": object()})
        assert not await store.exists("abc")

    @pytest.mark.asyncio
    async def test_corrupted_bytes_are_not_a_miss(self, store):
        store._records["sess:abc"] = (b"{not json", None)
        with pytest.raises(SessionStoreCorruptedFault):
            await store.load("abc")

    @pytest.mark.asyncio
    async def test_shutdown_clears(self, store):
        await store.save("abc", 1)
        await store.shutdown()
        assert not await store.exists("abc")

    def test_rejects_non_positive_ttl(self):
        with pytest.raises(ValueError):
            MemoryStore(ttl=0)


class TestStoreTimeout:

    class SlowStore(BaseStore):
        store_name = "slow"

        async def _read(self, key):
            await asyncio.sleep(10)

    @pytest.mark.asyncio
    async def test_timeout_is_store_fault_not_miss(self):
        store = self.SlowStore(timeout=0.01)
        with pytest.raises(SessionStoreTimeoutFault) as exc_info:
            await store.load("abc")
        assert not isinstance(exc_info.value, SessionNotFoundFault)
        assert isinstance(exc_info.value, SessionStoreUnavailableFault)
        assert exc_info.value.operation == "load"
        assert exc_info.value.retryable is True


# ============================================================================
# FileStore
# ============================================================================

class TestFileStore:

    @pytest.fixture
    def file_store(self, tmp_path, clock):
        return FileStore(directory=tmp_path / "sessions", ttl=60, clock=clock)

    @pytest.mark.asyncio
    @pytest.mark.parametrize("payload", PAYLOADS)
    async def test_payload_survives_save_and_load(self, file_store, payload):
        await file_store.save("abc", payload)
        assert await file_store.load("abc") == payload

    @pytest.mark.asyncio
    async def test_missing_is_not_found(self, file_store):
        with pytest.raises(SessionNotFoundFault):
            await file_store.load("missing")

    @pytest.mark.asyncio
    async def test_expiry(self, file_store, clock):
        await file_store.save("abc", {"counter": 0})
        clock.advance(61)
        with pytest.raises(SessionNotFoundFault):
            await file_store.load("abc")
        assert file_store.get_stats()["total_sessions"] == 0

    @pytest.mark.asyncio
    async def test_filename_cannot_escape_directory(self, file_store):
        await file_store.save("../../etc/passwd", 1)
        files = list(file_store.directory.iterdir())
        assert len(files) == 1
        assert files[0].parent == file_store.directory
        assert await file_store.load("../../etc/passwd") == 1

    @pytest.mark.asyncio
    async def test_delete_idempotent(self, file_store):
        await file_store.save("abc", 1)
        await file_store.delete("abc")
        await file_store.delete("abc")
        assert not await file_store.exists("abc")

    @pytest.mark.asyncio
    async def test_cleanup_expired(self, file_store, clock):
        await file_store.save("old", 1)
        clock.advance(45)
        await file_store.save("new", 2)
        clock.advance(20)
        assert await file_store.cleanup_expired() == 1
        assert await file_store.load("new") == 2

    @pytest.mark.asyncio
    async def test_corrupted_file(self, file_store):
        path = file_store._get_path(file_store.format_key("abc"))
        path.write_bytes(b"no-newline-here")
        with pytest.raises(SessionStoreCorruptedFault):
            await file_store.load("abc")

    @pytest.mark.asyncio
    async def test_long_identifier_fits_filename_limit(self, file_store):
        long_id = "A" * 200
        with pytest.raises(SessionNotFoundFault):
            await file_store.load(long_id)

        await file_store.save(long_id, {"counter": 0})
        assert await file_store.load(long_id) == {"counter": 0}
        [path] = file_store.directory.iterdir()
        assert len(path.name) == 64 + len(FileStore.suffix)

    @pytest.mark.asyncio
    async def test_file_for_another_key_is_a_miss(self, file_store):
        await file_store.save("owner", {"secret": 1})
        owner_path = file_store._get_path(file_store.format_key("owner"))
        other_path = file_store._get_path(file_store.format_key("intruder"))
        other_path.write_bytes(owner_path.read_bytes())

        with pytest.raises(SessionNotFoundFault):
            await file_store.load("intruder")

    @pytest.mark.asyncio
    async def test_io_error_is_unavailable(self, file_store, monkeypatch):
        def broken(*args):
            raise PermissionError("read-only filesystem")

        monkeypatch.setattr(file_store, "_write_sync", broken)
        with pytest.raises(SessionStoreUnavailableFault) as exc_info:
            await file_store.save("abc", 1)
        assert exc_info.value.store_name == "file"


# ============================================================================
# RedisStore
# ============================================================================

class TestRedisStore:

    @pytest.fixture
    def fake_redis(self, clock):
        return FakeRedis(clock)

    @pytest.fixture
    def redis_store(self, fake_redis):
        return RedisStore(client=fake_redis, ttl=60)

    @pytest.mark.asyncio
    async def test_save_sets_ttl_and_prefix(self, redis_store, fake_redis):
        await redis_store.save("abc", {"counter": 0})
        assert ("set", "sess:abc", 60) in fake_redis.calls
        assert fake_redis.data["sess:abc"][0] == b'{"counter": 0}'

    @pytest.mark.asyncio
    @pytest.mark.parametrize("payload", PAYLOADS)
    async def test_payload_survives_save_and_load(self, redis_store, payload):
        await redis_store.save("abc", payload)
        assert await redis_store.load("abc") == payload

    @pytest.mark.asyncio
    async def test_missing_is_not_found(self, redis_store):
        with pytest.raises(SessionNotFoundFault):
            await redis_store.load("abc")

    @pytest.mark.asyncio
    async def test_store_enforced_expiry(self, redis_store, clock):
        await redis_store.save("abc", 1)
        clock.advance(61)
        with pytest.raises(SessionNotFoundFault):
            await redis_store.load("abc")

    @pytest.mark.asyncio
    async def test_no_ttl_omits_ex(self, fake_redis):
        store = RedisStore(client=fake_redis)
        await store.save("abc", 1)
        assert ("set", "sess:abc", None) in fake_redis.calls

    @pytest.mark.asyncio
    async def test_delete(self, redis_store, fake_redis):
        await redis_store.save("abc", 1)
        await redis_store.delete("abc")
        await redis_store.delete("abc")
        assert ("delete", "sess:abc") in fake_redis.calls
        assert not await redis_store.exists("abc")

    @pytest.mark.asyncio
    async def test_connection_error_is_unavailable_not_miss(self):
        client = AsyncMock()
        client.get.side_effect = RedisConnectionError("Connection refused")
        store = RedisStore(client=client)

        with pytest.raises(SessionStoreUnavailableFault) as exc_info:
            await store.load("abc")
        assert not isinstance(exc_info.value, SessionNotFoundFault)
        assert "Connection refused" in exc_info.value.message

    @pytest.mark.asyncio
    async def test_ping(self, redis_store):
        assert await redis_store.ping() is True

    @pytest.mark.asyncio
    async def test_ping_failure(self):
        client = AsyncMock()
        client.ping.side_effect = RedisConnectionError("down")
        assert await RedisStore(client=client).ping() is False

    @pytest.mark.asyncio
    async def test_injected_client_is_not_closed(self, redis_store, fake_redis):
        await redis_store.shutdown()
        assert fake_redis.closed is False
        with pytest.raises(SessionStoreUnavailableFault):
            await redis_store.load("abc")

    @pytest.mark.asyncio
    async def test_owned_client_is_closed(self):
        store = RedisStore("redis://localhost:6379/3", max_connections=4)
        assert store.client.connection_pool.max_connections == 4
        client = store.client
        client.aclose = AsyncMock()

        await store.shutdown()

        client.aclose.assert_awaited_once()
        assert store.client is None

    @pytest.mark.asyncio
    async def test_msgpack_serializer(self, fake_redis):
        pytest.importorskip("msgpack")
        store = RedisStore(client=fake_redis, serializer=MsgpackSessionSerializer())
        await store.save("abc", {"counter": 3, "tags": ["a", "b"]})
        assert await store.load("abc") == {"counter": 3, "tags": ["a", "b"]}


# ============================================================================
# Factory
# ============================================================================

class TestCreateStore:

    def test_memory(self):
        store = create_store(PersistencePolicy(backend="memory", ttl=30, max_sessions=5))
        assert isinstance(store, MemoryStore)
        assert store.ttl == 30
        assert store.max_sessions == 5

    def test_file(self, tmp_path):
        store = create_store(PersistencePolicy(backend="file", directory=str(tmp_path)))
        assert isinstance(store, FileStore)

    def test_redis(self):
        store = create_store(PersistencePolicy(backend="redis", key_prefix="app:sess:"))
        assert isinstance(store, RedisStore)
        assert store.format_key("x") == "app:sess:x"
