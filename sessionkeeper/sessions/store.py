"""
SessionKeeper Sessions - Session storage abstraction.

Defines SessionStore protocol and concrete implementations:
- MemoryStore: In-memory storage (dev/testing, single process)
- FileStore: File-based storage (debugging, single host)
- RedisStore: Redis-based storage (production), see backends.redis

Stores persist opaque payloads keyed by identifier. They know nothing
about transports or rotation; the only contract SessionEngine relies on
is that a missing or expired record raises SessionNotFoundFault while
every other failure raises something else.
"""

from __future__ import annotations

import asyncio
import hashlib
import logging
import os
import secrets
import time
from collections import OrderedDict
from pathlib import Path
from typing import Any, Awaitable, Callable, Protocol, TYPE_CHECKING, TypeVar

from .faults import (
    SessionNotFoundFault,
    SessionSerializationFault,
    SessionStoreCorruptedFault,
    SessionStoreTimeoutFault,
    SessionStoreUnavailableFault,
)
from .serializers import SessionSerializer, get_serializer

if TYPE_CHECKING:
    from .policy import PersistencePolicy


logger = logging.getLogger("sessionkeeper.sessions.store")

T = TypeVar("T")

DEFAULT_KEY_PREFIX = "sess:"


# ============================================================================
# SessionStore Protocol
# ============================================================================

class SessionStore(Protocol):
    """
    Abstract session storage interface.

    Stores are responsible ONLY for persistence - they do NOT decide when
    identifiers rotate. That happens in SessionEngine.

    All methods must be async and cancellation-safe.
    """

    async def load(self, session_id: str) -> Any:
        """
        Load payload from store.

        Raises:
            SessionNotFoundFault: No live record for this identifier
            SessionStoreUnavailableFault: Store is unavailable or timed out
            SessionStoreCorruptedFault: Stored bytes cannot be decoded
        """
        ...

    async def save(self, session_id: str, payload: Any) -> None:
        """
        Save payload, replacing any previous value and resetting its TTL.

        Raises:
            SessionStoreUnavailableFault: Store is unavailable
            SessionSerializationFault: Payload cannot be encoded
        """
        ...

    async def delete(self, session_id: str) -> None:
        """Delete record. Deleting a missing record is not an error."""
        ...

    async def exists(self, session_id: str) -> bool:
        """Check if a live record exists."""
        ...

    async def cleanup_expired(self) -> int:
        """Remove expired records, returning how many were removed."""
        ...

    async def ping(self) -> bool:
        """Check the backend is reachable."""
        ...

    async def shutdown(self) -> None:
        """Gracefully shutdown store (close connections, flush buffers)."""
        ...


# ============================================================================
# BaseStore - shared key, codec, TTL and timeout handling
# ============================================================================

class BaseStore:
    """
    Common machinery for concrete stores.

    Subclasses implement the raw byte operations (``_read``, ``_write``,
    ``_remove``, ``_contains``); BaseStore maps identifiers to keys,
    encodes payloads and bounds every call with ``timeout``.

    Args:
        ttl: Record lifetime in seconds, reset by each save (None = no expiry)
        key_prefix: Namespace for the default key formatter
        key_formatter: Injective identifier -> key function (overrides prefix)
        serializer: Payload encoder (default JSON)
        timeout: Per-operation bound in seconds (None = unbounded)
    """

    store_name = "base"

    def __init__(
        self,
        *,
        ttl: int | None = None,
        key_prefix: str = DEFAULT_KEY_PREFIX,
        key_formatter: Callable[[str], str] | None = None,
        serializer: SessionSerializer | None = None,
        timeout: float | None = 5.0,
    ):
        if ttl is not None and ttl <= 0:
            raise ValueError("ttl must be positive or None")

        self.ttl = ttl
        self.key_prefix = key_prefix
        self._key_formatter = key_formatter
        self.serializer = serializer or get_serializer("json")
        self.timeout = timeout

    # ------------------------------------------------------------------
    # Public contract
    # ------------------------------------------------------------------

    def format_key(self, session_id: str) -> str:
        """Map an identifier to its storage key."""
        if self._key_formatter is not None:
            return self._key_formatter(session_id)
        return f"{self.key_prefix}{session_id}"

    async def load(self, session_id: str) -> Any:
        raw = await self._bounded("load", self._read(self.format_key(session_id)))
        if raw is None:
            raise SessionNotFoundFault(session_id=session_id)

        try:
            return self.serializer.deserialize(raw)
        except SessionSerializationFault as e:
            raise SessionStoreCorruptedFault(session_id=session_id, cause=e.cause) from e

    async def save(self, session_id: str, payload: Any) -> None:
        data = self.serializer.serialize(payload)
        await self._bounded("save", self._write(self.format_key(session_id), data, self.ttl))

    async def delete(self, session_id: str) -> None:
        await self._bounded("delete", self._remove(self.format_key(session_id)))

    async def exists(self, session_id: str) -> bool:
        return await self._bounded("exists", self._contains(self.format_key(session_id)))

    async def cleanup_expired(self) -> int:
        return 0

    async def ping(self) -> bool:
        return True

    async def shutdown(self) -> None:
        pass

    # ------------------------------------------------------------------
    # Backend hooks
    # ------------------------------------------------------------------

    async def _read(self, key: str) -> bytes | None:
        raise NotImplementedError

    async def _write(self, key: str, data: bytes, ttl: int | None) -> None:
        raise NotImplementedError

    async def _remove(self, key: str) -> None:
        raise NotImplementedError

    async def _contains(self, key: str) -> bool:
        raise NotImplementedError

    async def _bounded(self, operation: str, awaitable: Awaitable[T]) -> T:
        """Run one backend call under the store timeout."""
        if self.timeout is None:
            return await awaitable
        try:
            return await asyncio.wait_for(awaitable, self.timeout)
        except asyncio.TimeoutError as e:
            logger.error(f"Session store '{self.store_name}' {operation} timed out after {self.timeout}s")
            raise SessionStoreTimeoutFault(self.store_name, operation, self.timeout) from e

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(ttl={self.ttl}, key_prefix={self.key_prefix!r})"


# ============================================================================
# MemoryStore - In-Memory Storage
# ============================================================================

class MemoryStore(BaseStore):
    """
    In-memory session storage for development and testing.

    Features:
    - Fast in-memory dict storage
    - Lazy TTL expiry on read plus explicit cleanup_expired()
    - Max session limit (LRU eviction)

    NOT suitable for production (no persistence across restarts, no
    sharing across processes).

    Example:
        >>> store = MemoryStore(ttl=1800, max_sessions=10000)
        >>> await store.save(sid, {"counter": 0})
        >>> await store.load(sid)
        {'counter': 0}
    """

    store_name = "memory"

    def __init__(
        self,
        max_sessions: int = 10000,
        *,
        clock: Callable[[], float] = time.monotonic,
        **kwargs: Any,
    ):
        """
        Initialize memory store.

        Args:
            max_sessions: Maximum records to keep (LRU eviction)
            clock: Monotonic time source (seconds)
            **kwargs: BaseStore options
        """
        super().__init__(**kwargs)
        self.max_sessions = max_sessions
        self._clock = clock
        # key -> (payload bytes, expires_at | None); order = LRU order
        self._records: OrderedDict[str, tuple[bytes, float | None]] = OrderedDict()
        self._lock = asyncio.Lock()

    def _is_alive(self, entry: tuple[bytes, float | None]) -> bool:
        _, expires = entry
        return expires is None or expires > self._clock()

    async def _read(self, key: str) -> bytes | None:
        async with self._lock:
            entry = self._records.get(key)
            if entry is None:
                return None
            if not self._is_alive(entry):
                del self._records[key]
                return None
            self._records.move_to_end(key)
            return entry[0]

    async def _write(self, key: str, data: bytes, ttl: int | None) -> None:
        expires = self._clock() + ttl if ttl is not None else None
        async with self._lock:
            if key not in self._records and len(self._records) >= self.max_sessions:
                self._evict_lru()
            self._records[key] = (data, expires)
            self._records.move_to_end(key)

    async def _remove(self, key: str) -> None:
        async with self._lock:
            self._records.pop(key, None)

    async def _contains(self, key: str) -> bool:
        async with self._lock:
            entry = self._records.get(key)
            return entry is not None and self._is_alive(entry)

    async def cleanup_expired(self) -> int:
        """Remove expired records."""
        async with self._lock:
            expired = [k for k, entry in self._records.items() if not self._is_alive(entry)]
            for key in expired:
                del self._records[key]
        return len(expired)

    async def shutdown(self) -> None:
        """Shutdown store (clear memory)."""
        async with self._lock:
            self._records.clear()

    def _evict_lru(self) -> None:
        """Evict least recently used record. Caller holds the lock."""
        if not self._records:
            return
        self._records.popitem(last=False)
        logger.debug(f"Evicted least recently used session record ({len(self._records)} left)")

    def get_stats(self) -> dict[str, Any]:
        """Get store statistics."""
        return {
            "total_sessions": len(self._records),
            "max_sessions": self.max_sessions,
            "utilization": len(self._records) / self.max_sessions if self.max_sessions > 0 else 0,
        }


# ============================================================================
# FileStore - File-Based Storage
# ============================================================================

class FileStore(BaseStore):
    """
    File-based session storage for debugging and development.

    Features:
    - One file per record: an expiry line, the hex-encoded key, then the payload
    - Filename is the sha256 of the store key (fixed length, path-safe)
    - Atomic writes (temp file + rename)
    - Blocking file I/O runs in a worker thread

    NOT suitable for multi-host production (no shared filesystem locking).

    Example:
        >>> store = FileStore(directory="/tmp/sessions", ttl=3600)
        >>> await store.save(sid, {"cart": [1, 2]})
        >>> await store.load(sid)
    """

    store_name = "file"
    suffix = ".session"

    def __init__(
        self,
        directory: str | Path,
        *,
        clock: Callable[[], float] = time.time,
        **kwargs: Any,
    ):
        """
        Initialize file store.

        Args:
            directory: Directory to store session files
            clock: Wall-clock time source (seconds since epoch)
            **kwargs: BaseStore options
        """
        super().__init__(**kwargs)
        self.directory = Path(directory)
        self.directory.mkdir(parents=True, exist_ok=True)
        self._clock = clock

    def _get_path(self, key: str) -> Path:
        """Get file path for a store key (fixed length, whatever the key)."""
        digest = hashlib.sha256(key.encode("utf-8")).hexdigest()
        return self.directory / f"{digest}{self.suffix}"

    def _read_file(self, path: Path) -> tuple[float | None, str, bytes] | None:
        try:
            blob = path.read_bytes()
        except FileNotFoundError:
            return None

        header, sep, rest = blob.partition(b"\n")
        stored_key, sep2, data = rest.partition(b"\n")
        if not sep or not sep2:
            raise SessionStoreCorruptedFault(cause=f"missing header lines in {path.name}")
        try:
            expires = None if header == b"-" else float(header)
            key = bytes.fromhex(stored_key.decode("ascii")).decode("utf-8")
        except ValueError as e:
            raise SessionStoreCorruptedFault(cause=f"bad header in {path.name}") from e
        return expires, key, data

    def _read_sync(self, key: str) -> bytes | None:
        path = self._get_path(key)
        entry = self._read_file(path)
        if entry is None:
            return None

        expires, stored_key, data = entry
        if stored_key != key:
            # Digest collision: the file belongs to another key
            return None
        if expires is not None and expires <= self._clock():
            path.unlink(missing_ok=True)
            return None
        return data

    def _write_sync(self, key: str, data: bytes, ttl: int | None) -> None:
        path = self._get_path(key)
        header = b"-" if ttl is None else repr(self._clock() + ttl).encode("ascii")
        key_line = key.encode("utf-8").hex().encode("ascii")

        # Unique temp name so concurrent saves of one key never share a file
        temp_path = path.with_name(f"{path.name}.{secrets.token_hex(4)}.tmp")
        temp_path.write_bytes(header + b"\n" + key_line + b"\n" + data)
        os.replace(temp_path, path)

    def _cleanup_sync(self) -> int:
        now = self._clock()
        removed = 0
        for path in self.directory.glob(f"*{self.suffix}"):
            try:
                entry = self._read_file(path)
            except SessionStoreCorruptedFault:
                logger.warning(f"Skipping corrupted session file {path.name}")
                continue
            if entry is None:
                continue
            expires, _, _ = entry
            if expires is not None and expires <= now:
                path.unlink(missing_ok=True)
                removed += 1
        return removed

    async def _run(self, func: Callable[..., T], *args: Any) -> T:
        try:
            return await asyncio.to_thread(func, *args)
        except OSError as e:
            logger.error(f"Session file store I/O error: {e}")
            raise SessionStoreUnavailableFault(store_name=self.store_name, cause=str(e)) from e

    async def _read(self, key: str) -> bytes | None:
        return await self._run(self._read_sync, key)

    async def _write(self, key: str, data: bytes, ttl: int | None) -> None:
        await self._run(self._write_sync, key, data, ttl)

    async def _remove(self, key: str) -> None:
        await self._run(self._get_path(key).unlink, True)

    async def _contains(self, key: str) -> bool:
        return await self._run(lambda: self._read_sync(key) is not None)

    async def cleanup_expired(self) -> int:
        """Remove expired session files."""
        return await self._run(self._cleanup_sync)

    def get_stats(self) -> dict[str, Any]:
        """Get store statistics."""
        files = list(self.directory.glob(f"*{self.suffix}"))
        return {
            "total_sessions": len(files),
            "total_size_bytes": sum(p.stat().st_size for p in files),
            "directory": str(self.directory),
        }


# ============================================================================
# Store Factory
# ============================================================================

def create_store(policy: PersistencePolicy) -> BaseStore:
    """
    Create store adapter from policy.

    Args:
        policy: Persistence policy

    Returns:
        Store instance

    Raises:
        ValueError: If backend type is unsupported
    """
    common = dict(
        ttl=policy.ttl,
        key_prefix=policy.key_prefix,
        serializer=get_serializer(policy.serializer),
        timeout=policy.timeout,
    )

    if policy.backend == "memory":
        return MemoryStore(max_sessions=policy.max_sessions, **common)
    elif policy.backend == "file":
        return FileStore(directory=policy.directory, **common)
    elif policy.backend == "redis":
        from .backends.redis import RedisStore

        return RedisStore(
            url=policy.redis_url,
            max_connections=policy.max_connections,
            socket_timeout=policy.socket_timeout,
            connect_timeout=policy.connect_timeout,
            **common,
        )
    else:
        raise ValueError(f"Unsupported session store backend: {policy.backend}")
