"""
Shared test fixtures and helpers for the SessionKeeper test suite.
"""

from typing import Any, Dict, List, Optional

import pytest

from sessionkeeper.sessions.core import SessionIDGenerator
from sessionkeeper.sessions.engine import SessionEngine
from sessionkeeper.sessions.policy import PersistencePolicy, SessionPolicy, TransportPolicy
from sessionkeeper.sessions.store import MemoryStore
from sessionkeeper.sessions.transport import CookieTransport


COOKIE_NAME = "sid"


# ============================================================================
# Request / Response Helpers
# ============================================================================


class FakeHeaders(dict):
    """Case-insensitive header mapping (keys stored lowercased)."""

    def get(self, key: str, default: Any = None) -> Any:
        return super().get(key.lower(), default)

    def __getitem__(self, key: str) -> Any:
        return super().__getitem__(key.lower())

    def __contains__(self, key: object) -> bool:
        return isinstance(key, str) and super().__contains__(key.lower())


class FakeRequest:
    """Minimal request exposing a case-insensitive ``headers`` mapping."""

    def __init__(
        self,
        headers: Optional[Dict[str, Any]] = None,
        method: str = "GET",
        path: str = "/",
    ):
        self.headers = FakeHeaders({k.lower(): v for k, v in (headers or {}).items()})
        self.method = method
        self.path = path


class FakeResponse:
    """Response recording every cookie write and delete in order."""

    def __init__(self):
        self.headers: Dict[str, str] = {}
        self.cookies: List[Dict[str, Any]] = []
        self.deleted: List[Dict[str, Any]] = []

    def set_cookie(self, key: str, value: str = "", **kwargs: Any) -> None:
        self.cookies.append({"key": key, "value": value, **kwargs})

    def delete_cookie(self, key: str, **kwargs: Any) -> None:
        self.deleted.append({"key": key, **kwargs})

    def cookie_value(self, key: str = COOKIE_NAME) -> Optional[str]:
        """Value the client ends up with (last write wins)."""
        for cookie in reversed(self.cookies):
            if cookie["key"] == key:
                return cookie["value"]
        return None


class BareResponse:
    """Response without cookie helpers; only a headers mapping."""

    def __init__(self):
        self.headers: Dict[str, str] = {}


def make_request(session_id: Optional[str] = None, name: str = COOKIE_NAME, **kwargs) -> FakeRequest:
    """Build a request optionally carrying a session cookie."""
    headers = dict(kwargs.pop("headers", {}) or {})
    if session_id is not None:
        headers["cookie"] = f"{name}={session_id}"
    return FakeRequest(headers=headers, **kwargs)


# ============================================================================
# Fake redis.asyncio client
# ============================================================================


class FakeClock:
    """Manually advanced time source."""

    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class FakeRedis:
    """In-process stand-in for ``redis.asyncio.Redis`` (GET/SET EX/DEL/EXISTS)."""

    def __init__(self, clock: Optional[FakeClock] = None):
        self.clock = clock or FakeClock()
        self.data: Dict[str, tuple] = {}
        self.calls: List[tuple] = []
        self.closed = False

    def _alive(self, key: str) -> bool:
        entry = self.data.get(key)
        if entry is None:
            return False
        _, expires = entry
        if expires is not None and expires <= self.clock():
            del self.data[key]
            return False
        return True

    async def get(self, key: str):
        self.calls.append(("get", key))
        return self.data[key][0] if self._alive(key) else None

    async def set(self, key: str, value: bytes, ex: Optional[int] = None):
        self.calls.append(("set", key, ex))
        self.data[key] = (value, self.clock() + ex if ex else None)
        return True

    async def delete(self, *keys: str) -> int:
        self.calls.append(("delete",) + keys)
        return sum(1 for k in keys if self.data.pop(k, None) is not None)

    async def exists(self, *keys: str) -> int:
        return sum(1 for k in keys if self._alive(k))

    async def ping(self) -> bool:
        return True

    async def aclose(self) -> None:
        self.closed = True


# ============================================================================
# Fixtures
# ============================================================================


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def transport_policy() -> TransportPolicy:
    return TransportPolicy(name=COOKIE_NAME, max_age=3600, secure=True, httponly=True)


@pytest.fixture
def policy(transport_policy) -> SessionPolicy:
    return SessionPolicy(
        name="test",
        transport=transport_policy,
        persistence=PersistencePolicy(backend="memory", ttl=60),
    )


@pytest.fixture
def generator() -> SessionIDGenerator:
    return SessionIDGenerator()


@pytest.fixture
def store(clock) -> MemoryStore:
    return MemoryStore(ttl=60, clock=clock)


@pytest.fixture
def transport(transport_policy, generator) -> CookieTransport:
    return CookieTransport(transport_policy, generator)


@pytest.fixture
def engine(policy, store, transport, generator) -> SessionEngine:
    return SessionEngine(policy=policy, store=store, transport=transport, generator=generator)
