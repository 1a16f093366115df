"""
SessionKeeper Sessions - Policy types.

Defines the configuration structures that govern behavior:
- TransportPolicy: How identifiers travel to and from the client
- PersistencePolicy: Where and for how long payloads are kept
- SessionPolicy: Master policy combining both with identifier settings

Every field is independently defaulted except the transport key name,
which the integrator must choose explicitly.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from datetime import timedelta
from typing import Any, Literal, Union

from .core import MIN_ID_BYTES, SessionIDGenerator
from .faults import SessionConfigFault


Duration = Union[int, float, timedelta]

# RFC 6265 cookie-name token (no separators, no whitespace)
_TOKEN = re.compile(r"^[!#$%&'*+\-.^_`|~0-9A-Za-z]+$")

_ADAPTERS = ("cookie", "header")
_SAMESITE = ("lax", "strict", "none")
_BACKENDS = ("memory", "file", "redis")


def whole_seconds(value: Duration | None) -> int | None:
    """
    Convert a duration to whole seconds, truncating toward zero.

    Sub-second precision is not supported by either cookies or store TTLs.
    """
    if value is None:
        return None
    if isinstance(value, timedelta):
        return int(value.total_seconds())
    return int(value)


# ============================================================================
# Sub-Policies
# ============================================================================

@dataclass
class TransportPolicy:
    """
    Controls how session identifiers travel across the network.

    Attributes:
        name: Cookie name or header name carrying the identifier (required)
        adapter: Transport adapter type ("cookie" or "header")
        path: Cookie path scope
        domain: Cookie domain scope
        max_age: Binding lifetime ceiling, whole seconds (None = browser session)
        secure: Restrict the cookie to encrypted transport
        httponly: Hide the cookie from scripts
        samesite: SameSite policy (CSRF protection)

    Example:
        >>> policy = TransportPolicy(
        ...     name="sid",
        ...     max_age=timedelta(hours=12),
        ...     secure=True,
        ...     httponly=True,
        ... )
        >>> policy.max_age
        43200
    """

    name: str
    adapter: Literal["cookie", "header"] = "cookie"
    path: str | None = "/"
    domain: str | None = None
    max_age: Duration | None = None
    secure: bool = True
    httponly: bool = True
    samesite: Literal["strict", "lax", "none"] | None = "lax"

    def __post_init__(self):
        if not self.name:
            raise SessionConfigFault("transport.name", "an identifier key name must be set explicitly")
        if not _TOKEN.match(self.name):
            raise SessionConfigFault("transport.name", f"{self.name!r} is not a valid token")
        if self.adapter not in _ADAPTERS:
            raise SessionConfigFault("transport.adapter", f"unsupported adapter {self.adapter!r}")
        if self.samesite is not None:
            self.samesite = self.samesite.lower()
            if self.samesite not in _SAMESITE:
                raise SessionConfigFault("transport.samesite", f"unsupported value {self.samesite!r}")

        self.max_age = whole_seconds(self.max_age)
        if self.max_age is not None and self.max_age < 0:
            raise SessionConfigFault("transport.max_age", "must not be negative")

    @classmethod
    def from_dict(cls, config: dict[str, Any]) -> TransportPolicy:
        """Create transport policy from configuration dictionary."""
        return cls(
            name=config.get("name", ""),
            adapter=config.get("adapter", "cookie"),
            path=config.get("path", "/"),
            domain=config.get("domain"),
            max_age=config.get("max_age"),
            secure=config.get("secure", True),
            httponly=config.get("httponly", True),
            samesite=config.get("samesite", "lax"),
        )


@dataclass
class PersistencePolicy:
    """
    Controls how payloads persist to storage.

    Attributes:
        backend: Which store adapter to build ("memory", "file", "redis")
        ttl: Absolute record lifetime, reset on every save (None = no expiry)
        key_prefix: Namespace prepended to identifiers to form store keys
        serializer: Payload encoding ("json" or "msgpack")
        timeout: Bound on every store call in seconds (None = unbounded)
        max_sessions: Memory store capacity (LRU eviction)
        directory: File store directory
        redis_url: Redis connection URL
        max_connections: Redis connection pool size
        socket_timeout: Redis socket read/write timeout
        connect_timeout: Redis connect timeout

    Example:
        >>> policy = PersistencePolicy(
        ...     backend="redis",
        ...     ttl=timedelta(minutes=30),
        ...     redis_url="redis://cache:6379/1",
        ... )
    """

    backend: Literal["memory", "file", "redis"] = "memory"
    ttl: Duration | None = None
    key_prefix: str = "sess:"
    serializer: str = "json"
    timeout: float | None = 5.0
    max_sessions: int = 10000
    directory: str | None = None
    redis_url: str = "redis://localhost:6379/0"
    max_connections: int = 10
    socket_timeout: float = 5.0
    connect_timeout: float = 5.0

    def __post_init__(self):
        if self.backend not in _BACKENDS:
            raise SessionConfigFault("persistence.backend", f"unsupported backend {self.backend!r}")
        if self.backend == "file" and not self.directory:
            raise SessionConfigFault("persistence.directory", "required for the file backend")

        self.ttl = whole_seconds(self.ttl)
        if self.ttl is not None and self.ttl <= 0:
            raise SessionConfigFault("persistence.ttl", "must be positive or None")
        if self.timeout is not None and self.timeout <= 0:
            raise SessionConfigFault("persistence.timeout", "must be positive or None")

    @classmethod
    def from_dict(cls, config: dict[str, Any]) -> PersistencePolicy:
        """Create persistence policy from configuration dictionary."""
        defaults = cls()
        return cls(
            backend=config.get("backend", defaults.backend),
            ttl=config.get("ttl"),
            key_prefix=config.get("key_prefix", defaults.key_prefix),
            serializer=config.get("serializer", defaults.serializer),
            timeout=config.get("timeout", defaults.timeout),
            max_sessions=config.get("max_sessions", defaults.max_sessions),
            directory=config.get("directory"),
            redis_url=config.get("redis_url", defaults.redis_url),
            max_connections=config.get("max_connections", defaults.max_connections),
            socket_timeout=config.get("socket_timeout", defaults.socket_timeout),
            connect_timeout=config.get("connect_timeout", defaults.connect_timeout),
        )


# ============================================================================
# Master Policy
# ============================================================================

@dataclass
class SessionPolicy:
    """
    Master policy that defines how sessions behave.

    Attributes:
        name: Policy identifier (used in logs and events)
        transport: Transport sub-policy
        persistence: Persistence sub-policy
        id_byte_length: Random bytes per identifier (>= 16)
        id_prefix: Optional URL-safe identifier prefix

    Example:
        >>> policy = SessionPolicy(
        ...     name="web",
        ...     transport=TransportPolicy(name="sid", max_age=3600),
        ...     persistence=PersistencePolicy(backend="redis", ttl=3600),
        ... )
    """

    name: str
    transport: TransportPolicy
    persistence: PersistencePolicy = field(default_factory=PersistencePolicy)
    id_byte_length: int = MIN_ID_BYTES
    id_prefix: str = ""

    def __post_init__(self):
        if self.id_byte_length < MIN_ID_BYTES:
            raise SessionConfigFault(
                "id_byte_length", f"must be at least {MIN_ID_BYTES} bytes"
            )

    def create_generator(self) -> SessionIDGenerator:
        """Build the identifier generator described by this policy."""
        try:
            return SessionIDGenerator(byte_length=self.id_byte_length, prefix=self.id_prefix)
        except ValueError as e:
            raise SessionConfigFault("id_prefix", str(e)) from e

    @classmethod
    def from_dict(cls, name: str, config: dict[str, Any]) -> SessionPolicy:
        """
        Create policy from configuration dictionary.

        Args:
            name: Policy name
            config: Configuration dict with "transport" and "persistence" sections

        Returns:
            SessionPolicy instance
        """
        return cls(
            name=name,
            transport=TransportPolicy.from_dict(config.get("transport", {})),
            persistence=PersistencePolicy.from_dict(config.get("persistence", {})),
            id_byte_length=config.get("id_byte_length", MIN_ID_BYTES),
            id_prefix=config.get("id_prefix", ""),
        )
