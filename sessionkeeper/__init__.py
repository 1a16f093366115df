"""
SessionKeeper - server-side session management for async HTTP services.

Issue an opaque identifier, carry it in a cookie or header, and keep the
session payload in a pluggable store. See ``sessionkeeper.sessions``.
"""

from .config import ConfigLoader, ConfigError
from .faults import Fault, FaultDomain, Severity
from .sessions import (
    Session,
    SessionEngine,
    SessionIDGenerator,
    SessionPolicy,
    TransportPolicy,
    PersistencePolicy,
    MemoryStore,
    FileStore,
    CookieTransport,
    HeaderTransport,
)

__version__ = "0.1.0"

__all__ = [
    "ConfigLoader",
    "ConfigError",
    "Fault",
    "FaultDomain",
    "Severity",
    "Session",
    "SessionEngine",
    "SessionIDGenerator",
    "SessionPolicy",
    "TransportPolicy",
    "PersistencePolicy",
    "MemoryStore",
    "FileStore",
    "CookieTransport",
    "HeaderTransport",
]
