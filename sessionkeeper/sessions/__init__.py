"""
SessionKeeper Sessions - Server-side session management.

This package provides:
- Cryptographic, URL-safe session identifiers
- Cookie and header identifier transports
- Pluggable payload stores (memory, file, Redis) with TTL expiry
- A lifecycle engine that rotates identifiers on every store miss

Philosophy:
- Identifiers carry no meaning and are never trusted until they resolve
- Sessions are explicit (load_or_new, then save or delete)
- Failures are typed faults; only "not found" becomes control flow
"""

from .core import (
    Session,
    SessionIDGenerator,
    SessionState,
)

from .policy import (
    SessionPolicy,
    PersistencePolicy,
    TransportPolicy,
)

from .serializers import (
    JsonSessionSerializer,
    MsgpackSessionSerializer,
    get_serializer,
)

from .store import (
    SessionStore,
    BaseStore,
    MemoryStore,
    FileStore,
    create_store,
)

from .transport import (
    SessionTransport,
    CookieTransport,
    HeaderTransport,
    create_transport,
)

from .engine import SessionEngine

from .faults import (
    SessionFault,
    SessionNotFoundFault,
    SessionRandomnessUnavailableFault,
    SessionTransportFault,
    SessionStoreUnavailableFault,
    SessionStoreTimeoutFault,
    SessionStoreCorruptedFault,
    SessionSerializationFault,
    SessionCancelledFault,
    SessionDeleteFault,
    SessionConfigFault,
)

__all__ = [
    # Core types
    "Session",
    "SessionIDGenerator",
    "SessionState",
    # Policy types
    "SessionPolicy",
    "PersistencePolicy",
    "TransportPolicy",
    # Engine
    "SessionEngine",
    # Storage
    "SessionStore",
    "BaseStore",
    "MemoryStore",
    "FileStore",
    "create_store",
    # Serializers
    "JsonSessionSerializer",
    "MsgpackSessionSerializer",
    "get_serializer",
    # Transport
    "SessionTransport",
    "CookieTransport",
    "HeaderTransport",
    "create_transport",
    # Faults
    "SessionFault",
    "SessionNotFoundFault",
    "SessionRandomnessUnavailableFault",
    "SessionTransportFault",
    "SessionStoreUnavailableFault",
    "SessionStoreTimeoutFault",
    "SessionStoreCorruptedFault",
    "SessionSerializationFault",
    "SessionCancelledFault",
    "SessionDeleteFault",
    "SessionConfigFault",
]
