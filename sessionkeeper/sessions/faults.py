"""
SessionKeeper Sessions - Fault definitions.

Defines session-specific faults on top of the structured Fault model.
All session errors are structured Faults, not bare exceptions.

Only SessionNotFoundFault is ever turned into control flow (identifier
rotation). Every other fault surfaces to the caller unchanged.
"""

from __future__ import annotations

from typing import Any

from sessionkeeper.faults.core import Fault, FaultDomain, Severity, fingerprint


# Register session fault domain
FaultDomain.SESSION = FaultDomain("session", "Session lifecycle faults")


# ============================================================================
# Session Fault Base
# ============================================================================

class SessionFault(Fault):
    """
    Base class for session-related faults.

    All session faults use FaultDomain.SESSION.
    """

    domain = FaultDomain.SESSION


# ============================================================================
# Lookup Faults
# ============================================================================

class SessionNotFoundFault(SessionFault):
    """
    No live record for the given identifier.

    Raised by stores when the record was never saved, has expired or was
    deleted. This is a normal condition: SessionEngine answers it by
    minting a fresh identifier.
    """

    code = "SESSION_NOT_FOUND"
    message = "Session not found"
    severity = Severity.INFO
    public = True
    retryable = False

    def __init__(self, session_id: str | None = None, **kwargs):
        super().__init__(**kwargs)
        self.session_id_hash = fingerprint(session_id) if session_id else None
        if self.session_id_hash:
            self.metadata["session_id_hash"] = self.session_id_hash


# ============================================================================
# Identifier Faults
# ============================================================================

class SessionRandomnessUnavailableFault(SessionFault):
    """
    The cryptographic randomness source failed.

    This is an environment failure, not a business error. Nothing retries it.
    """

    code = "SESSION_RANDOMNESS_UNAVAILABLE"
    message = "Secure randomness source unavailable"
    severity = Severity.FATAL
    public = False
    retryable = False

    def __init__(self, cause: str | None = None, **kwargs):
        super().__init__(**kwargs)
        self.cause = cause
        if cause:
            self.message = f"Secure randomness source unavailable: {cause}"


# ============================================================================
# Transport Faults
# ============================================================================

class SessionTransportFault(SessionFault):
    """
    Error extracting or writing the session identifier via transport.

    Examples:
    - Header bytes that cannot be decoded
    - Session cookie presented several times with different values
    - Response object that cannot carry a binding
    """

    code = "SESSION_TRANSPORT_ERROR"
    message = "Session transport error"
    severity = Severity.WARN
    public = False
    retryable = False

    def __init__(self, transport_type: str, cause: str, **kwargs):
        super().__init__(**kwargs)
        self.transport_type = transport_type
        self.cause = cause
        self.message = f"Session transport error ({transport_type}): {cause}"


# ============================================================================
# Storage Faults
# ============================================================================

class SessionStoreUnavailableFault(SessionFault):
    """
    Session store is unavailable.

    This is a transient error - retry may succeed.
    Examples: Redis connection failure, file system error.
    """

    code = "SESSION_STORE_UNAVAILABLE"
    message = "Session storage unavailable"
    severity = Severity.ERROR
    public = False
    retryable = True

    def __init__(self, store_name: str, cause: str | None = None, **kwargs):
        super().__init__(**kwargs)
        self.store_name = store_name
        self.cause = cause
        if cause:
            self.message = f"Session store '{store_name}' unavailable: {cause}"
        else:
            self.message = f"Session store '{store_name}' unavailable"


class SessionStoreTimeoutFault(SessionStoreUnavailableFault):
    """Store operation exceeded its bounded timeout."""

    code = "SESSION_STORE_TIMEOUT"

    def __init__(self, store_name: str, operation: str, timeout: float, **kwargs):
        super().__init__(store_name, cause=f"{operation} timed out after {timeout}s", **kwargs)
        self.operation = operation
        self.timeout = timeout


class SessionStoreCorruptedFault(SessionFault):
    """
    Session data in store is corrupted.

    Data cannot be deserialized or is structurally invalid.
    """

    code = "SESSION_STORE_CORRUPTED"
    message = "Session data corrupted"
    severity = Severity.ERROR
    public = False
    retryable = False

    def __init__(self, session_id: str | None = None, cause: str | None = None, **kwargs):
        super().__init__(**kwargs)
        self.cause = cause
        if session_id:
            self.metadata["session_id_hash"] = fingerprint(session_id)
        if cause:
            self.message = f"Session data corrupted: {cause}"


class SessionSerializationFault(SessionFault):
    """Payload could not be encoded or decoded by the configured serializer."""

    code = "SESSION_SERIALIZATION_FAILED"
    message = "Session payload serialization failed"
    severity = Severity.ERROR
    public = False
    retryable = False

    def __init__(self, serializer: str, operation: str, cause: str, **kwargs):
        super().__init__(**kwargs)
        self.serializer = serializer
        self.operation = operation
        self.cause = cause
        self.message = f"Session payload {operation} failed ({serializer}): {cause}"


# ============================================================================
# Lifecycle Faults
# ============================================================================

class SessionCancelledFault(SessionFault):
    """
    Operation deadline expired before the store answered.

    Distinct from SessionNotFoundFault so a slow store never triggers
    identifier rotation.
    """

    code = "SESSION_CANCELLED"
    message = "Session operation cancelled"
    severity = Severity.WARN
    public = False
    retryable = True

    def __init__(self, operation: str, timeout: float | None = None, **kwargs):
        super().__init__(**kwargs)
        self.operation = operation
        self.timeout = timeout
        if timeout is not None:
            self.message = f"Session {operation} cancelled: deadline of {timeout}s exceeded"
        else:
            self.message = f"Session {operation} cancelled"


class SessionDeleteFault(SessionFault):
    """
    Session deletion partially or completely failed.

    Both the store delete and the transport discard are always attempted;
    this fault reports the outcome of each.
    """

    code = "SESSION_DELETE_FAILED"
    message = "Session delete failed"
    severity = Severity.ERROR
    public = False
    retryable = True

    def __init__(
        self,
        store_error: BaseException | None = None,
        transport_error: BaseException | None = None,
        **kwargs: Any,
    ):
        super().__init__(**kwargs)
        self.store_error = store_error
        self.transport_error = transport_error

        parts = []
        if store_error is not None:
            parts.append(f"store: {store_error}")
        if transport_error is not None:
            parts.append(f"transport: {transport_error}")
        self.message = f"Session delete failed ({'; '.join(parts)})"
        self.metadata["store_failed"] = store_error is not None
        self.metadata["transport_failed"] = transport_error is not None

    @property
    def errors(self) -> list[BaseException]:
        """All underlying errors, store first."""
        return [e for e in (self.store_error, self.transport_error) if e is not None]


class SessionConfigFault(SessionFault):
    """Session configuration is invalid or incomplete."""

    code = "SESSION_CONFIG_INVALID"
    message = "Invalid session configuration"
    severity = Severity.FATAL
    public = False
    retryable = False

    def __init__(self, field: str, reason: str, **kwargs):
        super().__init__(**kwargs)
        self.field = field
        self.reason = reason
        self.message = f"Invalid session configuration for '{field}': {reason}"
