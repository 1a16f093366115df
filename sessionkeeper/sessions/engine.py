"""
SessionKeeper Sessions - Session Engine.

The SessionEngine orchestrates the per-request session lifecycle:
1. Detection - Read (or issue) the identifier through the transport
2. Resolution - Load the payload from the store
3. Rotation - Mint a fresh identifier when the store has no record
4. Commit - Persist the payload and refresh the transport binding
5. Destruction - Drop the record and the client binding together

Anti-fixation rule: an identifier that does not resolve in the store is
never adopted for a new session. A store miss always rotates, whether the
identifier was just issued or presented by the client. Identifiers that
fail the generator's syntactic check rotate without a store lookup.

SessionEngine is app-scoped (one instance shared by all in-flight
requests) and keeps no per-request state.
"""

from __future__ import annotations

import asyncio
import copy
import logging
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable, TYPE_CHECKING, TypeVar

from sessionkeeper.faults.core import fingerprint

from .core import Session, SessionIDGenerator, SessionState
from .faults import (
    SessionCancelledFault,
    SessionDeleteFault,
    SessionNotFoundFault,
)

if TYPE_CHECKING:
    from .policy import SessionPolicy
    from .store import SessionStore
    from .transport import SessionTransport


T = TypeVar("T")

EventHandler = Callable[[dict[str, Any]], None]


# ============================================================================
# SessionEngine - Lifecycle Orchestrator
# ============================================================================

class SessionEngine:
    """
    Session lifecycle orchestrator.

    Example:
        >>> engine = SessionEngine.from_policy(policy)
        >>> session = await engine.load_or_new(request, response)
        >>> session.data["counter"] = session.data.get("counter", 0) + 1
        >>> await engine.save(request, response, session.id, session.data)
    """

    def __init__(
        self,
        policy: SessionPolicy,
        store: SessionStore,
        transport: SessionTransport,
        generator: SessionIDGenerator | None = None,
        logger: logging.Logger | None = None,
    ):
        """
        Initialize session engine.

        Args:
            policy: Session policy (names the engine in logs and events)
            store: Session store (persistence)
            transport: Session transport (delivery)
            generator: Identifier generator used for rotation
                (defaults to the transport's own generator)
            logger: Optional logger
        """
        self.policy = policy
        self.store = store
        self.transport = transport
        self.generator = generator or getattr(transport, "generator", None) or policy.create_generator()
        self.logger = logger or logging.getLogger("sessionkeeper.sessions")

        # Event callbacks (for observability)
        self._event_handlers: list[EventHandler] = []

    @classmethod
    def from_policy(cls, policy: SessionPolicy, logger: logging.Logger | None = None) -> SessionEngine:
        """Build store, transport and generator from one policy."""
        from .store import create_store
        from .transport import create_transport

        generator = policy.create_generator()
        return cls(
            policy=policy,
            store=create_store(policy.persistence),
            transport=create_transport(policy.transport, generator),
            generator=generator,
            logger=logger,
        )

    # ========================================================================
    # Detection + Resolution
    # ========================================================================

    async def load_or_new(
        self,
        request: Any,
        response: Any,
        *,
        default: Any = None,
        timeout: float | None = None,
    ) -> Session:
        """
        Resolve the session for a request.

        Call exactly once per request, before save() or delete(). Afterwards
        call save() (even if the payload is unchanged, to refresh lifetimes)
        or delete().

        Args:
            request: Incoming request
            response: Outgoing response (receives issued identifiers)
            default: Payload for a new session; a callable is invoked,
                anything else is deep-copied (None means ``{}``)
            timeout: Deadline for the whole operation in seconds

        Returns:
            Session in state RESOLVED (found) or ROTATED (new identifier)

        Raises:
            SessionTransportFault: Request bindings cannot be read
            SessionRandomnessUnavailableFault: Identifier issuance failed
            SessionStoreUnavailableFault: Store failed or timed out
            SessionStoreCorruptedFault: Stored payload cannot be decoded
            SessionCancelledFault: ``timeout`` expired
        """
        return await self._deadline(
            "load_or_new", self._load_or_new(request, response, default), timeout
        )

    async def _load_or_new(self, request: Any, response: Any, default: Any) -> Session:
        session_id = self.transport.get_or_issue(response, request)

        if not self.generator.looks_valid(session_id):
            self.logger.debug(f"Malformed session identifier {fingerprint(session_id)}, not looked up")
            return self._rotate(session_id, response, default, request)

        try:
            data = await self.store.load(session_id)
        except SessionNotFoundFault:
            return self._rotate(session_id, response, default, request)

        self._emit_event("session_resolved", session_id, request)
        return Session(id=session_id, data=data, state=SessionState.RESOLVED)

    def _rotate(self, stale_id: str, response: Any, default: Any, request: Any) -> Session:
        """
        Replace an identifier that resolved to nothing.

        The stale value is discarded without re-reading the request, and the
        replacement is written at once so the client never leaves this
        request still bound to the stale identifier.
        """
        new_id = self.generator.issue()
        self.transport.write(response, new_id)

        self.logger.debug(
            f"Session rotated on store miss: {fingerprint(stale_id)} -> {fingerprint(new_id)}"
        )
        self._emit_event("session_rotated", new_id, request, previous_id=stale_id)

        return Session(id=new_id, data=self._new_payload(default), state=SessionState.ROTATED)

    @staticmethod
    def _new_payload(default: Any) -> Any:
        if default is None:
            return {}
        if callable(default):
            return default()
        return copy.deepcopy(default)

    # ========================================================================
    # Commit
    # ========================================================================

    async def save(
        self,
        request: Any,
        response: Any,
        session_id: str,
        payload: Any,
        *,
        timeout: float | None = None,
    ) -> None:
        """
        Persist the payload and refresh the transport binding.

        The store write resets the record TTL; the transport write resets
        the client-side lifetime. Nothing is written to the transport if
        the store write fails.

        Raises:
            SessionStoreUnavailableFault: Store failed or timed out
            SessionSerializationFault: Payload cannot be encoded
            SessionCancelledFault: ``timeout`` expired
        """
        await self._deadline("save", self.store.save(session_id, payload), timeout)
        self.transport.write(response, session_id)
        self._emit_event("session_saved", session_id, request)

    # ========================================================================
    # Destruction
    # ========================================================================

    async def delete(
        self,
        request: Any,
        response: Any,
        session_id: str,
        *,
        timeout: float | None = None,
    ) -> None:
        """
        Destroy session (logout).

        Both the store record and the client binding are removed; a failure
        in one never skips the other. Deleting twice is not an error.

        Raises:
            SessionDeleteFault: Store delete, transport discard, or both failed
        """
        store_error: Exception | None = None
        transport_error: Exception | None = None

        try:
            await self._deadline("delete", self.store.delete(session_id), timeout)
        except Exception as e:
            self.logger.error(f"Failed to delete session record {fingerprint(session_id)}: {e}")
            store_error = e

        try:
            self.transport.delete(response, request)
        except Exception as e:
            self.logger.error(f"Failed to clear session binding {fingerprint(session_id)}: {e}")
            transport_error = e

        if store_error is not None or transport_error is not None:
            raise SessionDeleteFault(store_error=store_error, transport_error=transport_error)

        self._emit_event("session_deleted", session_id, request)

    # ========================================================================
    # Deadline
    # ========================================================================

    async def _deadline(self, operation: str, awaitable: Awaitable[T], timeout: float | None) -> T:
        """Apply the caller's deadline; expiry is a cancellation, never a miss."""
        if timeout is None:
            return await awaitable
        try:
            return await asyncio.wait_for(awaitable, timeout)
        except asyncio.TimeoutError as e:
            self.logger.warning(f"Session {operation} cancelled after {timeout}s deadline")
            raise SessionCancelledFault(operation, timeout) from e

    # ========================================================================
    # Observability
    # ========================================================================

    def _emit_event(
        self,
        event_name: str,
        session_id: str,
        request: Any,
        previous_id: str | None = None,
    ) -> None:
        """
        Emit session event for observability.

        Identifiers are reduced to fingerprints before leaving the engine.
        """
        event_data: dict[str, Any] = {
            "event": event_name,
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "policy": self.policy.name,
            "session_id_hash": fingerprint(session_id),
        }

        if previous_id:
            event_data["previous_id_hash"] = fingerprint(previous_id)

        if request is not None:
            path = getattr(getattr(request, "url", None), "path", None) or getattr(request, "path", None)
            if isinstance(path, str):
                event_data["request_path"] = path
            method = getattr(request, "method", None)
            if isinstance(method, str):
                event_data["request_method"] = method

        for handler in self._event_handlers:
            try:
                handler(event_data)
            except Exception as e:
                self.logger.error(f"Event handler error: {e}")

        self.logger.debug(f"Session event: {event_name}", extra={"session_event": event_data})

    def on_event(self, handler: EventHandler) -> None:
        """
        Register event handler for observability.

        Args:
            handler: Callable that receives event dict
        """
        self._event_handlers.append(handler)

    # ========================================================================
    # Maintenance
    # ========================================================================

    async def cleanup_expired(self) -> int:
        """
        Remove expired records from store.

        Returns:
            Number of records removed
        """
        count = await self.store.cleanup_expired()
        self.logger.info(f"Cleaned up {count} expired sessions")
        return count

    async def shutdown(self) -> None:
        """Gracefully shutdown engine (releases store resources)."""
        await self.store.shutdown()
