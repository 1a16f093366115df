"""
SessionKeeper Sessions - Core types.

Defines fundamental session data structures:
- SessionIDGenerator: Opaque cryptographic identifier issuance
- SessionState: Terminal state of a load_or_new call
- Session: Identifier + payload pair handed to request handlers
"""

from __future__ import annotations

import base64
import re
import secrets
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Iterator

from .faults import SessionRandomnessUnavailableFault


MIN_ID_BYTES = 16

# Presented identifiers longer than this never reach a store.
MAX_ID_LENGTH = 512

_URL_SAFE = re.compile(r"^[A-Za-z0-9_\-]+$")


def urlsafe_encode(raw: bytes) -> str:
    """URL-safe base64 with the padding stripped."""
    return base64.urlsafe_b64encode(raw).decode("ascii").rstrip("=")


# ============================================================================
# SessionIDGenerator - Opaque Cryptographic Identifier
# ============================================================================

class SessionIDGenerator:
    """
    Issues opaque session identifiers with cryptographic randomness.

    Rules:
    - Never encode meaning (no user ID, no timestamps)
    - Cryptographically random (at least 16 bytes = 128 bits entropy)
    - URL-safe encoding, no padding, no separators
    - Optional fixed prefix for identification (e.g. ``sess_``)

    Example:
        >>> gen = SessionIDGenerator(byte_length=32, prefix="sess_")
        >>> sid = gen.issue()
        >>> sid.startswith("sess_")
        True
    """

    __slots__ = ("byte_length", "encoder", "prefix")

    def __init__(
        self,
        byte_length: int = MIN_ID_BYTES,
        encoder: Callable[[bytes], str] | None = None,
        prefix: str = "",
    ):
        """
        Create generator.

        Args:
            byte_length: Random bytes per identifier (>= 16)
            encoder: bytes -> text encoder (default: URL-safe base64, unpadded)
            prefix: URL-safe tag prepended to every identifier
        """
        if byte_length < MIN_ID_BYTES:
            raise ValueError(f"Session ID must use at least {MIN_ID_BYTES} random bytes")
        if prefix and not _URL_SAFE.match(prefix):
            raise ValueError("Session ID prefix must be URL-safe")

        self.byte_length = byte_length
        self.encoder = encoder or urlsafe_encode
        self.prefix = prefix

    def issue(self) -> str:
        """
        Issue a fresh identifier.

        Raises:
            SessionRandomnessUnavailableFault: OS randomness source failed
        """
        try:
            raw = secrets.token_bytes(self.byte_length)
        except (OSError, NotImplementedError) as e:
            raise SessionRandomnessUnavailableFault(cause=str(e)) from e

        return f"{self.prefix}{self.encoder(raw)}"

    def looks_valid(self, value: str) -> bool:
        """
        Cheap syntactic check of a presented identifier.

        Does not say whether the identifier exists - only the store knows.
        The alphabet is only checked for the default encoder; a custom
        encoder is trusted to produce whatever its store keys can hold.
        """
        if not value or len(value) > MAX_ID_LENGTH:
            return False
        if self.prefix and not value.startswith(self.prefix):
            return False
        if self.encoder is not urlsafe_encode:
            return True
        return bool(_URL_SAFE.match(value))

    def __repr__(self) -> str:
        return f"SessionIDGenerator(byte_length={self.byte_length}, prefix={self.prefix!r})"


# ============================================================================
# SessionState - Per-request Outcome
# ============================================================================

class SessionState(str, Enum):
    """
    Terminal state of a load_or_new call.

    - RESOLVED: presented identifier resolved to a stored record
    - ROTATED: no usable record; a new identifier was minted
    """

    RESOLVED = "resolved"
    ROTATED = "rotated"


# ============================================================================
# Session - Loaded Unit of State
# ============================================================================

@dataclass
class Session:
    """
    Result of SessionEngine.load_or_new.

    The payload is application-defined and opaque to the engine. Handlers
    mutate ``data`` and hand ``id`` and ``data`` back to
    SessionEngine.save.

    Unpacks as ``(id, data, found)``:

        >>> sid, data, found = await engine.load_or_new(request, response)
    """

    id: str
    data: Any = field(default_factory=dict)
    state: SessionState = SessionState.ROTATED

    @property
    def found(self) -> bool:
        """True if the presented identifier resolved to stored data."""
        return self.state is SessionState.RESOLVED

    @property
    def is_new(self) -> bool:
        return not self.found

    def __iter__(self) -> Iterator[Any]:
        yield self.id
        yield self.data
        yield self.found

    def __repr__(self) -> str:
        # Never print the raw identifier
        return f"Session(id={self.id[:6]}..., state={self.state.value})"
