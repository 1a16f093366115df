"""
SessionKeeper Sessions - Pluggable payload serializers.

Supports JSON (default, self-describing text) and msgpack (compact,
cross-language). Both round-trip objects, arrays, strings, numbers,
booleans and null exactly. Failures surface as SessionSerializationFault.
"""

from __future__ import annotations

import json
import logging
from typing import Any, Protocol

from .faults import SessionSerializationFault

logger = logging.getLogger("sessionkeeper.sessions.serializers")


class SessionSerializer(Protocol):
    """Encode/decode pair used by stores for payload bytes."""

    name: str

    def serialize(self, value: Any) -> bytes:
        ...

    def deserialize(self, data: bytes) -> Any:
        ...


class JsonSessionSerializer:
    """
    JSON serializer - safe, human-readable, cross-language.

    Default serializer. Strict: values JSON cannot represent are rejected
    instead of being stringified, so what is saved is what is loaded.
    """

    name = "json"

    def serialize(self, value: Any) -> bytes:
        """Serialize value to JSON bytes."""
        try:
            return json.dumps(value, ensure_ascii=False, allow_nan=False).encode("utf-8")
        except (TypeError, ValueError, OverflowError) as e:
            logger.warning(f"JSON serialization failed: {e}")
            raise SessionSerializationFault(self.name, "encode", str(e)) from e

    def deserialize(self, data: bytes) -> Any:
        """Deserialize JSON bytes to value."""
        if isinstance(data, str):
            data = data.encode("utf-8")
        try:
            return json.loads(data.decode("utf-8"))
        except (json.JSONDecodeError, UnicodeDecodeError) as e:
            logger.warning(f"JSON deserialization failed: {e}")
            raise SessionSerializationFault(self.name, "decode", str(e)) from e


class MsgpackSessionSerializer:
    """
    MessagePack serializer - compact binary, cross-language.

    Requires `msgpack` package: pip install sessionkeeper[msgpack]
    """

    name = "msgpack"

    def __init__(self):
        try:
            import msgpack
        except ImportError:
            raise ImportError(
                "MsgpackSessionSerializer requires 'msgpack' package. "
                "Install with: pip install msgpack"
            )
        self._msgpack = msgpack

    def serialize(self, value: Any) -> bytes:
        """Serialize value to msgpack bytes."""
        try:
            return self._msgpack.packb(value, use_bin_type=True)
        except (TypeError, ValueError, OverflowError) as e:
            logger.warning(f"Msgpack serialization failed: {e}")
            raise SessionSerializationFault(self.name, "encode", str(e)) from e

    def deserialize(self, data: bytes) -> Any:
        """Deserialize msgpack bytes."""
        try:
            return self._msgpack.unpackb(data, raw=False)
        except Exception as e:
            logger.warning(f"Msgpack deserialization failed: {e}")
            raise SessionSerializationFault(self.name, "decode", str(e)) from e


def get_serializer(name: str = "json") -> SessionSerializer:
    """
    Factory for serializer instances.

    Args:
        name: "json" or "msgpack"

    Returns:
        SessionSerializer instance

    Raises:
        ValueError: If serializer name is unknown
    """
    serializers = {
        "json": JsonSessionSerializer,
        "msgpack": MsgpackSessionSerializer,
    }
    cls = serializers.get(name.lower())
    if cls is None:
        raise ValueError(
            f"Unknown serializer: {name!r}. Available: {', '.join(sorted(serializers))}"
        )
    return cls()
