"""
SessionKeeper Sessions - Transport adapters.

Handles session ID extraction and injection across different transports:
- CookieTransport: HTTP cookies (most common)
- HeaderTransport: Custom headers (APIs, mobile apps)

Requests are read through their ``headers`` mapping (or a ``header(name)``
accessor); responses are written through ``set_cookie`` / ``delete_cookie``
or their ``headers`` mapping. Any ASGI framework response with
Starlette-style cookie helpers fits.
"""

from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone
from typing import Any, Protocol, TYPE_CHECKING

from .faults import SessionTransportFault

if TYPE_CHECKING:
    from .core import SessionIDGenerator
    from .policy import TransportPolicy


logger = logging.getLogger("sessionkeeper.sessions.transport")

_EPOCH_EXPIRES = "Thu, 01 Jan 1970 00:00:00 GMT"


# ============================================================================
# SessionTransport Protocol
# ============================================================================

class SessionTransport(Protocol):
    """
    Abstract transport interface for session ID delivery.

    Transports are responsible for:
    - Extracting session ID from requests
    - Issuing and writing session ID into responses
    - Telling the client to discard its session ID

    Transports do NOT handle:
    - Session resolution or rotation (that's SessionEngine)
    - Session persistence (that's SessionStore)
    """

    def extract(self, request: Any) -> str | None:
        """
        Extract session ID from request.

        Returns:
            Session ID string if found, None otherwise

        Raises:
            SessionTransportFault: Request bindings cannot be read
        """
        ...

    def issue(self) -> str:
        """Issue a brand-new identifier."""
        ...

    def write(self, response: Any, session_id: str) -> None:
        """(Re)write the binding with a refreshed lifetime."""
        ...

    def get_or_issue(self, response: Any, request: Any) -> str:
        """
        Read the identifier, issuing and writing a new one if absent.

        Exactly one write when absent, none when present.
        """
        ...

    def delete(self, response: Any, request: Any = None) -> None:
        """Instruct the client to discard its binding. Idempotent."""
        ...


def read_header(request: Any, name: str, transport_type: str) -> str | None:
    """
    Read a single request header as text.

    Raises:
        SessionTransportFault: Header value cannot be decoded
    """
    try:
        getter = getattr(request, "header", None)
        if callable(getter):
            value = getter(name)
        else:
            value = request.headers.get(name)

        if isinstance(value, bytes):
            value = value.decode("latin-1")
    except (UnicodeError, ValueError) as e:
        raise SessionTransportFault(transport_type, f"unreadable '{name}' header: {e}") from e

    return value


def add_set_cookie(headers: Any, value: str) -> None:
    """
    Add a Set-Cookie header to a response without cookie helpers.

    A list of header pairs, or any mapping with ``append(name, value)``
    (multi-value headers), keeps every cookie already set. A plain dict
    holds one value per name, so there the session cookie replaces any
    other Set-Cookie header.
    """
    if isinstance(headers, list):
        headers.append(("Set-Cookie", value))
    elif callable(getattr(headers, "append", None)):
        headers.append("Set-Cookie", value)
    else:
        headers["Set-Cookie"] = value


class _BaseTransport:
    """Issuance and the converged get_or_issue shape shared by adapters."""

    transport_type = "base"

    def __init__(self, policy: TransportPolicy, generator: SessionIDGenerator):
        self.policy = policy
        self.generator = generator

    def issue(self) -> str:
        return self.generator.issue()

    def get_or_issue(self, response: Any, request: Any) -> str:
        session_id = self.extract(request)
        if session_id:
            return session_id

        session_id = self.issue()
        self.write(response, session_id)
        return session_id

    def extract(self, request: Any) -> str | None:
        raise NotImplementedError

    def write(self, response: Any, session_id: str) -> None:
        raise NotImplementedError


# ============================================================================
# CookieTransport - HTTP Cookies
# ============================================================================

class CookieTransport(_BaseTransport):
    """
    Cookie-based session transport.

    Features:
    - HttpOnly flag (XSS protection)
    - Secure flag (HTTPS only)
    - SameSite policy (CSRF protection)
    - Configurable path and domain
    - Max-Age lifetime in whole seconds, refreshed on every write

    Example:
        >>> policy = TransportPolicy(name="sid", max_age=3600)
        >>> transport = CookieTransport(policy, SessionIDGenerator())
        >>> session_id = transport.get_or_issue(response, request)
    """

    transport_type = "cookie"

    def __init__(self, policy: TransportPolicy, generator: SessionIDGenerator):
        super().__init__(policy, generator)
        self.cookie_name = policy.name

        if policy.samesite == "none" and not policy.secure:
            logger.warning(
                f"Cookie '{self.cookie_name}' uses SameSite=None without Secure; "
                "browsers will reject it"
            )

    def extract(self, request: Any) -> str | None:
        """Extract session ID from cookie."""
        cookie_header = read_header(request, "cookie", self.transport_type)
        if not cookie_header:
            return None

        values = self._parse_cookie_values(cookie_header, self.cookie_name)
        if not values:
            return None

        if len(set(values)) > 1:
            # Cookie tossing: a sibling domain planted a second binding
            logger.warning(f"Conflicting values for session cookie '{self.cookie_name}'")
            raise SessionTransportFault(
                self.transport_type,
                f"cookie '{self.cookie_name}' presented {len(values)} times with different values",
            )

        return values[0] or None

    def write(self, response: Any, session_id: str) -> None:
        """Write session ID as cookie."""
        policy = self.policy

        if hasattr(response, "set_cookie"):
            response.set_cookie(
                key=self.cookie_name,
                value=session_id,
                max_age=policy.max_age or None,
                path=policy.path,
                domain=policy.domain,
                secure=policy.secure,
                httponly=policy.httponly,
                samesite=policy.samesite,
            )
        else:
            add_set_cookie(response.headers, self.format_cookie(session_id))

    def delete(self, response: Any, request: Any = None) -> None:
        """Clear session cookie (logout)."""
        if hasattr(response, "delete_cookie"):
            response.delete_cookie(
                key=self.cookie_name,
                path=self.policy.path,
                domain=self.policy.domain,
            )
        else:
            add_set_cookie(response.headers, self.format_cookie("", max_age=0))

    def format_cookie(self, value: str, max_age: int | None = None) -> str:
        """
        Build a Set-Cookie header value.

        Args:
            value: Cookie value
            max_age: Override lifetime; 0 means expire immediately

        Returns:
            Header value string
        """
        policy = self.policy
        if max_age is None:
            max_age = policy.max_age

        cookie_parts = [f"{self.cookie_name}={value}"]

        if policy.path:
            cookie_parts.append(f"Path={policy.path}")

        if policy.domain:
            cookie_parts.append(f"Domain={policy.domain}")

        if max_age == 0 and value == "":
            cookie_parts.append("Max-Age=0")
            cookie_parts.append(f"Expires={_EPOCH_EXPIRES}")
        elif max_age:
            expires_at = datetime.now(timezone.utc) + timedelta(seconds=max_age)
            cookie_parts.append(f"Max-Age={max_age}")
            # Also add Expires for compatibility
            cookie_parts.append(f"Expires={expires_at.strftime('%a, %d %b %Y %H:%M:%S GMT')}")

        if policy.httponly:
            cookie_parts.append("HttpOnly")

        if policy.secure:
            cookie_parts.append("Secure")

        if policy.samesite:
            cookie_parts.append(f"SameSite={policy.samesite.capitalize()}")

        return "; ".join(cookie_parts)

    @staticmethod
    def _parse_cookie_values(cookie_header: str, name: str) -> list[str]:
        """
        Collect every value sent for one cookie name.

        Args:
            cookie_header: Cookie header value
            name: Cookie name to collect

        Returns:
            Values in header order (usually zero or one)
        """
        values = []

        for part in cookie_header.split(";"):
            part = part.strip()
            if "=" not in part:
                continue
            key, value = part.split("=", 1)
            if key.strip() != name:
                continue
            value = value.strip()
            if len(value) >= 2 and value[0] == value[-1] == '"':
                value = value[1:-1]
            values.append(value)

        return values


# ============================================================================
# HeaderTransport - Custom Header
# ============================================================================

class HeaderTransport(_BaseTransport):
    """
    Header-based session transport.

    Used for:
    - API authentication
    - Mobile app sessions
    - Service-to-service communication

    The client echoes the identifier from the response header back in the
    request header of the same name. Scope and cookie flags do not apply.

    Example:
        >>> policy = TransportPolicy(name="X-Session-ID", adapter="header")
        >>> transport = HeaderTransport(policy, SessionIDGenerator())
        >>> session_id = transport.extract(request)
    """

    transport_type = "header"

    def __init__(self, policy: TransportPolicy, generator: SessionIDGenerator):
        super().__init__(policy, generator)
        self.header_name = policy.name

    def extract(self, request: Any) -> str | None:
        """Extract session ID from header."""
        value = read_header(request, self.header_name, self.transport_type)
        if value is None:
            return None
        value = value.strip()
        if "," in value:
            # Header repeated by an intermediary; refuse to guess
            logger.warning(f"Conflicting values for session header '{self.header_name}'")
            raise SessionTransportFault(
                self.transport_type, f"header '{self.header_name}' carries several values"
            )
        return value or None

    def write(self, response: Any, session_id: str) -> None:
        """Write session ID as header."""
        response.headers[self.header_name] = session_id

    def delete(self, response: Any, request: Any = None) -> None:
        """Send an empty header so the client drops its identifier."""
        response.headers[self.header_name] = ""


# ============================================================================
# Transport Factory
# ============================================================================

def create_transport(
    policy: TransportPolicy,
    generator: SessionIDGenerator,
) -> CookieTransport | HeaderTransport:
    """
    Create transport adapter from policy.

    Args:
        policy: Transport policy
        generator: Identifier generator used for issuance

    Returns:
        Transport adapter instance

    Raises:
        ValueError: If adapter type is unsupported
    """
    if policy.adapter == "cookie":
        return CookieTransport(policy, generator)
    elif policy.adapter == "header":
        return HeaderTransport(policy, generator)
    else:
        raise ValueError(f"Unsupported transport adapter: {policy.adapter}")
