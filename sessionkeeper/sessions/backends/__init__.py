"""
SessionKeeper Sessions - Network store backends.

Kept apart from sessions.store so importing the core never requires a
backend client library.
"""

from .redis import RedisStore

__all__ = ["RedisStore"]
