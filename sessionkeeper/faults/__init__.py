"""
SessionKeeper Faults - structured fault handling.

Errors in SessionKeeper are typed fault signals that carry a stable code,
a domain, a severity and retry semantics, so a host application can map
them to responses and alerts without string matching.
"""

from .core import (
    Fault,
    FaultDomain,
    Severity,
    fingerprint,
)

__all__ = [
    "Fault",
    "FaultDomain",
    "Severity",
    "fingerprint",
]
