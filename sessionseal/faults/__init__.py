"""
SessionSeal Faults - structured fault objects.

Errors in SessionSeal are typed fault signals carrying a stable code,
a domain, a severity and retry semantics, so that callers can map them
to HTTP outcomes without string matching.

Core exports:
- Fault: Base fault class
- FaultDomain: Domain taxonomy
- Severity: Severity levels
"""

from .core import (
    Fault,
    FaultDomain,
    Severity,
    DOMAIN_DEFAULTS,
)

__all__ = [
    "Fault",
    "FaultDomain",
    "Severity",
    "DOMAIN_DEFAULTS",
]
