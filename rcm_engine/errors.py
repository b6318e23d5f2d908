"""
Typed errors raised by the engine.

    RCMEngineError
    +-- ValidationError       malformed or missing input
    +-- ComplianceViolation   a statutory rule was broken
    +-- InsufficientBalance   a ledger append would drive a head negative
    +-- NotFoundError         a referenced rule or ledger entry is absent

Every error carries a machine-readable ``code`` so callers (queue handlers,
API routers) can map it without parsing messages.
"""

from __future__ import annotations

from decimal import Decimal
from typing import Optional


class RCMEngineError(Exception):
    code: str = "RCM_ENGINE_ERROR"

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class ValidationError(RCMEngineError, ValueError):
    code = "VALIDATION_ERROR"

    def __init__(self, message: str, field: Optional[str] = None) -> None:
        super().__init__(message)
        self.field = field


class ComplianceViolation(RCMEngineError):
    code = "COMPLIANCE_VIOLATION"

    def __init__(self, message: str, rule: str) -> None:
        super().__init__(message)
        self.rule = rule


class InsufficientBalance(RCMEngineError):
    code = "INSUFFICIENT_BALANCE"

    def __init__(self, head: str, available: Decimal, required: Decimal) -> None:
        self.head = head
        self.available = available
        self.required = required
        self.shortfall = required - available
        super().__init__(
            f"Insufficient {head.upper()} balance: available {available}, "
            f"required {required}, shortfall {self.shortfall}"
        )


class NotFoundError(RCMEngineError, LookupError):
    code = "NOT_FOUND"

    def __init__(self, kind: str, key: str) -> None:
        super().__init__(f"{kind} not found: {key}")
        self.kind = kind
        self.key = key
