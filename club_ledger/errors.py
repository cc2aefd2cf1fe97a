"""
Ledger error types

All errors raised by the club ledger for bad input or invalid state derive
from LedgerError. They are local, non-fatal and never retried; each carries
a human-readable message and a dict of structured details for the caller.
"""

from typing import Any, Dict, Optional


class LedgerError(Exception):
    """Base class for club ledger errors"""

    kind = "ledger_error"

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def to_dict(self) -> Dict[str, Any]:
        return {"error": self.kind, "detail": self.message, **self.details}


class ValidationError(LedgerError, ValueError):
    """Malformed or out-of-range input, e.g. a non-positive amount"""
    kind = "validation_error"


class NotFoundError(LedgerError):
    """Referenced member, loan or transaction does not exist"""
    kind = "not_found"

    def __init__(self, entity_type: str, entity_id: str):
        super().__init__(
            f"{entity_type.capitalize()} {entity_id} not found",
            {"entity_type": entity_type, "entity_id": entity_id}
        )
        self.entity_type = entity_type
        self.entity_id = entity_id


class ConflictError(LedgerError):
    """The operation would break an invariant, e.g. a second active loan"""
    kind = "conflict"


class InvalidStateError(LedgerError):
    """Operation attempted on an entity in the wrong state, e.g. paying a PAID loan"""
    kind = "invalid_state"
