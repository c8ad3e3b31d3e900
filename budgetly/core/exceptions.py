"""
Typed exceptions for the goal ledger and recurrence engine.

Every error carries a machine-readable ``code`` and structured ``details`` so
callers branch on type and data, never on message text.

    BudgetlyError
    +-- ValidationError           malformed input, field-level messages
    +-- NotFoundError             goal / schedule / transaction missing
    +-- ConcurrencyConflictError  lock or CAS contention after retries
    +-- GenerationFailure         recurring occurrence could not be persisted
"""

from datetime import date
from typing import Any, Dict, List, Optional


class BudgetlyError(Exception):
    """Base class for all domain errors."""

    code: str = "BUDGETLY_ERROR"

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def to_dict(self) -> Dict[str, Any]:
        return {"code": self.code, "message": self.message, "details": self.details}


class ValidationError(BudgetlyError):
    """Input rejected; ``field_errors`` maps field name to message."""

    code = "VALIDATION_ERROR"

    def __init__(self, field_errors: Dict[str, str], message: Optional[str] = None):
        self.field_errors = dict(field_errors)
        summary = "; ".join(f"{field}: {msg}" for field, msg in self.field_errors.items())
        super().__init__(message or f"Validation failed: {summary}", {"fields": self.field_errors})

    @classmethod
    def from_pydantic(cls, exc) -> "ValidationError":
        """Convert a pydantic ``ValidationError`` into field-level messages."""
        field_errors: Dict[str, str] = {}
        for error in exc.errors():
            loc = ".".join(str(part) for part in error.get("loc", ())) or "__root__"
            msg = error.get("msg", "invalid value")
            # pydantic prefixes errors raised inside validators
            if msg.startswith("Value error, "):
                msg = msg[len("Value error, "):]
            field_errors.setdefault(loc, msg)
        return cls(field_errors)


class NotFoundError(BudgetlyError):
    code = "NOT_FOUND"

    def __init__(self, entity: str, entity_id: Any):
        self.entity = entity
        self.entity_id = entity_id
        super().__init__(
            f"{entity} {entity_id} not found",
            {"entity": entity, "entity_id": str(entity_id)},
        )


class ConcurrencyConflictError(BudgetlyError):
    code = "CONCURRENCY_CONFLICT"

    def __init__(self, entity: str, entity_id: Any, attempts: int = 1):
        self.entity = entity
        self.entity_id = entity_id
        self.attempts = attempts
        super().__init__(
            f"Concurrent modification of {entity} {entity_id} (after {attempts} attempt(s))",
            {"entity": entity, "entity_id": str(entity_id), "attempts": attempts},
        )


class GenerationFailure(BudgetlyError):
    """A recurring occurrence could not be persisted; its anchor was not advanced."""

    code = "GENERATION_FAILURE"

    def __init__(
        self,
        schedule_id: Any,
        occurrence_date: Optional[date],
        reason: str,
        generated: Optional[List[Any]] = None,
    ):
        self.schedule_id = schedule_id
        self.occurrence_date = occurrence_date
        self.reason = reason
        # Transactions committed earlier in the same catch-up batch
        self.generated = list(generated or [])
        super().__init__(
            f"Failed to generate occurrence {occurrence_date} for schedule {schedule_id}: {reason}",
            {
                "schedule_id": str(schedule_id),
                "occurrence_date": occurrence_date.isoformat() if occurrence_date else None,
                "reason": reason,
            },
        )
