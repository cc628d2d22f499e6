"""
Domain: error taxonomy for the sale lifecycle engine.

Each class maps to one user-visible message family (see services/messages.py):
- ValidationError: bad input, rejected before any mutation.
- ConsistencyConflictError: an optimistic check no longer holds; refresh and retry.
- TransientStorageError: the storage service could not be reached after retries.
- SaleOperationError: a multi-step operation failed part-way through.
- InvalidScheduleError: an installment schedule would be empty or wrong.
"""

from __future__ import annotations

from typing import Any, Optional


class SalesEngineError(Exception):
    """Base exception for all engine errors."""

    code: str = "engine_error"


class ValidationError(SalesEngineError):
    """Raised when caller input is invalid. Always names the offending field."""

    code = "validation_error"

    def __init__(self, field: str, message: str, value: Any = None):
        self.field = field
        self.value = value
        super().__init__(f"{field}: {message}")


class EntityNotFoundError(SalesEngineError):
    """Raised when a referenced sale, piece or offer does not exist."""

    code = "not_found"

    def __init__(self, entity_type: str, entity_id: Any):
        self.entity_type = entity_type
        self.entity_id = entity_id
        super().__init__(f"{entity_type} {entity_id} not found")


class ConsistencyConflictError(SalesEngineError):
    """Raised when a conditional update matched no row (state changed underneath us)."""

    code = "conflict"

    def __init__(
        self,
        message: str,
        entity_type: Optional[str] = None,
        entity_id: Any = None,
        expected: Any = None,
        actual: Any = None,
    ):
        self.entity_type = entity_type
        self.entity_id = entity_id
        self.expected = expected
        self.actual = actual
        super().__init__(message)


class PieceUnavailableError(ConsistencyConflictError):
    """Raised when the availability guard rejects a piece."""

    code = "piece_unavailable"

    def __init__(self, piece_id: Any, reason: str):
        self.reason = reason
        super().__init__(
            f"Piece {piece_id} is not available ({reason})",
            entity_type="piece",
            entity_id=piece_id,
        )


class InvalidTransitionError(ConsistencyConflictError):
    """Raised when a sale transition is not allowed from its current status."""

    code = "invalid_transition"

    def __init__(self, sale_id: Any, current: str, target: str):
        self.current = current
        self.target = target
        super().__init__(
            f"Sale {sale_id} cannot move from {current} to {target}",
            entity_type="sale",
            entity_id=sale_id,
            expected=target,
            actual=current,
        )


class TransientStorageError(SalesEngineError):
    """Raised when the storage service is unreachable after every retry attempt."""

    code = "transient"


class StorageError(SalesEngineError):
    """Raised when the storage service rejects a request (non-transient)."""

    code = "storage_error"

    def __init__(self, message: str, db_code: Optional[str] = None):
        # Postgres SQLSTATE when the storage layer reports one (e.g. "23505").
        self.db_code = db_code
        super().__init__(message)

    @property
    def is_unique_violation(self) -> bool:
        return self.db_code == "23505"


class InvalidScheduleError(SalesEngineError):
    """Raised when an installment schedule would have zero months or zero payment."""

    code = "invalid_schedule"

    def __init__(self, message: str, number_of_months: int = 0, monthly_payment: Any = None):
        self.number_of_months = number_of_months
        self.monthly_payment = monthly_payment
        super().__init__(message)


class SaleOperationError(SalesEngineError):
    """
    Raised when a step of a multi-step sale operation failed.

    failed_operation names the step; compensated tells whether every rollback
    of the already-completed steps succeeded.
    """

    code = "operation_failed"

    def __init__(
        self,
        failed_operation: Optional[str],
        compensated: bool,
        cause: Optional[BaseException] = None,
    ):
        self.failed_operation = failed_operation
        self.compensated = compensated
        self.cause = cause
        state = "compensated" if compensated else "NOT fully compensated"
        super().__init__(f"Step {failed_operation!r} failed ({state}): {cause}")

    @property
    def is_conflict(self) -> bool:
        return isinstance(self.cause, ConsistencyConflictError)


__all__ = [
    "SalesEngineError",
    "ValidationError",
    "EntityNotFoundError",
    "ConsistencyConflictError",
    "PieceUnavailableError",
    "InvalidTransitionError",
    "TransientStorageError",
    "StorageError",
    "InvalidScheduleError",
    "SaleOperationError",
]
