"""
Domain: Sales of land pieces.

Lifecycle:
- created `pending` by the sale-creation flow (piece becomes Reserved)
- `pending -> completed` on confirmation (piece becomes Sold)
- `pending|completed -> cancelled` on cancellation (piece becomes Available)
- `completed -> pending` when an erroneous confirmation is reverted

Deletion is logical: a cancelled sale stays in storage. The status and
payment-method strings are part of the client-facing vocabulary.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import Any, Dict, FrozenSet, Optional, Tuple
from uuid import UUID

from .time import require_utc_timestamp


class SaleStatus(str, Enum):
    PENDING = "pending"
    COMPLETED = "completed"
    CANCELLED = "cancelled"

    @property
    def is_active(self) -> bool:
        return self in (SaleStatus.PENDING, SaleStatus.COMPLETED)


class PaymentMethod(str, Enum):
    FULL = "full"
    INSTALLMENT = "installment"
    PROMISE = "promise"


ACTIVE_SALE_STATUSES: Tuple[SaleStatus, ...] = (SaleStatus.PENDING, SaleStatus.COMPLETED)

# Allowed (from, to) pairs.
SALE_TRANSITIONS: FrozenSet[Tuple[SaleStatus, SaleStatus]] = frozenset(
    {
        (SaleStatus.PENDING, SaleStatus.COMPLETED),
        (SaleStatus.PENDING, SaleStatus.CANCELLED),
        (SaleStatus.COMPLETED, SaleStatus.CANCELLED),
        (SaleStatus.COMPLETED, SaleStatus.PENDING),
    }
)


def can_transition(current: SaleStatus, target: SaleStatus) -> bool:
    return (current, target) in SALE_TRANSITIONS


@dataclass(frozen=True, slots=True)
class Sale:
    """
    Immutable snapshot of a sale row.

    Financial fields are computed once at creation (sale_price, deposit,
    advance, installment cadence). Confirmation-time fields (contract writer,
    company fee, installment start date, promise payments) are filled when the
    sale is confirmed.
    """

    sale_id: UUID
    land_piece_id: UUID
    client_id: UUID
    payment_method: PaymentMethod
    status: SaleStatus
    sale_price: Decimal
    deposit_amount: Decimal = Decimal("0")

    advance_amount: Optional[Decimal] = None
    monthly_installment_amount: Optional[Decimal] = None
    number_of_installments: Optional[int] = None
    payment_offer_id: Optional[UUID] = None

    # Confirmation-time fields
    company_fee_amount: Optional[Decimal] = None
    partial_payment_amount: Optional[Decimal] = None
    remaining_payment_amount: Optional[Decimal] = None
    contract_writer_id: Optional[UUID] = None
    installment_start_date: Optional[date] = None
    confirmed_by: Optional[UUID] = None
    confirmed_at: Optional[datetime] = None

    notes: Optional[str] = None
    created_by: Optional[UUID] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    def __post_init__(self) -> None:
        for name in ("confirmed_at", "created_at", "updated_at"):
            value = getattr(self, name)
            if value is not None:
                require_utc_timestamp(name, value)

    @property
    def is_active(self) -> bool:
        return self.status.is_active

    def promise_balance(self) -> Decimal:
        """
        Amount still owed on a promise-of-sale.

        Uses the stored remaining amount once a partial payment was taken,
        otherwise price minus deposit minus any partial payments.
        """

        if self.remaining_payment_amount is not None:
            return self.remaining_payment_amount
        return self.sale_price - self.deposit_amount - (self.partial_payment_amount or Decimal("0"))

    def snapshot(self) -> Dict[str, Any]:
        """Plain-dict view used for audit details."""

        return {
            "sale_id": str(self.sale_id),
            "land_piece_id": str(self.land_piece_id),
            "client_id": str(self.client_id),
            "payment_method": self.payment_method.value,
            "status": self.status.value,
            "sale_price": str(self.sale_price),
            "deposit_amount": str(self.deposit_amount),
            "company_fee_amount": _str_or_none(self.company_fee_amount),
            "partial_payment_amount": _str_or_none(self.partial_payment_amount),
            "remaining_payment_amount": _str_or_none(self.remaining_payment_amount),
        }


@dataclass(frozen=True, slots=True)
class ConfirmationDetails:
    """Fields supplied by the confirming actor."""

    contract_writer_id: Optional[UUID] = None
    installment_start_date: Optional[date] = None
    company_fee_amount: Optional[Decimal] = None
    promise_payment_amount: Optional[Decimal] = None
    notes: Optional[str] = None


def _str_or_none(value: Optional[Decimal]) -> Optional[str]:
    return str(value) if value is not None else None
