"""
Domain: Installment schedule items.

A schedule is owned by exactly one sale and is always regenerated as a whole
(replace-all). Numbers are 1-based and contiguous; the last item absorbs any
rounding remainder so the schedule sums to the amount financed.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from typing import Optional
from uuid import UUID


@dataclass(frozen=True, slots=True)
class InstallmentScheduleItem:
    installment_number: int
    amount_due: Decimal
    due_date: date
    sale_id: Optional[UUID] = None

    def __post_init__(self) -> None:
        if self.installment_number < 1:
            raise ValueError("installment_number must be >= 1")
