"""
Domain: Land pieces (parcels).

Invariant maintained by the sale engine (not by this module):
- status is Reserved or Sold iff exactly one non-cancelled Sale references the piece.

The status strings are part of the client-facing vocabulary and must stay stable.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Optional
from uuid import UUID

from .time import require_utc_timestamp


class PieceStatus(str, Enum):
    AVAILABLE = "Available"
    RESERVED = "Reserved"
    SOLD = "Sold"
    CANCELLED = "Cancelled"

    @property
    def is_held(self) -> bool:
        """Reserved and Sold pieces must be backed by an active sale."""
        return self in (PieceStatus.RESERVED, PieceStatus.SOLD)


@dataclass(frozen=True, slots=True)
class LandPiece:
    """A sellable unit of land."""

    piece_id: UUID
    surface: Decimal
    status: PieceStatus
    batch_id: Optional[UUID] = None
    piece_number: Optional[str] = None
    price_per_unit: Optional[Decimal] = None  # direct cash price per m2
    updated_at: Optional[datetime] = None

    def __post_init__(self) -> None:
        if self.updated_at is not None:
            require_utc_timestamp("updated_at", self.updated_at)

    @property
    def is_available(self) -> bool:
        return self.status == PieceStatus.AVAILABLE
