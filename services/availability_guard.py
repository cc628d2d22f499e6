"""
Availability guard for land pieces.

A piece may be sold only when it is Available AND no pending or completed
sale references it. Sales win over the piece's own status field: a piece
marked Available with a pending sale is still unavailable.

Decision order (first match wins):
1. completed sale          -> already_sold
2. pending sale            -> reserved_by_pending_sale
3. Reserved/Sold, no sale  -> orphaned_reservation (inconsistent, needs reconciliation)
4. Available               -> available
5. Cancelled               -> piece_withdrawn
6. missing                 -> piece_not_found

Results are computed fresh on every call and never cached.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Dict, Iterable, List, Optional, Sequence
from uuid import UUID

from domain.errors import PieceUnavailableError
from domain.land_piece import LandPiece, PieceStatus
from domain.sale import Sale, SaleStatus
from repositories.land_piece_repository import LandPieceRepository
from repositories.sale_repository import SaleRepository

logger = logging.getLogger(__name__)


class AvailabilityReason(str, Enum):
    ALREADY_SOLD = "already_sold"
    RESERVED_BY_PENDING_SALE = "reserved_by_pending_sale"
    ORPHANED_RESERVATION = "orphaned_reservation"
    PIECE_WITHDRAWN = "piece_withdrawn"
    PIECE_NOT_FOUND = "piece_not_found"

    @property
    def description(self) -> str:
        """Readable form of the code, e.g. "reserved by pending sale"."""
        return self.value.replace("_", " ")


@dataclass(frozen=True, slots=True)
class AvailabilityResult:
    piece_id: UUID
    available: bool
    reason: Optional[AvailabilityReason]
    piece_status: Optional[PieceStatus]
    pending_sale_id: Optional[UUID] = None
    completed_sale_id: Optional[UUID] = None
    piece: Optional[LandPiece] = None

    @property
    def is_orphaned(self) -> bool:
        return self.reason == AvailabilityReason.ORPHANED_RESERVATION


def decide_availability(
    piece_id: UUID,
    piece: Optional[LandPiece],
    active_sales: Sequence[Sale],
) -> AvailabilityResult:
    """Pure decision over one piece and its pending/completed sales."""

    completed = next((s for s in active_sales if s.status == SaleStatus.COMPLETED), None)
    pending = next((s for s in active_sales if s.status == SaleStatus.PENDING), None)
    status = piece.status if piece is not None else None

    def result(available: bool, reason: Optional[AvailabilityReason]) -> AvailabilityResult:
        return AvailabilityResult(
            piece_id=piece_id,
            available=available,
            reason=reason,
            piece_status=status,
            pending_sale_id=pending.sale_id if pending else None,
            completed_sale_id=completed.sale_id if completed else None,
            piece=piece,
        )

    if completed is not None:
        return result(False, AvailabilityReason.ALREADY_SOLD)
    if pending is not None:
        return result(False, AvailabilityReason.RESERVED_BY_PENDING_SALE)
    if piece is None:
        return result(False, AvailabilityReason.PIECE_NOT_FOUND)
    if piece.status.is_held:
        return result(False, AvailabilityReason.ORPHANED_RESERVATION)
    if piece.status == PieceStatus.AVAILABLE:
        return result(True, None)
    return result(False, AvailabilityReason.PIECE_WITHDRAWN)


class AvailabilityGuard:
    """Read-only availability checks over pieces and their active sales."""

    def __init__(self, pieces: LandPieceRepository, sales: SaleRepository):
        self._pieces = pieces
        self._sales = sales

    async def check(self, piece_id: UUID) -> AvailabilityResult:
        piece, sales = await asyncio.gather(
            self._pieces.get(piece_id),
            self._sales.list_active_for_pieces([piece_id]),
        )
        result = decide_availability(piece_id, piece, sales)
        self._log_orphan(result)
        return result

    async def check_many(self, piece_ids: Iterable[UUID]) -> Dict[UUID, AvailabilityResult]:
        """
        Per-piece results from two bulk queries (pieces, sales) joined in memory.

        Unknown ids come back as piece_not_found.
        """

        ids: List[UUID] = list(dict.fromkeys(piece_ids))
        if not ids:
            return {}

        pieces, sales = await asyncio.gather(
            self._pieces.get_many(ids),
            self._sales.list_active_for_pieces(ids),
        )

        pieces_by_id = {piece.piece_id: piece for piece in pieces}
        sales_by_piece: Dict[UUID, List[Sale]] = {}
        for sale in sales:
            sales_by_piece.setdefault(sale.land_piece_id, []).append(sale)

        results: Dict[UUID, AvailabilityResult] = {}
        for piece_id in ids:
            result = decide_availability(piece_id, pieces_by_id.get(piece_id), sales_by_piece.get(piece_id, []))
            self._log_orphan(result)
            results[piece_id] = result
        return results

    async def ensure_available(self, piece_id: UUID) -> AvailabilityResult:
        """
        Raises:
            PieceUnavailableError: the piece cannot be sold right now
        """

        result = await self.check(piece_id)
        if not result.available:
            reason = result.reason.value if result.reason else "unknown"
            raise PieceUnavailableError(piece_id, reason)
        return result

    @staticmethod
    def _log_orphan(result: AvailabilityResult) -> None:
        if result.is_orphaned:
            logger.warning(
                f"Orphaned reservation: piece {result.piece_id} is "
                f"{result.piece_status.value if result.piece_status else None} with no active sale",
                extra={"piece_id": str(result.piece_id)},
            )


__all__ = [
    "AvailabilityGuard",
    "AvailabilityReason",
    "AvailabilityResult",
    "decide_availability",
]
