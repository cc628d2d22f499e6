"""
Piece/sale reconciliation.

Detects and repairs pieces whose status disagrees with their sales:

- Available with a pending sale     -> reserve_piece
- Reserved without an active sale   -> release_piece
- Reserved with a completed sale    -> check_sales (manual)
- Sold without a completed sale     -> check_sales (manual)
- more than one completed sale      -> review_sales (manual)

Repairs are conditional updates, so a repair racing with a live sale
operation fails instead of overwriting it. Reserved pieces touched within the
grace period are left alone: they may belong to a sale being created.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from enum import Enum
from typing import Callable, List, Optional
from uuid import UUID

from domain.audit import AuditAction
from domain.errors import ConsistencyConflictError, SalesEngineError
from domain.land_piece import PieceStatus
from domain.sale import SaleStatus
from domain.time import utc_now
from repositories.land_piece_repository import LandPieceRepository
from repositories.sale_repository import SaleRepository
from services.audit_service import AuditRecorder
from services.sale_state_machine import SaleService

logger = logging.getLogger(__name__)


class RecommendedAction(str, Enum):
    NONE = "none"
    RESERVE_PIECE = "reserve_piece"
    RELEASE_PIECE = "release_piece"
    CHECK_SALES = "check_sales"
    REVIEW_SALES = "review_sales"


@dataclass(frozen=True, slots=True)
class ConsistencyReport:
    piece_id: UUID
    consistent: bool
    issues: List[str] = field(default_factory=list)
    recommended_action: RecommendedAction = RecommendedAction.NONE
    piece_status: Optional[PieceStatus] = None


@dataclass(frozen=True, slots=True)
class FixResult:
    piece_id: UUID
    success: bool
    action: str
    error: Optional[str] = None


@dataclass(frozen=True, slots=True)
class StaleSaleCleanup:
    cancelled_ids: List[UUID]
    failed_ids: List[UUID]
    affected_pieces: List[UUID]

    @property
    def cancelled(self) -> int:
        return len(self.cancelled_ids)


class ReconciliationService:
    def __init__(
        self,
        *,
        pieces: LandPieceRepository,
        sales: SaleRepository,
        sale_service: SaleService,
        audit: AuditRecorder,
        clock: Callable[[], datetime] = utc_now,
    ):
        self._pieces = pieces
        self._sales = sales
        self._sale_service = sale_service
        self._audit = audit
        self._clock = clock

    async def verify_piece(self, piece_id: UUID) -> ConsistencyReport:
        piece = await self._pieces.get(piece_id)
        if piece is None:
            return ConsistencyReport(
                piece_id=piece_id,
                consistent=False,
                issues=["piece not found"],
                recommended_action=RecommendedAction.NONE,
            )

        sales = await self._sales.list_for_piece(piece_id)
        pending = [s for s in sales if s.status == SaleStatus.PENDING]
        completed = [s for s in sales if s.status == SaleStatus.COMPLETED]

        def report(issue: str, action: RecommendedAction) -> ConsistencyReport:
            return ConsistencyReport(
                piece_id=piece_id,
                consistent=False,
                issues=[issue],
                recommended_action=action,
                piece_status=piece.status,
            )

        if piece.status == PieceStatus.AVAILABLE and pending:
            return report(f"piece is Available but has {len(pending)} pending sale(s)", RecommendedAction.RESERVE_PIECE)
        if piece.status == PieceStatus.RESERVED and not pending:
            if completed:
                # Held by a completed sale, e.g. a confirmation that never marked the piece Sold.
                return report("piece is Reserved but its sale is completed", RecommendedAction.CHECK_SALES)
            return report("piece is Reserved but has no active sale", RecommendedAction.RELEASE_PIECE)
        if piece.status == PieceStatus.SOLD and not completed:
            return report("piece is Sold but has no completed sale", RecommendedAction.CHECK_SALES)
        if len(completed) > 1:
            return report(f"piece has {len(completed)} completed sales", RecommendedAction.REVIEW_SALES)

        return ConsistencyReport(piece_id=piece_id, consistent=True, piece_status=piece.status)

    async def fix_piece(self, piece_id: UUID, actor_id: Optional[UUID] = None) -> FixResult:
        """Apply the automatic repair recommended by verify_piece, if there is one."""

        report = await self.verify_piece(piece_id)
        if report.consistent:
            return FixResult(piece_id, success=True, action="no_action_needed")

        if report.recommended_action == RecommendedAction.RELEASE_PIECE:
            expected, target, action = PieceStatus.RESERVED, PieceStatus.AVAILABLE, "released_piece"
        elif report.recommended_action == RecommendedAction.RESERVE_PIECE:
            expected, target, action = PieceStatus.AVAILABLE, PieceStatus.RESERVED, "reserved_piece"
        else:
            return FixResult(piece_id, success=False, action="manual_review", error="; ".join(report.issues))

        try:
            await self._pieces.transition_status(piece_id, [expected], target)
        except ConsistencyConflictError as exc:
            return FixResult(piece_id, success=False, action=action, error=str(exc))

        logger.warning(
            f"Reconciled piece {piece_id}: {action}",
            extra={"piece_id": str(piece_id), "action": action},
        )
        await self._audit.record(
            AuditAction.PIECE_RECONCILED,
            "piece",
            piece_id,
            {"action": action, "issues": report.issues},
            actor_id=actor_id,
            old_values={"status": expected.value},
            new_values={"status": target.value},
        )
        return FixResult(piece_id, success=True, action=action)

    async def release_orphaned_reservations(self, grace_period: timedelta = timedelta(minutes=5)) -> List[UUID]:
        """
        Release Reserved pieces without an active (pending or completed) sale.

        Returns:
            ids of the pieces released
        """

        now = self._clock()
        reserved = await self._pieces.list_by_status(PieceStatus.RESERVED)
        candidates = [
            piece for piece in reserved
            if piece.updated_at is None or now - piece.updated_at >= grace_period
        ]
        if not candidates:
            return []

        active = await self._sales.list_active_for_pieces([piece.piece_id for piece in candidates])
        held = {sale.land_piece_id for sale in active}

        released: List[UUID] = []
        for piece in candidates:
            if piece.piece_id in held:
                continue
            try:
                await self._pieces.transition_status(piece.piece_id, [PieceStatus.RESERVED], PieceStatus.AVAILABLE)
            except ConsistencyConflictError as exc:
                logger.info(f"Piece {piece.piece_id} changed before release: {exc}")
                continue
            logger.warning(
                f"Released orphaned reservation on piece {piece.piece_id}",
                extra={"piece_id": str(piece.piece_id)},
            )
            released.append(piece.piece_id)

        return released

    async def cancel_stale_pending_sales(
        self,
        max_age: timedelta = timedelta(hours=1),
        piece_id: Optional[UUID] = None,
        actor_id: Optional[UUID] = None,
    ) -> StaleSaleCleanup:
        """Cancel pending sales older than `max_age` through the normal cancel flow."""

        cutoff = self._clock() - max_age
        stale = await self._sales.list_pending_created_before(cutoff, piece_id)

        cancelled: List[UUID] = []
        failed: List[UUID] = []
        pieces: List[UUID] = []
        for sale in stale:
            try:
                await self._sale_service.cancel_sale(sale.sale_id, actor_id=actor_id, reason="stale_pending_sale")
            except SalesEngineError as exc:
                logger.error(
                    f"Failed to cancel stale sale {sale.sale_id}: {exc}",
                    extra={"sale_id": str(sale.sale_id)},
                )
                failed.append(sale.sale_id)
                continue
            cancelled.append(sale.sale_id)
            if sale.land_piece_id not in pieces:
                pieces.append(sale.land_piece_id)

        if cancelled:
            logger.info(
                f"Cancelled {len(cancelled)} stale pending sale(s) on {len(pieces)} piece(s)",
                extra={"cancelled": len(cancelled)},
            )
        return StaleSaleCleanup(cancelled_ids=cancelled, failed_ids=failed, affected_pieces=pieces)


__all__ = [
    "ConsistencyReport",
    "FixResult",
    "ReconciliationService",
    "RecommendedAction",
    "StaleSaleCleanup",
]
