"""
Pieces API Endpoints.

Availability and consistency checks for land pieces.
"""

from typing import Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Header

from api.dependencies import get_engine
from api.models import (
    AvailabilityResponse,
    BatchAvailabilityRequest,
    BatchAvailabilityResponse,
    ConsistencyResponse,
)
from services.availability_guard import AvailabilityResult
from services.engine import SalesEngine

router = APIRouter()


def _to_response(result: AvailabilityResult) -> AvailabilityResponse:
    return AvailabilityResponse(
        piece_id=result.piece_id,
        available=result.available,
        reason=result.reason.value if result.reason else None,
        reason_description=result.reason.description if result.reason else None,
        piece_status=result.piece_status.value if result.piece_status else None,
        pending_sale_id=result.pending_sale_id,
        completed_sale_id=result.completed_sale_id,
    )


@router.get(
    "/pieces/{piece_id}/availability",
    response_model=AvailabilityResponse,
    summary="Check Piece Availability",
)
async def get_piece_availability(piece_id: UUID, engine: SalesEngine = Depends(get_engine)):
    """
    Tell whether a piece can be sold right now.

    A pending or completed sale makes the piece unavailable whatever its own
    status says. A Reserved/Sold piece with no active sale is reported as
    `orphaned_reservation`.
    """
    result = await engine.guard.check(piece_id)
    return _to_response(result)


@router.post(
    "/pieces/availability",
    response_model=BatchAvailabilityResponse,
    summary="Check Availability Of Several Pieces",
)
async def get_pieces_availability(
    request: BatchAvailabilityRequest,
    engine: SalesEngine = Depends(get_engine),
    x_load_key: Optional[str] = Header(default=None),
):
    """
    Batch availability from two bulk queries.

    When `X-Load-Key` is sent, a newer request with the same key supersedes
    this one while it is still running (the superseded request gets 409).
    """
    if x_load_key:
        results = await engine.loader.load(x_load_key, lambda: engine.guard.check_many(request.piece_ids))
    else:
        results = await engine.guard.check_many(request.piece_ids)

    return BatchAvailabilityResponse(results=[_to_response(results[piece_id]) for piece_id in results])


@router.get(
    "/pieces/{piece_id}/consistency",
    response_model=ConsistencyResponse,
    summary="Verify Piece Consistency",
)
async def get_piece_consistency(piece_id: UUID, engine: SalesEngine = Depends(get_engine)):
    report = await engine.reconciliation.verify_piece(piece_id)
    return ConsistencyResponse(
        piece_id=report.piece_id,
        consistent=report.consistent,
        issues=report.issues,
        recommended_action=report.recommended_action.value,
        piece_status=report.piece_status.value if report.piece_status else None,
    )
