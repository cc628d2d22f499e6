"""
Sales API Endpoints.

Create, confirm, cancel and revert sales. Engine errors are turned into
localized responses by the handlers registered in api.main.
"""

from typing import Optional
from uuid import UUID

from fastapi import APIRouter, Depends

from api.dependencies import get_actor_id, get_engine
from api.models import CancelSaleRequest, ConfirmSaleRequest, CreateSaleRequest, SaleResponse
from domain.sale import ConfirmationDetails, Sale
from services.engine import SalesEngine
from services.sale_state_machine import CreateSaleRequest as ServiceCreateSaleRequest

router = APIRouter()


def _to_response(sale: Sale) -> SaleResponse:
    return SaleResponse(
        sale_id=sale.sale_id,
        land_piece_id=sale.land_piece_id,
        client_id=sale.client_id,
        payment_method=sale.payment_method.value,
        status=sale.status.value,
        sale_price=sale.sale_price,
        deposit_amount=sale.deposit_amount,
        advance_amount=sale.advance_amount,
        monthly_installment_amount=sale.monthly_installment_amount,
        number_of_installments=sale.number_of_installments,
        payment_offer_id=sale.payment_offer_id,
        company_fee_amount=sale.company_fee_amount,
        partial_payment_amount=sale.partial_payment_amount,
        remaining_payment_amount=sale.remaining_payment_amount,
        contract_writer_id=sale.contract_writer_id,
        installment_start_date=sale.installment_start_date,
        confirmed_at=sale.confirmed_at,
        created_at=sale.created_at,
        updated_at=sale.updated_at,
    )


@router.post(
    "/sales",
    response_model=SaleResponse,
    status_code=201,
    summary="Create Sale",
    description="Create a pending sale and reserve the piece.",
)
async def create_sale(
    request: CreateSaleRequest,
    engine: SalesEngine = Depends(get_engine),
    actor_id: Optional[UUID] = Depends(get_actor_id),
):
    """
    **Process:**
    1. Rejects the request if the piece is not available
    2. Computes the price breakdown (deposit, advance, installments)
    3. Inserts the sale, then reserves the piece with a conditional update

    If the reservation loses a race with another sale, the new sale row is
    removed again and 409 is returned.
    """
    sale = await engine.sale_service.create_sale(
        ServiceCreateSaleRequest(
            land_piece_id=request.land_piece_id,
            client_id=request.client_id,
            payment_method=request.payment_method,
            deposit_amount=request.deposit_amount,
            payment_offer_id=request.payment_offer_id,
            notes=request.notes,
        ),
        actor_id=actor_id,
    )
    return _to_response(sale)


@router.post("/sales/{sale_id}/confirm", response_model=SaleResponse, summary="Confirm Sale")
async def confirm_sale(
    sale_id: UUID,
    request: ConfirmSaleRequest,
    engine: SalesEngine = Depends(get_engine),
    actor_id: Optional[UUID] = Depends(get_actor_id),
):
    """
    Confirm a pending sale. For promise sales a payment smaller than the
    balance is recorded and the sale stays pending.
    """
    sale = await engine.sale_service.confirm_sale(
        sale_id,
        ConfirmationDetails(
            contract_writer_id=request.contract_writer_id,
            installment_start_date=request.installment_start_date,
            company_fee_amount=request.company_fee_amount,
            promise_payment_amount=request.promise_payment_amount,
            notes=request.notes,
        ),
        actor_id=actor_id,
    )
    return _to_response(sale)


@router.post("/sales/{sale_id}/cancel", response_model=SaleResponse, summary="Cancel Sale")
async def cancel_sale(
    sale_id: UUID,
    request: Optional[CancelSaleRequest] = None,
    engine: SalesEngine = Depends(get_engine),
    actor_id: Optional[UUID] = Depends(get_actor_id),
):
    sale = await engine.sale_service.cancel_sale(
        sale_id,
        actor_id=actor_id,
        reason=request.reason if request else None,
    )
    return _to_response(sale)


@router.post("/sales/{sale_id}/revert", response_model=SaleResponse, summary="Revert Sale To Pending")
async def revert_sale(
    sale_id: UUID,
    engine: SalesEngine = Depends(get_engine),
    actor_id: Optional[UUID] = Depends(get_actor_id),
):
    sale = await engine.sale_service.revert_sale(sale_id, actor_id=actor_id)
    return _to_response(sale)
