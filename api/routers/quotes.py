"""
Quotes API Endpoints.

Installment schedule previews. Nothing is written.
"""

from fastapi import APIRouter, Depends

from api.dependencies import get_engine
from api.models import (
    InstallmentItemResponse,
    InstallmentQuoteRequest,
    InstallmentQuoteResponse,
    PriceBreakdownResponse,
)
from domain.errors import ValidationError
from domain.payment_offer import PaymentOffer
from services.engine import SalesEngine
from services.installment_scheduler import InstallmentSchedule
from services.sale_state_machine import preview_schedule

router = APIRouter()


def _to_response(schedule: InstallmentSchedule) -> InstallmentQuoteResponse:
    breakdown = schedule.breakdown
    return InstallmentQuoteResponse(
        breakdown=PriceBreakdownResponse(
            base_price=breakdown.base_price,
            advance_amount=breakdown.advance_amount,
            deposit_amount=breakdown.deposit_amount,
            advance_after_deposit=breakdown.advance_after_deposit,
            remaining_for_installments=breakdown.remaining_for_installments,
            monthly_payment=schedule.monthly_amount,
            number_of_months=breakdown.installment_number_of_months,
        ),
        items=[
            InstallmentItemResponse(
                installment_number=item.installment_number,
                amount_due=item.amount_due,
                due_date=item.due_date,
            )
            for item in schedule.items
        ],
        total=schedule.total,
        number_of_installments=schedule.number_of_installments,
    )


@router.post(
    "/quotes/installments",
    response_model=InstallmentQuoteResponse,
    summary="Preview Installment Schedule",
    description="Compute the price breakdown and the dated installment schedule for a sale.",
)
async def quote_installments(request: InstallmentQuoteRequest, engine: SalesEngine = Depends(get_engine)):
    """
    Preview the schedule for a stored piece/offer pair or for ad-hoc terms.

    **Example request:**
    ```json
    {
      "start_date": "2025-01-31",
      "deposit_amount": "5000",
      "surface": "500",
      "offer": {"price_per_unit": "300", "advance_mode": "percent",
                "advance_value": "20", "calc_mode": "months", "months": 12}
    }
    ```
    """
    if request.piece_id is not None and request.payment_offer_id is not None:
        schedule = await engine.sale_service.preview_installments(
            request.piece_id,
            request.payment_offer_id,
            request.start_date,
            request.deposit_amount,
        )
        return _to_response(schedule)

    if request.surface is None or request.offer is None:
        raise ValidationError("offer", "give piece_id and payment_offer_id, or surface and offer")

    offer = PaymentOffer(
        price_per_unit=request.offer.price_per_unit,
        advance_mode=request.offer.advance_mode,
        advance_value=request.offer.advance_value,
        calc_mode=request.offer.calc_mode,
        monthly_amount=request.offer.monthly_amount,
        months=request.offer.months,
    )
    schedule = preview_schedule(request.surface, offer, request.start_date, request.deposit_amount)
    return _to_response(schedule)
