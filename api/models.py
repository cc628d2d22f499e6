"""
API Request and Response Models.

Pydantic models for validating API requests and serializing responses.
"""

from datetime import date, datetime
from decimal import Decimal
from typing import List, Optional
from uuid import UUID

from pydantic import BaseModel, Field

from domain.payment_offer import AdvanceMode, CalcMode
from domain.sale import PaymentMethod


# ============================================================================
# Piece Models
# ============================================================================

class AvailabilityResponse(BaseModel):
    """Availability of a single piece."""
    piece_id: UUID
    available: bool
    reason: Optional[str] = None  # "already_sold", "orphaned_reservation", ...
    reason_description: Optional[str] = None  # "already sold", "orphaned reservation", ...
    piece_status: Optional[str] = None
    pending_sale_id: Optional[UUID] = None
    completed_sale_id: Optional[UUID] = None

    class Config:
        json_schema_extra = {
            "example": {
                "piece_id": "123e4567-e89b-12d3-a456-426614174000",
                "available": False,
                "reason": "reserved_by_pending_sale",
                "reason_description": "reserved by pending sale",
                "piece_status": "Reserved",
                "pending_sale_id": "123e4567-e89b-12d3-a456-426614174010",
                "completed_sale_id": None
            }
        }


class BatchAvailabilityRequest(BaseModel):
    """Request to check several pieces at once."""
    piece_ids: List[UUID] = Field(
        ...,
        min_length=1,
        description="Pieces to check"
    )


class BatchAvailabilityResponse(BaseModel):
    results: List[AvailabilityResponse]


class ConsistencyResponse(BaseModel):
    """Result of a piece/sale consistency check."""
    piece_id: UUID
    consistent: bool
    issues: List[str]
    recommended_action: str
    piece_status: Optional[str] = None


# ============================================================================
# Quote Models
# ============================================================================

class OfferTerms(BaseModel):
    """Ad-hoc payment offer terms (when no stored offer is referenced)."""
    price_per_unit: Decimal = Field(..., description="Price per m2")
    advance_mode: AdvanceMode
    advance_value: Decimal = Decimal("0")
    calc_mode: CalcMode
    monthly_amount: Optional[Decimal] = None
    months: Optional[int] = None


class InstallmentQuoteRequest(BaseModel):
    """
    Request an installment schedule preview.

    Either reference a stored piece and offer (piece_id + payment_offer_id),
    or give the surface and the offer terms directly.
    """
    start_date: date
    deposit_amount: Decimal = Decimal("0")
    piece_id: Optional[UUID] = None
    payment_offer_id: Optional[UUID] = None
    surface: Optional[Decimal] = None
    offer: Optional[OfferTerms] = None

    class Config:
        json_schema_extra = {
            "example": {
                "start_date": "2025-01-31",
                "deposit_amount": "5000",
                "surface": "500",
                "offer": {
                    "price_per_unit": "300",
                    "advance_mode": "percent",
                    "advance_value": "20",
                    "calc_mode": "months",
                    "months": 12
                }
            }
        }


class PriceBreakdownResponse(BaseModel):
    base_price: Decimal
    advance_amount: Decimal
    deposit_amount: Decimal
    advance_after_deposit: Decimal
    remaining_for_installments: Decimal
    monthly_payment: Decimal
    number_of_months: int


class InstallmentItemResponse(BaseModel):
    installment_number: int
    amount_due: Decimal
    due_date: date


class InstallmentQuoteResponse(BaseModel):
    breakdown: PriceBreakdownResponse
    items: List[InstallmentItemResponse]
    total: Decimal
    number_of_installments: int


# ============================================================================
# Sale Models
# ============================================================================

class CreateSaleRequest(BaseModel):
    """Request to create a pending sale (reserves the piece)."""
    land_piece_id: UUID
    client_id: UUID
    payment_method: PaymentMethod
    deposit_amount: Decimal = Decimal("0")
    payment_offer_id: Optional[UUID] = None
    notes: Optional[str] = None

    class Config:
        json_schema_extra = {
            "example": {
                "land_piece_id": "123e4567-e89b-12d3-a456-426614174000",
                "client_id": "123e4567-e89b-12d3-a456-426614174002",
                "payment_method": "installment",
                "deposit_amount": "5000",
                "payment_offer_id": "123e4567-e89b-12d3-a456-426614174020"
            }
        }


class ConfirmSaleRequest(BaseModel):
    """Confirmation-time fields."""
    contract_writer_id: Optional[UUID] = None
    installment_start_date: Optional[date] = None
    company_fee_amount: Optional[Decimal] = None
    promise_payment_amount: Optional[Decimal] = None
    notes: Optional[str] = None


class CancelSaleRequest(BaseModel):
    reason: Optional[str] = None


class SaleResponse(BaseModel):
    sale_id: UUID
    land_piece_id: UUID
    client_id: UUID
    payment_method: str
    status: str
    sale_price: Decimal
    deposit_amount: Decimal
    advance_amount: Optional[Decimal] = None
    monthly_installment_amount: Optional[Decimal] = None
    number_of_installments: Optional[int] = None
    payment_offer_id: Optional[UUID] = None
    company_fee_amount: Optional[Decimal] = None
    partial_payment_amount: Optional[Decimal] = None
    remaining_payment_amount: Optional[Decimal] = None
    contract_writer_id: Optional[UUID] = None
    installment_start_date: Optional[date] = None
    confirmed_at: Optional[datetime] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


# ============================================================================
# Error Models
# ============================================================================

class ErrorResponse(BaseModel):
    """Standard error response."""
    error: str
    detail: Optional[str] = None
    status_code: int
    field: Optional[str] = None
    failed_operation: Optional[str] = None

    class Config:
        json_schema_extra = {
            "example": {
                "error": "piece_unavailable",
                "detail": "القطعة غير متاحة للبيع حالياً",
                "status_code": 409
            }
        }
