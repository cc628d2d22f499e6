"""
Sale state machine.

Owns the sale status lifecycle and the piece status changes that go with it:

    create   -> pending    piece Available -> Reserved
    confirm  pending   -> completed   piece Reserved -> Sold (+ installment schedule)
    cancel   pending|completed -> cancelled   piece Reserved|Sold -> Available
    revert   completed -> pending     piece Sold -> Reserved

Every status write is a conditional update on the expected current status,
so two transitions of the same sale cannot both win and a piece can never be
double-booked. Multi-step operations run through the transaction coordinator;
a failed step raises SaleOperationError after compensation.

Audit entries and owner notifications are written after the operation
succeeded and never fail it.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date, datetime
from decimal import ROUND_HALF_UP, Decimal
from typing import Any, Callable, Dict, List, Optional
from uuid import UUID, uuid4

from domain.audit import AuditAction
from domain.errors import (
    EntityNotFoundError,
    InvalidTransitionError,
    SaleOperationError,
    ValidationError,
)
from domain.land_piece import LandPiece, PieceStatus
from domain.notification import NotificationType
from domain.payment_offer import PaymentOffer
from domain.sale import ConfirmationDetails, PaymentMethod, Sale, SaleStatus, can_transition
from domain.time import utc_now
from repositories.installment_repository import InstallmentRepository
from repositories.land_piece_repository import LandPieceRepository
from repositories.payment_offer_repository import PaymentOfferRepository
from repositories.sale_repository import SaleRepository, sale_field_values
from repositories.serialization import money, to_iso_utc, uuid_str
from services.audit_service import AuditRecorder
from services.availability_guard import AvailabilityGuard
from services.contract_writer_cache import ContractWriterCache
from services.installment_scheduler import InstallmentSchedule, build_schedule
from services.messages import notification_text
from services.notification_deduplicator import NotificationDeduplicator
from services.price_calculator import (
    TOLERANCE,
    calculate_price,
    validate_installment_terms,
    validate_price_inputs,
)
from services.transaction_coordinator import TransactionResult, TransactionStep, execute_transaction

logger = logging.getLogger(__name__)

_ZERO = Decimal("0")
_CENT = Decimal("0.01")

# Sale columns written by confirmation (restored on rollback).
_CONFIRMATION_COLUMNS = (
    "status",
    "contract_writer_id",
    "installment_start_date",
    "company_fee_amount",
    "partial_payment_amount",
    "remaining_payment_amount",
    "confirmed_by",
    "confirmed_at",
    "notes",
)


@dataclass(frozen=True, slots=True)
class CreateSaleRequest:
    land_piece_id: UUID
    client_id: UUID
    payment_method: PaymentMethod
    deposit_amount: Decimal = _ZERO
    payment_offer_id: Optional[UUID] = None
    notes: Optional[str] = None


class SaleService:
    """Entry point for every sale transition."""

    def __init__(
        self,
        *,
        pieces: LandPieceRepository,
        sales: SaleRepository,
        offers: PaymentOfferRepository,
        installments: InstallmentRepository,
        guard: AvailabilityGuard,
        writers: ContractWriterCache,
        notifier: NotificationDeduplicator,
        audit: AuditRecorder,
        clock: Callable[[], datetime] = utc_now,
    ):
        self._pieces = pieces
        self._sales = sales
        self._offers = offers
        self._installments = installments
        self._guard = guard
        self._writers = writers
        self._notifier = notifier
        self._audit = audit
        self._clock = clock

    # ------------------------------------------------------------------
    # Create
    # ------------------------------------------------------------------

    async def create_sale(self, request: CreateSaleRequest, actor_id: Optional[UUID] = None) -> Sale:
        """
        Create a pending sale and reserve its piece.

        Raises:
            ValidationError: bad amounts or missing offer
            PieceUnavailableError: the guard rejected the piece
            EntityNotFoundError: unknown payment offer
            SaleOperationError: a step failed (the created row was removed)
        """

        deposit = request.deposit_amount if request.deposit_amount is not None else _ZERO
        if deposit < 0:
            raise ValidationError("deposit_amount", "must not be negative", deposit)
        if request.payment_method == PaymentMethod.INSTALLMENT and request.payment_offer_id is None:
            raise ValidationError("payment_offer_id", "is required for installment sales")

        availability = await self._guard.ensure_available(request.land_piece_id)
        piece = availability.piece
        if piece is None:
            raise EntityNotFoundError("piece", request.land_piece_id)

        offer = await self._resolve_offer(request.payment_offer_id, piece)
        validate_price_inputs(piece.surface, offer, deposit)
        breakdown = calculate_price(piece.surface, offer, deposit)

        is_installment = request.payment_method == PaymentMethod.INSTALLMENT
        if is_installment:
            validate_installment_terms(offer, breakdown)

        now = self._clock()
        sale = Sale(
            sale_id=uuid4(),
            land_piece_id=piece.piece_id,
            client_id=request.client_id,
            payment_method=request.payment_method,
            status=SaleStatus.PENDING,
            sale_price=breakdown.base_price,
            deposit_amount=deposit,
            advance_amount=breakdown.advance_amount if is_installment else None,
            monthly_installment_amount=(
                breakdown.installment_monthly_payment.quantize(_CENT, rounding=ROUND_HALF_UP)
                if is_installment
                else None
            ),
            number_of_installments=breakdown.installment_number_of_months if is_installment else None,
            payment_offer_id=offer.offer_id,
            notes=request.notes,
            created_by=actor_id,
            created_at=now,
            updated_at=now,
        )

        async def delete_created(stored: Sale) -> None:
            await self._sales.delete(stored.sale_id)

        result = await execute_transaction(
            [
                TransactionStep("createSale", lambda: self._sales.insert(sale), delete_created),
                TransactionStep(
                    "reservePiece",
                    lambda: self._pieces.transition_status(
                        piece.piece_id, [PieceStatus.AVAILABLE], PieceStatus.RESERVED
                    ),
                ),
            ]
        )
        self._raise_on_failure(result, sale.sale_id)

        created: Sale = result.data[0]
        logger.info(
            f"Sale {created.sale_id} created for piece {piece.piece_id}",
            extra={"sale_id": str(created.sale_id), "piece_id": str(piece.piece_id)},
        )

        await self._audit.record(
            AuditAction.SALE_CREATED, "sale", created.sale_id, created.snapshot(), actor_id=actor_id
        )
        await self._notify(NotificationType.SALE_CREATED, created, piece, amount=created.sale_price)
        return created

    # ------------------------------------------------------------------
    # Confirm
    # ------------------------------------------------------------------

    async def confirm_sale(
        self,
        sale_id: UUID,
        details: ConfirmationDetails,
        actor_id: Optional[UUID] = None,
    ) -> Sale:
        """
        Confirm a pending sale, or record a partial promise payment.

        For installment sales the schedule is computed before anything is
        written, so a degenerate schedule aborts with no side effect.

        Raises:
            EntityNotFoundError, InvalidTransitionError, ValidationError,
            InvalidScheduleError, ConsistencyConflictError, SaleOperationError
        """

        sale = await self._get_sale(sale_id)
        self._require_transition(sale, SaleStatus.COMPLETED)
        await self._validate_confirmation(sale, details)

        piece: Optional[LandPiece] = None
        schedule: Optional[InstallmentSchedule] = None
        promise_payment: Optional[Decimal] = None

        if sale.payment_method == PaymentMethod.INSTALLMENT:
            piece, schedule = await self._plan_schedule(sale, details)
        elif sale.payment_method == PaymentMethod.PROMISE:
            promise_payment = details.promise_payment_amount or _ZERO
            new_remaining = sale.promise_balance() - promise_payment
            if new_remaining > TOLERANCE:
                return await self._record_promise_payment(sale, details, promise_payment, new_remaining, actor_id)

        now = self._clock()
        fields: Dict[str, Any] = {
            "status": SaleStatus.COMPLETED.value,
            "contract_writer_id": uuid_str(details.contract_writer_id),
            "confirmed_by": uuid_str(actor_id),
            "confirmed_at": to_iso_utc(now, name="confirmed_at"),
        }
        if details.notes is not None:
            fields["notes"] = details.notes
        if details.company_fee_amount is not None and not self._fee_locked(sale):
            fields["company_fee_amount"] = money(details.company_fee_amount)
        if schedule is not None:
            fields["installment_start_date"] = details.installment_start_date.isoformat()
        if promise_payment is not None:
            fields["partial_payment_amount"] = money((sale.partial_payment_amount or _ZERO) + promise_payment)
            fields["remaining_payment_amount"] = money(_ZERO)

        restore = sale_field_values(sale, _CONFIRMATION_COLUMNS)

        async def restore_pending(_: Sale) -> None:
            await self._sales.update_if_status(sale.sale_id, SaleStatus.COMPLETED, restore)

        steps: List[TransactionStep] = [
            TransactionStep(
                "completeSale",
                lambda: self._sales.update_if_status(sale.sale_id, SaleStatus.PENDING, fields),
                restore_pending,
            ),
            TransactionStep(
                "markPieceSold",
                lambda: self._pieces.transition_status(
                    sale.land_piece_id, [PieceStatus.RESERVED], PieceStatus.SOLD
                ),
                lambda _: self._pieces.transition_status(
                    sale.land_piece_id, [PieceStatus.SOLD], PieceStatus.RESERVED
                ),
            ),
        ]
        if schedule is not None:
            steps.append(
                TransactionStep(
                    "replaceSchedule",
                    lambda: self._installments.replace_schedule(sale.sale_id, schedule.items),
                    lambda _: self._installments.delete_for_sale(sale.sale_id),
                )
            )

        result = await execute_transaction(steps)
        self._raise_on_failure(result, sale.sale_id)

        confirmed: Sale = result.data[0]
        logger.info(
            f"Sale {sale.sale_id} confirmed",
            extra={
                "sale_id": str(sale.sale_id),
                "installments": schedule.number_of_installments if schedule else 0,
            },
        )

        await self._audit.record(
            AuditAction.SALE_CONFIRMED,
            "sale",
            sale.sale_id,
            {"previous_status": sale.status.value, "installments": len(schedule.items) if schedule else 0},
            actor_id=actor_id,
            old_values=sale.snapshot(),
            new_values=confirmed.snapshot(),
        )
        await self._notify(NotificationType.SALE_CONFIRMED, confirmed, piece, amount=confirmed.sale_price)
        return confirmed

    async def _record_promise_payment(
        self,
        sale: Sale,
        details: ConfirmationDetails,
        payment: Decimal,
        new_remaining: Decimal,
        actor_id: Optional[UUID],
    ) -> Sale:
        """A promise payment that leaves a balance: the sale stays pending."""

        fields: Dict[str, Any] = {
            "partial_payment_amount": money((sale.partial_payment_amount or _ZERO) + payment),
            "remaining_payment_amount": money(new_remaining),
            "contract_writer_id": uuid_str(details.contract_writer_id),
        }
        if details.notes is not None:
            fields["notes"] = details.notes
        # The company fee is charged once, with the first payment.
        if details.company_fee_amount is not None and not self._fee_locked(sale):
            fields["company_fee_amount"] = money(details.company_fee_amount)

        updated = await self._sales.update_if_status(sale.sale_id, SaleStatus.PENDING, fields)
        logger.info(
            f"Promise payment of {payment} recorded on sale {sale.sale_id}, remaining {new_remaining}",
            extra={"sale_id": str(sale.sale_id)},
        )

        await self._audit.record(
            AuditAction.SALE_PAYMENT_RECORDED,
            "sale",
            sale.sale_id,
            {"payment": str(payment), "remaining": str(new_remaining)},
            actor_id=actor_id,
            old_values=sale.snapshot(),
            new_values=updated.snapshot(),
        )
        await self._notify(NotificationType.PROMISE_PAYMENT_RECEIVED, updated, None, amount=payment)
        return updated

    # ------------------------------------------------------------------
    # Cancel / revert
    # ------------------------------------------------------------------

    async def cancel_sale(self, sale_id: UUID, actor_id: Optional[UUID] = None, reason: Optional[str] = None) -> Sale:
        """
        Cancel a pending or completed sale and release its piece.

        Raises:
            EntityNotFoundError, InvalidTransitionError, SaleOperationError
        """

        sale = await self._get_sale(sale_id)
        prior = sale.status
        self._require_transition(sale, SaleStatus.CANCELLED)
        held_status = PieceStatus.SOLD if prior == SaleStatus.COMPLETED else PieceStatus.RESERVED

        result = await execute_transaction(
            [
                TransactionStep(
                    "cancelSale",
                    lambda: self._sales.update_if_status(
                        sale.sale_id, prior, {"status": SaleStatus.CANCELLED.value}
                    ),
                    lambda _: self._sales.update_if_status(
                        sale.sale_id, SaleStatus.CANCELLED, {"status": prior.value}
                    ),
                ),
                TransactionStep(
                    "releasePiece",
                    lambda: self._pieces.transition_status(
                        sale.land_piece_id, [PieceStatus.RESERVED, PieceStatus.SOLD], PieceStatus.AVAILABLE
                    ),
                    lambda _: self._pieces.transition_status(
                        sale.land_piece_id, [PieceStatus.AVAILABLE], held_status
                    ),
                ),
                TransactionStep("clearSchedule", lambda: self._installments.delete_for_sale(sale.sale_id)),
            ]
        )
        self._raise_on_failure(result, sale.sale_id)

        cancelled: Sale = result.data[0]
        logger.info(
            f"Sale {sale.sale_id} cancelled (was {prior.value})",
            extra={"sale_id": str(sale.sale_id), "previous_status": prior.value},
        )

        await self._audit.record(
            AuditAction.SALE_CANCELLED,
            "sale",
            sale.sale_id,
            {"previous_status": prior.value, "reason": reason, "sale": sale.snapshot()},
            actor_id=actor_id,
            old_values={"status": prior.value},
            new_values={"status": SaleStatus.CANCELLED.value},
        )
        await self._notify(NotificationType.SALE_CANCELLED, cancelled, None, amount=cancelled.sale_price)
        return cancelled

    async def revert_sale(self, sale_id: UUID, actor_id: Optional[UUID] = None) -> Sale:
        """
        Move a completed sale back to pending (undo an erroneous confirmation).

        The piece goes back to Reserved; availability is not re-checked since
        the piece stays attached to this sale.
        """

        sale = await self._get_sale(sale_id)
        prior = sale.status
        self._require_transition(sale, SaleStatus.PENDING)

        revert_fields: Dict[str, Any] = {
            "status": SaleStatus.PENDING.value,
            "confirmed_by": None,
            "confirmed_at": None,
        }
        if sale.payment_method == PaymentMethod.PROMISE:
            # Payments already collected stay on the sale.
            paid = sale.partial_payment_amount or _ZERO
            revert_fields["remaining_payment_amount"] = money(sale.sale_price - sale.deposit_amount - paid)
        restore = sale_field_values(sale, revert_fields.keys())

        result = await execute_transaction(
            [
                TransactionStep(
                    "revertSale",
                    lambda: self._sales.update_if_status(sale.sale_id, SaleStatus.COMPLETED, revert_fields),
                    lambda _: self._sales.update_if_status(sale.sale_id, SaleStatus.PENDING, restore),
                ),
                TransactionStep(
                    "restoreReservation",
                    lambda: self._pieces.transition_status(
                        sale.land_piece_id, [PieceStatus.SOLD], PieceStatus.RESERVED
                    ),
                    lambda _: self._pieces.transition_status(
                        sale.land_piece_id, [PieceStatus.RESERVED], PieceStatus.SOLD
                    ),
                ),
                TransactionStep("clearSchedule", lambda: self._installments.delete_for_sale(sale.sale_id)),
            ]
        )
        self._raise_on_failure(result, sale.sale_id)

        reverted: Sale = result.data[0]
        logger.info(f"Sale {sale.sale_id} reverted to pending", extra={"sale_id": str(sale.sale_id)})

        await self._audit.record(
            AuditAction.SALE_REVERTED,
            "sale",
            sale.sale_id,
            {"previous_status": prior.value, "sale": sale.snapshot()},
            actor_id=actor_id,
            old_values={"status": prior.value},
            new_values={"status": SaleStatus.PENDING.value},
        )
        await self._notify(NotificationType.SALE_REVERTED, reverted, None, amount=reverted.sale_price)
        return reverted

    # ------------------------------------------------------------------
    # Previews
    # ------------------------------------------------------------------

    async def preview_installments(
        self,
        piece_id: UUID,
        offer_id: UUID,
        start_date: date,
        deposit_amount: Decimal = _ZERO,
    ) -> InstallmentSchedule:
        """Schedule a sale of `piece_id` under `offer_id` would get. Writes nothing."""

        piece = await self._pieces.get(piece_id)
        if piece is None:
            raise EntityNotFoundError("piece", piece_id)
        offer = await self._resolve_offer(offer_id, piece)
        return preview_schedule(piece.surface, offer, start_date, deposit_amount)

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    async def _get_sale(self, sale_id: UUID) -> Sale:
        sale = await self._sales.get(sale_id)
        if sale is None:
            raise EntityNotFoundError("sale", sale_id)
        return sale

    @staticmethod
    def _require_transition(sale: Sale, target: SaleStatus) -> None:
        if not can_transition(sale.status, target):
            raise InvalidTransitionError(sale.sale_id, sale.status.value, target.value)

    async def _resolve_offer(self, offer_id: Optional[UUID], piece: LandPiece) -> PaymentOffer:
        if offer_id is not None:
            offer = await self._offers.get(offer_id)
            if offer is None:
                raise EntityNotFoundError("payment_offer", offer_id)
            return offer
        if piece.price_per_unit is None:
            raise ValidationError("price_per_unit", "piece has no cash price")
        return PaymentOffer.cash(piece.price_per_unit)

    async def _validate_confirmation(self, sale: Sale, details: ConfirmationDetails) -> None:
        if details.company_fee_amount is not None and details.company_fee_amount < 0:
            raise ValidationError("company_fee_amount", "must not be negative", details.company_fee_amount)

        if details.contract_writer_id is not None:
            writer = await self._writers.get(details.contract_writer_id)
            if writer is None:
                raise ValidationError("contract_writer_id", "unknown contract writer", details.contract_writer_id)

        if sale.payment_method == PaymentMethod.INSTALLMENT and details.installment_start_date is None:
            raise ValidationError("installment_start_date", "is required for installment sales")

        if sale.payment_method == PaymentMethod.PROMISE:
            payment = details.promise_payment_amount
            balance = sale.promise_balance()
            if balance <= TOLERANCE:
                # Fully paid (a reverted sale): confirming takes no further payment.
                if payment:
                    raise ValidationError("promise_payment_amount", "sale is already fully paid", payment)
            elif payment is None or payment <= 0:
                raise ValidationError("promise_payment_amount", "must be greater than zero", payment)
            elif payment > balance + TOLERANCE:
                raise ValidationError("promise_payment_amount", "exceeds the remaining balance", payment)

    async def _plan_schedule(
        self, sale: Sale, details: ConfirmationDetails
    ) -> tuple[LandPiece, InstallmentSchedule]:
        piece = await self._pieces.get(sale.land_piece_id)
        if piece is None:
            raise EntityNotFoundError("piece", sale.land_piece_id)
        if sale.payment_offer_id is None:
            raise ValidationError("payment_offer_id", "installment sale has no payment offer")
        offer = await self._offers.get(sale.payment_offer_id)
        if offer is None:
            raise EntityNotFoundError("payment_offer", sale.payment_offer_id)

        breakdown = calculate_price(piece.surface, offer, sale.deposit_amount)
        return piece, build_schedule(breakdown, details.installment_start_date)

    @staticmethod
    def _fee_locked(sale: Sale) -> bool:
        """Promise sales keep the fee set with their first payment."""
        return (
            sale.payment_method == PaymentMethod.PROMISE
            and sale.company_fee_amount is not None
            and sale.company_fee_amount != 0
        )

    @staticmethod
    def _raise_on_failure(result: TransactionResult, sale_id: UUID) -> None:
        if result.success:
            return
        if not result.fully_compensated:
            logger.critical(
                f"Sale {sale_id}: {result.failed_operation} failed and compensation is incomplete",
                extra={
                    "sale_id": str(sale_id),
                    "failed_operation": result.failed_operation,
                    "compensation_failures": [failure.step for failure in result.compensation_failures],
                },
            )
        raise SaleOperationError(
            result.failed_operation,
            compensated=result.fully_compensated,
            cause=result.exception,
        )

    async def _notify(
        self,
        type_: str,
        sale: Sale,
        piece: Optional[LandPiece],
        amount: Optional[Decimal] = None,
    ) -> None:
        label = piece.piece_number if piece is not None and piece.piece_number else str(sale.land_piece_id)[:8]
        title, message = notification_text(type_, piece=label, amount=money(amount) or "")
        await self._notifier.notify(
            type_,
            title,
            message,
            entity_type="sale",
            entity_id=sale.sale_id,
            metadata={
                "sale_id": str(sale.sale_id),
                "land_piece_id": str(sale.land_piece_id),
                "status": sale.status.value,
            },
        )


def preview_schedule(
    surface: Decimal,
    offer: PaymentOffer,
    start_date: date,
    deposit_amount: Decimal = _ZERO,
) -> InstallmentSchedule:
    """Validate the terms, then build the schedule (pure)."""

    validate_price_inputs(surface, offer, deposit_amount)
    breakdown = calculate_price(surface, offer, deposit_amount)
    validate_installment_terms(offer, breakdown)
    return build_schedule(breakdown, start_date)


__all__ = ["CreateSaleRequest", "SaleService", "preview_schedule"]
