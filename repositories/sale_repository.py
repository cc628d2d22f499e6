"""
Sale repository (persistence).

This module provides *only* persistence operations for the Sale domain
entity. It does not enforce business rules (e.g., one active sale per piece);
it inserts, fetches and conditionally updates sale rows.

Status changes are conditional on the current status so two concurrent
transitions of the same sale cannot both succeed.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any, Dict, Iterable, List, Mapping, Optional
from uuid import UUID

from domain.errors import ConsistencyConflictError
from domain.sale import ACTIVE_SALE_STATUSES, PaymentMethod, Sale, SaleStatus
from domain.time import utc_now
from repositories.base import Row, SupabaseRepository
from repositories.serialization import (
    money,
    optional_decimal,
    optional_uuid,
    parse_date,
    parse_optional_datetime,
    to_decimal,
    to_iso_utc,
    uuid_str,
)

_ACTIVE_STATUS_VALUES = [status.value for status in ACTIVE_SALE_STATUSES]


def _row_to_sale(row: Mapping[str, Any]) -> Sale:
    """Convert a Supabase row into a Sale."""

    return Sale(
        sale_id=UUID(str(row["id"])),
        land_piece_id=UUID(str(row["land_piece_id"])),
        client_id=UUID(str(row["client_id"])),
        payment_method=PaymentMethod(str(row["payment_method"])),
        status=SaleStatus(str(row["status"])),
        sale_price=to_decimal(row["sale_price"]),
        deposit_amount=to_decimal(row.get("deposit_amount") or 0),
        advance_amount=optional_decimal(row.get("advance_amount")),
        monthly_installment_amount=optional_decimal(row.get("monthly_installment_amount")),
        number_of_installments=row.get("number_of_installments"),
        payment_offer_id=optional_uuid(row.get("selected_offer_id")),
        company_fee_amount=optional_decimal(row.get("company_fee_amount")),
        partial_payment_amount=optional_decimal(row.get("partial_payment_amount")),
        remaining_payment_amount=optional_decimal(row.get("remaining_payment_amount")),
        contract_writer_id=optional_uuid(row.get("contract_writer_id")),
        installment_start_date=parse_date(row.get("installment_start_date")),
        confirmed_by=optional_uuid(row.get("confirmed_by")),
        confirmed_at=parse_optional_datetime(row.get("confirmed_at")),
        notes=row.get("notes"),
        created_by=optional_uuid(row.get("created_by")),
        created_at=parse_optional_datetime(row.get("created_at")),
        updated_at=parse_optional_datetime(row.get("updated_at")),
    )


def _sale_to_row(sale: Sale) -> Dict[str, Any]:
    """Convert a Sale into an insertable row."""

    return {
        "id": str(sale.sale_id),
        "land_piece_id": str(sale.land_piece_id),
        "client_id": str(sale.client_id),
        "payment_method": sale.payment_method.value,
        "status": sale.status.value,
        "sale_price": money(sale.sale_price),
        "deposit_amount": money(sale.deposit_amount),
        "advance_amount": money(sale.advance_amount),
        "monthly_installment_amount": money(sale.monthly_installment_amount),
        "number_of_installments": sale.number_of_installments,
        "selected_offer_id": uuid_str(sale.payment_offer_id),
        "company_fee_amount": money(sale.company_fee_amount),
        "partial_payment_amount": money(sale.partial_payment_amount),
        "remaining_payment_amount": money(sale.remaining_payment_amount),
        "contract_writer_id": uuid_str(sale.contract_writer_id),
        "installment_start_date": sale.installment_start_date.isoformat() if sale.installment_start_date else None,
        "confirmed_by": uuid_str(sale.confirmed_by),
        "confirmed_at": to_iso_utc(sale.confirmed_at, name="confirmed_at") if sale.confirmed_at else None,
        "notes": sale.notes,
        "created_by": uuid_str(sale.created_by),
        "created_at": to_iso_utc(sale.created_at, name="created_at") if sale.created_at else None,
        "updated_at": to_iso_utc(sale.updated_at, name="updated_at") if sale.updated_at else None,
    }


def sale_field_values(sale: Sale, fields: Iterable[str]) -> Dict[str, Any]:
    """Row values of `fields` for `sale` (used to restore fields on rollback)."""

    row = _sale_to_row(sale)
    return {name: row[name] for name in fields}


class SaleRepository(SupabaseRepository):
    table = "sales"

    async def insert(self, sale: Sale) -> Sale:
        """
        Insert a new sale row.

        Returns:
            Sale as stored
        """

        rows = await self._execute(
            lambda: self._query().insert(_sale_to_row(sale)),
            "insert sale",
            retry=False,
        )
        return _row_to_sale(rows[0]) if rows else sale

    async def get(self, sale_id: UUID) -> Optional[Sale]:
        rows = await self._execute(
            lambda: self._query().select("*").eq("id", str(sale_id)).limit(1),
            "get sale",
        )
        return _row_to_sale(rows[0]) if rows else None

    async def delete(self, sale_id: UUID) -> None:
        """
        Physically delete a sale row.

        Only used to compensate a sale created moments earlier by the same
        operation; every other removal is a cancellation.
        """

        await self._execute(
            lambda: self._query().delete().eq("id", str(sale_id)),
            "delete sale",
        )

    async def list_active_for_pieces(self, piece_ids: Iterable[UUID]) -> List[Sale]:
        """Pending and completed sales referencing any of `piece_ids` (one query)."""

        ids = [str(piece_id) for piece_id in piece_ids]
        if not ids:
            return []
        rows = await self._execute(
            lambda: self._query()
            .select("*")
            .in_("land_piece_id", ids)
            .in_("status", _ACTIVE_STATUS_VALUES),
            "list active sales",
        )
        return [_row_to_sale(row) for row in rows]

    async def list_for_piece(self, piece_id: UUID) -> List[Sale]:
        """All sales of a piece, newest first."""

        rows = await self._execute(
            lambda: self._query()
            .select("*")
            .eq("land_piece_id", str(piece_id))
            .order("created_at", desc=True),
            "list sales for piece",
        )
        return [_row_to_sale(row) for row in rows]

    async def list_pending_created_before(self, cutoff: datetime, piece_id: Optional[UUID] = None) -> List[Sale]:
        cutoff_iso = to_iso_utc(cutoff, name="cutoff")

        def build():
            query = (
                self._query()
                .select("*")
                .eq("status", SaleStatus.PENDING.value)
                .lt("created_at", cutoff_iso)
            )
            if piece_id is not None:
                query = query.eq("land_piece_id", str(piece_id))
            return query

        rows = await self._execute(build, "list stale pending sales")
        return [_row_to_sale(row) for row in rows]

    async def update_if_status(
        self,
        sale_id: UUID,
        expected: SaleStatus,
        fields: Mapping[str, Any],
    ) -> Sale:
        """
        Update sale columns only if the sale is still in `expected` status.

        `fields` uses row column names. updated_at is always refreshed; its
        value identifies this write when the response to it is lost.

        Raises:
            ConsistencyConflictError: the sale is missing or no longer in `expected`
        """

        payload = dict(fields)
        payload["updated_at"] = to_iso_utc(utc_now(), name="updated_at")

        async def applied() -> Optional[Row]:
            landed = await self._execute(
                lambda: self._query()
                .select("*")
                .eq("id", str(sale_id))
                .eq("updated_at", payload["updated_at"])
                .limit(1),
                "check sale update",
            )
            return landed[0] if landed else None

        rows = await self._execute_conditional(
            lambda: self._query()
            .update(payload)
            .eq("id", str(sale_id))
            .eq("status", expected.value),
            "update sale",
            applied,
        )

        if not rows:
            current = await self.get(sale_id)
            actual = current.status.value if current is not None else None
            raise ConsistencyConflictError(
                f"Sale {sale_id} status changed: expected {expected.value}, found {actual}",
                entity_type="sale",
                entity_id=sale_id,
                expected=expected.value,
                actual=actual,
            )

        return _row_to_sale(rows[0])


__all__ = ["SaleRepository", "sale_field_values"]
