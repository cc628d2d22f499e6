"""
Land piece repository (persistence).

Status changes are only ever written as conditional updates:

    UPDATE land_pieces SET status = :new WHERE id = :id AND status IN (:expected)

and the number of returned rows tells whether the check still held. There is
no blind status write in this module.
"""

from __future__ import annotations

from typing import Any, Iterable, List, Mapping, Optional, Sequence
from uuid import UUID

from domain.errors import ConsistencyConflictError
from domain.land_piece import LandPiece, PieceStatus
from domain.time import utc_now
from repositories.base import Row, SupabaseRepository
from repositories.serialization import (
    optional_decimal,
    optional_uuid,
    parse_optional_datetime,
    to_decimal,
    to_iso_utc,
)

_PIECE_COLUMNS = "id, batch_id, piece_number, surface_m2, status, price_per_m2, updated_at"


def _row_to_piece(row: Mapping[str, Any]) -> LandPiece:
    """Convert a Supabase row into a LandPiece."""

    return LandPiece(
        piece_id=UUID(str(row["id"])),
        batch_id=optional_uuid(row.get("batch_id")),
        piece_number=row.get("piece_number"),
        surface=to_decimal(row["surface_m2"]),
        status=PieceStatus(str(row["status"])),
        price_per_unit=optional_decimal(row.get("price_per_m2")),
        updated_at=parse_optional_datetime(row.get("updated_at")),
    )


class LandPieceRepository(SupabaseRepository):
    table = "land_pieces"

    async def get(self, piece_id: UUID) -> Optional[LandPiece]:
        rows = await self._execute(
            lambda: self._query().select(_PIECE_COLUMNS).eq("id", str(piece_id)).limit(1),
            "get piece",
        )
        return _row_to_piece(rows[0]) if rows else None

    async def get_many(self, piece_ids: Iterable[UUID]) -> List[LandPiece]:
        """Bulk fetch with a single `id IN (...)` query."""

        ids = [str(piece_id) for piece_id in piece_ids]
        if not ids:
            return []
        rows = await self._execute(
            lambda: self._query().select(_PIECE_COLUMNS).in_("id", ids),
            "get pieces",
        )
        return [_row_to_piece(row) for row in rows]

    async def list_by_status(self, status: PieceStatus) -> List[LandPiece]:
        rows = await self._execute(
            lambda: self._query().select(_PIECE_COLUMNS).eq("status", status.value),
            "list pieces by status",
        )
        return [_row_to_piece(row) for row in rows]

    async def transition_status(
        self,
        piece_id: UUID,
        expected: Sequence[PieceStatus],
        new_status: PieceStatus,
    ) -> LandPiece:
        """
        Set the piece status only if it is currently one of `expected`.

        Raises:
            ConsistencyConflictError: no row matched (status changed or piece missing)
        """

        if not expected:
            raise ValueError("expected statuses must not be empty")

        payload = {
            "status": new_status.value,
            "updated_at": to_iso_utc(utc_now(), name="updated_at"),
        }
        expected_values = [status.value for status in expected]

        async def applied() -> Optional[Row]:
            # The stamp identifies this call's write, not a concurrent one.
            landed = await self._execute(
                lambda: self._query()
                .select(_PIECE_COLUMNS)
                .eq("id", str(piece_id))
                .eq("status", new_status.value)
                .eq("updated_at", payload["updated_at"])
                .limit(1),
                "check piece status update",
            )
            return landed[0] if landed else None

        rows = await self._execute_conditional(
            lambda: self._query()
            .update(payload)
            .eq("id", str(piece_id))
            .in_("status", expected_values),
            "update piece status",
            applied,
        )

        if not rows:
            current = await self.get(piece_id)
            actual = current.status.value if current is not None else None
            raise ConsistencyConflictError(
                f"Piece {piece_id} status changed: expected one of {expected_values}, found {actual}",
                entity_type="piece",
                entity_id=piece_id,
                expected=expected_values,
                actual=actual,
            )

        return _row_to_piece(rows[0])


__all__ = ["LandPieceRepository"]
