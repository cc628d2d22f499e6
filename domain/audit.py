"""
Domain: Audit trail entries.

Audit entries are append-only. `old_values`/`new_values` are optional: older
deployments of the `audit_logs` table only carry the base columns.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, Optional
from uuid import UUID

from .time import require_utc_timestamp


class AuditAction:
    SALE_CREATED = "sale_created"
    SALE_CONFIRMED = "sale_confirmed"
    SALE_PAYMENT_RECORDED = "sale_payment_recorded"
    SALE_CANCELLED = "sale_cancelled"
    SALE_REVERTED = "sale_reverted"
    PIECE_RECONCILED = "piece_reconciled"


@dataclass(frozen=True, slots=True)
class AuditEntry:
    action: str
    entity_type: str
    entity_id: str
    created_at: datetime
    details: Dict[str, Any] = field(default_factory=dict)
    actor_id: Optional[UUID] = None
    old_values: Optional[Dict[str, Any]] = None
    new_values: Optional[Dict[str, Any]] = None

    def __post_init__(self) -> None:
        require_utc_timestamp("created_at", self.created_at)
