"""
Wiring: builds every repository and service from one Supabase client.

The API, the scripts and the tests all build the engine here so each gets the
same graph (one contract writer cache, one notifier, one audit recorder).
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from supabase import AsyncClient  # type: ignore[import-not-found]

from repositories.audit_repository import AuditRepository
from repositories.contract_writer_repository import ContractWriterRepository
from repositories.installment_repository import InstallmentRepository
from repositories.land_piece_repository import LandPieceRepository
from repositories.notification_repository import NotificationRepository
from repositories.payment_offer_repository import PaymentOfferRepository
from repositories.sale_repository import SaleRepository
from repositories.user_repository import UserRepository
from services.audit_service import AuditRecorder
from services.availability_guard import AvailabilityGuard
from services.contract_writer_cache import ContractWriterCache
from services.loader import SupersedingLoader
from services.notification_deduplicator import NotificationDeduplicator
from services.reconciliation_service import ReconciliationService
from services.retry import SleepFn
from services.sale_state_machine import SaleService
from services.settings import EngineSettings


@dataclass(frozen=True, slots=True)
class SalesEngine:
    settings: EngineSettings
    pieces: LandPieceRepository
    sales: SaleRepository
    offers: PaymentOfferRepository
    installments: InstallmentRepository
    notifications: NotificationRepository
    guard: AvailabilityGuard
    writers: ContractWriterCache
    notifier: NotificationDeduplicator
    audit: AuditRecorder
    sale_service: SaleService
    reconciliation: ReconciliationService
    loader: SupersedingLoader


def build_engine(
    client: AsyncClient,
    settings: Optional[EngineSettings] = None,
    sleep: Optional[SleepFn] = None,
) -> SalesEngine:
    """
    Build the engine around `client`.

    `sleep` replaces asyncio.sleep in every retry loop (tests pass a no-op).
    """

    settings = settings or EngineSettings()
    storage = {
        "retry_attempts": settings.storage_retry_attempts,
        "retry_delay": settings.storage_retry_delay_seconds,
        "sleep": sleep,
    }

    pieces = LandPieceRepository(client, **storage)
    sales = SaleRepository(client, **storage)
    offers = PaymentOfferRepository(client, **storage)
    installments = InstallmentRepository(client, **storage)
    notifications = NotificationRepository(client, **storage)

    guard = AvailabilityGuard(pieces, sales)
    writers = ContractWriterCache(
        ContractWriterRepository(client, **storage),
        ttl_seconds=settings.contract_writer_cache_ttl_seconds,
    )
    notifier = NotificationDeduplicator(
        notifications,
        UserRepository(client, **storage),
        window_minutes=settings.notification_dedup_window_minutes,
        batch_size=settings.notification_batch_size,
        max_attempts=settings.notification_max_attempts,
        retry_delay=settings.notification_retry_delay_seconds,
        sleep=sleep,
    )
    audit = AuditRecorder(AuditRepository(client, **storage))

    sale_service = SaleService(
        pieces=pieces,
        sales=sales,
        offers=offers,
        installments=installments,
        guard=guard,
        writers=writers,
        notifier=notifier,
        audit=audit,
    )
    reconciliation = ReconciliationService(
        pieces=pieces,
        sales=sales,
        sale_service=sale_service,
        audit=audit,
    )

    return SalesEngine(
        settings=settings,
        pieces=pieces,
        sales=sales,
        offers=offers,
        installments=installments,
        notifications=notifications,
        guard=guard,
        writers=writers,
        notifier=notifier,
        audit=audit,
        sale_service=sale_service,
        reconciliation=reconciliation,
        loader=SupersedingLoader(),
    )


__all__ = ["SalesEngine", "build_engine"]
