"""Application orchestration entry points."""

from __future__ import annotations

import asyncio
from logging import getLogger
from typing import TYPE_CHECKING

from aiolimiter import AsyncLimiter

from pildhora.adapters.firebase import (
    AccessTokenSource,
    FirestoreDocumentStore,
    RealtimeRestStore,
    initialize_firebase,
)
from pildhora.adapters.records import StoreEntityReader, StoreRepairWriter
from pildhora.config import get_firebase_config, get_reconcile_config
from pildhora.domain.diagnosis import DEFAULT_DIAGNOSIS_TIMEOUT_SECONDS, diagnose_async
from pildhora.domain.reconciliation import ReconciliationEngine

if TYPE_CHECKING:
    import threading
    from collections.abc import Awaitable, Callable

    from pildhora.config import FirebaseConfig, RateLimit, ReconcileConfig
    from pildhora.domain.diagnosis import AuditFindings
    from pildhora.domain.ports import DocumentStore, RealtimeStore
    from pildhora.domain.reconciliation import LimiterFactory, ReconciliationReport

log = getLogger(__name__)


def _limiter_factory(ratelimit: RateLimit | None) -> LimiterFactory | None:
    if ratelimit is None:
        return None

    def build() -> AsyncLimiter:
        return AsyncLimiter(ratelimit.max_calls, ratelimit.per_seconds)

    return build


def reconcile_devices(
    *,
    dry_run: bool = False,
    max_workers: int | None = None,
    call_timeout_seconds: float | None = None,
    cancel: threading.Event | None = None,
    documents: DocumentStore | None = None,
    realtime: RealtimeStore | None = None,
    reconcile_config: ReconcileConfig | None = None,
) -> ReconciliationReport:
    """Run one reconciliation pass against the configured stores.

    ``documents`` and ``realtime`` replace the Firebase adapters when given;
    otherwise both are built from the environment.
    """

    settings = reconcile_config or get_reconcile_config()
    workers = max_workers or settings.max_workers
    timeout = call_timeout_seconds or settings.call_timeout_seconds
    log.info(
        "Starting reconciliation: dry_run=%s, max_workers=%s, call_timeout=%ss",
        dry_run,
        workers,
        timeout,
    )

    async def run(documents: DocumentStore, realtime: RealtimeStore) -> ReconciliationReport:
        engine = ReconciliationEngine(
            StoreEntityReader(documents, realtime),
            StoreRepairWriter(documents),
            max_workers=workers,
            call_timeout_seconds=timeout,
            limiter_factory=_limiter_factory(settings.write_ratelimit),
        )
        return await engine.reconcile_async(dry_run=dry_run, cancel=cancel)

    if documents is not None and realtime is not None:
        report = asyncio.run(run(documents, realtime))
    else:
        report = asyncio.run(_with_firebase_stores(get_firebase_config(), run))

    totals = report.totals()
    log.info(
        "Finished reconciliation: created=%s, updated=%s, skipped=%s, unresolvable=%s, "
        "failed=%s, planned=%s, incomplete=%s, cancelled=%s",
        totals.created,
        totals.updated,
        totals.skipped,
        totals.unresolvable,
        totals.failed,
        totals.planned,
        len(report.incomplete),
        report.cancelled,
    )
    return report


def diagnose_device(
    *,
    caregiver_id: str,
    device_id: str,
    timeout_seconds: float | None = None,
    documents: DocumentStore | None = None,
    realtime: RealtimeStore | None = None,
) -> AuditFindings:
    """Audit one caregiver/device pair without writing anything."""

    timeout = timeout_seconds or DEFAULT_DIAGNOSIS_TIMEOUT_SECONDS
    log.info("Starting diagnosis: caregiver=%s, device=%s", caregiver_id, device_id)

    async def run(documents: DocumentStore, realtime: RealtimeStore) -> AuditFindings:
        return await diagnose_async(
            StoreEntityReader(documents, realtime),
            caregiver_id=caregiver_id,
            device_id=device_id,
            timeout_seconds=timeout,
        )

    if documents is not None and realtime is not None:
        return asyncio.run(run(documents, realtime))
    return asyncio.run(_with_firebase_stores(get_firebase_config(), run))


async def _with_firebase_stores[T](
    config: FirebaseConfig,
    func: Callable[[DocumentStore, RealtimeStore], Awaitable[T]],
) -> T:
    firebase_app = initialize_firebase(config)
    documents = FirestoreDocumentStore.for_app(firebase_app)
    async with RealtimeRestStore(
        config.realtime_resilience(),
        access_token=AccessTokenSource.for_app(firebase_app),
    ) as realtime:
        return await func(documents, realtime)
