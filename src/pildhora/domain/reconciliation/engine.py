"""Orchestrator for one reconciliation pass.

The engine composes readers, detector and executor around injected store
ports; it never builds adapters itself.
"""

from __future__ import annotations

import asyncio
from datetime import UTC, datetime
from logging import getLogger
from typing import TYPE_CHECKING

from .contracts import Outcome
from .detect import detect
from .execute import DEFAULT_CALL_TIMEOUT_SECONDS, DEFAULT_MAX_WORKERS, RepairExecutor
from .readers import load_snapshot
from .report import ReconciliationReport

if TYPE_CHECKING:
    import threading
    from collections.abc import Callable

    from pildhora.domain.ports import EntityReader, RepairWriter

    from .gate import LimiterFactory

log = getLogger(__name__)


def utc_now() -> datetime:
    return datetime.now(UTC)


class ReconciliationEngine:
    """Run a full read-detect-repair-report pass."""

    def __init__(
        self,
        reader: EntityReader,
        writer: RepairWriter,
        *,
        max_workers: int = DEFAULT_MAX_WORKERS,
        call_timeout_seconds: float = DEFAULT_CALL_TIMEOUT_SECONDS,
        limiter_factory: LimiterFactory | None = None,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self._reader = reader
        self._clock = clock
        self._executor = RepairExecutor(
            writer,
            max_workers=max_workers,
            call_timeout_seconds=call_timeout_seconds,
            limiter_factory=limiter_factory,
        )

    def reconcile(
        self,
        *,
        dry_run: bool = False,
        cancel: threading.Event | None = None,
    ) -> ReconciliationReport:
        """Synchronous facade over :meth:`reconcile_async`."""

        return asyncio.run(self.reconcile_async(dry_run=dry_run, cancel=cancel))

    async def reconcile_async(
        self,
        *,
        dry_run: bool = False,
        cancel: threading.Event | None = None,
    ) -> ReconciliationReport:
        report = ReconciliationReport(dry_run=dry_run)
        gate = self._executor.new_gate()

        snapshot = await load_snapshot(self._reader, gate=gate)
        report.mark_incomplete({str(key): reason for key, reason in snapshot.incomplete.items()})

        plan = detect(
            snapshot.users,
            snapshot.devices,
            snapshot.realtime_index,
            links=snapshot.links,
            now=self._clock(),
            incomplete=frozenset(snapshot.incomplete),
        )
        report.record_plan_findings(plan)
        log.info(
            "Planned %s device operations and %s link operations",
            len(plan.device_operations),
            len(plan.link_operations),
        )

        if dry_run:
            for op in plan.operations:
                report.record(op.category, op.entity_id, Outcome.PLANNED)
            return report

        await self._executor.apply_async(plan.operations, report=report, gate=gate, cancel=cancel)
        totals = report.totals()
        log.info(
            "Reconciliation finished: created=%s, updated=%s, failed=%s, unresolvable=%s",
            totals.created,
            totals.updated,
            totals.failed,
            totals.unresolvable,
        )
        return report
