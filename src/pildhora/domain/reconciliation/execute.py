"""Repair execution: apply a plan in two waves with bounded concurrency.

Wave 1 runs every device operation, wave 2 every link operation, so a link
is never written before its device had the chance to materialize. Each
operation re-reads its target right before writing; the plan is advisory and
the store is authoritative.
"""

from __future__ import annotations

import asyncio
from logging import getLogger
from typing import TYPE_CHECKING

from pildhora.domain.ports import StoreError

from .contracts import CreateDevice, CreateDeviceLink, Outcome, RepairPlan, UpdateDevice
from .errors import WriteFailure
from .gate import CallGate
from .readers import describe_failure
from .report import ReconciliationReport

if TYPE_CHECKING:
    import threading
    from collections.abc import Iterable, Sequence

    from pildhora.domain.ports import RepairWriter

    from .contracts import RepairOp
    from .gate import LimiterFactory

log = getLogger(__name__)

DEFAULT_MAX_WORKERS = 8
DEFAULT_CALL_TIMEOUT_SECONDS = 10.0


class RepairExecutor:
    """Apply repair operations through a ``RepairWriter``."""

    def __init__(
        self,
        writer: RepairWriter,
        *,
        max_workers: int = DEFAULT_MAX_WORKERS,
        call_timeout_seconds: float = DEFAULT_CALL_TIMEOUT_SECONDS,
        limiter_factory: LimiterFactory | None = None,
    ) -> None:
        self._writer = writer
        self._max_workers = max_workers
        self._call_timeout = call_timeout_seconds
        self._limiter_factory = limiter_factory

    def new_gate(self) -> CallGate:
        """Build a gate bound to the running event loop."""

        limiter = self._limiter_factory() if self._limiter_factory is not None else None
        return CallGate(
            max_workers=self._max_workers,
            timeout_seconds=self._call_timeout,
            limiter=limiter,
        )

    def apply(
        self,
        plan: RepairPlan | Iterable[RepairOp],
        *,
        cancel: threading.Event | None = None,
    ) -> ReconciliationReport:
        """Synchronously apply ``plan`` and return the resulting report."""

        operations = plan.operations if isinstance(plan, RepairPlan) else list(plan)
        report = ReconciliationReport()

        async def run() -> None:
            await self.apply_async(operations, report=report, gate=self.new_gate(), cancel=cancel)

        asyncio.run(run())
        return report

    async def apply_async(
        self,
        operations: Sequence[RepairOp],
        *,
        report: ReconciliationReport,
        gate: CallGate,
        cancel: threading.Event | None = None,
    ) -> None:
        device_ops = [op for op in operations if not isinstance(op, CreateDeviceLink)]
        link_ops = [op for op in operations if isinstance(op, CreateDeviceLink)]
        unmaterialized: set[str] = set()

        log.info("Applying %s device operations", len(device_ops))
        await self._run_wave(device_ops, report, gate, cancel, unmaterialized)

        if _is_cancelled(cancel):
            report.cancelled = True
            log.warning("Cancelled before link wave; %s link operations not started", len(link_ops))
            return

        log.info("Applying %s link operations", len(link_ops))
        await self._run_wave(link_ops, report, gate, cancel, unmaterialized)

    async def _run_wave(
        self,
        operations: Sequence[RepairOp],
        report: ReconciliationReport,
        gate: CallGate,
        cancel: threading.Event | None,
        unmaterialized: set[str],
    ) -> None:
        async def run_one(op: RepairOp) -> None:
            async with gate.slot():
                if _is_cancelled(cancel):
                    report.cancelled = True
                    return
                try:
                    outcome, reason = await self._apply_one(op, gate, unmaterialized)
                except WriteFailure as exc:
                    if isinstance(op, CreateDevice):
                        unmaterialized.add(op.device_id)
                    log.warning("Repair %s %s failed: %s", op.category, op.entity_id, exc.reason)
                    report.record(op.category, op.entity_id, Outcome.FAILED, exc.reason)
                    return
                log.debug("Repair %s %s: %s", op.category, op.entity_id, outcome)
                report.record(op.category, op.entity_id, outcome, reason)

        await asyncio.gather(*(run_one(op) for op in operations))

    async def _apply_one(
        self,
        op: RepairOp,
        gate: CallGate,
        unmaterialized: set[str],
    ) -> tuple[Outcome, str | None]:
        try:
            match op:
                case CreateDevice():
                    return await self._create_device(op, gate)
                case UpdateDevice():
                    return await self._upgrade_device(op, gate)
                case CreateDeviceLink():
                    return await self._create_link(op, gate, unmaterialized)
        except (StoreError, TimeoutError) as exc:
            raise WriteFailure(op.entity_id, describe_failure(exc)) from exc

    async def _create_device(self, op: CreateDevice, gate: CallGate) -> tuple[Outcome, str | None]:
        existing = await gate.call(lambda: self._writer.get_device(op.device_id))
        if existing is not None:
            return Outcome.SKIPPED_CONSISTENT, "device exists"
        await gate.call(lambda: self._writer.create_device(op), limited=True)
        return Outcome.CREATED, None

    async def _upgrade_device(self, op: UpdateDevice, gate: CallGate) -> tuple[Outcome, str | None]:
        existing = await gate.call(lambda: self._writer.get_device(op.device_id))
        if existing is None:
            return Outcome.SKIPPED_UNRESOLVABLE, "device_missing"
        if existing.primary_patient_id:
            return Outcome.SKIPPED_CONSISTENT, "primaryPatientId already set"
        await gate.call(lambda: self._writer.upgrade_device(op), limited=True)
        return Outcome.UPDATED, None

    async def _create_link(
        self,
        op: CreateDeviceLink,
        gate: CallGate,
        unmaterialized: set[str],
    ) -> tuple[Outcome, str | None]:
        if op.device_id in unmaterialized:
            return Outcome.SKIPPED_UNRESOLVABLE, "device_not_materialized"
        device = await gate.call(lambda: self._writer.get_device(op.device_id))
        if device is None:
            return Outcome.SKIPPED_UNRESOLVABLE, "device_not_materialized"
        existing = await gate.call(lambda: self._writer.get_device_link(op.device_id, op.user_id))
        if existing is not None:
            return Outcome.SKIPPED_CONSISTENT, "link exists"
        await gate.call(lambda: self._writer.create_device_link(op), limited=True)
        return Outcome.CREATED, None


def _is_cancelled(cancel: threading.Event | None) -> bool:
    return cancel is not None and cancel.is_set()
