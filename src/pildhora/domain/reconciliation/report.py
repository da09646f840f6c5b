"""Outcome accumulation and rendering for reconciliation passes."""

from __future__ import annotations

import threading
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from .contracts import OperationCategory, Outcome

if TYPE_CHECKING:
    from collections.abc import Iterable, Mapping

    from .contracts import RepairPlan
    from .errors import AmbiguousTieBreak


@dataclass(slots=True, frozen=True)
class OperationOutcome:
    """Result for one entity, in the order it completed."""

    category: OperationCategory
    entity_id: str
    outcome: Outcome
    reason: str | None = None


@dataclass(slots=True)
class CategoryCounts:
    created: int = 0
    updated: int = 0
    skipped: int = 0
    unresolvable: int = 0
    failed: int = 0
    planned: int = 0

    def add(self, outcome: Outcome) -> None:
        match outcome:
            case Outcome.CREATED:
                self.created += 1
            case Outcome.UPDATED:
                self.updated += 1
            case Outcome.SKIPPED_CONSISTENT:
                self.skipped += 1
            case Outcome.SKIPPED_UNRESOLVABLE:
                self.unresolvable += 1
            case Outcome.FAILED:
                self.failed += 1
            case Outcome.PLANNED:
                self.planned += 1


@dataclass(slots=True)
class ReconciliationReport:
    """Aggregated outcome of one pass.

    ``record`` may be called from concurrent workers; every read of the outcome
    list goes through the same lock.
    """

    dry_run: bool = False
    cancelled: bool = False
    incomplete: dict[str, str] = field(default_factory=dict[str, str])
    tie_breaks: list[AmbiguousTieBreak] = field(default_factory=list["AmbiguousTieBreak"])
    _outcomes: list[OperationOutcome] = field(default_factory=list[OperationOutcome], repr=False)
    _lock: threading.Lock = field(default_factory=threading.Lock, repr=False)

    def record(
        self,
        category: OperationCategory,
        entity_id: str,
        outcome: Outcome,
        reason: str | None = None,
    ) -> None:
        entry = OperationOutcome(category, entity_id, outcome, reason)
        with self._lock:
            self._outcomes.append(entry)

    def mark_incomplete(self, incomplete: Mapping[str, str]) -> None:
        with self._lock:
            self.incomplete.update(incomplete)

    def record_plan_findings(self, plan: RepairPlan) -> None:
        """Record what detection settled without needing a write."""

        for entity in plan.consistent:
            self.record(entity.category, entity.entity_id, Outcome.SKIPPED_CONSISTENT, entity.note)
        for gap in plan.unresolvable:
            self.record(
                OperationCategory.MISSING_LINK,
                gap.link.id,
                Outcome.SKIPPED_UNRESOLVABLE,
                gap.reason,
            )
        with self._lock:
            self.tie_breaks.extend(plan.tie_breaks)

    @property
    def outcomes(self) -> tuple[OperationOutcome, ...]:
        with self._lock:
            return tuple(self._outcomes)

    def counts(self, category: OperationCategory) -> CategoryCounts:
        counts = CategoryCounts()
        for entry in self.outcomes:
            if entry.category is category:
                counts.add(entry.outcome)
        return counts

    def totals(self) -> CategoryCounts:
        counts = CategoryCounts()
        for entry in self.outcomes:
            counts.add(entry.outcome)
        return counts

    def outcomes_with(self, outcome: Outcome) -> list[OperationOutcome]:
        return [entry for entry in self.outcomes if entry.outcome is outcome]

    @property
    def failures(self) -> list[OperationOutcome]:
        return self.outcomes_with(Outcome.FAILED)

    @property
    def created(self) -> int:
        return self.totals().created

    @property
    def ok(self) -> bool:
        return not self.failures and not self.incomplete and not self.cancelled

    @property
    def exit_code(self) -> int:
        if self.dry_run:
            return 0
        return 0 if self.ok else 1


def render_report(report: ReconciliationReport) -> list[str]:
    """Render per-entity outcomes followed by the per-category summary."""

    lines = [_title(report), ""]
    lines.extend(_render_outcomes(report.outcomes))

    if report.tie_breaks:
        lines.append("")
        lines.append("Tie-breaks (linkedUsers without order):")
        lines.extend(
            f"  {tie.device_id}: chose {tie.chosen} from {', '.join(tie.candidates)}"
            for tie in report.tie_breaks
        )
    if report.incomplete:
        lines.append("")
        lines.append("Incomplete loads:")
        lines.extend(
            f"  {entity_type}: {reason}"
            for entity_type, reason in sorted(report.incomplete.items())
        )

    lines.append("")
    lines.append("=" * 72)
    lines.append(
        f"{'category':<16}{'created':>9}{'updated':>9}{'skipped':>9}"
        f"{'unresolv.':>11}{'failed':>8}{'planned':>9}"
    )
    for category in OperationCategory:
        lines.append(_summary_row(category.value, report.counts(category)))
    lines.append(_summary_row("total", report.totals()))
    lines.append("=" * 72)
    return lines


def _title(report: ReconciliationReport) -> str:
    mode = "dry run" if report.dry_run else "repair"
    suffix = " (cancelled, partial results)" if report.cancelled else ""
    return f"Reconciliation {mode}{suffix}"


def _render_outcomes(outcomes: Iterable[OperationOutcome]) -> list[str]:
    lines: list[str] = []
    for entry in outcomes:
        if entry.outcome is Outcome.SKIPPED_CONSISTENT and entry.reason is None:
            continue
        reason = f" ({entry.reason})" if entry.reason else ""
        lines.append(f"  [{entry.outcome}] {entry.category} {entry.entity_id}{reason}")
    if not lines:
        lines.append("  no drift found")
    return lines


def _summary_row(label: str, counts: CategoryCounts) -> str:
    return (
        f"{label:<16}{counts.created:>9}{counts.updated:>9}{counts.skipped:>9}"
        f"{counts.unresolvable:>11}{counts.failed:>8}{counts.planned:>9}"
    )
