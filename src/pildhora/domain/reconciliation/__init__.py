"""Cross-store reconciliation for devices, users and device links.

Layered flow of one pass:
1) load a snapshot from both stores (``readers``)
2) detect drift and plan repairs (``detect``)
3) apply device repairs, then link repairs (``execute``)
4) accumulate per-entity outcomes (``report``)
"""

from __future__ import annotations

from .contracts import (
    ConsistentEntity,
    CreateDevice,
    CreateDeviceLink,
    OperationCategory,
    Outcome,
    RepairOp,
    RepairPlan,
    UpdateDevice,
)
from .detect import detect
from .engine import ReconciliationEngine
from .errors import (
    AmbiguousTieBreak,
    ReadFailure,
    ReconciliationError,
    ReferentialGap,
    WriteFailure,
)
from .execute import RepairExecutor
from .gate import CallGate, LimiterFactory
from .implied import ImpliedLink, LinkSource, collect_implied_links
from .readers import EntityType, Snapshot, load_snapshot
from .report import CategoryCounts, OperationOutcome, ReconciliationReport, render_report

__all__ = [
    "AmbiguousTieBreak",
    "CallGate",
    "CategoryCounts",
    "ConsistentEntity",
    "CreateDevice",
    "CreateDeviceLink",
    "EntityType",
    "ImpliedLink",
    "LimiterFactory",
    "LinkSource",
    "OperationCategory",
    "OperationOutcome",
    "Outcome",
    "ReadFailure",
    "ReconciliationEngine",
    "ReconciliationError",
    "ReconciliationReport",
    "ReferentialGap",
    "RepairExecutor",
    "RepairOp",
    "RepairPlan",
    "Snapshot",
    "UpdateDevice",
    "WriteFailure",
    "collect_implied_links",
    "detect",
    "load_snapshot",
    "render_report",
]
