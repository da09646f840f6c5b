"""Failure taxonomy for reconciliation passes.

Only ``ReadFailure`` and ``WriteFailure`` are raised, and both are caught inside
the pass and folded into the report. ``ReferentialGap`` and
``AmbiguousTieBreak`` are findings carried by the repair plan.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from .implied import ImpliedLink


class ReconciliationError(RuntimeError):
    """Base class for failures raised inside a reconciliation pass."""


class ReadFailure(ReconciliationError):
    """Loading one entity type failed (store unreachable, denied or timed out)."""

    def __init__(self, entity_type: str, reason: str) -> None:
        super().__init__(f"{entity_type}: {reason}")
        self.entity_type = entity_type
        self.reason = reason


class WriteFailure(ReconciliationError):
    """A single repair write failed."""

    def __init__(self, entity_id: str, reason: str) -> None:
        super().__init__(f"{entity_id}: {reason}")
        self.entity_id = entity_id
        self.reason = reason


@dataclass(slots=True, frozen=True)
class ReferentialGap:
    """An implied link whose user or device does not exist.

    Synthesizing users is outside the engine's authority, and a link must never
    point at a device the engine has not materialized.
    """

    link: ImpliedLink
    reason: str


@dataclass(slots=True, frozen=True)
class AmbiguousTieBreak:
    """``linkedUsers`` carried no order; the smallest user id was chosen."""

    device_id: str
    candidates: tuple[str, ...]
    chosen: str
