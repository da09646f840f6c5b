"""Repair plan types shared by detector, executor and report.

The plan is the contract between:
- drift detection (pure, read-only)
- repair execution (existence re-check + single-document writes)
- reporting (per-entity outcomes for operator follow-up)
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import StrEnum
from typing import TYPE_CHECKING, ClassVar

from pildhora.domain.model import LinkStatus, ProvisioningStatus, link_id

if TYPE_CHECKING:
    from datetime import datetime

    from pildhora.domain.model import Role

    from .errors import AmbiguousTieBreak, ReferentialGap
    from .implied import LinkSource


class OperationCategory(StrEnum):
    """Drift category; also the order in which repairs are planned."""

    MISSING_DEVICE = "missing_device"
    SCHEMA_UPGRADE = "schema_upgrade"
    MISSING_LINK = "missing_link"


class Outcome(StrEnum):
    PLANNED = "planned"
    CREATED = "created"
    UPDATED = "updated"
    SKIPPED_CONSISTENT = "skipped-already-consistent"
    SKIPPED_UNRESOLVABLE = "skipped-unresolvable"
    FAILED = "failed"


@dataclass(slots=True, kw_only=True, frozen=True)
class CreateDevice:
    """Materialize a device seen only in the realtime index."""

    CATEGORY: ClassVar[OperationCategory] = OperationCategory.MISSING_DEVICE

    device_id: str
    primary_patient_id: str
    provisioned_at: datetime
    provisioning_status: ProvisioningStatus = ProvisioningStatus.ACTIVE
    wifi_configured: bool = True

    @property
    def category(self) -> OperationCategory:
        return self.CATEGORY

    @property
    def entity_id(self) -> str:
        return self.device_id


@dataclass(slots=True, kw_only=True, frozen=True)
class UpdateDevice:
    """Fill the fields a legacy device document is missing."""

    CATEGORY: ClassVar[OperationCategory] = OperationCategory.SCHEMA_UPGRADE

    device_id: str
    primary_patient_id: str
    provisioned_at: datetime
    updated_at: datetime
    provisioning_status: ProvisioningStatus = ProvisioningStatus.ACTIVE
    wifi_configured: bool = True

    @property
    def category(self) -> OperationCategory:
        return self.CATEGORY

    @property
    def entity_id(self) -> str:
        return self.device_id


@dataclass(slots=True, kw_only=True, frozen=True)
class CreateDeviceLink:
    """Write the explicit link record for an implied relationship."""

    CATEGORY: ClassVar[OperationCategory] = OperationCategory.MISSING_LINK

    device_id: str
    user_id: str
    role: Role
    linked_at: datetime
    sources: frozenset[LinkSource] = frozenset()
    status: LinkStatus = LinkStatus.ACTIVE

    @property
    def category(self) -> OperationCategory:
        return self.CATEGORY

    @property
    def entity_id(self) -> str:
        return link_id(self.device_id, self.user_id)

    @property
    def linked_by(self) -> str:
        return self.user_id


type RepairOp = CreateDevice | UpdateDevice | CreateDeviceLink
type DeviceOp = CreateDevice | UpdateDevice


@dataclass(slots=True, frozen=True)
class ConsistentEntity:
    """An entity the detector inspected and found already consistent."""

    category: OperationCategory
    entity_id: str
    note: str | None = None


@dataclass(slots=True)
class RepairPlan:
    """Ordered output of one detection run.

    ``operations`` lists device operations before link operations, each group
    sorted by entity id, so replaying a plan is deterministic.
    """

    operations: list[RepairOp] = field(default_factory=list["RepairOp"])
    consistent: list[ConsistentEntity] = field(default_factory=list["ConsistentEntity"])
    unresolvable: list[ReferentialGap] = field(default_factory=list["ReferentialGap"])
    tie_breaks: list[AmbiguousTieBreak] = field(default_factory=list["AmbiguousTieBreak"])

    @property
    def device_operations(self) -> list[DeviceOp]:
        return [op for op in self.operations if not isinstance(op, CreateDeviceLink)]

    @property
    def link_operations(self) -> list[CreateDeviceLink]:
        return [op for op in self.operations if isinstance(op, CreateDeviceLink)]

    @property
    def is_empty(self) -> bool:
        return not self.operations
