"""Snapshot entities for users, dispensers and their relationships.

Entities mirror what one reconciliation pass observed. They are plain values:
readers build them from store payloads, the detector only reads them, and
nothing writes them back directly.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

from .enums import LinkStatus, Role

if TYPE_CHECKING:
    from datetime import datetime


def link_id(device_id: str, user_id: str) -> str:
    """Composite document id of the link between ``device_id`` and ``user_id``."""

    return f"{device_id}_{user_id}"


@dataclass(slots=True, kw_only=True, frozen=True)
class User:
    """A patient or caregiver account.

    ``role`` is ``None`` when the stored value is missing or unreadable.
    ``device_id`` is the legacy single-device pointer kept by older clients.
    """

    id: str
    role: Role | None = None
    device_id: str | None = None
    created_at: datetime | None = None
    name: str | None = None


@dataclass(slots=True, kw_only=True, frozen=True)
class Device:
    """A physical dispenser as stored in the ``devices`` collection."""

    id: str
    primary_patient_id: str | None = None
    provisioning_status: str | None = None
    provisioned_at: datetime | None = None
    provisioned_by: str | None = None
    wifi_configured: bool | None = None
    linked_users: tuple[str, ...] = ()
    # array-shaped linkedUsers keep insertion order, map-shaped ones do not
    linked_users_ordered: bool = True
    created_at: datetime | None = None

    @property
    def needs_schema_upgrade(self) -> bool:
        return not self.primary_patient_id and bool(self.linked_users)

    def first_linked_user(self) -> str | None:
        """Return the deterministic "first" linked user.

        Array-shaped ``linkedUsers`` keep their insertion order, so the first element
        wins. Map-shaped ones carry no order and fall back to the lexicographically
        smallest user id.
        """

        if not self.linked_users:
            return None
        if self.linked_users_ordered:
            return self.linked_users[0]
        return min(self.linked_users)


@dataclass(slots=True, kw_only=True, frozen=True)
class DeviceLink:
    """Explicit relationship record between one user and one device."""

    id: str
    device_id: str
    user_id: str
    role: Role | None = None
    status: LinkStatus | None = None
    linked_at: datetime | None = None
    linked_by: str | None = None

    @property
    def is_active(self) -> bool:
        return self.status is LinkStatus.ACTIVE


@dataclass(slots=True, kw_only=True, frozen=True)
class DeviceMirror:
    """Realtime config/state node of one device."""

    device_id: str
    config: dict[str, Any] | None = field(default=None, hash=False)
    state: dict[str, Any] | None = field(default=None, hash=False)
