"""Entity-level ports consumed by reconciliation and diagnosis.

Adapters implement these on top of the raw store ports, decoding wire payloads
into domain entities and encoding repair operations back into documents.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Protocol, runtime_checkable

if TYPE_CHECKING:
    from collections.abc import Sequence

    from pildhora.domain.model import Device, DeviceLink, DeviceMirror, User
    from pildhora.domain.reconciliation.contracts import (
        CreateDevice,
        CreateDeviceLink,
        UpdateDevice,
    )


@runtime_checkable
class EntityReader(Protocol):
    """Read-only snapshot loaders for one reconciliation pass."""

    async def load_all_users(self) -> Sequence[User]: ...

    async def load_all_devices(self) -> Sequence[Device]: ...

    async def load_device_link(self, device_id: str, user_id: str) -> DeviceLink | None: ...

    async def load_realtime_devices_for(self, user_id: str) -> frozenset[str]: ...

    async def load_realtime_mirror(self, device_id: str) -> DeviceMirror | None: ...


@runtime_checkable
class AuditReader(EntityReader, Protocol):
    """Point lookups used by the diagnosis entry point."""

    async def load_user(self, user_id: str) -> User | None: ...

    async def load_device(self, device_id: str) -> Device | None: ...

    async def find_users_with_device(self, device_id: str) -> Sequence[User]: ...

    async def count_medications(self, patient_id: str) -> int: ...

    async def count_recent_medication_events(self, patient_id: str, *, limit: int) -> int: ...


@runtime_checkable
class RepairWriter(Protocol):
    """Existence checks and single-document writes used by the repair executor."""

    async def get_device(self, device_id: str) -> Device | None: ...

    async def get_device_link(self, device_id: str, user_id: str) -> DeviceLink | None: ...

    async def create_device(self, operation: CreateDevice) -> None: ...

    async def upgrade_device(self, operation: UpdateDevice) -> None: ...

    async def create_device_link(self, operation: CreateDeviceLink) -> None: ...
