"""Repair writer: existence checks and single-document writes."""

from __future__ import annotations

from logging import getLogger
from typing import TYPE_CHECKING

from pildhora.domain.model import Collection, link_id

from .translator import (
    encode_device_upgrade,
    encode_new_device,
    encode_new_link,
    parse_device,
    parse_device_link,
)

if TYPE_CHECKING:
    from pildhora.domain.model import Device, DeviceLink
    from pildhora.domain.ports import DocumentStore
    from pildhora.domain.reconciliation.contracts import (
        CreateDevice,
        CreateDeviceLink,
        UpdateDevice,
    )

log = getLogger(__name__)


class StoreRepairWriter:
    """Implements ``RepairWriter``. Creates never merge; upgrades touch only their fields."""

    def __init__(self, documents: DocumentStore) -> None:
        self._documents = documents

    async def get_device(self, device_id: str) -> Device | None:
        data = await self._documents.get_doc(Collection.DEVICES, device_id)
        return parse_device(device_id, data) if data is not None else None

    async def get_device_link(self, device_id: str, user_id: str) -> DeviceLink | None:
        doc_id = link_id(device_id, user_id)
        data = await self._documents.get_doc(Collection.DEVICE_LINKS, doc_id)
        if data is None:
            return None
        return parse_device_link(doc_id, data, device_id=device_id, user_id=user_id)

    async def create_device(self, operation: CreateDevice) -> None:
        await self._documents.set_doc(
            Collection.DEVICES, operation.device_id, encode_new_device(operation), merge=False
        )
        log.info(
            "Created device %s with primary patient %s",
            operation.device_id,
            operation.primary_patient_id,
        )

    async def upgrade_device(self, operation: UpdateDevice) -> None:
        await self._documents.update_doc(
            Collection.DEVICES, operation.device_id, encode_device_upgrade(operation)
        )
        log.info(
            "Upgraded device %s with primary patient %s",
            operation.device_id,
            operation.primary_patient_id,
        )

    async def create_device_link(self, operation: CreateDeviceLink) -> None:
        doc_id = link_id(operation.device_id, operation.user_id)
        await self._documents.set_doc(
            Collection.DEVICE_LINKS, doc_id, encode_new_link(operation), merge=False
        )
        log.info("Created device link %s (%s)", doc_id, operation.role)
