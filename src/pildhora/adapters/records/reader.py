"""Entity reader backed by the document store and the realtime store."""

from __future__ import annotations

from logging import getLogger
from typing import TYPE_CHECKING

from pildhora.domain.model import Collection, link_id

from .translator import (
    parse_device,
    parse_device_link,
    parse_mirror,
    parse_realtime_device_ids,
    parse_user,
)

if TYPE_CHECKING:
    from collections.abc import Sequence

    from pildhora.domain.model import Device, DeviceLink, DeviceMirror, User
    from pildhora.domain.ports import DocumentStore, RealtimeStore

log = getLogger(__name__)

# older clients keyed medications and events by userId instead of patientId
PATIENT_KEY_FIELDS = ("patientId", "userId")


def realtime_index_path(user_id: str) -> str:
    return f"users/{user_id}/devices"


def realtime_device_path(device_id: str) -> str:
    return f"devices/{device_id}"


class StoreEntityReader:
    """Implements ``EntityReader`` and ``AuditReader`` over the two store ports."""

    def __init__(self, documents: DocumentStore, realtime: RealtimeStore) -> None:
        self._documents = documents
        self._realtime = realtime

    async def load_all_users(self) -> Sequence[User]:
        docs = await self._documents.list_docs(Collection.USERS)
        return [parse_user(doc.id, doc.data) for doc in docs]

    async def load_all_devices(self) -> Sequence[Device]:
        docs = await self._documents.list_docs(Collection.DEVICES)
        return [parse_device(doc.id, doc.data) for doc in docs]

    async def load_device_link(self, device_id: str, user_id: str) -> DeviceLink | None:
        doc_id = link_id(device_id, user_id)
        data = await self._documents.get_doc(Collection.DEVICE_LINKS, doc_id)
        if data is None:
            return None
        return parse_device_link(doc_id, data, device_id=device_id, user_id=user_id)

    async def load_realtime_devices_for(self, user_id: str) -> frozenset[str]:
        payload = await self._realtime.read_path(realtime_index_path(user_id))
        return parse_realtime_device_ids(user_id, payload)

    async def load_realtime_mirror(self, device_id: str) -> DeviceMirror | None:
        payload = await self._realtime.read_path(realtime_device_path(device_id))
        return parse_mirror(device_id, payload)

    async def load_user(self, user_id: str) -> User | None:
        data = await self._documents.get_doc(Collection.USERS, user_id)
        return parse_user(user_id, data) if data is not None else None

    async def load_device(self, device_id: str) -> Device | None:
        data = await self._documents.get_doc(Collection.DEVICES, device_id)
        return parse_device(device_id, data) if data is not None else None

    async def find_users_with_device(self, device_id: str) -> Sequence[User]:
        docs = await self._documents.query_by_field(Collection.USERS, "deviceId", device_id)
        return [parse_user(doc.id, doc.data) for doc in docs]

    async def count_medications(self, patient_id: str) -> int:
        return await self._count_for_patient(Collection.MEDICATIONS, patient_id, limit=None)

    async def count_recent_medication_events(self, patient_id: str, *, limit: int) -> int:
        return await self._count_for_patient(
            Collection.MEDICATION_EVENTS, patient_id, limit=limit
        )

    async def _count_for_patient(
        self,
        collection: Collection,
        patient_id: str,
        *,
        limit: int | None,
    ) -> int:
        for field in PATIENT_KEY_FIELDS:
            docs = await self._documents.query_by_field(collection, field, patient_id, limit=limit)
            if docs:
                log.debug("%s for %s found by %s", collection, patient_id, field)
                return len(docs)
        return 0
