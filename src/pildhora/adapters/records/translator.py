"""Translate store payloads into domain entities and repair ops into documents."""

from __future__ import annotations

from collections.abc import Mapping
from logging import getLogger
from typing import TYPE_CHECKING, Any

from pildhora.domain.model import (
    Device,
    DeviceLink,
    DeviceMirror,
    LinkStatus,
    Role,
    User,
    link_id,
)

from .schema import (
    DeviceLinkRecord,
    DeviceMirrorPayload,
    DeviceRecord,
    UserRecord,
    validate_lenient,
)

if TYPE_CHECKING:
    from pildhora.domain.ports import Fields
    from pildhora.domain.reconciliation.contracts import (
        CreateDevice,
        CreateDeviceLink,
        UpdateDevice,
    )

log = getLogger(__name__)


def parse_role(value: str | None, *, record_id: str) -> Role | None:
    if value is None:
        return None
    try:
        return Role(value.strip().lower())
    except ValueError:
        log.warning("Record %s: unknown role %r", record_id, value)
        return None


def parse_link_status(value: str | None, *, record_id: str) -> LinkStatus | None:
    if value is None:
        return None
    try:
        return LinkStatus(value.strip().lower())
    except ValueError:
        log.warning("Link %s: unknown status %r", record_id, value)
        return None


def parse_user(doc_id: str, data: Mapping[str, Any]) -> User:
    record = validate_lenient(UserRecord, dict(data), record_id=doc_id)
    return User(
        id=doc_id,
        role=parse_role(record.role, record_id=doc_id),
        device_id=record.device_id or None,
        created_at=record.created_at,
        name=record.name,
    )


def parse_device(doc_id: str, data: Mapping[str, Any]) -> Device:
    record = validate_lenient(DeviceRecord, dict(data), record_id=doc_id)
    linked_users, ordered = _linked_users(record.linked_users)
    return Device(
        id=doc_id,
        primary_patient_id=record.primary_patient_id or None,
        provisioning_status=record.provisioning_status,
        provisioned_at=record.provisioned_at,
        provisioned_by=record.provisioned_by,
        wifi_configured=record.wifi_configured,
        linked_users=linked_users,
        linked_users_ordered=ordered,
        created_at=record.created_at,
    )


def _linked_users(value: list[str] | dict[str, Any] | None) -> tuple[tuple[str, ...], bool]:
    """Return members and whether their order is meaningful.

    The array shape keeps insertion order. The map shape ``{userId: true}``
    carries none; falsy entries are not members.
    """

    if value is None:
        return (), True
    if isinstance(value, list):
        members: list[str] = []
        for user_id in value:
            if user_id and user_id not in members:
                members.append(user_id)
        return tuple(members), True
    return tuple(sorted(user_id for user_id, flag in value.items() if user_id and flag)), False


def parse_device_link(
    doc_id: str,
    data: Mapping[str, Any],
    *,
    device_id: str,
    user_id: str,
) -> DeviceLink:
    """Parse a stored link; ids absent from its fields come from the document key."""

    record = validate_lenient(DeviceLinkRecord, dict(data), record_id=doc_id)
    if not record.device_id or not record.user_id:
        log.warning("Link %s: missing deviceId or userId, using the document key", doc_id)
    return DeviceLink(
        id=doc_id,
        device_id=record.device_id or device_id,
        user_id=record.user_id or user_id,
        role=parse_role(record.role, record_id=doc_id),
        status=parse_link_status(record.status, record_id=doc_id),
        linked_at=record.linked_at,
        linked_by=record.linked_by,
    )


def parse_realtime_device_ids(user_id: str, payload: object) -> frozenset[str]:
    """Decode ``users/{id}/devices``, a ``{deviceId: true}`` map.

    The realtime REST API returns a map with sequential integer keys as a JSON
    array, so list payloads name their devices by index.
    """

    match payload:
        case None:
            return frozenset()
        case Mapping():
            return frozenset(
                str(device_id) for device_id, flag in payload.items() if device_id and flag
            )
        case list():
            return frozenset(str(index) for index, flag in enumerate(payload) if flag)
        case _:
            log.warning(
                "Realtime index of user %s has unexpected shape %s",
                user_id,
                type(payload).__name__,
            )
            return frozenset()


def parse_mirror(device_id: str, payload: object) -> DeviceMirror | None:
    if payload is None:
        return None
    if not isinstance(payload, Mapping):
        log.warning("Realtime node of device %s is not an object", device_id)
        return None
    record = validate_lenient(DeviceMirrorPayload, dict(payload), record_id=device_id)
    return DeviceMirror(device_id=device_id, config=record.config, state=record.state)


def encode_new_device(op: CreateDevice) -> Fields:
    record = DeviceRecord(
        id=op.device_id,
        primary_patient_id=op.primary_patient_id,
        provisioning_status=op.provisioning_status.value,
        provisioned_at=op.provisioned_at,
        provisioned_by=op.primary_patient_id,
        wifi_configured=op.wifi_configured,
        linked_users={op.primary_patient_id: True},
        created_at=op.provisioned_at,
        updated_at=op.provisioned_at,
    )
    return record.model_dump(by_alias=True, exclude_none=True)


def encode_device_upgrade(op: UpdateDevice) -> Fields:
    record = DeviceRecord(
        primary_patient_id=op.primary_patient_id,
        provisioning_status=op.provisioning_status.value,
        provisioned_at=op.provisioned_at,
        provisioned_by=op.primary_patient_id,
        wifi_configured=op.wifi_configured,
        updated_at=op.updated_at,
    )
    return record.model_dump(by_alias=True, exclude_none=True)


def encode_new_link(op: CreateDeviceLink) -> Fields:
    record = DeviceLinkRecord(
        id=link_id(op.device_id, op.user_id),
        device_id=op.device_id,
        user_id=op.user_id,
        role=op.role.value,
        status=op.status.value,
        linked_at=op.linked_at,
        linked_by=op.linked_by,
    )
    return record.model_dump(by_alias=True, exclude_none=True)
