"""Drift detection: snapshot in, ordered repair plan out.

Responsibilities of this stage:
- find devices indexed in the realtime store without a device document
- find legacy device documents lacking ``primaryPatientId``
- find implied relationships without an explicit link record

Detection never touches a store. Categories are evaluated in the order above
so later categories can rely on earlier repairs having been planned: a link is
only planned for a device that exists or is about to be created.

Missing references are treated as "not yet observed". When an entity type
failed to load, absence proves nothing, so the checks that depend on it are
skipped rather than turned into repairs.
"""

from __future__ import annotations

from logging import getLogger
from typing import TYPE_CHECKING

from pildhora.domain.model import Role

from .contracts import (
    ConsistentEntity,
    CreateDevice,
    CreateDeviceLink,
    OperationCategory,
    RepairPlan,
    UpdateDevice,
)
from .errors import AmbiguousTieBreak, ReferentialGap
from .implied import LinkSource, collect_implied_links
from .readers import EntityType

if TYPE_CHECKING:
    from collections.abc import Collection, Iterable, Mapping
    from datetime import datetime

    from pildhora.domain.model import Device, DeviceLink, User

    from .implied import ImpliedLink

log = getLogger(__name__)

DEFAULT_LINK_ROLE = Role.PATIENT


def detect(
    users: Iterable[User],
    devices: Iterable[Device],
    realtime_index: Mapping[str, Iterable[str]],
    *,
    links: Mapping[str, DeviceLink],
    now: datetime,
    incomplete: Collection[EntityType] = (),
) -> RepairPlan:
    """Compute the repairs needed to bring both stores back in line."""

    users_by_id = {user.id: user for user in users}
    devices_by_id = {device.id: device for device in devices}
    index = {user_id: frozenset(device_ids) for user_id, device_ids in realtime_index.items()}

    plan = RepairPlan()
    planned_devices = _plan_missing_devices(
        plan, devices_by_id, index, now=now, incomplete=incomplete
    )
    _plan_schema_upgrades(plan, devices_by_id, users_by_id, now=now)

    materialized = set(devices_by_id) | planned_devices
    implied = collect_implied_links(users_by_id.values(), devices_by_id.values(), index)
    _plan_missing_links(
        plan,
        implied.values(),
        users_by_id=users_by_id,
        devices_by_id=devices_by_id,
        materialized=materialized,
        links=links,
        now=now,
        incomplete=incomplete,
    )

    log.debug(
        "Detected drift: operations=%s, consistent=%s, unresolvable=%s",
        len(plan.operations),
        len(plan.consistent),
        len(plan.unresolvable),
    )
    return plan


def _plan_missing_devices(
    plan: RepairPlan,
    devices_by_id: Mapping[str, Device],
    index: Mapping[str, frozenset[str]],
    *,
    now: datetime,
    incomplete: Collection[EntityType],
) -> set[str]:
    if EntityType.DEVICES in incomplete:
        log.warning("Device load incomplete; skipping missing-device detection")
        return set()

    indexed_by: dict[str, list[str]] = {}
    for user_id in sorted(index):
        for device_id in index[user_id]:
            indexed_by.setdefault(device_id, []).append(user_id)

    planned: set[str] = set()
    for device_id in sorted(indexed_by):
        if device_id in devices_by_id:
            plan.consistent.append(ConsistentEntity(OperationCategory.MISSING_DEVICE, device_id))
            continue
        owners = indexed_by[device_id]
        primary = min(owners)
        if len(owners) > 1:
            log.info(
                "Device %s indexed by %s users; using %s as primary patient",
                device_id,
                len(owners),
                primary,
            )
        plan.operations.append(
            CreateDevice(device_id=device_id, primary_patient_id=primary, provisioned_at=now)
        )
        planned.add(device_id)
    return planned


def _plan_schema_upgrades(
    plan: RepairPlan,
    devices_by_id: Mapping[str, Device],
    users_by_id: Mapping[str, User],
    *,
    now: datetime,
) -> None:
    for device_id in sorted(devices_by_id):
        device = devices_by_id[device_id]
        if not device.needs_schema_upgrade:
            plan.consistent.append(ConsistentEntity(OperationCategory.SCHEMA_UPGRADE, device_id))
            continue

        primary = device.first_linked_user()
        if primary is None:  # pragma: no cover - needs_schema_upgrade implies members
            continue
        if not device.linked_users_ordered and len(device.linked_users) > 1:
            tie_break = AmbiguousTieBreak(
                device_id=device_id,
                candidates=tuple(sorted(device.linked_users)),
                chosen=primary,
            )
            plan.tie_breaks.append(tie_break)
            log.warning(
                "Device %s: linkedUsers has no order, choosing smallest id %s from %s",
                device_id,
                primary,
                ", ".join(tie_break.candidates),
            )

        user = users_by_id.get(primary)
        if user is not None and user.role is Role.CAREGIVER:
            log.warning(
                "Device %s: first linked user %s is a caregiver; primaryPatientId needs review",
                device_id,
                primary,
            )

        plan.operations.append(
            UpdateDevice(
                device_id=device_id,
                primary_patient_id=primary,
                provisioned_at=device.created_at or now,
                updated_at=now,
            )
        )


def _plan_missing_links(
    plan: RepairPlan,
    implied: Iterable[ImpliedLink],
    *,
    users_by_id: Mapping[str, User],
    devices_by_id: Mapping[str, Device],
    materialized: set[str],
    links: Mapping[str, DeviceLink],
    now: datetime,
    incomplete: Collection[EntityType],
) -> None:
    for link in implied:
        existing = links.get(link.id)
        if existing is not None:
            note = None if existing.is_active else f"existing link is {existing.status or 'unset'}"
            plan.consistent.append(ConsistentEntity(OperationCategory.MISSING_LINK, link.id, note))
            continue

        user = users_by_id.get(link.user_id)
        if user is None and EntityType.USERS not in incomplete:
            plan.unresolvable.append(ReferentialGap(link=link, reason="user_missing"))
            continue
        if link.device_id not in materialized:
            reason = (
                "device_not_observed" if EntityType.DEVICES in incomplete else "device_missing"
            )
            plan.unresolvable.append(ReferentialGap(link=link, reason=reason))
            continue

        role = user.role if user is not None and user.role is not None else DEFAULT_LINK_ROLE
        if user is not None and user.role is None:
            log.warning("User %s has no readable role; linking as %s", user.id, role)

        plan.operations.append(
            CreateDeviceLink(
                device_id=link.device_id,
                user_id=link.user_id,
                role=role,
                linked_at=_linked_at(link, user, devices_by_id.get(link.device_id), now=now),
                sources=link.sources,
            )
        )


def _linked_at(
    link: ImpliedLink,
    user: User | None,
    device: Device | None,
    *,
    now: datetime,
) -> datetime:
    user_created = user.created_at if user is not None else None
    device_created = device.created_at if device is not None else None
    if link.implied_by(LinkSource.FROM_DEVICE_SET):
        return device_created or user_created or now
    if link.implied_by(LinkSource.FROM_USER_FIELD):
        return user_created or device_created or now
    return now
