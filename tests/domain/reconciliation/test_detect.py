from __future__ import annotations

from datetime import UTC, datetime

from pildhora.domain.model import Device, DeviceLink, LinkStatus, Role, User
from pildhora.domain.reconciliation import (
    CreateDevice,
    CreateDeviceLink,
    EntityType,
    LinkSource,
    OperationCategory,
    UpdateDevice,
    detect,
)

NOW = datetime(2025, 3, 1, tzinfo=UTC)
USER_CREATED = datetime(2024, 5, 1, tzinfo=UTC)
DEVICE_CREATED = datetime(2024, 6, 1, tzinfo=UTC)


def _patient(user_id: str, *, device_id: str | None = None) -> User:
    return User(id=user_id, role=Role.PATIENT, device_id=device_id, created_at=USER_CREATED)


def _link(device_id: str, user_id: str, *, status: LinkStatus = LinkStatus.ACTIVE) -> DeviceLink:
    return DeviceLink(
        id=f"{device_id}_{user_id}",
        device_id=device_id,
        user_id=user_id,
        role=Role.PATIENT,
        status=status,
    )


def test_missing_device_is_planned_before_its_link() -> None:
    users = [_patient("p1")]

    plan = detect(users, [], {"p1": {"DEV-1"}}, links={}, now=NOW)

    assert [type(op) for op in plan.operations] == [CreateDevice, CreateDeviceLink]
    create, link = plan.operations
    assert isinstance(create, CreateDevice)
    assert create.device_id == "DEV-1"
    assert create.primary_patient_id == "p1"
    assert create.provisioned_at == NOW
    assert isinstance(link, CreateDeviceLink)
    assert link.entity_id == "DEV-1_p1"
    assert link.sources == frozenset({LinkSource.FROM_REALTIME_INDEX})
    assert link.linked_at == NOW


def test_missing_device_indexed_by_several_users_uses_smallest_id() -> None:
    users = [_patient("p2"), _patient("p1")]

    plan = detect(users, [], {"p2": {"DEV-1"}, "p1": {"DEV-1"}}, links={}, now=NOW)

    creates = [op for op in plan.operations if isinstance(op, CreateDevice)]
    assert len(creates) == 1
    assert creates[0].primary_patient_id == "p1"
    assert {op.entity_id for op in plan.link_operations} == {"DEV-1_p1", "DEV-1_p2"}


def test_schema_upgrade_uses_first_array_member() -> None:
    device = Device(id="DEV-1", linked_users=("p2", "p1"), created_at=DEVICE_CREATED)
    users = [_patient("p1"), _patient("p2")]

    plan = detect(
        users,
        [device],
        {},
        links={"DEV-1_p1": _link("DEV-1", "p1"), "DEV-1_p2": _link("DEV-1", "p2")},
        now=NOW,
    )

    assert plan.operations == [
        UpdateDevice(
            device_id="DEV-1",
            primary_patient_id="p2",
            provisioned_at=DEVICE_CREATED,
            updated_at=NOW,
        )
    ]
    assert plan.tie_breaks == []


def test_schema_upgrade_on_map_shape_records_tie_break() -> None:
    device = Device(id="DEV-1", linked_users=("p2", "p1"), linked_users_ordered=False)

    plan = detect([_patient("p1"), _patient("p2")], [device], {}, links={}, now=NOW)

    upgrade = plan.device_operations[0]
    assert isinstance(upgrade, UpdateDevice)
    assert upgrade.primary_patient_id == "p1"
    assert upgrade.provisioned_at == NOW
    assert len(plan.tie_breaks) == 1
    assert plan.tie_breaks[0].chosen == "p1"
    assert plan.tie_breaks[0].candidates == ("p1", "p2")


def test_device_with_primary_is_consistent() -> None:
    device = Device(id="DEV-1", primary_patient_id="p1", linked_users=("p1",))

    plan = detect(
        [_patient("p1")], [device], {}, links={"DEV-1_p1": _link("DEV-1", "p1")}, now=NOW
    )

    assert plan.is_empty
    categories = {(entity.category, entity.entity_id) for entity in plan.consistent}
    assert (OperationCategory.SCHEMA_UPGRADE, "DEV-1") in categories
    assert (OperationCategory.MISSING_LINK, "DEV-1_p1") in categories


def test_implied_sources_are_merged_into_one_link() -> None:
    device = Device(
        id="DEV-1", primary_patient_id="p1", linked_users=("p1",), created_at=DEVICE_CREATED
    )
    users = [_patient("p1", device_id="DEV-1")]

    plan = detect(users, [device], {"p1": {"DEV-1"}}, links={}, now=NOW)

    (link,) = plan.link_operations
    assert link.sources == frozenset(LinkSource)
    assert link.role is Role.PATIENT
    assert link.linked_by == "p1"
    assert link.linked_at == DEVICE_CREATED


def test_user_field_link_prefers_user_creation_time() -> None:
    device = Device(id="DEV-1", primary_patient_id="p1", created_at=DEVICE_CREATED)

    plan = detect([_patient("p1", device_id="DEV-1")], [device], {}, links={}, now=NOW)

    (link,) = plan.link_operations
    assert link.linked_at == USER_CREATED


def test_caregiver_link_keeps_caregiver_role() -> None:
    device = Device(id="DEV-1", primary_patient_id="p1", linked_users=("p1", "c1"))
    users = [_patient("p1"), User(id="c1", role=Role.CAREGIVER)]

    plan = detect(
        users, [device], {}, links={"DEV-1_p1": _link("DEV-1", "p1")}, now=NOW
    )

    (link,) = plan.link_operations
    assert link.user_id == "c1"
    assert link.role is Role.CAREGIVER


def test_unreadable_role_defaults_to_patient() -> None:
    device = Device(id="DEV-1", primary_patient_id="u1", linked_users=("u1",))

    plan = detect([User(id="u1", role=None)], [device], {}, links={}, now=NOW)

    (link,) = plan.link_operations
    assert link.role is Role.PATIENT


def test_missing_user_is_referential_gap() -> None:
    device = Device(id="DEV-1", primary_patient_id="p1", linked_users=("p1", "ghost"))

    plan = detect(
        [_patient("p1")], [device], {}, links={"DEV-1_p1": _link("DEV-1", "p1")}, now=NOW
    )

    assert plan.is_empty
    assert [(gap.link.id, gap.reason) for gap in plan.unresolvable] == [
        ("DEV-1_ghost", "user_missing")
    ]


def test_missing_device_from_user_field_is_referential_gap() -> None:
    plan = detect([_patient("p1", device_id="DEV-404")], [], {}, links={}, now=NOW)

    assert plan.is_empty
    assert [(gap.link.id, gap.reason) for gap in plan.unresolvable] == [
        ("DEV-404_p1", "device_missing")
    ]


def test_incomplete_devices_skip_missing_device_detection() -> None:
    plan = detect(
        [_patient("p1")],
        [],
        {"p1": {"DEV-1"}},
        links={},
        now=NOW,
        incomplete={EntityType.DEVICES},
    )

    assert plan.is_empty
    assert [gap.reason for gap in plan.unresolvable] == ["device_not_observed"]


def test_incomplete_users_link_with_default_role() -> None:
    device = Device(
        id="DEV-1", primary_patient_id="p1", linked_users=("p1",), created_at=DEVICE_CREATED
    )

    plan = detect([], [device], {}, links={}, now=NOW, incomplete={EntityType.USERS})

    (link,) = plan.link_operations
    assert link.role is Role.PATIENT
    assert link.linked_at == DEVICE_CREATED


def test_revoked_link_is_left_untouched() -> None:
    device = Device(id="DEV-1", primary_patient_id="p1", linked_users=("p1",))

    plan = detect(
        [_patient("p1")],
        [device],
        {},
        links={"DEV-1_p1": _link("DEV-1", "p1", status=LinkStatus.REVOKED)},
        now=NOW,
    )

    assert plan.is_empty
    notes = [entity.note for entity in plan.consistent if entity.entity_id == "DEV-1_p1"]
    assert notes == ["existing link is revoked"]


def test_plan_is_sorted_and_devices_come_first() -> None:
    devices = [
        Device(id="DEV-B", linked_users=("p2",)),
        Device(id="DEV-A", linked_users=("p1",)),
    ]
    users = [_patient("p1"), _patient("p2"), _patient("p3")]

    plan = detect(users, devices, {"p3": {"DEV-C"}}, links={}, now=NOW)

    assert [op.entity_id for op in plan.operations] == [
        "DEV-C",
        "DEV-A",
        "DEV-B",
        "DEV-A_p1",
        "DEV-B_p2",
        "DEV-C_p3",
    ]
