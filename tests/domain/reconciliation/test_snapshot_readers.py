from __future__ import annotations

import asyncio

import pytest

from pildhora.adapters.records import StoreEntityReader
from pildhora.domain.model import Collection
from pildhora.domain.ports import StorePermissionError
from pildhora.domain.reconciliation import (
    CallGate,
    EntityType,
    ReadFailure,
    Snapshot,
    load_snapshot,
)
from pildhora.domain.reconciliation.readers import describe_failure, load_entities
from tests.support.dispensers import build_stores, device_doc, link_doc, user_doc
from tests.support.stores import InMemoryDocumentStore, InMemoryRealtimeStore


def _load(
    documents: InMemoryDocumentStore,
    realtime: InMemoryRealtimeStore,
    *,
    timeout: float = 1.0,
) -> Snapshot:
    async def run() -> Snapshot:
        gate = CallGate(max_workers=4, timeout_seconds=timeout)
        return await load_snapshot(StoreEntityReader(documents, realtime), gate=gate)

    return asyncio.run(run())


def test_snapshot_contains_all_entity_types() -> None:
    documents, realtime = build_stores(
        users={"p1": user_doc("patient", device_id="DEV-1"), "c1": user_doc("caregiver")},
        devices=[device_doc("DEV-1", linked_users=["p1", "c1"])],
        links=[link_doc("DEV-1", "p1")],
        realtime_index={"p1": ["DEV-1", "DEV-2"]},
    )

    snapshot = _load(documents, realtime)

    assert [user.id for user in snapshot.users] == ["c1", "p1"]
    assert [device.id for device in snapshot.devices] == ["DEV-1"]
    assert snapshot.realtime_index == {"p1": frozenset({"DEV-1", "DEV-2"})}
    assert set(snapshot.links) == {"DEV-1_p1"}
    assert snapshot.incomplete == {}


def test_links_are_only_read_for_implied_pairs() -> None:
    documents, realtime = build_stores(
        users={"p1": user_doc("patient")},
        devices=[device_doc("DEV-1", linked_users=["p1"])],
        links=[link_doc("DEV-1", "p1"), link_doc("DEV-9", "p9")],
    )

    snapshot = _load(documents, realtime)

    assert set(snapshot.links) == {"DEV-1_p1"}
    link_reads = [call for call in documents.calls if call[1] == Collection.DEVICE_LINKS]
    assert link_reads == [("get_doc", Collection.DEVICE_LINKS, "DEV-1_p1")]


def test_failed_device_load_only_marks_devices() -> None:
    documents, realtime = build_stores(
        users={"p1": user_doc("patient")},
        devices=[device_doc("DEV-1", linked_users=["p1"])],
        realtime_index={"p1": ["DEV-1"]},
    )
    documents.fail("list_docs", Collection.DEVICES, error=StorePermissionError("denied"))

    snapshot = _load(documents, realtime)

    assert snapshot.incomplete == {EntityType.DEVICES: "denied"}
    assert snapshot.devices == []
    assert [user.id for user in snapshot.users] == ["p1"]
    assert snapshot.realtime_index == {"p1": frozenset({"DEV-1"})}


def test_failed_index_read_is_counted_per_user() -> None:
    documents, realtime = build_stores(
        users={"p1": user_doc("patient"), "p2": user_doc("patient")},
        realtime_index={"p1": ["DEV-1"], "p2": ["DEV-2"]},
    )
    realtime.fail("read_path", "users/p2/devices")

    snapshot = _load(documents, realtime)

    assert snapshot.realtime_index == {"p1": frozenset({"DEV-1"})}
    assert snapshot.incomplete == {
        EntityType.REALTIME_INDEX: "1 of 2 user index reads failed"
    }


def test_failed_link_read_marks_links_incomplete() -> None:
    documents, realtime = build_stores(
        users={"p1": user_doc("patient")},
        devices=[device_doc("DEV-1", linked_users=["p1"])],
        links=[link_doc("DEV-1", "p1")],
    )
    documents.fail("get_doc", Collection.DEVICE_LINKS, "DEV-1_p1")

    snapshot = _load(documents, realtime)

    assert snapshot.links == {}
    assert snapshot.incomplete == {EntityType.DEVICE_LINKS: "1 of 1 link reads failed"}


def test_map_shaped_realtime_index_skips_false_entries() -> None:
    documents, realtime = build_stores(users={"p1": user_doc("patient")})
    realtime.tree["users"] = {"p1": {"devices": {"DEV-1": True, "DEV-2": False}}}

    snapshot = _load(documents, realtime)

    assert snapshot.realtime_index == {"p1": frozenset({"DEV-1"})}


def test_load_entities_wraps_timeouts() -> None:
    async def slow() -> list[str]:
        await asyncio.sleep(1)
        return []

    async def run() -> None:
        gate = CallGate(max_workers=1, timeout_seconds=0.01)
        await load_entities(EntityType.USERS, slow, gate=gate)

    with pytest.raises(ReadFailure) as excinfo:
        asyncio.run(run())

    assert excinfo.value.entity_type == EntityType.USERS
    assert excinfo.value.reason == "timeout"


def test_describe_failure_falls_back_to_type_name() -> None:
    assert describe_failure(TimeoutError()) == "timeout"
    assert describe_failure(StorePermissionError()) == "StorePermissionError"
    assert describe_failure(StorePermissionError("denied")) == "denied"


def test_gate_rejects_zero_workers() -> None:
    with pytest.raises(ValueError, match="max_workers"):
        CallGate(max_workers=0, timeout_seconds=1.0)
