"""Snapshot loading for one reconciliation pass.

Readers never assume the two stores agree on a point in time: a user and a
device loaded in the same pass may reflect different moments. A failed load
aborts only its own entity type, which is then reported as incomplete.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from enum import StrEnum
from logging import getLogger
from typing import TYPE_CHECKING

from pildhora.domain.ports import StoreError

from .errors import ReadFailure
from .implied import collect_implied_links

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable, Sequence

    from pildhora.domain.model import Device, DeviceLink, User
    from pildhora.domain.ports import EntityReader

    from .gate import CallGate
    from .implied import ImpliedLink

log = getLogger(__name__)


class EntityType(StrEnum):
    USERS = "users"
    DEVICES = "devices"
    REALTIME_INDEX = "realtime_index"
    DEVICE_LINKS = "device_links"


@dataclass(slots=True)
class Snapshot:
    """Everything one pass observed, plus what it failed to observe."""

    users: list[User] = field(default_factory=list["User"])
    devices: list[Device] = field(default_factory=list["Device"])
    realtime_index: dict[str, frozenset[str]] = field(default_factory=dict[str, frozenset[str]])
    links: dict[str, DeviceLink] = field(default_factory=dict[str, "DeviceLink"])
    incomplete: dict[EntityType, str] = field(default_factory=dict[EntityType, str])


def describe_failure(exc: BaseException) -> str:
    if isinstance(exc, TimeoutError):
        return "timeout"
    return str(exc) or type(exc).__name__


async def load_entities[T](
    entity_type: EntityType,
    loader: Callable[[], Awaitable[Sequence[T]]],
    *,
    gate: CallGate,
) -> list[T]:
    """Load one entity type, translating store failures into ``ReadFailure``."""

    try:
        return list(await gate.call(loader))
    except (StoreError, TimeoutError) as exc:
        raise ReadFailure(entity_type, describe_failure(exc)) from exc


async def load_snapshot(reader: EntityReader, *, gate: CallGate) -> Snapshot:
    """Load users, devices, the realtime index and existing links."""

    snapshot = Snapshot()
    users, devices = await asyncio.gather(
        _load_or_mark(snapshot, EntityType.USERS, reader.load_all_users, gate=gate),
        _load_or_mark(snapshot, EntityType.DEVICES, reader.load_all_devices, gate=gate),
    )
    snapshot.users = users
    snapshot.devices = devices
    snapshot.realtime_index = await _load_realtime_index(snapshot, reader, gate=gate)

    implied = collect_implied_links(snapshot.users, snapshot.devices, snapshot.realtime_index)
    snapshot.links = await _load_links(snapshot, reader, list(implied.values()), gate=gate)

    log.info(
        "Loaded snapshot: users=%s, devices=%s, indexed_users=%s, implied_links=%s, "
        "existing_links=%s",
        len(snapshot.users),
        len(snapshot.devices),
        len(snapshot.realtime_index),
        len(implied),
        len(snapshot.links),
    )
    return snapshot


async def _load_or_mark[T](
    snapshot: Snapshot,
    entity_type: EntityType,
    loader: Callable[[], Awaitable[Sequence[T]]],
    *,
    gate: CallGate,
) -> list[T]:
    try:
        return await load_entities(entity_type, loader, gate=gate)
    except ReadFailure as exc:
        log.warning("Loading %s failed, marking incomplete: %s", entity_type, exc.reason)
        snapshot.incomplete[entity_type] = exc.reason
        return []


async def _load_realtime_index(
    snapshot: Snapshot,
    reader: EntityReader,
    *,
    gate: CallGate,
) -> dict[str, frozenset[str]]:
    failures: dict[str, str] = {}

    async def load_one(user_id: str) -> tuple[str, frozenset[str] | None]:
        async with gate.slot():
            try:
                return user_id, await gate.call(lambda: reader.load_realtime_devices_for(user_id))
            except (StoreError, TimeoutError) as exc:
                failures[user_id] = describe_failure(exc)
                return user_id, None

    results = await asyncio.gather(*(load_one(user.id) for user in snapshot.users))
    if failures:
        for user_id, reason in sorted(failures.items()):
            log.warning("Realtime index read failed for user %s: %s", user_id, reason)
        snapshot.incomplete[EntityType.REALTIME_INDEX] = (
            f"{len(failures)} of {len(results)} user index reads failed"
        )
    return {user_id: devices for user_id, devices in results if devices}


async def _load_links(
    snapshot: Snapshot,
    reader: EntityReader,
    pairs: Sequence[ImpliedLink],
    *,
    gate: CallGate,
) -> dict[str, DeviceLink]:
    failures: dict[str, str] = {}

    async def load_one(device_id: str, user_id: str, key: str) -> DeviceLink | None:
        async with gate.slot():
            try:
                return await gate.call(lambda: reader.load_device_link(device_id, user_id))
            except (StoreError, TimeoutError) as exc:
                # unobserved links stay out of the snapshot; the executor re-checks
                failures[key] = describe_failure(exc)
                return None

    results = await asyncio.gather(
        *(load_one(pair.device_id, pair.user_id, pair.id) for pair in pairs)
    )
    if failures:
        for key, reason in sorted(failures.items()):
            log.warning("Device link read failed for %s: %s", key, reason)
        snapshot.incomplete[EntityType.DEVICE_LINKS] = (
            f"{len(failures)} of {len(results)} link reads failed"
        )
    return {link.id: link for link in results if link is not None}
