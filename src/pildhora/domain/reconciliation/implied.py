"""Normalized view of relationships implied by existing data.

The legacy schema encodes "user U uses device D" in three places: the
``deviceId`` field on the user, the ``linkedUsers`` collection on the device,
and the realtime per-user device index. All three collapse into one
``ImpliedLink`` per composite link id, tagged with every source that implied it.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import StrEnum
from typing import TYPE_CHECKING

from pildhora.domain.model import link_id

if TYPE_CHECKING:
    from collections.abc import Iterable, Mapping

    from pildhora.domain.model import Device, User


class LinkSource(StrEnum):
    FROM_USER_FIELD = "user_field"
    FROM_DEVICE_SET = "device_set"
    FROM_REALTIME_INDEX = "realtime_index"


@dataclass(slots=True, frozen=True)
class ImpliedLink:
    device_id: str
    user_id: str
    sources: frozenset[LinkSource]

    @property
    def id(self) -> str:
        return link_id(self.device_id, self.user_id)

    def implied_by(self, source: LinkSource) -> bool:
        return source in self.sources


def collect_implied_links(
    users: Iterable[User],
    devices: Iterable[Device],
    realtime_index: Mapping[str, Iterable[str]],
) -> dict[str, ImpliedLink]:
    """Return every implied link keyed by composite id, sorted by id."""

    sources: dict[tuple[str, str], set[LinkSource]] = {}

    def add(device_id: str, user_id: str, source: LinkSource) -> None:
        if not device_id or not user_id:
            return
        sources.setdefault((device_id, user_id), set()).add(source)

    for user in users:
        if user.device_id:
            add(user.device_id, user.id, LinkSource.FROM_USER_FIELD)
    for device in devices:
        for user_id in device.linked_users:
            add(device.id, user_id, LinkSource.FROM_DEVICE_SET)
    for user_id, device_ids in realtime_index.items():
        for device_id in device_ids:
            add(device_id, user_id, LinkSource.FROM_REALTIME_INDEX)

    links = (
        ImpliedLink(device_id=device_id, user_id=user_id, sources=frozenset(tags))
        for (device_id, user_id), tags in sources.items()
    )
    return {link.id: link for link in sorted(links, key=lambda link: link.id)}
