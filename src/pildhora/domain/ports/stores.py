"""Ports for the document store and the realtime key-value store.

Both stores are external, independently consistent systems. The domain only
depends on these signatures; adapters translate engine specific failures into
``StoreError`` so callers never see driver exceptions.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Protocol, runtime_checkable

if TYPE_CHECKING:
    from collections.abc import Mapping, Sequence

type Fields = dict[str, Any]


class StoreError(RuntimeError):
    """Raised by store adapters when a call could not be completed."""


class StorePermissionError(StoreError):
    """Raised when the store rejected a call for lack of permission."""


@dataclass(slots=True, frozen=True)
class StoredDocument:
    """One document as returned by a collection read."""

    id: str
    data: Fields


@runtime_checkable
class DocumentStore(Protocol):
    """Collection-based document store (users, devices, deviceLinks, ...)."""

    async def get_doc(self, collection: str, doc_id: str) -> Fields | None: ...

    async def list_docs(self, collection: str) -> Sequence[StoredDocument]: ...

    async def query_by_field(
        self,
        collection: str,
        field: str,
        value: object,
        *,
        limit: int | None = None,
    ) -> Sequence[StoredDocument]: ...

    async def set_doc(
        self,
        collection: str,
        doc_id: str,
        fields: Mapping[str, Any],
        *,
        merge: bool = False,
    ) -> None: ...

    async def update_doc(self, collection: str, doc_id: str, fields: Mapping[str, Any]) -> None: ...


@runtime_checkable
class RealtimeStore(Protocol):
    """Path-addressed realtime tree (device mirrors and per-user device index)."""

    async def read_path(self, path: str) -> object | None: ...

    async def write_path(self, path: str, value: object) -> None: ...
