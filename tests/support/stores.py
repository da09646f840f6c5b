"""In-memory store fakes with failure injection."""

from __future__ import annotations

import asyncio
import copy
from typing import TYPE_CHECKING, Any

from pildhora.domain.ports import StoredDocument, StoreError

if TYPE_CHECKING:
    from collections.abc import Mapping, Sequence

    from pildhora.domain.ports import Fields

type CallKey = tuple[str, str, str | None]


class _Faults:
    def __init__(self) -> None:
        self.errors: dict[CallKey, Exception] = {}
        self.delays: dict[CallKey, float] = {}

    async def apply(self, method: str, target: str, key: str | None) -> None:
        for candidate in dict.fromkeys(((method, target, key), (method, target, None))):
            delay = self.delays.get(candidate)
            if delay is not None:
                await asyncio.sleep(delay)
            error = self.errors.get(candidate)
            if error is not None:
                raise error


class InMemoryDocumentStore:
    """Collections of plain dicts; records every write."""

    def __init__(self, collections: Mapping[str, Mapping[str, Fields]] | None = None) -> None:
        self.collections: dict[str, dict[str, Fields]] = {
            name: {doc_id: copy.deepcopy(dict(data)) for doc_id, data in docs.items()}
            for name, docs in (collections or {}).items()
        }
        self.writes: list[tuple[str, str, str]] = []
        self.calls: list[CallKey] = []
        self._faults = _Faults()

    def fail(
        self,
        method: str,
        collection: str,
        doc_id: str | None = None,
        *,
        error: Exception | None = None,
    ) -> None:
        self._faults.errors[(method, collection, doc_id)] = error or StoreError(
            f"{method} {collection}/{doc_id or '*'} unavailable"
        )

    def delay(
        self,
        method: str,
        collection: str,
        seconds: float,
        doc_id: str | None = None,
    ) -> None:
        self._faults.delays[(method, collection, doc_id)] = seconds

    def docs(self, collection: str) -> dict[str, Fields]:
        return self.collections.setdefault(collection, {})

    async def get_doc(self, collection: str, doc_id: str) -> Fields | None:
        await self._call("get_doc", collection, doc_id)
        data = self.docs(collection).get(doc_id)
        return copy.deepcopy(data) if data is not None else None

    async def list_docs(self, collection: str) -> Sequence[StoredDocument]:
        await self._call("list_docs", collection, None)
        return [
            StoredDocument(doc_id, copy.deepcopy(data))
            for doc_id, data in sorted(self.docs(collection).items())
        ]

    async def query_by_field(
        self,
        collection: str,
        field: str,
        value: object,
        *,
        limit: int | None = None,
    ) -> Sequence[StoredDocument]:
        await self._call("query_by_field", collection, field)
        matches = [
            StoredDocument(doc_id, copy.deepcopy(data))
            for doc_id, data in sorted(self.docs(collection).items())
            if data.get(field) == value
        ]
        return matches[:limit] if limit is not None else matches

    async def set_doc(
        self,
        collection: str,
        doc_id: str,
        fields: Mapping[str, Any],
        *,
        merge: bool = False,
    ) -> None:
        await self._call("set_doc", collection, doc_id)
        docs = self.docs(collection)
        if merge and doc_id in docs:
            docs[doc_id].update(copy.deepcopy(dict(fields)))
        else:
            docs[doc_id] = copy.deepcopy(dict(fields))
        self.writes.append(("set_doc", collection, doc_id))

    async def update_doc(self, collection: str, doc_id: str, fields: Mapping[str, Any]) -> None:
        await self._call("update_doc", collection, doc_id)
        docs = self.docs(collection)
        if doc_id not in docs:
            raise StoreError(f"update {collection}/{doc_id}: not found")
        docs[doc_id].update(copy.deepcopy(dict(fields)))
        self.writes.append(("update_doc", collection, doc_id))

    async def _call(self, method: str, collection: str, key: str | None) -> None:
        self.calls.append((method, collection, key))
        await self._faults.apply(method, collection, key)


class InMemoryRealtimeStore:
    """Nested-dict tree addressed by slash-separated paths."""

    def __init__(self, tree: Mapping[str, Any] | None = None) -> None:
        self.tree: dict[str, Any] = copy.deepcopy(dict(tree or {}))
        self.writes: list[str] = []
        self._faults = _Faults()

    def fail(self, method: str, path: str, *, error: Exception | None = None) -> None:
        self._faults.errors[(method, path, None)] = error or StoreError(
            f"{method} {path} unavailable"
        )

    def delay(self, method: str, path: str, seconds: float) -> None:
        self._faults.delays[(method, path, None)] = seconds

    async def read_path(self, path: str) -> object | None:
        await self._faults.apply("read_path", path, None)
        node: Any = self.tree
        for part in _parts(path):
            if not isinstance(node, dict) or part not in node:
                return None
            node = node[part]
        return copy.deepcopy(node)

    async def write_path(self, path: str, value: object) -> None:
        await self._faults.apply("write_path", path, None)
        *parents, leaf = _parts(path)
        node = self.tree
        for part in parents:
            node = node.setdefault(part, {})
        node[leaf] = copy.deepcopy(value)
        self.writes.append(path)


def _parts(path: str) -> list[str]:
    return [part for part in path.strip("/").split("/") if part]
