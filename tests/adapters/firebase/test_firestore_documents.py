from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from datetime import UTC, datetime, timedelta
from typing import Any

import pytest
from google.api_core import exceptions as api_exceptions
from google.auth import exceptions as auth_exceptions

from pildhora.adapters.firebase import AccessTokenSource, FirestoreDocumentStore
from pildhora.adapters.firebase.documents import translate_errors
from pildhora.domain.ports import StoreError, StorePermissionError


@dataclass
class _Snapshot:
    id: str
    data: dict[str, Any] | None

    @property
    def exists(self) -> bool:
        return self.data is not None

    def to_dict(self) -> dict[str, Any] | None:
        return self.data


@dataclass
class _FakeCollection:
    docs: dict[str, dict[str, Any]]
    filters: list[tuple[str, str, object]] = field(default_factory=list)
    limit_value: int | None = None
    error: Exception | None = None

    def document(self, doc_id: str) -> _FakeDocument:
        return _FakeDocument(self, doc_id)

    def where(self, *, filter: Any) -> _FakeCollection:  # noqa: A002
        self.filters.append((filter.field_path, filter.op_string, filter.value))
        return self

    def limit(self, count: int) -> _FakeCollection:
        self.limit_value = count
        return self

    async def stream(self) -> Any:
        if self.error is not None:
            raise self.error
        matches = [
            (doc_id, data)
            for doc_id, data in sorted(self.docs.items())
            if all(data.get(path) == value for path, _op, value in self.filters)
        ]
        for doc_id, data in matches[: self.limit_value]:
            yield _Snapshot(doc_id, data)


@dataclass
class _FakeDocument:
    collection: _FakeCollection
    doc_id: str

    async def get(self) -> _Snapshot:
        if self.collection.error is not None:
            raise self.collection.error
        return _Snapshot(self.doc_id, self.collection.docs.get(self.doc_id))

    async def set(self, fields: dict[str, Any], *, merge: bool = False) -> None:
        if self.collection.error is not None:
            raise self.collection.error
        current = self.collection.docs.get(self.doc_id, {}) if merge else {}
        self.collection.docs[self.doc_id] = {**current, **fields}

    async def update(self, fields: dict[str, Any]) -> None:
        if self.doc_id not in self.collection.docs:
            raise api_exceptions.NotFound("no document to update")
        self.collection.docs[self.doc_id].update(fields)


class _FakeClient:
    def __init__(self) -> None:
        self.collections: dict[str, _FakeCollection] = {}

    def collection(self, name: str) -> _FakeCollection:
        return self.collections.setdefault(name, _FakeCollection({}))


def _store(**collections: dict[str, dict[str, Any]]) -> tuple[FirestoreDocumentStore, _FakeClient]:
    client = _FakeClient()
    for name, docs in collections.items():
        client.collections[name] = _FakeCollection(docs)
    return FirestoreDocumentStore(client), client  # type: ignore[arg-type]


def test_get_doc_returns_none_for_missing_document() -> None:
    store, _ = _store(users={"p1": {"role": "patient"}})

    assert asyncio.run(store.get_doc("users", "p1")) == {"role": "patient"}
    assert asyncio.run(store.get_doc("users", "p2")) is None


def test_list_docs_streams_collection() -> None:
    store, _ = _store(devices={"DEV-2": {}, "DEV-1": {"id": "DEV-1"}})

    docs = asyncio.run(store.list_docs("devices"))

    assert [(doc.id, doc.data) for doc in docs] == [("DEV-1", {"id": "DEV-1"}), ("DEV-2", {})]


def test_query_by_field_uses_equality_filter_and_limit() -> None:
    store, client = _store(
        medications={
            "m1": {"patientId": "p1"},
            "m2": {"patientId": "p1"},
            "m3": {"patientId": "p2"},
        }
    )

    docs = asyncio.run(store.query_by_field("medications", "patientId", "p1", limit=1))

    assert [doc.id for doc in docs] == ["m1"]
    assert client.collections["medications"].filters == [("patientId", "==", "p1")]
    assert client.collections["medications"].limit_value == 1


def test_set_and_update_doc() -> None:
    store, client = _store(devices={})

    asyncio.run(store.set_doc("devices", "DEV-1", {"id": "DEV-1"}))
    asyncio.run(store.update_doc("devices", "DEV-1", {"primaryPatientId": "p1"}))

    assert client.collections["devices"].docs == {
        "DEV-1": {"id": "DEV-1", "primaryPatientId": "p1"}
    }
    with pytest.raises(StoreError, match="update devices/DEV-2"):
        asyncio.run(store.update_doc("devices", "DEV-2", {"primaryPatientId": "p1"}))


def test_permission_denied_is_translated() -> None:
    store, client = _store(users={})
    client.collections["users"].error = api_exceptions.PermissionDenied("missing IAM role")

    with pytest.raises(StorePermissionError, match="missing IAM role"):
        asyncio.run(store.list_docs("users"))


@pytest.mark.parametrize(
    ("error", "expected"),
    [
        (api_exceptions.Unauthenticated("expired"), StorePermissionError),
        (api_exceptions.ServiceUnavailable("down"), StoreError),
        (api_exceptions.DeadlineExceeded("slow"), StoreError),
        (auth_exceptions.RefreshError("bad key"), StorePermissionError),
    ],
)
def test_translate_errors(error: Exception, expected: type[StoreError]) -> None:
    with pytest.raises(expected) as excinfo, translate_errors("get users/p1"):
        raise error

    assert str(excinfo.value).startswith("get users/p1:")
    assert excinfo.value.__cause__ is error


def test_unrelated_errors_pass_through() -> None:
    with pytest.raises(KeyError), translate_errors("get users/p1"):
        raise KeyError("p1")


@dataclass
class _TokenInfo:
    access_token: str
    expiry: datetime | None


class _FakeCredential:
    def __init__(self, lifetime: timedelta) -> None:
        self.lifetime = lifetime
        self.issued = 0

    def get_access_token(self) -> _TokenInfo:
        self.issued += 1
        # naive UTC, as google-auth reports it
        expiry = datetime.now(UTC).replace(tzinfo=None) + self.lifetime
        return _TokenInfo(f"token-{self.issued}", expiry)


def test_access_token_is_cached_until_near_expiry() -> None:
    credential = _FakeCredential(timedelta(hours=1))
    source = AccessTokenSource(credential)  # type: ignore[arg-type]

    async def run() -> list[str]:
        return [await source(), await source()]

    assert asyncio.run(run()) == ["token-1", "token-1"]
    assert credential.issued == 1


def test_access_token_refreshes_inside_margin() -> None:
    credential = _FakeCredential(timedelta(seconds=30))
    source = AccessTokenSource(credential)  # type: ignore[arg-type]

    async def run() -> list[str]:
        return [await source(), await source()]

    assert asyncio.run(run()) == ["token-1", "token-2"]
