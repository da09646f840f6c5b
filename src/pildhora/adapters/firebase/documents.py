"""Document store adapter over the Firestore async client."""

from __future__ import annotations

from contextlib import contextmanager
from logging import getLogger
from typing import TYPE_CHECKING, Any

from firebase_admin import firestore_async
from google.api_core import exceptions as api_exceptions
from google.auth import exceptions as auth_exceptions
from google.cloud.firestore_v1.base_query import FieldFilter

from pildhora.domain.ports import StoredDocument, StoreError, StorePermissionError

if TYPE_CHECKING:
    from collections.abc import Iterator, Mapping, Sequence

    import firebase_admin
    from google.cloud.firestore import AsyncClient

    from pildhora.domain.ports import Fields

log = getLogger(__name__)


@contextmanager
def translate_errors(action: str) -> Iterator[None]:
    """Re-raise driver failures as ``StoreError``."""

    try:
        yield
    except (api_exceptions.PermissionDenied, api_exceptions.Unauthenticated) as exc:
        raise StorePermissionError(f"{action}: permission denied ({exc.message})") from exc
    except api_exceptions.GoogleAPICallError as exc:
        raise StoreError(f"{action}: {exc.message or type(exc).__name__}") from exc
    except auth_exceptions.GoogleAuthError as exc:
        raise StorePermissionError(f"{action}: authentication failed ({exc})") from exc


class FirestoreDocumentStore:
    """Implements ``DocumentStore`` for the ``users``/``devices``/... collections."""

    def __init__(self, client: AsyncClient) -> None:
        self._client = client

    @classmethod
    def for_app(cls, app: firebase_admin.App) -> FirestoreDocumentStore:
        return cls(firestore_async.client(app))

    async def get_doc(self, collection: str, doc_id: str) -> Fields | None:
        with translate_errors(f"get {collection}/{doc_id}"):
            snapshot = await self._client.collection(collection).document(doc_id).get()
        if not snapshot.exists:
            return None
        return snapshot.to_dict() or {}

    async def list_docs(self, collection: str) -> Sequence[StoredDocument]:
        with translate_errors(f"list {collection}"):
            docs = [
                StoredDocument(snapshot.id, snapshot.to_dict() or {})
                async for snapshot in self._client.collection(collection).stream()
            ]
        log.debug("Listed %s documents from %s", len(docs), collection)
        return docs

    async def query_by_field(
        self,
        collection: str,
        field: str,
        value: object,
        *,
        limit: int | None = None,
    ) -> Sequence[StoredDocument]:
        query = self._client.collection(collection).where(filter=FieldFilter(field, "==", value))
        if limit is not None:
            query = query.limit(limit)
        with translate_errors(f"query {collection} where {field} == {value!r}"):
            return [
                StoredDocument(snapshot.id, snapshot.to_dict() or {})
                async for snapshot in query.stream()
            ]

    async def set_doc(
        self,
        collection: str,
        doc_id: str,
        fields: Mapping[str, Any],
        *,
        merge: bool = False,
    ) -> None:
        with translate_errors(f"set {collection}/{doc_id}"):
            await self._client.collection(collection).document(doc_id).set(
                dict(fields), merge=merge
            )

    async def update_doc(self, collection: str, doc_id: str, fields: Mapping[str, Any]) -> None:
        with translate_errors(f"update {collection}/{doc_id}"):
            await self._client.collection(collection).document(doc_id).update(dict(fields))
