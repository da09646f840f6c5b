"""Firebase store adapters (Firestore documents, Realtime Database REST)."""

from __future__ import annotations

from .app import AccessTokenSource, initialize_firebase
from .documents import FirestoreDocumentStore
from .realtime import RealtimeRestStore

__all__ = [
    "AccessTokenSource",
    "FirestoreDocumentStore",
    "RealtimeRestStore",
    "initialize_firebase",
]
