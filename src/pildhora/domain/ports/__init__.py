"""Domain port definitions for adapters."""

from __future__ import annotations

from .records import AuditReader, EntityReader, RepairWriter
from .stores import (
    DocumentStore,
    Fields,
    RealtimeStore,
    StoredDocument,
    StoreError,
    StorePermissionError,
)

__all__ = [
    "AuditReader",
    "DocumentStore",
    "EntityReader",
    "Fields",
    "RealtimeStore",
    "RepairWriter",
    "StoreError",
    "StorePermissionError",
    "StoredDocument",
]
