"""Entity reader and repair writer over the raw store ports."""

from __future__ import annotations

from .reader import StoreEntityReader
from .schema import DeviceLinkRecord, DeviceMirrorPayload, DeviceRecord, UserRecord
from .writer import StoreRepairWriter

__all__ = [
    "DeviceLinkRecord",
    "DeviceMirrorPayload",
    "DeviceRecord",
    "StoreEntityReader",
    "StoreRepairWriter",
    "UserRecord",
]
