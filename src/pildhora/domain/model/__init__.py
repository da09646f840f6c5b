"""Domain model for the dispenser relationship graph."""

from __future__ import annotations

from .entities import Device, DeviceLink, DeviceMirror, User, link_id
from .enums import Collection, LinkStatus, ProvisioningStatus, Role

__all__ = [
    "Collection",
    "Device",
    "DeviceLink",
    "DeviceMirror",
    "LinkStatus",
    "ProvisioningStatus",
    "Role",
    "User",
    "link_id",
]
