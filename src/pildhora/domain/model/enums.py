"""Domain enums (pure, dependency-light)."""

from __future__ import annotations

from enum import StrEnum


class Collection(StrEnum):
    """Document store collection names."""

    USERS = "users"
    DEVICES = "devices"
    DEVICE_LINKS = "deviceLinks"
    MEDICATIONS = "medications"
    MEDICATION_EVENTS = "medicationEvents"


class Role(StrEnum):
    PATIENT = "patient"
    CAREGIVER = "caregiver"


class LinkStatus(StrEnum):
    ACTIVE = "active"
    REVOKED = "revoked"


class ProvisioningStatus(StrEnum):
    PENDING = "pending"
    ACTIVE = "active"
