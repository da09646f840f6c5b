"""Pydantic models for document-store records and realtime payloads.

Wire names are preserved through aliases. Every field is optional: legacy
records are partial, and a record with an unreadable field still loads with
the fields that could be read.
"""

from __future__ import annotations

import logging
from datetime import UTC, datetime
from typing import Annotated, Any, ClassVar

from pydantic import BaseModel, BeforeValidator, ConfigDict, Field, ValidationError

log = logging.getLogger(__name__)

# values above this are epoch milliseconds (JavaScript Date.now())
_EPOCH_MILLIS_THRESHOLD = 100_000_000_000


def _parse_timestamp(value: object) -> datetime | None:
    match value:
        case None | "":
            return None
        case datetime():
            return value if value.tzinfo is not None else value.replace(tzinfo=UTC)
        case bool():
            return None
        case int() | float():
            seconds = value / 1000 if value > _EPOCH_MILLIS_THRESHOLD else value
            return datetime.fromtimestamp(seconds, tz=UTC)
        case str():
            try:
                parsed = datetime.fromisoformat(value.strip())
            except ValueError:
                log.debug("Unparseable timestamp %r", value)
                return None
            return parsed if parsed.tzinfo is not None else parsed.replace(tzinfo=UTC)
        case {"_seconds": int() | float() as seconds} | {"seconds": int() | float() as seconds}:
            return datetime.fromtimestamp(seconds, tz=UTC)
        case _:
            log.debug("Unsupported timestamp value of type %s", type(value).__name__)
            return None


Timestamp = Annotated[datetime | None, BeforeValidator(_parse_timestamp)]


class RecordModel(BaseModel):
    model_config = ConfigDict(extra="allow", populate_by_name=True)
    _logged_extra_keys: ClassVar[set[str]] = set()

    def model_post_init(self, _context: object, /) -> None:
        extras = self.__pydantic_extra__
        if not extras:
            return
        new_keys = set(extras).difference(self._logged_extra_keys)
        if not new_keys:
            return
        self._logged_extra_keys.update(new_keys)
        log.debug(
            "%s: unmodeled keys: %s",
            type(self).__name__,
            ", ".join(sorted(new_keys)),
        )


class UserRecord(RecordModel):
    _logged_extra_keys: ClassVar[set[str]] = set()

    role: str | None = None
    device_id: str | None = Field(default=None, alias="deviceId")
    name: str | None = None
    email: str | None = None
    created_at: Timestamp = Field(default=None, alias="createdAt")


class DeviceRecord(RecordModel):
    _logged_extra_keys: ClassVar[set[str]] = set()

    id: str | None = None
    primary_patient_id: str | None = Field(default=None, alias="primaryPatientId")
    provisioning_status: str | None = Field(default=None, alias="provisioningStatus")
    provisioned_at: Timestamp = Field(default=None, alias="provisionedAt")
    provisioned_by: str | None = Field(default=None, alias="provisionedBy")
    wifi_configured: bool | None = Field(default=None, alias="wifiConfigured")
    linked_users: list[str] | dict[str, Any] | None = Field(default=None, alias="linkedUsers")
    created_at: Timestamp = Field(default=None, alias="createdAt")
    updated_at: Timestamp = Field(default=None, alias="updatedAt")


class DeviceLinkRecord(RecordModel):
    _logged_extra_keys: ClassVar[set[str]] = set()

    id: str | None = None
    device_id: str | None = Field(default=None, alias="deviceId")
    user_id: str | None = Field(default=None, alias="userId")
    role: str | None = None
    status: str | None = None
    linked_at: Timestamp = Field(default=None, alias="linkedAt")
    linked_by: str | None = Field(default=None, alias="linkedBy")


class DeviceMirrorPayload(RecordModel):
    _logged_extra_keys: ClassVar[set[str]] = set()

    config: dict[str, Any] | None = None
    state: dict[str, Any] | None = None


def validate_lenient[M: RecordModel](
    model: type[M],
    data: object,
    *,
    record_id: str,
) -> M:
    """Validate ``data``, dropping top-level keys that fail validation."""

    try:
        return model.model_validate(data)
    except ValidationError as exc:
        if not isinstance(data, dict):
            raise
        invalid = {str(error["loc"][0]) for error in exc.errors() if error["loc"]}
        log.warning(
            "%s %s: ignoring unreadable fields: %s",
            model.__name__,
            record_id,
            ", ".join(sorted(invalid)),
        )
        cleaned = {key: value for key, value in data.items() if key not in invalid}
        return model.model_validate(cleaned)
