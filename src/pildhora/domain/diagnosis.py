"""Point-in-time, read-only audit of one caregiver/device pair.

Every check resolves to a ``Presence``. A store failure never aborts the audit:
the affected checks become ``unknown`` and carry the failure reason.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from enum import StrEnum
from logging import getLogger
from typing import TYPE_CHECKING

from pildhora.domain.model import Role
from pildhora.domain.ports import StoreError
from pildhora.domain.reconciliation.gate import CallGate
from pildhora.domain.reconciliation.readers import describe_failure

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable

    from pildhora.domain.model import Device, DeviceMirror, User
    from pildhora.domain.ports import AuditReader

log = getLogger(__name__)

RECENT_EVENTS_LIMIT = 5
DEFAULT_DIAGNOSIS_TIMEOUT_SECONDS = 10.0
DIAGNOSIS_MAX_WORKERS = 4


class Presence(StrEnum):
    PRESENT = "present"
    MISSING = "missing"
    UNKNOWN = "unknown"


@dataclass(slots=True, frozen=True)
class Check:
    name: str
    presence: Presence
    detail: str | None = None

    @property
    def ok(self) -> bool:
        return self.presence is Presence.PRESENT


_FIXES: dict[str, str] = {
    "caregiver record": "the caregiver account does not exist; check the id",
    "caregiver role": "the account is not a caregiver",
    "caregiver link": "create an active deviceLinks record for the caregiver",
    "device document": "run `pildhora reconcile` to materialize the device document",
    "device config": "the dispenser has not published its realtime config",
    "device state": "the dispenser has not published its realtime state",
    "patients": "no patient has this device in users.deviceId",
    "medications": "the patient has no medications",
    "recent events": "no medication events recorded for the patient",
    "patient link": "run `pildhora reconcile` to create the patient link",
    "linked users": "run `pildhora reconcile`; the patient is missing from linkedUsers",
    "realtime index": "the device is missing from users/{id}/devices in the realtime store",
}


@dataclass(slots=True)
class PatientFindings:
    patient_id: str
    name: str | None
    medications: Check
    recent_events: Check
    patient_link: Check
    linked_users: Check
    realtime_index: Check

    def checks(self) -> tuple[Check, ...]:
        return (
            self.medications,
            self.recent_events,
            self.patient_link,
            self.linked_users,
            self.realtime_index,
        )


@dataclass(slots=True)
class AuditFindings:
    """Everything ``diagnose`` observed for one caregiver/device pair."""

    caregiver_id: str
    device_id: str
    caregiver: Check
    caregiver_role: Check
    caregiver_link: Check
    device: Check
    device_config: Check
    device_state: Check
    patient_lookup: Check
    patients: list[PatientFindings] = field(default_factory=list[PatientFindings])

    def checks(self) -> tuple[Check, ...]:
        return (
            self.caregiver,
            self.caregiver_role,
            self.caregiver_link,
            self.device,
            self.device_config,
            self.device_state,
            self.patient_lookup,
        )

    def issues(self) -> list[str]:
        """Human-readable recommendations, one per failed check."""

        issues = [
            _issue(f"caregiver {self.caregiver_id} / device {self.device_id}", check)
            for check in self.checks()
            if not check.ok
        ]
        for patient in self.patients:
            issues.extend(
                _issue(f"patient {patient.patient_id}", check)
                for check in patient.checks()
                if not check.ok
            )
        return issues

    @property
    def healthy(self) -> bool:
        return not self.issues()


def _issue(subject: str, check: Check) -> str:
    if check.presence is Presence.UNKNOWN:
        return f"{subject}: {check.name} could not be checked ({check.detail or 'unknown'})"
    hint = _FIXES.get(check.name, "")
    detail = f" [{check.detail}]" if check.detail else ""
    return f"{subject}: {check.name} {check.presence}{detail}; {hint}".rstrip("; ")


def diagnose(
    reader: AuditReader,
    *,
    caregiver_id: str,
    device_id: str,
    timeout_seconds: float = DEFAULT_DIAGNOSIS_TIMEOUT_SECONDS,
) -> AuditFindings:
    """Synchronous facade over :func:`diagnose_async`."""

    return asyncio.run(
        diagnose_async(
            reader,
            caregiver_id=caregiver_id,
            device_id=device_id,
            timeout_seconds=timeout_seconds,
        )
    )


async def diagnose_async(
    reader: AuditReader,
    *,
    caregiver_id: str,
    device_id: str,
    timeout_seconds: float = DEFAULT_DIAGNOSIS_TIMEOUT_SECONDS,
) -> AuditFindings:
    gate = CallGate(max_workers=DIAGNOSIS_MAX_WORKERS, timeout_seconds=timeout_seconds)

    (
        (caregiver, caregiver_check),
        (link, caregiver_link),
        (device, device_check),
        (mirror, mirror_check),
        (candidates, patient_lookup),
    ) = await asyncio.gather(
        _probe("caregiver record", gate, lambda: reader.load_user(caregiver_id)),
        _probe("caregiver link", gate, lambda: reader.load_device_link(device_id, caregiver_id)),
        _probe("device document", gate, lambda: reader.load_device(device_id)),
        _probe("device mirror", gate, lambda: reader.load_realtime_mirror(device_id)),
        _probe("patients", gate, lambda: reader.find_users_with_device(device_id), present=bool),
    )
    if link is not None and not link.is_active:
        caregiver_link = Check("caregiver link", Presence.MISSING, f"status={link.status}")
    device_config, device_state = _mirror_checks(mirror, mirror_check)

    patients = [user for user in candidates or () if user.role is Role.PATIENT]
    if candidates is not None and not patients:
        patient_lookup = Check("patients", Presence.MISSING)
    elif patients:
        patient_lookup = Check("patients", Presence.PRESENT, f"{len(patients)} found")

    findings = AuditFindings(
        caregiver_id=caregiver_id,
        device_id=device_id,
        caregiver=caregiver_check,
        caregiver_role=_role_check(caregiver, caregiver_check),
        caregiver_link=caregiver_link,
        device=device_check,
        device_config=device_config,
        device_state=device_state,
        patient_lookup=patient_lookup,
    )
    findings.patients.extend(
        await asyncio.gather(
            *(
                _diagnose_patient(reader, gate, patient, device_id, device, device_check)
                for patient in sorted(patients, key=lambda user: user.id)
            )
        )
    )

    log.info(
        "Diagnosis of device %s finished: %s patient(s), %s issue(s)",
        device_id,
        len(findings.patients),
        len(findings.issues()),
    )
    return findings


async def _diagnose_patient(
    reader: AuditReader,
    gate: CallGate,
    patient: User,
    device_id: str,
    device: Device | None,
    device_check: Check,
) -> PatientFindings:
    (_, medications), (_, recent_events), (link, patient_link), (_, realtime_index) = (
        await asyncio.gather(
            _probe("medications", gate, lambda: reader.count_medications(patient.id), present=bool),
            _probe(
                "recent events",
                gate,
                lambda: reader.count_recent_medication_events(
                    patient.id, limit=RECENT_EVENTS_LIMIT
                ),
                present=bool,
            ),
            _probe("patient link", gate, lambda: reader.load_device_link(device_id, patient.id)),
            _probe(
                "realtime index",
                gate,
                lambda: reader.load_realtime_devices_for(patient.id),
                present=lambda device_ids: device_id in device_ids,
            ),
        )
    )
    if link is not None and not link.is_active:
        patient_link = Check("patient link", Presence.MISSING, f"status={link.status}")

    if device is not None:
        listed = patient.id in device.linked_users
        linked_users = Check("linked users", Presence.PRESENT if listed else Presence.MISSING)
    elif device_check.presence is Presence.UNKNOWN:
        linked_users = Check("linked users", Presence.UNKNOWN, device_check.detail)
    else:
        linked_users = Check("linked users", Presence.MISSING, "device document missing")

    return PatientFindings(
        patient_id=patient.id,
        name=patient.name,
        medications=medications,
        recent_events=recent_events,
        patient_link=patient_link,
        linked_users=linked_users,
        realtime_index=realtime_index,
    )


async def _probe[T](
    name: str,
    gate: CallGate,
    loader: Callable[[], Awaitable[T]],
    *,
    present: Callable[[T], bool] | None = None,
) -> tuple[T | None, Check]:
    try:
        value = await gate.call(loader)
    except (StoreError, TimeoutError) as exc:
        reason = describe_failure(exc)
        log.warning("Check '%s' could not be completed: %s", name, reason)
        return None, Check(name, Presence.UNKNOWN, reason)
    found = present(value) if present is not None else value is not None
    detail = str(value) if isinstance(value, int) and not isinstance(value, bool) else None
    return value, Check(name, Presence.PRESENT if found else Presence.MISSING, detail)


def _mirror_checks(mirror: DeviceMirror | None, mirror_check: Check) -> tuple[Check, Check]:
    if mirror_check.presence is Presence.UNKNOWN:
        return (
            Check("device config", Presence.UNKNOWN, mirror_check.detail),
            Check("device state", Presence.UNKNOWN, mirror_check.detail),
        )
    config = mirror.config if mirror is not None else None
    state = mirror.state if mirror is not None else None
    return (
        Check("device config", Presence.PRESENT if config else Presence.MISSING),
        Check("device state", Presence.PRESENT if state else Presence.MISSING),
    )


def _role_check(caregiver: User | None, caregiver_check: Check) -> Check:
    if caregiver is None:
        detail = caregiver_check.detail or "no caregiver record"
        return Check("caregiver role", Presence.UNKNOWN, detail)
    if caregiver.role is Role.CAREGIVER:
        return Check("caregiver role", Presence.PRESENT, str(caregiver.role))
    role = caregiver.role.value if caregiver.role is not None else "unset"
    return Check("caregiver role", Presence.MISSING, f"role={role}")


def render_findings(findings: AuditFindings) -> list[str]:
    lines = [f"Diagnosis: caregiver {findings.caregiver_id}, device {findings.device_id}", ""]
    lines.extend(_render_check(check) for check in findings.checks())
    for patient in findings.patients:
        lines.append("")
        lines.append(f"Patient {patient.name or 'unknown'} ({patient.patient_id})")
        lines.extend(_render_check(check) for check in patient.checks())

    issues = findings.issues()
    lines.append("")
    if issues:
        lines.append("Recommendations:")
        lines.extend(f"  - {issue}" for issue in issues)
    else:
        lines.append("No issues found.")
    return lines


def _render_check(check: Check) -> str:
    detail = f" ({check.detail})" if check.detail else ""
    return f"  {check.name:<16} {check.presence}{detail}"
