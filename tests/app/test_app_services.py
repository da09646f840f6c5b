from __future__ import annotations

import pytest

from pildhora.app import diagnose_device, reconcile_devices
from pildhora.config import MissingConfigurationError, RateLimit, ReconcileConfig
from pildhora.domain.model import Collection
from pildhora.domain.reconciliation import OperationCategory
from tests.support.dispensers import build_stores, device_doc, user_doc


def test_reconcile_devices_with_injected_stores() -> None:
    documents, realtime = build_stores(
        users={"p1": user_doc("patient")},
        devices=[device_doc("DEV-1", linked_users=["p1"])],
    )
    config = ReconcileConfig(
        max_workers=2,
        call_timeout_seconds=5.0,
        write_ratelimit=RateLimit(max_calls=100, per_seconds=1.0),
    )

    report = reconcile_devices(documents=documents, realtime=realtime, reconcile_config=config)

    assert report.counts(OperationCategory.SCHEMA_UPGRADE).updated == 1
    assert report.counts(OperationCategory.MISSING_LINK).created == 1
    assert documents.docs(Collection.DEVICES)["DEV-1"]["primaryPatientId"] == "p1"


def test_reconcile_devices_dry_run_leaves_stores_untouched() -> None:
    documents, realtime = build_stores(
        users={"p1": user_doc("patient")},
        realtime_index={"p1": ["DEV-1"]},
    )

    report = reconcile_devices(dry_run=True, documents=documents, realtime=realtime)

    assert report.dry_run
    assert report.totals().planned == 2
    assert documents.writes == []


def test_diagnose_device_with_injected_stores() -> None:
    documents, realtime = build_stores(
        users={"c1": user_doc("caregiver")},
        devices=[device_doc("DEV-1", primary_patient_id="p1")],
    )

    findings = diagnose_device(
        caregiver_id="c1", device_id="DEV-1", documents=documents, realtime=realtime
    )

    assert findings.caregiver_role.ok
    assert findings.device.ok
    assert not findings.caregiver_link.ok
    assert documents.writes == []


def test_services_need_firebase_configuration() -> None:
    with pytest.raises(MissingConfigurationError):
        diagnose_device(caregiver_id="c1", device_id="DEV-1")
