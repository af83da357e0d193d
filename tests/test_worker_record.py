from __future__ import annotations

import pytest

from crewid.core.errors import InvalidInputError
from crewid.core.identity.fingerprint import compute_fingerprint
from crewid.core.identity.models import EmploymentType, WorkerProfileSnapshot, WorkerStatus
from tests.helpers.fakes import worker_record


def test_from_worker_record_maps_nested_fields():
    p = WorkerProfileSnapshot.from_worker_record(worker_record("W1"))
    assert p.worker_id == "W1"
    assert p.full_name == "Rajesh Kumar"
    assert p.employee_id == "EMP001"
    assert p.department == "Construction"
    assert p.role == "Mason"
    assert p.current_project == "Skyline Towers"
    assert p.employment_type is EmploymentType.full_time
    assert p.status is WorkerStatus.active
    assert p.phone_number == "+91 98765 43210"
    assert p.address == "12 MG Road, Pune, MH, 411001, India"
    assert p.work_location == "Site A"


def test_record_without_project_is_unassigned(store):
    rec = worker_record("W3", currentProject="")
    p = WorkerProfileSnapshot.from_worker_record(rec)
    assert p.current_project is None
    cred = store.get_or_create(p)
    assert store.build_presentation_payload(p, cred).project == "Unassigned"


def test_record_contact_edits_do_not_change_fingerprint():
    rec = worker_record("W1")
    before = WorkerProfileSnapshot.from_worker_record(rec)
    rec["personalInfo"]["phoneNumber"] = "+91 90000 11111"
    rec["personalInfo"]["address"]["city"] = "Mumbai"
    rec["jobInfo"]["designation"] = "Lead Mason"
    after = WorkerProfileSnapshot.from_worker_record(rec)
    assert compute_fingerprint(before) == compute_fingerprint(after)


def test_record_with_unknown_employment_type_is_rejected():
    with pytest.raises(InvalidInputError) as ei:
        WorkerProfileSnapshot.from_worker_record(worker_record("W1", employmentType="seasonal"))
    assert ei.value.code == "invalid_input"
    assert ei.value.context["fields"] == ["employment_type"]
    assert ei.value.context["worker_id"] == "W1"


def test_record_with_unknown_status_is_rejected():
    rec = worker_record("W1")
    rec["status"] = "retired"
    with pytest.raises(InvalidInputError) as ei:
        WorkerProfileSnapshot.from_worker_record(rec)
    assert "status" in ei.value.context["fields"]


def test_terminated_record_is_not_active():
    rec = worker_record("W1")
    rec["status"] = "terminated"
    p = WorkerProfileSnapshot.from_worker_record(rec)
    assert p.status is WorkerStatus.terminated
    assert p.is_active is False
