from __future__ import annotations

import time
from enum import Enum
from typing import Any, Dict, List, Mapping, Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from crewid.core.errors import InvalidInputError
from crewid.core.identity.fingerprint import canonical_json


def iso_at(ts: Optional[float] = None) -> str:
    """UTC ISO-8601 with millisecond precision."""
    if ts is None:
        ts = time.time()
    return time.strftime("%Y-%m-%dT%H:%M:%S", time.gmtime(ts)) + f".{int(ts * 1000) % 1000:03d}Z"


class WorkerStatus(str, Enum):
    active = "active"
    inactive = "inactive"
    on_leave = "on_leave"
    suspended = "suspended"
    terminated = "terminated"


class EmploymentType(str, Enum):
    full_time = "full-time"
    part_time = "part-time"
    contract = "contract"
    temporary = "temporary"


class WorkerProfileSnapshot(BaseModel):
    """
    Identity-relevant view of a worker record, supplied fresh on every call.

    Contact fields ride along so callers can pass what they have, but they
    never take part in change detection.
    """

    model_config = ConfigDict(extra="forbid", frozen=True)

    worker_id: str = ""
    full_name: str = ""
    employee_id: str = ""
    department: str = ""
    role: str = ""
    current_project: Optional[str] = None
    employment_type: EmploymentType = EmploymentType.full_time
    status: WorkerStatus = WorkerStatus.active

    phone_number: Optional[str] = None
    email: Optional[str] = None
    address: Optional[str] = None
    work_location: Optional[str] = None

    @property
    def is_active(self) -> bool:
        return self.status == WorkerStatus.active

    @classmethod
    def from_worker_record(cls, record: Mapping[str, Any]) -> "WorkerProfileSnapshot":
        """
        Build a snapshot from the dashboard's nested worker record
        (id / status / personalInfo / jobInfo).
        """
        personal = dict(record.get("personalInfo") or {})
        job = dict(record.get("jobInfo") or {})
        first = str(personal.get("firstName") or "").strip()
        last = str(personal.get("lastName") or "").strip()
        address = personal.get("address")
        if isinstance(address, Mapping):
            parts = [address.get(k) for k in ("street", "city", "state", "pincode", "country")]
            address = ", ".join(str(p) for p in parts if p)
        data: Dict[str, Any] = {
            "worker_id": str(record.get("id") or ""),
            "full_name": f"{first} {last}".strip(),
            "employee_id": str(job.get("employeeId") or ""),
            "department": str(job.get("department") or ""),
            "role": str(job.get("role") or ""),
            "current_project": job.get("currentProject") or None,
            "phone_number": personal.get("phoneNumber"),
            "email": personal.get("email"),
            "address": address or None,
            "work_location": job.get("workLocation"),
        }
        if job.get("employmentType"):
            data["employment_type"] = job["employmentType"]
        if record.get("status"):
            data["status"] = record["status"]
        try:
            return cls.model_validate(data)
        except ValidationError as e:
            fields = sorted({".".join(str(x) for x in err.get("loc", ())) for err in e.errors()})
            raise InvalidInputError("Worker record is malformed.", worker_id=data["worker_id"], fields=fields) from e


class Credential(BaseModel):
    model_config = ConfigDict(extra="forbid")

    worker_id: str
    employee_id: str = ""
    card_id: str
    issued_at: str
    is_active: bool = True


class ChangeTracker(BaseModel):
    model_config = ConfigDict(extra="forbid")

    worker_id: str
    last_refresh_at: str
    last_profile_fingerprint: str
    history: List[str] = Field(default_factory=list)  # every card_id ever generated, append-only


class PresentationPayload(BaseModel):
    model_config = ConfigDict(extra="forbid", frozen=True)

    worker_id: str
    employee_id: str
    card_id: str
    name: str
    department: str
    role: str
    project: str
    employment_type: str
    status: str
    company: str
    timestamp: str
    version: str

    def to_qr_text(self) -> str:
        return canonical_json(self.model_dump(mode="json"))


class RefreshCheck(BaseModel):
    model_config = ConfigDict(extra="forbid", frozen=True)

    allowed: bool
    reason: str


class CredentialRefresh(BaseModel):
    model_config = ConfigDict(extra="forbid", frozen=True)

    success: bool = True
    credential_data: PresentationPayload
    message: str
    reason: str = ""


class RefreshRejected(BaseModel):
    model_config = ConfigDict(extra="forbid", frozen=True)

    success: bool = False
    reason: str


class IdentityState(BaseModel):
    """Persisted document: both maps commit together in one atomic replace."""

    model_config = ConfigDict(extra="forbid")

    state_version: int = Field(default=1, ge=1)
    revision: int = Field(default=0, ge=0)
    updated_at: str = Field(default_factory=iso_at)
    credentials: Dict[str, Credential] = Field(default_factory=dict)
    trackers: Dict[str, ChangeTracker] = Field(default_factory=dict)
