"""
Worker credential identity.

One durable card id per worker, issued once; the data embedded in the
credential is refreshed only when identity-relevant profile fields change.
"""

from crewid.core.identity.models import (
    ChangeTracker,
    Credential,
    CredentialRefresh,
    EmploymentType,
    PresentationPayload,
    RefreshCheck,
    RefreshRejected,
    WorkerProfileSnapshot,
    WorkerStatus,
)
from crewid.core.identity.store import IdentityStore, build_presentation_payload

__all__ = [
    "ChangeTracker",
    "Credential",
    "CredentialRefresh",
    "EmploymentType",
    "IdentityStore",
    "PresentationPayload",
    "RefreshCheck",
    "RefreshRejected",
    "WorkerProfileSnapshot",
    "WorkerStatus",
    "build_presentation_payload",
]
