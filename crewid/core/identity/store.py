from __future__ import annotations

"""
IdentityStore: one durable credential per worker, plus change-gated refresh of
the data embedded in it.

Persistence:
- data/identity/identity_state.json        (credentials + trackers, one document)
- data/identity/backups/                   (pre-write copies, quarantined corrupt files)
- data/identity/last_known_good/           (copy of the last confirmed write)
- data/identity/identity_state.lock        (inter-process write lock)
"""

import threading
import time
from contextlib import contextmanager
from typing import Any, Callable, Iterator, List, Mapping, Optional, Tuple, Union

from pydantic import ValidationError

from crewid.core.config.models import IdentityConfigFile
from crewid.core.errors import InvalidInputError, StorageUnavailableError
from crewid.core.identity.card_ids import CardIdGenerator
from crewid.core.identity.fingerprint import compute_fingerprint, identity_fields
from crewid.core.identity.io import IdentityStatePaths, StateFileLock, StateLockTimeout, ensure_dirs, file_signature
from crewid.core.identity.models import (
    ChangeTracker,
    Credential,
    CredentialRefresh,
    IdentityState,
    PresentationPayload,
    RefreshCheck,
    RefreshRejected,
    WorkerProfileSnapshot,
    iso_at,
)
from crewid.core.jsonstore import atomic_write_json, read_json, recover_from_corrupt, write_last_known_good
from crewid.core.ops_log import OpsLogger


REASON_INITIAL = "Initial credential generation"
REASON_UNCHANGED = "No changes detected since last refresh"
REASON_CHANGED = "Worker details have been updated"
REFRESH_OK_MESSAGE = "Credential data refreshed successfully"

_MAX_CARD_ID_ATTEMPTS = 16

ProfileInput = Union[WorkerProfileSnapshot, Mapping[str, Any]]


def build_presentation_payload(
    profile: WorkerProfileSnapshot,
    credential: Credential,
    *,
    issuer_label: str = "The Solutionist",
    version: str = "2.0",
    unassigned_label: str = "Unassigned",
    generated_at: Optional[str] = None,
) -> PresentationPayload:
    fields = identity_fields(profile)
    return PresentationPayload(
        worker_id=profile.worker_id,
        employee_id=profile.employee_id,
        card_id=credential.card_id,
        name=profile.full_name,
        department=profile.department,
        role=profile.role,
        project=profile.current_project or unassigned_label,
        employment_type=fields["employment_type"],
        status=fields["status"],
        company=issuer_label,
        timestamp=generated_at or iso_at(),
        version=version,
    )


def coerce_profile(profile: Any) -> WorkerProfileSnapshot:
    if isinstance(profile, WorkerProfileSnapshot):
        p = profile
    elif isinstance(profile, Mapping):
        try:
            p = WorkerProfileSnapshot.model_validate(dict(profile))
        except ValidationError as e:
            fields = sorted({".".join(str(x) for x in err.get("loc", ())) for err in e.errors()})
            raise InvalidInputError("Worker profile is malformed.", fields=fields) from e
    else:
        raise InvalidInputError("Worker profile must be a snapshot or a mapping.", got=type(profile).__name__)
    if not p.worker_id.strip():
        raise InvalidInputError("Worker profile is missing worker_id.")
    return p


class IdentityStore:
    """
    Single-threaded semantics, safe to share between threads and processes:
    every mutation re-reads the persisted document under an exclusive lock,
    and the in-memory view is only replaced after a confirmed write.
    """

    def __init__(
        self,
        *,
        paths: IdentityStatePaths,
        cfg: Optional[IdentityConfigFile] = None,
        ops: Optional[OpsLogger] = None,
        logger=None,
        clock: Callable[[], float] = time.time,
        card_ids: Optional[CardIdGenerator] = None,
    ):
        self.cfg = cfg or IdentityConfigFile()
        self.paths = paths
        self.ops = ops
        self.logger = logger
        self.clock = clock
        self.card_ids = card_ids or CardIdGenerator(prefix=self.cfg.card_id_prefix, clock=clock)
        ensure_dirs(self.paths)

        self._lock = threading.RLock()
        self._state = IdentityState()
        self._sig: Optional[Tuple[int, int]] = None
        self._loaded = False

    # ---- lifecycle ----
    def load(self) -> IdentityState:
        with self._lock:
            self._reload_locked()
            return self._state.model_copy(deep=True)

    # ---- credential lifecycle ----
    def get_or_create(self, profile: ProfileInput) -> Credential:
        p = coerce_profile(profile)
        with self._lock:
            self._sync_locked()
            existing = self._state.credentials.get(p.worker_id)
            if existing is not None:
                return existing.model_copy()
            with self._exclusive():
                # another process may have issued one since the last sync
                self._reload_locked()
                existing = self._state.credentials.get(p.worker_id)
                if existing is not None:
                    return existing.model_copy()
                new_state = self._state.model_copy(deep=True)
                cred = self._issue_into(new_state, p)
                self._commit_locked(new_state)
        self._log("identity.credential_issued", "ok", {"worker_id": p.worker_id, "card_id": cred.card_id})
        return cred.model_copy()

    def can_refresh(self, profile: ProfileInput) -> RefreshCheck:
        p = coerce_profile(profile)
        with self._lock:
            self._sync_locked()
            return self._check(p, self._state)

    def refresh(self, profile: ProfileInput) -> Union[CredentialRefresh, RefreshRejected]:
        p = coerce_profile(profile)
        with self._lock:
            with self._exclusive():
                self._reload_locked()
                check = self._check(p, self._state)
                if not check.allowed:
                    rejected = RefreshRejected(reason=check.reason)
                    cred = None
                else:
                    rejected = None
                    new_state = self._state.model_copy(deep=True)
                    cred = new_state.credentials.get(p.worker_id)
                    if cred is None:
                        cred = self._issue_into(new_state, p)
                    else:
                        now = iso_at(self.clock())
                        tracker = new_state.trackers.get(p.worker_id)
                        if tracker is None:
                            tracker = ChangeTracker(worker_id=p.worker_id, last_refresh_at=now, last_profile_fingerprint="", history=[cred.card_id])
                            new_state.trackers[p.worker_id] = tracker
                        tracker.last_profile_fingerprint = compute_fingerprint(p)
                        tracker.last_refresh_at = now
                        cred.is_active = p.is_active
                    self._commit_locked(new_state)
        if rejected is not None:
            self._log("identity.refresh_rejected", "rejected", {"worker_id": p.worker_id, "reason": rejected.reason})
            return rejected
        payload = self.build_presentation_payload(p, cred)
        self._log("identity.refresh", "ok", {"worker_id": p.worker_id, "card_id": cred.card_id, "reason": check.reason})
        return CredentialRefresh(credential_data=payload, message=REFRESH_OK_MESSAGE, reason=check.reason)

    def remove(self, worker_id: str) -> bool:
        """Drop credential and tracker when the underlying worker record is deleted."""
        wid = str(worker_id or "").strip()
        if not wid:
            raise InvalidInputError("worker_id required.")
        with self._lock:
            with self._exclusive():
                self._reload_locked()
                if wid not in self._state.credentials and wid not in self._state.trackers:
                    return False
                new_state = self._state.model_copy(deep=True)
                cred = new_state.credentials.pop(wid, None)
                new_state.trackers.pop(wid, None)
                self._commit_locked(new_state)
        self._log("identity.credential_removed", "ok", {"worker_id": wid, "card_id": getattr(cred, "card_id", None)})
        return True

    # ---- presentation ----
    def build_presentation_payload(self, profile: ProfileInput, credential: Credential) -> PresentationPayload:
        return build_presentation_payload(
            coerce_profile(profile),
            credential,
            issuer_label=self.cfg.issuer_label,
            version=self.cfg.payload_version,
            unassigned_label=self.cfg.unassigned_project_label,
            generated_at=iso_at(self.clock()),
        )

    # ---- lookups ----
    def get_credential(self, worker_id: str) -> Optional[Credential]:
        with self._lock:
            self._sync_locked()
            c = self._state.credentials.get(str(worker_id))
            return c.model_copy() if c is not None else None

    def get_tracker(self, worker_id: str) -> Optional[ChangeTracker]:
        with self._lock:
            self._sync_locked()
            t = self._state.trackers.get(str(worker_id))
            return t.model_copy(deep=True) if t is not None else None

    def list_credentials(self) -> List[Credential]:
        with self._lock:
            self._sync_locked()
            creds = [c.model_copy() for c in self._state.credentials.values()]
        creds.sort(key=lambda c: (c.issued_at, c.worker_id))
        return creds

    # ---- internals ----
    def _check(self, p: WorkerProfileSnapshot, state: IdentityState) -> RefreshCheck:
        tracker = state.trackers.get(p.worker_id)
        if tracker is None:
            return RefreshCheck(allowed=True, reason=REASON_INITIAL)
        if compute_fingerprint(p) == tracker.last_profile_fingerprint:
            return RefreshCheck(allowed=False, reason=REASON_UNCHANGED)
        return RefreshCheck(allowed=True, reason=REASON_CHANGED)

    def _issue_into(self, state: IdentityState, p: WorkerProfileSnapshot) -> Credential:
        now = iso_at(self.clock())
        card_id = self._new_card_id(state)
        cred = Credential(worker_id=p.worker_id, employee_id=p.employee_id, card_id=card_id, issued_at=now, is_active=p.is_active)
        state.credentials[p.worker_id] = cred
        state.trackers[p.worker_id] = ChangeTracker(
            worker_id=p.worker_id,
            last_refresh_at=now,
            last_profile_fingerprint=compute_fingerprint(p),
            history=[card_id],
        )
        return cred

    def _new_card_id(self, state: IdentityState) -> str:
        taken = {c.card_id for c in state.credentials.values()}
        for t in state.trackers.values():
            taken.update(t.history)
        for _ in range(_MAX_CARD_ID_ATTEMPTS):
            cid = self.card_ids.next_id()
            if cid not in taken:
                return cid
        raise StorageUnavailableError("Could not allocate a unique card id.", attempts=_MAX_CARD_ID_ATTEMPTS)

    @contextmanager
    def _exclusive(self) -> Iterator[None]:
        lock = StateFileLock(
            self.paths.lock_path,
            timeout=float(self.cfg.lock_timeout_seconds),
            stale_after=float(self.cfg.stale_lock_seconds),
        )
        try:
            lock.acquire()
        except StateLockTimeout as e:
            self._log("identity.storage_error", "lock_timeout", {"path": self.paths.lock_path})
            raise StorageUnavailableError("Credential storage is busy; try again.", path=self.paths.lock_path) from e
        except OSError as e:
            self._log("identity.storage_error", "lock_failed", {"path": self.paths.lock_path, "error": str(e)})
            raise StorageUnavailableError("Credential storage lock could not be taken.", path=self.paths.lock_path) from e
        try:
            yield
        finally:
            lock.release()

    def _sync_locked(self) -> None:
        if not self._loaded or file_signature(self.paths.state_path) != self._sig:
            self._reload_locked()

    def _reload_locked(self) -> None:
        self._state = self._read_state()
        self._sig = file_signature(self.paths.state_path)
        self._loaded = True

    def _read_state(self) -> IdentityState:
        ok, data, err = read_json(self.paths.state_path)
        if not ok:
            if err == "missing":
                return IdentityState()
            if err and err.startswith("io_error"):
                self._log("identity.storage_error", "read_failed", {"error": err})
                raise StorageUnavailableError("Credential storage could not be read.", path=self.paths.state_path, error=err)
            data = self._recover(err or "unreadable")
        try:
            return IdentityState.model_validate(data)
        except ValidationError:
            data = self._recover("schema_invalid")
        try:
            return IdentityState.model_validate(data)
        except ValidationError:
            return IdentityState()

    def _recover(self, why: str) -> dict:
        try:
            data, restored = recover_from_corrupt(
                self.paths.state_path,
                backups_dir=self.paths.backups_dir,
                last_known_good_dir=self.paths.last_known_good_dir,
                keep=int(self.cfg.backup_keep),
            )
        except OSError as e:
            self._log("identity.storage_error", "recover_failed", {"error": str(e)})
            raise StorageUnavailableError("Credential storage is corrupt and could not be recovered.", path=self.paths.state_path) from e
        if self.logger:
            self.logger.warning(f"Identity state unreadable ({why}); restored_from_last_known_good={restored}")
        self._log("identity.state_recovered", "ok" if restored else "reset", {"why": why.split(":", 1)[0], "restored": restored})
        return data

    def _commit_locked(self, new_state: IdentityState) -> None:
        """
        Write, re-read, then swap. On any failure the in-memory state is left
        as it was and the next operation resyncs from disk.
        """
        new_state.revision = self._state.revision + 1
        new_state.updated_at = iso_at(self.clock())
        try:
            atomic_write_json(
                self.paths.state_path,
                new_state.model_dump(mode="json"),
                backups_dir=self.paths.backups_dir,
                keep=int(self.cfg.backup_keep),
            )
            ok, data, err = read_json(self.paths.state_path)
            if not ok or IdentityState.model_validate(data).revision != new_state.revision:
                raise OSError(f"write not confirmed ({err or 'revision mismatch'})")
        except (OSError, TypeError, ValueError) as e:
            self._sig = None
            self._loaded = False
            self._log("identity.storage_error", "write_failed", {"error": str(e)})
            if self.logger:
                self.logger.error(f"Identity state write failed: {e}")
            raise StorageUnavailableError("Credential storage could not be written.", path=self.paths.state_path) from e
        self._state = new_state
        self._sig = file_signature(self.paths.state_path)
        self._loaded = True
        try:
            write_last_known_good(self.paths.state_path, self.paths.last_known_good_dir)
        except OSError as e:
            if self.logger:
                self.logger.warning(f"Identity last-known-good snapshot failed: {e}")

    def _log(self, event: str, outcome: str, details: dict) -> None:
        if self.ops is not None:
            try:
                self.ops.log(trace_id="identity", event=event, outcome=outcome, details=details)
            except OSError:
                pass
        if self.logger:
            self.logger.info(f"{event} {outcome} {details.get('worker_id', '')}".rstrip())
