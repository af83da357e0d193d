from __future__ import annotations

import os
import time
import uuid
from dataclasses import dataclass
from typing import Optional, Tuple


@dataclass(frozen=True)
class IdentityStatePaths:
    state_dir: str = os.path.join("data", "identity")
    state_file: str = "identity_state.json"

    @property
    def state_path(self) -> str:
        return os.path.join(self.state_dir, self.state_file)

    @property
    def backups_dir(self) -> str:
        return os.path.join(self.state_dir, "backups")

    @property
    def last_known_good_dir(self) -> str:
        return os.path.join(self.state_dir, "last_known_good")

    @property
    def last_known_good_path(self) -> str:
        return os.path.join(self.last_known_good_dir, self.state_file)

    @property
    def lock_path(self) -> str:
        return os.path.join(self.state_dir, "identity_state.lock")


def ensure_dirs(paths: IdentityStatePaths) -> None:
    os.makedirs(paths.state_dir, exist_ok=True)
    os.makedirs(paths.backups_dir, exist_ok=True)
    os.makedirs(paths.last_known_good_dir, exist_ok=True)


def file_signature(path: str) -> Optional[Tuple[int, int]]:
    try:
        st = os.stat(path)
    except OSError:
        return None
    return st.st_mtime_ns, st.st_size


def _read_text(path: str) -> Optional[str]:
    try:
        with open(path, "r", encoding="utf-8") as f:
            return f.read()
    except OSError:
        return None


class StateLockTimeout(TimeoutError):
    pass


class StateFileLock:
    """
    Inter-process exclusive lock: a lock file created with O_CREAT|O_EXCL
    holding "<pid> <token>".

    A lock file older than `stale_after` seconds is treated as abandoned by a
    crashed holder. It is broken by renaming it aside, and put back if what was
    renamed is no longer the file judged stale. Release only removes the file
    while it still carries this holder's token.
    """

    def __init__(self, path: str, *, timeout: float = 5.0, stale_after: float = 30.0, poll_interval: float = 0.02):
        self.path = path
        self.timeout = float(timeout)
        self.stale_after = float(stale_after)
        self.poll_interval = float(poll_interval)
        self.token = f"{os.getpid()} {uuid.uuid4().hex}"
        self._held = False

    @property
    def held(self) -> bool:
        return self._held

    def acquire(self) -> None:
        os.makedirs(os.path.dirname(self.path) or ".", exist_ok=True)
        deadline = time.monotonic() + self.timeout
        while True:
            try:
                fd = os.open(self.path, os.O_CREAT | os.O_EXCL | os.O_WRONLY)
            except FileExistsError:
                observed = _read_text(self.path)
                if observed is not None and self._is_stale():
                    self.break_stale(observed)
                    continue
                if time.monotonic() >= deadline:
                    raise StateLockTimeout(f"timed out waiting for {self.path}")
                time.sleep(self.poll_interval)
                continue
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                f.write(self.token)
            self._held = True
            return

    def release(self) -> None:
        if not self._held:
            return
        self._held = False
        if _read_text(self.path) != self.token:
            # broken as stale while we held it; the file now belongs to someone else
            return
        try:
            os.remove(self.path)
        except FileNotFoundError:
            pass

    def break_stale(self, observed: str) -> None:
        """Remove the lock file only if it still holds `observed`."""
        aside = f"{self.path}.{uuid.uuid4().hex}.stale"
        try:
            os.rename(self.path, aside)
        except FileNotFoundError:
            return
        try:
            if _read_text(aside) != observed:
                # a waiter broke it first and took a fresh lock; hand it back
                try:
                    os.link(aside, self.path)
                except FileExistsError:
                    pass
        finally:
            try:
                os.remove(aside)
            except FileNotFoundError:
                pass

    def _is_stale(self) -> bool:
        try:
            age = time.time() - os.path.getmtime(self.path)
        except OSError:
            return False
        return age > self.stale_after
