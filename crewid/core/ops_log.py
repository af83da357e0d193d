from __future__ import annotations

import json
import os
import threading
import time
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional


# Worker contact details never belong in the ops log.
REDACT_KEYS = {
    "phone_number",
    "phonenumber",
    "alternate_phone",
    "email",
    "address",
    "emergency_contact",
    "date_of_birth",
    "password",
    "token",
}


def _redact(obj: Any) -> Any:
    if isinstance(obj, dict):
        out: Dict[str, Any] = {}
        for k, v in obj.items():
            if str(k).lower() in REDACT_KEYS:
                out[k] = "***REDACTED***"
            else:
                out[k] = _redact(v)
        return out
    if isinstance(obj, list):
        return [_redact(x) for x in obj]
    return obj


def redact(obj: Any) -> Any:
    return _redact(obj)


@dataclass(frozen=True)
class OpsLogger:
    """
    Append-only JSONL log of credential lifecycle events.
    """

    path: str = os.path.join("logs", "identity_ops.jsonl")
    _lock: threading.Lock = field(default_factory=threading.Lock, compare=False, repr=False)

    def log(self, *, trace_id: str, event: str, outcome: str, details: Optional[Dict[str, Any]] = None) -> None:
        os.makedirs(os.path.dirname(self.path) or ".", exist_ok=True)
        payload = {
            "ts": time.strftime("%Y-%m-%dT%H:%M:%SZ", time.gmtime()),
            "trace_id": trace_id,
            "event": event,
            "outcome": outcome,
            "details": redact(details or {}),
        }
        line = json.dumps(payload, ensure_ascii=False)
        with self._lock:
            with open(self.path, "a", encoding="utf-8") as f:
                f.write(line + "\n")
                try:
                    f.flush()
                    os.fsync(f.fileno())
                except OSError:
                    pass

    def tail(self, n: int = 200) -> List[Dict[str, Any]]:
        if not os.path.exists(self.path):
            return []
        with open(self.path, "r", encoding="utf-8") as f:
            lines = f.readlines()
        out: List[Dict[str, Any]] = []
        for line in lines[-max(1, int(n)) :]:
            try:
                obj = json.loads(line)
            except json.JSONDecodeError:
                continue
            if isinstance(obj, dict):
                out.append(obj)
        return out
