from __future__ import annotations

import hashlib
import json
from enum import Enum
from typing import Any, Dict, Tuple


IDENTITY_FIELDS: Tuple[str, ...] = (
    "full_name",
    "employee_id",
    "department",
    "role",
    "current_project",
    "employment_type",
    "status",
)


def canonical_json(obj: Dict[str, Any]) -> str:
    # Deterministic JSON (no whitespace, sorted keys)
    return json.dumps(obj, ensure_ascii=False, sort_keys=True, separators=(",", ":"))


def identity_fields(profile: Any) -> Dict[str, Any]:
    out: Dict[str, Any] = {}
    for name in IDENTITY_FIELDS:
        v = getattr(profile, name, None)
        out[name] = v.value if isinstance(v, Enum) else v
    return out


def compute_fingerprint(profile: Any) -> str:
    """SHA-256 over the canonical identity tuple; contact fields are ignored."""
    return hashlib.sha256(canonical_json(identity_fields(profile)).encode("utf-8")).hexdigest()
