"""
Durable single-file JSON documents shared by config and identity state.

For a document `<dir>/<name>.json`:
- pre-write copies go to `<backups_dir>/<name>.<ts>.json` (newest `keep` retained)
- unreadable files are quarantined as `<backups_dir>/<name>.<ts>.corrupt.json` (never pruned)
- the last confirmed copy lives at `<last_known_good_dir>/<name>.json`
"""

from __future__ import annotations

import json
import os
import shutil
import tempfile
import time
from typing import Any, Dict, Optional, Tuple


def _stem(path: str) -> str:
    base = os.path.basename(path)
    return base[:-5] if base.endswith(".json") else base


def _ts() -> str:
    return time.strftime("%Y%m%d_%H%M%S", time.gmtime())


def read_json(path: str) -> Tuple[bool, Dict[str, Any], Optional[str]]:
    """Returns (ok, data, error) where error is missing | not_object | corrupt_json:.. | io_error:.."""
    if not os.path.exists(path):
        return False, {}, "missing"
    try:
        with open(path, "r", encoding="utf-8") as f:
            obj = json.load(f)
    except json.JSONDecodeError as e:
        return False, {}, f"corrupt_json:{e}"
    except OSError as e:
        return False, {}, f"io_error:{e}"
    if not isinstance(obj, dict):
        return False, {}, "not_object"
    return True, obj, None


def atomic_write_json(path: str, obj: Dict[str, Any], *, backups_dir: str, keep: int = 20) -> None:
    # serialize before touching disk so a bad payload leaves no trace
    text = json.dumps(obj, indent=2, ensure_ascii=False, sort_keys=True) + "\n"
    directory = os.path.dirname(path) or "."
    os.makedirs(directory, exist_ok=True)
    os.makedirs(backups_dir, exist_ok=True)

    if os.path.exists(path):
        try:
            shutil.copy2(path, os.path.join(backups_dir, f"{_stem(path)}.{_ts()}.json"))
        except OSError:
            pass
        prune_backups(backups_dir, _stem(path), keep=keep)

    fd, tmp = tempfile.mkstemp(prefix=f".tmp_{_stem(path)}_", suffix=".json", dir=directory)
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as f:
            f.write(text)
            f.flush()
            os.fsync(f.fileno())
        os.replace(tmp, path)
    finally:
        if os.path.exists(tmp):
            try:
                os.remove(tmp)
            except OSError:
                pass


def prune_backups(backups_dir: str, stem: str, *, keep: int) -> None:
    prefix = f"{stem}."
    files = [
        os.path.join(backups_dir, f)
        for f in os.listdir(backups_dir)
        if f.startswith(prefix) and f.endswith(".json") and not f.endswith(".corrupt.json")
    ]
    files.sort(key=os.path.getmtime, reverse=True)
    for p in files[max(1, int(keep)) :]:
        try:
            os.remove(p)
        except OSError:
            pass


def write_last_known_good(path: str, last_known_good_dir: str) -> None:
    if os.path.exists(path):
        os.makedirs(last_known_good_dir, exist_ok=True)
        shutil.copy2(path, os.path.join(last_known_good_dir, os.path.basename(path)))


def recover_from_corrupt(path: str, *, backups_dir: str, last_known_good_dir: str, keep: int = 20) -> Tuple[Dict[str, Any], bool]:
    """
    Quarantine an unreadable document and put the last known good copy back.
    Returns (data, restored); ({}, False) when there is nothing to restore.
    """
    os.makedirs(backups_dir, exist_ok=True)
    if os.path.exists(path):
        shutil.move(path, os.path.join(backups_dir, f"{_stem(path)}.{_ts()}.corrupt.json"))
    ok, data, _ = read_json(os.path.join(last_known_good_dir, os.path.basename(path)))
    if not ok:
        return {}, False
    atomic_write_json(path, data, backups_dir=backups_dir, keep=keep)
    return data, True
