from __future__ import annotations

import json
import os

from crewid.core.jsonstore import atomic_write_json, prune_backups, read_json, recover_from_corrupt, write_last_known_good


def test_read_json_reports_why(tmp_path):
    p = str(tmp_path / "doc.json")
    assert read_json(p) == (False, {}, "missing")
    with open(p, "w", encoding="utf-8") as f:
        f.write("[1, 2]")
    assert read_json(p) == (False, {}, "not_object")
    with open(p, "w", encoding="utf-8") as f:
        f.write("{nope")
    ok, data, error = read_json(p)
    assert not ok and data == {} and error.startswith("corrupt_json:")


def test_atomic_write_backs_up_previous_version(tmp_path):
    p = str(tmp_path / "doc.json")
    backups = str(tmp_path / "backups")
    atomic_write_json(p, {"v": 1}, backups_dir=backups)
    assert os.listdir(backups) == []
    atomic_write_json(p, {"v": 2}, backups_dir=backups)
    assert read_json(p) == (True, {"v": 2}, None)
    [b] = os.listdir(backups)
    assert b.startswith("doc.") and b.endswith(".json")
    with open(os.path.join(backups, b), encoding="utf-8") as f:
        assert json.load(f) == {"v": 1}
    assert not [f for f in os.listdir(tmp_path) if f.startswith(".tmp_")]


def test_prune_keeps_newest_and_all_quarantined(tmp_path):
    backups = tmp_path / "backups"
    backups.mkdir()
    for i in range(5):
        p = backups / f"doc.2020010{i}_000000.json"
        p.write_text("{}", encoding="utf-8")
        os.utime(p, (1_000 + i, 1_000 + i))
    (backups / "doc.20200101_000000.corrupt.json").write_text("{x", encoding="utf-8")
    (backups / "other.20200101_000000.json").write_text("{}", encoding="utf-8")

    prune_backups(str(backups), "doc", keep=2)
    assert sorted(os.listdir(backups)) == [
        "doc.20200101_000000.corrupt.json",
        "doc.20200103_000000.json",
        "doc.20200104_000000.json",
        "other.20200101_000000.json",
    ]


def test_recover_restores_last_known_good(tmp_path):
    p = str(tmp_path / "doc.json")
    backups = str(tmp_path / "backups")
    lkg = str(tmp_path / "lkg")
    atomic_write_json(p, {"v": 1}, backups_dir=backups)
    write_last_known_good(p, lkg)
    with open(p, "w", encoding="utf-8") as f:
        f.write("{broken")

    data, restored = recover_from_corrupt(p, backups_dir=backups, last_known_good_dir=lkg)
    assert restored and data == {"v": 1}
    assert read_json(p) == (True, {"v": 1}, None)
    assert any(b.endswith(".corrupt.json") for b in os.listdir(backups))


def test_recover_without_last_known_good_starts_empty(tmp_path):
    p = str(tmp_path / "doc.json")
    with open(p, "w", encoding="utf-8") as f:
        f.write("{broken")
    data, restored = recover_from_corrupt(p, backups_dir=str(tmp_path / "b"), last_known_good_dir=str(tmp_path / "lkg"))
    assert (data, restored) == ({}, False)
    assert not os.path.exists(p)
