from __future__ import annotations

import pytest

from crewid.core.config.models import IdentityConfigFile
from crewid.core.identity.io import IdentityStatePaths
from crewid.core.identity.models import WorkerProfileSnapshot
from crewid.core.identity.store import IdentityStore
from crewid.core.ops_log import OpsLogger
from tests.helpers.fakes import FakeClock


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def state_paths(tmp_path):
    return IdentityStatePaths(state_dir=str(tmp_path / "data" / "identity"))


@pytest.fixture
def ops(tmp_path):
    return OpsLogger(path=str(tmp_path / "logs" / "identity_ops.jsonl"))


@pytest.fixture
def make_store(state_paths, ops, clock):
    def _make(**cfg_overrides):
        cfg = IdentityConfigFile(**cfg_overrides)
        s = IdentityStore(paths=state_paths, cfg=cfg, ops=ops, logger=None, clock=clock.time)
        s.load()
        return s

    return _make


@pytest.fixture
def store(make_store):
    return make_store()


@pytest.fixture
def mason():
    return WorkerProfileSnapshot(
        worker_id="W1",
        full_name="Rajesh Kumar",
        employee_id="EMP001",
        department="Construction",
        role="Mason",
        current_project="Skyline Towers",
        employment_type="full-time",
        status="active",
        phone_number="+91 98765 43210",
    )
