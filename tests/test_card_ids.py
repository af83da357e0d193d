from __future__ import annotations

import re

from crewid.core.identity.card_ids import CardIdGenerator, to_base36
from crewid.core.identity.models import WorkerProfileSnapshot
from tests.helpers.fakes import FakeClock


def test_base36():
    assert to_base36(0) == "0"
    assert to_base36(35) == "Z"
    assert to_base36(36) == "10"


def test_card_id_format():
    g = CardIdGenerator(prefix="tsl", clock=lambda: 1_700_000_000.0)
    cid = g.next_id()
    assert re.fullmatch(r"TSL-[0-9A-Z]+-[0-9A-Z]{6}", cid)


def test_ten_thousand_ids_unique_with_frozen_clock():
    g = CardIdGenerator(clock=lambda: 1_700_000_000.0)
    ids = [g.next_id() for _ in range(10_000)]
    assert len(set(ids)) == 10_000


def test_time_component_never_goes_backwards():
    t = {"now": 2_000.0}
    g = CardIdGenerator(clock=lambda: t["now"])
    first = g.next_id().split("-")[1]
    t["now"] = 1_000.0
    second = g.next_id().split("-")[1]
    assert int(second, 36) == int(first, 36) + 1


def test_store_issues_distinct_ids_per_worker(make_store):
    s = make_store()
    ids = set()
    for i in range(300):
        ids.add(s.get_or_create(WorkerProfileSnapshot(worker_id=f"W{i}", employee_id=f"EMP{i:05d}")).card_id)
    assert len(ids) == 300


def test_store_redraws_on_collision(store):
    class _Repeating:
        def __init__(self):
            self.ids = iter(["TSL-1-AAAAAA", "TSL-1-AAAAAA", "TSL-2-BBBBBB"])

        def next_id(self):
            return next(self.ids)

    store.card_ids = _Repeating()
    a = store.get_or_create(WorkerProfileSnapshot(worker_id="A"))
    b = store.get_or_create(WorkerProfileSnapshot(worker_id="B"))
    assert (a.card_id, b.card_id) == ("TSL-1-AAAAAA", "TSL-2-BBBBBB")
