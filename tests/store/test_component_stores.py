from __future__ import annotations

import pendulum
import pytest

from compositescoring.errors import StoreError
from compositescoring.schemas import ComponentRecord
from compositescoring.store import (
    ComponentStore,
    Database,
    InMemoryComponentStore,
    SqlComponentStore,
)

STAMP = pendulum.datetime(2025, 2, 14, 8, 0, tz="UTC")


def record(norm: float, **kwargs) -> ComponentRecord:
    return ComponentRecord(norm=norm, updated_at=kwargs.pop("updated_at", STAMP), **kwargs)


@pytest.fixture()
def database(tmp_path):
    db = Database(f"sqlite:///{tmp_path / 'scores.sqlite'}")
    yield db
    db.dispose()


def test_in_memory_store_keeps_defensive_copies():
    store = InMemoryComponentStore()
    original = record(70, flags=["integrity_minor"])

    store.upsert(1, "skills", original)
    original.flags.append("mutated")
    fetched = store.get_all(1)
    fetched["skills"].flags.append("mutated again")

    assert store.get_all(1)["skills"].flags == ["integrity_minor"]
    assert isinstance(store, ComponentStore)


def test_in_memory_store_replaces_per_key():
    store = InMemoryComponentStore()
    store.upsert(3, "skills", record(70))
    store.upsert(3, "skills", record(40))
    store.upsert(3, "physical", record(90))
    store.upsert(1, "medical", record(100))

    assert {key: item.norm for key, item in store.get_all(3).items()} == {"skills": 40.0, "physical": 90.0}
    assert store.get_all(99) == {}
    assert store.applicant_ids() == [1, 3]


def test_sql_store_upserts_and_reads_back(database):
    store = SqlComponentStore(database)
    later = STAMP.add(hours=2)

    store.upsert(7, "medical", record(70, raw=65.5, flags=["restrictions"], meta={"entry_id": 12}))
    store.upsert(7, "medical", record(100, updated_at=later))
    store.upsert(7, "psymetrics", record(88, meta={"candidness": "ok"}))
    store.upsert(2, "skills", record(50))

    components = store.get_all(7)

    assert sorted(components) == ["medical", "psymetrics"]
    assert components["medical"].norm == 100.0
    assert components["medical"].raw is None
    assert components["medical"].flags == []
    assert components["medical"].updated_at == later
    assert components["medical"].updated_at.tzinfo is not None
    assert components["psymetrics"].meta == {"candidness": "ok"}
    assert store.applicant_ids() == [2, 7]


def test_sql_store_converts_offsets_to_utc(database):
    store = SqlComponentStore(database)
    local = pendulum.datetime(2025, 2, 14, 17, 0, tz="Asia/Tokyo")

    store.upsert(4, "skills", record(60, updated_at=local))

    assert store.get_all(4)["skills"].updated_at == STAMP


def test_sql_store_wraps_driver_errors(tmp_path):
    database = Database(f"sqlite:///{tmp_path / 'empty.sqlite'}", create_tables=False)
    store = SqlComponentStore(database)

    with pytest.raises(StoreError) as excinfo:
        store.upsert(1, "skills", record(50))

    assert excinfo.value.stage == "components"
    database.dispose()
