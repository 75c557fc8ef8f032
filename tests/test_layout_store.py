from __future__ import annotations

import json
from uuid import uuid4

import pytest

from tableplan.exceptions import StorageError
from tableplan.floorplan.layout_store import FileLayoutStore, SavedLayout
from tableplan.floorplan.schema import DetectedEntity, EntityType, Preview, TableShape


def test_save_and_load_layout(tmp_path):
    store = FileLayoutStore(tmp_path / "layouts")
    run_id = uuid4()
    entity = DetectedEntity(
        id=uuid4(),
        type=EntityType.TABLE,
        shape=TableShape.ROUND,
        x=5,
        y=8,
        radius=1.2,
        seats=13,
        seats_inferred=True,
        meta={"class": "round table"},
    )
    saved = store.save(
        SavedLayout(tenant_id="trattoria", run_id=run_id, entities=[entity], preview=Preview(img_width=640, img_height=480))
    )
    assert saved.saved_at is not None

    path = tmp_path / "layouts" / "trattoria" / f"{run_id}.json"
    on_disk = json.loads(path.read_text(encoding="utf-8"))
    assert on_disk["entities"][0]["seatsInferred"] is True
    assert on_disk["preview"]["imgWidth"] == 640

    loaded = store.load("trattoria", run_id)
    assert loaded is not None
    assert loaded.entities == [entity]
    assert loaded.preview == Preview(img_width=640, img_height=480)
    assert loaded.saved_at == saved.saved_at


def test_load_missing_layout(tmp_path):
    assert FileLayoutStore(tmp_path).load("trattoria", uuid4()) is None


def test_list_runs(tmp_path):
    store = FileLayoutStore(tmp_path)
    assert store.list_runs("trattoria") == []
    first, second = uuid4(), uuid4()
    store.save(SavedLayout(tenant_id="trattoria", run_id=first))
    store.save(SavedLayout(tenant_id="trattoria", run_id=second))
    (tmp_path / "trattoria" / "notes.json").write_text("{}", encoding="utf-8")

    assert sorted(store.list_runs("trattoria"), key=str) == sorted([first, second], key=str)
    assert store.list_runs("other") == []


@pytest.mark.parametrize("tenant", ["", "..", "a/b", "a\\b"])
def test_invalid_tenant_ids(tmp_path, tenant):
    with pytest.raises(StorageError):
        FileLayoutStore(tmp_path).load(tenant, uuid4())


@pytest.mark.parametrize(
    "content",
    [
        "{not json",
        "[]",
        '{"entities": []}',
        '{"run_id": "not-a-uuid"}',
        '{"run_id": "%s", "entities": [{"type": "TABLE", "x": "5", "y": 1}]}' % uuid4(),
    ],
)
def test_corrupt_layout_is_a_storage_error(tmp_path, content):
    store = FileLayoutStore(tmp_path)
    run_id = uuid4()
    (tmp_path / "trattoria").mkdir()
    (tmp_path / "trattoria" / f"{run_id}.json").write_text(content, encoding="utf-8")

    with pytest.raises(StorageError) as excinfo:
        store.load("trattoria", run_id)
    assert excinfo.value.details["path"].endswith(f"{run_id}.json")
