from __future__ import annotations

import asyncio
from uuid import uuid4

import pytest

pytest.importorskip("inference_sdk")
pytest.importorskip("cv2")

from tableplan.exceptions import ValidationError, VisionAPIError
from tableplan.floorplan.schema import DetectedEntity, EntityType, TableShape, parse_analyze_request
from tableplan.ml.analyzer import analyze_floor_plan, build_recommendations, summarise_entities
from tableplan.ml.roboflow_client import RFPred


def _request():
    return parse_analyze_request({"idempotencyKey": str(uuid4())})


def _fake_detector(monkeypatch, preds, raw=None):
    calls: list[object] = []

    async def fake_infer(image_path, opts=None, api_key_override=None):
        calls.append(image_path)
        return preds, raw or {"predictions": []}

    monkeypatch.setattr("tableplan.ml.analyzer.infer_tables_with_raw", fake_infer)
    return calls


def test_analyze_builds_world_space_response(monkeypatch, tmp_path):
    preds = [
        RFPred(klass="round table", confidence=0.9, bbox=(40.0, 10.0, 20.0, 20.0)),
        RFPred(klass="table", confidence=0.4, bbox=(0.0, 60.0, 20.0, 10.0)),
        RFPred(klass="chair", confidence=0.8, bbox=(70.0, 70.0, 5.0, 5.0)),
        RFPred(klass="table", confidence=0.02, bbox=(80.0, 80.0, 10.0, 10.0)),
    ]
    calls = _fake_detector(monkeypatch, preds)
    run_id = uuid4()

    response = asyncio.run(
        analyze_floor_plan(tmp_path / "plan.png", _request(), img_width=100, img_height=100, run_id=run_id)
    )

    assert calls == [tmp_path / "plan.png"]
    assert response.run_id == run_id
    assert response.tables_detected == 2
    assert response.confidence == pytest.approx(0.65)
    assert (response.preview.img_width, response.preview.img_height) == (100, 100)
    assert len(response.entities) == 3

    round_table, rect_table, chair = response.entities
    assert round_table.shape == TableShape.ROUND
    assert (round_table.x, round_table.y) == pytest.approx((5.0, 8.0))
    assert round_table.seats == 11
    assert round_table.seats_inferred is True
    assert rect_table.shape == TableShape.RECT
    assert rect_table.seats == 6
    assert chair.type == EntityType.CHAIR
    assert chair.seats == 0
    assert chair.seats_inferred is False

    assert response.recommendations[0] == "Successfully detected 2 tables."
    assert "1 tables detected with low confidence. Manual verification recommended." in response.recommendations
    assert "Estimated total seating capacity: 17 guests." in response.recommendations


def test_image_size_falls_back_to_detector(monkeypatch, tmp_path):
    _fake_detector(
        monkeypatch,
        [RFPred(klass="table", confidence=0.9, bbox=(0.0, 0.0, 200.0, 100.0))],
        {"predictions": [], "image": {"width": 400, "height": 200}},
    )
    response = asyncio.run(analyze_floor_plan(tmp_path / "plan.png", _request()))
    assert (response.preview.img_width, response.preview.img_height) == (400, 200)
    entity = response.entities[0]
    assert (entity.x, entity.y) == pytest.approx((2.5, 7.5))


def test_unknown_image_size_is_rejected(monkeypatch, tmp_path):
    _fake_detector(monkeypatch, [])
    with pytest.raises(ValidationError) as excinfo:
        asyncio.run(analyze_floor_plan(tmp_path / "plan.png", _request()))
    assert excinfo.value.fields == ["preview.imgWidth", "preview.imgHeight"]


def test_detector_errors_propagate(monkeypatch, tmp_path):
    async def failing(*args, **kwargs):
        raise VisionAPIError("Table detection failed: timeout")

    monkeypatch.setattr("tableplan.ml.analyzer.infer_tables_with_raw", failing)
    with pytest.raises(VisionAPIError):
        asyncio.run(analyze_floor_plan(tmp_path / "plan.png", _request(), img_width=10, img_height=10))


def test_recommendations_without_tables():
    recommendations = build_recommendations([DetectedEntity(type=EntityType.WALL, x=1, y=1)])
    assert recommendations[0].startswith("No tables detected")
    assert len(recommendations) == 2


def test_recommendations_for_a_full_room():
    tables = [
        DetectedEntity(type=EntityType.TABLE, x=i, y=1, seats=4, confidence=0.95)
        for i in range(6)
    ]
    recommendations = build_recommendations(tables)
    assert recommendations == [
        "Successfully detected 6 tables.",
        "Estimated total seating capacity: 24 guests.",
    ]


def test_summarise_entities_ignores_non_tables():
    entities = [
        DetectedEntity(type=EntityType.TABLE, x=1, y=1, confidence=0.5),
        DetectedEntity(type=EntityType.TABLE, x=2, y=2, confidence=1.0),
        DetectedEntity(type=EntityType.CHAIR, x=3, y=3, confidence=0.0),
    ]
    assert summarise_entities(entities) == (2, pytest.approx(0.75))
    assert summarise_entities([]) == (0, 0.0)
