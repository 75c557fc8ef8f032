from __future__ import annotations

from uuid import uuid4

import pytest
from pydantic import ValidationError as PydanticValidationError

from tableplan.exceptions import ValidationError
from tableplan.floorplan.schema import (
    CalibrationMode,
    EntityType,
    TableShape,
    parse_analyze_request,
    parse_analyze_response,
    parse_entity,
    parse_preview,
)

ANCHORS = [[0.1, 0.1], [0.9, 0.1], [0.9, 0.9], [0.1, 0.9]]


def test_entity_accepts_camel_case_wire_names():
    entity = parse_entity(
        {
            "type": "TABLE",
            "shape": "ROUND",
            "x": 5,
            "y": 8,
            "radius": 1.2,
            "seatsInferred": True,
            "meta": {"foo": "bar"},
        }
    )
    assert entity.type == EntityType.TABLE
    assert entity.shape == TableShape.ROUND
    assert entity.seats_inferred is True
    assert entity.meta == {"foo": "bar"}
    assert entity.seats == 0
    assert entity.rotation == 0.0
    assert entity.id is None


def test_entity_serialises_with_aliases():
    entity = parse_entity({"type": "CHAIR", "x": 1, "y": 2, "seats_inferred": False})
    payload = entity.model_dump(by_alias=True)
    assert "seatsInferred" in payload
    assert "seats_inferred" not in payload


def test_negative_seats_rejected():
    with pytest.raises(ValidationError) as excinfo:
        parse_entity({"type": "TABLE", "x": 1, "y": 1, "seats": -1})
    assert excinfo.value.fields == ["seats"]


def test_unknown_type_rejected():
    with pytest.raises(ValidationError) as excinfo:
        parse_entity({"type": "PLANT", "x": 1, "y": 1})
    assert "type" in excinfo.value.fields


def test_all_violations_are_enumerated():
    with pytest.raises(ValidationError) as excinfo:
        parse_entity({"type": "TABLE", "x": 11, "y": -1, "radius": 6, "confidence": 2})
    assert set(excinfo.value.fields) == {"x", "y", "radius", "confidence"}
    assert excinfo.value.message.startswith("Invalid entity: 4 violation")


def test_manual_calibration_requires_four_anchors():
    with pytest.raises(ValidationError) as excinfo:
        parse_analyze_request(
            {
                "idempotencyKey": str(uuid4()),
                "calibration": {"mode": "MANUAL", "anchors": ANCHORS[:3]},
            }
        )
    assert any(field.startswith("calibration.anchors") for field in excinfo.value.fields)

    with pytest.raises(ValidationError):
        parse_analyze_request({"idempotencyKey": str(uuid4()), "calibration": {"mode": "MANUAL"}})

    request = parse_analyze_request(
        {"idempotencyKey": str(uuid4()), "calibration": {"mode": "MANUAL", "anchors": ANCHORS}}
    )
    assert request.calibration.mode == CalibrationMode.MANUAL
    assert request.calibration.anchors[2] == (0.9, 0.9)


def test_anchor_outside_image_rejected():
    anchors = [list(a) for a in ANCHORS]
    anchors[0] = [1.5, 0.1]
    with pytest.raises(ValidationError):
        parse_analyze_request(
            {"idempotencyKey": str(uuid4()), "calibration": {"mode": "MANUAL", "anchors": anchors}}
        )


def test_analyze_request_defaults_to_auto():
    request = parse_analyze_request({"idempotency_key": str(uuid4())})
    assert request.calibration.mode == CalibrationMode.AUTO
    assert request.calibration.anchors is None


def test_analyze_request_requires_uuid_key():
    with pytest.raises(ValidationError) as excinfo:
        parse_analyze_request({"idempotencyKey": "not-a-uuid"})
    assert excinfo.value.fields == ["idempotencyKey"]


def test_preview_defaults_and_bounds():
    preview = parse_preview({"imgWidth": 800, "imgHeight": 600})
    assert (preview.world_width, preview.world_height) == (10.0, 10.0)

    with pytest.raises(ValidationError) as excinfo:
        parse_preview({"imgWidth": 0, "imgHeight": 600, "worldWidth": 12})
    assert set(excinfo.value.fields) == {"imgWidth", "worldWidth"}


def test_analyze_response_round_trip_from_wire():
    run_id = uuid4()
    response = parse_analyze_response(
        {
            "runId": str(run_id),
            "tablesDetected": 1,
            "confidence": 0.8,
            "analysisMs": 12,
            "entities": [{"type": "TABLE", "shape": "RECT", "x": 2, "y": 3, "width": 2, "height": 1}],
            "preview": {"imgWidth": 100, "imgHeight": 100},
        }
    )
    assert response.run_id == run_id
    assert response.recommendations == []
    assert response.entities[0].shape == TableShape.RECT


def test_analyze_response_errors_point_into_entities():
    with pytest.raises(ValidationError) as excinfo:
        parse_analyze_response(
            {
                "runId": str(uuid4()),
                "tablesDetected": -1,
                "confidence": 0.5,
                "analysisMs": 1,
                "entities": [{"type": "TABLE", "x": 20, "y": 1}],
                "preview": {"imgWidth": 1, "imgHeight": 1},
            }
        )
    assert set(excinfo.value.fields) == {"tablesDetected", "entities.0.x"}


def test_numbers_are_not_coerced_from_strings_or_bools():
    with pytest.raises(ValidationError) as excinfo:
        parse_entity({"type": "TABLE", "x": "5", "y": True, "seats": "3"})
    assert set(excinfo.value.fields) == {"x", "y", "seats"}

    with pytest.raises(ValidationError) as excinfo:
        parse_entity({"type": "TABLE", "x": 1, "y": 1, "seats": 2.0, "seatsInferred": "yes"})
    assert set(excinfo.value.fields) == {"seats", "seatsInferred"}

    with pytest.raises(ValidationError) as excinfo:
        parse_preview({"imgWidth": "800", "imgHeight": 600})
    assert excinfo.value.fields == ["imgWidth"]


def test_integers_are_accepted_for_float_fields():
    entity = parse_entity({"type": "TABLE", "x": 5, "y": 2, "width": 1, "confidence": 1})
    assert entity.x == 5.0
    assert isinstance(entity.x, float)


def test_entities_are_frozen():
    entity = parse_entity({"type": "CHAIR", "x": 1, "y": 1})
    with pytest.raises(PydanticValidationError):
        entity.x = 2.0
