from __future__ import annotations

import math

import pytest

from tableplan.floorplan.schema import DetectedEntity, EntityType, TableShape
from tableplan.geometry.contract import MAX_RADIUS, WORLD_H, WORLD_W, max_radius
from tableplan.geometry.normalize import (
    clamp,
    clamp_entities,
    img01_to_world,
    img01_to_world10,
    infer_seats,
    px_to_img01,
    with_inferred_seats,
)


def _table(**kwargs) -> DetectedEntity:
    data = {"type": EntityType.TABLE, "x": 1.0, "y": 1.0}
    data.update(kwargs)
    return DetectedEntity(**data)


@pytest.mark.parametrize(
    ("value", "expected"),
    [(-3.0, 0.0), (0.0, 0.0), (4.2, 4.2), (10.0, 10.0), (12.5, 10.0)],
)
def test_clamp_default_bounds(value, expected):
    assert clamp(value) == pytest.approx(expected)


def test_clamp_custom_bounds_and_idempotence():
    once = clamp(7.0, 1.0, 5.0)
    assert once == 5.0
    assert clamp(once, 1.0, 5.0) == once
    assert clamp(-1.0, 1.0, 5.0) == 1.0


def test_img01_corners_flip_y():
    assert img01_to_world10((0.0, 0.0)) == pytest.approx((0.0, 10.0))
    assert img01_to_world10((1.0, 1.0)) == pytest.approx((10.0, 0.0))
    assert img01_to_world10((0.0, 1.0)) == pytest.approx((0.0, 0.0))
    assert img01_to_world10((0.5, 0.5)) == pytest.approx((5.0, 5.0))


def test_img01_out_of_range_is_clamped():
    assert img01_to_world10((1.4, -0.3)) == pytest.approx((10.0, 10.0))
    assert img01_to_world10((-0.2, 1.7)) == pytest.approx((0.0, 0.0))


def test_img01_to_world_custom_plane():
    assert img01_to_world((0.5, 0.25), 8.0, 4.0) == pytest.approx((4.0, 3.0))


def test_px_to_img01():
    assert px_to_img01((50, 25), 100, 50) == pytest.approx((0.5, 0.5))
    with pytest.raises(ValueError):
        px_to_img01((1, 1), 0, 10)


def test_max_radius():
    assert max_radius() == MAX_RADIUS == 5.0
    assert max_radius(8.0, 4.0) == 2.0


def test_clamp_entities_keeps_absent_extents_absent():
    chair = DetectedEntity.model_construct(
        id=None,
        type=EntityType.CHAIR,
        shape=None,
        x=12.0,
        y=-1.0,
        width=None,
        height=None,
        radius=None,
        rotation=0.0,
        seats=0,
        seats_inferred=False,
        label=None,
        confidence=None,
        meta={},
    )
    [clamped] = clamp_entities([chair])
    assert (clamped.x, clamped.y) == (WORLD_W, 0.0)
    assert clamped.width is None
    assert clamped.height is None
    assert clamped.radius is None


def test_clamp_entities_preserves_order_and_clamps_extents():
    first = DetectedEntity.model_construct(
        **{**_table().model_dump(), "width": 14.0, "height": 3.0, "label": "A"}
    )
    second = DetectedEntity.model_construct(
        **{**_table(shape=TableShape.ROUND).model_dump(), "radius": 9.0, "label": "B"}
    )
    result = clamp_entities([first, second])
    assert [e.label for e in result] == ["A", "B"]
    assert result[0].width == WORLD_W
    assert result[0].height == 3.0
    assert result[1].radius == MAX_RADIUS


def test_clamp_entities_radius_bound_follows_plane():
    table = _table(shape=TableShape.ROUND, radius=4.0)
    [clamped] = clamp_entities([table], 6.0, 6.0)
    assert clamped.radius == 3.0


def test_clamp_entities_is_idempotent():
    table = _table(x=9.5, width=2.0, height=1.0)
    once = clamp_entities([table])
    assert clamp_entities(once) == once


def test_infer_seats_round():
    table = _table(shape=TableShape.ROUND, radius=1.0)
    assert infer_seats(table) == 11
    assert infer_seats(table) == math.floor(2 * math.pi / 0.55)


def test_infer_seats_rect_uses_long_edge():
    assert infer_seats(_table(shape=TableShape.RECT, width=2.0, height=1.0)) == 6
    assert infer_seats(_table(shape=TableShape.RECT, width=1.0, height=2.0)) == 6


def test_infer_seats_has_a_floor():
    assert infer_seats(_table(shape=TableShape.ROUND, radius=0.05)) == 2
    assert infer_seats(_table(shape=TableShape.RECT, width=0.3, height=0.2)) == 2


def test_infer_seats_fallbacks():
    assert infer_seats(_table()) == 2
    assert infer_seats(_table(shape=TableShape.RECT, width=2.0)) == 2
    assert infer_seats(_table(shape=TableShape.POLYGON, width=3.0, height=3.0)) == 2


def test_infer_seats_keeps_explicit_count():
    assert infer_seats(_table(shape=TableShape.ROUND, radius=1.0, seats=4)) == 4


def test_with_inferred_seats_marks_provenance():
    table = with_inferred_seats(_table(shape=TableShape.RECT, width=2.0, height=1.0))
    assert table.seats == 6
    assert table.seats_inferred is True

    explicit = with_inferred_seats(_table(seats=4))
    assert explicit.seats == 4
    assert explicit.seats_inferred is False


def test_detector_point_to_round_table_end_to_end():
    x, y = img01_to_world10((0.5, 0.2))
    assert (x, y) == pytest.approx((5.0, 8.0))

    table = _table(x=x, y=y, shape=TableShape.ROUND, radius=1.2)
    [clamped] = clamp_entities([table], WORLD_W, WORLD_H)
    assert infer_seats(clamped) == 13
