"""
Floor-Plan Normalization

Maps detector output (image fractions, Y down) into the editor's world plane
(Y up), clamps entities to the plane and infers seat counts from geometry.
"""

from __future__ import annotations

import math
from typing import Iterable, Sequence, Tuple

from tableplan.floorplan.schema import DetectedEntity, TableShape
from tableplan.geometry.contract import (
    DEFAULT_SEATS,
    MIN_SEATS,
    SEAT_SPACING,
    WORLD_H,
    WORLD_W,
    max_radius,
)

Point = Tuple[float, float]


def clamp(v: float, lo: float = 0.0, hi: float = WORLD_W) -> float:
    """Restrict ``v`` to ``[lo, hi]``."""
    return max(lo, min(hi, v))


def img01_to_world(
    point: Sequence[float],
    world_width: float = WORLD_W,
    world_height: float = WORLD_H,
) -> Point:
    """Flip Y (image origin top-left -> world origin bottom-left) and scale to the plane.

    Inputs outside [0, 1] are clamped, never rejected.
    """
    cx, cy = float(point[0]), float(point[1])
    x = clamp(cx * world_width, 0.0, world_width)
    y = clamp((1.0 - cy) * world_height, 0.0, world_height)
    return x, y


def img01_to_world10(point: Sequence[float]) -> Point:
    """Map an image-fraction point onto the default 10x10 world plane."""
    return img01_to_world(point, WORLD_W, WORLD_H)


def px_to_img01(point: Sequence[float], img_width: float, img_height: float) -> Point:
    """Convert a pixel coordinate into image fractions."""
    if img_width <= 0 or img_height <= 0:
        raise ValueError("image dimensions must be positive")
    return float(point[0]) / float(img_width), float(point[1]) / float(img_height)


def clamp_entities(
    entities: Iterable[DetectedEntity],
    world_width: float = WORLD_W,
    world_height: float = WORLD_H,
) -> list[DetectedEntity]:
    """Ensure every entity is clamped to the visible world plane.

    Optional extents that are absent stay absent. Order and length are preserved.
    """
    radius_hi = max_radius(world_width, world_height)
    clamped: list[DetectedEntity] = []
    for entity in entities:
        update = {
            "x": clamp(entity.x, 0.0, world_width),
            "y": clamp(entity.y, 0.0, world_height),
        }
        if entity.width is not None:
            update["width"] = clamp(entity.width, 0.0, world_width)
        if entity.height is not None:
            update["height"] = clamp(entity.height, 0.0, world_height)
        if entity.radius is not None:
            update["radius"] = clamp(entity.radius, 0.0, radius_hi)
        clamped.append(entity.model_copy(update=update, deep=True))
    return clamped


def infer_seats(entity: DetectedEntity) -> int:
    """Simple seats heuristic if missing.

    Round tables get one seat per ``SEAT_SPACING`` of circumference. Rectangular
    tables seat both long edges and ignore the ends. Anything under-specified
    falls back to ``DEFAULT_SEATS``.
    """
    if entity.seats and entity.seats > 0:
        return int(entity.seats)
    if entity.shape == TableShape.ROUND and entity.radius:
        circumference = 2.0 * math.pi * entity.radius
        return max(MIN_SEATS, math.floor(circumference / SEAT_SPACING))
    if entity.shape == TableShape.RECT and entity.width and entity.height:
        long_edge = max(entity.width, entity.height)
        return max(MIN_SEATS, 2 * math.floor(long_edge / SEAT_SPACING))
    return DEFAULT_SEATS


def with_inferred_seats(entity: DetectedEntity) -> DetectedEntity:
    """Fill in a missing seat count and mark it as inferred."""
    if entity.seats and entity.seats > 0:
        return entity
    return entity.model_copy(update={"seats": infer_seats(entity), "seats_inferred": True})


__all__ = [
    "clamp",
    "clamp_entities",
    "img01_to_world",
    "img01_to_world10",
    "infer_seats",
    "px_to_img01",
    "with_inferred_seats",
]
