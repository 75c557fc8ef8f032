"""Conversion of detector predictions into world-space floor-plan entities."""

from __future__ import annotations

import re
from typing import Iterable, Sequence, Tuple

import cv2
import numpy as np
from loguru import logger
from shapely.geometry import Polygon

from tableplan.exceptions import GeometryError
from tableplan.floorplan.schema import (
    Calibration,
    CalibrationMode,
    DetectedEntity,
    EntityType,
    TableShape,
)
from tableplan.geometry.contract import (
    MIN_DETECTION_CONFIDENCE,
    WORLD_H,
    WORLD_W,
    max_radius,
)
from tableplan.geometry.normalize import clamp, img01_to_world, px_to_img01
from tableplan.ml.roboflow_client import RFPred

# Checked in order; the first keyword hit wins
_TYPE_KEYWORDS: Tuple[Tuple[EntityType, Tuple[str, ...]], ...] = (
    (EntityType.CHAIR, ("chair", "stool", "seat", "sofa", "couch")),
    (EntityType.DOOR, ("door", "entrance", "exit")),
    (EntityType.WALL, ("wall",)),
    (EntityType.TABLE, ("table", "desk", "booth", "bench")),
    (EntityType.BAR, ("bar", "counter")),
    (EntityType.ZONE, ("zone", "area", "room", "terrace", "patio")),
)

_ROUND_KEYWORDS: Tuple[str, ...] = ("round", "circle", "circular")

_WORD_SPLIT = re.compile(r"[^a-z0-9]+")

# Image-fraction corners of the world plane: top-left, top-right, bottom-right, bottom-left
_UNIT_SQUARE = ((0.0, 0.0), (1.0, 0.0), (1.0, 1.0), (0.0, 1.0))


def _class_words(klass: str) -> set[str]:
    """Lower-cased words of a class name, plus their singular forms."""
    words = {word for word in _WORD_SPLIT.split((klass or "").lower()) if word}
    return words | {word[:-1] for word in words if len(word) > 1 and word.endswith("s")}


def _has_keyword(klass: str, keywords: Iterable[str]) -> bool:
    words = _class_words(klass)
    return any(keyword in words for keyword in keywords)


def entity_type_for(klass: str) -> EntityType:
    # whole words only, so "outdoor table" is a table and "barrier" is not a bar
    for entity_type, keywords in _TYPE_KEYWORDS:
        if _has_keyword(klass, keywords):
            return entity_type
    return EntityType.OBSTACLE


def calibration_matrix(calibration: Calibration | None) -> np.ndarray | None:
    """Perspective transform from the anchor quad onto the unit square.

    Returns ``None`` for AUTO calibration, which keeps image fractions as they are.
    """
    if calibration is None or calibration.mode != CalibrationMode.MANUAL or not calibration.anchors:
        return None
    src = np.asarray(calibration.anchors, dtype=np.float32)
    dst = np.asarray(_UNIT_SQUARE, dtype=np.float32)
    try:
        matrix = cv2.getPerspectiveTransform(src, dst)
    except cv2.error as exc:
        raise GeometryError(f"Calibration transform failed: {exc}") from exc
    if not np.all(np.isfinite(matrix)) or abs(float(np.linalg.det(matrix))) < 1e-9:
        raise GeometryError(
            "Calibration anchors do not span an area",
            {"anchors": [list(a) for a in calibration.anchors]},
        )
    return matrix


def _apply(matrix: np.ndarray | None, point: Sequence[float]) -> Tuple[float, float]:
    if matrix is None:
        return float(point[0]), float(point[1])
    vec = matrix @ np.array([float(point[0]), float(point[1]), 1.0])
    if abs(vec[2]) < 1e-12:
        raise GeometryError("Point maps to infinity under calibration", {"point": list(point)})
    return float(vec[0] / vec[2]), float(vec[1] / vec[2])


def _footprint(
    pred: RFPred,
    img_width: int,
    img_height: int,
    matrix: np.ndarray | None,
) -> Tuple[Tuple[float, float], float, float]:
    """Center and extents of a prediction in calibrated image fractions."""
    if pred.polygon:
        poly = Polygon(pred.polygon)
        if poly.is_valid and not poly.is_empty:
            centroid = (poly.centroid.x, poly.centroid.y)
        else:
            xs, ys = zip(*pred.polygon)
            centroid = (sum(xs) / len(xs), sum(ys) / len(ys))
        corners = list(pred.polygon)
    else:
        if pred.bbox is None:
            raise GeometryError("Prediction has neither box nor polygon", {"class": pred.klass})
        x, y, w, h = pred.bbox
        centroid = (x + w / 2.0, y + h / 2.0)
        corners = [(x, y), (x + w, y), (x + w, y + h), (x, y + h)]

    center = _apply(matrix, px_to_img01(centroid, img_width, img_height))
    mapped = [_apply(matrix, px_to_img01(corner, img_width, img_height)) for corner in corners]
    xs = [p[0] for p in mapped]
    ys = [p[1] for p in mapped]
    return center, max(xs) - min(xs), max(ys) - min(ys)


def prediction_to_entity(
    pred: RFPred,
    *,
    img_width: int,
    img_height: int,
    matrix: np.ndarray | None = None,
    world_width: float = WORLD_W,
    world_height: float = WORLD_H,
    label: str | None = None,
) -> DetectedEntity:
    entity_type = entity_type_for(pred.klass)
    (cx, cy), frac_w, frac_h = _footprint(pred, img_width, img_height, matrix)
    x, y = img01_to_world((cx, cy), world_width, world_height)
    width = clamp(frac_w * world_width, 0.0, world_width)
    height = clamp(frac_h * world_height, 0.0, world_height)

    shape: TableShape | None = None
    radius: float | None = None
    if entity_type == EntityType.TABLE:
        if pred.polygon:
            shape = TableShape.POLYGON
        elif _has_keyword(pred.klass, _ROUND_KEYWORDS):
            shape = TableShape.ROUND
            radius = clamp((width + height) / 4.0, 0.0, max_radius(world_width, world_height))
        else:
            shape = TableShape.RECT

    meta = {"class": pred.klass, "source": "detector"}
    if pred.prediction_id:
        meta["detection_id"] = pred.prediction_id

    return DetectedEntity(
        type=entity_type,
        shape=shape,
        x=x,
        y=y,
        width=None if shape == TableShape.ROUND else width,
        height=None if shape == TableShape.ROUND else height,
        radius=radius,
        label=label or pred.klass or None,
        confidence=clamp(pred.confidence, 0.0, 1.0),
        meta=meta,
    )


def predictions_to_entities(
    preds: Iterable[RFPred],
    *,
    img_width: int,
    img_height: int,
    calibration: Calibration | None = None,
    world_width: float = WORLD_W,
    world_height: float = WORLD_H,
    min_confidence: float = MIN_DETECTION_CONFIDENCE,
) -> list[DetectedEntity]:
    """Map detector output into world space, dropping low-confidence hits."""
    matrix = calibration_matrix(calibration)
    entities: list[DetectedEntity] = []
    dropped = 0
    table_number = 0
    for pred in preds:
        if pred.confidence < min_confidence:
            dropped += 1
            continue
        label = None
        if entity_type_for(pred.klass) == EntityType.TABLE:
            table_number += 1
            label = f"Table {table_number}"
        entities.append(
            prediction_to_entity(
                pred,
                img_width=img_width,
                img_height=img_height,
                matrix=matrix,
                world_width=world_width,
                world_height=world_height,
                label=label,
            )
        )
    if dropped:
        logger.debug("Dropped {count} predictions below confidence {threshold}", count=dropped, threshold=min_confidence)
    return entities
