"""
Floor-Plan Analysis

Runs the hosted detector on an uploaded floor plan and turns its output into a
validated ``AnalyzeResponse``: entities in world space, clamped to the plane,
with seat counts filled in where the detector gave none.
"""

from __future__ import annotations

import time
from pathlib import Path
from uuid import UUID, uuid4

from loguru import logger

from tableplan.exceptions import ValidationError
from tableplan.floorplan.schema import (
    AnalyzeRequest,
    AnalyzeResponse,
    DetectedEntity,
    EntityType,
    Preview,
)
from tableplan.geometry.contract import (
    LOW_CONFIDENCE_THRESHOLD,
    MIN_DETECTION_CONFIDENCE,
    RECOMMENDED_MIN_TABLES,
    WORLD_H,
    WORLD_W,
)
from tableplan.geometry.normalize import clamp_entities, with_inferred_seats
from tableplan.ml.detections import predictions_to_entities
from tableplan.ml.roboflow_client import RFOptions, image_size_from_raw, infer_tables_with_raw


def build_recommendations(
    entities: list[DetectedEntity],
    low_confidence_threshold: float = LOW_CONFIDENCE_THRESHOLD,
) -> list[str]:
    tables = [e for e in entities if e.type == EntityType.TABLE]
    if not tables:
        return [
            "No tables detected. Try uploading a clearer floor plan image.",
            "Ensure tables are clearly visible and not obstructed by other objects.",
        ]

    recommendations = [f"Successfully detected {len(tables)} tables."]
    low_confidence = [t for t in tables if t.confidence is not None and t.confidence < low_confidence_threshold]
    if low_confidence:
        recommendations.append(
            f"{len(low_confidence)} tables detected with low confidence. Manual verification recommended."
        )
    inferred = [t for t in tables if t.seats_inferred]
    if inferred:
        recommendations.append(f"Seat counts for {len(inferred)} tables were estimated from table size.")
    capacity = sum(t.seats for t in tables)
    recommendations.append(f"Estimated total seating capacity: {capacity} guests.")
    if len(tables) < RECOMMENDED_MIN_TABLES:
        recommendations.append("Consider optimizing your layout for more tables if space allows.")
    return recommendations


def summarise_entities(
    entities: list[DetectedEntity],
) -> tuple[int, float]:
    """Table count and mean table confidence (0 when no table was detected)."""
    tables = [e for e in entities if e.type == EntityType.TABLE]
    scores = [e.confidence for e in tables if e.confidence is not None]
    confidence = sum(scores) / len(scores) if scores else 0.0
    return len(tables), confidence


async def analyze_floor_plan(
    image_path: Path,
    request: AnalyzeRequest,
    *,
    img_width: int | None = None,
    img_height: int | None = None,
    run_id: UUID | None = None,
    opts: RFOptions | None = None,
    world_width: float = WORLD_W,
    world_height: float = WORLD_H,
    min_confidence: float = MIN_DETECTION_CONFIDENCE,
    low_confidence_threshold: float = LOW_CONFIDENCE_THRESHOLD,
) -> AnalyzeResponse:
    """Detect tables on ``image_path`` and build the analyze response for ``run_id``.

    Image dimensions fall back to the ones reported by the detector.
    Detector failures propagate unchanged.
    """
    started = time.perf_counter()
    run = run_id or uuid4()
    logger.info(
        "Analyzing floor plan run={run} calibration={mode} key={key}",
        run=run,
        mode=request.calibration.mode.value,
        key=request.idempotency_key,
    )

    preds, raw = await infer_tables_with_raw(image_path, opts=opts)

    if img_width is None or img_height is None:
        size = image_size_from_raw(raw)
        if size is None:
            raise ValidationError(
                "Image dimensions are unknown",
                {
                    "errors": [
                        {"field": "preview.imgWidth", "message": "missing"},
                        {"field": "preview.imgHeight", "message": "missing"},
                    ]
                },
            )
        img_width, img_height = size

    entities = predictions_to_entities(
        preds,
        img_width=img_width,
        img_height=img_height,
        calibration=request.calibration,
        world_width=world_width,
        world_height=world_height,
        min_confidence=min_confidence,
    )
    entities = [
        with_inferred_seats(e) if e.type == EntityType.TABLE else e
        for e in clamp_entities(entities, world_width, world_height)
    ]
    tables, confidence = summarise_entities(entities)
    elapsed_ms = int(round((time.perf_counter() - started) * 1000))

    response = AnalyzeResponse(
        run_id=run,
        tables_detected=tables,
        confidence=confidence,
        analysis_ms=elapsed_ms,
        entities=entities,
        preview=Preview(
            img_width=img_width,
            img_height=img_height,
            world_width=world_width,
            world_height=world_height,
        ),
        recommendations=build_recommendations(entities, low_confidence_threshold),
    )
    logger.info(
        "Analysis finished run={run} tables={tables} confidence={confidence:.2f} ms={ms}",
        run=run,
        tables=tables,
        confidence=confidence,
        ms=elapsed_ms,
    )
    return response
