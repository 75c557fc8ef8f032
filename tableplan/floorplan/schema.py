"""Floor-plan entity and analyze contracts.

Models accept both snake_case field names and the camelCase wire names the
editor sends (``idempotencyKey``, ``imgWidth`` ...). Serialise with
``by_alias=True`` to produce wire payloads.
"""

from __future__ import annotations

from enum import Enum
from typing import Any, Annotated, Mapping, Tuple, Type, TypeVar
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, model_validator
from pydantic import ValidationError as PydanticValidationError
from pydantic.alias_generators import to_camel

from tableplan.exceptions import ValidationError
from tableplan.geometry.contract import (
    IMG_MAX,
    IMG_MIN,
    MANUAL_ANCHOR_COUNT,
    MAX_RADIUS,
    WORLD_H,
    WORLD_W,
)


class EntityType(str, Enum):
    TABLE = "TABLE"
    CHAIR = "CHAIR"
    WALL = "WALL"
    DOOR = "DOOR"
    BAR = "BAR"
    OBSTACLE = "OBSTACLE"
    ZONE = "ZONE"


class TableShape(str, Enum):
    ROUND = "ROUND"
    RECT = "RECT"
    POLYGON = "POLYGON"


class CalibrationMode(str, Enum):
    AUTO = "AUTO"
    MANUAL = "MANUAL"


class _WireModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


ImageFraction = Annotated[float, Field(ge=IMG_MIN, le=IMG_MAX, strict=True)]
Anchor = Tuple[ImageFraction, ImageFraction]


class DetectedEntity(_WireModel):
    """One placed object on the floor plan, in world units.

    Instances are frozen; numbers are validated strictly (ints are accepted
    for float fields, strings and booleans are not).
    """

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True)

    id: UUID | None = None
    type: EntityType
    shape: TableShape | None = None
    x: float = Field(ge=0.0, le=WORLD_W, strict=True)
    y: float = Field(ge=0.0, le=WORLD_H, strict=True)
    width: float | None = Field(default=None, ge=0.0, le=WORLD_W, strict=True)
    height: float | None = Field(default=None, ge=0.0, le=WORLD_H, strict=True)
    radius: float | None = Field(default=None, ge=0.0, le=MAX_RADIUS, strict=True)
    rotation: float = Field(default=0.0, strict=True)
    seats: int = Field(default=0, ge=0, strict=True)
    seats_inferred: bool = Field(default=False, strict=True)
    label: str | None = None
    confidence: float | None = Field(default=None, ge=0.0, le=1.0, strict=True)
    meta: dict[str, Any] = Field(default_factory=dict)


class Calibration(_WireModel):
    mode: CalibrationMode = CalibrationMode.AUTO
    anchors: list[Anchor] | None = Field(
        default=None,
        min_length=MANUAL_ANCHOR_COUNT,
        max_length=MANUAL_ANCHOR_COUNT,
    )

    @model_validator(mode="after")
    def _manual_needs_anchors(self) -> "Calibration":
        if self.mode == CalibrationMode.MANUAL and self.anchors is None:
            raise ValueError(f"MANUAL calibration requires exactly {MANUAL_ANCHOR_COUNT} anchors")
        return self


class AnalyzeRequest(_WireModel):
    idempotency_key: UUID
    calibration: Calibration = Field(default_factory=Calibration)


class Preview(_WireModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True)

    img_width: int = Field(gt=0, strict=True)
    img_height: int = Field(gt=0, strict=True)
    world_width: float = Field(default=WORLD_W, ge=0.0, le=WORLD_W, strict=True)
    world_height: float = Field(default=WORLD_H, ge=0.0, le=WORLD_H, strict=True)


class AnalyzeResponse(_WireModel):
    run_id: UUID
    tables_detected: int = Field(ge=0, strict=True)
    confidence: float = Field(ge=0.0, le=1.0, strict=True)
    analysis_ms: int = Field(ge=0, strict=True)
    entities: list[DetectedEntity]
    preview: Preview
    recommendations: list[str] = Field(default_factory=list)


ModelT = TypeVar("ModelT", bound=BaseModel)


def _field_path(loc: tuple[Any, ...]) -> str:
    return ".".join(str(part) for part in loc) or "__root__"


def _parse(model: Type[ModelT], payload: Mapping[str, Any] | ModelT, label: str) -> ModelT:
    if isinstance(payload, model):
        return payload
    try:
        return model.model_validate(payload)
    except PydanticValidationError as exc:
        errors = [
            {"field": _field_path(tuple(err.get("loc", ()))), "message": str(err.get("msg", ""))}
            for err in exc.errors()
        ]
        raise ValidationError(
            f"Invalid {label}: {len(errors)} violation(s)",
            {"errors": errors},
        ) from exc


def parse_entity(payload: Mapping[str, Any]) -> DetectedEntity:
    """Validate a single entity, reporting every violated field."""
    return _parse(DetectedEntity, payload, "entity")


def parse_analyze_request(payload: Mapping[str, Any]) -> AnalyzeRequest:
    return _parse(AnalyzeRequest, payload, "analyze request")


def parse_analyze_response(payload: Mapping[str, Any]) -> AnalyzeResponse:
    return _parse(AnalyzeResponse, payload, "analyze response")


def parse_preview(payload: Mapping[str, Any]) -> Preview:
    return _parse(Preview, payload, "preview")


__all__ = [
    "AnalyzeRequest",
    "AnalyzeResponse",
    "Anchor",
    "Calibration",
    "CalibrationMode",
    "DetectedEntity",
    "EntityType",
    "Preview",
    "TableShape",
    "parse_analyze_request",
    "parse_analyze_response",
    "parse_entity",
    "parse_preview",
]
