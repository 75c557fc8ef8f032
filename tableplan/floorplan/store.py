"""Per-session floor-plan editor state.

A ``FloorPlanStore`` is owned by exactly one editing session. It is created when
the session starts and dropped when the editor closes; it is never shared, so
mutations need no locking.
"""

from __future__ import annotations

from typing import Any, Iterable, Mapping
from uuid import UUID, uuid4

from loguru import logger
from pydantic import BaseModel, ConfigDict, Field

from tableplan.exceptions import (
    AnalysisInProgressError,
    EntityNotFoundError,
    StaleRunError,
    ValidationError,
)
from tableplan.floorplan.schema import AnalyzeResponse, DetectedEntity, Preview, parse_entity
from tableplan.geometry.contract import WORLD_H, WORLD_W
from tableplan.geometry.normalize import clamp_entities

_ENTITY_FIELDS = set(DetectedEntity.model_fields)
_CLAMPED_FIELDS = {"x", "y", "width", "height", "radius"}
_ALIASES = {
    field.alias: name
    for name, field in DetectedEntity.model_fields.items()
    if field.alias and field.alias != name
}


class FloorPlanState(BaseModel):
    """Immutable snapshot of a store."""

    model_config = ConfigDict(frozen=True)

    run_id: UUID | None = None
    entities: tuple[DetectedEntity, ...] = ()
    preview: Preview | None = None
    is_analyzing: bool = False
    uploaded_image: str | None = None
    pending_run_id: UUID | None = None


class FloorPlanStore:
    def __init__(self) -> None:
        self._run_id: UUID | None = None
        self._entities: list[DetectedEntity] = []
        self._positions: dict[UUID, int] = {}
        self._preview: Preview | None = None
        self._is_analyzing = False
        self._uploaded_image: str | None = None
        self._pending_run_id: UUID | None = None

    # -- read access -------------------------------------------------------

    @property
    def run_id(self) -> UUID | None:
        return self._run_id

    @property
    def entities(self) -> list[DetectedEntity]:
        return [entity.model_copy(deep=True) for entity in self._entities]

    @property
    def preview(self) -> Preview | None:
        return self._preview

    @property
    def is_analyzing(self) -> bool:
        return self._is_analyzing

    @property
    def uploaded_image(self) -> str | None:
        return self._uploaded_image

    @property
    def pending_run_id(self) -> UUID | None:
        return self._pending_run_id

    def snapshot(self) -> FloorPlanState:
        return FloorPlanState(
            run_id=self._run_id,
            entities=tuple(entity.model_copy(deep=True) for entity in self._entities),
            preview=self._preview,
            is_analyzing=self._is_analyzing,
            uploaded_image=self._uploaded_image,
            pending_run_id=self._pending_run_id,
        )

    def index_of(self, entity_id: UUID) -> int:
        try:
            return self._positions[entity_id]
        except KeyError:
            raise EntityNotFoundError(
                f"No entity with id {entity_id}",
                {"entity_id": str(entity_id)},
            ) from None

    # -- mutations ---------------------------------------------------------

    def set_run(
        self,
        run_id: UUID,
        entities: Iterable[DetectedEntity],
        preview: Preview | None,
    ) -> None:
        """Replace run id, entities and preview in one step."""
        world_w = preview.world_width if preview else WORLD_W
        world_h = preview.world_height if preview else WORLD_H
        prepared: list[DetectedEntity] = []
        positions: dict[UUID, int] = {}
        for entity in clamp_entities(entities, world_w, world_h):
            if entity.id is None or entity.id in positions:
                entity = entity.model_copy(update={"id": uuid4()})
            positions[entity.id] = len(prepared)
            prepared.append(entity)

        self._run_id = run_id
        self._entities = prepared
        self._positions = positions
        self._preview = preview
        logger.debug("Run {run_id} applied with {count} entities", run_id=run_id, count=len(prepared))

    def update_entity(self, index: int, patch: Mapping[str, Any]) -> DetectedEntity:
        """Merge ``patch`` into the entity at ``index``.

        Raises:
            EntityNotFoundError: If ``index`` is outside the current sequence.
            ValidationError: If the patch names unknown fields or the merged
                entity is invalid after clamping.
        """
        if not 0 <= index < len(self._entities):
            raise EntityNotFoundError(
                f"Entity index {index} out of range",
                {"index": index, "count": len(self._entities)},
            )
        current = self._entities[index]
        changes = self._normalise_patch(patch)

        if changes.get("seats"):
            changes.setdefault("seats_inferred", False)

        merged = current.model_copy(update=changes)
        world_w, world_h = self._world_size()
        clamped = clamp_entities([merged], world_w, world_h)[0]
        updated = parse_entity(clamped.model_dump(warnings=False))

        entities = list(self._entities)
        entities[index] = updated
        self._entities = entities
        return updated.model_copy(deep=True)

    def update_entity_by_id(self, entity_id: UUID, patch: Mapping[str, Any]) -> DetectedEntity:
        return self.update_entity(self.index_of(entity_id), patch)

    def set_analyzing(self, analyzing: bool) -> None:
        self._is_analyzing = bool(analyzing)
        if not analyzing:
            self._pending_run_id = None

    def set_uploaded_image(self, image: str | None) -> None:
        self._uploaded_image = image

    def reset(self) -> None:
        self._run_id = None
        self._entities = []
        self._positions = {}
        self._preview = None
        self._is_analyzing = False
        self._uploaded_image = None
        self._pending_run_id = None

    # -- analysis lifecycle ------------------------------------------------

    def begin_analysis(self) -> UUID:
        """Mark an analysis as in flight and return the run id it must answer with."""
        if self._is_analyzing:
            raise AnalysisInProgressError(
                "An analysis is already running for this session",
                {"pending_run_id": str(self._pending_run_id) if self._pending_run_id else ""},
            )
        run_id = uuid4()
        self._is_analyzing = True
        self._pending_run_id = run_id
        return run_id

    def accept_run(self, response: AnalyzeResponse) -> None:
        """Apply a detector response if it belongs to the pending run."""
        if self._pending_run_id is None or response.run_id != self._pending_run_id:
            raise StaleRunError(
                f"Discarding result for run {response.run_id}",
                {
                    "run_id": str(response.run_id),
                    "pending_run_id": str(self._pending_run_id) if self._pending_run_id else "",
                },
            )
        self.set_run(response.run_id, response.entities, response.preview)
        self.set_analyzing(False)

    # -- helpers -----------------------------------------------------------

    def _world_size(self) -> tuple[float, float]:
        if self._preview is None:
            return WORLD_W, WORLD_H
        return self._preview.world_width, self._preview.world_height

    @staticmethod
    def _normalise_patch(patch: Mapping[str, Any]) -> dict[str, Any]:
        changes: dict[str, Any] = {}
        errors: list[dict[str, str]] = []
        for key, value in patch.items():
            name = _ALIASES.get(key, key)
            if name not in _ENTITY_FIELDS or name == "id":
                errors.append({"field": key, "message": "unknown or immutable field"})
                continue
            if name in _CLAMPED_FIELDS:
                # clamping runs before validation, so extents must already be numbers
                if value is None:
                    if name in ("x", "y"):
                        errors.append({"field": key, "message": "position is required"})
                        continue
                elif isinstance(value, bool) or not isinstance(value, (int, float)):
                    errors.append({"field": key, "message": "Input should be a valid number"})
                    continue
                else:
                    value = float(value)
            changes[name] = value
        if errors:
            raise ValidationError(f"Invalid entity patch: {len(errors)} violation(s)", {"errors": errors})
        return changes


__all__ = ["FloorPlanState", "FloorPlanStore"]
