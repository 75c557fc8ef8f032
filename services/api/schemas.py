from __future__ import annotations

from typing import Any
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from tableplan.floorplan.schema import AnalyzeResponse, DetectedEntity, Preview
from tableplan.floorplan.store import FloorPlanStore


class _ApiModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class SessionOut(_ApiModel):
    session_id: UUID
    run_id: UUID | None = None
    entities: list[DetectedEntity] = Field(default_factory=list)
    preview: Preview | None = None
    is_analyzing: bool = False
    uploaded_image: str | None = None

    @classmethod
    def from_store(cls, session_id: UUID, store: FloorPlanStore) -> "SessionOut":
        state = store.snapshot()
        return cls(
            session_id=session_id,
            run_id=state.run_id,
            entities=list(state.entities),
            preview=state.preview,
            is_analyzing=state.is_analyzing,
            uploaded_image=state.uploaded_image,
        )


class SeedRunRequest(_ApiModel):
    """Manually placed layout that replaces the session's current run."""

    run_id: UUID | None = None
    entities: list[dict[str, Any]] = Field(default_factory=list)
    preview: dict[str, Any] | None = None


class AnalyzeResultOut(_ApiModel):
    session: SessionOut
    analysis: AnalyzeResponse | None = None
    discarded: bool = False
    replayed: bool = False


class SaveLayoutRequest(_ApiModel):
    tenant_id: str = Field(min_length=1)


class SaveLayoutResponse(_ApiModel):
    tenant_id: str
    run_id: UUID
    saved_at: str | None = None
    entity_count: int


class LoadLayoutRequest(_ApiModel):
    tenant_id: str = Field(min_length=1)
    run_id: UUID


class LayoutOut(_ApiModel):
    tenant_id: str
    run_id: UUID
    saved_at: str | None = None
    entities: list[DetectedEntity]
    preview: Preview | None = None


class LayoutListOut(_ApiModel):
    tenant_id: str
    runs: list[UUID]
