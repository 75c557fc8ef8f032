from __future__ import annotations

import json
import tempfile
from pathlib import Path
from typing import Annotated, Any
from uuid import UUID, uuid4

from fastapi import APIRouter, Body, Depends, File, Form, HTTPException, UploadFile
from loguru import logger

from services.api.schemas import (
    AnalyzeResultOut,
    LayoutListOut,
    LayoutOut,
    LoadLayoutRequest,
    SaveLayoutRequest,
    SaveLayoutResponse,
    SeedRunRequest,
    SessionOut,
)
from services.api.sessions import SessionRegistry
from services.api.utils import check_image_upload, get_layout_store, get_registry, image_dimensions
from tableplan.exceptions import StaleRunError, ValidationError
from tableplan.floorplan.layout_store import FileLayoutStore, SavedLayout
from tableplan.floorplan.schema import parse_analyze_request, parse_entity, parse_preview
from tableplan.ml.analyzer import analyze_floor_plan
from tableplan.settings import get_settings

router = APIRouter(prefix="/v1")

Registry = Annotated[SessionRegistry, Depends(get_registry)]
Layouts = Annotated[FileLayoutStore, Depends(get_layout_store)]


@router.post("/sessions", response_model=SessionOut, status_code=201, tags=["sessions"])
async def create_session(registry: Registry) -> SessionOut:
    session = registry.create()
    return SessionOut.from_store(session.id, session.store)


@router.get("/sessions/{session_id}", response_model=SessionOut, tags=["sessions"])
async def get_session(session_id: UUID, registry: Registry) -> SessionOut:
    session = registry.get(session_id)
    return SessionOut.from_store(session.id, session.store)


@router.delete("/sessions/{session_id}", status_code=204, tags=["sessions"])
async def close_session(session_id: UUID, registry: Registry) -> None:
    registry.close(session_id)


@router.post("/sessions/{session_id}/reset", response_model=SessionOut, tags=["sessions"])
async def reset_session(session_id: UUID, registry: Registry) -> SessionOut:
    session = registry.get(session_id)
    session.store.reset()
    session.analyses.clear()
    return SessionOut.from_store(session.id, session.store)


@router.put("/sessions/{session_id}/run", response_model=SessionOut, tags=["sessions"])
async def seed_run(session_id: UUID, payload: SeedRunRequest, registry: Registry) -> SessionOut:
    session = registry.get(session_id)
    entities = []
    errors: list[dict[str, Any]] = []
    for index, item in enumerate(payload.entities):
        try:
            entities.append(parse_entity(item))
        except ValidationError as exc:
            errors.extend({**err, "field": f"entities.{index}.{err['field']}"} for err in exc.errors)
    preview = None
    if payload.preview is not None:
        try:
            preview = parse_preview(payload.preview)
        except ValidationError as exc:
            errors.extend({**err, "field": f"preview.{err['field']}"} for err in exc.errors)
    if errors:
        raise ValidationError(f"Invalid layout: {len(errors)} violation(s)", {"errors": errors})

    session.store.set_run(payload.run_id or uuid4(), entities, preview)
    return SessionOut.from_store(session.id, session.store)


@router.patch("/sessions/{session_id}/entities/{index}", response_model=SessionOut, tags=["entities"])
async def patch_entity(
    session_id: UUID,
    index: int,
    registry: Registry,
    patch: Annotated[dict[str, Any], Body()],
) -> SessionOut:
    session = registry.get(session_id)
    session.store.update_entity(index, patch)
    return SessionOut.from_store(session.id, session.store)


@router.patch("/sessions/{session_id}/entities/by-id/{entity_id}", response_model=SessionOut, tags=["entities"])
async def patch_entity_by_id(
    session_id: UUID,
    entity_id: UUID,
    registry: Registry,
    patch: Annotated[dict[str, Any], Body()],
) -> SessionOut:
    session = registry.get(session_id)
    session.store.update_entity_by_id(entity_id, patch)
    return SessionOut.from_store(session.id, session.store)


@router.post("/sessions/{session_id}/analyze", response_model=AnalyzeResultOut, tags=["analysis"])
async def analyze_session_image(
    session_id: UUID,
    registry: Registry,
    file: Annotated[UploadFile, File(description="Floor plan image (PNG, JPG, JPEG, WEBP, BMP, TIFF)")],
    request: Annotated[str, Form(description="JSON AnalyzeRequest with idempotencyKey and calibration")],
) -> AnalyzeResultOut:
    session = registry.get(session_id)
    store = session.store

    try:
        request_payload = json.loads(request)
    except json.JSONDecodeError as exc:
        raise HTTPException(status_code=400, detail=f"Analyze request is not valid JSON: {exc}") from exc
    if not isinstance(request_payload, dict):
        raise HTTPException(status_code=400, detail="Analyze request must be a JSON object")
    analyze_request = parse_analyze_request(request_payload)

    cached = session.analyses.get(analyze_request.idempotency_key)
    if cached is not None:
        logger.info("Replaying analysis for key {key}", key=analyze_request.idempotency_key)
        return AnalyzeResultOut(
            session=SessionOut.from_store(session.id, store),
            analysis=cached,
            replayed=True,
        )

    suffix = check_image_upload(file.filename, file.content_type)
    payload = await file.read()
    if not payload:
        raise HTTPException(status_code=400, detail="The uploaded file is empty")
    img_width, img_height = image_dimensions(payload)

    run_id = store.begin_analysis()
    temp_path: Path | None = None
    try:
        store.set_uploaded_image(file.filename)
        with tempfile.NamedTemporaryFile(delete=False, suffix=suffix) as tmp:
            temp_path = Path(tmp.name)
            tmp.write(payload)
        del payload

        settings = get_settings()
        response = await analyze_floor_plan(
            temp_path,
            analyze_request,
            img_width=img_width,
            img_height=img_height,
            run_id=run_id,
            world_width=settings.floorplan.world_width,
            world_height=settings.floorplan.world_height,
            min_confidence=settings.floorplan.min_detection_confidence,
            low_confidence_threshold=settings.floorplan.low_confidence_threshold,
        )
    except Exception:
        if store.pending_run_id == run_id:
            store.set_analyzing(False)
        raise
    finally:
        if temp_path is not None:
            temp_path.unlink(missing_ok=True)

    try:
        store.accept_run(response)
    except StaleRunError as exc:
        logger.info("Discarded stale analysis: {message}", message=exc.message)
        return AnalyzeResultOut(
            session=SessionOut.from_store(session.id, store),
            analysis=None,
            discarded=True,
        )

    session.analyses[analyze_request.idempotency_key] = response
    return AnalyzeResultOut(session=SessionOut.from_store(session.id, store), analysis=response)


@router.post("/sessions/{session_id}/save", response_model=SaveLayoutResponse, tags=["layouts"])
async def save_session_layout(
    session_id: UUID,
    payload: SaveLayoutRequest,
    registry: Registry,
    layouts: Layouts,
) -> SaveLayoutResponse:
    session = registry.get(session_id)
    state = session.store.snapshot()
    if state.run_id is None:
        raise ValidationError(
            "Nothing to save: the session has no run",
            {"errors": [{"field": "runId", "message": "session has no run"}]},
        )
    saved = layouts.save(
        SavedLayout(
            tenant_id=payload.tenant_id,
            run_id=state.run_id,
            entities=list(state.entities),
            preview=state.preview,
        )
    )
    return SaveLayoutResponse(
        tenant_id=saved.tenant_id,
        run_id=saved.run_id,
        saved_at=saved.saved_at,
        entity_count=len(saved.entities),
    )


@router.post("/sessions/{session_id}/load", response_model=SessionOut, tags=["layouts"])
async def load_session_layout(
    session_id: UUID,
    payload: LoadLayoutRequest,
    registry: Registry,
    layouts: Layouts,
) -> SessionOut:
    session = registry.get(session_id)
    layout = layouts.load(payload.tenant_id, payload.run_id)
    if layout is None:
        raise HTTPException(status_code=404, detail="Layout not found")
    session.store.set_run(layout.run_id, layout.entities, layout.preview)
    return SessionOut.from_store(session.id, session.store)


@router.get("/layouts/{tenant_id}", response_model=LayoutListOut, tags=["layouts"])
async def list_layouts(tenant_id: str, layouts: Layouts) -> LayoutListOut:
    return LayoutListOut(tenant_id=tenant_id, runs=layouts.list_runs(tenant_id))


@router.get("/layouts/{tenant_id}/{run_id}", response_model=LayoutOut, tags=["layouts"])
async def get_layout(tenant_id: str, run_id: UUID, layouts: Layouts) -> LayoutOut:
    layout = layouts.load(tenant_id, run_id)
    if layout is None:
        raise HTTPException(status_code=404, detail="Layout not found")
    return LayoutOut(
        tenant_id=layout.tenant_id,
        run_id=layout.run_id,
        saved_at=layout.saved_at,
        entities=layout.entities,
        preview=layout.preview,
    )
