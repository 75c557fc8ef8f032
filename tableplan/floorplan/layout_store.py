from __future__ import annotations

import json
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Any
from uuid import UUID

from loguru import logger

from tableplan.exceptions import StorageError
from tableplan.floorplan.schema import DetectedEntity, Preview


@dataclass
class SavedLayout:
    tenant_id: str
    run_id: UUID
    entities: list[DetectedEntity] = field(default_factory=list)
    preview: Preview | None = None
    saved_at: str | None = None


class FileLayoutStore:
    """Saved floor-plan layouts as ``<root>/<tenant>/<run>.json``."""

    def __init__(self, root: Path) -> None:
        self.root = root
        self.root.mkdir(parents=True, exist_ok=True)

    def _tenant_dir(self, tenant_id: str) -> Path:
        name = str(tenant_id).strip()
        if not name or "/" in name or "\\" in name or name in {".", ".."}:
            raise StorageError("Invalid tenant id", {"tenant_id": str(tenant_id)})
        return self.root / name

    def _layout_path(self, tenant_id: str, run_id: UUID) -> Path:
        return self._tenant_dir(tenant_id) / f"{run_id}.json"

    def save(self, layout: SavedLayout) -> SavedLayout:
        path = self._layout_path(layout.tenant_id, layout.run_id)
        saved_at = datetime.now(timezone.utc).isoformat()
        payload = {
            "tenant_id": layout.tenant_id,
            "run_id": str(layout.run_id),
            "saved_at": saved_at,
            "entities": [entity.model_dump(mode="json", by_alias=True) for entity in layout.entities],
            "preview": layout.preview.model_dump(mode="json", by_alias=True) if layout.preview else None,
        }
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_text(json.dumps(payload), encoding="utf-8")
        except OSError as exc:
            raise StorageError(f"Could not write layout: {exc}", {"path": str(path)}) from exc
        logger.info(
            "Saved layout tenant={tenant} run={run} entities={count}",
            tenant=layout.tenant_id,
            run=layout.run_id,
            count=len(layout.entities),
        )
        layout.saved_at = saved_at
        return layout

    def load(self, tenant_id: str, run_id: UUID) -> SavedLayout | None:
        path = self._layout_path(tenant_id, run_id)
        if not path.exists():
            return None
        try:
            data: dict[str, Any] = json.loads(path.read_text(encoding="utf-8"))
            if not isinstance(data, dict):
                raise ValueError("layout file is not a JSON object")
            entities = data.get("entities", [])
            if not isinstance(entities, list):
                raise ValueError("entities is not a list")
            preview = data.get("preview")
            # pydantic and json decode errors are both ValueErrors
            return SavedLayout(
                tenant_id=str(data.get("tenant_id", tenant_id)),
                run_id=UUID(str(data["run_id"])),
                entities=[DetectedEntity.model_validate(item) for item in entities],
                preview=Preview.model_validate(preview) if preview else None,
                saved_at=data.get("saved_at"),
            )
        except (OSError, ValueError, KeyError) as exc:
            logger.warning("Unreadable layout at {path}: {error}", path=path, error=exc)
            raise StorageError(f"Could not read layout: {exc}", {"path": str(path)}) from exc

    def list_runs(self, tenant_id: str) -> list[UUID]:
        tenant_dir = self._tenant_dir(tenant_id)
        if not tenant_dir.exists():
            return []
        runs: list[UUID] = []
        for path in sorted(tenant_dir.glob("*.json")):
            try:
                runs.append(UUID(path.stem))
            except ValueError:
                continue
        return runs
