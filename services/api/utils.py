"""Shared helpers and dependencies for API routes."""

from __future__ import annotations

from pathlib import Path

import cv2
import numpy as np
from fastapi import HTTPException, Request

from services.api.sessions import SessionRegistry
from tableplan.floorplan.layout_store import FileLayoutStore
from tableplan.settings import get_settings

IMAGE_EXTENSIONS = {".png", ".jpg", ".jpeg", ".bmp", ".tif", ".tiff", ".webp"}


def get_registry(request: Request) -> SessionRegistry:
    return request.app.state.sessions


def get_layout_store() -> FileLayoutStore:
    return FileLayoutStore(Path(get_settings().storage.layouts_root))


def check_image_upload(filename: str | None, content_type: str | None) -> str:
    """Return the file suffix of an acceptable image upload."""
    if not filename:
        raise HTTPException(status_code=400, detail="Missing file name")
    suffix = Path(filename).suffix.lower()
    if suffix not in IMAGE_EXTENSIONS:
        raise HTTPException(status_code=400, detail="Only image uploads are supported (PNG/JPG/JPEG/WebP/BMP/TIFF)")
    if content_type and not content_type.startswith("image/"):
        raise HTTPException(status_code=400, detail="Invalid MIME type for an image upload")
    return suffix


def image_dimensions(payload: bytes) -> tuple[int, int]:
    """Decode ``payload`` and return its (width, height) in pixels."""
    frame = cv2.imdecode(np.frombuffer(payload, dtype=np.uint8), cv2.IMREAD_UNCHANGED)
    if frame is None:
        raise HTTPException(status_code=400, detail="Image could not be decoded")
    height, width = frame.shape[:2]
    return int(width), int(height)
