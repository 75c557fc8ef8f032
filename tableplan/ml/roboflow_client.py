from __future__ import annotations

import asyncio
from dataclasses import dataclass, replace
from functools import lru_cache
from pathlib import Path
from typing import Any, List, Optional, Tuple
from urllib.parse import urlparse

from inference_sdk import InferenceHTTPClient
from loguru import logger

from tableplan.exceptions import ConfigurationError, VisionAPIError
from tableplan.settings import get_settings


@dataclass
class RFOptions:
    project: str
    version: int
    confidence: float = 0.25
    overlap: float = 0.3


@dataclass
class RFPred:
    """One detector prediction in image pixels."""

    klass: str
    confidence: float
    bbox: Tuple[float, float, float, float] | None  # x, y (top-left), width, height
    polygon: List[Tuple[float, float]] | None = None
    prediction_id: Optional[str] = None

    @property
    def center(self) -> Tuple[float, float] | None:
        if self.bbox is None:
            return None
        x, y, w, h = self.bbox
        return x + w / 2.0, y + h / 2.0


SERVERLESS_HOSTS = {
    "serverless.roboflow.com",
    "detect.roboflow.com",
    "outline.roboflow.com",
    "infer.roboflow.com",
}


def _normalise_url(value: str) -> str:
    if "//" in value:
        return value
    return f"https://{value}"


def _extract_host(api_url: str) -> str:
    parsed = urlparse(_normalise_url(api_url))
    return (parsed.netloc or parsed.path).strip().lower()


def _is_serverless_endpoint(api_url: str) -> bool:
    host = _extract_host(api_url)
    return any(host == candidate or host.endswith(f".{candidate}") for candidate in SERVERLESS_HOSTS)


def _project_id_only(value: str) -> str:
    parts = [segment for segment in (value or "").split("/") if segment]
    return parts[-1] if parts else value


def _extract_point_xy(point: Any) -> tuple[float, float] | None:
    if isinstance(point, dict):
        if "x" in point and "y" in point:
            try:
                return float(point["x"]), float(point["y"])
            except (TypeError, ValueError):
                return None
        return None
    if isinstance(point, (list, tuple)) and len(point) >= 2:
        try:
            return float(point[0]), float(point[1])
        except (TypeError, ValueError):
            return None
    return None


def parse_predictions(data: Any) -> list[RFPred]:
    """Turn a raw inference payload into ``RFPred`` values (pixels, top-left origin)."""
    if isinstance(data, dict):
        source = list(data.get("predictions", []))
    elif isinstance(data, list):
        source = list(data)
    else:
        source = []

    preds: list[RFPred] = []
    for p in source:
        if not isinstance(p, dict):
            continue
        poly = None
        pts = p.get("points") or p.get("polygon")
        if pts:
            parsed = [coords for coords in (_extract_point_xy(pt) for pt in pts) if coords is not None]
            if len(parsed) >= 3:
                poly = parsed
        bbox = None
        if all(p.get(k) is not None for k in ("x", "y", "width", "height")):
            # inference API reports box centers
            w = float(p["width"])
            h = float(p["height"])
            bbox = (float(p["x"]) - w / 2.0, float(p["y"]) - h / 2.0, w, h)
        if bbox is None and poly is None:
            continue
        preds.append(
            RFPred(
                klass=str(p.get("class", "")),
                confidence=float(p.get("confidence", 0.0)),
                bbox=bbox,
                polygon=poly,
                prediction_id=str(p.get("detection_id") or p.get("prediction_id") or "") or None,
            )
        )
    return preds


def image_size_from_raw(data: Any) -> tuple[int, int] | None:
    image = data.get("image") if isinstance(data, dict) else None
    if not isinstance(image, dict):
        return None
    try:
        width = int(image["width"])
        height = int(image["height"])
    except (KeyError, TypeError, ValueError):
        return None
    if width <= 0 or height <= 0:
        return None
    return width, height


@lru_cache(maxsize=8)
def _get_client(api_url: str, api_key: str) -> InferenceHTTPClient:
    client = InferenceHTTPClient(api_url=api_url, api_key=api_key)
    if _is_serverless_endpoint(api_url):
        client.select_api_v0()
    return client


async def _infer_with_client(
    client: InferenceHTTPClient,
    image_path: Path,
    model_id: str,
    *,
    confidence: float,
    overlap: float,
) -> dict[str, Any]:
    loop = asyncio.get_running_loop()

    def _call() -> dict[str, Any]:
        configuration = replace(
            client.inference_configuration,
            confidence_threshold=confidence,
            iou_threshold=overlap,
        )
        with client.use_configuration(configuration):
            return client.infer(str(image_path), model_id=model_id)

    return await loop.run_in_executor(None, _call)


def default_options() -> RFOptions:
    settings = get_settings().roboflow
    return RFOptions(
        project=settings.project,
        version=settings.version,
        confidence=settings.confidence,
        overlap=settings.overlap,
    )


async def infer_tables_with_raw(
    image_path: Path,
    opts: RFOptions | None = None,
    api_key_override: str | None = None,
) -> tuple[list[RFPred], dict[str, Any]]:
    """Run the hosted detector on ``image_path``.

    Failures of the hosted service propagate as ``VisionAPIError``; nothing is retried.
    """
    settings = get_settings().roboflow
    options = opts or default_options()
    api_key = (api_key_override or "").strip() or settings.api_key
    if not api_key:
        raise ConfigurationError("ROBOFLOW_API_KEY is not set", {"setting": "roboflow.api_key"})
    api_url = (settings.api_url or "https://detect.roboflow.com").rstrip("/")
    model_id = f"{_project_id_only(options.project)}/{options.version}"

    logger.info("Running table detection model={model_id}", model_id=model_id)
    try:
        client = _get_client(api_url, api_key)
        data = await _infer_with_client(
            client,
            image_path,
            model_id,
            confidence=float(options.confidence),
            overlap=float(options.overlap),
        )
    except Exception as exc:
        raise VisionAPIError(f"Table detection failed: {exc}", {"model_id": model_id}) from exc

    preds = parse_predictions(data)
    logger.info("Detector returned {count} predictions", count=len(preds))
    return preds, data if isinstance(data, dict) else {"predictions": data}


async def infer_tables(image_path: Path, opts: RFOptions | None = None) -> list[RFPred]:
    preds, _ = await infer_tables_with_raw(image_path, opts=opts)
    return preds
