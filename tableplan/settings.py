from __future__ import annotations

import os
from functools import lru_cache
from pathlib import Path
from typing import Any

import yaml
from dotenv import load_dotenv
from pydantic import BaseModel, Field, field_validator

# Load .env file from project root
_env_path = Path(__file__).parent.parent / ".env"
if _env_path.exists():
    load_dotenv(_env_path)

DEFAULT_CONFIG_PATH = Path(__file__).parent.parent / "config" / "default.yaml"


class RoboflowSettings(BaseModel):
    project: str
    version: int
    confidence: float = Field(0.25, ge=0.0, le=1.0)
    overlap: float = Field(0.3, ge=0.0, le=1.0)
    api_url: str = "https://detect.roboflow.com"
    api_key_env: str = "ROBOFLOW_API_KEY"

    @property
    def api_key(self) -> str:
        return os.getenv(self.api_key_env, "")


class FloorPlanSettings(BaseModel):
    world_width: float = Field(10.0, gt=0.0, le=10.0)
    world_height: float = Field(10.0, gt=0.0, le=10.0)
    min_detection_confidence: float = Field(0.1, ge=0.0, le=1.0)
    low_confidence_threshold: float = Field(0.5, ge=0.0, le=1.0)


class DepositPolicySettings(BaseModel):
    enabled: bool = False
    amount: float | None = None
    percentage: float | None = None
    currency: str | None = None
    description: str | None = None


class CancellationPolicySettings(BaseModel):
    allowed_hours: float | None = 24
    fee_percentage: float | None = 10


class BookingSettings(BaseModel):
    base_url: str | None = None
    function_name: str = "widget-booking-live"
    api_key_env: str = "BOOKING_API_KEY"
    timeout_seconds: float = Field(15.0, gt=0.0)
    deposit: DepositPolicySettings = Field(default_factory=DepositPolicySettings)
    cancellation: CancellationPolicySettings = Field(default_factory=CancellationPolicySettings)

    @field_validator("base_url", mode="before")
    @classmethod
    def _strip_base_url(cls, value: Any) -> str | None:
        if value is None:
            return None
        text = str(value).strip().rstrip("/")
        return text or None

    @property
    def api_key(self) -> str:
        return os.getenv(self.api_key_env, "")


class StorageSettings(BaseModel):
    layouts_root: str = "data/layouts"


class Settings(BaseModel):
    roboflow: RoboflowSettings
    floorplan: FloorPlanSettings = Field(default_factory=FloorPlanSettings)
    booking: BookingSettings = Field(default_factory=BookingSettings)
    storage: StorageSettings = Field(default_factory=StorageSettings)

    @classmethod
    def load(cls, path: Path | None = None) -> "Settings":
        """Load settings from YAML configuration file.

        Args:
            path: Optional path to configuration file. If not provided, uses
                TABLEPLAN_CONFIG environment variable or defaults to config/default.yaml.

        Returns:
            Settings instance with loaded configuration.

        Raises:
            FileNotFoundError: If configuration file does not exist.
            ValueError: If configuration is invalid.
        """
        env_path = os.getenv("TABLEPLAN_CONFIG")
        config_path = path or (Path(env_path) if env_path else DEFAULT_CONFIG_PATH)
        if not config_path.exists():
            raise FileNotFoundError(f"Configuration file not found: {config_path}")
        with config_path.open("r", encoding="utf-8") as fp:
            payload = yaml.safe_load(fp) or {}
        booking_url = os.getenv("BOOKING_API_URL")
        if booking_url:
            payload.setdefault("booking", {})["base_url"] = booking_url
        try:
            return cls(**payload)
        except Exception as exc:
            raise ValueError(f"Invalid configuration: {exc}") from exc


@lru_cache(maxsize=1)
def get_settings(path: str | None = None) -> Settings:
    return Settings.load(Path(path) if path else None)


__all__ = [
    "Settings",
    "RoboflowSettings",
    "FloorPlanSettings",
    "BookingSettings",
    "DepositPolicySettings",
    "CancellationPolicySettings",
    "StorageSettings",
    "get_settings",
]
