"""Request/response models of the public booking API."""

from __future__ import annotations

from typing import Any, Literal
from uuid import UUID

from pydantic import BaseModel, Field


class Branding(BaseModel):
    primary_color: str | None = None
    secondary_color: str | None = None
    logo_url: str | None = None


class TenantFeatures(BaseModel):
    deposit_enabled: bool | None = None
    revenue_optimization: bool | None = None


class TenantInfo(BaseModel):
    tenant_id: UUID
    slug: str
    name: str
    timezone: str
    currency: str | None = None
    branding: Branding | None = None
    features: TenantFeatures | None = None


class TimeSlot(BaseModel):
    time: str  # ISO timestamp
    available_tables: int
    revenue_projection: float | None = None
    optimal: bool | None = None


class AvailabilityResponse(BaseModel):
    slots: list[TimeSlot]
    alternatives: list[TimeSlot] | None = None


class TimeWindow(BaseModel):
    start: str | None = None
    end: str | None = None


class SearchPreferences(BaseModel):
    table_type: str | None = None
    accessibility: bool | None = None


class SearchRequest(BaseModel):
    tenant_id: UUID
    party_size: int = Field(ge=1)
    service_date: str  # ISO date
    time_window: TimeWindow | None = None
    preferences: SearchPreferences | None = None


class HoldRequest(BaseModel):
    tenant_id: UUID
    party_size: int = Field(ge=1)
    slot: TimeSlot
    policy_params: dict[str, Any] | None = None


class HoldResponse(BaseModel):
    hold_id: UUID
    expires_at: str
    table_identifiers: list[str] | None = None


class GuestDetails(BaseModel):
    first_name: str = Field(min_length=1)
    last_name: str = Field(min_length=1)
    email: str = Field(pattern=r"^[^@\s]+@[^@\s]+\.[^@\s]+$")
    phone: str = Field(min_length=10)
    special_requests: str | None = None


class ReservationRequest(BaseModel):
    tenant_id: UUID
    hold_id: UUID
    guest_details: GuestDetails


class ReservationSummary(BaseModel):
    date: str
    time: str
    party_size: int
    table_info: str | None = None
    deposit_required: bool | None = None
    deposit_amount: float | None = None


class ReservationResponse(BaseModel):
    reservation_id: UUID
    confirmation_number: str
    status: Literal["confirmed", "pending", "waitlisted"]
    summary: ReservationSummary


class DepositPolicy(BaseModel):
    enabled: bool
    amount: float | None = None
    percentage: float | None = None
    currency: str | None = None
    description: str | None = None


class CancellationPolicy(BaseModel):
    allowed_hours: float | None = None
    fee_percentage: float | None = None


class PolicyResponse(BaseModel):
    deposit: DepositPolicy
    cancellation: CancellationPolicy | None = None
