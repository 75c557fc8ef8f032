from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Type, TypeVar
from uuid import UUID

import httpx
from loguru import logger
from pydantic import BaseModel
from pydantic import ValidationError as PydanticValidationError

from tableplan.booking.models import (
    AvailabilityResponse,
    Branding,
    CancellationPolicy,
    DepositPolicy,
    HoldRequest,
    HoldResponse,
    PolicyResponse,
    ReservationRequest,
    ReservationResponse,
    SearchRequest,
    TenantFeatures,
    TenantInfo,
)
from tableplan.exceptions import BookingAPIError, ConfigurationError
from tableplan.settings import BookingSettings, get_settings

ModelT = TypeVar("ModelT", bound=BaseModel)

IDEMPOTENCY_HEADER = "Idempotency-Key"


class BookingClient:
    """Async client for the public booking edge function and tenant table.

    Use as an async context manager, or pass an ``httpx.AsyncClient`` to share
    a connection pool.
    """

    def __init__(
        self,
        settings: BookingSettings | None = None,
        *,
        http_client: httpx.AsyncClient | None = None,
    ) -> None:
        self.settings = settings or get_settings().booking
        if not self.settings.base_url:
            raise ConfigurationError("Booking API base URL is not configured", {"setting": "booking.base_url"})
        self._client = http_client or httpx.AsyncClient(timeout=self.settings.timeout_seconds)
        self._owns_client = http_client is None

    async def __aenter__(self) -> "BookingClient":
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    @property
    def base_url(self) -> str:
        return str(self.settings.base_url)

    def _headers(self, extra: dict[str, str] | None = None) -> dict[str, str]:
        headers = {"Content-Type": "application/json"}
        api_key = self.settings.api_key
        if api_key:
            headers["Authorization"] = f"Bearer {api_key}"
            headers["apikey"] = api_key
        if extra:
            headers.update(extra)
        return headers

    async def _request(
        self,
        method: str,
        url: str,
        *,
        json: dict[str, Any] | None = None,
        params: dict[str, str] | None = None,
        headers: dict[str, str] | None = None,
    ) -> Any:
        try:
            response = await self._client.request(
                method,
                url,
                json=json,
                params=params,
                headers=self._headers(headers),
            )
        except httpx.HTTPError as exc:
            raise BookingAPIError(
                "NETWORK_ERROR",
                "Failed to communicate with booking service",
                {"url": url, "reason": str(exc)},
            ) from exc

        if response.status_code >= 400:
            logger.warning(
                "Booking service answered {status} for {url}",
                status=response.status_code,
                url=url,
            )
            raise BookingAPIError(
                "HTTP_ERROR",
                f"HTTP {response.status_code}: {response.text}",
                {"status": response.status_code},
            )

        try:
            data = response.json()
        except ValueError as exc:
            raise BookingAPIError("INVALID_RESPONSE", "Invalid response format from booking service") from exc

        if isinstance(data, dict) and data.get("success") is False and data.get("error"):
            error = data["error"] if isinstance(data["error"], dict) else {"message": str(data["error"])}
            raise BookingAPIError(
                str(error.get("code") or "API_ERROR"),
                str(error.get("message") or "Booking service returned an error"),
                error,
            )
        return data

    async def _call_function(self, action: str, body: dict[str, Any], headers: dict[str, str] | None = None) -> Any:
        payload = {
            "action": action,
            **body,
            "timestamp": datetime.now(timezone.utc).isoformat(),
        }
        url = f"{self.base_url}/functions/v1/{self.settings.function_name}"
        logger.debug("Calling booking function action={action}", action=action)
        return await self._request("POST", url, json=payload, headers=headers)

    @staticmethod
    def _parse(model: Type[ModelT], data: Any) -> ModelT:
        try:
            return model.model_validate(data)
        except PydanticValidationError as exc:
            raise BookingAPIError(
                "INVALID_RESPONSE",
                f"Unexpected {model.__name__} payload from booking service",
                {"errors": [{"field": ".".join(map(str, e["loc"])), "message": e["msg"]} for e in exc.errors()]},
            ) from exc

    async def get_tenant(self, slug: str) -> TenantInfo:
        """Look up an active tenant by its public slug."""
        url = f"{self.base_url}/rest/v1/tenants"
        rows = await self._request(
            "GET",
            url,
            params={"slug": f"eq.{slug}", "status": "eq.active", "select": "*"},
        )
        if not isinstance(rows, list) or not rows:
            raise BookingAPIError("TENANT_NOT_FOUND", f"Restaurant not found: {slug}", {"slug": slug})
        row = rows[0]
        return self._parse(
            TenantInfo,
            {
                "tenant_id": row.get("id"),
                "slug": row.get("slug"),
                "name": row.get("name"),
                "timezone": row.get("timezone"),
                "currency": row.get("currency"),
                "branding": Branding(
                    primary_color=row.get("primary_color") or "#3b82f6",
                    secondary_color=row.get("secondary_color") or "#1e40af",
                    logo_url=row.get("logo_url"),
                ),
                "features": TenantFeatures(
                    deposit_enabled=self.settings.deposit.enabled,
                    revenue_optimization=True,
                ),
            },
        )

    async def search_availability(self, request: SearchRequest) -> AvailabilityResponse:
        data = await self._call_function("search", request.model_dump(mode="json", exclude_none=True))
        return self._parse(AvailabilityResponse, data)

    async def create_hold(self, request: HoldRequest) -> HoldResponse:
        data = await self._call_function("hold", request.model_dump(mode="json", exclude_none=True))
        return self._parse(HoldResponse, data)

    async def confirm_reservation(self, request: ReservationRequest, idempotency_key: str) -> ReservationResponse:
        """Confirm a held reservation. Replays with the same key must not double-book."""
        key = str(idempotency_key).strip()
        if not key:
            raise BookingAPIError("INVALID_REQUEST", "An idempotency key is required to confirm a reservation")
        body = request.model_dump(mode="json", exclude_none=True)
        body["idempotency_key"] = key
        data = await self._call_function("confirm", body, headers={IDEMPOTENCY_HEADER: key})
        return self._parse(ReservationResponse, data)

    async def get_policies(self, tenant_id: UUID | str) -> PolicyResponse:
        """Deposit and cancellation policy for a tenant.

        Policies are configured per deployment rather than fetched per tenant.
        """
        logger.debug("Resolving policies for tenant {tenant}", tenant=tenant_id)
        return PolicyResponse(
            deposit=DepositPolicy(**self.settings.deposit.model_dump()),
            cancellation=CancellationPolicy(**self.settings.cancellation.model_dump()),
        )
