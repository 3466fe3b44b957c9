"""
Olytics Content Archive — Pydantic request/response schemas.

``EventRequest`` satisfies ``olytics.aggregation.events.EventInterface``
so a validated request body is handed to the aggregations unchanged.
"""

from datetime import datetime
from uuid import UUID

from pydantic import BaseModel, Field, field_validator

from olytics.aggregation.base import AggregationOutcome


class EntityPayload(BaseModel):
    client_id: str = Field(..., alias="clientId", min_length=1, max_length=255)
    type: str = Field(..., min_length=1, max_length=50)

    model_config = {"populate_by_name": True, "extra": "ignore"}


class SessionPayload(BaseModel):
    id: UUID
    customer_id: str | None = Field(None, alias="customerId", max_length=255)

    model_config = {"populate_by_name": True, "extra": "ignore"}


class EventRequest(BaseModel):
    created_at: datetime = Field(..., alias="createdAt")
    entity: EntityPayload
    session: SessionPayload

    model_config = {"populate_by_name": True, "extra": "ignore"}

    @field_validator("created_at")
    @classmethod
    def _require_timezone(cls, value: datetime) -> datetime:
        if value.tzinfo is None:
            raise ValueError("createdAt must include a timezone offset")
        return value


class EventResponse(BaseModel):
    account_key: str
    group_key: str
    app_key: str
    results: dict[str, AggregationOutcome]


class AggregationSettingRequest(BaseModel):
    enabled: bool


class AggregationSettingResponse(BaseModel):
    aggregation: str
    account_key: str
    group_key: str
    enabled: bool
    updated_at: datetime | str | None = None

    model_config = {"from_attributes": True}


class AggregationSettingListResponse(BaseModel):
    settings: list[AggregationSettingResponse]
    total: int


class HealthResponse(BaseModel):
    status: str = "ok"
    version: str = "1.0.0"
    timestamp: str | None = None
    aggregations: list[str] = []
