"""
API Routes — health, event ingestion, aggregation settings.
"""

import logging
from datetime import datetime, timezone

from fastapi import APIRouter, Depends, HTTPException, Query, Request

from olytics import __version__
from olytics.aggregation.errors import (
    DatastoreUnavailableError,
    IndexConflictError,
    InvalidEventError,
)
from olytics.aggregation.manager import AggregationManager
from olytics.schemas import (
    AggregationSettingListResponse,
    AggregationSettingRequest,
    AggregationSettingResponse,
    EventRequest,
    EventResponse,
    HealthResponse,
)
from olytics.services.enablement import EnablementService

logger = logging.getLogger(__name__)

router = APIRouter()


# ── Dependencies ────────────────────────────────────────

def get_manager(request: Request) -> AggregationManager:
    """The aggregation manager built during application startup."""
    return request.app.state.aggregation_manager


def get_enablement(request: Request) -> EnablementService:
    return request.app.state.enablement


# ── Health ──────────────────────────────────────────────

@router.get("/health", response_model=HealthResponse, tags=["system"])
async def health(manager: AggregationManager = Depends(get_manager)):
    return HealthResponse(
        status="ok",
        timestamp=datetime.now(timezone.utc).isoformat(),
        version=__version__,
        aggregations=manager.names,
    )


# ── Event ingestion ─────────────────────────────────────

@router.post(
    "/events/{account_key}/{group_key}/{app_key}",
    response_model=EventResponse,
    tags=["events"],
)
async def ingest_event(
    account_key: str,
    group_key: str,
    app_key: str,
    event: EventRequest,
    manager: AggregationManager = Depends(get_manager),
):
    try:
        results = await manager.dispatch(event, account_key, group_key, app_key)
    except InvalidEventError as exc:
        raise HTTPException(status_code=422, detail=str(exc))
    except DatastoreUnavailableError as exc:
        raise HTTPException(
            status_code=503,
            detail=f"Archive store unavailable, retry later: {exc}",
            headers={"Retry-After": "5"},
        )
    except IndexConflictError as exc:
        raise HTTPException(status_code=500, detail=str(exc))

    return EventResponse(
        account_key=account_key,
        group_key=group_key,
        app_key=app_key,
        results=results,
    )


# ── Aggregation settings ────────────────────────────────

@router.get(
    "/aggregations/settings",
    response_model=AggregationSettingListResponse,
    tags=["aggregations"],
)
async def list_aggregation_settings(
    aggregation: str | None = Query(None),
    enablement: EnablementService = Depends(get_enablement),
):
    rows = await enablement.list_settings(aggregation)
    return AggregationSettingListResponse(
        settings=[AggregationSettingResponse(**row.to_dict()) for row in rows],
        total=len(rows),
    )


@router.put(
    "/aggregations/{name}/{account_key}/{group_key}",
    response_model=AggregationSettingResponse,
    tags=["aggregations"],
)
async def set_aggregation_setting(
    name: str,
    account_key: str,
    group_key: str,
    req: AggregationSettingRequest,
    manager: AggregationManager = Depends(get_manager),
    enablement: EnablementService = Depends(get_enablement),
):
    if manager.get(name) is None:
        raise HTTPException(status_code=404, detail=f"Aggregation {name} not found")

    row = await enablement.set_enabled(name, account_key, group_key, req.enabled)
    return AggregationSettingResponse(**row.to_dict())
