from __future__ import annotations

import re
from typing import Any, Dict

from fastapi import APIRouter, Request
from pydantic import BaseModel, Field

from silverlining.api.schemas.common import HealthResponse, utc_now
from silverlining.api.state import get_state

router = APIRouter(tags=["Health"])


def _sanitize_mongo_uri_for_response(uri: str) -> str:
    """Mask credentials in mongo URIs to avoid returning secrets to clients."""
    return re.sub(r"(mongodb(?:\+srv)?://)([^:@/]+):([^@/]+)@", r"\1\2:***@", uri)


class ServiceHealthResponse(BaseModel):
    """Response model for the deployment health probe."""

    status: str = Field(..., description="'healthy' when the database answers a ping, else 'unhealthy'.")
    timestamp: str = Field(..., description="UTC timestamp when the check was performed (ISO string).")
    uptime: float = Field(..., description="Seconds since the app state was initialized.")
    version: str = Field(..., description="Application version.")


class MongoConnectivityResponse(BaseModel):
    """Response model for backend↔Mongo connectivity diagnostics."""

    ok: bool = Field(..., description="Whether the backend can successfully ping MongoDB.")
    mongo_uri_source: str = Field(..., description="Which env var provided the effective MongoDB URI.")
    mongo_uri_sanitized: str = Field(..., description="MongoDB URI with credentials masked.")
    mongo_db_name: str = Field(..., description="Database holding the application collections.")
    timestamp: str = Field(..., description="UTC timestamp when the check was performed (ISO string).")
    meta: Dict[str, Any] = Field(default_factory=dict, description="Optional debug metadata.")


@router.get(
    "/",
    response_model=HealthResponse,
    summary="Health check",
    description="Basic service liveness check used by deployment and the admin dashboard.",
    operation_id="health_check",
)
def health_check() -> HealthResponse:
    """Return service liveness status."""
    return HealthResponse(status="ok", message="Healthy", timestamp=utc_now())


@router.get(
    "/health",
    response_model=ServiceHealthResponse,
    summary="Service health",
    description="Liveness plus database reachability, uptime and version.",
    operation_id="service_health",
)
def service_health(request: Request) -> ServiceHealthResponse:
    state = get_state(request.app)
    now = utc_now()
    return ServiceHealthResponse(
        status="healthy" if state.mongo.ping() else "unhealthy",
        timestamp=now.isoformat(),
        uptime=(now - state.started_at).total_seconds(),
        version=state.config.app_version,
    )


@router.get(
    "/api/health/mongo",
    response_model=MongoConnectivityResponse,
    summary="Mongo connectivity check",
    description=(
        "Pings the backend's configured MongoDB and reports which env var the URI came from. "
        "Credentials are masked."
    ),
    operation_id="mongo_connectivity_check",
)
def mongo_connectivity_check(request: Request) -> MongoConnectivityResponse:
    """Connectivity check endpoint to validate backend↔Mongo and report the URI source."""
    state = get_state(request.app)
    ok = state.mongo.ping()

    return MongoConnectivityResponse(
        ok=ok,
        mongo_uri_source=state.config.mongo_uri_source,
        mongo_uri_sanitized=_sanitize_mongo_uri_for_response(state.config.mongo_uri),
        mongo_db_name=state.config.mongo_db_name,
        timestamp=utc_now().isoformat(),
        meta={},
    )


@router.get(
    "/api-spec",
    summary="OpenAPI document",
    description="The generated OpenAPI schema as JSON (Swagger UI is served at /docs).",
    operation_id="api_spec",
)
def api_spec(request: Request) -> Dict[str, Any]:
    return request.app.openapi()
