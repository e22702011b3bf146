from __future__ import annotations

from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends, HTTPException, Path, Request, status

from silverlining.api.deps import app_state, get_optional_user, require_admin
from silverlining.api.schemas.common import Envelope, ErrorResponse, UserRole
from silverlining.api.services import admin_service, commerce_config
from silverlining.api.services.background import BackgroundService
from silverlining.api.services.errors import NotFoundError
from silverlining.api.state import AppState, get_state

router = APIRouter(prefix="/api/admin", tags=["Admin"])


def _background(state: AppState) -> BackgroundService:
    if state.background is None:
        state.background = BackgroundService(state)
    return state.background  # type: ignore[return-value]


@router.get(
    "/dashboard",
    response_model=Envelope[Dict[str, Any]],
    summary="Admin dashboard",
    operation_id="admin_dashboard",
    dependencies=[Depends(require_admin)],
)
def dashboard(state: AppState = Depends(app_state)) -> Envelope[Dict[str, Any]]:
    return Envelope(data=admin_service.dashboard(state))


@router.get(
    "/stats",
    response_model=Envelope[Dict[str, Any]],
    summary="System statistics",
    operation_id="admin_stats",
    dependencies=[Depends(require_admin)],
)
def stats(state: AppState = Depends(app_state)) -> Envelope[Dict[str, Any]]:
    return Envelope(data=admin_service.system_stats(state))


@router.get(
    "/health",
    response_model=Envelope[Dict[str, Any]],
    summary="System health",
    operation_id="admin_health",
    dependencies=[Depends(require_admin)],
)
def health(state: AppState = Depends(app_state)) -> Envelope[Dict[str, Any]]:
    return Envelope(data=admin_service.system_health(state))


@router.post(
    "/init",
    response_model=Envelope[Dict[str, Any]],
    responses={401: {"model": ErrorResponse}, 403: {"model": ErrorResponse}},
    summary="Initialize system",
    description=(
        "Insert missing default settings and create the default admin account. "
        "Open while no admin exists; afterwards an admin token is required."
    ),
    operation_id="admin_init",
)
def init_system(state: AppState = Depends(app_state), user: Optional[dict] = Depends(get_optional_user)) -> Envelope[Dict[str, Any]]:
    has_admin = state.mongo.collections().users.count_documents({"role": UserRole.ADMIN.value}, limit=1)
    if has_admin:
        if user is None:
            raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Access token required")
        if user.get("role") != UserRole.ADMIN.value:
            raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Admin access required")
    return Envelope(data=admin_service.init_system(state), message="System initialized successfully")


@router.get(
    "/background",
    response_model=Envelope[Dict[str, Any]],
    summary="Background job status",
    description="Whether the scheduler is running plus interval, last run and last error per job.",
    operation_id="background_status",
    dependencies=[Depends(require_admin)],
)
def background_status(state: AppState = Depends(app_state)) -> Envelope[Dict[str, Any]]:
    return Envelope(data=_background(state).status())


@router.post(
    "/background/{job}",
    response_model=Envelope[Dict[str, Any]],
    responses={404: {"model": ErrorResponse}, 500: {"model": ErrorResponse}},
    summary="Run a background job now",
    operation_id="run_background_job",
    dependencies=[Depends(require_admin)],
)
async def run_background_job(
    request: Request, job: str = Path(..., description="Job name, e.g. log_cleanup")
) -> Envelope[Dict[str, Any]]:
    background = _background(get_state(request.app))
    try:
        result = await background.run_job(job)
    except NotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e)) from e
    except Exception as e:
        raise HTTPException(status_code=500, detail=f"Background job {job} failed: {e}") from e
    return Envelope(data=result, message=f"Background job {job} completed")


@router.get(
    "/commerce",
    response_model=Envelope[Dict[str, Any]],
    summary="Commerce configuration",
    description="Project config, plugins and modules for the commerce engine, with secrets masked.",
    operation_id="commerce_config",
    dependencies=[Depends(require_admin)],
)
def commerce() -> Envelope[Dict[str, Any]]:
    return Envelope(data=commerce_config.redacted(commerce_config.load_commerce_config()))
