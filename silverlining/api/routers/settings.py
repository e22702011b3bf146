from __future__ import annotations

from typing import Any, Dict, List

from fastapi import APIRouter, Depends, HTTPException, Path, status

from silverlining.api.deps import app_state
from silverlining.api.schemas.common import Envelope, ErrorResponse
from silverlining.api.schemas.settings import (
    SettingCreate,
    SettingOut,
    SettingsInitResult,
    SettingsListing,
    SettingUpdate,
)
from silverlining.api.services import settings_service
from silverlining.api.services.errors import ConflictError
from silverlining.api.state import AppState

router = APIRouter(prefix="/api/settings", tags=["Settings"])


@router.get(
    "",
    response_model=Envelope[SettingsListing],
    summary="List settings",
    description="All settings ordered by key, plus the same settings grouped by category.",
    operation_id="list_settings",
)
def list_settings(state: AppState = Depends(app_state)) -> Envelope[SettingsListing]:
    return Envelope(data=settings_service.list_settings(state))


@router.get(
    "/system/config",
    response_model=Envelope[Dict[str, Any]],
    summary="System configuration",
    description="key -> value map of the 'system' category.",
    operation_id="system_config",
)
def system_config(state: AppState = Depends(app_state)) -> Envelope[Dict[str, Any]]:
    return Envelope(data=settings_service.category_config(state, "system"))


@router.get(
    "/app/config",
    response_model=Envelope[Dict[str, Any]],
    summary="App configuration",
    description="key -> value map of the 'app' category.",
    operation_id="app_config",
)
def app_config(state: AppState = Depends(app_state)) -> Envelope[Dict[str, Any]]:
    return Envelope(data=settings_service.category_config(state, "app"))


@router.get(
    "/category/{category}",
    response_model=Envelope[List[SettingOut]],
    summary="Settings by category",
    operation_id="settings_by_category",
)
def by_category(
    category: str = Path(..., description="Category name"), state: AppState = Depends(app_state)
) -> Envelope[List[SettingOut]]:
    return Envelope(data=settings_service.list_by_category(state, category))


@router.post(
    "/init",
    response_model=Envelope[SettingsInitResult],
    summary="Initialize default settings",
    description="Insert the default settings that are missing; existing values are left alone.",
    operation_id="init_settings",
)
def init_settings(state: AppState = Depends(app_state)) -> Envelope[SettingsInitResult]:
    created, total = settings_service.init_defaults(state)
    return Envelope(
        data=SettingsInitResult(created=len(created), total=total, settings=created),
        message=f"Initialized {len(created)} default settings",
    )


@router.get(
    "/{key}",
    response_model=Envelope[SettingOut],
    responses={404: {"model": ErrorResponse}},
    summary="Get setting",
    operation_id="get_setting",
)
def get_setting(key: str = Path(..., description="Setting key"), state: AppState = Depends(app_state)) -> Envelope[SettingOut]:
    setting = settings_service.get_setting(state, key)
    if not setting:
        raise HTTPException(status_code=404, detail="Setting not found")
    return Envelope(data=setting)


@router.post(
    "",
    response_model=Envelope[SettingOut],
    status_code=status.HTTP_201_CREATED,
    responses={409: {"model": ErrorResponse}},
    summary="Create setting",
    operation_id="create_setting",
)
def create_setting(payload: SettingCreate, state: AppState = Depends(app_state)) -> Envelope[SettingOut]:
    try:
        setting = settings_service.create_setting(state, payload)
    except ConflictError as e:
        raise HTTPException(status_code=409, detail=str(e)) from e
    return Envelope(data=setting, message="Setting created successfully")


@router.put(
    "/{key}",
    response_model=Envelope[SettingOut],
    responses={404: {"model": ErrorResponse}},
    summary="Update setting",
    operation_id="update_setting",
)
def update_setting(
    payload: SettingUpdate,
    key: str = Path(..., description="Setting key"),
    state: AppState = Depends(app_state),
) -> Envelope[SettingOut]:
    setting = settings_service.update_setting(state, key, payload)
    if not setting:
        raise HTTPException(status_code=404, detail="Setting not found")
    return Envelope(data=setting, message="Setting updated successfully")
