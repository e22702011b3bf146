from __future__ import annotations

from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import Field

from silverlining.api.schemas.common import ApiModel


class SettingCreate(ApiModel):
    key: str = Field(..., min_length=1, max_length=128, description="Unique setting key.")
    value: Any = Field(..., description="Any JSON value.")
    description: Optional[str] = None
    category: str = Field("general", min_length=1)


class SettingUpdate(ApiModel):
    value: Optional[Any] = None
    description: Optional[str] = None
    category: Optional[str] = None


class SettingOut(ApiModel):
    id: str
    key: str
    value: Any = None
    description: Optional[str] = None
    category: str = "general"
    created_at: datetime
    updated_at: datetime


class SettingsListing(ApiModel):
    settings: List[SettingOut]
    grouped_settings: Dict[str, List[SettingOut]]


class SettingsInitResult(ApiModel):
    created: int = Field(..., description="Defaults inserted by this call.")
    total: int = Field(..., description="Number of known defaults.")
    settings: List[SettingOut]
