from __future__ import annotations

from datetime import datetime
from typing import Any, Dict, Optional

from pydantic import Field

from silverlining.api.schemas.common import ApiModel, KycStatus
from silverlining.api.schemas.users import UserSummary


class KycCreate(ApiModel):
    """Request body for submitting a KYC application."""

    user_id: str
    pan_number: str = Field(..., min_length=1, description="PAN card number.")
    aadhaar_number: str = Field(..., min_length=1, description="Aadhaar number.")
    notes: Optional[str] = None


class KycStatusUpdate(ApiModel):
    status: Optional[KycStatus] = None
    notes: Optional[str] = Field(default=None, description="Reviewer remarks; used as the rejection reason.")


class KycOut(ApiModel):
    id: str
    user_id: str
    status: KycStatus
    submitted_at: datetime
    reviewed_at: Optional[datetime] = None
    reviewed_by: Optional[str] = None
    remarks: Optional[str] = None
    documents: Dict[str, Any] = Field(default_factory=dict)
    personal_info: Dict[str, Any] = Field(default_factory=dict)
    created_at: datetime
    updated_at: datetime
    user: Optional[UserSummary] = None


class KycStats(ApiModel):
    total: int
    pending: int
    approved: int
    rejected: int
    by_status: Dict[str, int]
