from __future__ import annotations

from datetime import datetime
from typing import Any, Dict, Optional

from pydantic import Field

from silverlining.api.schemas.common import ApiModel, TransactionStatus, TransactionType
from silverlining.api.schemas.users import UserSummary


class TransactionCreate(ApiModel):
    """Request body for recording a silver buy/sell transaction."""

    user_id: str
    type: TransactionType
    amount: float = Field(..., gt=0, description="Transaction amount in INR.")
    silver_quantity: float = Field(..., gt=0, description="Silver quantity in grams.")
    silver_price: float = Field(..., gt=0, description="Price per gram at transaction time.")
    payment_method: str = Field("UPI", min_length=1)
    reference_id: Optional[str] = Field(default=None, description="Unique reference; generated when omitted.")
    fees: Optional[float] = Field(default=None, ge=0)
    total_amount: Optional[float] = Field(default=None, ge=0, description="Defaults to amount + fees.")
    transaction_date: Optional[datetime] = None
    details: Optional[Dict[str, Any]] = None
    remarks: Optional[str] = None


class TransactionStatusUpdate(ApiModel):
    status: TransactionStatus
    remarks: Optional[str] = None


class TransactionOut(ApiModel):
    id: str
    user_id: str
    type: TransactionType
    amount: float
    silver_quantity: float
    silver_price: float
    status: TransactionStatus
    transaction_date: datetime
    payment_method: str
    reference_id: str
    fees: float = 0.0
    total_amount: float
    details: Optional[Dict[str, Any]] = None
    remarks: Optional[str] = None
    created_at: datetime
    updated_at: datetime
    user: Optional[UserSummary] = None


class TypeBreakdown(ApiModel):
    count: int
    total_amount: float


class TransactionStats(ApiModel):
    total_transactions: int
    total_amount: float
    total_silver_quantity: float
    by_type: Dict[str, TypeBreakdown]
    by_status: Dict[str, int]
