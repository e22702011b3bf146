from __future__ import annotations

from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Path, Query, status

from silverlining.api.deps import app_state, get_optional_user
from silverlining.api.schemas.common import Envelope, ErrorResponse, KycStatus
from silverlining.api.schemas.kyc import KycCreate, KycOut, KycStats, KycStatusUpdate
from silverlining.api.services import kyc_service
from silverlining.api.services.errors import ConflictError, NotFoundError
from silverlining.api.state import AppState

router = APIRouter(prefix="/api/kyc", tags=["KYC"])


@router.get(
    "",
    response_model=Envelope[List[KycOut]],
    summary="List KYC applications",
    description="All applications, newest first, with the applicant embedded.",
    operation_id="list_kyc_applications",
)
def list_applications(
    state: AppState = Depends(app_state),
    kyc_status: Optional[KycStatus] = Query(None, alias="status"),
) -> Envelope[List[KycOut]]:
    return Envelope(data=kyc_service.list_applications(state, kyc_status))


@router.get(
    "/stats/overview",
    response_model=Envelope[KycStats],
    summary="KYC statistics",
    operation_id="kyc_stats",
)
def kyc_stats(state: AppState = Depends(app_state)) -> Envelope[KycStats]:
    return Envelope(data=kyc_service.get_stats(state))


@router.get(
    "/{kyc_id}",
    response_model=Envelope[KycOut],
    responses={404: {"model": ErrorResponse}},
    summary="Get KYC application",
    operation_id="get_kyc_application",
)
def get_application(
    kyc_id: str = Path(..., description="KYC application id"), state: AppState = Depends(app_state)
) -> Envelope[KycOut]:
    app_doc = kyc_service.get_application(state, kyc_id)
    if not app_doc:
        raise HTTPException(status_code=404, detail="KYC application not found")
    return Envelope(data=app_doc)


@router.post(
    "",
    response_model=Envelope[KycOut],
    status_code=status.HTTP_201_CREATED,
    responses={404: {"model": ErrorResponse}, 409: {"model": ErrorResponse}},
    summary="Submit KYC application",
    description="One application per user; it starts PENDING.",
    operation_id="create_kyc_application",
)
def create_application(payload: KycCreate, state: AppState = Depends(app_state)) -> Envelope[KycOut]:
    try:
        created = kyc_service.create_application(state, payload)
    except NotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e)) from e
    except ConflictError as e:
        raise HTTPException(status_code=409, detail=str(e)) from e
    return Envelope(data=created, message="KYC application submitted successfully")


@router.put(
    "/{kyc_id}/status",
    response_model=Envelope[KycOut],
    responses={404: {"model": ErrorResponse}},
    summary="Review KYC application",
    description=(
        "Set status and reviewer remarks. Approval or rejection notifies the applicant. "
        "When called with a bearer token the caller is recorded as reviewer."
    ),
    operation_id="update_kyc_status",
)
def update_status(
    payload: KycStatusUpdate,
    kyc_id: str = Path(..., description="KYC application id"),
    state: AppState = Depends(app_state),
    reviewer: Optional[dict] = Depends(get_optional_user),
) -> Envelope[KycOut]:
    updated = kyc_service.update_status(state, kyc_id, payload, reviewer)
    if not updated:
        raise HTTPException(status_code=404, detail="KYC application not found")
    return Envelope(data=updated, message="KYC status updated successfully")
