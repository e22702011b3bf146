from __future__ import annotations

from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Path, Query, status

from silverlining.api.deps import app_state
from silverlining.api.schemas.common import Envelope, ErrorResponse, TransactionStatus, TransactionType, make_pagination
from silverlining.api.schemas.transactions import TransactionCreate, TransactionOut, TransactionStats, TransactionStatusUpdate
from silverlining.api.services import transactions_service, users_service
from silverlining.api.services.errors import ConflictError, NotFoundError
from silverlining.api.state import AppState

router = APIRouter(prefix="/api/transactions", tags=["Transactions"])


@router.get(
    "",
    response_model=Envelope[List[TransactionOut]],
    summary="List transactions",
    description="Paginated transactions, newest first, filterable by type, status and owner.",
    operation_id="list_transactions",
)
def list_transactions(
    state: AppState = Depends(app_state),
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=500),
    txn_type: Optional[TransactionType] = Query(None, alias="type"),
    txn_status: Optional[TransactionStatus] = Query(None, alias="status"),
    user_id: Optional[str] = Query(None, alias="userId"),
) -> Envelope[List[TransactionOut]]:
    items, total = transactions_service.list_transactions(
        state, page=page, limit=limit, type=txn_type, status=txn_status, user_id=user_id
    )
    return Envelope(data=items, pagination=make_pagination(page, limit, total))


@router.get(
    "/stats/overview",
    response_model=Envelope[TransactionStats],
    summary="Transaction statistics",
    operation_id="transaction_stats",
)
def transaction_stats(state: AppState = Depends(app_state)) -> Envelope[TransactionStats]:
    return Envelope(data=transactions_service.get_stats(state))


@router.get(
    "/user/{user_id}",
    response_model=Envelope[List[TransactionOut]],
    responses={404: {"model": ErrorResponse}},
    summary="List a user's transactions",
    operation_id="list_user_transactions",
)
def list_user_transactions(
    user_id: str = Path(..., description="Owner user id"),
    state: AppState = Depends(app_state),
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=500),
) -> Envelope[List[TransactionOut]]:
    if not users_service.user_exists(state, user_id):
        raise HTTPException(status_code=404, detail="User not found")
    items, total = transactions_service.list_transactions(state, page=page, limit=limit, user_id=user_id)
    return Envelope(data=items, pagination=make_pagination(page, limit, total))


@router.get(
    "/{transaction_id}",
    response_model=Envelope[TransactionOut],
    responses={404: {"model": ErrorResponse}},
    summary="Get transaction",
    operation_id="get_transaction",
)
def get_transaction(
    transaction_id: str = Path(..., description="Transaction id"), state: AppState = Depends(app_state)
) -> Envelope[TransactionOut]:
    txn = transactions_service.get_transaction(state, transaction_id)
    if not txn:
        raise HTTPException(status_code=404, detail="Transaction not found")
    return Envelope(data=txn)


@router.post(
    "",
    response_model=Envelope[TransactionOut],
    status_code=status.HTTP_201_CREATED,
    responses={404: {"model": ErrorResponse}, 409: {"model": ErrorResponse}},
    summary="Create transaction",
    description="Record a PENDING buy or sell; referenceId is generated when omitted.",
    operation_id="create_transaction",
)
def create_transaction(payload: TransactionCreate, state: AppState = Depends(app_state)) -> Envelope[TransactionOut]:
    try:
        txn = transactions_service.create_transaction(state, payload)
    except NotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e)) from e
    except ConflictError as e:
        raise HTTPException(status_code=409, detail=str(e)) from e
    return Envelope(data=txn, message="Transaction created successfully")


@router.patch(
    "/{transaction_id}/status",
    response_model=Envelope[TransactionOut],
    responses={404: {"model": ErrorResponse}},
    summary="Update transaction status",
    operation_id="update_transaction_status",
)
def update_status(
    payload: TransactionStatusUpdate,
    transaction_id: str = Path(..., description="Transaction id"),
    state: AppState = Depends(app_state),
) -> Envelope[TransactionOut]:
    txn = transactions_service.update_status(state, transaction_id, payload)
    if not txn:
        raise HTTPException(status_code=404, detail="Transaction not found")
    return Envelope(data=txn, message="Transaction status updated successfully")
