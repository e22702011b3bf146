from __future__ import annotations

import logging
import secrets
import string
import time
from collections import Counter, defaultdict
from typing import Any, Dict, List, Optional, Tuple
from uuid import uuid4

from pymongo.errors import DuplicateKeyError

from silverlining.api.schemas.common import TransactionStatus, TransactionType, utc_now
from silverlining.api.schemas.transactions import (
    TransactionCreate,
    TransactionOut,
    TransactionStats,
    TransactionStatusUpdate,
    TypeBreakdown,
)
from silverlining.api.schemas.users import UserSummary
from silverlining.api.services import log_service, notifications_service, users_service
from silverlining.api.services.errors import ConflictError, NotFoundError
from silverlining.api.state import AppState

logger = logging.getLogger(__name__)

_REF_ALPHABET = string.ascii_lowercase + string.digits


def _doc_to_out(doc: dict, user: Optional[UserSummary] = None) -> TransactionOut:
    return TransactionOut(
        id=doc["id"],
        user_id=doc["userId"],
        type=doc["type"],
        amount=float(doc.get("amount", 0.0)),
        silver_quantity=float(doc.get("silverQuantity", 0.0)),
        silver_price=float(doc.get("silverPrice", 0.0)),
        status=doc.get("status", TransactionStatus.PENDING.value),
        transaction_date=doc.get("transactionDate") or doc["createdAt"],
        payment_method=doc.get("paymentMethod", ""),
        reference_id=doc["referenceId"],
        fees=float(doc.get("fees") or 0.0),
        total_amount=float(doc.get("totalAmount", 0.0)),
        details=doc.get("details"),
        remarks=doc.get("remarks"),
        created_at=doc["createdAt"],
        updated_at=doc["updatedAt"],
        user=user,
    )


def _with_users(state: AppState, docs: List[dict]) -> List[TransactionOut]:
    users = users_service.user_summaries(state, (d["userId"] for d in docs))
    return [_doc_to_out(d, users.get(d["userId"])) for d in docs]


# PUBLIC_INTERFACE
def generate_reference_id() -> str:
    """TXN_<epoch millis>_<9 random base36 chars>."""
    suffix = "".join(secrets.choice(_REF_ALPHABET) for _ in range(9))
    return f"TXN_{int(time.time() * 1000)}_{suffix}"


# PUBLIC_INTERFACE
def list_transactions(
    state: AppState,
    *,
    page: int = 1,
    limit: int = 10,
    type: Optional[TransactionType] = None,
    status: Optional[TransactionStatus] = None,
    user_id: Optional[str] = None,
) -> Tuple[List[TransactionOut], int]:
    """
    List transactions newest first with the owner embedded.

    Returns (items, total_matching).
    """
    cols = state.mongo.collections()
    q: Dict[str, Any] = {}
    if type is not None:
        q["type"] = type.value
    if status is not None:
        q["status"] = status.value
    if user_id:
        q["userId"] = user_id

    total = int(cols.transactions.count_documents(q))
    docs = list(
        cols.transactions.find(q, projection={"_id": 0})
        .sort("createdAt", -1)
        .skip((page - 1) * limit)
        .limit(limit)
    )
    return (_with_users(state, docs), total)


# PUBLIC_INTERFACE
def get_transaction(state: AppState, transaction_id: str) -> Optional[TransactionOut]:
    doc = state.mongo.collections().transactions.find_one({"id": transaction_id}, projection={"_id": 0})
    if not doc:
        return None
    return _with_users(state, [doc])[0]


# PUBLIC_INTERFACE
def create_transaction(state: AppState, payload: TransactionCreate) -> TransactionOut:
    """
    Record a PENDING transaction.

    Raises NotFoundError for an unknown user and ConflictError for a duplicate referenceId.
    """
    cols = state.mongo.collections()
    user = users_service.find_user_doc(state, payload.user_id)
    if not user:
        raise NotFoundError("User not found")

    reference_id = payload.reference_id or generate_reference_id()
    if cols.transactions.count_documents({"referenceId": reference_id}, limit=1):
        raise ConflictError("Reference ID already exists")

    fees = float(payload.fees or 0.0)
    total_amount = float(payload.total_amount) if payload.total_amount else float(payload.amount) + fees
    now = utc_now()
    doc = {
        "id": str(uuid4()),
        "userId": payload.user_id,
        "type": payload.type.value,
        "amount": float(payload.amount),
        "silverQuantity": float(payload.silver_quantity),
        "silverPrice": float(payload.silver_price),
        "status": TransactionStatus.PENDING.value,
        "transactionDate": payload.transaction_date or now,
        "paymentMethod": payload.payment_method,
        "referenceId": reference_id,
        "fees": fees,
        "totalAmount": total_amount,
        "details": payload.details,
        "remarks": payload.remarks,
        "createdAt": now,
        "updatedAt": now,
    }
    try:
        cols.transactions.insert_one(doc)
    except DuplicateKeyError as e:
        raise ConflictError("Reference ID already exists") from e

    logger.info("Created transaction for user: %s", user["email"])
    log_service.log_transaction(
        state,
        doc["id"],
        "TRANSACTION_CREATED",
        f"{doc['type']} transaction created",
        metadata={"amount": doc["amount"], "referenceId": reference_id},
        user_id=user["id"],
        user_email=user["email"],
    )
    notifications_service.notify_safely(
        state,
        user["id"],
        "transaction-created",
        {"transactionType": doc["type"], "amount": f"{doc['amount']:,.2f}"},
    )
    return _with_users(state, [doc])[0]


# PUBLIC_INTERFACE
def update_status(state: AppState, transaction_id: str, payload: TransactionStatusUpdate) -> Optional[TransactionOut]:
    """Move a transaction to a new status; COMPLETED/FAILED notify the owner. Returns None if not found."""
    cols = state.mongo.collections()
    existing = cols.transactions.find_one({"id": transaction_id}, projection={"_id": 0})
    if not existing:
        return None

    updated = dict(existing)
    updated["status"] = payload.status.value
    if payload.remarks is not None:
        updated["remarks"] = payload.remarks
    updated["updatedAt"] = utc_now()
    cols.transactions.replace_one({"id": transaction_id}, updated, upsert=False)

    previous = existing.get("status")
    changed = previous != updated["status"]
    log_service.log_transaction(
        state,
        transaction_id,
        f"TRANSACTION_{updated['status']}" if changed else "TRANSACTION_STATUS_UNCHANGED",
        f"Transaction status changed from {previous} to {updated['status']}"
        if changed
        else f"Transaction status re-applied as {previous}",
        metadata={"previousStatus": previous, "status": updated["status"]},
        user_id=updated["userId"],
    )

    # Only a real transition notifies the owner.
    if changed:
        template = {
            TransactionStatus.COMPLETED: "transaction-completed",
            TransactionStatus.FAILED: "transaction-failed",
        }.get(payload.status)
        if template:
            notifications_service.notify_safely(
                state, updated["userId"], template, {"transactionType": updated["type"]}
            )

    return _with_users(state, [updated])[0]


# PUBLIC_INTERFACE
def get_stats(state: AppState) -> TransactionStats:
    total_amount = 0.0
    total_quantity = 0.0
    by_type: Dict[str, Dict[str, float]] = defaultdict(lambda: {"count": 0, "amount": 0.0})
    by_status: Counter = Counter()
    count = 0
    for doc in state.mongo.collections().transactions.find(
        {}, projection={"_id": 0, "type": 1, "status": 1, "amount": 1, "silverQuantity": 1}
    ):
        amount = float(doc.get("amount") or 0.0)
        count += 1
        total_amount += amount
        total_quantity += float(doc.get("silverQuantity") or 0.0)
        by_type[doc["type"]]["count"] += 1
        by_type[doc["type"]]["amount"] += amount
        by_status[doc.get("status")] += 1

    return TransactionStats(
        total_transactions=count,
        total_amount=total_amount,
        total_silver_quantity=total_quantity,
        by_type={k: TypeBreakdown(count=int(v["count"]), total_amount=v["amount"]) for k, v in by_type.items()},
        by_status=dict(by_status),
    )


# PUBLIC_INTERFACE
def completed_for_user(state: AppState, user_id: str) -> List[dict]:
    """Raw COMPLETED transactions for a user in creation order (portfolio sync input)."""
    cursor = state.mongo.collections().transactions.find(
        {"userId": user_id, "status": TransactionStatus.COMPLETED.value}, projection={"_id": 0}
    ).sort("createdAt", 1)
    return list(cursor)
