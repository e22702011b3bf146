from __future__ import annotations

import logging
import re
from collections import Counter
from typing import Any, Dict, Iterable, List, Optional, Tuple
from uuid import uuid4

from pymongo.errors import DuplicateKeyError

from silverlining.api.schemas.common import UserRole, UserStatus, utc_now
from silverlining.api.schemas.users import UserCreate, UserOut, UserStats, UserSummary, UserUpdate
from silverlining.api.security import hash_password
from silverlining.api.services.errors import ConflictError
from silverlining.api.state import AppState

logger = logging.getLogger(__name__)


def _doc_to_out(doc: dict) -> UserOut:
    return UserOut(
        id=doc["id"],
        email=doc["email"],
        phone=doc.get("phone"),
        name=doc["name"],
        role=doc.get("role", UserRole.USER.value),
        status=doc.get("status", UserStatus.ACTIVE.value),
        created_at=doc["createdAt"],
        updated_at=doc["updatedAt"],
    )


def _doc_to_summary(doc: dict) -> UserSummary:
    return UserSummary(id=doc["id"], name=doc["name"], email=doc["email"], phone=doc.get("phone"))


def _normalize_email(email: str) -> str:
    return email.strip().lower()


# PUBLIC_INTERFACE
def to_out(doc: dict) -> UserOut:
    """Public converter for raw user documents (used by auth)."""
    return _doc_to_out(doc)


# PUBLIC_INTERFACE
def find_user_doc(state: AppState, user_id: str) -> Optional[dict]:
    """Raw user document (including the password hash). Returns None if not found."""
    return state.mongo.collections().users.find_one({"id": user_id}, projection={"_id": 0})


# PUBLIC_INTERFACE
def find_user_doc_by_email(state: AppState, email: str) -> Optional[dict]:
    return state.mongo.collections().users.find_one({"email": _normalize_email(email)}, projection={"_id": 0})


# PUBLIC_INTERFACE
def user_exists(state: AppState, user_id: str) -> bool:
    return state.mongo.collections().users.count_documents({"id": user_id}, limit=1) > 0


# PUBLIC_INTERFACE
def user_summaries(state: AppState, user_ids: Iterable[str]) -> Dict[str, UserSummary]:
    """Map user id -> summary for embedding owner details in list responses."""
    ids = list({uid for uid in user_ids if uid})
    if not ids:
        return {}
    docs = state.mongo.collections().users.find(
        {"id": {"$in": ids}}, projection={"_id": 0, "id": 1, "name": 1, "email": 1, "phone": 1}
    )
    return {d["id"]: _doc_to_summary(d) for d in docs}


# PUBLIC_INTERFACE
def list_users(
    state: AppState,
    *,
    page: int = 1,
    limit: int = 10,
    search: Optional[str] = None,
    role: Optional[UserRole] = None,
    status: Optional[UserStatus] = None,
) -> Tuple[List[UserOut], int]:
    """
    List non-admin users, newest first.

    Returns (items, total_matching).
    """
    cols = state.mongo.collections()
    q: Dict[str, Any] = {"role": {"$ne": UserRole.ADMIN.value}}
    if role is not None:
        # An explicit role filter still never exposes admins here.
        q["role"] = role.value if role != UserRole.ADMIN else {"$in": []}
    if status is not None:
        q["status"] = status.value
    if search:
        pattern = {"$regex": re.escape(search.strip()), "$options": "i"}
        q["$or"] = [{"name": pattern}, {"email": pattern}]

    total = int(cols.users.count_documents(q))
    docs = list(
        cols.users.find(q, projection={"_id": 0, "password": 0})
        .sort("createdAt", -1)
        .skip((page - 1) * limit)
        .limit(limit)
    )
    return ([_doc_to_out(d) for d in docs], total)


# PUBLIC_INTERFACE
def get_user(state: AppState, user_id: str) -> Optional[UserOut]:
    """Get a single user by id. Returns None if not found."""
    doc = find_user_doc(state, user_id)
    return _doc_to_out(doc) if doc else None


def _check_unique(state: AppState, email: Optional[str], phone: Optional[str], exclude_id: Optional[str] = None) -> None:
    cols = state.mongo.collections()
    not_self: Dict[str, Any] = {"id": {"$ne": exclude_id}} if exclude_id else {}
    if email and cols.users.count_documents({"email": email, **not_self}, limit=1):
        raise ConflictError("Email already taken" if exclude_id else "User already exists")
    if phone and cols.users.count_documents({"phone": phone, **not_self}, limit=1):
        raise ConflictError("Phone number already taken")


# PUBLIC_INTERFACE
def create_user(state: AppState, payload: UserCreate) -> UserOut:
    """Create a user with a bcrypt-hashed password. Raises ConflictError on duplicate email/phone."""
    email = _normalize_email(payload.email)
    phone = payload.phone.strip() if payload.phone else None
    _check_unique(state, email, phone)

    now = utc_now()
    doc: Dict[str, Any] = {
        "id": str(uuid4()),
        "email": email,
        "password": hash_password(payload.password, state.config.bcrypt_rounds),
        "name": payload.name.strip(),
        "role": payload.role.value,
        "status": payload.status.value,
        "createdAt": now,
        "updatedAt": now,
    }
    if phone:
        doc["phone"] = phone

    try:
        state.mongo.collections().users.insert_one(doc)
    except DuplicateKeyError as e:
        raise ConflictError("User already exists") from e
    return _doc_to_out(doc)


# PUBLIC_INTERFACE
def update_user(state: AppState, user_id: str, payload: UserUpdate) -> Optional[UserOut]:
    """Update a user (partial). Returns None if not found; raises ConflictError on email/phone clash."""
    cols = state.mongo.collections()
    existing = find_user_doc(state, user_id)
    if not existing:
        return None

    updated = dict(existing)
    email = _normalize_email(payload.email) if payload.email is not None else None
    phone = payload.phone.strip() if payload.phone else None
    _check_unique(
        state,
        email if email and email != existing["email"] else None,
        phone if phone and phone != existing.get("phone") else None,
        exclude_id=user_id,
    )

    if email is not None:
        updated["email"] = email
    if payload.name is not None:
        updated["name"] = payload.name.strip()
    if "phone" in payload.model_fields_set:
        if phone:
            updated["phone"] = phone
        else:
            updated.pop("phone", None)
    if payload.role is not None:
        updated["role"] = payload.role.value
    if payload.status is not None:
        updated["status"] = payload.status.value
    if payload.password:
        updated["password"] = hash_password(payload.password, state.config.bcrypt_rounds)
    updated["updatedAt"] = utc_now()

    try:
        cols.users.replace_one({"id": user_id}, updated, upsert=False)
    except DuplicateKeyError as e:
        raise ConflictError("Email already taken") from e
    return _doc_to_out(updated)


# PUBLIC_INTERFACE
def delete_user(state: AppState, user_id: str) -> bool:
    """
    Delete a user and everything that references it.

    Children go first: notifications, KYC applications, portfolio, transactions.
    Returns True if deleted, False if not found.
    """
    cols = state.mongo.collections()
    if not user_exists(state, user_id):
        return False

    cols.notifications.delete_many({"userId": user_id})
    cols.kyc_applications.delete_many({"userId": user_id})
    cols.portfolios.delete_many({"userId": user_id})
    cols.transactions.delete_many({"userId": user_id})
    res = cols.users.delete_one({"id": user_id})
    logger.info("Deleted user %s with related records", user_id)
    return res.deleted_count > 0


# PUBLIC_INTERFACE
def get_stats(state: AppState) -> UserStats:
    cols = state.mongo.collections()
    now = utc_now()
    month_start = now.replace(day=1, hour=0, minute=0, second=0, microsecond=0)
    non_admin = {"role": {"$ne": UserRole.ADMIN.value}}

    by_role: Counter = Counter()
    for doc in cols.users.find(non_admin, projection={"_id": 0, "role": 1}):
        by_role[doc.get("role")] += 1

    return UserStats(
        total_users=sum(by_role.values()),
        active_users=int(cols.users.count_documents({**non_admin, "status": UserStatus.ACTIVE.value})),
        new_users_this_month=int(cols.users.count_documents({**non_admin, "createdAt": {"$gte": month_start}})),
        users_by_role=dict(by_role),
    )
