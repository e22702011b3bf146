from __future__ import annotations

import logging
from collections import Counter
from typing import List, Optional
from uuid import uuid4

from pymongo.errors import DuplicateKeyError

from silverlining.api.schemas.common import KycStatus, LogCategory, LogLevel, utc_now
from silverlining.api.schemas.kyc import KycCreate, KycOut, KycStats, KycStatusUpdate
from silverlining.api.schemas.users import UserSummary
from silverlining.api.services import log_service, notifications_service, users_service
from silverlining.api.services.errors import ConflictError, NotFoundError
from silverlining.api.state import AppState

logger = logging.getLogger(__name__)


def _doc_to_out(doc: dict, user: Optional[UserSummary] = None) -> KycOut:
    return KycOut(
        id=doc["id"],
        user_id=doc["userId"],
        status=doc.get("status", KycStatus.PENDING.value),
        submitted_at=doc["submittedAt"],
        reviewed_at=doc.get("reviewedAt"),
        reviewed_by=doc.get("reviewedBy"),
        remarks=doc.get("remarks"),
        documents=doc.get("documents") or {},
        personal_info=doc.get("personalInfo") or {},
        created_at=doc["createdAt"],
        updated_at=doc["updatedAt"],
        user=user,
    )


def _with_users(state: AppState, docs: List[dict]) -> List[KycOut]:
    users = users_service.user_summaries(state, (d["userId"] for d in docs))
    return [_doc_to_out(d, users.get(d["userId"])) for d in docs]


# PUBLIC_INTERFACE
def list_applications(state: AppState, status: Optional[KycStatus] = None) -> List[KycOut]:
    """All applications (optionally by status) with the applicant embedded, newest first."""
    q = {"status": status.value} if status is not None else {}
    docs = list(state.mongo.collections().kyc_applications.find(q, projection={"_id": 0}).sort("createdAt", -1))
    return _with_users(state, docs)


# PUBLIC_INTERFACE
def get_application(state: AppState, kyc_id: str) -> Optional[KycOut]:
    doc = state.mongo.collections().kyc_applications.find_one({"id": kyc_id}, projection={"_id": 0})
    if not doc:
        return None
    return _with_users(state, [doc])[0]


# PUBLIC_INTERFACE
def create_application(state: AppState, payload: KycCreate) -> KycOut:
    """
    Submit a KYC application for a user.

    Raises NotFoundError for an unknown user and ConflictError when the user already has one.
    """
    cols = state.mongo.collections()
    if not users_service.user_exists(state, payload.user_id):
        raise NotFoundError("User not found")
    if cols.kyc_applications.count_documents({"userId": payload.user_id}, limit=1):
        raise ConflictError("KYC application already exists for this user")

    now = utc_now()
    doc = {
        "id": str(uuid4()),
        "userId": payload.user_id,
        "status": KycStatus.PENDING.value,
        "submittedAt": now,
        "reviewedAt": None,
        "reviewedBy": None,
        "remarks": None,
        "documents": {"panNumber": payload.pan_number, "aadhaarNumber": payload.aadhaar_number},
        "personalInfo": {"notes": payload.notes},
        "createdAt": now,
        "updatedAt": now,
    }
    try:
        cols.kyc_applications.insert_one(doc)
    except DuplicateKeyError as e:
        raise ConflictError("KYC application already exists for this user") from e

    log_service.log(
        state,
        LogLevel.INFO,
        LogCategory.KYC,
        "KYC application submitted",
        user_id=payload.user_id,
        action="KYC_SUBMITTED",
        resource="KYC",
        resource_id=doc["id"],
    )
    return _with_users(state, [doc])[0]


# PUBLIC_INTERFACE
def update_status(
    state: AppState,
    kyc_id: str,
    payload: KycStatusUpdate,
    reviewer: Optional[dict] = None,
) -> Optional[KycOut]:
    """
    Review an application: set status and remarks, stamp reviewedAt/reviewedBy.

    Approval and rejection notify the applicant. Returns None if not found.
    """
    cols = state.mongo.collections()
    existing = cols.kyc_applications.find_one({"id": kyc_id}, projection={"_id": 0})
    if not existing:
        return None

    now = utc_now()
    updated = dict(existing)
    if payload.status is not None:
        updated["status"] = payload.status.value
    if payload.notes is not None:
        updated["remarks"] = payload.notes
    updated["reviewedAt"] = now
    updated["reviewedBy"] = reviewer["id"] if reviewer else updated.get("reviewedBy")
    updated["updatedAt"] = now
    cols.kyc_applications.replace_one({"id": kyc_id}, updated, upsert=False)

    status_changed = payload.status is not None and payload.status.value != existing.get("status")
    if status_changed:
        log_service.audit_log(
            state,
            LogCategory.KYC,
            f"KYC application {payload.status.value.lower()}",
            before_state={"status": existing.get("status")},
            after_state={"status": updated["status"]},
            changes={"status": updated["status"], "remarks": updated.get("remarks")},
            user_id=reviewer["id"] if reviewer else None,
            user_email=reviewer["email"] if reviewer else None,
            action=f"KYC_{payload.status.value}",
            resource="KYC",
            resource_id=kyc_id,
        )
        if payload.status == KycStatus.APPROVED:
            notifications_service.notify_safely(state, updated["userId"], "kyc-approved")
        elif payload.status == KycStatus.REJECTED:
            notifications_service.notify_safely(
                state, updated["userId"], "kyc-rejected", {"reason": updated.get("remarks") or "Not specified"}
            )

    return _with_users(state, [updated])[0]


# PUBLIC_INTERFACE
def get_stats(state: AppState) -> KycStats:
    by_status: Counter = Counter()
    for doc in state.mongo.collections().kyc_applications.find({}, projection={"_id": 0, "status": 1}):
        by_status[doc.get("status")] += 1
    return KycStats(
        total=sum(by_status.values()),
        pending=by_status.get(KycStatus.PENDING.value, 0),
        approved=by_status.get(KycStatus.APPROVED.value, 0),
        rejected=by_status.get(KycStatus.REJECTED.value, 0),
        by_status=dict(by_status),
    )
