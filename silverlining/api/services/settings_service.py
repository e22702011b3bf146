from __future__ import annotations

import logging
from collections import defaultdict
from typing import Any, Dict, List, Optional, Tuple
from uuid import uuid4

from pymongo.errors import DuplicateKeyError

from silverlining.api.schemas.common import utc_now
from silverlining.api.schemas.settings import SettingCreate, SettingOut, SettingsListing, SettingUpdate
from silverlining.api.services.errors import ConflictError
from silverlining.api.state import AppState

logger = logging.getLogger(__name__)

DEFAULT_CATEGORY = "general"

# (key, value, description, category)
DEFAULT_SETTINGS: List[Tuple[str, Any, str, str]] = [
    ("app_name", "Silver Lining MVP", "Application name", "system"),
    ("app_version", "1.0.0", "Application version", "system"),
    ("maintenance_mode", "false", "Maintenance mode flag", "system"),
    ("debug_mode", "false", "Debug mode flag", "system"),
    ("default_currency", "INR", "Default currency", "app"),
    ("silver_price", "105", "Current silver price per gram", "app"),
    ("min_transaction_amount", "1000", "Minimum transaction amount", "app"),
    ("max_transaction_amount", "1000000", "Maximum transaction amount", "app"),
    ("kyc_required", "true", "KYC requirement flag", "app"),
    ("auto_approve_kyc", "false", "Auto approve KYC flag", "app"),
    ("email_notifications", "true", "Enable email notifications", "notifications"),
    ("sms_notifications", "false", "Enable SMS notifications", "notifications"),
    ("push_notifications", "true", "Enable push notifications", "notifications"),
    ("session_timeout", "3600", "Session timeout in seconds", "security"),
    ("max_login_attempts", "5", "Maximum login attempts", "security"),
    ("password_min_length", "8", "Minimum password length", "security"),
    ("require_2fa", "false", "Require two-factor authentication", "security"),
]


def _doc_to_out(doc: dict) -> SettingOut:
    return SettingOut(
        id=doc["id"],
        key=doc["key"],
        value=doc.get("value"),
        description=doc.get("description"),
        category=doc.get("category") or DEFAULT_CATEGORY,
        created_at=doc["createdAt"],
        updated_at=doc["updatedAt"],
    )


# PUBLIC_INTERFACE
def list_settings(state: AppState) -> SettingsListing:
    """All settings ordered by key, plus the same list grouped by category."""
    docs = list(state.mongo.collections().settings.find({}, projection={"_id": 0}).sort("key", 1))
    items = [_doc_to_out(d) for d in docs]
    grouped: Dict[str, List[SettingOut]] = defaultdict(list)
    for s in items:
        grouped[s.category].append(s)
    return SettingsListing(settings=items, grouped_settings=dict(grouped))


# PUBLIC_INTERFACE
def get_setting(state: AppState, key: str) -> Optional[SettingOut]:
    doc = state.mongo.collections().settings.find_one({"key": key}, projection={"_id": 0})
    return _doc_to_out(doc) if doc else None


# PUBLIC_INTERFACE
def get_setting_value(state: AppState, key: str, default: Any = None) -> Any:
    s = get_setting(state, key)
    return s.value if s is not None else default


# PUBLIC_INTERFACE
def list_by_category(state: AppState, category: str) -> List[SettingOut]:
    docs = state.mongo.collections().settings.find({"category": category}, projection={"_id": 0}).sort("key", 1)
    return [_doc_to_out(d) for d in docs]


# PUBLIC_INTERFACE
def category_config(state: AppState, category: str) -> Dict[str, Any]:
    """key -> value map for one category (system/app config endpoints)."""
    return {s.key: s.value for s in list_by_category(state, category)}


# PUBLIC_INTERFACE
def create_setting(state: AppState, payload: SettingCreate) -> SettingOut:
    """Create a setting. Raises ConflictError if the key exists."""
    cols = state.mongo.collections()
    if cols.settings.count_documents({"key": payload.key}, limit=1):
        raise ConflictError("Setting with this key already exists")

    now = utc_now()
    doc = {
        "id": str(uuid4()),
        "key": payload.key,
        "value": payload.value,
        "description": payload.description,
        "category": payload.category or DEFAULT_CATEGORY,
        "createdAt": now,
        "updatedAt": now,
    }
    try:
        cols.settings.insert_one(doc)
    except DuplicateKeyError as e:
        raise ConflictError("Setting with this key already exists") from e
    return _doc_to_out(doc)


# PUBLIC_INTERFACE
def update_setting(state: AppState, key: str, payload: SettingUpdate) -> Optional[SettingOut]:
    """Update a setting by key (partial). Returns None if not found."""
    cols = state.mongo.collections()
    existing = cols.settings.find_one({"key": key}, projection={"_id": 0})
    if not existing:
        return None

    updated = dict(existing)
    # value may legitimately be set to null, so presence is checked rather than None
    if "value" in payload.model_fields_set:
        updated["value"] = payload.value
    if payload.description is not None:
        updated["description"] = payload.description
    if payload.category is not None:
        updated["category"] = payload.category
    updated["updatedAt"] = utc_now()
    cols.settings.replace_one({"key": key}, updated, upsert=False)
    logger.info("Updated setting: %s", key)
    return _doc_to_out(updated)


# PUBLIC_INTERFACE
def init_defaults(state: AppState) -> Tuple[List[SettingOut], int]:
    """Insert the default settings that are missing. Returns (created, total_known_defaults)."""
    created: List[SettingOut] = []
    for key, value, description, category in DEFAULT_SETTINGS:
        if get_setting(state, key) is not None:
            continue
        try:
            created.append(
                create_setting(state, SettingCreate(key=key, value=value, description=description, category=category))
            )
        except ConflictError:
            # Inserted concurrently; keep going.
            logger.info("Default setting %s already present", key)
    logger.info("Initialized %d default settings", len(created))
    return created, len(DEFAULT_SETTINGS)
