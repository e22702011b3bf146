from __future__ import annotations

import logging
from dataclasses import dataclass
from threading import RLock
from typing import Any, Callable, Optional

from pymongo import ASCENDING, DESCENDING, MongoClient
from pymongo.collection import Collection
from pymongo.database import Database
from pymongo.errors import PyMongoError

logger = logging.getLogger(__name__)


DEFAULT_DB_NAME = "silverlining"

ClientFactory = Callable[..., Any]


@dataclass(frozen=True)
class MongoCollections:
    """Convenience wrapper for app collections."""

    users: Collection
    kyc_applications: Collection
    transactions: Collection
    portfolios: Collection
    notifications: Collection
    settings: Collection
    logs: Collection

    # Refresh-token denylist (logout).
    revoked_tokens: Collection


class MongoManager:
    """
    MongoDB connection manager.

    Maintains one MongoClient for the app's storage DB. The client is created lazily by
    ``client_factory`` (``pymongo.MongoClient`` by default) with ``tz_aware=True`` so stored
    timestamps come back as UTC-aware datetimes.
    """

    def __init__(
        self,
        app_mongo_uri: str,
        db_name: str = DEFAULT_DB_NAME,
        client_factory: Optional[ClientFactory] = None,
    ):
        self._app_mongo_uri = app_mongo_uri
        self._db_name = db_name
        self._client_factory: ClientFactory = client_factory or MongoClient
        self._app_client: Optional[MongoClient] = None
        self._lock = RLock()

    def connect_app(self) -> None:
        """Initialize app Mongo client if needed."""
        with self._lock:
            if self._app_client is not None:
                return
            # MongoClient is thread-safe and manages internal pooling.
            self._app_client = self._client_factory(self._app_mongo_uri, connect=True, tz_aware=True)

    # PUBLIC_INTERFACE
    def ping(self, timeout_ms: int = 1500) -> bool:
        """
        Ping the configured MongoDB to validate connectivity.

        This is used by startup validation, the health endpoints and the system health job.
        """
        try:
            if self._app_client is None:
                self.connect_app()
            assert self._app_client is not None
            self._app_client.admin.command("ping", maxTimeMS=int(max(250, timeout_ms)))
            return True
        except PyMongoError:
            logger.exception("Mongo ping failed (PyMongoError)")
            return False
        except Exception:
            logger.exception("Mongo ping failed (unexpected)")
            return False

    def close(self) -> None:
        """Close the app Mongo client."""
        with self._lock:
            if self._app_client is not None:
                try:
                    self._app_client.close()
                except Exception:
                    logger.exception("Error closing app MongoClient")
                self._app_client = None

    def app_db(self) -> Database:
        """Return the application database handle."""
        if self._app_client is None:
            self.connect_app()
        assert self._app_client is not None
        return self._app_client[self._db_name]

    def collections(self) -> MongoCollections:
        """Return app collections."""
        db = self.app_db()
        return MongoCollections(
            users=db["users"],
            kyc_applications=db["kyc_applications"],
            transactions=db["transactions"],
            portfolios=db["portfolios"],
            notifications=db["notifications"],
            settings=db["settings"],
            logs=db["logs"],
            revoked_tokens=db["revoked_tokens"],
        )

    def init_indexes(self) -> None:
        """
        Create required indexes (idempotent).

        Unique indexes back the uniqueness rules: user email/phone, transaction referenceId,
        one portfolio per user, one KYC application per user and setting key.
        """
        cols = self.collections()

        # ---- Users ----
        cols.users.create_index([("id", ASCENDING)], unique=True, name="idx_users_id")
        cols.users.create_index([("email", ASCENDING)], unique=True, name="uniq_users_email")
        # phone is optional; the key is omitted (not null) when unset so sparse applies.
        cols.users.create_index([("phone", ASCENDING)], unique=True, sparse=True, name="uniq_users_phone")
        cols.users.create_index([("createdAt", DESCENDING)], name="idx_users_createdAt_desc")

        # ---- KYC ----
        cols.kyc_applications.create_index([("id", ASCENDING)], unique=True, name="idx_kyc_id")
        cols.kyc_applications.create_index([("userId", ASCENDING)], unique=True, name="uniq_kyc_userId")
        cols.kyc_applications.create_index([("status", ASCENDING)], name="idx_kyc_status")

        # ---- Transactions ----
        cols.transactions.create_index([("id", ASCENDING)], unique=True, name="idx_txn_id")
        cols.transactions.create_index([("referenceId", ASCENDING)], unique=True, name="uniq_txn_referenceId")
        cols.transactions.create_index([("userId", ASCENDING), ("createdAt", DESCENDING)], name="idx_txn_user_createdAt")
        cols.transactions.create_index([("status", ASCENDING), ("updatedAt", DESCENDING)], name="idx_txn_status_updatedAt")

        # ---- Portfolios ----
        cols.portfolios.create_index([("id", ASCENDING)], unique=True, name="idx_portfolio_id")
        cols.portfolios.create_index([("userId", ASCENDING)], unique=True, name="uniq_portfolio_userId")

        # ---- Notifications ----
        cols.notifications.create_index([("id", ASCENDING)], unique=True, name="idx_notif_id")
        cols.notifications.create_index([("userId", ASCENDING), ("createdAt", DESCENDING)], name="idx_notif_user_createdAt")
        cols.notifications.create_index([("isRead", ASCENDING), ("createdAt", ASCENDING)], name="idx_notif_isRead_createdAt")

        # ---- Settings ----
        cols.settings.create_index([("key", ASCENDING)], unique=True, name="uniq_settings_key")
        cols.settings.create_index([("category", ASCENDING)], name="idx_settings_category")

        # ---- Logs ----
        cols.logs.create_index([("id", ASCENDING)], unique=True, name="idx_logs_id")
        cols.logs.create_index([("timestamp", DESCENDING)], name="idx_logs_timestamp_desc")
        cols.logs.create_index([("level", ASCENDING), ("timestamp", DESCENDING)], name="idx_logs_level_timestamp")
        cols.logs.create_index([("category", ASCENDING), ("action", ASCENDING), ("timestamp", DESCENDING)], name="idx_logs_category_action_timestamp")
        cols.logs.create_index([("userId", ASCENDING)], name="idx_logs_userId")

        # ---- Revoked refresh tokens ----
        cols.revoked_tokens.create_index([("jti", ASCENDING)], unique=True, name="uniq_revoked_jti")
        # TTL: MongoDB's TTL monitor drops entries once the token would have expired anyway.
        cols.revoked_tokens.create_index([("expiresAt", ASCENDING)], name="ttl_revoked_expiresAt", expireAfterSeconds=0)
