from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Optional

from fastapi import FastAPI

from silverlining.api.config import BackendConfig
from silverlining.api.db.mongo import ClientFactory, MongoManager
from silverlining.api.schemas.common import utc_now


@dataclass
class AppState:
    """Typed app.state container for shared singletons."""

    config: BackendConfig
    mongo: MongoManager
    background: Optional[object] = None  # BackgroundService, kept loose to avoid import cycles
    started_at: datetime = field(default_factory=utc_now)


# PUBLIC_INTERFACE
def init_state(app: FastAPI, config: BackendConfig, client_factory: Optional[ClientFactory] = None) -> AppState:
    """Initialize app.state with Mongo manager and config."""
    state = AppState(
        config=config,
        mongo=MongoManager(config.mongo_uri, db_name=config.mongo_db_name, client_factory=client_factory),
    )
    app.state.state = state
    return state


# PUBLIC_INTERFACE
def get_state(app: FastAPI) -> AppState:
    """Fetch typed AppState from a FastAPI app."""
    return app.state.state  # type: ignore[attr-defined]
