from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator, Optional

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from silverlining.api.config import BackendConfig, load_config
from silverlining.api.db.mongo import ClientFactory
from silverlining.api.routers import (
    admin,
    analytics,
    auth,
    health,
    kyc,
    logs,
    notifications,
    portfolio,
    reports,
    settings,
    transactions,
    users,
)
from silverlining.api.services.background import BackgroundService
from silverlining.api.state import get_state, init_state

openapi_tags = [
    {"name": "Health", "description": "Service health and liveness."},
    {"name": "Auth", "description": "Registration, login and JWT token lifecycle."},
    {"name": "Users", "description": "User management."},
    {"name": "KYC", "description": "KYC application submission and review."},
    {"name": "Transactions", "description": "Silver buy/sell transactions."},
    {"name": "Portfolio", "description": "Silver holdings, valuation and analytics."},
    {"name": "Notifications", "description": "In-app notifications and templates."},
    {"name": "Reports", "description": "Period reports over users, transactions, KYC and portfolios."},
    {"name": "Analytics", "description": "Dashboard and trend analytics."},
    {"name": "Settings", "description": "Key/value application settings."},
    {"name": "Admin", "description": "Admin dashboard, system health, bootstrap and background jobs."},
    {"name": "Logs", "description": "Structured application and audit logs."},
]

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Connect to Mongo, validate connectivity, ensure indexes and start background jobs; undo on shutdown."""
    state = get_state(app)

    # Connect + verify early so a misconfigured Mongo fails startup instead of every request.
    state.mongo.connect_app()
    if not state.mongo.ping():
        raise RuntimeError("Mongo connectivity check failed during startup. Verify SILVER_MONGO_URI.")
    state.mongo.init_indexes()

    background = state.background
    if state.config.background_jobs_enabled:
        background.start()  # type: ignore[union-attr]
    else:
        logger.info("Background jobs disabled (BACKGROUND_JOBS_ENABLED=false)")

    try:
        yield
    finally:
        try:
            await background.stop()  # type: ignore[union-attr]
        except Exception:
            logger.exception("Error stopping background services")
        state.mongo.close()


# PUBLIC_INTERFACE
def create_app(config: Optional[BackendConfig] = None, client_factory: Optional[ClientFactory] = None) -> FastAPI:
    """Build the FastAPI app. ``client_factory`` replaces pymongo.MongoClient (tests pass mongomock)."""
    config = config or load_config()
    app = FastAPI(
        title="Silver Lining API",
        description=(
            "Backend API for the Silver Lining silver-investment platform: users, KYC, transactions, "
            "portfolios, notifications, reports, analytics, settings and audit logs, "
            "with periodic maintenance and monitoring jobs."
        ),
        version=config.app_version,
        openapi_tags=openapi_tags,
        lifespan=lifespan,
    )

    # Initialize typed app state (config + Mongo manager + background jobs)
    state = init_state(app, config, client_factory=client_factory)
    state.background = BackgroundService(state)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=config.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.include_router(health.router)
    app.include_router(auth.router)
    app.include_router(users.router)
    app.include_router(kyc.router)
    app.include_router(transactions.router)
    app.include_router(portfolio.router)
    app.include_router(notifications.router)
    app.include_router(reports.router)
    app.include_router(analytics.router)
    app.include_router(settings.router)
    app.include_router(admin.router)
    app.include_router(logs.router)
    return app


app = create_app()
