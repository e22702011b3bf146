"""Business-logic layer (MongoDB-backed; routers call these modules and map their errors to HTTP).

Cross-cutting helpers used by most services:
- log_service.py (structured log rows, audit trail)
- notifications_service.py (templates + delivery hook)

Background jobs live in background.py (five periodic loops started by the app lifespan).
"""

# Import side-effects are intentionally avoided here; modules are imported by routers/services as needed.
