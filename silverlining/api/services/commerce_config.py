"""
Commerce backend configuration.

Builds the storefront/commerce engine settings (project config, plugins and modules) from an env
file chosen by APP_ENV, with the process environment taking precedence over file values.
"""

from __future__ import annotations

import logging
import os
import re
from pathlib import Path
from typing import Any, Dict, Mapping, Optional, Union

from dotenv import dotenv_values

logger = logging.getLogger(__name__)

ENV_FILES = {
    "production": ".env.production",
    "staging": ".env.staging",
    "test": ".env.test",
}
DEFAULT_ENV_FILE = ".env"

DEFAULTS = {
    "ADMIN_CORS": "http://localhost:7000,http://localhost:7001",
    "STORE_CORS": "http://localhost:8000",
    "DATABASE_URL": "postgres://localhost/medusa-store",
    "REDIS_URL": "redis://localhost:6379",
    "JWT_SECRET": "something",
    "COOKIE_SECRET": "something",
    "FILE_SERVICE_URL": "http://localhost:9000",
    "PRICE_FEED_URL": "http://localhost:9001",
    "VAULT_SERVICE_URL": "http://localhost:9002",
}

_SECRET_KEY_RE = re.compile(r"(secret|token|api_key|password|dsn|auth)", re.IGNORECASE)
_URL_CREDENTIALS_RE = re.compile(r"^([a-z][a-z0-9+.-]*://)([^:@/]+):([^@/]+)@", re.IGNORECASE)

MASK = "***"


def env_file_for(app_env: Optional[str]) -> str:
    return ENV_FILES.get((app_env or "").strip().lower(), DEFAULT_ENV_FILE)


def _load_env(base_dir: Path, environ: Mapping[str, str]) -> Dict[str, str]:
    app_env = environ.get("APP_ENV") or environ.get("NODE_ENV")
    path = base_dir / env_file_for(app_env)
    file_values: Dict[str, str] = {}
    if path.is_file():
        file_values = {k: v for k, v in dotenv_values(path).items() if v is not None}
        logger.info("Loaded commerce env file %s (%d keys)", path, len(file_values))
    else:
        logger.info("Commerce env file %s not found; using process environment only", path)
    merged = dict(DEFAULTS)
    merged.update(file_values)
    merged.update({k: v for k, v in environ.items() if v != ""})
    return merged


# PUBLIC_INTERFACE
def load_commerce_config(
    base_dir: Optional[Union[str, Path]] = None,
    environ: Optional[Mapping[str, str]] = None,
) -> Dict[str, Any]:
    """Return ``{projectConfig, plugins, modules}`` for the commerce engine."""
    env = _load_env(Path(base_dir) if base_dir is not None else Path.cwd(), os.environ if environ is None else environ)

    def get(key: str) -> str:
        return env.get(key, "")

    redis_url = get("REDIS_URL")
    plugins = [
        "medusa-fulfillment-manual",
        "medusa-payment-manual",
        {"resolve": "medusa-file-local", "options": {"upload_dir": "uploads"}},
        {
            "resolve": "@medusajs/admin",
            "options": {"autoRebuild": True, "develop": {"open": get("OPEN_BROWSER").lower() != "false"}},
        },
        {
            "resolve": "medusa-plugin-sendgrid",
            "options": {"api_key": get("SENDGRID_API_KEY"), "from": get("SENDGRID_FROM_EMAIL")},
        },
        {
            "resolve": "medusa-plugin-twilio-sms",
            "options": {
                "account_sid": get("TWILIO_ACCOUNT_SID"),
                "auth_token": get("TWILIO_AUTH_TOKEN"),
                "from": get("TWILIO_PHONE_NUMBER"),
            },
        },
        {
            "resolve": "medusa-plugin-stripe",
            "options": {"api_key": get("STRIPE_API_KEY"), "webhook_secret": get("STRIPE_WEBHOOK_SECRET")},
        },
        {"resolve": "medusa-plugin-sentry", "options": {"dsn": get("SENTRY_DSN")}},
        {"resolve": "medusa-plugin-redis", "options": {"redis_url": redis_url}},
    ]

    return {
        "projectConfig": {
            "redis_url": redis_url,
            "database_url": get("DATABASE_URL"),
            "database_type": "postgres",
            "store_cors": get("STORE_CORS"),
            "admin_cors": get("ADMIN_CORS"),
            "jwt_secret": get("JWT_SECRET"),
            "cookie_secret": get("COOKIE_SECRET"),
            "database_extra": {"ssl": {"rejectUnauthorized": False}},
        },
        "plugins": plugins,
        "modules": {
            "eventBus": {"resolve": "@medusajs/event-bus-redis", "options": {"redisUrl": redis_url}},
            "cache": {"resolve": "@medusajs/cache-redis", "options": {"redisUrl": redis_url}},
        },
    }


def _mask_value(key: str, value: Any) -> Any:
    if isinstance(value, dict):
        return {k: _mask_value(k, v) for k, v in value.items()}
    if isinstance(value, list):
        return [_mask_value(key, v) for v in value]
    if not isinstance(value, str) or not value:
        return value
    if _SECRET_KEY_RE.search(key):
        return MASK
    return _URL_CREDENTIALS_RE.sub(rf"\1\2:{MASK}@", value)


# PUBLIC_INTERFACE
def redacted(config: Dict[str, Any]) -> Dict[str, Any]:
    """Copy of ``config`` with secrets replaced by ``***`` and URL passwords masked."""
    return {k: _mask_value(k, v) for k, v in config.items()}
