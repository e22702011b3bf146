from __future__ import annotations

from silverlining.api.services.commerce_config import env_file_for, load_commerce_config, redacted


def test_env_file_selection():
    assert env_file_for("production") == ".env.production"
    assert env_file_for("Staging") == ".env.staging"
    assert env_file_for("test") == ".env.test"
    assert env_file_for("development") == ".env"
    assert env_file_for(None) == ".env"


def test_defaults_without_env_file(tmp_path):
    cfg = load_commerce_config(base_dir=tmp_path, environ={})
    project = cfg["projectConfig"]
    assert project["redis_url"] == "redis://localhost:6379"
    assert project["database_type"] == "postgres"
    assert project["store_cors"] == "http://localhost:8000"
    assert project["database_extra"] == {"ssl": {"rejectUnauthorized": False}}
    assert len(cfg["plugins"]) == 9
    assert cfg["modules"]["eventBus"]["options"]["redisUrl"] == "redis://localhost:6379"
    assert cfg["modules"]["cache"]["resolve"] == "@medusajs/cache-redis"


def test_env_file_chosen_by_app_env_and_overridden_by_process_env(tmp_path):
    (tmp_path / ".env.production").write_text(
        "REDIS_URL=redis://prod-cache:6379\nSTRIPE_API_KEY=sk_file\nSENTRY_DSN=https://key@sentry.example/1\n"
    )
    (tmp_path / ".env").write_text("REDIS_URL=redis://dev-cache:6379\n")

    cfg = load_commerce_config(base_dir=tmp_path, environ={"APP_ENV": "production", "STRIPE_API_KEY": "sk_env"})
    assert cfg["projectConfig"]["redis_url"] == "redis://prod-cache:6379"
    stripe = next(p for p in cfg["plugins"] if isinstance(p, dict) and p["resolve"] == "medusa-plugin-stripe")
    assert stripe["options"]["api_key"] == "sk_env"

    dev = load_commerce_config(base_dir=tmp_path, environ={})
    assert dev["projectConfig"]["redis_url"] == "redis://dev-cache:6379"


def test_node_env_is_used_when_app_env_missing(tmp_path):
    (tmp_path / ".env.staging").write_text("STORE_CORS=https://staging.shop\n")
    cfg = load_commerce_config(base_dir=tmp_path, environ={"NODE_ENV": "staging"})
    assert cfg["projectConfig"]["store_cors"] == "https://staging.shop"


def test_admin_plugin_open_browser_flag(tmp_path):
    cfg = load_commerce_config(base_dir=tmp_path, environ={"OPEN_BROWSER": "false"})
    admin = next(p for p in cfg["plugins"] if isinstance(p, dict) and p["resolve"] == "@medusajs/admin")
    assert admin["options"]["develop"]["open"] is False


def test_redacted_masks_secrets_and_url_passwords(tmp_path):
    cfg = load_commerce_config(
        base_dir=tmp_path,
        environ={
            "DATABASE_URL": "postgres://medusa:hunter2@db:5432/store",
            "TWILIO_AUTH_TOKEN": "tw-secret",
            "SENTRY_DSN": "https://abc@sentry.example/1",
        },
    )
    safe = redacted(cfg)
    assert safe["projectConfig"]["database_url"] == "postgres://medusa:***@db:5432/store"
    assert safe["projectConfig"]["jwt_secret"] == "***"
    assert safe["projectConfig"]["cookie_secret"] == "***"
    twilio = next(p for p in safe["plugins"] if isinstance(p, dict) and p["resolve"] == "medusa-plugin-twilio-sms")
    assert twilio["options"]["auth_token"] == "***"
    sentry = next(p for p in safe["plugins"] if isinstance(p, dict) and p["resolve"] == "medusa-plugin-sentry")
    assert sentry["options"]["dsn"] == "***"
    # Non-secret values pass through and the original is untouched.
    assert safe["projectConfig"]["redis_url"] == "redis://localhost:6379"
    assert cfg["projectConfig"]["database_url"] == "postgres://medusa:hunter2@db:5432/store"
