import os
import subprocess
from pathlib import Path

import click
import requests
import sentry_sdk
from flask import Flask, g, jsonify, request
from sqlalchemy import text
from werkzeug.exceptions import HTTPException

from ridemarket.extensions import cors, db, migrate
from ridemarket.integrations.common import IntegrationMisconfiguredError
from ridemarket.integrations.payments.factory import payments_health
from ridemarket.segments.segment_listings import listings_bp
from ridemarket.segments.segment_profiles import profiles_bp
from ridemarket.segments.segment_stripe import stripe_bp
from ridemarket.segments.segment_wishlist import wishlist_bp
from ridemarket.services.runtime import get_object_storage
from ridemarket.utils.jwt_utils import principal_from_auth_header
from ridemarket.utils.observability import init_sentry, install_request_observers
from ridemarket.utils.responses import error_response

MIGRATIONS_DIR = Path(__file__).resolve().parents[1] / "migrations"


def _resolve_alembic_head() -> str:
    try:
        from alembic.config import Config
        from alembic.script import ScriptDirectory

        cfg = Config(str(MIGRATIONS_DIR / "alembic.ini"))
        cfg.set_main_option("script_location", str(MIGRATIONS_DIR))
        script = ScriptDirectory.from_config(cfg)
        heads = script.get_heads()
        return heads[0] if heads else "unknown"
    except Exception:
        return "unknown"


def _resolve_git_sha() -> str:
    for env_key in ("GIT_SHA", "SOURCE_VERSION"):
        val = (os.getenv(env_key) or "").strip()
        if val:
            return val
    try:
        out = subprocess.check_output(
            ["git", "rev-parse", "HEAD"],
            cwd=str(MIGRATIONS_DIR.parent),
            stderr=subprocess.DEVNULL,
        )
        return out.decode().strip()
    except Exception:
        return "unknown"


def _env_int(name: str, default: int, *, minimum: int = 1, maximum: int = 100000) -> int:
    raw = (os.getenv(name) or "").strip()
    try:
        value = int(raw) if raw else int(default)
    except Exception:
        value = int(default)
    return max(minimum, min(value, maximum))


def _load_config(app: Flask, env: str) -> None:
    app.config["RIDEMARKET_ENV"] = env
    app.config["SECRET_KEY"] = os.getenv("SECRET_KEY", "dev-secret")
    app.config["SQLALCHEMY_TRACK_MODIFICATIONS"] = False

    for key, default in (
        ("STORAGE_PROVIDER", "local"),
        ("STORAGE_LOCAL_ROOT", str(MIGRATIONS_DIR.parent / "uploads")),
        ("STORAGE_PUBLIC_BASE_URL", ""),
        ("SUPABASE_URL", ""),
        ("SUPABASE_SERVICE_ROLE_KEY", ""),
        ("LISTING_IMAGES_BUCKET", "listing-images"),
        ("AVATARS_BUCKET", "avatars"),
        ("PAYMENTS_PROVIDER", "mock"),
        ("STRIPE_SECRET_KEY", ""),
        ("STRIPE_WEBHOOK_SECRET", ""),
        ("STRIPE_ACCOUNT_COUNTRY", "DK"),
        ("STRIPE_SUPPORT_EMAIL", ""),
        ("STRIPE_BUSINESS_URL", ""),
        ("CURRENCY_SUFFIX", "kr DKK"),
    ):
        app.config[key] = os.getenv(key, default)
    app.config["WISHLIST_MAX_SESSIONS"] = _env_int("WISHLIST_MAX_SESSIONS", 5000, maximum=1000000)
    app.config["MAX_CONTENT_LENGTH"] = 12 * 1024 * 1024


def _is_prod(env: str) -> bool:
    return env in ("prod", "production")


def _check_prod_secrets() -> None:
    secret = (os.getenv("SECRET_KEY") or "").strip()
    if len(secret) < 16:
        raise RuntimeError("SECRET_KEY must be at least 16 chars in production")
    if not (os.getenv("SUPABASE_JWT_SECRET") or "").strip():
        raise RuntimeError("SUPABASE_JWT_SECRET must be set in production")


def _database_url(env: str) -> str:
    url = (os.getenv("SQLALCHEMY_DATABASE_URI") or os.getenv("DATABASE_URL") or "").strip()
    if not url:
        if _is_prod(env):
            raise RuntimeError("DATABASE_URL must be set in production")
        instance = MIGRATIONS_DIR.parent / "instance"
        instance.mkdir(parents=True, exist_ok=True)
        return "sqlite:///" + (instance / "ridemarket.db").as_posix()
    # Hosted Postgres URLs still use the legacy scheme.
    if url.startswith("postgres://"):
        url = "postgresql://" + url[len("postgres://"):]
    return url


def _cors_origins(env: str) -> list[str]:
    listed = [o.strip() for o in (os.getenv("CORS_ORIGINS") or "").split(",") if o.strip()]
    if listed or _is_prod(env):
        return listed
    return ["*"]


def _engine_options(database_url: str) -> dict:
    options = {"pool_pre_ping": True}
    if database_url.startswith("sqlite://"):
        return options
    options.update(
        pool_recycle=_env_int("DB_POOL_RECYCLE_SECONDS", 1800, minimum=60, maximum=86400),
        pool_size=_env_int("DB_POOL_SIZE", 10, minimum=1, maximum=200),
        max_overflow=_env_int("DB_MAX_OVERFLOW", 20, minimum=0, maximum=500),
        pool_timeout=_env_int("DB_POOL_TIMEOUT_SECONDS", 30, minimum=1, maximum=300),
    )
    return options


def create_app():
    app = Flask(__name__)
    init_sentry(app)

    env = (os.getenv("RIDEMARKET_ENV") or "dev").strip().lower()
    if _is_prod(env):
        _check_prod_secrets()

    _load_config(app, env)
    database_url = _database_url(env)
    app.config["SQLALCHEMY_DATABASE_URI"] = database_url

    app.config["SQLALCHEMY_ENGINE_OPTIONS"] = _engine_options(database_url)
    if "pool_size" in app.config["SQLALCHEMY_ENGINE_OPTIONS"]:
        app.logger.info("db_pooling_enabled options=%s", app.config["SQLALCHEMY_ENGINE_OPTIONS"])

    cors.init_app(app, resources={r"/api/*": {"origins": _cors_origins(env)}})

    db.init_app(app)
    migrate.init_app(app, db, directory=str(MIGRATIONS_DIR))
    install_request_observers(app)

    if not _is_prod(env):
        with app.app_context():
            try:
                db.create_all()
            except Exception as e:
                app.logger.warning("db_create_all_failed err=%s", e)

    @app.errorhandler(HTTPException)
    def _api_http_exception(error: HTTPException):
        # Non-API paths keep the default HTML pages.
        if not request.path.startswith("/api/"):
            return error
        code = (error.name or "Error").upper().replace(" ", "_")
        return error_response(code, error.description or error.name, int(error.code or 500))

    @app.errorhandler(Exception)
    def _api_unhandled_exception(error: Exception):
        app.logger.exception("unhandled_exception path=%s", request.path)
        db.session.rollback()
        return error_response("INTERNAL_ERROR", "Internal server error", 500)

    @app.before_request
    def _capture_auth_context():
        g.principal = principal_from_auth_header(request.headers.get("Authorization", ""))
        sentry_sdk.set_user({"id": g.principal.id} if g.principal is not None else None)

    app.register_blueprint(listings_bp)
    app.register_blueprint(profiles_bp)
    app.register_blueprint(wishlist_bp)
    app.register_blueprint(stripe_bp)

    @app.get("/api/health")
    def health():
        db_state = "ok"
        db_error = None
        try:
            with db.engine.connect() as conn:
                conn.execute(text("SELECT 1"))
        except Exception as e:
            db_state = "fail"
            msg = str(e)
            if msg:
                db_error = (msg[:300] + "...") if len(msg) > 300 else msg
        payload = {
            "ok": True,
            "service": "ridemarket-backend",
            "env": env,
            "db": db_state,
            "payments": payments_health(app.config),
            "storage": (app.config.get("STORAGE_PROVIDER") or "local").strip().lower(),
        }
        if db_error:
            payload["db_error"] = db_error
        return jsonify(payload)

    @app.get("/api/version")
    def version():
        return jsonify({
            "ok": True,
            "alembic_head": _resolve_alembic_head(),
            "git_sha": _resolve_git_sha(),
        })

    @app.cli.command("storage-list")
    @click.argument("bucket")
    def storage_list(bucket):
        """Print every object key in BUCKET."""
        try:
            keys = get_object_storage().list(bucket)
        except (IntegrationMisconfiguredError, requests.RequestException) as e:
            raise click.ClickException(str(e))
        for key in keys:
            click.echo(key)
        click.echo(f"{len(keys)} object(s) in {bucket}", err=True)

    return app
