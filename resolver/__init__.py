import logging
import os
import time
from typing import Any, Mapping, Optional

import flask_limiter
import structlog
from dotenv import load_dotenv
from flask import Flask, g, jsonify, request
from flask_cors import CORS
from limits.storage import storage_from_string
from werkzeug.exceptions import HTTPException

from resolver.config import settings
from resolver.extensions import cache, limiter
from resolver.utils.correlation import (
    REQUEST_ID_HEADER,
    clear_correlation_context,
    ensure_correlation_id,
)
from resolver.utils.logging_config import setup_logging

_TRUE_VALUES = {"true", "1", "yes", "on"}


def _select_cache_config(app: Flask, default_timeout: int) -> dict[str, Any]:
    env_name = (app.config.get("ENV") or "").strip().lower()
    cache_type_env = (os.getenv("CACHE_TYPE") or "").strip()

    # Explicit env takes precedence, otherwise default by env.
    if cache_type_env:
        selected_cache_type = cache_type_env
    elif env_name == "production":
        selected_cache_type = "RedisCache"
    else:
        selected_cache_type = "SimpleCache"

    cache_config: dict[str, Any] = {
        "CACHE_TYPE": selected_cache_type,
        "CACHE_DEFAULT_TIMEOUT": default_timeout,
    }

    lowered = selected_cache_type.lower()
    if lowered in {"redis", "rediscache"}:
        redis_url = (os.getenv("CACHE_REDIS_URL") or os.getenv("REDIS_URL") or "").strip()
        if redis_url:
            cache_config["CACHE_TYPE"] = "RedisCache"
            cache_config["CACHE_REDIS_URL"] = redis_url
        else:
            if env_name == "production":
                app.logger.error(
                    "CACHE_TYPE is RedisCache but CACHE_REDIS_URL is not set; falling back to SimpleCache."
                )
            cache_config["CACHE_TYPE"] = "SimpleCache"
    elif lowered == "nullcache":
        cache_config["CACHE_TYPE"] = "NullCache"
    elif lowered != "simplecache":
        app.logger.error(
            "Unsupported CACHE_TYPE '%s'; falling back to SimpleCache.", selected_cache_type
        )
        cache_config["CACHE_TYPE"] = "SimpleCache"
    return cache_config


def init_extensions(app: Flask, default_timeout: int) -> None:
    """Configure cache and rate limiter."""
    limiter_version = getattr(flask_limiter, "__version__", "0")
    app.logger.info("Flask-Limiter version: %s", limiter_version)

    cache_config = _select_cache_config(app, default_timeout)
    cache.init_app(app, config=cache_config)
    app.config.update(cache_config)
    app.logger.info("Cache backend: %s", app.config["CACHE_TYPE"])

    storage_uri = (
        app.config.get("RATELIMIT_STORAGE_URI")
        or os.getenv("RATELIMIT_STORAGE_URI")
        or ""
    ).strip()
    if not storage_uri:
        if app.config["CACHE_TYPE"] == "RedisCache" and app.config.get("CACHE_REDIS_URL"):
            storage_uri = app.config["CACHE_REDIS_URL"]
        else:
            storage_uri = "memory://"

    try:
        storage_from_string(storage_uri)
    except Exception as exc:  # pragma: no cover - fail-safe for boot issues
        app.logger.error(
            "Failed to initialize rate limiter storage '%s': %s. Falling back to memory://",
            storage_uri,
            exc,
        )
        storage_uri = "memory://"

    app.config["RATELIMIT_STORAGE_URI"] = storage_uri
    app.config.setdefault(
        "RATELIMIT_ENABLED",
        os.getenv("RATELIMIT_ENABLED", "true").strip().lower() in _TRUE_VALUES,
    )

    limiter.init_app(app)
    app.logger.info("Rate limiter storage: %s", storage_uri)


def _allowed_origins() -> list[str]:
    origins = [
        origin.strip()
        for origin in settings.ALLOWED_ORIGINS.split(",")
        if origin.strip()
    ]
    for local in ("http://localhost:3000", "http://localhost:5000", "http://127.0.0.1:5000"):
        if local not in origins:
            origins.append(local)
    return origins


def _register_request_hooks(app: Flask) -> None:
    access_logger = structlog.get_logger("resolver.http")

    @app.before_request
    def bind_request_id():
        clear_correlation_context()
        ensure_correlation_id(request.headers.get(REQUEST_ID_HEADER))
        structlog.contextvars.bind_contextvars(path=request.path)
        g.request_started = time.perf_counter()

    @app.after_request
    def echo_request_id(response):
        correlation_id = getattr(g, "correlation_id", None)
        if correlation_id:
            response.headers[REQUEST_ID_HEADER] = correlation_id
        started = getattr(g, "request_started", None)
        elapsed_ms = int((time.perf_counter() - started) * 1000) if started else None
        access_logger.info(
            event="http.response",
            operation="http.response",
            method=request.method,
            status_code=response.status_code,
            elapsed_ms=elapsed_ms,
        )
        return response


def _register_error_handlers(app: Flask) -> None:
    logger = logging.getLogger(__name__)

    def http_error(exc: HTTPException):
        payload: dict[str, Any] = {"error": exc.name, "status": exc.code}
        if exc.code == 429:
            payload["detail"] = str(exc.description)
        return jsonify(payload), exc.code

    def internal_server_error(exc):
        logger.error("An internal server error occurred: %s", exc, exc_info=True)
        return jsonify({"error": "Internal Server Error", "status": 500}), 500

    for code in (400, 404, 405, 429):
        app.register_error_handler(code, http_error)
    app.register_error_handler(500, internal_server_error)


def create_app(config_overrides: Optional[Mapping[str, Any]] = None):
    """Create and configure an instance of the Flask application."""
    load_dotenv()

    # Set up logging as early as possible
    setup_logging()
    logger = logging.getLogger(__name__)

    logger.info("Application starting with configuration:")
    logger.info("  ENV: %s", settings.ENV)
    logger.info("  DEFAULT_SOURCE: %s", settings.DEFAULT_SOURCE)
    logger.info("  CACHE_TYPE (env): %s", os.getenv("CACHE_TYPE"))
    logger.info("  RATELIMIT_STORAGE_URI (env): %s", os.getenv("RATELIMIT_STORAGE_URI"))

    app = Flask(__name__, instance_relative_config=True)
    app.config.from_mapping(
        ENV=settings.ENV,
        RATELIMIT_HEADERS_ENABLED=True,
    )
    app.json.sort_keys = False
    if config_overrides:
        app.config.update(config_overrides)

    init_extensions(app, settings.RESOLVE_CACHE_TIMEOUT)

    app.config["ALLOWED_ORIGINS"] = _allowed_origins()
    CORS(app, origins=app.config["ALLOWED_ORIGINS"], expose_headers=[REQUEST_ID_HEADER])

    _register_request_hooks(app)
    _register_error_handlers(app)

    from .routes import resolve, utility

    if "resolve" not in app.blueprints:
        app.register_blueprint(resolve.bp)
    if "utility" not in app.blueprints:
        app.register_blueprint(utility.bp)

    return app
