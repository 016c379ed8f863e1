from __future__ import annotations

import structlog
from flask import Blueprint, jsonify, request

from resolver.config import settings
from resolver.extensions import cache, limiter
from resolver.services import pipeline
from resolver.services.exceptions import InvalidInput
from resolver.services.sources import SOURCES, get_source

logger = structlog.get_logger(__name__)

bp = Blueprint("resolve", __name__)

_TRUTHY = {"1", "true", "yes", "on"}


def _wants_debug() -> bool:
    return (request.args.get("debug") or "").strip().lower() in _TRUTHY


def _should_skip_cache() -> bool:
    # Debug output describes one live run and is never served from cache.
    return request.method != "GET" or _wants_debug()


def _only_successful(rv) -> bool:
    if isinstance(rv, tuple):
        return len(rv) < 2 or rv[1] == 200
    return getattr(rv, "status_code", 200) == 200


def _unknown_source(name: str):
    return {"error": "Unknown source", "source": name, "sources": sorted(SOURCES)}, 400


def _resolve_response(source: str | None):
    topic = request.args.get("topic")
    if source is not None and get_source(source) is None:
        return _unknown_source(source)

    debug_requested = _wants_debug()
    try:
        result, debug = pipeline.resolve_with_debug(topic, source)
    except InvalidInput as exc:
        logger.info(
            event="resolve_rejected",
            operation="http.resolve",
            status=400,
            error=str(exc),
        )
        return {"error": str(exc)}, 400

    payload = result.to_dict()
    if debug_requested:
        payload["debug"] = debug.to_dict()
    return payload, 200


@bp.route("/resolve", methods=["GET"])
@limiter.limit(lambda: settings.RESOLVE_RATE_LIMIT)
@cache.cached(
    timeout=settings.RESOLVE_CACHE_TIMEOUT,
    query_string=True,
    unless=_should_skip_cache,
    response_filter=_only_successful,
)
def resolve_topic():
    """Resolve ``?topic=`` against ``?source=`` (default source otherwise)."""
    return _resolve_response(request.args.get("source") or None)


@bp.route("/api/<source>", methods=["GET"])
@limiter.limit(lambda: settings.RESOLVE_RATE_LIMIT)
@cache.cached(
    timeout=settings.RESOLVE_CACHE_TIMEOUT,
    query_string=True,
    unless=_should_skip_cache,
    response_filter=_only_successful,
)
def resolve_for_source(source: str):
    return _resolve_response(source)


@bp.route("/sources", methods=["GET"])
@limiter.exempt
def list_sources():
    return jsonify(
        {"default": settings.DEFAULT_SOURCE, "sources": pipeline.available_sources()}
    )
