from flask import Blueprint, jsonify

from resolver.extensions import limiter
from resolver.services import health as health_service

bp = Blueprint("utility", __name__)


@bp.route("/health")
@limiter.exempt
def health():
    """Report which fallback strategies are ready.

    Always 200: the resolver keeps answering (at worst with miss records)
    when the browser or the generation backend is unavailable.
    """
    results, overall_healthy = health_service.check_all_services()
    status = "ok" if overall_healthy else "degraded"
    return jsonify({"status": status, "details": results}), 200


@bp.route("/healthz")
@limiter.exempt
def healthz():
    """Lightweight liveness probe."""
    return "ok", 200


@bp.route("/robots.txt")
@limiter.exempt
def robots_txt():
    return "User-agent: *\nDisallow: /resolve\nDisallow: /api/\n", 200, {
        "Content-Type": "text/plain"
    }
