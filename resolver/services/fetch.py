import logging
import os
import random
import threading
import time
from typing import Optional

import requests
from requests.adapters import HTTPAdapter

from resolver.services.cancellation import CancellationToken

logger = logging.getLogger(__name__)

USER_AGENT = os.getenv(
    "RESOLVER_USER_AGENT",
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36",
)
FETCH_TIMEOUT_SECONDS = float(os.getenv("FETCH_TIMEOUT_SECONDS", "8"))
ACCEPT_LANG_OPTIONS = [
    value.strip()
    for value in os.getenv(
        "FETCH_ACCEPT_LANGUAGE_OPTIONS", "en-US,en;q=0.9|en-GB,en;q=0.8|en;q=0.7"
    ).split("|")
    if value.strip()
]
ACCEPT_HEADER_OPTIONS = [
    value.strip()
    for value in os.getenv(
        "FETCH_ACCEPT_OPTIONS",
        "text/html,application/xhtml+xml,application/xml;q=0.9,*/*;q=0.8|text/html,application/xhtml+xml",
    ).split("|")
    if value.strip()
]

_session_lock = threading.Lock()
_session: requests.Session | None = None


def _single_shot_adapter() -> HTTPAdapter:
    # A timed-out or failed candidate is abandoned, never retried.
    return HTTPAdapter(max_retries=0, pool_connections=16, pool_maxsize=32)


def _get_session() -> requests.Session:
    global _session
    if _session is not None:
        return _session
    with _session_lock:
        if _session is not None:
            return _session
        sess = requests.Session()
        adapter = _single_shot_adapter()
        sess.mount("https://", adapter)
        sess.mount("http://", adapter)
        _session = sess
    return _session


def _build_headers(user_agent: Optional[str]) -> dict[str, str]:
    headers = {
        "User-Agent": user_agent or USER_AGENT,
        "Accept-Language": (
            random.choice(ACCEPT_LANG_OPTIONS)
            if ACCEPT_LANG_OPTIONS
            else "en-US,en;q=0.9"
        ),
        "Accept": (
            random.choice(ACCEPT_HEADER_OPTIONS)
            if ACCEPT_HEADER_OPTIONS
            else "text/html,application/xhtml+xml"
        ),
        "Cache-Control": "no-cache",
    }
    return headers


def fetch_page(
    url: str,
    *,
    session: Optional[requests.Session] = None,
    timeout: Optional[float] = None,
    token: Optional[CancellationToken] = None,
    user_agent: Optional[str] = None,
) -> dict:
    """Issue one timed, unauthenticated GET for ``url``.

    Returns a payload with ``html``/``final_url``/``status_code`` on a 2xx
    response, or ``{"error": ...}`` on timeout, connection failure or any
    other status. The request is never retried.
    """
    session = session or _get_session()
    requested = timeout or FETCH_TIMEOUT_SECONDS
    effective_timeout = token.timeout_for(requested) if token else requested
    headers = _build_headers(user_agent)
    started = time.perf_counter()

    try:
        logger.debug("Fetching %s (timeout %.1fs)", url, effective_timeout)
        response = session.get(
            url,
            headers=headers,
            timeout=effective_timeout,
            allow_redirects=True,
        )
    except requests.Timeout:
        logger.info(
            "fetch.timeout",
            extra={"url": url, "timeout_seconds": effective_timeout},
        )
        return {"error": f"Timed out after {effective_timeout:.1f}s", "url": url}
    except requests.RequestException as exc:
        logger.warning(
            "fetch.request_exception",
            extra={"url": url, "error": str(exc)},
        )
        return {"error": f"Failed to fetch URL: {exc}", "url": url}

    elapsed_ms = int((time.perf_counter() - started) * 1000)
    if not 200 <= response.status_code < 300:
        logger.info(
            "fetch.non_success_status",
            extra={"url": url, "status": response.status_code, "elapsed_ms": elapsed_ms},
        )
        return {
            "error": f"Failed to fetch URL: HTTP {response.status_code}",
            "url": url,
            "status_code": response.status_code,
        }

    payload = {
        "html": response.text,
        "final_url": response.url or url,
        "status_code": response.status_code,
        "elapsed_ms": elapsed_ms,
    }
    logger.debug(
        "fetch.success",
        extra={
            "url": payload["final_url"],
            "status": payload["status_code"],
            "elapsed_ms": elapsed_ms,
        },
    )
    return payload
