import logging

from resolver.services.browser import RenderedBrowserStrategy
from resolver.services.generation import GenerativeStrategy

logger = logging.getLogger(__name__)


def check_browser_health() -> tuple[bool, str]:
    """Reports whether the rendered-browser strategy can run."""
    available, reason = RenderedBrowserStrategy().availability()
    if not available:
        logger.info("Browser strategy unavailable: %s", reason)
        return False, reason or "Unavailable"
    return True, "OK"


def check_generation_health() -> tuple[bool, str]:
    """Reports whether a generation credential is configured.

    No request is sent to the provider.
    """
    strategy = GenerativeStrategy()
    available, reason = strategy.availability()
    if not available:
        logger.info("Generation strategy unavailable: %s", reason)
        return False, reason or "Unavailable"
    return True, f"OK ({strategy.config.provider})"


def check_all_services() -> tuple[dict[str, str], bool]:
    """Checks the optional fallback strategies and returns a summary.

    Returns:
        A tuple containing:
        - A dictionary with strategy names as keys and ``"OK"`` or the
          unavailability reason as values.
        - ``True`` when every fallback strategy is available. Plain fetching
          needs no collaborator, so the service still answers when this is
          ``False``; the status is informational.
    """
    service_checks = {
        "browser": check_browser_health,
        "generation": check_generation_health,
    }

    results = {}
    overall_healthy = True

    for service, check_func in service_checks.items():
        is_healthy, status = check_func()
        results[service] = status
        if not is_healthy:
            overall_healthy = False

    return results, overall_healthy
