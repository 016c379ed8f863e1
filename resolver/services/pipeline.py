"""Strategy chain that turns a topic into a :class:`ResolutionResult`.

Strategies run strictly one after another, cheapest first. The first one to
return content longer than the source's acceptance floor wins and nothing
after it is consulted. When every strategy declines the caller receives a
miss record pointing at the source's search page rather than an error.
"""

from __future__ import annotations

import time
from typing import Iterable, Optional, Tuple

import structlog

from resolver.config import settings
from resolver.models.resolution import (
    ResolutionDebug,
    ResolutionResult,
    StrategyName,
)
from resolver.services.browser import RenderedBrowserStrategy
from resolver.services.cancellation import CancellationToken
from resolver.services.candidates import generate_candidates, normalise_topic
from resolver.services.exceptions import InvalidInput, StrategyDeclined
from resolver.services.extractor import sanitize
from resolver.services.generation import GenerativeStrategy
from resolver.services.plain_fetch import PlainFetchStrategy
from resolver.services.sources import SOURCES, SourceProfile, get_source
from resolver.services.strategies import (
    AttemptContext,
    ResolutionStrategy,
    StrategyRegistry,
    meets_floor,
)
from resolver.utils.correlation import bind_resolution_context

logger = structlog.get_logger(__name__)

STRATEGY_ORDER: Tuple[str, ...] = (
    StrategyName.PLAIN_FETCH.value,
    StrategyName.RENDERED_BROWSER.value,
    StrategyName.GENERATIVE.value,
)


def default_registry() -> StrategyRegistry:
    return StrategyRegistry(
        [PlainFetchStrategy(), RenderedBrowserStrategy(), GenerativeStrategy()]
    )


def default_strategies() -> list[ResolutionStrategy]:
    return default_registry().ordered(STRATEGY_ORDER)


def resolve_source(name: Optional[str]) -> SourceProfile:
    """Look up a source profile, defaulting to ``DEFAULT_SOURCE``."""
    profile = get_source(name or settings.DEFAULT_SOURCE)
    if profile is None:
        raise InvalidInput(f"Unknown source: {name}")
    return profile


def _availability(strategy: ResolutionStrategy) -> Tuple[bool, Optional[str]]:
    try:
        return strategy.availability()
    except Exception as exc:
        return False, f"availability_check_failed: {exc}"


def resolve_with_debug(
    topic: Optional[str],
    source: Optional[str] = None,
    *,
    strategies: Optional[Iterable[ResolutionStrategy]] = None,
    token: Optional[CancellationToken] = None,
) -> Tuple[ResolutionResult, ResolutionDebug]:
    """Resolve ``topic`` and return the result together with its diagnostics.

    Only :class:`InvalidInput` escapes; every strategy failure is recorded
    as a decline and the chain moves on.
    """
    profile = resolve_source(source)
    cleaned = normalise_topic(topic)
    candidates = generate_candidates(cleaned, profile)

    token = token or CancellationToken(budget_seconds=settings.RESOLVE_BUDGET_SECONDS)
    debug = ResolutionDebug()
    context = AttemptContext(profile=profile, token=token, debug=debug)
    pipeline = list(strategies) if strategies is not None else default_strategies()

    bind_resolution_context(cleaned, profile.name)
    started = time.perf_counter()

    for strategy in pipeline:
        name = strategy.name.value
        available, reason = _availability(strategy)
        debug.strategies[name] = {"available": available, "reason": reason}
        if not available:
            debug.note(f"{name}: unavailable ({reason})")
            logger.info(
                event="strategy_skipped",
                operation="resolver.strategy_attempt",
                strategy=name,
                reason=reason,
            )
            continue

        if token.is_cancelled():
            debug.note(f"{name}: not attempted (cancelled)")
            logger.warning(
                event="resolution_cancelled",
                operation="resolver.strategy_attempt",
                strategy=name,
            )
            break

        attempt_started = time.perf_counter()
        status = "declined"
        extracted = None
        try:
            extracted = strategy.attempt(cleaned, candidates, context)
        except StrategyDeclined as exc:
            status = exc.reason
            debug.note(f"{name}: {exc.reason} ({exc})")
        except Exception as exc:
            status = "error"
            debug.note(f"{name}: error ({exc.__class__.__name__}: {exc})")
            logger.exception(
                event="strategy_error",
                operation="resolver.strategy_attempt",
                strategy=name,
                error=str(exc),
            )

        elapsed_ms = int((time.perf_counter() - attempt_started) * 1000)
        if extracted is not None:
            extracted.body = sanitize(extracted.body, profile.brand_names)
        if extracted is not None and meets_floor(extracted.body, profile.acceptance_floor):
            result = ResolutionResult.from_content(
                extracted, strategy.name, profile.miss_url(cleaned)
            )
            if not result.title:
                result.title = cleaned
            logger.info(
                event="resolution_completed",
                operation="resolver.strategy_attempt",
                strategy=name,
                status="accepted",
                url=result.source_url,
                chars=len(result.content),
                elapsed_ms=elapsed_ms,
            )
            return result, debug

        if extracted is not None:
            status = "below_floor"
            debug.note(f"{name}: content below floor")
        elif status == "declined":
            debug.note(f"{name}: declined")
        logger.info(
            event="strategy_declined",
            operation="resolver.strategy_attempt",
            strategy=name,
            status=status,
            elapsed_ms=elapsed_ms,
        )

    miss = ResolutionResult.miss(cleaned, profile.miss_url(cleaned))
    logger.info(
        event="resolution_missed",
        operation="resolver.resolve",
        status="not_found",
        url=miss.source_url,
        tried=len(debug.tried_urls),
        elapsed_ms=int((time.perf_counter() - started) * 1000),
    )
    return miss, debug


def resolve(
    topic: Optional[str],
    source: Optional[str] = None,
    *,
    strategies: Optional[Iterable[ResolutionStrategy]] = None,
    token: Optional[CancellationToken] = None,
) -> ResolutionResult:
    result, _ = resolve_with_debug(topic, source, strategies=strategies, token=token)
    return result


def available_sources() -> list[dict]:
    return [
        {
            "name": profile.name,
            "baseUrl": profile.base_url,
            "mode": profile.extraction_mode,
            "acceptanceFloor": profile.acceptance_floor,
        }
        for profile in SOURCES.values()
    ]
