from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Callable, Iterable, Optional, Sequence

import requests
import structlog

from resolver.models.resolution import ExtractedContent, RawPage, StrategyName
from resolver.services.exceptions import NetworkError
from resolver.services.extractor import extract, is_not_found, page_probe_text
from resolver.services.fetch import fetch_page
from resolver.services.strategies import AttemptContext, ResolutionStrategy, meets_floor

logger = structlog.get_logger(__name__)

Fetcher = Callable[..., dict]


@dataclass
class _FetchTally:
    requests: int = 0
    transport_failures: int = 0

    def record(self, payload: dict) -> None:
        self.requests += 1
        # HTTP error statuses carry a status code; transport failures do not.
        if payload.get("error") and payload.get("status_code") is None:
            self.transport_failures += 1

    @property
    def all_failed(self) -> bool:
        return self.requests > 0 and self.transport_failures == self.requests


def has_no_results(html: str, phrases: Iterable[str]) -> bool:
    """True when a search page states it found nothing.

    Phrases are matched on word boundaries so "10 results" is not read as
    "0 results".
    """
    for phrase in phrases:
        if re.search(rf"(?<![\w]){re.escape(phrase)}(?![\w])", html or "", re.IGNORECASE):
            return True
    return False


class PlainFetchStrategy(ResolutionStrategy):
    """Direct HTTP GET of candidate URLs followed by static extraction."""

    name = StrategyName.PLAIN_FETCH

    def __init__(
        self,
        *,
        session: Optional[requests.Session] = None,
        fetcher: Optional[Fetcher] = None,
        timeout: Optional[float] = None,
    ) -> None:
        self._session = session
        self._fetcher = fetcher
        self._timeout = timeout

    def _fetch(self, url: str, context: AttemptContext, tally: _FetchTally) -> dict:
        fetcher = self._fetcher or fetch_page
        payload = fetcher(
            url, session=self._session, timeout=self._timeout, token=context.token
        )
        tally.record(payload)
        return payload

    def attempt(
        self,
        topic: str,
        candidates: Sequence[str],
        context: AttemptContext,
    ) -> Optional[ExtractedContent]:
        tally = _FetchTally()
        for url in candidates:
            context.token.raise_if_cancelled()
            extracted = self._fetch_and_extract(url, topic, context, tally)
            if extracted is not None:
                return extracted
        context.token.raise_if_cancelled()
        extracted = self._search_fallback(topic, context, tally)
        if extracted is None and tally.all_failed:
            raise NetworkError(
                f"All {tally.requests} requests failed before a response arrived",
                url=context.profile.base_url,
            )
        return extracted

    def _fetch_and_extract(
        self, url: str, topic: str, context: AttemptContext, tally: _FetchTally
    ) -> Optional[ExtractedContent]:
        profile = context.profile
        context.debug.record_url(url)
        payload = self._fetch(url, context, tally)
        if payload.get("error"):
            logger.info(
                event="candidate_rejected",
                operation="plain_fetch.candidate",
                url=url,
                status="fetch_error",
                status_code=payload.get("status_code"),
                error=payload.get("error"),
            )
            return None

        page = RawPage(html=payload.get("html") or "", final_url=payload.get("final_url") or url)
        if is_not_found(page_probe_text(page.html)):
            logger.info(
                event="candidate_rejected",
                operation="plain_fetch.candidate",
                url=page.final_url,
                status="not_found",
            )
            return None

        extracted = extract(
            page.html,
            topic,
            profile.extraction_mode,
            base_url=page.final_url,
            root_selectors=profile.content_selectors,
            brand_names=profile.brand_names,
        )
        if not meets_floor(extracted.body, profile.acceptance_floor):
            logger.info(
                event="candidate_rejected",
                operation="plain_fetch.candidate",
                url=page.final_url,
                status="below_floor",
                chars=len(extracted.body),
                floor=profile.acceptance_floor,
            )
            return None

        logger.info(
            event="candidate_accepted",
            operation="plain_fetch.candidate",
            url=page.final_url,
            chars=len(extracted.body),
        )
        extracted.source_url = page.final_url
        return extracted

    def _search_fallback(
        self, topic: str, context: AttemptContext, tally: _FetchTally
    ) -> Optional[ExtractedContent]:
        profile = context.profile
        search_url = profile.search_url(topic)
        context.debug.record_url(search_url)
        payload = self._fetch(search_url, context, tally)
        if payload.get("error"):
            context.debug.note(f"{self.name.value}: search request failed")
            return None

        html = payload.get("html") or ""
        if has_no_results(html, profile.no_results_phrases):
            context.debug.note(f"{self.name.value}: search returned no results")
            logger.info(
                event="search_empty", operation="plain_fetch.search", url=search_url
            )
            return None

        link = profile.first_article_link(html)
        if not link:
            context.debug.note(f"{self.name.value}: no article link in search results")
            return None

        logger.info(
            event="search_resolved",
            operation="plain_fetch.search",
            url=search_url,
            article_url=link,
        )
        return self._fetch_and_extract(link, topic, context, tally)
