"""Headless-browser rendering for JavaScript-populated article pages.

One browser process serves a whole resolution request: it is launched
once, shared by every candidate URL, and closed on every exit path.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Callable, Optional, Sequence
from urllib.parse import urljoin

import structlog

from resolver.config import BrowserConfig
from resolver.models.resolution import ExtractedContent, StrategyName
from resolver.services.exceptions import ResolutionCancelled, ResourceUnavailable
from resolver.services.extractor import PROBE_TEXT_CHARS, extract, is_not_found
from resolver.services.fetch import USER_AGENT
from resolver.services.sources import MODE_MARKDOWN
from resolver.services.strategies import AttemptContext, ResolutionStrategy, meets_floor

try:
    from playwright.sync_api import sync_playwright
except ModuleNotFoundError:  # pragma: no cover - optional dependency
    sync_playwright: Optional[Callable[[], Any]] = None  # type: ignore[no-redef]

logger = structlog.get_logger(__name__)

LAUNCH_ARGS = [
    "--no-sandbox",
    "--disable-setuid-sandbox",
    "--disable-dev-shm-usage",
    "--disable-gpu",
]
VIEWPORT = {"width": 1366, "height": 900}
MARKER_POLL_MS = 250

NOISE_SELECTORS = [
    "script",
    "style",
    "noscript",
    "nav",
    "header",
    "footer",
    "aside",
    "iframe",
    '[role="dialog"]',
    '[aria-modal="true"]',
    '[class*="cookie"]',
    '[class*="consent"]',
    '[class*="modal"]',
    '[class*="popup"]',
    '[class*="advert"]',
    '[class*="banner"]',
    '[class~="ad"]',
    '[class*="share"]',
]

# Resolves once a content container exists or enough text has rendered.
MARKER_SCRIPT = """
({ selectors, minChars }) => {
  for (const selector of selectors) {
    try {
      if (document.querySelector(selector)) return true;
    } catch (e) {}
  }
  const text = (document.body && document.body.innerText) || '';
  return text.trim().length >= minChars;
}
"""

CONTAINER_SCRIPT = """
(selectors) => selectors.some((selector) => {
  try {
    return Boolean(document.querySelector(selector));
  } catch (e) {
    return false;
  }
})
"""

EXTRACT_SCRIPT = """
({ selectors, noise, useBody }) => {
  const heading = document.querySelector('h1');
  const title = (heading && heading.innerText.trim()) || document.title || '';
  for (const selector of noise) {
    try {
      document.querySelectorAll(selector).forEach((el) => el.remove());
    } catch (e) {}
  }
  let root = null;
  if (!useBody) {
    for (const selector of selectors) {
      let el = null;
      try {
        el = document.querySelector(selector);
      } catch (e) {
        el = null;
      }
      if (el && (el.innerText || '').trim().length > 0) {
        root = el;
        break;
      }
    }
  }
  if (!root) root = document.body;
  return {
    html: root ? root.outerHTML : '',
    text: root ? (root.innerText || '') : '',
    title: title,
    pageText: document.body ? (document.body.innerText || '') : '',
    root: root ? root.tagName.toLowerCase() : null,
  };
}
"""


@dataclass
class _SessionState:
    searched: bool = False


def _probe(payload: dict[str, Any]) -> str:
    return f"{payload.get('title') or ''} {(payload.get('text') or '')[:PROBE_TEXT_CHARS]}"


class RenderedBrowserStrategy(ResolutionStrategy):
    """Render candidates in headless Chromium and extract the hydrated DOM."""

    name = StrategyName.RENDERED_BROWSER

    def __init__(
        self,
        config: Optional[BrowserConfig] = None,
        *,
        playwright_factory: Optional[Callable[[], Any]] = None,
    ) -> None:
        self._config = config or BrowserConfig.from_env()
        self._factory = playwright_factory

    def _driver(self) -> Optional[Callable[[], Any]]:
        return self._factory or sync_playwright

    def availability(self):
        if not self._config.enabled:
            return False, "disabled"
        if self._driver() is None:
            return False, "playwright_not_installed"
        return True, None

    def attempt(
        self,
        topic: str,
        candidates: Sequence[str],
        context: AttemptContext,
    ) -> Optional[ExtractedContent]:
        driver = self._driver()
        if driver is None:
            raise ResourceUnavailable(
                "Playwright is not installed", reason="playwright_not_installed"
            )
        context.token.raise_if_cancelled()

        with driver() as playwright:
            browser = playwright.chromium.launch(
                headless=self._config.headless, args=LAUNCH_ARGS
            )
            try:
                page = browser.new_page(user_agent=USER_AGENT, viewport=VIEWPORT)
                state = _SessionState()
                for url in candidates:
                    context.token.raise_if_cancelled()
                    try:
                        extracted = self._attempt_candidate(
                            page, url, topic, context, state
                        )
                    except ResolutionCancelled:
                        raise
                    except Exception as exc:
                        logger.info(
                            event="candidate_rejected",
                            operation="browser.candidate",
                            url=url,
                            status="navigation_error",
                            error=str(exc),
                        )
                        continue
                    if extracted is not None:
                        return extracted
                return None
            finally:
                try:
                    browser.close()
                except Exception as exc:
                    logger.warning(
                        event="browser_close_failed",
                        operation="browser.close",
                        error=str(exc),
                    )

    def _navigate(self, page, url: str, context: AttemptContext) -> None:
        context.debug.record_url(url)
        timeout_ms = context.token.timeout_for(
            self._config.navigation_timeout_ms / 1000
        ) * 1000
        page.goto(url, wait_until="domcontentloaded", timeout=timeout_ms)
        page.wait_for_timeout(
            context.token.timeout_for(self._config.settle_ms / 1000) * 1000
        )

    def _wait_for_marker(self, page, context: AttemptContext) -> bool:
        profile = context.profile
        timeout_ms = context.token.timeout_for(
            self._config.marker_timeout_ms / 1000
        ) * 1000
        try:
            page.wait_for_function(
                MARKER_SCRIPT,
                arg={
                    "selectors": list(profile.marker_selectors),
                    "minChars": profile.acceptance_floor,
                },
                timeout=timeout_ms,
                polling=MARKER_POLL_MS,
            )
        except Exception as exc:
            logger.debug(
                event="marker_timeout",
                operation="browser.marker",
                url=page.url,
                error=str(exc),
            )
            return False
        return True

    def _has_container(self, page, context: AttemptContext) -> bool:
        return bool(
            page.evaluate(CONTAINER_SCRIPT, list(context.profile.marker_selectors))
        )

    def _follow_search_result(
        self, page, topic: str, context: AttemptContext
    ) -> bool:
        profile = context.profile
        self._navigate(page, profile.search_url(topic), context)
        link = page.query_selector(profile.search_link_selector())
        href = link.get_attribute("href") if link is not None else None
        if not href:
            context.debug.note(f"{self.name.value}: no article link in search UI")
            return False
        target = urljoin(profile.base_url + "/", href)
        logger.info(
            event="search_resolved",
            operation="browser.search",
            topic=topic,
            article_url=target,
        )
        self._navigate(page, target, context)
        return True

    def _read_content(self, page, context: AttemptContext, *, use_body: bool) -> dict:
        return page.evaluate(
            EXTRACT_SCRIPT,
            {
                "selectors": list(context.profile.content_selectors),
                "noise": NOISE_SELECTORS,
                "useBody": use_body,
            },
        ) or {}

    def _attempt_candidate(
        self,
        page,
        url: str,
        topic: str,
        context: AttemptContext,
        state: _SessionState,
    ) -> Optional[ExtractedContent]:
        profile = context.profile
        self._navigate(page, url, context)
        hydrated = self._wait_for_marker(page, context)
        is_article = self._has_container(page, context)

        if not is_article and not state.searched:
            state.searched = True
            if not self._follow_search_result(page, topic, context):
                return None
            hydrated = self._wait_for_marker(page, context)
            is_article = self._has_container(page, context)

        skeptical = not (hydrated and is_article)

        payload = self._read_content(page, context, use_body=False)
        text = (payload.get("text") or "").strip()
        if is_not_found(_probe(payload)) or not meets_floor(text, profile.acceptance_floor):
            payload = self._read_content(page, context, use_body=True)

        if is_not_found(_probe(payload)):
            logger.info(
                event="candidate_rejected",
                operation="browser.candidate",
                url=page.url,
                status="not_found",
            )
            return None
        if skeptical and is_not_found(payload.get("pageText")):
            logger.info(
                event="candidate_rejected",
                operation="browser.candidate",
                url=page.url,
                status="not_found_skeptical",
            )
            return None

        extracted = extract(
            payload.get("html") or "",
            payload.get("title") or topic,
            MODE_MARKDOWN,
            base_url=page.url,
            root_selectors=profile.content_selectors,
            brand_names=profile.brand_names,
        )
        if not meets_floor(extracted.body, profile.acceptance_floor):
            logger.info(
                event="candidate_rejected",
                operation="browser.candidate",
                url=page.url,
                status="below_floor",
                chars=len(extracted.body),
                skeptical=skeptical,
            )
            return None

        logger.info(
            event="candidate_accepted",
            operation="browser.candidate",
            url=page.url,
            chars=len(extracted.body),
            root=payload.get("root"),
            skeptical=skeptical,
        )
        extracted.source_url = page.url
        return extracted
