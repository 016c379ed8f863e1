"""Static descriptions of the knowledge sources the resolver understands."""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import Optional, Tuple
from urllib.parse import quote, urlencode

MODE_PARAGRAPHS = "paragraphs"
MODE_MARKDOWN = "markdown"

_BASE_SYSTEM_PROMPT = (
    "You are writing encyclopedia articles. Write comprehensive, factual and "
    "well-structured content in a formal, neutral tone.\n\n"
    "Format your response in Markdown with:\n"
    "- A clear introduction establishing the subject\n"
    "- Multiple sections with ## headers\n"
    "- Historical context and key facts\n"
    "- No self-references to being an AI, a model or an encyclopedia"
)


@dataclass(frozen=True)
class SourceProfile:
    name: str
    base_url: str
    article_prefixes: Tuple[str, ...]
    slug_separator: str
    extraction_mode: str
    acceptance_floor: int
    search_path: str
    search_param: str
    no_results_phrases: Tuple[str, ...] = ()
    content_selectors: Tuple[str, ...] = ("article", "main", "body")
    marker_selectors: Tuple[str, ...] = ("article", "main")
    brand_names: Tuple[str, ...] = ()
    system_prompt: str = _BASE_SYSTEM_PROMPT
    _link_pattern: re.Pattern[str] = field(init=False, repr=False, compare=False)

    def __post_init__(self) -> None:
        prefixes = "|".join(re.escape(prefix) for prefix in self.article_prefixes)
        pattern = re.compile(
            rf"""href=["']((?:{re.escape(self.base_url)})?/(?:{prefixes})/[^"'?#\s]+)["']""",
            re.IGNORECASE,
        )
        object.__setattr__(self, "_link_pattern", pattern)

    def article_url(self, prefix: str, slug: str) -> str:
        return f"{self.base_url}/{prefix}/{slug}"

    def search_url(self, topic: str) -> str:
        query = urlencode({self.search_param: topic.strip()})
        return f"{self.base_url}{self.search_path}?{query}"

    def miss_url(self, topic: str) -> str:
        return self.search_url(topic)

    def first_article_link(self, html: str) -> Optional[str]:
        """Return the first article-style link in a search results page."""
        for match in self._link_pattern.finditer(html or ""):
            href = match.group(1)
            if href.startswith("/"):
                href = f"{self.base_url}{href}"
            return href
        return None

    def search_link_selector(self) -> str:
        return ", ".join(f'a[href*="/{prefix}/"]' for prefix in self.article_prefixes)

    def encode_slug(self, slug: str) -> str:
        return quote(slug, safe="_-")


BRITANNICA = SourceProfile(
    name="britannica",
    base_url="https://www.britannica.com",
    article_prefixes=(
        "topic",
        "biography",
        "place",
        "science",
        "technology",
        "animal",
        "plant",
        "event",
        "art",
        "sports",
    ),
    slug_separator="-",
    extraction_mode=MODE_PARAGRAPHS,
    acceptance_floor=500,
    search_path="/search",
    search_param="query",
    no_results_phrases=("No results found", "did not match any", "0 results"),
    content_selectors=(
        "article",
        "main",
        ".topic-content",
        ".md-article",
        '[class*="article-content"]',
        "body",
    ),
    marker_selectors=("article", ".topic-content", '[class*="article"]'),
    brand_names=("britannica",),
    system_prompt=_BASE_SYSTEM_PROMPT
    + "\n- Scholarly and authoritative register",
)

GROKIPEDIA = SourceProfile(
    name="grokipedia",
    base_url="https://grokipedia.com",
    article_prefixes=("page",),
    slug_separator="_",
    extraction_mode=MODE_MARKDOWN,
    acceptance_floor=150,
    search_path="/search",
    search_param="q",
    no_results_phrases=("No results found", "No results for", "0 results"),
    content_selectors=(
        "article",
        "main",
        '[class*="article-content"]',
        '[class*="wiki-content"]',
        '[class*="page-content"]',
        '[class*="entry-content"]',
        '[role="main"]',
        "#content",
        "#main-content",
        ".prose",
        '[class*="markdown"]',
        "body",
    ),
    marker_selectors=(
        "article",
        "main",
        ".content",
        '[class*="article"]',
        '[class*="content"]',
    ),
    brand_names=("grokipedia",),
)

SOURCES: dict[str, SourceProfile] = {
    profile.name: profile for profile in (BRITANNICA, GROKIPEDIA)
}


def get_source(name: Optional[str]) -> Optional[SourceProfile]:
    if not name:
        return None
    return SOURCES.get(name.strip().lower())
