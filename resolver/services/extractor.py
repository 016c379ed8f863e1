"""HTML to text/markdown conversion shared by every resolution strategy.

Two modes are supported:

``paragraphs``
    Plain-text extraction for static encyclopedia pages: substantial ``<p>``
    blocks under a synthesized ``# Title`` heading.
``markdown``
    Structure-preserving conversion (headings, emphasis, links, lists,
    quotes, code) for community and rendered pages.

Both modes end in :func:`sanitize`, and both are pure functions of their
input so repeated calls on the same HTML produce identical output.
"""

from __future__ import annotations

import re
from typing import Iterable, Optional
from urllib.parse import urljoin

from bs4 import BeautifulSoup
from bs4.element import (
    CData,
    Comment,
    Declaration,
    Doctype,
    NavigableString,
    ProcessingInstruction,
    Tag,
)
import structlog

from resolver.models.resolution import ExtractedContent
from resolver.services.sources import MODE_MARKDOWN, MODE_PARAGRAPHS
from resolver.utils.text_cleaner import clean_text, collapse_blank_lines, normalise_spacing

logger = structlog.get_logger(__name__)

MIN_PARAGRAPH_CHARS = 50
ROOT_MIN_TEXT_CHARS = 300
PROBE_TEXT_CHARS = 600

DISCLAIMER = (
    "Our editors will review what you\u2019ve submitted and determine whether "
    "to revise the article."
)
DISCLAIMER_VARIANTS: tuple[str, ...] = (DISCLAIMER, DISCLAIMER.replace("\u2019", "'"))

NOT_FOUND_PHRASES: tuple[str, ...] = ("page not found", "does not exist", "no article found")
_STANDALONE_404 = re.compile(r"\b404\b")

NOISE_TAGS: tuple[str, ...] = (
    "script",
    "style",
    "noscript",
    "template",
    "nav",
    "footer",
    "header",
    "aside",
    "form",
    "button",
    "input",
    "iframe",
    "svg",
)
_NOISE_CLASS = re.compile(
    r"(?:^|[-_])(?:ad|ads|advert|advertisement|share|sharing|social|chatbot|"
    r"related|sidebar|cite|citation|feedback|cookie|consent|modal|popup|"
    r"newsletter|banner)(?:$|[-_])",
    re.IGNORECASE,
)
_PROTECTED_TAGS = {"html", "body", "article", "main"}

JUNK_PARAGRAPH_PHRASES: tuple[str, ...] = (
    "Ask the Chatbot",
    "Learn about this topic",
    "Read More",
    "Cite this article",
    "Written by",
    "Fact-checked by",
    "Last Updated",
)

MARKDOWN_ROOT_SELECTORS: tuple[str, ...] = (
    "article",
    "main",
    '[class*="article-content"]',
    '[class*="content"]',
    '[class*="article"]',
    "body",
)

_HEADINGS = {"h1", "h2", "h3", "h4", "h5", "h6"}
_BLOCKS = {
    "div",
    "section",
    "article",
    "main",
    "figure",
    "figcaption",
    "table",
    "dl",
    "dt",
    "dd",
    "details",
    "summary",
}
_WHITESPACE = re.compile(r"\s+")


def _initialise_soup(html: str) -> Optional[BeautifulSoup]:
    try:
        return BeautifulSoup(html, "lxml")  # type: ignore[call-arg]
    except Exception:  # pragma: no cover - fallback parser
        try:
            return BeautifulSoup(html, "html.parser")  # type: ignore[call-arg]
        except Exception:  # pragma: no cover - unexpected HTML edge case
            return None


def _collapse(text: str) -> str:
    return _WHITESPACE.sub(" ", text).strip()


def _strip_noise(root) -> None:
    """Remove navigation, scripts and ad/share widgets from ``root`` in place."""
    doomed = list(root.find_all(list(NOISE_TAGS)))
    doomed.extend(
        element
        for element in root.find_all(class_=_NOISE_CLASS)
        if element.name not in _PROTECTED_TAGS
    )
    for element in doomed:
        if getattr(element, "decomposed", False):
            continue
        element.decompose()


def _first_heading(root, fallback: str) -> str:
    node = root.find("h1") if root is not None else None
    if node is not None:
        text = _collapse(node.get_text(" "))
        if text:
            return text
    return fallback


def is_not_found(text: Optional[str]) -> bool:
    """Classify plain text as a "no such article" page."""
    if not text:
        return False
    lowered = text.lower()
    if any(phrase in lowered for phrase in NOT_FOUND_PHRASES):
        return True
    return bool(_STANDALONE_404.search(lowered))


def page_probe_text(html: str) -> str:
    """Title, first heading and the opening of the visible text of a page.

    Not-found checks run against this probe rather than the whole document
    so that an article merely mentioning "404" deep in its body is kept.
    """
    soup = _initialise_soup(html or "")
    if soup is None:
        return (html or "")[:PROBE_TEXT_CHARS]
    parts: list[str] = []
    if soup.title is not None:
        parts.append(_collapse(soup.title.get_text(" ")))
    heading = soup.find("h1")
    if heading is not None:
        parts.append(_collapse(heading.get_text(" ")))
    body = soup.body or soup
    for tag in body.find_all(["script", "style", "noscript", "template"]):
        if not getattr(tag, "decomposed", False):
            tag.decompose()
    parts.append(_collapse(body.get_text(" "))[:PROBE_TEXT_CHARS])
    return " ".join(part for part in parts if part)


def _scrub_brand(text: str, brand: str) -> str:
    # Leave hostnames and URL paths such as britannica.com untouched.
    pattern = re.compile(rf"(?<![\w./-]){re.escape(brand)}(?!\.\w)(?![\w/])", re.IGNORECASE)
    return pattern.sub("this encyclopedia", text)


def sanitize(text: Optional[str], brand_names: Iterable[str] = ()) -> str:
    """Strip stub disclaimers and self-references, then normalise spacing."""
    cleaned = clean_text(text)
    for variant in DISCLAIMER_VARIANTS:
        cleaned = cleaned.replace(variant, "")
    for brand in brand_names:
        cleaned = _scrub_brand(cleaned, brand)
    cleaned = re.sub(r"(?<!\S)\*\*[ \t]*\*\*(?!\S)", "", cleaned)
    cleaned = normalise_spacing(cleaned)
    return collapse_blank_lines(cleaned)


def _ensure_heading(body: str, title: str) -> str:
    if body.startswith("# "):
        return body
    if not body:
        return f"# {title}"
    return f"# {title}\n\n{body}"


def _select_paragraph_roots(soup) -> list:
    article = soup.find("article")
    if article is not None:
        return [article]
    sections = soup.select("section.topic-paragraph")
    if sections:
        return sections
    for name in ("main", "body"):
        node = soup.find(name)
        if node is not None:
            return [node]
    return [soup]


def extract_paragraphs(html: str, title_hint: str) -> ExtractedContent:
    """Collect substantial paragraphs from the main content root."""
    soup = _initialise_soup(html or "")
    if soup is None:
        return ExtractedContent(title=title_hint, body="")

    roots = _select_paragraph_roots(soup)
    title = _first_heading(roots[0], "") or _first_heading(soup, title_hint)

    paragraphs: list[str] = []
    seen: set[str] = set()
    for root in roots:
        _strip_noise(root)
        for node in root.find_all("p"):
            text = _collapse(node.get_text(" "))
            if len(text) <= MIN_PARAGRAPH_CHARS:
                continue
            if any(phrase in text for phrase in JUNK_PARAGRAPH_PHRASES):
                continue
            if text in seen:
                continue
            seen.add(text)
            paragraphs.append(text)

    if not paragraphs:
        return ExtractedContent(title=title, body="")
    body = f"# {title}\n\n" + "\n\n".join(paragraphs)
    return ExtractedContent(title=title, body=body)


def _select_markdown_root(soup, selectors: Iterable[str]):
    for selector in selectors:
        try:
            node = soup.select_one(selector)
        except Exception:  # pragma: no cover - invalid selector from a profile
            logger.debug(
                event="extractor_selector_invalid",
                operation="extractor.select",
                selector=selector,
            )
            continue
        if node is None:
            continue
        if node.name == "body":
            return node
        if len(_collapse(node.get_text(" "))) > ROOT_MIN_TEXT_CHARS:
            return node
    return soup.body or soup


def _render_list(node, base_url: Optional[str]) -> str:
    ordered = node.name == "ol"
    items: list[str] = []
    for index, item in enumerate(node.find_all("li", recursive=False), start=1):
        text = _render_children(item, base_url).strip()
        if not text:
            continue
        lines = [line.strip() for line in text.splitlines() if line.strip()]
        marker = f"{index}." if ordered else "-"
        items.append("\n".join([f"{marker} {lines[0]}", *lines[1:]]))
    if not items:
        return ""
    return "\n\n" + "\n".join(items) + "\n\n"


def _render_children(node, base_url: Optional[str]) -> str:
    return "".join(_render_node(child, base_url) for child in node.children)


def _render_node(node, base_url: Optional[str]) -> str:
    if isinstance(node, (Comment, Doctype, Declaration, ProcessingInstruction, CData)):
        return ""
    if isinstance(node, NavigableString):
        return _WHITESPACE.sub(" ", str(node))
    if not isinstance(node, Tag):
        return ""

    name = node.name
    if name in NOISE_TAGS:
        return ""
    if name in ("ul", "ol"):
        return _render_list(node, base_url)
    if name == "pre":
        code = node.get_text().strip("\n")
        return f"\n\n```\n{code}\n```\n\n" if code.strip() else ""
    if name == "img":
        return _collapse(node.get("alt") or "")
    if name == "br":
        return "\n"
    if name == "tr":
        cells = [
            _collapse(_render_children(cell, base_url))
            for cell in node.find_all(["td", "th"], recursive=False)
        ]
        cells = [cell for cell in cells if cell]
        return "\n" + " | ".join(cells) + "\n" if cells else ""

    inner = _render_children(node, base_url)
    text = inner.strip()

    if name in _HEADINGS:
        return f"\n\n{'#' * int(name[1])} {_collapse(text)}\n\n" if text else ""
    if name in ("strong", "b"):
        return f"**{text}**" if text else ""
    if name in ("em", "i"):
        return f"*{text}*" if text else ""
    if name == "code":
        return f"`{text}`" if text else ""
    if name == "a":
        href = (node.get("href") or "").strip()
        if not text:
            return ""
        if not href or href.startswith(("#", "javascript:")):
            return inner
        if base_url:
            href = urljoin(base_url, href)
        return f"[{_collapse(text)}]({href})"
    if name == "blockquote":
        lines = [line.strip() for line in text.splitlines() if line.strip()]
        return "\n\n" + "\n".join(f"> {line}" for line in lines) + "\n\n" if lines else ""
    if name == "p":
        return f"\n\n{text}\n\n" if text else ""
    if name == "li":
        return f"\n- {text}\n" if text else ""
    if name in ("td", "th"):
        return f" {text} " if text else ""
    if name in _BLOCKS:
        return f"\n{inner}\n"
    return inner


def html_to_markdown(
    html: str,
    title_hint: str,
    *,
    base_url: Optional[str] = None,
    root_selectors: Iterable[str] = MARKDOWN_ROOT_SELECTORS,
) -> ExtractedContent:
    """Convert the main content root to markdown under a top-level heading."""
    soup = _initialise_soup(html or "")
    if soup is None:
        return ExtractedContent(title=title_hint, body="")

    root = _select_markdown_root(soup, root_selectors)
    title = _first_heading(root, "") or _first_heading(soup, title_hint)
    _strip_noise(root)

    markdown = collapse_blank_lines(_render_node(root, base_url))
    if not markdown:
        return ExtractedContent(title=title, body="")
    return ExtractedContent(title=title, body=_ensure_heading(markdown, title))


def extract(
    html: str,
    title_hint: str,
    mode: str = MODE_PARAGRAPHS,
    *,
    base_url: Optional[str] = None,
    root_selectors: Optional[Iterable[str]] = None,
    brand_names: Iterable[str] = (),
) -> ExtractedContent:
    """Extract and sanitize article content from ``html``."""
    if mode == MODE_MARKDOWN:
        extracted = html_to_markdown(
            html,
            title_hint,
            base_url=base_url,
            root_selectors=root_selectors or MARKDOWN_ROOT_SELECTORS,
        )
    elif mode == MODE_PARAGRAPHS:
        extracted = extract_paragraphs(html, title_hint)
    else:
        raise ValueError(f"Unknown extraction mode: {mode}")

    body = sanitize(extracted.body, brand_names)
    if body:
        body = _ensure_heading(body, extracted.title or title_hint)
    return ExtractedContent(
        title=extracted.title or title_hint, body=body, source_url=base_url
    )
