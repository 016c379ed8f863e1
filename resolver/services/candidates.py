"""Deterministic article URL guesses for a topic."""

from __future__ import annotations

import re

from resolver.services.exceptions import InvalidInput
from resolver.services.sources import SourceProfile

_WHITESPACE = re.compile(r"\s+")

CASE_VERBATIM = "verbatim"
CASE_LOWER = "lower"
CASE_TITLE = "title"
SLUG_CASES = (CASE_VERBATIM, CASE_LOWER, CASE_TITLE)


def normalise_topic(topic: str | None) -> str:
    cleaned = _WHITESPACE.sub(" ", (topic or "").strip())
    if not cleaned:
        raise InvalidInput("Missing topic parameter")
    return cleaned


def slugify(topic: str, separator: str, case: str = CASE_VERBATIM) -> str:
    words = topic.split()
    if case == CASE_LOWER:
        words = [word.lower() for word in words]
    elif case == CASE_TITLE:
        words = [word[:1].upper() + word[1:].lower() for word in words]
    return separator.join(words)


def generate_candidates(topic: str | None, source: SourceProfile) -> list[str]:
    """Return ordered, de-duplicated candidate article URLs for ``topic``.

    Slugs are produced per case rule (verbatim, lowercase, title-case) and
    joined to every article prefix of the source; the raw, untransformed
    topic is appended as the final probe.
    """
    cleaned = normalise_topic(topic)

    urls: list[str] = []
    for prefix in source.article_prefixes:
        for case in SLUG_CASES:
            slug = slugify(cleaned, source.slug_separator, case)
            urls.append(source.article_url(prefix, source.encode_slug(slug)))

    raw = (topic or "").strip()
    urls.append(source.article_url(source.article_prefixes[0], source.encode_slug(raw)))

    seen: set[str] = set()
    ordered: list[str] = []
    for url in urls:
        if url in seen:
            continue
        seen.add(url)
        ordered.append(url)
    return ordered
