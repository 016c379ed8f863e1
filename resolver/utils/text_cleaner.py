"""Helpers to normalise extracted article text."""

import html
import re
import unicodedata
from typing import Iterable

# Encyclopedia chrome that leaks into scraped article text. Only the short UI
# strings are matched so prose opening with the same words survives.
_BOILERPLATE_PATTERNS: tuple[re.Pattern[str], ...] = tuple(
    re.compile(pattern, re.IGNORECASE)
    for pattern in (
        r"^advertisement$",
        r"^ask the chatbot.*",
        r"^learn about this topic.*",
        r"^cite this article.*",
        r"^(written|fact-checked) by\b[^.!?]{0,80}$",
        r"^last updated\b[^.!?]{0,40}$",
        r"^share this (story|article|page).*",
        r"^read (more|next)(?::.*)?$",
        r"^[\s*]+$",
    )
)

_CONTROL_CHARS = {
    "\u200b",  # zero-width space
    "\u200c",  # zero-width non-joiner
    "\u200d",  # zero-width joiner
    "\ufeff",  # zero-width no-break space / BOM
}

_HEADING_PREFIX = re.compile(r"^#{1,6}\s+")
_LIST_PREFIX = re.compile(r"^(?:-|\d+\.)\s+")
_FENCE = "```"


def _strip_control_chars(text: str) -> str:
    for char in _CONTROL_CHARS:
        text = text.replace(char, "")
    return text


def _squeeze_spaces(line: str) -> str:
    line = re.sub(r"[\t\f]+", " ", line)
    return re.sub(r"(?<=\S) {2,}", " ", line)


def normalise_spacing(text: str) -> str:
    """Squeeze runs of spaces and tabs, leaving fenced code blocks verbatim."""
    lines: list[str] = []
    in_fence = False
    for line in text.split("\n"):
        if line.strip().startswith(_FENCE):
            in_fence = not in_fence
            lines.append(line)
            continue
        lines.append(line if in_fence else _squeeze_spaces(line))
    return "\n".join(lines)


def _remove_boilerplate(lines: Iterable[str]) -> list[str]:
    cleaned: list[str] = []
    in_fence = False
    for line in lines:
        stripped = line.strip()
        if stripped.startswith(_FENCE):
            in_fence = not in_fence
            cleaned.append(stripped)
            continue
        if in_fence:
            cleaned.append(line.rstrip())
            continue
        if not stripped:
            cleaned.append("")
            continue
        if any(pattern.match(stripped) for pattern in _BOILERPLATE_PATTERNS):
            continue
        cleaned.append(stripped)
    return cleaned


def collapse_blank_lines(text: str) -> str:
    """Collapse runs of blank lines so at most one separates blocks."""
    text = re.sub(r"[ \t]+\n", "\n", text)
    return re.sub(r"\n{3,}", "\n\n", text).strip()


def clean_text(raw_text: str | None) -> str:
    """Normalise extracted article text and remove obvious boilerplate."""
    if not raw_text:
        return ""

    text = html.unescape(raw_text)
    text = unicodedata.normalize("NFC", text)
    text = text.replace("\r\n", "\n").replace("\r", "\n")
    text = text.replace("\u00a0", " ")
    text = _strip_control_chars(text)
    text = normalise_spacing(text)

    lines = _remove_boilerplate(text.split("\n"))

    normalised_lines: list[str] = []
    in_fence = False
    for line in lines:
        if in_fence:
            normalised_lines.append(line)
            if line.startswith(_FENCE):
                in_fence = False
            continue
        if not line:
            if normalised_lines and normalised_lines[-1] == "":
                continue
            normalised_lines.append("")
            continue
        if line.startswith(_FENCE):
            in_fence = True
        previous = normalised_lines[-1] if normalised_lines else ""
        if _HEADING_PREFIX.match(line) and previous:
            normalised_lines.append("")
        elif previous and _HEADING_PREFIX.match(previous):
            normalised_lines.append("")
        elif _LIST_PREFIX.match(line) and previous and not _LIST_PREFIX.match(previous):
            normalised_lines.append("")
        normalised_lines.append(line)

    return collapse_blank_lines("\n".join(normalised_lines))
