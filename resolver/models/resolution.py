from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Optional


class StrategyName(str, Enum):
    PLAIN_FETCH = "plain-fetch"
    RENDERED_BROWSER = "rendered-browser"
    GENERATIVE = "generative"
    NONE = "none"


@dataclass(frozen=True)
class RawPage:
    """HTML returned by one fetch or navigation; scoped to a single attempt."""

    html: str
    final_url: str


@dataclass
class ExtractedContent:
    title: str
    body: str
    source_url: Optional[str] = None


@dataclass
class ResolutionResult:
    """Normalized article returned for a topic."""

    title: str
    content: str
    source_url: str
    is_fallback: bool
    not_found: bool
    strategy_used: StrategyName

    def __post_init__(self) -> None:
        if self.not_found:
            # A miss never carries content or a contributing strategy.
            self.content = ""
            self.strategy_used = StrategyName.NONE
            self.is_fallback = True
        else:
            self.is_fallback = self.strategy_used != StrategyName.PLAIN_FETCH

    @classmethod
    def from_content(
        cls, extracted: ExtractedContent, strategy: StrategyName, source_url: str
    ) -> ResolutionResult:
        return cls(
            title=extracted.title,
            content=extracted.body,
            source_url=extracted.source_url or source_url,
            is_fallback=strategy != StrategyName.PLAIN_FETCH,
            not_found=False,
            strategy_used=strategy,
        )

    @classmethod
    def miss(cls, title: str, source_url: str) -> ResolutionResult:
        return cls(
            title=title,
            content="",
            source_url=source_url,
            is_fallback=True,
            not_found=True,
            strategy_used=StrategyName.NONE,
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "title": self.title,
            "content": self.content,
            "sourceUrl": self.source_url,
            "isFallback": self.is_fallback,
            "notFound": self.not_found,
            "strategyUsed": self.strategy_used.value,
        }


@dataclass
class ResolutionDebug:
    tried_urls: list[str] = field(default_factory=list)
    notes: list[str] = field(default_factory=list)
    strategies: dict[str, dict[str, Any]] = field(default_factory=dict)

    @property
    def strategy_available(self) -> bool:
        """True when at least one non-scrape strategy could have run."""
        return any(
            entry.get("available")
            for name, entry in self.strategies.items()
            if name != StrategyName.PLAIN_FETCH.value
        )

    def record_url(self, url: str) -> None:
        if url not in self.tried_urls:
            self.tried_urls.append(url)

    def note(self, message: str) -> None:
        self.notes.append(message)

    def to_dict(self) -> dict[str, Any]:
        return {
            "triedUrls": list(self.tried_urls),
            "strategyAvailable": self.strategy_available,
            "notes": list(self.notes),
            "strategies": {name: dict(entry) for name, entry in self.strategies.items()},
        }
