"""Common contract for the interchangeable content-acquisition strategies."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Iterable, Optional, Sequence, Tuple

from resolver.models.resolution import ExtractedContent, ResolutionDebug, StrategyName
from resolver.services.cancellation import CancellationToken
from resolver.services.sources import SourceProfile


def meets_floor(body: Optional[str], floor: int) -> bool:
    """A body is acceptable when it is longer than the source's floor."""
    return len((body or "").strip()) > floor


@dataclass
class AttemptContext:
    """Per-request state handed to every strategy in a pipeline run."""

    profile: SourceProfile
    token: CancellationToken = field(default_factory=CancellationToken)
    debug: ResolutionDebug = field(default_factory=ResolutionDebug)


class ResolutionStrategy:
    """Base class for one way of turning a topic into article content.

    Subclasses return :class:`ExtractedContent` when they produce an
    acceptable article and ``None`` when they decline. They may also raise
    :class:`~resolver.services.exceptions.StrategyDeclined` or
    :class:`~resolver.services.exceptions.ResourceUnavailable` to decline
    with a reason; the pipeline treats any exception as a decline.
    """

    name: StrategyName

    def availability(self) -> Tuple[bool, Optional[str]]:
        """Return ``(available, reason)`` without performing any I/O."""
        return True, None

    def attempt(
        self,
        topic: str,
        candidates: Sequence[str],
        context: AttemptContext,
    ) -> Optional[ExtractedContent]:
        raise NotImplementedError


class StrategyRegistry:
    def __init__(self, strategies: Iterable[ResolutionStrategy]):
        self._strategies: dict[str, ResolutionStrategy] = {
            strategy.name.value: strategy for strategy in strategies
        }

    def get(self, name: str) -> Optional[ResolutionStrategy]:
        return self._strategies.get(name)

    def ordered(self, names: Iterable[str]) -> list[ResolutionStrategy]:
        seen: set[str] = set()
        ordered: list[ResolutionStrategy] = []
        for name in names:
            if name in seen:
                continue
            strategy = self.get(name)
            if strategy is None:
                continue
            ordered.append(strategy)
            seen.add(name)
        return ordered
