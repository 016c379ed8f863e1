"""Cooperative cancellation for a single topic resolution.

Every network call and browser navigation made while resolving a topic
shares one :class:`CancellationToken`. The token combines an explicit
``cancel()`` signal (for example when the client disconnects) with an
overall deadline, and hands out per-call timeouts that never exceed the
remaining budget. Nothing is interrupted forcibly; callers check the token
between candidates and pass :meth:`CancellationToken.timeout_for` to the
collaborator they are about to call.
"""

from __future__ import annotations

import threading
import time
from typing import Callable, Optional

from resolver.services.exceptions import ResolutionCancelled

Clock = Callable[[], float]

# Below this many seconds there is no point starting another request.
MIN_USEFUL_TIMEOUT_SECONDS = 0.25


class CancellationToken:
    """Thread-safe cancellation token with an optional deadline.

    Examples:
        >>> token = CancellationToken(budget_seconds=30)
        >>> timeout = token.timeout_for(8.0)  # <= 8.0 and <= remaining budget
        >>> token.cancel()
        >>> token.is_cancelled()
        True
    """

    def __init__(
        self, budget_seconds: Optional[float] = None, *, clock: Clock = time.monotonic
    ) -> None:
        self._clock = clock
        self._event = threading.Event()
        self._lock = threading.Lock()
        self._deadline = (
            clock() + budget_seconds if budget_seconds is not None else None
        )

    def cancel(self) -> None:
        """Signal that cancellation has been requested."""
        with self._lock:
            self._event.set()

    def remaining(self) -> Optional[float]:
        """Seconds left before the deadline, or ``None`` when unbounded."""
        if self._deadline is None:
            return None
        return max(0.0, self._deadline - self._clock())

    def is_cancelled(self) -> bool:
        if self._event.is_set():
            return True
        remaining = self.remaining()
        return remaining is not None and remaining < MIN_USEFUL_TIMEOUT_SECONDS

    def raise_if_cancelled(self) -> None:
        if self.is_cancelled():
            raise ResolutionCancelled()

    def timeout_for(self, requested: float) -> float:
        """Clamp ``requested`` seconds to the remaining budget."""
        self.raise_if_cancelled()
        remaining = self.remaining()
        if remaining is None:
            return requested
        return min(requested, remaining)
