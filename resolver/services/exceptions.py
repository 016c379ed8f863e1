from __future__ import annotations


class ResolverError(Exception):
    """Base class for topic resolution errors."""

    def __init__(self, message: str, *, url: str | None = None) -> None:
        super().__init__(message)
        self.url = url


class InvalidInput(ResolverError):
    """The topic is missing or blank."""


class StrategyDeclined(ResolverError):
    """A strategy could not produce acceptable content for the topic."""

    def __init__(
        self, message: str, *, reason: str = "declined", url: str | None = None
    ) -> None:
        super().__init__(message, url=url)
        self.reason = reason


class ResourceUnavailable(StrategyDeclined):
    """A strategy's external collaborator (driver, credential) is missing."""

    def __init__(self, message: str, *, reason: str = "unavailable") -> None:
        super().__init__(message, reason=reason)


class NetworkError(StrategyDeclined):
    """Network instability or a non-2xx response while fetching a page."""

    def __init__(self, message: str, *, url: str | None = None) -> None:
        super().__init__(message, reason="network", url=url)


class ResolutionCancelled(StrategyDeclined):
    """The resolution budget ran out or the caller went away."""

    def __init__(self, message: str = "Resolution cancelled") -> None:
        super().__init__(message, reason="cancelled")


__all__ = [
    "ResolverError",
    "InvalidInput",
    "StrategyDeclined",
    "ResourceUnavailable",
    "NetworkError",
    "ResolutionCancelled",
]
