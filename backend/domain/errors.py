"""Exceptions shared by the resource pipeline, the caches and the API layer."""


class ResourceLookupError(Exception):
    """Base exception for resource resolution."""
    pass


class InvalidQueryError(ResourceLookupError):
    """Raised when a viewport query is missing parameters or has ill-typed ones."""
    pass


class ProviderError(ResourceLookupError):
    """Raised when a provider search fails for a reason other than rate limiting."""
    pass


class RateLimitedError(ProviderError):
    """Raised when a provider keeps signalling rate limiting after all retries."""

    def __init__(self, provider: str, message: str = "rate limited"):
        super().__init__(f"{provider}: {message}")
        self.provider = provider


class GeocodingError(ResourceLookupError):
    """Raised when reverse geocoding times out or returns an unusable payload."""
    pass


class CacheError(ResourceLookupError):
    """Raised when a cache read or write fails at the persistence layer."""
    pass
