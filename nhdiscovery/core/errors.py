"""Exception hierarchy for the discovery engine.

Only two of these ever reach an API caller as-is: EmptyInputError (nothing to
recommend from) and RecommendationsUnavailableError (every upstream bucket
failed). The upstream errors are normally caught per bucket and degraded to
an empty contribution.
"""


class DiscoveryError(Exception):
    """Base class for all engine errors."""


class UnknownImageTokenError(DiscoveryError, ValueError):
    """An upstream record carried an image format token we don't know."""

    def __init__(self, token: object):
        self.token = token
        super().__init__(f"Unknown image token: {token!r}")


class EmptyInputError(DiscoveryError, ValueError):
    """A recommender was called with no favorites or seed."""


class UpstreamError(DiscoveryError):
    """Base class for failures talking to the upstream catalog."""


class UpstreamRateLimited(UpstreamError):
    """Upstream answered 429. Retried internally with backoff."""

    def __init__(self, message: str, retry_after: float | None = None):
        self.retry_after = retry_after  # Seconds, from the Retry-After header
        super().__init__(message)


class UpstreamUnavailable(UpstreamError):
    """Any other non-2xx response or transport failure."""

    def __init__(self, message: str, status_code: int | None = None):
        self.status_code = status_code
        super().__init__(message)


class GalleryNotFoundError(UpstreamUnavailable):
    """Upstream has no gallery with the requested id."""

    def __init__(self, gallery_id: int):
        self.gallery_id = gallery_id
        super().__init__(f"Gallery {gallery_id} not found", status_code=404)


class RecommendationsUnavailableError(DiscoveryError):
    """Every upstream fetch of a discovery request failed."""

    def __init__(self, message: str = "Failed to fetch recommendations"):
        super().__init__(message)
