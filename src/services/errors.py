"""
Provider-side failures: yt-dlp, the transcript API, page scrapers and Gemini.

None of these reach a client as-is. The pipeline turns them into an
ExtractionError or drops the enrichment they were fetching.
"""


class ServiceError(Exception):
    pass


class UnsupportedPlatformError(ServiceError):
    """The operation has no implementation for the video's platform."""


class PrivateOrUnavailableError(ServiceError):
    """The video was removed or needs a login to view."""


class RateLimitedError(ServiceError):
    """HTTP 429 or quota exhaustion from a provider."""


class FetchFailedError(ServiceError):
    pass


class AudioUnavailableError(ServiceError):
    pass


class NetworkTimeoutError(ServiceError):
    def __init__(self, url: str, timeout_seconds: float):
        super().__init__(f"Network timeout after {timeout_seconds}s: {url}")
        self.url = url
        self.timeout_seconds = timeout_seconds


class LLMConfigurationError(ServiceError):
    """Gemini cannot be called at all, e.g. the API key is missing."""
