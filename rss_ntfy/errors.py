"""
Exception hierarchy for RSS ntfy.

Feed-level errors are counted and the run moves on to the next feed;
environment-level errors abort the whole run.
"""


class RssNtfyError(Exception):
    """Base class for all RSS ntfy errors."""


class ToolUnavailable(RssNtfyError):
    """A required capability (checksum primitive) cannot be used."""


class ComputeError(RssNtfyError):
    """Fingerprint computation failed."""


class StoreError(RssNtfyError):
    """Reading or writing a dedup record failed."""


class TransportError(RssNtfyError):
    """Network failure or HTTP error status."""

    def __init__(self, message: str, url: str = "", status: int | None = None):
        super().__init__(message)
        self.url = url
        self.status = status


class FeedError(RssNtfyError):
    """The input could not be used as a feed for this run."""


class InvalidFeedUrl(FeedError):
    """The feed reference is not an http(s) URL."""


class NoFeedDiscovered(FeedError):
    """
    No feed could be located from the given URL.

    Attributes
    ----------
    fallback_url : str | None
        The original input URL, for callers that want to fall back to it.
    """

    def __init__(self, message: str, fallback_url: str | None = None):
        super().__init__(message)
        self.fallback_url = fallback_url


class TooManyHops(NoFeedDiscovered):
    """Feed discovery exceeded the allowed number of hops."""


class IncompleteFeedData(FeedError):
    """Feed title, entry title or entry link could not be extracted."""


class DispatchError(RssNtfyError):
    """Polling the relay cache or posting the notification failed."""
