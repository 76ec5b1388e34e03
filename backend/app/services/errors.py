"""Failure taxonomy for the remote fund feeds."""


class FeedError(Exception):
    """Base class for every feed failure."""


class TransportError(FeedError):
    """The remote script could not be loaded at all."""


class FeedTimeoutError(FeedError):
    """No response arrived within the feed's deadline."""


class ParseError(FeedError):
    """A payload arrived but was not in the expected shape."""


class DataUnavailableError(FeedError):
    """All sources were exhausted without anything usable for a fund code."""

    def __init__(self, code: str, reason: str):
        super().__init__(f"{code}: {reason}")
        self.code = code
        self.reason = reason
