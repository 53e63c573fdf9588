"""
Application errors for clean pipeline and API error handling.

TransportError covers network/HTTP failures talking to the completion or search
provider; most components recover from it locally. ServiceUnavailableError is the
special case of a provider that is not configured at all.
"""


class TransportError(Exception):
    """Raised when a call to the completion or search provider fails on the wire."""

    def __init__(self, message: str) -> None:
        self.message = message
        super().__init__(message)


class ServiceUnavailableError(TransportError):
    """Raised when a required service (e.g. search API key) is missing or misconfigured."""


class ParseError(Exception):
    """Model output did not match the expected JSON shape."""


class ValidationError(Exception):
    """Input rejected at the boundary (e.g. empty query, empty message list)."""


class CancellationError(Exception):
    """A run was aborted by the caller. Expected outcome, not an application failure."""
