"""Error kinds surfaced by the dispatch engine."""

from __future__ import annotations

from typing import Optional


class DispatchError(Exception):
    """Base class for failures delivered to a submission's caller.

    Carries the HTTP status and body of the last response when one exists.
    """

    def __init__(self, message: str = "", *, status_code: Optional[int] = None, body: Optional[bytes] = None) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.body = body


class TransportError(DispatchError):
    """Connection failure or timeout; no response was received."""


class DecodeError(DispatchError):
    """Rate-limit headers were present but could not be understood."""


class HTTPError(DispatchError):
    """The server answered with a non-429 error status."""


class RateLimitExceeded(DispatchError):
    """A route kept answering 429 after the automatic retry budget was spent."""

    def __init__(
        self,
        message: str = "",
        *,
        retry_after: Optional[float] = None,
        status_code: Optional[int] = 429,
        body: Optional[bytes] = None,
    ) -> None:
        super().__init__(message, status_code=status_code, body=body)
        self.retry_after = retry_after


class GlobalRateLimitExceeded(RateLimitExceeded):
    """The retry budget ran out while the global lock was engaged."""


class RequestCancelledError(DispatchError):
    """The caller cancelled the submission."""


class RequestTimeoutError(DispatchError):
    """The submission's deadline passed while it was still queued."""


class RouteError(LookupError):
    """Unknown route template or missing path parameter.

    A programming error on the caller's side; it is raised synchronously and
    never retried.
    """
