"""Common value types for discordrest."""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Mapping, Optional

from .errors import DispatchError


class HTTPMethod(str, Enum):
    GET = "GET"
    POST = "POST"
    PUT = "PUT"
    PATCH = "PATCH"
    DELETE = "DELETE"


@dataclass(frozen=True, slots=True)
class Request:
    """One fully formed API call, owned by a bucket queue until it runs.

    ``created_at`` is the event-loop time of submission; the scheduler stamps
    it when left at zero and uses it to report how long a request queued.
    """

    method: HTTPMethod
    url: str
    headers: Mapping[str, str] = field(default_factory=dict)
    body: Optional[bytes] = None
    created_at: float = 0.0


@dataclass(frozen=True, slots=True)
class RateLimitInfo:
    """Rate-limit metadata read from one response.

    ``reset_after`` and ``retry_after`` are seconds relative to the moment
    the response was received. Every field is optional; an empty instance
    means the response carried no usable information.
    """

    limit: Optional[int] = None
    remaining: Optional[int] = None
    reset_after: Optional[float] = None
    retry_after: Optional[float] = None
    is_global: bool = False
    bucket: Optional[str] = None

    @property
    def has_bucket_info(self) -> bool:
        return self.limit is not None or self.remaining is not None or self.reset_after is not None


@dataclass(slots=True)
class ExecutionOutcome:
    """Raw result of one transport call."""

    body: bytes
    status_code: int
    rate_limit: RateLimitInfo = field(default_factory=RateLimitInfo)


@dataclass(slots=True)
class DispatchResult:
    """Final result delivered to a submission's caller."""

    body: Optional[bytes]
    status_code: int
    rate_limited: bool = False
    error: Optional[DispatchError] = None

    @property
    def ok(self) -> bool:
        return self.error is None

    def json(self) -> Any:
        if not self.body:
            return None
        return json.loads(self.body)

    def raise_for_error(self) -> "DispatchResult":
        if self.error is not None:
            raise self.error
        return self
