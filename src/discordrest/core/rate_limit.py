"""Bucket accounting driven by the server's rate-limit headers."""

from __future__ import annotations

import json
import logging
import math
import time
from collections import deque
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Deque, Mapping, Optional

from .errors import DecodeError
from .models import RateLimitInfo

logger = logging.getLogger(__name__)

# replies within this many seconds of the current reset belong to the same window
WINDOW_SLACK = 0.01


class BucketState(str, Enum):
    FRESH = "fresh"
    KNOWN = "known"
    EXHAUSTED = "exhausted"


@dataclass(slots=True)
class Bucket:
    """Per-route allowance plus the queue of requests waiting on it.

    ``reset_at`` is expressed on the scheduler's clock (the event loop's
    monotonic time), never wall time. ``server_bucket`` is the opaque hash the
    server last reported for the route; it is informational only.
    """

    limit: Optional[int] = None
    remaining: Optional[int] = None
    reset_at: Optional[float] = None
    in_flight: int = 0
    queue: Deque[Any] = field(default_factory=deque)
    server_bucket: Optional[str] = None

    @property
    def state(self) -> BucketState:
        if self.remaining is None:
            return BucketState.FRESH
        if self.remaining <= 0:
            return BucketState.EXHAUSTED
        return BucketState.KNOWN

    def refresh(self, now: float) -> None:
        """Refill the allowance once the reset deadline has passed."""

        if self.reset_at is None or now < self.reset_at:
            return
        self.remaining = self.limit
        self.reset_at = None

    def can_dispatch(self, now: float) -> bool:
        self.refresh(now)
        if self.remaining is None:
            return self.in_flight == 0
        return self.in_flight < self.remaining

    def begin(self) -> None:
        self.in_flight += 1

    def finish(self) -> None:
        self.in_flight = max(self.in_flight - 1, 0)

    def apply(self, info: RateLimitInfo, now: float, fallback_reset: float = 1.0) -> None:
        """Fold one response's headers into the bucket."""

        if info.bucket is not None and info.bucket != self.server_bucket:
            logger.debug("Server bucket changed from %s to %s", self.server_bucket, info.bucket)
            self.server_bucket = info.bucket
        if not info.has_bucket_info:
            return
        limit = info.limit if info.limit is not None else self.limit
        remaining = info.remaining
        if (limit is not None and limit < 0) or (remaining is not None and remaining < 0) or (
            limit is not None and remaining is not None and remaining > limit
        ):
            logger.warning("Inconsistent rate-limit headers (limit=%s, remaining=%s); resetting bucket", limit, remaining)
            self.reset_fresh()
            return

        self.limit = limit
        if remaining is None:
            return

        if info.reset_after is not None:
            reset_at: Optional[float] = now + info.reset_after
        elif remaining == 0:
            reset_at = now + fallback_reset
        else:
            reset_at = self.reset_at

        new_window = (
            self.remaining is None
            or self.reset_at is None
            or reset_at is None
            or reset_at > self.reset_at + WINDOW_SLACK
        )
        if new_window:
            self.remaining = remaining
            self.reset_at = reset_at
        else:
            # a reply from the same window can only lower the allowance
            self.remaining = min(self.remaining, remaining)
            self.reset_at = max(self.reset_at, reset_at)

    def exhaust(self, until: float) -> None:
        """Mark the bucket empty until ``until`` after a local 429."""

        self.remaining = 0
        self.reset_at = until if self.reset_at is None else max(self.reset_at, until)

    def reset_fresh(self) -> None:
        self.limit = None
        self.remaining = None
        self.reset_at = None


@dataclass(slots=True)
class GlobalLock:
    """Cross-bucket halt set by a global 429."""

    locked: bool = False
    resume_at: float = 0.0

    def engage(self, resume_at: float) -> None:
        if self.locked:
            self.resume_at = max(self.resume_at, resume_at)
        else:
            self.resume_at = resume_at
        self.locked = True

    def is_locked(self, now: float) -> bool:
        if self.locked and now >= self.resume_at:
            self.locked = False
        return self.locked


def _header(headers: Mapping[str, str], name: str) -> Optional[str]:
    value = headers.get(name)
    if value is None:
        value = headers.get(name.lower())
    if value is None:
        return None
    value = value.strip()
    return value or None


def _as_int(headers: Mapping[str, str], name: str) -> Optional[int]:
    value = _as_number(headers, name)
    return None if value is None else int(value)


def _as_float(headers: Mapping[str, str], name: str) -> Optional[float]:
    value = _as_number(headers, name)
    return None if value is None else max(value, 0.0)


def _as_number(headers: Mapping[str, str], name: str) -> Optional[float]:
    raw = _header(headers, name)
    if raw is None:
        return None
    return _finite(raw, f"{name} header")


def _finite(raw: Any, what: str) -> float:
    try:
        value = float(raw)
    except (TypeError, ValueError, OverflowError):
        raise DecodeError(f"Malformed {what}: {raw!r}") from None
    if not math.isfinite(value):
        raise DecodeError(f"Malformed {what}: {raw!r}")
    return value


def _tolerant(parse: Callable[[Mapping[str, str], str], Any], headers: Mapping[str, str], name: str) -> Any:
    try:
        return parse(headers, name)
    except DecodeError as exc:
        logger.debug("Ignoring %s", exc)
        return None


def _body_fields(body: Optional[bytes]) -> dict:
    if not body:
        return {}
    try:
        payload = json.loads(body)
    except (ValueError, UnicodeDecodeError):
        return {}
    return payload if isinstance(payload, dict) else {}


def parse_rate_limit_headers(
    headers: Mapping[str, str],
    status_code: int,
    body: Optional[bytes] = None,
    *,
    wall_clock: Callable[[], float] = time.time,
) -> RateLimitInfo:
    """Read ``X-RateLimit-*`` and ``Retry-After`` metadata from a response.

    ``X-RateLimit-Reset-After`` wins over the absolute ``X-RateLimit-Reset``
    epoch timestamp, which is converted to a relative delay using
    ``wall_clock``. For 429 responses the JSON body's ``retry_after`` and
    ``global`` fields fill in whatever the headers leave out.

    Each field is read on its own: a malformed or non-finite value is logged
    and left as ``None`` without discarding the global flag, the bucket hash
    or the other counters.
    """

    limit = _tolerant(_as_int, headers, "X-RateLimit-Limit")
    remaining = _tolerant(_as_int, headers, "X-RateLimit-Remaining")
    reset_after = _tolerant(_as_float, headers, "X-RateLimit-Reset-After")
    if reset_after is None:
        reset = _tolerant(_as_float, headers, "X-RateLimit-Reset")
        if reset is not None:
            reset_after = max(reset - wall_clock(), 0.0)
    retry_after = _tolerant(_as_float, headers, "Retry-After")
    is_global = (_header(headers, "X-RateLimit-Global") or "").lower() == "true"
    bucket = _header(headers, "X-RateLimit-Bucket")

    if status_code == 429:
        payload = _body_fields(body)
        if retry_after is None and payload.get("retry_after") is not None:
            try:
                retry_after = max(_finite(payload["retry_after"], "retry_after field"), 0.0)
            except DecodeError as exc:
                logger.debug("Ignoring %s", exc)
        is_global = is_global or bool(payload.get("global", False))

    return RateLimitInfo(
        limit=limit,
        remaining=remaining,
        reset_after=reset_after,
        retry_after=retry_after,
        is_global=is_global,
        bucket=bucket,
    )
