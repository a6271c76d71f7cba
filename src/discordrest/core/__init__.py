"""Core utilities and models."""

from .config import AppConfig, DiscordCredentials
from .errors import (
    DecodeError,
    DispatchError,
    GlobalRateLimitExceeded,
    HTTPError,
    RateLimitExceeded,
    RequestCancelledError,
    RequestTimeoutError,
    RouteError,
    TransportError,
)
from .models import DispatchResult, ExecutionOutcome, HTTPMethod, RateLimitInfo, Request
from .permissions import Permission
from .rate_limit import Bucket, BucketState, GlobalLock, parse_rate_limit_headers
from .routes import ROUTES, Route, RouteKey, get_route, resolve

__all__ = [
    "AppConfig",
    "DiscordCredentials",
    "DecodeError",
    "DispatchError",
    "GlobalRateLimitExceeded",
    "HTTPError",
    "RateLimitExceeded",
    "RequestCancelledError",
    "RequestTimeoutError",
    "RouteError",
    "TransportError",
    "DispatchResult",
    "ExecutionOutcome",
    "HTTPMethod",
    "RateLimitInfo",
    "Request",
    "Permission",
    "Bucket",
    "BucketState",
    "GlobalLock",
    "parse_rate_limit_headers",
    "ROUTES",
    "Route",
    "RouteKey",
    "get_route",
    "resolve",
]
