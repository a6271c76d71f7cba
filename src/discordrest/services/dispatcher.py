"""Public entry point for rate-limited API calls."""

from __future__ import annotations

import asyncio
import concurrent.futures
import json
import logging
from typing import Any, Callable, Dict, Mapping, Optional

import httpx

from ..core.config import AppConfig
from ..core.errors import DispatchError
from ..core.models import DispatchResult, HTTPMethod, Request
from ..core.routes import Route, RouteKey, get_route
from .scheduler import Scheduler, Submission

logger = logging.getLogger(__name__)

ResultCallback = Callable[[Optional[bytes], int, bool, Optional[DispatchError]], None]


class Dispatcher:
    """Builds requests for catalogued routes and hands them to the scheduler."""

    def __init__(self, config: AppConfig, scheduler: Scheduler) -> None:
        self._config = config
        self._scheduler = scheduler

    @property
    def scheduler(self) -> Scheduler:
        return self._scheduler

    def _headers(self) -> Dict[str, str]:
        headers = {"User-Agent": self._config.user_agent}
        if self._config.creds.token:
            headers["Authorization"] = self._config.creds.authorization()
        return headers

    def submit(
        self,
        method: HTTPMethod | str,
        url: str,
        headers: Optional[Mapping[str, str]],
        body: Optional[bytes],
        route_key: RouteKey,
        *,
        timeout: Optional[float] = None,
        callback: Optional[ResultCallback] = None,
    ) -> Submission:
        """Queue a fully formed request on ``route_key``'s bucket.

        Returns immediately. ``callback`` receives ``(body, status_code,
        rate_limited, error)`` exactly once, on the event loop.
        """

        if not isinstance(method, HTTPMethod):
            method = HTTPMethod(method.upper())
        request = Request(
            method=method,
            url=url,
            headers=dict(headers or {}),
            body=body,
        )
        submission = self._scheduler.submit(request, route_key, timeout=timeout)
        if callback is not None:
            submission.add_done_callback(
                lambda result: callback(result.body, result.status_code, result.rate_limited, result.error)
            )
        return submission

    def submit_threadsafe(
        self,
        loop: asyncio.AbstractEventLoop,
        method: HTTPMethod | str,
        url: str,
        headers: Optional[Mapping[str, str]],
        body: Optional[bytes],
        route_key: RouteKey,
        *,
        timeout: Optional[float] = None,
    ) -> "concurrent.futures.Future[DispatchResult]":
        """Submit from a thread other than the one running ``loop``."""

        async def _submit() -> DispatchResult:
            return await self.submit(method, url, headers, body, route_key, timeout=timeout)

        return asyncio.run_coroutine_threadsafe(_submit(), loop)

    def build(
        self,
        route: Route | str,
        params: Optional[Mapping[str, Any]] = None,
        *,
        query: Optional[Mapping[str, Any]] = None,
        json_body: Any = None,
    ) -> tuple[Request, RouteKey]:
        """Turn a catalogued route plus parameters into a request and its key."""

        if isinstance(route, str):
            route = get_route(route)
        params = params or {}
        route_key = route.key(params)
        url = httpx.URL(self._config.api_base_url + route.path(params))
        if query:
            url = url.copy_merge_params({key: value for key, value in query.items() if value is not None})

        headers = self._headers()
        body: Optional[bytes] = None
        if json_body is not None:
            body = json.dumps(json_body).encode("utf-8")
            headers["Content-Type"] = "application/json"
            headers["Content-Length"] = str(len(body))
        request = Request(method=route.method, url=str(url), headers=headers, body=body)
        return request, route_key

    async def request(
        self,
        route: Route | str,
        params: Optional[Mapping[str, Any]] = None,
        *,
        query: Optional[Mapping[str, Any]] = None,
        json_body: Any = None,
        timeout: Optional[float] = None,
    ) -> DispatchResult:
        """Call a catalogued route and wait for it, raising the result's error."""

        request, route_key = self.build(route, params, query=query, json_body=json_body)
        result = await self.submit(
            request.method,
            request.url,
            request.headers,
            request.body,
            route_key,
            timeout=timeout,
        )
        if result.error is not None:
            logger.debug("%s %s failed: %s", request.method.value, request.url, result.error)
        return result.raise_for_error()

    async def aclose(self) -> None:
        """Cancel outstanding submissions, then close the executor's transport."""

        self._scheduler.close()
        aclose = getattr(self._scheduler.executor, "aclose", None)
        if aclose is not None:
            await aclose()
