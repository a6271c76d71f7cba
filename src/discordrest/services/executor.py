"""Transport layer: runs one request against the Discord REST API."""

from __future__ import annotations

import logging
from typing import Optional

import httpx

from ..core.config import AppConfig
from ..core.errors import TransportError
from ..core.models import ExecutionOutcome, Request
from ..core.rate_limit import parse_rate_limit_headers

logger = logging.getLogger(__name__)


class HTTPExecutor:
    """Performs the network call for a single request.

    Rate-limit headers are parsed on every response regardless of status;
    the scheduler decides what the status means for the caller.
    """

    def __init__(self, config: AppConfig, client: Optional[httpx.AsyncClient] = None) -> None:
        self._config = config
        self._client = client or httpx.AsyncClient(base_url=config.api_base_url, timeout=config.request_timeout)

    async def execute(self, request: Request) -> ExecutionOutcome:
        try:
            response = await self._client.request(
                request.method.value,
                request.url,
                headers=dict(request.headers),
                content=request.body,
            )
        except httpx.TransportError as exc:
            logger.debug("Transport failure for %s %s: %s", request.method.value, request.url, exc)
            raise TransportError(f"{type(exc).__name__}: {exc}") from exc

        body = response.content
        info = parse_rate_limit_headers(response.headers, response.status_code, body)
        return ExecutionOutcome(body=body, status_code=response.status_code, rate_limit=info)

    async def aclose(self) -> None:
        await self._client.aclose()
