"""Service container for dependency wiring."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from ..core.config import AppConfig
from ..utils.logging import configure_logging
from .dispatcher import Dispatcher
from .executor import HTTPExecutor
from .guilds import GuildService
from .scheduler import Scheduler


@dataclass(slots=True)
class ServiceContainer:
    """Aggregates the client's runtime services."""

    config: AppConfig
    executor: HTTPExecutor
    scheduler: Scheduler
    dispatcher: Dispatcher
    guilds: GuildService

    @classmethod
    def build(cls, config: Optional[AppConfig] = None) -> "ServiceContainer":
        cfg = config or AppConfig.load()
        configure_logging(cfg.log_level)
        executor = HTTPExecutor(cfg)
        scheduler = Scheduler(
            executor,
            max_retries=cfg.max_rate_limit_retries,
            default_retry_after=cfg.default_retry_after,
        )
        dispatcher = Dispatcher(cfg, scheduler)
        return cls(
            config=cfg,
            executor=executor,
            scheduler=scheduler,
            dispatcher=dispatcher,
            guilds=GuildService(dispatcher),
        )

    async def aclose(self) -> None:
        """Close any underlying resources."""

        await self.dispatcher.aclose()
