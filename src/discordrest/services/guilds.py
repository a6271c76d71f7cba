"""Guild endpoint wrappers."""

from __future__ import annotations

from typing import Any, Dict, List, Optional

from .dispatcher import Dispatcher

MODIFY_GUILD_FIELDS = frozenset(
    {
        "afk_channel_id",
        "afk_timeout",
        "default_message_notifications",
        "icon",
        "name",
        "owner_id",
        "region",
        "splash",
        "verification_level",
    }
)

CREATE_CHANNEL_FIELDS = frozenset({"bitrate", "name", "permission_overwrites", "type", "user_limit"})


def _options(allowed: frozenset, options: Dict[str, Any]) -> Dict[str, Any]:
    unknown = sorted(set(options) - allowed)
    if unknown:
        raise ValueError(f"Unsupported option(s): {', '.join(unknown)}")
    return {key: value for key, value in options.items() if value is not None}


class GuildService:
    """Wraps the guild routes. Responses come back as decoded JSON."""

    def __init__(self, dispatcher: Dispatcher) -> None:
        self._dispatcher = dispatcher

    async def delete_guild(self, guild_id: str) -> None:
        await self._dispatcher.request("delete_guild", {"guild.id": guild_id})

    async def modify_guild(self, guild_id: str, **options: Any) -> Dict[str, Any]:
        payload = _options(MODIFY_GUILD_FIELDS, options)
        result = await self._dispatcher.request("modify_guild", {"guild.id": guild_id}, json_body=payload)
        return result.json() or {}

    async def create_guild_channel(self, guild_id: str, **options: Any) -> Dict[str, Any]:
        payload = _options(CREATE_CHANNEL_FIELDS, options)
        if "type" in payload and hasattr(payload["type"], "value"):
            payload["type"] = payload["type"].value
        result = await self._dispatcher.request("create_guild_channel", {"guild.id": guild_id}, json_body=payload)
        return result.json() or {}

    async def get_guild_channels(self, guild_id: str) -> List[Dict[str, Any]]:
        result = await self._dispatcher.request("get_guild_channels", {"guild.id": guild_id})
        return result.json() or []

    async def modify_guild_channel_position(self, guild_id: str, channel_id: str, position: int) -> None:
        await self._dispatcher.request(
            "modify_guild_channel_positions",
            {"guild.id": guild_id},
            json_body=[{"id": channel_id, "position": position}],
        )

    async def get_guild_member(self, guild_id: str, user_id: str) -> Dict[str, Any]:
        result = await self._dispatcher.request("get_guild_member", {"guild.id": guild_id, "user.id": user_id})
        return result.json() or {}

    async def get_guild_members(
        self,
        guild_id: str,
        *,
        after: Optional[str] = None,
        limit: Optional[int] = None,
    ) -> List[Dict[str, Any]]:
        query = {"after": after, "limit": limit}
        result = await self._dispatcher.request("get_guild_members", {"guild.id": guild_id}, query=query)
        return result.json() or []
