import asyncio

import pytest

from discordrest.core.models import DispatchResult
from discordrest.services.guilds import GuildService


class StubDispatcher:
    def __init__(self, body=b"{}"):
        self.body = body
        self.calls = []

    async def request(self, route, params=None, *, query=None, json_body=None, timeout=None):
        self.calls.append({"route": route, "params": params, "query": query, "json": json_body})
        return DispatchResult(body=self.body, status_code=200)


def test_modify_guild_sends_only_known_options():
    dispatcher = StubDispatcher(body=b'{"id": "1", "name": "New"}')
    service = GuildService(dispatcher)  # type: ignore[arg-type]

    guild = asyncio.run(service.modify_guild("1", name="New", afk_timeout=300, icon=None))

    assert guild["name"] == "New"
    assert dispatcher.calls[0]["route"] == "modify_guild"
    assert dispatcher.calls[0]["params"] == {"guild.id": "1"}
    assert dispatcher.calls[0]["json"] == {"name": "New", "afk_timeout": 300}


def test_modify_guild_rejects_unknown_options():
    service = GuildService(StubDispatcher())  # type: ignore[arg-type]

    with pytest.raises(ValueError):
        asyncio.run(service.modify_guild("1", colour="red"))


def test_get_guild_members_passes_paging_query():
    dispatcher = StubDispatcher(body=b'[{"user": {"id": "5"}}]')
    service = GuildService(dispatcher)  # type: ignore[arg-type]

    members = asyncio.run(service.get_guild_members("1", after="4", limit=10))

    assert members == [{"user": {"id": "5"}}]
    assert dispatcher.calls[0]["query"] == {"after": "4", "limit": 10}


def test_channel_position_and_member_lookup_routes():
    dispatcher = StubDispatcher()
    service = GuildService(dispatcher)  # type: ignore[arg-type]

    async def scenario():
        await service.modify_guild_channel_position("1", "22", 3)
        await service.get_guild_member("1", "77")
        await service.delete_guild("1")

    asyncio.run(scenario())

    assert [call["route"] for call in dispatcher.calls] == [
        "modify_guild_channel_positions",
        "get_guild_member",
        "delete_guild",
    ]
    assert dispatcher.calls[0]["json"] == [{"id": "22", "position": 3}]
    assert dispatcher.calls[1]["params"] == {"guild.id": "1", "user.id": "77"}


def test_empty_bodies_decode_to_empty_collections():
    dispatcher = StubDispatcher(body=b"")
    service = GuildService(dispatcher)  # type: ignore[arg-type]

    assert asyncio.run(service.get_guild_channels("1")) == []
    assert asyncio.run(service.create_guild_channel("1", name="general", type=0)) == {}
