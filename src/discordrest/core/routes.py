"""Route templates and rate-limit bucket keys."""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Any, Dict, Mapping, Optional

from .errors import RouteError
from .models import HTTPMethod

_PLACEHOLDER = re.compile(r"\{([^{}]+)\}")


@dataclass(frozen=True, slots=True)
class RouteKey:
    """Identity of a rate-limit bucket.

    Requests that share method, template and major parameter value share a
    bucket; minor parameters (user ids, message ids) are not part of it.
    """

    method: HTTPMethod
    template: str
    major: Optional[str] = None

    def __str__(self) -> str:
        suffix = f" [{self.major}]" if self.major is not None else ""
        return f"{self.method.value} {self.template}{suffix}"


@dataclass(frozen=True, slots=True)
class Route:
    """A logical API operation."""

    name: str
    method: HTTPMethod
    template: str
    major: Optional[str] = None

    def path(self, params: Mapping[str, Any]) -> str:
        """Substitute every placeholder in the template."""

        def _replace(match: "re.Match[str]") -> str:
            placeholder = match.group(1)
            if placeholder not in params:
                raise RouteError(f"Route {self.name} requires parameter {placeholder!r}")
            return str(params[placeholder])

        return _PLACEHOLDER.sub(_replace, self.template)

    def key(self, params: Mapping[str, Any]) -> RouteKey:
        return resolve(self.method, self.template, params)


def _catalog(*routes: Route) -> Dict[str, Route]:
    return {route.name: route for route in routes}


ROUTES: Dict[str, Route] = _catalog(
    Route("get_gateway", HTTPMethod.GET, "/gateway"),
    Route("get_gateway_bot", HTTPMethod.GET, "/gateway/bot"),
    Route("get_current_user", HTTPMethod.GET, "/users/@me"),
    Route("get_guild", HTTPMethod.GET, "/guilds/{guild.id}", "guild.id"),
    Route("modify_guild", HTTPMethod.PATCH, "/guilds/{guild.id}", "guild.id"),
    Route("delete_guild", HTTPMethod.DELETE, "/guilds/{guild.id}", "guild.id"),
    Route("get_guild_channels", HTTPMethod.GET, "/guilds/{guild.id}/channels", "guild.id"),
    Route("create_guild_channel", HTTPMethod.POST, "/guilds/{guild.id}/channels", "guild.id"),
    Route("modify_guild_channel_positions", HTTPMethod.PATCH, "/guilds/{guild.id}/channels", "guild.id"),
    Route("get_guild_member", HTTPMethod.GET, "/guilds/{guild.id}/members/{user.id}", "guild.id"),
    Route("get_guild_members", HTTPMethod.GET, "/guilds/{guild.id}/members", "guild.id"),
    Route("get_guild_roles", HTTPMethod.GET, "/guilds/{guild.id}/roles", "guild.id"),
    Route("get_guild_emojis", HTTPMethod.GET, "/guilds/{guild.id}/emojis", "guild.id"),
    Route("get_channel", HTTPMethod.GET, "/channels/{channel.id}", "channel.id"),
    Route("get_channel_messages", HTTPMethod.GET, "/channels/{channel.id}/messages", "channel.id"),
    Route("create_message", HTTPMethod.POST, "/channels/{channel.id}/messages", "channel.id"),
    Route("delete_message", HTTPMethod.DELETE, "/channels/{channel.id}/messages/{message.id}", "channel.id"),
    Route(
        "edit_channel_permissions",
        HTTPMethod.PUT,
        "/channels/{channel.id}/permissions/{overwrite.id}",
        "channel.id",
    ),
    Route("execute_webhook", HTTPMethod.POST, "/webhooks/{webhook.id}/{webhook.token}", "webhook.id"),
)

# template -> major placeholder; templates are shared across methods
TEMPLATE_MAJORS: Dict[str, Optional[str]] = {route.template: route.major for route in ROUTES.values()}


def get_route(name: str) -> Route:
    try:
        return ROUTES[name]
    except KeyError:
        raise RouteError(f"Unknown route {name!r}") from None


def resolve(method: HTTPMethod | str, template: str, params: Mapping[str, Any]) -> RouteKey:
    """Derive the bucket key for a call.

    Raises :class:`RouteError` for templates missing from the catalog and for
    calls that omit the template's major parameter.
    """

    if template not in TEMPLATE_MAJORS:
        raise RouteError(f"Unknown route template {template!r}")
    major_name = TEMPLATE_MAJORS[template]
    major_value: Optional[str] = None
    if major_name is not None:
        if params.get(major_name) in (None, ""):
            raise RouteError(f"Route template {template!r} requires major parameter {major_name!r}")
        major_value = str(params[major_name])
    if not isinstance(method, HTTPMethod):
        method = HTTPMethod(method.upper())
    return RouteKey(method=method, template=template, major=major_value)
