"""
Pre-flight checks for applying a template to an existing server.

Run before ``apply --skip_server_creation`` on the REST backend, so a bot that
lacks the rights to build the template fails before the first mutation
instead of half-way through the run.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any

from guild_templater.constants import (
    DISCORD_CHANNEL_TYPE_CATEGORY,
    EXISTING_CHANNEL_WARNING,
    EXISTING_ROLE_WARNING,
)
from guild_templater.exceptions import BackendError, GuildValidationError
from guild_templater.services.rest_backend import PERMISSION_BITS, DiscordRestBackend
from guild_templater.types import ServerTemplate
from guild_templater.utils.logging import log_with_context

REQUIRED_PERMISSIONS = ("MANAGE_CHANNELS", "MANAGE_ROLES")


@dataclass
class GuildCheck:
    """Findings about one server. Errors block the run, warnings do not."""

    guild_id: str
    warnings: list[str] = field(default_factory=list)
    errors: list[str] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.errors


def effective_permissions(
    member: dict[str, Any], roles: list[dict[str, Any]], guild_id: str
) -> int:
    """OR together the permissions of @everyone and every role the member has."""
    member_roles = {str(role_id) for role_id in member.get("roles") or []}
    member_roles.add(str(guild_id))
    bits = 0
    for role in roles:
        if str(role.get("id")) in member_roles:
            bits |= int(role.get("permissions") or 0)
    return bits


def missing_permissions(
    bits: int, required: tuple[str, ...] = REQUIRED_PERMISSIONS
) -> list[str]:
    if bits & (1 << PERMISSION_BITS["ADMINISTRATOR"]):
        return []
    return [name for name in required if not bits & (1 << PERMISSION_BITS[name])]


def validate_guild_for_template(
    backend: DiscordRestBackend, guild_id: str, template: ServerTemplate
) -> GuildCheck:
    """
    Inspect ``guild_id`` for limits, name conflicts and bot permissions.

    Args:
        backend: REST backend used to read the server
        guild_id: Id of the existing server
        template: The template about to be applied

    Returns:
        GuildCheck with warnings and errors
    """
    check = GuildCheck(guild_id=guild_id)
    try:
        guild = backend.get_guild(guild_id)
        channels = backend.list_channels(guild_id)
        roles = backend.list_roles(guild_id)
        member = backend.get_own_member(guild_id)
    except BackendError as e:
        check.errors.append(f"Could not inspect server {guild_id}: {e}")
        return check

    if len(channels) > EXISTING_CHANNEL_WARNING:
        check.warnings.append(
            f"Server has {len(channels)} existing channels. The template adds "
            f"{template.channel_count + len(template.categories)} more, "
            "Discord allows 500."
        )
    if len(roles) > EXISTING_ROLE_WARNING:
        check.warnings.append(
            f"Server has {len(roles)} existing roles. The template adds "
            f"{len(template.roles)} more, Discord allows 250."
        )

    existing_roles = {str(role.get("name", "")).lower() for role in roles}
    conflicting_roles = [
        role.name for role in template.roles if role.name.lower() in existing_roles
    ]
    if conflicting_roles:
        check.warnings.append(
            "These roles already exist and will be created again: "
            + ", ".join(conflicting_roles)
        )

    existing_categories = {
        str(channel.get("name", "")).lower()
        for channel in channels
        if channel.get("type") == DISCORD_CHANNEL_TYPE_CATEGORY
    }
    conflicting_categories = [
        category.name
        for category in template.categories
        if category.name.lower() in existing_categories
    ]
    if conflicting_categories:
        check.warnings.append(
            "These categories already exist and will be created again: "
            + ", ".join(conflicting_categories)
        )

    bot_id = str((member.get("user") or {}).get("id"))
    if str(guild.get("owner_id")) != bot_id:
        missing = missing_permissions(effective_permissions(member, roles, guild_id))
        if missing:
            check.errors.append(f"Bot is missing permissions: {', '.join(missing)}")

    return check


def ensure_guild_ready(
    backend: DiscordRestBackend, guild_id: str, template: ServerTemplate
) -> GuildCheck:
    """
    Run :func:`validate_guild_for_template` and log what it found.

    Raises:
        GuildValidationError: If any check failed
    """
    log_with_context(
        logging.INFO, f"Checking server {guild_id} before applying the template"
    )
    check = validate_guild_for_template(backend, guild_id, template)
    for warning in check.warnings:
        log_with_context(logging.WARNING, warning, guild_id=guild_id)

    if not check.ok:
        for error in check.errors:
            log_with_context(logging.ERROR, error, guild_id=guild_id)
        raise GuildValidationError(
            f"Server {guild_id} failed {len(check.errors)} pre-flight check(s): "
            f"{'; '.join(check.errors)}. "
            "Fix the issues or run with --skip_preflight if you're sure."
        )

    log_with_context(logging.INFO, "Pre-flight checks passed", guild_id=guild_id)
    return check
