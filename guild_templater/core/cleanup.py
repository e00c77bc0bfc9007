"""
Removal of what a template created on a server.

Matches by name: channels, then categories, then roles whose names appear in
the template are deleted through the REST backend. The default ``@everyone``
role and bot-managed roles are never touched.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

from tqdm import tqdm

from guild_templater.constants import DISCORD_CHANNEL_TYPE_CATEGORY
from guild_templater.exceptions import ConfirmationRequiredError
from guild_templater.types import ServerTemplate
from guild_templater.utils.logging import log_with_context

if TYPE_CHECKING:
    from guild_templater.services.rest_backend import DiscordRestBackend


@dataclass
class CleanupSummary:
    """Names removed and failures hit while cleaning up a server."""

    deleted_channels: list[str] = field(default_factory=list)
    deleted_categories: list[str] = field(default_factory=list)
    deleted_roles: list[str] = field(default_factory=list)
    errors: list[str] = field(default_factory=list)

    @property
    def deleted_count(self) -> int:
        return (
            len(self.deleted_channels)
            + len(self.deleted_categories)
            + len(self.deleted_roles)
        )


def _template_names(template: ServerTemplate) -> tuple[set[str], set[str], set[str]]:
    channels = {ch.name for category in template.categories for ch in category.channels}
    categories = {category.name for category in template.categories}
    roles = {role.name for role in template.roles}
    return channels, categories, roles


def _is_protected_role(role: dict[str, Any], server_ref: str) -> bool:
    # @everyone shares the guild id
    return (
        str(role.get("id")) == str(server_ref)
        or role.get("name") == "@everyone"
        or bool(role.get("managed"))
    )


def cleanup_template(
    backend: DiscordRestBackend,
    server_ref: str,
    template: ServerTemplate,
    confirm: bool = False,
) -> CleanupSummary:
    """Delete the channels, categories and roles of ``template`` from a server.

    Args:
        backend: REST backend authorised for the server.
        server_ref: Guild id.
        template: Template whose entities should be removed.
        confirm: Must be True; nothing is listed or deleted otherwise.

    Returns:
        CleanupSummary of what was removed.

    Raises:
        ConfirmationRequiredError: If ``confirm`` is False
        BackendError: If the server's channels or roles cannot be listed
    """
    if not confirm:
        raise ConfirmationRequiredError(
            f"delete template '{template.id}' entities from server {server_ref}"
        )

    channel_names, category_names, role_names = _template_names(template)
    summary = CleanupSummary()

    existing_channels = backend.list_channels(server_ref)
    categories = [
        ch
        for ch in existing_channels
        if ch.get("type") == DISCORD_CHANNEL_TYPE_CATEGORY
        and ch.get("name") in category_names
    ]
    channels = [
        ch
        for ch in existing_channels
        if ch.get("type") != DISCORD_CHANNEL_TYPE_CATEGORY
        and ch.get("name") in channel_names
    ]
    roles = [
        role
        for role in backend.list_roles(server_ref)
        if role.get("name") in role_names and not _is_protected_role(role, server_ref)
    ]

    log_with_context(
        logging.INFO,
        f"Cleaning up template '{template.id}': {len(channels)} channels, "
        f"{len(categories)} categories, {len(roles)} roles",
        template_id=template.id,
    )

    # Channels go before their categories
    targets = [("channel", ch, summary.deleted_channels) for ch in channels]
    targets += [("category", cat, summary.deleted_categories) for cat in categories]
    targets += [("role", role, summary.deleted_roles) for role in roles]

    pbar = tqdm(targets, desc=f"Removing template '{template.id}'", unit="item")
    for kind, entity, deleted in pbar:
        name = entity.get("name")
        entity_id = str(entity["id"])
        if kind == "role":
            result = backend.delete_role(server_ref, entity_id, confirm=True)
        else:
            result = backend.delete_channel(entity_id, confirm=True)

        if result.success:
            deleted.append(name)
            log_with_context(
                logging.DEBUG, f"Deleted {kind} '{name}'", operation=name
            )
        else:
            message = f"Failed to delete {kind} '{name}': {result.error}"
            summary.errors.append(message)
            log_with_context(
                logging.WARNING, message, operation=name, error_code=result.code
            )

    log_with_context(
        logging.INFO,
        f"Cleanup finished: {summary.deleted_count} deleted, "
        f"{len(summary.errors)} failed",
    )
    return summary
