"""
Customization resolver.

Turns a template plus the caller's customization into the ordered plan the
orchestrator walks. Skipped roles and channels stay in the plan, tagged, so
that they are still counted and recorded.
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from typing import Any, Union

from guild_templater.exceptions import ConfigError, TemplateLoadError
from guild_templater.services.templates import (
    get_template,
    normalize_color,
    parse_channel,
    parse_role,
)
from guild_templater.types import (
    ChannelSpec,
    PermissionOverride,
    RoleSpec,
    ServerTemplate,
)


@dataclass(frozen=True)
class Customization:
    """Caller-supplied adjustments applied on top of a template."""

    skip_roles: frozenset[str] = frozenset()
    skip_channels: frozenset[str] = frozenset()
    additional_roles: tuple[RoleSpec, ...] = ()
    additional_channels: tuple[ChannelSpec, ...] = ()
    role_color_overrides: dict[str, str] = field(default_factory=dict)

    @classmethod
    def from_dict(cls, data: dict[str, Any] | None) -> Customization:
        """Build a Customization from the ``customization`` config section."""
        if not data:
            return cls()
        try:
            additional_roles = tuple(
                parse_role(role) for role in data.get("additional_roles") or []
            )
            additional_channels = tuple(
                parse_channel(channel, allow_category=True)
                for channel in data.get("additional_channels") or []
            )
            overrides = {
                str(name): normalize_color(color)
                for name, color in (data.get("role_color_overrides") or {}).items()
            }
        except TemplateLoadError as e:
            raise ConfigError(f"Invalid customization: {e}") from e
        return cls(
            skip_roles=frozenset(data.get("skip_roles") or ()),
            skip_channels=frozenset(data.get("skip_channels") or ()),
            additional_roles=additional_roles,
            additional_channels=additional_channels,
            role_color_overrides=overrides,
        )

    def merged_with(
        self,
        skip_roles: tuple[str, ...] = (),
        skip_channels: tuple[str, ...] = (),
    ) -> Customization:
        """Return a copy with extra skip entries, e.g. from the command line."""
        return replace(
            self,
            skip_roles=self.skip_roles | frozenset(skip_roles),
            skip_channels=self.skip_channels | frozenset(skip_channels),
        )


@dataclass(frozen=True)
class PlannedRole:
    spec: RoleSpec
    skipped: bool = False
    additional: bool = False


@dataclass(frozen=True)
class PlannedChannel:
    spec: ChannelSpec
    skipped: bool = False
    additional: bool = False


@dataclass(frozen=True)
class PlannedCategory:
    name: str
    channels: tuple[PlannedChannel, ...] = ()
    permission_overrides: tuple[PermissionOverride, ...] = ()


@dataclass(frozen=True)
class ExecutionPlan:
    """Ordered work for one run, derived from a template and a customization."""

    template: ServerTemplate
    roles: tuple[PlannedRole, ...] = ()
    categories: tuple[PlannedCategory, ...] = ()
    uncategorized_channels: tuple[PlannedChannel, ...] = ()

    @property
    def channels(self) -> list[PlannedChannel]:
        planned = [ch for category in self.categories for ch in category.channels]
        planned.extend(self.uncategorized_channels)
        return planned


def load_template(template: Union[str, ServerTemplate]) -> ServerTemplate:
    """
    Resolve a template id to its definition.

    Raises:
        TemplateNotFoundError: If the id is unknown
        TemplateLoadError: If the template data cannot be parsed
    """
    if isinstance(template, ServerTemplate):
        return template
    return get_template(template)


def resolve_plan(
    template: ServerTemplate, customization: Customization | None = None
) -> ExecutionPlan:
    """
    Apply ``customization`` to ``template``.

    Base roles are ordered by descending hierarchy position, ties keeping
    declaration order, and followed by additional roles in caller order.
    Additional channels are appended to the category they name, or planned
    without a parent when the category is absent from the template.

    Args:
        template: The template to apply
        customization: Skips, additions and colour overrides

    Returns:
        The ExecutionPlan for the run
    """
    customization = customization or Customization()

    base_roles = sorted(template.roles, key=lambda role: role.position, reverse=True)
    roles = [
        PlannedRole(
            spec=_apply_color_override(role, customization.role_color_overrides),
            skipped=role.name in customization.skip_roles,
        )
        for role in base_roles
    ]
    roles.extend(
        PlannedRole(spec=role, additional=True)
        for role in customization.additional_roles
    )

    category_names = {category.name for category in template.categories}
    categories = []
    for category in template.categories:
        channels = [
            PlannedChannel(spec=channel, skipped=channel.name in customization.skip_channels)
            for channel in category.channels
        ]
        channels.extend(
            PlannedChannel(spec=channel, additional=True)
            for channel in customization.additional_channels
            if channel.category == category.name
        )
        categories.append(
            PlannedCategory(
                name=category.name,
                channels=tuple(channels),
                permission_overrides=category.permission_overrides,
            )
        )

    uncategorized = tuple(
        PlannedChannel(spec=channel, additional=True)
        for channel in customization.additional_channels
        if channel.category not in category_names
    )

    return ExecutionPlan(
        template=template,
        roles=tuple(roles),
        categories=tuple(categories),
        uncategorized_channels=uncategorized,
    )


def count_operations(plan: ExecutionPlan, skip_server_creation: bool = False) -> int:
    """Total unit operations of a plan, skipped items included."""
    server = 0 if skip_server_creation else 1
    return server + len(plan.roles) + len(plan.categories) + len(plan.channels)


def _apply_color_override(role: RoleSpec, overrides: dict[str, str]) -> RoleSpec:
    color = overrides.get(role.name)
    if color is None or color == role.color:
        return role
    return replace(role, color=color)
