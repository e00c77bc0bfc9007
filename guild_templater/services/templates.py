"""
Template registry.

Built-in templates ship as YAML files next to this package. Each file is
parsed into an immutable ``ServerTemplate``; parsing errors surface as
``TemplateLoadError`` so callers can tell bad data from an unknown id.
"""

from __future__ import annotations

import functools
import logging
import re
from pathlib import Path
from typing import Any

import yaml

from guild_templater.constants import (
    MAX_BITRATE,
    MAX_SLOWMODE_SECONDS,
    MAX_USER_LIMIT,
    MIN_BITRATE,
)
from guild_templater.exceptions import TemplateLoadError, TemplateNotFoundError
from guild_templater.types import (
    CategorySpec,
    ChannelKind,
    ChannelSpec,
    PermissionOverride,
    RoleSpec,
    ServerTemplate,
)
from guild_templater.utils.logging import log_with_context

TEMPLATES_DIR = Path(__file__).resolve().parent.parent / "templates"

# Listing order of the built-in templates
BUILTIN_TEMPLATE_IDS = ("gaming", "community", "business", "study_group")

_COLOR_RE = re.compile(r"^#?([0-9A-Fa-f]{6})$")


def normalize_template_id(template_id: str) -> str:
    """Template ids are case-insensitive and accept hyphens for underscores."""
    return template_id.strip().lower().replace("-", "_")


def normalize_color(value: Any) -> str:
    """
    Normalize a hex colour to ``#RRGGBB``.

    Raises:
        TemplateLoadError: If the value is not a six-digit hex colour
    """
    match = _COLOR_RE.match(str(value).strip())
    if not match:
        raise TemplateLoadError(f"Invalid colour '{value}', expected #RRGGBB")
    return f"#{match.group(1).upper()}"


def _require_name(data: Any, what: str) -> str:
    if not isinstance(data, dict):
        raise TemplateLoadError(f"Each {what} must be a mapping, got {type(data).__name__}")
    name = data.get("name")
    if not isinstance(name, str) or not name.strip():
        raise TemplateLoadError(f"A {what} is missing its name")
    return name


def parse_role(data: Any) -> RoleSpec:
    name = _require_name(data, "role")
    permissions = data.get("permissions") or []
    if not isinstance(permissions, list):
        raise TemplateLoadError(f"Permissions of role '{name}' must be a list")
    try:
        position = int(data.get("position", 0))
    except (TypeError, ValueError) as e:
        raise TemplateLoadError(f"Invalid position for role '{name}'") from e
    return RoleSpec(
        name=name,
        color=normalize_color(data.get("color", "#99AAB5")),
        hoist=bool(data.get("hoist", False)),
        mentionable=bool(data.get("mentionable", False)),
        permissions=tuple(str(p).upper() for p in permissions),
        position=position,
    )


def _permission_names(values: Any, owner: str) -> tuple[str, ...]:
    if values is None:
        return ()
    if not isinstance(values, list):
        raise TemplateLoadError(f"Permission lists of '{owner}' must be lists")
    return tuple(str(value).upper() for value in values)


def parse_permission_overrides(data: Any, owner: str) -> tuple[PermissionOverride, ...]:
    """Parse the ``permission_overrides`` list of a category or channel."""
    if not data:
        return ()
    if not isinstance(data, list):
        raise TemplateLoadError(f"Permission overrides of '{owner}' must be a list")

    overrides = []
    for entry in data:
        if not isinstance(entry, dict) or not entry.get("role"):
            raise TemplateLoadError(
                f"Each permission override of '{owner}' needs a role"
            )
        overrides.append(
            PermissionOverride(
                role=str(entry["role"]),
                allow=_permission_names(entry.get("allow"), owner),
                deny=_permission_names(entry.get("deny"), owner),
            )
        )
    return tuple(overrides)


def _optional_int(
    data: dict, key: str, name: str, low: int, high: int
) -> int | None:
    value = data.get(key)
    if value is None:
        return None
    try:
        value = int(value)
    except (TypeError, ValueError) as e:
        raise TemplateLoadError(f"Invalid {key} for channel '{name}'") from e
    if not low <= value <= high:
        raise TemplateLoadError(
            f"{key} for channel '{name}' must be between {low} and {high}, got {value}"
        )
    return value


def parse_channel(data: Any, allow_category: bool = False) -> ChannelSpec:
    """
    Parse one channel mapping.

    Args:
        data: Mapping with ``name``, ``type`` and optional settings
        allow_category: Accept a ``category`` key, used by additional channels

    Returns:
        The parsed ChannelSpec
    """
    name = _require_name(data, "channel")

    raw_kind = data.get("type", ChannelKind.TEXT.value)
    try:
        kind = ChannelKind(str(raw_kind).lower())
    except ValueError as e:
        raise TemplateLoadError(
            f"Unknown channel type '{raw_kind}' for channel '{name}'"
        ) from e

    try:
        slowmode = int(data.get("slowmode", 0) or 0)
    except (TypeError, ValueError) as e:
        raise TemplateLoadError(f"Invalid slowmode for channel '{name}'") from e
    if not 0 <= slowmode <= MAX_SLOWMODE_SECONDS:
        raise TemplateLoadError(
            f"Slowmode for channel '{name}' must be between 0 and "
            f"{MAX_SLOWMODE_SECONDS} seconds, got {slowmode}"
        )

    category = data.get("category") if allow_category else None
    return ChannelSpec(
        name=name,
        kind=kind,
        topic=data.get("topic"),
        slowmode=slowmode,
        nsfw=bool(data.get("nsfw", False)),
        category=category,
        bitrate=_optional_int(data, "bitrate", name, MIN_BITRATE, MAX_BITRATE),
        user_limit=_optional_int(data, "user_limit", name, 0, MAX_USER_LIMIT),
        permission_overrides=parse_permission_overrides(
            data.get("permission_overrides"), name
        ),
    )


def parse_template(data: Any, source: str = "<data>") -> ServerTemplate:
    """Build a ServerTemplate from a decoded YAML document."""
    if not isinstance(data, dict):
        raise TemplateLoadError(f"Template {source} must be a mapping")
    template_id = data.get("id")
    if not template_id:
        raise TemplateLoadError(f"Template {source} has no id")

    categories = []
    for raw_category in data.get("categories") or []:
        category_name = _require_name(raw_category, "category")
        channels = tuple(
            parse_channel(channel) for channel in raw_category.get("channels") or []
        )
        categories.append(
            CategorySpec(
                name=category_name,
                channels=channels,
                permission_overrides=parse_permission_overrides(
                    raw_category.get("permission_overrides"), category_name
                ),
            )
        )

    return ServerTemplate(
        id=normalize_template_id(str(template_id)),
        name=str(data.get("name") or template_id),
        description=str(data.get("description") or ""),
        use_case=str(data.get("use_case") or ""),
        roles=tuple(parse_role(role) for role in data.get("roles") or []),
        categories=tuple(categories),
    )


def load_template_file(path: Path) -> ServerTemplate:
    """
    Load a template from a YAML file.

    Raises:
        TemplateLoadError: If the file cannot be read or parsed
    """
    try:
        with open(path, encoding="utf-8") as f:
            data = yaml.safe_load(f)
    except (OSError, yaml.YAMLError) as e:
        raise TemplateLoadError(f"Failed to load template file {path}: {e}") from e

    template = parse_template(data, source=str(path))
    log_with_context(
        logging.DEBUG,
        f"Loaded template '{template.id}' from {path}",
        template_id=template.id,
    )
    return template


@functools.lru_cache(maxsize=None)
def _load_builtin(template_id: str) -> ServerTemplate:
    return load_template_file(TEMPLATES_DIR / f"{template_id}.yaml")


def get_template(template_id: str) -> ServerTemplate:
    """
    Look up a built-in template by id.

    Raises:
        TemplateNotFoundError: If no built-in template has this id
        TemplateLoadError: If the template file is broken
    """
    normalized = normalize_template_id(template_id)
    if normalized not in BUILTIN_TEMPLATE_IDS:
        raise TemplateNotFoundError(
            template_id,
            f"Template '{template_id}' not found. "
            f"Available templates: {', '.join(BUILTIN_TEMPLATE_IDS)}",
        )
    return _load_builtin(normalized)


def list_templates() -> list[ServerTemplate]:
    return [get_template(template_id) for template_id in BUILTIN_TEMPLATE_IDS]


def template_summary(template: ServerTemplate) -> dict[str, Any]:
    """Counts and descriptive fields for listing a template."""
    return {
        "id": template.id,
        "name": template.name,
        "description": template.description,
        "use_case": template.use_case,
        "role_count": len(template.roles),
        "category_count": len(template.categories),
        "channel_count": template.channel_count,
    }
