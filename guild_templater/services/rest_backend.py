"""Discord REST API v10 backend.

Talks to Discord with a bot token over a shared ``requests.Session``.
Transient failures (rate limits, server errors, dropped connections) are
retried here with capped, jittered backoff; everything else is returned to
the orchestrator verbatim in a ``MutationResult``.
"""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass, field
from typing import Any, Optional

import requests

from guild_templater.constants import (
    DEFAULT_REQUEST_TIMEOUT,
    DISCORD_API_BASE,
    DISCORD_CHANNEL_TYPE_ANNOUNCEMENT,
    DISCORD_CHANNEL_TYPE_CATEGORY,
    DISCORD_CHANNEL_TYPE_FORUM,
    DISCORD_CHANNEL_TYPE_STAGE,
    DISCORD_CHANNEL_TYPE_TEXT,
    DISCORD_CHANNEL_TYPE_VOICE,
    HTTP_NO_CONTENT,
    USER_AGENT,
)
from guild_templater.core.classification import is_transient_status
from guild_templater.core.config import TransportRetryConfig
from guild_templater.core.retry import retry_transport
from guild_templater.exceptions import BackendError, ConfirmationRequiredError
from guild_templater.services.backend import MutatorBackend
from guild_templater.types import (
    ChannelKind,
    ChannelSpec,
    MutationResult,
    PermissionOverride,
    RoleSpec,
)
from guild_templater.utils.logging import (
    log_api_request,
    log_api_response,
    log_with_context,
)

CHANNEL_TYPES = {
    ChannelKind.TEXT: DISCORD_CHANNEL_TYPE_TEXT,
    ChannelKind.VOICE: DISCORD_CHANNEL_TYPE_VOICE,
    ChannelKind.ANNOUNCEMENT: DISCORD_CHANNEL_TYPE_ANNOUNCEMENT,
    ChannelKind.STAGE: DISCORD_CHANNEL_TYPE_STAGE,
    ChannelKind.FORUM: DISCORD_CHANNEL_TYPE_FORUM,
}

EVERYONE_ROLE = "@everyone"

# permission_overwrites target type for roles
OVERWRITE_TYPE_ROLE = 0

# Bit offsets of Discord permission flags
PERMISSION_BITS = {
    "CREATE_INSTANT_INVITE": 0,
    "KICK_MEMBERS": 1,
    "BAN_MEMBERS": 2,
    "ADMINISTRATOR": 3,
    "MANAGE_CHANNELS": 4,
    "MANAGE_GUILD": 5,
    "ADD_REACTIONS": 6,
    "VIEW_AUDIT_LOG": 7,
    "PRIORITY_SPEAKER": 8,
    "STREAM": 9,
    "VIEW_CHANNEL": 10,
    "SEND_MESSAGES": 11,
    "SEND_TTS_MESSAGES": 12,
    "MANAGE_MESSAGES": 13,
    "EMBED_LINKS": 14,
    "ATTACH_FILES": 15,
    "READ_MESSAGE_HISTORY": 16,
    "MENTION_EVERYONE": 17,
    "USE_EXTERNAL_EMOJIS": 18,
    "VIEW_GUILD_INSIGHTS": 19,
    "CONNECT": 20,
    "SPEAK": 21,
    "MUTE_MEMBERS": 22,
    "DEAFEN_MEMBERS": 23,
    "MOVE_MEMBERS": 24,
    "USE_VAD": 25,
    "CHANGE_NICKNAME": 26,
    "MANAGE_NICKNAMES": 27,
    "MANAGE_ROLES": 28,
    "MANAGE_WEBHOOKS": 29,
    "MANAGE_EMOJIS_AND_STICKERS": 30,
    "USE_APPLICATION_COMMANDS": 31,
    "REQUEST_TO_SPEAK": 32,
    "MANAGE_EVENTS": 33,
    "MANAGE_THREADS": 34,
    "CREATE_PUBLIC_THREADS": 35,
    "CREATE_PRIVATE_THREADS": 36,
    "USE_EXTERNAL_STICKERS": 37,
    "SEND_MESSAGES_IN_THREADS": 38,
    "USE_EMBEDDED_ACTIVITIES": 39,
    "MODERATE_MEMBERS": 40,
    "USE_SOUNDBOARD": 42,
    "CREATE_EVENTS": 44,
    "USE_EXTERNAL_SOUNDS": 45,
    "SEND_VOICE_MESSAGES": 46,
}


def hex_to_int(hex_color: str) -> int:
    """Convert a hex colour such as ``#F97316`` to its integer value."""
    return int(hex_color.lstrip("#"), 16)


def permissions_to_bitfield(permissions: tuple[str, ...] | list[str]) -> str:
    """Combine permission names into the decimal string Discord expects.

    Unknown names are logged and ignored.
    """
    bitfield = 0
    for permission in permissions:
        bit = PERMISSION_BITS.get(permission.upper())
        if bit is None:
            log_with_context(
                logging.WARNING, f"Ignoring unknown permission '{permission}'"
            )
            continue
        bitfield |= 1 << bit
    return str(bitfield)


def role_payload(role: RoleSpec) -> dict[str, Any]:
    return {
        "name": role.name,
        "color": hex_to_int(role.color),
        "hoist": role.hoist,
        "mentionable": role.mentionable,
        "permissions": permissions_to_bitfield(role.permissions),
    }


def overwrite_payload(override: PermissionOverride, role_id: str) -> dict[str, Any]:
    return {
        "id": role_id,
        "type": OVERWRITE_TYPE_ROLE,
        "allow": permissions_to_bitfield(override.allow),
        "deny": permissions_to_bitfield(override.deny),
    }


def channel_payload(
    channel: ChannelSpec,
    parent_id: Optional[str] = None,
    overwrites: Optional[list[dict[str, Any]]] = None,
) -> dict[str, Any]:
    payload: dict[str, Any] = {
        "name": channel.name,
        "type": CHANNEL_TYPES[channel.kind],
    }
    if parent_id:
        payload["parent_id"] = parent_id
    if channel.topic and channel.kind in (
        ChannelKind.TEXT,
        ChannelKind.ANNOUNCEMENT,
        ChannelKind.FORUM,
    ):
        payload["topic"] = channel.topic
    if channel.slowmode:
        payload["rate_limit_per_user"] = channel.slowmode
    if channel.nsfw:
        payload["nsfw"] = True
    if channel.kind in (ChannelKind.VOICE, ChannelKind.STAGE):
        if channel.bitrate is not None:
            payload["bitrate"] = channel.bitrate
        if channel.user_limit is not None and channel.kind is ChannelKind.VOICE:
            payload["user_limit"] = channel.user_limit
    if overwrites:
        payload["permission_overwrites"] = overwrites
    return payload


@dataclass
class ApiResponse:
    """One HTTP exchange, reduced to what the backend needs."""

    status_code: Optional[int]
    data: Any = None
    error: Optional[str] = None
    retry_after: Optional[float] = None
    transient: bool = False
    headers: dict[str, str] = field(default_factory=dict)

    @property
    def ok(self) -> bool:
        return self.error is None


class DiscordRestBackend(MutatorBackend):
    """Mutator backend using the Discord REST API with a bot token."""

    supports_concurrency = True
    name = "rest"

    def __init__(
        self,
        token: str,
        request_timeout: float = DEFAULT_REQUEST_TIMEOUT,
        transport_retry: Optional[TransportRetryConfig] = None,
        session: Optional[requests.Session] = None,
        api_base: str = DISCORD_API_BASE,
    ) -> None:
        if not token:
            raise BackendError("A Discord bot token is required for the REST backend")
        self.api_base = api_base.rstrip("/")
        self.request_timeout = request_timeout
        self.transport_retry = transport_retry or TransportRetryConfig()
        self.session = session or requests.Session()
        self.session.headers.update(
            {
                "Authorization": f"Bot {token}",
                "Content-Type": "application/json",
                "User-Agent": USER_AGENT,
            }
        )
        self._category_ids: dict[tuple[str, str], str] = {}
        self._role_ids: dict[tuple[str, str], str] = {}
        self._category_lock = threading.Lock()
        self._role_lock = threading.Lock()

    # -- Transport ------------------------------------------------------------

    def _request_once(
        self, method: str, path: str, payload: Optional[dict[str, Any]] = None
    ) -> ApiResponse:
        url = f"{self.api_base}{path}"
        log_api_request(method, url, payload)
        try:
            resp = self.session.request(
                method, url, json=payload, timeout=self.request_timeout
            )
        except requests.Timeout as e:
            return ApiResponse(
                status_code=None,
                error=f"Request to {path} timed out after {self.request_timeout}s: {e}",
                transient=True,
            )
        except requests.ConnectionError as e:
            return ApiResponse(
                status_code=None, error=f"Connection error: {e}", transient=True
            )
        except requests.RequestException as e:
            return ApiResponse(status_code=None, error=f"Request failed: {e}")

        data: Any = None
        if resp.status_code != HTTP_NO_CONTENT and resp.content:
            try:
                data = resp.json()
            except ValueError:
                data = resp.text
        log_api_response(resp.status_code, url, data)

        if resp.ok:
            return ApiResponse(status_code=resp.status_code, data=data)

        retry_after = None
        if isinstance(data, dict) and data.get("retry_after") is not None:
            retry_after = float(data["retry_after"])
        elif resp.headers.get("Retry-After"):
            try:
                retry_after = float(resp.headers["Retry-After"])
            except ValueError:
                retry_after = None

        return ApiResponse(
            status_code=resp.status_code,
            data=data,
            error=f"Discord API error {resp.status_code}: {resp.text}",
            retry_after=retry_after,
            transient=is_transient_status(resp.status_code),
        )

    def _request(
        self, method: str, path: str, payload: Optional[dict[str, Any]] = None
    ) -> ApiResponse:
        config = self.transport_retry
        return retry_transport(
            lambda: self._request_once(method, path, payload),
            is_success=lambda response: response.ok,
            is_retryable=lambda error, response: response is not None
            and response.transient,
            max_retries=config.max_retries,
            initial_delay=config.initial_delay,
            max_delay=config.max_delay,
            jitter=config.jitter,
            delay_hint=lambda response: response.retry_after,
        )

    @staticmethod
    def _to_result(response: ApiResponse) -> MutationResult:
        if not response.ok:
            code = None
            if isinstance(response.data, dict) and "code" in response.data:
                code = str(response.data["code"])
            elif response.status_code is not None:
                code = f"HTTP_{response.status_code}"
            return MutationResult.fail(response.error or "Unknown error", code)
        data = response.data if isinstance(response.data, dict) else {}
        return MutationResult.ok(
            str(data["id"]) if data.get("id") is not None else None,
            name=data.get("name"),
        )

    # -- Mutations ------------------------------------------------------------

    def create_server(self, name: str) -> MutationResult:
        return self._to_result(self._request("POST", "/guilds", {"name": name}))

    def create_role(self, server_ref: str, role: RoleSpec) -> MutationResult:
        result = self._to_result(
            self._request("POST", f"/guilds/{server_ref}/roles", role_payload(role))
        )
        if result.success and result.ref:
            with self._role_lock:
                self._role_ids[(server_ref, role.name.lower())] = result.ref
        return result

    def create_category(
        self,
        server_ref: str,
        name: str,
        permission_overrides: tuple[PermissionOverride, ...] = (),
    ) -> MutationResult:
        payload: dict[str, Any] = {"name": name, "type": DISCORD_CHANNEL_TYPE_CATEGORY}
        overwrites = self.resolve_overwrites(server_ref, permission_overrides)
        if overwrites:
            payload["permission_overwrites"] = overwrites
        result = self._to_result(
            self._request("POST", f"/guilds/{server_ref}/channels", payload)
        )
        if result.success and result.ref:
            with self._category_lock:
                self._category_ids[(server_ref, name)] = result.ref
        return result

    def create_channel(
        self,
        server_ref: str,
        channel: ChannelSpec,
        category_ref: Optional[str] = None,
    ) -> MutationResult:
        parent_id = self.resolve_category(server_ref, category_ref)
        return self._to_result(
            self._request(
                "POST",
                f"/guilds/{server_ref}/channels",
                channel_payload(
                    channel,
                    parent_id,
                    self.resolve_overwrites(server_ref, channel.permission_overrides),
                ),
            )
        )

    def resolve_category(
        self, server_ref: str, category_ref: Optional[str]
    ) -> Optional[str]:
        """
        Turn a category reference into a parent id.

        Snowflake ids pass through. Names are looked up among categories
        created by this backend, then among the server's existing
        categories. An unresolvable name yields None.
        """
        if not category_ref:
            return None
        if category_ref.isdigit():
            return category_ref

        with self._category_lock:
            cached = self._category_ids.get((server_ref, category_ref))
        if cached:
            return cached

        try:
            channels = self.list_channels(server_ref)
        except BackendError as e:
            log_with_context(
                logging.WARNING,
                f"Could not look up category '{category_ref}': {e}",
                category=category_ref,
            )
            return None

        for existing in channels:
            if (
                existing.get("type") == DISCORD_CHANNEL_TYPE_CATEGORY
                and existing.get("name") == category_ref
            ):
                category_id = str(existing["id"])
                with self._category_lock:
                    self._category_ids[(server_ref, category_ref)] = category_id
                return category_id

        log_with_context(
            logging.WARNING,
            f"Category '{category_ref}' not found, creating channel without a parent",
            category=category_ref,
        )
        return None

    def resolve_role(self, server_ref: str, role_name: str) -> Optional[str]:
        """
        Turn a role name into a role id, case-insensitively.

        ``@everyone`` is the server id. Other names are looked up among roles
        created by this backend, then among the server's existing roles.
        """
        if role_name == EVERYONE_ROLE:
            return server_ref
        key = (server_ref, role_name.lower())
        with self._role_lock:
            cached = self._role_ids.get(key)
        if cached:
            return cached

        try:
            roles = self.list_roles(server_ref)
        except BackendError as e:
            log_with_context(
                logging.WARNING,
                f"Could not look up role '{role_name}': {e}",
                role=role_name,
            )
            return None

        with self._role_lock:
            for existing in roles:
                name = str(existing.get("name", "")).lower()
                self._role_ids.setdefault((server_ref, name), str(existing["id"]))
            return self._role_ids.get(key)

    def resolve_overwrites(
        self, server_ref: str, overrides: tuple[PermissionOverride, ...]
    ) -> list[dict[str, Any]]:
        """Build ``permission_overwrites``, dropping overrides for unknown roles."""
        overwrites = []
        for override in overrides:
            role_id = self.resolve_role(server_ref, override.role)
            if role_id is None:
                log_with_context(
                    logging.WARNING,
                    f"Role '{override.role}' not found, skipping its permission override",
                    role=override.role,
                )
                continue
            overwrites.append(overwrite_payload(override, role_id))
        return overwrites

    # -- Inspection and cleanup -------------------------------------------------

    def _get_list(self, path: str) -> list[dict[str, Any]]:
        response = self._request("GET", path)
        if not response.ok:
            raise BackendError(response.error or f"GET {path} failed")
        return list(response.data or [])

    def list_channels(self, server_ref: str) -> list[dict[str, Any]]:
        return self._get_list(f"/guilds/{server_ref}/channels")

    def list_roles(self, server_ref: str) -> list[dict[str, Any]]:
        return self._get_list(f"/guilds/{server_ref}/roles")

    def _get_object(self, path: str) -> dict[str, Any]:
        response = self._request("GET", path)
        if not response.ok:
            raise BackendError(response.error or f"GET {path} failed")
        return dict(response.data or {})

    def get_guild(self, server_ref: str) -> dict[str, Any]:
        return self._get_object(f"/guilds/{server_ref}")

    def get_own_member(self, server_ref: str) -> dict[str, Any]:
        """The bot's member object in ``server_ref``, with its user id filled in."""
        user = self._get_object("/users/@me")
        member = self._get_object(f"/guilds/{server_ref}/members/{user['id']}")
        member.setdefault("user", user)
        return member

    def delete_channel(self, channel_id: str, confirm: bool = False) -> MutationResult:
        """Delete a channel or category. Requires ``confirm=True``."""
        if not confirm:
            raise ConfirmationRequiredError(f"delete channel {channel_id}")
        response = self._request("DELETE", f"/channels/{channel_id}")
        if not response.ok:
            return self._to_result(response)
        return MutationResult.ok(channel_id)

    def delete_role(
        self, server_ref: str, role_id: str, confirm: bool = False
    ) -> MutationResult:
        """Delete a role. Requires ``confirm=True``."""
        if not confirm:
            raise ConfirmationRequiredError(f"delete role {role_id}")
        response = self._request("DELETE", f"/guilds/{server_ref}/roles/{role_id}")
        if not response.ok:
            return self._to_result(response)
        return MutationResult.ok(role_id)

    def close(self) -> None:
        self.session.close()
