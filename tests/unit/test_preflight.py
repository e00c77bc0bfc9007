"""Tests for the existing-server checks run before apply."""

import logging
from unittest.mock import MagicMock

import pytest

from guild_templater.core.preflight import (
    effective_permissions,
    ensure_guild_ready,
    missing_permissions,
    validate_guild_for_template,
)
from guild_templater.exceptions import BackendError, GuildValidationError
from guild_templater.services.rest_backend import DiscordRestBackend
from guild_templater.types import CategorySpec, ChannelSpec, RoleSpec, ServerTemplate

GUILD = "111"
BOT = "777"
MANAGE = (1 << 4) | (1 << 28)


@pytest.fixture()
def template():
    return ServerTemplate(
        id="small",
        name="Small",
        roles=(RoleSpec(name="Admin"), RoleSpec(name="Member")),
        categories=(CategorySpec("General", (ChannelSpec("general"),)),),
    )


def _backend(
    everyone_bits=0,
    bot_role_bits=MANAGE,
    owner_id="1",
    channels=None,
    extra_roles=(),
):
    backend = MagicMock(spec=DiscordRestBackend)
    backend.get_guild.return_value = {"id": GUILD, "owner_id": owner_id}
    backend.list_channels.return_value = channels or []
    backend.list_roles.return_value = [
        {"id": GUILD, "name": "@everyone", "permissions": str(everyone_bits)},
        {"id": "555", "name": "Templater", "permissions": str(bot_role_bits)},
        *extra_roles,
    ]
    backend.get_own_member.return_value = {"user": {"id": BOT}, "roles": ["555"]}
    return backend


class TestPermissions:
    def test_effective_permissions_include_everyone(self):
        roles = [
            {"id": GUILD, "permissions": "1024"},
            {"id": "555", "permissions": "16"},
            {"id": "999", "permissions": "8"},
        ]

        bits = effective_permissions({"roles": ["555"]}, roles, GUILD)

        assert bits == 1024 | 16

    def test_missing_permissions(self):
        assert missing_permissions(1 << 4) == ["MANAGE_ROLES"]
        assert missing_permissions(MANAGE) == []

    def test_administrator_has_everything(self):
        assert missing_permissions(1 << 3) == []


class TestValidateGuild:
    def test_ready_server(self, template):
        check = validate_guild_for_template(_backend(), GUILD, template)

        assert check.ok
        assert check.warnings == []

    def test_missing_permissions_are_errors(self, template):
        backend = _backend(bot_role_bits=1 << 4)

        check = validate_guild_for_template(backend, GUILD, template)

        assert not check.ok
        assert check.errors == ["Bot is missing permissions: MANAGE_ROLES"]

    def test_permissions_from_everyone_count(self, template):
        backend = _backend(everyone_bits=MANAGE, bot_role_bits=0)

        assert validate_guild_for_template(backend, GUILD, template).ok

    def test_owner_needs_no_permissions(self, template):
        backend = _backend(bot_role_bits=0, owner_id=BOT)

        assert validate_guild_for_template(backend, GUILD, template).ok

    def test_name_conflicts_are_warnings(self, template):
        backend = _backend(
            channels=[
                {"id": "2", "name": "general", "type": 4},
                {"id": "3", "name": "general", "type": 0},
            ],
            extra_roles=({"id": "6", "name": "admin", "permissions": "0"},),
        )

        check = validate_guild_for_template(backend, GUILD, template)

        assert check.ok
        assert check.warnings == [
            "These roles already exist and will be created again: Admin",
            "These categories already exist and will be created again: General",
        ]

    def test_crowded_server_warned(self, template):
        channels = [{"id": str(i), "name": f"c{i}", "type": 0} for i in range(11)]
        roles = tuple(
            {"id": str(1000 + i), "name": f"r{i}", "permissions": "0"}
            for i in range(200)
        )

        check = validate_guild_for_template(
            _backend(channels=channels, extra_roles=roles), GUILD, template
        )

        assert check.ok
        assert len(check.warnings) == 2
        assert check.warnings[0].startswith("Server has 11 existing channels")
        assert check.warnings[1].startswith("Server has 202 existing roles")

    def test_unreadable_server_is_an_error(self, template):
        backend = _backend()
        backend.get_guild.side_effect = BackendError("Discord API error 403")

        check = validate_guild_for_template(backend, GUILD, template)

        assert not check.ok
        assert "Could not inspect server 111" in check.errors[0]
        backend.get_own_member.assert_not_called()


class TestEnsureGuildReady:
    def test_passes_and_logs_warnings(self, template, caplog):
        backend = _backend(
            extra_roles=({"id": "6", "name": "Member", "permissions": "0"},)
        )

        with caplog.at_level(logging.INFO, logger="guild_templater"):
            check = ensure_guild_ready(backend, GUILD, template)

        assert check.ok
        assert "will be created again: Member" in caplog.text
        assert "Pre-flight checks passed" in caplog.text

    def test_raises_on_errors(self, template):
        backend = _backend(bot_role_bits=0)

        with pytest.raises(GuildValidationError) as exc_info:
            ensure_guild_ready(backend, GUILD, template)

        assert "MANAGE_CHANNELS, MANAGE_ROLES" in str(exc_info.value)
        assert "--skip_preflight" in str(exc_info.value)
        assert exc_info.value.code == "GUILD_VALIDATION_FAILED"
