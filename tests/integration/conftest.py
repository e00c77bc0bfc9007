"""Integration test configuration.

These tests talk to the live Discord API and are skipped by default.
Set DISCORD_BOT_TOKEN to a bot token and DISCORD_DEFAULT_GUILD_ID to a
scratch server the bot can manage to enable them.
"""

import os

import pytest

from guild_templater.services.rest_backend import DiscordRestBackend


@pytest.fixture()
def live_guild_id():
    guild_id = os.environ.get("DISCORD_DEFAULT_GUILD_ID")
    if not os.environ.get("DISCORD_BOT_TOKEN") or not guild_id:
        pytest.skip(
            "Integration tests require DISCORD_BOT_TOKEN and "
            "DISCORD_DEFAULT_GUILD_ID env vars"
        )
    return guild_id


@pytest.fixture()
def live_backend(live_guild_id):
    backend = DiscordRestBackend(os.environ["DISCORD_BOT_TOKEN"])
    yield backend
    backend.close()
