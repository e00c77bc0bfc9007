"""CLI command handler for writing a starter config file."""

from __future__ import annotations

import sys
from pathlib import Path

import click

from guild_templater.cli.common import cli
from guild_templater.core.config import create_default_config
from guild_templater.utils.logging import setup_logger


@cli.command("init-config")
@click.option(
    "--output",
    default="config.yaml",
    show_default=True,
    help="Where to write the config file",
)
def init_config(output: str) -> None:
    """Write a default config file. An existing file is left untouched."""
    setup_logger()
    if not create_default_config(Path(output)):
        sys.exit(1)
    click.echo("Set DISCORD_BOT_TOKEN in your environment before running 'apply'.")
