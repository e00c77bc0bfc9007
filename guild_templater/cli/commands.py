#!/usr/bin/env python3
"""
Command-line interface for the Discord guild template executor.

Importing the command modules registers their subcommands on the ``cli``
group; ``main`` is the console script entry point.
"""

from guild_templater.cli import (  # noqa: F401
    apply_cmd,
    cleanup_cmd,
    config_cmd,
    templates_cmd,
)
from guild_templater.cli.common import cli


def main() -> None:
    """Main entry point for the guild-templater command."""
    cli()


if __name__ == "__main__":
    main()
