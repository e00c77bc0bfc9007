"""CLI command handlers for browsing templates and previewing a run."""

from __future__ import annotations

import sys
from pathlib import Path

import click

from guild_templater.cli.common import (
    cli,
    common_options,
    handle_exception,
    template_option,
)
from guild_templater.cli.report import print_dry_run_summary
from guild_templater.core.config import load_config
from guild_templater.core.orchestrator import preview_template_execution
from guild_templater.services.templates import list_templates, template_summary
from guild_templater.utils.logging import setup_logger

# ---------------------------------------------------------------------------
# templates subcommand
# ---------------------------------------------------------------------------


@cli.command()
def templates() -> None:
    """List the built-in templates."""
    for template in list_templates():
        summary = template_summary(template)
        click.echo(f"{summary['id']}: {summary['name']}")
        if summary["description"]:
            click.echo(f"    {summary['description']}")
        if summary["use_case"]:
            click.echo(f"    Use case: {summary['use_case']}")
        click.echo(
            f"    {summary['role_count']} roles, "
            f"{summary['category_count']} categories, "
            f"{summary['channel_count']} channels"
        )


# ---------------------------------------------------------------------------
# preview subcommand
# ---------------------------------------------------------------------------


@cli.command()
@common_options
@template_option
@click.option(
    "--server_name",
    default="My Server",
    show_default=True,
    help="Server name to show in the preview",
)
@click.option(
    "--skip_role", multiple=True, help="Role name to leave out (repeatable)"
)
@click.option(
    "--skip_channel", multiple=True, help="Channel name to leave out (repeatable)"
)
def preview(
    template_id: str,
    server_name: str,
    config: str | None,
    verbose: bool,
    debug_api: bool,
    skip_role: tuple[str, ...],
    skip_channel: tuple[str, ...],
) -> None:
    """Show the ordered operations a template would run, without running them.

    Args:
        template_id: Built-in template id.
        server_name: Server name to show in the preview.
        config: Path to config YAML, for its customization section.
        verbose: Enable verbose console logging.
        debug_api: Unused, accepted for symmetry with ``apply``.
        skip_role: Role names to leave out.
        skip_channel: Channel names to leave out.
    """
    setup_logger(verbose, debug_api)

    try:
        cfg = load_config(Path(config) if config else None)
        customization = cfg.customization.merged_with(skip_role, skip_channel)
        result = preview_template_execution(template_id, server_name, customization)
    except Exception as e:
        handle_exception(e)
        sys.exit(1)

    print_dry_run_summary(result)
