"""CLI command handler for removing a template from a server."""

from __future__ import annotations

import sys
from pathlib import Path

import click

from guild_templater.cli.common import (
    cli,
    common_options,
    create_backend,
    handle_exception,
    template_option,
)
from guild_templater.core.cleanup import cleanup_template
from guild_templater.core.config import load_config
from guild_templater.exceptions import ConfirmationRequiredError
from guild_templater.services.templates import get_template
from guild_templater.utils.logging import setup_logger

# ---------------------------------------------------------------------------
# cleanup subcommand
# ---------------------------------------------------------------------------


@cli.command()
@common_options
@template_option
@click.option("--guild_id", required=True, help="Id of the server to clean up")
@click.option("--yes", "-y", is_flag=True, help="Skip confirmation prompt.")
def cleanup(
    template_id: str,
    guild_id: str,
    config: str | None,
    verbose: bool,
    debug_api: bool,
    yes: bool,
) -> None:
    """Delete the channels, categories and roles a template created.

    Entities are matched by name. REST backend only, so a bot token is
    required.

    Args:
        template_id: Built-in template id.
        guild_id: Id of the server to clean up.
        config: Path to config YAML.
        verbose: Enable verbose console logging.
        debug_api: Enable detailed API request/response logging.
        yes: Skip confirmation prompt.
    """
    setup_logger(verbose, debug_api)
    backend = None

    try:
        template = get_template(template_id)
        if not yes and not click.confirm(
            f"This will delete every channel, category and role named in "
            f"template '{template.id}' from server {guild_id}. Continue?"
        ):
            raise ConfirmationRequiredError(
                f"delete template '{template.id}' entities from server {guild_id}"
            )

        cfg = load_config(Path(config) if config else None)
        backend = create_backend(cfg, "rest")
        summary = cleanup_template(backend, guild_id, template, confirm=True)
    except Exception as e:
        handle_exception(e)
        sys.exit(1)
    finally:
        if backend is not None:
            backend.close()

    click.echo(
        f"Deleted {len(summary.deleted_channels)} channels, "
        f"{len(summary.deleted_categories)} categories and "
        f"{len(summary.deleted_roles)} roles."
    )
    if summary.errors:
        click.echo(f"{len(summary.errors)} deletions failed, see the log for details.")
        sys.exit(1)
