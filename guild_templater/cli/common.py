"""Shared CLI infrastructure: option decorators, error handlers, and the CLI group."""

from __future__ import annotations

import logging
from typing import Callable

import click

import guild_templater
from guild_templater.core.config import BACKENDS, TemplaterConfig
from guild_templater.exceptions import (
    ConfigError,
    ConfirmationRequiredError,
    TemplateNotFoundError,
    TemplaterError,
)
from guild_templater.services.backend import MutatorBackend
from guild_templater.utils.logging import log_with_context

# Create logger instance
logger = logging.getLogger("guild_templater")


# ---------------------------------------------------------------------------
# Shared option decorators
# ---------------------------------------------------------------------------


def common_options(f: Callable[..., None]) -> Callable[..., None]:
    """Decorator that adds options shared across multiple subcommands.

    Args:
        f: The Click command function to decorate.

    Returns:
        The decorated function with common options attached.
    """
    f = click.option(
        "--config",
        default=None,
        help="Path to config YAML (defaults are used when omitted)",
    )(f)
    f = click.option(
        "--verbose",
        "-v",
        is_flag=True,
        default=False,
        help="Enable verbose console logging (shows DEBUG level messages)",
    )(f)
    f = click.option(
        "--debug_api",
        is_flag=True,
        default=False,
        help="Enable detailed Discord API request/response logging",
    )(f)
    return f


def template_option(f: Callable[..., None]) -> Callable[..., None]:
    """Decorator for the required ``--template`` option."""
    return click.option(
        "--template",
        "template_id",
        required=True,
        help="Built-in template id (gaming, community, business, study_group)",
    )(f)


# ---------------------------------------------------------------------------
# CLI group
# ---------------------------------------------------------------------------


@click.group(
    invoke_without_command=True,
    context_settings={"help_option_names": ["-h", "--help"]},
)
@click.version_option(version=guild_templater.__version__, prog_name="guild-templater")
@click.pass_context
def cli(ctx: click.Context) -> None:
    """Apply Discord server templates to a guild.

    Args:
        ctx: The Click context (injected by ``@click.pass_context``).
    """
    if ctx.invoked_subcommand is None:
        click.echo(ctx.get_help())


# ---------------------------------------------------------------------------
# Backend factory
# ---------------------------------------------------------------------------


def create_backend(
    config: TemplaterConfig, backend_name: str | None = None
) -> MutatorBackend:
    """Build the mutator backend selected by ``backend_name`` or the config.

    Args:
        config: The loaded configuration.
        backend_name: ``rest`` or ``ui``; overrides ``config.backend``.

    Returns:
        A ready-to-use backend.

    Raises:
        ConfigError: If the backend is unknown or REST mode has no token.
    """
    from guild_templater.services.rest_backend import DiscordRestBackend
    from guild_templater.services.ui_backend import DiscordUIBackend

    name = (backend_name or config.backend).lower()
    if name == "rest":
        return DiscordRestBackend(
            config.require_token(),
            request_timeout=config.request_timeout,
            transport_retry=config.transport_retry,
        )
    if name == "ui":
        return DiscordUIBackend(
            script_timeout=config.script_timeout,
            transport_retry=config.transport_retry,
        )
    raise ConfigError(
        f"Unknown backend '{name}', expected one of: {', '.join(BACKENDS)}"
    )


# ---------------------------------------------------------------------------
# Error handlers
# ---------------------------------------------------------------------------


def handle_exception(e: BaseException) -> None:
    """Handle different types of exceptions.

    Args:
        e: The exception to handle.
    """
    if isinstance(e, TemplateNotFoundError):
        log_with_context(logging.ERROR, str(e), error_code=e.code)
        log_with_context(
            logging.INFO, "Run 'guild-templater templates' to list available templates."
        )
    elif isinstance(e, ConfirmationRequiredError):
        log_with_context(logging.WARNING, str(e), error_code=e.code)
    elif isinstance(e, ConfigError):
        log_with_context(logging.ERROR, f"Configuration error: {e}", error_code=e.code)
        log_with_context(
            logging.INFO,
            "Run 'guild-templater init-config' to create a starter config file.",
        )
    elif isinstance(e, TemplaterError):
        log_with_context(logging.ERROR, str(e), error_code=e.code)
    elif isinstance(e, FileNotFoundError):
        log_with_context(logging.ERROR, f"File not found: {e}")
        log_with_context(
            logging.INFO,
            "Please check that all required files exist and paths are correct.",
        )
    elif isinstance(e, KeyboardInterrupt):
        log_with_context(logging.WARNING, "Template run interrupted by user.")
        log_with_context(
            logging.INFO,
            "Anything created so far was kept. Re-run with --skip_server_creation "
            "and --guild_id to continue on the same server.",
        )
    else:
        logger.error(f"Template run failed: {e}", exc_info=True)
