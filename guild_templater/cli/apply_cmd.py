"""CLI command handler for applying a template to a server."""

from __future__ import annotations

import logging
import sys
import threading
from pathlib import Path

import click
from tqdm import tqdm

from guild_templater.cli.common import (
    cli,
    common_options,
    create_backend,
    handle_exception,
    template_option,
)
from guild_templater.cli.report import (
    create_output_directory,
    generate_report,
    print_dry_run_summary,
)
from guild_templater.core.config import BACKENDS, load_config
from guild_templater.core.execution_logging import log_execution_result
from guild_templater.core.ledger import ProgressQueue
from guild_templater.core.orchestrator import ExecutionOptions, execute_template
from guild_templater.core.preflight import ensure_guild_ready
from guild_templater.exceptions import ConfigError, ExecutionAbortedError
from guild_templater.services.rest_backend import DiscordRestBackend
from guild_templater.services.templates import get_template
from guild_templater.types import ExecutionPhase, ExecutionResult
from guild_templater.utils.logging import log_with_context, setup_logger

# Create logger instance
logger = logging.getLogger("guild_templater")


def consume_progress(progress_queue: ProgressQueue, desc: str) -> None:
    """Drive a tqdm bar from ledger snapshots until the run ends.

    The bar is created from the first snapshot, which carries the total.
    """
    pbar = None
    processed = 0
    try:
        for snapshot in progress_queue:
            if pbar is None:
                pbar = tqdm(total=snapshot.total_operations, desc=desc, unit="op")
            pbar.update(snapshot.processed_operations - processed)
            processed = snapshot.processed_operations
            if snapshot.current_operation:
                pbar.set_postfix_str(snapshot.current_operation)
    finally:
        if pbar is not None:
            pbar.close()


# ---------------------------------------------------------------------------
# apply subcommand
# ---------------------------------------------------------------------------


@cli.command()
@common_options
@template_option
@click.option("--server_name", required=True, help="Name of the server to create")
@click.option(
    "--dry_run",
    is_flag=True,
    default=False,
    help="Record what would be created without touching Discord",
)
@click.option(
    "--skip_server_creation",
    is_flag=True,
    default=False,
    help="Apply the template to an existing server instead of creating one",
)
@click.option(
    "--guild_id",
    default=None,
    help="Id (REST) or sidebar name (UI) of the existing server",
)
@click.option(
    "--skip_preflight",
    is_flag=True,
    default=False,
    help="Skip the existing-server checks before applying (not recommended)",
)
@click.option(
    "--stop_on_error",
    is_flag=True,
    default=False,
    help="Halt at the first failed operation instead of continuing",
)
@click.option(
    "--skip_role", multiple=True, help="Role name to leave out (repeatable)"
)
@click.option(
    "--skip_channel", multiple=True, help="Channel name to leave out (repeatable)"
)
@click.option(
    "--backend",
    type=click.Choice(BACKENDS),
    default=None,
    help="Mutator backend, overrides the config file",
)
@click.option(
    "--output_dir",
    default=None,
    help="Directory for the log file and report (default: timestamped run dir)",
)
@click.option(
    "--json_logs",
    is_flag=True,
    default=False,
    help="Write the run log file as one JSON object per line",
)
def apply(
    template_id: str,
    server_name: str,
    config: str | None,
    verbose: bool,
    debug_api: bool,
    dry_run: bool,
    skip_server_creation: bool,
    guild_id: str | None,
    skip_preflight: bool,
    stop_on_error: bool,
    skip_role: tuple[str, ...],
    skip_channel: tuple[str, ...],
    backend: str | None,
    output_dir: str | None,
    json_logs: bool,
) -> None:
    """Apply a server template: create the server, roles, categories and channels.

    Args:
        template_id: Built-in template id.
        server_name: Name of the server to create.
        config: Path to config YAML.
        verbose: Enable verbose console logging.
        debug_api: Enable detailed API request/response logging.
        dry_run: Preview only.
        skip_server_creation: Use an existing server.
        guild_id: Reference of the existing server.
        skip_preflight: Skip the existing-server checks.
        stop_on_error: Halt at the first failure.
        skip_role: Role names to leave out.
        skip_channel: Channel names to leave out.
        backend: Mutator backend name.
        output_dir: Directory for the log file and report.
        json_logs: Write the log file as JSON lines.
    """
    # Create output directory early so all operations are logged to file
    output_dir = output_dir or create_output_directory()
    setup_logger(verbose, debug_api, output_dir, json_logs=json_logs)
    log_with_context(logging.INFO, f"Output directory: {output_dir}")

    progress_queue = ProgressQueue()
    display = threading.Thread(
        target=consume_progress,
        args=(progress_queue, f"Applying {template_id}"),
        name="progress-display",
        daemon=True,
    )
    mutator = None

    try:
        cfg = load_config(Path(config) if config else None)
        options = ExecutionOptions.from_config(
            cfg,
            customization=cfg.customization.merged_with(skip_role, skip_channel),
            continue_on_error=cfg.continue_on_error and not stop_on_error,
            dry_run=dry_run,
            skip_server_creation=skip_server_creation,
            server_ref=guild_id or cfg.default_guild_id,
            progress_queue=progress_queue,
        )

        selected = backend or cfg.backend
        if (
            skip_server_creation
            and not dry_run
            and selected == "rest"
            and not options.server_ref
        ):
            raise ConfigError(
                "--skip_server_creation with the REST backend needs --guild_id "
                "or DISCORD_DEFAULT_GUILD_ID"
            )

        if not dry_run:
            mutator = create_backend(cfg, selected)
            log_with_context(
                logging.INFO, f"Using the {mutator.name} backend", backend=mutator.name
            )

        template = get_template(template_id)
        if (
            skip_server_creation
            and isinstance(mutator, DiscordRestBackend)
            and not skip_preflight
        ):
            ensure_guild_ready(mutator, options.server_ref, template)

        display.start()
        result = execute_template(template, server_name, mutator, options)
        progress_queue.close()
        display.join()

        finish_run(result, output_dir, dry_run)
    except (Exception, KeyboardInterrupt) as e:
        handle_exception(e)
        sys.exit(1)
    finally:
        progress_queue.close()
        if mutator is not None:
            mutator.close()


def finish_run(result: ExecutionResult, output_dir: str, dry_run: bool) -> None:
    """Log the outcome, write the report and fail the command if needed.

    Raises:
        ExecutionAbortedError: If the run halted before the last phase
    """
    log_execution_result(result, dry_run=dry_run)
    report_file = generate_report(result, output_dir, dry_run=dry_run)

    if dry_run:
        print_dry_run_summary(result, report_file)
        return

    if result.progress.phase is ExecutionPhase.FAILED:
        raise ExecutionAbortedError(result.message)
    if not result.success:
        log_with_context(
            logging.WARNING,
            f"{len(result.failed())} operations failed, see {report_file}",
        )
        sys.exit(1)
