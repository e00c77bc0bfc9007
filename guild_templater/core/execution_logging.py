"""
Outcome logging for template runs.

Kept apart from ``orchestrator.py`` so the orchestrator stays focused on
control flow. Statistics are passed as structured kwargs so they show up as
extra fields in JSON log output while staying readable on the console.
"""

from __future__ import annotations

import logging
from typing import Any

from guild_templater.types import ExecutionPhase, ExecutionResult, OperationKind
from guild_templater.utils.logging import log_with_context


def collect_statistics(result: ExecutionResult) -> dict[str, Any]:
    """Flatten the counters of a run into a dict.

    Used both for structured log kwargs and for the YAML report.

    Args:
        result: The finished run.

    Returns:
        Dict with the ledger counters plus per-kind completion counts.
    """
    progress = result.progress
    completed_by_kind = {kind.value: 0 for kind in OperationKind}
    for op in progress.operations:
        if op.status.value == "completed":
            completed_by_kind[op.kind.value] += 1

    return {
        "total_operations": progress.total_operations,
        "completed_operations": progress.completed_operations,
        "failed_operations": progress.failed_operations,
        "skipped_operations": progress.skipped_operations,
        "servers_created": completed_by_kind[OperationKind.SERVER.value],
        "roles_created": completed_by_kind[OperationKind.ROLE.value],
        "categories_created": completed_by_kind[OperationKind.CATEGORY.value],
        "channels_created": completed_by_kind[OperationKind.CHANNEL.value],
    }


def log_execution_result(result: ExecutionResult, dry_run: bool = False) -> None:
    """Log the outcome header, statistics and any failed operations.

    Args:
        result: The finished run.
        dry_run: Whether the run was a preview.
    """
    stats = collect_statistics(result)
    halted = result.progress.phase is ExecutionPhase.FAILED

    # --- Outcome header ---------------------------------------------------
    if dry_run:
        log_with_context(
            logging.INFO, "DRY RUN COMPLETED - NO CHANGES WERE MADE", outcome="dry_run"
        )
    elif result.success:
        log_with_context(
            logging.INFO, "TEMPLATE APPLIED SUCCESSFULLY", outcome="success"
        )
    elif halted:
        log_with_context(
            logging.ERROR, "TEMPLATE EXECUTION HALTED", outcome="halted"
        )
    else:
        log_with_context(
            logging.WARNING, "TEMPLATE APPLIED WITH ERRORS", outcome="partial"
        )

    log_with_context(logging.INFO, result.message)

    # --- Statistics --------------------------------------------------------
    log_with_context(
        logging.INFO,
        f"Duration: {result.elapsed_seconds:.1f} seconds",
        duration_seconds=result.elapsed_seconds,
    )
    for key in ("roles_created", "categories_created", "channels_created"):
        label = key.replace("_", " ").capitalize()
        log_with_context(
            logging.INFO, f"{label}: {stats[key]}", stat=key, count=stats[key]
        )
    if stats["skipped_operations"]:
        log_with_context(
            logging.INFO,
            f"Skipped operations: {stats['skipped_operations']}",
            stat="skipped_operations",
            count=stats["skipped_operations"],
        )

    # --- Failures ------------------------------------------------------------
    failed = result.failed()
    if not failed:
        return

    log_with_context(
        logging.WARNING,
        f"Failed operations: {len(failed)}",
        stat="failed_operations",
        count=len(failed),
    )
    for op in failed:
        log_with_context(
            logging.WARNING,
            f"  {op.kind.value} '{op.name}' (retries: {op.retry_count}): {op.error}",
            operation=op.name,
            retry_count=op.retry_count,
        )
