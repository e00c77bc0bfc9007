"""
Report generation for template runs
"""

import datetime
import os
from typing import Any, Dict, List, Optional

import yaml

from guild_templater.constants import DEFAULT_OUTPUT_ROOT, REPORT_FILENAME
from guild_templater.core.execution_logging import collect_statistics
from guild_templater.types import ExecutionResult, OperationStatus
from guild_templater.utils.logging import logger


def print_dry_run_summary(result: ExecutionResult, report_file: Optional[str] = None):
    """Print the plan review of a dry run to the console."""
    stats = collect_statistics(result)
    print("\n" + "=" * 80)
    print("DRY RUN SUMMARY")
    print("=" * 80)
    print(f"Template: {result.template_id}")
    print(f"Server: {result.server_name}")
    print(f"Planned operations: {stats['total_operations']}")
    print(f"Servers that would be created: {stats['servers_created']}")
    print(f"Roles that would be created: {stats['roles_created']}")
    print(f"Categories that would be created: {stats['categories_created']}")
    print(f"Channels that would be created: {stats['channels_created']}")
    if stats["skipped_operations"]:
        print(f"Skipped by customization: {stats['skipped_operations']}")

    print("\nPlanned operations, in order:")
    for op in result.operations:
        marker = "-" if op.status is OperationStatus.SKIPPED else "+"
        category = op.details.get("category")
        suffix = f"  [{category}]" if category else ""
        print(f"  {marker} {op.kind.value:<8} {op.name}{suffix}")

    if report_file:
        print(f"\nDetailed report saved to {report_file}")
    print("=" * 80)
    print("\nTo apply the template, run again without --dry_run")
    print("=" * 80)


def create_output_directory(base_dir: str = DEFAULT_OUTPUT_ROOT) -> str:
    """Create a timestamped directory for this run and return its path."""
    timestamp = datetime.datetime.now().strftime("%Y%m%d_%H%M%S")
    run_output_dir = os.path.join(base_dir, f"run_{timestamp}")
    os.makedirs(run_output_dir, exist_ok=True)

    logger.info(f"Created output directory at {run_output_dir}")
    return run_output_dir


def build_report(result: ExecutionResult, dry_run: bool = False) -> Dict[str, Any]:
    """Assemble the report dictionary for a finished run."""
    progress = result.progress
    failed = result.failed()

    recommendations: List[Dict[str, str]] = []
    if failed:
        recommendations.append(
            {
                "type": "failed_operations",
                "message": f"{len(failed)} operations failed. Fix the cause and re-run "
                "with --skip_server_creation and --guild_id to fill in the gaps.",
                "severity": "warning",
            }
        )
    if progress.phase.value == "failed":
        recommendations.append(
            {
                "type": "halted",
                "message": "Execution stopped early. Operations after the failure were "
                "not attempted.",
                "severity": "error",
            }
        )

    return {
        "execution_summary": {
            "timestamp": datetime.datetime.now().isoformat(),
            "dry_run": dry_run,
            "success": result.success,
            "template_id": result.template_id,
            "server_name": result.server_name,
            "phase": progress.phase.value,
            "message": result.message,
            "elapsed_seconds": round(result.elapsed_seconds, 3),
            "started_at": progress.start_time.isoformat(),
            "finished_at": progress.end_time.isoformat() if progress.end_time else None,
            **collect_statistics(result),
        },
        "operations": [op.to_dict() for op in result.operations],
        "failed_operations": [op.to_dict() for op in failed],
        "recommendations": recommendations,
    }


def generate_report(
    result: ExecutionResult,
    output_dir: str,
    dry_run: bool = False,
    output_file: str = REPORT_FILENAME,
) -> str:
    """Write the YAML report into ``output_dir`` and return its path."""
    os.makedirs(output_dir, exist_ok=True)
    report_path = os.path.join(output_dir, output_file)

    with open(report_path, "w") as f:
        yaml.safe_dump(
            build_report(result, dry_run), f, default_flow_style=False, sort_keys=False
        )

    logger.info(f"Execution report generated: {report_path}")
    return report_path
