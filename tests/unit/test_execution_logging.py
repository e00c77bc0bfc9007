"""Tests for run outcome logging."""

import logging
from unittest.mock import patch

from guild_templater.core.execution_logging import (
    collect_statistics,
    log_execution_result,
)
from guild_templater.types import (
    ExecutionPhase,
    ExecutionProgress,
    ExecutionResult,
    OperationKind,
    OperationResult,
    OperationStatus,
)


def _result(operations, phase=ExecutionPhase.COMPLETED, success=None):
    failed = sum(op.status is OperationStatus.FAILED for op in operations)
    skipped = sum(op.status is OperationStatus.SKIPPED for op in operations)
    progress = ExecutionProgress(
        phase=phase,
        total_operations=len(operations),
        completed_operations=len(operations) - failed - skipped,
        failed_operations=failed,
        skipped_operations=skipped,
        operations=tuple(operations),
    )
    return ExecutionResult(
        success=failed == 0 if success is None else success,
        template_id="community",
        server_name="Neighbours",
        progress=progress,
        message="summary line",
        elapsed_seconds=2.5,
    )


def _messages(mock_log):
    return [c[0][1] for c in mock_log.call_args_list]


class TestCollectStatistics:
    def test_counts_completed_by_kind(self):
        result = _result(
            [
                OperationResult(OperationKind.SERVER, "S", OperationStatus.COMPLETED),
                OperationResult(OperationKind.ROLE, "A", OperationStatus.COMPLETED),
                OperationResult(OperationKind.ROLE, "B", OperationStatus.FAILED),
                OperationResult(OperationKind.CHANNEL, "c", OperationStatus.SKIPPED),
            ]
        )

        stats = collect_statistics(result)

        assert stats == {
            "total_operations": 4,
            "completed_operations": 2,
            "failed_operations": 1,
            "skipped_operations": 1,
            "servers_created": 1,
            "roles_created": 1,
            "categories_created": 0,
            "channels_created": 0,
        }


class TestLogExecutionResult:
    @patch("guild_templater.core.execution_logging.log_with_context")
    def test_success_header(self, mock_log):
        result = _result(
            [OperationResult(OperationKind.ROLE, "A", OperationStatus.COMPLETED)]
        )

        log_execution_result(result)

        assert mock_log.call_args_list[0][0] == (
            logging.INFO,
            "TEMPLATE APPLIED SUCCESSFULLY",
        )
        assert "summary line" in _messages(mock_log)
        assert "Roles created: 1" in _messages(mock_log)

    @patch("guild_templater.core.execution_logging.log_with_context")
    def test_dry_run_header(self, mock_log):
        log_execution_result(_result([]), dry_run=True)

        assert mock_log.call_args_list[0][1] == {"outcome": "dry_run"}

    @patch("guild_templater.core.execution_logging.log_with_context")
    def test_partial_run_lists_failures(self, mock_log):
        result = _result(
            [
                OperationResult(OperationKind.ROLE, "A", OperationStatus.COMPLETED),
                OperationResult(
                    OperationKind.CHANNEL,
                    "general",
                    OperationStatus.FAILED,
                    error="Missing Access",
                    retry_count=3,
                ),
            ]
        )

        log_execution_result(result)

        assert mock_log.call_args_list[0][0][0] == logging.WARNING
        messages = _messages(mock_log)
        assert "Failed operations: 1" in messages
        assert "  channel 'general' (retries: 3): Missing Access" in messages

    @patch("guild_templater.core.execution_logging.log_with_context")
    def test_halted_header(self, mock_log):
        result = _result(
            [OperationResult(OperationKind.SERVER, "S", OperationStatus.FAILED)],
            phase=ExecutionPhase.FAILED,
        )

        log_execution_result(result)

        assert mock_log.call_args_list[0][0] == (
            logging.ERROR,
            "TEMPLATE EXECUTION HALTED",
        )

    @patch("guild_templater.core.execution_logging.log_with_context")
    def test_skipped_count_logged(self, mock_log):
        result = _result(
            [OperationResult(OperationKind.ROLE, "Guest", OperationStatus.SKIPPED)]
        )

        log_execution_result(result)

        assert "Skipped operations: 1" in _messages(mock_log)
