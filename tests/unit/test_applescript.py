"""Tests for the osascript wrapper."""

import subprocess
from unittest.mock import MagicMock, patch

import pytest

from guild_templater.exceptions import OperationTimeoutError
from guild_templater.utils.applescript import (
    ScriptTimeoutError,
    escape_applescript_string,
    quote_applescript_string,
    run_applescript,
)


class TestEscaping:
    def test_quotes_and_backslashes(self):
        assert escape_applescript_string('say "hi" \\ bye') == 'say \\"hi\\" \\\\ bye'

    def test_control_characters(self):
        assert escape_applescript_string("a\nb\tc") == "a\\nb\\tc"

    def test_quote(self):
        assert quote_applescript_string('my "server"') == '"my \\"server\\""'


class TestRunAppleScript:
    @patch("guild_templater.utils.applescript.subprocess.run")
    def test_success(self, mock_run):
        mock_run.return_value = MagicMock(returncode=0, stdout="clicked\n", stderr="")

        result = run_applescript('return "clicked"', timeout=5)

        assert result.success is True
        assert result.output == "clicked"
        assert result.error is None
        command = mock_run.call_args[0][0]
        assert command == ["osascript", "-e", 'return "clicked"']
        assert mock_run.call_args[1]["timeout"] == 5

    @patch("guild_templater.utils.applescript.subprocess.run")
    def test_non_zero_exit(self, mock_run):
        mock_run.return_value = MagicMock(
            returncode=1, stdout="", stderr="execution error: Can't get window 1 (-1728)"
        )

        result = run_applescript("bad")

        assert result.success is False
        assert result.exit_code == 1
        assert "Can't get window 1" in result.error

    @patch("guild_templater.utils.applescript.subprocess.run")
    def test_non_zero_exit_without_stderr(self, mock_run):
        mock_run.return_value = MagicMock(returncode=2, stdout="", stderr="")

        result = run_applescript("bad")

        assert result.error == "Process exited with code 2"

    @patch("guild_templater.utils.applescript.subprocess.run")
    def test_timeout_raises(self, mock_run):
        mock_run.side_effect = subprocess.TimeoutExpired(cmd="osascript", timeout=3)

        with pytest.raises(ScriptTimeoutError) as exc_info:
            run_applescript("delay 10", timeout=3)

        assert isinstance(exc_info.value, OperationTimeoutError)
        assert exc_info.value.timeout == 3

    @patch("guild_templater.utils.applescript.subprocess.run")
    def test_missing_osascript(self, mock_run):
        mock_run.side_effect = FileNotFoundError("osascript")

        result = run_applescript("return 1")

        assert result.success is False
        assert "osascript" in result.error
