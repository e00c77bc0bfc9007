"""Unit tests for the logging module."""

import json
import logging
import os

import pytest

import guild_templater.utils.logging as log_module
from guild_templater.utils.logging import (
    EnhancedFormatter,
    JsonFormatter,
    get_logger,
    is_debug_api_enabled,
    log_api_request,
    log_api_response,
    log_with_context,
    redact,
    setup_logger,
    setup_main_log_file,
)


@pytest.fixture(autouse=True)
def _clean_logger():
    """Remove all handlers from the guild_templater logger before and after each test."""
    logger = logging.getLogger("guild_templater")
    for handler in logger.handlers[:]:
        logger.removeHandler(handler)
    yield
    for handler in logger.handlers[:]:
        logger.removeHandler(handler)
        handler.close()
    # Reset the module-level debug flag
    log_module._DEBUG_API_ENABLED = False


def _record(msg="test message", **extra):
    record = logging.LogRecord(
        name="guild_templater",
        level=logging.INFO,
        pathname="test.py",
        lineno=1,
        msg=msg,
        args=(),
        exc_info=None,
    )
    for key, value in extra.items():
        setattr(record, key, value)
    return record


# --- Formatters ---


class TestJsonFormatter:
    def test_basic_format_contains_required_keys(self):
        result = json.loads(JsonFormatter().format(_record()))
        assert result["level"] == "INFO"
        assert result["message"] == "test message"
        assert "time" in result

    def test_extras_included(self):
        record = _record(phase="roles", retry_count=2)
        result = json.loads(JsonFormatter().format(record))
        assert result["phase"] == "roles"
        assert result["retry_count"] == 2

    def test_standard_attrs_excluded(self):
        result = json.loads(JsonFormatter().format(_record()))
        assert "pathname" not in result
        assert "lineno" not in result


class TestEnhancedFormatter:
    def test_default_layout(self):
        output = EnhancedFormatter().format(_record())
        assert "INFO - test message" in output

    def test_verbose_layout_has_location(self):
        output = EnhancedFormatter(verbose=True).format(_record())
        assert "[test:1]" in output

    def test_api_details_appended(self):
        record = _record(api_data='{"name": "x"}', response='{"id": "1"}')
        output = EnhancedFormatter(include_api_details=True).format(record)
        assert 'API Data: {"name": "x"}' in output
        assert 'Response: {"id": "1"}' in output

    def test_api_details_hidden_by_default(self):
        record = _record(api_data="payload")
        assert "API Data" not in EnhancedFormatter().format(record)


# --- Setup ---


class TestSetupLogger:
    def test_console_level(self):
        logger = setup_logger(verbose=False)
        assert logger.handlers[0].level == logging.INFO

        logger = setup_logger(verbose=True)
        assert len(logger.handlers) == 1
        assert logger.handlers[0].level == logging.DEBUG

    def test_output_dir_creates_main_log(self, tmp_path):
        setup_logger(output_dir=str(tmp_path))
        log_with_context(logging.INFO, "hello file")

        for handler in logging.getLogger("guild_templater").handlers:
            handler.flush()
        content = (tmp_path / "execution.log").read_text()
        assert "hello file" in content

    def test_debug_api_with_output_dir(self, tmp_path):
        setup_logger(debug_api=True, output_dir=str(tmp_path))

        assert is_debug_api_enabled()
        assert os.path.exists(tmp_path / "api_debug.log")

    def test_setup_main_log_file_returns_handler(self, tmp_path):
        handler = setup_main_log_file(str(tmp_path / "run"))
        assert isinstance(handler, logging.FileHandler)
        assert handler in logging.getLogger("guild_templater").handlers

    def test_json_logs_writes_json_lines(self, tmp_path):
        logger = setup_logger(output_dir=str(tmp_path), json_logs=True)
        file_handlers = [h for h in logger.handlers if isinstance(h, logging.FileHandler)]
        assert isinstance(file_handlers[0].formatter, JsonFormatter)

        log_with_context(logging.INFO, "Created role", operation="Admin")
        file_handlers[0].flush()

        lines = (tmp_path / "execution.log").read_text().splitlines()
        entries = [json.loads(line) for line in lines]
        assert entries[-1]["message"] == "Created role"
        assert entries[-1]["operation"] == "Admin"

    def test_plain_text_by_default(self, tmp_path):
        logger = setup_logger(output_dir=str(tmp_path))
        file_handlers = [h for h in logger.handlers if isinstance(h, logging.FileHandler)]
        assert isinstance(file_handlers[0].formatter, EnhancedFormatter)

    def test_get_logger_adds_default_handler(self):
        logger = get_logger()
        assert logger.name == "guild_templater"
        assert len(logger.handlers) == 1


# --- Helpers ---


class TestLogWithContext:
    def test_extras_on_record(self, caplog):
        with caplog.at_level(logging.INFO, logger="guild_templater"):
            log_with_context(logging.INFO, "msg", phase="roles", operation="Admin")

        record = caplog.records[-1]
        assert record.phase == "roles"
        assert record.operation == "Admin"

    def test_none_values_dropped(self, caplog):
        with caplog.at_level(logging.INFO, logger="guild_templater"):
            log_with_context(logging.INFO, "msg", operation=None)

        assert not hasattr(caplog.records[-1], "operation")


class TestApiLogging:
    def test_silent_when_disabled(self, caplog):
        with caplog.at_level(logging.DEBUG, logger="guild_templater"):
            log_api_request("POST", "https://discord.com/api/v10/guilds", {"name": "x"})
            log_api_response(201, "https://discord.com/api/v10/guilds", {"id": "1"})

        assert caplog.records == []

    def test_request_logged_and_redacted(self, caplog):
        log_module._DEBUG_API_ENABLED = True

        with caplog.at_level(logging.DEBUG, logger="guild_templater"):
            log_api_request("POST", "/guilds", {"name": "x", "token": "secret-value"})

        record = caplog.records[-1]
        assert record.getMessage() == "API Request: POST /guilds"
        assert "secret-value" not in record.api_data
        assert "[REDACTED]" in record.api_data

    def test_response_truncated(self, caplog):
        log_module._DEBUG_API_ENABLED = True

        with caplog.at_level(logging.DEBUG, logger="guild_templater"):
            log_api_response(200, "/guilds/1/channels", "x" * 5000)

        record = caplog.records[-1]
        assert record.status_code == 200
        assert record.response.endswith("... [truncated]")
        assert len(record.response) < 1100


def test_redact_masks_credentials():
    assert redact({"Authorization": "Bot abc", "name": "x"}) == {
        "Authorization": "[REDACTED]",
        "name": "x",
    }
