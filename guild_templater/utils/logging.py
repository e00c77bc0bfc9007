"""
Logging setup for guild_templater.

Everything logs through the ``guild_templater`` logger. Context passed to
``log_with_context`` is stored on the record, so ``JsonFormatter`` and the API
debug filter can pick it up without parsing the message text.
"""

import json
import logging
import os
from typing import Any, Dict, Optional

LOGGER_NAME = "guild_templater"
MAIN_LOG_FILENAME = "execution.log"
API_LOG_FILENAME = "api_debug.log"

# Set by setup_logger(debug_api=True)
_DEBUG_API_ENABLED = False

_SENSITIVE_KEYS = ("token", "auth", "password", "secret", "key")

# Attributes every LogRecord has; anything else was passed as an extra
_STANDARD_RECORD_ATTRS = frozenset(
    vars(logging.LogRecord("", logging.INFO, "", 0, "", (), None))
) | {"message", "asctime", "taskName"}

_MAX_JSON_BODY = 2000
_MAX_TEXT_BODY = 1000


class JsonFormatter(logging.Formatter):
    """One JSON object per line, with the record's extras as top-level keys."""

    def format(self, record):
        payload = {
            "time": self.formatTime(record, self.datefmt),
            "level": record.levelname,
            "message": record.getMessage(),
            "module": record.module,
        }
        payload.update(
            (key, value)
            for key, value in vars(record).items()
            if key not in _STANDARD_RECORD_ATTRS
        )
        return json.dumps(payload, default=str)


class EnhancedFormatter(logging.Formatter):
    """Plain-text formatter that can append API payloads carried on a record."""

    DEFAULT_FORMAT = "%(asctime)s - %(levelname)s - %(message)s"
    VERBOSE_FORMAT = (
        "%(asctime)s - %(name)s - %(levelname)s - [%(module)s:%(lineno)d] - %(message)s"
    )

    def __init__(self, fmt=None, datefmt=None, verbose=False, include_api_details=False):
        super().__init__(
            self.VERBOSE_FORMAT if verbose else fmt or self.DEFAULT_FORMAT, datefmt
        )
        self.include_api_details = include_api_details

    def format(self, record):
        lines = [super().format(record)]
        if self.include_api_details:
            api_data = getattr(record, "api_data", None)
            response = getattr(record, "response", None)
            if api_data:
                lines.append(f"API Data: {api_data}")
            if response:
                lines.append(f"Response: {response}")
        return "\n".join(lines)


class ApiRecordFilter(logging.Filter):
    """Pass only records written by ``log_api_request``/``log_api_response``."""

    def filter(self, record):
        return hasattr(record, "api_data") or hasattr(record, "response")


def _file_handler(path: str, formatter: logging.Formatter) -> logging.FileHandler:
    handler = logging.FileHandler(path, mode="w")
    handler.setLevel(logging.DEBUG)
    handler.setFormatter(formatter)
    return handler


def setup_main_log_file(
    output_dir: str, debug_api: bool = False, json_logs: bool = False
) -> logging.FileHandler:
    """
    Attach a DEBUG-level ``execution.log`` handler in ``output_dir``.

    Args:
        output_dir: The run output directory, created if missing
        debug_api: Append API payloads to the file's records
        json_logs: Write one JSON object per record instead of plain text

    Returns:
        The attached file handler
    """
    os.makedirs(output_dir, exist_ok=True)
    log_file = os.path.join(output_dir, MAIN_LOG_FILENAME)
    formatter = (
        JsonFormatter()
        if json_logs
        else EnhancedFormatter(include_api_details=debug_api)
    )
    handler = _file_handler(log_file, formatter)

    templater_logger = logging.getLogger(LOGGER_NAME)
    templater_logger.addHandler(handler)
    templater_logger.info(f"Main log file created at: {log_file}")
    return handler


def setup_logger(
    verbose: bool = False,
    debug_api: bool = False,
    output_dir: Optional[str] = None,
    json_logs: bool = False,
) -> logging.Logger:
    """
    Configure the ``guild_templater`` logger for a CLI run.

    Any previously attached handlers are closed and removed first, so calling
    this twice does not duplicate output.

    Args:
        verbose: Console shows DEBUG records instead of INFO and up
        debug_api: Turn on request/response logging in the REST backend
        output_dir: Run directory for ``execution.log`` (and ``api_debug.log``)
        json_logs: Format ``execution.log`` with ``JsonFormatter``

    Returns:
        The configured logger
    """
    global _DEBUG_API_ENABLED
    _DEBUG_API_ENABLED = debug_api

    templater_logger = logging.getLogger(LOGGER_NAME)
    while templater_logger.handlers:
        old = templater_logger.handlers[0]
        templater_logger.removeHandler(old)
        old.close()
    templater_logger.setLevel(logging.DEBUG)

    console = logging.StreamHandler()
    console.setLevel(logging.DEBUG if verbose else logging.INFO)
    console.setFormatter(EnhancedFormatter(verbose=verbose, include_api_details=debug_api))
    templater_logger.addHandler(console)

    if output_dir:
        setup_main_log_file(output_dir, debug_api, json_logs)

    if not debug_api:
        return templater_logger

    if output_dir:
        api_log_file = os.path.join(output_dir, API_LOG_FILENAME)
        api_handler = _file_handler(
            api_log_file, EnhancedFormatter(include_api_details=True)
        )
        api_handler.addFilter(ApiRecordFilter())
        templater_logger.addHandler(api_handler)
        templater_logger.info(f"API debug logging enabled, writing to {api_log_file}")
    else:
        templater_logger.info("API debug logging enabled, writing to console")
    return templater_logger


def redact(data: Dict[str, Any]) -> Dict[str, Any]:
    """Return a shallow copy of ``data`` with credential-looking keys masked."""
    masked = dict(data)
    for key in data:
        if any(sensitive in key.lower() for sensitive in _SENSITIVE_KEYS):
            masked[key] = "[REDACTED]"
    return masked


def log_with_context(level: int, message: str, **kwargs: Any) -> None:
    """
    Log ``message`` with keyword context stored on the record.

    None values are dropped, so callers can pass optional context such as
    ``operation=name`` or ``error_code=result.code`` unconditionally.
    """
    extra = {key: value for key, value in kwargs.items() if value is not None}
    # API records always carry both attributes so formatters can rely on them
    if "api_data" in extra or "response" in extra:
        extra.setdefault("api_data", "")
        extra.setdefault("response", "")
    logging.getLogger(LOGGER_NAME).log(level, message, extra=extra)


def _truncate(text: str, limit: int) -> str:
    return text if len(text) <= limit else text[:limit] + "... [truncated]"


def log_api_request(
    method: str, url: str, data: Optional[Dict] = None, **kwargs: Any
) -> None:
    """Log an outgoing Discord API request; no-op unless API debugging is on."""
    if not is_debug_api_enabled():
        return

    context = dict(kwargs)
    if isinstance(data, dict) and data:
        context["api_data"] = json.dumps(redact(data), indent=2)
    log_with_context(logging.DEBUG, f"API Request: {method} {url}", **context)


def log_api_response(
    status_code: int, url: str, response_data: Any = None, **kwargs: Any
) -> None:
    """
    Log a Discord API response; no-op unless API debugging is on.

    JSON bodies are pretty-printed and cut at 2000 characters, anything else
    at 1000.
    """
    if not is_debug_api_enabled():
        return

    context = {"status_code": status_code, **kwargs}
    if isinstance(response_data, (dict, list)) and response_data:
        context["response"] = _truncate(
            json.dumps(response_data, indent=2, default=str), _MAX_JSON_BODY
        )
    elif response_data:
        context["response"] = _truncate(str(response_data), _MAX_TEXT_BODY)
    log_with_context(
        logging.DEBUG, f"API Response: {status_code} from {url}", **context
    )


def is_debug_api_enabled() -> bool:
    return _DEBUG_API_ENABLED


def get_logger() -> logging.Logger:
    """Return the package logger, giving it an INFO console handler if bare."""
    templater_logger = logging.getLogger(LOGGER_NAME)
    if templater_logger.handlers:
        return templater_logger
    templater_logger.setLevel(logging.INFO)
    console = logging.StreamHandler()
    console.setLevel(logging.INFO)
    console.setFormatter(EnhancedFormatter())
    templater_logger.addHandler(console)
    return templater_logger


# Replaced handlers when setup_logger runs
logger = get_logger()
