"""
Configuration module for the Discord guild template executor.

This module loads execution settings from YAML files, applies defaults,
validates values and writes a starter configuration. Credentials come from
the environment first and the YAML file second.
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml

from guild_templater.constants import (
    CATEGORY_CREATION_DELAY,
    CHANNEL_CREATION_DELAY,
    DEFAULT_CHANNEL_CONCURRENCY,
    DEFAULT_MAX_RETRIES,
    DEFAULT_REQUEST_TIMEOUT,
    DEFAULT_RETRY_DELAY,
    DEFAULT_SCRIPT_TIMEOUT,
    ENV_BOT_TOKEN,
    ENV_DEFAULT_GUILD_ID,
    POST_SERVER_CREATION_DELAY,
    ROLE_CREATION_DELAY,
    TRANSPORT_INITIAL_DELAY,
    TRANSPORT_MAX_DELAY,
)
from guild_templater.core.customization import Customization
from guild_templater.exceptions import ConfigError
from guild_templater.utils.logging import log_with_context

BACKENDS = ("rest", "ui")


def _number(data: dict[str, Any], key: str, default: float, minimum: float = 0) -> float:
    value = data.get(key, default)
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise ConfigError(f"'{key}' must be a number, got {value!r}")
    if value < minimum:
        raise ConfigError(f"'{key}' must be at least {minimum}, got {value}")
    return value


@dataclass
class SettleDelays:
    """Pauses after each successful creation, in seconds."""

    server: float = POST_SERVER_CREATION_DELAY
    role: float = ROLE_CREATION_DELAY
    category: float = CATEGORY_CREATION_DELAY
    channel: float = CHANNEL_CREATION_DELAY

    @classmethod
    def from_dict(cls, data: dict[str, Any] | None) -> SettleDelays:
        if not data:
            return cls()
        return cls(
            server=float(_number(data, "server", cls.server)),
            role=float(_number(data, "role", cls.role)),
            category=float(_number(data, "category", cls.category)),
            channel=float(_number(data, "channel", cls.channel)),
        )

    @classmethod
    def none(cls) -> SettleDelays:
        return cls(server=0.0, role=0.0, category=0.0, channel=0.0)


@dataclass
class TransportRetryConfig:
    """Backend-level retry of transient transport failures."""

    max_retries: int = DEFAULT_MAX_RETRIES
    initial_delay: float = TRANSPORT_INITIAL_DELAY
    max_delay: float = TRANSPORT_MAX_DELAY
    jitter: bool = True

    @classmethod
    def from_dict(cls, data: dict[str, Any] | None) -> TransportRetryConfig:
        if not data:
            return cls()
        return cls(
            max_retries=int(_number(data, "max_retries", cls.max_retries)),
            initial_delay=float(_number(data, "initial_delay", cls.initial_delay)),
            max_delay=float(_number(data, "max_delay", cls.max_delay)),
            jitter=bool(data.get("jitter", True)),
        )


@dataclass
class TemplaterConfig:
    """Typed configuration for template runs.

    All fields have defaults, so an empty or missing file is a valid config.
    """

    backend: str = "rest"

    # Error handling
    continue_on_error: bool = True
    max_retries: int = DEFAULT_MAX_RETRIES
    retry_delay: float = DEFAULT_RETRY_DELAY

    settle_delays: SettleDelays = field(default_factory=SettleDelays)
    transport_retry: TransportRetryConfig = field(default_factory=TransportRetryConfig)

    channel_concurrency: int = DEFAULT_CHANNEL_CONCURRENCY
    request_timeout: float = DEFAULT_REQUEST_TIMEOUT
    script_timeout: float = DEFAULT_SCRIPT_TIMEOUT

    customization: Customization = field(default_factory=Customization)

    # Credentials and defaults
    discord_token: str | None = field(default=None, repr=False)
    default_guild_id: str | None = None

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> TemplaterConfig:
        """Create a TemplaterConfig from a raw config dictionary.

        Raises:
            ConfigError: If any value is invalid
        """
        if not isinstance(data, dict):
            raise ConfigError("Configuration must be a mapping")

        backend = str(data.get("backend", "rest")).lower()
        if backend not in BACKENDS:
            raise ConfigError(
                f"Unknown backend '{backend}', expected one of: {', '.join(BACKENDS)}"
            )

        channel_concurrency = int(
            _number(data, "channel_concurrency", DEFAULT_CHANNEL_CONCURRENCY, minimum=1)
        )

        return cls(
            backend=backend,
            continue_on_error=bool(data.get("continue_on_error", True)),
            max_retries=int(_number(data, "max_retries", DEFAULT_MAX_RETRIES)),
            retry_delay=float(_number(data, "retry_delay", DEFAULT_RETRY_DELAY)),
            settle_delays=SettleDelays.from_dict(data.get("settle_delays")),
            transport_retry=TransportRetryConfig.from_dict(data.get("transport_retry")),
            channel_concurrency=channel_concurrency,
            request_timeout=float(
                _number(data, "request_timeout", DEFAULT_REQUEST_TIMEOUT, minimum=1)
            ),
            script_timeout=float(
                _number(data, "script_timeout", DEFAULT_SCRIPT_TIMEOUT, minimum=1)
            ),
            customization=Customization.from_dict(data.get("customization")),
            discord_token=os.environ.get(ENV_BOT_TOKEN) or data.get("discord_token"),
            default_guild_id=os.environ.get(ENV_DEFAULT_GUILD_ID)
            or data.get("default_guild_id"),
        )

    def require_token(self) -> str:
        """
        Return the bot token.

        Raises:
            ConfigError: If no token is configured
        """
        if not self.discord_token:
            raise ConfigError(
                f"No Discord bot token configured. Set {ENV_BOT_TOKEN} "
                "or 'discord_token' in the config file."
            )
        return self.discord_token


def load_config(config_path: Path | None) -> TemplaterConfig:
    """
    Load configuration from a YAML file and apply default values.

    A missing or unreadable file is logged as a warning and defaults are
    used. Values that are present but invalid raise ``ConfigError``.

    Args:
        config_path: Path to the config YAML file, or None for defaults

    Returns:
        TemplaterConfig with all necessary defaults applied

    Raises:
        ConfigError: If the file contains invalid values
    """
    raw: dict[str, Any] = {}

    if config_path is None:
        log_with_context(logging.DEBUG, "No config file given, using default settings")
    elif config_path.exists():
        try:
            with open(config_path) as f:
                loaded_config = yaml.safe_load(f)
                # Handle None result from empty file
                if loaded_config is not None:
                    raw = loaded_config
            log_with_context(logging.INFO, f"Loaded configuration from {config_path}")
        except (yaml.YAMLError, OSError) as e:
            log_with_context(
                logging.WARNING, f"Failed to load config file {config_path}: {e}"
            )
    else:
        log_with_context(
            logging.WARNING,
            f"Config file {config_path} not found, using default settings",
        )

    return TemplaterConfig.from_dict(raw)


def create_default_config(output_path: Path) -> bool:
    """
    Create a default configuration file with recommended settings.

    The file is never overwritten if it already exists. The bot token is
    deliberately left out; it belongs in the environment.

    Args:
        output_path: Path where the default config should be saved

    Returns:
        True if the config file was created successfully, False otherwise
    """
    if output_path.exists():
        log_with_context(
            logging.WARNING,
            f"Config file {output_path} already exists, not overwriting",
        )
        return False

    default_config = {
        "backend": "rest",
        # Error handling options
        "continue_on_error": True,
        "max_retries": DEFAULT_MAX_RETRIES,
        "retry_delay": DEFAULT_RETRY_DELAY,
        "settle_delays": {
            "server": POST_SERVER_CREATION_DELAY,
            "role": ROLE_CREATION_DELAY,
            "category": CATEGORY_CREATION_DELAY,
            "channel": CHANNEL_CREATION_DELAY,
        },
        "transport_retry": {
            "max_retries": DEFAULT_MAX_RETRIES,
            "initial_delay": TRANSPORT_INITIAL_DELAY,
            "max_delay": TRANSPORT_MAX_DELAY,
            "jitter": True,
        },
        "channel_concurrency": DEFAULT_CHANNEL_CONCURRENCY,
        "request_timeout": DEFAULT_REQUEST_TIMEOUT,
        "script_timeout": DEFAULT_SCRIPT_TIMEOUT,
        "customization": {
            "skip_roles": [],
            "skip_channels": [],
            "additional_roles": [],
            "additional_channels": [],
            "role_color_overrides": {},
        },
    }

    try:
        with open(output_path, "w") as f:
            yaml.safe_dump(default_config, f, default_flow_style=False, sort_keys=False)
        log_with_context(logging.INFO, f"Created default config file at {output_path}")
        return True
    except OSError as e:
        log_with_context(logging.ERROR, f"Failed to create default config file: {e}")
        return False
