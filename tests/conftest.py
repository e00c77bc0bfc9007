"""Shared test fixtures for the guild_templater test suite."""

import pytest
import yaml


@pytest.fixture()
def sample_template_data():
    """Return a small template as it would appear in a YAML file."""
    return {
        "id": "sample",
        "name": "Sample Server",
        "description": "A tiny template for tests",
        "use_case": "Testing",
        "roles": [
            {"name": "Member", "color": "#3498DB", "position": 10},
            {
                "name": "Admin",
                "color": "#E74C3C",
                "hoist": True,
                "mentionable": True,
                "permissions": ["ADMINISTRATOR"],
                "position": 100,
            },
        ],
        "categories": [
            {
                "name": "General",
                "channels": [
                    {"name": "general", "type": "text", "topic": "Say hi"},
                    {"name": "Lounge", "type": "voice"},
                ],
            },
            {
                "name": "Info",
                "channels": [
                    {"name": "announcements", "type": "announcement", "slowmode": 60},
                ],
            },
        ],
    }


@pytest.fixture()
def mock_config():
    """Return a config dict with all defaults populated."""
    return {
        "backend": "rest",
        "continue_on_error": True,
        "max_retries": 3,
        "retry_delay": 1.0,
        "settle_delays": {"server": 3.0, "role": 0.8, "category": 1.0, "channel": 0.6},
        "channel_concurrency": 4,
        "customization": {
            "skip_roles": [],
            "skip_channels": [],
            "additional_roles": [],
            "additional_channels": [],
            "role_color_overrides": {},
        },
    }


@pytest.fixture()
def config_file(tmp_path, mock_config):
    """Write ``mock_config`` to a YAML file and return its path."""
    path = tmp_path / "config.yaml"
    path.write_text(yaml.safe_dump(mock_config))
    return path


@pytest.fixture()
def template_file(tmp_path, sample_template_data):
    """Write ``sample_template_data`` to a YAML file and return its path."""
    path = tmp_path / "sample.yaml"
    path.write_text(yaml.safe_dump(sample_template_data))
    return path
