"""Click command-line interface and run reports."""

__all__ = [
    "apply_cmd",
    "cleanup_cmd",
    "commands",
    "common",
    "config_cmd",
    "report",
    "templates_cmd",
]
