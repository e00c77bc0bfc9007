"""Mutator backends for the Discord API and desktop app, plus the template registry."""

__all__ = [
    "backend",
    "rest_backend",
    "templates",
    "ui_backend",
]
