"""Shared utilities for logging and AppleScript automation."""

__all__ = [
    "applescript",
    "logging",
]
