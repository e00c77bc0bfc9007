"""Core execution logic including configuration, retry and orchestration."""

__all__ = [
    "classification",
    "cleanup",
    "config",
    "customization",
    "execution_logging",
    "ledger",
    "orchestrator",
    "retry",
]
