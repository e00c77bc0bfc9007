"""Custom exception hierarchy for the Discord guild template executor."""

from __future__ import annotations


class TemplaterError(Exception):
    """Base exception for all template execution errors."""

    code = "UNKNOWN_ERROR"


class ConfigError(TemplaterError):
    """Raised when configuration is invalid or missing."""

    code = "CONFIG_ERROR"


class TemplateNotFoundError(TemplaterError):
    """Raised when a template id does not resolve to a known template."""

    code = "TEMPLATE_NOT_FOUND"

    def __init__(self, template_id: str, message: str | None = None) -> None:
        super().__init__(message or f"Template '{template_id}' not found")
        self.template_id = template_id


class TemplateLoadError(TemplaterError):
    """Raised when template data cannot be parsed into a ServerTemplate."""

    code = "TEMPLATE_ERROR"


class ConfirmationRequiredError(TemplaterError):
    """Raised when a destructive action is requested without confirmation."""

    code = "CONFIRMATION_REQUIRED"

    def __init__(self, action: str) -> None:
        super().__init__(
            f"Refusing to {action} without explicit confirmation (pass confirm=True or --yes)"
        )
        self.action = action


class BackendError(TemplaterError):
    """Raised when a mutator backend cannot be constructed or used at all."""

    code = "BACKEND_ERROR"


class OperationTimeoutError(TemplaterError):
    """Raised when a single backend operation exceeds its timeout."""

    code = "TIMEOUT"

    def __init__(self, operation: str, timeout: float) -> None:
        super().__init__(f"Operation '{operation}' timed out after {timeout:g}s")
        self.operation = operation
        self.timeout = timeout


class InvalidPhaseTransitionError(TemplaterError):
    """Raised when the execution state machine is driven into an illegal phase."""

    code = "INVALID_PHASE_TRANSITION"


class ExecutionAbortedError(TemplaterError):
    """Raised when a template run halted before all phases completed."""

    code = "EXECUTION_ABORTED"


class GuildValidationError(TemplaterError):
    """Raised when an existing guild cannot take the template as it stands."""

    code = "GUILD_VALIDATION_FAILED"
