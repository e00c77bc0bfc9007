"""Tests for the custom exception hierarchy."""

import pytest

from guild_templater.exceptions import (
    BackendError,
    ConfigError,
    ConfirmationRequiredError,
    ExecutionAbortedError,
    InvalidPhaseTransitionError,
    OperationTimeoutError,
    TemplateLoadError,
    TemplateNotFoundError,
    TemplaterError,
)

SIMPLE_EXCEPTION_CLASSES = [
    ConfigError,
    TemplateLoadError,
    BackendError,
    InvalidPhaseTransitionError,
    ExecutionAbortedError,
]


class TestExceptionHierarchy:
    """Tests for exception types, inheritance, and message handling."""

    @pytest.mark.parametrize("exc_class", SIMPLE_EXCEPTION_CLASSES)
    def test_each_exception_is_caught_by_templater_error(self, exc_class):
        with pytest.raises(TemplaterError):
            raise exc_class("caught by base")

    @pytest.mark.parametrize(
        "exc_class",
        [
            *SIMPLE_EXCEPTION_CLASSES,
            TemplateNotFoundError,
            ConfirmationRequiredError,
            OperationTimeoutError,
        ],
    )
    def test_each_exception_inherits_from_templater_error(self, exc_class):
        assert issubclass(exc_class, TemplaterError)

    @pytest.mark.parametrize("exc_class", [TemplaterError, *SIMPLE_EXCEPTION_CLASSES])
    def test_message_is_preserved(self, exc_class):
        msg = f"specific message for {exc_class.__name__}"
        with pytest.raises(exc_class, match=msg):
            raise exc_class(msg)

    def test_codes_are_distinct(self):
        classes = [
            TemplaterError,
            *SIMPLE_EXCEPTION_CLASSES,
            TemplateNotFoundError,
            ConfirmationRequiredError,
            OperationTimeoutError,
        ]
        codes = [cls.code for cls in classes]
        assert len(codes) == len(set(codes))


class TestStructuredExceptions:
    def test_template_not_found_default_message(self):
        err = TemplateNotFoundError("pirates")
        assert str(err) == "Template 'pirates' not found"
        assert err.template_id == "pirates"
        assert err.code == "TEMPLATE_NOT_FOUND"

    def test_template_not_found_custom_message(self):
        err = TemplateNotFoundError("pirates", "no such template, try gaming")
        assert str(err) == "no such template, try gaming"

    def test_confirmation_required(self):
        err = ConfirmationRequiredError("delete channel 42")
        assert err.action == "delete channel 42"
        assert str(err).startswith("Refusing to delete channel 42")

    def test_operation_timeout(self):
        err = OperationTimeoutError("create_role", 30)
        assert str(err) == "Operation 'create_role' timed out after 30s"
        assert err.operation == "create_role"
        assert err.timeout == 30
        assert err.code == "TIMEOUT"
