"""Unit test configuration and shared fixtures."""

from __future__ import annotations

import threading
import time
from typing import Any, Optional

import pytest

from guild_templater.core.config import SettleDelays
from guild_templater.core.orchestrator import ExecutionOptions
from guild_templater.services.backend import MutatorBackend
from guild_templater.services.templates import parse_template
from guild_templater.types import (
    CategorySpec,
    ChannelSpec,
    MutationResult,
    PermissionOverride,
    RoleSpec,
    ServerTemplate,
)

# ---------------------------------------------------------------------------
# In-memory mutator backend
# ---------------------------------------------------------------------------


class FakeBackend(MutatorBackend):
    """Records every call and fails the names listed in ``failures``.

    ``failures`` maps an entity name to the number of calls that should fail
    before it succeeds; ``None`` means it always fails. Names in ``errors``
    raise ``RuntimeError("backend exploded")``. Successful calls sleep for
    ``latency`` seconds first.
    """

    name = "fake"

    def __init__(
        self,
        failures: Optional[dict[str, Optional[int]]] = None,
        supports_concurrency: bool = False,
        errors: Optional[set[str]] = None,
        latency: float = 0.0,
    ) -> None:
        self.failures = dict(failures or {})
        self.errors = set(errors or ())
        self.latency = latency
        self.supports_concurrency = supports_concurrency
        self.calls: list[tuple[str, Any]] = []
        self.attempts: dict[str, int] = {}
        self._lock = threading.Lock()
        self._next_id = 1000

    def _result(self, method: str, name: str, **data: Any) -> MutationResult:
        with self._lock:
            self.calls.append((method, name, data))
            self.attempts[name] = self.attempts.get(name, 0) + 1
            attempts = self.attempts[name]
            self._next_id += 1
            ref = str(self._next_id)

        if name in self.errors:
            raise RuntimeError("backend exploded")
        if name in self.failures:
            budget = self.failures[name]
            if budget is None or attempts <= budget:
                return MutationResult.fail(f"Timed out creating {name}", "TIMEOUT")
        if self.latency:
            time.sleep(self.latency)
        return MutationResult.ok(ref, name=name)

    def create_server(self, name: str) -> MutationResult:
        return self._result("create_server", name)

    def create_role(self, server_ref: str, role: RoleSpec) -> MutationResult:
        return self._result("create_role", role.name, server_ref=server_ref)

    def create_category(
        self,
        server_ref: str,
        name: str,
        permission_overrides: tuple[PermissionOverride, ...] = (),
    ) -> MutationResult:
        return self._result(
            "create_category",
            name,
            server_ref=server_ref,
            permission_overrides=permission_overrides,
        )

    def create_channel(
        self,
        server_ref: str,
        channel: ChannelSpec,
        category_ref: Optional[str] = None,
    ) -> MutationResult:
        return self._result(
            "create_channel",
            channel.name,
            server_ref=server_ref,
            category_ref=category_ref,
        )

    def called_names(self, method: Optional[str] = None) -> list[str]:
        return [name for m, name, _ in self.calls if method is None or m == method]


@pytest.fixture()
def fake_backend():
    return FakeBackend()


@pytest.fixture()
def make_backend():
    """Factory fixture for a FakeBackend with failures or concurrency."""

    def _make(**kwargs: Any) -> FakeBackend:
        return FakeBackend(**kwargs)

    return _make


# ---------------------------------------------------------------------------
# Templates and options
# ---------------------------------------------------------------------------


@pytest.fixture()
def admin_member_template():
    """Two roles, one category with one channel."""
    return ServerTemplate(
        id="scenario",
        name="Scenario",
        roles=(
            RoleSpec(name="Admin", position=100),
            RoleSpec(name="Member", position=10),
        ),
        categories=(
            CategorySpec(name="General", channels=(ChannelSpec(name="general"),)),
        ),
    )


@pytest.fixture()
def sample_template(sample_template_data):
    return parse_template(sample_template_data)


@pytest.fixture()
def make_options():
    """Factory fixture for ExecutionOptions without settle or retry delays."""

    def _make(**overrides: Any) -> ExecutionOptions:
        defaults: dict[str, Any] = {
            "settle_delays": SettleDelays.none(),
            "retry_delay": 0.0,
        }
        defaults.update(overrides)
        return ExecutionOptions(**defaults)

    return _make
