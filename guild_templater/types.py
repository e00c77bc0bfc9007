"""Shared type definitions for the Discord guild template executor.

Provides the template definition types, the execution tracking types that
flow through the orchestrator, and the structured result returned by every
mutator backend call.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from types import MappingProxyType
from typing import Any, Mapping

# ---------------------------------------------------------------------------
# Template definition types
# ---------------------------------------------------------------------------


class ChannelKind(str, Enum):
    """Kinds of channel a template can declare."""

    TEXT = "text"
    VOICE = "voice"
    ANNOUNCEMENT = "announcement"
    STAGE = "stage"
    FORUM = "forum"


@dataclass(frozen=True)
class PermissionOverride:
    """Permissions granted and denied to one role on a category or channel.

    ``role`` is a role name; ``@everyone`` targets the server default role.
    """

    role: str
    allow: tuple[str, ...] = ()
    deny: tuple[str, ...] = ()


@dataclass(frozen=True)
class RoleSpec:
    """A role to create. Higher ``position`` ranks (and is created) first."""

    name: str
    color: str = "#99AAB5"
    hoist: bool = False
    mentionable: bool = False
    permissions: tuple[str, ...] = ()
    position: int = 0


@dataclass(frozen=True)
class ChannelSpec:
    """A channel to create inside a category.

    ``category`` is only meaningful for caller-supplied additional channels;
    template channels inherit the category that lists them.
    ``bitrate`` and ``user_limit`` only apply to voice and stage channels.
    """

    name: str
    kind: ChannelKind = ChannelKind.TEXT
    topic: str | None = None
    slowmode: int = 0
    nsfw: bool = False
    category: str | None = None
    bitrate: int | None = None
    user_limit: int | None = None
    permission_overrides: tuple[PermissionOverride, ...] = ()


@dataclass(frozen=True)
class CategorySpec:
    """A category and the channels it contains, in creation order."""

    name: str
    channels: tuple[ChannelSpec, ...] = ()
    permission_overrides: tuple[PermissionOverride, ...] = ()


@dataclass(frozen=True)
class ServerTemplate:
    """Immutable, declarative bundle of roles, categories and channels."""

    id: str
    name: str
    roles: tuple[RoleSpec, ...] = ()
    categories: tuple[CategorySpec, ...] = ()
    description: str = ""
    use_case: str = ""

    @property
    def channel_count(self) -> int:
        return sum(len(category.channels) for category in self.categories)


# ---------------------------------------------------------------------------
# Execution tracking types
# ---------------------------------------------------------------------------


class OperationKind(str, Enum):
    """What a ledger entry created."""

    SERVER = "server"
    ROLE = "role"
    CATEGORY = "category"
    CHANNEL = "channel"


class OperationStatus(str, Enum):
    """Outcome of a single unit operation."""

    PENDING = "pending"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    FAILED = "failed"
    SKIPPED = "skipped"


class ExecutionPhase(str, Enum):
    """Phase of the template execution state machine."""

    INITIALIZING = "initializing"
    SERVER = "server"
    ROLES = "roles"
    CATEGORIES = "categories"
    CHANNELS = "channels"
    COMPLETED = "completed"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in (ExecutionPhase.COMPLETED, ExecutionPhase.FAILED)


@dataclass(frozen=True)
class OperationResult:
    """One append-only ledger entry.

    ``details`` is wrapped read-only so a recorded entry cannot change.
    """

    kind: OperationKind
    name: str
    status: OperationStatus
    error: str | None = None
    retry_count: int = 0
    details: Mapping[str, Any] = field(default_factory=dict)

    def __post_init__(self) -> None:
        object.__setattr__(self, "details", MappingProxyType(dict(self.details)))

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "kind": self.kind.value,
            "name": self.name,
            "status": self.status.value,
            "retry_count": self.retry_count,
        }
        if self.error is not None:
            data["error"] = self.error
        if self.details:
            data["details"] = dict(self.details)
        return data


@dataclass(frozen=True)
class ExecutionProgress:
    """Point-in-time view of a run, as produced by the progress ledger."""

    phase: ExecutionPhase = ExecutionPhase.INITIALIZING
    total_operations: int = 0
    completed_operations: int = 0
    failed_operations: int = 0
    skipped_operations: int = 0
    current_operation: str | None = None
    operations: tuple[OperationResult, ...] = ()
    start_time: datetime = field(default_factory=datetime.now)
    end_time: datetime | None = None

    def __post_init__(self) -> None:
        object.__setattr__(self, "operations", tuple(self.operations))

    @property
    def processed_operations(self) -> int:
        return (
            self.completed_operations
            + self.failed_operations
            + self.skipped_operations
        )

    @property
    def percent_complete(self) -> float:
        if self.total_operations == 0:
            return 100.0
        return (self.processed_operations / self.total_operations) * 100.0


@dataclass(frozen=True)
class ExecutionResult:
    """Final snapshot returned to the caller of a template run."""

    success: bool
    template_id: str
    server_name: str
    progress: ExecutionProgress
    message: str
    elapsed_seconds: float

    @property
    def operations(self) -> tuple[OperationResult, ...]:
        return self.progress.operations

    def failed(self) -> list[OperationResult]:
        return [
            op for op in self.operations if op.status is OperationStatus.FAILED
        ]


# ---------------------------------------------------------------------------
# Backend result type
# ---------------------------------------------------------------------------


@dataclass
class MutationResult:
    """Discriminated result of one mutator backend call.

    ``ref`` is the identifier of the created entity on success. On failure
    ``error`` and ``code`` carry the backend's diagnostics verbatim.
    """

    success: bool
    ref: str | None = None
    error: str | None = None
    code: str | None = None
    data: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def ok(cls, ref: str | None, **data: Any) -> MutationResult:
        return cls(success=True, ref=ref, data=data)

    @classmethod
    def fail(cls, error: str, code: str | None = None) -> MutationResult:
        return cls(success=False, error=error, code=code)
