"""
Template execution orchestrator.

Walks an execution plan phase by phase (server, roles, then each category
followed by its channels) against a mutator backend. Failures are recorded
and, unless the run is configured to stop on error, execution moves on to
the next unit. There is no rollback: a partially applied template is a
normal outcome and is reported as such.
"""

from __future__ import annotations

import logging
import threading
import time
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field, replace
from typing import Any, Callable, Optional, Union

from guild_templater.constants import (
    DEFAULT_CHANNEL_CONCURRENCY,
    DEFAULT_MAX_RETRIES,
    DEFAULT_RETRY_DELAY,
)
from guild_templater.core.config import SettleDelays, TemplaterConfig
from guild_templater.core.customization import (
    Customization,
    ExecutionPlan,
    PlannedChannel,
    PlannedRole,
    count_operations,
    load_template,
    resolve_plan,
)
from guild_templater.core.ledger import ProgressCallback, ProgressLedger, ProgressQueue
from guild_templater.core.retry import execute_with_retry
from guild_templater.exceptions import BackendError
from guild_templater.services.backend import MutatorBackend
from guild_templater.types import (
    ExecutionPhase,
    ExecutionProgress,
    ExecutionResult,
    MutationResult,
    OperationKind,
    OperationResult,
    OperationStatus,
    ServerTemplate,
)
from guild_templater.utils.logging import log_with_context

HALTED_REASON = "halted after failure"
ABORTED_REASON = "aborted after unexpected error"


@dataclass
class ExecutionOptions:
    """Per-run settings for the orchestrator."""

    customization: Customization = field(default_factory=Customization)
    continue_on_error: bool = True
    dry_run: bool = False
    skip_server_creation: bool = False
    server_ref: Optional[str] = None
    max_retries: int = DEFAULT_MAX_RETRIES
    retry_delay: float = DEFAULT_RETRY_DELAY
    settle_delays: SettleDelays = field(default_factory=SettleDelays)
    channel_concurrency: int = DEFAULT_CHANNEL_CONCURRENCY
    on_progress: Optional[ProgressCallback] = None
    progress_queue: Optional[ProgressQueue] = None

    @classmethod
    def from_config(cls, config: TemplaterConfig, **overrides: Any) -> ExecutionOptions:
        """Build options from a loaded config; keyword arguments win."""
        options = cls(
            customization=config.customization,
            continue_on_error=config.continue_on_error,
            server_ref=config.default_guild_id,
            max_retries=config.max_retries,
            retry_delay=config.retry_delay,
            settle_delays=config.settle_delays,
            channel_concurrency=config.channel_concurrency,
        )
        return replace(options, **overrides)


@dataclass(frozen=True)
class _PlannedUnit:
    kind: OperationKind
    name: str
    details: dict[str, Any] = field(default_factory=dict)


class _ExecutionHalted(Exception):
    """Unwinds the phase loops when a failure must stop the run."""


def summarize(
    template_id: str, server_name: str, progress: ExecutionProgress, success: bool
) -> str:
    """Build the run summary from the final counters."""
    completed = progress.completed_operations
    failed = progress.failed_operations
    skipped = progress.skipped_operations
    total = progress.total_operations

    if success:
        prefix = f"Successfully applied template '{template_id}' to server '{server_name}'. "
        if skipped > 0:
            return prefix + f"Completed {completed}/{total} operations ({skipped} skipped)."
        return prefix + f"All {completed} operations completed."
    return (
        f"Template '{template_id}' applied with errors to server '{server_name}'. "
        f"Completed: {completed}, Failed: {failed}, Skipped: {skipped}."
    )


class TemplateOrchestrator:
    """Applies one template to one server through a mutator backend."""

    def __init__(
        self,
        template: Union[str, ServerTemplate],
        server_name: str,
        backend: Optional[MutatorBackend] = None,
        options: Optional[ExecutionOptions] = None,
    ) -> None:
        self.template_ref = template
        self.server_name = server_name
        self.backend = backend
        self.options = options or ExecutionOptions()

        if backend is None and not self.options.dry_run:
            raise BackendError("A mutator backend is required unless dry_run is set")

        self.template: Optional[ServerTemplate] = None
        self.plan: Optional[ExecutionPlan] = None
        self.ledger: Optional[ProgressLedger] = None
        self.server_ref: Optional[str] = None
        self._planned_units: list[_PlannedUnit] = []

    @property
    def template_id(self) -> str:
        if self.template is not None:
            return self.template.id
        if isinstance(self.template_ref, ServerTemplate):
            return self.template_ref.id
        return self.template_ref

    # -- Entry point ------------------------------------------------------------

    def execute(self) -> ExecutionResult:
        """
        Run the template.

        Mutation failures never raise; they are recorded and reflected in the
        result.

        Returns:
            ExecutionResult with the final counters and operation list

        Raises:
            TemplateNotFoundError: If the template id is unknown
            TemplateLoadError: If the template cannot be parsed
        """
        self.template = load_template(self.template_ref)
        self.plan = resolve_plan(self.template, self.options.customization)
        total = count_operations(self.plan, self.options.skip_server_creation)
        self._planned_units = self._flatten_plan(self.plan)

        self.ledger = ProgressLedger(
            total,
            on_progress=self.options.on_progress,
            progress_queue=self.options.progress_queue,
        )
        start = time.monotonic()

        log_with_context(
            logging.INFO,
            f"{'[DRY RUN] ' if self.options.dry_run else ''}Applying template "
            f"'{self.template.id}' to server '{self.server_name}' ({total} operations)",
            template_id=self.template.id,
            total_operations=total,
        )

        error_message: Optional[str] = None
        try:
            self._create_server()
            self._create_roles()
            self._create_categories_and_channels()
            self.ledger.set_phase(ExecutionPhase.COMPLETED)
        except _ExecutionHalted:
            self._record_remaining(HALTED_REASON)
            self.ledger.set_phase(ExecutionPhase.FAILED)
        except Exception as e:
            log_with_context(
                logging.ERROR,
                f"Template execution failed: {e}",
                template_id=self.template.id,
                phase=self.ledger.phase.value,
            )
            error_message = str(e) or type(e).__name__
            self._record_remaining(ABORTED_REASON)
            if not self.ledger.phase.is_terminal:
                self.ledger.set_phase(ExecutionPhase.FAILED)

        progress = self.ledger.snapshot()
        success = (
            progress.phase is ExecutionPhase.COMPLETED
            and progress.failed_operations == 0
        )
        message = summarize(self.template.id, self.server_name, progress, success)
        if error_message is not None:
            message = f"{error_message}. " + (
                f"Completed: {progress.completed_operations}, "
                f"Failed: {progress.failed_operations}, "
                f"Skipped: {progress.skipped_operations}."
            )

        return ExecutionResult(
            success=success,
            template_id=self.template.id,
            server_name=self.server_name,
            progress=progress,
            message=message,
            elapsed_seconds=time.monotonic() - start,
        )

    # -- Plan bookkeeping -------------------------------------------------------

    def _flatten_plan(self, plan: ExecutionPlan) -> list[_PlannedUnit]:
        """Every unit in recording order, used to account for unattempted work."""
        units = []
        if not self.options.skip_server_creation:
            units.append(_PlannedUnit(OperationKind.SERVER, self.server_name))
        units.extend(
            _PlannedUnit(OperationKind.ROLE, role.spec.name) for role in plan.roles
        )
        for category in plan.categories:
            units.append(_PlannedUnit(OperationKind.CATEGORY, category.name))
            units.extend(
                _PlannedUnit(
                    OperationKind.CHANNEL, ch.spec.name, {"category": category.name}
                )
                for ch in category.channels
            )
        units.extend(
            _PlannedUnit(OperationKind.CHANNEL, ch.spec.name, {"category": None})
            for ch in plan.uncategorized_channels
        )
        return units

    def _record_remaining(self, reason: str) -> None:
        # The ledger is always a prefix of the flattened plan
        for unit in self._planned_units[self.ledger.recorded_count :]:
            self.ledger.record(
                OperationResult(
                    kind=unit.kind,
                    name=unit.name,
                    status=OperationStatus.SKIPPED,
                    details={**unit.details, "reason": reason},
                )
            )

    def _after_failure(self) -> None:
        if not self.options.continue_on_error:
            raise _ExecutionHalted()

    # -- Unit operations --------------------------------------------------------

    def _attempt(
        self,
        kind: OperationKind,
        name: str,
        call: Callable[[], MutationResult],
        settle: float,
        details: dict[str, Any],
    ) -> tuple[OperationResult, Optional[str]]:
        """Run one creation with retry and settle, without recording it."""
        if self.options.dry_run:
            return (
                OperationResult(
                    kind=kind,
                    name=name,
                    status=OperationStatus.COMPLETED,
                    details={**details, "dry_run": True},
                ),
                None,
            )

        outcome = execute_with_retry(
            call,
            lambda result: result.success,
            max_retries=self.options.max_retries,
            base_delay=self.options.retry_delay,
            label=f"{kind.value} '{name}'",
        )
        result = outcome.result
        if result.success:
            if settle > 0:
                time.sleep(settle)
            return (
                OperationResult(
                    kind=kind,
                    name=name,
                    status=OperationStatus.COMPLETED,
                    retry_count=outcome.retry_count,
                    details=details,
                ),
                result.ref,
            )

        log_with_context(
            logging.WARNING,
            f"Failed to create {kind.value} '{name}' after "
            f"{outcome.retry_count} retries: {result.error}",
            operation=name,
            retry_count=outcome.retry_count,
            error_code=result.code,
        )
        return (
            OperationResult(
                kind=kind,
                name=name,
                status=OperationStatus.FAILED,
                error=result.error,
                retry_count=outcome.retry_count,
                details=details,
            ),
            None,
        )

    def _run_unit(
        self,
        kind: OperationKind,
        name: str,
        call: Callable[[], MutationResult],
        settle: float,
        details: dict[str, Any],
    ) -> tuple[OperationResult, Optional[str]]:
        self.ledger.set_current_operation(f"Creating {kind.value}: {name}")
        op_result, ref = self._attempt(kind, name, call, settle, details)
        self.ledger.record(op_result)
        if op_result.status is OperationStatus.FAILED:
            self._after_failure()
        return op_result, ref

    def _record_skip(
        self, kind: OperationKind, name: str, reason: str, **details: Any
    ) -> None:
        self.ledger.record(
            OperationResult(
                kind=kind,
                name=name,
                status=OperationStatus.SKIPPED,
                details={**details, "reason": reason},
            )
        )

    # -- Phases -----------------------------------------------------------------

    def _create_server(self) -> None:
        self.ledger.set_phase(ExecutionPhase.SERVER)
        fallback_ref = self.options.server_ref or self.server_name

        if self.options.skip_server_creation:
            self.server_ref = fallback_ref
            log_with_context(
                logging.INFO,
                f"Skipping server creation, using server '{self.server_ref}'",
                phase=ExecutionPhase.SERVER.value,
            )
            return

        self.server_ref = fallback_ref
        op_result, ref = self._run_unit(
            OperationKind.SERVER,
            self.server_name,
            lambda: self.backend.create_server(self.server_name),
            self.options.settle_delays.server,
            {},
        )
        if op_result.status is OperationStatus.COMPLETED and ref:
            self.server_ref = ref

    def _create_roles(self) -> None:
        self.ledger.set_phase(ExecutionPhase.ROLES)
        for planned in self.plan.roles:
            self._create_role(planned)

    def _create_role(self, planned: PlannedRole) -> None:
        role = planned.spec
        details: dict[str, Any] = {"color": role.color}
        if planned.additional:
            details["additional"] = True

        if planned.skipped:
            self._record_skip(OperationKind.ROLE, role.name, "listed in skip_roles")
            return

        self._run_unit(
            OperationKind.ROLE,
            role.name,
            lambda: self.backend.create_role(self.server_ref, role),
            self.options.settle_delays.role,
            details,
        )

    def _create_categories_and_channels(self) -> None:
        self.ledger.set_phase(ExecutionPhase.CATEGORIES)

        for index, category in enumerate(self.plan.categories):
            if index > 0:
                self.ledger.set_phase(ExecutionPhase.CATEGORIES)

            op_result, ref = self._run_unit(
                OperationKind.CATEGORY,
                category.name,
                lambda category=category: self.backend.create_category(
                    self.server_ref, category.name, category.permission_overrides
                ),
                self.options.settle_delays.category,
                {},
            )
            # A failed category still gets its channels, parented by name
            succeeded = op_result.status is OperationStatus.COMPLETED
            parent_ref = ref if succeeded and ref else category.name

            self.ledger.set_phase(ExecutionPhase.CHANNELS)
            self._create_channels(category.channels, parent_ref, category.name)

        if self.ledger.phase is ExecutionPhase.CATEGORIES:
            self.ledger.set_phase(ExecutionPhase.CHANNELS)
        self._create_channels(self.plan.uncategorized_channels, None, None)

    def _channel_details(
        self, planned: PlannedChannel, category_name: Optional[str]
    ) -> dict[str, Any]:
        details: dict[str, Any] = {
            "category": category_name,
            "type": planned.spec.kind.value,
        }
        if planned.additional:
            details["additional"] = True
        return details

    def _channel_call(
        self, planned: PlannedChannel, parent_ref: Optional[str]
    ) -> Callable[[], MutationResult]:
        return lambda: self.backend.create_channel(
            self.server_ref, planned.spec, parent_ref
        )

    def _create_channels(
        self,
        channels: tuple[PlannedChannel, ...],
        parent_ref: Optional[str],
        category_name: Optional[str],
    ) -> None:
        if not channels:
            return

        use_pool = (
            not self.options.dry_run
            and self.backend is not None
            and self.backend.supports_concurrency
            and self.options.channel_concurrency > 1
            and sum(1 for ch in channels if not ch.skipped) > 1
        )
        if use_pool:
            self._create_channels_concurrently(channels, parent_ref, category_name)
            return

        for planned in channels:
            details = self._channel_details(planned, category_name)
            if planned.skipped:
                self._record_skip(
                    OperationKind.CHANNEL,
                    planned.spec.name,
                    "listed in skip_channels",
                    category=category_name,
                )
                continue
            self._run_unit(
                OperationKind.CHANNEL,
                planned.spec.name,
                self._channel_call(planned, parent_ref),
                self.options.settle_delays.channel,
                details,
            )

    def _create_channels_concurrently(
        self,
        channels: tuple[PlannedChannel, ...],
        parent_ref: Optional[str],
        category_name: Optional[str],
    ) -> None:
        """
        Fan channel creation out to worker threads, record in template order.

        Channels already running when a halting failure or an unexpected
        error occurs are allowed to finish; queued ones never start and are
        recorded as skipped.
        """
        label = category_name or "no category"
        self.ledger.set_current_operation(
            f"Creating {len(channels)} channels in {label}"
        )
        stop = threading.Event()

        def create(planned: PlannedChannel) -> Optional[OperationResult]:
            if stop.is_set():
                return None
            try:
                op_result, _ = self._attempt(
                    OperationKind.CHANNEL,
                    planned.spec.name,
                    self._channel_call(planned, parent_ref),
                    self.options.settle_delays.channel,
                    self._channel_details(planned, category_name),
                )
            except Exception:
                stop.set()
                raise
            if (
                op_result.status is OperationStatus.FAILED
                and not self.options.continue_on_error
            ):
                stop.set()
            return op_result

        with ThreadPoolExecutor(
            max_workers=self.options.channel_concurrency,
            thread_name_prefix="channel",
        ) as pool:
            futures = [
                None if planned.skipped else pool.submit(create, planned)
                for planned in channels
            ]

        # Every outcome is collected before anything is re-raised
        unexpected: Optional[Exception] = None
        outcomes: list[Optional[OperationResult]] = []
        for planned, future in zip(channels, futures):
            if future is None:
                outcomes.append(
                    self._skip_result(planned, category_name, "listed in skip_channels")
                )
                continue
            try:
                outcomes.append(future.result())
            except Exception as e:
                unexpected = unexpected or e
                outcomes.append(
                    OperationResult(
                        kind=OperationKind.CHANNEL,
                        name=planned.spec.name,
                        status=OperationStatus.FAILED,
                        error=str(e) or type(e).__name__,
                        details=self._channel_details(planned, category_name),
                    )
                )

        not_started = ABORTED_REASON if unexpected is not None else HALTED_REASON
        any_failed = False
        for planned, op_result in zip(channels, outcomes):
            if op_result is None:
                op_result = self._skip_result(planned, category_name, not_started)
            any_failed = any_failed or op_result.status is OperationStatus.FAILED
            self.ledger.record(op_result)

        if unexpected is not None:
            raise unexpected
        if any_failed:
            self._after_failure()

    @staticmethod
    def _skip_result(
        planned: PlannedChannel, category_name: Optional[str], reason: str
    ) -> OperationResult:
        return OperationResult(
            kind=OperationKind.CHANNEL,
            name=planned.spec.name,
            status=OperationStatus.SKIPPED,
            details={"category": category_name, "reason": reason},
        )


def execute_template(
    template: Union[str, ServerTemplate],
    server_name: str,
    backend: Optional[MutatorBackend] = None,
    options: Optional[ExecutionOptions] = None,
) -> ExecutionResult:
    """Apply ``template`` to ``server_name`` with the given backend and options."""
    return TemplateOrchestrator(template, server_name, backend, options).execute()


def preview_template_execution(
    template: Union[str, ServerTemplate],
    server_name: str,
    customization: Optional[Customization] = None,
) -> ExecutionResult:
    """Dry run: record what would be created without touching any backend."""
    options = ExecutionOptions(
        customization=customization or Customization(), dry_run=True
    )
    return TemplateOrchestrator(template, server_name, None, options).execute()
