"""Cleanup scheduling and execution with bounded retries.

A pass works on a fixed snapshot of the context's tasks, sorted by priority
(higher first, insertion order among equals). A task that fails with retries left
is retried once more at the end of the same pass. A retry that fails with its
retries spent is a terminal failure; one that fails with retries still left is
kept on the context for the next pass. A task with ``max_retries=N`` gets at most
``N + 1`` attempts overall and each pass runs a task at most twice.
"""

import asyncio
import time
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Sequence

from pydantic import BaseModel, Field

from dualmode.core.context import CleanupTask, TestContext
from dualmode.core.events import EventBus
from dualmode.core.modes import TestMode
from dualmode.core.safety import (
    OperationKind,
    ProductionSafetyValidator,
    SafetyValidationResult,
    TestOperation,
)
from dualmode.executors.registry import ExecutorRegistry
from dualmode.utils.logging import get_logger


class CleanupError(BaseModel):
    """One failed attempt of a cleanup task."""

    task_id: str
    entity_category: str
    entity_ids: List[str] = Field(default_factory=list)
    error: str
    retry_count: int = 0
    blocked: bool = False
    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))


class CleanupResult(BaseModel):
    """Report of a cleanup pass."""

    run_id: str
    completed_tasks: int = 0
    failed_tasks: int = 0
    errors: List[CleanupError] = Field(default_factory=list)
    pending_tasks: List[str] = Field(default_factory=list)
    warnings: List[str] = Field(default_factory=list)
    duration: float = 0.0

    @property
    def success(self) -> bool:
        return self.failed_tasks == 0 and not self.pending_tasks

    def merge(self, other: "CleanupResult") -> None:
        """Add the counts and errors of ``other`` to this report."""
        self.completed_tasks += other.completed_tasks
        self.failed_tasks += other.failed_tasks
        self.errors.extend(other.errors)
        self.pending_tasks.extend(other.pending_tasks)
        self.warnings.extend(other.warnings)


class CleanupScheduler:
    """Holds and executes the compensating actions of test contexts."""

    def __init__(
        self,
        executors: ExecutorRegistry,
        validator: Optional[ProductionSafetyValidator] = None,
        enable_production_safety: bool = True,
        default_max_retries: int = 3,
        retry_delay: float = 0.0,
        event_bus: Optional[EventBus] = None,
    ):
        """Initialize the scheduler.

        Args:
            executors: Mode to mutation executor registry
            validator: Safety validator consulted for PRODUCTION contexts
            enable_production_safety: Vet PRODUCTION tasks before executing them
            default_max_retries: Retry budget for tasks scheduled without one
            retry_delay: Seconds to wait before the same-pass retries
            event_bus: Optional bus receiving task events
        """
        self.executors = executors
        self.validator = validator or ProductionSafetyValidator()
        self.enable_production_safety = enable_production_safety
        self.default_max_retries = default_max_retries
        self.retry_delay = retry_delay
        self.event_bus = event_bus
        self.logger = get_logger("cleanup")

    def schedule(
        self,
        context: TestContext,
        operation_kind: OperationKind,
        entity_category: str,
        entity_ids: Sequence[str],
        priority: int = 0,
        max_retries: Optional[int] = None,
    ) -> CleanupTask:
        """Create a task and append it to ``context``.

        Ids that were never registered are accepted but noted as a warning.
        """
        task = CleanupTask(
            operation_kind=operation_kind,
            entity_category=entity_category,
            entity_ids=list(entity_ids),
            priority=priority,
            max_retries=self.default_max_retries if max_retries is None else max_retries,
        )
        unregistered = [
            entity_id
            for entity_id in task.entity_ids
            if not context.is_registered(entity_category, entity_id)
        ]
        if unregistered:
            warning = (
                f"Cleanup task {task.id} targets unregistered {entity_category}: "
                f"{', '.join(unregistered)}"
            )
            context.warnings.append(warning)
            self.logger.warning(f"⚠️ {warning}")

        context.cleanup_tasks.append(task)
        self.logger.info(f"🗓️ Scheduled cleanup task: {task.describe()} for {context.run_id}")
        return task

    def build_operations(self, context: TestContext, task: CleanupTask) -> List[TestOperation]:
        """One operation per target id, using the registered snapshot when there is one."""
        operations = []
        for entity_id in task.entity_ids:
            snapshot = context.lookup(task.entity_category, entity_id)
            operations.append(
                TestOperation(
                    type=task.operation_kind,
                    entity_type=task.entity_category,
                    target_entity=snapshot,
                    entity_name=None if snapshot else entity_id,
                )
            )
        return operations

    def vet(self, context: TestContext, task: CleanupTask) -> SafetyValidationResult:
        """Classify a task against the context's mode."""
        if not self.enable_production_safety or context.mode != TestMode.PRODUCTION:
            return SafetyValidationResult()
        return self.validator.validate_bulk_operation(
            self.build_operations(context, task), context.mode
        )

    async def execute(self, context: TestContext) -> CleanupResult:
        """Run one cleanup pass over the tasks of ``context``.

        Never raises for task failures; they are recorded in the result.
        """
        start = time.monotonic()
        result = CleanupResult(run_id=context.run_id)

        snapshot = sorted(context.cleanup_tasks, key=lambda t: t.priority, reverse=True)
        context.cleanup_tasks = []
        if not snapshot:
            self.logger.info(f"ℹ️ No cleanup tasks for {context.run_id}")
            return result

        self.logger.info(f"🧹 Executing cleanup for {context.run_id} ({len(snapshot)} tasks)")

        retry_queue: List[CleanupTask] = []
        for task in snapshot:
            await self._run_task(context, task, result, requeue=retry_queue)

        carried: List[CleanupTask] = []
        if retry_queue:
            if self.retry_delay > 0:
                await asyncio.sleep(self.retry_delay)
            for task in retry_queue:
                await self._run_task(context, task, result, requeue=carried, retry_pass=True)

        context.cleanup_tasks = carried
        result.pending_tasks = [task.id for task in carried]
        result.duration = time.monotonic() - start

        self.logger.info(
            f"✅ Cleanup pass finished for {context.run_id}: "
            f"{result.completed_tasks} completed, {result.failed_tasks} failed, "
            f"{len(carried)} pending retry"
        )
        return result

    async def _run_task(
        self,
        context: TestContext,
        task: CleanupTask,
        result: CleanupResult,
        requeue: List[CleanupTask],
        retry_pass: bool = False,
    ) -> None:
        validation = self.vet(context, task)
        if validation.is_blocking():
            message = (
                f"Production safety check blocked task ({validation.risk_level.label}): "
                + "; ".join(validation.issues)
            )
            task.last_error = message
            result.failed_tasks += 1
            result.errors.append(self._error(task, message, blocked=True))
            self.logger.error(f"⛔ Blocked cleanup task {task.describe()}: {message}")
            await self._emit(
                "cleanup_task_failed",
                context,
                {"task_id": task.id, "blocked": True, "risk_level": validation.risk_level.label},
            )
            return
        if not validation.is_valid:
            self.logger.warning(
                f"⚠️ Cleanup task {task.describe()} has {validation.risk_level.label} risk: "
                + "; ".join(validation.issues)
            )

        error = await self._apply(context, task)
        if error is None:
            if task.operation_kind == OperationKind.DELETE:
                context.forget(task.entity_category, task.entity_ids)
            result.completed_tasks += 1
            self.logger.info(f"✓ Completed cleanup task: {task.describe()}")
            await self._emit("cleanup_task_completed", context, {"task_id": task.id})
            return

        task.last_error = error
        result.errors.append(self._error(task, error))
        retried = task.retries_left
        if retried:
            task.retry_count += 1
        # A failed same-pass retry only carries over while retries remain
        if retried and (not retry_pass or task.retries_left):
            requeue.append(task)
            self.logger.warning(
                f"🔁 Cleanup task {task.describe()} failed: {error} "
                f"(retry {task.retry_count}/{task.max_retries})"
            )
        else:
            result.failed_tasks += 1
            self.logger.error(
                f"✗ Cleanup task {task.describe()} failed after "
                f"{task.retry_count} retries: {error}"
            )
        await self._emit(
            "cleanup_task_failed",
            context,
            {"task_id": task.id, "error": error, "retry_count": task.retry_count},
        )

    def discard(self, context: TestContext, result: CleanupResult) -> None:
        """Fail every task left on ``context``; used when the context closes."""
        for task in context.cleanup_tasks:
            message = (
                f"Context closed with {task.max_retries - task.retry_count} "
                f"retries left (last error: {task.last_error})"
            )
            result.failed_tasks += 1
            result.errors.append(self._error(task, message))
            self.logger.error(f"✗ Discarded cleanup task {task.describe()}: {message}")
        discarded = {task.id for task in context.cleanup_tasks}
        result.pending_tasks = [t for t in result.pending_tasks if t not in discarded]
        context.cleanup_tasks = []

    async def _apply(self, context: TestContext, task: CleanupTask) -> Optional[str]:
        """Call the executor; returns an error message or None on success."""
        try:
            executor = self.executors.get(context.mode)
            ok = await executor.apply(task.operation_kind, task.entity_category, task.entity_ids)
        except Exception as e:
            return str(e) or e.__class__.__name__
        if not ok:
            return f"Executor reported failure for {task.describe()}"
        return None

    @staticmethod
    def _error(task: CleanupTask, message: str, blocked: bool = False) -> CleanupError:
        return CleanupError(
            task_id=task.id,
            entity_category=task.entity_category,
            entity_ids=list(task.entity_ids),
            error=message,
            retry_count=task.retry_count,
            blocked=blocked,
        )

    async def _emit(
        self, event_type: str, context: TestContext, extra: Optional[Dict[str, Any]] = None
    ) -> None:
        if self.event_bus is not None:
            await self.event_bus.emit(event_type, context.run_id, extra)
