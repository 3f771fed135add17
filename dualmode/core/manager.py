"""Test context manager: mode detection, data tracking and cleanup coordination."""

import asyncio
from typing import Any, Dict, List, Optional, Sequence

from dualmode.core.cleanup import CleanupError, CleanupResult, CleanupScheduler
from dualmode.core.config import ManagerOptions, SafetyConfig, Settings
from dualmode.core.context import (
    CleanupTask,
    ContextState,
    TestContext,
    generate_isolation_prefix,
    generate_run_id,
)
from dualmode.core.events import EventBus
from dualmode.core.exceptions import ProductionSafetyError, UnknownContextError
from dualmode.core.modes import TestMode, detect_mode, validate_environment_configuration
from dualmode.core.safety import (
    OperationKind,
    ProductionSafetyValidator,
    SafetyValidationResult,
    TestOperation,
)
from dualmode.executors.memory import InMemoryMutationExecutor
from dualmode.executors.registry import ExecutorRegistry
from dualmode.utils.logging import get_logger


class TestContextManager:
    """Owns the active test contexts and their lifecycle.

    initialize -> register created data / schedule cleanup -> execute cleanup.
    Collaborators are injected; when omitted, ISOLATED runs clean up through an
    in-memory executor and every other mode must be given an executor explicitly.
    """

    def __init__(
        self,
        settings: Optional[Settings] = None,
        options: Optional[ManagerOptions] = None,
        safety_config: Optional[SafetyConfig] = None,
        executors: Optional[ExecutorRegistry] = None,
        event_bus: Optional[EventBus] = None,
    ):
        """Initialize the manager.

        Args:
            settings: Environment settings; read from the process environment if omitted
            options: Feature switches
            safety_config: Marker configuration; loaded from settings if omitted
            executors: Mode to mutation executor registry
            event_bus: Optional bus receiving lifecycle events
        """
        self.settings = settings or Settings()
        self.options = options or ManagerOptions()
        self.safety_config = safety_config or self.settings.load_safety_config()
        self.executors = executors or ExecutorRegistry(
            {TestMode.ISOLATED: InMemoryMutationExecutor()}
        )
        self.event_bus = event_bus
        self.validator = ProductionSafetyValidator(self.safety_config)
        self.scheduler = CleanupScheduler(
            executors=self.executors,
            validator=self.validator,
            enable_production_safety=self.options.enable_production_safety,
            default_max_retries=self.settings.CLEANUP_MAX_RETRIES,
            retry_delay=self.settings.CLEANUP_RETRY_DELAY,
            event_bus=event_bus,
        )
        self.logger = get_logger("context_manager", self.settings.LOG_LEVEL)
        self._active: Dict[str, TestContext] = {}

    # ------------------------------------------------------------- lifecycle

    async def initialize_context(self, test_name: str, tags: Sequence[str]) -> TestContext:
        """Create and register a context for a new test run."""
        run_id = generate_run_id(test_name)
        while run_id in self._active:
            run_id = generate_run_id(test_name)

        environ = self.settings.mode_environment()
        detection = detect_mode(test_name, tags, run_id, environ)
        mode = detection.mode

        context = TestContext(
            run_id=run_id,
            test_name=test_name,
            mode=mode,
            isolation_prefix=generate_isolation_prefix(
                run_id, mode, self.safety_config.name_marker
            ),
            tags=list(tags),
            mode_detection=detection,
        )

        if detection.fallback_reason:
            context.warnings.append(detection.fallback_reason)
        env_check = validate_environment_configuration(mode, environ)
        for issue in env_check.issues:
            context.warnings.append(issue)
            self.logger.warning(f"⚠️ {issue}")

        self._active[run_id] = context
        self.logger.info(
            f"✅ Initialized test context: {test_name} ({mode.value} mode, "
            f"source: {detection.source}) with ID: {run_id}"
        )
        await self._emit(
            "context_initialized",
            run_id,
            {
                "test_name": test_name,
                "mode": mode.value,
                "source": detection.source,
                "isolation_prefix": context.isolation_prefix,
            },
        )
        return context

    async def detect_test_mode(self, tags: Sequence[str]) -> TestMode:
        """Detect the mode a test with ``tags`` would run in, without creating a context."""
        return detect_mode("adhoc", tags, None, self.settings.mode_environment()).mode

    async def register_created_data(
        self, run_id: str, category: str, entities: Sequence[Any]
    ) -> List[str]:
        """Record entities created by a run.

        Returns:
            The ids appended to the registry
        """
        context = self._require(run_id)
        if not self.options.track_data_creation:
            return []

        context.transition(ContextState.ACTIVE)
        ids = context.register(category, entities)
        self.logger.info(f"📝 Registered {len(ids)} {category} for test {run_id}")
        await self._emit("data_registered", run_id, {"category": category, "count": len(ids)})
        return ids

    async def schedule_cleanup(
        self,
        run_id: str,
        operation_kind: OperationKind,
        entity_category: str,
        entity_ids: Sequence[str],
        priority: int = 0,
        max_retries: Optional[int] = None,
    ) -> CleanupTask:
        """Schedule a compensating action for the run."""
        context = self._require(run_id)
        context.transition(ContextState.ACTIVE)
        task = self.scheduler.schedule(
            context,
            operation_kind,
            entity_category,
            entity_ids,
            priority=priority,
            max_retries=max_retries,
        )
        await self._emit(
            "cleanup_scheduled",
            run_id,
            {"task_id": task.id, "operation": task.operation_kind.value, "priority": priority},
        )
        return task

    async def execute_cleanup(self, run_id: str) -> CleanupResult:
        """Run the cleanup of a context and close it.

        The context is removed from the active set whatever the outcome; tasks
        that still had retries left are reported as failed. Calling
        this for an unknown or already cleaned run returns an empty report.
        """
        context = self._active.get(run_id)
        if context is None:
            message = f"No active context found for cleanup: {run_id}"
            self.logger.warning(f"⚠️ {message}")
            return CleanupResult(run_id=run_id, warnings=[message])
        if context.state == ContextState.CLEANUP_IN_PROGRESS:
            message = f"Cleanup already in progress for: {run_id}"
            self.logger.warning(f"⚠️ {message}")
            return CleanupResult(run_id=run_id, warnings=[message])

        context.transition(ContextState.CLEANUP_IN_PROGRESS)
        await self._emit("cleanup_started", run_id, {"tasks": len(context.cleanup_tasks)})

        try:
            if self.options.auto_cleanup:
                result = await self.scheduler.execute(context)
                if context.cleanup_tasks:
                    result.warnings.append(
                        f"{len(context.cleanup_tasks)} task(s) still had retries left "
                        "when the context closed and were discarded"
                    )
                    self.scheduler.discard(context, result)
            else:
                self.logger.info(f"ℹ️ Auto-cleanup disabled, skipping cleanup for {run_id}")
                result = CleanupResult(
                    run_id=run_id,
                    pending_tasks=[task.id for task in context.cleanup_tasks],
                    warnings=["Auto-cleanup disabled; tasks were not executed"],
                )
        finally:
            self._active.pop(run_id, None)
            context.transition(ContextState.CLOSED)

        result.warnings = context.warnings + result.warnings

        total = result.completed_tasks + result.failed_tasks
        self.logger.info(
            f"🧹 Cleanup completed for {run_id}: "
            f"{result.completed_tasks}/{total} tasks successful"
        )
        await self._emit(
            "cleanup_completed",
            run_id,
            {
                "completed": result.completed_tasks,
                "failed": result.failed_tasks,
                "pending": len(result.pending_tasks),
            },
        )
        return result

    async def cleanup_all_contexts(self) -> CleanupResult:
        """Emergency teardown: clean every active context concurrently.

        One context failing never stops the others; its failure is recorded in the
        aggregated report.
        """
        run_ids = list(self._active.keys())
        self.logger.info(f"🚨 Emergency cleanup: {len(run_ids)} active contexts")

        outcomes = await asyncio.gather(
            *(self.execute_cleanup(run_id) for run_id in run_ids), return_exceptions=True
        )

        aggregate = CleanupResult(run_id="*")
        for run_id, outcome in zip(run_ids, outcomes):
            if isinstance(outcome, BaseException):
                self.logger.error(f"❌ Failed to cleanup context {run_id}: {outcome}")
                aggregate.failed_tasks += 1
                aggregate.errors.append(
                    CleanupError(
                        task_id="unknown",
                        entity_category="unknown",
                        error=f"{run_id}: {outcome}",
                    )
                )
                # A crashed pass must not leave the context behind
                self._active.pop(run_id, None)
                continue
            aggregate.merge(outcome)
            aggregate.duration = max(aggregate.duration, outcome.duration)
        return aggregate

    # ---------------------------------------------------------------- safety

    async def validate_production_safety(self, operation: TestOperation) -> SafetyValidationResult:
        """Classify an operation as if it ran against production."""
        if not self.options.enable_production_safety:
            return SafetyValidationResult()
        return self.validator.validate_operation(operation, TestMode.PRODUCTION)

    async def ensure_production_safe(self, operation: TestOperation) -> SafetyValidationResult:
        """Like ``validate_production_safety`` but raises at HIGH risk or above."""
        result = await self.validate_production_safety(operation)
        if result.is_blocking():
            raise ProductionSafetyError(result)
        return result

    # --------------------------------------------------------------- queries

    def get_context(self, run_id: str) -> Optional[TestContext]:
        """Get an active context by run id."""
        return self._active.get(run_id)

    def get_all_active_contexts(self) -> List[TestContext]:
        """Get all active contexts."""
        return list(self._active.values())

    def get_options(self) -> ManagerOptions:
        """Get a copy of the current options."""
        return self.options.model_copy()

    def update_options(self, **changes: Any) -> ManagerOptions:
        """Update options; the scheduler follows the safety switch."""
        self.options = ManagerOptions(**{**self.options.model_dump(), **changes})
        self.scheduler.enable_production_safety = self.options.enable_production_safety
        return self.get_options()

    # -------------------------------------------------------------- internal

    def _require(self, run_id: str) -> TestContext:
        context = self._active.get(run_id)
        if context is None:
            raise UnknownContextError(run_id)
        return context

    async def _emit(self, event_type: str, run_id: str, extra: Optional[Dict[str, Any]] = None):
        if self.event_bus is not None:
            await self.event_bus.emit(event_type, run_id, extra)
