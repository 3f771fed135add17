"""Registry mapping test modes to mutation executors."""

from typing import Dict, List, Optional

from dualmode.core.modes import TestMode
from dualmode.executors.base_executor import BaseMutationExecutor


class ExecutorRegistry:
    """Explicitly constructed map of mode -> executor.

    One registry is created per process or test-runner session and handed to the
    context manager, so tests can swap executors without touching globals.
    """

    def __init__(
        self,
        executors: Optional[Dict[TestMode, BaseMutationExecutor]] = None,
        default: Optional[BaseMutationExecutor] = None,
    ):
        self._executors: Dict[TestMode, BaseMutationExecutor] = dict(executors or {})
        self._default = default

    def register(self, mode: TestMode, executor: BaseMutationExecutor) -> None:
        """Register the executor used for ``mode``."""
        self._executors[TestMode(mode)] = executor

    def set_default(self, executor: BaseMutationExecutor) -> None:
        """Register the executor used for modes without a dedicated one."""
        self._default = executor

    def get(self, mode: TestMode) -> BaseMutationExecutor:
        """Get the executor for a mode."""
        executor = self._executors.get(TestMode(mode), self._default)
        if executor is None:
            raise ValueError(f"No mutation executor registered for mode: {TestMode(mode).value}")
        return executor

    def list_modes(self) -> List[TestMode]:
        """List the modes with a dedicated executor."""
        return list(self._executors.keys())

    def describe(self) -> Dict[str, str]:
        """Map of mode name to executor type, for logging."""
        described = {mode.value: ex.executor_type for mode, ex in self._executors.items()}
        if self._default is not None:
            described["default"] = self._default.executor_type
        return described
