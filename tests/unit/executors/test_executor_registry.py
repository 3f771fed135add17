"""Unit tests for the executor registry."""

import pytest

from dualmode.core.modes import TestMode
from dualmode.executors.base_executor import BaseMutationExecutor
from dualmode.executors.memory import InMemoryMutationExecutor
from dualmode.executors.registry import ExecutorRegistry


class RecordingExecutor(BaseMutationExecutor):
    """Executor that only records what it was asked to do."""

    executor_type = "recording"

    def __init__(self):
        self.calls = []

    async def apply(self, operation_kind, entity_category, entity_ids):
        self.calls.append((operation_kind, entity_category, entity_ids))
        return True


class TestExecutorRegistry:
    """Mode to executor resolution."""

    def test_get_registered(self):
        """Test that a registered executor is returned for its mode."""
        executor = InMemoryMutationExecutor()
        registry = ExecutorRegistry({TestMode.ISOLATED: executor})

        assert registry.get(TestMode.ISOLATED) is executor
        assert registry.get("isolated") is executor

    def test_missing_mode_raises(self):
        """Test that an unregistered mode without a default raises."""
        registry = ExecutorRegistry({TestMode.ISOLATED: InMemoryMutationExecutor()})

        with pytest.raises(ValueError, match="production"):
            registry.get(TestMode.PRODUCTION)

    def test_default_executor(self):
        """Test that the default covers modes without a dedicated executor."""
        default = RecordingExecutor()
        registry = ExecutorRegistry()
        registry.set_default(default)

        assert registry.get(TestMode.DUAL) is default
        assert registry.list_modes() == []

    def test_register_and_describe(self):
        """Test registration and the logging summary."""
        registry = ExecutorRegistry(default=InMemoryMutationExecutor())
        registry.register(TestMode.PRODUCTION, RecordingExecutor())

        assert registry.list_modes() == [TestMode.PRODUCTION]
        assert registry.describe() == {"production": "recording", "default": "memory"}

    def test_base_executor_is_abstract(self):
        """Test that the base class cannot be instantiated."""
        with pytest.raises(TypeError):
            BaseMutationExecutor()
