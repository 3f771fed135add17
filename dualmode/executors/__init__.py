"""Executors - collaborators that apply compensating mutations to test data."""

from .base_executor import BaseMutationExecutor  # noqa: F401
from .memory import InMemoryMutationExecutor  # noqa: F401
from .registry import ExecutorRegistry  # noqa: F401
