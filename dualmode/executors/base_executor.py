"""Base executor class for entity mutation collaborators."""

from abc import ABC, abstractmethod
from typing import List

from dualmode.core.safety import OperationKind


class BaseMutationExecutor(ABC):
    """Base class for all entity mutation executors.

    The executor talks to the real data store to undo what a test created.
    Implementations must be idempotent: deleting an id that is already gone is
    a success, not an error.
    """

    # Name used in logs and by ``ExecutorRegistry.describe``
    executor_type: str = "base"

    @abstractmethod
    async def apply(
        self, operation_kind: OperationKind, entity_category: str, entity_ids: List[str]
    ) -> bool:
        """Apply a compensating operation.

        Args:
            operation_kind: DELETE, UPDATE or RESTORE
            entity_category: Registry category the ids belong to
            entity_ids: Identifiers to act upon

        Returns:
            True on success, False on a failure the executor already handled.
            Unexpected failures may also be raised.
        """
        pass
