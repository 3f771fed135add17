"""In-memory mutation executor for isolated runs and tests."""

import asyncio
import copy
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Tuple

from dualmode.core.context import extract_entity_id
from dualmode.core.safety import OperationKind
from dualmode.executors.base_executor import BaseMutationExecutor
from dualmode.utils.logging import get_logger


@dataclass
class _FailurePlan:
    remaining: Optional[int]
    error: Optional[str]


class InMemoryMutationExecutor(BaseMutationExecutor):
    """Keeps entities in dictionaries keyed by category and id.

    ``seed`` records the original version of every entity, which is what UPDATE
    reverts to and what RESTORE brings back after a delete.
    """

    executor_type = "memory"

    def __init__(self, latency: float = 0.0):
        """Initialize the executor.

        Args:
            latency: Seconds to sleep per call, to exercise interleaving
        """
        self.latency = latency
        self.store: Dict[str, Dict[str, Dict[str, Any]]] = {}
        self.originals: Dict[str, Dict[str, Dict[str, Any]]] = {}
        self.calls: List[Tuple[OperationKind, str, List[str]]] = []
        self._failures: Dict[str, _FailurePlan] = {}
        self.logger = get_logger("executors.memory")

    def seed(self, category: str, entities: List[Dict[str, Any]]) -> List[str]:
        """Insert entities as if a test had created them; returns their ids."""
        ids = []
        for entity in entities:
            entity_id = extract_entity_id(entity)
            if entity_id is None:
                raise ValueError(f"Entity has no id or name: {entity!r}")
            self.store.setdefault(category, {})[entity_id] = copy.deepcopy(entity)
            self.originals.setdefault(category, {})[entity_id] = copy.deepcopy(entity)
            ids.append(entity_id)
        return ids

    def modify(self, category: str, entity_id: str, **changes: Any) -> None:
        """Change a stored entity in place, simulating a test-side update."""
        self.store[category][entity_id].update(changes)

    def exists(self, category: str, entity_id: str) -> bool:
        return entity_id in self.store.get(category, {})

    def get(self, category: str, entity_id: str) -> Optional[Dict[str, Any]]:
        return self.store.get(category, {}).get(entity_id)

    def fail_on(self, category: str, times: Optional[int] = None, error: Optional[str] = None):
        """Make calls for ``category`` fail.

        Args:
            category: Category whose calls should fail
            times: Number of failing calls; ``None`` fails forever
            error: Raise ``RuntimeError(error)`` instead of returning False
        """
        self._failures[category] = _FailurePlan(remaining=times, error=error)

    def _should_fail(self, category: str) -> Optional[_FailurePlan]:
        plan = self._failures.get(category)
        if plan is None:
            return None
        if plan.remaining is not None:
            if plan.remaining <= 0:
                del self._failures[category]
                return None
            plan.remaining -= 1
        return plan

    async def apply(
        self, operation_kind: OperationKind, entity_category: str, entity_ids: List[str]
    ) -> bool:
        """Apply the operation to the in-memory store."""
        self.calls.append((operation_kind, entity_category, list(entity_ids)))
        if self.latency:
            await asyncio.sleep(self.latency)

        plan = self._should_fail(entity_category)
        if plan is not None:
            if plan.error:
                raise RuntimeError(plan.error)
            return False

        bucket = self.store.setdefault(entity_category, {})
        originals = self.originals.get(entity_category, {})

        if operation_kind == OperationKind.DELETE:
            for entity_id in entity_ids:
                bucket.pop(entity_id, None)
        elif operation_kind in (OperationKind.UPDATE, OperationKind.RESTORE):
            for entity_id in entity_ids:
                original = originals.get(entity_id)
                if original is None:
                    self.logger.warning(
                        f"⚠️ No original recorded for {entity_category}/{entity_id}; skipping"
                    )
                    continue
                # UPDATE only reverts entities that still exist
                if operation_kind == OperationKind.UPDATE and entity_id not in bucket:
                    continue
                bucket[entity_id] = copy.deepcopy(original)
        else:
            raise ValueError(f"Unsupported cleanup operation: {operation_kind}")

        return True
