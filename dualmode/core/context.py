"""Test execution context - holds the runtime state of one test run."""

import random
import re
import string
import time
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional, Sequence, Tuple

from dualmode.core.exceptions import ImmutableModeError, InvalidContextStateError
from dualmode.core.modes import ModeDetectionResult, TestMode
from dualmode.core.safety import OperationKind

DEFAULT_CATEGORIES = ("customers", "tickets", "routes", "assignments", "locations")

CLEANUP_KINDS = (OperationKind.DELETE, OperationKind.UPDATE, OperationKind.RESTORE)

_ALPHABET = string.ascii_lowercase + string.digits


def _random_suffix(length: int) -> str:
    return "".join(random.choices(_ALPHABET, k=length))


def _now_ms() -> int:
    return int(time.time() * 1000)


def generate_run_id(test_name: str) -> str:
    """Build ``test_<epoch-ms>_<sanitized-name>_<random>`` for a new run."""
    sanitized = re.sub(r"[^a-zA-Z0-9]", "_", test_name or "").lower()
    return f"test_{_now_ms()}_{sanitized}_{_random_suffix(9)}"


def generate_isolation_prefix(run_id: str, mode: TestMode, production_marker: str) -> str:
    """Derive the namespace token for entities created by a run.

    PRODUCTION runs share the fixed marker so the safety checks can recognise their
    data; every other mode gets a timestamped prefix unique to the run.
    """
    if mode == TestMode.PRODUCTION:
        return production_marker
    short_id = run_id.rsplit("_", 1)[-1] or "unknown"
    return f"test_{_now_ms()}_{short_id}"


def generate_task_id() -> str:
    """Build a unique cleanup task id."""
    return f"cleanup_{_now_ms()}_{_random_suffix(9)}"


def extract_entity_id(entity: Any) -> Optional[str]:
    """Return a stable identifier for a created entity.

    Prefers ``id``, then ``identifier``, then ``name``. Works for dicts and for
    objects exposing those attributes; plain strings and numbers are their own id.
    """
    if entity is None:
        return None
    if isinstance(entity, (str, int)) and not isinstance(entity, bool):
        return str(entity)
    for key in ("id", "identifier", "name"):
        if isinstance(entity, dict):
            value = entity.get(key)
        else:
            value = getattr(entity, key, None)
        if value is not None and value != "":
            return str(value)
    return None


def entity_snapshot(entity: Any) -> Dict[str, Any]:
    """Return a plain-dict copy of an entity for later safety vetting."""
    if isinstance(entity, dict):
        return dict(entity)
    if hasattr(entity, "model_dump"):
        return entity.model_dump()
    if hasattr(entity, "__dict__"):
        return {k: v for k, v in vars(entity).items() if not k.startswith("_")}
    return {"id": str(entity)}


class ContextState(str, Enum):
    """Lifecycle state of a test context."""

    INITIALIZED = "initialized"
    ACTIVE = "active"
    CLEANUP_IN_PROGRESS = "cleanup_in_progress"
    CLOSED = "closed"


_TRANSITIONS = {
    ContextState.INITIALIZED: {ContextState.ACTIVE, ContextState.CLEANUP_IN_PROGRESS},
    ContextState.ACTIVE: {ContextState.CLEANUP_IN_PROGRESS},
    ContextState.CLEANUP_IN_PROGRESS: {ContextState.CLOSED},
    ContextState.CLOSED: set(),
}


@dataclass
class CleanupTask:
    """A deferred compensating action against entities created during a run."""

    operation_kind: OperationKind
    entity_category: str
    entity_ids: List[str]
    priority: int = 0
    max_retries: int = 3
    retry_count: int = 0
    id: str = field(default_factory=generate_task_id)
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    last_error: Optional[str] = None

    def __post_init__(self) -> None:
        self.operation_kind = OperationKind(self.operation_kind)
        if self.operation_kind not in CLEANUP_KINDS:
            raise ValueError(
                f"Cleanup tasks must delete, update or restore, got: {self.operation_kind.value}"
            )
        if self.max_retries < 0:
            raise ValueError(f"max_retries must be non-negative, got: {self.max_retries}")
        # Keep first-seen order, drop repeats
        self.entity_ids = list(dict.fromkeys(str(entity_id) for entity_id in self.entity_ids))

    @property
    def retries_left(self) -> bool:
        return self.retry_count < self.max_retries

    def describe(self) -> str:
        return f"{self.operation_kind.value} {self.entity_category} ({len(self.entity_ids)} items)"


@dataclass
class TestContext:
    """Runtime context for one test run.

    The mode is fixed at construction; the registry and task list only grow until
    cleanup drains them.
    """

    run_id: str
    test_name: str
    mode: TestMode
    isolation_prefix: str
    tags: List[str] = field(default_factory=list)
    mode_detection: Optional[ModeDetectionResult] = None
    state: ContextState = ContextState.INITIALIZED
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    # Entity tracking
    data_registry: Dict[str, List[str]] = field(
        default_factory=lambda: {category: [] for category in DEFAULT_CATEGORIES}
    )
    created_entities: Dict[Tuple[str, str], Dict[str, Any]] = field(default_factory=dict)

    # Cleanup
    cleanup_tasks: List[CleanupTask] = field(default_factory=list)

    warnings: List[str] = field(default_factory=list)

    def __setattr__(self, name: str, value: Any) -> None:
        if name == "mode" and "mode" in self.__dict__ and self.__dict__["mode"] != value:
            raise ImmutableModeError(self.run_id)
        super().__setattr__(name, value)

    def transition(self, target: ContextState) -> None:
        """Move to ``target``; illegal transitions raise ``InvalidContextStateError``."""
        if target == self.state:
            return
        if target not in _TRANSITIONS[self.state]:
            raise InvalidContextStateError(self.run_id, self.state.value, target.value)
        self.state = target

    def register(self, category: str, entities: Sequence[Any]) -> List[str]:
        """Append the ids of ``entities`` to ``category``; duplicates are kept.

        Returns:
            The ids that were appended
        """
        ids: List[str] = []
        bucket = self.data_registry.setdefault(category, [])
        for entity in entities:
            entity_id = extract_entity_id(entity)
            if entity_id is None:
                self.warnings.append(f"Skipped {category} entity without id or name: {entity!r}")
                continue
            bucket.append(entity_id)
            self.created_entities[(category, entity_id)] = entity_snapshot(entity)
            ids.append(entity_id)
        return ids

    def forget(self, category: str, entity_ids: Sequence[str]) -> None:
        """Drop ``entity_ids`` from the registry after a successful delete."""
        removed = set(entity_ids)
        if category in self.data_registry:
            self.data_registry[category] = [
                entity_id for entity_id in self.data_registry[category] if entity_id not in removed
            ]
        for entity_id in removed:
            self.created_entities.pop((category, entity_id), None)

    def lookup(self, category: str, entity_id: str) -> Optional[Dict[str, Any]]:
        """Return the snapshot registered for ``entity_id``, if any."""
        return self.created_entities.get((category, entity_id))

    def is_registered(self, category: str, entity_id: str) -> bool:
        return entity_id in self.data_registry.get(category, [])

    def registered_count(self) -> int:
        return sum(len(ids) for ids in self.data_registry.values())
