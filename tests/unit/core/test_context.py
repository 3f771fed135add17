"""Unit tests for test contexts, cleanup tasks and id generation."""

import re
from types import SimpleNamespace

import pytest

from dualmode.core.context import (
    CleanupTask,
    ContextState,
    TestContext,
    extract_entity_id,
    generate_isolation_prefix,
    generate_run_id,
    generate_task_id,
)
from dualmode.core.exceptions import ImmutableModeError, InvalidContextStateError
from dualmode.core.modes import TestMode
from dualmode.core.safety import OperationKind


@pytest.fixture
def context():
    """An isolated context with a known run id."""
    return TestContext(
        run_id="test_1700000000000_checkout_abc123xyz",
        test_name="checkout",
        mode=TestMode.ISOLATED,
        isolation_prefix="test_1700000000000_abc123xyz",
    )


class TestIdentifiers:
    """Run, task and prefix generation."""

    def test_run_id_format(self):
        """Test that run ids embed a timestamp and the sanitized name."""
        run_id = generate_run_id("Checkout: pay & ship")

        assert re.fullmatch(r"test_\d+_checkout__pay___ship_[a-z0-9]{9}", run_id)

    def test_run_ids_are_unique(self):
        """Test that repeated calls never collide."""
        assert len({generate_run_id("same") for _ in range(200)}) == 200

    def test_task_id_format(self):
        """Test the cleanup task id format."""
        assert re.fullmatch(r"cleanup_\d+_[a-z0-9]{9}", generate_task_id())

    def test_production_prefix_is_marker(self):
        """Test that production runs share the fixed marker."""
        prefix = generate_isolation_prefix("test_1_x_abc", TestMode.PRODUCTION, "looneyTunesTest")

        assert prefix == "looneyTunesTest"

    def test_isolated_prefix_uses_run_suffix(self):
        """Test that non-production prefixes end with the run id suffix."""
        prefix = generate_isolation_prefix("test_1_x_abc123", TestMode.DUAL, "looneyTunesTest")

        assert re.fullmatch(r"test_\d+_abc123", prefix)

    @pytest.mark.parametrize(
        "entity,expected",
        [
            ({"id": 7, "name": "n"}, "7"),
            ({"identifier": "cust-1", "name": "n"}, "cust-1"),
            ({"name": "only name"}, "only name"),
            ({"id": "", "name": "fallback"}, "fallback"),
            (SimpleNamespace(id="obj-1"), "obj-1"),
            ("raw-id", "raw-id"),
            (12, "12"),
            ({"other": 1}, None),
            (None, None),
        ],
    )
    def test_extract_entity_id(self, entity, expected):
        """Test the id resolution order."""
        assert extract_entity_id(entity) == expected


class TestCleanupTask:
    """Cleanup task construction."""

    def test_defaults(self):
        """Test task defaults and id deduplication."""
        task = CleanupTask(OperationKind.DELETE, "customers", ["a", "b", "a"])

        assert task.entity_ids == ["a", "b"]
        assert task.priority == 0
        assert task.max_retries == 3
        assert task.retry_count == 0
        assert task.id.startswith("cleanup_")
        assert task.retries_left

    def test_kind_from_string(self):
        """Test that string kinds are converted."""
        assert CleanupTask("restore", "tickets", []).operation_kind == OperationKind.RESTORE

    def test_create_is_not_a_cleanup(self):
        """Test that CREATE cannot be scheduled as cleanup."""
        with pytest.raises(ValueError):
            CleanupTask(OperationKind.CREATE, "customers", ["a"])

    def test_negative_retries_rejected(self):
        """Test that max_retries must be non-negative."""
        with pytest.raises(ValueError):
            CleanupTask(OperationKind.DELETE, "customers", ["a"], max_retries=-1)

    def test_describe(self):
        """Test the human readable summary."""
        task = CleanupTask(OperationKind.UPDATE, "routes", ["r1", "r2"])

        assert task.describe() == "update routes (2 items)"


class TestTestContext:
    """Context state, registry and immutability."""

    def test_default_registry(self, context):
        """Test that every default category starts empty."""
        assert set(context.data_registry) == {
            "customers",
            "tickets",
            "routes",
            "assignments",
            "locations",
        }
        assert context.registered_count() == 0
        assert context.state == ContextState.INITIALIZED

    def test_mode_is_immutable(self, context):
        """Test that the mode cannot change after construction."""
        with pytest.raises(ImmutableModeError):
            context.mode = TestMode.PRODUCTION

        assert context.mode == TestMode.ISOLATED

    def test_assigning_same_mode_is_allowed(self, context):
        """Test that re-assigning the current mode is a no-op."""
        context.mode = TestMode.ISOLATED

        assert context.mode == TestMode.ISOLATED

    def test_register_keeps_duplicates_and_order(self, context):
        """Test that registration appends in order, including duplicates."""
        context.register("customers", [{"id": "c1"}, {"id": "c2"}])
        context.register("customers", [{"id": "c1"}])

        assert context.data_registry["customers"] == ["c1", "c2", "c1"]

    def test_register_new_category(self, context):
        """Test that unknown categories are created on demand."""
        ids = context.register("invoices", [{"id": "i1", "name": "Invoice"}])

        assert ids == ["i1"]
        assert context.lookup("invoices", "i1") == {"id": "i1", "name": "Invoice"}

    def test_register_skips_entities_without_id(self, context):
        """Test that unidentifiable entities are skipped with a warning."""
        ids = context.register("customers", [{"email": "x@y.z"}, {"id": "c1"}])

        assert ids == ["c1"]
        assert len(context.warnings) == 1

    def test_forget(self, context):
        """Test that forgotten ids leave the registry and snapshots."""
        context.register("customers", [{"id": "c1"}, {"id": "c2"}, {"id": "c1"}])

        context.forget("customers", ["c1"])

        assert context.data_registry["customers"] == ["c2"]
        assert context.lookup("customers", "c1") is None
        assert context.is_registered("customers", "c2")

    def test_legal_transitions(self, context):
        """Test the normal lifecycle."""
        context.transition(ContextState.ACTIVE)
        context.transition(ContextState.ACTIVE)
        context.transition(ContextState.CLEANUP_IN_PROGRESS)
        context.transition(ContextState.CLOSED)

        assert context.state == ContextState.CLOSED

    def test_cleanup_straight_from_initialized(self, context):
        """Test that a context with no data can go straight to cleanup."""
        context.transition(ContextState.CLEANUP_IN_PROGRESS)

        assert context.state == ContextState.CLEANUP_IN_PROGRESS

    @pytest.mark.parametrize(
        "path",
        [
            [ContextState.CLOSED],
            [ContextState.ACTIVE, ContextState.INITIALIZED],
            [ContextState.CLEANUP_IN_PROGRESS, ContextState.ACTIVE],
            [ContextState.CLEANUP_IN_PROGRESS, ContextState.CLOSED, ContextState.ACTIVE],
        ],
    )
    def test_illegal_transitions(self, context, path):
        """Test that illegal transitions raise."""
        with pytest.raises(InvalidContextStateError):
            for state in path:
                context.transition(state)
