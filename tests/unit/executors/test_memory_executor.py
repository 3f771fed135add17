"""Unit tests for the in-memory mutation executor."""

import pytest

from dualmode.core.safety import OperationKind
from dualmode.executors.memory import InMemoryMutationExecutor


@pytest.fixture
def seeded():
    """Executor holding two customers."""
    executor = InMemoryMutationExecutor()
    executor.seed(
        "customers",
        [{"id": "c1", "name": "Bugs Bunny"}, {"id": "c2", "name": "Daffy Duck"}],
    )
    return executor


@pytest.mark.asyncio
class TestInMemoryMutationExecutor:
    """Compensating operations against the in-memory store."""

    async def test_delete_is_idempotent(self, seeded):
        """Test that deleting twice succeeds both times."""
        assert await seeded.apply(OperationKind.DELETE, "customers", ["c1"])
        assert await seeded.apply(OperationKind.DELETE, "customers", ["c1", "missing"])

        assert not seeded.exists("customers", "c1")
        assert seeded.exists("customers", "c2")

    async def test_update_reverts_to_original(self, seeded):
        """Test that UPDATE restores the seeded version of a modified entity."""
        seeded.modify("customers", "c1", name="Changed")

        await seeded.apply(OperationKind.UPDATE, "customers", ["c1"])

        assert seeded.get("customers", "c1")["name"] == "Bugs Bunny"

    async def test_update_does_not_resurrect(self, seeded):
        """Test that UPDATE leaves deleted entities deleted."""
        await seeded.apply(OperationKind.DELETE, "customers", ["c1"])

        await seeded.apply(OperationKind.UPDATE, "customers", ["c1"])

        assert not seeded.exists("customers", "c1")

    async def test_restore_brings_back_deleted(self, seeded):
        """Test that RESTORE re-inserts the original entity."""
        await seeded.apply(OperationKind.DELETE, "customers", ["c2"])

        assert await seeded.apply(OperationKind.RESTORE, "customers", ["c2"])

        assert seeded.get("customers", "c2") == {"id": "c2", "name": "Daffy Duck"}

    async def test_restore_without_original_is_skipped(self, seeded):
        """Test that unknown ids are skipped rather than failing the call."""
        assert await seeded.apply(OperationKind.RESTORE, "customers", ["ghost"])
        assert not seeded.exists("customers", "ghost")

    async def test_fail_on_limited_times(self, seeded):
        """Test that a limited failure plan expires."""
        seeded.fail_on("customers", times=2)

        assert not await seeded.apply(OperationKind.DELETE, "customers", ["c1"])
        assert not await seeded.apply(OperationKind.DELETE, "customers", ["c1"])
        assert await seeded.apply(OperationKind.DELETE, "customers", ["c1"])
        assert len(seeded.calls) == 3

    async def test_fail_on_with_error(self, seeded):
        """Test that failure plans can raise."""
        seeded.fail_on("customers", error="timeout")

        with pytest.raises(RuntimeError, match="timeout"):
            await seeded.apply(OperationKind.DELETE, "customers", ["c1"])

        assert seeded.exists("customers", "c1")

    async def test_create_is_unsupported(self, seeded):
        """Test that CREATE is not a compensating operation."""
        with pytest.raises(ValueError):
            await seeded.apply(OperationKind.CREATE, "customers", ["c3"])


class TestSeed:
    """Seeding the store."""

    def test_seed_returns_ids(self):
        """Test that seeding returns the resolved ids."""
        executor = InMemoryMutationExecutor()

        assert executor.seed("routes", [{"id": 1}, {"name": "North"}]) == ["1", "North"]

    def test_seed_copies_entities(self):
        """Test that later caller mutations do not leak into the store."""
        executor = InMemoryMutationExecutor()
        entity = {"id": "c1", "name": "Porky Pig"}
        executor.seed("customers", [entity])

        entity["name"] = "Changed"

        assert executor.get("customers", "c1")["name"] == "Porky Pig"

    def test_seed_requires_id(self):
        """Test that entities without identity are rejected."""
        with pytest.raises(ValueError):
            InMemoryMutationExecutor().seed("customers", [{"email": "x@y.z"}])
