"""Common test fixtures and configuration for pytest.

Fixtures here are shared by all unit tests: settings isolated from the real
process environment, an in-memory executor, and a context manager wired to both.
"""

import pytest

from dualmode.core.config import ManagerOptions, SafetyConfig, Settings
from dualmode.core.events import EventBus
from dualmode.core.manager import TestContextManager
from dualmode.core.modes import TestMode
from dualmode.core.safety import ProductionSafetyValidator
from dualmode.executors.memory import InMemoryMutationExecutor
from dualmode.executors.registry import ExecutorRegistry

ENV_VARS = (
    "TEST_MODE",
    "NODE_ENV",
    "API_BASE_URL",
    "DB_CONFIG",
    "LOG_LEVEL",
    "CLEANUP_MAX_RETRIES",
    "CLEANUP_RETRY_DELAY",
    "SAFETY_CONFIG_PATH",
)


@pytest.fixture(autouse=True)
def clean_environment(monkeypatch):
    """Keep the host environment from leaking into mode detection."""
    for name in ENV_VARS:
        monkeypatch.delenv(name, raising=False)


@pytest.fixture
def settings():
    """Settings with no mode hints and no .env file."""
    return Settings(_env_file=None)


@pytest.fixture
def production_settings():
    """Settings describing a fully configured production environment."""
    return Settings(
        _env_file=None,
        API_BASE_URL="https://hwpc.example.com/api",
        DB_CONFIG="Server=db;Database=hwpc;User Id=qa;Password=secret",
    )


@pytest.fixture
def safety_config():
    """Default marker configuration."""
    return SafetyConfig()


@pytest.fixture
def validator(safety_config):
    """Production safety validator with default markers."""
    return ProductionSafetyValidator(safety_config)


@pytest.fixture
def executor():
    """In-memory executor shared by every mode."""
    return InMemoryMutationExecutor()


@pytest.fixture
def executors(executor):
    """Registry routing every mode to the in-memory executor."""
    return ExecutorRegistry(
        {
            TestMode.ISOLATED: executor,
            TestMode.PRODUCTION: executor,
            TestMode.DUAL: executor,
        }
    )


@pytest.fixture
def event_bus():
    """Fresh event bus."""
    return EventBus()


@pytest.fixture
def manager(settings, safety_config, executors, event_bus):
    """Context manager wired to the in-memory executor."""
    return TestContextManager(
        settings=settings,
        options=ManagerOptions(),
        safety_config=safety_config,
        executors=executors,
        event_bus=event_bus,
    )


@pytest.fixture
def production_manager(production_settings, safety_config, executors, event_bus):
    """Context manager with a configured production environment."""
    return TestContextManager(
        settings=production_settings,
        safety_config=safety_config,
        executors=executors,
        event_bus=event_bus,
    )


@pytest.fixture
def looney_customer():
    """A production-safe synthetic customer."""
    return {
        "id": "cust_1_looneyTunesTest",
        "name": "Bugs Bunny - looneyTunesTest",
        "email": "bugs.bunny@looneytunestest.com",
    }
