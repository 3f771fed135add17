"""dualmode - lifecycle and cleanup safety for data created by end-to-end tests."""

from dualmode.builders import ContextAwareRequestBuilder  # noqa: F401
from dualmode.core.cleanup import CleanupError, CleanupResult, CleanupScheduler  # noqa: F401
from dualmode.core.config import ManagerOptions, SafetyConfig, Settings  # noqa: F401
from dualmode.core.context import CleanupTask, ContextState, TestContext  # noqa: F401
from dualmode.core.events import EventBus  # noqa: F401
from dualmode.core.exceptions import (  # noqa: F401
    DualModeException,
    ImmutableModeError,
    InvalidContextStateError,
    ProductionSafetyError,
    UnknownContextError,
)
from dualmode.core.manager import TestContextManager  # noqa: F401
from dualmode.core.modes import ModeDetectionResult, TestMode, detect_mode  # noqa: F401
from dualmode.core.safety import (  # noqa: F401
    OperationKind,
    ProductionSafetyValidator,
    RiskLevel,
    SafetyValidationResult,
    TestOperation,
)
from dualmode.executors import (  # noqa: F401
    BaseMutationExecutor,
    ExecutorRegistry,
    InMemoryMutationExecutor,
)

__version__ = "0.1.0"
