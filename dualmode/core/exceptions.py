"""Shared exceptions module."""

from typing import TYPE_CHECKING, Optional

if TYPE_CHECKING:
    from dualmode.core.safety import SafetyValidationResult


class DualModeException(Exception):
    """Base exception for dualmode."""

    pass


class UnknownContextError(DualModeException):
    """Exception raised when an operation references a run with no active context."""

    def __init__(self, run_id: str, message: Optional[str] = "No active context found"):
        """Create a new UnknownContextError instance.

        Args:
        ----
            run_id (str): The run identifier that could not be resolved.
            message (str, optional): The error message. Has default message.

        """
        self.run_id = run_id
        self.message = message
        super().__init__(f"{message} for run ID: {run_id}")


class InvalidContextStateError(DualModeException):
    """Exception raised when a context is asked to make an illegal state transition."""

    def __init__(self, run_id: str, current: str, target: str):
        """Create a new InvalidContextStateError instance.

        Args:
        ----
            run_id (str): The run identifier of the context.
            current (str): The state the context is in.
            target (str): The state that was requested.

        """
        self.run_id = run_id
        self.current = current
        self.target = target
        super().__init__(f"Context {run_id} cannot move from {current} to {target}")


class ImmutableModeError(DualModeException):
    """Exception raised when code tries to change the mode of an initialized context."""

    def __init__(self, run_id: str):
        """Create a new ImmutableModeError instance.

        Args:
        ----
            run_id (str): The run identifier of the context.

        """
        self.run_id = run_id
        super().__init__(f"Mode of context {run_id} cannot be changed after initialization")


class ProductionSafetyError(DualModeException):
    """Exception raised by strict callers when an operation is too risky for production."""

    def __init__(self, result: "SafetyValidationResult", message: Optional[str] = None):
        """Create a new ProductionSafetyError instance.

        Args:
        ----
            result (SafetyValidationResult): The validation result that blocked the operation.
            message (str, optional): The error message. Defaults to a summary of the result.

        """
        self.result = result
        self.message = message or (
            f"Operation risk level too high: {result.risk_level.label}"
            + (f" ({'; '.join(result.issues)})" if result.issues else "")
        )
        super().__init__(self.message)
