"""
Engine Exceptions Module.

Centralized exception definitions with:
- Error codes for caller-side handling
- Structured error responses for callers that serialise failures
- Detailed error context (slot, alternatives, offending value)

Informational conditions (weak mass, Dirac mass, differing ranks) are
NOT exceptions. They are returned alongside results as status values.
"""

from enum import Enum
from typing import Any, Dict, Optional

from pydantic import BaseModel


# ============================================================================
# ERROR CODES
# ============================================================================


class ErrorCode(str, Enum):
    """Engine error codes."""

    # General errors (1xxx)
    INTERNAL_ERROR = "E1000"
    INPUT_ERROR = "E1001"
    WRONG_METHOD = "E1002"
    WRONG_TOLERANCE = "E1003"

    # Evaluation state errors (2xxx)
    OUTPUT_NOT_READY = "E2000"
    ENGINE_BUSY = "E2001"
    USER_ABORT = "E2002"

    # Lookup errors (4xxx)
    ALTERNATIVE_UNKNOWN = "E4000"
    CRITERION_UNKNOWN = "E4001"
    TOO_FEW_ALTERNATIVES = "E4002"

    # Kernel errors (5xxx)
    KERNEL_ERROR = "E5000"


# ============================================================================
# ERROR RESPONSE MODEL
# ============================================================================


class ErrorDetail(BaseModel):
    """Detailed error information."""

    code: str
    message: str
    details: Optional[Dict[str, Any]] = None


class ErrorResponse(BaseModel):
    """Standard error envelope for serialised failures."""

    error: ErrorDetail
    operation: Optional[str] = None


# ============================================================================
# BASE EXCEPTION
# ============================================================================


class BeliefCastError(Exception):
    """Base exception for the belief engine."""

    def __init__(
        self,
        message: str,
        code: ErrorCode = ErrorCode.INTERNAL_ERROR,
        details: Optional[Dict[str, Any]] = None,
    ):
        self.message = message
        self.code = code
        self.details = details or {}
        super().__init__(message)

    def to_response(self, operation: Optional[str] = None) -> ErrorResponse:
        """Convert to error response."""
        return ErrorResponse(
            error=ErrorDetail(
                code=self.code.value,
                message=self.message,
                details=self.details,
            ),
            operation=operation,
        )


# ============================================================================
# PRECONDITION FAILURES
# ============================================================================


class InputError(BeliefCastError):
    """A parameter is outside its admissible range."""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message=message, code=ErrorCode.INPUT_ERROR, details=details)


class WrongMethodError(BeliefCastError):
    """Unknown aggregation rule or expansion mode."""

    def __init__(self, method: Any):
        super().__init__(
            message=f"Unknown evaluation method: {method!r}",
            code=ErrorCode.WRONG_METHOD,
            details={"method": str(method)},
        )


class WrongToleranceError(BeliefCastError):
    """Ranking tolerance outside [0, 0.1]."""

    def __init__(self, name: str, value: float):
        super().__init__(
            message=f"{name} must be within [0, 0.1], got {value}",
            code=ErrorCode.WRONG_TOLERANCE,
            details={"tolerance": name, "value": value},
        )


class OutputNotReadyError(BeliefCastError):
    """No valid evaluation is cached for the requested slot."""

    def __init__(self, slot: int, reason: str = "not evaluated"):
        super().__init__(
            message=f"No valid evaluation for slot {slot}: {reason}",
            code=ErrorCode.OUTPUT_NOT_READY,
            details={"slot": slot, "reason": reason},
        )


class UnknownAlternativeError(BeliefCastError):
    """Alternative number outside 1..n_alts."""

    def __init__(self, alternative: int, n_alts: int):
        super().__init__(
            message=f"Alternative not found: {alternative} (have {n_alts})",
            code=ErrorCode.ALTERNATIVE_UNKNOWN,
            details={"alternative": alternative, "n_alts": n_alts},
        )


class UnknownCriterionError(BeliefCastError):
    """Slot does not name a criterion or aggregation node."""

    def __init__(self, slot: int):
        super().__init__(
            message=f"Criterion not found: {slot}",
            code=ErrorCode.CRITERION_UNKNOWN,
            details={"slot": slot},
        )


class TooFewAlternativesError(BeliefCastError):
    """Operation needs more alternatives than the kernel reports."""

    def __init__(self, required: int, n_alts: int):
        super().__init__(
            message=f"At least {required} alternatives required, have {n_alts}",
            code=ErrorCode.TOO_FEW_ALTERNATIVES,
            details={"required": required, "n_alts": n_alts},
        )


# ============================================================================
# EXECUTION STATE FAILURES
# ============================================================================


class EngineBusyError(BeliefCastError):
    """A public entry point was called while another one is active."""

    def __init__(self, requested: str, active: str):
        super().__init__(
            message=f"Engine busy in {active}, rejected {requested}",
            code=ErrorCode.ENGINE_BUSY,
            details={"requested": requested, "active": active},
        )


class UserAbortError(BeliefCastError):
    """An abort request was observed between alternatives."""

    def __init__(self, operation: str):
        super().__init__(
            message=f"Aborted by user: {operation}",
            code=ErrorCode.USER_ABORT,
            details={"operation": operation},
        )


class KernelError(BeliefCastError):
    """The external consistency kernel failed to deliver a result."""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message=message, code=ErrorCode.KERNEL_ERROR, details=details)


class InternalEngineError(BeliefCastError):
    """A bounded loop failed to terminate and no fallback exists."""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message=message, code=ErrorCode.INTERNAL_ERROR, details=details)
