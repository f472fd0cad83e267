"""
Engine Exceptions Module.

Centralized exception definitions with:
- Stable error codes for client handling
- HTTP status code mapping
- Structured error responses (kind + human-readable detail)

Every error is scoped to the single operation that raised it.
"""

from datetime import datetime, timezone
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
    VALIDATION_ERROR = "E1001"
    NOT_FOUND = "E1002"
    FORBIDDEN = "E1003"
    DEADLINE_EXCEEDED = "E1004"

    # Configuration errors (2xxx)
    INVALID_THRESHOLD_CONFIGURATION = "E2000"
    THRESHOLD_NOT_CONFIGURED = "E2001"

    # Concurrency errors (3xxx)
    ALREADY_COMMITTED = "E3000"
    GENERATION_EXHAUSTED = "E3001"
    CONCURRENT_MODIFICATION = "E3002"
    INVALID_TRANSITION = "E3003"


# ============================================================================
# ERROR RESPONSE MODEL
# ============================================================================


class ErrorDetail(BaseModel):
    """Detailed error information."""

    code: str
    kind: str
    message: str
    field: Optional[str] = None
    details: Optional[Dict[str, Any]] = None


class ErrorResponse(BaseModel):
    """
    Standard error response.

    All engine errors are returned in this format.
    """

    error: ErrorDetail
    request_id: Optional[str] = None
    timestamp: Optional[str] = None


# ============================================================================
# BASE EXCEPTION
# ============================================================================


class RiskRegisterError(Exception):
    """Base exception for the risk register engine."""

    kind = "InternalError"

    def __init__(
        self,
        message: str,
        code: ErrorCode = ErrorCode.INTERNAL_ERROR,
        status_code: int = 500,
        details: Optional[Dict[str, Any]] = None,
        field: Optional[str] = None,
    ):
        self.message = message
        self.code = code
        self.status_code = status_code
        self.details = details or {}
        self.field = field
        super().__init__(message)

    def to_response(self, request_id: Optional[str] = None) -> ErrorResponse:
        """Convert to error response."""
        return ErrorResponse(
            error=ErrorDetail(
                code=self.code.value,
                kind=self.kind,
                message=self.message,
                field=self.field,
                details=self.details,
            ),
            request_id=request_id,
            timestamp=datetime.now(timezone.utc).isoformat(),
        )


# ============================================================================
# SPECIFIC EXCEPTIONS
# ============================================================================


class ValidationError(RiskRegisterError):
    """Malformed or out-of-range input. Never partially applied."""

    kind = "ValidationError"

    def __init__(
        self,
        message: str,
        field: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(
            message=message,
            code=ErrorCode.VALIDATION_ERROR,
            status_code=400,
            field=field,
            details=details,
        )


class InvalidThresholdConfiguration(ValidationError):
    """Threshold zones are non-monotonic, overlapping or leave a gap."""

    kind = "InvalidThresholdConfiguration"

    def __init__(
        self,
        message: str,
        field: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message, field=field, details=details)
        self.code = ErrorCode.INVALID_THRESHOLD_CONFIGURATION
        self.status_code = 422


class ThresholdNotConfigured(RiskRegisterError):
    """A measurement arrived for an indicator with no governing tolerance."""

    kind = "ThresholdNotConfigured"

    def __init__(self, indicator_id: Any):
        super().__init__(
            message=f"No active tolerance configuration governs indicator {indicator_id}",
            code=ErrorCode.THRESHOLD_NOT_CONFIGURED,
            status_code=422,
            details={"indicator_id": str(indicator_id)},
        )


class NotFoundError(RiskRegisterError):
    """Resource not found error."""

    kind = "NotFound"

    def __init__(
        self,
        resource: str,
        identifier: Any,
        details: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(
            message=f"{resource} not found: {identifier}",
            code=ErrorCode.NOT_FOUND,
            status_code=404,
            details={"resource": resource, "identifier": str(identifier), **(details or {})},
        )


class AuthorizationError(RiskRegisterError):
    """The authorization collaborator refused the write."""

    kind = "AuthorizationError"

    def __init__(self, message: str = "Actor may not write to this organization"):
        super().__init__(
            message=message,
            code=ErrorCode.FORBIDDEN,
            status_code=403,
        )


class AlreadyCommitted(RiskRegisterError):
    """The period already has a commit. Callers treat this as a no-op."""

    kind = "AlreadyCommitted"

    def __init__(self, period: str, commit_id: Optional[Any] = None):
        details: Dict[str, Any] = {"period": period}
        if commit_id is not None:
            details["commit_id"] = str(commit_id)
        super().__init__(
            message=f"Period {period} is already committed",
            code=ErrorCode.ALREADY_COMMITTED,
            status_code=409,
            details=details,
        )


class GenerationExhausted(RiskRegisterError):
    """Identifier retry budget exceeded. Transient; retry the whole operation."""

    kind = "GenerationExhausted"

    def __init__(self, prefix: str, attempts: int):
        super().__init__(
            message=f"Could not allocate a code for prefix {prefix} after {attempts} attempts",
            code=ErrorCode.GENERATION_EXHAUSTED,
            status_code=503,
            details={"prefix": prefix, "attempts": attempts, "transient": True},
        )


class ConcurrentModification(RiskRegisterError):
    """Lost a race on a guarded state transition."""

    kind = "ConcurrentModification"

    def __init__(self, resource: str, identifier: Any, current_status: Optional[str] = None):
        if current_status:
            message = f"{resource} {identifier} was already moved to {current_status}"
        else:
            message = f"{resource} {identifier} was modified concurrently"
        super().__init__(
            message=message,
            code=ErrorCode.CONCURRENT_MODIFICATION,
            status_code=409,
            details={
                "resource": resource,
                "identifier": str(identifier),
                "current_status": current_status,
            },
        )
        self.current_status = current_status


class InvalidTransition(RiskRegisterError):
    """Lifecycle transition not allowed from the current state."""

    kind = "InvalidTransition"

    def __init__(self, resource: str, from_status: str, to_status: str):
        super().__init__(
            message=f"{resource} cannot move from {from_status} to {to_status}",
            code=ErrorCode.INVALID_TRANSITION,
            status_code=409,
            details={"from_status": from_status, "to_status": to_status},
        )


class DeadlineExceeded(RiskRegisterError):
    """Caller-supplied deadline expired. State is unchanged."""

    kind = "DeadlineExceeded"

    def __init__(self, operation: str, seconds: float):
        super().__init__(
            message=f"{operation} did not finish within {seconds}s",
            code=ErrorCode.DEADLINE_EXCEEDED,
            status_code=504,
            details={"operation": operation, "deadline_seconds": seconds},
        )
