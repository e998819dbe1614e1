import enum
from typing import Any, Dict, Generic, List, Optional, TypeVar
from pydantic import BaseModel, ConfigDict, Field
from datetime import datetime, timezone

from leave_engine.core.exceptions import (
    AppException,
    ConflictError,
    EngineSystemError,
    NotFoundError,
    PolicyViolationError,
    ValidationError,
)

T = TypeVar("T")


class ErrorKind(str, enum.Enum):
    VALIDATION = "VALIDATION"
    NOT_FOUND = "NOT_FOUND"
    CONFLICT = "CONFLICT"
    POLICY_VIOLATION = "POLICY_VIOLATION"
    SYSTEM = "SYSTEM"


def error_kind_for(exc: Exception) -> ErrorKind:
    if isinstance(exc, ValidationError):
        return ErrorKind.VALIDATION
    if isinstance(exc, NotFoundError):
        return ErrorKind.NOT_FOUND
    if isinstance(exc, ConflictError):
        return ErrorKind.CONFLICT
    if isinstance(exc, PolicyViolationError):
        return ErrorKind.POLICY_VIOLATION
    return ErrorKind.SYSTEM


class ErrorInfo(BaseModel):
    kind: ErrorKind
    code: str
    message: str
    reasons: List[str] = []
    retryable: bool = False
    details: Optional[Dict[str, Any]] = None

    def to_exception(self) -> AppException:
        """Rebuild the exception this error was recorded from, code included."""
        if self.kind == ErrorKind.VALIDATION:
            exc = ValidationError(self.message, reasons=self.reasons, details=self.details)
        elif self.kind == ErrorKind.NOT_FOUND:
            exc = NotFoundError(self.message, details=self.details)
        elif self.kind == ErrorKind.CONFLICT:
            exc = ConflictError(self.message, details=self.details, error_code=self.code)
        elif self.kind == ErrorKind.POLICY_VIOLATION:
            exc = PolicyViolationError(self.message, details=self.details)
        else:
            exc = EngineSystemError(self.message, details=self.details)
        exc.error_code = self.code
        return exc


class Result(BaseModel, Generic[T]):
    """
    Explicit outcome of an engine operation.
    Callers branch on `error.kind` instead of inspecting exception types.
    """
    model_config = ConfigDict(arbitrary_types_allowed=True)

    success: bool
    data: Optional[T] = None
    error: Optional[ErrorInfo] = None
    warnings: List[str] = []
    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary with JSON-serializable values."""
        return self.model_dump(mode="json")

    @classmethod
    def ok(cls, data: T, warnings: Optional[List[str]] = None) -> "Result[T]":
        return cls(success=True, data=data, warnings=warnings or [])

    @classmethod
    def fail(cls, exc: Exception) -> "Result[T]":
        if isinstance(exc, AppException):
            info = ErrorInfo(
                kind=error_kind_for(exc),
                code=exc.error_code,
                message=exc.message,
                reasons=getattr(exc, "reasons", []),
                retryable=exc.retryable,
                details=exc.details,
            )
        else:
            info = ErrorInfo(
                kind=ErrorKind.SYSTEM,
                code="SYSTEM_ERROR",
                message=str(exc) or exc.__class__.__name__,
                retryable=True,
            )
        return cls(success=False, error=info)
