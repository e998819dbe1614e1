from typing import Any, Dict, List, Optional


class AppException(Exception):
    # Only store/transport failures are retried; business outcomes are final for the call.
    retryable = False

    def __init__(
        self,
        message: str,
        status_code: int = 400,
        error_code: str = "BUSINESS_ERROR",
        details: Optional[Dict[str, Any]] = None
    ):
        self.message = message
        self.status_code = status_code
        self.error_code = error_code
        self.details = details
        super().__init__(self.message)


class ValidationError(AppException):
    """Eligibility or input constraints failed. Carries every human-readable reason."""
    def __init__(self, message: str, reasons: Optional[List[str]] = None, details: Optional[Dict[str, Any]] = None):
        self.reasons = list(reasons) if reasons else [message]
        super().__init__(
            message=message,
            status_code=422,
            error_code="VALIDATION_FAILED",
            details={**(details or {}), "reasons": self.reasons}
        )


class NotFoundError(AppException):
    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(
            message=message,
            status_code=404,
            error_code="NOT_FOUND",
            details=details
        )


class ConflictError(AppException):
    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None, error_code: str = "CONFLICT"):
        super().__init__(
            message=message,
            status_code=409,
            error_code=error_code,
            details=details
        )


class AlreadyProcessedError(ConflictError):
    """Wrong approver, decision already recorded, or request no longer pending."""
    def __init__(self, message: str = "Approval record not found or already processed", details: Optional[Dict[str, Any]] = None):
        super().__init__(message=message, details=details, error_code="ALREADY_PROCESSED")


class PolicyViolationError(AppException):
    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(
            message=message,
            status_code=422,
            error_code="POLICY_VIOLATION",
            details=details
        )


class EngineSystemError(AppException):
    """Unexpected store or transport failure. Named to avoid shadowing the built-in SystemError."""
    retryable = True

    def __init__(self, message: str = "Leave engine storage is unavailable", details: Optional[Dict[str, Any]] = None):
        super().__init__(
            message=message,
            status_code=503,
            error_code="SYSTEM_ERROR",
            details=details
        )
