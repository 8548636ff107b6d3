"""
Application errors.

Every error the API returns is an `AppException`; the handler in `main`
renders `to_dict()` as `{"error", "code", "details"}` with `status_code`.
"""
from typing import Any, Dict, Optional


class AppException(Exception):
    status_code = 500
    error_code = "INTERNAL_ERROR"

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None) -> None:
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def to_dict(self) -> Dict[str, Any]:
        return {"error": self.message, "code": self.error_code, "details": self.details}


class InvalidRequestError(AppException):
    """Rejected before any collaborator is read."""

    status_code = 400
    error_code = "INVALID_REQUEST"


class DependencyUnavailableError(AppException):
    """The catalog read failed, timed out or was short-circuited."""

    status_code = 503
    error_code = "DEPENDENCY_UNAVAILABLE"

    def __init__(self, dependency: str, reason: str = "unavailable") -> None:
        super().__init__(
            f"Dependency unavailable: {dependency} ({reason})",
            details={"dependency": dependency, "reason": reason},
        )
        self.dependency = dependency
        self.reason = reason


class RateLimitError(AppException):
    status_code = 429
    error_code = "RATE_LIMIT_EXCEEDED"

    def __init__(self, retry_after: int = 1) -> None:
        super().__init__(
            "Too many requests. Please slow down.",
            details={"retry_after_seconds": retry_after},
        )
        self.retry_after = retry_after


class CircuitBreakerOpenError(AppException):
    status_code = 503
    error_code = "CIRCUIT_BREAKER_OPEN"

    def __init__(self, service_name: str) -> None:
        super().__init__(f"Circuit breaker open for: {service_name}", details={"service": service_name})
        self.service_name = service_name
