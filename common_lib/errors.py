"""공통 에러 클래스 정의(Common error classes)."""
from __future__ import annotations

from enum import Enum
from typing import Any, Dict, Optional


class SyncError(Exception):
    """동기화 엔진 기본 예외(Base exception for the synchronization engine)."""


class FetchErrorKind(str, Enum):
    """피드 조회 실패 유형(Classification of feed fetch failures)."""

    TRANSIENT_NETWORK = "transient_network"
    RATE_LIMIT = "rate_limit"
    OTHER = "other"


class FetchError(SyncError):
    """
    피드 요청 실패(Raised when a feed request cannot be completed).

    TRANSIENT_NETWORK is raised once bounded network retries are exhausted,
    RATE_LIMIT only when a rate-limit waiting cap is configured and exceeded,
    OTHER for every non-retryable HTTP or decoding error.
    """

    def __init__(
        self,
        kind: FetchErrorKind,
        message: str,
        status_code: Optional[int] = None,
        params: Optional[Dict[str, Any]] = None,
    ) -> None:
        self.kind = kind
        self.status_code = status_code
        self.message = message
        self.params = dict(params or {})

        msg = f"Feed fetch failed ({kind.value})"
        if status_code:
            msg += f" (HTTP {status_code})"
        msg += f": {message}"
        super().__init__(msg)


class RateLimitedError(SyncError):
    """HTTP 429 수신 신호(Internal signal that the feed answered HTTP 429)."""

    def __init__(self, retry_after: Optional[str] = None) -> None:
        self.retry_after = retry_after
        super().__init__("Feed rate limit hit (HTTP 429)")


class StorageUnavailableError(SyncError):
    """저장소 연결 불가(Storage is unreachable at cycle start)."""

    def __init__(self, reason: str) -> None:
        self.reason = reason
        super().__init__(f"Storage unavailable: {reason}")


class AppException(Exception):
    """애플리케이션 기본 예외 클래스(Base application exception)."""

    def __init__(
        self,
        status_code: int,
        error_code: str,
        message: str,
        details: Optional[Dict[str, Any]] = None,
    ) -> None:
        """Initialize exception with structured error information.

        Args:
            status_code: HTTP status code (e.g., 404, 503, 400)
            error_code: Machine-readable error code (e.g., "RESOURCE_NOT_FOUND")
            message: Human-readable error message
            details: Additional error context (optional)
        """
        self.status_code = status_code
        self.error_code = error_code
        self.message = message
        self.details = details or {}
        super().__init__(self.message)

    def to_dict(self) -> Dict[str, Any]:
        """Convert exception to dictionary for JSON response."""
        response: Dict[str, Any] = {
            "error": {
                "code": self.error_code,
                "message": self.message,
            }
        }
        if self.details:
            response["error"]["details"] = self.details
        return response


class ResourceNotFound(AppException):
    """자원을 찾을 수 없음(Resource not found - 404)."""

    def __init__(
        self,
        resource_type: str,
        identifier: str,
        details: Optional[Dict[str, Any]] = None,
    ) -> None:
        message = f"{resource_type} '{identifier}' not found."
        super().__init__(
            status_code=404,
            error_code="RESOURCE_NOT_FOUND",
            message=message,
            details=details or {"resource_type": resource_type, "identifier": identifier},
        )


class ExternalServiceError(AppException):
    """외부 서비스 오류(External service unavailable - 503)."""

    def __init__(
        self,
        service_name: str,
        reason: str,
        details: Optional[Dict[str, Any]] = None,
    ) -> None:
        message = f"{service_name} is currently unavailable: {reason}"
        super().__init__(
            status_code=503,
            error_code="EXTERNAL_SERVICE_ERROR",
            message=message,
            details=details or {"service_name": service_name, "reason": reason},
        )


class InvalidInputError(AppException):
    """유효하지 않은 입력(Invalid input - 400)."""

    def __init__(
        self,
        field: str,
        reason: str,
        details: Optional[Dict[str, Any]] = None,
    ) -> None:
        message = f"Invalid input for '{field}': {reason}"
        super().__init__(
            status_code=400,
            error_code="INVALID_INPUT",
            message=message,
            details=details or {"field": field, "reason": reason},
        )
