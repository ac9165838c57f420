from __future__ import annotations

from typing import Any, Dict, Optional

from fastapi import status


class ApiError(Exception):
    """
    Domain error carrying an HTTP status and a machine-readable code.

    Raised by services and dependencies; rendered into the ErrorResponse envelope by the
    handlers registered in src.api.main.
    """

    def __init__(
        self,
        message: str,
        status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR,
        code: str = "INTERNAL_ERROR",
        details: Any = None,
        headers: Optional[Dict[str, str]] = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.status_code = status_code
        self.code = code
        self.details = details
        self.headers = headers


class ErrorResponses:
    """Factory for the API's standard errors."""

    # PUBLIC_INTERFACE
    @staticmethod
    def bad_request(message: str, code: str = "BAD_REQUEST", details: Any = None) -> ApiError:
        return ApiError(message, status.HTTP_400_BAD_REQUEST, code, details)

    # PUBLIC_INTERFACE
    @staticmethod
    def validation(message: str = "Invalid request data", details: Any = None) -> ApiError:
        return ApiError(message, status.HTTP_400_BAD_REQUEST, "VALIDATION_ERROR", details)

    # PUBLIC_INTERFACE
    @staticmethod
    def unauthorized(message: str = "Unauthorized", code: str = "UNAUTHORIZED") -> ApiError:
        return ApiError(
            message,
            status.HTTP_401_UNAUTHORIZED,
            code,
            headers={"WWW-Authenticate": "Bearer"},
        )

    # PUBLIC_INTERFACE
    @staticmethod
    def forbidden(message: str = "Forbidden", code: str = "FORBIDDEN") -> ApiError:
        return ApiError(message, status.HTTP_403_FORBIDDEN, code)

    # PUBLIC_INTERFACE
    @staticmethod
    def not_found(message: str = "Not found", code: str = "NOT_FOUND") -> ApiError:
        return ApiError(message, status.HTTP_404_NOT_FOUND, code)

    # PUBLIC_INTERFACE
    @staticmethod
    def conflict(message: str, code: str = "CONFLICT") -> ApiError:
        return ApiError(message, status.HTTP_409_CONFLICT, code)

    # PUBLIC_INTERFACE
    @staticmethod
    def too_many_requests(
        message: str = "Too many requests", headers: Optional[Dict[str, str]] = None
    ) -> ApiError:
        return ApiError(message, status.HTTP_429_TOO_MANY_REQUESTS, "RATE_LIMITED", headers=headers)

    # PUBLIC_INTERFACE
    @staticmethod
    def service_unavailable(message: str = "Service unavailable", code: str = "SERVICE_UNAVAILABLE") -> ApiError:
        return ApiError(message, status.HTTP_503_SERVICE_UNAVAILABLE, code)

    # PUBLIC_INTERFACE
    @staticmethod
    def internal(message: str = "Internal server error", details: Any = None) -> ApiError:
        return ApiError(message or "Internal server error", status.HTTP_500_INTERNAL_SERVER_ERROR, "INTERNAL_ERROR", details)
