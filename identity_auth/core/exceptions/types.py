from fastapi import status


class AppException(Exception):
    """Base application exception."""

    def __init__(
        self,
        message: str,
        status_code: int | None = None,
        details: dict | None = None,
    ):
        self.message = message
        self.status_code = status_code or status.HTTP_500_INTERNAL_SERVER_ERROR
        self.details = details
        super().__init__(message)


# ---------------------------------------------------------------------------
# Validation
# ---------------------------------------------------------------------------


class ValidationException(AppException):
    """Exception raised for malformed input, before any state is mutated."""

    def __init__(self, message: str = "Invalid input.", details: dict | None = None):
        super().__init__(message, status.HTTP_400_BAD_REQUEST, details)


# ---------------------------------------------------------------------------
# Not found
# ---------------------------------------------------------------------------


class NotFoundException(AppException):
    """Exception raised when a resource is not found."""

    def __init__(self, message: str = "Resource not found."):
        super().__init__(message, status.HTTP_404_NOT_FOUND)


class ResidentNotFoundException(NotFoundException):
    """Exception raised when no resident record exists for a user id."""

    def __init__(self, message: str = "User not found."):
        super().__init__(message)


class TokenNotFoundException(NotFoundException):
    """Exception raised when no active partner token exists for a user/partner pair."""

    def __init__(self, message: str = "No active token found."):
        super().__init__(message)


# ---------------------------------------------------------------------------
# Policy
# ---------------------------------------------------------------------------


class PolicyException(AppException):
    """Exception raised when a policy forbids the requested operation."""

    def __init__(self, message: str = "Operation not permitted by policy."):
        super().__init__(message, status.HTTP_403_FORBIDDEN)


class InvalidPartnerException(PolicyException):
    """Exception raised when a partner is unknown or not active."""

    def __init__(self, message: str = "Invalid or inactive partner."):
        super().__init__(message)


class AuthenticationLockedException(PolicyException):
    """Exception raised when an authentication method is locked for a user."""

    def __init__(self, message: str = "Authentication method is locked."):
        super().__init__(message)


# ---------------------------------------------------------------------------
# Infrastructure
# ---------------------------------------------------------------------------


class InfrastructureException(AppException):
    """Exception raised when a store or collaborator is unavailable.

    Callers may retry these; they are never an authentication verdict.
    """

    def __init__(
        self,
        message: str = "A dependency is unavailable.",
        status_code: int = status.HTTP_503_SERVICE_UNAVAILABLE,
        details: dict | None = None,
    ):
        super().__init__(message, status_code, details)


class DatabaseException(InfrastructureException):
    """Exception raised for database-related errors."""

    def __init__(
        self,
        message: str = "A database error occurred.",
        details: dict | None = None,
    ):
        super().__init__(message, status.HTTP_500_INTERNAL_SERVER_ERROR, details)


class NotificationException(InfrastructureException):
    """Exception raised when the notifier fails to dispatch a code."""

    def __init__(
        self,
        message: str = "Failed to dispatch notification.",
        details: dict | None = None,
    ):
        super().__init__(message, status.HTTP_502_BAD_GATEWAY, details)


class ExternalServiceException(InfrastructureException):
    """Exception raised when an external verifier or data service fails."""

    def __init__(
        self,
        message: str = "An external service error occurred.",
        details: dict | None = None,
    ):
        super().__init__(message, status.HTTP_502_BAD_GATEWAY, details)


class InfrastructureTimeoutException(InfrastructureException):
    """Exception raised when a store or collaborator call exceeds its timeout."""

    def __init__(
        self,
        message: str = "Operation timed out.",
        details: dict | None = None,
    ):
        super().__init__(message, status.HTTP_504_GATEWAY_TIMEOUT, details)


__all__ = [
    "AppException",
    "ValidationException",
    "NotFoundException",
    "ResidentNotFoundException",
    "TokenNotFoundException",
    "PolicyException",
    "InvalidPartnerException",
    "AuthenticationLockedException",
    "InfrastructureException",
    "DatabaseException",
    "NotificationException",
    "ExternalServiceException",
    "InfrastructureTimeoutException",
]
