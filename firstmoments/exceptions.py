"""
Custom exceptions for the First Moments API.
Each exception carries the HTTP status it is rendered with.
"""
from typing import Any, Optional


class FirstMomentsException(Exception):
    """Base exception for the application"""
    status_code = 500

    def __init__(self, message: str, errors: Optional[Any] = None):
        self.message = message
        self.errors = errors
        super().__init__(message)


class ValidationException(FirstMomentsException):
    """Raised when request data fails a business rule"""
    status_code = 400


class ConflictException(FirstMomentsException):
    """Raised when a unique value is already taken"""
    status_code = 400

    def __init__(self, field: str, message: Optional[str] = None):
        self.field = field
        super().__init__(message or f"{field} already exists")


class AuthenticationException(FirstMomentsException):
    """Raised when credentials or tokens are missing or invalid"""
    status_code = 401


class PermissionDeniedException(FirstMomentsException):
    """Raised when the caller may not act on a resource"""
    status_code = 403


class NotFoundException(FirstMomentsException):
    """Raised when a resource does not exist"""
    status_code = 404

    def __init__(self, resource: str, resource_id: Optional[Any] = None):
        self.resource = resource
        self.resource_id = resource_id
        super().__init__(f"{resource} not found")


class AccountLockedException(FirstMomentsException):
    """Raised when an account is locked after repeated failed logins"""
    status_code = 423

    def __init__(self, minutes_remaining: int):
        self.minutes_remaining = minutes_remaining
        super().__init__(
            f"Account is locked, try again in {minutes_remaining} minutes"
        )


class RateLimitException(FirstMomentsException):
    """Raised when an action is repeated too quickly"""
    status_code = 429


class EmailDeliveryException(FirstMomentsException):
    """Raised when an email cannot be sent"""
    status_code = 500

    def __init__(self, details: str):
        self.details = details
        super().__init__(f"Email delivery failed: {details}")
