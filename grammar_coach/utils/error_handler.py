"""Custom exception classes for the application."""

from typing import Iterable


class BaseCoachException(Exception):
    """Base exception for all application-specific errors."""
    pass

class ConfigError(BaseCoachException):
    """Error related to configuration loading or values."""
    pass

class AuthenticationError(BaseCoachException):
    """Error building service-account credentials or when a provider rejects them."""
    pass

class APIError(BaseCoachException):
    """Error interacting with an external API (Sheets, LINE, SMTP relay)."""
    def __init__(self, message: str, status_code: int | None = None, service: str | None = None):
        super().__init__(message)
        self.status_code = status_code
        self.service = service

    def __str__(self) -> str:
        base = super().__str__()
        details = []
        if self.service:
            details.append(f"Service: {self.service}")
        if self.status_code:
            details.append(f"Status Code: {self.status_code}")
        if details:
            return f"{base} ({', '.join(details)})"
        return base

class GradingError(BaseCoachException):
    """Error during feedback generation. Always fatal for a submission."""
    pass

class SubmissionValidationError(BaseCoachException):
    """A submitted form body failed validation before any external call."""
    def __init__(self, message: str, fields: Iterable[str] = ()):
        super().__init__(message)
        self.fields = tuple(fields)

class RecordNotFoundError(BaseCoachException):
    """No stored record matches the requested id."""
    pass

class UserCancelledError(BaseCoachException):
    """Error raised when the user cancels an operation at the terminal."""
    pass
