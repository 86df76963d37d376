"""
HybridX API - Custom Exception Classes.

Exception hierarchy for application error handling.
"""

from typing import Optional


class HybridXException(Exception):
    """
    Base exception class for the HybridX application.

    All custom exceptions should inherit from this class.

    Attributes:
        message: Human-readable error message.
        status_code: HTTP status code for the error.
        detail: Additional error details.
    """

    def __init__(
        self,
        message: str = "An error occurred",
        status_code: int = 500,
        detail: Optional[str] = None
    ):
        """
        Initialize HybridXException.

        Args:
            message: Human-readable error message.
            status_code: HTTP status code (default 500).
            detail: Additional error details.
        """
        self.message = message
        self.status_code = status_code
        self.detail = detail or message
        super().__init__(self.message)


class NotFoundError(HybridXException):
    """
    Exception raised when a resource is not found.

    Used when:
    - User not found
    - Program not found
    - Workout session does not exist
    """

    def __init__(
        self,
        message: str = "Resource not found",
        detail: Optional[str] = None
    ):
        super().__init__(
            message=message,
            status_code=404,
            detail=detail
        )


class ValidationError(HybridXException):
    """
    Exception raised for input validation failures.

    Used when:
    - Invalid input format
    - Program given without a start date (or the reverse)
    - Business rule violations (e.g. swapping a finished workout)
    """

    def __init__(
        self,
        message: str = "Validation error",
        detail: Optional[str] = None
    ):
        super().__init__(
            message=message,
            status_code=400,
            detail=detail
        )


class ForbiddenError(HybridXException):
    """
    Exception raised for authorization failures.

    Used when:
    - User lacks permission (admin-only routes)
    - Subscription does not grant access
    """

    def __init__(
        self,
        message: str = "Access denied",
        detail: Optional[str] = None
    ):
        super().__init__(
            message=message,
            status_code=403,
            detail=detail
        )


class ConflictError(HybridXException):
    """
    Exception raised for resource conflicts.

    Used when:
    - Duplicate entry
    - A session already exists for the user and date
    """

    def __init__(
        self,
        message: str = "Resource conflict",
        detail: Optional[str] = None
    ):
        super().__init__(
            message=message,
            status_code=409,
            detail=detail
        )


class PersistenceError(HybridXException):
    """
    Exception raised when a document store read or write fails.

    Never retried inside the services; the caller decides.
    """

    def __init__(
        self,
        message: str = "Could not save your changes. Please try again.",
        detail: Optional[str] = None
    ):
        super().__init__(
            message=message,
            status_code=503,
            detail=detail
        )


class ExternalServiceError(HybridXException):
    """
    Exception raised for failures of payment, activity-sync or AI providers.

    Attributes:
        provider: Name of the failing provider ("strava", "stripe", "gemini").
        reconnect_required: True when the user must reconnect their account.
    """

    def __init__(
        self,
        provider: str,
        message: str = "External service unavailable",
        detail: Optional[str] = None,
        reconnect_required: bool = False
    ):
        self.provider = provider
        self.reconnect_required = reconnect_required
        super().__init__(
            message=message,
            status_code=502,
            detail=detail
        )
