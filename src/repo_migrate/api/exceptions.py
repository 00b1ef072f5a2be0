"""Remote service API exceptions."""

from typing import Optional


class APIError(Exception):
    """Base exception for remote service API errors."""

    def __init__(
        self,
        message: str,
        status_code: Optional[int] = None,
        response_data: Optional[dict] = None,
        service: Optional[str] = None,
    ):
        """Initialize API error.

        Args:
            message: Error message
            status_code: HTTP status code
            response_data: Response data from API
            service: Name of the service that produced the error
        """
        super().__init__(message)
        self.status_code = status_code
        self.response_data = response_data
        self.service = service


class AuthenticationError(APIError):
    """Credentials were rejected by the service. Never retried."""

    pass


class NotFoundError(APIError):
    """Resource not found error."""

    pass


class AlreadyExistsError(APIError):
    """The resource to be created already exists."""

    pass


class InvalidBranchError(APIError):
    """The requested branch does not exist in the repository."""

    pass


class ValidationError(APIError):
    """The service rejected the request payload."""

    pass


class TransientAPIError(APIError):
    """Network failure, timeout or server error worth retrying."""

    pass


class RateLimitError(TransientAPIError):
    """Rate limit exceeded error."""

    def __init__(self, message: str, retry_after: int = 60, **kwargs):
        """Initialize rate limit error.

        Args:
            message: Error message
            retry_after: Seconds to wait before retry
            **kwargs: Additional arguments for base class
        """
        super().__init__(message, **kwargs)
        self.retry_after = retry_after
