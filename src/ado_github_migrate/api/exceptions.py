"""Remote API exceptions."""

from typing import Any, Optional


class APIError(Exception):
    """Base exception for Azure DevOps and GitHub API errors."""

    def __init__(
        self,
        message: str,
        status_code: Optional[int] = None,
        response_data: Optional[Any] = None,
    ):
        """Initialize API error.

        Args:
            message: Error message
            status_code: HTTP status code
            response_data: Response data from API
        """
        super().__init__(message)
        self.status_code = status_code
        self.response_data = response_data


class AuthenticationError(APIError):
    """Authentication error (bad or expired token)."""

    pass


class ForbiddenError(APIError):
    """Permission denied error."""

    pass


class RateLimitError(APIError):
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


class NotFoundError(APIError):
    """Resource not found error."""

    pass


class GraphQLError(APIError):
    """GraphQL response carried an ``errors`` array."""

    def __init__(self, message: str, errors: Optional[list] = None, **kwargs):
        super().__init__(message, **kwargs)
        self.errors = errors or []
