from datetime import datetime, timezone
from typing import Any, Dict, Optional


class ExplorerException(Exception):
    """Base exception for all explorer errors. Carries the HTTP status and a stable error category."""
    status_code = 500
    error = "internal_error"

    def __init__(self, message: str = "Internal server error"):
        self.message = message
        super().__init__(message)

    def extra(self) -> Dict[str, Any]:
        """Additional fields merged into the error response body."""
        return {}


class InvalidInputException(ExplorerException):
    """Raised when a required request input is missing or malformed."""
    status_code = 400
    error = "validation_error"


class RateLimitExceededException(ExplorerException):
    """Raised when the GitHub REST rate limit is hit."""
    status_code = 429
    error = "rate_limit_exceeded"

    def __init__(self, reset_at: Optional[str] = None):
        self.reset_at = reset_at
        super().__init__(
            "GitHub API rate limit reached (60 requests/hour for unauthenticated requests). "
            f"Rate limit resets at {self.reset_time}."
        )

    @property
    def reset_time(self) -> str:
        if not self.reset_at:
            return "unknown"
        try:
            reset = datetime.fromtimestamp(int(self.reset_at), tz=timezone.utc)
        except (TypeError, ValueError, OverflowError, OSError):
            return "unknown"
        return reset.strftime("%H:%M:%S UTC")

    def extra(self) -> Dict[str, Any]:
        return {
            "retry_after": self.reset_at,
            "reset_time": self.reset_time,
            "suggestion": "Try searching your stored repositories or wait for the rate limit to reset.",
        }


class InvalidSearchQueryException(ExplorerException):
    """Raised when GitHub rejects the shape of a search query (HTTP 422)."""
    status_code = 400
    error = "invalid_search_query"

    def __init__(self, message: str = "The search query is malformed or invalid. Please check your search terms."):
        super().__init__(message)


class UpstreamAuthException(ExplorerException):
    """Raised when GitHub answers 401. The service calls GitHub without credentials, so this is a misconfiguration."""
    error = "upstream_auth_error"

    def __init__(self, message: str = "GitHub API authentication failed. The service is configured to work without authentication."):
        super().__init__(message)


class UpstreamTimeoutException(ExplorerException):
    """Raised when a GitHub request times out or the connection fails."""
    status_code = 504
    error = "upstream_timeout"

    def __init__(self, message: str = "GitHub API request timed out. Please try again."):
        super().__init__(message)


class UpstreamException(ExplorerException):
    """Raised for any other GitHub failure."""
    error = "upstream_error"

    def __init__(self, message: str = "Failed to fetch repositories from GitHub. Please try again later.", status: Optional[int] = None):
        self.status = status
        super().__init__(message)


class DatabaseException(ExplorerException):
    """Raised when a database operation fails. The message is safe to return to callers."""
    error = "database_error"

    def __init__(self, message: str = "Database error"):
        super().__init__(message)


class RepositoryNotFoundException(ExplorerException):
    """Raised when a stored repository does not exist."""
    status_code = 404
    error = "not_found"

    def __init__(self, row_id: int):
        self.row_id = row_id
        super().__init__("The specified repository does not exist")


class ReconciliationException(ExplorerException):
    """Raised when one or more records of a batch could not be persisted."""
    error = "database_error"

    def __init__(self, written: int, failed: int):
        self.written = written
        self.failed = failed
        super().__init__(f"Failed to persist {failed} repositories ({written} written).")
