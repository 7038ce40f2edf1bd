from typing import Any, Optional


class DashboardError(Exception):
    """Base error for production dashboard operations."""

    status_code: int = 500

    def __init__(self, message: str, error: Optional[Any] = None):
        super().__init__(message)
        self.message = message
        self.error = error if error is not None else message


class NotFoundError(DashboardError):
    """Dashboard, machine or alert does not exist."""
    status_code = 404


class AlreadyExistsError(DashboardError):
    """A dashboard already exists for the company."""
    status_code = 400


class DashboardValidationError(DashboardError):
    status_code = 422


class InternalError(DashboardError):
    """Unexpected persistence failure."""
    status_code = 500
