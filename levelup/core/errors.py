"""Application error types.

Every error carries the HTTP status it maps to and a message that is safe to
show to clients. Internal details belong in the logs, not in `message`.
"""
from fastapi import status


class AppError(Exception):
    """Base class for errors translated into JSON responses."""

    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
    default_message = "Internal server error"

    def __init__(self, message: str = None):
        self.message = message or self.default_message
        super().__init__(self.message)


class InvalidRequest(AppError):
    status_code = status.HTTP_400_BAD_REQUEST
    default_message = "Invalid request"


class Unauthenticated(AppError):
    status_code = status.HTTP_401_UNAUTHORIZED
    default_message = "Unauthorized"


class Forbidden(AppError):
    status_code = status.HTTP_403_FORBIDDEN
    default_message = "Access denied"


class NotFound(AppError):
    status_code = status.HTTP_404_NOT_FOUND
    default_message = "Not found"


class Conflict(AppError):
    status_code = status.HTTP_409_CONFLICT
    default_message = "Already exists"


class UpstreamUnavailable(AppError):
    default_message = "Failed to get AI response"


class PersistenceFailure(AppError):
    default_message = "Failed to save changes"
