from fastapi import status


class AppError(Exception):
    """Base class for errors the API layer maps to an HTTP response."""

    status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR

    def __init__(self, message: str, *, detail=None):
        super().__init__(message)
        self.message = message
        # optional structured payload returned instead of the message
        self.detail = detail

    def to_detail(self):
        return self.detail if self.detail is not None else self.message


class NotFound(AppError):
    status_code = status.HTTP_404_NOT_FOUND


class InvalidInput(AppError):
    status_code = status.HTTP_400_BAD_REQUEST


class Unauthorized(AppError):
    status_code = status.HTTP_403_FORBIDDEN


class Conflict(AppError):
    status_code = status.HTTP_409_CONFLICT


class StorageFailure(AppError):
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
