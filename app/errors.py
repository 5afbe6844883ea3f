"""Service-level errors rendered as {success, kind, message} by the API."""
from fastapi import status


class ServiceError(Exception):
    """Base error raised by services; carries a machine-readable kind."""

    kind = "error"
    status_code = status.HTTP_400_BAD_REQUEST

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message

    def to_dict(self) -> dict:
        return {"success": False, "kind": self.kind, "message": self.message}


class ValidationError(ServiceError):
    kind = "validation_error"
    status_code = status.HTTP_400_BAD_REQUEST


class NotFoundError(ServiceError):
    kind = "not_found"
    status_code = status.HTTP_404_NOT_FOUND


class AmbiguousIdentityError(ServiceError):
    """Two supplied identifiers point at two different users."""

    kind = "ambiguous"
    status_code = status.HTTP_409_CONFLICT


class ConflictError(ServiceError):
    kind = "conflict"
    status_code = status.HTTP_409_CONFLICT


class ForbiddenError(ServiceError):
    kind = "forbidden"
    status_code = status.HTTP_403_FORBIDDEN
