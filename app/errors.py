"""
Error hierarchy for the content API.

Every failure a service can report is an ``AppError`` subclass carrying
an error code and the HTTP status the top-level handler maps it to.
Bulk and cascade paths never raise for a single bad id; they aggregate
those into response metadata instead.
"""
from typing import Any


class AppError(Exception):
    """Base exception for all content API errors."""

    code = "INTERNAL_ERROR"
    http_status = 500

    def __init__(self, message: str, details: dict[str, Any] | None = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def to_response(self) -> dict:
        body: dict[str, Any] = {
            "success": False,
            "data": None,
            "message": self.message,
            "error": {"code": self.code},
        }
        if self.details:
            body["error"]["details"] = self.details
        return body


# --- 400-level -------------------------------------------------------------

class ValidationError(AppError):
    """Malformed id, empty payload, or a bulk request with no valid ids."""

    code = "VALIDATION_ERROR"
    http_status = 400


class Unauthorized(AppError):
    code = "UNAUTHORIZED"
    http_status = 401

    def __init__(self, message: str = "Authentication required"):
        super().__init__(message)


class Forbidden(AppError):
    code = "FORBIDDEN"
    http_status = 403

    def __init__(self, message: str = "You are not allowed to perform this action"):
        super().__init__(message)


class NotFound(AppError):
    """
    Raised for empty single-entity lookups and for lifecycle transitions
    on a row that is already in the target state.
    """

    code = "NOT_FOUND"
    http_status = 404

    def __init__(self, resource: str, resource_id: str | None = None, message: str | None = None):
        if message is None:
            message = (
                f"{resource} '{resource_id}' not found" if resource_id else f"{resource} not found"
            )
        super().__init__(message, {"resource": resource, "id": resource_id} if resource_id else None)
        self.resource = resource
        self.resource_id = resource_id


class Conflict(AppError):
    """Unique constraint clash; *existing* is the record already stored."""

    code = "CONFLICT"
    http_status = 409

    def __init__(self, message: str, existing: dict | None = None):
        super().__init__(message, {"existing": existing} if existing is not None else None)
        self.existing = existing


# --- 500-level -------------------------------------------------------------

class DatastoreFailure(AppError):
    """Any underlying database error, wrapped with the attempted operation."""

    code = "DATASTORE_FAILURE"
    http_status = 500

    def __init__(self, operation: str, cause: Exception | None = None):
        super().__init__(f"Datastore operation '{operation}' failed")
        self.operation = operation
        self.cause = cause

    def to_response(self) -> dict:
        # The driver message stays in the logs, never in the response.
        body = super().to_response()
        body["error"]["operation"] = self.operation
        return body
