"""
Error types raised by the upload pipeline.

Each error knows its API code and HTTP status, so a route only has to call
`to_dict()` on it. Row-level validation problems are not errors: they are
collected as strings and reported with the upload result.
"""

from typing import Optional, Any
from datetime import datetime, timezone


class AppError(Exception):
    """
    Base for every error the API reports with a code.

    Attributes:
        code: Stable machine-readable code (e.g. "MAPPING_INCOMPLETE")
        message: Text shown to the operator
        status_code: HTTP status returned by the routes
        details: Extra context serialized under "details"
    """

    def __init__(
        self,
        code: str,
        message: str,
        status_code: int = 500,
        details: Optional[dict[str, Any]] = None
    ):
        super().__init__(message)
        self.code = code
        self.message = message
        self.status_code = status_code
        self.details = details or {}
        self.timestamp = datetime.now(timezone.utc).isoformat()

    def to_dict(self) -> dict:
        """Body of the JSON error response."""
        return {
            "error": {
                "code": self.code,
                "message": self.message,
                "details": self.details,
                "timestamp": self.timestamp
            }
        }


class NotFoundError(AppError):
    """Something the request points at does not exist (404)."""

    def __init__(self, resource: str, identifier: str, code: Optional[str] = None):
        super().__init__(
            code=code or f"{resource.upper().replace(' ', '_')}_NOT_FOUND",
            message=f"{resource} not found",
            status_code=404,
            details={"id": identifier}
        )


class ValidationError(AppError):
    """Request or file content is unusable (422)."""

    def __init__(self, message: str, code: str = "VALIDATION_ERROR", details: Optional[dict] = None):
        super().__init__(code=code, message=message, status_code=422, details=details)


class ConflictError(AppError):
    """Request clashes with the current upload state (409)."""

    def __init__(self, message: str, code: str = "CONFLICT", details: Optional[dict] = None):
        super().__init__(code=code, message=message, status_code=409, details=details)


# ===================
# STORE ERRORS
# ===================

class DatabaseError(AppError):
    """A store call was rejected (500)."""

    def __init__(self, operation: str, message: str, details: Optional[dict] = None):
        super().__init__(
            code="DATABASE_ERROR",
            message=f"Database {operation} failed: {message}",
            status_code=500,
            details={"operation": operation, **(details or {})}
        )


class StoreUnavailableError(AppError):
    """Store client could not be created (503)."""

    def __init__(self, reason: str):
        super().__init__(
            code="STORE_UNAVAILABLE",
            message="The captações store is unavailable",
            status_code=503,
            details={"reason": reason}
        )


# ===================
# WORKBOOK ERRORS
# ===================

class WorkbookParseError(ValidationError):
    """Workbook could not be read."""

    def __init__(
        self,
        message: str,
        details: Optional[dict] = None,
        code: str = "WORKBOOK_PARSE_ERROR"
    ):
        super().__init__(
            code=code,
            message=message,
            details=details
        )


class EmptyWorkbookError(WorkbookParseError):
    """First sheet has no data rows."""

    def __init__(self, header_count: int = 0):
        super().__init__(
            code="WORKBOOK_EMPTY",
            message="The first sheet has no data rows",
            details={"header_count": header_count}
        )


# ===================
# MAPPING ERRORS
# ===================

class MappingIncompleteError(ValidationError):
    """Required target fields have no selected source column."""

    def __init__(self, missing: list[str], labels: Optional[list[str]] = None):
        shown = labels or missing
        super().__init__(
            code="MAPPING_INCOMPLETE",
            message=f"Required columns not mapped: {', '.join(shown)}",
            details={"missing": missing}
        )
        self.missing = missing


class MappingConflictError(ConflictError):
    """Target field already claimed by another selected column."""

    def __init__(self, field_key: str, claimed_by: str):
        super().__init__(
            code="MAPPING_FIELD_TAKEN",
            message=f"Field {field_key} is already mapped from column {claimed_by}",
            details={"field": field_key, "claimed_by": claimed_by}
        )


class UnknownTargetFieldError(ValidationError):
    """Target field key is not part of the schema."""

    def __init__(self, field_key: str):
        super().__init__(
            code="MAPPING_UNKNOWN_FIELD",
            message=f"Unknown target field: {field_key}",
            details={"field": field_key}
        )


# ===================
# UPLOAD SESSION ERRORS
# ===================

class NoValidRowsError(ValidationError):
    """Every data row failed validation."""

    def __init__(self, errors: list[str], total_rows: int):
        super().__init__(
            code="UPLOAD_NO_VALID_ROWS",
            message=f"None of the {total_rows} rows passed validation",
            details={"errors": errors, "total_rows": total_rows}
        )


class InvalidTransitionError(ConflictError):
    """Upload session cannot handle this event in its current state."""

    def __init__(self, state: str, event: str):
        super().__init__(
            code="UPLOAD_INVALID_TRANSITION",
            message=f"Cannot {event} while upload is {state}",
            details={"state": state, "event": event}
        )


class UploadSessionNotFoundError(NotFoundError):
    """Upload session expired or never existed."""

    def __init__(self, session_id: str):
        super().__init__(
            resource="Upload session",
            identifier=session_id,
            code="UPLOAD_SESSION_NOT_FOUND"
        )
