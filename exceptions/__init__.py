"""
Custom exceptions module.
"""

from exceptions.errors import (
    # Base exceptions
    AppError,
    NotFoundError,
    ValidationError,
    ConflictError,
    DatabaseError,
    StoreUnavailableError,

    # Workbook
    WorkbookParseError,
    EmptyWorkbookError,

    # Mapping
    MappingIncompleteError,
    MappingConflictError,
    UnknownTargetFieldError,

    # Upload sessions
    NoValidRowsError,
    InvalidTransitionError,
    UploadSessionNotFoundError,
)

__all__ = [
    # Base
    "AppError",
    "NotFoundError",
    "ValidationError",
    "ConflictError",
    "DatabaseError",
    "StoreUnavailableError",

    # Workbook
    "WorkbookParseError",
    "EmptyWorkbookError",

    # Mapping
    "MappingIncompleteError",
    "MappingConflictError",
    "UnknownTargetFieldError",

    # Upload sessions
    "NoValidRowsError",
    "InvalidTransitionError",
    "UploadSessionNotFoundError",
]
