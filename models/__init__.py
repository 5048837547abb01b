"""
Captação schema and API models.
"""

from models.base import BaseSchema
from models.captacao import (
    FieldType,
    TargetField,
    TARGET_FIELDS,
    NATURAL_KEY_FIELDS,
    get_target_field,
)
from models.upload import (
    TargetFieldResponse,
    ColumnMappingResponse,
    MappingUpdateItem,
    MappingUpdateRequest,
    MappingResponse,
    UploadPreviewResponse,
    UploadProgressResponse,
    UploadStatusResponse,
    UploadSummaryResponse,
    UploadResultResponse,
)

__all__ = [
    # Base
    "BaseSchema",

    # Schema
    "FieldType",
    "TargetField",
    "TARGET_FIELDS",
    "NATURAL_KEY_FIELDS",
    "get_target_field",

    # Upload API
    "TargetFieldResponse",
    "ColumnMappingResponse",
    "MappingUpdateItem",
    "MappingUpdateRequest",
    "MappingResponse",
    "UploadPreviewResponse",
    "UploadProgressResponse",
    "UploadStatusResponse",
    "UploadSummaryResponse",
    "UploadResultResponse",
]
