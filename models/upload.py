"""
Captação upload API schemas.

Request and response bodies for the mapping review, pre-commit
confirmation and final result screens.
"""

from typing import Optional
from pydantic import BaseModel, Field

from models.base import BaseSchema


class TargetFieldResponse(BaseSchema):
    """One destination column."""
    key: str
    label: str
    required: bool
    type: str


class ColumnMappingResponse(BaseSchema):
    """Mapping of one spreadsheet column."""
    index: int
    source_column: str
    target_field: Optional[str] = None
    is_selected: bool
    is_required: bool


class MappingUpdateItem(BaseModel):
    """Operator override for one column; omitted fields are left as is."""
    index: int = Field(..., ge=0)
    target_field: Optional[str] = Field(
        None,
        description="Target field key; null clears the mapping when clear_target is set"
    )
    clear_target: bool = False
    is_selected: Optional[bool] = None


class MappingUpdateRequest(BaseModel):
    mappings: list[MappingUpdateItem] = Field(default_factory=list)


class MappingResponse(BaseSchema):
    session_id: str
    state: str
    mapping: list[ColumnMappingResponse]
    missing_required: list[str] = Field(default_factory=list)


class UploadPreviewResponse(BaseSchema):
    """Returned after the file is parsed and a mapping proposed."""
    session_id: str
    filename: str
    state: str
    columns: list[str]
    total_rows: int
    mapping: list[ColumnMappingResponse]
    missing_required: list[str] = Field(default_factory=list)
    previously_uploaded: Optional[dict] = None


class UploadProgressResponse(BaseSchema):
    percent: int
    inserted_so_far: int
    completed_batches: int
    total_batches: int


class UploadStatusResponse(BaseSchema):
    session_id: str
    state: str
    filename: Optional[str] = None
    progress: UploadProgressResponse


class UploadSummaryResponse(BaseSchema):
    """Pre-commit confirmation."""
    session_id: str
    state: str
    total_rows: int
    valid_rows: int
    invalid_rows: int
    new_rows: int
    duplicates_count: int
    duplicates_sample: list[str]
    errors: list[str]
    errors_truncated: bool = False


class UploadResultResponse(BaseSchema):
    """Final report."""
    session_id: str
    status: str
    inserted_count: int
    duplicates_ignored_count: int
    duplicates_sample: list[str]
    errors: list[str]
    errors_total: int
    total_rows: int
    invalid_row_count: int
    failed_row_count: int
