"""
Captação upload API routes.

Each upload is a session that walks through mapping review, pre-commit
confirmation and commit. Sessions live in the app-owned SessionCache.
"""

from fastapi import APIRouter, UploadFile, File, Request
from fastapi.responses import JSONResponse
import structlog

from config import settings
from models.captacao import TARGET_FIELDS
from models.upload import (
    TargetFieldResponse,
    ColumnMappingResponse,
    MappingUpdateRequest,
    MappingResponse,
    UploadPreviewResponse,
    UploadProgressResponse,
    UploadStatusResponse,
    UploadSummaryResponse,
    UploadResultResponse,
)
from services.column_mapping_service import MappingOverride
from services.ingestion_service import (
    IngestionOrchestrator,
    IngestionState,
    UploadSummary,
)
from services.row_store_service import get_row_store
from services.session_cache_service import SessionCache
from services.upload_history_service import get_upload_history_service
from exceptions import (
    AppError,
    ValidationError,
    UploadSessionNotFoundError,
    WorkbookParseError,
)

logger = structlog.get_logger(__name__)

router = APIRouter(prefix="/api/captacoes", tags=["Captações Upload"])


# ===================
# HELPERS
# ===================

def handle_error(e: Exception) -> JSONResponse:
    """Convert exception to JSON response."""
    if isinstance(e, AppError):
        return JSONResponse(
            status_code=e.status_code,
            content=e.to_dict()
        )
    logger.error("unexpected_error", error=str(e), type=type(e).__name__)
    return JSONResponse(
        status_code=500,
        content={
            "error": {
                "code": "INTERNAL_ERROR",
                "message": "An unexpected error occurred"
            }
        }
    )


def _sessions(request: Request) -> SessionCache:
    return request.app.state.upload_sessions


def _get_orchestrator(request: Request, session_id: str) -> IngestionOrchestrator:
    orchestrator = _sessions(request).get(session_id)
    if orchestrator is None:
        raise UploadSessionNotFoundError(session_id)
    return orchestrator


def _index_error(index: int, column_count: int) -> ValidationError:
    return ValidationError(
        message=f"Column index {index} out of range (upload has {column_count} columns)",
        code="MAPPING_INDEX_OUT_OF_RANGE",
        details={"index": index, "column_count": column_count}
    )


def _new_orchestrator() -> IngestionOrchestrator:
    return IngestionOrchestrator(
        store=get_row_store(),
        history=get_upload_history_service(),
    )


def _mapping_items(orchestrator: IngestionOrchestrator) -> list[ColumnMappingResponse]:
    return [
        ColumnMappingResponse(
            index=i,
            source_column=m.source_column,
            target_field=m.target_key,
            is_selected=m.is_selected,
            is_required=m.is_required,
        )
        for i, m in enumerate(orchestrator.session.mapping)
    ]


def _missing(orchestrator: IngestionOrchestrator) -> list[str]:
    return [f.key for f in orchestrator.missing_required_fields()]


def _summary_response(session_id: str, state: IngestionState, summary: UploadSummary) -> UploadSummaryResponse:
    limit = settings.result_display_limit
    return UploadSummaryResponse(
        session_id=session_id,
        state=state.value,
        total_rows=summary.total_rows,
        valid_rows=summary.valid_rows,
        invalid_rows=summary.invalid_rows,
        new_rows=summary.new_rows,
        duplicates_count=summary.duplicates_count,
        duplicates_sample=summary.duplicates_sample[:limit],
        errors=summary.errors[:limit],
        errors_truncated=len(summary.errors) > limit,
    )


# ===================
# SCHEMA
# ===================

@router.get("/target-fields", response_model=list[TargetFieldResponse])
async def list_target_fields():
    """Destination columns, in schema order."""
    return [
        TargetFieldResponse(key=f.key, label=f.label, required=f.required, type=f.type.value)
        for f in TARGET_FIELDS
    ]


# ===================
# UPLOAD FLOW
# ===================

@router.post("/uploads", response_model=UploadPreviewResponse)
async def create_upload(request: Request, file: UploadFile = File(...)):
    """
    Parse an uploaded workbook and propose a column mapping.

    Rejects unreadable files and sheets without data rows.
    """
    try:
        contents = await file.read()
        orchestrator = _new_orchestrator()
        session = orchestrator.load_workbook(contents, file.filename or "upload.xlsx")
        _sessions(request).store(orchestrator)

        return UploadPreviewResponse(
            session_id=session.id,
            filename=session.filename,
            state=session.state.value,
            columns=session.columns,
            total_rows=session.total_rows,
            mapping=_mapping_items(orchestrator),
            missing_required=_missing(orchestrator),
            previously_uploaded=session.previously_uploaded,
        )

    except WorkbookParseError as e:
        logger.warning("upload_rejected", filename=file.filename, error=e.message)
        return handle_error(e)
    except Exception as e:
        return handle_error(e)


@router.get("/uploads/{session_id}", response_model=UploadStatusResponse)
def get_upload(request: Request, session_id: str):
    """Current state and commit progress."""
    try:
        orchestrator = _get_orchestrator(request, session_id)
        session = orchestrator.session
        progress = session.progress
        return UploadStatusResponse(
            session_id=session_id,
            state=session.state.value,
            filename=session.filename,
            progress=UploadProgressResponse(
                percent=progress.percent,
                inserted_so_far=progress.inserted_so_far,
                completed_batches=progress.completed_batches,
                total_batches=progress.total_batches,
            ),
        )
    except Exception as e:
        return handle_error(e)


@router.put("/uploads/{session_id}/mapping", response_model=MappingResponse)
def update_mapping(request: Request, session_id: str, body: MappingUpdateRequest):
    """Apply operator overrides to the proposed mapping."""
    try:
        orchestrator = _get_orchestrator(request, session_id)

        column_count = len(orchestrator.session.mapping)
        overrides = []
        for item in body.mappings:
            if item.index >= column_count:
                raise _index_error(item.index, column_count)
            overrides.append(MappingOverride(
                index=item.index,
                assign=item.target_field is not None or item.clear_target,
                field_key=item.target_field,
                selected=item.is_selected,
            ))
        orchestrator.update_mapping(overrides)

        return MappingResponse(
            session_id=session_id,
            state=orchestrator.state.value,
            mapping=_mapping_items(orchestrator),
            missing_required=_missing(orchestrator),
        )
    except Exception as e:
        return handle_error(e)


@router.get(
    "/uploads/{session_id}/mapping/{index}/available-fields",
    response_model=list[TargetFieldResponse]
)
def get_available_fields(request: Request, session_id: str, index: int):
    """Fields column `index` can still be mapped to."""
    try:
        orchestrator = _get_orchestrator(request, session_id)
        if index < 0 or index >= len(orchestrator.session.mapping):
            raise _index_error(index, len(orchestrator.session.mapping))
        return [
            TargetFieldResponse(key=f.key, label=f.label, required=f.required, type=f.type.value)
            for f in orchestrator.available_fields(index)
        ]
    except Exception as e:
        return handle_error(e)


@router.post("/uploads/{session_id}/confirm-mapping", response_model=UploadSummaryResponse)
def confirm_mapping(request: Request, session_id: str):
    """
    Validate rows with the confirmed mapping and check for duplicates.

    Leaves the session waiting for the operator to confirm the commit.
    """
    try:
        orchestrator = _get_orchestrator(request, session_id)
        if orchestrator.state == IngestionState.VALIDATED:
            # Previous duplicate check failed; retry it
            summary = orchestrator.check_duplicates()
        else:
            summary = orchestrator.prepare()
        return _summary_response(session_id, orchestrator.state, summary)
    except Exception as e:
        return handle_error(e)


@router.post("/uploads/{session_id}/commit", response_model=UploadResultResponse)
def commit_upload(request: Request, session_id: str):
    """Insert the new rows in batches and return the final report."""
    try:
        orchestrator = _get_orchestrator(request, session_id)
        result = orchestrator.commit()
        limit = settings.result_display_limit

        return UploadResultResponse(
            session_id=session_id,
            status=result.status,
            inserted_count=result.inserted_count,
            duplicates_ignored_count=result.duplicates_ignored_count,
            duplicates_sample=result.duplicates_sample[:limit],
            errors=result.errors[:limit],
            errors_total=len(result.errors),
            total_rows=result.total_rows,
            invalid_row_count=result.invalid_row_count,
            failed_row_count=result.failed_row_count,
        )
    except Exception as e:
        return handle_error(e)


@router.delete("/uploads/{session_id}", status_code=204)
def close_upload(request: Request, session_id: str):
    """Cancel an upload under review, or dismiss a finished one."""
    try:
        orchestrator = _get_orchestrator(request, session_id)
        if orchestrator.state in (IngestionState.COMPLETED, IngestionState.FAILED):
            orchestrator.dismiss()
        else:
            orchestrator.cancel()
        _sessions(request).invalidate(session_id)
        return None
    except Exception as e:
        return handle_error(e)
