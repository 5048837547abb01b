"""
Ingestion orchestrator for captação uploads.

Sequences parse → map → confirm → validate → duplicate check → confirm →
commit for one uploaded workbook. The upload's state lives in an explicit
state machine; `transition()` is the only place state changes are decided.

    IDLE → FILE_SELECTED → MAPPING_PROPOSED → MAPPING_CONFIRMED → VALIDATED
         → DUPLICATES_CHECKED → AWAITING_USER_CONFIRMATION → COMMITTING
         → COMPLETED

FAILED is reachable from FILE_SELECTED (unreadable/empty workbook),
MAPPING_CONFIRMED (no valid rows) and COMMITTING (every batch failed).
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from threading import Lock
from typing import Callable, Optional
import math
import uuid
import structlog

from config import settings
from models.captacao import TargetField, TARGET_FIELDS
from parsers.workbook_parser import RawRow, parse_workbook, file_hash
from services.column_mapping_service import (
    ColumnMapping,
    MappingOverride,
    apply_overrides,
    propose_mapping,
    validate_mapping,
    assign_field as _assign_field,
    set_selected as _set_selected,
    available_fields as _available_fields,
    missing_required_fields,
)
from services.row_normalizer_service import NormalizedRecord, normalize_rows
from services.duplicate_detection_service import DuplicateDetectionService, NaturalKey
from services.batch_commit_service import BatchCommitService
from services.row_store_service import RowStore
from services.upload_history_service import UploadHistoryService
from exceptions import (
    WorkbookParseError,
    NoValidRowsError,
    InvalidTransitionError,
)

logger = structlog.get_logger(__name__)


# =============================================================================
# State machine
# =============================================================================

class IngestionState(str, Enum):
    IDLE = "idle"
    FILE_SELECTED = "file_selected"
    MAPPING_PROPOSED = "mapping_proposed"
    MAPPING_CONFIRMED = "mapping_confirmed"
    VALIDATED = "validated"
    DUPLICATES_CHECKED = "duplicates_checked"
    AWAITING_USER_CONFIRMATION = "awaiting_user_confirmation"
    COMMITTING = "committing"
    COMPLETED = "completed"
    FAILED = "failed"


class IngestionEvent(str, Enum):
    SELECT_FILE = "select_file"
    PROPOSE_MAPPING = "propose_mapping"
    CONFIRM_MAPPING = "confirm_mapping"
    VALIDATE = "validate"
    CHECK_DUPLICATES = "check_duplicates"
    REQUEST_CONFIRMATION = "request_confirmation"
    START_COMMIT = "start_commit"
    COMPLETE = "complete"
    FAIL = "fail"
    CANCEL = "cancel"
    DISMISS = "dismiss"


_S = IngestionState
_E = IngestionEvent

TRANSITIONS: dict[tuple[IngestionState, IngestionEvent], IngestionState] = {
    (_S.IDLE, _E.SELECT_FILE): _S.FILE_SELECTED,
    (_S.FILE_SELECTED, _E.PROPOSE_MAPPING): _S.MAPPING_PROPOSED,
    (_S.FILE_SELECTED, _E.FAIL): _S.FAILED,
    (_S.MAPPING_PROPOSED, _E.CONFIRM_MAPPING): _S.MAPPING_CONFIRMED,
    (_S.MAPPING_PROPOSED, _E.CANCEL): _S.IDLE,
    (_S.MAPPING_CONFIRMED, _E.VALIDATE): _S.VALIDATED,
    (_S.MAPPING_CONFIRMED, _E.FAIL): _S.FAILED,
    (_S.VALIDATED, _E.CHECK_DUPLICATES): _S.DUPLICATES_CHECKED,
    (_S.DUPLICATES_CHECKED, _E.REQUEST_CONFIRMATION): _S.AWAITING_USER_CONFIRMATION,
    (_S.AWAITING_USER_CONFIRMATION, _E.START_COMMIT): _S.COMMITTING,
    (_S.AWAITING_USER_CONFIRMATION, _E.CANCEL): _S.IDLE,
    (_S.COMMITTING, _E.COMPLETE): _S.COMPLETED,
    (_S.COMMITTING, _E.FAIL): _S.FAILED,
    (_S.COMPLETED, _E.DISMISS): _S.IDLE,
    (_S.FAILED, _E.DISMISS): _S.IDLE,
}


def transition(state: IngestionState, event: IngestionEvent) -> IngestionState:
    """
    Next state for `event` in `state`.

    Raises:
        InvalidTransitionError: If the event is not allowed in this state
    """
    try:
        return TRANSITIONS[(state, event)]
    except KeyError:
        raise InvalidTransitionError(state.value, event.value) from None


# =============================================================================
# Session data
# =============================================================================

@dataclass
class UploadProgress:
    completed_batches: int = 0
    total_batches: int = 0
    inserted_so_far: int = 0

    @property
    def percent(self) -> int:
        if self.total_batches == 0:
            return 0
        return round(100 * self.completed_batches / self.total_batches)


@dataclass
class UploadSummary:
    """Pre-commit figures shown for operator confirmation."""
    total_rows: int
    valid_rows: int
    invalid_rows: int
    new_rows: int
    duplicates_count: int
    duplicates_sample: list[str]
    errors: list[str]


@dataclass
class UploadResult:
    """
    Final report of one upload.

    inserted_count + duplicates_ignored_count + invalid_row_count
    + failed_row_count == total_rows
    """
    status: str
    inserted_count: int = 0
    errors: list[str] = field(default_factory=list)
    duplicates_ignored_count: int = 0
    duplicates_sample: list[str] = field(default_factory=list)
    total_rows: int = 0
    invalid_row_count: int = 0
    failed_row_count: int = 0


@dataclass
class IngestionSession:
    """Transient state of one upload, discarded on cancel or dismiss."""
    id: str = field(default_factory=lambda: str(uuid.uuid4()))
    state: IngestionState = IngestionState.IDLE
    filename: Optional[str] = None
    file_hash: Optional[str] = None
    previously_uploaded: Optional[dict] = None
    columns: list[str] = field(default_factory=list)
    raw_rows: list[RawRow] = field(default_factory=list)
    mapping: list[ColumnMapping] = field(default_factory=list)
    normalized_records: list[NormalizedRecord] = field(default_factory=list)
    validation_errors: list[str] = field(default_factory=list)
    invalid_row_count: int = 0
    new_records: list[NormalizedRecord] = field(default_factory=list)
    duplicate_keys: set[NaturalKey] = field(default_factory=set)
    duplicate_count: int = 0
    duplicate_samples: list[str] = field(default_factory=list)
    progress: UploadProgress = field(default_factory=UploadProgress)
    result: Optional[UploadResult] = None
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    @property
    def total_rows(self) -> int:
        return len(self.raw_rows)


ProgressCallback = Callable[[UploadProgress], None]


# =============================================================================
# Orchestrator
# =============================================================================

class IngestionOrchestrator:
    """
    Drives a single upload from file selection to final result.

    One orchestrator owns exactly one session; create a new one per upload.
    """

    def __init__(
        self,
        store: RowStore,
        history: Optional[UploadHistoryService] = None,
        fields: tuple[TargetField, ...] = TARGET_FIELDS,
        table: Optional[str] = None,
        chunk_size: Optional[int] = None,
        yield_seconds: Optional[float] = None,
        sample_size: Optional[int] = None,
    ):
        self.fields = fields
        self.history = history
        self.detector = DuplicateDetectionService(store, table=table, sample_size=sample_size)
        self.committer = BatchCommitService(
            store,
            table=table,
            chunk_size=chunk_size,
            yield_seconds=yield_seconds
        )
        self.session = IngestionSession()
        # Serializes transitions; commit requests run on the threadpool
        self._lock = Lock()

    @property
    def state(self) -> IngestionState:
        return self.session.state

    def _fire(self, event: IngestionEvent) -> IngestionState:
        with self._lock:
            previous = self.session.state
            self.session.state = transition(previous, event)
        logger.debug(
            "upload_state_changed",
            session_id=self.session.id,
            trigger=event.value,
            from_state=previous.value,
            to_state=self.session.state.value
        )
        return self.session.state

    def _require(self, event: IngestionEvent) -> None:
        # Fails fast before any work is done for an illegal step
        transition(self.session.state, event)

    def _reset(self) -> None:
        self.session = IngestionSession(id=self.session.id)

    # ===================
    # FILE
    # ===================

    def load_workbook(self, content: bytes, filename: str = "upload.xlsx") -> IngestionSession:
        """
        Parse the workbook and propose a column mapping.

        Raises:
            WorkbookParseError: Unreadable or empty workbook (session FAILED)
        """
        self._fire(IngestionEvent.SELECT_FILE)
        session = self.session
        session.filename = filename
        session.file_hash = file_hash(content or b"")

        logger.info("upload_file_selected", session_id=session.id, filename=filename)

        try:
            workbook = parse_workbook(content)
        except WorkbookParseError as e:
            self._fail([e.message])
            raise

        session.columns = workbook.headers
        session.raw_rows = workbook.rows
        session.previously_uploaded = self._lookup_previous_upload()
        session.mapping = propose_mapping(session.columns, self.fields)
        self._fire(IngestionEvent.PROPOSE_MAPPING)

        return session

    def _lookup_previous_upload(self) -> Optional[dict]:
        if self.history is None:
            return None
        try:
            previous = self.history.find_previous_upload(self.session.file_hash)
        except Exception as e:
            logger.warning("upload_history_lookup_failed", error=str(e))
            return None
        if previous:
            logger.info(
                "file_previously_uploaded",
                session_id=self.session.id,
                previous_filename=previous.get("filename")
            )
        return previous

    # ===================
    # MAPPING
    # ===================

    def _require_mapping_review(self) -> None:
        if self.session.state != IngestionState.MAPPING_PROPOSED:
            raise InvalidTransitionError(self.session.state.value, "edit mapping")

    def assign_field(self, index: int, field_key: Optional[str]) -> ColumnMapping:
        self._require_mapping_review()
        return _assign_field(self.session.mapping, index, field_key, self.fields)

    def set_selected(self, index: int, selected: bool) -> ColumnMapping:
        self._require_mapping_review()
        return _set_selected(self.session.mapping, index, selected)

    def update_mapping(self, overrides: list[MappingOverride]) -> list[ColumnMapping]:
        """Apply a batch of edits all-or-nothing; a rejected batch changes nothing."""
        self._require_mapping_review()
        self.session.mapping = apply_overrides(self.session.mapping, overrides, self.fields)
        return self.session.mapping

    def available_fields(self, index: int) -> list[TargetField]:
        return _available_fields(self.session.mapping, index, self.fields)

    def missing_required_fields(self) -> list[TargetField]:
        return missing_required_fields(self.session.mapping, self.fields)

    # ===================
    # VALIDATION
    # ===================

    def confirm_mapping(self) -> list[NormalizedRecord]:
        """
        Lock the mapping and validate every row.

        Raises:
            MappingIncompleteError: Required fields unmapped (state unchanged)
            NoValidRowsError: Every row failed validation (session FAILED)
        """
        self._require(IngestionEvent.CONFIRM_MAPPING)
        mapping = validate_mapping(self.session.mapping, self.fields)
        self._fire(IngestionEvent.CONFIRM_MAPPING)

        session = self.session
        normalized = normalize_rows(session.raw_rows, mapping, self.fields)
        session.normalized_records = normalized.records
        session.validation_errors = normalized.errors
        session.invalid_row_count = normalized.invalid_row_count

        if not normalized.records:
            self._fail(normalized.errors)
            raise NoValidRowsError(normalized.errors, session.total_rows)

        self._fire(IngestionEvent.VALIDATE)
        return session.normalized_records

    def check_duplicates(self) -> UploadSummary:
        """
        Split validated records into new and already stored.

        Leaves the session awaiting operator confirmation. A store failure
        propagates and keeps the session VALIDATED so the check can be retried.
        """
        self._require(IngestionEvent.CHECK_DUPLICATES)
        session = self.session

        check = self.detector.find_duplicates(session.normalized_records)
        session.new_records = check.new_records
        session.duplicate_keys = check.duplicate_keys
        session.duplicate_count = check.duplicate_count
        session.duplicate_samples = check.samples

        self._fire(IngestionEvent.CHECK_DUPLICATES)
        self._fire(IngestionEvent.REQUEST_CONFIRMATION)
        return self.summary()

    def prepare(self) -> UploadSummary:
        """Confirm mapping, validate and check duplicates in one step."""
        self.confirm_mapping()
        return self.check_duplicates()

    def summary(self) -> UploadSummary:
        session = self.session
        return UploadSummary(
            total_rows=session.total_rows,
            valid_rows=len(session.normalized_records),
            invalid_rows=session.invalid_row_count,
            new_rows=len(session.new_records),
            duplicates_count=session.duplicate_count,
            duplicates_sample=list(session.duplicate_samples),
            errors=list(session.validation_errors),
        )

    # ===================
    # COMMIT
    # ===================

    def commit(self, on_progress: Optional[ProgressCallback] = None) -> UploadResult:
        """
        Insert the new records in sequential batches.

        Args:
            on_progress: Called with the updated progress after every batch

        Returns:
            UploadResult; status "failed" when every batch was rejected
        """
        self._fire(IngestionEvent.START_COMMIT)
        session = self.session
        session.progress = UploadProgress(
            total_batches=math.ceil(len(session.new_records) / self.committer.chunk_size)
        )

        def on_batch_complete(index: int, total: int, inserted_so_far: int) -> None:
            session.progress.completed_batches = index
            session.progress.total_batches = total
            session.progress.inserted_so_far = inserted_so_far
            if on_progress is not None:
                on_progress(session.progress)

        committed = self.committer.commit(session.new_records, on_batch_complete)

        status = "failed" if committed.all_failed else "completed"
        session.result = UploadResult(
            status=status,
            inserted_count=committed.inserted_count,
            errors=session.validation_errors + committed.errors,
            duplicates_ignored_count=session.duplicate_count,
            duplicates_sample=list(session.duplicate_samples),
            total_rows=session.total_rows,
            invalid_row_count=session.invalid_row_count,
            failed_row_count=committed.failed_row_count,
        )

        if committed.all_failed:
            self._fire(IngestionEvent.FAIL)
            self._record_failure("; ".join(committed.errors))
        else:
            self._fire(IngestionEvent.COMPLETE)
            self._record_success(committed.inserted_count)

        logger.info(
            "upload_finished",
            session_id=session.id,
            status=status,
            inserted=committed.inserted_count,
            duplicates=session.duplicate_count,
            invalid_rows=session.invalid_row_count,
            failed_rows=committed.failed_row_count
        )

        return session.result

    # ===================
    # END OF SESSION
    # ===================

    def cancel(self) -> None:
        """Abandon the upload at a review step; nothing was written."""
        self._fire(IngestionEvent.CANCEL)
        logger.info("upload_cancelled", session_id=self.session.id)
        self._reset()

    def dismiss(self) -> None:
        """Close the final report and return to IDLE."""
        self._fire(IngestionEvent.DISMISS)
        self._reset()

    def _fail(self, errors: list[str]) -> None:
        session = self.session
        self._fire(IngestionEvent.FAIL)
        session.result = UploadResult(
            status="failed",
            errors=list(errors),
            total_rows=session.total_rows,
            invalid_row_count=session.invalid_row_count,
        )
        self._record_failure("; ".join(errors))

    def _record_success(self, inserted: int) -> None:
        if self.history is None:
            return
        try:
            self.history.record_success(self.session.file_hash, self.session.filename, inserted)
        except Exception as e:
            # Rows are already committed; the report must still reach the operator
            logger.warning("upload_history_record_failed", error=str(e))

    def _record_failure(self, message: str) -> None:
        if self.history is None:
            return
        self.history.record_failure(
            self.session.filename,
            message,
            file_hash=self.session.file_hash or "",
        )
