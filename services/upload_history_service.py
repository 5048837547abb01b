"""
Upload history for captação workbooks.

Every finished upload leaves one row keyed by the SHA-256 of the file, so a
workbook that was already imported can be flagged as soon as it is selected
again. Only successful uploads count for that check; failures are kept for
diagnosis.
"""

from typing import Any, Optional
import structlog

from config import get_supabase_client, settings

logger = structlog.get_logger(__name__)

UPLOAD_TYPE = "dados_captacoes"
MAX_ERROR_LENGTH = 2000

STATUS_SUCCESS = "success"
STATUS_ERROR = "error"


class UploadHistoryService:
    """Reads and writes the upload_history table."""

    def __init__(self, upload_type: str = UPLOAD_TYPE):
        self.db = get_supabase_client()
        self.table = settings.upload_history_table
        self.upload_type = upload_type

    def _entry(self, status: str, file_hash: str, filename: str, **extra: Any) -> dict:
        return {
            "upload_type": self.upload_type,
            "status": status,
            "file_hash": file_hash or "",
            "filename": filename or "unknown",
            **extra,
        }

    def find_previous_upload(self, file_hash: str) -> Optional[dict]:
        """
        Latest successful upload of the same file.

        Returns:
            {"filename", "uploaded_at", "row_count"} or None
        """
        result = (
            self.db.table(self.table)
            .select("filename, uploaded_at, row_count")
            .eq("upload_type", self.upload_type)
            .eq("file_hash", file_hash)
            .eq("status", STATUS_SUCCESS)
            .order("uploaded_at", desc=True)
            .limit(1)
            .execute()
        )
        if not result.data:
            return None
        return result.data[0]

    def record_success(self, file_hash: str, filename: str, inserted_count: int) -> None:
        self.db.table(self.table).insert(
            self._entry(STATUS_SUCCESS, file_hash, filename, row_count=inserted_count)
        ).execute()
        logger.info("upload_history_success", filename=filename, inserted=inserted_count)

    def record_failure(self, filename: str, error_message: str, file_hash: str = "") -> None:
        """
        Keep a failed upload for diagnosis.

        Never raises: a history write must not hide the original failure.
        """
        message = (error_message or "Unknown error")[:MAX_ERROR_LENGTH]
        try:
            self.db.table(self.table).insert(
                self._entry(STATUS_ERROR, file_hash, filename, row_count=0, error_message=message)
            ).execute()
        except Exception as e:
            logger.warning("upload_history_failure_not_recorded", filename=filename, error=str(e))
            return
        logger.info("upload_history_failure", filename=filename, error=message[:200])


_service: Optional[UploadHistoryService] = None


def get_upload_history_service() -> UploadHistoryService:
    global _service
    if _service is None:
        _service = UploadHistoryService()
    return _service
