"""
Business logic services.

Each service handles one stage of the upload pipeline.
"""

from services.row_store_service import RowStore, get_row_store
from services.upload_history_service import UploadHistoryService, get_upload_history_service

__all__ = [
    "RowStore",
    "get_row_store",
    "UploadHistoryService",
    "get_upload_history_service",
]
