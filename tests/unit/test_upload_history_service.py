"""
Unit tests for upload history tracking.
"""

from services.upload_history_service import UPLOAD_TYPE

TABLE = "upload_history"


class TestFindPreviousUpload:

    def test_unknown_hash(self, history):
        assert history.find_previous_upload("abc") is None

    def test_previous_success_found(self, history, mock_supabase):
        mock_supabase.set_table_data(TABLE, [{
            "upload_type": UPLOAD_TYPE,
            "file_hash": "abc",
            "filename": "captacoes_marco.xlsx",
            "uploaded_at": "2024-03-20T10:00:00+00:00",
            "row_count": 12,
            "status": "success",
        }])

        previous = history.find_previous_upload("abc")

        assert previous == {
            "filename": "captacoes_marco.xlsx",
            "uploaded_at": "2024-03-20T10:00:00+00:00",
            "row_count": 12,
        }

    def test_failed_uploads_ignored(self, history, mock_supabase):
        mock_supabase.set_table_data(TABLE, [{
            "upload_type": UPLOAD_TYPE,
            "file_hash": "abc",
            "filename": "captacoes_marco.xlsx",
            "status": "error",
        }])

        assert history.find_previous_upload("abc") is None


class TestRecordUpload:

    def test_records_success(self, history, mock_supabase):
        history.record_success("abc", "captacoes.xlsx", inserted_count=3)

        row = mock_supabase.rows(TABLE)[0]
        assert row["status"] == "success"
        assert row["row_count"] == 3
        assert row["upload_type"] == UPLOAD_TYPE

    def test_failed_upload_message_truncated(self, history, mock_supabase):
        history.record_failure("captacoes.xlsx", "x" * 5000, file_hash="abc")

        row = mock_supabase.rows(TABLE)[0]
        assert row["status"] == "error"
        assert len(row["error_message"]) == 2000

    def test_failed_upload_record_never_raises(self, history, mock_supabase):
        mock_supabase.fail_insert(TABLE, 1)

        history.record_failure("captacoes.xlsx", "boom")

        assert mock_supabase.rows(TABLE) == []
