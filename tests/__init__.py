"""
Test suite for the captações ingestion backend.

Run all tests: pytest
Run unit tests only: pytest tests/unit/
Run specific file: pytest tests/unit/test_ingestion_service.py -v
"""
