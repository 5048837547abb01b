"""
Supabase client for the captações store.

One client per process, shared by the row store and the upload history.
Writes go through the service role key when it is configured, since the
destination table is not writable with the anon key.
"""

from functools import lru_cache
import time
import structlog

from supabase import create_client, Client

from config.settings import settings
from exceptions import StoreUnavailableError

logger = structlog.get_logger(__name__)


def _api_key() -> str:
    if settings.supabase_service_key:
        return settings.supabase_service_key
    logger.warning("supabase_service_key_missing", fallback="anon")
    return settings.supabase_key


@lru_cache()
def get_supabase_client() -> Client:
    """
    Shared Supabase client, created on first use.

    Raises:
        StoreUnavailableError: If the client cannot be created
    """
    # Only the host part, never the full URL with project ref
    host = settings.supabase_url.split("//")[-1].split(".")[0][:6]
    logger.info("store_client_connecting", host=f"{host}...")

    try:
        client = create_client(settings.supabase_url, _api_key())
    except Exception as e:
        logger.error(
            "store_client_failed",
            error=str(e),
            error_type=type(e).__name__
        )
        raise StoreUnavailableError(str(e)) from e

    logger.info("store_client_ready")
    return client


def check_connection() -> dict:
    """
    Probe the destination table.

    Returns:
        {"status": "healthy", "table", "captacoes_count", "latency_ms"}
        or {"status": "unhealthy", "table", "error"}
    """
    table = settings.captacoes_table
    started = time.perf_counter()
    try:
        result = (
            get_supabase_client()
            .table(table)
            .select("id", count="exact")
            .limit(1)
            .execute()
        )
    except Exception as e:
        return {"status": "unhealthy", "table": table, "error": str(e)}

    return {
        "status": "healthy",
        "table": table,
        "captacoes_count": result.count,
        "latency_ms": round((time.perf_counter() - started) * 1000),
    }


def reset_connection() -> None:
    """Drop the cached client; the next call reconnects."""
    get_supabase_client.cache_clear()
    logger.info("store_client_reset")
