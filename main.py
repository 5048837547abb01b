"""
Captações Ingestion API

FastAPI entry point: logging setup, app state and router wiring.
"""

from contextlib import asynccontextmanager
from datetime import datetime, timezone
import logging

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
import structlog

from config import settings, check_connection
from exceptions import AppError
from services.session_cache_service import SessionCache


def configure_logging() -> None:
    """structlog on top of stdlib logging; JSON lines in production."""
    logging.basicConfig(format="%(message)s", level=settings.log_level)

    renderer = (
        structlog.processors.JSONRenderer()
        if settings.is_production
        else structlog.dev.ConsoleRenderer()
    )
    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            renderer,
        ],
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )


configure_logging()
logger = structlog.get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Probe the store on startup; drop open upload sessions on shutdown."""
    logger.info("application_starting", environment=settings.environment, debug=settings.debug)

    store = check_connection()
    if store["status"] == "healthy":
        logger.info("store_reachable", table=store["table"], rows=store["captacoes_count"])
    else:
        # Start anyway; /health reports the store as degraded
        logger.error("store_unreachable", table=store["table"], error=store.get("error"))

    yield

    open_sessions = len(app.state.upload_sessions)
    app.state.upload_sessions.clear()
    logger.info("application_shutting_down", dropped_sessions=open_sessions)


app = FastAPI(
    title="Captações Ingestion",
    description="Spreadsheet upload of captação rows: column mapping, validation, duplicate check and batched commit",
    version="0.1.0",
    lifespan=lifespan,
    docs_url="/docs" if settings.debug else None,
    redoc_url="/redoc" if settings.debug else None,
)

# One orchestrator per open upload, owned by this app instance
app.state.upload_sessions = SessionCache(ttl_minutes=settings.session_ttl_minutes)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["http://localhost:3000", "http://localhost:5173"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# ===================
# ROUTES
# ===================

@app.get("/health")
async def health_check():
    """Store reachability and number of open uploads."""
    store = check_connection()
    return {
        "status": "healthy" if store["status"] == "healthy" else "degraded",
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "environment": settings.environment,
        "open_uploads": len(app.state.upload_sessions),
        "store": store,
    }


@app.get("/")
async def root():
    return {
        "name": "Captações Ingestion API",
        "version": "0.1.0",
        "docs": "/docs" if settings.debug else "Disabled in production",
        "health": "/health",
        "endpoints": {
            "target_fields": "/api/captacoes/target-fields",
            "uploads": "/api/captacoes/uploads",
        },
    }


# ===================
# ERROR HANDLERS
# ===================

@app.exception_handler(AppError)
async def app_error_handler(request: Request, exc: AppError):
    """AppErrors that escape a route keep their own code and status."""
    logger.warning("app_error", path=request.url.path, code=exc.code)
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


@app.exception_handler(Exception)
async def unhandled_error_handler(request: Request, exc: Exception):
    logger.error(
        "unhandled_exception",
        path=request.url.path,
        method=request.method,
        error=str(exc),
        error_type=type(exc).__name__,
    )
    return JSONResponse(
        status_code=500,
        content={
            "error": {
                "code": "INTERNAL_ERROR",
                "message": "An unexpected error occurred",
                "details": str(exc) if settings.debug else None,
                "timestamp": datetime.now(timezone.utc).isoformat(),
            }
        },
    )


from routes.captacoes import router as captacoes_router  # noqa: E402

app.include_router(captacoes_router)


if __name__ == "__main__":
    import uvicorn
    uvicorn.run("main:app", host=settings.api_host, port=settings.api_port, reload=settings.debug)
