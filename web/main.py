"""FastAPI application exposing the Employes sync pipeline."""

from __future__ import annotations

from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse, Response
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest

from core.env import load_dotenv_if_available
from core.logging import get_logger, setup_logging
from services.ingest_errors import ConfigurationError
from web import routers

load_dotenv_if_available()
setup_logging()
logger = get_logger(__name__)

app = FastAPI(
    title="Employes Sync API",
    description="Versioned payroll snapshots, change detection and employee timelines.",
    version="1.0.0",
)


@app.exception_handler(ConfigurationError)
async def configuration_error_handler(_request: Request, exc: ConfigurationError) -> JSONResponse:
    logger.error("Sync configuration missing: %s", exc)
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={"success": False, "error": str(exc), "errorDetails": {"name": "ConfigurationError"}},
    )


@app.get("/", summary="Health Check", tags=["Default"])
def health_check():
    return {"status": "ok", "message": "Employes sync API is running."}


@app.get("/healthz", include_in_schema=False)
def cloud_run_health_check():
    """Lightweight Cloud Run friendly health probe."""
    db_ok, db_error = routers.health.ping_database()
    payload = {"status": "ok" if db_ok else "unhealthy", "database": {"ok": db_ok}}
    if db_error:
        payload["database"]["error"] = db_error
    status_code = status.HTTP_200_OK if db_ok else status.HTTP_503_SERVICE_UNAVAILABLE
    return JSONResponse(status_code=status_code, content=payload)


@app.get("/metrics", include_in_schema=False)
def prometheus_metrics():
    return Response(generate_latest(), media_type=CONTENT_TYPE_LATEST)


app.include_router(routers.employes_sync.router, prefix="/api/v1")
app.include_router(routers.health.router, prefix="/api/v1")
app.include_router(routers.ops.router, prefix="/api/v1")
