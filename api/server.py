"""
Delivery Pulse API Server - digests and delivery reports for the dashboard.
"""
# ruff: noqa: S104

import logging
from datetime import UTC, datetime

import uvicorn
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, PlainTextResponse

from api.digest_router import digest_router
from api.response_models import HealthResponse
from pulse import config, paths
from pulse.observability import REGISTRY, CorrelationIdMiddleware, configure_logging
from pulse.observability.metrics import request_errors

logger = logging.getLogger(__name__)

app = FastAPI(
    title="Delivery Pulse API",
    description="Due-item digests and delivery reports across the project portfolio",
    version="1.0.0",
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=config.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["GET", "POST"],
    allow_headers=["*"],
)
app.add_middleware(CorrelationIdMiddleware)

app.include_router(digest_router, prefix="/api/v2/digest")


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError):
    """Malformed bodies are client errors, reported in the standard envelope."""
    request_errors.inc()
    first = exc.errors()[0] if exc.errors() else {}
    where = ".".join(str(p) for p in first.get("loc", ()) if p != "body")
    message = f"{where}: {first.get('msg', 'invalid request')}" if where else "invalid request"
    return JSONResponse(
        status_code=400,
        content={"detail": {"status": "error", "error": message, "error_code": "bad_request"}},
    )


@app.get("/api/health", response_model=HealthResponse)
async def health_check():
    """Health check endpoint."""
    db = paths.db_path()
    return {
        "status": "healthy" if db.exists() else "degraded",
        "timestamp": datetime.now(UTC).isoformat(),
        "database": str(db),
    }


@app.get("/api/metrics", response_class=PlainTextResponse)
async def metrics():
    """Prometheus-format metrics endpoint."""
    return REGISTRY.to_prometheus()


def main() -> None:
    configure_logging(config.LOG_LEVEL)
    uvicorn.run(app, host="0.0.0.0", port=8420)


if __name__ == "__main__":
    main()
