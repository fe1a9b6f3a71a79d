"""
FastAPI Application

HTTP surface of the daily planning engine: today's plan, readiness,
guardrail validation and outcome logging.
"""

from contextlib import asynccontextmanager
from typing import Dict

from fastapi import FastAPI, HTTPException, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from adaptive_coach.api.dependencies import get_engine
from adaptive_coach.api.routes import guardrails, outcomes, plans, readiness
from adaptive_coach.config import get_settings
from adaptive_coach.logger import get_logger

log = get_logger(__name__)

API_VERSION = "1.0.0"


@asynccontextmanager
async def lifespan(_app: FastAPI):
    """Release the shared engine's storage on shutdown."""
    yield
    if get_engine.cache_info().currsize:
        log.info("Shutting down planning engine")
        get_engine().close()
        get_engine.cache_clear()


app = FastAPI(
    title="Adaptive Coach API",
    description="Readiness-aware daily training plans with explainable adjustments and safety guardrails",
    version=API_VERSION,
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=get_settings().cors_origins,
    allow_credentials=True,
    allow_methods=["GET", "POST"],
    allow_headers=["*"],
)

for module, tag in (
    (plans, "Plans"),
    (readiness, "Readiness"),
    (guardrails, "Guardrails"),
    (outcomes, "Outcomes"),
):
    app.include_router(module.router, prefix="/api", tags=[tag])


@app.get("/")
async def root() -> Dict[str, str]:
    """Service information and entry points."""
    return {
        "name": "Adaptive Coach API",
        "version": API_VERSION,
        "docs": "/docs",
        "health": "/health",
    }


@app.get("/health")
async def health_check() -> Dict[str, str]:
    return {"status": "healthy", "service": "adaptive-coach-api"}


@app.exception_handler(HTTPException)
async def http_exception_handler(request, exc: HTTPException):
    """Route errors share one body shape: ``{"error", "message"}``."""
    if exc.status_code >= 500:
        log.error(f"{request.method} {request.url.path} -> {exc.status_code}: {exc.detail}")
    return JSONResponse(
        status_code=exc.status_code,
        content={"error": exc.detail, "message": str(exc.detail)},
    )


@app.exception_handler(Exception)
async def unhandled_exception_handler(request, exc: Exception):
    log.exception(f"Unhandled error on {request.url.path}")
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={"error": "Internal Server Error", "message": str(exc)},
    )


if __name__ == "__main__":
    import uvicorn

    uvicorn.run("adaptive_coach.api.main:app", host="0.0.0.0", port=8000, log_level="info")
