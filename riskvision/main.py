"""RiskVision — FastAPI application entry point."""

from __future__ import annotations

import logging
import time
import uuid
from contextlib import asynccontextmanager

from sqlalchemy import text

from fastapi import FastAPI, Request, Response
from fastapi.responses import JSONResponse
from fastapi.middleware.cors import CORSMiddleware
from slowapi import Limiter, _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded
from slowapi.middleware import SlowAPIMiddleware
from slowapi.util import get_remote_address

from riskvision.config import DEFAULT_JWT_SECRET, settings
from riskvision.database import engine, init_db
from riskvision.logging_config import setup_logging

from riskvision.api.auth import router as auth_router
from riskvision.api.profile import router as profile_router
from riskvision.api.projects import router as projects_router
from riskvision.api.risks import router as risks_router
from riskvision.api.generation import router as generation_router
from riskvision.api.matrix import router as matrix_router
from riskvision.api.export import router as export_router
from riskvision.api.tasks import router as tasks_router
from riskvision.observability.metrics import metrics

logger = logging.getLogger("riskvision")

SERVICE_VERSION = "1.0.0"

# Rate limiter
limiter = Limiter(key_func=get_remote_address, default_limits=[settings.rate_limit_default])


def _startup_checks() -> None:
    """Log warnings for misconfigured or missing settings."""
    startup_errors: list[str] = []

    if settings.jwt_secret == DEFAULT_JWT_SECRET and not settings.supabase_enabled:
        msg = "JWT_SECRET is using the default value — set a strong secret for production"
        logger.warning(f"⚠  {msg}")
        if settings.is_production:
            startup_errors.append(msg)

    if settings.is_production and not settings.cors_origins_list:
        msg = "APP_ENV=production but CORS_ORIGINS is empty"
        logger.warning(f"⚠  {msg}")
        startup_errors.append(msg)

    if settings.is_production and "sqlite" in settings.database_url:
        logger.warning("⚠  APP_ENV=production with SQLite; use PostgreSQL for reliability")

    if settings.strict_startup_validation and startup_errors:
        raise RuntimeError("Startup validation failed: " + " | ".join(startup_errors))

    if settings.llm_api_key:
        logger.info(f"✓ Default AI provider: {settings.llm_provider} ({settings.llm_model})")
    else:
        logger.info("○ No LLM_API_KEY — AI generation needs a per-user key from the profile settings")

    if settings.supabase_enabled:
        logger.info("✓ Supabase Auth enabled")
    else:
        logger.info("○ Supabase not configured — using local password accounts")


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup / shutdown lifecycle."""
    setup_logging(settings.log_level, settings.log_format)
    _startup_checks()

    if settings.auto_create_schema:
        await init_db()
    logger.info("✦ RiskVision API started")
    logger.info(f"  Database: {settings.database_url}")

    yield

    logger.info("✦ RiskVision API shutting down")
    await engine.dispose()


app = FastAPI(
    title="RiskVision",
    description="Project risk management — risk register, AI-assisted analysis, matrix and reports",
    version=SERVICE_VERSION,
    lifespan=lifespan,
)

# Rate limiting
app.state.limiter = limiter
app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)
app.add_middleware(SlowAPIMiddleware)

# CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins_list,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# Request tracing + access log middleware
@app.middleware("http")
async def request_context(request: Request, call_next):
    request_id = request.headers.get("x-request-id") or str(uuid.uuid4())
    request.state.request_id = request_id
    start = time.perf_counter()

    response: Response = await call_next(request)

    duration_ms = round((time.perf_counter() - start) * 1000, 2)
    response.headers["X-Request-ID"] = request_id
    metrics.observe_request(request.url.path, response.status_code, duration_ms)
    logger.info(
        "request completed",
        extra={
            "request_id": request_id,
            "method": request.method,
            "path": request.url.path,
            "status_code": response.status_code,
            "duration_ms": duration_ms,
        },
    )
    return response


# Security headers middleware
@app.middleware("http")
async def security_headers(request: Request, call_next):
    response: Response = await call_next(request)
    response.headers["X-Content-Type-Options"] = "nosniff"
    response.headers["X-Frame-Options"] = "DENY"
    response.headers["Referrer-Policy"] = "strict-origin-when-cross-origin"
    response.headers["Permissions-Policy"] = "camera=(), microphone=(), geolocation=()"
    if settings.is_production:
        response.headers["Strict-Transport-Security"] = "max-age=31536000; includeSubDomains"
    return response


# Routers
app.include_router(auth_router)
app.include_router(profile_router)
app.include_router(projects_router)
app.include_router(risks_router)
app.include_router(generation_router)
app.include_router(matrix_router)
app.include_router(export_router)
app.include_router(tasks_router)


@app.get("/")
async def root():
    return JSONResponse(
        {
            "service": "riskvision-api",
            "status": "ok",
            "endpoints": {
                "health": "/api/health",
                "docs": "/docs",
            },
        }
    )


async def _db_ready() -> bool:
    try:
        async with engine.connect() as conn:
            await conn.execute(text("SELECT 1"))
        return True
    except Exception:
        logger.exception("database readiness check failed")
        return False


@app.get("/api/health")
async def health_check():
    database_ready = await _db_ready()
    return {
        "status": "healthy" if database_ready else "degraded",
        "service": "riskvision",
        "version": SERVICE_VERSION,
        "database_ready": database_ready,
        "auth_mode": "supabase" if settings.supabase_enabled else "local",
    }


@app.get("/api/health/live")
async def liveness_check():
    return {"status": "alive", "service": "riskvision"}


@app.get("/api/health/ready")
async def readiness_check(response: Response):
    database_ready = await _db_ready()
    if not database_ready:
        response.status_code = 503
    return {
        "status": "ready" if database_ready else "not_ready",
        "checks": {"database": database_ready},
    }


@app.get("/api/metrics")
async def get_metrics():
    return {
        "service": "riskvision",
        "version": SERVICE_VERSION,
        "metrics": metrics.snapshot(),
    }
