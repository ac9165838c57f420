from __future__ import annotations

import asyncio
import logging
import time
from datetime import datetime, timezone
from typing import Any, Dict
from uuid import uuid4

from fastapi import APIRouter, Depends, FastAPI, HTTPException, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError

from src.core.errors import ApiError, ErrorResponses
from src.core.features import is_feature_enabled
from src.core.logging import configure_logging, correlation_id_var, organization_id_var
from src.core.ratelimit import rate_limit
from src.core.settings import get_app_settings
from src.core.version import get_version_info
from src.db.config import get_settings as get_db_settings
from src.db.run_migrations import main as run_alembic
from src.db.seed import seed_all
from src.db.session import dispose_engine, get_session_maker
from src.schemas.common import ErrorInfo, ErrorResponse
from src.schemas.system import ApiHealthResponse, ServiceCheck
from src.services.dashboard import realtime_snapshot
from src.services.realtime import realtime_manager
from src.services.system import SystemService, current_health

# Routers
from src.api.routes.auth import router as auth_router
from src.api.routes.users import router as users_router
from src.api.routes.assessments import router as assessments_router
from src.api.routes.dashboard import router as dashboard_router
from src.api.routes.reports import router as reports_router
from src.api.routes.system import router as system_router
from src.api.routes.websocket import router as websocket_router, ws_router

settings = get_app_settings()

# Configure structured logging once at import
configure_logging("DEBUG" if is_feature_enabled("debug_mode") else settings.LOG_LEVEL)
logger = logging.getLogger(__name__)

STARTED_AT = time.monotonic()

# Reachable while maintenance_mode is on
MAINTENANCE_EXEMPT_PATHS = ("/api/health", "/api/version")

openapi_tags = [
    {"name": "Health", "description": "Liveness, readiness and version information."},
    {"name": "Auth", "description": "Login, token refresh and profile bootstrap."},
    {"name": "Users", "description": "Organization members and invitations."},
    {"name": "Assessments", "description": "Assessments, submissions and OCEAN results."},
    {"name": "Dashboard", "description": "Metrics, trends, aggregations and user activity."},
    {"name": "Reports", "description": "Weekly reports, sections, templates and exports (PDF/Excel/CSV/HTML)."},
    {"name": "System", "description": "Performance metrics, system health and scheduled jobs."},
    {
        "name": "WebSocket",
        "description": "Realtime channel details; the socket itself is served at /ws/realtime.",
    },
]

app = FastAPI(
    title=settings.APP_NAME,
    description=settings.APP_DESCRIPTION,
    version=settings.APP_VERSION or "1.0.0",
    openapi_tags=openapi_tags,
)

# CORS - avoid wildcard with credentials
cors_allow_credentials = settings.CORS_ALLOW_CREDENTIALS
if settings.CORS_ORIGINS == ["*"] and cors_allow_credentials:
    logger.warning("CORS_ALLOW_CREDENTIALS=True with '*' origins is not permitted; disabling credentials.")
    cors_allow_credentials = False

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=cors_allow_credentials,
    allow_methods=settings.CORS_ALLOW_METHODS,
    allow_headers=settings.CORS_ALLOW_HEADERS,
)


async def _record_request(request: Request, status_code: int, duration_ms: float) -> None:
    try:
        async with get_session_maker()() as session:
            await SystemService(session).record_request(
                request.url.path,
                request.method,
                status_code,
                duration_ms,
                error_message=f"HTTP {status_code}" if status_code >= 400 else None,
            )
    except SQLAlchemyError:
        logger.exception("Failed to record request timing for %s %s", request.method, request.url.path)


@app.middleware("http")
async def request_context_middleware(request: Request, call_next):
    """
    Enrich request context with correlation_id and organization_id for logging and error responses.

    Also answers 503 while maintenance_mode is on and stores request timings when
    performance_metrics is on. Adds 'X-Correlation-ID' and 'X-Response-Time' to every response.
    """
    corr = request.headers.get("X-Correlation-ID") or request.headers.get("X-Request-ID") or str(uuid4())
    organization = (
        request.query_params.get("organization_id")
        or request.query_params.get("organizationId")
        or request.headers.get("X-Organization-ID")
    )
    token_corr = correlation_id_var.set(corr)
    token_org = organization_id_var.set(organization)
    request.state.correlation_id = corr
    request.state.organization_id = organization

    path = request.url.path
    started = time.perf_counter()
    logger.info("Incoming request %s %s", request.method, path)
    try:
        if (
            path.startswith("/api")
            and path not in MAINTENANCE_EXEMPT_PATHS
            and is_feature_enabled("maintenance_mode")
        ):
            response = _build_error_response(
                request,
                503,
                "MAINTENANCE_MODE",
                "The service is temporarily unavailable for maintenance",
            )
        else:
            response = await call_next(request)

        duration_ms = (time.perf_counter() - started) * 1000
        response.headers["X-Correlation-ID"] = corr
        response.headers["X-Response-Time"] = f"{duration_ms:.2f}ms"
        if path.startswith("/api") and is_feature_enabled("performance_metrics"):
            await _record_request(request, response.status_code, duration_ms)
        return response
    finally:
        correlation_id_var.reset(token_corr)
        organization_id_var.reset(token_org)


def _build_error_response(
    request: Request,
    status_code: int,
    error_type: str,
    message: str,
    details: Any | None = None,
    headers: Dict[str, str] | None = None,
) -> JSONResponse:
    """Build a standardized ErrorResponse JSONResponse."""
    err = ErrorResponse(
        status=status_code,
        error=ErrorInfo(type=error_type, message=message, details=jsonable_encoder(details)),
        correlation_id=getattr(request.state, "correlation_id", None),
        organization_id=getattr(request.state, "organization_id", None),
        path=request.url.path,
        method=request.method,
        timestamp=datetime.now(tz=timezone.utc),
    )
    return JSONResponse(status_code=status_code, content=err.model_dump(mode="json"), headers=headers)


@app.exception_handler(ApiError)
async def api_error_handler(request: Request, exc: ApiError):
    """Domain errors raised by services and dependencies."""
    if exc.status_code >= 500:
        logger.error("API error %s: %s", exc.code, exc.message)
    return _build_error_response(
        request=request,
        status_code=exc.status_code,
        error_type=exc.code,
        message=exc.message,
        details=exc.details,
        headers=exc.headers,
    )


@app.exception_handler(HTTPException)
async def http_exception_handler(request: Request, exc: HTTPException):
    """
    Global handler for HTTPException to produce a standardized error envelope.
    """
    detail = exc.detail if isinstance(exc.detail, str) else "HTTP Error"
    return _build_error_response(
        request=request,
        status_code=exc.status_code,
        error_type="http_error",
        message=str(detail),
        details=None if isinstance(exc.detail, str) else exc.detail,
        headers=getattr(exc, "headers", None),
    )


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    """
    Request validation errors are client errors: 400 with the pydantic error list.
    """
    errors = [{k: v for k, v in e.items() if k not in ("ctx", "url")} for e in exc.errors()]
    return _build_error_response(
        request=request,
        status_code=400,
        error_type="validation_error",
        message="Request validation failed",
        details=errors,
    )


@app.exception_handler(Exception)
async def unhandled_exception_handler(request: Request, exc: Exception):
    """
    Catch-all handler returning 500 with the error message.
    """
    logger.exception("Unhandled error processing request")
    return _build_error_response(
        request=request,
        status_code=500,
        error_type="internal_error",
        message=str(exc) or "An unexpected error occurred",
    )


@app.on_event("startup")
async def on_startup() -> None:
    """
    Run migrations and optional seeding, then wire up the realtime layer.

    Migration and seed failures are logged; the app still starts so health checks can report them.
    """
    if settings.RUN_MIGRATIONS_ON_STARTUP:
        try:
            logger.info("Running Alembic migrations: upgrade head")
            await asyncio.to_thread(run_alembic, ["upgrade", "head"])
            logger.info("Migrations completed.")
        except Exception as exc:
            logger.exception("Migration step failed: %s", exc)

    if settings.AUTO_SEED:
        try:
            logger.info("Running database seeding...")
            await seed_all()
            logger.info("Seeding completed.")
        except SQLAlchemyError as exc:
            logger.exception("Seeding step failed: %s", exc)

    realtime_manager.configure(
        dashboard_provider=realtime_snapshot,
        health_provider=current_health,
        update_interval_seconds=settings.REALTIME_UPDATE_INTERVAL_SECONDS,
    )
    if settings.REALTIME_START_UPDATE_CYCLE and is_feature_enabled("realtime"):
        realtime_manager.start_update_cycle()


@app.on_event("shutdown")
async def on_shutdown() -> None:
    await realtime_manager.stop()
    await dispose_engine()


# Health and version stay outside the rate-limited router
public_api = APIRouter(prefix="/api", tags=["Health"])


async def _check_database() -> ServiceCheck:
    started = time.perf_counter()
    try:
        async with get_session_maker()() as session:
            await session.execute(text("SELECT 1"))
    except (SQLAlchemyError, OSError, ValueError) as exc:
        logger.warning("Health check: database unreachable: %s", exc)
        return ServiceCheck(status="fail", duration_ms=(time.perf_counter() - started) * 1000, message=str(exc))
    return ServiceCheck(status="pass", duration_ms=(time.perf_counter() - started) * 1000)


def _check_configuration() -> ServiceCheck:
    started = time.perf_counter()
    missing = []
    if not (settings.JWT_SECRET_KEY or settings.SUPABASE_JWT_SECRET):
        missing.append("JWT_SECRET_KEY")
    try:
        get_db_settings().database_url
    except ValueError:
        missing.append("POSTGRES_URL")
    duration = (time.perf_counter() - started) * 1000
    if missing:
        return ServiceCheck(status="fail", duration_ms=duration, message=f"Missing configuration: {', '.join(missing)}")
    return ServiceCheck(status="pass", duration_ms=duration)


# PUBLIC_INTERFACE
@public_api.get(
    "/health",
    response_model=ApiHealthResponse,
    summary="Health Check",
    description="Database and configuration checks. 200 when healthy, 503 when any check fails.",
    responses={503: {"model": ApiHealthResponse}},
)
async def health_check() -> JSONResponse:
    checks = {"database": await _check_database(), "configuration": _check_configuration()}
    healthy = all(c.status == "pass" for c in checks.values())
    try:
        version = get_version_info(settings)["version"]
    except ValueError:
        version = settings.APP_VERSION or "unknown"
    body = ApiHealthResponse(
        status="healthy" if healthy else "unhealthy",
        timestamp=datetime.now(tz=timezone.utc),
        version=version,
        environment=settings.ENVIRONMENT,
        uptime_seconds=round(time.monotonic() - STARTED_AT, 3),
        checks=checks,
    )
    return JSONResponse(status_code=200 if healthy else 503, content=body.model_dump(mode="json"))


# PUBLIC_INTERFACE
@public_api.get(
    "/version",
    response_model=Dict[str, Any],
    summary="Version information",
    description="App and package version, parsed semantic version, build metadata and environment.",
)
async def version() -> Dict[str, Any]:
    try:
        return get_version_info(settings)
    except ValueError as exc:
        raise ErrorResponses.internal(str(exc))


api = APIRouter(prefix="/api", dependencies=[Depends(rate_limit)])
api.include_router(auth_router)
api.include_router(users_router)
api.include_router(assessments_router)
api.include_router(dashboard_router)
api.include_router(reports_router)
api.include_router(system_router)
api.include_router(websocket_router)

app.include_router(public_api)
app.include_router(api)
app.include_router(ws_router)
