"""
main.py
-------
FastAPI application factory and entry point.

Application lifecycle:
  1. App is created by create_application().
  2. lifespan context manager runs on startup / shutdown.
  3. Routers are registered.
  4. Exception handlers turn domain errors into {"success": false, "message"}
     bodies, request validation failures into 400s of the same shape, and
     anything unexpected into a generic 500.

Run with:
    uvicorn main:app --reload              # development
    uvicorn main:app --workers 4           # production (no --reload)
"""

from contextlib import asynccontextmanager
from typing import AsyncGenerator

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from gymdesk.api.routes import auth, members, payments, plans, roles, staff, tenants
from gymdesk.core.config import settings
from gymdesk.core.errors import GymDeskError
from gymdesk.core.logging import (
    bind_request_context,
    clear_request_context,
    configure_logging,
    get_logger,
)
from gymdesk.db.session import engine

logger = get_logger(__name__)


def validation_message(exc: RequestValidationError) -> str:
    """First validation error as "Invalid <field>: <reason>"."""
    errors = exc.errors()
    if not errors:
        return "Invalid request"
    first = errors[0]
    field = ".".join(str(part) for part in first.get("loc", ()) if part != "body")
    reason = first.get("msg", "invalid value")
    return f"Invalid {field}: {reason}" if field else f"Invalid request: {reason}"


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator:
    """
    Startup / shutdown lifecycle hook.

    Startup:
      - Configure structured logging

    Shutdown:
      - Dispose the async engine (graceful connection pool drain)
    """
    configure_logging()
    logger.info(
        "Starting up",
        app=settings.APP_NAME,
        env=settings.APP_ENV,
        debug=settings.DEBUG,
    )
    yield
    logger.info("Shutting down, disposing DB engine")
    await engine.dispose()


def create_application() -> FastAPI:
    app = FastAPI(
        title=settings.APP_NAME,
        description=(
            "Multi-tenant gym back office: session auth, role-based "
            "permissions, tenant isolation and membership lifecycle."
        ),
        version="1.0.0",
        docs_url="/docs",
        redoc_url="/redoc",
        openapi_url="/openapi.json",
        lifespan=lifespan,
    )

    # ── CORS ─────────────────────────────────────────────────────────────────
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.ALLOWED_ORIGINS,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # ── Request log context ──────────────────────────────────────────────────
    @app.middleware("http")
    async def request_log_context(request: Request, call_next):
        clear_request_context()
        bind_request_context(method=request.method, path=request.url.path)
        return await call_next(request)

    # ── Routers ───────────────────────────────────────────────────────────────
    app.include_router(tenants.router)
    app.include_router(auth.router)
    app.include_router(roles.router)
    app.include_router(staff.router)
    app.include_router(plans.router)
    app.include_router(members.router)
    app.include_router(payments.router)

    # ── Exception Handlers ────────────────────────────────────────────────────

    @app.exception_handler(GymDeskError)
    async def domain_error_handler(request: Request, exc: GymDeskError) -> JSONResponse:
        if exc.status_code >= status.HTTP_500_INTERNAL_SERVER_ERROR:
            logger.error("Domain error", path=request.url.path, error=exc.message)
        return JSONResponse(
            status_code=exc.status_code,
            content={"success": False, "message": exc.message},
            headers=exc.headers,
        )

    @app.exception_handler(RequestValidationError)
    async def validation_error_handler(
        request: Request, exc: RequestValidationError
    ) -> JSONResponse:
        return JSONResponse(
            status_code=status.HTTP_400_BAD_REQUEST,
            content={"success": False, "message": validation_message(exc)},
        )

    @app.exception_handler(Exception)
    async def unhandled_exception_handler(
        request: Request, exc: Exception
    ) -> JSONResponse:
        logger.error(
            "Unhandled exception",
            path=request.url.path,
            method=request.method,
            error=str(exc),
            exc_info=True,
        )
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={"success": False, "message": "Internal server error"},
        )

    # ── Health Check ──────────────────────────────────────────────────────────

    @app.get("/health", tags=["Health"], summary="Service health check")
    async def health() -> dict:
        return {"status": "ok", "app": settings.APP_NAME, "env": settings.APP_ENV}

    return app


app = create_application()
