"""FastAPI application factory."""

from __future__ import annotations

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

import structlog
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from okrsview.config.logging import setup_logging
from okrsview.config.settings import get_settings
from okrsview.exceptions import (
    ConflictError,
    UnauthenticatedError,
    UnauthorizedError,
    ValidationFailedError,
)
from okrsview.web.dependencies import Services, build_services
from okrsview.web.middleware import RateLimitMiddleware, RequestIDMiddleware
from okrsview.web.routes.audit import router as audit_router
from okrsview.web.routes.auth import router as auth_router
from okrsview.web.routes.records import routers as record_routers
from okrsview.web.routes.session import router as session_router
from okrsview.web.routes.tenants import router as tenants_router
from okrsview.web.routes.users import router as users_router
from okrsview.web.routes.validation import router as validation_router

logger = structlog.get_logger(__name__)


def create_app(services: Services | None = None) -> FastAPI:
    """Create and configure the FastAPI application."""
    settings = get_settings()
    setup_logging(log_level=settings.log_level, json_output=not settings.debug)

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        if settings.use_database:
            from okrsview.storage.database import init_db

            await init_db()
        yield
        # Let background audit writes finish before shutdown
        await app.state.services.recorder.drain()

    app = FastAPI(
        title="OKRs View",
        description="Multi-tenant OKR tracking API",
        version="0.1.0",
        lifespan=lifespan,
    )
    app.state.services = services or build_services(settings)

    @app.exception_handler(UnauthenticatedError)
    async def unauthenticated_handler(request: Request, exc: UnauthenticatedError) -> JSONResponse:
        return JSONResponse(status_code=401, content={"detail": str(exc)})

    @app.exception_handler(UnauthorizedError)
    async def unauthorized_handler(request: Request, exc: UnauthorizedError) -> JSONResponse:
        return JSONResponse(status_code=403, content={"detail": exc.reason, "code": exc.code})

    @app.exception_handler(ValidationFailedError)
    async def validation_handler(request: Request, exc: ValidationFailedError) -> JSONResponse:
        return JSONResponse(
            status_code=422,
            content={"detail": "Validation failed", "errors": exc.errors},
        )

    @app.exception_handler(ConflictError)
    async def conflict_handler(request: Request, exc: ConflictError) -> JSONResponse:
        return JSONResponse(status_code=409, content={"detail": str(exc)})

    # Middleware order matters: last added runs first
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.allowed_origins,
        allow_credentials=True,
        allow_methods=["GET", "POST", "PUT", "DELETE"],
        allow_headers=["Content-Type", "Authorization", "X-Request-ID"],
    )
    app.add_middleware(RateLimitMiddleware, max_requests=settings.api_rate_limit)
    app.add_middleware(RequestIDMiddleware)

    app.include_router(auth_router)
    app.include_router(session_router)
    app.include_router(tenants_router)
    app.include_router(users_router)
    app.include_router(audit_router)
    app.include_router(validation_router)
    for router in record_routers:
        app.include_router(router)

    # Health check (public)
    @app.get("/api/health")
    async def health_check() -> dict[str, object]:
        from okrsview.web.health import check_health

        return await check_health()

    logger.info("app_created", use_database=settings.use_database)
    return app
