from __future__ import annotations

from contextlib import asynccontextmanager
import logging

from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse

from orgauthz.errors import MembershipNotFound, NotAuthenticated, RoleNotAssignable, StoreUnavailable
from orgauthz.logging_config import configure_app_logging
from orgauthz.permissions.registry import load_registry_file
from orgauthz.routers import audit, permissions
from orgauthz.settings import get_settings

logger = logging.getLogger(__name__)


def _error_response(status_code: int, detail: str) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"detail": detail})


def register_error_handlers(app: FastAPI) -> None:
    @app.exception_handler(NotAuthenticated)
    async def _not_authenticated(request: Request, exc: NotAuthenticated) -> JSONResponse:
        return _error_response(status.HTTP_401_UNAUTHORIZED, "Authentication required")

    @app.exception_handler(MembershipNotFound)
    async def _membership_not_found(request: Request, exc: MembershipNotFound) -> JSONResponse:
        return _error_response(status.HTTP_404_NOT_FOUND, str(exc))

    @app.exception_handler(RoleNotAssignable)
    async def _role_not_assignable(request: Request, exc: RoleNotAssignable) -> JSONResponse:
        return _error_response(status.HTTP_409_CONFLICT, str(exc))

    @app.exception_handler(StoreUnavailable)
    async def _store_unavailable(request: Request, exc: StoreUnavailable) -> JSONResponse:
        # Fail closed: the caller gets no answer, never a partial one.
        logger.error("Permission store unavailable path=%s", request.url.path)
        return _error_response(status.HTTP_503_SERVICE_UNAVAILABLE, "Permission store unavailable")


def create_app() -> FastAPI:
    @asynccontextmanager
    async def lifespan(app: FastAPI):
        # Startup
        settings = get_settings()
        configure_app_logging(settings.log_level)
        logger.info("App startup beginning")

        registry_file = load_registry_file(settings.resolved_registry_path())
        app.state.registry = registry_file.registry
        logger.info(
            "Loaded permission registry: %s (%d codes)",
            settings.resolved_registry_path(),
            len(registry_file.registry),
        )

        from orgauthz.db.init_db import init_db

        init_db(registry_file)
        logger.info("Database initialized (tables ensured + catalog seeded)")

        yield

    app = FastAPI(title="orgauthz", lifespan=lifespan)
    register_error_handlers(app)

    app.include_router(permissions.router)
    app.include_router(audit.router)

    return app


app = create_app()
