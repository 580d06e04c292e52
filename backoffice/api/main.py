import logging
from contextlib import asynccontextmanager
from typing import Awaitable, Callable, Optional

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from backoffice.api.deps import backend_session_resolver
from backoffice.api.middleware.route_guard import RouteGuardMiddleware, default_error_message
from backoffice.api.routers import health, shell
from backoffice.common.logger import setup_logger
from backoffice.core.config import Settings, get_settings
from backoffice.core.rbac.roles import DEFAULT_CATALOG, RoleCatalog
from backoffice.core.session.models import Session
from backoffice.services.backend import BackendClient

logger = logging.getLogger(__name__)

SessionResolver = Callable[[Request], Awaitable[Optional[Session]]]


def load_role_catalog(settings: Settings) -> RoleCatalog:
    """Static catalog, replaced by the configured YAML file when there is one."""
    if settings.role_catalog_path:
        catalog = RoleCatalog.from_yaml(settings.role_catalog_path)
        logger.info(f"Loaded {len(catalog)} roles from {settings.role_catalog_path}")
        return catalog
    return DEFAULT_CATALOG


def create_app(
    settings: Optional[Settings] = None,
    *,
    session_resolver: Optional[SessionResolver] = None,
    role_catalog: Optional[RoleCatalog] = None,
) -> FastAPI:
    settings = settings or get_settings()
    setup_logger(
        "backoffice",
        level=settings.log_level,
        log_dir=settings.log_dir,
        file_logging=settings.file_logging,
    )

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        if settings.load_remote_role_catalog and role_catalog is None:
            app.state.role_catalog = await app.state.backend.fetch_role_catalog()
            logger.info(f"Loaded {len(app.state.role_catalog)} roles from backend")
        yield

    app = FastAPI(
        title=settings.app_name,
        description="Section access control and session guard for the staff dashboard",
        version=health.VERSION,
        docs_url="/docs" if settings.debug else None,
        redoc_url="/redoc" if settings.debug else None,
        lifespan=lifespan,
    )

    app.state.settings = settings
    app.state.backend = BackendClient(
        settings.backend_origin,
        timeout=settings.backend_timeout,
        expiration_header=settings.session_expiration_header,
    )
    app.state.role_catalog = role_catalog if role_catalog is not None else load_role_catalog(settings)
    app.state.session_resolver = session_resolver or backend_session_resolver

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"] if settings.debug else settings.cors_origins_list,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Route guard - must run before any page is produced
    app.add_middleware(RouteGuardMiddleware)

    @app.exception_handler(StarletteHTTPException)
    async def http_error_handler(request: Request, exc: StarletteHTTPException):
        message = exc.detail if isinstance(exc.detail, str) and exc.detail.strip() else None
        return JSONResponse(
            {"statusCode": exc.status_code, "message": message or default_error_message(exc.status_code)},
            status_code=exc.status_code,
            headers=getattr(exc, "headers", None),
        )

    app.include_router(health.router)
    app.include_router(shell.router)

    return app


app = create_app()
