import traceback
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from slowapi import Limiter
from slowapi.errors import RateLimitExceeded
from slowapi.middleware import SlowAPIMiddleware
from slowapi.util import get_remote_address
from starlette.exceptions import HTTPException as StarletteHTTPException

from regadmin.clients.backend_client import BackendClient, BackendError
from regadmin.config import Settings, load_settings
from regadmin.logging_config import get_logger, setup_logging
from regadmin.routers import admin

logger = get_logger(__name__)

ADMIN_PREFIX = "/api/admin"
RATE_LIMIT_MESSAGE = "Too many requests, please try again later."


def _error_response(status_code: int, message: str) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"error": message})


def rate_limit_exceeded_handler(request: Request, exc: RateLimitExceeded) -> JSONResponse:
    # Sync: the limiter middleware calls this directly
    logger.warning(
        "Rate limit exceeded",
        extra={"path": request.url.path, "client": get_remote_address(request), "limit": str(exc.detail)},
    )
    return _error_response(429, RATE_LIMIT_MESSAGE)


def _register_exception_handlers(app: FastAPI) -> None:
    @app.exception_handler(StarletteHTTPException)
    async def http_exception_handler(request: Request, exc: StarletteHTTPException):
        return JSONResponse(
            status_code=exc.status_code,
            content={"error": str(exc.detail)},
            headers=getattr(exc, "headers", None),
        )

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(request: Request, exc: RequestValidationError):
        errors = exc.errors()
        if errors:
            first = errors[0]
            loc = ".".join(str(part) for part in first.get("loc", ()) if part != "body")
            message = f"{loc}: {first.get('msg')}" if loc else str(first.get("msg"))
        else:
            message = "invalid request"
        return _error_response(400, message)

    @app.exception_handler(BackendError)
    async def backend_exception_handler(request: Request, exc: BackendError):
        logger.error(
            f"Backend error: {exc.message}",
            extra={
                "path": request.url.path,
                "method": request.method,
                "backend_status": exc.status_code,
            },
        )
        return _error_response(500, exc.message)

    # Global exception handler to ensure JSON responses for all errors
    @app.exception_handler(Exception)
    async def global_exception_handler(request: Request, exc: Exception):
        logger.error(
            f"Unhandled exception: {exc}",
            extra={
                "path": request.url.path,
                "method": request.method,
                "traceback": traceback.format_exc(),
            },
        )
        return _error_response(500, str(exc) or type(exc).__name__)


def create_app(
    settings: Optional[Settings] = None,
    backend: Optional[BackendClient] = None,
) -> FastAPI:
    """
    Build the application.

    Args:
        settings: validated settings; loaded from the environment when omitted
            (the process exits if required values are missing)
        backend: backend client to use instead of one built from settings
    """
    settings = settings or load_settings()
    setup_logging(
        log_level=settings.log_level,
        log_format=settings.log_format,
        service=settings.app_name,
    )

    if backend is None:
        backend = BackendClient(
            base_url=settings.supabase_url,
            service_key=settings.supabase_service_role_key,
            timeout_seconds=settings.backend_timeout_seconds,
        )

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Application lifespan events."""
        logger.info(
            "Starting application",
            extra={
                "app_name": settings.app_name,
                "version": settings.app_version,
                "environment": settings.environment,
                "port": settings.port,
            },
        )
        yield
        app.state.backend.close()
        logger.info("Shutting down application")

    app = FastAPI(
        title=settings.app_name,
        version=settings.app_version,
        lifespan=lifespan,
    )
    app.state.settings = settings
    app.state.backend = backend
    app.state.limiter = Limiter(
        key_func=get_remote_address,
        application_limits=[settings.rate_limit],
        enabled=settings.rate_limit_enabled,
    )

    # Reject oversize uploads from the declared length, before the body is read
    @app.middleware("http")
    async def limit_upload_size(request: Request, call_next):
        declared = request.headers.get("content-length")
        if declared and declared.isdigit() and int(declared) > settings.max_upload_bytes:
            return _error_response(413, "file too large")
        return await call_next(request)

    app.add_middleware(SlowAPIMiddleware)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins_list,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    _register_exception_handlers(app)
    app.add_exception_handler(RateLimitExceeded, rate_limit_exceeded_handler)

    app.include_router(admin.router, prefix=ADMIN_PREFIX, tags=["admin"])

    @app.get("/health")
    async def health():
        """Liveness check for container orchestration and load balancers."""
        return {
            "status": "ok",
            "app_name": settings.app_name,
            "version": settings.app_version,
            "environment": settings.environment,
            "timestamp": datetime.now(timezone.utc).isoformat(),
        }

    return app
