from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from slowapi import Limiter, _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded
from slowapi.middleware import SlowAPIMiddleware
from slowapi.util import get_remote_address
from sqlalchemy.exc import SQLAlchemyError
from starlette.middleware.cors import CORSMiddleware

from .api.v1.routers.approvals import router as approvals_router
from .api.v1.routers.health import router as health_router
from .api.v1.routers.policies import router as policies_router
from .api.v1.routers.queue import router as queue_router
from .core.config import get_settings, validate_settings
from .core.errors import SourcingError
from .core.logging import configure_structlog, get_logger
from .core.observability import add_prometheus
from .db import get_engine, get_sessionmaker, init_db
from .middleware.logging import RequestLoggingMiddleware
from .services.sla_sweeper import maybe_start_sla_sweeper, maybe_stop_sla_sweeper


def create_app() -> FastAPI:
    settings = get_settings()
    try:
        validate_settings(settings)
    except Exception as exc:  # noqa: BLE001
        raise RuntimeError(f"Invalid configuration: {exc}")

    configure_structlog()
    logger = get_logger(__name__)

    app = FastAPI(title=settings.app_name, version=settings.app_version)

    if settings.rate_limit_enabled:
        limiter = Limiter(
            key_func=get_remote_address,
            default_limits=[f"{settings.rate_limit_per_min}/minute"],
        )
        app.state.limiter = limiter
        app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)
        app.add_middleware(SlowAPIMiddleware)
        logger.info("rate_limiting.enabled", limit_per_min=settings.rate_limit_per_min)
    else:
        logger.info("rate_limiting.disabled")

    @app.exception_handler(SourcingError)
    async def sourcing_exception_handler(request: Request, exc: SourcingError) -> JSONResponse:
        """Map the domain error taxonomy onto HTTP status codes."""
        logger.info(
            "request.rejected",
            path=request.url.path,
            error_code=exc.error_code,
            detail=exc.detail,
        )
        return JSONResponse(
            status_code=exc.status_code,
            content={"detail": exc.detail, "error_code": exc.error_code},
        )

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(
        request: Request, exc: RequestValidationError
    ) -> JSONResponse:
        logger.warning(
            "request.validation_error",
            path=request.url.path,
            errors=exc.errors(),
        )
        return JSONResponse(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            content={"detail": "Validation error", "errors": jsonable_errors(exc)},
        )

    @app.exception_handler(SQLAlchemyError)
    async def sqlalchemy_exception_handler(
        request: Request, exc: SQLAlchemyError
    ) -> JSONResponse:
        logger.error(
            "request.database_error",
            path=request.url.path,
            error=str(exc),
            exc_info=True,
        )
        return JSONResponse(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            content={"detail": "Database error occurred"},
        )

    @app.exception_handler(Exception)
    async def general_exception_handler(request: Request, exc: Exception) -> JSONResponse:
        logger.error(
            "request.unhandled_exception",
            path=request.url.path,
            method=request.method,
            error=str(exc),
            error_type=type(exc).__name__,
            exc_info=True,
        )
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={"detail": "Internal server error"},
        )

    # Later middleware wraps earlier ones; request logging stays outermost
    app.add_middleware(RequestLoggingMiddleware)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_allow_origins,
        allow_credentials=settings.cors_allow_credentials,
        allow_methods=settings.cors_allow_methods,
        allow_headers=settings.cors_allow_headers,
        max_age=settings.cors_max_age,
    )
    logger.info(
        "cors.configured",
        allow_origins=settings.cors_allow_origins,
        allow_credentials=settings.cors_allow_credentials,
    )

    if settings.metrics_enabled:
        add_prometheus(app, app_name="sourcing")

    @app.on_event("startup")
    def on_startup() -> None:  # noqa: D401
        logger.info("startup.init_db_pool")
        get_engine()
        if settings.db_auto_create:
            init_db()
        maybe_start_sla_sweeper(app, lambda: get_sessionmaker()())

    @app.on_event("shutdown")
    def on_shutdown() -> None:  # noqa: D401
        maybe_stop_sla_sweeper(app)

    app.include_router(health_router)
    app.include_router(approvals_router)
    app.include_router(policies_router)
    app.include_router(queue_router)

    @app.get("/")
    def root() -> dict:
        return {"service": "sourcing", "status": "ok", "version": settings.app_version}

    return app


def jsonable_errors(exc: RequestValidationError) -> list[dict]:
    """Validation errors without the raw ``ctx`` objects, which may not serialize."""
    return [
        {key: value for key, value in error.items() if key != "ctx"}
        for error in exc.errors()
    ]


app = create_app()
