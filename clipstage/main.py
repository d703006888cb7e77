import logging
from contextlib import asynccontextmanager
from typing import AsyncGenerator

from fastapi import FastAPI, HTTPException, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from clipstage.api import approvals, cache, player
from clipstage.api.deps import Services
from clipstage.config import Settings, get_settings
from clipstage.constants.error_codes import get_error_spec
from clipstage.exceptions import ClipstageError
from clipstage.schemas.envelope import ErrorInfo, ErrorResponse
from clipstage.schemas.player import HealthResponse
from clipstage.services.container import ServiceContainer, build_services

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    services: ServiceContainer = app.state.services
    # Startup
    await services.startup()
    yield
    # Shutdown
    await services.shutdown()


async def clipstage_error_handler(request: Request, exc: ClipstageError) -> JSONResponse:
    if exc.status_code >= 500:
        logger.error(f"{request.method} {request.url.path} failed: {exc}")
    else:
        logger.warning(f"{request.method} {request.url.path}: {exc}")
    body = ErrorResponse(error=exc.to_error_info())
    return JSONResponse(status_code=exc.status_code, content=body.model_dump(exclude_none=True))


async def validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    errors = exc.errors()
    if errors:
        first_error = errors[0]
        loc = " -> ".join(str(x) for x in first_error.get("loc", []))
        msg = first_error.get("msg", "Validation error")
        message = f"{loc}: {msg}" if loc else msg
    else:
        message = "Request validation failed"
    spec = get_error_spec("VALIDATION_ERROR")
    error = ErrorInfo(
        code="VALIDATION_ERROR",
        message=message,
        retryable=spec.get("retryable", False),
        suggested_action=spec.get("suggested_action"),
    )
    return JSONResponse(status_code=422, content=ErrorResponse(error=error).model_dump(exclude_none=True))


async def http_exception_handler(request: Request, exc: HTTPException) -> JSONResponse:
    return JSONResponse(status_code=exc.status_code, content={"detail": exc.detail})


async def global_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.exception(f"Unhandled exception on {request.method} {request.url.path}: {exc}")
    return JSONResponse(status_code=500, content={"detail": "Internal server error"})


def create_app(
    settings: Settings | None = None,
    services: ServiceContainer | None = None,
) -> FastAPI:
    settings = settings or get_settings()
    app = FastAPI(
        title=settings.app_name,
        version=settings.app_version,
        lifespan=lifespan,
    )
    app.state.services = services or build_services(settings)

    # The embed page and the chat bot call from other origins
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["GET", "POST", "PUT", "DELETE", "OPTIONS"],
        allow_headers=["*"],
    )

    app.add_exception_handler(ClipstageError, clipstage_error_handler)
    app.add_exception_handler(RequestValidationError, validation_exception_handler)
    app.add_exception_handler(HTTPException, http_exception_handler)
    app.add_exception_handler(Exception, global_exception_handler)

    # Routers
    app.include_router(player.router, tags=["player"])
    app.include_router(approvals.router, prefix="/api", tags=["approvals"])
    app.include_router(cache.router, prefix="/api/cache", tags=["cache"])

    @app.get("/health", response_model=HealthResponse)
    async def health_check(services: Services) -> HealthResponse:
        return HealthResponse(
            status="healthy",
            version=settings.app_version,
            state=services.playback.state.value,
            details={"queueSize": services.playback.queue_size, "port": services.host.port},
        )

    return app


app = create_app()
