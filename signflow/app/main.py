import sys
import logging
from contextlib import asynccontextmanager
from importlib.metadata import version, PackageNotFoundError
from typing import Optional

import uvicorn
from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from signflow.app.api.documents import router as documents_router
from signflow.app.config import Settings, get_settings
from signflow.app.errors import SignFlowError

logger = logging.getLogger("signflow.main")

SECURITY_HEADERS = {
    "X-Content-Type-Options": "nosniff",
    "X-Frame-Options": "DENY",
    "Referrer-Policy": "strict-origin-when-cross-origin",
    "Permissions-Policy": "camera=(), microphone=(), geolocation=()",
}


def get_app_version() -> str:
    """
    Resolve application version deterministically.

    Falls back to the source-tree version when not installed.
    """
    try:
        return version("signflow")
    except PackageNotFoundError:
        return "0.1.0"


def configure_logging(settings: Settings) -> None:
    logging.basicConfig(
        level=settings.log_level,
        stream=sys.stderr,
        format="%(asctime)s %(levelname)s %(name)s %(message)s",
    )


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Application lifespan manager.

    Guarantees:
    - Logging is configured from settings before the first request
    - Storage directory exists before the first request
    """
    settings: Settings = app.state.settings
    configure_logging(settings)

    settings.storage_dir.mkdir(parents=True, exist_ok=True)

    logger.info(
        "signflow_startup_complete",
        extra={
            "service": "signflow",
            "version": get_app_version(),
            "storage_dir": str(settings.storage_dir),
        },
    )

    try:
        yield
    finally:
        logger.info("signflow_shutdown")


# =============================================================================
# Error translation
# =============================================================================


async def handle_signflow_error(request: Request, exc: SignFlowError) -> JSONResponse:
    level = logging.ERROR if exc.status_code >= 500 else logging.WARNING
    logger.log(
        level,
        "request_failed",
        exc_info=exc if exc.status_code >= 500 else None,
        extra={
            "path": request.url.path,
            "error_code": exc.code,
            "status_code": exc.status_code,
            "detail": exc.message,
        },
    )
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


async def handle_request_validation_error(
    request: Request,
    exc: RequestValidationError,
) -> JSONResponse:
    errors = exc.errors()
    first = errors[0] if errors else {}
    location = ".".join(str(part) for part in first.get("loc", ()))
    message = first.get("msg", "Invalid request")

    return JSONResponse(
        status_code=422,
        content={
            "error": {
                "code": "VALIDATION_ERROR",
                "message": f"{location}: {message}" if location else message,
            }
        },
    )


async def handle_unexpected_error(request: Request, exc: Exception) -> JSONResponse:
    logger.exception(
        "unhandled_request_failure",
        extra={
            "path": request.url.path,
            "error_type": type(exc).__name__,
        },
    )
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={
            "error": {
                "code": "INTERNAL_ERROR",
                "message": "An unexpected error occurred.",
            }
        },
    )


# =============================================================================
# Application factory
# =============================================================================


def create_app(settings: Optional[Settings] = None) -> FastAPI:
    """
    Application factory for the SignFlow document service.

    ``settings`` is loaded from the environment when omitted.
    """
    # ------------------------------------------------------------------
    # Load and validate configuration (FAIL FAST)
    # ------------------------------------------------------------------
    if settings is None:
        try:
            settings = get_settings()
        except Exception:
            logger.exception("invalid_signflow_configuration")
            raise

    app = FastAPI(
        title="SignFlow",
        description=(
            "DOCX to sanitized HTML to PDF pipeline "
            "with visual signature stamping."
        ),
        version=get_app_version(),
        docs_url="/docs",
        redoc_url=None,
        lifespan=lifespan,
    )

    app.state.settings = settings

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_allow_origins,
        allow_credentials=False,
        allow_methods=["GET", "POST"],
        allow_headers=["*"],
    )

    @app.middleware("http")
    async def security_headers(request: Request, call_next):
        response = await call_next(request)
        for header, value in SECURITY_HEADERS.items():
            response.headers[header] = value
        return response

    app.add_exception_handler(SignFlowError, handle_signflow_error)
    app.add_exception_handler(RequestValidationError, handle_request_validation_error)
    app.add_exception_handler(Exception, handle_unexpected_error)

    app.include_router(documents_router, prefix="/documents")

    @app.get(
        "/healthz",
        tags=["Monitoring"],
        summary="Liveness and readiness check",
    )
    async def health_check():
        """
        Verifies that the runtime is alive.

        NOTE:
        - Does NOT launch the render engine
        """
        return {
            "status": "ok",
            "service": "signflow",
            "version": app.version,
            "runtime": f"python {sys.version.split()[0]}",
        }

    return app


app = create_app()


def run() -> None:
    """Serve the application with uvicorn on the configured address."""
    settings = get_settings()
    uvicorn.run(
        "signflow.app.main:app",
        host=settings.host,
        port=settings.port,
        log_level=settings.log_level.lower(),
    )
