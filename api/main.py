"""
Land Sales Engine API - Main Application.

FastAPI application with CORS enabled for frontend communication. Engine
errors are mapped to localized, non-technical error bodies here so the
routers only deal with the happy path.
"""

import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from api import __version__
from domain.errors import (
    ConsistencyConflictError,
    EntityNotFoundError,
    InvalidScheduleError,
    SaleOperationError,
    SalesEngineError,
    StorageError,
    TransientStorageError,
    ValidationError,
)
from repositories.client import create_supabase_client
from services.engine import SalesEngine, build_engine
from services.loader import LoadSupersededError
from services.messages import error_message, message_for_error, resolve_language
from services.settings import EngineSettings

logger = logging.getLogger(__name__)


def configure_logging(level: str = "INFO") -> None:
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


def _status_for(exc: SalesEngineError) -> int:
    if isinstance(exc, ValidationError):
        return 422
    if isinstance(exc, EntityNotFoundError):
        return 404
    if isinstance(exc, ConsistencyConflictError):
        return 409
    if isinstance(exc, InvalidScheduleError):
        return 422
    if isinstance(exc, TransientStorageError):
        return 503
    if isinstance(exc, SaleOperationError):
        return 409 if exc.is_conflict else 500
    if isinstance(exc, StorageError):
        return 500
    return 500


def _error_body(code: str, detail: str, status_code: int, **extra) -> dict:
    body = {"error": code, "detail": detail, "status_code": status_code}
    body.update({key: value for key, value in extra.items() if value is not None})
    return body


async def engine_error_handler(request: Request, exc: SalesEngineError) -> JSONResponse:
    language = resolve_language(request.headers.get("accept-language"))
    status_code = _status_for(exc)

    if isinstance(exc, SaleOperationError):
        code = "operation_failed" if exc.compensated else "operation_partially_failed"
        if exc.is_conflict:
            code = exc.cause.code
        body = _error_body(
            code,
            error_message(code, language),
            status_code,
            failed_operation=exc.failed_operation,
        )
    else:
        body = _error_body(
            exc.code,
            message_for_error(exc, language),
            status_code,
            field=getattr(exc, "field", None),
        )

    if status_code >= 500:
        logger.error(f"{request.method} {request.url.path} failed: {exc}")
    else:
        logger.info(f"{request.method} {request.url.path} rejected ({exc.code}): {exc}")

    return JSONResponse(status_code=status_code, content=body)


async def load_superseded_handler(request: Request, exc: LoadSupersededError) -> JSONResponse:
    language = resolve_language(request.headers.get("accept-language"))
    return JSONResponse(
        status_code=409,
        content=_error_body("load_superseded", error_message("load_superseded", language), 409),
    )


def create_app(engine: Optional[SalesEngine] = None) -> FastAPI:
    """
    Build the application.

    When no engine is given, one is built at startup from the Supabase
    credentials and the engine settings in the environment.
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        if app.state.engine is None:
            settings = EngineSettings.from_env()
            configure_logging(settings.log_level)
            client = await create_supabase_client()
            app.state.engine = build_engine(client, settings)
            logger.info("Sales engine ready")
        yield

    app = FastAPI(
        title="Land Sales Engine API",
        description="REST API for reserving, confirming and cancelling land piece sales",
        version=__version__,
        docs_url="/docs",
        redoc_url="/redoc",
        lifespan=lifespan,
    )
    app.state.engine = engine

    # Configure CORS - Allow all origins for development
    # TODO: Restrict origins once the admin frontend has a fixed domain
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.add_exception_handler(SalesEngineError, engine_error_handler)
    app.add_exception_handler(LoadSupersededError, load_superseded_handler)

    @app.get("/health", tags=["Health"])
    def health_check():
        """
        Health check endpoint.

        Returns the API status and version.
        """
        return {
            "status": "healthy",
            "version": __version__,
            "service": "land-sales-engine-api",
        }

    @app.get("/", tags=["Root"])
    def root():
        """
        Root endpoint with API information.
        """
        return {
            "message": "Land Sales Engine API",
            "version": __version__,
            "docs": "/docs",
            "health": "/health",
        }

    # Import and include routers
    from api.routers import pieces, quotes, sales

    app.include_router(pieces.router, prefix="/api/v1", tags=["Pieces"])
    app.include_router(quotes.router, prefix="/api/v1", tags=["Quotes"])
    app.include_router(sales.router, prefix="/api/v1", tags=["Sales"])

    return app


app = create_app()
