import logging
from contextlib import asynccontextmanager
from typing import Optional

import uvicorn
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from smb_context import __version__
from smb_context.api.routers.query import router as query_router
from smb_context.config import EngineSettings, configure_logging
from smb_context.engine.context_engine import ContextEngine
from smb_context.errors import BusinessNotFoundError, DataSourceError, ValidationError
from smb_context.models.responses import ErrorResponse, HealthResponse

logger = logging.getLogger(__name__)

SERVICE_NAME = "SMB Business Context Engine"


def _error(status_code: int, error: ErrorResponse) -> JSONResponse:
    return JSONResponse(status_code=status_code, content=error.model_dump(by_alias=True))


def create_app(engine: Optional[ContextEngine] = None, settings: Optional[EngineSettings] = None) -> FastAPI:
    """
    Build the API application.

    The engine is created once here (from environment settings unless one is
    passed in) and shared by every request through app.state. An engine
    built here is closed when the application shuts down; a passed-in engine
    stays owned by the caller.
    """
    owns_engine = engine is None
    if engine is None:
        settings = settings or EngineSettings.from_env()
        configure_logging(settings.log_level)
        engine = ContextEngine.from_settings(settings)
    model_name = getattr(engine.llm, "model_name", None)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        yield
        if owns_engine:
            logger.info("Closing context engine")
            engine.close()

    app = FastAPI(
        lifespan=lifespan,
        title="SMB Business Context Engine API",
        description="Context-grounded answers, insights and automation ideas for small businesses",
        version=__version__,
    )
    app.state.engine = engine

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.include_router(query_router)

    @app.get("/")
    async def root():
        """Root endpoint with API information"""
        return {
            "message": SERVICE_NAME,
            "version": __version__,
            "endpoints": {
                "query": "/context/query - POST - Answer a business query with context",
                "docs": "/docs - Interactive API documentation",
                "health": "/health - Health check",
            },
        }

    @app.get("/health", response_model=HealthResponse)
    async def health_check():
        """Health check endpoint"""
        return HealthResponse(
            status="degraded" if engine.degraded else "healthy",
            service=SERVICE_NAME,
            version=__version__,
            llm_configured=not engine.degraded,
            degraded=engine.degraded,
            model=model_name,
        )

    @app.exception_handler(ValidationError)
    async def validation_error_handler(request: Request, exc: ValidationError):
        return _error(422, ErrorResponse(error=str(exc), error_code="VALIDATION_ERROR", details=exc.errors))

    @app.exception_handler(RequestValidationError)
    async def request_validation_handler(request: Request, exc: RequestValidationError):
        details = [
            {"field": ".".join(str(p) for p in err.get("loc", ())), "message": err.get("msg", "")}
            for err in exc.errors()
        ]
        return _error(422, ErrorResponse(error="Invalid request", error_code="VALIDATION_ERROR", details=details))

    @app.exception_handler(BusinessNotFoundError)
    async def not_found_handler(request: Request, exc: BusinessNotFoundError):
        return _error(404, ErrorResponse(error=str(exc), error_code="BUSINESS_NOT_FOUND"))

    @app.exception_handler(DataSourceError)
    async def data_source_handler(request: Request, exc: DataSourceError):
        return _error(503, ErrorResponse(error=str(exc), error_code="DATA_SOURCE_ERROR", retryable=exc.retryable))

    @app.exception_handler(Exception)
    async def general_exception_handler(request: Request, exc: Exception):
        logger.exception("Unhandled error while processing request")
        return _error(500, ErrorResponse(error=f"Internal server error: {exc}", error_code="INTERNAL_ERROR"))

    return app


def run(host: str = "0.0.0.0", port: int = 8000, reload: bool = False) -> None:
    uvicorn.run(
        "smb_context.api.main:create_app",
        factory=True,
        host=host,
        port=port,
        reload=reload,
        log_level="info",
    )


if __name__ == "__main__":
    run(reload=True)
