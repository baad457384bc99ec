"""
Main FastAPI application creation and configuration.
"""

import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import PlainTextResponse
from fastapi.staticfiles import StaticFiles

from .. import __version__
from ..config.settings import (
    ServerConfig,
    build_server_config,
    configure_logging,
    get_settings,
)
from ..rag.exceptions import RAGError
from ..utils.logging import log_event, log_operation_error, new_correlation_id
from .api.dependencies import set_service_container
from .api.error_formatting import (
    create_error_metadata,
    error_response,
    request_validation_error,
)
from .api.router import get_api_router
from .service_container import ServiceContainer

REQUEST_ID_HEADER = "X-Request-ID"


def create_app(
    config: Optional[ServerConfig] = None,
    container: Optional[ServiceContainer] = None,
) -> FastAPI:
    """
    Create the FastAPI application.

    Args:
        config: Server configuration (built from environment settings if None)
        container: Prebuilt service container (built from config if None)

    Raises:
        ConfigurationError: If the environment settings are invalid
    """
    if config is None:
        config = container.config if container else build_server_config(get_settings())

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Application lifespan manager."""
        configure_logging(level=config.log_level)
        services = container or ServiceContainer(config)
        await services.initialize()
        set_service_container(services)
        log_event(
            "server_started",
            {
                "chat_model": config.bindings.chat.alias,
                "embedding_model": config.bindings.embedding.alias,
                "prompt_template": config.prompt_template.value,
                "web_ui": str(config.web_ui) if config.web_ui else None,
            },
        )
        yield
        set_service_container(None)
        await services.cleanup()

    app = FastAPI(
        title="ragbridge",
        description="Retrieval-augmented OpenAI-compatible chat completion server",
        version=__version__,
        lifespan=lifespan,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.middleware("http")
    async def correlation_id_middleware(request: Request, call_next):
        """Give every request a fresh correlation id."""
        correlation_id = new_correlation_id()
        response = await call_next(request)
        response.headers[REQUEST_ID_HEADER] = correlation_id
        return response

    @app.exception_handler(RAGError)
    async def rag_error_handler(request: Request, exc: RAGError):
        level = logging.ERROR if exc.status_code >= 500 else logging.WARNING
        log_event(
            "request_failed",
            {"path": request.url.path, **create_error_metadata(exc)},
            level=level,
        )
        return error_response(exc)

    @app.exception_handler(RequestValidationError)
    async def request_validation_handler(request: Request, exc: RequestValidationError):
        error = request_validation_error(exc.errors())
        log_event(
            "request_invalid",
            {"path": request.url.path, **create_error_metadata(error)},
            level=logging.WARNING,
        )
        return error_response(error)

    @app.exception_handler(Exception)
    async def unhandled_error_handler(request: Request, exc: Exception):
        log_operation_error("http_request", exc, path=request.url.path)
        return error_response(RAGError(str(exc)))

    @app.get("/echo", response_class=PlainTextResponse)
    async def echo():
        """Liveness acknowledgment."""
        return "echo test"

    @app.get("/health")
    async def health_check():
        """Health check endpoint."""
        return {
            "status": "healthy",
            "version": __version__,
            "chat_model": config.bindings.chat.alias,
            "embedding_model": config.bindings.embedding.alias,
        }

    app.include_router(get_api_router())

    # Everything not matched above is a web UI asset
    if config.web_ui is not None:
        app.mount("/", StaticFiles(directory=config.web_ui, html=True), name="web_ui")

    return app


def main() -> None:
    """Run the server with uvicorn using environment settings."""
    import uvicorn

    settings = get_settings()
    uvicorn.run(
        "ragbridge.server.main:create_app",
        host=settings.host,
        port=settings.port,
        factory=True,
    )


if __name__ == "__main__":
    main()
