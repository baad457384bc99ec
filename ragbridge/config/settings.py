"""
Application settings and configuration.
"""

import logging
import sys
from dataclasses import dataclass
from pathlib import Path
from typing import List, Optional
from urllib.parse import urlparse

from pydantic import Field
from pydantic_settings import BaseSettings

from ..rag.exceptions import ConfigurationError
from ..rag.templates import PromptTemplateType
from ..rag.types import ModelBindings, VectorStoreConfig

LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")


class Settings(BaseSettings):
    """Application settings with environment variable support."""

    # Models (chat first, embedding second)
    model_name: str = Field(
        default="", description="Comma-separated chat and embedding model names"
    )
    model_alias: str = Field(
        default="default,embedding",
        description="Comma-separated chat and embedding model aliases",
    )
    ctx_size: str = Field(
        default="4096,384",
        description="Comma-separated chat and embedding context sizes",
    )
    prompt_template: str = Field(default="chatml", description="Chat prompt template")
    system_prompt: str = Field(default="", description="Global system prompt")

    # Inference engine
    engine_url: str = Field(
        default="http://localhost:8081", description="OpenAI-compatible engine URL"
    )
    embedding_timeout_seconds: float = Field(default=30.0, description="Embed timeout")
    generation_timeout_seconds: float = Field(
        default=300.0, description="Non-streamed generation timeout"
    )
    stream_read_timeout_seconds: float = Field(
        default=120.0, description="Maximum wait between streamed chunks"
    )

    # Vector store
    qdrant_url: str = Field(default="http://localhost:6333", description="Qdrant URL")
    qdrant_collection_name: str = Field(default="default", description="Collection")
    qdrant_limit: int = Field(default=3, description="Maximum documents per search")
    qdrant_score_threshold: float = Field(default=0.4, description="Minimum score")
    qdrant_timeout_seconds: float = Field(default=5.0, description="Search timeout")

    # Logging
    log_prompts: bool = Field(default=False, description="Log rendered prompts")
    log_level: str = Field(default="INFO", description="Log level")

    # Server
    web_ui: Path = Field(default=Path("chatbot-ui"), description="Static web UI root")
    host: str = Field(default="0.0.0.0", description="Server host")
    port: int = Field(default=8080, description="Server port")

    class Config:
        env_prefix = "RAGBRIDGE_"
        env_file = ".env"
        protected_namespaces = ()


@dataclass(frozen=True)
class ServerConfig:
    """
    Validated, read-only runtime configuration.

    Built once from Settings at startup and shared by every request.
    """

    bindings: ModelBindings
    vector_store: VectorStoreConfig
    prompt_template: PromptTemplateType
    system_prompt: str
    engine_url: str
    embedding_timeout_seconds: float = 30.0
    generation_timeout_seconds: float = 300.0
    stream_read_timeout_seconds: float = 120.0
    log_prompts: bool = False
    log_level: str = "INFO"
    web_ui: Optional[Path] = None
    host: str = "0.0.0.0"
    port: int = 8080


def _split_list(value: str) -> List[str]:
    return [item.strip() for item in value.split(",") if item.strip()]


def _validate_http_url(name: str, url: str) -> str:
    parsed = urlparse(url)
    if parsed.scheme not in ("http", "https") or not parsed.netloc:
        raise ConfigurationError(f"{name} must be an http(s) URL, got '{url}'")
    return url.rstrip("/")


def build_server_config(settings: Settings) -> ServerConfig:
    """
    Validate settings and freeze them into a ServerConfig.

    Raises:
        ConfigurationError: If any setting is missing or invalid
    """
    try:
        ctx_sizes = [int(size) for size in _split_list(settings.ctx_size)]
    except ValueError as e:
        raise ConfigurationError(f"ctx_size must be integers: {e}") from e
    if any(size <= 0 for size in ctx_sizes):
        raise ConfigurationError("ctx_size values must be positive")

    bindings = ModelBindings.from_lists(
        _split_list(settings.model_name),
        _split_list(settings.model_alias),
        ctx_sizes,
    )

    try:
        template = PromptTemplateType.parse(settings.prompt_template)
    except ValueError as e:
        raise ConfigurationError(str(e)) from e

    log_level = settings.log_level.upper()
    if log_level not in LOG_LEVELS:
        raise ConfigurationError(f"log_level must be one of {', '.join(LOG_LEVELS)}")

    for name, timeout in (
        ("embedding_timeout_seconds", settings.embedding_timeout_seconds),
        ("generation_timeout_seconds", settings.generation_timeout_seconds),
        ("stream_read_timeout_seconds", settings.stream_read_timeout_seconds),
    ):
        if timeout <= 0:
            raise ConfigurationError(f"{name} must be positive")

    vector_store = VectorStoreConfig(
        url=_validate_http_url("qdrant_url", settings.qdrant_url),
        collection_name=settings.qdrant_collection_name,
        limit=settings.qdrant_limit,
        score_threshold=settings.qdrant_score_threshold,
        timeout_seconds=settings.qdrant_timeout_seconds,
    )

    return ServerConfig(
        bindings=bindings,
        vector_store=vector_store,
        prompt_template=template,
        system_prompt=settings.system_prompt.strip(),
        engine_url=_validate_http_url("engine_url", settings.engine_url),
        embedding_timeout_seconds=settings.embedding_timeout_seconds,
        generation_timeout_seconds=settings.generation_timeout_seconds,
        stream_read_timeout_seconds=settings.stream_read_timeout_seconds,
        log_prompts=settings.log_prompts,
        log_level=log_level,
        web_ui=settings.web_ui if settings.web_ui.is_dir() else None,
        host=settings.host,
        port=settings.port,
    )


def configure_logging(level: str = "INFO") -> None:
    """
    Configure logging with development-friendly structured output.

    Args:
        level: Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
    """
    from ..utils.logging.structured import create_development_formatter

    log_level = getattr(logging, level.upper())

    # Configure only our application logger (ragbridge.*)
    app_logger = logging.getLogger("ragbridge")
    app_logger.setLevel(log_level)

    for handler in app_logger.handlers[:]:
        app_logger.removeHandler(handler)

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setLevel(log_level)
    console_handler.setFormatter(create_development_formatter())
    app_logger.addHandler(console_handler)

    # Prevent propagation to root logger to avoid duplication
    app_logger.propagate = False

    # uvicorn logs go through the root logger
    logging.getLogger().setLevel(log_level)


# Global settings instance
_settings: Optional[Settings] = None


def get_settings() -> Settings:
    """Get the global settings instance."""
    global _settings
    if _settings is None:
        _settings = Settings()
    return _settings
