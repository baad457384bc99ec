"""
Dependency injection for API routes.
"""

from typing import TYPE_CHECKING, Optional

if TYPE_CHECKING:
    from ...config.settings import ServerConfig
    from ...rag.service import RAGPipeline
    from ..service_container import ServiceContainer


# Global container instance - set by the application lifespan
_container_instance: Optional["ServiceContainer"] = None


def set_service_container(container: Optional["ServiceContainer"]) -> None:
    """
    Set (or clear) the global service container.

    Args:
        container: The initialized ServiceContainer, or None on shutdown
    """
    global _container_instance
    _container_instance = container


def get_service_container() -> "ServiceContainer":
    """
    Get the current service container.

    Raises:
        RuntimeError: If the container is not initialized
    """
    if _container_instance is None:
        raise RuntimeError("Service container not initialized")
    return _container_instance


def get_pipeline() -> "RAGPipeline":
    return get_service_container().pipeline


def get_server_config() -> "ServerConfig":
    return get_service_container().config
