"""
HTTP server for ragbridge.
"""

from .main import create_app
from .service_container import ServiceContainer

__all__ = ["create_app", "ServiceContainer"]
