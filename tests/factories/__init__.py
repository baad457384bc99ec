"""
Data factories for creating test objects.

This module provides factory classes for generating realistic test data
that can be used across different test scenarios.
"""

from .config_factory import ConfigFactory
from .document_factory import DocumentFactory
from .request_factory import RequestFactory
from .response_factory import ResponseFactory

__all__ = [
    "ConfigFactory",
    "DocumentFactory",
    "RequestFactory",
    "ResponseFactory",
]
