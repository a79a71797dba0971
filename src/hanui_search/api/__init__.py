"""
HTTP API for the presentation layer.

Provides the federated search and abstract lookup endpoints.
"""

from .server import create_api_server, run_api_server

__all__ = ["create_api_server", "run_api_server"]
