"""HTTP server module for reelsync.

This module provides the FastAPI-based HTTP servers: a public one that
receives provider webhooks and a private one for administration.
"""

from .server import create_admin_server, create_server

__all__ = ["create_admin_server", "create_server"]
