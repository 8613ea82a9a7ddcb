"""Route modules for availability_lite server."""

from .api_routes import register_api_routes
from .export_routes import register_export_routes

__all__ = [
    "register_api_routes",
    "register_export_routes",
]
