"""API Package.

FastAPI server for the Sage 100 middleware.
"""

from api.server import build_pool, create_app

__all__ = [
    "build_pool",
    "create_app",
]
