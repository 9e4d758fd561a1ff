"""API Package.

FastAPI server for the sync engine.
"""

from api.server import create_app

__all__ = [
    "create_app",
]
