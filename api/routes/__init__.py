"""API Routes Package."""

from api.routes import health, source

__all__ = [
    "health",
    "source",
]
