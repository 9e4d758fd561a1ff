"""Health check endpoints."""

from datetime import datetime, timezone
from typing import Any, Dict

from fastapi import APIRouter, Request
from pydantic import BaseModel

from core.observability.metrics import get_metrics


router = APIRouter()


class HealthResponse(BaseModel):
    """Health check response."""
    status: str
    timestamp: str
    version: str
    services: Dict[str, str]


@router.get("/health", response_model=HealthResponse)
async def health_check(request: Request) -> HealthResponse:
    """Health check endpoint."""
    components = getattr(request.app.state, "components", None)
    settings = components.settings if components else None
    return HealthResponse(
        status="healthy",
        timestamp=datetime.now(timezone.utc).isoformat(),
        version="1.0.0",
        services={
            "api": "up",
            "storage": "up" if components else "unknown",
            "source": components.source_client.name if components else "unknown",
            "scheduler": "enabled" if settings and settings.sync_enabled else "disabled",
        }
    )


@router.get("/metrics")
async def metrics_summary() -> Dict[str, Any]:
    """Sync metrics summary."""
    return get_metrics().get_summary()
