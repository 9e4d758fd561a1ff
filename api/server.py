"""FastAPI server for the sync engine.

Main entry point for the API server. Components are built once at startup
from SourceSettings; the periodic scheduler runs inside the same process.
"""

import asyncio
from contextlib import asynccontextmanager
from typing import AsyncGenerator, Optional

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from api.routes import health, source
from core.config import SourceSettings
from core.observability.logging import configure_logging, get_logger
from sync_engine.bootstrap import SyncComponents, build_components
from sync_engine.scheduler import SourceScheduler

logger = get_logger(__name__)


def create_app(
    components: Optional[SyncComponents] = None,
    start_scheduler: bool = True,
) -> FastAPI:
    """Create and configure the FastAPI application.

    Args:
        components: Prebuilt components (built from the environment at startup when omitted)
        start_scheduler: Run the periodic sync scheduler alongside the API
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
        if getattr(app.state, "components", None) is None:
            configure_logging()
            app.state.components = build_components(SourceSettings.from_env())
        current: SyncComponents = app.state.components
        logger.info("Sync API starting up", extra_fields={"source": current.source_client.name})

        scheduler_task = None
        scheduler = None
        if start_scheduler and current.settings.sync_enabled:
            scheduler = SourceScheduler(current.runner, current.store, current.settings)
            scheduler_task = asyncio.create_task(scheduler.run_forever())

        yield

        if scheduler is not None:
            scheduler.stop()
            await scheduler_task
        await current.source_client.close()
        logger.info("Sync API shutting down")

    app = FastAPI(
        title="Sync API",
        description="ERP synchronization and reconciliation for BI tenants",
        version="1.0.0",
        lifespan=lifespan,
        docs_url="/docs",
        redoc_url="/redoc",
        openapi_url="/openapi.json",
    )
    app.state.components = components

    # CORS middleware
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],  # Configure for production
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Include routers
    app.include_router(health.router, tags=["Health"])
    app.include_router(source.router, prefix="/source", tags=["Source"])

    return app


if __name__ == "__main__":
    import uvicorn
    uvicorn.run("api.server:create_app", factory=True, host="0.0.0.0", port=8000)
