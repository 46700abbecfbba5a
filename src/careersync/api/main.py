"""FastAPI application factory."""
from contextlib import asynccontextmanager

from fastapi import FastAPI

from careersync.api.routes import diagnostics, sync as sync_routes


def create_app() -> FastAPI:
    """Build and return the FastAPI app."""

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        yield
        # Stop any background narrative polling and close the HTTP client
        service = sync_routes._service
        if service is not None:
            await service.close()
            sync_routes._service = None

    app = FastAPI(
        title="Career Sync API",
        description="Local progress API for activity sync runs",
        version="0.1.0",
        lifespan=lifespan,
    )

    app.include_router(sync_routes.router, prefix="/sync", tags=["sync"])
    app.include_router(diagnostics.router, prefix="/diagnostics", tags=["diagnostics"])

    return app


# Module-level app instance for uvicorn
app = create_app()
