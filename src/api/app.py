"""FastAPI application for the Social Publisher admin surface."""

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from src import __version__
from src.api.routes.admin import router as admin_router
from src.config.settings import settings
from src.services.core.health_check import HealthCheckService

app = FastAPI(
    title="Social Publisher API",
    description="Admin endpoints for the publish queue and platform credentials",
    version=__version__,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_methods=["GET", "POST"],
    allow_headers=["Content-Type", "Authorization"],
)

app.include_router(admin_router, prefix="/admin")


@app.get("/health")
async def health():
    """Overall system health."""
    with HealthCheckService() as service:
        return service.check_all()
