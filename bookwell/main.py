"""
Bookwell - Main Application Entry Point
Multi-tenant appointment scheduling backend
"""

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from contextlib import asynccontextmanager
import structlog

from bookwell.core.config import get_settings
from bookwell.core.events import event_bus
from bookwell.api import appointments, quotas
from bookwell.services.notifications import NotificationHooks

# Configure structured logging
structlog.configure(
    processors=[
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.format_exc_info,
        structlog.processors.JSONRenderer()
    ],
    context_class=dict,
    logger_factory=structlog.stdlib.LoggerFactory(),
)

logger = structlog.get_logger(__name__)
settings = get_settings()
notification_hooks = NotificationHooks()


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan manager"""
    # Startup
    logger.info("Initializing Bookwell backend")
    # Tables are created by Alembic migrations, not auto-generated
    logger.info("Database managed by Alembic migrations")
    notification_hooks.register(event_bus)

    yield

    # Shutdown
    notification_hooks.unregister(event_bus)
    logger.info("Shutting down Bookwell backend")


# Create FastAPI application
app = FastAPI(
    title="Bookwell API",
    description="Multi-tenant appointment scheduling with group sessions and plan quotas",
    version="0.1.0",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.ALLOWED_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Include routers
app.include_router(appointments.router, prefix=f"{settings.API_V1_PREFIX}/appointments", tags=["appointments"])
app.include_router(quotas.router, prefix=f"{settings.API_V1_PREFIX}/quotas", tags=["quotas"])


@app.get("/health")
async def health_check():
    """Health check endpoint"""
    return {"status": "healthy", "service": "bookwell-api"}


def run():
    """Console entry point"""
    import uvicorn
    uvicorn.run(
        "bookwell.main:app",
        host="0.0.0.0",
        port=8000,
        reload=settings.ENVIRONMENT == "development",
        log_level="info",
    )


if __name__ == "__main__":
    run()
