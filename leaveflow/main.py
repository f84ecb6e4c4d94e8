"""LeaveFlow — FastAPI Application Factory."""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from slowapi import _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded

from leaveflow.allocation.router import router as allocation_router
from leaveflow.common.exceptions import register_exception_handlers
from leaveflow.common.rate_limit import limiter
from leaveflow.config import configure_logging, settings
from leaveflow.core_hr.router import router as employees_router
from leaveflow.leave.router import router as leave_router
from leaveflow.notifications.router import router as notifications_router

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Configure logging on startup; release pooled connections on shutdown."""
    configure_logging()
    logger.info("LeaveFlow starting (%s)", settings.ENVIRONMENT)
    yield
    from leaveflow.database import engine

    await engine.dispose()


def create_app() -> FastAPI:
    """Build the app: problem+json handlers, rate limiting, CORS, routers."""
    app = FastAPI(
        title="LeaveFlow",
        description="Leave balance accounting: sandwich pricing, approvals, monthly credits",
        version="1.0.0",
        docs_url="/api/docs" if settings.ENVIRONMENT != "production" else None,
        redoc_url="/api/redoc" if settings.ENVIRONMENT != "production" else None,
        lifespan=lifespan,
    )

    # Exception handlers (RFC 7807)
    register_exception_handlers(app)

    # Rate limiting (slowapi)
    app.state.limiter = limiter
    app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)

    # CORS
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins_list,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Health check (no auth)
    @app.get("/api/v1/health", tags=["system"])
    async def health_check():
        return {
            "status": "healthy",
            "version": "1.0.0",
            "environment": settings.ENVIRONMENT,
        }

    # Register routers
    app.include_router(employees_router, prefix="/api/v1/employees", tags=["employees"])
    app.include_router(leave_router, prefix="/api/v1/leave", tags=["leave"])
    app.include_router(allocation_router, prefix="/api/v1/allocation", tags=["allocation"])
    app.include_router(notifications_router, prefix="/api/v1/notifications", tags=["notifications"])

    return app


app = create_app()
