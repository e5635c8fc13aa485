"""
slotdesk API application: pool lifecycle, middleware, error handlers and routers.
"""

import time
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request

from slotdesk.config import settings
from slotdesk.db.pool import DatabasePoolManager
from slotdesk.db.schema import apply_schema
from slotdesk.errors import register_exception_handlers
from slotdesk.infrastructure.observability.logging import get_logger, log_request, setup_logging
from slotdesk.middleware import CORSMiddleware, RequestContextMiddleware
from slotdesk.routes import (
    announcements,
    auth,
    cash,
    health,
    inquiries,
    settings as settings_routes,
    slots,
    users,
)

# Setup logging before creating the app
setup_logging(log_level=settings.LOG_LEVEL, log_format=settings.LOG_FORMAT)
logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Handle application startup and shutdown with proper resource management."""
    logger.info("Application starting", environment=settings.environment, debug=settings.debug)

    db = DatabasePoolManager(settings)

    try:
        await db.initialize()

        if settings.DB_AUTO_MIGRATE:
            await apply_schema(db, settings)

    except Exception as e:
        logger.error("Failed to initialize services", error=str(e))
        try:
            await db.close()
        except Exception as cleanup_error:
            logger.error("Error cleaning up database pool", error=str(cleanup_error))
        raise

    app.state.db = db
    logger.info("All services initialized successfully")

    yield

    logger.info("Application shutting down")
    try:
        await db.close()
    except Exception as e:
        logger.error("Error closing database pool", error=str(e))


def create_app() -> FastAPI:
    app = FastAPI(
        title="slotdesk",
        description="Hierarchical slot assignment, cash ledger and support inquiries",
        version="0.1.0",
        lifespan=lifespan,
    )

    register_exception_handlers(app)

    # Added last runs first: CORS wraps request context, which wraps routing
    app.add_middleware(RequestContextMiddleware)
    app.add_middleware(
        CORSMiddleware,
        allowed_origins=settings.allowed_origins(),
        allow_credentials=True,
    )

    @app.middleware("http")
    async def log_requests(request: Request, call_next):
        """Log HTTP requests with timing."""
        start_time = time.time()
        response = await call_next(request)
        process_time = (time.time() - start_time) * 1000

        log_request(
            method=request.method,
            path=request.url.path,
            status_code=response.status_code,
            duration_ms=round(process_time, 2),
            request_id=getattr(request.state, "request_id", None),
        )
        return response

    app.include_router(health.router)
    app.include_router(auth.router)
    app.include_router(users.router)
    app.include_router(slots.router)
    app.include_router(cash.router)
    app.include_router(inquiries.router)
    app.include_router(announcements.router)
    app.include_router(settings_routes.router)

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(app, host="0.0.0.0", port=8000)
