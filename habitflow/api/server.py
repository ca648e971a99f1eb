"""FastAPI application setup"""
import logging
from contextlib import asynccontextmanager
from datetime import datetime
from typing import Callable, Optional

import uvicorn
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from habitflow import __version__
from habitflow.api import metrics_routes
from habitflow.api.middleware import setup_cors, setup_rate_limiting
from habitflow.api.routes import health_router, router
from habitflow.config import LOG_LEVEL, STORE_BACKEND, validate_config
from habitflow.db import create_store
from habitflow.exceptions import HabitFlowError, wrap_external_exception
from habitflow.gamification.powerups import seed_powerups
from habitflow.models.habit import utcnow
from habitflow.observability.metrics import init_metrics
from habitflow.observability.metrics_middleware import setup_metrics_middleware
from habitflow.services.container import ServiceContainer

# Configure logging
logging.basicConfig(
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
    level=getattr(logging, LOG_LEVEL.upper(), logging.INFO)
)

logger = logging.getLogger(__name__)


def create_api_application(
    store=None,
    config=None,
    clock: Callable[[], datetime] = utcnow
) -> FastAPI:
    """
    Create and configure FastAPI application

    Args:
        store: Store to use; when None one is built from STORE_BACKEND at
            startup and closed at shutdown
        config: RewardConfig override
        clock: Source of the current time
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Lifecycle manager for FastAPI application"""
        logger.info("Starting API server...")
        owned = store is None
        active_store = store
        if owned:
            validate_config()
            active_store = await create_store()

        app.state.container = ServiceContainer(store=active_store, config=config, clock=clock)
        await seed_powerups(active_store)
        init_metrics(STORE_BACKEND if owned else type(active_store).__name__)

        yield

        logger.info("Shutting down API server...")
        if owned:
            await active_store.close()
            logger.info("Store closed")

    app = FastAPI(
        title="HabitFlow API",
        description="Habit tracking with streaks, XP, achievements and challenges",
        version=__version__,
        lifespan=lifespan
    )

    # Setup middleware
    setup_cors(app)
    setup_rate_limiting(app)
    setup_metrics_middleware(app)

    # Include routes
    app.include_router(health_router)
    app.include_router(router)
    app.include_router(metrics_routes.router)

    @app.exception_handler(HabitFlowError)
    async def habitflow_exception_handler(request: Request, exc: HabitFlowError):
        return JSONResponse(status_code=exc.status_code, content=exc.to_dict())

    # Global exception handler
    @app.exception_handler(Exception)
    async def global_exception_handler(request: Request, exc: Exception):
        logger.error(f"Unhandled exception: {exc}", exc_info=True)
        error = wrap_external_exception(exc, operation=f"{request.method} {request.url.path}")
        return JSONResponse(status_code=error.status_code, content=error.to_dict())

    logger.info("FastAPI application created")

    return app


app = create_api_application()


def main(host: Optional[str] = None, port: Optional[int] = None) -> None:
    """Run the API with uvicorn"""
    import os

    uvicorn.run(
        app,
        host=host or os.getenv("API_HOST", "0.0.0.0"),
        port=port or int(os.getenv("API_PORT", "8080")),
        log_level=LOG_LEVEL.lower()
    )


if __name__ == "__main__":
    main()
