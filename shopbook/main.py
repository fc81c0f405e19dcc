# shopbook/main.py

import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from . import config
from .availability import AnyStaffPolicy
from .db import create_db_and_tables, make_engine
from .errors import BookingError, PersistenceError
from .notifier import Notifier, get_notifier
from .routers.appointments_routes import router as appointments_router
from .routers.availability_routes import router as availability_router
from .routers.cron_routes import router as cron_router
from .routers.public_routes import router as public_router

# Configure logging
numeric_level = getattr(logging, config.LOG_LEVEL.upper(), logging.INFO)
logging.basicConfig(
    level=numeric_level,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)

# Reduce verbosity of third-party libraries
logging.getLogger("httpx").setLevel(logging.WARNING)
logging.getLogger("httpcore").setLevel(logging.WARNING)


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info("Application starting up...")
    create_db_and_tables(app.state.engine)
    logger.info("Database tables ready")

    yield

    logger.info("Application shutting down...")
    app.state.notifier.close()


def create_app(
    database_url: Optional[str] = None,
    notifier: Optional[Notifier] = None,
    any_staff_policy: Optional[str] = None,
) -> FastAPI:
    app = FastAPI(title="Shopbook Scheduling API", version="1.0.0", lifespan=lifespan)

    app.state.engine = make_engine(database_url or config.DATABASE_URL)
    app.state.notifier = notifier or get_notifier(config.NOTIFY_WEBHOOK_URL, config.NOTIFY_TIMEOUT_SECONDS)
    app.state.any_staff_policy = AnyStaffPolicy(any_staff_policy or config.ANY_STAFF_POLICY)

    @app.exception_handler(BookingError)
    async def booking_error_handler(request: Request, exc: BookingError):
        if isinstance(exc, PersistenceError):
            logger.error(f"❌ {request.method} {request.url.path} failed: {exc.message}")
        else:
            logger.info("%s %s -> %s: %s", request.method, request.url.path, exc.status_code, exc.message)
        return JSONResponse(status_code=exc.status_code, content=exc.to_dict())

    @app.get("/health")
    def health_check():
        return {"status": "ok"}

    app.include_router(availability_router)
    app.include_router(appointments_router)
    app.include_router(public_router)
    app.include_router(cron_router)

    return app


app = create_app()
