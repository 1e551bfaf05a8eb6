from __future__ import annotations

from contextlib import asynccontextmanager

import structlog
from fastapi import FastAPI

from loantrack.checkout.router import router as checkout_router
from loantrack.checkout.service import get_tracker, set_tracker
from loantrack.core.config import get_settings
from loantrack.core.logging import configure_logging, request_id_middleware
from loantrack.db.init import create_tables

logger = structlog.get_logger(__name__)

settings = get_settings()
configure_logging(settings.ENV, settings.LOG_LEVEL)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Manage application lifespan events."""
    logger.info("app.starting", env=settings.ENV)
    await create_tables()
    tracker = get_tracker()
    logger.info("app.started", status_client=tracker.client.get_source_name())

    yield

    logger.info("app.stopping")
    await tracker.shutdown()
    set_tracker(None)
    logger.info("app.stopped")


app = FastAPI(title="Loan Checkout Tracker", version="0.1.0", lifespan=lifespan)
app.middleware("http")(request_id_middleware)
app.include_router(checkout_router)


@app.get("/healthz")
def healthz():
    return {"status": "healthy", "env": settings.ENV}
