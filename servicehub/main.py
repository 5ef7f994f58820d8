"""FastAPI application entry point."""

import asyncio
import logging
from contextlib import asynccontextmanager
from collections.abc import AsyncGenerator

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from servicehub.config import settings
from servicehub.errors import DomainError, domain_error_handler
from servicehub.middleware import BodySizeLimitMiddleware, SecurityHeadersMiddleware
from servicehub.routers import (
    artisans,
    disputes,
    fees,
    identity_records,
    jobs,
    payments,
    reviews,
    webhooks,
)

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan: startup and shutdown."""
    from servicehub.database import get_session_factory
    from servicehub.redis import close_redis_pool
    from servicehub.services.sweeper import run_auto_cancel_sweeper

    sweeper_task = None
    if settings.auto_cancel_enabled:
        sweeper_task = asyncio.create_task(run_auto_cancel_sweeper(get_session_factory()))
    else:
        logger.info("Auto-cancel sweeper disabled")

    yield

    # Cleanup
    if sweeper_task is not None:
        sweeper_task.cancel()
        try:
            await sweeper_task
        except asyncio.CancelledError:
            pass
    await close_redis_pool()


app = FastAPI(
    title="Artisan Service Marketplace",
    description="Job lifecycle and escrow payment core",
    version="0.1.0",
    lifespan=lifespan,
)

app.add_exception_handler(DomainError, domain_error_handler)  # type: ignore[arg-type]

# CORS - restrict to configured origins
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_allowed_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Middleware (order matters — outermost first)
app.add_middleware(SecurityHeadersMiddleware)
app.add_middleware(BodySizeLimitMiddleware, max_bytes=settings.max_request_body_bytes)

# Routers
app.include_router(jobs.router)
app.include_router(payments.router)
app.include_router(webhooks.router)
app.include_router(artisans.router)
app.include_router(reviews.router)
app.include_router(disputes.router)
app.include_router(identity_records.router)
app.include_router(fees.router)


@app.get("/health")
async def health() -> dict[str, str]:
    """Health check endpoint."""
    return {"status": "ok"}
