import asyncio
import contextlib
import logging
import os
import sys
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager
from typing import Any

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from sitepulse import __version__
from sitepulse.api import deps
from sitepulse.components.realtime import run_live_count_ticker

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan handler for startup/shutdown."""
    settings = deps.get_settings()

    # Load rules and build the analytics context on startup (fail-fast)
    try:
        deps.get_rules()
        logger.info("Rules loaded from %s", settings.rules_path)
        context = deps.get_analytics_context()
    except Exception as e:
        logger.critical("Startup failed: %s", e)
        sys.exit(1)

    ticker = asyncio.create_task(run_live_count_ticker(context.hub))

    yield

    ticker.cancel()
    with contextlib.suppress(asyncio.CancelledError):
        await ticker


app = FastAPI(
    title="SitePulse Analytics API",
    version=__version__,
    lifespan=lifespan,
    docs_url="/docs",
    redoc_url="/redoc",
)

# --- Routers ---
from sitepulse.api.routes import (  # noqa: E402
    admin_analytics,
    analytics_ingest,
    analytics_ws,
)

app.include_router(analytics_ingest.router, prefix="/analytics", tags=["Analytics Ingestion"])
app.include_router(admin_analytics.router, prefix="/analytics", tags=["Analytics"])
app.include_router(analytics_ws.router, prefix="/analytics", tags=["Analytics Live"])


# CORS (Allow Frontend)
origins = [
    o.strip()
    for o in os.environ.get("SITEPULSE_CORS_ORIGINS", "http://localhost:3000,http://127.0.0.1:3000").split(",")
    if o.strip()
]

app.add_middleware(
    CORSMiddleware,
    allow_origins=origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.get("/health")
def health_check() -> dict[str, Any]:
    """Health check endpoint."""
    return {"status": "ok", "service": "analytics"}
