"""
Thriver Feed API - entry point.

Startup sequence:
  1. Configure OTel tracing (→ Jaeger via OTLP)
  2. Start the Supabase HTTP client (PostgREST, Auth)
  3. Expose Prometheus /metrics endpoint

Shutdown closes every open feed session (cancelling navigation timers)
before the HTTP client goes away.
"""
import logging

from contextlib import asynccontextmanager

import uvicorn
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from prometheus_client import make_asgi_app

from thriver.config import settings
from thriver.telemetry import setup_tracing, instrument_app
from thriver.clients.supabase_client import BackendError, supabase
from thriver.feed.sessions import session_registry
from thriver.routers import attempts, challenges, feed, profiles, reactions

logging.basicConfig(
    level=settings.log_level,
    format="%(asctime)s [%(levelname)s] %(name)s - %(message)s",
)
logger = logging.getLogger(__name__)

# Set up tracing before the app is created so all imports are instrumented
setup_tracing()


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Manage startup and shutdown of all external connections."""
    logger.info("Starting Thriver Feed API (env=%s)", settings.environment)

    await supabase.start()

    logger.info("Backend client ready at %s. API ready.", settings.supabase_url)
    yield

    logger.info("Shutting down...")
    session_registry.close_all()
    await supabase.stop()


app = FastAPI(
    title="Thriver Feed API",
    description=(
        "Short-video challenge feed: ranked attempts interleaved with "
        "public-challenge blocks, single-item navigation and preloading."
    ),
    version="1.0.0",
    lifespan=lifespan,
)

# ── Routers ────────────────────────────────────────────────────────────────
app.include_router(feed.router, prefix="/feed", tags=["Feed"])
app.include_router(challenges.router, prefix="/challenges", tags=["Challenges"])
app.include_router(attempts.router, prefix="/attempts", tags=["Attempts"])
app.include_router(profiles.router)
app.include_router(reactions.router)

# ── Prometheus metrics endpoint ────────────────────────────────────────────
# Mounted at /metrics - scraped by Prometheus
metrics_app = make_asgi_app()
app.mount("/metrics", metrics_app)

# ── OTel FastAPI instrumentation ──────────────────────────────────────────
instrument_app(app)


@app.exception_handler(BackendError)
async def backend_error_handler(request: Request, exc: BackendError):
    logger.warning("Backend call failed on %s: %s", request.url.path, exc)
    return JSONResponse(
        status_code=502,
        content={"detail": exc.message, "operation": exc.operation},
    )


@app.get("/health", tags=["Health"])
async def health():
    return {"status": "ok", "service": settings.service_name}


def run() -> None:
    """Console entry point: `thriver-api`."""
    uvicorn.run("thriver.main:app", host=settings.host, port=settings.port)
