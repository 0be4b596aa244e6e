"""
TechPulse Analytics Backend - Main FastAPI Application

Run with:
    uvicorn main:app --reload --port 8000
"""

import logging
import os
import time
from contextlib import asynccontextmanager

from dotenv import load_dotenv
from fastapi import FastAPI, Request, Response
from fastapi.middleware.cors import CORSMiddleware
from starlette.middleware.base import BaseHTTPMiddleware

from analytics import AnalyticsService, ItemStore, DEFAULT_RANGE
from api import router, set_dependencies
from metrics import MetricsEngine
from monitoring import monitor

# Load environment variables
load_dotenv()

# Configure logging
logging.basicConfig(
    level=os.environ.get("LOG_LEVEL", "INFO").upper(),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)

# Global services (initialized on startup)
analytics_service: AnalyticsService = None


class RequestMonitoringMiddleware(BaseHTTPMiddleware):
    """Middleware to monitor FastAPI requests."""

    async def dispatch(self, request: Request, call_next) -> Response:
        # Skip monitoring for docs
        if request.url.path in ["/", "/docs", "/redoc", "/openapi.json"]:
            return await call_next(request)

        start_time = time.time()
        # Normalize endpoint name (remove /api/v1 prefix)
        endpoint = request.url.path.replace("/api/v1", "") or "/"

        try:
            response = await call_next(request)
        except Exception:
            latency_ms = (time.time() - start_time) * 1000
            mon = _get_monitor()
            if mon:
                mon.metrics.record_request(endpoint, latency_ms, error=True)
            raise

        latency_ms = (time.time() - start_time) * 1000
        mon = _get_monitor()
        if mon:
            # Mark as error for 5xx status codes
            mon.metrics.record_request(endpoint, latency_ms, error=response.status_code >= 500)

        return response


# Lazy import to avoid circular dependency
def _get_monitor():
    try:
        from monitoring import monitor
        return monitor
    except ImportError:
        return None


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Application lifespan - setup and teardown.
    """
    global analytics_service

    logger.info("Starting TechPulse Analytics backend...")

    max_items = int(os.environ.get("ITEM_STORE_MAX_ITEMS", "10000"))
    default_range = os.environ.get("DEFAULT_RANGE", DEFAULT_RANGE)

    engine = MetricsEngine()
    store = ItemStore(max_items=max_items, clock=engine.now)
    analytics_service = AnalyticsService(store=store, engine=engine, default_range=default_range)

    # Set dependencies for API routes
    set_dependencies(analytics_service)

    logger.info(f"✓ Item store initialized (max items: {max_items})")
    logger.info(f"✓ Analytics service initialized (default range: {default_range})")

    # Configure monitoring
    monitor.set_component_status("item_store", "healthy", {"max_items": max_items})
    monitor.set_component_status("metrics_engine", "healthy", {"default_range": default_range})

    logger.info("📊 Monitoring available at /api/v1/monitor/*")
    logger.info("TechPulse Analytics backend ready!")

    yield  # Application runs here

    # Shutdown
    logger.info("Shutting down TechPulse Analytics backend...")
    if analytics_service:
        analytics_service.store.clear()
    logger.info("Goodbye!")


# Create FastAPI app
app = FastAPI(
    title="TechPulse Analytics API",
    description="Derived momentum, engagement and health metrics for GitHub and HackerNews trends",
    version="1.0.0",
    lifespan=lifespan,
)

# Request monitoring middleware
app.add_middleware(RequestMonitoringMiddleware)

# CORS middleware for frontend
app.add_middleware(
    CORSMiddleware,
    allow_origins=[o.strip() for o in os.environ.get("CORS_ORIGIN", "*").split(",")],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Include API routes
app.include_router(router)


# Root endpoint
@app.get("/")
async def root():
    return {"name": "TechPulse Analytics API", "version": "1.0.0", "docs": "/docs"}


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "main:app",
        host="0.0.0.0",
        port=int(os.environ.get("PORT", "8000")),
        reload=True,
    )
