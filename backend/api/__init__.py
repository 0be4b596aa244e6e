"""
FastAPI routes for the TechPulse Analytics backend.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, HTTPException, Query, Depends
from pydantic import BaseModel, Field

from trends.models import ItemValidationError
from analytics import (
    AnalyticsService,
    EnhancedAnalytics,
    EnrichedItem,
    IngestResult,
    ItemPercentiles,
    RANGE_DAYS,
    SORT_OPTIONS,
)
from metrics import LanguageGrowthAnalysis
from monitoring import monitor, EventType

logger = logging.getLogger(__name__)

# Router for API endpoints
router = APIRouter(prefix="/api/v1", tags=["TechPulse Analytics"])


# ============================================================================
# Request/Response Models
# ============================================================================

class IngestRequest(BaseModel):
    """A batch of item records (github repositories and/or hackernews stories)."""
    items: List[Dict[str, Any]] = Field(description="Loosely-shaped item records")


class MomentumRequest(BaseModel):
    """Score a single item that need not be stored."""
    item: Dict[str, Any] = Field(description="Item record")
    history: List[Dict[str, Any]] = Field(default_factory=list, description="Prior {timestamp, popularity} samples")
    now: Optional[datetime] = Field(default=None, description="Evaluation instant (defaults to server time)")


class PercentileRequest(BaseModel):
    value: float = Field(description="Value to rank")
    dataset: List[float] = Field(default_factory=list, description="Reference values")


class PercentileResponse(BaseModel):
    value: float
    percentile: int
    sample_size: int


class ClearResponse(BaseModel):
    removed: int


class HealthResponse(BaseModel):
    """Health check response."""
    status: str
    timestamp: datetime
    total_items: int
    github_items: int
    hackernews_items: int


# ============================================================================
# Dependency Injection - these get set by the main app
# ============================================================================

_analytics_service: Optional[AnalyticsService] = None


def set_dependencies(analytics_service: AnalyticsService):
    """Set the service dependencies (called from main app)."""
    global _analytics_service
    _analytics_service = analytics_service


def get_analytics_service() -> AnalyticsService:
    if _analytics_service is None:
        raise HTTPException(status_code=503, detail="Service not initialized")
    return _analytics_service


# ============================================================================
# Routes
# ============================================================================

@router.get("/health", response_model=HealthResponse)
async def health_check(service: AnalyticsService = Depends(get_analytics_service)):
    """Health check endpoint."""
    store = service.store
    return HealthResponse(
        status="healthy",
        timestamp=datetime.now(timezone.utc),
        total_items=store.get_count(),
        github_items=store.get_count("github"),
        hackernews_items=store.get_count("hackernews"),
    )


# ----------------------------------------------------------------------------
# Items
# ----------------------------------------------------------------------------

@router.post("/items", response_model=IngestResult, status_code=201)
async def ingest_items(
    request: IngestRequest,
    service: AnalyticsService = Depends(get_analytics_service)
):
    """Store a batch of items. Invalid records are rejected individually."""
    return service.ingest(request.items)


@router.delete("/items", response_model=ClearResponse)
async def clear_items(
    source: Optional[str] = Query(default=None, description="Only clear this source"),
    service: AnalyticsService = Depends(get_analytics_service)
):
    """Remove stored items."""
    try:
        return ClearResponse(removed=service.clear(source))
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))


@router.get("/items/{item_id}", response_model=EnrichedItem)
async def get_item(
    item_id: str,
    service: AnalyticsService = Depends(get_analytics_service)
):
    """Get a stored item with its derived metrics."""
    enriched = service.get_item(item_id)
    if enriched is None:
        raise HTTPException(status_code=404, detail=f"Item '{item_id}' not found")
    return enriched


@router.get("/items/{item_id}/percentiles", response_model=ItemPercentiles)
async def get_item_percentiles(
    item_id: str,
    service: AnalyticsService = Depends(get_analytics_service)
):
    """Rank an item's popularity and engagement among items of its source."""
    ranking = service.rank_item(item_id)
    if ranking is None:
        raise HTTPException(status_code=404, detail=f"Item '{item_id}' not found")
    return ranking


@router.get("/trending", response_model=List[EnrichedItem])
async def get_trending(
    source: Optional[str] = Query(default=None, description="github, hackernews or all"),
    range_name: Optional[str] = Query(default=None, alias="range", description=f"One of {list(RANGE_DAYS.keys())}"),
    sort: str = Query(default="popularity", description=f"One of {list(SORT_OPTIONS)}"),
    limit: int = Query(default=20, ge=1, le=100, description="Maximum items to return"),
    service: AnalyticsService = Depends(get_analytics_service)
):
    """Trending items with momentum, engagement and badges."""
    try:
        return service.get_trending(source=source, range_name=range_name, sort=sort, limit=limit)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))


# ----------------------------------------------------------------------------
# Analytics
# ----------------------------------------------------------------------------

@router.get("/analytics", response_model=EnhancedAnalytics)
async def get_analytics(
    range_name: Optional[str] = Query(default=None, alias="range", description=f"One of {list(RANGE_DAYS.keys())}"),
    compare: bool = Query(default=False, description="Compare with the preceding window"),
    service: AnalyticsService = Depends(get_analytics_service)
):
    """
    Enhanced analytics for a range window.

    Includes freshness index, health score, language diversity and velocity
    leaders; with compare=true also the period comparison and language growth.
    """
    try:
        return service.get_enhanced_analytics(range_name, compare=compare)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))


@router.get("/analytics/languages/growth", response_model=LanguageGrowthAnalysis)
async def get_language_growth(
    range_name: Optional[str] = Query(default=None, alias="range", description=f"One of {list(RANGE_DAYS.keys())}"),
    service: AnalyticsService = Depends(get_analytics_service)
):
    """Languages classified as leaders, challengers, established or declining."""
    try:
        return service.get_language_growth(range_name)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))


# ----------------------------------------------------------------------------
# Ad-hoc metrics
# ----------------------------------------------------------------------------

@router.post("/metrics/momentum", response_model=EnrichedItem)
async def score_item(
    request: MomentumRequest,
    service: AnalyticsService = Depends(get_analytics_service)
):
    """Score an arbitrary item (not stored) against optional history."""
    try:
        return service.enrich_item(request.item, now=request.now, history=request.history)
    except ItemValidationError as e:
        raise HTTPException(status_code=400, detail=str(e))


@router.post("/metrics/percentile", response_model=PercentileResponse)
async def percentile_rank(
    request: PercentileRequest,
    service: AnalyticsService = Depends(get_analytics_service)
):
    """Percent of the dataset strictly below the value."""
    return PercentileResponse(
        value=request.value,
        percentile=service.engine.calculate_percentile_rank(request.value, request.dataset),
        sample_size=len(request.dataset),
    )


# ============================================================================
# Monitoring & Observability
# ============================================================================

@router.get("/monitor/dashboard", tags=["Monitoring"])
async def get_dashboard():
    """
    Full monitoring dashboard data.

    Returns all metrics, health status, and recent activity in one call.
    """
    return monitor.get_dashboard_data()


@router.get("/monitor/health", tags=["Monitoring"])
async def get_system_health():
    """System health check with component status."""
    return monitor.get_health_status()


@router.get("/monitor/metrics", tags=["Monitoring"])
async def get_metrics():
    """
    Detailed performance metrics.

    Includes:
    - Request counts and latencies
    - Items ingested and rejected
    - Analytics computation counts and latencies
    - Degraded metric results
    """
    return monitor.metrics.get_metrics()


@router.get("/monitor/activity", tags=["Monitoring"])
async def get_activity_feed(
    limit: int = Query(default=50, ge=1, le=200, description="Number of events"),
    event_type: Optional[str] = Query(default=None, description="Filter by event type")
):
    """
    Real-time activity feed.

    Recent system events including ingestion, analytics computations,
    degraded results and errors.
    """
    filter_type = None
    if event_type:
        try:
            filter_type = EventType(event_type)
        except ValueError:
            valid_types = [e.value for e in EventType]
            raise HTTPException(
                status_code=400,
                detail=f"Invalid event_type. Valid options: {valid_types}"
            )

    events = monitor.activity.get_recent(limit=limit, event_type=filter_type)
    event_counts = monitor.activity.get_event_counts(since_minutes=5)

    return {
        "events": events,
        "event_counts_5m": event_counts,
        "available_types": [e.value for e in EventType],
    }


__all__ = [
    "router",
    "set_dependencies",
    "get_analytics_service",
]
