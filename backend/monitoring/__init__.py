"""
Monitoring and observability module for TechPulse Analytics.

Provides real-time insight into:
- API request counts and latencies
- Item store ingestion volume
- Analytics computation timings
- Degraded metric results (momentum/health fallbacks)
- Activity feed
"""

from __future__ import annotations

import time
import logging
from datetime import datetime, timezone, timedelta
from typing import Dict, List, Any, Optional
from dataclasses import dataclass
from collections import deque
from enum import Enum

logger = logging.getLogger(__name__)

# Samples kept per latency series
MAX_LATENCY_SAMPLES = 1000


class EventType(str, Enum):
    """Types of system events."""
    ITEMS_INGESTED = "items_ingested"
    ITEMS_CLEARED = "items_cleared"
    ANALYTICS_COMPUTED = "analytics_computed"
    DEGRADED_RESULT = "degraded_result"
    ERROR = "error"


@dataclass
class SystemEvent:
    """A recorded system event."""
    timestamp: datetime
    event_type: EventType
    source: Optional[str]
    details: Dict[str, Any]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "timestamp": self.timestamp.isoformat(),
            "event_type": self.event_type.value,
            "source": self.source,
            "details": self.details,
            "age_seconds": (datetime.now(timezone.utc) - self.timestamp).total_seconds()
        }


def _trim(values: List[float]) -> List[float]:
    if len(values) > MAX_LATENCY_SAMPLES:
        return values[-MAX_LATENCY_SAMPLES:]
    return values


class MetricsCollector:
    """
    Collects and aggregates service metrics.

    Tracks:
    - Request counts and latency per endpoint
    - Items ingested / rejected
    - Analytics computations and their latency
    - Degraded results per metric
    """

    def __init__(self):
        self._start_time = time.time()
        self._request_counts: Dict[str, int] = {}
        self._latencies: Dict[str, List[float]] = {}
        self._error_counts: Dict[str, int] = {}

        # Item store
        self._items_ingested = 0
        self._items_rejected = 0

        # Analytics computations
        self._computations: Dict[str, int] = {}
        self._computation_latencies: List[float] = []

        # Metrics that fell back to their neutral result
        self._degraded: Dict[str, int] = {}

    def record_request(self, endpoint: str, latency_ms: float, error: bool = False) -> None:
        """Record an API request."""
        self._request_counts[endpoint] = self._request_counts.get(endpoint, 0) + 1

        if endpoint not in self._latencies:
            self._latencies[endpoint] = []
        self._latencies[endpoint].append(latency_ms)
        self._latencies[endpoint] = _trim(self._latencies[endpoint])

        if error:
            self._error_counts[endpoint] = self._error_counts.get(endpoint, 0) + 1

    def record_items(self, accepted: int, rejected: int = 0) -> None:
        """Record an ingestion batch."""
        self._items_ingested += accepted
        self._items_rejected += rejected

    def record_computation(self, kind: str, latency_ms: float) -> None:
        """Record one analytics computation (e.g. 'enhanced_analytics', 'trending')."""
        self._computations[kind] = self._computations.get(kind, 0) + 1
        self._computation_latencies.append(latency_ms)
        self._computation_latencies = _trim(self._computation_latencies)

    def record_degraded(self, metric: str) -> None:
        """Record a metric that returned its neutral fallback."""
        self._degraded[metric] = self._degraded.get(metric, 0) + 1

    def get_degraded_counts(self) -> Dict[str, int]:
        return dict(self._degraded)

    def _calculate_percentiles(self, values: List[float]) -> Dict[str, float]:
        """Calculate p50, p95, p99 percentiles."""
        if not values:
            return {"p50": 0, "p95": 0, "p99": 0, "avg": 0}

        sorted_values = sorted(values)
        n = len(sorted_values)

        return {
            "p50": sorted_values[int(n * 0.50)],
            "p95": sorted_values[min(n - 1, int(n * 0.95))],
            "p99": sorted_values[min(n - 1, int(n * 0.99))],
            "avg": sum(values) / n,
        }

    def get_metrics(self) -> Dict[str, Any]:
        """Get all collected metrics."""
        uptime = time.time() - self._start_time

        total_requests = sum(self._request_counts.values())
        total_errors = sum(self._error_counts.values())
        error_rate = total_errors / total_requests if total_requests > 0 else 0

        all_latencies = [v for values in self._latencies.values() for v in values]

        return {
            "uptime_seconds": int(uptime),
            "uptime_human": self._format_duration(uptime),

            "requests": {
                "total": total_requests,
                "by_endpoint": dict(self._request_counts),
                "errors": dict(self._error_counts),
                "error_rate": f"{error_rate:.1%}",
                "latency_ms": self._calculate_percentiles(all_latencies),
            },

            "items": {
                "ingested": self._items_ingested,
                "rejected": self._items_rejected,
                "ingested_per_minute": self._items_ingested / (uptime / 60) if uptime > 0 else 0,
            },

            "analytics": {
                "computations": dict(self._computations),
                "total": sum(self._computations.values()),
                "latency_ms": self._calculate_percentiles(self._computation_latencies),
            },

            "degraded": {
                "total": sum(self._degraded.values()),
                "by_metric": dict(self._degraded),
            },
        }

    def _format_duration(self, seconds: float) -> str:
        """Format duration as human-readable string."""
        if seconds < 60:
            return f"{int(seconds)}s"
        elif seconds < 3600:
            return f"{int(seconds // 60)}m {int(seconds % 60)}s"
        else:
            hours = int(seconds // 3600)
            minutes = int((seconds % 3600) // 60)
            return f"{hours}h {minutes}m"


class ActivityFeed:
    """
    Real-time activity feed for system events.

    Stores recent events for live monitoring.
    """

    def __init__(self, max_events: int = 500):
        self.max_events = max_events
        self._events: deque = deque(maxlen=max_events)

    def add_event(
        self,
        event_type: EventType,
        source: Optional[str] = None,
        **details
    ) -> None:
        """Add an event to the feed."""
        event = SystemEvent(
            timestamp=datetime.now(timezone.utc),
            event_type=event_type,
            source=source,
            details=details
        )
        self._events.append(event)

    def get_recent(self, limit: int = 50, event_type: Optional[EventType] = None) -> List[Dict]:
        """Get recent events, optionally filtered by type."""
        events = list(self._events)

        if event_type:
            events = [e for e in events if e.event_type == event_type]

        # Most recent first
        events = sorted(events, key=lambda e: e.timestamp, reverse=True)
        return [e.to_dict() for e in events[:limit]]

    def get_event_counts(self, since_minutes: int = 5) -> Dict[str, int]:
        """Get event counts by type since N minutes ago."""
        cutoff = datetime.now(timezone.utc) - timedelta(minutes=since_minutes)

        counts: Dict[str, int] = {}
        for event in self._events:
            if event.timestamp >= cutoff:
                key = event.event_type.value
                counts[key] = counts.get(key, 0) + 1

        return counts

    def clear(self) -> None:
        self._events.clear()


class SystemMonitor:
    """
    Central monitoring hub for TechPulse Analytics.

    Aggregates metrics from all components.
    """

    def __init__(self):
        self.metrics = MetricsCollector()
        self.activity = ActivityFeed()
        self._component_status: Dict[str, Dict[str, Any]] = {}

    def set_component_status(
        self,
        component: str,
        status: str,
        details: Optional[Dict[str, Any]] = None
    ) -> None:
        """Set status for a component."""
        self._component_status[component] = {
            "status": status,
            "last_updated": datetime.now(timezone.utc).isoformat(),
            "details": details or {}
        }

    def get_health_status(self) -> Dict[str, Any]:
        """Get overall system health status."""
        statuses = [c.get("status", "unknown") for c in self._component_status.values()]

        if statuses and all(s == "healthy" for s in statuses):
            overall = "healthy"
        elif any(s == "error" for s in statuses):
            overall = "degraded"
        elif any(s == "warning" for s in statuses):
            overall = "warning"
        else:
            overall = "unknown"

        return {
            "status": overall,
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "components": self._component_status,
        }

    def get_dashboard_data(self) -> Dict[str, Any]:
        """Get all data needed for a monitoring dashboard."""
        return {
            "health": self.get_health_status(),
            "metrics": self.metrics.get_metrics(),
            "recent_activity": self.activity.get_recent(limit=20),
            "event_counts_5m": self.activity.get_event_counts(since_minutes=5),
        }

    def reset(self) -> None:
        """Drop all collected metrics and events (used between tests)."""
        self.metrics = MetricsCollector()
        self.activity.clear()
        self._component_status = {}


# Global monitor instance
monitor = SystemMonitor()


__all__ = [
    "SystemMonitor",
    "MetricsCollector",
    "ActivityFeed",
    "EventType",
    "SystemEvent",
    "monitor",
]
