"""
Analytics services for TechPulse.

- ItemStore: in-memory keyed collection of trend items with popularity history
- build_snapshot: aggregate totals and language stats over a set of items
- AnalyticsService: enriched items, trending lists and enhanced analytics

Architecture:
- Raw items are stored (re-ingesting an id replaces it and keeps the old
  popularity as a historical sample)
- Every derived number is computed on demand by the MetricsEngine
- The time range is a query parameter, not a storage attribute
"""

from __future__ import annotations

import logging
import threading
import time
from collections import defaultdict
from datetime import datetime, timedelta
from typing import Any, Dict, Iterable, List, Optional, Tuple

from pydantic import Field

from trends.models import (
    GithubItem,
    HackerNewsItem,
    HistoricalSample,
    ItemValidationError,
    TrendItem,
    TrendSource,
    ensure_utc,
    parse_item,
    utc_now,
)
from metrics import (
    HealthScore,
    LanguageGrowthAnalysis,
    LanguageStat,
    MetricRecord,
    MetricsEngine,
    MomentumBadge,
    MomentumScore,
    PeriodComparison,
    VelocityLeader,
    round_half_up,
)

# Import monitoring (lazy to avoid circular imports)
_monitor = None

def _get_monitor():
    global _monitor
    if _monitor is None:
        try:
            from monitoring import monitor
            _monitor = monitor
        except ImportError:
            _monitor = None
    return _monitor

logger = logging.getLogger(__name__)


# Range name -> window length in days
RANGE_DAYS = {
    "day": 1,
    "week": 7,
    "month": 30,
    "year": 365,
}

DEFAULT_RANGE = "month"

SORT_OPTIONS = ("popularity", "momentum", "recent")

TOP_LANGUAGES = 10
TOP_GITHUB_LANGUAGES = 5

# Prior observations kept per item
MAX_HISTORY_PER_ITEM = 50


def get_range_window(range_name: str, now: datetime) -> Tuple[datetime, datetime]:
    """
    Get the [start, end) window for a named range ending at now.

    Raises:
        ValueError: If the range name is unknown
    """
    if range_name not in RANGE_DAYS:
        raise ValueError(f"Invalid range: {range_name}. Must be one of {list(RANGE_DAYS.keys())}")
    return now - timedelta(days=RANGE_DAYS[range_name]), now


def describe_recency(timestamp: Optional[datetime], now: datetime) -> str:
    """Relative label for dashboards: '5m ago', '3h ago', '12d ago', or the date."""
    if timestamp is None:
        return "0m ago"

    elapsed = max(0.0, (now - timestamp).total_seconds())
    minutes = int(elapsed // 60)
    hours = int(elapsed // 3600)
    days = int(elapsed // 86400)

    if minutes < 60:
        return f"{minutes}m ago"
    if hours < 24:
        return f"{hours}h ago"
    if days < 30:
        return f"{days}d ago"
    return timestamp.date().isoformat()


# ============================================================================
# Snapshot
# ============================================================================

class GithubStats(MetricRecord):
    total_repositories: int = 0
    total_stars: int = 0
    total_forks: int = 0
    avg_stars: int = 0
    top_languages: List[LanguageStat] = Field(default_factory=list)


class HackerNewsStats(MetricRecord):
    total_stories: int = 0
    total_points: int = 0
    total_comments: int = 0
    avg_points: int = 0
    avg_comments: int = 0


class AnalyticsSnapshot(MetricRecord):
    """
    Aggregate totals for one window of items.

    Serializes as {totalItems, avgPopularity, languageStats, githubStats,
    hackerNewsStats}, which is the shape the period comparison reads.
    """
    total_items: int = 0
    avg_popularity: int = 0
    language_stats: List[LanguageStat] = Field(default_factory=list)
    github_stats: GithubStats = Field(default_factory=GithubStats)
    hacker_news_stats: HackerNewsStats = Field(default_factory=HackerNewsStats)


def _average(total: float, count: int) -> int:
    if count == 0:
        return 0
    return int(round_half_up(total / count, 0))


def build_language_stats(repositories: List[GithubItem], limit: int = TOP_LANGUAGES) -> List[LanguageStat]:
    """
    Per-language counts over repositories, most common first.

    Repositories without a language are counted in the total but get no entry.
    """
    if not repositories:
        return []

    counts: Dict[str, int] = defaultdict(int)
    stars: Dict[str, int] = defaultdict(int)
    for repo in repositories:
        if not repo.language:
            continue
        counts[repo.language] += 1
        stars[repo.language] += repo.stars

    stats = [
        LanguageStat(
            language=language,
            count=count,
            stars=stars[language],
            avg_stars=_average(stars[language], count),
            percentage=round_half_up(count / len(repositories) * 100, 1),
        )
        for language, count in counts.items()
    ]
    # Stable sort keeps first-seen order for equal counts
    stats.sort(key=lambda s: s.count, reverse=True)
    return stats[:limit]


def build_snapshot(items: Iterable[Any]) -> AnalyticsSnapshot:
    """Aggregate a window of items into an AnalyticsSnapshot."""
    items = [parse_item(i) for i in items]
    repositories = [i for i in items if isinstance(i, GithubItem)]
    stories = [i for i in items if isinstance(i, HackerNewsItem)]

    language_stats = build_language_stats(repositories)

    total_stars = sum(r.stars for r in repositories)
    total_points = sum(s.points for s in stories)
    total_comments = sum(s.comments for s in stories)

    github_stats = GithubStats(
        total_repositories=len(repositories),
        total_stars=total_stars,
        total_forks=sum(r.forks for r in repositories),
        avg_stars=_average(total_stars, len(repositories)),
        top_languages=language_stats[:TOP_GITHUB_LANGUAGES],
    )
    hacker_news_stats = HackerNewsStats(
        total_stories=len(stories),
        total_points=total_points,
        total_comments=total_comments,
        avg_points=_average(total_points, len(stories)),
        avg_comments=_average(total_comments, len(stories)),
    )

    return AnalyticsSnapshot(
        total_items=len(items),
        avg_popularity=int(round_half_up((github_stats.avg_stars + hacker_news_stats.avg_points) / 2, 0)),
        language_stats=language_stats,
        github_stats=github_stats,
        hacker_news_stats=hacker_news_stats,
    )


# ============================================================================
# Item store
# ============================================================================

class ItemStore:
    """
    In-memory storage for trend items, keyed by id.

    Items are the source of truth - every metric is computed on demand.
    Re-ingesting an id replaces the stored item and keeps its previous
    popularity as a HistoricalSample, which feeds velocity and acceleration.
    """

    def __init__(
        self,
        max_items: int = 10000,
        max_history_per_item: int = MAX_HISTORY_PER_ITEM,
        clock=None,
    ):
        """
        Initialize the ItemStore.

        Args:
            max_items: Maximum items to keep (oldest pruned)
            max_history_per_item: Maximum prior observations kept per item
            clock: Returns the current UTC time (used as the observation time)
        """
        self.max_items = max_items
        self.max_history_per_item = max_history_per_item
        self._clock = clock or utc_now
        self._lock = threading.Lock()
        self._items: Dict[str, TrendItem] = {}
        self._observed_at: Dict[str, datetime] = {}
        self._history: Dict[str, List[HistoricalSample]] = defaultdict(list)

    def _effective_time(self, item: TrendItem) -> datetime:
        return item.timestamp or self._observed_at[item.id]

    def add_items(self, items: Iterable[TrendItem], observed_at: Optional[datetime] = None) -> Tuple[int, int]:
        """
        Add or replace items.

        Args:
            items: Parsed trend items
            observed_at: When the batch was observed (defaults to now)

        Returns:
            (new items added, existing items replaced)
        """
        observed_at = observed_at or self._clock()
        added = 0
        replaced = 0

        with self._lock:
            for item in items:
                previous = self._items.get(item.id)
                if previous is not None:
                    history = self._history[item.id]
                    history.append(HistoricalSample(
                        timestamp=self._observed_at[item.id],
                        popularity=previous.popularity(),
                    ))
                    if len(history) > self.max_history_per_item:
                        self._history[item.id] = history[-self.max_history_per_item:]
                    replaced += 1
                else:
                    added += 1

                self._items[item.id] = item
                self._observed_at[item.id] = observed_at

            # Prune oldest items if over limit
            if len(self._items) > self.max_items:
                keep = sorted(self._items.values(), key=self._effective_time, reverse=True)[:self.max_items]
                keep_ids = {i.id for i in keep}
                for item_id in list(self._items.keys()):
                    if item_id not in keep_ids:
                        self._remove(item_id)
                logger.debug(f"Pruned item store to {self.max_items} items")

        return added, replaced

    def _remove(self, item_id: str) -> None:
        self._items.pop(item_id, None)
        self._observed_at.pop(item_id, None)
        self._history.pop(item_id, None)

    def get_items(
        self,
        source: Optional[str] = None,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None,
    ) -> List[TrendItem]:
        """
        Get items, optionally filtered by source and time range.

        Items without a timestamp are placed at their observation time.

        Args:
            source: Source tag (None for all sources)
            start: Start time (inclusive)
            end: End time (exclusive)

        Returns:
            List of items sorted by time (oldest first)
        """
        with self._lock:
            items = list(self._items.values())
            times = {i.id: self._effective_time(i) for i in items}

        filtered = []
        for item in items:
            if source and item.source != source:
                continue
            if start and times[item.id] < start:
                continue
            if end and times[item.id] >= end:
                continue
            filtered.append(item)

        return sorted(filtered, key=lambda i: times[i.id])

    def get_item(self, item_id: str) -> Optional[TrendItem]:
        with self._lock:
            return self._items.get(item_id)

    def get_history(self, item_id: str) -> List[HistoricalSample]:
        """Prior popularity observations for an item (oldest first)."""
        with self._lock:
            return list(self._history.get(item_id, []))

    def get_histories(self) -> Dict[str, List[HistoricalSample]]:
        with self._lock:
            return {item_id: list(samples) for item_id, samples in self._history.items()}

    def get_count(self, source: Optional[str] = None) -> int:
        """Get item count, optionally for one source."""
        with self._lock:
            if source is None:
                return len(self._items)
            return sum(1 for i in self._items.values() if i.source == source)

    def get_time_range(self) -> Optional[Tuple[datetime, datetime]]:
        """Get the time range of stored items."""
        with self._lock:
            if not self._items:
                return None
            times = sorted(self._effective_time(i) for i in self._items.values())
        return (times[0], times[-1])

    def clear(self, source: Optional[str] = None) -> int:
        """
        Remove items (all, or those of one source).

        Returns:
            Number of items removed
        """
        with self._lock:
            doomed = [i.id for i in self._items.values() if source is None or i.source == source]
            for item_id in doomed:
                self._remove(item_id)
        return len(doomed)


# ============================================================================
# Service results
# ============================================================================

class EngagementMetrics(MetricRecord):
    rate: float = 0.0
    score: float = 0.0


class EnrichedItem(MetricRecord):
    """A stored item with its per-item derived metrics attached."""
    item: Dict[str, Any] = Field(description="The item as stored")
    momentum: MomentumScore
    engagement: EngagementMetrics
    badge: MomentumBadge
    badge_label: str
    badge_emoji: str
    age_in_days: int
    recency: str = Field(description="Relative age label (e.g. '3h ago')")
    virality_index: Optional[float] = Field(default=None, description="HackerNews stories only")


class EnhancedMetrics(MetricRecord):
    freshness_index: float = 0.0
    health_score: HealthScore = Field(default_factory=HealthScore)
    language_diversity: float = 0.0
    velocity_leaders: List[VelocityLeader] = Field(default_factory=list)


class EnhancedAnalytics(MetricRecord):
    """
    Dashboard analytics for one range window.

    comparison and language_growth are only set when a comparison with the
    preceding window of equal length was requested.
    """
    period: str
    start: datetime
    end: datetime
    snapshot: AnalyticsSnapshot
    metrics: EnhancedMetrics
    comparison: Optional[PeriodComparison] = None
    language_growth: Optional[LanguageGrowthAnalysis] = None


class IngestResult(MetricRecord):
    accepted: int = 0
    replaced: int = 0
    rejected: int = 0
    total_items: int = 0
    errors: List[str] = Field(default_factory=list)


class ItemPercentiles(MetricRecord):
    """Where an item stands among stored items of the same source."""
    id: str
    source: str
    popularity: int
    popularity_percentile: int
    engagement_score: float
    engagement_percentile: int
    sample_size: int


# ============================================================================
# Service
# ============================================================================

class AnalyticsService:
    """
    Serves derived analytics over the item store.

    Usage:
        service = AnalyticsService()
        service.ingest(records)

        trending = service.get_trending(source="github", sort="momentum")
        analytics = service.get_enhanced_analytics("week", compare=True)
    """

    def __init__(
        self,
        store: Optional[ItemStore] = None,
        engine: Optional[MetricsEngine] = None,
        default_range: str = DEFAULT_RANGE,
    ):
        if default_range not in RANGE_DAYS:
            raise ValueError(f"Invalid range: {default_range}. Must be one of {list(RANGE_DAYS.keys())}")
        self.engine = engine or MetricsEngine()
        self.store = store or ItemStore(clock=self.engine.now)
        self.default_range = default_range

    # ------------------------------------------------------------------------
    # Ingestion
    # ------------------------------------------------------------------------

    def ingest(self, records: Iterable[Any]) -> IngestResult:
        """
        Parse and store a batch of item records.

        Invalid records are rejected individually; the rest of the batch is kept.
        """
        items: List[TrendItem] = []
        errors: List[str] = []
        for record in records:
            try:
                items.append(parse_item(record))
            except ItemValidationError as e:
                errors.append(str(e))

        accepted, replaced = self.store.add_items(items)
        total = self.store.get_count()

        if errors:
            logger.warning(f"Rejected {len(errors)} invalid item(s)")
        logger.info(f"Ingested {accepted} new, {replaced} updated item(s); store holds {total}")

        mon = _get_monitor()
        if mon:
            from monitoring import EventType
            mon.metrics.record_items(accepted + replaced, rejected=len(errors))
            mon.activity.add_event(
                EventType.ITEMS_INGESTED,
                accepted=accepted,
                replaced=replaced,
                rejected=len(errors),
                total_items=total,
            )

        return IngestResult(
            accepted=accepted,
            replaced=replaced,
            rejected=len(errors),
            total_items=total,
            errors=errors,
        )

    def clear(self, source: Optional[str] = None) -> int:
        source = self._resolve_source(source)
        removed = self.store.clear(source)
        logger.info(f"Cleared {removed} item(s)" + (f" from {source}" if source else ""))

        mon = _get_monitor()
        if mon:
            from monitoring import EventType
            mon.activity.add_event(EventType.ITEMS_CLEARED, source=source, removed=removed)

        return removed

    # ------------------------------------------------------------------------
    # Items
    # ------------------------------------------------------------------------

    def enrich_item(
        self,
        item: Any,
        now: Optional[datetime] = None,
        history: Optional[List[HistoricalSample]] = None,
    ) -> EnrichedItem:
        """Attach momentum, engagement, badge, age and virality to an item."""
        engine = self.engine
        now = ensure_utc(now) if now is not None else engine.now()
        item = parse_item(item)
        if history is None:
            history = self.store.get_history(item.id)

        momentum = engine.calculate_momentum_score(item, history, now)
        badge = engine.get_momentum_badge(momentum.score)
        virality = None
        if isinstance(item, HackerNewsItem):
            virality = engine.calculate_virality_index(item, now)

        return EnrichedItem(
            item=item.model_dump(mode="json"),
            momentum=momentum,
            engagement=EngagementMetrics(
                rate=round_half_up(engine.calculate_engagement_rate(item), 1),
                score=round_half_up(engine.calculate_engagement_score(item), 1),
            ),
            badge=badge,
            badge_label=badge.label,
            badge_emoji=badge.emoji,
            age_in_days=engine.get_age_in_days(item, now),
            recency=describe_recency(item.timestamp, now),
            virality_index=virality,
        )

    def get_item(self, item_id: str) -> Optional[EnrichedItem]:
        item = self.store.get_item(item_id)
        if item is None:
            return None
        return self.enrich_item(item)

    def get_trending(
        self,
        source: Optional[str] = None,
        range_name: Optional[str] = None,
        sort: str = "popularity",
        limit: int = 20,
    ) -> List[EnrichedItem]:
        """
        Get enriched items for a range, sorted by popularity, momentum or recency.

        Raises:
            ValueError: If source, range or sort is unknown
        """
        if sort not in SORT_OPTIONS:
            raise ValueError(f"Invalid sort: {sort}. Must be one of {list(SORT_OPTIONS)}")
        source = self._resolve_source(source)
        range_name = range_name or self.default_range

        started = time.perf_counter()
        now = self.engine.now()
        start, _ = get_range_window(range_name, now)

        histories = self.store.get_histories()
        enriched = [
            (item, self.enrich_item(item, now, histories.get(item.id, [])))
            for item in self.store.get_items(source=source, start=start)
        ]

        if sort == "popularity":
            enriched.sort(key=lambda pair: pair[0].popularity(), reverse=True)
        elif sort == "momentum":
            enriched.sort(key=lambda pair: pair[1].momentum.score, reverse=True)
        else:
            enriched.sort(key=lambda pair: pair[0].timestamp or now, reverse=True)

        result = [e for _, e in enriched[:limit]]
        self._record_computation("trending", started, range=range_name, items=len(result))
        return result

    def rank_item(self, item_id: str) -> Optional[ItemPercentiles]:
        """Percentile of an item's popularity and engagement among its source."""
        item = self.store.get_item(item_id)
        if item is None:
            return None

        peers = self.store.get_items(source=item.source)
        engine = self.engine
        popularity = [p.popularity() for p in peers]
        engagement = [engine.calculate_engagement_score(p) for p in peers]
        engagement_score = engine.calculate_engagement_score(item)

        return ItemPercentiles(
            id=item.id,
            source=item.source,
            popularity=item.popularity(),
            popularity_percentile=engine.calculate_percentile_rank(item.popularity(), popularity),
            engagement_score=round_half_up(engagement_score, 1),
            engagement_percentile=engine.calculate_percentile_rank(engagement_score, engagement),
            sample_size=len(peers),
        )

    # ------------------------------------------------------------------------
    # Analytics
    # ------------------------------------------------------------------------

    def get_enhanced_analytics(self, range_name: Optional[str] = None, compare: bool = False) -> EnhancedAnalytics:
        """
        Snapshot plus derived metrics for the range window ending now.

        With compare=True, the window is also compared to the preceding
        window of equal length (period comparison and language growth).

        Raises:
            ValueError: If the range is unknown
        """
        range_name = range_name or self.default_range
        started = time.perf_counter()
        engine = self.engine
        now = engine.now()
        start, end = get_range_window(range_name, now)

        items = self.store.get_items(start=start)
        snapshot = build_snapshot(items)
        histories = self.store.get_histories()

        metrics = EnhancedMetrics(
            freshness_index=engine.calculate_freshness_index(items, now),
            health_score=engine.calculate_health_score({"items": items}, now),
            language_diversity=engine.calculate_language_diversity(snapshot.language_stats),
            velocity_leaders=engine.find_velocity_leaders(items, now=now, history=histories),
        )

        comparison = None
        language_growth = None
        if compare:
            previous_start = start - (end - start)
            previous_snapshot = build_snapshot(self.store.get_items(start=previous_start, end=start))
            comparison = engine.calculate_period_comparison(snapshot, previous_snapshot)
            language_growth = engine.analyze_language_growth(
                snapshot.language_stats, previous_snapshot.language_stats
            )

        self._record_computation("enhanced_analytics", started, range=range_name, items=len(items))

        return EnhancedAnalytics(
            period=range_name,
            start=start,
            end=end,
            snapshot=snapshot,
            metrics=metrics,
            comparison=comparison,
            language_growth=language_growth,
        )

    def get_language_growth(self, range_name: Optional[str] = None) -> LanguageGrowthAnalysis:
        """Language growth of the range window against the preceding one."""
        range_name = range_name or self.default_range
        now = self.engine.now()
        start, end = get_range_window(range_name, now)
        previous_start = start - (end - start)

        current = build_snapshot(self.store.get_items(source=TrendSource.GITHUB.value, start=start))
        previous = build_snapshot(
            self.store.get_items(source=TrendSource.GITHUB.value, start=previous_start, end=start)
        )
        return self.engine.analyze_language_growth(current.language_stats, previous.language_stats)

    # ------------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------------

    def _resolve_source(self, source: Optional[str]) -> Optional[str]:
        if source is None or source == "all":
            return None
        source = source.lower()
        if source not in {s.value for s in TrendSource}:
            raise ValueError(f"Invalid source: {source}. Must be one of {[s.value for s in TrendSource]}")
        return source

    def _record_computation(self, kind: str, started: float, **details) -> None:
        latency_ms = (time.perf_counter() - started) * 1000
        logger.debug(f"Computed {kind} in {latency_ms:.1f}ms")

        mon = _get_monitor()
        if mon:
            from monitoring import EventType
            mon.metrics.record_computation(kind, latency_ms)
            mon.activity.add_event(EventType.ANALYTICS_COMPUTED, kind=kind, **details)


__all__ = [
    "ItemStore",
    "AnalyticsService",
    "AnalyticsSnapshot",
    "GithubStats",
    "HackerNewsStats",
    "EngagementMetrics",
    "EnrichedItem",
    "EnhancedMetrics",
    "EnhancedAnalytics",
    "IngestResult",
    "ItemPercentiles",
    "build_snapshot",
    "build_language_stats",
    "describe_recency",
    "get_range_window",
    "RANGE_DAYS",
    "DEFAULT_RANGE",
    "SORT_OPTIONS",
]
