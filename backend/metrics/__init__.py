"""
Derived metrics engine for trending technology items.

Layers (each one only builds on the layers before it):
- Item primitives: velocity, acceleration, recency factor, engagement rate
- Item composites: momentum score, engagement score, virality index, badge
- Collection aggregates: freshness, average engagement, activity rate,
  discussion quality, health score, language diversity
- Comparative analyses: growth rate, period comparison, percentile rank,
  language growth, velocity leaders

Every operation is arithmetic over its inputs and keeps no state between
calls. The only shared input is "now": top-level operations read it once
from the engine clock and pass the same instant to every sub-call.
"""

from __future__ import annotations

import logging
import math
from bisect import bisect_left
from datetime import datetime, timedelta
from enum import Enum
from typing import Any, Callable, Dict, Iterable, List, Mapping, Optional, Sequence, Tuple

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from trends.models import (
    HackerNewsItem,
    TrendItem,
    SECONDS_PER_DAY,
    ensure_utc,
    parse_item,
    parse_samples,
    utc_now,
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


# Recency decays linearly to zero over this many days
RECENCY_WINDOW_DAYS = 30

# Items newer than this count as fresh / active
FRESHNESS_WINDOW = timedelta(days=7)
ACTIVITY_WINDOW = timedelta(days=7)

# Stories get a virality bonus during their first 48 hours
VIRALITY_WINDOW_HOURS = 48

# A thread with this many comments counts as a full-depth discussion
DEEP_DISCUSSION_COMMENTS = 100

# Health score weights (each component is pre-multiplied before summing)
HEALTH_WEIGHTS = {
    "activityRate": 0.4,
    "engagement": 0.3,
    "discussionQuality": 0.2,
    "freshness": 0.1,
}

# Language growth classification thresholds (percent)
MARKET_SHARE_THRESHOLD = 15
LEADER_GROWTH_THRESHOLD = 10
CHALLENGER_GROWTH_THRESHOLD = 20

DEFAULT_LEADER_LIMIT = 3


def round_half_up(value: float, digits: int = 1) -> float:
    """Round to `digits` decimals with halves going up (dashboard rounding)."""
    factor = 10 ** digits
    return math.floor(value * factor + 0.5) / factor


def _as_item(item: Any) -> TrendItem:
    """Coerce anything the engine is handed into a TrendItem without raising."""
    return parse_item(item, strict=False)


def _lookup(record: Any, *keys: str) -> Any:
    """Read the first present key from a mapping or attribute from a model."""
    if record is None:
        return None
    for key in keys:
        if isinstance(record, Mapping):
            if record.get(key) is not None:
                return record[key]
        elif getattr(record, key, None) is not None:
            return getattr(record, key)
    return None


def _number(value: Any) -> float:
    if value is None:
        return 0.0
    try:
        return float(value)
    except (TypeError, ValueError):
        return 0.0


# ============================================================================
# Value records
# ============================================================================

class MetricRecord(BaseModel):
    """Base for derived records: immutable, camelCase on the wire."""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True)


class MomentumBadge(str, Enum):
    """Momentum tier, a pure function of the momentum score."""
    EXPLOSIVE = "explosive"
    RISING = "rising"
    STEADY = "steady"
    SOLID = "solid"
    COOLING = "cooling"

    @property
    def label(self) -> str:
        return self.value.capitalize()

    @property
    def emoji(self) -> str:
        return _BADGE_EMOJI[self]

    @property
    def rank(self) -> int:
        """Ordinal position: cooling=0 ... explosive=4."""
        return _BADGE_ORDER.index(self)


_BADGE_EMOJI = {
    MomentumBadge.EXPLOSIVE: "🔥",
    MomentumBadge.RISING: "⚡",
    MomentumBadge.STEADY: "📈",
    MomentumBadge.SOLID: "💎",
    MomentumBadge.COOLING: "⚠️",
}

_BADGE_ORDER = [
    MomentumBadge.COOLING,
    MomentumBadge.SOLID,
    MomentumBadge.STEADY,
    MomentumBadge.RISING,
    MomentumBadge.EXPLOSIVE,
]

# Evaluated top-down, first match wins
BADGE_THRESHOLDS: List[Tuple[float, MomentumBadge]] = [
    (80, MomentumBadge.EXPLOSIVE),
    (60, MomentumBadge.RISING),
    (40, MomentumBadge.STEADY),
    (20, MomentumBadge.SOLID),
]


class MomentumScore(MetricRecord):
    """
    Bounded 0-100 estimate of how fast an item is growing right now.

    Sub-components are returned alongside the score, each rounded on its own.
    """
    score: float = Field(default=0.0, description="Momentum score (0-100, 1 decimal)")
    velocity: float = Field(default=0.0, description="Normalized popularity growth per day")
    acceleration: float = Field(default=0.0, description="Change in velocity between recent windows")
    recency_factor: float = Field(default=1.0, description="Decay multiplier (0-1)")
    engagement_multiplier: float = Field(default=1.0, description="Engagement boost (>= 1)")

    @classmethod
    def neutral(cls) -> "MomentumScore":
        """The record returned when the computation fails."""
        return cls(score=0.0, velocity=0.0, acceleration=0.0, recency_factor=1.0, engagement_multiplier=1.0)


class HealthScore(MetricRecord):
    """
    Ecosystem vitality composite.

    `components` holds each weighted term (activityRate, engagement,
    discussionQuality, freshness). It is empty when the computation failed.
    """
    score: float = Field(default=0.0, description="Health score (0-100)")
    components: Dict[str, float] = Field(default_factory=dict, description="Weighted component terms")


class AnalyticsContext(MetricRecord):
    """
    Input to the health score.

    activity_rate and discussion_quality are optional collaborator-supplied
    signals (0-100); when absent they are approximated from the items.
    """
    items: List[Any] = Field(default_factory=list, description="Trend items or item records")
    activity_rate: Optional[float] = Field(default=None, description="Percent of items active in the last 7 days")
    discussion_quality: Optional[float] = Field(default=None, description="Comment depth/length quality (0-100)")


class LanguageStat(MetricRecord):
    """Per-language share of a repository collection."""
    language: str
    count: int = 0
    stars: int = 0
    avg_stars: int = 0
    percentage: float = Field(default=0.0, description="Share of repositories (percent)")


class LanguageGrowthEntry(MetricRecord):
    language: str
    market_share: float
    growth_rate: float = Field(description="Count growth vs previous period (percent, 1 decimal)")
    count: int
    stars: int


class LanguageGrowthAnalysis(MetricRecord):
    """
    Languages bucketed by market share and growth.

    Buckets are not exhaustive: a language matching no rule appears in none.
    """
    leaders: List[LanguageGrowthEntry] = Field(default_factory=list)
    challengers: List[LanguageGrowthEntry] = Field(default_factory=list)
    established: List[LanguageGrowthEntry] = Field(default_factory=list)
    declining: List[LanguageGrowthEntry] = Field(default_factory=list)


class PeriodTotals(MetricRecord):
    items: float = 0
    avg_popularity: float = 0
    stars: float = 0
    points: float = 0


class PeriodChange(MetricRecord):
    items_percent: float = 0.0
    popularity_percent: float = 0.0
    stars_percent: float = 0.0
    points_percent: float = 0.0


class PeriodComparison(MetricRecord):
    current: PeriodTotals
    previous: PeriodTotals
    change: PeriodChange


class VelocityLeader(MetricRecord):
    id: str
    title: str
    source: str
    momentum_score: float
    growth_rate: float = Field(description="Velocity of the item")
    badge: MomentumBadge


# ============================================================================
# Engine
# ============================================================================

class MetricsEngine:
    """
    Computes derived metrics from trend items.

    Usage:
        engine = MetricsEngine()
        momentum = engine.calculate_momentum_score(item)
        badge = engine.get_momentum_badge(momentum.score)
        health = engine.calculate_health_score({"items": items})

    Args:
        clock: Returns the current UTC time (injectable for tests)
    """

    def __init__(self, clock: Optional[Callable[[], datetime]] = None):
        self._clock = clock or utc_now

    def now(self) -> datetime:
        return ensure_utc(self._clock())

    def _resolve_now(self, now: Optional[datetime]) -> datetime:
        return ensure_utc(now) if now is not None else self.now()

    # ------------------------------------------------------------------------
    # Item-level primitives
    # ------------------------------------------------------------------------

    def get_age_in_days(self, item: Any, now: Optional[datetime] = None) -> int:
        """Whole days since the item's timestamp (0 when missing or in the future)."""
        return _as_item(item).age_in_days(self._resolve_now(now))

    def calculate_velocity(
        self,
        item: Any,
        historical_samples: Optional[Sequence[Any]] = None,
        now: Optional[datetime] = None,
    ) -> float:
        """
        Estimate popularity growth per day, normalized per source.

        With history, this is the least-squares slope of popularity over the
        samples plus the current observation. A non-decreasing series is
        floored at the single-point estimate. Without usable history it is
        popularity / age / divisor, and 0 for items less than a day old.
        """
        item = _as_item(item)
        now = self._resolve_now(now)

        estimate = self._single_point_velocity(item, now)
        points = self._history_points(item, historical_samples, now)
        if len(points) < 2:
            return estimate

        slope = _least_squares_slope(points)
        if slope is None:
            return estimate
        velocity = slope / item.popularity_divisor

        if _is_non_decreasing(points):
            return max(velocity, estimate)
        return velocity

    def _single_point_velocity(self, item: TrendItem, now: datetime) -> float:
        age = item.age_in_days(now)
        if age == 0:
            return 0.0
        return item.popularity() / age / item.popularity_divisor

    def _history_points(
        self,
        item: TrendItem,
        historical_samples: Optional[Sequence[Any]],
        now: datetime,
    ) -> List[Tuple[float, float]]:
        """
        (days relative to now, popularity) pairs, oldest first.

        Samples after `now` are ignored; the item's current popularity is the
        observation at `now`. One point per distinct instant (latest wins).
        """
        samples = parse_samples(historical_samples, strict=False)
        if not samples:
            return []

        by_offset: Dict[float, float] = {}
        for sample in sorted(samples, key=lambda s: s.timestamp):
            if sample.timestamp > now:
                continue
            offset = (sample.timestamp - now).total_seconds() / SECONDS_PER_DAY
            by_offset[offset] = sample.popularity
        by_offset[0.0] = float(item.popularity())

        return sorted(by_offset.items())

    def calculate_acceleration(
        self,
        item: Any,
        historical_samples: Optional[Sequence[Any]] = None,
        now: Optional[datetime] = None,
    ) -> float:
        """
        Change in normalized velocity between the two most recent windows.

        Needs at least three distinct observations (two samples plus the
        current one); otherwise there is no trend to measure and it is 0.
        """
        item = _as_item(item)
        now = self._resolve_now(now)

        points = self._history_points(item, historical_samples, now)
        if len(points) < 3:
            return 0.0

        (x0, y0), (x1, y1), (x2, y2) = points[-3:]
        previous_velocity = (y1 - y0) / (x1 - x0)
        latest_velocity = (y2 - y1) / (x2 - x1)
        return (latest_velocity - previous_velocity) / item.popularity_divisor

    def calculate_recency_factor(self, item: Any, now: Optional[datetime] = None) -> float:
        """Linear decay from 1 (today) to 0 (30+ days old)."""
        age = self.get_age_in_days(item, now)
        return max(0.0, 1 - age / RECENCY_WINDOW_DAYS)

    def calculate_engagement_rate(self, item: Any) -> float:
        """
        GitHub: forks per hundred stars. HackerNews: comments per point.
        Zero denominators and unknown sources give 0.
        """
        return _as_item(item).engagement_rate()

    def calculate_engagement_multiplier(self, item: Any) -> float:
        return 1 + self.calculate_engagement_rate(item) / 10

    # ------------------------------------------------------------------------
    # Item-level composites
    # ------------------------------------------------------------------------

    def calculate_momentum_score(
        self,
        item: Any,
        historical_samples: Optional[Sequence[Any]] = None,
        now: Optional[datetime] = None,
    ) -> MomentumScore:
        """
        Momentum = (velocity*10 + acceleration*5) * recency * engagement, clamped to 0-100.

        Never raises: any failure yields MomentumScore.neutral() and is
        logged and reported to the monitor.
        """
        try:
            now = self._resolve_now(now)
            item = _as_item(item)

            velocity = self.calculate_velocity(item, historical_samples, now)
            acceleration = self.calculate_acceleration(item, historical_samples, now)
            recency_factor = self.calculate_recency_factor(item, now)
            engagement_multiplier = self.calculate_engagement_multiplier(item)

            raw_score = (velocity * 10 + acceleration * 5) * recency_factor * engagement_multiplier
            if not math.isfinite(raw_score):
                raise ValueError(f"non-finite momentum score: {raw_score}")
            score = min(100.0, max(0.0, raw_score))

            return MomentumScore(
                score=round_half_up(score, 1),
                velocity=round_half_up(velocity, 1),
                acceleration=round_half_up(acceleration, 1),
                recency_factor=round_half_up(recency_factor, 2),
                engagement_multiplier=round_half_up(engagement_multiplier, 2),
            )
        except Exception as e:
            logger.error(f"Error calculating momentum score: {e}")
            _report_degraded("momentum_score", e)
            return MomentumScore.neutral()

    def calculate_engagement_score(self, item: Any) -> float:
        """
        Engagement rate mapped onto 0-10.

        A 20% fork ratio (github) or 2.0 comments per point (hackernews)
        reaches the maximum. Unknown sources score 0.
        """
        item = _as_item(item)
        ceiling = item.max_engagement_rate
        if not ceiling:
            return 0.0
        return min(10.0, (item.engagement_rate() / ceiling) * 10)

    def get_momentum_badge(self, score: float) -> MomentumBadge:
        for threshold, badge in BADGE_THRESHOLDS:
            if score >= threshold:
                return badge
        return MomentumBadge.COOLING

    def calculate_virality_index(self, story: Any, now: Optional[datetime] = None) -> float:
        """
        Relative virality signal for HackerNews stories (unbounded).

        points/hour * 0.5 + comments/points * 30 + first-48h bonus * 20.
        Non-story items and stories under a day old score 0.
        """
        story = _as_item(story)
        if not isinstance(story, HackerNewsItem):
            return 0.0

        age_in_hours = story.age_in_days(self._resolve_now(now)) * 24
        if age_in_hours == 0:
            return 0.0

        points_per_hour = story.points / age_in_hours
        comment_rate = story.comments / max(1, story.points)
        recency_bonus = max(0.0, 1 - age_in_hours / VIRALITY_WINDOW_HOURS)

        virality = points_per_hour * 0.5 + comment_rate * 30 + recency_bonus * 20
        return round_half_up(virality, 1)

    # ------------------------------------------------------------------------
    # Collection-level aggregates
    # ------------------------------------------------------------------------

    def calculate_freshness_index(self, items: Iterable[Any], now: Optional[datetime] = None) -> float:
        """Percent of items from the last 7 days (1 decimal). Empty collection gives 0."""
        items = [_as_item(i) for i in items or []]
        if not items:
            return 0.0

        now = self._resolve_now(now)
        fresh = [i for i in items if now - (i.timestamp or now) < FRESHNESS_WINDOW]
        return round_half_up(len(fresh) / len(items) * 100, 1)

    def calculate_average_engagement(self, items: Iterable[Any]) -> float:
        """Mean engagement score (0-10) over the collection."""
        items = list(items or [])
        if not items:
            return 0.0
        return sum(self.calculate_engagement_score(i) for i in items) / len(items)

    def calculate_activity_rate(self, items: Iterable[Any], now: Optional[datetime] = None) -> float:
        """Percent of items whose last activity falls in the trailing 7 days."""
        items = [_as_item(i) for i in items or []]
        if not items:
            return 0.0

        now = self._resolve_now(now)
        active = [i for i in items if now - (i.last_activity() or now) < ACTIVITY_WINDOW]
        return len(active) / len(items) * 100

    def calculate_discussion_quality(self, items: Iterable[Any]) -> float:
        """Mean comment depth of the stories, scaled to 0-100."""
        stories = [i for i in (_as_item(i) for i in items or []) if isinstance(i, HackerNewsItem)]
        if not stories:
            return 0.0

        depth = [min(100.0, s.comments / DEEP_DISCUSSION_COMMENTS * 100) for s in stories]
        return sum(depth) / len(depth)

    def calculate_health_score(self, context: Any, now: Optional[datetime] = None) -> HealthScore:
        """
        Weighted ecosystem health: activity 40%, engagement 30%,
        discussion quality 20%, freshness 10%.

        `context` is an AnalyticsContext, a mapping with the same keys
        (camelCase accepted), or a plain sequence of items. Never raises:
        failures give HealthScore(score=0, components={}).
        """
        try:
            now = self._resolve_now(now)
            context = _coerce_context(context)
            items = [_as_item(i) for i in context.items]

            activity_rate = context.activity_rate
            if activity_rate is None:
                activity_rate = self.calculate_activity_rate(items, now)
            discussion_quality = context.discussion_quality
            if discussion_quality is None:
                discussion_quality = self.calculate_discussion_quality(items)

            terms = {
                "activityRate": _percent(activity_rate) * HEALTH_WEIGHTS["activityRate"],
                "engagement": self.calculate_average_engagement(items) * HEALTH_WEIGHTS["engagement"],
                "discussionQuality": _percent(discussion_quality) * HEALTH_WEIGHTS["discussionQuality"],
                "freshness": self.calculate_freshness_index(items, now) * HEALTH_WEIGHTS["freshness"],
            }
            total = sum(terms.values())

            return HealthScore(
                score=round_half_up(total, 1),
                components={name: round_half_up(value, 1) for name, value in terms.items()},
            )
        except Exception as e:
            logger.error(f"Error calculating health score: {e}")
            _report_degraded("health_score", e)
            return HealthScore(score=0.0, components={})

    def calculate_language_diversity(self, language_stats: Optional[Sequence[Any]]) -> float:
        """
        Shannon evenness of the language distribution, 0-100 (1 decimal).

        Entropy over count shares divided by log2(number of languages).
        Empty input, zero total, or a single language give 0.
        """
        if not language_stats:
            return 0.0

        counts = [_number(_lookup(stat, "count")) for stat in language_stats]
        total = sum(counts)
        if total <= 0:
            return 0.0

        entropy = 0.0
        for count in counts:
            proportion = count / total
            if proportion > 0:
                entropy -= proportion * math.log2(proportion)

        max_entropy = math.log2(len(language_stats))
        if max_entropy <= 0:
            return 0.0
        return round_half_up(entropy / max_entropy * 100, 1)

    # ------------------------------------------------------------------------
    # Comparative analyses
    # ------------------------------------------------------------------------

    def calculate_growth_rate(self, current: Any, previous: Any) -> float:
        """Percent change from previous to current. Zero or missing previous gives 0."""
        previous = _number(previous)
        if previous == 0:
            return 0.0
        return (_number(current) - previous) / previous * 100

    def calculate_24h_growth(self, current_value: Any, value_24h_ago: Any) -> float:
        return self.calculate_growth_rate(current_value, value_24h_ago)

    def calculate_period_comparison(self, current_totals: Any, previous_totals: Any) -> PeriodComparison:
        """
        Compare two aggregate snapshots.

        Snapshots are mappings shaped like {totalItems, avgPopularity,
        githubStats: {totalStars}, hackerNewsStats: {totalPoints}} (snake_case
        also accepted) or models with those attributes. Missing paths are 0.
        """
        current = _period_totals(current_totals)
        previous = _period_totals(previous_totals)

        return PeriodComparison(
            current=current,
            previous=previous,
            change=PeriodChange(
                items_percent=self.calculate_growth_rate(current.items, previous.items),
                popularity_percent=self.calculate_growth_rate(current.avg_popularity, previous.avg_popularity),
                stars_percent=self.calculate_growth_rate(current.stars, previous.stars),
                points_percent=self.calculate_growth_rate(current.points, previous.points),
            ),
        )

    def calculate_percentile_rank(self, value: float, dataset: Optional[Sequence[float]]) -> int:
        """
        Share of the dataset strictly below `value`, floored to an integer percent.

        100 when `value` exceeds every element; 0 for an empty dataset.
        """
        if not dataset:
            return 0

        ordered = sorted(dataset)
        index = bisect_left(ordered, value)
        if index == len(ordered):
            return 100
        return math.floor(index / len(ordered) * 100)

    def analyze_language_growth(
        self,
        current_stats: Optional[Sequence[Any]],
        previous_stats: Optional[Sequence[Any]] = None,
    ) -> LanguageGrowthAnalysis:
        """
        Bucket each current language into leaders, challengers, established
        or declining (first matching rule wins, or none).

        - leaders: share > 15 and growth > 10
        - challengers: share < 15 and growth > 20
        - established: share > 15 and growth < 10
        - declining: growth < 0
        """
        previous_counts: Dict[str, float] = {}
        for stat in previous_stats or []:
            name = _lookup(stat, "language")
            if name is not None and name not in previous_counts:
                previous_counts[name] = _number(_lookup(stat, "count"))

        analysis = {"leaders": [], "challengers": [], "established": [], "declining": []}

        for stat in current_stats or []:
            language = str(_lookup(stat, "language") or "")
            count = _number(_lookup(stat, "count"))
            market_share = _number(_lookup(stat, "percentage"))
            growth_rate = self.calculate_growth_rate(count, previous_counts.get(language, 0))

            entry = LanguageGrowthEntry(
                language=language,
                market_share=market_share,
                growth_rate=round_half_up(growth_rate, 1),
                count=int(count),
                stars=int(_number(_lookup(stat, "stars"))),
            )

            if market_share > MARKET_SHARE_THRESHOLD and growth_rate > LEADER_GROWTH_THRESHOLD:
                analysis["leaders"].append(entry)
            elif market_share < MARKET_SHARE_THRESHOLD and growth_rate > CHALLENGER_GROWTH_THRESHOLD:
                analysis["challengers"].append(entry)
            elif market_share > MARKET_SHARE_THRESHOLD and growth_rate < LEADER_GROWTH_THRESHOLD:
                analysis["established"].append(entry)
            elif growth_rate < 0:
                analysis["declining"].append(entry)

        return LanguageGrowthAnalysis(**analysis)

    def find_velocity_leaders(
        self,
        items: Optional[Sequence[Any]],
        limit: int = DEFAULT_LEADER_LIMIT,
        now: Optional[datetime] = None,
        history: Optional[Mapping[str, Sequence[Any]]] = None,
    ) -> List[VelocityLeader]:
        """
        Top `limit` items by momentum score, highest first.

        Ties keep their input order. `history` optionally maps item id to
        that item's historical samples.
        """
        if not items:
            return []

        now = self._resolve_now(now)
        history = history or {}

        scored = []
        for item in items:
            item = _as_item(item)
            momentum = self.calculate_momentum_score(item, history.get(item.id), now)
            scored.append((item, momentum))

        # sorted() is stable, so tied scores keep input order
        ranked = sorted(scored, key=lambda pair: pair[1].score, reverse=True)

        return [
            VelocityLeader(
                id=item.id,
                title=item.display_title(),
                source=item.source,
                momentum_score=momentum.score,
                growth_rate=momentum.velocity,
                badge=self.get_momentum_badge(momentum.score),
            )
            for item, momentum in ranked[:limit]
        ]


# ============================================================================
# Helpers
# ============================================================================

def _least_squares_slope(points: Sequence[Tuple[float, float]]) -> Optional[float]:
    """Ordinary least-squares slope, or None when all x are equal."""
    n = len(points)
    mean_x = sum(x for x, _ in points) / n
    mean_y = sum(y for _, y in points) / n
    denominator = sum((x - mean_x) ** 2 for x, _ in points)
    if denominator == 0:
        return None
    numerator = sum((x - mean_x) * (y - mean_y) for x, y in points)
    return numerator / denominator


def _is_non_decreasing(points: Sequence[Tuple[float, float]]) -> bool:
    return all(later[1] >= earlier[1] for earlier, later in zip(points, points[1:]))


def _percent(value: Any) -> float:
    """Clamp a collaborator-supplied percentage into 0-100."""
    return min(100.0, max(0.0, float(value)))


def _coerce_context(context: Any) -> AnalyticsContext:
    if isinstance(context, AnalyticsContext):
        return context
    if context is None:
        return AnalyticsContext()
    if isinstance(context, Mapping):
        return AnalyticsContext.model_validate(dict(context))
    return AnalyticsContext(items=list(context))


def _period_totals(snapshot: Any) -> PeriodTotals:
    if isinstance(snapshot, BaseModel) and not isinstance(snapshot, PeriodTotals):
        snapshot = snapshot.model_dump(by_alias=True)

    github = _lookup(snapshot, "githubStats", "github_stats")
    hacker_news = _lookup(snapshot, "hackerNewsStats", "hacker_news_stats")

    return PeriodTotals(
        items=_number(_lookup(snapshot, "totalItems", "total_items", "items")),
        avg_popularity=_number(_lookup(snapshot, "avgPopularity", "avg_popularity")),
        stars=_number(_lookup(github, "totalStars", "total_stars") if github is not None else _lookup(snapshot, "stars")),
        points=_number(_lookup(hacker_news, "totalPoints", "total_points") if hacker_news is not None else _lookup(snapshot, "points")),
    )


def _report_degraded(metric: str, error: Exception) -> None:
    mon = _get_monitor()
    if mon:
        from monitoring import EventType
        mon.metrics.record_degraded(metric)
        mon.activity.add_event(EventType.DEGRADED_RESULT, metric=metric, error=str(error)[:200])


__all__ = [
    "MetricsEngine",
    "MetricRecord",
    "MomentumScore",
    "MomentumBadge",
    "HealthScore",
    "AnalyticsContext",
    "LanguageStat",
    "LanguageGrowthEntry",
    "LanguageGrowthAnalysis",
    "PeriodTotals",
    "PeriodChange",
    "PeriodComparison",
    "VelocityLeader",
    "BADGE_THRESHOLDS",
    "HEALTH_WEIGHTS",
    "FRESHNESS_WINDOW",
    "ACTIVITY_WINDOW",
    "RECENCY_WINDOW_DAYS",
    "round_half_up",
]
