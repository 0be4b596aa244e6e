"""Unit tests for the MetricsEngine."""

import math

import pytest
from datetime import datetime, timezone, timedelta
from unittest.mock import Mock, patch

import metrics
from metrics import (
    MetricsEngine,
    MomentumScore,
    MomentumBadge,
    HealthScore,
    AnalyticsContext,
    LanguageStat,
    round_half_up,
)
from trends.models import ANONYMOUS_ID, HistoricalSample


NOW = datetime(2025, 6, 15, 12, 0, tzinfo=timezone.utc)


def github(item_id: str = "github-1", stars: int = 0, forks: int = 0, age: timedelta = timedelta(days=2), **extra) -> dict:
    """Helper to build a github item record."""
    return {
        "id": item_id,
        "source": "github",
        "stars": stars,
        "forks": forks,
        "timestamp": NOW - age,
        **extra,
    }


def story(item_id: str = "hn-1", points: int = 0, comments: int = 0, age: timedelta = timedelta(hours=24), **extra) -> dict:
    """Helper to build a hackernews story record."""
    return {
        "id": item_id,
        "source": "hackernews",
        "points": points,
        "comments": comments,
        "timestamp": NOW - age,
        **extra,
    }


def sample(days_ago: float, popularity: float) -> HistoricalSample:
    return HistoricalSample(timestamp=NOW - timedelta(days=days_ago), popularity=popularity)


@pytest.fixture
def engine():
    return MetricsEngine(clock=lambda: NOW)


# ============================================================================
# Item-level primitives
# ============================================================================

class TestAge:
    """Test age calculation."""

    def test_whole_days(self, engine):
        assert engine.get_age_in_days(github(age=timedelta(hours=36))) == 1
        assert engine.get_age_in_days(github(age=timedelta(days=10))) == 10

    def test_missing_timestamp_is_now(self, engine):
        assert engine.get_age_in_days({"id": "x", "source": "github"}) == 0

    def test_future_timestamp_clamps_to_zero(self, engine):
        assert engine.get_age_in_days(github(age=timedelta(days=-3))) == 0

    def test_naive_datetime_treated_as_utc(self, engine):
        item = {"id": "x", "source": "github", "timestamp": datetime(2025, 6, 10, 12, 0)}
        assert engine.get_age_in_days(item) == 5

    def test_explicit_now_overrides_clock(self, engine):
        item = github(age=timedelta(days=2))
        assert engine.get_age_in_days(item, now=NOW + timedelta(days=5)) == 7


class TestVelocity:
    """Test velocity estimation."""

    def test_single_point_github(self, engine):
        assert engine.calculate_velocity(github(stars=10000, age=timedelta(days=2))) == pytest.approx(5.0)

    def test_single_point_hackernews(self, engine):
        assert engine.calculate_velocity(story(points=400, age=timedelta(days=4))) == pytest.approx(10.0)

    def test_zero_age_is_zero(self, engine):
        velocity = engine.calculate_velocity(github(stars=5000, age=timedelta(hours=3)))
        assert velocity == 0
        assert math.isfinite(velocity)

    def test_history_slope(self, engine):
        item = github(stars=1000, age=timedelta(days=10))
        history = [sample(2, 600), sample(1, 800)]

        # 200 stars/day over the samples, single-point estimate is 0.1
        assert engine.calculate_velocity(item, history) == pytest.approx(0.2)

    def test_upward_history_never_below_single_point(self, engine):
        item = github(stars=10000, age=timedelta(days=2))
        history = [sample(1, 9990)]

        single = engine.calculate_velocity(item)
        assert engine.calculate_velocity(item, history) >= single
        assert engine.calculate_velocity(item, history) == pytest.approx(5.0)

    def test_falling_history_is_negative(self, engine):
        item = github(stars=1000, age=timedelta(days=10))
        assert engine.calculate_velocity(item, [sample(1, 2000)]) == pytest.approx(-1.0)

    def test_empty_history_falls_back(self, engine):
        item = github(stars=10000, age=timedelta(days=2))
        assert engine.calculate_velocity(item, []) == pytest.approx(5.0)

    def test_future_samples_ignored(self, engine):
        item = github(stars=10000, age=timedelta(days=2))
        assert engine.calculate_velocity(item, [sample(-1, 50000)]) == pytest.approx(5.0)

    def test_samples_as_mappings(self, engine):
        item = github(stars=1000, age=timedelta(days=10))
        history = [
            {"timestamp": NOW - timedelta(days=2), "popularityValue": 600},
            {"timestamp": NOW - timedelta(days=1), "popularity": 800},
        ]
        assert engine.calculate_velocity(item, history) == pytest.approx(0.2)


class TestAcceleration:
    """Test acceleration estimation."""

    def test_no_history_is_zero(self, engine):
        assert engine.calculate_acceleration(github(stars=10000)) == 0

    def test_needs_two_samples(self, engine):
        item = github(stars=1000, age=timedelta(days=10))
        assert engine.calculate_acceleration(item, [sample(1, 500)]) == 0

    def test_speeding_up(self, engine):
        item = github(stars=1000, age=timedelta(days=10))
        history = [sample(2, 500), sample(1, 600)]

        # 100/day then 400/day
        assert engine.calculate_acceleration(item, history) == pytest.approx(0.3)

    def test_steady_growth_is_zero(self, engine):
        item = github(stars=1000, age=timedelta(days=10))
        history = [sample(2, 600), sample(1, 800)]
        assert engine.calculate_acceleration(item, history) == pytest.approx(0.0)

    def test_deterministic(self, engine):
        item = github(stars=1000, age=timedelta(days=10))
        history = [sample(3, 100), sample(2, 500), sample(1, 600)]
        results = {engine.calculate_acceleration(item, history) for _ in range(5)}
        assert len(results) == 1


class TestRecencyAndEngagement:
    """Test recency factor and engagement primitives."""

    def test_recency_decay(self, engine):
        assert engine.calculate_recency_factor(github(age=timedelta(hours=1))) == 1
        assert engine.calculate_recency_factor(github(age=timedelta(days=15))) == pytest.approx(0.5)
        assert engine.calculate_recency_factor(github(age=timedelta(days=30))) == 0
        assert engine.calculate_recency_factor(github(age=timedelta(days=45))) == 0

    def test_github_engagement_rate(self, engine):
        assert engine.calculate_engagement_rate(github(stars=1000, forks=100)) == pytest.approx(10.0)

    def test_hackernews_engagement_rate(self, engine):
        assert engine.calculate_engagement_rate(story(points=200, comments=50)) == pytest.approx(0.25)

    def test_zero_denominators(self, engine):
        assert engine.calculate_engagement_rate(github(stars=0, forks=5)) == 0
        assert engine.calculate_engagement_rate(story(points=0, comments=5)) == 0

    def test_unknown_source(self, engine):
        item = {"id": "r-1", "source": "reddit", "stars": 100, "forks": 50}
        assert engine.calculate_engagement_rate(item) == 0
        assert engine.calculate_engagement_score(item) == 0

    def test_multiplier(self, engine):
        assert engine.calculate_engagement_multiplier(github(stars=1000, forks=100)) == pytest.approx(2.0)
        assert engine.calculate_engagement_multiplier(github()) == 1


# ============================================================================
# Item-level composites
# ============================================================================

class TestMomentumScore:
    """Test the momentum composite."""

    def test_github_scenario_clamps_to_100(self, engine):
        item = github(stars=10000, forks=2000, age=timedelta(days=2))

        assert engine.calculate_engagement_rate(item) == pytest.approx(20)
        assert engine.calculate_engagement_score(item) == pytest.approx(10)

        momentum = engine.calculate_momentum_score(item)
        assert momentum.score == 100
        assert momentum.velocity == 5.0
        assert momentum.acceleration == 0.0
        assert momentum.recency_factor == 0.93
        assert momentum.engagement_multiplier == 3.0

    def test_unclamped_score(self, engine):
        # velocity 0.5, recency 0.9, multiplier 1.2 -> 5 * 0.9 * 1.2 = 5.4
        item = github(stars=1500, forks=30, age=timedelta(days=3))
        momentum = engine.calculate_momentum_score(item)
        assert momentum.score == pytest.approx(5.4)
        assert momentum.velocity == 0.5
        assert momentum.recency_factor == 0.9
        assert momentum.engagement_multiplier == 1.2

    def test_negative_raw_score_clamps_to_zero(self, engine):
        item = github(stars=1000, age=timedelta(days=10))
        momentum = engine.calculate_momentum_score(item, [sample(1, 2000)])
        assert momentum.score == 0
        assert momentum.velocity == -1.0

    def test_failure_is_neutral(self, engine):
        with patch.object(engine, "calculate_velocity", side_effect=RuntimeError("boom")):
            momentum = engine.calculate_momentum_score(github(stars=10000, forks=2000))
        assert momentum == MomentumScore.neutral()
        assert momentum.recency_factor == 1
        assert momentum.engagement_multiplier == 1

    def test_failure_reported_to_monitor(self, engine):
        mock_monitor = Mock()
        with patch.object(metrics, "_get_monitor", return_value=mock_monitor), \
                patch.object(engine, "calculate_recency_factor", side_effect=ZeroDivisionError):
            engine.calculate_momentum_score(github(stars=10))

        mock_monitor.metrics.record_degraded.assert_called_once_with("momentum_score")
        mock_monitor.activity.add_event.assert_called_once()

    def test_camel_case_serialization(self, engine):
        data = engine.calculate_momentum_score(github(stars=10000, forks=2000)).model_dump(by_alias=True)
        assert set(data.keys()) == {"score", "velocity", "acceleration", "recencyFactor", "engagementMultiplier"}

    def test_bounds(self, engine):
        items = [
            github(stars=10 ** 9, forks=10 ** 9, age=timedelta(days=1)),
            github(stars=1, age=timedelta(days=400)),
            story(points=10 ** 6, comments=10 ** 6, age=timedelta(days=1)),
            story(points=-50, comments=-3),
            {"id": "bare", "source": "reddit"},
        ]
        for item in items:
            assert 0 <= engine.calculate_momentum_score(item).score <= 100
            assert 0 <= engine.calculate_engagement_score(item) <= 10


class TestEngagementScore:
    """Test the 0-10 engagement score."""

    def test_github_scale(self, engine):
        assert engine.calculate_engagement_score(github(stars=1000, forks=100)) == pytest.approx(5.0)
        assert engine.calculate_engagement_score(github(stars=100, forks=500)) == 10

    def test_hackernews_scale(self, engine):
        assert engine.calculate_engagement_score(story(points=100, comments=100)) == pytest.approx(5.0)
        assert engine.calculate_engagement_score(story(points=100, comments=400)) == 10


class TestMomentumBadge:
    """Test badge thresholds."""

    def test_thresholds(self, engine):
        assert engine.get_momentum_badge(85) == MomentumBadge.EXPLOSIVE
        assert engine.get_momentum_badge(80) == MomentumBadge.EXPLOSIVE
        assert engine.get_momentum_badge(79.9) == MomentumBadge.RISING
        assert engine.get_momentum_badge(60) == MomentumBadge.RISING
        assert engine.get_momentum_badge(40) == MomentumBadge.STEADY
        assert engine.get_momentum_badge(20) == MomentumBadge.SOLID
        assert engine.get_momentum_badge(19.9) == MomentumBadge.COOLING
        assert engine.get_momentum_badge(0) == MomentumBadge.COOLING

    def test_monotonic(self, engine):
        scores = [0, 5, 19.9, 20, 39.9, 40, 59.9, 60, 79.9, 80, 100]
        ranks = [engine.get_momentum_badge(s).rank for s in scores]
        assert ranks == sorted(ranks)

    def test_label_and_emoji(self):
        assert MomentumBadge.EXPLOSIVE.label == "Explosive"
        assert MomentumBadge.EXPLOSIVE.emoji == "🔥"
        assert MomentumBadge.COOLING.emoji == "⚠️"
        assert MomentumBadge.COOLING.rank == 0
        assert MomentumBadge.EXPLOSIVE.rank == 4


class TestViralityIndex:
    """Test the HackerNews virality index."""

    def test_story_scenario(self, engine):
        assert engine.calculate_virality_index(story(points=400, comments=100, age=timedelta(hours=24))) == 25.8

    def test_github_is_zero(self, engine):
        assert engine.calculate_virality_index(github(stars=400, forks=100)) == 0

    def test_fresh_story_is_zero(self, engine):
        assert engine.calculate_virality_index(story(points=400, comments=100, age=timedelta(hours=5))) == 0

    def test_zero_points(self, engine):
        # comment rate uses max(1, points); recency bonus is gone after 48h
        assert engine.calculate_virality_index(story(points=0, comments=2, age=timedelta(days=3))) == 60.0


# ============================================================================
# Collection-level aggregates
# ============================================================================

class TestFreshnessAndActivity:
    """Test freshness index and activity rate."""

    def test_freshness(self, engine):
        items = [
            github("a", age=timedelta(days=1)),
            github("b", age=timedelta(days=8)),
            {"id": "c", "source": "github"},
        ]
        assert engine.calculate_freshness_index(items) == 66.7

    def test_freshness_window_is_exclusive(self, engine):
        assert engine.calculate_freshness_index([github(age=timedelta(days=7))]) == 0

    def test_freshness_idempotent(self, engine):
        items = [github("a", age=timedelta(days=1)), story("b", age=timedelta(days=9))]
        assert engine.calculate_freshness_index(items) == engine.calculate_freshness_index(items)

    def test_empty_collections(self, engine):
        assert engine.calculate_freshness_index([]) == 0
        assert engine.calculate_average_engagement([]) == 0
        assert engine.calculate_activity_rate([]) == 0
        assert engine.calculate_discussion_quality([]) == 0

    def test_activity_uses_updated_at(self, engine):
        items = [
            github("a", age=timedelta(days=20), updated_at=NOW - timedelta(days=1)),
            github("b", age=timedelta(days=20)),
        ]
        assert engine.calculate_activity_rate(items) == pytest.approx(50.0)

    def test_discussion_quality(self, engine):
        items = [story("a", comments=50), story("b", comments=250), github("c")]
        assert engine.calculate_discussion_quality(items) == pytest.approx(75.0)


class TestHealthScore:
    """Test the weighted health composite."""

    @pytest.fixture
    def items(self):
        return [
            github("g1", stars=100, forks=20, age=timedelta(days=1)),
            story("h1", points=100, comments=50, age=timedelta(days=10)),
        ]

    def test_weighted_components(self, engine, items):
        health = engine.calculate_health_score({"items": items})

        assert health.components["activityRate"] == pytest.approx(20.0)
        assert health.components["engagement"] == pytest.approx(1.9)
        assert health.components["discussionQuality"] == pytest.approx(10.0)
        assert health.components["freshness"] == pytest.approx(5.0)
        assert health.score == pytest.approx(36.9)

    def test_context_model_and_sequence(self, engine, items):
        from_model = engine.calculate_health_score(AnalyticsContext(items=items))
        from_list = engine.calculate_health_score(items)
        assert from_model == from_list

    def test_overrides_clamped(self, engine, items):
        health = engine.calculate_health_score({"items": items, "activityRate": 150, "discussionQuality": -5})
        assert health.components["activityRate"] == pytest.approx(40.0)
        assert health.components["discussionQuality"] == 0

    def test_empty_context(self, engine):
        health = engine.calculate_health_score({"items": []})
        assert health.score == 0
        assert set(health.components.keys()) == {"activityRate", "engagement", "discussionQuality", "freshness"}

    def test_failure_degrades(self, engine):
        with patch.object(engine, "calculate_activity_rate", side_effect=RuntimeError("boom")):
            health = engine.calculate_health_score({"items": [github()]})
        assert health == HealthScore(score=0, components={})

        assert engine.calculate_health_score(42).components == {}

    def test_upper_bound(self, engine):
        items = [github(f"g{i}", stars=10, forks=100, age=timedelta(hours=1)) for i in range(3)]
        health = engine.calculate_health_score({"items": items, "activityRate": 100, "discussionQuality": 100})
        assert health.score <= 100


class TestLanguageDiversity:
    """Test Shannon evenness."""

    def test_single_language(self, engine):
        assert engine.calculate_language_diversity([{"language": "A", "count": 10}]) == 0

    def test_even_split(self, engine):
        stats = [{"language": "A", "count": 50}, {"language": "B", "count": 50}]
        assert engine.calculate_language_diversity(stats) == 100

    def test_guards(self, engine):
        assert engine.calculate_language_diversity([]) == 0
        assert engine.calculate_language_diversity(None) == 0
        assert engine.calculate_language_diversity([{"language": "A", "count": 0}, {"language": "B", "count": 0}]) == 0

    def test_uneven_within_bounds(self, engine):
        stats = [LanguageStat(language="A", count=90), LanguageStat(language="B", count=5), LanguageStat(language="C", count=5)]
        diversity = engine.calculate_language_diversity(stats)
        assert 0 < diversity < 100


# ============================================================================
# Comparative analyses
# ============================================================================

class TestGrowthRate:
    """Test growth rate guards."""

    def test_growth(self, engine):
        assert engine.calculate_growth_rate(150, 100) == pytest.approx(50.0)
        assert engine.calculate_growth_rate(50, 100) == pytest.approx(-50.0)

    def test_zero_previous(self, engine):
        assert engine.calculate_growth_rate(1000, 0) == 0
        assert engine.calculate_growth_rate(1000, None) == 0

    def test_24h_growth(self, engine):
        assert engine.calculate_24h_growth(120, 100) == pytest.approx(20.0)
        assert engine.calculate_24h_growth(120, 0) == 0


class TestPeriodComparison:
    """Test period-over-period comparison."""

    def test_comparison(self, engine):
        current = {
            "totalItems": 120,
            "avgPopularity": 50,
            "githubStats": {"totalStars": 3000},
            "hackerNewsStats": {"totalPoints": 400},
        }
        previous = {"totalItems": 100, "avgPopularity": 40, "githubStats": {"totalStars": 2000}}

        comparison = engine.calculate_period_comparison(current, previous)

        assert comparison.current.items == 120
        assert comparison.previous.points == 0
        assert comparison.change.items_percent == pytest.approx(20.0)
        assert comparison.change.popularity_percent == pytest.approx(25.0)
        assert comparison.change.stars_percent == pytest.approx(50.0)
        assert comparison.change.points_percent == 0

    def test_snake_case_and_missing(self, engine):
        comparison = engine.calculate_period_comparison(
            {"total_items": 10, "github_stats": {"total_stars": 30}},
            None,
        )
        assert comparison.current.items == 10
        assert comparison.current.stars == 30
        assert comparison.change.items_percent == 0

    def test_wire_shape(self, engine):
        data = engine.calculate_period_comparison({}, {}).model_dump(by_alias=True)
        assert set(data["change"].keys()) == {"itemsPercent", "popularityPercent", "starsPercent", "pointsPercent"}
        assert "avgPopularity" in data["current"]


class TestPercentileRank:
    """Test percentile rank."""

    def test_examples(self, engine):
        assert engine.calculate_percentile_rank(50, [10, 20, 30, 40, 50, 60, 70, 80, 90, 100]) == 40
        assert engine.calculate_percentile_rank(1000, [1, 2, 3]) == 100
        assert engine.calculate_percentile_rank(5, []) == 0

    def test_unsorted_and_floor(self, engine):
        assert engine.calculate_percentile_rank(2, [3, 1, 2]) == 33
        assert engine.calculate_percentile_rank(0, [3, 1, 2]) == 0


class TestLanguageGrowth:
    """Test language growth classification."""

    def test_buckets(self, engine):
        current = [
            {"language": "Python", "count": 30, "percentage": 30, "stars": 9000},
            {"language": "Rust", "count": 12, "percentage": 12, "stars": 2400},
            {"language": "JavaScript", "count": 25, "percentage": 25, "stars": 5000},
            {"language": "Go", "count": 5, "percentage": 5, "stars": 500},
            {"language": "Ruby", "count": 15, "percentage": 15, "stars": 700},
            {"language": "Zig", "count": 2, "percentage": 2, "stars": 100},
        ]
        previous = [
            {"language": "Python", "count": 20},
            {"language": "Rust", "count": 5},
            {"language": "JavaScript", "count": 24},
            {"language": "Go", "count": 10},
            {"language": "Ruby", "count": 14},
        ]

        analysis = engine.analyze_language_growth(current, previous)

        assert [e.language for e in analysis.leaders] == ["Python"]
        assert [e.language for e in analysis.challengers] == ["Rust"]
        assert [e.language for e in analysis.established] == ["JavaScript"]
        assert [e.language for e in analysis.declining] == ["Go"]

        # Ruby (share exactly 15, modest growth) and new Zig (growth 0) fit no rule
        bucketed = {e.language for bucket in (analysis.leaders, analysis.challengers, analysis.established, analysis.declining) for e in bucket}
        assert "Ruby" not in bucketed
        assert "Zig" not in bucketed

    def test_entry_fields(self, engine):
        analysis = engine.analyze_language_growth(
            [{"language": "Python", "count": 30, "percentage": 30, "stars": 9000}],
            [{"language": "Python", "count": 9}],
        )
        entry = analysis.leaders[0]
        assert entry.growth_rate == 233.3
        assert entry.market_share == 30
        assert entry.stars == 9000
        assert entry.model_dump(by_alias=True)["marketShare"] == 30

    def test_empty(self, engine):
        analysis = engine.analyze_language_growth([], None)
        assert analysis.leaders == [] and analysis.declining == []


class TestVelocityLeaders:
    """Test velocity leader ranking."""

    def test_stable_ordering(self, engine):
        items = [github(item_id) for item_id in ["a", "b", "c", "d", "e"]]
        scores = [10, 90, 50, 90, 30]

        with patch.object(
            engine,
            "calculate_momentum_score",
            side_effect=[MomentumScore(score=s) for s in scores],
        ):
            leaders = engine.find_velocity_leaders(items, limit=3)

        assert [l.momentum_score for l in leaders] == [90, 90, 50]
        assert [l.id for l in leaders] == ["b", "d", "c"]

    def test_entry_fields(self, engine):
        items = [
            github("github-1", stars=10000, forks=2000, repository="acme/rocket"),
            story("hn-1", points=400, comments=100, title="Show HN: Rocket"),
        ]
        leaders = engine.find_velocity_leaders(items)

        assert leaders[0].id == "github-1"
        assert leaders[0].title == "acme/rocket"
        assert leaders[0].badge == MomentumBadge.EXPLOSIVE
        assert leaders[0].growth_rate == 5.0
        assert leaders[1].title == "Show HN: Rocket"
        assert leaders[1].source == "hackernews"

    def test_empty(self, engine):
        assert engine.find_velocity_leaders([]) == []


# ============================================================================
# Partial and malformed input
# ============================================================================

class TestPartialRecords:
    """Records without ids, timestamps or valid fields are scored, never rejected."""

    def test_engagement_without_id(self, engine):
        assert engine.calculate_engagement_rate({"source": "github", "stars": 0, "forks": 5}) == 0
        assert engine.calculate_engagement_score({"source": "github", "stars": 100, "forks": 10}) == pytest.approx(5.0)

    def test_virality_without_id(self, engine):
        record = {"source": "hackernews", "points": 400, "comments": 100, "timestamp": NOW - timedelta(hours=24)}
        assert engine.calculate_virality_index(record) == 25.8

    def test_momentum_without_id(self, engine):
        record = {"source": "github", "stars": 10000, "forks": 2000, "timestamp": NOW - timedelta(days=2)}
        momentum = engine.calculate_momentum_score(record)
        assert momentum.score == 100
        assert momentum.velocity == 5.0

    def test_freshness_without_id(self, engine):
        assert engine.calculate_freshness_index([{"source": "github", "timestamp": NOW}]) == 100

    def test_bad_timestamp_reads_as_now(self, engine):
        record = {"source": "github", "stars": 10, "timestamp": "not a date"}
        assert engine.get_age_in_days(record) == 0
        assert engine.calculate_recency_factor(record) == 1
        assert engine.calculate_freshness_index([record, github(age=timedelta(days=10))]) == 50.0

    def test_junk_entries_in_collections(self, engine):
        items = [story(points=100, comments=50), "junk", None, {"stars": "lots"}]

        assert engine.calculate_freshness_index(items) == 100
        assert engine.calculate_activity_rate(items) == pytest.approx(100.0)
        assert engine.calculate_discussion_quality(items) == pytest.approx(50.0)
        # only the story has an engagement score (0.5 comments per point -> 2.5)
        assert engine.calculate_average_engagement(items) == pytest.approx(0.625)

    def test_health_without_ids(self, engine):
        items = [
            {"source": "github", "stars": 100, "forks": 20, "timestamp": NOW - timedelta(days=1)},
            {"source": "hackernews", "points": 100, "comments": 50},
        ]
        health = engine.calculate_health_score({"items": items})
        assert health.score > 0
        assert set(health.components.keys()) == {"activityRate", "engagement", "discussionQuality", "freshness"}

    def test_velocity_leaders_without_ids(self, engine):
        items = [
            {"source": "github", "stars": 10000, "forks": 2000, "timestamp": NOW - timedelta(days=2)},
            {"source": "hackernews", "points": 400, "comments": 100, "timestamp": "garbage"},
        ]
        leaders = engine.find_velocity_leaders(items)

        assert [l.id for l in leaders] == [ANONYMOUS_ID, ANONYMOUS_ID]
        assert leaders[0].source == "github"
        assert leaders[0].momentum_score == 100

    def test_malformed_history_samples_skipped(self, engine):
        item = github(stars=1000, age=timedelta(days=10))
        history = [
            sample(2, 600),
            {"popularity": 700},
            {"timestamp": "garbage", "popularity": 1},
            {"timestamp": NOW - timedelta(hours=36), "popularity": "n/a"},
            sample(1, 800),
        ]
        assert engine.calculate_velocity(item, history) == pytest.approx(0.2)
        assert engine.calculate_acceleration(item, history) == pytest.approx(0.0)

    def test_diversity_from_bare_stats(self, engine):
        stats = [{"language": "Python", "count": 5}, {"language": "Rust", "count": 5}]
        assert engine.calculate_language_diversity(stats) == 100


def test_round_half_up():
    assert round_half_up(0.25, 1) == 0.3
    assert round_half_up(25.83, 1) == 25.8
    assert round_half_up(2.5, 0) == 3
