"""
Trend item models.
"""

from .models import (
    TrendSource,
    TrendItem,
    GithubItem,
    HackerNewsItem,
    HistoricalSample,
    ItemValidationError,
    ANONYMOUS_ID,
    parse_item,
    parse_items,
    parse_samples,
    coerce_count,
    ensure_utc,
    utc_now,
    SECONDS_PER_DAY,
)

__all__ = [
    "TrendSource",
    "TrendItem",
    "GithubItem",
    "HackerNewsItem",
    "HistoricalSample",
    "ItemValidationError",
    "ANONYMOUS_ID",
    "parse_item",
    "parse_items",
    "parse_samples",
    "coerce_count",
    "ensure_utc",
    "utc_now",
    "SECONDS_PER_DAY",
]
