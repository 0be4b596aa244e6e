"""
Trend item models shared by the metrics engine and the analytics service.

Items arrive as loosely-shaped records from the ingestion side (GitHub
repositories, HackerNews stories). They are normalized into one of two
variants that share the TrendItem interface, so metric code never has to
branch on the source tag.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from enum import Enum
from typing import Any, ClassVar, Dict, Iterable, List, Literal, Mapping, Optional

from pydantic import AliasChoices, BaseModel, Field, ValidationError, field_validator

logger = logging.getLogger(__name__)

SECONDS_PER_DAY = 86400


class TrendSource(str, Enum):
    """Known item sources."""
    GITHUB = "github"
    HACKERNEWS = "hackernews"


class ItemValidationError(ValueError):
    """Raised when a record cannot be turned into a trend item."""
    pass


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def ensure_utc(value: datetime) -> datetime:
    """Treat naive datetimes as UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def coerce_count(value: Any) -> int:
    """
    Coerce a popularity counter to a non-negative integer.

    Missing, null and unparseable values count as zero.
    """
    if value is None or isinstance(value, bool):
        return 0
    try:
        count = int(float(value))
    except (TypeError, ValueError):
        logger.debug(f"Ignoring non-numeric counter value: {value!r}")
        return 0
    return max(0, count)


class HistoricalSample(BaseModel):
    """
    A prior popularity observation for an item.

    Attributes:
        timestamp: When the observation was taken
        popularity: Stars (github) or points (hackernews) at that time
    """
    timestamp: datetime = Field(description="When the observation was taken")
    popularity: float = Field(
        default=0,
        validation_alias=AliasChoices("popularity", "popularityValue", "value"),
        description="Popularity counter at that time",
    )

    @field_validator("timestamp")
    @classmethod
    def _utc_timestamp(cls, value: datetime) -> datetime:
        return ensure_utc(value)

    @field_validator("popularity", mode="before")
    @classmethod
    def _non_negative(cls, value: Any) -> float:
        if value is None:
            return 0
        try:
            return max(0.0, float(value))
        except (TypeError, ValueError):
            raise ValueError(f"popularity must be numeric, got {value!r}")


class TrendItem(BaseModel):
    """
    Common shape of every trend item.

    A bare TrendItem is what an unrecognized source parses into: it has no
    authoritative popularity fields, so every source-specific metric is zero.
    """
    id: str = Field(description="Opaque item ID")
    source: str = Field(description="Source tag")
    timestamp: Optional[datetime] = Field(
        default=None,
        validation_alias=AliasChoices("timestamp", "createdAt", "created_at"),
        description="When the item was created or observed (missing means now)",
    )
    url: Optional[str] = Field(default=None, description="Link to the item")

    # Divides popularity-per-day so both sources land in comparable ranges
    popularity_divisor: ClassVar[float] = 1.0
    # Engagement rate that maps to the top of the 0-10 engagement score
    max_engagement_rate: ClassVar[Optional[float]] = None

    @field_validator("id", mode="before")
    @classmethod
    def _string_id(cls, value: Any) -> str:
        if value is None or value == "":
            raise ValueError("id is required")
        return str(value)

    @field_validator("timestamp")
    @classmethod
    def _utc_timestamp(cls, value: Optional[datetime]) -> Optional[datetime]:
        return ensure_utc(value) if value is not None else None

    def popularity(self) -> int:
        """Authoritative popularity counter for this source."""
        return 0

    def engagement_rate(self) -> float:
        """Interaction intensity relative to popularity."""
        return 0.0

    def display_title(self) -> str:
        return self.id

    def last_activity(self) -> Optional[datetime]:
        """Most recent instant the item showed activity."""
        return self.timestamp

    def age_in_days(self, now: datetime) -> int:
        """Whole days since the item's timestamp. Missing timestamps are age 0."""
        now = ensure_utc(now)
        reference = self.timestamp or now
        elapsed = (now - reference).total_seconds()
        return max(0, int(elapsed // SECONDS_PER_DAY))


class GithubItem(TrendItem):
    """A GitHub repository observation."""
    source: Literal["github"] = "github"
    stars: int = Field(default=0, description="Stargazer count")
    forks: int = Field(default=0, description="Fork count")
    language: Optional[str] = Field(default=None, description="Primary language")
    repository: str = Field(default="", description="Full repository name (owner/name)")
    description: Optional[str] = Field(default=None, description="Repository description")
    owner: Optional[str] = Field(default=None, description="Owner login")
    topics: List[str] = Field(default_factory=list, description="Repository topics")
    updated_at: Optional[datetime] = Field(
        default=None,
        validation_alias=AliasChoices("updated_at", "updatedAt"),
        description="Last push/update time",
    )

    popularity_divisor: ClassVar[float] = 1000.0
    max_engagement_rate: ClassVar[Optional[float]] = 20.0

    @field_validator("stars", "forks", mode="before")
    @classmethod
    def _counts(cls, value: Any) -> int:
        return coerce_count(value)

    @field_validator("repository", mode="before")
    @classmethod
    def _text(cls, value: Any) -> str:
        return "" if value is None else str(value)

    @field_validator("topics", mode="before")
    @classmethod
    def _topics(cls, value: Any) -> List[str]:
        if isinstance(value, (list, tuple, set)):
            return [str(topic) for topic in value]
        return []

    @field_validator("updated_at")
    @classmethod
    def _utc_updated_at(cls, value: Optional[datetime]) -> Optional[datetime]:
        return ensure_utc(value) if value is not None else None

    def popularity(self) -> int:
        return self.stars

    def engagement_rate(self) -> float:
        """Forks per hundred stars."""
        if self.stars == 0:
            return 0.0
        return (self.forks / self.stars) * 100

    def display_title(self) -> str:
        return self.repository or self.id

    def last_activity(self) -> Optional[datetime]:
        return self.updated_at or self.timestamp


class HackerNewsItem(TrendItem):
    """A HackerNews story observation."""
    source: Literal["hackernews"] = "hackernews"
    points: int = Field(default=0, description="Story score")
    comments: int = Field(default=0, description="Comment count (descendants)")
    author: str = Field(default="", description="Submitter handle")
    title: str = Field(default="", description="Story title")

    popularity_divisor: ClassVar[float] = 10.0
    max_engagement_rate: ClassVar[Optional[float]] = 2.0

    @field_validator("points", "comments", mode="before")
    @classmethod
    def _counts(cls, value: Any) -> int:
        return coerce_count(value)

    @field_validator("author", "title", mode="before")
    @classmethod
    def _text(cls, value: Any) -> str:
        return "" if value is None else str(value)

    def popularity(self) -> int:
        return self.points

    def engagement_rate(self) -> float:
        """Comments per point."""
        if self.points == 0:
            return 0.0
        return self.comments / self.points

    def display_title(self) -> str:
        return self.title or self.id


_VARIANTS: Dict[str, type] = {
    TrendSource.GITHUB.value: GithubItem,
    TrendSource.HACKERNEWS.value: HackerNewsItem,
}


# Placeholder id for records scored without one
ANONYMOUS_ID = "anonymous"


def parse_item(record: Any, strict: bool = True) -> TrendItem:
    """
    Build the right TrendItem variant from a loosely-shaped record.

    Missing popularity fields default to zero and a missing timestamp stays
    unset (treated as "now" by the metrics). Unknown sources produce a bare
    TrendItem.

    With strict=False nothing is rejected: a missing id becomes ANONYMOUS_ID,
    unparseable fields are dropped (so a bad timestamp reads as "now") and a
    non-mapping record parses as an empty bare TrendItem.

    Args:
        record: A TrendItem (returned as-is) or a mapping
        strict: Reject records that have no id or invalid fields

    Returns:
        GithubItem, HackerNewsItem or TrendItem

    Raises:
        ItemValidationError: In strict mode, if the record has no id or an
            unparseable timestamp
    """
    if isinstance(record, TrendItem):
        return record
    if not isinstance(record, Mapping):
        if strict:
            raise ItemValidationError(f"Expected a mapping, got {type(record).__name__}")
        logger.debug(f"Scoring non-mapping record {type(record).__name__} as an empty item")
        record = {}

    data = dict(record)
    if data.get("id") in (None, ""):
        if strict:
            raise ItemValidationError("Trend item is missing 'id'")
        data["id"] = ANONYMOUS_ID

    # Null timestamps fall through to createdAt aliases
    for key in ("timestamp", "updated_at"):
        if key in data and data[key] is None:
            del data[key]

    source = str(data.get("source") or "").strip().lower()
    data["source"] = source
    model = _VARIANTS.get(source, TrendItem)
    if model is TrendItem:
        logger.debug(f"Unrecognized source '{source}' for item {data['id']}")

    # Lenient mode drops the offending fields until the record validates
    while True:
        try:
            return model.model_validate(data)
        except ValidationError as e:
            rejected = {error["loc"][0] for error in e.errors() if error["loc"]} & data.keys()
            if strict or not rejected:
                raise ItemValidationError(f"Invalid trend item '{data['id']}': {e}") from e
            logger.debug(f"Dropping invalid fields {sorted(rejected)} from item {data['id']}")
            for key in rejected:
                del data[key]


def parse_items(records: Iterable[Any]) -> List[TrendItem]:
    """Parse a batch of records, failing on the first invalid one."""
    return [parse_item(record) for record in records]


def parse_samples(samples: Optional[Iterable[Any]], strict: bool = True) -> List[HistoricalSample]:
    """
    Normalize historical samples given as models or mappings.

    With strict=False, samples without a usable timestamp are skipped
    instead of raising.
    """
    if not samples:
        return []
    parsed = []
    for sample in samples:
        if isinstance(sample, HistoricalSample):
            parsed.append(sample)
            continue
        try:
            parsed.append(HistoricalSample.model_validate(sample))
        except ValidationError as e:
            if strict:
                raise
            logger.debug(f"Skipping invalid historical sample {sample!r}: {e.error_count()} error(s)")
    return parsed


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
