"""Data records shared by the feed manager and the HTTP layer."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Any

_ZERO_TIME = "0001-01-01T00:00:00Z"


def _format_time(moment: datetime | None) -> str:
    """Format as RFC 3339 with trimmed fractional seconds; None is the zero time."""
    if moment is None:
        return _ZERO_TIME
    if moment.tzinfo is None:
        moment = moment.astimezone()
    text = (
        f"{moment.year:04d}-{moment.month:02d}-{moment.day:02d}"
        f"T{moment.hour:02d}:{moment.minute:02d}:{moment.second:02d}"
    )
    if moment.microsecond:
        text += "." + f"{moment.microsecond:06d}".rstrip("0")
    offset = moment.utcoffset() or timedelta(0)
    if not offset:
        return text + "Z"
    sign = "-" if offset < timedelta(0) else "+"
    minutes = int(abs(offset).total_seconds()) // 60
    return f"{text}{sign}{minutes // 60:02d}:{minutes % 60:02d}"


def _nanoseconds(delta: timedelta) -> int:
    return (delta.days * 86400 + delta.seconds) * 1000**3 + delta.microseconds * 1000


@dataclass
class FeedSource:
    """An RSS feed and its fetch state."""

    id: str = ""
    name: str = ""
    url: str = ""
    logo: str = ""
    css_class: str = ""
    enabled: bool = False
    priority: int = 0
    category: str = ""
    language: str = ""
    country: str = ""
    update_freq: int = 0
    status: str = ""
    error: str = ""
    last_sync: datetime | None = None
    success_count: int = 0
    error_count: int = 0
    avg_latency: float = 0.0
    created_at: datetime | None = None
    updated_at: datetime | None = None
    description: str = ""
    last_fetched: datetime | None = None
    last_error: str = ""

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "url": self.url,
            "logo": self.logo,
            "class": self.css_class,
            "enabled": self.enabled,
            "priority": self.priority,
            "category": self.category,
            "language": self.language,
            "country": self.country,
            "updateFreq": self.update_freq,
            "status": self.status,
            "error": self.error,
            "lastSync": _format_time(self.last_sync),
            "successCount": self.success_count,
            "errorCount": self.error_count,
            "avgLatency": self.avg_latency,
            "createdAt": _format_time(self.created_at),
            "updatedAt": _format_time(self.updated_at),
            "description": self.description,
            "lastFetched": _format_time(self.last_fetched),
            "lastError": self.last_error,
        }


@dataclass
class NewsItem:
    """A single news article."""

    id: str = ""
    title: str = ""
    link: str = ""
    description: str = ""
    pub_date: datetime | None = None
    published: datetime | None = None
    category: str = ""
    source: str = ""
    source_id: str = ""
    source_name: str = ""
    image_url: str = ""
    content: str = ""
    author: str = ""
    language: str = ""
    country: str = ""
    sentiment: float = 0.0
    score: float = 0.0
    tags: list[str] = field(default_factory=list)
    is_read: bool = False
    is_bookmarked: bool = False
    created_at: datetime | None = None
    updated_at: datetime | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "title": self.title,
            "link": self.link,
            "description": self.description,
            "pubDate": _format_time(self.pub_date),
            "published": _format_time(self.published),
            "category": self.category,
            "source": self.source,
            "sourceId": self.source_id,
            "sourceName": self.source_name,
            "imageUrl": self.image_url,
            "content": self.content,
            "author": self.author,
            "language": self.language,
            "country": self.country,
            "sentiment": self.sentiment,
            "score": self.score,
            "tags": list(self.tags),
            "isRead": self.is_read,
            "isBookmarked": self.is_bookmarked,
            "createdAt": _format_time(self.created_at),
            "updatedAt": _format_time(self.updated_at),
        }


@dataclass
class DashboardStats:
    """Aggregated statistics shown on the dashboard."""

    total_news: int = 0
    stock_news: int = 0
    active_feeds: int = 0
    errored_feeds: int = 0
    disabled_feeds: int = 0
    avg_latency: float = 0.0
    top_sentiment: str = ""
    cache_hit_rate: float = 0.0
    memory_usage_mb: float = 0.0
    total_feeds: int = 0
    total_news_items: int = 0
    last_update_time: datetime | None = None
    uptime: timedelta = timedelta(0)
    requests_served: int = 0
    errors: int = 0

    def to_dict(self) -> dict[str, Any]:
        return {
            "totalNews": self.total_news,
            "stockNews": self.stock_news,
            "activeFeeds": self.active_feeds,
            "erroredFeeds": self.errored_feeds,
            "disabledFeeds": self.disabled_feeds,
            "avgLatency": self.avg_latency,
            "topSentiment": self.top_sentiment,
            "cacheHitRate": self.cache_hit_rate,
            "memoryUsageMB": self.memory_usage_mb,
            "totalFeeds": self.total_feeds,
            "totalNewsItems": self.total_news_items,
            "lastUpdateTime": _format_time(self.last_update_time),
            "uptime": _nanoseconds(self.uptime),
            "requestsServed": self.requests_served,
            "errors": self.errors,
        }


@dataclass
class DashboardData:
    """Everything the dashboard page needs in one record."""

    sources: list[FeedSource] = field(default_factory=list)
    news: list[NewsItem] = field(default_factory=list)
    last_update: datetime | None = None
    last_updated: datetime | None = None
    stats: DashboardStats = field(default_factory=DashboardStats)

    def to_dict(self) -> dict[str, Any]:
        return {
            "sources": [source.to_dict() for source in self.sources],
            "news": [item.to_dict() for item in self.news],
            "lastUpdate": _format_time(self.last_update),
            "lastUpdated": _format_time(self.last_updated),
            "stats": self.stats.to_dict(),
        }


@dataclass
class FilterOptions:
    """Criteria for selecting and paging news items."""

    source: str = ""
    category: str = ""
    sentiment: str = ""
    stock_only: bool = False
    date_from: datetime | None = None
    date_to: datetime | None = None
    start_time: datetime | None = None
    end_time: datetime | None = None
    min_score: float = 0.0
    keywords: list[str] = field(default_factory=list)
    sort_by: str = ""
    sort_order: str = ""
    offset: int = 0
    limit: int = 0