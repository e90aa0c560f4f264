"""Fetching, parsing and storing news items from RSS feeds."""

from __future__ import annotations

import codecs
import re
import threading
import urllib.error
import urllib.request
import xml.etree.ElementTree as ET
from collections.abc import Callable, Mapping
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, replace
from datetime import datetime, timedelta, timezone
from email.message import Message

from rssdash.cache import Cache
from rssdash.config import Config
from rssdash.logger import Logger
from rssdash.models import DashboardData, DashboardStats, FeedSource, FilterOptions, NewsItem
from rssdash.ratelimit import RateLimiter

Opener = Callable[[str, float], "tuple[int, str, bytes]"]

_ZERO_TIME = datetime(1, 1, 1, tzinfo=timezone.utc)
_MAX_DURATION = timedelta(microseconds=(2**63 - 1) // 1000)
_ITEM_FIELDS = {"title": "title", "link": "link", "description": "description",
                "pubDate": "pub_date", "guid": "guid"}
_RFC1123Z = re.compile(
    r"([A-Za-z]{3}, \d{2} [A-Za-z]{3} \d{4} \d{1,2}:\d{2}:\d{2})(?:[.,](\d+))? ([+-]\d{4})"
)
_BOMS = ((codecs.BOM_UTF8, "utf-8"), (codecs.BOM_UTF16_LE, "utf-16-le"),
         (codecs.BOM_UTF16_BE, "utf-16-be"))


class FeedError(Exception):
    """Raised when a feed cannot be fetched or parsed."""


@dataclass
class RSSItem:
    """The raw fields of one ``<item>`` element."""

    title: str = ""
    link: str = ""
    description: str = ""
    pub_date: str = ""
    guid: str = ""


def _local_name(tag: str) -> str:
    return tag.rsplit("}", 1)[-1]


def _parse_item(element: ET.Element) -> RSSItem:
    values = {
        _ITEM_FIELDS[_local_name(child.tag)]: (child.text or "") + "".join(c.tail or "" for c in child)
        for child in element
        if _local_name(child.tag) in _ITEM_FIELDS
    }
    return RSSItem(**values)


def parse_rss(body: bytes | str) -> list[RSSItem]:
    """Return the items of every ``<channel>`` under the document root."""
    try:
        root = ET.fromstring(body)
    except ET.ParseError as exc:
        raise FeedError(f"error parsing XML: {exc}") from exc
    return [
        _parse_item(element)
        for channel in root
        if _local_name(channel.tag) == "channel"
        for element in channel
        if _local_name(element.tag) == "item"
    ]


def default_feed_sources() -> dict[str, FeedSource]:
    """The feeds the dashboard follows out of the box, keyed by ID."""
    return {
        "bbc": FeedSource(id="bbc", name="BBC News", url="http://feeds.bbci.co.uk/news/rss.xml",
                          description="Latest news from BBC", enabled=True, category="general"),
        "reuters": FeedSource(id="reuters", name="Reuters",
                              url="http://feeds.reuters.com/reuters/topNews",
                              description="Latest news from Reuters", enabled=True,
                              category="general"),
    }


def _now() -> datetime:
    return datetime.now().astimezone()


def _aware(moment: datetime) -> datetime:
    return moment if moment.tzinfo is not None else moment.astimezone()


def _published(item: NewsItem) -> datetime:
    return _aware(item.published) if item.published is not None else _ZERO_TIME


def _parse_rfc1123z(text: str) -> datetime | None:
    match = _RFC1123Z.fullmatch(text)
    if match is None:
        return None
    try:
        moment = datetime.strptime(f"{match[1]} {match[3]}", "%a, %d %b %Y %H:%M:%S %z")
    except ValueError:
        return None
    moment = moment.replace(microsecond=int(((match[2] or "") + "000000")[:6]))
    return None if moment == _ZERO_TIME else moment


def _decode(body: bytes, content_type: str) -> str:
    """Decode a response body using its BOM, declared charset or content."""
    for bom, encoding in _BOMS:
        if body.startswith(bom):
            return body[len(bom):].decode(encoding, "replace")
    if content_type:
        message = Message()
        message["Content-Type"] = content_type
        charset = message.get_content_charset()
        if charset:
            try:
                return body.decode(charset, "replace")
            except LookupError:
                pass
    try:
        return body.decode("utf-8")
    except UnicodeDecodeError:
        return body.decode("cp1252", "replace")


def _http_get(url: str, timeout: float) -> tuple[int, str, bytes]:
    """Fetch ``url`` and return its status, content type and body."""
    try:
        request = urllib.request.Request(url, method="GET")
    except ValueError as exc:
        raise FeedError(f"error creating request: {exc}") from exc
    try:
        with urllib.request.urlopen(request, timeout=timeout or None) as response:
            return response.status, response.headers.get("Content-Type", ""), response.read()
    except urllib.error.HTTPError as exc:
        content_type = exc.headers.get("Content-Type", "") if exc.headers else ""
        exc.close()
        return exc.code, content_type, b""
    except (urllib.error.URLError, OSError, ValueError) as exc:
        raise FeedError(f"error fetching feed: {exc}") from exc


class FeedManager:
    """Polls the enabled feeds and keeps the newest items in memory."""

    def __init__(
        self,
        config: Config,
        logger: Logger,
        *,
        feeds: Mapping[str, FeedSource] | None = None,
        opener: Opener | None = None,
    ) -> None:
        self.config = config
        self.logger = logger
        self.feeds: dict[str, FeedSource] = default_feed_sources() if feeds is None else dict(feeds)
        self.rate_limiter = RateLimiter(config.rate_limit_rpm)
        self.cache = Cache(config.cache_timeout)
        self._opener: Opener = opener or _http_get
        self._timeout = config.request_timeout.total_seconds()
        self._news: list[NewsItem] = []
        self._last_update = _now()
        self._stats = DashboardStats()
        self._lock = threading.RLock()

    @property
    def news(self) -> list[NewsItem]:
        with self._lock:
            return list(self._news)

    @property
    def last_update(self) -> datetime:
        with self._lock:
            return self._last_update

    @property
    def stats(self) -> DashboardStats:
        with self._lock:
            return replace(self._stats)

    def start(self, stop_event: threading.Event) -> None:
        """Update now, then every poll interval until ``stop_event`` is set."""
        interval = self.config.poll_interval.total_seconds()
        if interval <= 0:
            raise ValueError("poll interval must be positive")
        self.logger.info("Starting feed manager")
        self.update_all_feeds()
        while not stop_event.wait(interval):
            self.update_all_feeds()
        self.logger.info("Stopping feed manager")

    def update_all_feeds(self) -> None:
        """Fetch every enabled feed concurrently and prepend the new items."""
        self.logger.info("Updating all feeds")
        sources = [source for source in self.feeds.values() if source.enabled]
        if not sources:
            return
        with ThreadPoolExecutor(max_workers=len(sources)) as pool:
            all_news = [item for batch in pool.map(self._update_source, sources) for item in batch]
        if not all_news:
            return
        with self._lock:
            self._news = (all_news + self._news)[: max(0, self.config.max_news_items)]
            self._last_update = _now()
            self._update_stats()
        self.logger.info("Updated %d news items", len(all_news))

    def _update_source(self, source: FeedSource) -> list[NewsItem]:
        self.rate_limiter.wait()
        try:
            items = self.fetch_feed(source)
        except FeedError as exc:
            self.logger.error("Error fetching feed %s: %s", source.name, exc)
            with self._lock:
                source.last_error = str(exc)
            return []
        with self._lock:
            source.last_fetched = _now()
            source.last_error = ""
        return items

    def fetch_feed(self, source: FeedSource) -> list[NewsItem]:
        """Download and parse one feed into news items."""
        status, content_type, body = self._opener(source.url, self._timeout)
        if status != 200:
            raise FeedError(f"unexpected status code: {status}")
        return [
            NewsItem(
                id=item.guid,
                title=item.title.strip(),
                description=item.description.strip(),
                link=item.link,
                published=_parse_rfc1123z(item.pub_date) or _now(),
                source=source.id,
                source_name=source.name,
                category=source.category,
            )
            for item in parse_rss(_decode(body, content_type))
        ]

    def get_dashboard_data(self) -> DashboardData:
        """The ten latest items, current statistics and time of the last update."""
        with self._lock:
            return DashboardData(
                news=list(self._news[:10]),
                stats=replace(self._stats),
                last_updated=self._last_update,
            )

    def get_news(self, filter_options: FilterOptions) -> tuple[list[NewsItem], int]:
        """Return matching items newest first, paged, and the count before paging."""
        with self._lock:
            items = list(self._news)
        start = _aware(filter_options.start_time) if filter_options.start_time else None
        end = _aware(filter_options.end_time) if filter_options.end_time else None

        filtered = [
            item
            for item in items
            if (not filter_options.source or item.source == filter_options.source)
            and (not filter_options.category or item.category == filter_options.category)
            and (start is None or _published(item) >= start)
            and (end is None or _published(item) <= end)
        ]
        filtered.sort(key=_published, reverse=True)
        total = len(filtered)

        if 0 < filter_options.offset < len(filtered):
            filtered = filtered[filter_options.offset:]
        if 0 < filter_options.limit < len(filtered):
            filtered = filtered[: filter_options.limit]
        return filtered, total

    def _update_stats(self) -> None:
        now = _now()
        previous = self._stats
        if previous.last_update_time is None:
            uptime = _MAX_DURATION
        else:
            uptime = min(now - previous.last_update_time + previous.uptime, _MAX_DURATION)
        self._stats = DashboardStats(
            total_feeds=len(self.feeds),
            active_feeds=sum(1 for feed in self.feeds.values() if feed.enabled),
            total_news_items=len(self._news),
            last_update_time=now,
            uptime=uptime,
            requests_served=previous.requests_served,
            errors=previous.errors,
        )