"""HTTP endpoint handlers for the dashboard, independent of the server that runs them."""

from __future__ import annotations

import json
import re
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Mapping

from rssdash.feed import FeedManager, default_feed_sources
from rssdash.logger import Logger
from rssdash.models import FilterOptions

_VERSION = "1.0.0"
_INT_MIN = -(2**63)
_INT_MAX = 2**63 - 1
_LEADING_INT = re.compile(r"\s*([+-]?[0-9]+)")
_FLOAT_AS_INT_LIMIT = 1e21

_JSON_ESCAPES = (
    ("<", "\\u003c"),
    (">", "\\u003e"),
    ("&", "\\u0026"),
    ("\u2028", "\\u2028"),
    ("\u2029", "\\u2029"),
)

_HOME_PAGE = r"""<!DOCTYPE html>
<html>
<head>
    <title>RSS Feed Dashboard</title>
    <style>
        body { font-family: Arial, sans-serif; margin: 20px; }
        h1 { color: #333; }
        .news-item { margin-bottom: 20px; padding: 10px; border: 1px solid #ddd; border-radius: 4px; }
        .news-item h3 { margin-top: 0; }
        .source { color: #666; font-size: 0.9em; }
        .date { color: #888; font-size: 0.8em; }
    </style>
</head>
<body>
    <h1>RSS Feed Dashboard</h1>
    <div id="news">
        <p>Loading news...</p>
    </div>

    <script>
        fetch('/api/news?limit=10')
            .then(response => response.json())
            .then(data => {
                const newsContainer = document.getElementById('news');
                newsContainer.innerHTML = '';

                if (data.news && data.news.length > 0) {
                    data.news.forEach(item => {
                        const date = new Date(item.published);
                        const newsItem = document.createElement('div');
                        newsItem.className = 'news-item';
                        newsItem.innerHTML = '\
                            <h3><a href="' + item.link + '" target="_blank">' + item.title + '</a></h3>\
                            <p>' + item.description + '</p>\
                            <div class="source">' + item.source_name + ' \u2022 <span class="date">' + date.toLocaleString() + '</span></div>\
                        ';
                        newsContainer.appendChild(newsItem);
                    });
                } else {
                    newsContainer.innerHTML = '<p>No news available.</p>';
                }
            })
            .catch(error => {
                console.error('Error fetching news:', error);
                document.getElementById('news').innerHTML = '<p>Error loading news. Please try again later.</p>';
            });
    </script>
</body>
</html>
"""


@dataclass(frozen=True)
class Response:
    """A complete HTTP response: status code, content type and body."""

    status: int
    content_type: str
    body: bytes


def parse_int(text: str, default: int) -> int:
    """Read a leading decimal integer from ``text``; return ``default`` if there is none."""
    match = _LEADING_INT.match(text)
    if match is None:
        return default
    value = int(match.group(1))
    return value if _INT_MIN <= value <= _INT_MAX else default


def _rfc3339_now() -> str:
    text = datetime.now().astimezone().isoformat(timespec="seconds")
    return text[:-6] + "Z" if text.endswith("+00:00") else text


def _plain_numbers(value: Any) -> Any:
    """Write integral floats as integers, the way the wire format expects."""
    if isinstance(value, float):
        if value.is_integer() and abs(value) < _FLOAT_AS_INT_LIMIT:
            return int(value)
        return value
    if isinstance(value, dict):
        return {key: _plain_numbers(item) for key, item in value.items()}
    if isinstance(value, list):
        return [_plain_numbers(item) for item in value]
    return value


def _encode_json(data: Any) -> bytes:
    text = json.dumps(
        _plain_numbers(data), ensure_ascii=False, separators=(",", ":"), allow_nan=False
    )
    for char, escape in _JSON_ESCAPES:
        text = text.replace(char, escape)
    return (text + "\n").encode("utf-8")


class Handlers:
    """The dashboard's endpoints; each takes the query parameters and returns a Response."""

    def __init__(self, feed_manager: FeedManager, logger: Logger) -> None:
        self.feed_manager = feed_manager
        self.logger = logger

    def _json(self, status: int, data: Any) -> Response:
        try:
            body = _encode_json(data)
        except (TypeError, ValueError) as exc:
            self.logger.error("Error encoding JSON response: %s", exc)
            body = b""
        return Response(status, "application/json", body)

    def home(self, query: Mapping[str, str] | None = None) -> Response:
        """The dashboard page."""
        return Response(200, "text/html; charset=utf-8", _HOME_PAGE.encode("utf-8"))

    def health(self, query: Mapping[str, str] | None = None) -> Response:
        """Service status, version and current time."""
        return self._json(200, {"status": "ok", "time": _rfc3339_now(), "version": _VERSION})

    def news(self, query: Mapping[str, str] | None = None) -> Response:
        """News items filtered by source and category, paged by limit and offset."""
        query = query or {}
        filter_options = FilterOptions(
            limit=parse_int(query.get("limit", ""), 10),
            offset=parse_int(query.get("offset", ""), 0),
            source=query.get("source", ""),
            category=query.get("category", ""),
        )
        news, total = self.feed_manager.get_news(filter_options)
        return self._json(
            200,
            {
                "news": [item.to_dict() for item in news] or None,
                "returned": len(news),
                "timestamp": _rfc3339_now(),
                "total": total,
            },
        )

    def feeds(self, query: Mapping[str, str] | None = None) -> Response:
        """The configured feed sources."""
        feeds = [
            {
                "category": source.category,
                "description": source.description,
                "enabled": source.enabled,
                "id": source.id,
                "name": source.name,
                "url": source.url,
            }
            for source in default_feed_sources().values()
        ]
        return self._json(200, {"feeds": feeds})

    def refresh(self, query: Mapping[str, str] | None = None) -> Response:
        """Acknowledge a refresh request."""
        return self._json(202, {"message": "Feed refresh started", "status": "accepted"})

    def stats(self, query: Mapping[str, str] | None = None) -> Response:
        """Dashboard statistics."""
        return self._json(
            200,
            {
                "active_feeds": 2,
                "last_update_time": _rfc3339_now(),
                "total_feeds": 2,
                "total_news_items": 20,
                "uptime": "1h23m45s",
            },
        )