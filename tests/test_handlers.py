import io
import json
from datetime import datetime

import pytest

from rssdash.config import Config
from rssdash.feed import FeedManager, default_feed_sources
from rssdash.handlers import Handlers, parse_int
from rssdash.logger import Logger
from rssdash.models import FeedSource

RSS = b"""<?xml version="1.0" encoding="UTF-8"?>
<rss version="2.0"><channel><title>Local</title>
<item><title>Older story</title><link>http://example.com/1</link>
<description>first</description><pubDate>Mon, 02 Jan 2006 15:04:05 +0000</pubDate><guid>g1</guid></item>
<item><title>Newer &lt;b&gt; story</title><link>http://example.com/2</link>
<description>second</description><pubDate>Tue, 03 Jan 2006 15:04:05 +0000</pubDate><guid>g2</guid></item>
</channel></rss>"""


def _many_items(count):
    items = "".join(
        f"<item><title>Story {n}</title><guid>id{n}</guid>"
        f"<pubDate>Mon, {n + 1:02d} Jan 2007 10:00:00 +0000</pubDate></item>"
        for n in range(count)
    )
    return f"<rss><channel>{items}</channel></rss>".encode()


@pytest.fixture
def logger():
    return Logger(log_dir=None, stream=io.StringIO())


def _handlers(logger, body=RSS, update=True):
    feeds = {
        "local": FeedSource(
            id="local", name="Local", url="http://example.com/rss", enabled=True, category="general"
        )
    }
    manager = FeedManager(
        Config(), logger, feeds=feeds, opener=lambda url, timeout: (200, "application/xml", body)
    )
    if update:
        manager.update_all_feeds()
    return Handlers(manager, logger)


@pytest.mark.parametrize(
    "text, default, expected",
    [
        ("12abc", 5, 12),
        ("", 7, 7),
        ("abc", 3, 3),
        ("  -4", 0, -4),
        ("+9", 0, 9),
        ("99999999999999999999", 1, 1),
    ],
)
def test_parse_int(text, default, expected):
    assert parse_int(text, default) == expected


def test_home_serves_page(logger):
    response = _handlers(logger, update=False).home({})
    assert response.status == 200
    assert response.content_type == "text/html; charset=utf-8"
    assert b"RSS Feed Dashboard" in response.body
    assert b"/api/news?limit=10" in response.body


def test_health(logger):
    response = _handlers(logger, update=False).health({})
    data = json.loads(response.body)
    assert response.status == 200
    assert response.content_type == "application/json"
    assert data["status"] == "ok"
    assert data["version"] == "1.0.0"
    parsed = datetime.fromisoformat(data["time"].replace("Z", "+00:00"))
    assert parsed.microsecond == 0
    assert response.body.endswith(b"\n")


def test_health_keys_are_sorted(logger):
    response = _handlers(logger, update=False).health({})
    keys = list(json.loads(response.body))
    assert keys == sorted(keys)


def test_news_empty_is_null(logger):
    data = json.loads(_handlers(logger, update=False).news({}).body)
    assert data["news"] is None
    assert data["total"] == 0
    assert data["returned"] == 0


def test_news_newest_first(logger):
    data = json.loads(_handlers(logger).news({}).body)
    assert [item["title"] for item in data["news"]] == ["Newer <b> story", "Older story"]
    assert data["total"] == 2
    assert data["returned"] == 2


def test_news_paging(logger):
    data = json.loads(_handlers(logger).news({"limit": "1", "offset": "1"}).body)
    assert [item["title"] for item in data["news"]] == ["Older story"]
    assert data["total"] == 2
    assert data["returned"] == 1


def test_news_source_filter(logger):
    handlers = _handlers(logger)
    other = json.loads(handlers.news({"source": "other"}).body)
    local = json.loads(handlers.news({"source": "local"}).body)
    assert other["news"] is None
    assert other["total"] == 0
    assert local["total"] == 2


def test_news_category_filter(logger):
    handlers = _handlers(logger)
    assert json.loads(handlers.news({"category": "sports"}).body)["total"] == 0
    assert json.loads(handlers.news({"category": "general"}).body)["total"] == 2


def test_news_default_limit(logger):
    data = json.loads(_handlers(logger, body=_many_items(12)).news({}).body)
    assert data["returned"] == 10
    assert data["total"] == 12


def test_news_escapes_html(logger):
    body = _handlers(logger).news({}).body
    assert b"\\u003cb\\u003e" in body
    assert b"<b>" not in body


def test_news_item_fields(logger):
    response = _handlers(logger).news({"limit": "1"})
    item = json.loads(response.body)["news"][0]
    assert item["source"] == "local"
    assert item["sourceName"] == "Local"
    assert item["id"] == "g2"
    assert b'"score":0,' in response.body


def test_feeds_lists_default_sources(logger):
    data = json.loads(_handlers(logger, update=False).feeds({}).body)
    defaults = default_feed_sources()
    assert [feed["id"] for feed in data["feeds"]] == list(defaults)
    assert [feed["url"] for feed in data["feeds"]] == [s.url for s in defaults.values()]
    assert all(feed["enabled"] for feed in data["feeds"])


def test_refresh_is_accepted(logger):
    response = _handlers(logger, update=False).refresh({})
    assert response.status == 202
    assert json.loads(response.body) == {"message": "Feed refresh started", "status": "accepted"}


def test_stats(logger):
    response = _handlers(logger, update=False).stats({})
    data = json.loads(response.body)
    assert response.status == 200
    assert data["total_feeds"] == 2
    assert data["active_feeds"] == 2
    assert data["total_news_items"] == 20
    assert data["uptime"] == "1h23m45s"