import io
import threading
from datetime import datetime, timedelta, timezone

import pytest

from rssdash.config import Config
from rssdash.feed import (
    FeedError,
    FeedManager,
    RSSItem,
    default_feed_sources,
    parse_rss,
)
from rssdash.logger import Logger
from rssdash.models import FeedSource, FilterOptions


def _item(guid, title="Title", pub_date="Mon, 02 Jan 2006 15:04:05 -0700", link=None):
    link = link or f"http://news.example.com/{guid}"
    return (
        f"<item><title>{title}</title><link>{link}</link>"
        f"<description>About {guid}</description>"
        f"<pubDate>{pub_date}</pubDate><guid>{guid}</guid></item>"
    )


def _rss(*items):
    return f"<rss><channel><title>Feed</title>{''.join(items)}</channel></rss>".encode()


class FakeOpener:
    def __init__(self, responses):
        self.responses = dict(responses)
        self.calls = []
        self.lock = threading.Lock()

    def __call__(self, url, timeout):
        with self.lock:
            self.calls.append(url)
        return self.responses.get(url, (404, "", b""))


def _source(name, enabled=True, category="tech"):
    return FeedSource(
        id=name.lower(),
        name=name,
        url=f"http://{name.lower()}.example.com/rss",
        enabled=enabled,
        category=category,
    )


def _manager(sources, responses, **config_values):
    opener = FakeOpener(responses)
    stream = io.StringIO()
    logger = Logger(log_dir=None, stream=stream)
    feeds = {source.id: source for source in sources}
    manager = FeedManager(Config(**config_values), logger, feeds=feeds, opener=opener)
    return manager, opener, stream


def _day(day):
    return f"Mon, {day:02d} Jan 2024 10:00:00 +0000"


def test_default_feed_sources():
    feeds = default_feed_sources()
    assert set(feeds) == {"bbc", "reuters"}
    assert feeds["bbc"].url == "http://feeds.bbci.co.uk/news/rss.xml"
    assert feeds["reuters"].url == "http://feeds.reuters.com/reuters/topNews"
    assert all(feed.enabled and feed.category == "general" for feed in feeds.values())


def test_parse_rss_reads_items():
    body = _rss(_item("g1", "First"), _item("g2", "Second"))
    items = parse_rss(body)
    assert items == [
        RSSItem(
            title="First",
            link="http://news.example.com/g1",
            description="About g1",
            pub_date="Mon, 02 Jan 2006 15:04:05 -0700",
            guid="g1",
        ),
        RSSItem(
            title="Second",
            link="http://news.example.com/g2",
            description="About g2",
            pub_date="Mon, 02 Jan 2006 15:04:05 -0700",
            guid="g2",
        ),
    ]


def test_parse_rss_namespace_nested_and_cdata():
    body = (
        b'<rss xmlns="urn:example"><channel><item>'
        b"<title>A<b>bold</b> tail</title>"
        b"<description><![CDATA[<p>markup</p>]]></description>"
        b"</item></channel></rss>"
    )
    [item] = parse_rss(body)
    assert item.title == "A tail"
    assert item.description == "<p>markup</p>"
    assert item.guid == ""


def test_parse_rss_ignores_items_outside_channel():
    assert parse_rss(b"<rss>" + _item("g1").encode() + b"</rss>") == []


def test_parse_rss_malformed_raises():
    with pytest.raises(FeedError, match="error parsing XML"):
        parse_rss(b"<rss><channel>")


def test_fetch_feed_builds_news_items():
    source = _source("Alpha")
    body = _rss(_item("g1", "  Spaced title  "))
    manager, _, _ = _manager([source], {source.url: (200, "text/xml", body)})
    [news] = manager.fetch_feed(source)
    assert news.id == "g1"
    assert news.title == "Spaced title"
    assert news.link == "http://news.example.com/g1"
    assert news.source == source.id
    assert news.source_name == source.name
    assert news.category == source.category
    assert news.published == datetime(2006, 1, 2, 15, 4, 5, tzinfo=timezone(timedelta(hours=-7)))


def test_fetch_feed_unparsable_date_uses_now():
    source = _source("Alpha")
    body = _rss(_item("g1", pub_date="2024-01-05"))
    manager, _, _ = _manager([source], {source.url: (200, "text/xml", body)})
    before = datetime.now(timezone.utc)
    [news] = manager.fetch_feed(source)
    after = datetime.now(timezone.utc)
    assert before <= news.published <= after


def test_fetch_feed_bad_status_raises():
    source = _source("Alpha")
    manager, _, _ = _manager([source], {source.url: (503, "", b"")})
    with pytest.raises(FeedError, match="unexpected status code: 503"):
        manager.fetch_feed(source)


def test_fetch_feed_decodes_declared_charset():
    source = _source("Alpha")
    body = b"<rss><channel><item><title>caf\xe9</title></item></channel></rss>"
    manager, _, _ = _manager(
        [source], {source.url: (200, "text/xml; charset=iso-8859-1", body)}
    )
    [news] = manager.fetch_feed(source)
    assert news.title == "caf\u00e9"


def test_update_all_feeds_merges_and_records_errors():
    alpha, beta, gamma = _source("Alpha"), _source("Beta"), _source("Gamma", enabled=False)
    responses = {
        alpha.url: (200, "text/xml", _rss(_item("a1"), _item("a2"))),
        beta.url: (500, "", b""),
        gamma.url: (200, "text/xml", _rss(_item("c1"))),
    }
    manager, opener, stream = _manager([alpha, beta, gamma], responses)
    manager.update_all_feeds()

    assert [item.id for item in manager.news] == ["a1", "a2"]
    assert gamma.url not in opener.calls
    assert sorted(opener.calls) == sorted([alpha.url, beta.url])
    assert "unexpected status code: 500" in beta.last_error
    assert alpha.last_error == ""
    assert alpha.last_fetched is not None
    assert "Error fetching feed Beta" in stream.getvalue()


def test_update_prepends_new_items_and_truncates():
    alpha = _source("Alpha")
    responses = {alpha.url: (200, "text/xml", _rss(_item("old1"), _item("old2")))}
    manager, opener, _ = _manager([alpha], responses, max_news_items=3)
    manager.update_all_feeds()
    opener.responses[alpha.url] = (200, "text/xml", _rss(_item("new1"), _item("new2")))
    manager.update_all_feeds()
    assert [item.id for item in manager.news] == ["new1", "new2", "old1"]


def test_stats_follow_update():
    alpha, beta = _source("Alpha"), _source("Beta", enabled=False)
    responses = {alpha.url: (200, "text/xml", _rss(_item("a1"), _item("a2")))}
    manager, _, _ = _manager([alpha, beta], responses)
    manager.update_all_feeds()
    stats = manager.get_dashboard_data().stats
    assert stats.total_feeds == len(manager.feeds)
    assert stats.active_feeds == 1
    assert stats.total_news_items == len(manager.news)
    assert stats.last_update_time is not None


def test_failed_update_changes_nothing():
    alpha = _source("Alpha")
    manager, _, _ = _manager([alpha], {})
    before = manager.last_update
    manager.update_all_feeds()
    assert manager.news == []
    assert manager.last_update == before
    assert manager.stats.total_feeds == 0


def _filled_manager():
    alpha, beta = _source("Alpha", category="tech"), _source("Beta", category="world")
    responses = {
        alpha.url: (200, "text/xml", _rss(_item("a1", pub_date=_day(3)), _item("a2", pub_date=_day(1)))),
        beta.url: (200, "text/xml", _rss(_item("b1", pub_date=_day(4)), _item("b2", pub_date=_day(2)))),
    }
    manager, _, _ = _manager([alpha, beta], responses)
    manager.update_all_feeds()
    return manager


def test_get_news_sorted_newest_first():
    manager = _filled_manager()
    news, total = manager.get_news(FilterOptions())
    published = [item.published for item in news]
    assert published == sorted(published, reverse=True)
    assert total == len(manager.news)
    assert {item.id for item in news} == {"a1", "a2", "b1", "b2"}


def test_get_news_filters_source_and_category():
    manager = _filled_manager()
    by_source, total = manager.get_news(FilterOptions(source="alpha"))
    assert {item.id for item in by_source} == {"a1", "a2"}
    assert total == len(by_source)
    by_category, _ = manager.get_news(FilterOptions(category="world"))
    assert {item.id for item in by_category} == {"b1", "b2"}


def test_get_news_pagination():
    manager = _filled_manager()
    full, _ = manager.get_news(FilterOptions())
    page, total = manager.get_news(FilterOptions(offset=1, limit=2))
    assert page == full[1:3]
    assert total == len(full)
    beyond, _ = manager.get_news(FilterOptions(offset=10))
    assert beyond == full


def test_get_news_time_window():
    manager = _filled_manager()
    start = datetime(2024, 1, 2, tzinfo=timezone.utc)
    end = datetime(2024, 1, 3, 10, tzinfo=timezone.utc)
    news, total = manager.get_news(FilterOptions(start_time=start, end_time=end))
    assert {item.id for item in news} == {"a1", "b2"}
    assert total == len(news)
    assert all(start <= item.published <= end for item in news)


def test_dashboard_data_holds_latest_ten():
    alpha = _source("Alpha")
    items = [_item(f"g{number}") for number in range(12)]
    manager, _, _ = _manager([alpha], {alpha.url: (200, "text/xml", _rss(*items))})
    manager.update_all_feeds()
    data = manager.get_dashboard_data()
    assert data.news == manager.news[:10]
    assert data.last_updated == manager.last_update


def test_start_runs_once_and_stops_when_event_set():
    alpha = _source("Alpha")
    manager, opener, stream = _manager(
        [alpha], {alpha.url: (200, "text/xml", _rss(_item("a1")))}
    )
    stop = threading.Event()
    stop.set()
    manager.start(stop)
    assert opener.calls == [alpha.url]
    assert "Stopping feed manager" in stream.getvalue()
    assert [item.id for item in manager.news] == ["a1"]


def test_start_rejects_non_positive_interval():
    manager, _, _ = _manager([], {}, poll_interval=timedelta(0))
    with pytest.raises(ValueError):
        manager.start(threading.Event())