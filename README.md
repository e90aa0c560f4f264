# rssdash

rssdash polls a set of RSS feeds in the background and keeps the newest
items in memory. It serves them through a small JSON HTTP API and a
simple HTML page that lists them.

## Installation

```
pip install .
```

The package uses only the Python standard library. It needs Python 3.10
or later.

## Running the server

```
rssdash
```

The command takes no options apart from `--help`. It reads its settings
from the environment (see below) and listens on `:8080` by default. It
polls the feeds at once and then again every poll interval. Stop it with
Ctrl+C or SIGTERM. The poller stops, the HTTP server shuts down and the
log file is closed.

Out of the box it follows two feeds, `bbc` (BBC News) and `reuters`
(Reuters), both in the `general` category.

### Endpoints

| Method | Path                 | Returns                                                        |
|--------|----------------------|----------------------------------------------------------------|
| GET    | `/`                  | HTML page that loads `/api/news?limit=10` and lists the items  |
| GET    | `/api/health`        | `{"status": "ok", "time": …, "version": "1.0.0"}`              |
| GET    | `/api/news`          | `news`, `total`, `returned` and `timestamp`                    |
| GET    | `/api/feeds`         | the default feed sources                                       |
| POST   | `/api/feeds/refresh` | `202` with `{"status": "accepted", …}`                         |
| GET    | `/api/stats`         | a fixed set of statistics                                      |

`/api/news` takes the query parameters `limit` (default 10), `offset`,
`source` and `category`. Items come newest first. `total` counts the
matches before paging. `news` is `null` when nothing matches.

Responses from these endpoints carry permissive CORS headers. A request
to a known path with another method gets `405`, and one to an unknown
path gets `404`. Paths with `.`, `..` or doubled slashes are redirected
to their cleaned form with `301`. If a handler raises, the response is
`500 Internal Server Error` and the error is logged.

## Configuration

Settings come from environment variables. If a variable is unset or
cannot be parsed, its default applies.

| Variable           | Default           |
|--------------------|-------------------|
| `PORT`             | `:8080`           |
| `POLL_INTERVAL`    | `5m`              |
| `REQUEST_TIMEOUT`  | `30s`             |
| `SERVER_TIMEOUT`   | `30s`             |
| `MAX_NEWS_ITEMS`   | `1000`            |
| `ENABLE_SENTIMENT` | `true`            |
| `LOG_LEVEL`        | `info`            |
| `DATABASE_PATH`    | `./data/news.db`  |
| `CACHE_TIMEOUT`    | `10m`             |
| `MAX_CONCURRENT`   | `10`              |
| `RATE_LIMIT_RPM`   | `60`              |

Durations are written as `90s`, `1m30s`, `1.5h` or `250ms`. Booleans
accept `1`, `t`, `true`, `0`, `f` and `false`, and the capitalised forms
of these.

`CONFIG_FILE` may name a readable JSON file. Its keys override the
environment. The keys are `port`, `pollInterval`, `maxNewsItems` and so
on, and they match without regard to case. Durations in this file are
integer nanoseconds. `Config.save_to_file` writes the same format.

Log lines go to standard output and to `logs/app_YYYY-MM-DD.log` under
the working directory. `LOG_LEVEL` is one of `debug`, `info`, `warn`,
`error` or `fatal`.

## Using it as a library

```python
from rssdash.config import load_config
from rssdash.logger import Logger
from rssdash.feed import FeedManager
from rssdash.models import FilterOptions

cfg = load_config({"MAX_NEWS_ITEMS": "200"})
manager = FeedManager(cfg, Logger("warn", log_dir=None))
manager.update_all_feeds()
items, total = manager.get_news(FilterOptions(source="bbc", limit=5))
```

- `rssdash.feed`: `FeedManager` (`update_all_feeds`, `fetch_feed`,
  `get_news`, `get_dashboard_data`, `start(stop_event)`), `parse_rss`
  and `default_feed_sources`. `FeedManager` accepts `feeds=` to replace
  the default sources and `opener=` to replace the HTTP fetch.
- `rssdash.handlers`: `Handlers` has one method per endpoint. Each takes
  a query mapping and returns a `Response`.
- `rssdash.server`: `create_app` builds the WSGI application. The module
  also has `cors_middleware`, `logging_middleware`, `recovery_middleware`
  and `request_logging_middleware`.
- `rssdash.utils`: `clean_text`, `parse_date`, `time_ago`,
  `generate_id`, `remove_duplicates`, `count_words` and `read_time`.
- `rssdash.cache.Cache` is a key/value store whose entries expire after
  a set time.
- `rssdash.ratelimit.RateLimiter` is a token-bucket limiter that counts
  requests per minute.

## What it does not do

- News is kept only in memory. Nothing is stored on disk.
  `DATABASE_PATH` is read but not used.
- There is no sentiment analysis or scoring. `ENABLE_SENTIMENT` and
  `MAX_CONCURRENT` are read but not used.
- `POST /api/feeds/refresh` only acknowledges the request and does not
  poll the feeds.
- `/api/stats` returns fixed figures, not live ones.
- `/api/feeds` lists the default sources.

## Tests

```
pip install ".[test]"
pytest
```