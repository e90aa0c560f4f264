"""WSGI application, middleware and the command that serves the dashboard."""

from __future__ import annotations

import argparse
import signal
import socket
import threading
import time
from collections.abc import Callable, Iterable
from http import HTTPStatus
from socketserver import ThreadingMixIn
from typing import Any
from urllib.parse import parse_qs, quote
from wsgiref.simple_server import WSGIRequestHandler, WSGIServer

from rssdash.config import load_config
from rssdash.feed import FeedManager
from rssdash.handlers import Handlers, Response
from rssdash.logger import Logger

WSGIApp = Callable[[dict, Callable[..., Any]], Iterable[bytes]]

_CORS_HEADERS = [
    ("Access-Control-Allow-Origin", "*"),
    ("Access-Control-Allow-Methods", "GET, POST, OPTIONS, PUT, DELETE"),
    ("Access-Control-Allow-Headers", "Content-Type, Authorization"),
]
_PATH_SAFE = "/:@!$&'()*+,;=~"
_NOT_FOUND = b"404 page not found\n"
_SERVER_ERROR = b"Internal Server Error\n"


def _status_line(code: int) -> str:
    return f"{code} {HTTPStatus(code).phrase}"


def _format_duration(nanoseconds: int) -> str:
    """Render a duration such as ``1.5ms`` or ``2m3.25s``."""
    if nanoseconds == 0:
        return "0s"
    sign = "-" if nanoseconds < 0 else ""
    ns = abs(nanoseconds)

    def decimal(whole: int, fraction: int, digits: int) -> str:
        tail = f"{fraction:0{digits}d}".rstrip("0")
        return f"{whole}.{tail}" if tail else str(whole)

    if ns < 1000:
        return f"{sign}{ns}ns"
    if ns < 1000**2:
        return sign + decimal(*divmod(ns, 1000), 3) + "\u00b5s"
    if ns < 1000**3:
        return sign + decimal(*divmod(ns, 1000**2), 6) + "ms"
    hours, rest = divmod(ns, 3600 * 1000**3)
    minutes, rest = divmod(rest, 60 * 1000**3)
    seconds = decimal(*divmod(rest, 1000**3), 9) + "s"
    if hours:
        return f"{sign}{hours}h{minutes}m{seconds}"
    if minutes:
        return f"{sign}{minutes}m{seconds}"
    return sign + seconds


def _encoded_path(environ: dict) -> str:
    path = environ.get("SCRIPT_NAME", "") + environ.get("PATH_INFO", "")
    return quote(path.encode("latin-1", "replace"), safe=_PATH_SAFE)


def _request_uri(environ: dict) -> str:
    uri = environ.get("REQUEST_URI") or environ.get("RAW_URI")
    if uri:
        return uri
    query = environ.get("QUERY_STRING", "")
    return _encoded_path(environ) + (f"?{query}" if query else "")


def _clean_path(path: str) -> str:
    """Resolve ``.``, ``..`` and repeated slashes, keeping a trailing slash."""
    if not path:
        return "/"
    if not path.startswith("/"):
        path = "/" + path
    parts: list[str] = []
    for segment in path.split("/"):
        if segment in ("", "."):
            continue
        if segment == "..":
            if parts:
                parts.pop()
            continue
        parts.append(segment)
    cleaned = "/" + "/".join(parts)
    if path.endswith("/") and cleaned != "/":
        cleaned += "/"
    return cleaned


def _run(app: WSGIApp, environ: dict) -> tuple[str, list[tuple[str, str]], bytes]:
    """Call ``app`` and collect its whole response."""
    captured: dict[str, Any] = {}
    chunks: list[bytes] = []

    def capture(status: str, headers: list[tuple[str, str]], exc_info: Any = None) -> Callable:
        captured["status"] = status
        captured["headers"] = list(headers)
        return chunks.append

    result = app(environ, capture)
    try:
        chunks.extend(result)
    finally:
        close = getattr(result, "close", None)
        if close is not None:
            close()
    if "status" not in captured:
        raise RuntimeError("application returned without starting a response")
    return captured["status"], captured["headers"], b"".join(chunks)


def _handler_app(endpoint: Callable[[dict[str, str]], Response]) -> WSGIApp:
    def app(environ: dict, start_response: Callable[..., Any]) -> Iterable[bytes]:
        parsed = parse_qs(environ.get("QUERY_STRING", ""), keep_blank_values=True)
        response = endpoint({key: values[0] for key, values in parsed.items()})
        start_response(
            _status_line(response.status),
            [("Content-Type", response.content_type), ("Content-Length", str(len(response.body)))],
        )
        return [response.body]

    return app


def cors_middleware(app: WSGIApp) -> WSGIApp:
    """Add CORS headers and answer OPTIONS requests directly."""

    def wrapped(environ: dict, start_response: Callable[..., Any]) -> Iterable[bytes]:
        if environ.get("REQUEST_METHOD") == "OPTIONS":
            start_response("200 OK", [*_CORS_HEADERS, ("Content-Length", "0")])
            return [b""]

        def with_cors(status: str, headers: list[tuple[str, str]], exc_info: Any = None) -> Any:
            names = {name.lower() for name, _ in headers}
            extra = [(name, value) for name, value in _CORS_HEADERS if name.lower() not in names]
            return start_response(status, extra + list(headers), exc_info)

        return app(environ, with_cors)

    return wrapped


def recovery_middleware(app: WSGIApp, logger: Logger) -> WSGIApp:
    """Turn an exception raised by ``app`` into a 500 response."""

    def wrapped(environ: dict, start_response: Callable[..., Any]) -> Iterable[bytes]:
        try:
            status, headers, body = _run(app, environ)
        except Exception as exc:
            logger.error("Recovered from panic: %s", exc)
            start_response(
                "500 Internal Server Error",
                [
                    ("Content-Type", "text/plain; charset=utf-8"),
                    ("X-Content-Type-Options", "nosniff"),
                    ("Content-Length", str(len(_SERVER_ERROR))),
                ],
            )
            return [_SERVER_ERROR]
        start_response(status, headers)
        return [body]

    return wrapped


def logging_middleware(app: WSGIApp, logger: Logger) -> WSGIApp:
    """Log each request as it arrives and when it completes."""

    def wrapped(environ: dict, start_response: Callable[..., Any]) -> Iterable[bytes]:
        started = time.perf_counter_ns()
        uri = _request_uri(environ)
        logger.info("Request: %s %s", environ.get("REQUEST_METHOD", ""), uri)
        status, headers, body = _run(app, environ)
        start_response(status, headers)
        logger.info("Completed %s in %s", uri, _format_duration(time.perf_counter_ns() - started))
        return [body]

    return wrapped


def request_logging_middleware(app: WSGIApp, logger: Logger) -> WSGIApp:
    """Log method, URI, status, duration and client address of each request."""

    def wrapped(environ: dict, start_response: Callable[..., Any]) -> Iterable[bytes]:
        started = time.perf_counter_ns()
        status, headers, body = _run(app, environ)
        start_response(status, headers)
        remote = environ.get("REMOTE_ADDR", "")
        if environ.get("REMOTE_PORT"):
            remote = f"{remote}:{environ['REMOTE_PORT']}"
        logger.info(
            "%s %s %d %s %s",
            environ.get("REQUEST_METHOD", ""),
            _request_uri(environ),
            int(status.split(" ", 1)[0]),
            _format_duration(time.perf_counter_ns() - started),
            remote,
        )
        return [body]

    return wrapped


def create_app(handlers: Handlers, logger: Logger) -> WSGIApp:
    """Route requests to ``handlers``; matched routes pass through the middleware."""
    endpoints = {
        "/": {"GET": handlers.home},
        "/api/health": {"GET": handlers.health},
        "/api/news": {"GET": handlers.news},
        "/api/feeds": {"GET": handlers.feeds},
        "/api/feeds/refresh": {"POST": handlers.refresh},
        "/api/stats": {"GET": handlers.stats},
    }
    routes = {
        path: {
            method: logging_middleware(
                cors_middleware(recovery_middleware(_handler_app(endpoint), logger)), logger
            )
            for method, endpoint in methods.items()
        }
        for path, methods in endpoints.items()
    }

    def app(environ: dict, start_response: Callable[..., Any]) -> Iterable[bytes]:
        path = environ.get("PATH_INFO", "")
        method = environ.get("REQUEST_METHOD", "GET")
        cleaned = _clean_path(path)
        if cleaned != path and method != "CONNECT":
            query = environ.get("QUERY_STRING", "")
            location = quote(cleaned.encode("latin-1", "replace"), safe=_PATH_SAFE)
            if query:
                location += f"?{query}"
            start_response("301 Moved Permanently", [("Location", location), ("Content-Length", "0")])
            return [b""]

        methods = routes.get(path)
        if methods is None:
            start_response(
                "404 Not Found",
                [
                    ("Content-Type", "text/plain; charset=utf-8"),
                    ("X-Content-Type-Options", "nosniff"),
                    ("Content-Length", str(len(_NOT_FOUND))),
                ],
            )
            return [_NOT_FOUND]
        route = methods.get(method)
        if route is None:
            start_response("405 Method Not Allowed", [("Content-Length", "0")])
            return [b""]
        return route(environ, start_response)

    return app


def _split_address(address: str) -> tuple[str, int]:
    host, sep, port = address.rpartition(":")
    if not sep or not port.isdigit():
        raise ValueError(f"missing port in address {address!r}")
    if host.startswith("[") and host.endswith("]"):
        host = host[1:-1]
    return host, int(port)


def _make_server(host: str, port: int, app: WSGIApp, timeout: float) -> WSGIServer:
    class _Handler(WSGIRequestHandler):
        def log_message(self, message_format: str, *args: Any) -> None:
            pass

    _Handler.timeout = timeout or None

    class _Server(ThreadingMixIn, WSGIServer):
        daemon_threads = True
        address_family = socket.AF_INET6 if ":" in host else socket.AF_INET

    server = _Server((host, port), _Handler)
    server.set_app(app)
    return server


def main(argv: list[str] | None = None) -> int:
    """Serve the dashboard until SIGINT or SIGTERM."""
    argparse.ArgumentParser(
        prog="rssdash", description="Serve the RSS feed dashboard; configured by environment."
    ).parse_args(argv)

    config = load_config()
    logger = Logger(config.log_level)
    feed_manager = FeedManager(config, logger)
    app = create_app(Handlers(feed_manager, logger), logger)

    try:
        host, port = _split_address(config.port)
        server = _make_server(host, port, app, config.server_timeout.total_seconds())
    except (OSError, OverflowError, ValueError) as exc:
        logger.fatal("Server failed to start: %s", exc)
        return 1

    stop = threading.Event()
    threading.Thread(target=feed_manager.start, args=(stop,), daemon=True).start()

    logger.info("Starting RSS Feed Dashboard on %s", config.port)
    logger.info("Available at http://localhost%s", config.port)
    logger.info("Features: Real-time updates, sentiment analysis, enhanced error handling")
    threading.Thread(target=server.serve_forever, daemon=True).start()

    quit_event = threading.Event()
    signals = (signal.SIGINT, signal.SIGTERM)
    previous = {sig: signal.signal(sig, lambda *_: quit_event.set()) for sig in signals}
    try:
        while not quit_event.wait(0.5):
            pass
    finally:
        for sig, handler in previous.items():
            signal.signal(sig, handler)

    logger.info("Shutting down server...")
    stop.set()
    server.shutdown()
    server.server_close()
    logger.info("Server exited")
    logger.close()
    return 0