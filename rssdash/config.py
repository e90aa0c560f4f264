"""Application configuration loaded from the environment and an optional JSON file."""

from __future__ import annotations

import json
import os
import re
from dataclasses import dataclass, fields
from datetime import timedelta
from fractions import Fraction
from pathlib import Path
from typing import Any, Mapping

_MAX_NANOSECONDS = 2**63 - 1
_UNITS = {
    "ns": 1,
    "us": 1000,
    "\u00b5s": 1000,
    "\u03bcs": 1000,
    "ms": 1000**2,
    "s": 1000**3,
    "m": 60 * 1000**3,
    "h": 3600 * 1000**3,
}
_COMPONENT = r"([0-9]+(?:\.[0-9]*)?|\.[0-9]+)([^0-9.]+)"
_DURATION = re.compile(f"(?:{_COMPONENT})+")
_INTEGER = re.compile(r"[+-]?[0-9]+")
_TRUE_WORDS = frozenset({"1", "t", "T", "TRUE", "true", "True"})
_FALSE_WORDS = frozenset({"0", "f", "F", "FALSE", "false", "False"})

_JSON_NAMES = {
    "port": "port",
    "poll_interval": "pollInterval",
    "request_timeout": "requestTimeout",
    "server_timeout": "serverTimeout",
    "max_news_items": "maxNewsItems",
    "enable_sentiment": "enableSentiment",
    "log_level": "logLevel",
    "database_path": "databasePath",
    "cache_timeout": "cacheTimeout",
    "max_concurrent": "maxConcurrent",
    "rate_limit_rpm": "rateLimitRPM",
}


def parse_duration(text: str) -> timedelta:
    """Parse a duration such as ``"1h30m"``, ``"1.5s"`` or ``"250ms"``."""
    body = text[1:] if text[:1] in ("-", "+") else text
    if body == "0":
        return timedelta(0)
    if not _DURATION.fullmatch(body):
        raise ValueError(f"invalid duration {text!r}")
    total = Fraction(0)
    for number, unit in re.findall(_COMPONENT, body):
        if unit not in _UNITS:
            raise ValueError(f"unknown unit {unit!r} in duration {text!r}")
        total += Fraction(number if not number.endswith(".") else number[:-1]) * _UNITS[unit]
        if total > _MAX_NANOSECONDS:
            raise ValueError(f"invalid duration {text!r}")
    microseconds = round(total / 1000)
    return timedelta(microseconds=-microseconds if text.startswith("-") else microseconds)


def parse_bool(text: str) -> bool:
    """Parse the boolean spellings 1/t/true and 0/f/false in their accepted cases."""
    if text in _TRUE_WORDS:
        return True
    if text in _FALSE_WORDS:
        return False
    raise ValueError(f"invalid boolean {text!r}")


def _to_nanoseconds(delta: timedelta) -> int:
    return (delta.days * 86400 + delta.seconds) * 1000**3 + delta.microseconds * 1000


def _from_nanoseconds(nanoseconds: int) -> timedelta:
    microseconds = abs(nanoseconds) // 1000
    return timedelta(microseconds=-microseconds if nanoseconds < 0 else microseconds)


@dataclass
class Config:
    """Runtime settings for the dashboard server."""

    port: str = ":8080"
    poll_interval: timedelta = timedelta(minutes=5)
    request_timeout: timedelta = timedelta(seconds=30)
    server_timeout: timedelta = timedelta(seconds=30)
    max_news_items: int = 1000
    enable_sentiment: bool = True
    log_level: str = "info"
    database_path: str = "./data/news.db"
    cache_timeout: timedelta = timedelta(minutes=10)
    max_concurrent: int = 10
    rate_limit_rpm: int = 60

    def to_dict(self) -> dict[str, Any]:
        """Return the JSON form, with durations as integer nanoseconds."""
        result: dict[str, Any] = {}
        for item in fields(self):
            value = getattr(self, item.name)
            result[_JSON_NAMES[item.name]] = (
                _to_nanoseconds(value) if isinstance(value, timedelta) else value
            )
        return result

    def update_from_dict(self, data: Mapping[str, Any]) -> None:
        """Apply values from a JSON object; keys match case-insensitively.

        Well-typed fields are applied; a TypeError naming the rest is raised afterwards.
        """
        lookup = {json_name.lower(): attr for attr, json_name in _JSON_NAMES.items()}
        defaults = Config()
        rejected: list[str] = []
        for key, value in data.items():
            attr = lookup.get(key.lower())
            if attr is None or value is None:
                continue
            current = getattr(defaults, attr)
            if isinstance(current, bool):
                accepted = isinstance(value, bool)
            elif isinstance(current, (int, timedelta)):
                accepted = isinstance(value, int) and not isinstance(value, bool)
            else:
                accepted = isinstance(value, str)
            if not accepted:
                rejected.append(key)
                continue
            setattr(self, attr, _from_nanoseconds(value) if isinstance(current, timedelta) else value)
        if rejected:
            raise TypeError(f"cannot load config fields: {', '.join(rejected)}")

    def save_to_file(self, filename: str | os.PathLike[str]) -> None:
        """Write the configuration as indented JSON."""
        Path(filename).write_text(json.dumps(self.to_dict(), indent=2), encoding="utf-8")


def _parse_env_value(raw: str, default: Any) -> Any:
    if isinstance(default, bool):
        return parse_bool(raw)
    if isinstance(default, int):
        if not _INTEGER.fullmatch(raw):
            raise ValueError(raw)
        return int(raw)
    if isinstance(default, timedelta):
        return parse_duration(raw)
    return raw


def load_config(environ: Mapping[str, str] | None = None) -> Config:
    """Build a Config from environment variables, then CONFIG_FILE if it names a readable file."""
    env = os.environ if environ is None else environ
    config = Config()
    for item in fields(config):
        raw = env.get(item.name.upper(), "")
        if raw:
            try:
                setattr(config, item.name, _parse_env_value(raw, getattr(config, item.name)))
            except ValueError:
                pass

    config_file = env.get("CONFIG_FILE")
    if config_file:
        try:
            data = json.loads(Path(config_file).read_text(encoding="utf-8"))
        except (OSError, ValueError):
            return config
        if isinstance(data, dict):
            try:
                config.update_from_dict(data)
            except TypeError:
                pass
    return config