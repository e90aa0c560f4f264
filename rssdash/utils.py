"""Text, date and identifier helpers for news items."""

from __future__ import annotations

import hashlib
import re
import time
from datetime import datetime, timedelta, timezone
from typing import Iterable

from rssdash.models import NewsItem

_TAG = re.compile(r"<[^>]*>")
_SPACES = re.compile(r"[\t\n\f\r ]+")
_DOTS = re.compile(r"[.]{3,}")

_ENTITIES = {
    "&amp;": "&",
    "&lt;": "<",
    "&gt;": ">",
    "&quot;": '"',
    "&#39;": "'",
    "&apos;": "'",
    "&nbsp;": " ",
    "&hellip;": "...",
    "&mdash;": "\u2014",
    "&ndash;": "\u2013",
    "&rsquo;": "'",
    "&lsquo;": "'",
    "&rdquo;": '"',
    "&ldquo;": '"',
    "&copy;": "\u00a9",
    "&reg;": "\u00ae",
    "&trade;": "\u2122",
    "&bull;": "\u2022",
    "&laquo;": "\u00ab",
    "&raquo;": "\u00bb",
}
_ENTITY = re.compile("|".join(re.escape(name) for name in _ENTITIES))

_SHORT_MONTHS = ["Jan", "Feb", "Mar", "Apr", "May", "Jun", "Jul", "Aug", "Sep", "Oct", "Nov", "Dec"]
_LONG_MONTHS = [
    "January", "February", "March", "April", "May", "June",
    "July", "August", "September", "October", "November", "December",
]
_SHORT_MONTH_NUMBERS = {name.lower(): number for number, name in enumerate(_SHORT_MONTHS, 1)}
_LONG_MONTH_NUMBERS = {name.lower(): number for number, name in enumerate(_LONG_MONTHS, 1)}
_WEEKDAYS = frozenset({"mon", "tue", "wed", "thu", "fri", "sat", "sun"})

_WD = r"(?P<wd>[A-Za-z]{3})"
_DAY2 = r"(?P<d>\d{2})"
_DAY = r"(?P<d>\d{1,2})"
_MON = r"(?P<mon>[A-Za-z]{3})"
_MONTH = r"(?P<month>[A-Za-z]+)"
_MM = r"(?P<mm>\d{2})"
_Y4 = r"(?P<y4>\d{4})"
_Y2 = r"(?P<y2>\d{2})"
_HH = r"(?P<H>\d{1,2})"
_H12 = r"(?P<h12>\d{1,2})"
_MI = r"(?P<M>\d{2})"
_SS = r"(?P<S>\d{2})(?:[.,](?P<frac>\d+))?"
_SS_MILLI = r"(?P<S>\d{2})\.(?P<frac>\d{3})"
_AMPM = r"(?P<ampm>AM|PM)"
_NUM_TZ = r"(?P<tz>[+-]\d{4})"
_COLON_TZ = r"(?P<ctz>[+-]\d{2}:\d{2})"
_ISO_TZ = r"(?P<ctz>Z|[+-]\d{2}:\d{2})"
_ABBR = r"(?P<abbr>[A-Z]{3,5})"

_LAYOUTS = [
    re.compile(pattern)
    for pattern in (
        f"{_WD}, {_DAY2} {_MON} {_Y4} {_HH}:{_MI}:{_SS} {_NUM_TZ}",
        f"{_WD}, {_DAY2} {_MON} {_Y4} {_HH}:{_MI}:{_SS} {_ABBR}",
        f"{_Y4}-{_MM}-{_DAY2}T{_HH}:{_MI}:{_SS}{_ISO_TZ}",
        f"{_DAY2} {_MON} {_Y2} {_HH}:{_MI} {_NUM_TZ}",
        f"{_DAY2} {_MON} {_Y2} {_HH}:{_MI} {_ABBR}",
        f"{_WD}, {_DAY} {_MON} {_Y4} {_HH}:{_MI}:{_SS} {_NUM_TZ}",
        f"{_WD}, {_DAY} {_MON} {_Y4} {_HH}:{_MI}:{_SS} {_ABBR}",
        f"{_Y4}-{_MM}-{_DAY2}T{_HH}:{_MI}:{_SS}Z",
        f"{_Y4}-{_MM}-{_DAY2}T{_HH}:{_MI}:{_SS}{_COLON_TZ}",
        f"{_Y4}-{_MM}-{_DAY2}T{_HH}:{_MI}:{_SS_MILLI}Z",
        f"{_Y4}-{_MM}-{_DAY2} {_HH}:{_MI}:{_SS}",
        f"{_MON} {_DAY}, {_Y4} {_H12}:{_MI}:{_SS} {_AMPM}",
        f"{_MONTH} {_DAY}, {_Y4} {_H12}:{_MI}:{_SS} {_AMPM}",
        f"{_MONTH} {_DAY}, {_Y4}",
        f"{_MON} {_DAY}, {_Y4}",
        f"{_Y4}-{_MM}-{_DAY2}",
        f"{_DAY2}/{_MM}/{_Y4} {_HH}:{_MI}:{_SS}",
        f"{_DAY2}-{_MM}-{_Y4} {_HH}:{_MI}:{_SS}",
    )
]


def generate_id(guid: str, link: str, title: str) -> str:
    """Return a 16-hex-digit identifier from the GUID, else the link, else title and time."""
    if guid:
        source = guid
    elif link:
        source = link
    else:
        source = f"{title}{int(time.time())}"
    return hashlib.md5(source.encode("utf-8")).hexdigest()[:16]


def clean_text(text: str) -> str:
    """Strip HTML tags, decode common entities and normalise whitespace."""
    cleaned = _TAG.sub("", text)
    cleaned = _ENTITY.sub(lambda match: _ENTITIES[match.group(0)], cleaned)
    cleaned = cleaned.strip()
    cleaned = _SPACES.sub(" ", cleaned)
    return _DOTS.sub("...", cleaned)


def _offset(text: str) -> timezone:
    sign = -1 if text[0] == "-" else 1
    digits = text[1:].replace(":", "")
    delta = timedelta(hours=int(digits[:2]), minutes=int(digits[2:]))
    return timezone(sign * delta)


def _build(match: re.Match[str]) -> datetime:
    parts = match.groupdict()

    weekday = parts.get("wd")
    if weekday is not None and weekday.lower() not in _WEEKDAYS:
        raise ValueError(f"bad weekday {weekday!r}")

    if parts.get("y4") is not None:
        year = int(parts["y4"])
    else:
        short_year = int(parts["y2"])
        year = short_year + (1900 if short_year >= 69 else 2000)

    if parts.get("mm") is not None:
        month = int(parts["mm"])
    elif parts.get("mon") is not None:
        month = _SHORT_MONTH_NUMBERS.get(parts["mon"].lower(), 0)
    else:
        month = _LONG_MONTH_NUMBERS.get(parts["month"].lower(), 0)
    if not month:
        raise ValueError("bad month name")

    if parts.get("h12") is not None:
        hour = int(parts["h12"])
        if hour > 12:
            raise ValueError("hour out of range")
        if parts["ampm"] == "PM" and hour < 12:
            hour += 12
        elif parts["ampm"] == "AM" and hour == 12:
            hour = 0
    else:
        hour = int(parts.get("H") or 0)

    fraction = parts.get("frac") or ""
    microsecond = int((fraction + "000000")[:6])

    if parts.get("tz") is not None:
        zone = _offset(parts["tz"])
    elif parts.get("ctz") not in (None, "Z"):
        zone = _offset(parts["ctz"])
    else:
        zone = timezone.utc

    return datetime(
        year,
        month,
        int(parts["d"]),
        hour,
        int(parts.get("M") or 0),
        int(parts.get("S") or 0),
        microsecond,
        tzinfo=zone,
    )


def parse_date(date_str: str) -> datetime:
    """Parse a feed date in any of the common layouts; fall back to the current time."""
    text = date_str.strip()
    for layout in _LAYOUTS:
        match = layout.fullmatch(text)
        if match is None:
            continue
        try:
            return _build(match)
        except ValueError:
            continue
    return datetime.now().astimezone()


def time_ago(moment: datetime, now: datetime | None = None) -> str:
    """Describe how long ago ``moment`` was, relative to ``now``."""
    if now is None:
        now = datetime.now(moment.tzinfo) if moment.tzinfo is not None else datetime.now()
    diff = now - moment
    hours = diff.total_seconds() / 3600

    if diff < timedelta(minutes=1):
        return "Just now"
    if diff < timedelta(hours=1):
        return f"{int(diff.total_seconds() / 60)} minute(s) ago"
    if diff < timedelta(hours=24):
        return f"{int(hours)} hour(s) ago"
    if diff < timedelta(days=7):
        return f"{int(hours / 24)} day(s) ago"
    if diff < timedelta(days=30):
        return f"{int(hours / (24 * 7))} week(s) ago"
    if diff < timedelta(days=365):
        return f"{int(hours / (24 * 30))} month(s) ago"
    return f"{_SHORT_MONTHS[moment.month - 1]} {moment.day}, {moment.year}"


def remove_duplicates(news: Iterable[NewsItem]) -> list[NewsItem]:
    """Keep the first item for each ID, preserving order."""
    seen: set[str] = set()
    unique: list[NewsItem] = []
    for item in news:
        if item.id not in seen:
            seen.add(item.id)
            unique.append(item)
    return unique


def count_words(text: str) -> int:
    """Count whitespace-separated words."""
    return len(text.split())


def read_time(text: str) -> int:
    """Estimated reading time in whole minutes, at least one."""
    return max(1, count_words(text) // 225)