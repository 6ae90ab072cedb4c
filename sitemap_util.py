"""
Shared pieces of the sitemap writers: errors, the URL entry value object and
lastmod formatting.
"""

import os
import re
from dataclasses import dataclass
from datetime import date, datetime, time, timedelta
from pathlib import Path
from typing import Any, Iterable, Mapping, Optional, Union

from dateutil import parser as dateparser

SITEMAP_NS = "http://www.sitemaps.org/schemas/sitemap/0.9"
MAX_LOC_LENGTH = 2048

# Characters outside the XML 1.0 Char production
INVALID_XML_CHARS = re.compile("[\x00-\x08\x0b\x0c\x0e-\x1f\ud800-\udfff\ufffe\uffff]")

LastModified = Union[str, int, date, datetime]


class SitemapError(Exception):
    """Base class for errors raised by the sitemap writers."""


class ConfigurationError(SitemapError, ValueError):
    """Invalid writer threshold."""


class InvalidDateError(SitemapError, ValueError):
    """A lastmod value could not be understood as a date."""


class MalformedIndexError(SitemapError):
    """An existing sitemap index is not well-formed XML."""


def _relative_day(keyword: str) -> Optional[datetime]:
    now = datetime.now().astimezone()
    if keyword == "now":
        return now
    offsets = {"today": 0, "yesterday": -1, "tomorrow": 1}
    if keyword not in offsets:
        return None
    day = now.date() + timedelta(days=offsets[keyword])
    return datetime.combine(day, time.min).astimezone()


def format_last_modified(value: LastModified) -> str:
    """
    Render a lastmod value as a W3C datetime (``YYYY-MM-DDTHH:MM:SS+HH:MM``).

    Digit-only strings and ints are Unix timestamps. Anything else is parsed
    as a date expression; ``now``, ``today``, ``yesterday`` and ``tomorrow``
    are understood on top of what dateutil parses. Naive values are taken to
    be local time.
    """
    if isinstance(value, bool):
        raise InvalidDateError(f"Not a date: {value!r}")
    if isinstance(value, int):
        value = str(value)

    if isinstance(value, datetime):
        moment = value
    elif isinstance(value, date):
        moment = datetime.combine(value, time.min)
    elif isinstance(value, str):
        text = value.strip()
        if text.isdigit():
            try:
                moment = datetime.fromtimestamp(int(text)).astimezone()
            except (OverflowError, OSError, ValueError) as exc:
                raise InvalidDateError(f"Timestamp out of range: {value!r}") from exc
        else:
            moment = _relative_day(text.lower())
            if moment is None:
                try:
                    moment = dateparser.parse(text)
                except (dateparser.ParserError, OverflowError, ValueError) as exc:
                    raise InvalidDateError(f"Unparseable date: {value!r}") from exc
    else:
        raise InvalidDateError(f"Unsupported lastmod type: {type(value).__name__}")

    if moment.tzinfo is None:
        moment = moment.astimezone()
    return moment.replace(microsecond=0).isoformat()


def _format_priority(priority: Union[str, float, int]) -> str:
    if isinstance(priority, str):
        return priority
    return str(float(priority))


@dataclass(frozen=True)
class UrlEntry:
    """
    One ``<url>`` of a sitemap.

    ``loc`` may be absolute or site-root-relative (starting with ``/``).
    ``changefreq`` is one of always, hourly, daily, weekly, monthly, yearly
    or never; it is written as given. ``priority`` must be a decimal within
    0.0 and 1.0; strings are written verbatim. Fields left as None are not
    written. Text containing characters XML 1.0 forbids raises ValueError.
    A loc that renders to 2048 characters or more is rejected by the writer.
    """

    loc: str
    priority: Optional[Union[str, float, int]] = None
    changefreq: Optional[str] = None
    lastmod: Optional[LastModified] = None

    def __post_init__(self):
        for name in ("loc", "priority", "changefreq", "lastmod"):
            value = getattr(self, name)
            if isinstance(value, str) and INVALID_XML_CHARS.search(value):
                raise ValueError(f"{name} contains characters not allowed in XML: {value!r}")
        if self.priority is not None:
            try:
                priority = float(self.priority)
            except (TypeError, ValueError) as exc:
                raise ValueError(f"priority must be a decimal, got {self.priority!r}") from exc
            if not 0.0 <= priority <= 1.0:
                raise ValueError(f"priority must be within 0.0 and 1.0, got {self.priority!r}")

    @classmethod
    def from_record(cls, record: Mapping[str, Any]) -> "UrlEntry":
        return cls(
            record["loc"],
            record.get("priority") or None,
            record.get("changefreq") or None,
            record.get("lastmod") or None,
        )

    def optional_fields(self):
        """(tag, text) pairs for the optional children, in document order."""
        fields = []
        if self.priority is not None:
            fields.append(("priority", _format_priority(self.priority)))
        if self.changefreq is not None:
            fields.append(("changefreq", self.changefreq))
        if self.lastmod is not None:
            fields.append(("lastmod", format_last_modified(self.lastmod)))
        return fields


def xml_prolog(stylesheet: Optional[str] = None) -> str:
    prolog = '<?xml version="1.0" encoding="UTF-8"?>\n'
    if stylesheet:
        prolog += f'<?xml-stylesheet type="text/xsl" href="{stylesheet}" ?>\n'
    return prolog


def write_document(path: Path, parts: Iterable[str]) -> None:
    """
    Write ``parts`` to ``path`` through a temporary sibling file.

    The destination is only replaced once every part has been written, so a
    failure never leaves a truncated document behind.
    """
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    tmp_path = path.with_name(path.name + ".tmp")
    try:
        with tmp_path.open("w", encoding="utf-8") as f:
            for part in parts:
                f.write(part)
        os.replace(tmp_path, path)
    except BaseException:
        tmp_path.unlink(missing_ok=True)
        raise
