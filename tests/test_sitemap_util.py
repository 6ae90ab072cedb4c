import dataclasses
import re
from datetime import date, datetime, timezone

import pytest

from sitemap_util import (
    ConfigurationError,
    InvalidDateError,
    SitemapError,
    UrlEntry,
    format_last_modified,
    write_document,
    xml_prolog,
)

W3C_RE = re.compile(r"^\d{4}-\d{2}-\d{2}T\d{2}:\d{2}:\d{2}[+-]\d{2}:\d{2}$")


def test_digit_string_is_unix_timestamp():
    expected = datetime.fromtimestamp(1609459200).astimezone().isoformat()
    assert format_last_modified("1609459200") == expected
    assert W3C_RE.match(expected)


def test_int_is_unix_timestamp():
    assert format_last_modified(1609459200) == format_last_modified("1609459200")


def test_free_form_date_is_local_midnight():
    expected = datetime(2021, 1, 1).astimezone().isoformat()
    assert format_last_modified("2021-01-01") == expected
    assert format_last_modified("January 1, 2021") == expected


def test_offset_is_kept():
    assert format_last_modified("2021-01-01T10:00:00+02:00") == "2021-01-01T10:00:00+02:00"


def test_aware_datetime_passes_through():
    value = datetime(2022, 3, 4, 5, 6, 7, 890, tzinfo=timezone.utc)
    assert format_last_modified(value) == "2022-03-04T05:06:07+00:00"


def test_date_object():
    assert format_last_modified(date(2021, 1, 1)) == format_last_modified("2021-01-01")


@pytest.mark.parametrize("keyword", ["today", "Today", "TODAY"])
def test_today_keyword(keyword):
    result = format_last_modified(keyword)
    assert result.startswith(f"{date.today().isoformat()}T00:00:00")
    assert W3C_RE.match(result)


def test_now_keyword():
    assert W3C_RE.match(format_last_modified("now"))


@pytest.mark.parametrize("value", ["not a date at all", "", "   "])
def test_unparseable_date_raises(value):
    with pytest.raises(InvalidDateError):
        format_last_modified(value)


def test_error_hierarchy():
    assert issubclass(InvalidDateError, ValueError)
    assert issubclass(ConfigurationError, ValueError)
    assert issubclass(InvalidDateError, SitemapError)


def test_url_entry_is_frozen():
    entry = UrlEntry("/a")
    with pytest.raises(dataclasses.FrozenInstanceError):
        entry.loc = "/b"


@pytest.mark.parametrize("priority", [-0.1, 1.5, 2])
def test_priority_out_of_range(priority):
    with pytest.raises(ValueError):
        UrlEntry("/a", priority=priority)


def test_optional_fields_in_document_order():
    entry = UrlEntry("/a", priority=0.8, changefreq="daily", lastmod="2021-01-01")
    assert entry.optional_fields() == [
        ("priority", "0.8"),
        ("changefreq", "daily"),
        ("lastmod", format_last_modified("2021-01-01")),
    ]


def test_unset_fields_are_not_written():
    assert UrlEntry("/a").optional_fields() == []
    assert UrlEntry("/a", changefreq="weekly").optional_fields() == [("changefreq", "weekly")]


def test_string_priority_written_as_given():
    assert UrlEntry("/a", priority="1.0").optional_fields() == [("priority", "1.0")]
    assert UrlEntry("/a", priority=1).optional_fields() == [("priority", "1.0")]


def test_from_record_treats_empty_values_as_unset():
    entry = UrlEntry.from_record({"loc": "/a", "priority": "", "changefreq": None})
    assert entry == UrlEntry("/a")


def test_xml_prolog_with_stylesheet():
    assert xml_prolog() == '<?xml version="1.0" encoding="UTF-8"?>\n'
    assert 'href="/style.xsl"' in xml_prolog("/style.xsl")


def test_write_document_replaces_existing_file(tmp_path):
    target = tmp_path / "out" / "doc.xml"
    write_document(target, ["old"])
    write_document(target, ["<a>", "</a>"])
    assert target.read_text(encoding="utf-8") == "<a></a>"
    assert sorted(p.name for p in target.parent.iterdir()) == ["doc.xml"]


def test_write_document_failure_leaves_no_temp_file(tmp_path):
    target = tmp_path / "doc.xml"

    def parts():
        yield "<a>"
        raise OSError("disk full")

    with pytest.raises(OSError):
        write_document(target, parts())
    assert list(tmp_path.iterdir()) == []


@pytest.mark.parametrize("priority", ["7", "-0.5", "high", "", "nan"])
def test_string_priority_must_be_decimal_in_range(priority):
    with pytest.raises(ValueError):
        UrlEntry("/a", priority=priority)


def test_valid_string_priority_kept_verbatim():
    assert UrlEntry("/a", priority="0.50").optional_fields() == [("priority", "0.50")]


@pytest.mark.parametrize("field", ["loc", "changefreq", "lastmod", "priority"])
@pytest.mark.parametrize("char", ["\x00", "\x0b", "\x1f", "\ufffe"])
def test_characters_forbidden_in_xml_are_rejected(field, char):
    values = {"loc": "/a", "changefreq": "daily", "lastmod": "2021-01-01", "priority": "0.5"}
    values[field] = values[field] + char
    with pytest.raises(ValueError):
        UrlEntry(**values)


def test_tabs_and_newlines_are_allowed():
    assert UrlEntry("/a\tb\nc\r").loc == "/a\tb\nc\r"
