"""
Streaming sitemap writer

- Accepts URL entries one at a time and stages each file's <url> elements in memory
- Rolls over to a new file on an item-count limit or an approximate byte-size limit
- Writes {filename}.xml, {filename}-1.xml, ... and, on request, {filename}-index.xml
"""

import logging
import xml.etree.ElementTree as eTree
from pathlib import Path
from typing import Any, Iterable, List, Mapping, Optional

from sitemap_index import SitemapIndexWriter
from sitemap_util import (
    MAX_LOC_LENGTH,
    SITEMAP_NS,
    ConfigurationError,
    LastModified,
    UrlEntry,
    write_document,
    xml_prolog,
)

logger = logging.getLogger(__name__)

EXT = ".xml"
SEPARATOR = "-"
INDEX_SUFFIX = "index"

DEFAULT_ITEMS_PER_FILE = 50000
DEFAULT_BYTES_PER_FILE = 10000000
MIN_BYTES_PER_FILE = 500

# Fraction of bytes_per_file, less a fixed margin, at which a file is considered full
BYTES_FILL_RATIO = 0.9
BYTES_MARGIN = 1000
# The byte size is only checked every items_per_file // SIZE_CHECKS_PER_FILE items
SIZE_CHECKS_PER_FILE = 20


def _check_items_per_file(items_per_file: int) -> int:
    if items_per_file < 1:
        raise ConfigurationError(f"items_per_file must be at least 1, got {items_per_file}")
    return items_per_file


def _check_bytes_per_file(bytes_per_file: int) -> int:
    if bytes_per_file < MIN_BYTES_PER_FILE:
        raise ConfigurationError(
            f"bytes_per_file must be at least {MIN_BYTES_PER_FILE}, got {bytes_per_file}"
        )
    return bytes_per_file


class SitemapWriter:
    """
    Writes one or more sitemap files for a stream of UrlEntry values.

    ``domain`` is the site root without a trailing slash (``https://example.com``);
    ``location`` is the URL path the sitemap files are served under and
    ``path`` the directory they are written to.

    Entries of the active file are serialized into a staging buffer and only
    written out by ``finalize()``, either explicitly, on rollover, from
    ``build_index()`` or when leaving a ``with`` block.
    """

    def __init__(
        self,
        domain: str,
        path="",
        location: str = "/",
        filename: str = "sitemap",
        items_per_file: int = DEFAULT_ITEMS_PER_FILE,
        bytes_per_file: int = DEFAULT_BYTES_PER_FILE,
        stylesheet: Optional[str] = None,
    ):
        self._domain = domain
        self._path = Path(path)
        self._location = location
        self._filename = filename
        self._items_per_file = _check_items_per_file(items_per_file)
        self._bytes_per_file = _check_bytes_per_file(bytes_per_file)
        self.stylesheet = stylesheet

        self._current_item = 0
        self._current_sitemap = 0
        self._sitemaps: List[str] = []

        self._active_file: Optional[str] = None
        self._buffer: List[str] = []
        self._buffer_bytes = 0

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):
        self.finalize()

    # Configuration

    @property
    def domain(self) -> str:
        return self._domain

    @property
    def path(self) -> Path:
        return self._path

    @property
    def location(self) -> str:
        return self._location

    @property
    def filename(self) -> str:
        return self._filename

    @property
    def items_per_file(self) -> int:
        return self._items_per_file

    @property
    def bytes_per_file(self) -> int:
        return self._bytes_per_file

    def set_domain(self, domain: str) -> None:
        self._domain = domain

    def set_path(self, path) -> None:
        self._path = Path(path)

    def set_location(self, location: str) -> None:
        self._location = location

    def set_filename(self, filename: str) -> None:
        self._filename = filename

    def set_items_per_file(self, items_per_file: int) -> None:
        self._items_per_file = _check_items_per_file(items_per_file)

    def set_bytes_per_file(self, bytes_per_file: int) -> None:
        self._bytes_per_file = _check_bytes_per_file(bytes_per_file)

    def configure(
        self,
        domain: Optional[str] = None,
        path=None,
        location: Optional[str] = None,
        filename: Optional[str] = None,
        items_per_file: Optional[int] = None,
        bytes_per_file: Optional[int] = None,
    ) -> None:
        """Apply several settings at once; nothing changes if any threshold is invalid."""
        if items_per_file is not None:
            _check_items_per_file(items_per_file)
        if bytes_per_file is not None:
            _check_bytes_per_file(bytes_per_file)

        if domain is not None:
            self.set_domain(domain)
        if path is not None:
            self.set_path(path)
        if location is not None:
            self.set_location(location)
        if filename is not None:
            self.set_filename(filename)
        if items_per_file is not None:
            self._items_per_file = items_per_file
        if bytes_per_file is not None:
            self._bytes_per_file = bytes_per_file

    # Generated files

    def list_generated_files(self) -> List[str]:
        return list(self._sitemaps)

    def list_generated_files_absolute(self) -> List[str]:
        return [self._domain + self._location + sitemap for sitemap in self._sitemaps]

    # Writing

    def _create_absolute_url(self, loc: str) -> str:
        if loc.startswith("/"):
            return self._domain + loc
        return loc

    def _needs_new_sitemap(self) -> bool:
        if self._active_file is None or self._current_item % self._items_per_file == 0:
            return True
        check_every = max(1, self._items_per_file // SIZE_CHECKS_PER_FILE)
        return (
            self._current_item % check_every == 0
            and self._buffer_bytes > self._bytes_per_file * BYTES_FILL_RATIO - BYTES_MARGIN
        )

    def _start_sitemap(self) -> None:
        if self._current_sitemap:
            sitemap = f"{self._filename}{SEPARATOR}{self._current_sitemap}{EXT}"
        else:
            sitemap = f"{self._filename}{EXT}"
        self._sitemaps.append(sitemap)
        self._active_file = sitemap
        self._buffer = []
        self._buffer_bytes = 0
        self._current_item = 0
        logger.debug("Started %s", sitemap)

    def add_item(self, entry: UrlEntry) -> "SitemapWriter":
        loc = self._create_absolute_url(entry.loc)
        if len(loc) >= MAX_LOC_LENGTH:
            raise ValueError(f"<loc> must be under {MAX_LOC_LENGTH} characters, got {len(loc)}: {loc[:80]}...")

        url_elem = eTree.Element("url")
        eTree.SubElement(url_elem, "loc").text = loc
        for tag, text in entry.optional_fields():
            eTree.SubElement(url_elem, tag).text = text
        eTree.indent(url_elem, space="  ", level=1)
        chunk = "  " + eTree.tostring(url_elem, encoding="unicode") + "\n"

        if self._needs_new_sitemap():
            if self._active_file is not None:
                logger.debug(
                    "Rolling over %s after %d items (%d bytes staged)",
                    self._active_file, self._current_item, self._buffer_bytes,
                )
            self.finalize()
            self._start_sitemap()
            self._current_sitemap += 1
        self._current_item += 1

        self._buffer.append(chunk)
        self._buffer_bytes += len(chunk.encode("utf-8"))
        return self

    def add_items_from_batch(self, records: Iterable[Mapping[str, Any]]) -> int:
        """
        Add raw records shaped like ``{"loc": ..., "priority": ..., "changefreq": ...,
        "lastmod": ...}``. Records without a loc are skipped. Returns the number added.
        """
        added = 0
        for row in records:
            if not row.get("loc"):
                logger.debug("Skipping record without loc: %r", row)
                continue
            self.add_item(UrlEntry.from_record(row))
            added += 1
        return added

    def finalize(self) -> None:
        """Close the active sitemap file, if any, writing it to disk."""
        if self._active_file is None:
            return
        sitemap, buffer, item_count = self._active_file, self._buffer, self._current_item
        self._active_file = None
        self._buffer = []
        self._buffer_bytes = 0

        parts = [xml_prolog(self.stylesheet), f'<urlset xmlns="{SITEMAP_NS}">\n']
        parts.extend(buffer)
        parts.append("</urlset>\n")
        try:
            write_document(self._path / sitemap, parts)
        except OSError:
            self._sitemaps.remove(sitemap)
            self._current_sitemap -= 1
            raise
        logger.info("Wrote %s with %d URLs", self._path / sitemap, item_count)

    def build_index(
        self,
        lastmod: LastModified = "now",
        index_path=None,
        merge: bool = False,
    ) -> Path:
        """
        Finalize and write a sitemap index listing every generated file.

        With ``merge`` the entries of an existing index at the same path are kept.
        """
        self.finalize()
        if index_path is None:
            index_path = self._path / f"{self._filename}{SEPARATOR}{INDEX_SUFFIX}{EXT}"
        index = SitemapIndexWriter(index_path, stylesheet=self.stylesheet)
        if merge:
            index.read_entries()
        for sitemap in self.list_generated_files_absolute():
            index.add_sitemap(sitemap, lastmod)
        return index.write_index()
