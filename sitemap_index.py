"""
Sitemap index writer

- Optionally merges with the entries of an index already on disk
- One <sitemap> per location, last lastmod wins
"""

import logging
import xml.etree.ElementTree as eTree
from pathlib import Path
from typing import Dict, Mapping, Optional
from xml.dom import minidom

from sitemap_util import (
    SITEMAP_NS,
    LastModified,
    MalformedIndexError,
    format_last_modified,
    write_document,
    xml_prolog,
)

logger = logging.getLogger(__name__)


def localname(tag: str) -> str:
    if "}" in tag:
        return tag.rsplit("}", 1)[-1]
    return tag


def child_text(node: eTree.Element, name: str) -> Optional[str]:
    for child in node:
        if localname(child.tag) == name and child.text:
            return child.text.strip()
    return None


class SitemapIndexWriter:
    def __init__(self, index_file, stylesheet: Optional[str] = None):
        self.index_file = Path(index_file)
        self.stylesheet = stylesheet
        self._sitemaps: Dict[str, LastModified] = {}

    def read_entries(self) -> bool:
        """
        Load the entries of the index file, replacing those held in memory.

        Returns False when there is no index file yet.
        """
        if not self.index_file.exists():
            return False
        try:
            root = eTree.parse(self.index_file).getroot()
        except eTree.ParseError as exc:
            raise MalformedIndexError(f"Invalid XML in {self.index_file}: {exc}") from exc

        sitemaps = {}
        for node in root:
            if localname(node.tag) != "sitemap":
                continue
            loc = child_text(node, "loc")
            if not loc:
                logger.debug("Skipping <sitemap> without <loc> in %s", self.index_file)
                continue
            sitemaps[loc] = child_text(node, "lastmod") or "now"
        self._sitemaps = sitemaps
        logger.debug("Read %d entries from %s", len(sitemaps), self.index_file)
        return True

    def add_sitemap(self, location: str, lastmod: LastModified = "now") -> None:
        self._sitemaps[location] = lastmod

    def set_all(self, sitemaps: Mapping[str, LastModified]) -> None:
        self._sitemaps = dict(sitemaps)

    def get_all(self) -> Dict[str, LastModified]:
        return dict(self._sitemaps)

    def write_index(self) -> Path:
        sitemapindex = eTree.Element("sitemapindex", {"xmlns": SITEMAP_NS})
        for loc, lastmod in self._sitemaps.items():
            sitemap_elem = eTree.SubElement(sitemapindex, "sitemap")
            eTree.SubElement(sitemap_elem, "loc").text = loc
            eTree.SubElement(sitemap_elem, "lastmod").text = format_last_modified(lastmod)

        # Serialize and pretty-print
        rough_string = eTree.tostring(sitemapindex, encoding="utf-8")
        pretty_xml = minidom.parseString(rough_string).toprettyxml(indent="  ")

        # Strip the duplicate declaration from minidom output
        body = "\n".join(pretty_xml.splitlines()[1:]) + "\n"
        write_document(self.index_file, [xml_prolog(self.stylesheet), body])
        logger.info("Wrote %s (index of %d sitemaps)", self.index_file, len(self._sitemaps))
        return self.index_file
