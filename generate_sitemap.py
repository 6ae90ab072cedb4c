#!/usr/bin/env python3
"""
Sitemap generator for a static site

- Streams every HTML file under the site root into the sitemap writer
- Skips pages marked noindex, prefers the page's canonical URL
- Splits parts by URL count and size, then writes the sitemap index
"""

import argparse
import logging
import os
import re
from pathlib import Path
from urllib.parse import urljoin

from bs4 import BeautifulSoup
from tqdm import tqdm

from sitemap import DEFAULT_BYTES_PER_FILE, DEFAULT_ITEMS_PER_FILE, SitemapWriter
from sitemap_util import ConfigurationError, SitemapError, UrlEntry

HTML_EXTENSIONS = {".htm", ".html"}


def is_noindex(soup):
    robots = soup.find("meta", attrs={"name": re.compile(r"^robots$", re.I)})
    return bool(robots and "noindex" in (robots.get("content") or "").lower())


def canonical_url(soup):
    link = soup.find("link", rel=lambda r: r and "canonical" in r, href=True)
    return link["href"].strip() if link else None


def page_entry(file_path: Path, site_root: Path, site_base_url: str):
    """Build the UrlEntry for one HTML file, or None when the page opts out of indexing."""
    html = file_path.read_text(encoding="utf-8", errors="ignore")
    soup = BeautifulSoup(html, "lxml")
    if is_noindex(soup):
        return None

    # Make relative path from site_root, not first HTML file
    rel_path = file_path.relative_to(site_root).as_posix()
    loc = "/" + rel_path
    canonical = canonical_url(soup)
    if canonical:
        loc = urljoin(site_base_url.rstrip("/") + loc, canonical)
    lastmod = str(int(file_path.stat().st_mtime))
    return UrlEntry(loc, lastmod=lastmod)


def generate_sitemap_parts_streamed(html_files, writer: SitemapWriter, site_root: Path):
    skipped = 0
    for file_path in tqdm(html_files, desc="Processing HTML files"):
        entry = page_entry(file_path, site_root, writer.domain)
        if entry is None:
            skipped += 1
            continue
        writer.add_item(entry)
    writer.finalize()
    return skipped


def cleanup_old_parts(output_dir: Path, part_prefix, part_files_current):
    current_filenames = set(part_files_current)
    pattern = re.compile(rf"^{re.escape(part_prefix)}-\d+\.xml$")
    removed_count = 0
    for file_path in output_dir.glob(f"{part_prefix}-*.xml"):
        if pattern.match(file_path.name) and file_path.name not in current_filenames:
            try:
                file_path.unlink()
                removed_count += 1
                print(f"🗑️ Deleted old part file: {file_path}")
            except OSError as e:
                print(f"⚠️ Error deleting {file_path}: {e}")
    if removed_count == 0:
        print("✅ No old part files found.")
    else:
        print(f"✅ Removed {removed_count} old part file(s).")
    return removed_count


def build_parser():
    parser = argparse.ArgumentParser(description="Split sitemap generator")
    parser.add_argument("--site_base_url", default=os.getenv("SITE_URL"),
                        help="Base URL of the site (default: $SITE_URL)")
    parser.add_argument("--site_root", required=True, help="Path to site's HTML files")
    parser.add_argument("--output", default="sitemap-index.xml", help="Output sitemap index filename")
    parser.add_argument("--filename", default="sitemap", help="Base name of the sitemap parts")
    parser.add_argument("--location", default="/", help="URL path the sitemap parts are served under")
    parser.add_argument("--split", type=int, default=DEFAULT_ITEMS_PER_FILE, help="Max URLs per sitemap part")
    parser.add_argument("--max_bytes", type=int, default=DEFAULT_BYTES_PER_FILE,
                        help="Approximate max size of a sitemap part in bytes")
    parser.add_argument("--stylesheet", help="href of an XSL stylesheet to reference from every file")
    parser.add_argument("--merge", action="store_true", help="Keep entries of an existing sitemap index")
    parser.add_argument("-v", "--verbose", action="store_true", help="Log debug output")
    return parser


def main(argv=None):
    parser = build_parser()
    args = parser.parse_args(argv)
    if not args.site_base_url:
        parser.error("--site_base_url is required when SITE_URL is not set")

    if args.verbose:
        logging.basicConfig(
            level=logging.DEBUG,
            format="%(levelname)s | %(asctime)s | %(name)s | %(message)s",
            datefmt="%Y-%m-%d %H:%M:%S",
        )

    site_root_path = Path(args.site_root).resolve()
    output_path = Path(args.output)
    if output_path.parent == Path("."):
        output_path = site_root_path / output_path.name

    try:
        writer = SitemapWriter(
            args.site_base_url.rstrip("/"),
            path=output_path.parent,
            location=args.location,
            filename=args.filename,
            items_per_file=args.split,
            bytes_per_file=args.max_bytes,
            stylesheet=args.stylesheet,
        )
    except ConfigurationError as e:
        parser.error(str(e))

    # Gather all HTML files
    html_files = sorted(f for f in site_root_path.rglob("*") if f.suffix.lower() in HTML_EXTENSIONS)
    print(f"Scanning {len(html_files)} HTML files...")

    try:
        skipped = generate_sitemap_parts_streamed(html_files, writer, site_root_path)
        cleanup_old_parts(output_path.parent, args.filename, writer.list_generated_files())
        index_file = writer.build_index(index_path=output_path, merge=args.merge)
    except (SitemapError, ValueError, OSError) as e:
        print(f"❌ Sitemap generation failed: {e}")
        return 1

    part_urls = writer.list_generated_files_absolute()
    print(f"\n📄 Sitemap index: {index_file}")
    print(f"  Sitemap parts: {len(part_urls)}")
    print(f"  Skipped (noindex): {skipped}")
    print(f"\n🔗 Submit this URL to search engines: {writer.domain}{writer.location}{index_file.name}")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
