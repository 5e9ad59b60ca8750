"""Sitemap and category-page handle discovery helpers."""

import re
from typing import Iterable, List, Optional, Pattern

from bs4 import BeautifulSoup


PRODUCT_PATH_RE = re.compile(r"/products/([^/?#\"'<>\s]+)")
# Handles embedded in inline scripts ("handle": "the-organic-cotton-tee")
HANDLE_JSON_RE = re.compile(r"[\"']handle[\"']\s*:\s*[\"']([^\"']+)[\"']")
# Handle-shaped product links anywhere in the page
PRODUCT_LINK_RE = re.compile(r"/products/([a-z0-9][a-z0-9-]+[a-z0-9])", re.IGNORECASE)


def extract_locs(xml: str, contains: Optional[str] = None) -> List[str]:
    """All <loc> URLs in a sitemap document, entity-decoded.

    Args:
        xml: Sitemap or sitemap index body
        contains: Keep only URLs containing this substring
    """
    soup = BeautifulSoup(xml, "html.parser")
    locs = []
    for tag in soup.find_all("loc"):
        url = tag.get_text(strip=True)
        if url and (contains is None or contains in url):
            locs.append(url)
    return locs


def handles_from_urls(urls: Iterable[str], pattern: Pattern[str] = PRODUCT_PATH_RE) -> List[str]:
    """Unique product handles from URLs, in first-seen order."""
    seen = set()
    handles = []
    for url in urls:
        match = pattern.search(url)
        if match and match.group(1) not in seen:
            seen.add(match.group(1))
            handles.append(match.group(1))
    return handles


def handles_from_category_html(html: str, min_length: int = 10) -> List[str]:
    """Product handles referenced by a category page.

    Inline-script "handle" keys come first, then handle-shaped /products/
    links longer than ``min_length`` that are not collection slugs, then
    plain anchor hrefs as a last resort.
    """
    handles: List[str] = []
    seen = set()

    def add(handle: str) -> None:
        if handle and handle not in seen:
            seen.add(handle)
            handles.append(handle)

    if "collectionView" in html:
        for match in HANDLE_JSON_RE.finditer(html):
            add(match.group(1))

    for match in PRODUCT_LINK_RE.finditer(html):
        handle = match.group(1)
        if len(handle) > min_length and not handle.endswith("-collection"):
            add(handle)

    if not handles:
        soup = BeautifulSoup(html, "html.parser")
        for link in soup.select('a[href*="/products/"]'):
            match = PRODUCT_PATH_RE.search(link.get("href", ""))
            if match:
                add(match.group(1))

    return handles
