"""Utility helper functions."""

from __future__ import annotations

import re
from typing import Iterable, List
from urllib.parse import urlsplit, urlunsplit


def build_page_urls(seed_url: str, total_pages: int, segment: str = "reviews") -> List[str]:
    """
    Build the URL of every page of a paginated listing.

    Page 1 is ``seed_url`` without a page number; page *k* rewrites the
    ``/<segment>/`` path segment to ``/<segment>/<k>/``, e.g. ``/reviews/`` → ``/reviews/2/``.
    A seed that already points at a later page still yields every page once.
    """
    if total_pages <= 0:
        return []

    parts = urlsplit(seed_url)
    pattern = re.compile(rf"/{re.escape(segment)}/(?:\d+/)?")
    if not pattern.search(parts.path):
        raise ValueError(f"Seed URL has no /{segment}/ path segment: {seed_url}")

    first = parts._replace(path=pattern.sub(f"/{segment}/", parts.path, count=1))
    urls = [urlunsplit(first)]
    for page in range(2, total_pages + 1):
        path = pattern.sub(f"/{segment}/{page}/", parts.path, count=1)
        urls.append(urlunsplit(parts._replace(path=path)))
    return urls


def unique_in_order(items: Iterable[str]) -> List[str]:
    """Drop blanks and duplicates while keeping first-seen order."""
    seen = set()
    result: List[str] = []
    for item in items:
        if item and item not in seen:
            seen.add(item)
            result.append(item)
    return result
