"""Page agents: answer orchestrator requests against a loaded HTML document."""

from __future__ import annotations

import math
import re
from typing import List, Optional
from urllib.parse import urljoin, urlparse

from bs4 import Tag
from loguru import logger
from pydantic import BaseModel

from clients.tab_host import PageDocument
from models.messages import (
    DiscoverInfoRequest,
    ErrorReply,
    ExtractRequest,
    PageInfoReply,
    RecordsExtracted,
)
from models.records import ReviewRecord

_SCORE_RE = re.compile(r"(.+?)\s+(\d+(?:\.\d+)?)")
_POST_DATE_RE = re.compile(r"[:：]\s*(.+)$")
_DIGITS_RE = re.compile(r"\d+")
_LEADING_NUMBER_RE = re.compile(r"\s*([+-]?\d+(?:\.\d+)?)")


def _text(node: Optional[Tag]) -> str:
    return node.get_text(strip=True) if node is not None else ""


def _to_float(raw: str) -> float:
    """Leading number of ``raw`` ("4.5点" → 4.5); 0.0 when there is none."""
    match = _LEADING_NUMBER_RE.match(raw)
    return float(match.group(1)) if match else 0.0


class ReviewPageAgent:
    """
    Reads paginated review listings.

    Pages are recognised by a ``/reviews/`` path segment. Each review lives
    in ``ul.review-list li.review-item``; the listing total sits in
    ``.review-total`` and the next page link in ``ul.paging a.next``.
    """

    ITEM_SELECTOR = "ul.review-list li.review-item"

    def matches(self, url: str) -> bool:
        return "/reviews/" in urlparse(url).path

    async def handle(self, message: BaseModel, page: PageDocument) -> BaseModel:
        if isinstance(message, ExtractRequest):
            return RecordsExtracted(
                records=[r.model_dump() for r in self.extract_reviews(page)],
                next_page_handle=self.next_page_url(page),
            )
        if isinstance(message, DiscoverInfoRequest):
            return self.page_info(page)
        return ErrorReply(error=f"Unsupported request {getattr(message, 'type', message)!r}")

    def extract_reviews(self, page: PageDocument) -> List[ReviewRecord]:
        reviews: List[ReviewRecord] = []
        for item in page.soup.select(self.ITEM_SELECTOR):
            scores = {}
            for rate in item.select("ul.review-item-rate li"):
                match = _SCORE_RE.match(rate.get_text(" ", strip=True))
                if match:
                    scores[match.group(1).strip()] = _to_float(match.group(2))

            post_date = ""
            match = _POST_DATE_RE.search(_text(item.select_one("p.review-item-post-date")))
            if match:
                post_date = match.group(1).strip()

            reviews.append(
                ReviewRecord(
                    review_id=item.get("data-review-id") or "",
                    visit_date=_text(item.select_one(".visit-time dd")),
                    subject_name=_text(item.select_one("dd.name")),
                    total_score=_to_float(_text(item.select_one(".total_rate"))),
                    scores=scores,
                    title=_text(item.select_one(".review-item-title .review_bold")),
                    body=_text(item.select_one("p.review-item-post")),
                    post_date=post_date,
                )
            )
        logger.debug(f"Extracted {len(reviews)} reviews from {page.url}")
        return reviews

    def next_page_url(self, page: PageDocument) -> Optional[str]:
        link = page.soup.select_one("ul.paging a.next")
        if link is None or not link.get("href"):
            return None
        return urljoin(page.url, link["href"])

    def page_info(self, page: PageDocument) -> PageInfoReply:
        total_node = page.soup.select_one(".review-total")
        digits = _DIGITS_RE.search(_text(total_node).replace(",", ""))
        total = int(digits.group(0)) if digits else 0
        per_page = len(page.soup.select(self.ITEM_SELECTOR))
        pages = math.ceil(total / per_page) if per_page > 0 else 0
        return PageInfoReply(expected_total_units=total, units_per_page=per_page, total_pages=pages)
