"""Record payloads produced by the page agents."""

from __future__ import annotations

from typing import Dict

from pydantic import BaseModel, Field


class ReviewRecord(BaseModel):
    """A single review scraped from a review list page."""

    review_id: str = ""
    visit_date: str = ""
    subject_name: str = Field(default="", description="Name of the reviewed person or item")
    total_score: float = 0.0
    scores: Dict[str, float] = Field(
        default_factory=dict,
        description="Per-category scores keyed by category label",
    )
    title: str = ""
    body: str = ""
    post_date: str = ""


class ActionRecord(BaseModel):
    """Outcome of an action performed on one list member."""

    target: str
    success: bool
