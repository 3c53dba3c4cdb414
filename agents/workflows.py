"""Workflow variants: what discovery finds and what each unit does in its tab."""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any, Dict, List

from loguru import logger

from clients.messaging import request_page
from clients.tab_host import TabHost
from models.messages import (
    ActionResult,
    CollectMembersRequest,
    DiscoverInfoRequest,
    ExtractRequest,
    MembersCollected,
    PageInfoReply,
    PerformActionRequest,
    RecordsExtracted,
)
from models.records import ActionRecord
from models.workflow import Discovery, Unit
from utils.errors import ActionFailedError, DiscoveryInfoError, MalformedResponseError
from utils.helpers import build_page_urls, unique_in_order


class WorkflowDefinition(ABC):
    """The domain-specific half of a workflow; tabs, retries and state live in the orchestrator."""

    name: str = ""

    @abstractmethod
    async def discover(self, host: TabHost, tab_id: int, seed: str) -> Discovery:
        """Inspect the seed page in ``tab_id`` and return the ordered unit identifiers."""

    @abstractmethod
    async def process(self, host: TabHost, tab_id: int, unit: Unit) -> List[Dict[str, Any]]:
        """Extract from (or act on) the loaded unit page; return the records it yields."""


class ReviewCollectionWorkflow(WorkflowDefinition):
    """Collects every review of a paginated review listing."""

    name = "reviews"

    async def discover(self, host: TabHost, tab_id: int, seed: str) -> Discovery:
        try:
            info = await request_page(host, tab_id, DiscoverInfoRequest(), PageInfoReply)
        except MalformedResponseError as exc:
            raise DiscoveryInfoError(str(exc)) from exc

        logger.info(
            f"Listing has {info.expected_total_units} reviews, "
            f"{info.units_per_page} per page, {info.total_pages} pages"
        )
        return Discovery(
            identifiers=build_page_urls(seed, info.total_pages),
            expected_total_units=info.expected_total_units,
            total_pages=info.total_pages,
        )

    async def process(self, host: TabHost, tab_id: int, unit: Unit) -> List[Dict[str, Any]]:
        reply = await request_page(host, tab_id, ExtractRequest(), RecordsExtracted)
        logger.info(f"Page {unit.ordinal}: {len(reply.records)} reviews extracted")
        return list(reply.records)


class MemberActionWorkflow(WorkflowDefinition):
    """Performs the page agent's action on every member of a list page."""

    name = "members"

    async def discover(self, host: TabHost, tab_id: int, seed: str) -> Discovery:
        try:
            reply = await request_page(host, tab_id, CollectMembersRequest(), MembersCollected)
        except MalformedResponseError as exc:
            raise DiscoveryInfoError(str(exc)) from exc

        handles = unique_in_order(reply.handles)
        logger.info(f"Collected {len(handles)} list members")
        return Discovery(identifiers=handles, expected_total_units=len(handles))

    async def process(self, host: TabHost, tab_id: int, unit: Unit) -> List[Dict[str, Any]]:
        reply = await request_page(host, tab_id, PerformActionRequest(), ActionResult)
        if not reply.success:
            raise ActionFailedError(unit.identifier)
        return [ActionRecord(target=unit.identifier, success=True).model_dump()]


WORKFLOWS = {
    ReviewCollectionWorkflow.name: ReviewCollectionWorkflow,
    MemberActionWorkflow.name: MemberActionWorkflow,
}


def get_workflow(name: str) -> WorkflowDefinition:
    try:
        return WORKFLOWS[name]()
    except KeyError:
        raise ValueError(f"Unknown workflow {name!r}; expected one of {sorted(WORKFLOWS)}") from None
