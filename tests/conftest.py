"""
Shared fixtures: an in-process fake tab host and orchestrators wired to it.
"""

import asyncio
import inspect
import itertools
import os
import sys
from typing import Any, Callable, Dict, List, Optional, Tuple

import pytest
from pydantic import BaseModel

# Ensure the project root is importable when running from the tests/ dir
sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), "..")))

from agents.orchestrator import WorkflowOrchestrator
from agents.page_load import PageLoadWaiter
from agents.retry import RetryPolicy
from agents.tab_lifecycle import TabLifecycle
from agents.workflows import ReviewCollectionWorkflow, WorkflowDefinition
from models.messages import ErrorReply, PageInfoReply, RecordsExtracted
from storage.state_store import MemoryStorage, StateStore
from utils.errors import TabNotFoundError

SEED = "https://example.com/shop/42/reviews/"

Handler = Callable[[str, BaseModel], Any]


class FakeTabHost:
    """
    Tab host double.

    Every created or reloaded tab fires ``complete`` on the next loop
    iteration unless its URL still has hanging loads left in ``hang``.
    Messages are answered by ``handlers[message.type](url, message)``;
    handlers may be sync or async and may raise.
    """

    def __init__(self) -> None:
        self.tabs: Dict[int, str] = {}
        self.listeners: List[Callable[[int, Dict[str, Any]], None]] = []
        self.calls: List[Tuple[Any, ...]] = []
        self.handlers: Dict[str, Handler] = {}
        self.hang: Dict[str, int] = {}
        self.null_handles = 0
        self._ids = itertools.count(1)

    # tabs

    async def create_tab(self, url: str, active: bool = False) -> Optional[int]:
        self.calls.append(("create", url, active))
        if self.null_handles > 0:
            self.null_handles -= 1
            return None
        tab_id = next(self._ids)
        self.tabs[tab_id] = url
        self._schedule_load(tab_id)
        return tab_id

    async def reload_tab(self, tab_id: int) -> None:
        self.calls.append(("reload", tab_id))
        if tab_id not in self.tabs:
            raise TabNotFoundError(tab_id)
        self._schedule_load(tab_id)

    async def remove_tab(self, tab_id: int) -> None:
        self.calls.append(("remove", tab_id))
        if tab_id not in self.tabs:
            raise TabNotFoundError(tab_id)
        del self.tabs[tab_id]

    def _schedule_load(self, tab_id: int) -> None:
        url = self.tabs[tab_id]
        if self.hang.get(url, 0) > 0:
            self.hang[url] -= 1
            return
        asyncio.get_running_loop().call_soon(self._emit, tab_id, {"status": "complete"})

    # events

    def add_update_listener(self, listener) -> None:
        self.listeners.append(listener)

    def remove_update_listener(self, listener) -> None:
        if listener in self.listeners:
            self.listeners.remove(listener)

    def _emit(self, tab_id: int, change_info: Dict[str, Any]) -> None:
        if tab_id not in self.tabs:
            return
        for listener in list(self.listeners):
            listener(tab_id, change_info)

    # messaging

    async def send_message(self, tab_id: int, message: BaseModel) -> BaseModel:
        self.calls.append(("send", tab_id, message.type))
        if tab_id not in self.tabs:
            raise TabNotFoundError(tab_id)
        handler = self.handlers.get(message.type)
        if handler is None:
            return ErrorReply(error=f"no handler for {message.type}")
        result = handler(self.tabs[tab_id], message)
        if inspect.isawaitable(result):
            result = await result
        return result

    # helpers for assertions

    def created_urls(self) -> List[str]:
        return [c[1] for c in self.calls if c[0] == "create"]

    def count(self, kind: str) -> int:
        return sum(1 for c in self.calls if c[0] == kind)


def review_records(url: str, count: int = 2) -> List[Dict[str, Any]]:
    return [{"review_id": f"{url}#{i}", "title": f"review {i}"} for i in range(count)]


@pytest.fixture
def host() -> FakeTabHost:
    fake = FakeTabHost()
    fake.handlers["DISCOVER_INFO"] = lambda url, msg: PageInfoReply(
        expected_total_units=45, units_per_page=15, total_pages=3
    )
    fake.handlers["EXTRACT"] = lambda url, msg: RecordsExtracted(records=review_records(url))
    return fake


@pytest.fixture
def storage() -> MemoryStorage:
    return MemoryStorage()


@pytest.fixture
def make_orchestrator(storage):
    """Factory building an orchestrator with near-zero timeouts and delays."""

    def factory(
        host: FakeTabHost,
        workflow: Optional[WorkflowDefinition] = None,
        max_attempts: int = 3,
        timeout: float = 0.05,
    ) -> WorkflowOrchestrator:
        waiter = PageLoadWaiter(host, timeout=timeout, settle_delay=0)
        return WorkflowOrchestrator(
            host=host,
            workflow=workflow or ReviewCollectionWorkflow(),
            store=StateStore(storage, key="collectionState"),
            tabs=TabLifecycle(host, waiter),
            policy=RetryPolicy(max_attempts=max_attempts, delay=0),
            politeness_delay=0,
        )

    return factory
