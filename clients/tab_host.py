"""Tab host abstraction and a headless implementation backed by httpx."""

from __future__ import annotations

import asyncio
import itertools
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional, Protocol, Sequence

import httpx
from bs4 import BeautifulSoup
from loguru import logger
from pydantic import BaseModel

from config.settings import settings
from utils.errors import PageAgentUnavailableError, TabNotFoundError

# Called with (tab_id, change_info); change_info carries at least "status".
UpdateListener = Callable[[int, Dict[str, Any]], None]


class TabHost(Protocol):
    """What the orchestrator needs from a browser: tabs, load events and page messaging."""

    async def create_tab(self, url: str, active: bool = False) -> Optional[int]: ...

    async def reload_tab(self, tab_id: int) -> None: ...

    async def remove_tab(self, tab_id: int) -> None: ...

    def add_update_listener(self, listener: UpdateListener) -> None: ...

    def remove_update_listener(self, listener: UpdateListener) -> None: ...

    async def send_message(self, tab_id: int, message: BaseModel) -> BaseModel: ...


@dataclass
class PageDocument:
    """A loaded page as seen by a page agent."""

    url: str
    status_code: int
    soup: BeautifulSoup


class PageAgent(Protocol):
    """Page-side counterpart answering orchestrator requests for one kind of page."""

    def matches(self, url: str) -> bool: ...

    async def handle(self, message: BaseModel, page: PageDocument) -> BaseModel: ...


@dataclass
class _Tab:
    id: int
    url: str
    document: Optional[PageDocument] = None
    task: Optional[asyncio.Task] = field(default=None, repr=False)


class HttpTabHost:
    """
    Headless tab host: every tab is an HTTP fetch running in the background.

    A tab emits ``{"status": "loading"}`` when navigation starts and
    ``{"status": "complete"}`` once the response body is parsed. Transport
    failures leave the tab loading, so the caller's page-load wait times out.
    Messages sent to a tab are answered by the first registered page agent
    whose ``matches`` accepts the tab's final URL.
    """

    DEFAULT_HEADERS = {
        "Accept": "text/html,application/xhtml+xml,application/xml;q=0.9,*/*;q=0.8",
    }

    def __init__(
        self,
        agents: Sequence[PageAgent],
        timeout: Optional[float] = None,
        client: Optional[httpx.AsyncClient] = None,
    ) -> None:
        self._agents = list(agents)
        self._timeout = timeout if timeout is not None else settings.http_timeout_seconds
        self._client = client
        self._owns_client = client is None
        self._tabs: Dict[int, _Tab] = {}
        self._listeners: List[UpdateListener] = []
        self._ids = itertools.count(1)

    async def __aenter__(self) -> "HttpTabHost":
        if self._client is None:
            self._client = httpx.AsyncClient(
                headers={**self.DEFAULT_HEADERS, "User-Agent": settings.user_agent},
                timeout=self._timeout,
                follow_redirects=True,
            )
        return self

    async def __aexit__(self, *args: Any) -> None:
        for tab in list(self._tabs.values()):
            self._cancel(tab)
        self._tabs.clear()
        if self._client and self._owns_client:
            await self._client.aclose()
            self._client = None

    # ── Listener registry ─────────────────────────────────────────────────────

    def add_update_listener(self, listener: UpdateListener) -> None:
        self._listeners.append(listener)

    def remove_update_listener(self, listener: UpdateListener) -> None:
        try:
            self._listeners.remove(listener)
        except ValueError:
            pass

    def _emit(self, tab_id: int, change_info: Dict[str, Any]) -> None:
        for listener in list(self._listeners):
            listener(tab_id, change_info)

    # ── Tabs ──────────────────────────────────────────────────────────────────

    def _get(self, tab_id: int) -> _Tab:
        tab = self._tabs.get(tab_id)
        if tab is None:
            raise TabNotFoundError(tab_id)
        return tab

    @staticmethod
    def _cancel(tab: _Tab) -> None:
        if tab.task and not tab.task.done():
            tab.task.cancel()

    async def create_tab(self, url: str, active: bool = False) -> Optional[int]:
        assert self._client is not None, "Use as async context manager."
        tab = _Tab(id=next(self._ids), url=url)
        self._tabs[tab.id] = tab
        tab.task = asyncio.create_task(self._navigate(tab))
        logger.debug(f"Tab {tab.id} created for {url}")
        return tab.id

    async def reload_tab(self, tab_id: int) -> None:
        tab = self._get(tab_id)
        self._cancel(tab)
        tab.document = None
        tab.task = asyncio.create_task(self._navigate(tab))
        logger.debug(f"Tab {tab_id} reloading {tab.url}")

    async def remove_tab(self, tab_id: int) -> None:
        tab = self._tabs.pop(tab_id, None)
        if tab is None:
            raise TabNotFoundError(tab_id)
        self._cancel(tab)
        logger.debug(f"Tab {tab_id} removed")

    async def _navigate(self, tab: _Tab) -> None:
        assert self._client is not None
        self._emit(tab.id, {"status": "loading", "url": tab.url})
        try:
            response = await self._client.get(tab.url)
        except httpx.RequestError as exc:
            logger.warning(f"Tab {tab.id}: request error for {tab.url}: {exc}")
            return
        if response.is_error:
            logger.warning(f"Tab {tab.id}: HTTP {response.status_code} for {tab.url}")
        tab.document = PageDocument(
            url=str(response.url),
            status_code=response.status_code,
            soup=BeautifulSoup(response.text, "html.parser"),
        )
        self._emit(tab.id, {"status": "complete", "url": tab.document.url})

    # ── Messaging ─────────────────────────────────────────────────────────────

    async def send_message(self, tab_id: int, message: BaseModel) -> BaseModel:
        tab = self._get(tab_id)
        if tab.document is None:
            raise PageAgentUnavailableError(f"Tab {tab_id} has no loaded page to receive {getattr(message, 'type', message)}")
        for agent in self._agents:
            if agent.matches(tab.document.url):
                return await agent.handle(message, tab.document)
        raise PageAgentUnavailableError(f"No page agent for {tab.document.url}")
