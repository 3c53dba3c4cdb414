"""Tab ownership across the attempts of one unit."""

from __future__ import annotations

from contextlib import asynccontextmanager
from typing import AsyncIterator, Awaitable, Callable, Optional, TypeVar

from loguru import logger

from agents.page_load import PageLoadWaiter
from agents.retry import RetryPolicy
from clients.tab_host import TabHost
from utils.errors import TabHandleError

T = TypeVar("T")


class TabSession:
    """
    The single tab used by every attempt of one unit.

    Attempt 1 opens an inactive tab; later attempts reload that same tab.
    """

    def __init__(self, lifecycle: "TabLifecycle", url: str) -> None:
        self._lifecycle = lifecycle
        self.url = url
        self.tab_id: Optional[int] = None

    async def attempt(self, attempt_number: int, body: Callable[[int], Awaitable[T]]) -> T:
        host = self._lifecycle.host
        if attempt_number == 1 or self.tab_id is None:
            tab_id = await host.create_tab(self.url, active=False)
            if tab_id is None:
                raise TabHandleError(self.url)
            self.tab_id = tab_id
            self._lifecycle.active_tab_id = tab_id
        else:
            logger.debug(f"Tab {self.tab_id}: reloading for attempt {attempt_number}")
            await host.reload_tab(self.tab_id)

        await self._lifecycle.waiter.wait(self.tab_id)
        return await body(self.tab_id)

    async def close(self) -> None:
        tab_id, self.tab_id = self.tab_id, None
        if self._lifecycle.active_tab_id == tab_id:
            self._lifecycle.active_tab_id = None
        if tab_id is None:
            return
        try:
            await self._lifecycle.host.remove_tab(tab_id)
        except Exception as exc:
            # Already gone, e.g. force-closed by a stop.
            logger.debug(f"Tab {tab_id}: close ignored ({exc})")


class TabLifecycle:
    """Creates, reloads and always closes the tab of the unit in flight."""

    def __init__(self, host: TabHost, waiter: Optional[PageLoadWaiter] = None) -> None:
        self.host = host
        self.waiter = waiter or PageLoadWaiter(host)
        self.active_tab_id: Optional[int] = None

    @asynccontextmanager
    async def session(self, url: str) -> AsyncIterator[TabSession]:
        tab = TabSession(self, url)
        try:
            yield tab
        finally:
            await tab.close()

    async def with_tab(self, url: str, body: Callable[[int], Awaitable[T]], policy: RetryPolicy) -> T:
        """Run ``body(tab_id)`` on a loaded tab for ``url``, retried by ``policy``."""
        async with self.session(url) as tab:
            return await policy.run(lambda attempt: tab.attempt(attempt, body))

    async def force_close(self) -> None:
        """Close the active tab from outside its session; errors are ignored."""
        tab_id, self.active_tab_id = self.active_tab_id, None
        if tab_id is None:
            return
        logger.info(f"Force-closing tab {tab_id}")
        try:
            await self.host.remove_tab(tab_id)
        except Exception as exc:
            logger.debug(f"Tab {tab_id}: forced close ignored ({exc})")
