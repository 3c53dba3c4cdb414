"""Wait for a tab to report "complete", bounded by a timeout."""

from __future__ import annotations

import asyncio
from typing import Any, Dict, Optional

from loguru import logger

from clients.tab_host import TabHost
from config.settings import settings
from utils.errors import PageLoadTimeoutError


class PageLoadWaiter:
    """
    One-shot race between a tab's ``complete`` update and a deadline.

    The update listener is registered on entry and removed on every exit
    path, so a call never leaves a listener behind.
    """

    def __init__(
        self,
        host: TabHost,
        timeout: Optional[float] = None,
        settle_delay: Optional[float] = None,
    ) -> None:
        self._host = host
        self._timeout = settings.page_load_timeout_seconds if timeout is None else timeout
        self._settle_delay = settings.settle_delay_seconds if settle_delay is None else settle_delay

    async def wait(self, tab_id: int) -> None:
        loop = asyncio.get_running_loop()
        loaded: asyncio.Future = loop.create_future()

        def listener(updated_tab_id: int, change_info: Dict[str, Any]) -> None:
            if updated_tab_id == tab_id and change_info.get("status") == "complete" and not loaded.done():
                loaded.set_result(None)

        self._host.add_update_listener(listener)
        try:
            await asyncio.wait_for(loaded, timeout=self._timeout)
        except asyncio.TimeoutError:
            logger.warning(f"Tab {tab_id}: page load timed out after {self._timeout:g}s")
            raise PageLoadTimeoutError(tab_id, self._timeout) from None
        finally:
            self._host.remove_update_listener(listener)

        logger.debug(f"Tab {tab_id}: load complete, settling for {self._settle_delay:g}s")
        await asyncio.sleep(self._settle_delay)
