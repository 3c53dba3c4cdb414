"""Messaging primitives: page-agent request/response and best-effort progress push."""

from __future__ import annotations

import asyncio
from typing import List, Type, TypeVar

from loguru import logger
from pydantic import BaseModel

from clients.tab_host import TabHost
from models.messages import ErrorReply, ProgressMessage
from models.workflow import WorkflowState
from utils.errors import MalformedResponseError, PageAgentError

R = TypeVar("R", bound=BaseModel)


async def request_page(host: TabHost, tab_id: int, message: BaseModel, expected: Type[R]) -> R:
    """
    Send ``message`` to the page agent of ``tab_id`` and return its reply.

    An ``ERROR`` reply raises :class:`PageAgentError`; any other reply type
    than ``expected`` raises :class:`MalformedResponseError`.
    """
    reply = await host.send_message(tab_id, message)
    if isinstance(reply, expected):
        return reply
    if isinstance(reply, ErrorReply):
        raise PageAgentError(reply.error)
    raise MalformedResponseError(
        expected.model_fields["type"].default,
        getattr(reply, "type", type(reply).__name__),
    )


class ProgressNotifier:
    """
    Fan-out of ``PROGRESS`` messages to whoever is listening.

    Each observer gets its own bounded queue. Pushing never blocks: with no
    observer the message is dropped, and a full queue loses its oldest entry.
    """

    def __init__(self, maxsize: int = 100) -> None:
        self._maxsize = maxsize
        self._queues: List[asyncio.Queue] = []

    @property
    def observer_count(self) -> int:
        return len(self._queues)

    def subscribe(self) -> asyncio.Queue:
        queue: asyncio.Queue = asyncio.Queue(maxsize=self._maxsize)
        self._queues.append(queue)
        logger.debug(f"Observer subscribed ({len(self._queues)} listening)")
        return queue

    def unsubscribe(self, queue: asyncio.Queue) -> None:
        if queue in self._queues:
            self._queues.remove(queue)
            logger.debug(f"Observer unsubscribed ({len(self._queues)} listening)")

    def notify(self, state: WorkflowState) -> None:
        if not self._queues:
            return
        message = ProgressMessage(state=state.model_copy(deep=True))
        for queue in list(self._queues):
            if queue.full():
                queue.get_nowait()
            queue.put_nowait(message)
