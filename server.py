"""HTTP surface of the message protocol (Starlette).

Routes
------
POST /messages  – observer command in (``START``, ``STOP``, ``GET_STATE``,
                  ``RESET``, ``CLEAR_DATA``), ``ACK`` / ``STATE`` reply out
GET  /state     – current state snapshot
GET  /progress  – server-sent events, one ``PROGRESS`` message per change
GET  /health    – liveness
"""

from __future__ import annotations

import asyncio
import json
from contextlib import asynccontextmanager
from typing import AsyncGenerator, AsyncIterator, Optional

from loguru import logger
from pydantic import ValidationError
from starlette.applications import Starlette
from starlette.requests import Request
from starlette.responses import JSONResponse, Response, StreamingResponse
from starlette.routing import Route

from agents.orchestrator import WorkflowOrchestrator
from models.messages import parse_command

# Keep-alive comment interval for idle SSE streams.
_HEARTBEAT_SECS = 15.0
# How long shutdown waits for a stopped run to unwind before cancelling it.
_SHUTDOWN_GRACE_SECS = 5.0


def _event(data: dict) -> str:
    return f"event: progress\ndata: {json.dumps(data)}\n\n"


async def _progress_stream(orchestrator: WorkflowOrchestrator, request: Request) -> AsyncGenerator[str, None]:
    queue = orchestrator.notifier.subscribe()
    try:
        # Current snapshot first so a late observer is not blind until the next change.
        snapshot = await orchestrator.get_state()
        yield _event({"type": "PROGRESS", "state": snapshot.model_dump(mode="json")})
        while True:
            if await request.is_disconnected():
                break
            try:
                message = await asyncio.wait_for(queue.get(), timeout=_HEARTBEAT_SECS)
            except asyncio.TimeoutError:
                yield ": keep-alive\n\n"
                continue
            yield _event(message.model_dump(mode="json"))
    finally:
        orchestrator.notifier.unsubscribe(queue)


def create_app(orchestrator: WorkflowOrchestrator, host_context: Optional[object] = None) -> Starlette:
    """
    Build the Starlette app around ``orchestrator``.

    ``host_context`` is an optional async context manager (e.g. an
    ``HttpTabHost``) entered for the lifetime of the app.
    """

    @asynccontextmanager
    async def lifespan(app: Starlette) -> AsyncIterator[None]:
        if host_context is not None:
            await host_context.__aenter__()
        await orchestrator.initialize()
        logger.info(f"Orchestrator ready (workflow={orchestrator.workflow.name})")
        try:
            yield
        finally:
            if orchestrator.is_running:
                await orchestrator.stop()
                try:
                    await asyncio.wait_for(orchestrator.wait(), timeout=_SHUTDOWN_GRACE_SECS)
                except asyncio.TimeoutError:
                    logger.warning(f"Run did not stop within {_SHUTDOWN_GRACE_SECS:g}s; cancelled.")
            if host_context is not None:
                await host_context.__aexit__(None, None, None)

    async def messages(request: Request) -> Response:
        try:
            command = parse_command(await request.json())
        except (ValidationError, ValueError) as exc:
            return JSONResponse({"type": "ERROR", "error": str(exc)}, status_code=400)
        logger.info(f"Received {command.type}")
        reply = await orchestrator.handle(command)
        return JSONResponse(reply.model_dump(mode="json"))

    async def state(request: Request) -> JSONResponse:
        snapshot = await orchestrator.get_state()
        return JSONResponse(snapshot.model_dump(mode="json"))

    async def progress(request: Request) -> Response:
        return StreamingResponse(
            _progress_stream(orchestrator, request),
            media_type="text/event-stream",
            headers={"Cache-Control": "no-cache", "X-Accel-Buffering": "no"},
        )

    async def health(request: Request) -> JSONResponse:
        return JSONResponse({"status": "ready", "workflow": orchestrator.workflow.name})

    return Starlette(
        routes=[
            Route("/health",   health,   methods=["GET"]),
            Route("/messages", messages, methods=["POST"]),
            Route("/state",    state,    methods=["GET"]),
            Route("/progress", progress, methods=["GET"]),
        ],
        lifespan=lifespan,
    )
