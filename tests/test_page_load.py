"""Tests for PageLoadWaiter."""

import asyncio

import pytest

from agents.page_load import PageLoadWaiter
from utils.errors import PageLoadTimeoutError


async def test_resolves_on_complete_and_removes_listener(host):
    tab_id = await host.create_tab("https://example.com/a/")
    waiter = PageLoadWaiter(host, timeout=1, settle_delay=0)

    await waiter.wait(tab_id)

    assert host.listeners == []


async def test_ignores_other_tabs_and_non_complete_updates(host):
    host.hang["https://example.com/slow/"] = 1
    slow = await host.create_tab("https://example.com/slow/")
    waiter = PageLoadWaiter(host, timeout=1, settle_delay=0)

    task = asyncio.create_task(waiter.wait(slow))
    await asyncio.sleep(0)
    host._emit(slow, {"status": "loading"})
    other = await host.create_tab("https://example.com/other/")
    await asyncio.sleep(0.01)
    assert not task.done()

    host._emit(slow, {"status": "complete"})
    await asyncio.wait_for(task, timeout=1)
    assert other != slow
    assert host.listeners == []


async def test_times_out_and_removes_listener(host):
    host.hang["https://example.com/never/"] = 1
    tab_id = await host.create_tab("https://example.com/never/")
    waiter = PageLoadWaiter(host, timeout=0.02, settle_delay=0)

    with pytest.raises(PageLoadTimeoutError) as excinfo:
        await waiter.wait(tab_id)

    assert "timeout" in str(excinfo.value).lower()
    assert host.listeners == []


async def test_settle_delay_follows_complete(host):
    tab_id = await host.create_tab("https://example.com/a/")
    waiter = PageLoadWaiter(host, timeout=1, settle_delay=0.05)

    loop = asyncio.get_running_loop()
    started = loop.time()
    await waiter.wait(tab_id)

    assert loop.time() - started >= 0.04


async def test_second_complete_event_is_harmless(host):
    tab_id = await host.create_tab("https://example.com/a/")
    waiter = PageLoadWaiter(host, timeout=1, settle_delay=0)

    await waiter.wait(tab_id)
    host._emit(tab_id, {"status": "complete"})

    assert host.listeners == []
