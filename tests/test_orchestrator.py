"""End-to-end tests for WorkflowOrchestrator against the fake tab host."""

import pytest

from agents.workflows import MemberActionWorkflow
from models.messages import (
    ActionResult,
    ClearDataCommand,
    ErrorReply,
    GetStateCommand,
    MembersCollected,
    PageInfoReply,
    RecordsExtracted,
    StartCommand,
    StateReply,
    StopCommand,
)
from models.workflow import Unit, UnitStatus, WorkflowState, WorkflowStatus
from storage.state_store import StateStore
from tests.conftest import SEED, review_records
from utils.errors import PageAgentError

PAGE_2 = "https://example.com/shop/42/reviews/2/"
PAGE_3 = "https://example.com/shop/42/reviews/3/"


def watch_statuses(orchestrator):
    queue = orchestrator.notifier.subscribe()

    def drain():
        statuses = []
        while not queue.empty():
            status = queue.get_nowait().state.status
            if not statuses or statuses[-1] != status:
                statuses.append(status)
        return statuses

    return drain


async def test_full_run_collects_every_page(host, make_orchestrator):
    orchestrator = make_orchestrator(host)
    statuses = watch_statuses(orchestrator)

    state = await orchestrator.run(SEED)

    assert statuses() == [WorkflowStatus.DISCOVERING, WorkflowStatus.PROCESSING, WorkflowStatus.COMPLETED]
    assert state.status == WorkflowStatus.COMPLETED
    assert [u.identifier for u in state.units] == [SEED, PAGE_2, PAGE_3]
    assert [u.ordinal for u in state.units] == [1, 2, 3]
    assert all(u.status == UnitStatus.COMPLETED for u in state.units)
    assert state.expected_total_units == 45
    assert state.total_pages == 3
    assert state.completed_count == 3
    assert len(state.records) == 6
    assert state.records[0]["review_id"] == f"{SEED}#0"
    assert host.tabs == {}
    assert host.listeners == []


async def test_units_processed_strictly_in_order(host, make_orchestrator):
    orchestrator = make_orchestrator(host)

    await orchestrator.run(SEED)

    # discovery tab first, then one tab per page, each closed before the next opens
    assert host.created_urls() == [SEED, SEED, PAGE_2, PAGE_3]
    kinds = [c[0] for c in host.calls if c[0] in ("create", "remove")]
    assert kinds == ["create", "remove"] * 4


async def test_unit_timeouts_mark_unit_error_but_workflow_completes(host, make_orchestrator):
    host.hang[PAGE_2] = 3
    orchestrator = make_orchestrator(host)

    state = await orchestrator.run(SEED)

    assert state.status == WorkflowStatus.COMPLETED
    assert [u.status for u in state.units] == [UnitStatus.COMPLETED, UnitStatus.ERROR, UnitStatus.COMPLETED]
    assert "timeout" in state.units[1].error_message.lower()
    assert state.completed_count == 2
    assert len(state.records) == 4
    assert host.created_urls().count(PAGE_2) == 1
    assert host.count("reload") == 2


async def test_non_retryable_extraction_error_is_attempted_once(host, make_orchestrator):
    def extract(url, msg):
        if url == PAGE_2:
            return ErrorReply(error="review list missing")
        return RecordsExtracted(records=review_records(url))

    host.handlers["EXTRACT"] = extract
    orchestrator = make_orchestrator(host)

    state = await orchestrator.run(SEED)

    assert state.units[1].status == UnitStatus.ERROR
    assert state.units[1].error_message == "review list missing"
    extract_sends = [c for c in host.calls if c[0] == "send" and c[2] == "EXTRACT"]
    assert len(extract_sends) == 3
    assert host.count("reload") == 0


async def test_discovery_failure_sets_error_without_units(host, make_orchestrator):
    host.hang[SEED] = 3
    orchestrator = make_orchestrator(host)
    statuses = watch_statuses(orchestrator)

    state = await orchestrator.run(SEED)

    assert statuses() == [WorkflowStatus.DISCOVERING, WorkflowStatus.ERROR]
    assert state.status == WorkflowStatus.ERROR
    assert state.error.startswith("Discovery failed")
    assert state.units == []
    assert host.count("send") == 0
    assert host.tabs == {}


async def test_malformed_discovery_reply_is_retried(host, make_orchestrator):
    host.handlers["DISCOVER_INFO"] = lambda url, msg: RecordsExtracted()
    orchestrator = make_orchestrator(host)

    state = await orchestrator.run(SEED)

    assert state.status == WorkflowStatus.ERROR
    assert "could not retrieve required info" in state.error.lower()
    assert host.count("reload") == 2


async def test_discovery_error_reply_is_not_retried(host, make_orchestrator):
    host.handlers["DISCOVER_INFO"] = lambda url, msg: ErrorReply(error="not a review page")
    orchestrator = make_orchestrator(host)

    state = await orchestrator.run(SEED)

    assert state.status == WorkflowStatus.ERROR
    assert "not a review page" in state.error
    assert host.count("create") == 1
    assert host.count("reload") == 0


async def test_stop_while_unit_in_flight_completes_it_and_leaves_rest_idle(host, make_orchestrator):
    orchestrator = make_orchestrator(host)

    async def extract(url, msg):
        if url == PAGE_2:
            await orchestrator.stop()
        return RecordsExtracted(records=review_records(url))

    host.handlers["EXTRACT"] = extract

    state = await orchestrator.run(SEED)

    assert state.status == WorkflowStatus.IDLE
    assert [u.status for u in state.units] == [UnitStatus.COMPLETED, UnitStatus.COMPLETED, UnitStatus.IDLE]
    assert len(state.records) == 4
    assert PAGE_3 not in host.created_urls()
    assert host.tabs == {}


async def test_stop_that_breaks_in_flight_unit_requeues_it(host, make_orchestrator):
    orchestrator = make_orchestrator(host)

    async def extract(url, msg):
        if url == PAGE_2:
            await orchestrator.stop()
            raise PageAgentError("tab went away")
        return RecordsExtracted(records=review_records(url))

    host.handlers["EXTRACT"] = extract

    state = await orchestrator.run(SEED)

    assert state.status == WorkflowStatus.IDLE
    assert [u.status for u in state.units] == [UnitStatus.COMPLETED, UnitStatus.IDLE, UnitStatus.IDLE]
    assert state.units[1].error_message is None
    assert len(state.records) == 2


async def test_resume_keeps_records_and_processes_remaining_units(host, make_orchestrator):
    orchestrator = make_orchestrator(host)
    stopped = []

    async def extract(url, msg):
        if url == PAGE_2 and not stopped:
            stopped.append(url)
            await orchestrator.stop()
        return RecordsExtracted(records=review_records(url))

    host.handlers["EXTRACT"] = extract
    await orchestrator.run(SEED)
    host.calls.clear()

    state = await orchestrator.run(SEED)

    assert state.status == WorkflowStatus.COMPLETED
    assert all(u.status == UnitStatus.COMPLETED for u in state.units)
    assert len(state.records) == 6
    # discovery again, then only page 3
    assert host.created_urls() == [SEED, PAGE_3]


async def test_error_units_are_not_retried_on_resume(host, make_orchestrator, storage):
    saved = WorkflowState(
        status=WorkflowStatus.IDLE,
        workflow="reviews",
        seed=SEED,
        units=[
            Unit(identifier=SEED, ordinal=1, status=UnitStatus.COMPLETED),
            Unit(identifier=PAGE_2, ordinal=2, status=UnitStatus.ERROR, error_message="Page load timeout"),
            Unit(identifier=PAGE_3, ordinal=3),
        ],
        records=review_records(SEED),
    )
    await StateStore(storage, key="collectionState").save(saved)
    orchestrator = make_orchestrator(host)

    state = await orchestrator.run(SEED)

    assert [u.status for u in state.units] == [UnitStatus.COMPLETED, UnitStatus.ERROR, UnitStatus.COMPLETED]
    assert host.created_urls() == [SEED, PAGE_3]
    assert len(state.records) == 4


async def test_new_seed_starts_fresh(host, make_orchestrator):
    orchestrator = make_orchestrator(host)
    await orchestrator.run(SEED)

    other = "https://example.com/shop/7/reviews/"
    state = await orchestrator.run(other)

    assert state.seed == other
    assert len(state.records) == 6
    assert all(r["review_id"].startswith("https://example.com/shop/7/") for r in state.records)


async def test_zero_pages_completes_with_no_units(host, make_orchestrator):
    host.handlers["DISCOVER_INFO"] = lambda url, msg: PageInfoReply()
    orchestrator = make_orchestrator(host)

    state = await orchestrator.run(SEED)

    assert state.status == WorkflowStatus.COMPLETED
    assert state.units == []


async def test_state_persisted_after_every_unit(host, make_orchestrator, storage):
    orchestrator = make_orchestrator(host)
    store = StateStore(storage, key="collectionState")
    snapshots = []

    async def extract(url, msg):
        persisted = await store.load()
        snapshots.append([u.status for u in persisted.units])
        return RecordsExtracted(records=review_records(url))

    host.handlers["EXTRACT"] = extract
    await orchestrator.run(SEED)

    assert snapshots == [
        [UnitStatus.PROCESSING, UnitStatus.IDLE, UnitStatus.IDLE],
        [UnitStatus.COMPLETED, UnitStatus.PROCESSING, UnitStatus.IDLE],
        [UnitStatus.COMPLETED, UnitStatus.COMPLETED, UnitStatus.PROCESSING],
    ]
    final = await store.load()
    assert final == await orchestrator.get_state()


async def test_initialize_requeues_interrupted_run(host, make_orchestrator, storage):
    saved = WorkflowState(
        status=WorkflowStatus.PROCESSING,
        workflow="reviews",
        seed=SEED,
        current_unit=PAGE_2,
        units=[
            Unit(identifier=SEED, ordinal=1, status=UnitStatus.COMPLETED),
            Unit(identifier=PAGE_2, ordinal=2, status=UnitStatus.PROCESSING),
        ],
    )
    await StateStore(storage, key="collectionState").save(saved)
    orchestrator = make_orchestrator(host)

    state = await orchestrator.initialize()

    assert state.status == WorkflowStatus.IDLE
    assert [u.status for u in state.units] == [UnitStatus.COMPLETED, UnitStatus.IDLE]
    assert state.current_unit is None
    assert state.completed_count == 1


async def test_get_state_falls_back_to_persisted_copy(host, make_orchestrator, storage):
    saved = WorkflowState(status=WorkflowStatus.COMPLETED, seed=SEED, records=[{"review_id": "r1"}])
    await StateStore(storage, key="collectionState").save(saved)
    orchestrator = make_orchestrator(host)

    reply = await orchestrator.handle(GetStateCommand())

    assert isinstance(reply, StateReply)
    assert reply.state == saved


async def test_start_acknowledges_then_runs_in_background(host, make_orchestrator):
    orchestrator = make_orchestrator(host)

    ack = await orchestrator.handle(StartCommand(seed=SEED))
    assert ack.success
    second = await orchestrator.start(SEED)
    assert not second.success

    await orchestrator.wait()
    state = await orchestrator.get_state()
    assert state.status == WorkflowStatus.COMPLETED


async def test_stop_is_idempotent_and_noop_on_terminal_state(host, make_orchestrator):
    orchestrator = make_orchestrator(host)
    await orchestrator.run(SEED)

    assert (await orchestrator.handle(StopCommand())).success
    assert (await orchestrator.get_state()).status == WorkflowStatus.COMPLETED

    await orchestrator.reset()
    await orchestrator.stop()
    await orchestrator.stop()
    assert (await orchestrator.get_state()).status == WorkflowStatus.IDLE


async def test_stop_before_discovery_prevents_run(host, make_orchestrator):
    orchestrator = make_orchestrator(host)

    await orchestrator.start(SEED)
    await orchestrator.stop()
    await orchestrator.wait()

    assert host.calls == []
    assert (await orchestrator.get_state()).status == WorkflowStatus.IDLE


async def test_stop_during_discovery_queues_discovered_units(host, make_orchestrator):
    orchestrator = make_orchestrator(host)

    async def discover(url, msg):
        await orchestrator.stop()
        return PageInfoReply(expected_total_units=45, units_per_page=15, total_pages=3)

    host.handlers["DISCOVER_INFO"] = discover

    state = await orchestrator.run(SEED)

    assert state.status == WorkflowStatus.IDLE
    assert state.error is None
    assert [u.identifier for u in state.units] == [SEED, PAGE_2, PAGE_3]
    assert all(u.status == UnitStatus.IDLE for u in state.units)
    assert host.count("send") == 1
    assert host.tabs == {}

    host.handlers["DISCOVER_INFO"] = lambda url, msg: PageInfoReply(
        expected_total_units=45, units_per_page=15, total_pages=3
    )
    resumed = await orchestrator.run(SEED)
    assert resumed.status == WorkflowStatus.COMPLETED
    assert len(resumed.records) == 6


async def test_discovery_failing_after_stop_leaves_workflow_idle(host, make_orchestrator):
    orchestrator = make_orchestrator(host)

    async def discover(url, msg):
        await orchestrator.stop()
        raise PageAgentError("tab went away")

    host.handlers["DISCOVER_INFO"] = discover

    state = await orchestrator.run(SEED)

    assert state.status == WorkflowStatus.IDLE
    assert state.error is None
    assert state.units == []
    assert host.count("create") == 1
    assert host.tabs == {}


async def test_seed_on_later_page_yields_each_page_once(host, make_orchestrator):
    orchestrator = make_orchestrator(host)

    state = await orchestrator.run(PAGE_3)

    identifiers = [u.identifier for u in state.units]
    assert identifiers == [SEED, PAGE_2, PAGE_3]
    assert len(set(identifiers)) == len(identifiers)
    assert len(state.records) == 6
    assert host.created_urls() == [PAGE_3, SEED, PAGE_2, PAGE_3]


async def test_clear_data_wipes_everything(host, make_orchestrator, storage):
    orchestrator = make_orchestrator(host)
    await orchestrator.run(SEED)

    ack = await orchestrator.handle(ClearDataCommand())

    assert ack.success
    assert await orchestrator.get_state() == WorkflowState()
    assert await StateStore(storage, key="collectionState").load() == WorkflowState()


async def test_reset_during_run_discards_late_results(host, make_orchestrator):
    orchestrator = make_orchestrator(host)

    async def extract(url, msg):
        if url == PAGE_2:
            await orchestrator.reset()
        return RecordsExtracted(records=review_records(url))

    host.handlers["EXTRACT"] = extract
    await orchestrator.run(SEED)

    state = await orchestrator.get_state()
    assert state == WorkflowState()
    assert host.tabs == {}


@pytest.fixture
def member_host(host):
    members = [
        "https://x.example/alice",
        "https://x.example/bob",
        "https://x.example/alice",
        "https://x.example/carol",
    ]
    host.handlers["COLLECT_MEMBERS"] = lambda url, msg: MembersCollected(handles=members)
    host.handlers["PERFORM_ACTION"] = lambda url, msg: ActionResult(success=not url.endswith("bob"))
    return host


async def test_member_workflow_acts_on_each_unique_member(member_host, make_orchestrator):
    orchestrator = make_orchestrator(member_host, workflow=MemberActionWorkflow())
    seed = "https://x.example/i/lists/99/members"

    state = await orchestrator.run(seed)

    assert state.status == WorkflowStatus.COMPLETED
    assert [u.identifier for u in state.units] == [
        "https://x.example/alice",
        "https://x.example/bob",
        "https://x.example/carol",
    ]
    assert [u.status for u in state.units] == [UnitStatus.COMPLETED, UnitStatus.ERROR, UnitStatus.COMPLETED]
    assert state.expected_total_units == 3
    assert state.records == [
        {"target": "https://x.example/alice", "success": True},
        {"target": "https://x.example/carol", "success": True},
    ]
    # a failed action is final: no retry
    assert member_host.created_urls().count("https://x.example/bob") == 1


async def test_member_workflow_rejects_non_list_page(member_host, make_orchestrator):
    member_host.handlers["COLLECT_MEMBERS"] = lambda url, msg: ErrorReply(error="Run this on a list members page")
    orchestrator = make_orchestrator(member_host, workflow=MemberActionWorkflow())

    state = await orchestrator.run("https://x.example/home")

    assert state.status == WorkflowStatus.ERROR
    assert "list members page" in state.error
