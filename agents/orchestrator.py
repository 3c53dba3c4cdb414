"""Workflow orchestrator.

Drives one workflow run through its phases: discover → process, persisting
and broadcasting the state after every transition.
"""

from __future__ import annotations

import asyncio
from typing import List, Optional

from loguru import logger
from pydantic import BaseModel

from agents.retry import RetryPolicy
from agents.tab_lifecycle import TabLifecycle
from agents.task_runner import PageTaskRunner
from agents.workflows import WorkflowDefinition
from clients.messaging import ProgressNotifier
from clients.tab_host import TabHost
from config.settings import settings
from models.messages import (
    Ack,
    ClearDataCommand,
    GetStateCommand,
    ResetCommand,
    StartCommand,
    StateReply,
    StopCommand,
)
from models.workflow import Discovery, Unit, UnitStatus, WorkflowState, WorkflowStatus
from storage.state_store import StateStore


class WorkflowOrchestrator:
    """
    Long-lived owner of the workflow state.

    Phases:
    1. Discovery  – open the seed page once (retried) and build the unit list
    2. Processing – run every idle unit in its own tab, collecting records

    ``stop`` is cooperative: it is honoured before the discovery phase and
    between units, and force-closes the tab of the unit in flight. ``reset``
    wipes everything back to a fresh idle state.
    """

    def __init__(
        self,
        host: TabHost,
        workflow: WorkflowDefinition,
        store: Optional[StateStore] = None,
        notifier: Optional[ProgressNotifier] = None,
        tabs: Optional[TabLifecycle] = None,
        policy: Optional[RetryPolicy] = None,
        politeness_delay: Optional[float] = None,
    ) -> None:
        self.host = host
        self.workflow = workflow
        self.notifier = notifier or ProgressNotifier()
        self._store = store or StateStore()
        self._tabs = tabs or TabLifecycle(host)
        self._policy = policy or RetryPolicy()
        self._politeness_delay = (
            settings.politeness_delay_seconds if politeness_delay is None else politeness_delay
        )

        self.state = WorkflowState()
        self._loaded = False
        self._stop_requested = False
        self._task: Optional[asyncio.Task] = None

    # ── Lifecycle ─────────────────────────────────────────────────────────────

    @property
    def is_running(self) -> bool:
        return self._task is not None and not self._task.done()

    @property
    def stop_requested(self) -> bool:
        return self._stop_requested

    async def initialize(self) -> WorkflowState:
        """
        Restore the persisted state.

        A run that was in flight when the process died cannot continue, so
        its status drops back to idle and its in-flight unit is re-queued.
        """
        saved = await self._store.load()
        self._loaded = True
        if saved is None:
            logger.info("No persisted state; starting idle.")
            return self.state

        if saved.status in (WorkflowStatus.DISCOVERING, WorkflowStatus.PROCESSING):
            logger.warning(f"Previous run was interrupted while {saved.status.value}; resumable from idle.")
            saved.status = WorkflowStatus.IDLE
            for unit in saved.units:
                if unit.status == UnitStatus.PROCESSING:
                    unit.status = UnitStatus.IDLE
            saved.current_unit = None
            saved.recount()
            self.state = saved
            await self._publish(saved)
        else:
            self.state = saved
        logger.info(
            f"Restored state: status={self.state.status.value}, "
            f"{self.state.completed_count}/{len(self.state.units)} units, "
            f"{len(self.state.records)} records"
        )
        return self.state

    async def get_state(self) -> WorkflowState:
        if not self._loaded:
            await self.initialize()
        return self.state.model_copy(deep=True)

    async def wait(self) -> None:
        """Await the background run started by :meth:`start`, if any."""
        if self._task is not None:
            await self._task

    # ── Commands ──────────────────────────────────────────────────────────────

    async def handle(self, command: BaseModel) -> BaseModel:
        """Dispatch an observer command to the matching operation."""
        if isinstance(command, StartCommand):
            return await self.start(command.seed)
        if isinstance(command, StopCommand):
            return await self.stop()
        if isinstance(command, GetStateCommand):
            return StateReply(state=await self.get_state())
        if isinstance(command, (ResetCommand, ClearDataCommand)):
            return await self.reset()
        return Ack(success=False, error=f"Unsupported command {getattr(command, 'type', command)!r}")

    async def start(self, seed: str) -> Ack:
        """Launch (or resume) a run in the background and acknowledge at once."""
        if self.is_running:
            return Ack(success=False, error="A workflow is already running")
        if not self._loaded:
            await self.initialize()
        self._stop_requested = False
        self._task = asyncio.create_task(self._run(seed))
        return Ack()

    async def run(self, seed: str) -> WorkflowState:
        """Run a workflow to its end in the caller's task."""
        if self.is_running:
            raise RuntimeError("A workflow is already running")
        if not self._loaded:
            await self.initialize()
        self._stop_requested = False
        await self._run(seed)
        return self.state.model_copy(deep=True)

    async def stop(self) -> Ack:
        if self.state.status.is_terminal:
            return Ack()
        logger.info("Stop requested.")
        self._stop_requested = True
        await self._tabs.force_close()
        self.state.status = WorkflowStatus.IDLE
        await self._publish(self.state)
        return Ack()

    async def reset(self) -> Ack:
        logger.info("Resetting workflow state.")
        self._stop_requested = True
        await self._tabs.force_close()
        self.state = WorkflowState()
        self._loaded = True
        await self._publish(self.state)
        return Ack()

    # ── Phases ────────────────────────────────────────────────────────────────

    def _is_resume(self, seed: str) -> bool:
        current = self.state
        return (
            current.seed == seed
            and current.workflow == self.workflow.name
            and current.status == WorkflowStatus.IDLE
            and bool(current.idle_units())
        )

    async def _run(self, seed: str) -> None:
        if self._stop_requested:
            logger.info("Stop requested before discovery; not starting.")
            return

        if self._is_resume(seed):
            state = self.state
            state.error = None
            logger.info(f"Resuming {self.workflow.name} workflow: {len(state.idle_units())} units left")
        else:
            state = WorkflowState(workflow=self.workflow.name, seed=seed)
            self.state = state
            logger.info(f"Starting {self.workflow.name} workflow from {seed}")

        # Phase 1 – discovery
        logger.info("[1/2] Discovering units...")
        state.status = WorkflowStatus.DISCOVERING
        await self._publish(state)

        try:
            discovery = await self._tabs.with_tab(
                seed,
                lambda tab_id: self.workflow.discover(self.host, tab_id, seed),
                self._policy,
            )
        except Exception as exc:
            if self._stop_requested:
                logger.info(f"Discovery interrupted by stop: {exc}")
                return
            logger.error(f"Discovery failed: {exc}")
            state.status = WorkflowStatus.ERROR
            state.error = f"Discovery failed: {exc}"
            await self._publish(state)
            return

        if state is not self.state:
            return
        self._apply_discovery(state, discovery)
        if self._stop_requested:
            state.status = WorkflowStatus.IDLE
            await self._publish(state)
            return

        # Phase 2 – processing
        logger.info(f"[2/2] Processing {len(state.units)} units...")
        state.status = WorkflowStatus.PROCESSING
        await self._publish(state)

        async def per_unit(unit: Unit) -> None:
            await self._process_unit(state, unit)

        async def on_progress(unit: Unit) -> None:
            if unit.status == UnitStatus.PROCESSING:
                state.current_unit_index = unit.ordinal
                state.current_unit = unit.identifier
            state.recount()
            await self._publish(state)

        runner = PageTaskRunner(per_unit, lambda: self._stop_requested, on_progress)
        try:
            finished = await runner.run_all(state.units)
        except Exception as exc:
            logger.exception(f"Processing aborted: {exc}")
            state.status = WorkflowStatus.ERROR
            state.error = f"Processing failed: {exc}"
            await self._publish(state)
            return

        state.current_unit = None
        state.status = WorkflowStatus.COMPLETED if finished else WorkflowStatus.IDLE
        await self._publish(state)

        if finished:
            failed = sum(1 for u in state.units if u.status == UnitStatus.ERROR)
            logger.success(
                f"Workflow complete: {state.completed_count}/{len(state.units)} units, "
                f"{failed} failed, {len(state.records)} records"
            )
        else:
            logger.info(f"Workflow stopped with {len(state.idle_units())} units left")

    def _apply_discovery(self, state: WorkflowState, discovery: Discovery) -> None:
        """Replace the unit list; units already known keep their terminal status."""
        previous = {u.identifier: u for u in state.units}
        units: List[Unit] = []
        for ordinal, identifier in enumerate(discovery.identifiers, start=1):
            unit = Unit(identifier=identifier, ordinal=ordinal)
            known = previous.get(identifier)
            if known is not None and known.status in (UnitStatus.COMPLETED, UnitStatus.ERROR):
                unit.status = known.status
                unit.error_message = known.error_message
            units.append(unit)

        state.units = units
        state.expected_total_units = discovery.expected_total_units
        state.total_pages = discovery.total_pages
        state.recount()
        logger.info(f"Discovered {len(units)} units ({len(state.idle_units())} to process)")

    async def _process_unit(self, state: WorkflowState, unit: Unit) -> None:
        records = await self._tabs.with_tab(
            unit.identifier,
            lambda tab_id: self.workflow.process(self.host, tab_id, unit),
            self._policy,
        )
        state.records.extend(records)
        await asyncio.sleep(self._politeness_delay)

    # ── Persistence + notification ────────────────────────────────────────────

    async def _publish(self, state: WorkflowState) -> None:
        """Persist then push ``state``, unless a reset has replaced it meanwhile."""
        if state is not self.state:
            return
        try:
            await self._store.save(state)
        except Exception as exc:
            logger.error(f"Failed to persist state: {exc}")
        self.notifier.notify(state)
