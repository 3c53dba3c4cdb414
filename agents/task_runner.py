"""Sequential execution of the unit queue."""

from __future__ import annotations

from typing import Awaitable, Callable, List

from loguru import logger

from models.workflow import Unit, UnitStatus


class PageTaskRunner:
    """
    Drives ``idle`` units one at a time, in their original order.

    ``should_stop`` is checked before every unit. ``on_progress`` is awaited
    whenever a unit changes status so the caller can persist and notify
    before the next unit starts. A unit that fails after a stop was requested
    goes back to ``idle``: its failure is most likely the forced tab close,
    and a resumed run should process it again.
    """

    def __init__(
        self,
        per_unit: Callable[[Unit], Awaitable[None]],
        should_stop: Callable[[], bool],
        on_progress: Callable[[Unit], Awaitable[None]],
    ) -> None:
        self._per_unit = per_unit
        self._should_stop = should_stop
        self._on_progress = on_progress

    async def run_all(self, units: List[Unit]) -> bool:
        """Process the idle units; return False when a stop cut the run short."""
        pending = [u for u in units if u.status == UnitStatus.IDLE]
        logger.info(f"Processing {len(pending)} of {len(units)} units")

        for unit in pending:
            if self._should_stop():
                logger.info(f"Stop requested, leaving {unit.identifier} and later units idle")
                return False

            unit.status = UnitStatus.PROCESSING
            unit.error_message = None
            await self._on_progress(unit)

            try:
                await self._per_unit(unit)
            except Exception as exc:
                if self._should_stop():
                    logger.info(f"Unit {unit.ordinal} interrupted by stop, re-queued: {exc}")
                    unit.status = UnitStatus.IDLE
                else:
                    logger.error(f"Unit {unit.ordinal} ({unit.identifier}) failed: {exc}")
                    unit.status = UnitStatus.ERROR
                    unit.error_message = str(exc)
            else:
                unit.status = UnitStatus.COMPLETED
                logger.info(f"Unit {unit.ordinal} ({unit.identifier}) completed")

            await self._on_progress(unit)

        return not self._should_stop()
