"""
Tab Workflow Orchestrator – main entry point.

Usage
-----
# HTTP server mode (default – observers talk to /messages and /progress)
python main.py

# One-shot mode: run a workflow headlessly and export what it collected
python main.py --run "https://example.com/shop/reviews/" --export reviews.csv
"""

from __future__ import annotations

import argparse
import asyncio
import pathlib
import sys
from typing import Optional

from dotenv import load_dotenv
from loguru import logger

load_dotenv(override=True)

from agents.orchestrator import WorkflowOrchestrator  # noqa: E402 – must be after load_dotenv
from agents.workflows import get_workflow  # noqa: E402
from clients.page_agents import ReviewPageAgent  # noqa: E402
from clients.tab_host import HttpTabHost  # noqa: E402
from config.settings import settings  # noqa: E402
from models.workflow import UnitStatus  # noqa: E402
from storage.state_store import JsonFileStorage, StateStore  # noqa: E402
from utils.export import export_records  # noqa: E402


def _configure_logging() -> None:
    logger.remove()
    logger.add(
        sys.stdout,
        level=settings.log_level,
        colorize=False,
        format="{time:HH:mm:ss} | {level: <8} | {message}",
    )
    if settings.log_file:
        pathlib.Path(settings.log_file).parent.mkdir(parents=True, exist_ok=True)
        logger.add(settings.log_file, level=settings.log_level, rotation="10 MB", retention="7 days")


def _build_orchestrator(host: HttpTabHost, workflow_name: str, state_file: Optional[str]) -> WorkflowOrchestrator:
    store = StateStore(JsonFileStorage(state_file))
    return WorkflowOrchestrator(host=host, workflow=get_workflow(workflow_name), store=store)


def _build_host() -> HttpTabHost:
    return HttpTabHost(agents=[ReviewPageAgent()])


async def _run_once(seed: str, workflow_name: str, state_file: Optional[str], export: Optional[str]) -> int:
    """Run one workflow to its end and print a summary; exit code 1 on workflow error."""
    async with _build_host() as host:
        orchestrator = _build_orchestrator(host, workflow_name, state_file)
        state = await orchestrator.run(seed)

    failed = [u for u in state.units if u.status == UnitStatus.ERROR]
    print(f"Status: {state.status.value}")
    print(f"Units: {state.completed_count}/{len(state.units)} completed, {len(failed)} failed")
    print(f"Records: {len(state.records)} (expected {state.expected_total_units})")
    for unit in failed:
        print(f"  ✗ #{unit.ordinal} {unit.identifier}: {unit.error_message}")
    if state.error:
        print(f"Error: {state.error}")

    if export and state.records:
        export_records(state.records, export)
    return 1 if state.error else 0


def _run_server(workflow_name: str, state_file: Optional[str]) -> None:
    import uvicorn

    from server import create_app

    host = _build_host()
    app = create_app(_build_orchestrator(host, workflow_name, state_file), host_context=host)
    logger.info(f"Serving on http://{settings.server_host}:{settings.server_port}")
    uvicorn.run(app, host=settings.server_host, port=settings.server_port, loop="asyncio", log_config=None)


def main() -> None:
    _configure_logging()

    parser = argparse.ArgumentParser(description="Tab-driven workflow orchestrator")
    parser.add_argument(
        "--run",
        metavar="SEED_URL",
        help="Run one workflow from SEED_URL instead of starting the HTTP server.",
    )
    parser.add_argument(
        "--workflow",
        default=settings.workflow,
        help="Workflow variant (default: %(default)s).",
    )
    parser.add_argument(
        "--state-file",
        default=None,
        help=f"State file path (default: {settings.state_file}).",
    )
    parser.add_argument(
        "--export",
        metavar="PATH",
        help="After --run, write the collected records to PATH (.csv, .tsv or .json).",
    )
    args = parser.parse_args()

    if args.run:
        sys.exit(asyncio.run(_run_once(args.run, args.workflow, args.state_file, args.export)))
    _run_server(args.workflow, args.state_file)


if __name__ == "__main__":
    main()
