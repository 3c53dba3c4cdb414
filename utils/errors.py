"""Error taxonomy for the tab workflow orchestrator.

``TransientError`` subclasses are retried by :class:`agents.retry.RetryPolicy`;
every other ``WorkflowError`` aborts the current unit or phase at once.
"""

from __future__ import annotations


class WorkflowError(Exception):
    """Base class for every error raised by the orchestrator stack."""


# ── Transient ─────────────────────────────────────────────────────────────────


class TransientError(WorkflowError):
    """A failure worth another attempt."""


class PageLoadTimeoutError(TransientError):
    def __init__(self, tab_id: int, timeout: float) -> None:
        super().__init__(f"Page load timeout (tab {tab_id}, {timeout:g}s)")
        self.tab_id = tab_id
        self.timeout = timeout


class TabHandleError(TransientError):
    def __init__(self, url: str) -> None:
        super().__init__(f"Could not obtain tab handle for {url}")
        self.url = url


class DiscoveryInfoError(TransientError):
    def __init__(self, detail: str = "") -> None:
        message = "Could not retrieve required info"
        super().__init__(f"{message}: {detail}" if detail else message)


# ── Permanent ─────────────────────────────────────────────────────────────────


class TabNotFoundError(WorkflowError):
    def __init__(self, tab_id: int) -> None:
        super().__init__(f"No tab with id {tab_id}")
        self.tab_id = tab_id


class PageAgentUnavailableError(WorkflowError):
    """The tab has no page agent able to answer (page not loaded or unknown site)."""


class PageAgentError(WorkflowError):
    """The page agent answered with an ``ERROR`` message."""


class MalformedResponseError(WorkflowError):
    def __init__(self, expected: str, received: str) -> None:
        super().__init__(f"Expected {expected} reply, got {received}")
        self.expected = expected
        self.received = received


class ActionFailedError(WorkflowError):
    def __init__(self, target: str) -> None:
        super().__init__(f"Action reported failure for {target}")
        self.target = target
