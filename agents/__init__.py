from .orchestrator import WorkflowOrchestrator
from .page_load import PageLoadWaiter
from .retry import RetryDecision, RetryPolicy, classify_error
from .tab_lifecycle import TabLifecycle, TabSession
from .task_runner import PageTaskRunner
from .workflows import (
    MemberActionWorkflow,
    ReviewCollectionWorkflow,
    WorkflowDefinition,
    get_workflow,
)

__all__ = [
    "WorkflowOrchestrator",
    "PageLoadWaiter",
    "RetryDecision",
    "RetryPolicy",
    "classify_error",
    "TabLifecycle",
    "TabSession",
    "PageTaskRunner",
    "MemberActionWorkflow",
    "ReviewCollectionWorkflow",
    "WorkflowDefinition",
    "get_workflow",
]
