"""Sequential multi-agent workflows."""

from juris.services.workflow.engine import (
    WorkflowEngine,
    WorkflowRunResult,
    WorkflowStep,
    render_step_input,
    summarize,
)

__all__ = [
    "WorkflowEngine",
    "WorkflowRunResult",
    "WorkflowStep",
    "render_step_input",
    "summarize",
]
