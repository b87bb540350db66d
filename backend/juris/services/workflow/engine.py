"""Sequential multi-agent workflow engine.

Steps run strictly in ``agent_sequence`` order. Each step is one
AgentExecutor turn whose input is the step's template rendered with the
original request, followed by the outputs of the steps before it. The
first failed step stops the run; the partial result is returned with the
failure descriptor.
"""

from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

from sqlalchemy import select

from juris.core.exceptions import AgentExecutionError, InvalidRequestError
from juris.models.agent import Agent
from juris.services.agents.context import TurnContext

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncSession

    from juris.core.identity import CallerIdentity
    from juris.models.conversation import Conversation
    from juris.models.workflow import Workflow
    from juris.services.agents.executor import AgentExecutor

logger = logging.getLogger(__name__)

DEFAULT_INPUT_TEMPLATE = "{input}"
PREVIOUS_STEPS_HEADER = "=== RESULTADOS DAS ETAPAS ANTERIORES ==="


class _TemplateValues(dict):
    """Leaves unknown placeholders untouched."""

    def __missing__(self, key: str) -> str:
        return "{" + key + "}"


@dataclass
class WorkflowStep:
    """Outcome of one workflow step."""

    step_index: int
    agent_slug: str
    label: str
    execution_id: uuid.UUID | None
    status: str
    output: str | None = None
    tokens_used: int = 0
    citations: int = 0
    tool_calls: int = 0
    error: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "step_index": self.step_index,
            "agent": self.agent_slug,
            "execution_id": self.execution_id,
            "status": self.status,
            "output": self.output,
            "tokens_used": self.tokens_used,
            "error": self.error,
        }


@dataclass
class WorkflowRunResult:
    """Result of a workflow run, partial when a step failed.

    Attributes:
        workflow_slug: Workflow that ran
        output: Output of the last completed step
        steps_completed: Number of steps that reached ``completed``
        total_steps: Number of steps in the workflow
        total_tokens: Tokens of every execution produced by the run
        execution_ids: Ledger rows in step order, failed one included
        steps: Per-step outcomes
        failed_step: Index of the failed step
        error: Failure descriptor of the failed step
    """

    workflow_slug: str
    output: str | None
    steps_completed: int
    total_steps: int
    total_tokens: int
    execution_ids: list[uuid.UUID] = field(default_factory=list)
    steps: list[WorkflowStep] = field(default_factory=list)
    failed_step: int | None = None
    error: AgentExecutionError | None = None

    @property
    def succeeded(self) -> bool:
        return self.error is None


def render_step_input(
    template: str | None,
    initial_input: str,
    previous: list[WorkflowStep],
) -> str:
    """Input of a step: its rendered template plus earlier outputs."""
    values = _TemplateValues(
        input=initial_input,
        previous_output=previous[-1].output if previous else "",
    )
    text = (template or DEFAULT_INPUT_TEMPLATE).format_map(values)
    if not previous:
        return text

    sections = [f"[{step.label}]\n{step.output}" for step in previous]
    return f"{text}\n\n{PREVIOUS_STEPS_HEADER}\n\n" + "\n\n".join(sections)


class WorkflowEngine:
    """Runs workflows step by step through an AgentExecutor."""

    def __init__(self, executor: AgentExecutor) -> None:
        self.executor = executor

    @staticmethod
    async def resolve_agents(db: AsyncSession, workflow: Workflow) -> list[Agent]:
        """Agents of the workflow, in step order.

        Raises:
            InvalidRequestError: If the sequence is empty or references a
                missing or inactive agent.
        """
        if not workflow.agent_sequence:
            raise InvalidRequestError(f"Workflow '{workflow.slug}' has no steps")

        result = await db.execute(
            select(Agent).where(
                Agent.slug.in_(workflow.agent_sequence),
                Agent.is_active.is_(True),
            )
        )
        by_slug = {agent.slug: agent for agent in result.scalars().all()}
        missing = [slug for slug in workflow.agent_sequence if slug not in by_slug]
        if missing:
            raise InvalidRequestError(
                f"Workflow '{workflow.slug}' references unknown or inactive agents",
                errors=[f"agent '{slug}' not available" for slug in missing],
            )
        return [by_slug[slug] for slug in workflow.agent_sequence]

    async def run(
        self,
        db: AsyncSession,
        workflow: Workflow,
        initial_input: str,
        conversation: Conversation,
        caller: CallerIdentity | None = None,
    ) -> WorkflowRunResult:
        """Run every step of ``workflow`` in order.

        Args:
            db: Database session.
            workflow: Workflow to run.
            initial_input: The user's request.
            conversation: Conversation receiving the step messages.
            caller: Authenticated user, for auth-requiring tools.

        Returns:
            WorkflowRunResult; ``error`` is set when a step failed.

        Raises:
            InvalidRequestError: If the workflow references unusable agents
                (nothing is executed in that case).
        """
        agents = await self.resolve_agents(db, workflow)
        workflow_slug = workflow.slug
        conversation_id = conversation.id
        folder_id = conversation.folder_id

        steps: list[WorkflowStep] = []
        completed: list[WorkflowStep] = []
        failure: AgentExecutionError | None = None

        for index, agent in enumerate(agents):
            config = workflow.step_config(index)
            label = config.get("label") or agent.name
            context = TurnContext(
                conversation_id=conversation_id,
                input=render_step_input(config.get("input_template"), initial_input, completed),
                caller=caller,
                folder_id=folder_id,
                workflow=workflow,
                step_index=index,
            )
            agent_slug = agent.slug

            logger.info(
                f"Workflow '{workflow_slug}' step {index + 1}/{len(agents)}: {agent_slug}",
                extra={
                    "context": {
                        "workflow": workflow_slug,
                        "step_index": index,
                        "agent": agent_slug,
                    }
                },
            )

            try:
                run = await self.executor.run(db, agent, context)
            except AgentExecutionError as e:
                failure = e
                steps.append(
                    WorkflowStep(
                        step_index=index,
                        agent_slug=agent_slug,
                        label=label,
                        execution_id=e.execution_id,
                        status="failed",
                        tokens_used=e.tokens_used,
                        error=e.message,
                    )
                )
                break

            step = WorkflowStep(
                step_index=index,
                agent_slug=agent_slug,
                label=label,
                execution_id=run.execution_id,
                status="completed",
                output=run.output,
                tokens_used=run.tokens_used,
                citations=len(run.citations),
                tool_calls=len(run.tool_calls),
            )
            steps.append(step)
            completed.append(step)

        result = WorkflowRunResult(
            workflow_slug=workflow_slug,
            output=completed[-1].output if completed else None,
            steps_completed=len(completed),
            total_steps=len(agents),
            total_tokens=sum(step.tokens_used for step in steps),
            execution_ids=[s.execution_id for s in steps if s.execution_id is not None],
            steps=steps,
            failed_step=failure.step_index if failure else None,
            error=failure,
        )

        log = logger.warning if failure else logger.info
        log(
            f"Workflow '{workflow_slug}' finished: "
            f"{result.steps_completed}/{result.total_steps} steps completed",
            extra={
                "context": {
                    "workflow": workflow_slug,
                    "steps_completed": result.steps_completed,
                    "total_tokens": result.total_tokens,
                    "failed_step": result.failed_step,
                }
            },
        )
        return result


def summarize(result: WorkflowRunResult) -> str:
    """Markdown summary of a workflow run."""
    lines = [
        f"# Resumo do Workflow: {result.workflow_slug}",
        "",
        f"Etapas concluídas: {result.steps_completed}/{result.total_steps}",
        f"Tokens utilizados: {result.total_tokens}",
    ]
    for step in result.steps:
        lines.extend(
            [
                "",
                f"## Etapa {step.step_index + 1}: {step.label} ({step.agent_slug})",
                f"- Status: {step.status}",
                f"- Tokens: {step.tokens_used}",
                f"- Citações: {step.citations}",
                f"- Tool calls: {step.tool_calls}",
            ]
        )
        if step.error:
            lines.append(f"- Erro: {step.error}")
    return "\n".join(lines)


__all__ = [
    "WorkflowEngine",
    "WorkflowRunResult",
    "WorkflowStep",
    "render_step_input",
    "summarize",
]
