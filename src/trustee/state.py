"""Workflow state: the step machine mutated only by the turn-loop coordinator."""
from __future__ import annotations

from dataclasses import dataclass, replace
from enum import StrEnum
from typing import Any

from trustee.errors import StateTransitionError


class WorkflowStep(StrEnum):
    INIT = "init"
    CLASSIFICATION = "classification"
    TEMPLATE_LOADING = "template_loading"
    PLANNING_LOOP = "planning_loop"
    TOOL_EXECUTION = "tool_execution"
    COMPLETION = "completion"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in (WorkflowStep.COMPLETION, WorkflowStep.FAILED)


class AgentMode(StrEnum):
    AUTO = "auto"
    INTERACTIVE = "interactive"
    AGENTIC = "agentic"


class SessionOutcome(StrEnum):
    COMPLETED = "completed"
    MAX_ITERATIONS_REACHED = "max_iterations_reached"
    FAILED = "failed"
    CANCELLED = "cancelled"


# Any non-terminal step may also move to FAILED.
_TRANSITIONS: dict[WorkflowStep, frozenset[WorkflowStep]] = {
    WorkflowStep.INIT: frozenset({WorkflowStep.CLASSIFICATION}),
    WorkflowStep.CLASSIFICATION: frozenset({WorkflowStep.TEMPLATE_LOADING}),
    WorkflowStep.TEMPLATE_LOADING: frozenset({WorkflowStep.PLANNING_LOOP}),
    WorkflowStep.PLANNING_LOOP: frozenset({WorkflowStep.TOOL_EXECUTION, WorkflowStep.COMPLETION}),
    WorkflowStep.TOOL_EXECUTION: frozenset({WorkflowStep.PLANNING_LOOP}),
    WorkflowStep.COMPLETION: frozenset(),
    WorkflowStep.FAILED: frozenset(),
}


@dataclass(frozen=True)
class WorkflowState:
    """Snapshot of where a session is. Each mutation returns a new instance.

    Once the step is terminal, every mutation raises StateTransitionError.
    """

    task_description: str
    step: WorkflowStep = WorkflowStep.INIT
    mode: AgentMode = AgentMode.AUTO
    iteration: int = 0
    api_call_count: int = 0
    task_type: str | None = None

    @property
    def is_terminal(self) -> bool:
        return self.step.is_terminal

    def _check_mutable(self) -> None:
        if self.is_terminal:
            raise StateTransitionError(f"Session already finished in step {self.step}")

    def advance(self, step: WorkflowStep) -> WorkflowState:
        """Move to *step*, enforcing the allowed transitions."""
        self._check_mutable()
        if step != WorkflowStep.FAILED and step not in _TRANSITIONS[self.step]:
            raise StateTransitionError(f"Cannot move from {self.step} to {step}")
        return replace(self, step=step)

    def next_iteration(self) -> WorkflowState:
        self._check_mutable()
        return replace(self, iteration=self.iteration + 1)

    def record_api_call(self) -> WorkflowState:
        self._check_mutable()
        return replace(self, api_call_count=self.api_call_count + 1)

    def with_task_type(self, task_type: str) -> WorkflowState:
        self._check_mutable()
        return replace(self, task_type=task_type)

    def reopen(self) -> WorkflowState:
        """Copy of a restored state, ready to re-enter the loop.

        A snapshot taken mid tool execution stays in TOOL_EXECUTION so its
        pending calls get answered; every other step maps to PLANNING_LOOP.
        Used only on resume; the persisted snapshot itself is never changed.
        """
        if self.step == WorkflowStep.TOOL_EXECUTION:
            return self
        return replace(self, step=WorkflowStep.PLANNING_LOOP)

    def to_dict(self) -> dict[str, Any]:
        return {
            "step": self.step.value,
            "mode": self.mode.value,
            "iteration": self.iteration,
            "api_call_count": self.api_call_count,
            "task_description": self.task_description,
            "task_type": self.task_type,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> WorkflowState:
        return cls(
            task_description=data["task_description"],
            step=WorkflowStep(data["step"]),
            mode=AgentMode(data.get("mode", AgentMode.AUTO.value)),
            iteration=int(data.get("iteration", 0)),
            api_call_count=int(data.get("api_call_count", 0)),
            task_type=data.get("task_type"),
        )
