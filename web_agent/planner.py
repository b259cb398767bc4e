"""Task plan kept by the agent and rewritten by the model via ``update_plan``.

The plan is advisory: nothing here infers progress. Steps only change status
when the model sends an update. An update that keeps the same step list moves
the existing steps forward; any other update replaces the plan.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict, List, Literal, Optional

from .errors import PlanTransitionError

StepStatus = Literal["pending", "in_progress", "completed", "failed", "skipped"]


# status -> statuses it may move to
_ALLOWED_TRANSITIONS: Dict[str, frozenset] = {
    "pending": frozenset({"pending", "in_progress", "completed", "failed", "skipped"}),
    "in_progress": frozenset({"in_progress", "completed", "failed", "skipped"}),
    "completed": frozenset({"completed"}),
    "failed": frozenset({"failed"}),
    "skipped": frozenset({"skipped"}),
}


@dataclass
class TaskStep:
    id: str
    description: str
    status: StepStatus = "pending"
    result: Optional[str] = None
    failure_reason: Optional[str] = None


@dataclass
class TaskPlan:
    goal: str
    steps: List[TaskStep] = field(default_factory=list)
    current_step_index: int = 0
    adaptations: List[str] = field(default_factory=list)
    completion_criteria: List[str] = field(default_factory=list)

    @property
    def current_step(self) -> Optional[TaskStep]:
        if not self.steps:
            return None
        return self.steps[self.current_step_index]


@dataclass
class StepDraft:
    description: str
    # None leaves the status as it is (or pending for a new step)
    status: Optional[StepStatus] = None


@dataclass
class PlanUpdate:
    """Arguments of an ``update_plan`` call after validation."""

    steps: List[StepDraft]
    current_step_index: int = 0
    completion_criteria: List[str] = field(default_factory=list)
    adaptations: Optional[List[str]] = None


def new_plan(goal: str) -> TaskPlan:
    return TaskPlan(goal=goal)


def clamp_step_index(index: int, step_count: int) -> int:
    if step_count <= 0:
        return 0
    return max(0, min(index, step_count - 1))


def apply_plan_update(plan: TaskPlan, update: PlanUpdate) -> TaskPlan:
    """Return the plan that replaces ``plan`` after an ``update_plan`` call.

    The goal always carries over. Adaptation notes carry over unless the
    update supplies its own list.
    """
    steps = [
        TaskStep(id=f"step-{index + 1}", description=draft.description, status=draft.status or "pending")
        for index, draft in enumerate(update.steps)
    ]
    adaptations = list(update.adaptations) if update.adaptations is not None else list(plan.adaptations)
    return TaskPlan(
        goal=plan.goal,
        steps=steps,
        current_step_index=clamp_step_index(update.current_step_index, len(steps)),
        adaptations=adaptations,
        completion_criteria=list(update.completion_criteria),
    )


def update_step(
    plan: TaskPlan,
    step_id: str,
    status: StepStatus,
    result: Optional[str] = None,
    failure_reason: Optional[str] = None,
) -> TaskStep:
    """Move one step forward in its lifecycle.

    Raises ``KeyError`` for an unknown ``step_id`` and ``PlanTransitionError``
    when the move would go backwards (e.g. ``completed`` -> ``pending``).
    """
    step = next((candidate for candidate in plan.steps if candidate.id == step_id), None)
    if step is None:
        raise KeyError(step_id)
    _check_transition(step, status)
    step.status = status
    if result is not None:
        step.result = result
    if failure_reason is not None:
        step.failure_reason = failure_reason
    return step


def _check_transition(step: TaskStep, status: str) -> None:
    if status not in _ALLOWED_TRANSITIONS.get(step.status, frozenset()):
        raise PlanTransitionError(f"Cannot move {step.id} from {step.status} to {status}")


def _same_steps(plan: TaskPlan, update: PlanUpdate) -> bool:
    return bool(plan.steps) and [step.description for step in plan.steps] == [
        draft.description for draft in update.steps
    ]


def merge_plan_update(plan: TaskPlan, update: PlanUpdate) -> TaskPlan:
    """Apply an ``update_plan`` call to ``plan``.

    When the update lists the same steps as the current plan it is a progress
    report: each step is moved with ``update_step`` and a backward move raises
    ``PlanTransitionError`` before anything changes. A different step list is a
    new plan and goes through ``apply_plan_update``.
    """
    if not _same_steps(plan, update):
        return apply_plan_update(plan, update)

    moves = [(step, draft.status) for step, draft in zip(plan.steps, update.steps) if draft.status]
    for step, status in moves:
        _check_transition(step, status)
    for step, status in moves:
        update_step(plan, step.id, status)

    plan.current_step_index = clamp_step_index(update.current_step_index, len(plan.steps))
    plan.completion_criteria = list(update.completion_criteria)
    if update.adaptations is not None:
        plan.adaptations = list(update.adaptations)
    return plan


def plan_summary(plan: TaskPlan) -> str:
    if not plan.steps:
        return "Plan updated: 0 steps"
    return f"Plan updated: {len(plan.steps)} steps, currently on step {plan.current_step_index + 1}"
