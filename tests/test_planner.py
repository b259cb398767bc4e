from __future__ import annotations

import pytest

from web_agent.errors import PlanTransitionError
from web_agent.planner import (
    PlanUpdate,
    StepDraft,
    apply_plan_update,
    merge_plan_update,
    new_plan,
    plan_summary,
    update_step,
)


def _update(count: int, index: int = 0, adaptations=None) -> PlanUpdate:
    return PlanUpdate(
        steps=[StepDraft(f"step {i}", "completed" if i == 0 else "pending") for i in range(count)],
        current_step_index=index,
        completion_criteria=["done"],
        adaptations=adaptations,
    )


def test_plan_update_replaces_steps_and_keeps_goal() -> None:
    plan = apply_plan_update(new_plan("find a laptop"), _update(3, index=1))

    assert plan.goal == "find a laptop"
    assert [step.id for step in plan.steps] == ["step-1", "step-2", "step-3"]
    assert [step.description for step in plan.steps] == ["step 0", "step 1", "step 2"]
    assert [step.status for step in plan.steps] == ["completed", "pending", "pending"]
    assert plan.current_step_index == 1
    assert plan.completion_criteria == ["done"]
    assert plan.current_step.id == "step-2"


@pytest.mark.parametrize(("count", "index", "expected"), [(3, 7, 2), (3, -4, 0), (0, 5, 0)])
def test_current_index_is_clamped(count: int, index: int, expected: int) -> None:
    plan = apply_plan_update(new_plan("goal"), _update(count, index=index))

    assert plan.current_step_index == expected


def test_adaptations_carry_over_when_omitted() -> None:
    first = apply_plan_update(new_plan("goal"), _update(2, adaptations=["search was broken"]))
    second = apply_plan_update(first, _update(2))
    third = apply_plan_update(second, _update(2, adaptations=[]))

    assert second.adaptations == ["search was broken"]
    assert third.adaptations == []


def test_update_step_moves_forward() -> None:
    plan = apply_plan_update(new_plan("goal"), _update(2))

    update_step(plan, "step-2", "in_progress")
    step = update_step(plan, "step-2", "completed", result="clicked it")

    assert step.status == "completed"
    assert step.result == "clicked it"


def test_update_step_rejects_backward_moves() -> None:
    plan = apply_plan_update(new_plan("goal"), _update(2))

    with pytest.raises(PlanTransitionError):
        update_step(plan, "step-1", "pending")


def test_failed_step_records_reason() -> None:
    plan = apply_plan_update(new_plan("goal"), _update(2))

    step = update_step(plan, "step-2", "failed", failure_reason="button missing")

    assert step.failure_reason == "button missing"
    with pytest.raises(PlanTransitionError):
        update_step(plan, "step-2", "in_progress")


def test_unknown_step_raises_key_error() -> None:
    with pytest.raises(KeyError):
        update_step(new_plan("goal"), "step-9", "completed")


def test_plan_summary_reports_position() -> None:
    plan = apply_plan_update(new_plan("goal"), _update(4, index=2))

    assert plan_summary(plan) == "Plan updated: 4 steps, currently on step 3"


def _progress(*statuses, index: int = 0) -> PlanUpdate:
    return PlanUpdate(
        steps=[StepDraft(f"step {i}", status) for i, status in enumerate(statuses)],
        current_step_index=index,
        completion_criteria=["done"],
    )


def test_same_steps_move_forward_in_place() -> None:
    plan = apply_plan_update(new_plan("goal"), _update(3, adaptations=["retry search"]))

    merged = merge_plan_update(plan, _progress("completed", "in_progress", None, index=1))

    assert merged is plan
    assert [step.status for step in plan.steps] == ["completed", "in_progress", "pending"]
    assert plan.current_step_index == 1
    assert plan.adaptations == ["retry search"]


def test_backward_move_is_rejected_without_partial_changes() -> None:
    plan = apply_plan_update(new_plan("goal"), _update(2))

    with pytest.raises(PlanTransitionError, match="step-1"):
        merge_plan_update(plan, _progress("pending", "in_progress"))

    assert [step.status for step in plan.steps] == ["completed", "pending"]


def test_different_steps_replace_the_plan() -> None:
    plan = apply_plan_update(new_plan("goal"), _update(2))

    replaced = merge_plan_update(
        plan, PlanUpdate(steps=[StepDraft("search again")], current_step_index=0, completion_criteria=[])
    )

    assert replaced is not plan
    assert [(step.id, step.description, step.status) for step in replaced.steps] == [
        ("step-1", "search again", "pending")
    ]
