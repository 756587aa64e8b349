"""Tests for Plan / PlanStep models."""

import pytest

from src.plans.models import (
    Plan,
    PlanStatus,
    PlanStep,
    Priority,
    completion_percentage,
    step_list,
    string_list,
)


def _steps(done: int, total: int) -> list[PlanStep]:
    return [PlanStep(title=f"step {i}", completed=i < done) for i in range(total)]


class TestCompletionPercentage:
    def test_no_steps_is_zero(self):
        assert completion_percentage([]) == 0

    @pytest.mark.parametrize(
        ("done", "total", "expected"),
        [(0, 3, 0), (1, 3, 33), (2, 3, 67), (3, 3, 100), (1, 8, 13), (1, 200, 1), (5, 8, 63)],
    )
    def test_rounds_half_up(self, done, total, expected):
        assert completion_percentage(_steps(done, total)) == expected

    def test_plan_property_tracks_steps(self):
        plan = Plan(title="Run a 10k", steps=_steps(1, 2))
        assert plan.completion_percentage == 50
        plan.steps[1].completed = True
        assert plan.completion_percentage == 100


class TestPlanStep:
    def test_defaults(self):
        step = PlanStep(title="Buy shoes")
        assert step.id.startswith("step_")
        assert step.priority == Priority.MEDIUM
        assert step.completed is False

    def test_string_priority_coerced(self):
        assert PlanStep(title="x", priority="high").priority == Priority.HIGH

    def test_invalid_priority_rejected(self):
        with pytest.raises(ValueError):
            PlanStep(title="x", priority="urgent")

    def test_from_dict_generates_id(self):
        step = PlanStep.from_dict({"title": "Stretch", "priority": "low"})
        assert step.id.startswith("step_")
        assert step.to_dict()["priority"] == "low"


class TestPlanSerialization:
    def test_to_dict_includes_derived_percentage(self):
        plan = Plan(title="Learn Spanish", goals=["B1 level"], steps=_steps(1, 4))
        data = plan.to_dict()
        assert data["completion_percentage"] == 25
        assert data["status"] == "active"
        assert data["goals"] == ["B1 level"]
        assert len(data["steps"]) == 4

    def test_row_round_trip_ignores_stored_percentage(self):
        plan = Plan(title="Learn Spanish", steps=_steps(1, 4), category="learning", tags=["lang"])
        row = list(plan.to_row())
        row[8] = 99
        restored = Plan.from_row(tuple(row))
        assert restored.completion_percentage == 25
        assert restored.category == "learning"
        assert restored.tags == ["lang"]
        assert restored.status == PlanStatus.ACTIVE


class TestStepValidation:
    @pytest.mark.parametrize("data", ["buy shoes", None, ["Buy shoes"], 3])
    def test_from_dict_rejects_non_objects(self, data):
        with pytest.raises(ValueError, match="JSON object"):
            PlanStep.from_dict(data)

    @pytest.mark.parametrize("title", [None, "", "   ", 7])
    def test_from_dict_requires_title(self, title):
        with pytest.raises(ValueError, match="title"):
            PlanStep.from_dict({"title": title})

    @pytest.mark.parametrize("completed", ["false", "true", 1, 0, None])
    def test_completed_must_be_bool(self, completed):
        with pytest.raises(ValueError, match="completed"):
            PlanStep.from_dict({"title": "Stretch", "completed": completed})

    def test_completed_bool_accepted(self):
        assert PlanStep.from_dict({"title": "Stretch", "completed": True}).completed is True

    def test_step_list(self):
        assert step_list(None) == []
        assert [s.title for s in step_list([{"title": "a"}, PlanStep(title="b")])] == ["a", "b"]
        with pytest.raises(ValueError, match="list"):
            step_list({"title": "a"})

    def test_string_list(self):
        assert string_list("goals", None) == []
        assert string_list("goals", ["a", "b"]) == ["a", "b"]
        for bad in (5, "a", ["a", 1]):
            with pytest.raises(ValueError, match="goals"):
                string_list("goals", bad)
