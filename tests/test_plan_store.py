"""Tests for PlanStore: libsql CRUD for plans and steps."""

from pathlib import Path

import pytest

from src.plans.models import Plan, PlanStatus, PlanStep, Priority
from src.plans.store import PlanStore

pytestmark = pytest.mark.usefixtures("_no_turso")


@pytest.fixture
def store(tmp_path: Path) -> PlanStore:
    """Create a PlanStore backed by a temp database."""
    return PlanStore(db_path=tmp_path / "test.db")


def _make_plan(title: str = "Switch to product management", **kwargs) -> Plan:
    defaults = {
        "description": "Move from marketing into a PM role",
        "goals": ["Land a PM job"],
        "steps": [PlanStep(title="Research companies"), PlanStep(title="Update resume")],
    }
    defaults.update(kwargs)
    return Plan(title=title, **defaults)


# -- create / get / list -------------------------------------------------------


async def test_create_and_get(store: PlanStore) -> None:
    plan = await store.create_plan(_make_plan())

    fetched = await store.get_plan(plan.id)
    assert fetched is not None
    assert fetched.title == "Switch to product management"
    assert [s.title for s in fetched.steps] == ["Research companies", "Update resume"]
    assert fetched.completion_percentage == 0


async def test_get_missing(store: PlanStore) -> None:
    assert await store.get_plan("plan_missing") is None


async def test_list_plans_by_status(store: PlanStore) -> None:
    active = await store.create_plan(_make_plan("Active one"))
    paused = await store.create_plan(_make_plan("Paused one", status=PlanStatus.PAUSED))

    assert {p.id for p in await store.list_plans()} == {active.id, paused.id}
    assert [p.id for p in await store.list_active_plans()] == [active.id]
    assert [p.id for p in await store.list_plans("paused")] == [paused.id]


async def test_list_plans_unknown_status(store: PlanStore) -> None:
    with pytest.raises(ValueError):
        await store.list_plans("someday")


# -- update_plan ---------------------------------------------------------------


async def test_update_plan_fields(store: PlanStore) -> None:
    plan = await store.create_plan(_make_plan())
    before = plan.updated_at

    updated = await store.update_plan(plan.id, status="completed", tags=["career"])

    assert updated is not None
    assert updated.status == PlanStatus.COMPLETED
    assert updated.tags == ["career"]
    assert updated.updated_at >= before
    fetched = await store.get_plan(plan.id)
    assert fetched.status == PlanStatus.COMPLETED


async def test_update_plan_rejects_percentage(store: PlanStore) -> None:
    plan = await store.create_plan(_make_plan())
    with pytest.raises(ValueError, match="completion_percentage"):
        await store.update_plan(plan.id, completion_percentage=80)


async def test_update_missing_plan(store: PlanStore) -> None:
    assert await store.update_plan("plan_missing", title="x") is None


async def test_delete_plan(store: PlanStore) -> None:
    plan = await store.create_plan(_make_plan())
    assert await store.delete_plan(plan.id) is True
    assert await store.get_plan(plan.id) is None
    assert await store.delete_plan(plan.id) is False


# -- steps ---------------------------------------------------------------------


async def test_completing_steps_recomputes_percentage(store: PlanStore) -> None:
    plan = await store.create_plan(_make_plan())
    step_id = plan.steps[0].id

    updated = await store.update_step(plan.id, step_id, completed=True)

    assert updated is not None
    assert updated.completion_percentage == 50
    fetched = await store.get_plan(plan.id)
    assert fetched.completion_percentage == 50
    assert fetched.find_step(step_id).completed is True


async def test_add_step(store: PlanStore) -> None:
    plan = await store.create_plan(_make_plan())
    await store.update_step(plan.id, plan.steps[0].id, completed=True)

    updated = await store.add_step(plan.id, PlanStep(title="Practice interviews", priority="high"))

    assert len(updated.steps) == 3
    assert updated.steps[-1].priority == Priority.HIGH
    assert updated.completion_percentage == 33


async def test_update_step_priority(store: PlanStore) -> None:
    plan = await store.create_plan(_make_plan())
    updated = await store.update_step(plan.id, plan.steps[1].id, priority="low")
    assert updated.steps[1].priority == Priority.LOW


async def test_update_step_unknown_field(store: PlanStore) -> None:
    plan = await store.create_plan(_make_plan())
    with pytest.raises(ValueError):
        await store.update_step(plan.id, plan.steps[0].id, id="step_other")


async def test_update_missing_step(store: PlanStore) -> None:
    plan = await store.create_plan(_make_plan())
    assert await store.update_step(plan.id, "step_missing", completed=True) is None
    assert await store.update_step("plan_missing", "step_missing", completed=True) is None


async def test_delete_step(store: PlanStore) -> None:
    plan = await store.create_plan(_make_plan())
    await store.update_step(plan.id, plan.steps[0].id, completed=True)

    updated = await store.delete_step(plan.id, plan.steps[1].id)

    assert [s.title for s in updated.steps] == ["Research companies"]
    assert updated.completion_percentage == 100
    assert await store.delete_step(plan.id, "step_missing") is None


async def test_empty_plan_is_zero_percent(store: PlanStore) -> None:
    plan = await store.create_plan(_make_plan(steps=[]))
    assert (await store.get_plan(plan.id)).completion_percentage == 0


# -- validation ----------------------------------------------------------------


@pytest.mark.parametrize(
    "changes",
    [
        {"title": None},
        {"title": "  "},
        {"goals": 5},
        {"tags": ["ok", 3]},
        {"steps": ["buy shoes"]},
        {"steps": {"title": "x"}},
        {"description": 12},
        {"status": "someday"},
    ],
)
async def test_update_plan_rejects_bad_values(store: PlanStore, changes: dict) -> None:
    plan = await store.create_plan(_make_plan())
    with pytest.raises(ValueError):
        await store.update_plan(plan.id, **changes)
    fetched = await store.get_plan(plan.id)
    assert fetched.title == "Switch to product management"
    assert len(fetched.steps) == 2


async def test_update_plan_replaces_steps(store: PlanStore) -> None:
    plan = await store.create_plan(_make_plan())
    updated = await store.update_plan(plan.id, steps=[{"title": "Only step", "completed": True}])
    assert [s.title for s in updated.steps] == ["Only step"]
    assert updated.completion_percentage == 100


@pytest.mark.parametrize("value", ["false", "true", 1, None])
async def test_update_step_completed_must_be_bool(store: PlanStore, value) -> None:
    plan = await store.create_plan(_make_plan())
    with pytest.raises(ValueError, match="completed"):
        await store.update_step(plan.id, plan.steps[0].id, completed=value)
    fetched = await store.get_plan(plan.id)
    assert fetched.steps[0].completed is False
    assert fetched.completion_percentage == 0


async def test_update_step_title_required(store: PlanStore) -> None:
    plan = await store.create_plan(_make_plan())
    with pytest.raises(ValueError, match="title"):
        await store.update_step(plan.id, plan.steps[0].id, title=None)
