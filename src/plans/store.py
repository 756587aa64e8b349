"""PlanStore: libsql CRUD for plans and their steps.

Every write goes through ``_save``, which stamps ``updated_at`` and stores
the completion percentage recomputed from the steps.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

from src.db import Repository
from src.plans.models import (
    Plan,
    PlanStatus,
    PlanStep,
    Priority,
    optional_text,
    require_bool,
    require_text,
    step_list,
    string_list,
)

if TYPE_CHECKING:
    from pathlib import Path

logger = logging.getLogger(__name__)

_CREATE_TABLE = """
CREATE TABLE IF NOT EXISTS plans (
    id                    TEXT PRIMARY KEY,
    title                 TEXT NOT NULL,
    description           TEXT NOT NULL DEFAULT '',
    goals                 TEXT NOT NULL DEFAULT '[]',
    steps                 TEXT NOT NULL DEFAULT '[]',
    status                TEXT NOT NULL,
    category              TEXT,
    tags                  TEXT NOT NULL DEFAULT '[]',
    completion_percentage INTEGER NOT NULL DEFAULT 0,
    created_at            TEXT NOT NULL,
    updated_at            TEXT NOT NULL
)
"""

_COLUMNS = (
    "id, title, description, goals, steps, status, category, tags, "
    "completion_percentage, created_at, updated_at"
)

PLAN_FIELDS = frozenset({"title", "description", "goals", "steps", "status", "category", "tags"})
STEP_FIELDS = frozenset({"title", "description", "completed", "priority", "due_date"})


def _check_fields(changes: dict[str, Any], allowed: frozenset[str]) -> None:
    unknown = set(changes) - allowed
    if unknown:
        msg = f"Cannot update field(s): {', '.join(sorted(unknown))}"
        raise ValueError(msg)


def _plan_value(name: str, value: Any) -> Any:
    match name:
        case "title":
            return require_text(name, value)
        case "description":
            return optional_text(name, value, "")
        case "category":
            return optional_text(name, value)
        case "status":
            return PlanStatus(value)
        case "goals" | "tags":
            return string_list(name, value)
        case "steps":
            return step_list(value)
        case _:
            return value


def _step_value(name: str, value: Any) -> Any:
    match name:
        case "title":
            return require_text(name, value)
        case "description":
            return optional_text(name, value, "")
        case "due_date":
            return optional_text(name, value)
        case "completed":
            return require_bool(name, value)
        case "priority":
            return Priority(value)
        case _:
            return value


class PlanStore(Repository):
    """Persists plans in SQLite / Turso.

    Singleton accessed via ``PlanStore.get()``.  Pass an explicit *db_path*
    for test isolation (e.g. ``tmp_path / "test.db"``).
    """

    schema = (_CREATE_TABLE,)
    _instance: PlanStore | None = None

    def __init__(self, db_path: Path | None = None) -> None:
        super().__init__(db_path)

    @classmethod
    def get(cls) -> PlanStore:
        """Return the shared PlanStore instance."""
        if cls._instance is None:
            cls._instance = cls()
        return cls._instance

    @classmethod
    def _reset(cls) -> None:
        """Reset the singleton (for testing)."""
        cls._instance = None

    # -- Internal helpers ------------------------------------------------------

    async def _save(self, plan: Plan) -> Plan:
        plan.touch()
        async with self.connect() as db:
            await db.execute(
                f"INSERT OR REPLACE INTO plans ({_COLUMNS}) "
                "VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)",
                plan.to_row(),
            )
            await db.commit()
        return plan

    # -- Plans -----------------------------------------------------------------

    async def create_plan(self, plan: Plan) -> Plan:
        """Insert a new plan. Returns the same plan object."""
        await self._save(plan)
        logger.info("Created plan: %s (%s, %d steps)", plan.title, plan.id, len(plan.steps))
        return plan

    async def get_plan(self, plan_id: str) -> Plan | None:
        """Fetch a plan by ID, or None if not found."""
        async with self.connect() as db:
            cursor = await db.execute(f"SELECT {_COLUMNS} FROM plans WHERE id = ?", (plan_id,))
            row = await cursor.fetchone()
        return Plan.from_row(row) if row else None

    async def list_plans(self, status: PlanStatus | str | None = None) -> list[Plan]:
        """All plans, newest first, optionally filtered by status."""
        async with self.connect() as db:
            if status is None:
                cursor = await db.execute(
                    f"SELECT {_COLUMNS} FROM plans ORDER BY created_at DESC"
                )
            else:
                cursor = await db.execute(
                    f"SELECT {_COLUMNS} FROM plans WHERE status = ? ORDER BY created_at DESC",
                    (PlanStatus(status).value,),
                )
            rows = await cursor.fetchall()
        return [Plan.from_row(row) for row in rows]

    async def list_active_plans(self) -> list[Plan]:
        return await self.list_plans(PlanStatus.ACTIVE)

    async def update_plan(self, plan_id: str, **changes: Any) -> Plan | None:
        """Apply *changes* to a plan. Returns None if the plan does not exist.

        Raises ``ValueError`` for fields that cannot be set, which includes
        ``completion_percentage``.
        """
        _check_fields(changes, PLAN_FIELDS)
        plan = await self.get_plan(plan_id)
        if plan is None:
            return None
        for name, value in changes.items():
            setattr(plan, name, _plan_value(name, value))
        return await self._save(plan)

    async def delete_plan(self, plan_id: str) -> bool:
        """Delete a plan. Returns True if a row was removed."""
        async with self.connect() as db:
            cursor = await db.execute("DELETE FROM plans WHERE id = ?", (plan_id,))
            await db.commit()
            deleted = cursor.rowcount > 0
        if deleted:
            logger.info("Deleted plan: %s", plan_id)
        return deleted

    # -- Steps -----------------------------------------------------------------

    async def add_step(self, plan_id: str, step: PlanStep) -> Plan | None:
        """Append *step* to the plan. Returns None if the plan does not exist."""
        plan = await self.get_plan(plan_id)
        if plan is None:
            return None
        plan.steps.append(step)
        return await self._save(plan)

    async def update_step(self, plan_id: str, step_id: str, **changes: Any) -> Plan | None:
        """Apply *changes* to one step. Returns None if plan or step is missing."""
        _check_fields(changes, STEP_FIELDS)
        plan = await self.get_plan(plan_id)
        if plan is None:
            return None
        step = plan.find_step(step_id)
        if step is None:
            return None
        for name, value in changes.items():
            setattr(step, name, _step_value(name, value))
        return await self._save(plan)

    async def delete_step(self, plan_id: str, step_id: str) -> Plan | None:
        """Remove one step. Returns None if plan or step is missing."""
        plan = await self.get_plan(plan_id)
        if plan is None or plan.find_step(step_id) is None:
            return None
        plan.steps = [step for step in plan.steps if step.id != step_id]
        return await self._save(plan)
