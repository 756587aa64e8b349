"""Plan and PlanStep data models."""

from __future__ import annotations

import json
import math
import uuid
from dataclasses import asdict, dataclass, field
from datetime import UTC, datetime
from enum import StrEnum
from typing import Any


class PlanStatus(StrEnum):
    ACTIVE = "active"
    COMPLETED = "completed"
    PAUSED = "paused"
    ARCHIVED = "archived"


class Priority(StrEnum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


def make_plan_id() -> str:
    return f"plan_{uuid.uuid4().hex}"


def make_step_id() -> str:
    return f"step_{uuid.uuid4().hex}"


def _now() -> str:
    return datetime.now(UTC).isoformat()


def completion_percentage(steps: list[PlanStep]) -> int:
    """Rounded share of completed steps, 0–100; halves round up. No steps → 0."""
    if not steps:
        return 0
    done = sum(1 for step in steps if step.completed)
    return math.floor(100 * done / len(steps) + 0.5)


def require_text(name: str, value: Any) -> str:
    """Return *value* stripped, or raise ``ValueError`` unless it is a non-empty string."""
    if not isinstance(value, str) or not value.strip():
        msg = f"{name} must be a non-empty string"
        raise ValueError(msg)
    return value.strip()


def optional_text(name: str, value: Any, default: str | None = None) -> str | None:
    if value is None:
        return default
    if not isinstance(value, str):
        msg = f"{name} must be a string"
        raise ValueError(msg)
    return value


def require_bool(name: str, value: Any) -> bool:
    if not isinstance(value, bool):
        msg = f"{name} must be true or false"
        raise ValueError(msg)
    return value


def string_list(name: str, value: Any) -> list[str]:
    """A list of strings; None means empty."""
    if value is None:
        return []
    if not isinstance(value, list) or not all(isinstance(item, str) for item in value):
        msg = f"{name} must be a list of strings"
        raise ValueError(msg)
    return list(value)


@dataclass
class PlanStep:
    """One ordered step of a plan.

    Attributes:
        id: ``step_<hex>``.
        title: Short imperative title.
        description: What needs doing.
        completed: Whether the user ticked it off.
        priority: low, medium or high.
        due_date: Optional ISO 8601 date.
    """

    title: str
    description: str = ""
    completed: bool = False
    priority: Priority = Priority.MEDIUM
    due_date: str | None = None
    id: str = field(default_factory=make_step_id)

    def __post_init__(self) -> None:
        self.priority = Priority(self.priority)

    def to_dict(self) -> dict[str, Any]:
        data = asdict(self)
        data["priority"] = self.priority.value
        return data

    @classmethod
    def from_dict(cls, data: Any) -> PlanStep:
        """Build a step from client or stored JSON. Raises ``ValueError`` on bad input."""
        if not isinstance(data, dict):
            msg = "each step must be a JSON object"
            raise ValueError(msg)
        return cls(
            id=optional_text("id", data.get("id")) or make_step_id(),
            title=require_text("title", data.get("title")),
            description=optional_text("description", data.get("description"), ""),
            completed=require_bool("completed", data.get("completed", False)),
            priority=data.get("priority") or Priority.MEDIUM,
            due_date=optional_text("due_date", data.get("due_date")),
        )


def step_list(value: Any) -> list[PlanStep]:
    """Steps from a JSON list of step objects; None means no steps."""
    if value is None:
        return []
    if not isinstance(value, list):
        msg = "steps must be a list"
        raise ValueError(msg)
    return [s if isinstance(s, PlanStep) else PlanStep.from_dict(s) for s in value]


@dataclass
class Plan:
    """A user goal broken into ordered steps.

    ``completion_percentage`` is derived from the steps on every read and is
    not a field; there is no way to set it.
    """

    title: str
    description: str = ""
    goals: list[str] = field(default_factory=list)
    steps: list[PlanStep] = field(default_factory=list)
    status: PlanStatus = PlanStatus.ACTIVE
    category: str | None = None
    tags: list[str] = field(default_factory=list)
    id: str = field(default_factory=make_plan_id)
    created_at: str = field(default_factory=_now)
    updated_at: str = field(default_factory=_now)

    def __post_init__(self) -> None:
        self.status = PlanStatus(self.status)

    @property
    def completion_percentage(self) -> int:
        return completion_percentage(self.steps)

    def find_step(self, step_id: str) -> PlanStep | None:
        return next((step for step in self.steps if step.id == step_id), None)

    def touch(self) -> None:
        self.updated_at = _now()

    # -- Serialization ---------------------------------------------------------

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "title": self.title,
            "description": self.description,
            "goals": list(self.goals),
            "steps": [step.to_dict() for step in self.steps],
            "status": self.status.value,
            "category": self.category,
            "tags": list(self.tags),
            "completion_percentage": self.completion_percentage,
            "created_at": self.created_at,
            "updated_at": self.updated_at,
        }

    def to_row(self) -> tuple:
        """Serialize to a tuple matching the ``plans`` column order."""
        return (
            self.id,
            self.title,
            self.description,
            json.dumps(self.goals),
            json.dumps([step.to_dict() for step in self.steps]),
            self.status.value,
            self.category,
            json.dumps(self.tags),
            self.completion_percentage,
            self.created_at,
            self.updated_at,
        )

    @classmethod
    def from_row(cls, row: tuple) -> Plan:
        """Deserialize from a SQLite row tuple (the stored percentage is ignored)."""
        return cls(
            id=row[0],
            title=row[1],
            description=row[2] or "",
            goals=json.loads(row[3]),
            steps=[PlanStep.from_dict(s) for s in json.loads(row[4])],
            status=PlanStatus(row[5]),
            category=row[6],
            tags=json.loads(row[7]),
            created_at=row[9],
            updated_at=row[10],
        )
