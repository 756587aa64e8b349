"""Model-generated plan steps."""

import json
import logging

from src.llm.client import complete_text
from src.plans.models import PlanStep, Priority

logger = logging.getLogger(__name__)

PLANNER_SYSTEM_PROMPT = """\
You are Zoxaa's strategic planning system. Create a detailed, actionable plan \
with specific steps.

For each step, provide:
1. A clear, specific title
2. A detailed description of what needs to be done
3. Estimated priority level (low, medium, high)
4. Logical sequence and dependencies

Make steps:
- Specific and actionable
- Realistic and achievable
- Properly sequenced
- Include both preparation and execution phases
- Consider potential obstacles

Return a JSON array of steps in this format:
[{
  "title": "Research target companies in product management",
  "description": "Create a list of 20 companies you'd like to work for, research their product teams, recent launches, and company culture.",
  "priority": "high"
}]"""


def build_planner_prompt(title: str, description: str, goals: list[str]) -> str:
    return f"Plan Title: {title}\nDescription: {description}\nGoals: {', '.join(goals)}"


def parse_steps(text: str) -> list[PlanStep]:
    """Turn the model's JSON array into steps; entries without a title are skipped."""
    try:
        data = json.loads(text)
    except json.JSONDecodeError:
        start = text.find("[")
        end = text.rfind("]") + 1
        if start < 0 or end <= start:
            return []
        data = json.loads(text[start:end])

    if isinstance(data, dict):
        data = data.get("steps", [])
    if not isinstance(data, list):
        logger.warning("Planner returned %s instead of a list", type(data).__name__)
        return []

    steps = []
    for item in data:
        if not isinstance(item, dict) or not item.get("title"):
            continue
        try:
            priority = Priority(str(item.get("priority", "medium")).lower())
        except ValueError:
            priority = Priority.MEDIUM
        steps.append(
            PlanStep(
                title=str(item["title"]),
                description=str(item.get("description", "")),
                priority=priority,
            )
        )
    return steps


async def generate_plan_steps(title: str, description: str, goals: list[str]) -> list[PlanStep]:
    """Ask the model for an ordered step list. Any failure yields []."""
    try:
        raw = await complete_text(
            [{"role": "user", "content": build_planner_prompt(title, description, goals)}],
            system=PLANNER_SYSTEM_PROMPT,
        )
        return parse_steps(raw)
    except Exception:
        logger.exception("Failed to generate plan steps")
        return []
