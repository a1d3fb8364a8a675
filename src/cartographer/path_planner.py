"""Conductor: turn a goal plus the crawled app map into an ordered action plan."""

from __future__ import annotations

import json
import logging
from typing import List

from pydantic import TypeAdapter, ValidationError

from .graph import AppGraph
from .models import ActionStep
from .oracle import CompletionOracle, OracleError, extract_json_payload

logger = logging.getLogger(__name__)

MAX_SUMMARY_SCREENS = 40
MAX_SUMMARY_ELEMENTS = 30
MAX_SUMMARY_CHARS = 12000

_PLAN = TypeAdapter(List[ActionStep])

SYSTEM_PROMPT = (
    'You are the "Conductor", an expert task planner for an Android device. '
    "You produce step-by-step execution plans as a JSON array and nothing else."
)


class PlanSynthesisError(RuntimeError):
    """Raised when no valid plan could be produced for a goal."""


class PathPlanner:
    """Ask the oracle for a plan over the fixed action vocabulary and validate it."""

    def __init__(self, oracle: CompletionOracle) -> None:
        self.oracle = oracle

    async def synthesize(self, goal: str, graph: AppGraph) -> List[ActionStep]:
        if not goal or not goal.strip():
            raise PlanSynthesisError("Goal text is empty")

        prompt = build_planner_prompt(goal, graph)
        try:
            raw = await self.oracle.complete(prompt, system=SYSTEM_PROMPT)
        except OracleError as exc:
            raise PlanSynthesisError(f"Oracle failed while planning: {exc}") from exc

        payload_str = extract_json_payload(raw, "[")
        try:
            payload = json.loads(payload_str)
        except json.JSONDecodeError as exc:
            raise PlanSynthesisError(f"Planner returned invalid JSON: {raw!r}") from exc
        if not isinstance(payload, list):
            raise PlanSynthesisError("Planner response must be a JSON array")

        try:
            steps = _PLAN.validate_python(payload)
        except ValidationError as exc:
            raise PlanSynthesisError(f"Planner response failed validation: {payload}") from exc
        if not steps:
            raise PlanSynthesisError("Planner returned an empty plan")

        logger.info("Plan generated with %s steps for goal %r", len(steps), goal)
        return steps


def summarize_graph(
    graph: AppGraph,
    *,
    max_screens: int = MAX_SUMMARY_SCREENS,
    max_elements: int = MAX_SUMMARY_ELEMENTS,
    max_chars: int = MAX_SUMMARY_CHARS,
) -> str:
    """Render the app map as text: one block per screen, one line per labelled element."""
    lines: List[str] = []
    for screen in list(graph.screens.values())[:max_screens]:
        lines.append(f"Screen: {screen.screen_id}")
        shown = 0
        for idx, element in enumerate(screen.elements):
            if shown >= max_elements:
                lines.append("- ...")
                break
            label = element.content_description or element.text
            if not label or not label.strip():
                continue
            line = f'- Type: {element.simple_class_name or "unknown_type"}, Text: "{label.strip()}"'
            destination = screen.leads_to.get(idx)
            if destination:
                line += f" -> {destination}"
            lines.append(line)
            shown += 1
        lines.append("")

    summary = "\n".join(lines)
    if len(summary) > max_chars:
        summary = summary[:max_chars].rsplit("\n", 1)[0] + "\n[app map truncated]"
    return summary


def build_planner_prompt(goal: str, graph: AppGraph) -> str:
    example = json.dumps(
        [
            {"action": "open_app", "app_name": "WhatsApp"},
            {"action": "tap", "element_text": "Search"},
            {"action": "type", "text": "Ayush Chaudhary"},
            {"action": "tap", "element_text": "Ayush Chaudhary", "role_filter": "TextView"},
        ],
        indent=2,
    )
    return "\n".join(
        [
            "Generate a JSON array of actions that accomplishes the following task:",
            f"`{goal.strip()}`",
            "",
            "App map (screens and the elements on them; '->' marks where an element leads):",
            "```text",
            summarize_graph(graph),
            "```",
            "",
            "Available actions:",
            "- open_app: opens an application. Requires `app_name`.",
            "- tap: taps an element. Requires `element_text`; optional `role_filter`.",
            "- type: types text into the focused input. Requires `text`.",
            "- back: navigates back.",
            "- home: goes to the home screen.",
            "",
            "Rules:",
            "- Respond with a valid JSON array and nothing else. Use only the actions listed above.",
            "- After a `type` step the next tap can be ambiguous (the search box and the result share the same text). "
            "Add `role_filter` with the element type of the intended target, e.g. `TextView` for the result rather "
            "than the `EditText` you typed into.",
            "",
            "Example for the task \"Search for Ayush and open his chat\":",
            example,
        ]
    )


__all__ = ["PathPlanner", "PlanSynthesisError", "build_planner_prompt", "summarize_graph"]
