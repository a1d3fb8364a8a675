"""Single oracle call that names the current screen and classifies its clickable elements."""

from __future__ import annotations

import json
import logging
from typing import Dict, List, Optional, Sequence

from pydantic import BaseModel, Field, ValidationError, field_validator

from .models import ClassifiedElement, Element, ElementClass, ScreenClassification
from .oracle import CompletionOracle, OracleError, extract_json_payload

logger = logging.getLogger(__name__)

SYSTEM_PROMPT = (
    "You are an expert Android UI analyst. You identify screens by their purpose and classify "
    "their clickable elements. Respond with a single JSON object and nothing else."
)


class _OracleElement(BaseModel):
    id: int
    classification: ElementClass


class _OracleAnalysis(BaseModel):
    screenName: str
    elements: List[_OracleElement] = Field(default_factory=list)

    @field_validator("screenName")
    @classmethod
    def _non_blank(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("screenName must not be blank")
        return value


class ScreenAnalyzer:
    """Ask the oracle for a screen identity plus a role for every clickable element."""

    def __init__(self, oracle: CompletionOracle) -> None:
        self.oracle = oracle

    async def classify(
        self,
        elements: Sequence[Element],
        known_screen_names: Sequence[str],
    ) -> Optional[ScreenClassification]:
        """Return the classification, or None on any failure.

        Ids sent to the oracle are dense positions over the clickable subset
        and only serve to map the answer back onto those elements.
        """
        submitted = [element for element in elements if element.is_clickable]
        if not submitted:
            logger.info("No clickable elements on screen; skipping classification")
            return None

        prompt = build_analysis_prompt(submitted, known_screen_names)
        try:
            raw = await self.oracle.complete(prompt, system=SYSTEM_PROMPT)
        except OracleError as exc:
            logger.error("Screen classification failed: %s", exc)
            return None

        payload_str = extract_json_payload(raw, "{")
        try:
            payload = json.loads(payload_str)
        except json.JSONDecodeError as exc:
            logger.error("Classifier returned invalid JSON: %r (%s)", raw, exc)
            return None

        try:
            analysis = _OracleAnalysis.model_validate(payload)
        except ValidationError as exc:
            logger.error("Classifier response failed validation: %s", exc)
            return None

        classified: List[ClassifiedElement] = []
        seen: Dict[int, ElementClass] = {}
        for entry in analysis.elements:
            if not 0 <= entry.id < len(submitted):
                logger.error("Classifier returned an out-of-range element id %s; skipping", entry.id)
                continue
            if entry.id in seen:
                logger.debug("Duplicate classification for element id %s; keeping the first", entry.id)
                continue
            seen[entry.id] = entry.classification
            classified.append(ClassifiedElement(element=submitted[entry.id], classification=entry.classification))

        logger.debug("Screen %r: %s of %s elements classified", analysis.screenName, len(classified), len(submitted))
        return ScreenClassification(screen_name=analysis.screenName, elements=classified)


def build_analysis_prompt(submitted: Sequence[Element], known_screen_names: Sequence[str]) -> str:
    elements_json = json.dumps(
        [
            {
                "id": idx,
                "resource_id": element.resource_id,
                "text": element.text,
                "content_description": element.content_description,
                "class_name": element.class_name,
            }
            for idx, element in enumerate(submitted)
        ],
        ensure_ascii=False,
        indent=2,
    )
    known_json = json.dumps(list(known_screen_names), ensure_ascii=False)
    lines = [
        "Perform two actions in a single step:",
        "1. Identify Screen: decide the purpose of the screen. Reuse a name from KNOWN_SCREEN_TYPES when the "
        "screen serves the same purpose (e.g. a chat list, even with different people in it); otherwise create "
        "a new descriptive PascalCase name that ignores dynamic content (UserProfileScreen, not JohnDoeProfileScreen).",
        "2. Classify Elements: give every element in CLICKABLE_ELEMENTS_TO_ANALYZE exactly one classification.",
        "",
        "Classifications (use these exact strings):",
        '- "STATIC_NAVIGATION": leads to a major, static part of the app (Settings, Profile, a Home tab).',
        '- "DYNAMIC_CONTENT_LINK": opens one item of a list (a single chat, an article, a contact).',
        '- "ACTION_BUTTON": performs an action on the current screen (Send, Like, Delete, Reply).',
        '- "IGNORE": decorative or unimportant elements.',
        "",
        "The `id` of each output entry MUST match the `id` of the input element.",
        'Output format: {"screenName": "string", "elements": [{"id": 0, "classification": "STATIC_NAVIGATION"}]}',
        "",
        "KNOWN_SCREEN_TYPES:",
        known_json,
        "",
        "CLICKABLE_ELEMENTS_TO_ANALYZE:",
        elements_json,
    ]
    return "\n".join(lines)


__all__ = ["ScreenAnalyzer", "build_analysis_prompt"]
