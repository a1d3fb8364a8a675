"""Core data models for the crawler and the planner."""

from enum import Enum
from typing import Dict, List, Literal, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field


class Bounds(BaseModel):
    model_config = ConfigDict(frozen=True)

    left: int
    top: int
    right: int
    bottom: int

    @property
    def center(self) -> Tuple[int, int]:
        return (self.left + self.right) // 2, (self.top + self.bottom) // 2

    def intersects(self, width: int, height: int) -> bool:
        """True when any part of the box lies inside a ``width`` x ``height`` viewport."""
        return self.right >= 0 and self.bottom >= 0 and self.left <= width and self.top <= height


class Element(BaseModel):
    """A single node of the accessibility tree.

    Elements are immutable and compare structurally, so the copy held by a
    frontier task is equal to the one stored on its source screen.
    """

    model_config = ConfigDict(frozen=True)

    resource_id: Optional[str] = None
    text: Optional[str] = None
    content_description: Optional[str] = None
    class_name: Optional[str] = None
    bounds: Optional[Bounds] = None
    is_clickable: bool = False
    is_long_clickable: bool = False
    is_password: bool = False

    @property
    def display_name(self) -> str:
        return self.text or self.content_description or self.resource_id or "unknown_element"

    @property
    def simple_class_name(self) -> str:
        return (self.class_name or "").rsplit(".", 1)[-1]


class ElementClass(str, Enum):
    STATIC_NAVIGATION = "STATIC_NAVIGATION"
    DYNAMIC_CONTENT_LINK = "DYNAMIC_CONTENT_LINK"
    ACTION_BUTTON = "ACTION_BUTTON"
    IGNORE = "IGNORE"


class ClassifiedElement(BaseModel):
    element: Element
    classification: ElementClass


class ScreenClassification(BaseModel):
    screen_name: str
    elements: List[ClassifiedElement] = Field(default_factory=list)


class Screen(BaseModel):
    """A discovered screen. ``leads_to`` maps element positions to destination screens."""

    model_config = ConfigDict(frozen=True)

    screen_id: str
    elements: Tuple[Element, ...] = ()
    leads_to: Dict[int, str] = Field(default_factory=dict)
    depth: int = 0

    def index_of(self, element: Element) -> Optional[int]:
        for idx, candidate in enumerate(self.elements):
            if candidate == element:
                return idx
        return None

    def destination_of(self, element: Element) -> Optional[str]:
        idx = self.index_of(element)
        if idx is None:
            return None
        return self.leads_to.get(idx)

    def with_edge(self, index: int, destination: str) -> "Screen":
        if not 0 <= index < len(self.elements):
            raise IndexError(f"element index {index} out of range for screen {self.screen_id!r}")
        return self.model_copy(update={"leads_to": {**self.leads_to, index: destination}})


class FrontierTask(BaseModel):
    model_config = ConfigDict(frozen=True)

    source_screen_id: str
    element: Element


class ActionStep(BaseModel):
    model_config = ConfigDict(frozen=True, extra="forbid")

    action: Literal["open_app", "tap", "type", "back", "home"]
    app_name: Optional[str] = None
    element_text: Optional[str] = None
    text: Optional[str] = None
    role_filter: Optional[str] = None


class StepOutcome(BaseModel):
    index: int
    action: str
    status: Literal["ok", "skipped", "failed"]
    detail: Optional[str] = None
