"""Turn raw accessibility tree dumps into Element records."""

from __future__ import annotations

import logging
import re
from typing import Dict, List, Optional
from xml.etree import ElementTree

from .models import Bounds, Element

logger = logging.getLogger(__name__)

_BOUNDS_PATTERN = re.compile(r"^\s*\[\s*(-?\d+)\s*,\s*(-?\d+)\s*\]\s*\[\s*(-?\d+)\s*,\s*(-?\d+)\s*\]\s*$")


class BoundsParseError(ValueError):
    """Raised when a bounds attribute is not of the form ``[x1,y1][x2,y2]``."""


def parse_bounds(value: Optional[str]) -> Bounds:
    """Parse ``[x1,y1][x2,y2]`` into normalized Bounds, whatever the corner order."""
    if not value:
        raise BoundsParseError("empty bounds")
    match = _BOUNDS_PATTERN.match(value)
    if not match:
        raise BoundsParseError(f"malformed bounds: {value!r}")
    x1, y1, x2, y2 = (int(group) for group in match.groups())
    return Bounds(left=min(x1, x2), top=min(y1, y2), right=max(x1, x2), bottom=max(y1, y2))


def parse_tree(document: Optional[str], viewport_width: int, viewport_height: int) -> List[Element]:
    """Return every ``<node>`` of ``document`` as an Element, in document order.

    Malformed or truncated documents yield the nodes read before the error.
    Nodes lying entirely outside the viewport are dropped.
    """
    if not document or not document.strip():
        return []

    elements: List[Element] = []
    parser = ElementTree.XMLPullParser(events=("start",))
    try:
        parser.feed(document)
        for _, node in parser.read_events():
            if node.tag != "node":
                continue
            element = _element_from_attributes(node.attrib)
            if element.bounds is not None and not element.bounds.intersects(viewport_width, viewport_height):
                continue
            elements.append(element)
        parser.close()
    except ElementTree.ParseError as exc:
        logger.warning("Tree document is malformed; kept %s elements parsed before the error: %s", len(elements), exc)
    return elements


def _element_from_attributes(attributes: Dict[str, str]) -> Element:
    bounds: Optional[Bounds] = None
    raw_bounds = attributes.get("bounds")
    if raw_bounds:
        try:
            bounds = parse_bounds(raw_bounds)
        except BoundsParseError as exc:
            logger.debug("Ignoring bounds on node: %s", exc)
    return Element(
        resource_id=_clean(attributes.get("resource-id")),
        text=_clean(attributes.get("text")),
        content_description=_clean(attributes.get("content-desc")),
        class_name=_clean(attributes.get("class")),
        bounds=bounds,
        is_clickable=_flag(attributes.get("clickable")),
        is_long_clickable=_flag(attributes.get("long-clickable")),
        is_password=_flag(attributes.get("password")),
    )


def _clean(value: Optional[str]) -> Optional[str]:
    if value is None:
        return None
    return value if value.strip() else None


def _flag(value: Optional[str]) -> bool:
    return (value or "").strip().lower() == "true"
