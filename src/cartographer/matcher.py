"""Fuzzy lookup of an element by visible text or accessibility label."""

from __future__ import annotations

import logging
from typing import Callable, List, Optional, Sequence

from .models import Element

logger = logging.getLogger(__name__)


def find_element(
    elements: Sequence[Element],
    text_query: Optional[str],
    role_filter: Optional[str] = None,
) -> Optional[Element]:
    """Return the best match for ``text_query``, or None.

    Priority: exact text, exact label, substring text, substring label, all
    case-insensitive. A role filter narrows the pool first and is never
    relaxed, since it exists to tell apart elements sharing the same text.
    """
    query = (text_query or "").strip().lower()
    if not query:
        return None

    candidates: List[Element] = list(elements)
    if role_filter and role_filter.strip():
        candidates = [element for element in candidates if role_matches(element, role_filter)]
        if not candidates:
            logger.warning("No elements with role %r; %r may not be on screen", role_filter, text_query)
            return None

    rules: List[Callable[[Element], bool]] = [
        lambda el: _lower(el.text) == query,
        lambda el: _lower(el.content_description) == query,
        lambda el: query in _lower(el.text),
        lambda el: query in _lower(el.content_description),
    ]
    for rule in rules:
        for element in candidates:
            if rule(element):
                return element

    logger.warning(
        "No element found matching %r%s",
        text_query,
        f" with role {role_filter!r}" if role_filter else "",
    )
    return None


def role_matches(element: Element, role_filter: str) -> bool:
    """Match a role on its full class name or on the simple name after the last dot."""
    wanted = role_filter.strip().lower()
    full = _lower(element.class_name)
    if not full:
        return False
    return full == wanted or element.simple_class_name.lower() == wanted


def _lower(value: Optional[str]) -> str:
    return (value or "").lower()
