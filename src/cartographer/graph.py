"""The navigation graph discovered by a crawl and its checkpoint file."""

from __future__ import annotations

import hashlib
import json
import logging
import os
import tempfile
from pathlib import Path
from types import MappingProxyType
from typing import Dict, Iterable, List, Mapping, Optional

from pydantic import TypeAdapter, ValidationError

from .models import Element, Screen

logger = logging.getLogger(__name__)

_SCREEN_MAP = TypeAdapter(Dict[str, Screen])


class AppGraph:
    """Screen identity -> Screen. Screens are immutable; edges replace the record."""

    def __init__(self, screens: Optional[Mapping[str, Screen]] = None) -> None:
        self._screens: Dict[str, Screen] = dict(screens or {})

    @property
    def screens(self) -> Mapping[str, Screen]:
        return MappingProxyType(self._screens)

    def __contains__(self, screen_id: object) -> bool:
        return screen_id in self._screens

    def __len__(self) -> int:
        return len(self._screens)

    def get(self, screen_id: str) -> Optional[Screen]:
        return self._screens.get(screen_id)

    def screen_names(self) -> List[str]:
        return list(self._screens)

    def add_screen(self, screen: Screen) -> bool:
        """Store a newly discovered screen. Returns False when the identity is already known."""
        if screen.screen_id in self._screens:
            return False
        self._screens[screen.screen_id] = screen
        return True

    def record_edge(self, source_id: str, element: Element, destination_id: str) -> bool:
        """Point the stored ``element`` on ``source_id`` at ``destination_id``.

        The element is located by structural equality; no element is ever
        created to hold an edge. Returns False when either is missing.
        """
        source = self._screens.get(source_id)
        if source is None:
            return False
        idx = source.index_of(element)
        if idx is None:
            return False
        self._screens[source_id] = source.with_edge(idx, destination_id)
        return True

    def edges(self) -> Iterable[tuple[str, Element, str]]:
        for screen in self._screens.values():
            for idx, destination in sorted(screen.leads_to.items()):
                yield screen.screen_id, screen.elements[idx], destination

    def find_similar(self, fingerprint: str) -> Optional[str]:
        for screen in self._screens.values():
            if screen_fingerprint(screen.elements) == fingerprint:
                return screen.screen_id
        return None

    def to_json(self, indent: Optional[int] = 2) -> str:
        return json.dumps(_SCREEN_MAP.dump_python(self._screens, mode="json"), indent=indent, ensure_ascii=False)

    @classmethod
    def from_json(cls, data: str) -> "AppGraph":
        return cls(_SCREEN_MAP.validate_json(data))


def screen_fingerprint(elements: Iterable[Element]) -> str:
    """Structural digest of a screen: ordered role and resource id of its clickable elements."""
    parts = [f"{element.class_name or ''}#{element.resource_id or ''}" for element in elements if element.is_clickable]
    return hashlib.sha256("|".join(parts).encode("utf-8")).hexdigest()


class GraphStore:
    """Checkpoint file holding the whole graph, overwritten on every save."""

    def __init__(self, path: Path) -> None:
        self.path = path

    def save(self, graph: AppGraph) -> bool:
        """Write the graph atomically. Failures are logged and reported, never raised."""
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            fd, tmp_name = tempfile.mkstemp(prefix=".app_map-", suffix=".tmp", dir=self.path.parent)
            try:
                with os.fdopen(fd, "w", encoding="utf-8") as fh:
                    fh.write(graph.to_json())
                os.replace(tmp_name, self.path)
            except BaseException:
                Path(tmp_name).unlink(missing_ok=True)
                raise
        except OSError as exc:
            logger.error("Failed to save progress to %s: %s", self.path, exc)
            return False
        logger.info("Progress saved to %s (%s screens)", self.path, len(graph))
        return True

    def load(self) -> Optional[AppGraph]:
        if not self.path.exists():
            logger.error("App map file not found at %s", self.path)
            return None
        try:
            return AppGraph.from_json(self.path.read_text(encoding="utf-8"))
        except (OSError, ValidationError) as exc:
            logger.error("Error loading app map file %s: %s", self.path, exc)
            return None


__all__ = ["AppGraph", "GraphStore", "screen_fingerprint"]
