"""Breadth-first crawler that maps an app's screens and the elements linking them."""

from __future__ import annotations

import logging
from collections import deque
from typing import Deque, List, Optional, Set, Tuple

from .config import CRAWL_SETTLE_SECONDS, MAX_INTERACTIONS, VIEWPORT
from .device import DeviceController, ScreenReader, tap_point
from .graph import AppGraph, GraphStore, screen_fingerprint
from .models import ClassifiedElement, ElementClass, FrontierTask, Screen
from .parser import parse_tree
from .robustness import settle
from .screen_analyzer import ScreenAnalyzer

logger = logging.getLogger(__name__)

# Template key shared by dynamic links that carry no resource id.
_ANONYMOUS_TEMPLATE = "dynamic_link"


class Cartographer:
    """Owns the graph and the frontier for one crawl session.

    ``INIT`` processes the starting screen, then tasks are popped FIFO: tap,
    settle, process the destination, record the edge, maybe navigate back,
    checkpoint. Nothing outside this instance mutates the graph while a crawl
    runs; :attr:`graph` hands out copies.
    """

    def __init__(
        self,
        reader: ScreenReader,
        controller: DeviceController,
        analyzer: ScreenAnalyzer,
        store: Optional[GraphStore] = None,
        *,
        graph: Optional[AppGraph] = None,
        viewport: Tuple[int, int] = VIEWPORT,
        max_interactions: int = MAX_INTERACTIONS,
        settle_seconds: float = CRAWL_SETTLE_SECONDS,
    ) -> None:
        self.reader = reader
        self.controller = controller
        self.analyzer = analyzer
        self.store = store
        self.viewport = viewport
        self.max_interactions = max_interactions
        self.settle_seconds = settle_seconds

        self._graph = graph if graph is not None else AppGraph()
        self._known_screen_names: List[str] = self._graph.screen_names()
        self._frontier: Deque[FrontierTask] = deque()
        self._explored_templates: Set[str] = set()
        self._running = False
        self.interactions = 0

    @property
    def graph(self) -> AppGraph:
        return AppGraph({name: screen.model_copy(deep=True) for name, screen in self._graph.screens.items()})

    @property
    def known_screen_names(self) -> List[str]:
        return list(self._known_screen_names)

    @property
    def frontier_size(self) -> int:
        return len(self._frontier)

    async def crawl(self) -> str:
        """Run the crawl to completion and return the serialized graph."""
        if self._running:
            raise RuntimeError("A crawl is already running on this Cartographer")
        self._running = True
        try:
            logger.info("Starting crawl with max interactions: %s", self.max_interactions)
            await self.process_screen(depth=0)
            self._checkpoint()

            while self._frontier and self.interactions < self.max_interactions:
                task = self._frontier.popleft()
                await self.execute_task(task)
                self._checkpoint()
                logger.info("--- [TASK END] ---")

            reason = "Queue empty" if not self._frontier else "Max interactions reached"
            logger.info(
                "Crawl finished. Reason: %s. Total taps: %s. Discovered screens: %s",
                reason,
                self.interactions,
                len(self._graph),
            )
            return self._graph.to_json()
        finally:
            self._running = False

    async def process_screen(self, depth: int) -> Optional[str]:
        """Capture, parse and classify the current screen; store it if new.

        Returns the screen identity, or None when the screen could not be
        identified (in which case nothing is recorded).
        """
        document = await self.reader.capture_tree()
        if not document or not document.strip():
            logger.error("Received a blank UI tree. Cannot process screen.")
            return None

        elements = parse_tree(document, *self.viewport)
        logger.debug("Parsed %s elements from the screen", len(elements))

        classification = await self.analyzer.classify(elements, list(self._known_screen_names))
        if classification is None:
            logger.error("Screen analysis failed. Treating the screen as a dead end.")
            return None

        screen_id = classification.screen_name
        if screen_id in self._graph:
            logger.debug("Screen '%s' already visited. No new tasks added.", screen_id)
            return screen_id

        similar = self._graph.find_similar(screen_fingerprint(elements))
        if similar is not None:
            logger.warning(
                "New screen '%s' is structurally identical to known screen '%s'; the graph may be fragmenting",
                screen_id,
                similar,
            )

        logger.info("New screen discovered: '%s' (depth %s). Adding to map and queueing tasks.", screen_id, depth)
        self._graph.add_screen(Screen(screen_id=screen_id, elements=elements, depth=depth))
        if screen_id not in self._known_screen_names:
            self._known_screen_names.append(screen_id)
        for item in classification.elements:
            self._enqueue(screen_id, item)
        return screen_id

    async def execute_task(self, task: FrontierTask) -> None:
        element = task.element
        logger.info(
            "--- [TASK START | Taps: %s | Queue: %s] --- tap '%s' on '%s'",
            self.interactions,
            len(self._frontier),
            element.display_name,
            task.source_screen_id,
        )

        point = tap_point(element)
        if point is None:
            logger.error("Element '%s' has no bounds, cannot tap. Skipping task.", element.display_name)
            return

        app_before = await self.reader.current_foreground_app()
        await self.controller.tap(*point)
        self.interactions += 1
        await settle(self.settle_seconds)

        source = self._graph.get(task.source_screen_id)
        depth = source.depth + 1 if source else 1
        destination_id = await self.process_screen(depth)

        if destination_id is not None:
            if self._graph.record_edge(task.source_screen_id, element, destination_id):
                logger.info(
                    "Graph edge added: '%s' on '%s' leads to '%s'",
                    element.display_name,
                    task.source_screen_id,
                    destination_id,
                )
            else:
                logger.warning(
                    "Could not find original element '%s' on '%s' to record the edge",
                    element.display_name,
                    task.source_screen_id,
                )
        else:
            logger.warning("Could not identify destination screen. No graph edge will be added.")

        app_after = await self.reader.current_foreground_app()
        if app_after is not None and app_after != app_before:
            logger.debug("Foreground app changed from '%s' to '%s'. Navigating back.", app_before, app_after)
            await self.controller.back()
            await settle(self.settle_seconds)
        else:
            logger.debug("Foreground app unchanged after tap. Skipping back press to avoid exiting the app.")

    def _enqueue(self, screen_id: str, item: ClassifiedElement) -> None:
        element = item.element
        if item.classification == ElementClass.STATIC_NAVIGATION:
            self._frontier.append(FrontierTask(source_screen_id=screen_id, element=element))
            logger.debug("Queueing STATIC_NAVIGATION '%s'. Queue size: %s", element.display_name, len(self._frontier))
        elif item.classification == ElementClass.DYNAMIC_CONTENT_LINK:
            template = element.resource_id or _ANONYMOUS_TEMPLATE
            if template in self._explored_templates:
                logger.debug("Skipping duplicate DYNAMIC_CONTENT_LINK template '%s'", template)
                return
            self._explored_templates.add(template)
            self._frontier.append(FrontierTask(source_screen_id=screen_id, element=element))
            logger.debug("Queueing one DYNAMIC_CONTENT_LINK for template '%s'. Queue size: %s", template, len(self._frontier))
        else:
            logger.debug("Ignoring %s element '%s'", item.classification.value, element.display_name)

    def _checkpoint(self) -> None:
        if self.store is not None:
            self.store.save(self._graph)


__all__ = ["Cartographer"]
