"""Session workers: a background crawl and a goal run (plan, then execute)."""

from __future__ import annotations

import asyncio
import json
import logging
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List, Optional

from openai import AsyncOpenAI

from .config import APP_MAP_FILENAME, OPENAI_MODEL, SESSION_ROOT, get_openai_api_key
from .crawler import Cartographer
from .device import DeviceController, ScreenReader
from .graph import GraphStore
from .models import StepOutcome
from .oracle import CompletionOracle, OpenAIOracle
from .path_planner import PathPlanner
from .plan_executor import PlanExecutor
from .screen_analyzer import ScreenAnalyzer

logger = logging.getLogger(__name__)


class TelemetryWriter:
    """Append structured events to a run.jsonl file."""

    def __init__(self, path: Path) -> None:
        self.path = path
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self._fp = path.open("a", encoding="utf-8")

    def write(self, event: Dict[str, Any]) -> None:
        payload = dict(event)
        payload.setdefault("timestamp", datetime.now(timezone.utc).isoformat())
        self._fp.write(json.dumps(payload, ensure_ascii=False) + "\n")
        self._fp.flush()

    def close(self) -> None:
        try:
            self._fp.close()
        except OSError as exc:
            logger.debug("Could not close telemetry file %s: %s", self.path, exc)


def session_store(session_dir: Optional[Path] = None) -> GraphStore:
    return GraphStore(Path(session_dir or SESSION_ROOT) / APP_MAP_FILENAME)


def default_oracle() -> OpenAIOracle:
    api_key = get_openai_api_key()
    if not api_key:
        logger.warning("OPENAI_API_KEY missing; every oracle call will fail")
    client = AsyncOpenAI(api_key=api_key) if api_key else None
    return OpenAIOracle(client=client, model=OPENAI_MODEL)


class CrawlSession:
    """Runs one Cartographer on a background task so the caller is never blocked.

    The session is the only handle to its Cartographer; graph and frontier are
    not reachable from outside while the crawl runs.
    """

    def __init__(
        self,
        reader: ScreenReader,
        controller: DeviceController,
        oracle: CompletionOracle,
        *,
        session_dir: Optional[Path] = None,
        **crawler_options: Any,
    ) -> None:
        self.store = session_store(session_dir)
        self._cartographer = Cartographer(
            reader,
            controller,
            ScreenAnalyzer(oracle),
            self.store,
            **crawler_options,
        )
        self._task: Optional[asyncio.Task[str]] = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> asyncio.Task[str]:
        if self._task is not None:
            raise RuntimeError("Crawl session already started")
        self._task = asyncio.create_task(self._cartographer.crawl(), name="cartographer-crawl")
        self._task.add_done_callback(_log_crawl_outcome)
        return self._task

    def cancel(self) -> None:
        if self._task is not None and not self._task.done():
            logger.info("Cancelling crawl; no further progress will be saved")
            self._task.cancel()

    async def wait(self) -> str:
        if self._task is None:
            raise RuntimeError("Crawl session was never started")
        return await self._task


def _log_crawl_outcome(task: asyncio.Task) -> None:
    if task.cancelled():
        logger.warning("Crawl cancelled")
        return
    exc = task.exception()
    if exc is not None:
        logger.error("The crawl failed with an unhandled exception: %s", exc)
    else:
        logger.info("Crawl complete. App map size: %s characters", len(task.result()))


async def run_goal(
    goal: str,
    reader: ScreenReader,
    controller: DeviceController,
    oracle: CompletionOracle,
    *,
    session_dir: Optional[Path] = None,
    **executor_options: Any,
) -> List[StepOutcome]:
    """Load the session's app map, synthesize a plan for ``goal`` and execute it.

    Raises ``FileNotFoundError`` when no app map exists and
    ``PlanSynthesisError`` when no plan could be produced.
    """
    store = session_store(session_dir)
    graph = store.load()
    if graph is None:
        raise FileNotFoundError(f"Failed to load or find app map file: {store.path}")

    steps = await PathPlanner(oracle).synthesize(goal, graph)
    executor = PlanExecutor(reader, controller, **executor_options)

    telemetry = TelemetryWriter(store.path.parent / "run.jsonl")
    try:
        telemetry.write({"event": "goal", "goal": goal, "steps": [step.model_dump() for step in steps]})
        return await executor.execute(
            steps,
            on_step=lambda outcome: telemetry.write({"event": "step", **outcome.model_dump()}),
        )
    finally:
        telemetry.close()


__all__ = ["CrawlSession", "TelemetryWriter", "default_oracle", "run_goal", "session_store"]
