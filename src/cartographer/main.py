"""CLI entrypoint: plan a goal against a crawled app map, or inspect one."""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
from datetime import datetime, timezone
from pathlib import Path

from cartographer.config import APP_MAP_FILENAME, SESSION_ROOT
from cartographer.graph import GraphStore
from cartographer.path_planner import PathPlanner, PlanSynthesisError, summarize_graph
from cartographer.runner import default_oracle


def parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Plan UI tasks from a crawled app map.")
    parser.add_argument("--log-level", default="INFO", help="Python logging level.")
    subparsers = parser.add_subparsers(dest="command", required=True)

    default_graph = str(SESSION_ROOT / APP_MAP_FILENAME)
    plan = subparsers.add_parser("plan", help="Synthesize an action plan for a goal.")
    plan.add_argument("--goal", required=True, help="Natural-language goal, e.g. 'open Settings'.")
    plan.add_argument("--graph", default=default_graph, help="Path to the app map JSON file.")

    show = subparsers.add_parser("show", help="Print the app map summary given to the planner.")
    show.add_argument("--graph", default=default_graph, help="Path to the app map JSON file.")
    return parser.parse_args()


def main() -> None:
    args = parse_args()
    log_file = _configure_logging(args.log_level)
    logging.info("Log file: %s", log_file)

    graph_path = Path(args.graph).expanduser()
    if not graph_path.is_file():
        raise SystemExit(f"App map file not found: {graph_path}")
    graph = GraphStore(graph_path).load()
    if graph is None:
        raise SystemExit(f"App map file could not be read: {graph_path}")

    if args.command == "show":
        print(summarize_graph(graph))
        return

    try:
        steps = asyncio.run(PathPlanner(default_oracle()).synthesize(args.goal, graph))
    except PlanSynthesisError as exc:
        raise SystemExit(f"Planning failed: {exc}") from exc
    print(json.dumps([step.model_dump(exclude_none=True) for step in steps], indent=2, ensure_ascii=False))


def _configure_logging(log_level: str) -> Path:
    level = getattr(logging, log_level.upper(), logging.INFO)
    log_dir = Path("logs")
    log_dir.mkdir(exist_ok=True)
    log_file = log_dir / f"cartographer-{datetime.now(timezone.utc).strftime('%Y%m%d-%H%M%S')}.log"
    formatter = logging.Formatter("%(asctime)s [%(levelname)s] %(name)s: %(message)s")
    stream_handler = logging.StreamHandler()
    stream_handler.setFormatter(formatter)
    file_handler = logging.FileHandler(log_file, encoding="utf-8")
    file_handler.setFormatter(formatter)
    logging.basicConfig(level=level, handlers=[stream_handler, file_handler])
    return log_file


if __name__ == "__main__":
    main()
