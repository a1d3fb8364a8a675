import json

import pytest

from fakes import FakeDevice, ScriptedOracle, hierarchy, row, title
from cartographer.config import APP_MAP_FILENAME
from cartographer.graph import AppGraph
from cartographer.models import Screen
from cartographer.parser import parse_tree
from cartographer.runner import CrawlSession, run_goal, session_store


def _settings_app() -> FakeDevice:
    return FakeDevice(
        {
            "Home": hierarchy(title("Home"), row(0, "Settings")),
            "Settings": hierarchy(title("Settings"), row(0, "Dark mode")),
        },
        start="Home",
        transitions={("Home", "Settings"): "Settings"},
    )


def _crawl_oracle() -> ScriptedOracle:
    return ScriptedOracle(
        [
            json.dumps({"screenName": "Home", "elements": [{"id": 0, "classification": "STATIC_NAVIGATION"}]}),
            json.dumps({"screenName": "Settings", "elements": [{"id": 0, "classification": "ACTION_BUTTON"}]}),
        ]
    )


@pytest.mark.asyncio
async def test_crawl_session_runs_in_background_and_checkpoints(tmp_path):
    device = _settings_app()
    session = CrawlSession(device, device, _crawl_oracle(), session_dir=tmp_path, settle_seconds=0)

    session.start()
    with pytest.raises(RuntimeError):
        session.start()
    result = await session.wait()

    assert not session.running
    assert (tmp_path / APP_MAP_FILENAME).is_file()
    saved = session_store(tmp_path).load()
    assert sorted(saved.screen_names()) == ["Home", "Settings"]
    assert saved.to_json() == AppGraph.from_json(result).to_json()


@pytest.mark.asyncio
async def test_wait_without_start_is_an_error(tmp_path):
    device = _settings_app()
    session = CrawlSession(device, device, _crawl_oracle(), session_dir=tmp_path)

    with pytest.raises(RuntimeError):
        await session.wait()


@pytest.mark.asyncio
async def test_run_goal_without_app_map_fails_before_planning(tmp_path):
    device = _settings_app()
    oracle = ScriptedOracle([])

    with pytest.raises(FileNotFoundError):
        await run_goal("open Settings", device, device, oracle, session_dir=tmp_path)

    assert oracle.prompts == []


@pytest.mark.asyncio
async def test_run_goal_plans_executes_and_writes_telemetry(tmp_path):
    device = _settings_app()
    home = Screen(screen_id="Home", elements=parse_tree(await device.capture_tree(), 1080, 2400))
    graph = AppGraph()
    graph.add_screen(home)
    graph.record_edge("Home", home.elements[1], "Settings")
    assert session_store(tmp_path).save(graph)
    oracle = ScriptedOracle(['[{"action": "tap", "element_text": "Settings"}]'])

    outcomes = await run_goal(
        "open Settings",
        device,
        device,
        oracle,
        session_dir=tmp_path,
        settle_seconds=0,
        launch_seconds=0,
        grace_seconds=0,
    )

    assert [outcome.status for outcome in outcomes] == ["ok"]
    assert device.current == "Settings"
    assert "Screen: Home" in oracle.prompts[0]
    events = [json.loads(line) for line in (tmp_path / "run.jsonl").read_text(encoding="utf-8").splitlines()]
    assert [event["event"] for event in events] == ["goal", "step"]
    assert events[0]["goal"] == "open Settings"
    assert events[1]["status"] == "ok"
    assert all("timestamp" in event for event in events)


@pytest.mark.asyncio
async def test_run_goal_logs_each_step_while_the_plan_is_still_running(tmp_path):
    class LogReadingDevice(FakeDevice):
        async def type_text(self, text: str) -> None:
            await super().type_text(text)
            self.log_at_type = (tmp_path / "run.jsonl").read_text(encoding="utf-8").splitlines()

    device = LogReadingDevice(
        {
            "Home": hierarchy(title("Home"), row(0, "Settings")),
            "Settings": hierarchy(title("Settings"), row(0, "Dark mode")),
        },
        start="Home",
        transitions={("Home", "Settings"): "Settings"},
    )
    home = Screen(screen_id="Home", elements=parse_tree(await device.capture_tree(), 1080, 2400))
    graph = AppGraph()
    graph.add_screen(home)
    session_store(tmp_path).save(graph)
    oracle = ScriptedOracle(['[{"action": "tap", "element_text": "Settings"}, {"action": "type", "text": "dark"}]'])

    await run_goal(
        "search settings",
        device,
        device,
        oracle,
        session_dir=tmp_path,
        settle_seconds=0,
        launch_seconds=0,
        grace_seconds=0,
    )

    events = [json.loads(line)["event"] for line in device.log_at_type]
    assert events == ["goal", "step"]
