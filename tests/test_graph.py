import tempfile
from pathlib import Path

from fakes import hierarchy, node
from cartographer.graph import AppGraph, GraphStore, screen_fingerprint
from cartographer.models import Element, Screen
from cartographer.parser import parse_tree


def _home() -> Screen:
    elements = parse_tree(
        hierarchy(node("Settings", bounds="[0,0][100,100]"), node("Profile", bounds="[0,100][100,200]")),
        1080,
        2400,
    )
    return Screen(screen_id="Home", elements=elements)


def test_add_screen_never_replaces_a_known_identity():
    graph = AppGraph()
    home = _home()

    assert graph.add_screen(home) is True
    assert graph.add_screen(Screen(screen_id="Home", elements=[])) is False
    assert graph.get("Home") is home
    assert len(graph) == 1


def test_record_edge_replaces_the_record_and_keeps_elements():
    graph = AppGraph()
    home = _home()
    graph.add_screen(home)
    settings = home.elements[0]

    assert graph.record_edge("Home", Element(**settings.model_dump()), "Settings") is True

    updated = graph.get("Home")
    assert updated is not home
    assert home.leads_to == {}
    assert updated.elements == home.elements
    assert updated.destination_of(settings) == "Settings"
    assert list(graph.edges()) == [("Home", settings, "Settings")]


def test_record_edge_never_fabricates_elements():
    graph = AppGraph()
    graph.add_screen(_home())

    assert graph.record_edge("Home", Element(text="Not on screen"), "Elsewhere") is False
    assert graph.record_edge("Missing", Element(text="Settings"), "Elsewhere") is False
    assert len(graph.get("Home").elements) == 2


def test_store_round_trip_preserves_edges():
    with tempfile.TemporaryDirectory() as tmp:
        store = GraphStore(Path(tmp) / "session" / "app_map.json")
        graph = AppGraph()
        home = _home()
        graph.add_screen(home)
        graph.add_screen(Screen(screen_id="Settings", elements=[], depth=1))
        graph.record_edge("Home", home.elements[0], "Settings")

        assert store.save(graph) is True
        loaded = store.load()

        assert loaded is not None
        assert dict(loaded.screens) == dict(graph.screens)
        assert loaded.get("Home").destination_of(home.elements[0]) == "Settings"
        assert loaded.get("Settings").depth == 1
        assert list(store.path.parent.glob("*.tmp")) == []


def test_store_load_reports_missing_or_corrupt_files():
    with tempfile.TemporaryDirectory() as tmp:
        path = Path(tmp) / "app_map.json"
        store = GraphStore(path)
        assert store.load() is None

        path.write_text("{not json", encoding="utf-8")
        assert store.load() is None


def test_store_save_failure_is_reported_not_raised():
    with tempfile.TemporaryDirectory() as tmp:
        target = Path(tmp) / "app_map.json"
        target.mkdir()

        assert GraphStore(target).save(AppGraph()) is False


def test_fingerprint_ignores_dynamic_text():
    first = [Element(text="Chat with Ana", resource_id="row", class_name="TextView", is_clickable=True)]
    second = [Element(text="Chat with Bo", resource_id="row", class_name="TextView", is_clickable=True)]

    assert screen_fingerprint(first) == screen_fingerprint(second)
