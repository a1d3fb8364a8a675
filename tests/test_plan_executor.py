import pytest

from fakes import FakeDevice, hierarchy, node, row, title
from cartographer.models import ActionStep
from cartographer.plan_executor import PlanExecutor


def _executor(device: FakeDevice) -> PlanExecutor:
    return PlanExecutor(device, device, settle_seconds=0, launch_seconds=0, grace_seconds=0)


def _home_device(**kwargs) -> FakeDevice:
    return FakeDevice(
        {
            "Home": hierarchy(title("Home"), row(0, "Settings")),
            "Settings": hierarchy(title("Settings")),
        },
        start="Home",
        transitions={("Home", "Settings"): "Settings"},
        **kwargs,
    )


@pytest.mark.asyncio
async def test_tap_resolves_against_live_screen_and_never_goes_back():
    device = _home_device()

    outcomes = await _executor(device).execute([ActionStep(action="tap", element_text="Settings")])

    assert [outcome.status for outcome in outcomes] == ["ok"]
    assert device.taps == [(540, 145)]
    assert device.current == "Settings"
    assert device.back_calls == 0


@pytest.mark.asyncio
async def test_role_filter_picks_the_result_not_the_search_box():
    device = FakeDevice(
        {
            "Search": hierarchy(
                node("Ayush Chaudhary", cls="android.widget.EditText", bounds="[0,0][1080,100]"),
                node("Ayush Chaudhary", cls="android.widget.TextView", bounds="[0,200][1080,300]"),
            )
        },
        start="Search",
    )
    steps = [
        ActionStep(action="type", text="Ayush Chaudhary"),
        ActionStep(action="tap", element_text="Ayush Chaudhary", role_filter="TextView"),
    ]

    outcomes = await _executor(device).execute(steps)

    assert [outcome.status for outcome in outcomes] == ["ok", "ok"]
    assert device.typed == ["Ayush Chaudhary"]
    assert device.taps == [(540, 250)]


@pytest.mark.asyncio
async def test_missing_target_field_is_skipped_and_run_continues():
    device = _home_device()
    steps = [
        ActionStep(action="tap", element_text="  "),
        ActionStep(action="type"),
        ActionStep(action="tap", element_text="Settings"),
    ]

    outcomes = await _executor(device).execute(steps)

    assert [outcome.status for outcome in outcomes] == ["skipped", "skipped", "ok"]
    assert device.taps == [(540, 145)]


@pytest.mark.asyncio
async def test_unresolvable_target_aborts_the_run():
    device = _home_device()
    steps = [
        ActionStep(action="tap", element_text="Profile"),
        ActionStep(action="home"),
    ]

    outcomes = await _executor(device).execute(steps)

    assert [(outcome.index, outcome.status) for outcome in outcomes] == [(0, "failed")]
    assert "Profile" in outcomes[0].detail
    assert device.home_calls == 0


@pytest.mark.asyncio
async def test_open_app_matches_label_case_insensitively():
    device = _home_device(installed={"WhatsApp": "com.whatsapp", "Settings": "com.android.settings"})

    outcomes = await _executor(device).execute([ActionStep(action="open_app", app_name="whatsapp")])

    assert outcomes[0].status == "ok"
    assert device.launched == ["com.whatsapp"]


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "installed, launch_ok",
    [
        ({"Telegram": "org.telegram"}, True),
        ({"WhatsApp": "com.whatsapp"}, False),
    ],
)
async def test_unresolved_or_unlaunchable_app_is_a_hard_failure(installed, launch_ok):
    device = _home_device(installed=installed, launch_ok=launch_ok)
    steps = [ActionStep(action="open_app", app_name="WhatsApp"), ActionStep(action="back")]

    outcomes = await _executor(device).execute(steps)

    assert [outcome.status for outcome in outcomes] == ["failed"]
    assert device.back_calls == 0


@pytest.mark.asyncio
async def test_unexpected_error_stops_the_run():
    class BrokenDevice(FakeDevice):
        async def capture_tree(self) -> str:
            raise ConnectionError("accessibility service gone")

    device = BrokenDevice({}, start="Home")
    steps = [ActionStep(action="tap", element_text="Settings"), ActionStep(action="back")]

    outcomes = await _executor(device).execute(steps)

    assert [outcome.status for outcome in outcomes] == ["failed"]
    assert device.back_calls == 0


@pytest.mark.asyncio
async def test_back_and_home_are_forwarded():
    device = _home_device()

    outcomes = await _executor(device).execute([ActionStep(action="back"), ActionStep(action="home")])

    assert [outcome.status for outcome in outcomes] == ["ok", "ok"]
    assert (device.back_calls, device.home_calls) == (1, 1)


@pytest.mark.asyncio
async def test_each_outcome_is_reported_as_soon_as_it_is_known():
    device = _home_device()
    seen = []
    steps = [ActionStep(action="tap", element_text="Settings"), ActionStep(action="type", text="dark")]

    outcomes = await _executor(device).execute(
        steps,
        on_step=lambda outcome: seen.append((outcome.index, outcome.status, len(device.typed))),
    )

    assert seen == [(0, "ok", 0), (1, "ok", 1)]
    assert [outcome.index for outcome in outcomes] == [0, 1]
