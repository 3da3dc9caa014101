"""
Regression tests for end-to-end dashboard flows.

Each test drives DashboardApp through keys and events, with background tasks
run synchronously against a mocked S2Client.
"""

from s2tui.models import BasinInfo, StreamInfo, StreamPosition
from s2tui.tui.events import BasinsLoaded, Outcome, StreamDeleted, TaskFailed
from s2tui.tui.keys import Key
from s2tui.tui.modes import ConfirmDeleteStream, Normal
from s2tui.tui.state import BasinsState, StreamDetailState, StreamsState
from s2tui.tui.ui import build_frame
from tests.helpers import ScriptedTerminal, press, show_basins, show_streams


def test_jump_to_last_then_filter(app):
    state = show_basins(app, ["a", "b", "c"])
    assert state.selected == 0

    press(app, "G")
    assert state.selected == 2

    press(app, "/", "b")
    assert state.filter == "b"
    assert [b.name for b in state.filtered()] == ["b"]
    assert state.selected == 0


def test_detail_with_tail_but_no_config_renders(app):
    app.screen = StreamDetailState(basin="b", stream="s", tail_position=StreamPosition(42))

    frame = build_frame(app, 80, 24)

    assert len(frame.lines) == 24
    assert "seq 42" in frame.text()
    # Navigation still works while config is outstanding.
    press(app, "j")
    assert app.screen.selected_action == 1


def test_delete_stream_confirm_refreshes_listing(app, runner, fake_client):
    state = show_streams(app, "my-basin", ["orders", "payments"])
    fake_client.delete_stream.return_value = None
    fake_client.list_streams.return_value = iter([StreamInfo("payments")])

    press(app, "d")
    assert isinstance(app.input_mode, ConfirmDeleteStream)
    assert app.input_mode.stream == "orders"

    press(app, "y")
    assert runner.names() == ["delete_stream"]

    (event,) = runner.run("delete_stream")
    assert isinstance(event, StreamDeleted)
    fake_client.delete_stream.assert_called_once_with("my-basin", "orders")

    app.handle_event(event)
    assert isinstance(app.input_mode, Normal)
    assert app.screen is state
    assert state.loading is True
    assert runner.names() == ["delete_stream", "load_streams"]

    for loaded in runner.run("load_streams"):
        app.handle_event(loaded)
    assert isinstance(app.screen, StreamsState)
    assert [s.name for s in state.items] == ["payments"]
    assert state.loading is False


def test_run_loop_draws_applies_keys_and_drains_events(app, runner):
    app.poll_interval = 0.001
    load_id = app.screen.load_id

    def queue_results():
        app.events.put(BasinsLoaded(
            Outcome.success([BasinInfo("alpha-basin"), BasinInfo("beta-basin")]),
            load_id=load_id,
        ))
        app.events.put(TaskFailed(Outcome.failure("boom"), task="load_streams"))
        return None

    terminal = ScriptedTerminal([None, Key("x"), queue_results, Key("G")])

    assert app.run(terminal) is None

    assert runner.names() == ["load_basins"]
    assert app.should_quit is True
    assert len(terminal.frames) == 5
    assert all(len(frame.lines) == 24 for frame in terminal.frames)

    # Both queued events were applied, in order, before the next draw.
    after_drain = terminal.frames[3].text()
    assert "beta-basin" in after_drain
    assert "load_streams failed: boom" in after_drain
    assert "Loaded 2 basins" not in after_drain
    assert app.events.empty()

    assert isinstance(app.screen, BasinsState)
    assert app.screen.selected == 1
