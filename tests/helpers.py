"""Test doubles and key helpers for dashboard tests."""

from s2tui.models import BasinInfo, StreamInfo
from s2tui.tui.app import DashboardApp
from s2tui.tui.keys import Key
from s2tui.tui.state import BasinsState, StreamsState


class RecordingRunner:
    """TaskRunner stand-in that records spawns instead of starting threads."""

    def __init__(self):
        self.spawned = []

    def spawn(self, name, target, *args):
        self.spawned.append((name, target, args))

    def names(self) -> list[str]:
        return [name for name, _, _ in self.spawned]

    def last(self, name: str):
        for spawned in reversed(self.spawned):
            if spawned[0] == name:
                return spawned
        raise AssertionError(f"{name} was never spawned (got {self.names()})")

    def run(self, name: str) -> list:
        """Run the most recent task with this name synchronously; return its events."""
        _, target, args = self.last(name)
        events = []
        target(events.append, *args)
        return events


class FakeClock:
    def __init__(self, now: float = 1000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float):
        self.now += seconds


def press(app: DashboardApp, *names: str):
    """Send keys by name: single characters or up/down/enter/esc/..."""
    for name in names:
        if name == "ctrl+c":
            app.handle_key(Key("c", ctrl=True))
        else:
            app.handle_key(Key(name))


def type_text(app: DashboardApp, text: str):
    press(app, *list(text))


def show_basins(app: DashboardApp, names: list[str]) -> BasinsState:
    app.screen = BasinsState(items=[BasinInfo(name=n) for n in names], loading=False)
    return app.screen


def show_streams(app: DashboardApp, basin: str, names: list[str]) -> StreamsState:
    app.screen = StreamsState(basin=basin, items=[StreamInfo(name=n) for n in names],
                              loading=False)
    return app.screen


class ScriptedTerminal:
    """Terminal stand-in: records frames and replays scripted key reads.

    Each script step is a Key, None (no key pending) or a callable that
    returns one of those. Once the script runs out it sends ctrl+c.
    """

    def __init__(self, script, height: int = 24, width: int = 80):
        self.script = list(script)
        self.height = height
        self.width = width
        self.frames = []

    def size(self) -> tuple[int, int]:
        return self.height, self.width

    def draw(self, frame):
        self.frames.append(frame)

    def read_key(self):
        if not self.script:
            return Key("c", ctrl=True)
        step = self.script.pop(0)
        return step() if callable(step) else step
