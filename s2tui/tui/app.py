"""Session controller for the S2 dashboard.

DashboardApp owns the active screen state, the input mode and the status
message. It is the only thing that mutates them: keys are handled
synchronously, remote calls are spawned as background tasks, and their
results come back as events on a single queue that run() drains between
frames.
"""

from __future__ import annotations

import itertools
import logging
import queue
import time
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Callable, Optional

from ..cli.client import ReadOptions
from ..models import StreamPosition
from ..validation import ValidationError, is_digits, parse_u64
from . import tasks
from .events import (
    AccessTokenIssued,
    AccessTokenRevoked,
    AccessTokensLoaded,
    BasinConfigLoaded,
    BasinCreated,
    BasinDeleted,
    BasinReconfigured,
    BasinsLoaded,
    Event,
    ReadEnded,
    RecordAppended,
    RecordReceived,
    StreamConfigForReconfigLoaded,
    StreamConfigLoaded,
    StreamCreated,
    StreamDeleted,
    StreamFenced,
    StreamReconfigured,
    StreamsLoaded,
    StreamTrimmed,
    TailPositionLoaded,
    TaskFailed,
)
from .keys import Key
from .modes import (
    ConfirmDeleteBasin,
    ConfirmDeleteStream,
    ConfirmRevokeToken,
    CreateBasin,
    CreateStream,
    CustomRead,
    Fence,
    FormMode,
    InputMode,
    IssueAccessToken,
    Normal,
    ReconfigureBasin,
    ReconfigureStream,
    ShowIssuedToken,
    Trim,
    ViewTokenDetail,
)
from .state import (
    STREAM_ACTIONS,
    AccessTokensState,
    AppendViewState,
    BasinsState,
    ListState,
    ReadViewState,
    SplashState,
    StreamDetailState,
    StreamsState,
)
from .terminal import CursesTerminal
from .ui import build_frame

logger = logging.getLogger(__name__)

MESSAGE_TTL = 5.0  # seconds
ERROR_MESSAGE_TTL = 10.0
EVENT_BATCH = 256


class Tab(Enum):
    BASINS = "basins"
    ACCESS_TOKENS = "access_tokens"


@dataclass
class StatusMessage:
    text: str
    level: str = "info"  # info, success, error
    expires_at: Optional[float] = None


class DashboardApp:
    """The render/input/event loop and the state it drives."""

    def __init__(
        self,
        client,
        runner,
        events: queue.Queue,
        poll_interval: float = 0.05,
        splash_duration: float = 1.2,
        clock: Callable[[], float] = time.monotonic,
        wall_clock: Callable[[], float] = time.time,
    ):
        self.client = client
        self.runner = runner
        self.events = events
        self.poll_interval = poll_interval
        self.splash_duration = splash_duration
        self.clock = clock
        self.wall_clock = wall_clock

        self._load_ids = itertools.count(1)
        self._read_ids = itertools.count(1)

        self.screen = SplashState(started_at=clock(), load_id=next(self._load_ids))
        self.input_mode: InputMode = Normal()
        self.message: Optional[StatusMessage] = None
        self.show_help = False
        self.tab = Tab.BASINS
        self.should_quit = False
        self.spinner_index = 0

    # Loop

    def start(self):
        """Kick off the initial basins load behind the splash screen."""
        self._spawn("load_basins", tasks.load_basins, self.screen.load_id)

    def run(self, terminal):
        """Run until quit. Only terminal errors escape."""
        self.start()
        while not self.should_quit:
            height, width = terminal.size()
            terminal.draw(build_frame(self, width, height))
            self.tick()

            key = terminal.read_key()
            if key is not None:
                self.handle_key(key)
                self.drain_events()
                continue

            try:
                event = self.events.get(timeout=self.poll_interval)
            except queue.Empty:
                continue
            self.handle_event(event)
            self.drain_events()

    def drain_events(self, limit: int = EVENT_BATCH) -> int:
        """Apply up to limit queued events in arrival order."""
        handled = 0
        while handled < limit:
            try:
                event = self.events.get_nowait()
            except queue.Empty:
                break
            self.handle_event(event)
            handled += 1
        return handled

    def tick(self):
        """Time-based transitions: splash timeout, message expiry, spinner."""
        now = self.clock()
        self.spinner_index += 1
        if isinstance(self.screen, SplashState):
            if now - self.screen.started_at >= self.splash_duration:
                self._leave_splash()
        if self.message and self.message.expires_at is not None and now >= self.message.expires_at:
            self.message = None

    # Messages

    def _set_message(self, text: str, level: str):
        ttl = ERROR_MESSAGE_TTL if level == "error" else MESSAGE_TTL
        self.message = StatusMessage(text=text, level=level, expires_at=self.clock() + ttl)

    def info(self, text: str):
        self._set_message(text, "info")

    def success(self, text: str):
        self._set_message(text, "success")

    def error(self, text: str):
        logger.info(f"Error shown: {text}")
        self._set_message(text, "error")

    # Task helpers

    def _spawn(self, name: str, target: Callable, *args):
        logger.debug(f"Spawning {name}{args}")
        return self.runner.spawn(name, target, self.client, *args)

    def _spawn_for_mode(self, mode: InputMode, name: str, target: Callable, *args):
        mode.in_flight = True
        mode.task = name
        return self._spawn(name, target, *args)

    def _load_list(self, state: ListState):
        load_id = state.begin_load(next(self._load_ids))
        if isinstance(state, BasinsState):
            self._spawn("load_basins", tasks.load_basins, load_id)
        elif isinstance(state, StreamsState):
            self._spawn("load_streams", tasks.load_streams, state.basin, load_id)
        elif isinstance(state, AccessTokensState):
            self._spawn("load_access_tokens", tasks.load_access_tokens, load_id)

    def _refresh_list(self, state: ListState):
        state.clear_filter()
        state.filter_active = False
        self._load_list(state)

    # Navigation

    def _leave_splash(self):
        splash = self.screen
        state = BasinsState(load_id=splash.load_id)
        if splash.basins is not None:
            state.set_items(splash.basins)
        elif splash.error is not None:
            state.loading = False
            self.error(f"Failed to load basins: {splash.error}")
        self.screen = state
        self.tab = Tab.BASINS

    def open_basins(self):
        self.screen = BasinsState()
        self.tab = Tab.BASINS
        self._load_list(self.screen)

    def open_access_tokens(self):
        self.screen = AccessTokensState()
        self.tab = Tab.ACCESS_TOKENS
        self._load_list(self.screen)

    def open_streams(self, basin: str):
        self.screen = StreamsState(basin=basin)
        self._load_list(self.screen)

    def open_stream_detail(self, basin: str, stream: str, selected_action: int = 0):
        self.screen = StreamDetailState(basin=basin, stream=stream,
                                        selected_action=selected_action)
        self._spawn("load_stream_config", tasks.load_stream_config, basin, stream)
        self._spawn("load_tail_position", tasks.load_tail_position, basin, stream)

    def open_read(self, basin: str, stream: str, options: ReadOptions,
                  output_file: Optional[str] = None, output_format: str = "text"):
        session_id = next(self._read_ids)
        self.screen = ReadViewState(
            basin=basin,
            stream=stream,
            session_id=session_id,
            is_live=not options.has_limits(),
            output_file=output_file,
        )
        self._spawn("read", tasks.run_read, basin, stream, session_id, options,
                    output_file, output_format)
        if output_file:
            self.info(f"Writing to {output_file}")

    def open_append(self, basin: str, stream: str):
        self.screen = AppendViewState(basin=basin, stream=stream)

    # Events

    def handle_event(self, event: Event):
        handler = getattr(self, self._EVENT_HANDLERS[type(event)])
        handler(event)

    def _drop_stale(self, event: Event):
        """The screen that asked for this is gone; surface errors only."""
        logger.debug(f"Dropping stale {type(event).__name__}")
        if not event.outcome.ok:
            self.error(event.outcome.error)

    def _apply_list(self, state: ListState, event, noun: str):
        if event.outcome.ok:
            state.set_items(event.outcome.value)
            self.info(f"Loaded {len(state.items)} {noun}")
        else:
            state.loading = False
            self.error(f"Failed to load {noun}: {event.outcome.error}")

    def _on_basins_loaded(self, event: BasinsLoaded):
        screen = self.screen
        if isinstance(screen, SplashState) and event.load_id == screen.load_id:
            if event.outcome.ok:
                screen.basins = event.outcome.value
            else:
                screen.error = event.outcome.error
        elif isinstance(screen, BasinsState) and event.load_id == screen.load_id:
            self._apply_list(screen, event, "basins")
        else:
            self._drop_stale(event)

    def _on_streams_loaded(self, event: StreamsLoaded):
        screen = self.screen
        if (isinstance(screen, StreamsState) and screen.basin == event.basin
                and event.load_id == screen.load_id):
            self._apply_list(screen, event, "streams")
        else:
            self._drop_stale(event)

    def _on_access_tokens_loaded(self, event: AccessTokensLoaded):
        screen = self.screen
        if isinstance(screen, AccessTokensState) and event.load_id == screen.load_id:
            self._apply_list(screen, event, "access tokens")
        else:
            self._drop_stale(event)

    def _detail_for(self, event) -> Optional[StreamDetailState]:
        screen = self.screen
        if (isinstance(screen, StreamDetailState) and screen.basin == event.basin
                and screen.stream == event.stream):
            return screen
        return None

    def _on_stream_config_loaded(self, event: StreamConfigLoaded):
        detail = self._detail_for(event)
        if detail is None:
            self._drop_stale(event)
            return
        detail.config_pending = False
        detail.settle()
        if event.outcome.ok:
            detail.config = event.outcome.value
        else:
            self.error(f"Failed to load stream config: {event.outcome.error}")

    def _on_tail_position_loaded(self, event: TailPositionLoaded):
        detail = self._detail_for(event)
        if detail is None:
            self._drop_stale(event)
            return
        detail.tail_pending = False
        detail.settle()
        if event.outcome.ok:
            detail.tail_position = event.outcome.value
        else:
            self.error(f"Failed to check tail: {event.outcome.error}")

    def _read_for(self, event) -> Optional[ReadViewState]:
        screen = self.screen
        if isinstance(screen, ReadViewState) and screen.session_id == event.session_id:
            return screen
        return None

    def _on_record_received(self, event: RecordReceived):
        view = self._read_for(event)
        if view is None:
            self._drop_stale(event)
            return
        if event.outcome.ok:
            view.push_record(event.outcome.value)
        else:
            view.loading = False
            self.error(f"Read error: {event.outcome.error}")

    def _on_read_ended(self, event: ReadEnded):
        view = self._read_for(event)
        if view is None:
            self._drop_stale(event)
            return
        view.loading = False
        if not event.outcome.ok:
            self.error(f"Read failed: {event.outcome.error}")
        elif not view.is_live:
            self.info("Read complete")

    def _finish_mode(self, mode_type: type) -> bool:
        """Return to Normal if mode_type is the active mode."""
        if isinstance(self.input_mode, mode_type):
            self.input_mode = Normal()
            return True
        return False

    def _on_basin_created(self, event: BasinCreated):
        self._finish_mode(CreateBasin)
        if not event.outcome.ok:
            self.error(f"Failed to create basin: {event.outcome.error}")
            return
        self.success(f"Created basin '{event.basin}'")
        if isinstance(self.screen, BasinsState):
            self._load_list(self.screen)

    def _on_basin_deleted(self, event: BasinDeleted):
        self._finish_mode(ConfirmDeleteBasin)
        if not event.outcome.ok:
            self.error(f"Failed to delete basin: {event.outcome.error}")
            return
        self.success(f"Deleted basin '{event.basin}'")
        if isinstance(self.screen, BasinsState):
            self._load_list(self.screen)

    def _on_stream_created(self, event: StreamCreated):
        self._finish_mode(CreateStream)
        if not event.outcome.ok:
            self.error(f"Failed to create stream: {event.outcome.error}")
            return
        self.success(f"Created stream '{event.stream}'")
        if isinstance(self.screen, StreamsState) and self.screen.basin == event.basin:
            self._load_list(self.screen)

    def _on_stream_deleted(self, event: StreamDeleted):
        self._finish_mode(ConfirmDeleteStream)
        if not event.outcome.ok:
            self.error(f"Failed to delete stream: {event.outcome.error}")
            return
        self.success(f"Deleted stream '{event.stream}'")
        if isinstance(self.screen, StreamsState) and self.screen.basin == event.basin:
            self._load_list(self.screen)

    def _on_basin_config_loaded(self, event: BasinConfigLoaded):
        mode = self.input_mode
        if not (isinstance(mode, ReconfigureBasin) and mode.basin == event.basin):
            self._drop_stale(event)
            return
        if event.outcome.ok:
            mode.load(event.outcome.value)
        else:
            self.input_mode = Normal()
            self.error(f"Failed to load basin config: {event.outcome.error}")

    def _on_stream_config_for_reconfig_loaded(self, event: StreamConfigForReconfigLoaded):
        mode = self.input_mode
        if not (isinstance(mode, ReconfigureStream) and mode.basin == event.basin
                and mode.stream == event.stream):
            self._drop_stale(event)
            return
        if event.outcome.ok:
            mode.load(event.outcome.value)
        else:
            self.input_mode = Normal()
            self.error(f"Failed to load stream config: {event.outcome.error}")

    def _on_basin_reconfigured(self, event: BasinReconfigured):
        self._finish_mode(ReconfigureBasin)
        if event.outcome.ok:
            self.success(f"Reconfigured basin '{event.basin}'")
        else:
            self.error(f"Failed to reconfigure basin: {event.outcome.error}")

    def _on_stream_reconfigured(self, event: StreamReconfigured):
        self._finish_mode(ReconfigureStream)
        if not event.outcome.ok:
            self.error(f"Failed to reconfigure stream: {event.outcome.error}")
            return
        self.success(f"Reconfigured stream '{event.stream}'")
        detail = self._detail_for(event)
        if detail is not None:
            detail.config = event.outcome.value

    def _on_record_appended(self, event: RecordAppended):
        screen = self.screen
        if not (isinstance(screen, AppendViewState) and screen.basin == event.basin
                and screen.stream == event.stream):
            self._drop_stale(event)
            return
        screen.appending = False
        if not event.outcome.ok:
            self.error(f"Append failed: {event.outcome.error}")
            return
        result = event.outcome.value
        screen.history.append(result)
        screen.body = ""
        self.success(f"Appended record at seq {result.seq_num}")

    def _on_stream_fenced(self, event: StreamFenced):
        self._finish_mode(Fence)
        if event.outcome.ok:
            self.success(f"Fenced '{event.stream}' with token '{event.outcome.value}'")
        else:
            self.error(f"Failed to fence stream: {event.outcome.error}")

    def _on_stream_trimmed(self, event: StreamTrimmed):
        self._finish_mode(Trim)
        if not event.outcome.ok:
            self.error(f"Failed to trim stream: {event.outcome.error}")
            return
        trim_point, new_tail = event.outcome.value
        self.success(f"Trim to {trim_point} requested, tail now {new_tail}")
        detail = self._detail_for(event)
        if detail is not None:
            detail.tail_position = StreamPosition(seq_num=new_tail)

    def _on_access_token_issued(self, event: AccessTokenIssued):
        if not isinstance(self.input_mode, IssueAccessToken):
            self._drop_stale(event)
            return
        if not event.outcome.ok:
            self.input_mode = Normal()
            self.error(f"Failed to issue access token: {event.outcome.error}")
            return
        self.input_mode = ShowIssuedToken(token=event.outcome.value)
        self.success("Access token issued - copy it now, it won't be shown again!")
        if isinstance(self.screen, AccessTokensState):
            self._load_list(self.screen)

    def _on_access_token_revoked(self, event: AccessTokenRevoked):
        self._finish_mode(ConfirmRevokeToken)
        if not event.outcome.ok:
            self.error(f"Failed to revoke access token: {event.outcome.error}")
            return
        self.success(f"Revoked access token '{event.token_id}'")
        if isinstance(self.screen, AccessTokensState):
            self._load_list(self.screen)

    def _on_task_failed(self, event: TaskFailed):
        mode = self.input_mode
        if mode.in_flight and mode.task == event.task:
            self.input_mode = Normal()
        self.error(f"{event.task} failed: {event.outcome.error}")

    _EVENT_HANDLERS = {
        BasinsLoaded: "_on_basins_loaded",
        StreamsLoaded: "_on_streams_loaded",
        AccessTokensLoaded: "_on_access_tokens_loaded",
        StreamConfigLoaded: "_on_stream_config_loaded",
        TailPositionLoaded: "_on_tail_position_loaded",
        RecordReceived: "_on_record_received",
        ReadEnded: "_on_read_ended",
        BasinCreated: "_on_basin_created",
        BasinDeleted: "_on_basin_deleted",
        StreamCreated: "_on_stream_created",
        StreamDeleted: "_on_stream_deleted",
        BasinConfigLoaded: "_on_basin_config_loaded",
        StreamConfigForReconfigLoaded: "_on_stream_config_for_reconfig_loaded",
        BasinReconfigured: "_on_basin_reconfigured",
        StreamReconfigured: "_on_stream_reconfigured",
        RecordAppended: "_on_record_appended",
        StreamFenced: "_on_stream_fenced",
        StreamTrimmed: "_on_stream_trimmed",
        AccessTokenIssued: "_on_access_token_issued",
        AccessTokenRevoked: "_on_access_token_revoked",
        TaskFailed: "_on_task_failed",
    }

    # Keys

    def handle_key(self, key: Key):
        self.message = None

        if key.ctrl and key.name == "c":
            self.should_quit = True
            return

        if isinstance(self.screen, SplashState):
            self._leave_splash()
            return

        if not isinstance(self.input_mode, Normal):
            self._handle_mode_key(key)
            return

        screen = self.screen
        if isinstance(screen, ListState) and screen.filter_active:
            self._handle_filter_key(screen, key)
            return

        if self.show_help:
            if key.name in ("q", "esc", "?"):
                self.show_help = False
            return
        if key.name == "?":
            self.show_help = True
            return

        if isinstance(screen, BasinsState):
            self._handle_basins_key(screen, key)
        elif isinstance(screen, StreamsState):
            self._handle_streams_key(screen, key)
        elif isinstance(screen, AccessTokensState):
            self._handle_tokens_key(screen, key)
        elif isinstance(screen, StreamDetailState):
            self._handle_detail_key(screen, key)
        elif isinstance(screen, ReadViewState):
            self._handle_read_key(screen, key)
        elif isinstance(screen, AppendViewState):
            self._handle_append_key(screen, key)

    def _handle_filter_key(self, state: ListState, key: Key):
        if key.name == "esc":
            state.clear_filter()
            state.filter_active = False
        elif key.name == "enter":
            state.filter_active = False
        elif key.name == "backspace":
            state.pop_filter()
        elif key.is_char():
            state.push_filter(key.name)

    def _handle_list_nav(self, state: ListState, key: Key) -> bool:
        """Keys every list screen shares. Returns True if handled."""
        if key.name in ("j", "down"):
            state.move(1)
        elif key.name in ("k", "up"):
            state.move(-1)
        elif key.name in ("g", "home"):
            state.first()
        elif key.name in ("G", "end"):
            state.last()
        elif key.name == "/":
            state.filter_active = True
        elif key.name == "r":
            self._refresh_list(state)
        else:
            return False
        return True

    def _handle_basins_key(self, state: BasinsState, key: Key):
        if self._handle_list_nav(state, key):
            return
        basin = state.selected_item()
        if key.name == "q":
            self.should_quit = True
        elif key.name == "tab":
            self.open_access_tokens()
        elif key.name == "esc":
            if state.filter:
                state.clear_filter()
        elif key.name == "c":
            self.input_mode = CreateBasin()
        elif basin is None:
            return
        elif key.name == "enter":
            self.open_streams(basin.name)
        elif key.name == "d":
            self.input_mode = ConfirmDeleteBasin(basin=basin.name)
        elif key.name == "e":
            self.input_mode = ReconfigureBasin(basin=basin.name)
            self._spawn("load_basin_config", tasks.load_basin_config, basin.name)

    def _handle_streams_key(self, state: StreamsState, key: Key):
        if self._handle_list_nav(state, key):
            return
        stream = state.selected_item()
        if key.name == "esc":
            if state.filter:
                state.clear_filter()
            else:
                self.open_basins()
        elif key.name == "q":
            self.open_basins()
        elif key.name == "c":
            self.input_mode = CreateStream(basin=state.basin)
        elif stream is None:
            return
        elif key.name == "enter":
            self.open_stream_detail(state.basin, stream.name)
        elif key.name == "d":
            self.input_mode = ConfirmDeleteStream(basin=state.basin, stream=stream.name)
        elif key.name == "e":
            self.input_mode = ReconfigureStream(basin=state.basin, stream=stream.name)
            self._spawn("load_stream_config_for_reconfig",
                        tasks.load_stream_config_for_reconfig, state.basin, stream.name)

    def _handle_tokens_key(self, state: AccessTokensState, key: Key):
        if self._handle_list_nav(state, key):
            return
        token = state.selected_item()
        if key.name == "q":
            self.should_quit = True
        elif key.name == "tab":
            self.open_basins()
        elif key.name == "esc":
            if state.filter:
                state.clear_filter()
        elif key.name == "c":
            self.input_mode = IssueAccessToken()
        elif token is None:
            return
        elif key.name == "enter":
            self.input_mode = ViewTokenDetail(token=token)
        elif key.name == "d":
            self.input_mode = ConfirmRevokeToken(token_id=token.id)

    def _handle_detail_key(self, state: StreamDetailState, key: Key):
        shortcuts = {shortcut: index for index, (_, _, shortcut, _) in enumerate(STREAM_ACTIONS)}
        if key.name in ("j", "down"):
            state.move(1)
        elif key.name in ("k", "up"):
            state.move(-1)
        elif key.name == "enter":
            self._run_stream_action(state, state.selected_action)
        elif key.name in shortcuts:
            state.selected_action = shortcuts[key.name]
            self._run_stream_action(state, state.selected_action)
        elif key.name == "e":
            self.input_mode = ReconfigureStream(basin=state.basin, stream=state.stream)
            self._spawn("load_stream_config_for_reconfig",
                        tasks.load_stream_config_for_reconfig, state.basin, state.stream)
        elif key.name in ("esc", "q"):
            self.open_streams(state.basin)

    def _run_stream_action(self, state: StreamDetailState, index: int):
        action = STREAM_ACTIONS[index][0]
        basin, stream = state.basin, state.stream
        if action == "tail":
            self.open_read(basin, stream, ReadOptions())
        elif action == "read":
            self.input_mode = CustomRead(basin=basin, stream=stream)
        elif action == "append":
            self.open_append(basin, stream)
        elif action == "fence":
            self.input_mode = Fence(basin=basin, stream=stream)
        elif action == "trim":
            self.input_mode = Trim(basin=basin, stream=stream)

    def _handle_read_key(self, state: ReadViewState, key: Key):
        if state.show_detail:
            if key.name in ("esc", "enter", "q", "h"):
                state.show_detail = False
            return
        if key.name == " ":
            state.paused = not state.paused
            self.info("Paused" if state.paused else "Resumed")
        elif key.name in ("j", "down"):
            state.move(1)
        elif key.name in ("k", "up"):
            state.move(-1)
        elif key.name in ("g", "home"):
            state.selected = 0
        elif key.name in ("G", "end"):
            state.move(len(state.records))
        elif key.name in ("tab", "l"):
            state.hide_list = not state.hide_list
        elif key.name in ("enter", "h"):
            if state.selected_record() is not None:
                state.show_detail = True
        elif key.name in ("esc", "q"):
            self.open_stream_detail(state.basin, state.stream)

    def _handle_append_key(self, state: AppendViewState, key: Key):
        if state.appending:
            return
        if state.editing:
            self._edit_append_field(state, key)
            return
        if key.name in ("j", "down"):
            state.move(1)
        elif key.name in ("k", "up"):
            state.move(-1)
        elif key.name == "enter":
            if state.field_name == "send":
                self._submit_append(state)
            else:
                state.editing = True
        elif key.name == "d" and state.field_name == "headers":
            if state.headers:
                state.headers.pop()
        elif key.name in ("esc", "q"):
            self.open_stream_detail(state.basin, state.stream, selected_action=2)

    def _edit_append_field(self, state: AppendViewState, key: Key):
        name = state.field_name
        if name == "headers":
            if key.name == "tab":
                state.editing_header_key = not state.editing_header_key
            elif key.name == "enter":
                if not state.commit_header():
                    state.editing = False
            elif key.name == "esc":
                state.editing = False
            elif key.name == "backspace":
                if state.editing_header_key:
                    state.header_key = state.header_key[:-1]
                else:
                    state.header_value = state.header_value[:-1]
            elif key.is_char():
                if state.editing_header_key:
                    state.header_key += key.name
                else:
                    state.header_value += key.name
            return

        if key.name in ("enter", "esc"):
            state.editing = False
        elif key.name == "backspace":
            setattr(state, name, getattr(state, name)[:-1])
        elif key.is_char():
            if name == "match_seq_num" and not is_digits(key.name):
                return
            setattr(state, name, getattr(state, name) + key.name)

    def _submit_append(self, state: AppendViewState):
        try:
            match_seq_num = parse_u64(state.match_seq_num, "Match seq num")
        except ValidationError as e:
            self.error(str(e))
            return
        state.appending = True
        self._spawn("append", tasks.append_record, state.basin, state.stream, state.body,
                    list(state.headers), match_seq_num, state.fencing_token or None)

    # Input modes

    def _handle_mode_key(self, key: Key):
        mode = self.input_mode
        if isinstance(mode, FormMode):
            action = mode.handle_key(key)
            if action == "cancel":
                self.input_mode = Normal()
            elif action == "submit":
                self._submit_form(mode)
        elif isinstance(mode, (ConfirmDeleteBasin, ConfirmDeleteStream, ConfirmRevokeToken)):
            if mode.in_flight:
                return
            if key.name in ("y", "Y", "enter"):
                self._submit_confirm(mode)
            elif key.name in ("n", "N", "esc"):
                self.input_mode = Normal()
        elif isinstance(mode, ShowIssuedToken):
            self.input_mode = Normal()
        elif isinstance(mode, ViewTokenDetail):
            if key.name in ("esc", "enter", "q"):
                self.input_mode = Normal()

    def _submit_confirm(self, mode: InputMode):
        if isinstance(mode, ConfirmDeleteBasin):
            self._spawn_for_mode(mode, "delete_basin", tasks.delete_basin, mode.basin)
        elif isinstance(mode, ConfirmDeleteStream):
            self._spawn_for_mode(mode, "delete_stream", tasks.delete_stream,
                                 mode.basin, mode.stream)
        elif isinstance(mode, ConfirmRevokeToken):
            self._spawn_for_mode(mode, "revoke_access_token", tasks.revoke_access_token,
                                 mode.token_id)

    def _submit_form(self, mode: FormMode):
        try:
            if isinstance(mode, CreateBasin):
                name, config = mode.build()
                self._spawn_for_mode(mode, "create_basin", tasks.create_basin, name, config)
            elif isinstance(mode, CreateStream):
                name, config = mode.build()
                self._spawn_for_mode(mode, "create_stream", tasks.create_stream,
                                     mode.basin, name, config)
            elif isinstance(mode, ReconfigureBasin):
                self._spawn_for_mode(mode, "reconfigure_basin", tasks.reconfigure_basin,
                                     mode.basin, mode.build())
            elif isinstance(mode, ReconfigureStream):
                self._spawn_for_mode(mode, "reconfigure_stream", tasks.reconfigure_stream,
                                     mode.basin, mode.stream, mode.build())
            elif isinstance(mode, Fence):
                new_token, current_token = mode.build()
                self._spawn_for_mode(mode, "fence", tasks.fence_stream, mode.basin, mode.stream,
                                     new_token, current_token)
            elif isinstance(mode, Trim):
                trim_point, fencing_token = mode.build()
                self._spawn_for_mode(mode, "trim", tasks.trim_stream, mode.basin, mode.stream,
                                     trim_point, fencing_token)
            elif isinstance(mode, IssueAccessToken):
                now = datetime.fromtimestamp(self.wall_clock(), tz=timezone.utc)
                token_id, scope, expires_at, auto_prefix = mode.build(now)
                self._spawn_for_mode(mode, "issue_access_token", tasks.issue_access_token,
                                     token_id, scope, expires_at, auto_prefix)
            elif isinstance(mode, CustomRead):
                options = mode.build(int(self.wall_clock() * 1000))
                self.input_mode = Normal()
                self.open_read(mode.basin, mode.stream, options, mode.output_file,
                               mode.values["format"])
        except ValidationError as e:
            self.error(str(e))


def run_dashboard(client, poll_interval: float = 0.05, splash_duration: float = 1.2) -> int:
    """Run the dashboard on the real terminal until the user quits."""
    events: queue.Queue = queue.Queue()
    app = DashboardApp(
        client=client,
        runner=tasks.TaskRunner(events),
        events=events,
        poll_interval=poll_interval,
        splash_duration=splash_duration,
    )
    with CursesTerminal() as terminal:
        app.run(terminal)
    logger.info("Dashboard exited")
    return 0
