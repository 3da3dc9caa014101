"""Per-screen state for the dashboard.

Exactly one screen state is active at a time. Screen states are plain
dataclasses mutated only by DashboardApp on the UI thread.
"""

from __future__ import annotations

from collections import deque
from dataclasses import dataclass, field
from typing import Optional

from ..models import (
    AccessTokenInfo,
    BasinInfo,
    SequencedRecord,
    StreamConfig,
    StreamInfo,
    StreamPosition,
)

MAX_RECORDS_BUFFER = 1000


@dataclass
class ListState:
    """Shared list behaviour: filtering, clamped selection, load tracking."""

    items: list = field(default_factory=list)
    selected: int = 0
    loading: bool = True
    filter: str = ""
    filter_active: bool = False
    # Only the load with this id may replace items.
    load_id: int = 0

    def item_key(self, item) -> str:
        return item.name

    def matches(self, item, needle: str) -> bool:
        return needle in self.item_key(item)

    def filtered(self) -> list:
        if not self.filter:
            return list(self.items)
        return [item for item in self.items if self.matches(item, self.filter)]

    def selected_item(self):
        visible = self.filtered()
        if not visible:
            return None
        return visible[min(self.selected, len(visible) - 1)]

    def _clamp(self):
        count = len(self.filtered())
        self.selected = max(0, min(self.selected, count - 1)) if count else 0

    def move(self, delta: int):
        self.selected += delta
        self._clamp()

    def first(self):
        self.selected = 0

    def last(self):
        self.selected = max(0, len(self.filtered()) - 1)

    def push_filter(self, ch: str):
        self.filter += ch
        self.selected = 0

    def pop_filter(self):
        self.filter = self.filter[:-1]
        self.selected = 0

    def clear_filter(self):
        self.filter = ""
        self.selected = 0

    def set_items(self, items: list):
        self.items = list(items)
        self.loading = False
        self._clamp()

    def begin_load(self, load_id: int) -> int:
        """Mark a new load in flight; earlier loads are superseded."""
        self.load_id = load_id
        self.loading = True
        return load_id


@dataclass
class BasinsState(ListState):
    items: list[BasinInfo] = field(default_factory=list)


@dataclass
class StreamsState(ListState):
    basin: str = ""
    items: list[StreamInfo] = field(default_factory=list)


@dataclass
class AccessTokensState(ListState):
    items: list[AccessTokenInfo] = field(default_factory=list)

    def item_key(self, item) -> str:
        return item.id

    def matches(self, item, needle: str) -> bool:
        return needle.lower() in item.id.lower()


@dataclass
class SplashState:
    """Startup screen; holds the first basins result until it is shown."""

    started_at: float = 0.0
    load_id: int = 1
    basins: Optional[list[BasinInfo]] = None
    error: Optional[str] = None


STREAM_ACTIONS = [
    ("tail", "Tail", "t", "Follow new records live"),
    ("read", "Custom read", "r", "Read with start position, limits and output"),
    ("append", "Append", "a", "Write records to the stream"),
    ("fence", "Fence", "f", "Set a fencing token"),
    ("trim", "Trim", "m", "Delete records before a sequence number"),
]


@dataclass
class StreamDetailState:
    basin: str
    stream: str
    config: Optional[StreamConfig] = None
    tail_position: Optional[StreamPosition] = None
    selected_action: int = 0
    loading: bool = True
    config_pending: bool = True
    tail_pending: bool = True

    def settle(self):
        self.loading = self.config_pending or self.tail_pending

    def move(self, delta: int):
        self.selected_action = max(0, min(self.selected_action + delta, len(STREAM_ACTIONS) - 1))


@dataclass
class ReadViewState:
    """Records of one read session.

    While paused, incoming records are discarded, not queued, so resuming
    shows the latest position rather than a replay.
    """

    basin: str
    stream: str
    session_id: int
    is_live: bool = True
    records: deque = field(default_factory=lambda: deque(maxlen=MAX_RECORDS_BUFFER))
    paused: bool = False
    selected: int = 0
    loading: bool = True
    show_detail: bool = False
    hide_list: bool = False
    output_file: Optional[str] = None
    received: int = 0

    def push_record(self, record: SequencedRecord) -> bool:
        """Buffer a record unless paused. Returns True if it was kept."""
        if self.paused:
            return False
        evicting = len(self.records) == self.records.maxlen
        self.records.append(record)
        self.received += 1
        self.loading = False
        if self.is_live:
            self.selected = len(self.records) - 1
        elif evicting and self.selected > 0:
            self.selected -= 1
        return True

    def selected_record(self) -> Optional[SequencedRecord]:
        if not self.records:
            return None
        return self.records[min(self.selected, len(self.records) - 1)]

    def move(self, delta: int):
        if not self.records:
            self.selected = 0
            return
        self.selected = max(0, min(self.selected + delta, len(self.records) - 1))


@dataclass
class AppendResult:
    seq_num: int
    body_preview: str
    header_count: int


APPEND_FIELDS = ["body", "headers", "match_seq_num", "fencing_token", "send"]


@dataclass
class AppendViewState:
    basin: str
    stream: str
    body: str = ""
    headers: list[tuple[str, str]] = field(default_factory=list)
    header_key: str = ""
    header_value: str = ""
    editing_header_key: bool = True
    match_seq_num: str = ""
    fencing_token: str = ""
    selected: int = 0
    editing: bool = False
    appending: bool = False
    history: list[AppendResult] = field(default_factory=list)

    @property
    def field_name(self) -> str:
        return APPEND_FIELDS[self.selected]

    def move(self, delta: int):
        self.selected = max(0, min(self.selected + delta, len(APPEND_FIELDS) - 1))

    def commit_header(self) -> bool:
        """Move the pending key/value pair into headers; False if key is empty."""
        if not self.header_key:
            return False
        self.headers.append((self.header_key, self.header_value))
        self.header_key = ""
        self.header_value = ""
        self.editing_header_key = True
        return True
