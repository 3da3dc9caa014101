"""Pure rendering: dashboard state -> Frame.

Nothing here touches curses or mutates the app; terminal.py paints the
Frame. Keeping it pure makes every screen testable from a state value.
"""

from __future__ import annotations

import textwrap
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Optional

from ..models import AccessTokenInfo, SequencedRecord, StreamConfig
from .modes import (
    ConfirmDeleteBasin,
    ConfirmDeleteStream,
    ConfirmRevokeToken,
    FormField,
    FormMode,
    Normal,
    ReconfigureBasin,
    ReconfigureStream,
    ShowIssuedToken,
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

SPINNER_FRAMES = ["|", "/", "-", "\\"]

SPLASH_ART = [
    " ____  ____  ",
    "/ ___||___ \\ ",
    "\\___ \\  __) |",
    " ___) |/ __/ ",
    "|____/|_____|",
]

HELP_LINES = [
    ("Global", ""),
    ("?", "toggle this help"),
    ("q", "quit (top level) / back"),
    ("Ctrl+C", "quit from anywhere"),
    ("Tab", "switch Basins / Access Tokens"),
    ("Lists", ""),
    ("j/k  g/G", "move, first, last"),
    ("/", "filter (Esc clears, Enter keeps)"),
    ("Enter", "open"),
    ("c d e r", "create, delete, reconfigure, refresh"),
    ("Stream", ""),
    ("t r a f m", "tail, custom read, append, fence, trim"),
    ("Read view", ""),
    ("Space", "pause / resume"),
    ("Enter/h", "record detail"),
    ("Tab/l", "hide or show the record list"),
]


@dataclass
class Line:
    text: str = ""
    style: str = "normal"


@dataclass
class Dialog:
    title: str
    lines: list[Line] = field(default_factory=list)
    style: str = "dialog"


@dataclass
class Frame:
    """A full screen: one Line per row plus an optional centered dialog."""

    width: int
    height: int
    lines: list[Line]
    dialog: Optional[Dialog] = None

    def text(self) -> str:
        """Plain-text snapshot, handy for tests and debugging."""
        rows = [line.text for line in self.lines]
        if self.dialog:
            rows.append(f"[{self.dialog.title}]")
            rows.extend(line.text for line in self.dialog.lines)
        return "\n".join(rows)


def _truncate(text: str, width: int, align: str = "left") -> str:
    if width <= 0:
        return ""
    value = text or ""
    if len(value) > width:
        if width <= 3:
            value = value[:width]
        else:
            value = value[: width - 3] + "..."
    if align == "right":
        return value.rjust(width)
    return value.ljust(width)


def _window_start(total: int, selected: int, rows: int) -> int:
    if rows <= 0 or total <= rows:
        return 0
    start = max(0, selected - rows // 2)
    return min(start, total - rows)


def _format_ts(ms: int) -> str:
    if not ms:
        return "-"
    return datetime.fromtimestamp(ms / 1000, tz=timezone.utc).strftime("%Y-%m-%d %H:%M:%S.%f")[:-3]


def _format_secs(seconds: Optional[int]) -> str:
    if seconds is None:
        return "-"
    for unit, size in (("d", 86400), ("h", 3600), ("m", 60)):
        if seconds >= size and seconds % size == 0:
            return f"{seconds // size}{unit}"
    return f"{seconds}s"


def _preview(record: SequencedRecord, width: int) -> str:
    if record.is_command():
        return f"<{record.headers[0][1].decode('utf-8', errors='replace')} command>"
    return record.body_text().replace("\n", " ")[: max(0, width)]


# Screens


def _splash_lines(state: SplashState, height: int, spinner: str) -> list[Line]:
    top = max(0, (height - len(SPLASH_ART) - 4) // 2)
    lines = [Line() for _ in range(top)]
    lines.extend(Line(art, "accent") for art in SPLASH_ART)
    lines.append(Line())
    lines.append(Line("Streaming storage dashboard", "title"))
    if state.basins is None and state.error is None:
        lines.append(Line(f"{spinner} Connecting...", "muted"))
    else:
        lines.append(Line("Press any key", "muted"))
    return lines


def _filter_line(state: ListState, placeholder: str) -> Line:
    if state.filter_active:
        return Line(f" [/] {state.filter}_", "accent")
    if state.filter:
        return Line(f" [/] {state.filter}", "normal")
    return Line(f" [/] {placeholder}...", "muted")


def _list_lines(state: ListState, header: str, rows: list[str], noun: str,
                body_height: int, spinner: str) -> list[Line]:
    lines = [_filter_line(state, f"Filter {noun}"), Line(f"  {header}", "header")]
    visible = state.filtered()
    if state.loading and not state.items:
        lines.append(Line(f"  {spinner} Loading {noun}...", "muted"))
        return lines
    if not visible:
        if state.filter:
            lines.append(Line(f"  No {noun} match '{state.filter}'", "muted"))
        else:
            lines.append(Line(f"  No {noun}. Press c to create one.", "muted"))
        return lines

    rows_available = max(1, body_height - len(lines))
    start = _window_start(len(rows), state.selected, rows_available)
    for index in range(start, min(len(rows), start + rows_available)):
        if index == state.selected:
            lines.append(Line(f"> {rows[index]}", "selected"))
        else:
            lines.append(Line(f"  {rows[index]}"))
    return lines


def _basins_lines(state: BasinsState, width: int, body_height: int, spinner: str) -> list[Line]:
    name_width = max(10, width - 30)
    header = f"{_truncate('NAME', name_width)}  {_truncate('STATE', 10)}  SCOPE"
    rows = [
        f"{_truncate(b.name, name_width)}  {_truncate(b.state.value, 10)}  {b.scope or '-'}"
        for b in state.filtered()
    ]
    return _list_lines(state, header, rows, "basins", body_height, spinner)


def _streams_lines(state: StreamsState, width: int, body_height: int, spinner: str) -> list[Line]:
    name_width = max(10, width - 30)
    header = f"{_truncate('NAME', name_width)}  CREATED"
    rows = []
    for s in state.filtered():
        created = (s.created_at or "-")[:19].replace("T", " ")
        suffix = "  (deleting)" if s.deleted_at else ""
        rows.append(f"{_truncate(s.name, name_width)}  {created}{suffix}")
    return _list_lines(state, header, rows, "streams", body_height, spinner)


def _scope_summary(token: AccessTokenInfo) -> str:
    scope = token.scope
    basins = scope.basins.describe() if scope.basins else "none"
    streams = scope.streams.describe() if scope.streams else "none"
    return f"basins {basins} streams {streams}"


def _tokens_lines(state: AccessTokensState, width: int, body_height: int,
                  spinner: str) -> list[Line]:
    id_width = max(10, min(30, width // 3))
    header = f"{_truncate('ID', id_width)}  {_truncate('EXPIRES', 16)}  SCOPE"
    rows = [
        f"{_truncate(t.id, id_width)}  {_truncate(t.expiry_label(), 16)}  {_scope_summary(t)}"
        for t in state.filtered()
    ]
    return _list_lines(state, header, rows, "access tokens", body_height, spinner)


def config_lines(config: StreamConfig) -> list[str]:
    storage = config.storage_class.value if config.storage_class else "default"
    if config.retention_age_secs is None:
        retention = "infinite"
    else:
        retention = f"{_format_secs(config.retention_age_secs)}"
    mode = config.timestamping_mode.value if config.timestamping_mode else "default"
    uncapped = " (uncapped)" if config.timestamping_uncapped else ""
    if config.delete_on_empty_min_age_secs is None:
        delete_on_empty = "off"
    else:
        delete_on_empty = f"after {_format_secs(config.delete_on_empty_min_age_secs)}"
    return [
        f"Storage class    {storage}",
        f"Retention        {retention}",
        f"Timestamping     {mode}{uncapped}",
        f"Delete on empty  {delete_on_empty}",
    ]


def _detail_lines(state: StreamDetailState, spinner: str) -> list[Line]:
    lines = [Line(f"  {state.basin} / {state.stream}", "title"), Line()]

    lines.append(Line("  Tail", "header"))
    if state.tail_position is not None:
        tail = state.tail_position
        lines.append(Line(f"    seq {tail.seq_num}   at {_format_ts(tail.timestamp)}"))
    elif state.tail_pending:
        lines.append(Line(f"    {spinner} checking tail...", "muted"))
    else:
        lines.append(Line("    unavailable", "muted"))

    lines.append(Line())
    lines.append(Line("  Config", "header"))
    if state.config is not None:
        lines.extend(Line(f"    {text}") for text in config_lines(state.config))
    elif state.config_pending:
        lines.append(Line(f"    {spinner} loading config...", "muted"))
    else:
        lines.append(Line("    unavailable", "muted"))

    lines.append(Line())
    lines.append(Line("  Actions", "header"))
    for index, (_, label, shortcut, description) in enumerate(STREAM_ACTIONS):
        text = f"[{shortcut}] {_truncate(label, 12)} {description}"
        if index == state.selected_action:
            lines.append(Line(f"  > {text}", "selected"))
        else:
            lines.append(Line(f"    {text}"))
    return lines


def record_detail_lines(record: SequencedRecord, width: int) -> list[Line]:
    lines = [
        Line(f"seq_num    {record.seq_num}"),
        Line(f"timestamp  {record.timestamp} ({_format_ts(record.timestamp)})"),
        Line(f"headers    {len(record.headers)}"),
    ]
    for name, value in record.headers:
        label = name.decode("utf-8", errors="replace") or '""'
        lines.append(Line(f"  {label}: {value.decode('utf-8', errors='replace')}", "muted"))
    lines.append(Line(f"body       {len(record.body)} bytes"))
    wrap_width = max(10, width - 4)
    for paragraph in record.body_text().splitlines() or [""]:
        for chunk in textwrap.wrap(paragraph, wrap_width) or [""]:
            lines.append(Line(f"  {chunk}"))
    return lines


def _read_lines(state: ReadViewState, width: int, body_height: int, spinner: str) -> list[Line]:
    if state.paused:
        badge = "[PAUSED]"
    elif state.is_live:
        badge = "[LIVE]"
    else:
        badge = "[READ]"
    header = f"  {state.basin} / {state.stream}  {badge}  {len(state.records)} buffered"
    lines = [Line(header, "title")]
    if state.output_file:
        lines.append(Line(f"  Writing to {state.output_file}", "muted"))

    if not state.records:
        if state.loading:
            lines.append(Line(f"  {spinner} Waiting for records...", "muted"))
        else:
            lines.append(Line("  No records", "muted"))
        return lines

    if state.hide_list:
        record = state.selected_record()
        lines.extend(record_detail_lines(record, width))
        return lines

    lines.append(Line(f"  {_truncate('SEQ', 10)}  {_truncate('TIMESTAMP', 23)}  BODY", "header"))
    rows_available = max(1, body_height - len(lines))
    records = list(state.records)
    start = _window_start(len(records), state.selected, rows_available)
    body_width = max(0, width - 42)
    for index in range(start, min(len(records), start + rows_available)):
        record = records[index]
        text = (f"{_truncate(str(record.seq_num), 10)}  "
                f"{_truncate(_format_ts(record.timestamp), 23)}  {_preview(record, body_width)}")
        if index == state.selected:
            lines.append(Line(f"> {text}", "selected"))
        else:
            lines.append(Line(f"  {text}"))
    return lines


def _append_lines(state: AppendViewState) -> list[Line]:
    lines = [Line(f"  Append to {state.basin} / {state.stream}", "title"), Line()]

    def field_line(index: int, label: str, value: str):
        selected = index == state.selected
        cursor = "_" if selected and state.editing else ""
        marker = ">" if selected else " "
        style = "selected" if selected else "normal"
        lines.append(Line(f"  {marker} {_truncate(label, 16)} {value}{cursor}", style))

    field_line(0, "Body", state.body)
    headers = ", ".join(f"{k}={v}" for k, v in state.headers) or "(none)"
    field_line(1, "Headers", headers)
    if state.selected == 1 and state.editing:
        key_cursor = "_" if state.editing_header_key else ""
        value_cursor = "" if state.editing_header_key else "_"
        lines.append(Line(
            f"      key: {state.header_key}{key_cursor}   value: {state.header_value}{value_cursor}",
            "accent",
        ))
    field_line(2, "Match seq num", state.match_seq_num)
    field_line(3, "Fencing token", state.fencing_token)
    send = "[ Appending... ]" if state.appending else "[ Send ]"
    field_line(4, "", send)

    if state.history:
        lines.append(Line())
        lines.append(Line("  Appended", "header"))
        for result in reversed(state.history[-10:]):
            lines.append(Line(
                f"    seq {result.seq_num}  {result.body_preview!r}  "
                f"{result.header_count} header(s)",
                "muted",
            ))
    return lines


# Dialogs


def _field_value(form: FormMode, form_field: FormField, selected: bool) -> str:
    value = form.values[form_field.key]
    if form_field.kind == "toggle":
        return "[x]" if value else "[ ]"
    if form_field.kind == "choice":
        return f"< {value} >" if selected else str(value)
    if form_field.kind == "button":
        return ""
    cursor = "_" if selected and form.editing else ""
    return f"{value}{cursor}"


def form_dialog(form: FormMode) -> Dialog:
    title = form.TITLE
    target = getattr(form, "stream", "") or getattr(form, "basin", "")
    if target:
        title = f"{title}: {target}"
    dialog = Dialog(title=title)
    if isinstance(form, (ReconfigureBasin, ReconfigureStream)) and not form.loaded:
        dialog.lines.append(Line("Loading current config...", "muted"))
        return dialog

    visible = form.visible_fields()
    for index, form_field in enumerate(visible):
        selected = index == form.selected
        marker = ">" if selected else " "
        style = "selected" if selected else "normal"
        if form_field.kind == "button":
            label = "..." if form.in_flight else form_field.label
            dialog.lines.append(Line(f"{marker} [ {label} ]", style))
        else:
            value = _field_value(form, form_field, selected)
            dialog.lines.append(Line(f"{marker} {_truncate(form_field.label, 24)} {value}", style))
    if form.in_flight:
        dialog.lines.append(Line("Submitting...", "muted"))
    return dialog


def _token_detail_dialog(token: AccessTokenInfo) -> Dialog:
    scope = token.scope

    def matcher(m) -> str:
        return m.describe() if m else "none"

    lines = [
        Line(f"Id                  {token.id}"),
        Line(f"Expires             {token.expiry_label()}"),
        Line(f"Basins              {matcher(scope.basins)}"),
        Line(f"Streams             {matcher(scope.streams)}"),
        Line(f"Access tokens       {matcher(scope.access_tokens)}"),
        Line(f"Permissions         {scope.op_groups.describe()}"),
        Line(f"Auto-prefix streams {'yes' if token.auto_prefix_streams else 'no'}"),
    ]
    if scope.ops:
        lines.append(Line(f"Operations          {', '.join(scope.ops)}", "muted"))
    return Dialog(title="Access token", lines=lines)


def mode_dialog(mode) -> Optional[Dialog]:
    if isinstance(mode, Normal):
        return None
    if isinstance(mode, FormMode):
        return form_dialog(mode)
    if isinstance(mode, ConfirmDeleteBasin):
        return _confirm_dialog("Delete basin", f"Delete basin '{mode.basin}'?", mode.in_flight)
    if isinstance(mode, ConfirmDeleteStream):
        return _confirm_dialog(
            "Delete stream", f"Delete stream '{mode.basin}/{mode.stream}'?", mode.in_flight
        )
    if isinstance(mode, ConfirmRevokeToken):
        return _confirm_dialog(
            "Revoke token", f"Revoke access token '{mode.token_id}'?", mode.in_flight
        )
    if isinstance(mode, ShowIssuedToken):
        return Dialog(
            title="Access token issued",
            lines=[
                Line(mode.token, "accent"),
                Line(),
                Line("Copy it now, it won't be shown again.", "error"),
                Line("Press any key to close", "muted"),
            ],
        )
    if isinstance(mode, ViewTokenDetail):
        return _token_detail_dialog(mode.token)
    return None


def _confirm_dialog(title: str, question: str, in_flight: bool) -> Dialog:
    status = Line("Working...", "muted") if in_flight else Line("y: yes   n: no", "muted")
    return Dialog(title=title, lines=[Line(question), Line(), status], style="error")


def help_dialog() -> Dialog:
    lines = []
    for keys, description in HELP_LINES:
        if not description:
            lines.append(Line(keys, "header"))
        else:
            lines.append(Line(f"  {_truncate(keys, 12)} {description}"))
    lines.append(Line())
    lines.append(Line("? or Esc to close", "muted"))
    return Dialog(title="Keys", lines=lines)


# Hints


def hints_for(app) -> str:
    mode = app.input_mode
    screen = app.screen
    if app.show_help:
        return "?/Esc: close help"
    if isinstance(mode, FormMode):
        if mode.editing:
            return "type to edit  Enter/Esc: done"
        extra = "  s: save" if mode.SUBMIT_KEY else ""
        return f"j/k: field  Enter/Space: edit/toggle  h/l: cycle{extra}  Esc: cancel"
    if isinstance(mode, (ConfirmDeleteBasin, ConfirmDeleteStream, ConfirmRevokeToken)):
        return "y/Enter: confirm  n/Esc: cancel"
    if isinstance(mode, ShowIssuedToken):
        return "any key: close"
    if isinstance(mode, ViewTokenDetail):
        return "Esc/Enter: close"
    if isinstance(screen, ListState) and screen.filter_active:
        return "type to filter  Enter: keep  Esc: clear"
    if isinstance(screen, SplashState):
        return "any key: continue"
    if isinstance(screen, BasinsState):
        return "j/k: move  Enter: streams  /: filter  c: create  d: delete  e: config  r: refresh  Tab: tokens  ?: help  q: quit"
    if isinstance(screen, StreamsState):
        return "j/k: move  Enter: open  /: filter  c: create  d: delete  e: config  r: refresh  Esc: back"
    if isinstance(screen, AccessTokensState):
        return "j/k: move  Enter: details  /: filter  c: issue  d: revoke  r: refresh  Tab: basins  q: quit"
    if isinstance(screen, StreamDetailState):
        return "j/k: action  Enter: run  t: tail  r: read  a: append  f: fence  m: trim  e: config  Esc: back"
    if isinstance(screen, ReadViewState):
        if screen.show_detail:
            return "Esc/Enter: close"
        return "Space: pause  j/k: move  g/G: first/last  Enter: detail  Tab: toggle list  Esc: back"
    if isinstance(screen, AppendViewState):
        if screen.editing and screen.selected == 1:
            return "Tab: key/value  Enter: add header  Esc: done"
        if screen.editing:
            return "type to edit  Enter/Esc: done"
        return "j/k: field  Enter: edit/send  d: drop last header  Esc: back"
    return ""


def _title(app, screen) -> str:
    if isinstance(screen, StreamsState):
        return f"s2  Basins / {screen.basin}"
    if isinstance(screen, (StreamDetailState, ReadViewState, AppendViewState)):
        return f"s2  Basins / {screen.basin} / {screen.stream}"
    if isinstance(screen, AccessTokensState):
        return "s2  Access Tokens"
    return "s2  Basins"


def _tab_line(app) -> Line:
    basins = "[Basins]" if app.tab.value == "basins" else " Basins "
    tokens = "[Access Tokens]" if app.tab.value == "access_tokens" else " Access Tokens "
    return Line(f" {basins} | {tokens}   (Tab to switch)", "header")


def build_frame(app, width: int, height: int) -> Frame:
    """Project the app's screen, mode and message onto a width x height frame."""
    screen = app.screen
    spinner = SPINNER_FRAMES[app.spinner_index % len(SPINNER_FRAMES)]

    header: list[Line] = []
    if not isinstance(screen, SplashState):
        header.append(Line(_title(app, screen), "title"))
        if isinstance(screen, (BasinsState, AccessTokensState)):
            header.append(_tab_line(app))
    # status + hints rows at the bottom
    body_height = max(1, height - len(header) - 2)

    body: list[Line] = []
    if isinstance(screen, SplashState):
        body = _splash_lines(screen, body_height, spinner)
    elif isinstance(screen, BasinsState):
        body = _basins_lines(screen, width, body_height, spinner)
    elif isinstance(screen, StreamsState):
        body = _streams_lines(screen, width, body_height, spinner)
    elif isinstance(screen, AccessTokensState):
        body = _tokens_lines(screen, width, body_height, spinner)
    elif isinstance(screen, StreamDetailState):
        body = _detail_lines(screen, spinner)
    elif isinstance(screen, ReadViewState):
        body = _read_lines(screen, width, body_height, spinner)
    elif isinstance(screen, AppendViewState):
        body = _append_lines(screen)

    rows = header + body
    rows = rows[: max(0, height - 2)]
    rows.extend(Line() for _ in range(max(0, height - 2 - len(rows))))

    if app.message is not None:
        rows.append(Line(app.message.text, app.message.level))
    else:
        rows.append(Line())
    rows.append(Line(hints_for(app), "muted"))
    rows = [Line(_truncate(line.text, max(0, width - 1)).rstrip(), line.style) for line in rows]

    dialog = None
    if app.show_help:
        dialog = help_dialog()
    else:
        dialog = mode_dialog(app.input_mode)
        if dialog is None and isinstance(screen, ReadViewState) and screen.show_detail:
            record = screen.selected_record()
            if record is not None:
                dialog = Dialog(title=f"Record {record.seq_num}",
                                lines=record_detail_lines(record, min(width - 8, 100)))
    return Frame(width=width, height=height, lines=rows[:height], dialog=dialog)
