"""Input modes: dialogs that capture keys before the active screen does.

Forms are declared as a list of FormField descriptors. A form only edits
its own values; turning them into requests happens in the build_* methods,
which raise ValidationError so the dialog can stay open with a message.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Callable, ClassVar, Optional

from ..cli.client import ReadOptions
from ..models import (
    AccessTokenInfo,
    AccessTokenScope,
    BasinConfig,
    PermittedOperationGroups,
    ResourceMatcher,
    StorageClass,
    StreamConfig,
    TimestampingMode,
)
from ..validation import (
    ValidationError,
    format_duration,
    parse_duration,
    parse_u64,
    validate_basin_name,
    validate_stream_name,
    validate_token_id,
)
from .keys import Key

DIGITS = r"[0-9]"
DURATION_CHARS = r"[0-9smhdwSMHDW]"


@dataclass(frozen=True)
class FormField:
    key: str
    label: str
    kind: str  # text, choice, toggle, button
    default: object = ""
    choices: tuple = ()
    charset: Optional[str] = None
    visible: Optional[Callable[[dict], bool]] = None

    def is_visible(self, values: dict) -> bool:
        return self.visible is None or self.visible(values)

    def accepts(self, ch: str) -> bool:
        return self.charset is None or re.fullmatch(self.charset, ch) is not None


class InputMode:
    """Base for all modes. Normal is the absence of an overlay."""

    in_flight: bool = False
    task: Optional[str] = None


@dataclass
class Normal(InputMode):
    pass


@dataclass
class FormMode(InputMode):
    """A dialog made of FormFields."""

    TITLE: ClassVar[str] = ""
    FIELDS: ClassVar[list[FormField]] = []
    SUBMIT_KEY: ClassVar[Optional[str]] = None

    values: dict = field(default_factory=dict)
    selected: int = 0
    editing: bool = False
    in_flight: bool = False
    task: Optional[str] = None

    def __post_init__(self):
        for form_field in self.FIELDS:
            self.values.setdefault(form_field.key, form_field.default)

    def visible_fields(self) -> list[FormField]:
        return [form_field for form_field in self.FIELDS if form_field.is_visible(self.values)]

    def current_field(self) -> FormField:
        visible = self.visible_fields()
        self.selected = max(0, min(self.selected, len(visible) - 1))
        return visible[self.selected]

    def move(self, delta: int):
        count = len(self.visible_fields())
        self.selected = max(0, min(self.selected + delta, count - 1))

    def cycle(self, form_field: FormField, delta: int):
        choices = form_field.choices
        index = choices.index(self.values[form_field.key]) if self.values[form_field.key] in choices else 0
        self.values[form_field.key] = choices[(index + delta) % len(choices)]

    def handle_key(self, key: Key) -> Optional[str]:
        """Apply a key; returns "submit", "cancel" or None."""
        if self.in_flight:
            return None
        form_field = self.current_field()

        if self.editing:
            if key.name in ("enter", "esc", "tab"):
                self.editing = False
            elif key.name == "backspace":
                self.values[form_field.key] = self.values[form_field.key][:-1]
            elif key.is_char() and form_field.accepts(key.name):
                self.values[form_field.key] += key.name
            return None

        if key.name == "esc":
            return "cancel"
        if self.SUBMIT_KEY and key.name == self.SUBMIT_KEY:
            return "submit"
        if key.name in ("j", "down", "tab"):
            self.move(1)
        elif key.name in ("k", "up"):
            self.move(-1)
        elif key.name in ("enter", " "):
            if form_field.kind == "button":
                return "submit"
            if form_field.kind == "text":
                self.editing = True
            elif form_field.kind == "toggle":
                self.values[form_field.key] = not self.values[form_field.key]
            elif form_field.kind == "choice":
                self.cycle(form_field, 1)
        elif key.name in ("h", "left", "l", "right"):
            delta = -1 if key.name in ("h", "left") else 1
            if form_field.kind == "choice":
                self.cycle(form_field, delta)
            elif form_field.kind == "toggle":
                self.values[form_field.key] = not self.values[form_field.key]
        elif form_field.kind == "text" and key.is_char() and form_field.accepts(key.name):
            # Typing on a text field starts editing it.
            self.editing = True
            self.values[form_field.key] += key.name
        return None


def _retention_is_age(values: dict) -> bool:
    return values["retention"] == "age"


def _delete_on_empty(values: dict) -> bool:
    return bool(values["delete_on_empty"])


STREAM_CONFIG_FIELDS = [
    FormField("storage_class", "Storage class", "choice", "default",
              choices=("default", "standard", "express")),
    FormField("retention", "Retention", "choice", "infinite", choices=("infinite", "age")),
    FormField("retention_age", "Retention age", "text", "7d", charset=DURATION_CHARS,
              visible=_retention_is_age),
    FormField("timestamping", "Timestamping", "choice", "default",
              choices=("default", "client-prefer", "client-require", "arrival")),
    FormField("uncapped", "Uncapped timestamps", "toggle", False),
    FormField("delete_on_empty", "Delete on empty", "toggle", False),
    FormField("delete_on_empty_min_age", "Min age", "text", "7d", charset=DURATION_CHARS,
              visible=_delete_on_empty),
]

BASIN_FLAG_FIELDS = [
    FormField("create_stream_on_append", "Create stream on append", "toggle", False),
    FormField("create_stream_on_read", "Create stream on read", "toggle", False),
]


def build_stream_config(values: dict) -> StreamConfig:
    """Stream config from form values. Raises ValidationError."""
    storage_class = values["storage_class"]
    timestamping = values["timestamping"]
    retention_age = None
    if values["retention"] == "age":
        retention_age = parse_duration(values["retention_age"])
    min_age = None
    if values["delete_on_empty"]:
        min_age = parse_duration(values["delete_on_empty_min_age"])
    return StreamConfig(
        storage_class=None if storage_class == "default" else StorageClass(storage_class),
        retention_age_secs=retention_age,
        timestamping_mode=None if timestamping == "default" else TimestampingMode(timestamping),
        timestamping_uncapped=bool(values["uncapped"]),
        delete_on_empty_min_age_secs=min_age,
    )


def build_basin_config(values: dict) -> BasinConfig:
    return BasinConfig(
        default_stream_config=build_stream_config(values),
        create_stream_on_append=bool(values["create_stream_on_append"]),
        create_stream_on_read=bool(values["create_stream_on_read"]),
    )


def stream_config_values(config: StreamConfig) -> dict:
    """Inverse of build_stream_config, used to prefill reconfigure forms."""
    return {
        "storage_class": config.storage_class.value if config.storage_class else "default",
        "retention": "infinite" if config.retention_age_secs is None else "age",
        "retention_age": format_duration(config.retention_age_secs or 604800),
        "timestamping": config.timestamping_mode.value if config.timestamping_mode else "default",
        "uncapped": config.timestamping_uncapped,
        "delete_on_empty": config.delete_on_empty_min_age_secs is not None,
        "delete_on_empty_min_age": format_duration(config.delete_on_empty_min_age_secs or 604800),
    }


@dataclass
class CreateBasin(FormMode):
    TITLE: ClassVar[str] = "Create basin"
    FIELDS: ClassVar[list[FormField]] = [
        FormField("name", "Name", "text", "", charset=r"[a-z0-9-]"),
        *STREAM_CONFIG_FIELDS,
        *BASIN_FLAG_FIELDS,
        FormField("submit", "Create", "button"),
    ]

    def build(self) -> tuple[str, BasinConfig]:
        name = self.values["name"]
        ok, error = validate_basin_name(name)
        if not ok:
            raise ValidationError(error)
        return name, build_basin_config(self.values)


@dataclass
class CreateStream(FormMode):
    TITLE: ClassVar[str] = "Create stream"
    FIELDS: ClassVar[list[FormField]] = [
        FormField("name", "Name", "text", ""),
        *STREAM_CONFIG_FIELDS,
        FormField("submit", "Create", "button"),
    ]

    basin: str = ""

    def build(self) -> tuple[str, StreamConfig]:
        name = self.values["name"]
        ok, error = validate_stream_name(name)
        if not ok:
            raise ValidationError(error)
        return name, build_stream_config(self.values)


@dataclass
class ReconfigureBasin(FormMode):
    """Edits a basin config; fields are only meaningful once loaded."""

    TITLE: ClassVar[str] = "Reconfigure basin"
    FIELDS: ClassVar[list[FormField]] = [
        *STREAM_CONFIG_FIELDS,
        *BASIN_FLAG_FIELDS,
        FormField("submit", "Save", "button"),
    ]
    SUBMIT_KEY: ClassVar[Optional[str]] = "s"

    basin: str = ""
    loaded: bool = False

    def load(self, config: BasinConfig):
        self.values.update(stream_config_values(config.default_stream_config))
        self.values["create_stream_on_append"] = config.create_stream_on_append
        self.values["create_stream_on_read"] = config.create_stream_on_read
        self.loaded = True

    def handle_key(self, key: Key) -> Optional[str]:
        if not self.loaded and key.name != "esc":
            return None
        return super().handle_key(key)

    def build(self) -> BasinConfig:
        return build_basin_config(self.values)


@dataclass
class ReconfigureStream(FormMode):
    TITLE: ClassVar[str] = "Reconfigure stream"
    FIELDS: ClassVar[list[FormField]] = [
        *STREAM_CONFIG_FIELDS,
        FormField("submit", "Save", "button"),
    ]
    SUBMIT_KEY: ClassVar[Optional[str]] = "s"

    basin: str = ""
    stream: str = ""
    loaded: bool = False

    def load(self, config: StreamConfig):
        self.values.update(stream_config_values(config))
        self.loaded = True

    def handle_key(self, key: Key) -> Optional[str]:
        if not self.loaded and key.name != "esc":
            return None
        return super().handle_key(key)

    def build(self) -> StreamConfig:
        return build_stream_config(self.values)


def _start_is(kind: str) -> Callable[[dict], bool]:
    return lambda values: values["start_from"] == kind


AGO_UNITS = {"s": 1, "m": 60, "h": 3600, "d": 86400}


@dataclass
class CustomRead(FormMode):
    TITLE: ClassVar[str] = "Custom read"
    FIELDS: ClassVar[list[FormField]] = [
        FormField("start_from", "Start from", "choice", "seq_num",
                  choices=("seq_num", "timestamp", "ago", "tail_offset")),
        FormField("seq_num", "Sequence number", "text", "0", charset=DIGITS,
                  visible=_start_is("seq_num")),
        FormField("timestamp", "Timestamp (ms)", "text", "", charset=DIGITS,
                  visible=_start_is("timestamp")),
        FormField("ago", "Ago", "text", "5", charset=DIGITS, visible=_start_is("ago")),
        FormField("ago_unit", "Ago unit", "choice", "m", choices=tuple(AGO_UNITS),
                  visible=_start_is("ago")),
        FormField("tail_offset", "Records before tail", "text", "10", charset=DIGITS,
                  visible=_start_is("tail_offset")),
        FormField("count", "Max records", "text", "", charset=DIGITS),
        FormField("bytes", "Max bytes", "text", "", charset=DIGITS),
        FormField("until", "Until timestamp (ms)", "text", "", charset=DIGITS),
        FormField("clamp", "Clamp to tail", "toggle", True),
        FormField("format", "Output format", "choice", "text",
                  choices=("text", "json", "json-base64")),
        FormField("output_file", "Output file", "text", ""),
        FormField("submit", "Start", "button"),
    ]

    basin: str = ""
    stream: str = ""

    def build(self, now_ms: int) -> ReadOptions:
        """Read options from the form. Zero limits mean no limit."""
        values = self.values
        start = values["start_from"]
        options = ReadOptions(clamp=bool(values["clamp"]))
        if start == "seq_num":
            options.seq_num = parse_u64(values["seq_num"], "Sequence number", required=True)
        elif start == "timestamp":
            options.timestamp = parse_u64(values["timestamp"], "Timestamp", required=True)
        elif start == "ago":
            ago = parse_u64(values["ago"], "Ago", required=True)
            options.timestamp = max(0, now_ms - ago * AGO_UNITS[values["ago_unit"]] * 1000)
        else:
            options.tail_offset = parse_u64(values["tail_offset"], "Tail offset", required=True)
        options.count = parse_u64(values["count"], "Max records") or None
        options.bytes = parse_u64(values["bytes"], "Max bytes") or None
        options.until = parse_u64(values["until"], "Until") or None
        return options

    @property
    def output_file(self) -> Optional[str]:
        return self.values["output_file"].strip() or None


@dataclass
class Fence(FormMode):
    TITLE: ClassVar[str] = "Fence stream"
    FIELDS: ClassVar[list[FormField]] = [
        FormField("new_token", "New token", "text", ""),
        FormField("current_token", "Current token", "text", ""),
        FormField("submit", "Fence", "button"),
    ]

    basin: str = ""
    stream: str = ""

    def build(self) -> tuple[str, Optional[str]]:
        new_token = self.values["new_token"]
        if not new_token:
            raise ValidationError("New token is required")
        if len(new_token.encode("utf-8")) > 36:
            raise ValidationError("Fencing token too long (max 36 bytes)")
        return new_token, self.values["current_token"] or None


@dataclass
class Trim(FormMode):
    TITLE: ClassVar[str] = "Trim stream"
    FIELDS: ClassVar[list[FormField]] = [
        FormField("trim_point", "Trim before seq", "text", "", charset=DIGITS),
        FormField("fencing_token", "Fencing token", "text", ""),
        FormField("submit", "Trim", "button"),
    ]

    basin: str = ""
    stream: str = ""

    def build(self) -> tuple[int, Optional[str]]:
        trim_point = parse_u64(self.values["trim_point"], "Trim point", required=True)
        return trim_point, self.values["fencing_token"] or None


SCOPE_CHOICES = ("all", "prefix", "exact", "none")
EXPIRY_CHOICES = ("never", "1d", "7d", "30d", "90d", "365d", "custom")


def _scope_has_value(scope_key: str) -> Callable[[dict], bool]:
    return lambda values: values[scope_key] in ("prefix", "exact")


def _matcher(kind: str, value: str, label: str) -> Optional[ResourceMatcher]:
    if kind == "all":
        return ResourceMatcher("prefix", "")
    if kind == "none":
        return None
    if not value:
        raise ValidationError(f"{label} {kind} value is required")
    return ResourceMatcher(kind, value)


@dataclass
class IssueAccessToken(FormMode):
    TITLE: ClassVar[str] = "Issue access token"
    FIELDS: ClassVar[list[FormField]] = [
        FormField("token_id", "Token id", "text", "", charset=r"[A-Za-z0-9_-]"),
        FormField("expiry", "Expires", "choice", "30d", choices=EXPIRY_CHOICES),
        FormField("custom_expiry", "Expires in", "text", "", charset=DURATION_CHARS,
                  visible=lambda values: values["expiry"] == "custom"),
        FormField("basins_scope", "Basins", "choice", "all", choices=SCOPE_CHOICES),
        FormField("basins_value", "Basins match", "text", "",
                  visible=_scope_has_value("basins_scope")),
        FormField("streams_scope", "Streams", "choice", "all", choices=SCOPE_CHOICES),
        FormField("streams_value", "Streams match", "text", "",
                  visible=_scope_has_value("streams_scope")),
        FormField("tokens_scope", "Access tokens", "choice", "none", choices=SCOPE_CHOICES),
        FormField("tokens_value", "Tokens match", "text", "",
                  visible=_scope_has_value("tokens_scope")),
        FormField("account_read", "Account read", "toggle", True),
        FormField("account_write", "Account write", "toggle", False),
        FormField("basin_read", "Basin read", "toggle", True),
        FormField("basin_write", "Basin write", "toggle", False),
        FormField("stream_read", "Stream read", "toggle", True),
        FormField("stream_write", "Stream write", "toggle", False),
        FormField("auto_prefix_streams", "Auto-prefix streams", "toggle", False),
        FormField("submit", "Issue", "button"),
    ]

    def build(self, now: datetime) -> tuple[str, AccessTokenScope, Optional[str], bool]:
        """Returns (token_id, scope, expires_at, auto_prefix_streams)."""
        values = self.values
        token_id = values["token_id"]
        ok, error = validate_token_id(token_id)
        if not ok:
            raise ValidationError(error)

        expiry = values["expiry"]
        if expiry == "never":
            expires_at = None
        else:
            seconds = parse_duration(values["custom_expiry"] if expiry == "custom" else expiry)
            expires = now.astimezone(timezone.utc) + timedelta(seconds=seconds)
            expires_at = expires.strftime("%Y-%m-%dT%H:%M:%SZ")

        op_groups = PermittedOperationGroups(
            **{name: bool(values[name]) for name in (
                "account_read", "account_write", "basin_read",
                "basin_write", "stream_read", "stream_write",
            )}
        )
        if op_groups.describe() == "-":
            raise ValidationError("Select at least one permission")

        scope = AccessTokenScope(
            basins=_matcher(values["basins_scope"], values["basins_value"], "Basins"),
            streams=_matcher(values["streams_scope"], values["streams_value"], "Streams"),
            access_tokens=_matcher(values["tokens_scope"], values["tokens_value"], "Tokens"),
            op_groups=op_groups,
        )
        auto_prefix = bool(values["auto_prefix_streams"])
        if auto_prefix and (scope.streams is None or scope.streams.kind != "prefix"
                            or not scope.streams.value):
            raise ValidationError("Auto-prefix needs a streams prefix")
        return token_id, scope, expires_at, auto_prefix


@dataclass
class ConfirmDeleteBasin(InputMode):
    basin: str
    in_flight: bool = False
    task: Optional[str] = None


@dataclass
class ConfirmDeleteStream(InputMode):
    basin: str
    stream: str
    in_flight: bool = False
    task: Optional[str] = None


@dataclass
class ConfirmRevokeToken(InputMode):
    token_id: str
    in_flight: bool = False
    task: Optional[str] = None


@dataclass
class ShowIssuedToken(InputMode):
    """One-time reveal of a newly issued token secret."""

    token: str


@dataclass
class ViewTokenDetail(InputMode):
    token: AccessTokenInfo
