"""Data models for the S2 dashboard."""

import base64
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Optional, List, Tuple


class StorageClass(Enum):
    """Stream storage class."""
    STANDARD = "standard"
    EXPRESS = "express"


class TimestampingMode(Enum):
    """How record timestamps are assigned."""
    CLIENT_PREFER = "client-prefer"
    CLIENT_REQUIRE = "client-require"
    ARRIVAL = "arrival"


class BasinState(Enum):
    """Basin lifecycle state as reported by the service."""
    ACTIVE = "active"
    CREATING = "creating"
    DELETING = "deleting"


@dataclass
class BasinInfo:
    """Summary row for one basin."""
    name: str
    scope: Optional[str] = None
    state: BasinState = BasinState.ACTIVE

    @classmethod
    def from_dict(cls, data: dict) -> "BasinInfo":
        try:
            state = BasinState(data.get("state", "active"))
        except ValueError:
            state = BasinState.ACTIVE
        return cls(name=data["name"], scope=data.get("scope"), state=state)


@dataclass
class StreamInfo:
    """Summary row for one stream."""
    name: str
    created_at: Optional[str] = None
    deleted_at: Optional[str] = None

    @classmethod
    def from_dict(cls, data: dict) -> "StreamInfo":
        return cls(
            name=data["name"],
            created_at=data.get("created_at"),
            deleted_at=data.get("deleted_at"),
        )


@dataclass
class StreamConfig:
    """Stream configuration.

    ``retention_age_secs`` of None means infinite retention, and
    ``delete_on_empty_min_age_secs`` of None disables delete-on-empty.
    """
    storage_class: Optional[StorageClass] = None
    retention_age_secs: Optional[int] = None
    timestamping_mode: Optional[TimestampingMode] = None
    timestamping_uncapped: bool = False
    delete_on_empty_min_age_secs: Optional[int] = None

    def to_dict(self) -> dict:
        data: dict = {}
        if self.storage_class is not None:
            data["storage_class"] = self.storage_class.value
        if self.retention_age_secs is None:
            data["retention_policy"] = {"infinite": {}}
        else:
            data["retention_policy"] = {"age": self.retention_age_secs}
        timestamping: dict = {"uncapped": self.timestamping_uncapped}
        if self.timestamping_mode is not None:
            timestamping["mode"] = self.timestamping_mode.value
        data["timestamping"] = timestamping
        if self.delete_on_empty_min_age_secs is not None:
            data["delete_on_empty"] = {"min_age_secs": self.delete_on_empty_min_age_secs}
        return data

    @classmethod
    def from_dict(cls, data: Optional[dict]) -> "StreamConfig":
        data = data or {}
        storage_class = data.get("storage_class")
        retention = data.get("retention_policy") or {}
        timestamping = data.get("timestamping") or {}
        delete_on_empty = data.get("delete_on_empty") or {}
        mode = timestamping.get("mode")
        return cls(
            storage_class=StorageClass(storage_class) if storage_class else None,
            retention_age_secs=retention.get("age"),
            timestamping_mode=TimestampingMode(mode) if mode else None,
            timestamping_uncapped=bool(timestamping.get("uncapped", False)),
            delete_on_empty_min_age_secs=delete_on_empty.get("min_age_secs") or None,
        )


@dataclass
class BasinConfig:
    """Basin configuration: stream defaults plus auto-creation flags."""
    default_stream_config: StreamConfig = field(default_factory=StreamConfig)
    create_stream_on_append: bool = False
    create_stream_on_read: bool = False

    def to_dict(self) -> dict:
        return {
            "default_stream_config": self.default_stream_config.to_dict(),
            "create_stream_on_append": self.create_stream_on_append,
            "create_stream_on_read": self.create_stream_on_read,
        }

    @classmethod
    def from_dict(cls, data: Optional[dict]) -> "BasinConfig":
        data = data or {}
        return cls(
            default_stream_config=StreamConfig.from_dict(data.get("default_stream_config")),
            create_stream_on_append=bool(data.get("create_stream_on_append", False)),
            create_stream_on_read=bool(data.get("create_stream_on_read", False)),
        )


@dataclass
class StreamPosition:
    """A position in a stream: sequence number plus timestamp (ms)."""
    seq_num: int
    timestamp: int = 0

    @classmethod
    def from_dict(cls, data: dict) -> "StreamPosition":
        return cls(seq_num=int(data["seq_num"]), timestamp=int(data.get("timestamp", 0)))


@dataclass
class SequencedRecord:
    """A record read back from a stream."""
    seq_num: int
    timestamp: int
    body: bytes
    headers: List[Tuple[bytes, bytes]] = field(default_factory=list)

    @classmethod
    def from_dict(cls, data: dict) -> "SequencedRecord":
        """Decode a record from the base64 wire format."""
        headers = [
            (base64.b64decode(name), base64.b64decode(value))
            for name, value in data.get("headers") or []
        ]
        return cls(
            seq_num=int(data["seq_num"]),
            timestamp=int(data.get("timestamp", 0)),
            body=base64.b64decode(data.get("body") or ""),
            headers=headers,
        )

    def is_command(self) -> bool:
        """Command records (fence, trim) carry a single header with an empty name."""
        return len(self.headers) == 1 and self.headers[0][0] == b""

    def body_text(self) -> str:
        return self.body.decode("utf-8", errors="replace")

    def to_json_dict(self, encode_base64: bool = False) -> dict:
        """Output representation used by the json and json-base64 formats.

        Headers stay readable in both; only the body is base64 in json-base64.
        """
        if encode_base64:
            body = base64.b64encode(self.body).decode("ascii")
        else:
            body = self.body_text()
        return {
            "seq_num": self.seq_num,
            "timestamp": self.timestamp,
            "headers": [
                {"name": name.decode("utf-8", errors="replace"), "value": value.decode("utf-8", errors="replace")}
                for name, value in self.headers
            ],
            "body": body,
        }


@dataclass
class AppendRecord:
    """A record to append."""
    body: bytes
    headers: List[Tuple[bytes, bytes]] = field(default_factory=list)

    def to_dict(self) -> dict:
        """Encode in the base64 wire format."""
        return {
            "headers": [
                [base64.b64encode(name).decode("ascii"), base64.b64encode(value).decode("ascii")]
                for name, value in self.headers
            ],
            "body": base64.b64encode(self.body).decode("ascii"),
        }


@dataclass
class AppendAck:
    """Acknowledgement of an append: the assigned range and the new tail."""
    start: StreamPosition
    end: StreamPosition
    tail: StreamPosition

    @classmethod
    def from_dict(cls, data: dict) -> "AppendAck":
        return cls(
            start=StreamPosition.from_dict(data["start"]),
            end=StreamPosition.from_dict(data["end"]),
            tail=StreamPosition.from_dict(data["tail"]),
        )


@dataclass
class ResourceMatcher:
    """Scope matcher for basins, streams or token ids.

    kind is one of "prefix" or "exact"; an empty prefix matches everything.
    """
    kind: str = "prefix"
    value: str = ""

    def to_dict(self) -> dict:
        return {self.kind: self.value}

    @classmethod
    def from_dict(cls, data: Optional[dict]) -> Optional["ResourceMatcher"]:
        if not data:
            return None
        if "exact" in data:
            return cls(kind="exact", value=data["exact"])
        return cls(kind="prefix", value=data.get("prefix", ""))

    def describe(self) -> str:
        if self.kind == "exact":
            return f"={self.value}"
        return f"{self.value}*" if self.value else "*"


@dataclass
class PermittedOperationGroups:
    """Read/write permissions at account, basin and stream level."""
    account_read: bool = False
    account_write: bool = False
    basin_read: bool = False
    basin_write: bool = False
    stream_read: bool = False
    stream_write: bool = False

    def to_dict(self) -> dict:
        return {
            "account": {"read": self.account_read, "write": self.account_write},
            "basin": {"read": self.basin_read, "write": self.basin_write},
            "stream": {"read": self.stream_read, "write": self.stream_write},
        }

    @classmethod
    def from_dict(cls, data: Optional[dict]) -> "PermittedOperationGroups":
        data = data or {}
        account = data.get("account") or {}
        basin = data.get("basin") or {}
        stream = data.get("stream") or {}
        return cls(
            account_read=bool(account.get("read")),
            account_write=bool(account.get("write")),
            basin_read=bool(basin.get("read")),
            basin_write=bool(basin.get("write")),
            stream_read=bool(stream.get("read")),
            stream_write=bool(stream.get("write")),
        )

    def describe(self) -> str:
        parts = []
        for level in ("account", "basin", "stream"):
            perms = ""
            if getattr(self, f"{level}_read"):
                perms += "r"
            if getattr(self, f"{level}_write"):
                perms += "w"
            if perms:
                parts.append(f"{level}:{perms}")
        return " ".join(parts) or "-"


@dataclass
class AccessTokenScope:
    """What an access token may touch."""
    basins: Optional[ResourceMatcher] = None
    streams: Optional[ResourceMatcher] = None
    access_tokens: Optional[ResourceMatcher] = None
    op_groups: PermittedOperationGroups = field(default_factory=PermittedOperationGroups)
    ops: List[str] = field(default_factory=list)

    def to_dict(self) -> dict:
        data: dict = {"op_groups": self.op_groups.to_dict()}
        if self.basins is not None:
            data["basins"] = self.basins.to_dict()
        if self.streams is not None:
            data["streams"] = self.streams.to_dict()
        if self.access_tokens is not None:
            data["access_tokens"] = self.access_tokens.to_dict()
        if self.ops:
            data["ops"] = list(self.ops)
        return data

    @classmethod
    def from_dict(cls, data: Optional[dict]) -> "AccessTokenScope":
        data = data or {}
        return cls(
            basins=ResourceMatcher.from_dict(data.get("basins")),
            streams=ResourceMatcher.from_dict(data.get("streams")),
            access_tokens=ResourceMatcher.from_dict(data.get("access_tokens")),
            op_groups=PermittedOperationGroups.from_dict(data.get("op_groups")),
            ops=list(data.get("ops") or []),
        )


@dataclass
class AccessTokenInfo:
    """An access token as listed by the account (never includes the secret)."""
    id: str
    expires_at: Optional[str] = None
    auto_prefix_streams: bool = False
    scope: AccessTokenScope = field(default_factory=AccessTokenScope)

    @classmethod
    def from_dict(cls, data: dict) -> "AccessTokenInfo":
        return cls(
            id=data["id"],
            expires_at=data.get("expires_at"),
            auto_prefix_streams=bool(data.get("auto_prefix_streams", False)),
            scope=AccessTokenScope.from_dict(data.get("scope")),
        )

    def expiry_label(self) -> str:
        if not self.expires_at:
            return "never"
        try:
            expires = datetime.fromisoformat(self.expires_at.replace("Z", "+00:00"))
        except ValueError:
            return self.expires_at
        if expires.tzinfo is None:
            expires = expires.replace(tzinfo=timezone.utc)
        return expires.strftime("%Y-%m-%d %H:%M")
