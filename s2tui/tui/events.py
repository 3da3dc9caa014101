"""Events sent from background tasks to the dashboard loop.

Each event carries the outcome of exactly one operation (or one streamed
record) together with the identity of what it belongs to, so the loop can
tell whether the screen that asked for it is still active.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Optional


@dataclass(frozen=True)
class Outcome:
    """Success value or error message."""

    value: Any = None
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.error is None

    @classmethod
    def success(cls, value: Any = None) -> "Outcome":
        return cls(value=value)

    @classmethod
    def failure(cls, error: BaseException | str) -> "Outcome":
        return cls(error=str(error) or type(error).__name__)


@dataclass(frozen=True)
class Event:
    outcome: Outcome


@dataclass(frozen=True)
class BasinsLoaded(Event):
    load_id: int = 0


@dataclass(frozen=True)
class StreamsLoaded(Event):
    basin: str = ""
    load_id: int = 0


@dataclass(frozen=True)
class StreamConfigLoaded(Event):
    basin: str = ""
    stream: str = ""


@dataclass(frozen=True)
class TailPositionLoaded(Event):
    basin: str = ""
    stream: str = ""


@dataclass(frozen=True)
class RecordReceived(Event):
    session_id: int = 0


@dataclass(frozen=True)
class ReadEnded(Event):
    session_id: int = 0


@dataclass(frozen=True)
class BasinCreated(Event):
    basin: str = ""


@dataclass(frozen=True)
class BasinDeleted(Event):
    basin: str = ""


@dataclass(frozen=True)
class StreamCreated(Event):
    basin: str = ""
    stream: str = ""


@dataclass(frozen=True)
class StreamDeleted(Event):
    basin: str = ""
    stream: str = ""


@dataclass(frozen=True)
class BasinConfigLoaded(Event):
    basin: str = ""


@dataclass(frozen=True)
class StreamConfigForReconfigLoaded(Event):
    basin: str = ""
    stream: str = ""


@dataclass(frozen=True)
class BasinReconfigured(Event):
    basin: str = ""


@dataclass(frozen=True)
class StreamReconfigured(Event):
    basin: str = ""
    stream: str = ""


@dataclass(frozen=True)
class RecordAppended(Event):
    """Value is an AppendResult."""

    basin: str = ""
    stream: str = ""


@dataclass(frozen=True)
class StreamFenced(Event):
    """Value is the new fencing token."""

    basin: str = ""
    stream: str = ""


@dataclass(frozen=True)
class StreamTrimmed(Event):
    """Value is (trim_point, new_tail_seq_num)."""

    basin: str = ""
    stream: str = ""


@dataclass(frozen=True)
class AccessTokensLoaded(Event):
    load_id: int = 0


@dataclass(frozen=True)
class AccessTokenIssued(Event):
    """Value is the token secret."""

    token_id: str = ""


@dataclass(frozen=True)
class AccessTokenRevoked(Event):
    token_id: str = ""


@dataclass(frozen=True)
class TaskFailed(Event):
    """A task died with an unexpected exception."""

    task: str = ""
