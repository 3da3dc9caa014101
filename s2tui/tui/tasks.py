"""Background tasks for the dashboard.

Every task runs on its own daemon thread, makes one S2 call (or one
streamed read) and reports through the shared event queue. Tasks never
touch screen state.
"""

from __future__ import annotations

import contextlib
import json
import logging
import queue
import threading
from typing import Callable, Optional

from ..cli.client import ReadOptions, S2Client, S2Error
from ..models import AppendRecord, SequencedRecord
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
    Outcome,
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
from .state import AppendResult

logger = logging.getLogger(__name__)

Emit = Callable[[Event], None]


class TaskRunner:
    """Starts tasks on daemon threads that feed one event queue."""

    def __init__(self, events: queue.Queue):
        self.events = events

    def spawn(self, name: str, target: Callable, *args) -> threading.Thread:
        thread = threading.Thread(
            target=self._run,
            args=(name, target, args),
            name=f"s2tui-{name}",
            daemon=True,
        )
        thread.start()
        return thread

    def _run(self, name: str, target: Callable, args: tuple):
        logger.debug(f"Task {name} started")
        try:
            target(self.events.put, *args)
        except Exception as e:
            logger.exception(f"Task {name} crashed")
            self.events.put(TaskFailed(Outcome.failure(e), task=name))


def _call(fn: Callable, *args, **kwargs) -> Outcome:
    try:
        return Outcome.success(fn(*args, **kwargs))
    except S2Error as e:
        return Outcome.failure(e)
    except Exception as e:
        logger.exception(f"Unexpected error from {getattr(fn, '__name__', fn)}")
        return Outcome.failure(e)


def load_basins(emit: Emit, client: S2Client, load_id: int):
    emit(BasinsLoaded(_call(lambda: list(client.list_basins())), load_id=load_id))


def load_streams(emit: Emit, client: S2Client, basin: str, load_id: int):
    emit(StreamsLoaded(_call(lambda: list(client.list_streams(basin))),
                       basin=basin, load_id=load_id))


def load_stream_config(emit: Emit, client: S2Client, basin: str, stream: str):
    emit(StreamConfigLoaded(_call(client.get_stream_config, basin, stream),
                            basin=basin, stream=stream))


def load_tail_position(emit: Emit, client: S2Client, basin: str, stream: str):
    emit(TailPositionLoaded(_call(client.check_tail, basin, stream),
                            basin=basin, stream=stream))


def create_basin(emit: Emit, client: S2Client, basin: str, config):
    emit(BasinCreated(_call(client.create_basin, basin, config), basin=basin))


def delete_basin(emit: Emit, client: S2Client, basin: str):
    emit(BasinDeleted(_call(client.delete_basin, basin), basin=basin))


def create_stream(emit: Emit, client: S2Client, basin: str, stream: str, config):
    emit(StreamCreated(_call(client.create_stream, basin, stream, config),
                       basin=basin, stream=stream))


def delete_stream(emit: Emit, client: S2Client, basin: str, stream: str):
    emit(StreamDeleted(_call(client.delete_stream, basin, stream), basin=basin, stream=stream))


def load_basin_config(emit: Emit, client: S2Client, basin: str):
    emit(BasinConfigLoaded(_call(client.get_basin_config, basin), basin=basin))


def load_stream_config_for_reconfig(emit: Emit, client: S2Client, basin: str, stream: str):
    emit(StreamConfigForReconfigLoaded(_call(client.get_stream_config, basin, stream),
                                       basin=basin, stream=stream))


def reconfigure_basin(emit: Emit, client: S2Client, basin: str, config):
    emit(BasinReconfigured(_call(client.reconfigure_basin, basin, config), basin=basin))


def reconfigure_stream(emit: Emit, client: S2Client, basin: str, stream: str, config):
    emit(StreamReconfigured(_call(client.reconfigure_stream, basin, stream, config),
                            basin=basin, stream=stream))


def append_record(
    emit: Emit,
    client: S2Client,
    basin: str,
    stream: str,
    body: str,
    headers: list[tuple[str, str]],
    match_seq_num: Optional[int],
    fencing_token: Optional[str],
):
    record = AppendRecord(
        body=body.encode("utf-8"),
        headers=[(k.encode("utf-8"), v.encode("utf-8")) for k, v in headers],
    )

    def _append() -> AppendResult:
        ack = client.append(basin, stream, [record],
                            match_seq_num=match_seq_num, fencing_token=fencing_token)
        preview = body if len(body) <= 50 else body[:47] + "..."
        return AppendResult(seq_num=ack.start.seq_num, body_preview=preview,
                            header_count=len(headers))

    emit(RecordAppended(_call(_append), basin=basin, stream=stream))


def fence_stream(emit: Emit, client: S2Client, basin: str, stream: str,
                 new_token: str, current_token: Optional[str]):
    def _fence() -> str:
        client.fence(basin, stream, new_token, current_token)
        return new_token

    emit(StreamFenced(_call(_fence), basin=basin, stream=stream))


def trim_stream(emit: Emit, client: S2Client, basin: str, stream: str,
                trim_point: int, fencing_token: Optional[str]):
    def _trim() -> tuple[int, int]:
        ack = client.trim(basin, stream, trim_point, fencing_token)
        return trim_point, ack.tail.seq_num

    emit(StreamTrimmed(_call(_trim), basin=basin, stream=stream))


def load_access_tokens(emit: Emit, client: S2Client, load_id: int):
    emit(AccessTokensLoaded(_call(lambda: list(client.list_access_tokens())), load_id=load_id))


def issue_access_token(emit: Emit, client: S2Client, token_id: str, scope,
                       expires_at: Optional[str], auto_prefix_streams: bool):
    emit(AccessTokenIssued(
        _call(client.issue_access_token, token_id, scope, expires_at, auto_prefix_streams),
        token_id=token_id,
    ))


def revoke_access_token(emit: Emit, client: S2Client, token_id: str):
    emit(AccessTokenRevoked(_call(client.revoke_access_token, token_id), token_id=token_id))


def format_record(record: SequencedRecord, output_format: str) -> str:
    """One output line for a record in text, json or json-base64 format."""
    if output_format == "text":
        return record.body_text()
    return json.dumps(record.to_json_dict(encode_base64=output_format == "json-base64"))


def run_read(
    emit: Emit,
    client: S2Client,
    basin: str,
    stream: str,
    session_id: int,
    options: ReadOptions,
    output_file: Optional[str] = None,
    output_format: str = "text",
):
    """Stream records as RecordReceived events, then exactly one ReadEnded."""
    try:
        if output_file:
            writer = open(output_file, "w", encoding="utf-8")
        else:
            writer = contextlib.nullcontext()
        with writer as out:
            for record in client.read(basin, stream, options):
                if out is not None:
                    out.write(format_record(record, output_format) + "\n")
                    out.flush()
                emit(RecordReceived(Outcome.success(record), session_id=session_id))
    except (S2Error, OSError) as e:
        logger.warning(f"Read {session_id} of {basin}/{stream} failed: {e}")
        emit(ReadEnded(Outcome.failure(e), session_id=session_id))
        return
    except Exception as e:
        logger.exception(f"Read {session_id} of {basin}/{stream} crashed")
        emit(ReadEnded(Outcome.failure(e), session_id=session_id))
        return
    logger.info(f"Read {session_id} of {basin}/{stream} ended")
    emit(ReadEnded(Outcome.success(), session_id=session_id))
