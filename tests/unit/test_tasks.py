"""Unit tests for background tasks and the thread runner."""

import json
import queue
from unittest.mock import MagicMock

import httpx
import pytest

from s2tui.cli.client import ReadOptions, S2ApiError, S2Client, S2ConnectionError
from s2tui.models import (
    AppendAck,
    BasinInfo,
    SequencedRecord,
    StreamPosition,
)
from s2tui.tui import tasks
from s2tui.tui.events import (
    BasinsLoaded,
    ReadEnded,
    RecordAppended,
    RecordReceived,
    StreamFenced,
    StreamTrimmed,
    TaskFailed,
)
from s2tui.tui.state import ReadViewState


@pytest.fixture
def client() -> MagicMock:
    return MagicMock(spec=S2Client)


def _records(*bodies: bytes):
    return [
        SequencedRecord(seq_num=i, timestamp=1000 + i, body=body, headers=[(b"k", b"v")])
        for i, body in enumerate(bodies)
    ]


def _ack(start: int, tail: int) -> AppendAck:
    return AppendAck(StreamPosition(start), StreamPosition(start + 1), StreamPosition(tail))


def test_load_basins_materializes_listing(client):
    client.list_basins.return_value = iter([BasinInfo("alpha-basin")])
    events = []
    tasks.load_basins(events.append, client, 7)

    assert isinstance(events[0], BasinsLoaded)
    assert events[0].load_id == 7
    assert events[0].outcome.ok
    assert [b.name for b in events[0].outcome.value] == ["alpha-basin"]


def test_client_error_becomes_failed_outcome(client):
    def fail():
        raise S2ApiError(403, "permission denied")
        yield  # pragma: no cover

    client.list_basins.return_value = fail()
    events = []
    tasks.load_basins(events.append, client, 1)
    assert events[0].outcome.error == "permission denied (HTTP 403)"


def test_append_record_reports_seq_and_preview(client):
    client.append.return_value = _ack(12, 13)
    body = "x" * 60
    events = []
    tasks.append_record(events.append, client, "b", "s", body, [("k", "v")], None, "tok")

    (event,) = events
    assert isinstance(event, RecordAppended)
    result = event.outcome.value
    assert result.seq_num == 12
    assert result.body_preview == "x" * 47 + "..."
    assert result.header_count == 1

    _, kwargs = client.append.call_args
    record = client.append.call_args[0][2][0]
    assert record.body == body.encode()
    assert record.headers == [(b"k", b"v")]
    assert kwargs == {"match_seq_num": None, "fencing_token": "tok"}


def test_fence_and_trim_results(client):
    client.trim.return_value = _ack(20, 21)
    events = []
    tasks.fence_stream(events.append, client, "b", "s", "new", None)
    tasks.trim_stream(events.append, client, "b", "s", 10, None)

    assert isinstance(events[0], StreamFenced)
    assert events[0].outcome.value == "new"
    assert isinstance(events[1], StreamTrimmed)
    assert events[1].outcome.value == (10, 21)


class TestRunRead:

    def test_emits_records_then_one_read_ended(self, client):
        client.read.return_value = iter(_records(b"a", b"b"))
        events = []
        tasks.run_read(events.append, client, "b", "s", 3, ReadOptions(count=2))

        assert [type(e) for e in events] == [RecordReceived, RecordReceived, ReadEnded]
        assert all(e.session_id == 3 for e in events)
        assert events[-1].outcome.ok

    def test_failure_mid_stream_still_ends_once(self, client):
        def stream():
            yield from _records(b"a")
            raise S2ConnectionError("Read interrupted: reset")

        client.read.return_value = stream()
        events = []
        tasks.run_read(events.append, client, "b", "s", 1, ReadOptions())

        assert [type(e) for e in events] == [RecordReceived, ReadEnded]
        assert "reset" in events[-1].outcome.error

    def test_writes_json_output_file(self, client, tmp_path):
        client.read.return_value = iter(_records(b"hello", b"world"))
        out = tmp_path / "out.jsonl"
        events = []
        tasks.run_read(events.append, client, "b", "s", 1, ReadOptions(count=2),
                       output_file=str(out), output_format="json")

        lines = [json.loads(line) for line in out.read_text().splitlines()]
        assert [line["body"] for line in lines] == ["hello", "world"]
        assert lines[0]["headers"] == [{"name": "k", "value": "v"}]
        assert events[-1].outcome.ok

    def test_unwritable_output_file_fails_read(self, client, tmp_path):
        client.read.return_value = iter(_records(b"a"))
        events = []
        tasks.run_read(events.append, client, "b", "s", 1, ReadOptions(),
                       output_file=str(tmp_path / "missing" / "out.txt"))

        assert len(events) == 1
        assert isinstance(events[0], ReadEnded)
        assert not events[0].outcome.ok


def test_format_record_variants():
    record = SequencedRecord(seq_num=5, timestamp=9, body=b"\x00hi")
    assert tasks.format_record(record, "text") == "\x00hi"
    encoded = json.loads(tasks.format_record(record, "json-base64"))
    assert encoded == {"seq_num": 5, "timestamp": 9, "headers": [], "body": "AGhp"}


def test_runner_converts_crash_to_task_failed():
    events = queue.Queue()

    def explode(emit):
        raise KeyError("missing")

    thread = tasks.TaskRunner(events).spawn("explode", explode)
    thread.join(timeout=5)

    event = events.get_nowait()
    assert isinstance(event, TaskFailed)
    assert event.task == "explode"
    assert "missing" in event.outcome.error


def test_runner_passes_emit_and_args():
    events = queue.Queue()

    def task(emit, a, b):
        emit(("done", a + b))

    tasks.TaskRunner(events).spawn("sum", task, 2, 3).join(timeout=5)
    assert events.get_nowait() == ("done", 5)


def _sse_client(body: bytes) -> S2Client:
    return S2Client(
        "tok",
        account_endpoint="https://account.test/v1",
        basin_endpoint="https://{basin}.basin.test/v1",
        transport=httpx.MockTransport(lambda request: httpx.Response(200, content=body)),
    )


def test_malformed_read_batch_ends_read_and_clears_loading(app):
    body = b'event: batch\ndata: {"records":[{"seq_num":1,"timestamp":1,"body":"abc"}]}\n\n'
    app.screen = ReadViewState(basin="b", stream="s", session_id=4)
    events = queue.Queue()

    tasks.TaskRunner(events).spawn(
        "read", tasks.run_read, _sse_client(body), "b", "s", 4, ReadOptions()
    ).join(timeout=5)

    received = []
    while not events.empty():
        received.append(events.get_nowait())
    assert [type(e) for e in received] == [ReadEnded]
    assert "Malformed batch" in received[0].outcome.error

    app.handle_event(received[0])
    assert app.screen.loading is False
    assert app.message.level == "error"


def test_unexpected_read_error_still_ends_read(client):
    def stream():
        yield from _records(b"a")
        raise TypeError("bad record")

    client.read.return_value = stream()
    events = []
    tasks.run_read(events.append, client, "b", "s", 2, ReadOptions())

    assert [type(e) for e in events] == [RecordReceived, ReadEnded]
    assert "bad record" in events[-1].outcome.error
