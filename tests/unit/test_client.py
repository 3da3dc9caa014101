"""Unit tests for the S2 HTTP client, driven through httpx.MockTransport."""

import base64
import json
import struct

import httpx
import pytest

from s2tui.cli.client import (
    ReadOptions,
    S2ApiError,
    S2Client,
    S2ConnectionError,
    S2ReadError,
    iter_sse,
)
from s2tui.models import AccessTokenScope, AppendRecord, StorageClass, StreamConfig


def _b64(data: bytes) -> str:
    return base64.b64encode(data).decode("ascii")


def _client(handler) -> S2Client:
    return S2Client(
        "tok",
        account_endpoint="https://account.test/v1",
        basin_endpoint="https://{basin}.basin.test/v1",
        transport=httpx.MockTransport(handler),
    )


ACK = {
    "start": {"seq_num": 7, "timestamp": 1},
    "end": {"seq_num": 8, "timestamp": 1},
    "tail": {"seq_num": 8, "timestamp": 1},
}


class TestListings:

    def test_list_basins_follows_pagination(self):
        calls = []

        def handler(request: httpx.Request):
            calls.append(dict(request.url.params))
            if request.url.params["start_after"] == "":
                return httpx.Response(200, json={
                    "basins": [{"name": "basin-aaaa"}, {"name": "basin-bbbb"}],
                    "has_more": True,
                })
            return httpx.Response(200, json={
                "basins": [{"name": "basin-cccc", "state": "creating"}],
                "has_more": False,
            })

        basins = list(_client(handler).list_basins())

        assert [b.name for b in basins] == ["basin-aaaa", "basin-bbbb", "basin-cccc"]
        assert basins[2].state.value == "creating"
        assert [c["start_after"] for c in calls] == ["", "basin-bbbb"]
        assert calls[0]["limit"] == "100"

    def test_list_respects_limit(self):
        def handler(request: httpx.Request):
            return httpx.Response(200, json={
                "streams": [{"name": f"s{i}"} for i in range(5)],
                "has_more": True,
            })

        streams = list(_client(handler).list_streams("my-basin", limit=3))
        assert [s.name for s in streams] == ["s0", "s1", "s2"]

    def test_streams_use_basin_endpoint(self):
        seen = []

        def handler(request: httpx.Request):
            seen.append(str(request.url.host))
            return httpx.Response(200, json={"streams": [], "has_more": False})

        list(_client(handler).list_streams("my-basin"))
        assert seen == ["my-basin.basin.test"]

    def test_auth_and_format_headers(self):
        seen = {}

        def handler(request: httpx.Request):
            seen.update(request.headers)
            return httpx.Response(200, json={"access_tokens": [{"id": "t1"}], "has_more": False})

        tokens = list(_client(handler).list_access_tokens())
        assert tokens[0].id == "t1"
        assert seen["authorization"] == "Bearer tok"
        assert seen["s2-format"] == "base64"


class TestErrors:

    def test_api_error_uses_server_message(self):
        def handler(request: httpx.Request):
            return httpx.Response(404, json={"code": "not_found", "message": "basin not found"})

        with pytest.raises(S2ApiError) as exc_info:
            _client(handler).get_basin_config("missing-basin")
        assert exc_info.value.status_code == 404
        assert str(exc_info.value) == "basin not found (HTTP 404)"

    def test_api_error_with_plain_text_body(self):
        def handler(request: httpx.Request):
            return httpx.Response(503, text="unavailable")

        with pytest.raises(S2ApiError, match="unavailable"):
            _client(handler).delete_basin("some-basin")

    def test_transport_error_becomes_connection_error(self):
        def handler(request: httpx.Request):
            raise httpx.ConnectError("connection refused", request=request)

        with pytest.raises(S2ConnectionError, match="Cannot reach S2"):
            list(_client(handler).list_basins())


class TestWrites:

    def test_create_stream_sends_config(self):
        bodies = []

        def handler(request: httpx.Request):
            bodies.append(json.loads(request.content))
            return httpx.Response(201, json={"name": "events", "created_at": "2026-01-01"})

        config = StreamConfig(storage_class=StorageClass.EXPRESS, retention_age_secs=3600)
        info = _client(handler).create_stream("my-basin", "events", config)

        assert info.name == "events"
        assert bodies[0]["stream"] == "events"
        assert bodies[0]["config"]["storage_class"] == "express"
        assert bodies[0]["config"]["retention_policy"] == {"age": 3600}

    def test_stream_names_are_quoted(self):
        paths = []

        def handler(request: httpx.Request):
            paths.append(request.url.raw_path.decode())
            return httpx.Response(204)

        _client(handler).delete_stream("my-basin", "a/b c")
        assert paths == ["/v1/streams/a%2Fb%20c"]

    def test_append_encodes_records(self):
        bodies = []

        def handler(request: httpx.Request):
            bodies.append(json.loads(request.content))
            return httpx.Response(200, json=ACK)

        ack = _client(handler).append(
            "my-basin", "events",
            [AppendRecord(body=b"hello", headers=[(b"k", b"v")])],
            match_seq_num=7,
        )

        assert ack.start.seq_num == 7
        body = bodies[0]
        assert body["records"] == [{"headers": [[_b64(b"k"), _b64(b"v")]], "body": _b64(b"hello")}]
        assert body["match_seq_num"] == 7
        assert "fencing_token" not in body

    def test_fence_is_a_command_record(self):
        bodies = []

        def handler(request: httpx.Request):
            bodies.append(json.loads(request.content))
            return httpx.Response(200, json=ACK)

        _client(handler).fence("my-basin", "events", "writer-2", current_token="writer-1")
        record = bodies[0]["records"][0]
        assert record["headers"] == [["", _b64(b"fence")]]
        assert base64.b64decode(record["body"]) == b"writer-2"
        assert bodies[0]["fencing_token"] == "writer-1"

    def test_trim_body_is_big_endian_u64(self):
        bodies = []

        def handler(request: httpx.Request):
            bodies.append(json.loads(request.content))
            return httpx.Response(200, json=ACK)

        ack = _client(handler).trim("my-basin", "events", 42)
        record = bodies[0]["records"][0]
        assert record["headers"] == [["", _b64(b"trim")]]
        assert struct.unpack(">Q", base64.b64decode(record["body"])) == (42,)
        assert ack.tail.seq_num == 8

    def test_check_tail(self):
        def handler(request: httpx.Request):
            assert request.url.path == "/v1/streams/events/records/tail"
            return httpx.Response(200, json={"tail": {"seq_num": 42, "timestamp": 99}})

        tail = _client(handler).check_tail("my-basin", "events")
        assert (tail.seq_num, tail.timestamp) == (42, 99)

    def test_issue_token_returns_secret(self):
        bodies = []

        def handler(request: httpx.Request):
            bodies.append(json.loads(request.content))
            return httpx.Response(201, json={"access_token": "s2_secret"})

        secret = _client(handler).issue_access_token("ci", AccessTokenScope(), None)
        assert secret == "s2_secret"
        assert bodies[0]["id"] == "ci"
        assert "expires_at" not in bodies[0]
        assert bodies[0]["scope"]["op_groups"]["stream"] == {"read": False, "write": False}


def _sse(*events: tuple[str, str]) -> bytes:
    return "".join(f"event: {name}\ndata: {data}\n\n" for name, data in events).encode()


def _wire_record(seq: int, body: bytes) -> dict:
    return {"seq_num": seq, "timestamp": 1000 + seq, "headers": [], "body": _b64(body)}


class TestRead:

    def test_read_yields_records_until_done(self):
        params = {}

        def handler(request: httpx.Request):
            params.update(request.url.params)
            content = _sse(
                ("batch", json.dumps({"records": [_wire_record(0, b"a"), _wire_record(1, b"b")]})),
                ("ping", "{}"),
                ("batch", json.dumps({"records": [_wire_record(2, b"c")]})),
                ("done", "{}"),
                ("batch", json.dumps({"records": [_wire_record(3, b"late")]})),
            )
            return httpx.Response(200, content=content,
                                  headers={"content-type": "text/event-stream"})

        records = list(_client(handler).read("my-basin", "events", ReadOptions(seq_num=0, count=3)))

        assert [r.body for r in records] == [b"a", b"b", b"c"]
        assert params == {"seq_num": "0", "count": "3", "clamp": "true"}

    def test_read_error_event_raises(self):
        def handler(request: httpx.Request):
            content = _sse(
                ("batch", json.dumps({"records": [_wire_record(0, b"a")]})),
                ("error", json.dumps({"message": "stream deleted"})),
            )
            return httpx.Response(200, content=content)

        received = []
        with pytest.raises(S2ReadError, match="stream deleted"):
            for record in _client(handler).read("my-basin", "events"):
                received.append(record)
        assert len(received) == 1

    @pytest.mark.parametrize("data", [
        '{"records": [{"seq_num": 1, "timestamp": 1, "body": "abc"}]}',
        '{"records": [{"timestamp": 1, "body": ""}]}',
        '{"records": "nope"}',
        "not json",
    ])
    def test_malformed_batch_raises_read_error(self, data):
        def handler(request: httpx.Request):
            return httpx.Response(200, content=_sse(("batch", data)))

        with pytest.raises(S2ReadError, match="Malformed batch"):
            list(_client(handler).read("my-basin", "events"))

    def test_read_rejected(self):

        def handler(request: httpx.Request):
            return httpx.Response(416, json={"message": "out of range"})

        with pytest.raises(S2ApiError, match="out of range"):
            list(_client(handler).read("my-basin", "events", ReadOptions(seq_num=99)))

    def test_default_read_starts_at_tail(self):
        assert ReadOptions().to_params() == {"tail_offset": 0, "clamp": "true"}
        assert ReadOptions(timestamp=5, clamp=False).to_params() == {"timestamp": 5}


def test_iter_sse_groups_multiline_data_and_skips_comments():
    lines = [": keepalive", "event: batch", "data: one", "data: two", "", "data: solo", ""]
    assert list(iter_sse(lines)) == [("batch", "one\ntwo"), ("message", "solo")]
