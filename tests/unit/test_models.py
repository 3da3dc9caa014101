"""Unit tests for wire-format conversion of data models."""

import base64

from s2tui.models import (
    AccessTokenInfo,
    BasinConfig,
    BasinInfo,
    BasinState,
    PermittedOperationGroups,
    ResourceMatcher,
    SequencedRecord,
    StorageClass,
    StreamConfig,
    TimestampingMode,
)


def _b64(data: bytes) -> str:
    return base64.b64encode(data).decode("ascii")


def test_basin_info_unknown_state_falls_back_to_active():
    assert BasinInfo.from_dict({"name": "b", "state": "creating"}).state == BasinState.CREATING
    assert BasinInfo.from_dict({"name": "b", "state": "weird"}).state == BasinState.ACTIVE


def test_stream_config_wire_format():
    config = StreamConfig(
        storage_class=StorageClass.STANDARD,
        retention_age_secs=None,
        timestamping_mode=TimestampingMode.CLIENT_PREFER,
        delete_on_empty_min_age_secs=60,
    )
    assert config.to_dict() == {
        "storage_class": "standard",
        "retention_policy": {"infinite": {}},
        "timestamping": {"uncapped": False, "mode": "client-prefer"},
        "delete_on_empty": {"min_age_secs": 60},
    }
    assert StreamConfig.from_dict(config.to_dict()) == config


def test_stream_config_from_sparse_response():
    config = StreamConfig.from_dict({"retention_policy": {"age": 3600},
                                     "delete_on_empty": {"min_age_secs": 0}})
    assert config.retention_age_secs == 3600
    assert config.storage_class is None
    assert config.delete_on_empty_min_age_secs is None


def test_basin_config_defaults_for_empty_response():
    config = BasinConfig.from_dict(None)
    assert config.create_stream_on_append is False
    assert config.default_stream_config == StreamConfig()


def test_sequenced_record_decodes_base64():
    record = SequencedRecord.from_dict({
        "seq_num": 4,
        "timestamp": 99,
        "headers": [[_b64(b"content-type"), _b64(b"text/plain")]],
        "body": _b64("héllo".encode()),
    })
    assert record.body_text() == "héllo"
    assert record.headers == [(b"content-type", b"text/plain")]
    assert record.is_command() is False


def test_command_record_detection():
    fence = SequencedRecord(seq_num=0, timestamp=0, body=b"t", headers=[(b"", b"fence")])
    assert fence.is_command() is True
    two_headers = SequencedRecord(seq_num=0, timestamp=0, body=b"",
                                  headers=[(b"", b"fence"), (b"a", b"b")])
    assert two_headers.is_command() is False


def test_record_json_output_keeps_headers_readable():
    record = SequencedRecord(seq_num=1, timestamp=2, body=b"\xff", headers=[(b"k", b"v")])
    assert record.to_json_dict()["body"] == "�"
    as_base64 = record.to_json_dict(encode_base64=True)
    assert as_base64["body"] == "/w=="
    assert as_base64["headers"] == [{"name": "k", "value": "v"}]


def test_resource_matcher_describe():
    assert ResourceMatcher("prefix", "").describe() == "*"
    assert ResourceMatcher("prefix", "logs-").describe() == "logs-*"
    assert ResourceMatcher("exact", "prod").describe() == "=prod"
    assert ResourceMatcher.from_dict({"exact": "prod"}) == ResourceMatcher("exact", "prod")
    assert ResourceMatcher.from_dict(None) is None


def test_operation_groups():
    groups = PermittedOperationGroups(basin_read=True, basin_write=True)
    assert groups.describe() == "basin:rw"
    assert PermittedOperationGroups.from_dict(groups.to_dict()) == groups
    assert PermittedOperationGroups().describe() == "-"


def test_access_token_info_from_listing():
    token = AccessTokenInfo.from_dict({
        "id": "ci",
        "expires_at": "2026-03-01T12:30:00Z",
        "scope": {"streams": {"prefix": "ci-"}, "op_groups": {"stream": {"read": True}}},
    })
    assert token.expiry_label() == "2026-03-01 12:30"
    assert token.scope.streams.describe() == "ci-*"
    assert token.scope.basins is None
    assert token.scope.op_groups.describe() == "stream:r"
    assert AccessTokenInfo(id="x").expiry_label() == "never"
