"""HTTP client for the S2 REST API."""

import json
import logging
import struct
from dataclasses import dataclass
from typing import Iterable, Iterator, Optional
from urllib.parse import quote

import httpx

from ..models import (
    AccessTokenInfo,
    AccessTokenScope,
    AppendAck,
    AppendRecord,
    BasinConfig,
    BasinInfo,
    SequencedRecord,
    StreamConfig,
    StreamInfo,
    StreamPosition,
)
from .schemas import (
    AccessTokenPage,
    AppendRecordBody,
    AppendRequest,
    BasinPage,
    CreateBasinRequest,
    CreateStreamRequest,
    IssueAccessTokenRequest,
    IssueAccessTokenResponse,
    ReadBatch,
    ReconfigureBasinRequest,
    StreamPage,
    TailResponse,
)

logger = logging.getLogger(__name__)

DEFAULT_ACCOUNT_ENDPOINT = "https://aws.s2.dev/v1"
DEFAULT_BASIN_ENDPOINT = "https://{basin}.b.aws.s2.dev/v1"
API_TIMEOUT = 10.0  # seconds
PAGE_LIMIT = 100


class S2Error(RuntimeError):
    """Base error for S2 API calls."""


class S2ConnectionError(S2Error):
    """The service could not be reached (DNS, refused, timeout)."""


class S2ApiError(S2Error):
    """The service answered with an error status."""

    def __init__(self, status_code: int, message: str):
        super().__init__(f"{message} (HTTP {status_code})")
        self.status_code = status_code
        self.message = message


class S2ReadError(S2Error):
    """A streamed read failed part way through."""


@dataclass
class ReadOptions:
    """Where a read starts and when it stops.

    At most one start field may be set; with none set the read starts at
    the current tail and follows new records. Any limit makes the read
    finite.
    """
    seq_num: Optional[int] = None
    timestamp: Optional[int] = None
    tail_offset: Optional[int] = None
    count: Optional[int] = None
    bytes: Optional[int] = None
    until: Optional[int] = None
    clamp: bool = True

    def has_limits(self) -> bool:
        return any(v is not None for v in (self.count, self.bytes, self.until))

    def to_params(self) -> dict:
        params: dict = {}
        if self.seq_num is not None:
            params["seq_num"] = self.seq_num
        elif self.timestamp is not None:
            params["timestamp"] = self.timestamp
        else:
            params["tail_offset"] = self.tail_offset or 0
        for name in ("count", "bytes", "until"):
            value = getattr(self, name)
            if value is not None:
                params[name] = value
        if self.clamp:
            params["clamp"] = "true"
        return params


def iter_sse(lines: Iterable[str]) -> Iterator[tuple[str, str]]:
    """
    Group server-sent event lines into (event, data) pairs.

    Multiple data lines are joined with newlines. Comment lines are skipped.
    """
    event = "message"
    data: list[str] = []
    for line in lines:
        line = line.rstrip("\r\n")
        if not line:
            if data:
                yield event, "\n".join(data)
            event, data = "message", []
            continue
        if line.startswith(":"):
            continue
        name, _, value = line.partition(":")
        if value.startswith(" "):
            value = value[1:]
        if name == "event":
            event = value
        elif name == "data":
            data.append(value)
    if data:
        yield event, "\n".join(data)


def _error_message(response: httpx.Response) -> str:
    try:
        payload = response.json()
    except ValueError:
        return response.text.strip() or response.reason_phrase
    if isinstance(payload, dict):
        return payload.get("message") or payload.get("error") or str(payload)
    return str(payload)


class S2Client:
    """Client for the S2 account and basin APIs.

    A single instance is shared by all background tasks; httpx.Client is
    safe to use from several threads at once.
    """

    def __init__(
        self,
        access_token: str,
        account_endpoint: str = DEFAULT_ACCOUNT_ENDPOINT,
        basin_endpoint: str = DEFAULT_BASIN_ENDPOINT,
        timeout: float = API_TIMEOUT,
        transport: Optional[httpx.BaseTransport] = None,
    ):
        """
        Initialize client.

        Args:
            access_token: Bearer token for the account
            account_endpoint: Base URL for account-level calls
            basin_endpoint: Base URL template for basin-level calls, with {basin}
            timeout: Request timeout in seconds (reads are not bounded)
            transport: Optional httpx transport (tests use httpx.MockTransport)
        """
        self.account_endpoint = account_endpoint.rstrip("/")
        self.basin_endpoint = basin_endpoint.rstrip("/")
        self.timeout = timeout
        self._http = httpx.Client(
            headers={
                "Authorization": f"Bearer {access_token}",
                "s2-format": "base64",
            },
            timeout=timeout,
            transport=transport,
        )

    def close(self):
        self._http.close()

    def _account_url(self, path: str) -> str:
        return f"{self.account_endpoint}{path}"

    def _basin_url(self, basin: str, path: str) -> str:
        return f"{self.basin_endpoint.format(basin=basin)}{path}"

    def _stream_url(self, basin: str, stream: str, suffix: str = "") -> str:
        return self._basin_url(basin, f"/streams/{quote(stream, safe='')}{suffix}")

    def _request(
        self,
        method: str,
        url: str,
        data: Optional[dict] = None,
        params: Optional[dict] = None,
    ) -> dict:
        """
        Make an HTTP request.

        Returns:
            Decoded JSON body, or an empty dict for empty responses

        Raises:
            S2ConnectionError: Transport failure
            S2ApiError: 4xx/5xx response
        """
        try:
            response = self._http.request(method, url, json=data, params=params)
        except httpx.TransportError as e:
            logger.warning(f"{method} {url} failed: {e}")
            raise S2ConnectionError(f"Cannot reach S2: {e}") from e

        if response.status_code >= 400:
            message = _error_message(response)
            logger.warning(f"{method} {url} -> {response.status_code}: {message}")
            raise S2ApiError(response.status_code, message)

        if not response.content:
            return {}
        return response.json()

    def _paginate(self, url: str, page_model, key: str, prefix: str, start_after: str,
                  limit: Optional[int]) -> Iterator[dict]:
        remaining = limit
        while True:
            page_size = PAGE_LIMIT if remaining is None else min(PAGE_LIMIT, remaining)
            params = {"prefix": prefix, "start_after": start_after, "limit": page_size}
            page = page_model.model_validate(self._request("GET", url, params=params))
            items = getattr(page, key)
            for item in items:
                yield item
                start_after = item.get("name") or item.get("id") or start_after
                if remaining is not None:
                    remaining -= 1
                    if remaining <= 0:
                        return
            if not page.has_more or not items:
                return

    # Basins

    def list_basins(self, prefix: str = "", start_after: str = "",
                    limit: Optional[int] = None) -> Iterator[BasinInfo]:
        """Lazily list basins, following pagination."""
        for item in self._paginate(self._account_url("/basins"), BasinPage, "basins",
                                   prefix, start_after, limit):
            yield BasinInfo.from_dict(item)

    def create_basin(self, basin: str, config: Optional[BasinConfig] = None,
                     scope: Optional[str] = "aws:us-east-1") -> BasinInfo:
        body = CreateBasinRequest(
            basin=basin,
            scope=scope,
            config=config.to_dict() if config else None,
        )
        data = self._request("POST", self._account_url("/basins"),
                             data=body.model_dump(exclude_none=True))
        return BasinInfo.from_dict(data or {"name": basin})

    def delete_basin(self, basin: str) -> None:
        self._request("DELETE", self._account_url(f"/basins/{basin}"))

    def get_basin_config(self, basin: str) -> BasinConfig:
        return BasinConfig.from_dict(self._request("GET", self._account_url(f"/basins/{basin}")))

    def reconfigure_basin(self, basin: str, config: BasinConfig) -> BasinConfig:
        body = ReconfigureBasinRequest(**config.to_dict())
        data = self._request("PATCH", self._account_url(f"/basins/{basin}"),
                             data=body.model_dump(exclude_none=True))
        return BasinConfig.from_dict(data) if data else config

    # Streams

    def list_streams(self, basin: str, prefix: str = "", start_after: str = "",
                     limit: Optional[int] = None) -> Iterator[StreamInfo]:
        """Lazily list streams of a basin, following pagination."""
        for item in self._paginate(self._basin_url(basin, "/streams"), StreamPage, "streams",
                                   prefix, start_after, limit):
            yield StreamInfo.from_dict(item)

    def create_stream(self, basin: str, stream: str,
                      config: Optional[StreamConfig] = None) -> StreamInfo:
        body = CreateStreamRequest(stream=stream, config=config.to_dict() if config else None)
        data = self._request("POST", self._basin_url(basin, "/streams"),
                             data=body.model_dump(exclude_none=True))
        return StreamInfo.from_dict(data or {"name": stream})

    def delete_stream(self, basin: str, stream: str) -> None:
        self._request("DELETE", self._stream_url(basin, stream))

    def get_stream_config(self, basin: str, stream: str) -> StreamConfig:
        return StreamConfig.from_dict(self._request("GET", self._stream_url(basin, stream)))

    def reconfigure_stream(self, basin: str, stream: str, config: StreamConfig) -> StreamConfig:
        data = self._request("PATCH", self._stream_url(basin, stream), data=config.to_dict())
        return StreamConfig.from_dict(data) if data else config

    # Records

    def check_tail(self, basin: str, stream: str) -> StreamPosition:
        data = self._request("GET", self._stream_url(basin, stream, "/records/tail"))
        return StreamPosition.from_dict(TailResponse.model_validate(data).tail)

    def append(
        self,
        basin: str,
        stream: str,
        records: list[AppendRecord],
        match_seq_num: Optional[int] = None,
        fencing_token: Optional[str] = None,
    ) -> AppendAck:
        body = AppendRequest(
            records=[AppendRecordBody(**record.to_dict()) for record in records],
            match_seq_num=match_seq_num,
            fencing_token=fencing_token,
        )
        data = self._request("POST", self._stream_url(basin, stream, "/records"),
                             data=body.model_dump(exclude_none=True))
        return AppendAck.from_dict(data)

    def fence(self, basin: str, stream: str, new_token: str,
              current_token: Optional[str] = None) -> AppendAck:
        """Set a new fencing token with a fence command record."""
        record = AppendRecord(body=new_token.encode("utf-8"), headers=[(b"", b"fence")])
        return self.append(basin, stream, [record], fencing_token=current_token or None)

    def trim(self, basin: str, stream: str, trim_point: int,
             fencing_token: Optional[str] = None) -> AppendAck:
        """Trim records before trim_point with a trim command record."""
        record = AppendRecord(body=struct.pack(">Q", trim_point), headers=[(b"", b"trim")])
        return self.append(basin, stream, [record], fencing_token=fencing_token or None)

    def read(self, basin: str, stream: str,
             options: Optional[ReadOptions] = None) -> Iterator[SequencedRecord]:
        """
        Stream records as server-sent events.

        The iterator is lazy and, for a read without limits, unbounded.

        Raises:
            S2ConnectionError: Transport failure, including mid-stream
            S2ApiError: The read was rejected
            S2ReadError: The server reported an error event
        """
        options = options or ReadOptions()
        url = self._stream_url(basin, stream, "/records")
        timeout = httpx.Timeout(self.timeout, read=None)
        try:
            with self._http.stream("GET", url, params=options.to_params(),
                                   headers={"Accept": "text/event-stream"},
                                   timeout=timeout) as response:
                if response.status_code >= 400:
                    response.read()
                    raise S2ApiError(response.status_code, _error_message(response))
                for event, data in iter_sse(response.iter_lines()):
                    if event == "batch":
                        for record in _decode_batch(data):
                            yield record
                    elif event == "error":
                        raise S2ReadError(_sse_error_message(data))
                    elif event == "done":
                        return
        except httpx.TransportError as e:
            logger.warning(f"Read of {basin}/{stream} interrupted: {e}")
            raise S2ConnectionError(f"Read interrupted: {e}") from e

    # Access tokens

    def list_access_tokens(self, prefix: str = "", start_after: str = "",
                           limit: Optional[int] = None) -> Iterator[AccessTokenInfo]:
        """Lazily list access tokens, following pagination."""
        for item in self._paginate(self._account_url("/access-tokens"), AccessTokenPage,
                                   "access_tokens", prefix, start_after, limit):
            yield AccessTokenInfo.from_dict(item)

    def issue_access_token(
        self,
        token_id: str,
        scope: AccessTokenScope,
        expires_at: Optional[str] = None,
        auto_prefix_streams: bool = False,
    ) -> str:
        """Issue a token and return its secret."""
        body = IssueAccessTokenRequest(
            id=token_id,
            expires_at=expires_at,
            auto_prefix_streams=auto_prefix_streams,
            scope=scope.to_dict(),
        )
        data = self._request("POST", self._account_url("/access-tokens"),
                             data=body.model_dump(exclude_none=True))
        return IssueAccessTokenResponse.model_validate(data).access_token

    def revoke_access_token(self, token_id: str) -> None:
        self._request("DELETE", self._account_url(f"/access-tokens/{quote(token_id, safe='')}"))


def _sse_error_message(data: str) -> str:
    try:
        payload = json.loads(data)
    except ValueError:
        return data
    if isinstance(payload, dict):
        return payload.get("message") or payload.get("error") or data
    return data


def _decode_batch(data: str) -> list[SequencedRecord]:
    """Decode one batch event; malformed payloads raise S2ReadError."""
    try:
        batch = ReadBatch.model_validate_json(data)
        return [SequencedRecord.from_dict(record) for record in batch.records]
    except (ValueError, KeyError, TypeError) as e:
        raise S2ReadError(f"Malformed batch: {e}") from e
