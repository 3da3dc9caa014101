"""Request and response bodies for the S2 REST API."""

from typing import Optional

from pydantic import BaseModel, Field


class CreateBasinRequest(BaseModel):
    """Request to create a basin."""
    basin: str
    scope: Optional[str] = "aws:us-east-1"
    config: Optional[dict] = None


class ReconfigureBasinRequest(BaseModel):
    """Basin reconfiguration; omitted fields are left unchanged."""
    default_stream_config: Optional[dict] = None
    create_stream_on_append: Optional[bool] = None
    create_stream_on_read: Optional[bool] = None


class CreateStreamRequest(BaseModel):
    """Request to create a stream."""
    stream: str
    config: Optional[dict] = None


class AppendRecordBody(BaseModel):
    """One record in an append batch (headers and body base64-encoded)."""
    headers: list[list[str]] = Field(default_factory=list)
    body: str = ""
    timestamp: Optional[int] = None


class AppendRequest(BaseModel):
    """Append a batch of records."""
    records: list[AppendRecordBody]
    match_seq_num: Optional[int] = None
    fencing_token: Optional[str] = None


class IssueAccessTokenRequest(BaseModel):
    """Request to issue a new access token."""
    id: str
    expires_at: Optional[str] = None
    auto_prefix_streams: bool = False
    scope: dict = Field(default_factory=dict)


class IssueAccessTokenResponse(BaseModel):
    """Freshly issued token; the secret is only returned here."""
    access_token: str


class BasinPage(BaseModel):
    """One page of a basin listing."""
    basins: list[dict] = Field(default_factory=list)
    has_more: bool = False


class StreamPage(BaseModel):
    """One page of a stream listing."""
    streams: list[dict] = Field(default_factory=list)
    has_more: bool = False


class AccessTokenPage(BaseModel):
    """One page of an access token listing."""
    access_tokens: list[dict] = Field(default_factory=list)
    has_more: bool = False


class TailResponse(BaseModel):
    """Response of a check-tail call."""
    tail: dict


class ReadBatch(BaseModel):
    """Payload of a `batch` server-sent event."""
    records: list[dict] = Field(default_factory=list)
    tail: Optional[dict] = None
