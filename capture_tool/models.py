"""Data models for the capture tool."""
from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

DIRECTION_REQUEST = "request"
DIRECTION_RESPONSE = "response"
DIRECTIONS = (DIRECTION_REQUEST, DIRECTION_RESPONSE)

STATUS_PENDING = "pending"
STATUS_COMPLETED = "completed"
STATUS_TIMEOUT = "timeout"
STATUS_ERROR = "error"
CONVERSATION_STATUSES = (STATUS_PENDING, STATUS_COMPLETED, STATUS_TIMEOUT, STATUS_ERROR)


@dataclass
class Packet:
    frame_number: int
    timestamp_ns: int
    timestamp_iso: str
    direction: str
    protocol: str
    session_id: Optional[str]
    method: Optional[str]
    url: Optional[str]
    status_code: Optional[int]
    headers_json: str
    body_raw: str
    body_json: Optional[str]
    jsonrpc_id: Optional[str]
    jsonrpc_method: Optional[str]
    jsonrpc_result: Optional[str]
    jsonrpc_error: Optional[str]
    length: int
    info: Optional[str]
    user_agent: Optional[str]
    remote_address: Optional[str]
    host: Optional[str]


@dataclass
class Conversation:
    conversation_id: int
    request_frame_number: int
    response_frame_number: Optional[int]
    session_id: Optional[str]
    jsonrpc_id: Optional[str]
    method: Optional[str]
    request_timestamp_ns: int
    response_timestamp_ns: Optional[int]
    duration_ms: Optional[float]
    status: str


@dataclass
class Session:
    session_id: str
    first_seen_ns: int
    last_seen_ns: int
    packet_count: int
    user_agent: Optional[str] = None
    remote_address: Optional[str] = None
    host: Optional[str] = None


@dataclass
class BodyContent:
    """Raw text of a body plus the text stored as its JSON form, if any."""

    raw: str
    json: Optional[str]


@dataclass
class JsonRpcMetadata:
    """Envelope fields pulled out of a JSON-RPC body."""

    id: Optional[str] = None
    method: Optional[str] = None
    result: Optional[str] = None
    error: Optional[str] = None


@dataclass
class CapturedRequest:
    """What the proxy needs back to correlate the response later."""

    frame_number: int
    timestamp_ns: int
