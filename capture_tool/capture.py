"""Record observed HTTP requests and responses as packets.

The proxy calls `log_request` when a request arrives and `log_response`
when its response comes back. Each call writes one packet, folds it into
the session aggregate and opens or closes a conversation, all inside one
transaction on the connection it is given.
"""
from __future__ import annotations

import logging
from collections.abc import Mapping
from typing import TYPE_CHECKING, Any, Optional

from .conversations import (
    complete_conversation,
    find_unmatched_conversation,
    get_conversation_by_request,
    open_conversation,
    response_status,
)
from .models import DIRECTION_REQUEST, DIRECTION_RESPONSE, CapturedRequest
from .normalize import (
    coerce_jsonrpc_id,
    extract_body,
    extract_host,
    extract_jsonrpc_metadata,
    generate_info,
    normalize_session_id,
    packet_length,
    serialize_headers,
)
from .sessions import upsert_session
from .utils import duration_ms, escape_surrogates, monotonic_ns, utc_now

if TYPE_CHECKING:
    import sqlite3

logger = logging.getLogger(__name__)

_PACKET_COLUMNS = (
    "timestamp_ns",
    "timestamp_iso",
    "direction",
    "protocol",
    "session_id",
    "method",
    "url",
    "status_code",
    "headers_json",
    "body_raw",
    "body_json",
    "jsonrpc_id",
    "jsonrpc_method",
    "jsonrpc_result",
    "jsonrpc_error",
    "length",
    "info",
    "user_agent",
    "remote_address",
    "host",
)


def insert_packet(conn: sqlite3.Connection, **fields: Any) -> int:
    """Insert one packet row and return its frame number. Does not commit."""
    fields.setdefault("protocol", "HTTP")
    values = [fields.get(column) for column in _PACKET_COLUMNS]
    placeholders = ", ".join("?" for _ in _PACKET_COLUMNS)
    cursor = conn.execute(
        f"INSERT INTO packets ({', '.join(_PACKET_COLUMNS)}) VALUES ({placeholders})",
        values,
    )
    return int(cursor.lastrowid)


def _clean(value: Optional[str]) -> Optional[str]:
    return escape_surrogates(value) if isinstance(value, str) else value


def log_request(
    conn: sqlite3.Connection,
    method: Optional[str],
    url: Optional[str],
    headers: Optional[Mapping[str, Any]] = None,
    body: object = None,
    user_agent: Optional[str] = None,
    remote_address: Optional[str] = None,
    timestamp_ns: Optional[int] = None,
) -> CapturedRequest:
    """Record a request packet and open a conversation if it has a JSON-RPC id."""
    timestamp_ns = monotonic_ns() if timestamp_ns is None else timestamp_ns
    method, url = _clean(method), _clean(url)
    user_agent, remote_address = _clean(user_agent), _clean(remote_address)
    timestamp_iso = utc_now()
    headers = headers if headers is not None else {}
    session_id = normalize_session_id(headers)
    host = extract_host(headers)
    content = extract_body(body)
    headers_json = serialize_headers(headers)
    rpc = extract_jsonrpc_metadata(content.json or content.raw)

    with conn:
        frame_number = insert_packet(
            conn,
            timestamp_ns=timestamp_ns,
            timestamp_iso=timestamp_iso,
            direction=DIRECTION_REQUEST,
            session_id=session_id,
            method=method,
            url=url,
            headers_json=headers_json,
            body_raw=content.raw,
            body_json=content.json,
            jsonrpc_id=rpc.id,
            jsonrpc_method=rpc.method,
            length=packet_length(headers_json, content.raw),
            info=generate_info(DIRECTION_REQUEST, method, url, None, rpc.method),
            user_agent=user_agent,
            remote_address=remote_address,
            host=host,
        )
        if session_id:
            upsert_session(conn, session_id, timestamp_ns, user_agent, remote_address, host)
        if rpc.id is not None:
            open_conversation(
                conn,
                frame_number,
                session_id,
                rpc.id,
                rpc.method or method,
                timestamp_ns,
            )

    logger.debug("Request frame %d captured (session=%s, id=%s)", frame_number, session_id, rpc.id)
    return CapturedRequest(frame_number=frame_number, timestamp_ns=timestamp_ns)


def log_response(
    conn: sqlite3.Connection,
    status_code: Optional[int],
    headers: Optional[Mapping[str, Any]] = None,
    body: object = None,
    request_frame_number: Optional[int] = None,
    request_timestamp_ns: Optional[int] = None,
    jsonrpc_id: Any = None,
    user_agent: Optional[str] = None,
    remote_address: Optional[str] = None,
    timestamp_ns: Optional[int] = None,
) -> int:
    """Record a response packet and close the conversation it answers.

    An explicit request frame number wins; otherwise the JSON-RPC id from
    the body (or the caller's id when the body has none) picks the newest
    unmatched conversation. Responses that match nothing are still stored.
    """
    timestamp_ns = monotonic_ns() if timestamp_ns is None else timestamp_ns
    user_agent, remote_address = _clean(user_agent), _clean(remote_address)
    timestamp_iso = utc_now()
    headers = headers if headers is not None else {}
    session_id = normalize_session_id(headers)
    host = extract_host(headers)
    content = extract_body(body)
    headers_json = serialize_headers(headers)
    rpc = extract_jsonrpc_metadata(content.json or content.raw)
    match_id = rpc.id if rpc.id is not None else coerce_jsonrpc_id(jsonrpc_id)

    with conn:
        frame_number = insert_packet(
            conn,
            timestamp_ns=timestamp_ns,
            timestamp_iso=timestamp_iso,
            direction=DIRECTION_RESPONSE,
            session_id=session_id,
            status_code=status_code,
            headers_json=headers_json,
            body_raw=content.raw,
            body_json=content.json,
            jsonrpc_id=match_id,
            jsonrpc_method=rpc.method,
            jsonrpc_result=rpc.result,
            jsonrpc_error=rpc.error,
            length=packet_length(headers_json, content.raw),
            info=generate_info(DIRECTION_RESPONSE, None, None, status_code, rpc.method),
            user_agent=user_agent,
            remote_address=remote_address,
            host=host,
        )
        if session_id:
            upsert_session(conn, session_id, timestamp_ns, user_agent, remote_address, host)

        if request_frame_number is not None:
            conversation = get_conversation_by_request(conn, request_frame_number)
        elif match_id is not None:
            conversation = find_unmatched_conversation(conn, match_id)
        else:
            conversation = None

        if conversation is None:
            logger.debug("Response frame %d left uncorrelated (id=%s)", frame_number, match_id)
        else:
            started_ns = (
                request_timestamp_ns
                if request_timestamp_ns is not None
                else conversation.request_timestamp_ns
            )
            complete_conversation(
                conn,
                conversation.conversation_id,
                frame_number,
                timestamp_ns,
                duration_ms(started_ns, timestamp_ns),
                response_status(status_code),
            )

    return frame_number


class PacketLogger:
    """Capture entry points bound to one connection, for the proxy to hold."""

    def __init__(self, conn: sqlite3.Connection):
        self.conn = conn

    def log_request(self, method: Optional[str], url: Optional[str], **options: Any) -> CapturedRequest:
        return log_request(self.conn, method, url, **options)

    def log_response(self, status_code: Optional[int], **options: Any) -> int:
        return log_response(self.conn, status_code, **options)


def get_packet_logger(conn: sqlite3.Connection) -> PacketLogger:
    return PacketLogger(conn)
