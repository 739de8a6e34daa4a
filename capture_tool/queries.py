"""Read-only forensic queries over packets, conversations and sessions."""
from __future__ import annotations

from typing import TYPE_CHECKING, List, Optional

from .models import Packet
from .query_builder import Predicate, QueryBuilder, contains, escape_like

if TYPE_CHECKING:
    import sqlite3

DEFAULT_LIMIT = 1000
SESSION_LIMIT = 10000

SEARCH_FIELDS = (
    "session_id",
    "method",
    "url",
    "jsonrpc_method",
    "jsonrpc_id",
    "info",
    "body_raw",
    "body_json",
    "headers_json",
    "host",
    "remote_address",
)
BODY_FIELDS = ("body_json", "body_raw")

CONVERSATION_SELECT = """
    SELECT
        c.*,
        req.frame_number AS req_frame,
        req.timestamp_iso AS req_timestamp_iso,
        req.method AS req_method,
        req.url AS req_url,
        req.jsonrpc_method AS req_jsonrpc_method,
        req.body_json AS req_body_json,
        req.headers_json AS req_headers_json,
        resp.frame_number AS resp_frame,
        resp.timestamp_iso AS resp_timestamp_iso,
        resp.status_code AS resp_status_code,
        resp.jsonrpc_method AS resp_jsonrpc_method,
        resp.body_json AS resp_body_json,
        resp.headers_json AS resp_headers_json,
        resp.jsonrpc_result AS resp_jsonrpc_result,
        resp.jsonrpc_error AS resp_jsonrpc_error
    FROM conversations c
    LEFT JOIN packets req ON c.request_frame_number = req.frame_number
    LEFT JOIN packets resp ON c.response_frame_number = resp.frame_number
"""


def _fetch(conn: sqlite3.Connection, builder: QueryBuilder) -> List[dict]:
    query, params = builder.build()
    return [dict(row) for row in conn.execute(query, params).fetchall()]


def _name_pattern(name: str, suffix: str) -> str:
    # Matches `"name":"<name><suffix>` anywhere in a compact JSON body.
    return f'%"name":"{escape_like(name)}{suffix}%'


def query_packets(
    conn: sqlite3.Connection,
    session_id: Optional[str] = None,
    direction: Optional[str] = None,
    method: Optional[str] = None,
    jsonrpc_method: Optional[str] = None,
    status_code: Optional[int] = None,
    jsonrpc_id: Optional[str] = None,
    start_time: Optional[int] = None,
    end_time: Optional[int] = None,
    limit: int = DEFAULT_LIMIT,
    offset: int = 0,
) -> List[dict]:
    """Packets matching every given field exactly, oldest first."""
    builder = (
        QueryBuilder("SELECT * FROM packets")
        .where("session_id", "=", session_id)
        .where("direction", "=", direction)
        .where("method", "=", method)
        .where("jsonrpc_method", "=", jsonrpc_method)
        .where("status_code", "=", status_code)
        .where("jsonrpc_id", "=", jsonrpc_id)
        .where("timestamp_ns", ">=", start_time)
        .where("timestamp_ns", "<=", end_time)
        .order_by("timestamp_ns ASC", "frame_number ASC")
        .paginate(limit, offset)
    )
    return _fetch(conn, builder)


def query_requests(
    conn: sqlite3.Connection,
    session_id: Optional[str] = None,
    direction: Optional[str] = None,
    method: Optional[str] = None,
    jsonrpc_method: Optional[str] = None,
    status_code: Optional[int] = None,
    jsonrpc_id: Optional[str] = None,
    start_time: Optional[int] = None,
    end_time: Optional[int] = None,
    search: Optional[str] = None,
    server_name: Optional[str] = None,
    limit: int = DEFAULT_LIMIT,
    offset: int = 0,
) -> List[dict]:
    """Packet search for interactive inspection, most recent first.

    Text filters match substrings. `search` looks through every textual
    column plus `"name":"<search>` inside JSON-RPC params; `server_name`
    finds calls addressed to a named downstream server, either as a
    `"name":"server.tool"` prefix or an exact `"name":"server"`.
    """
    builder = QueryBuilder("SELECT * FROM packets")
    if search:
        pattern = contains(search)
        name_pattern = _name_pattern(search, "")
        builder.where_any(
            [Predicate(column, "LIKE", pattern) for column in SEARCH_FIELDS]
            + [Predicate(column, "LIKE", name_pattern) for column in BODY_FIELDS]
        )
    builder.where("session_id", "LIKE", contains(session_id) if session_id else None)
    builder.where("direction", "=", direction)
    builder.where("method", "LIKE", contains(method) if method else None)
    builder.where("jsonrpc_method", "LIKE", contains(jsonrpc_method) if jsonrpc_method else None)
    builder.where("status_code", "=", status_code)
    builder.where("timestamp_ns", ">=", start_time)
    builder.where("timestamp_ns", "<=", end_time)
    builder.where("jsonrpc_id", "LIKE", contains(jsonrpc_id) if jsonrpc_id else None)
    if server_name:
        prefixed = _name_pattern(server_name, ".")
        exact = _name_pattern(server_name, '"')
        builder.where_any(
            [Predicate(column, "LIKE", prefixed) for column in BODY_FIELDS]
            + [Predicate(column, "LIKE", exact) for column in BODY_FIELDS]
        )
    builder.order_by("timestamp_ns DESC", "frame_number DESC").paginate(limit, offset)
    return _fetch(conn, builder)


def query_conversations(
    conn: sqlite3.Connection,
    session_id: Optional[str] = None,
    method: Optional[str] = None,
    status: Optional[str] = None,
    jsonrpc_id: Optional[str] = None,
    start_time: Optional[int] = None,
    end_time: Optional[int] = None,
    limit: int = DEFAULT_LIMIT,
    offset: int = 0,
) -> List[dict]:
    """Conversations with their request and response packets flattened in.

    Pending conversations come back with every `resp_*` column set to None.
    """
    builder = (
        QueryBuilder(CONVERSATION_SELECT)
        .where("c.session_id", "=", session_id)
        .where("c.method", "=", method)
        .where("c.status", "=", status)
        .where("c.request_timestamp_ns", ">=", start_time)
        .where("c.request_timestamp_ns", "<=", end_time)
        .where("c.jsonrpc_id", "=", jsonrpc_id)
        .order_by("c.request_timestamp_ns ASC", "c.conversation_id ASC")
        .paginate(limit, offset)
    )
    return _fetch(conn, builder)


def get_session_packets(
    conn: sqlite3.Connection, session_id: str, limit: int = SESSION_LIMIT
) -> List[dict]:
    """All packets of one session in capture order."""
    rows = conn.execute(
        """
        SELECT * FROM packets
        WHERE session_id = ?
        ORDER BY timestamp_ns ASC, frame_number ASC
        LIMIT ?
        """,
        (session_id, limit),
    ).fetchall()
    return [dict(row) for row in rows]


def get_session_requests(
    conn: sqlite3.Connection, session_id: str, limit: int = SESSION_LIMIT
) -> List[dict]:
    """All packets of one session, most recent first."""
    rows = conn.execute(
        """
        SELECT * FROM packets
        WHERE session_id = ?
        ORDER BY timestamp_ns DESC, frame_number DESC
        LIMIT ?
        """,
        (session_id, limit),
    ).fetchall()
    return [dict(row) for row in rows]


def get_sessions(
    conn: sqlite3.Connection,
    start_time: Optional[int] = None,
    end_time: Optional[int] = None,
    limit: int = DEFAULT_LIMIT,
    offset: int = 0,
) -> List[dict]:
    """Sessions seen entirely within the time range, newest first."""
    builder = (
        QueryBuilder("SELECT * FROM sessions")
        .where("first_seen_ns", ">=", start_time)
        .where("last_seen_ns", "<=", end_time)
        .order_by("first_seen_ns DESC")
        .paginate(limit, offset)
    )
    return _fetch(conn, builder)


def get_packet(conn: sqlite3.Connection, frame_number: int) -> Optional[Packet]:
    """Get a packet by frame number."""
    row = conn.execute(
        "SELECT * FROM packets WHERE frame_number = ?",
        (frame_number,),
    ).fetchone()
    if row is None:
        return None
    return Packet(**{key: row[key] for key in row.keys()})
