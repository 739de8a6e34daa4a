"""Conversation rows: a request packet paired with its eventual response."""
from __future__ import annotations

from typing import TYPE_CHECKING, Optional

from .models import STATUS_COMPLETED, STATUS_ERROR, Conversation

if TYPE_CHECKING:
    import sqlite3


def _row_to_conversation(row: sqlite3.Row) -> Conversation:
    return Conversation(
        conversation_id=row["conversation_id"],
        request_frame_number=row["request_frame_number"],
        response_frame_number=row["response_frame_number"],
        session_id=row["session_id"],
        jsonrpc_id=row["jsonrpc_id"],
        method=row["method"],
        request_timestamp_ns=row["request_timestamp_ns"],
        response_timestamp_ns=row["response_timestamp_ns"],
        duration_ms=row["duration_ms"],
        status=row["status"],
    )


def response_status(status_code: Optional[int]) -> str:
    """Conversation status for a response's HTTP status code."""
    if status_code is not None and 200 <= status_code < 300:
        return STATUS_COMPLETED
    return STATUS_ERROR


def open_conversation(
    conn: sqlite3.Connection,
    request_frame_number: int,
    session_id: Optional[str],
    jsonrpc_id: str,
    method: Optional[str],
    request_timestamp_ns: int,
) -> int:
    """Insert a pending conversation for a request and return its id."""
    cursor = conn.execute(
        """
        INSERT INTO conversations (request_frame_number, session_id, jsonrpc_id, method,
                                   request_timestamp_ns, status)
        VALUES (?, ?, ?, ?, ?, 'pending')
        """,
        (request_frame_number, session_id, jsonrpc_id, method, request_timestamp_ns),
    )
    return int(cursor.lastrowid)


def get_conversation(conn: sqlite3.Connection, conversation_id: int) -> Optional[Conversation]:
    """Get a conversation by ID."""
    row = conn.execute(
        "SELECT * FROM conversations WHERE conversation_id = ?",
        (conversation_id,),
    ).fetchone()
    if row is None:
        return None
    return _row_to_conversation(row)


def get_conversation_by_request(
    conn: sqlite3.Connection, request_frame_number: int
) -> Optional[Conversation]:
    """Get the conversation opened by a request packet."""
    row = conn.execute(
        """
        SELECT * FROM conversations
        WHERE request_frame_number = ?
        ORDER BY conversation_id DESC
        LIMIT 1
        """,
        (request_frame_number,),
    ).fetchone()
    if row is None:
        return None
    return _row_to_conversation(row)


def find_unmatched_conversation(conn: sqlite3.Connection, jsonrpc_id: str) -> Optional[Conversation]:
    """Most recent conversation with this JSON-RPC id still waiting for a response.

    When several requests share the id, the newest one wins (last in,
    first matched).
    """
    row = conn.execute(
        """
        SELECT * FROM conversations
        WHERE jsonrpc_id = ? AND response_frame_number IS NULL
        ORDER BY request_timestamp_ns DESC, conversation_id DESC
        LIMIT 1
        """,
        (jsonrpc_id,),
    ).fetchone()
    if row is None:
        return None
    return _row_to_conversation(row)


def complete_conversation(
    conn: sqlite3.Connection,
    conversation_id: int,
    response_frame_number: int,
    response_timestamp_ns: int,
    duration_ms: Optional[float],
    status: str,
) -> None:
    """Attach a response to a conversation. Does not commit."""
    conn.execute(
        """
        UPDATE conversations
        SET response_frame_number = ?,
            response_timestamp_ns = ?,
            duration_ms = ?,
            status = ?
        WHERE conversation_id = ?
        """,
        (response_frame_number, response_timestamp_ns, duration_ms, status, conversation_id),
    )
