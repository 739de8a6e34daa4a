"""Aggregate statistics over captured traffic."""
from __future__ import annotations

from typing import TYPE_CHECKING, Optional

from .query_builder import QueryBuilder

if TYPE_CHECKING:
    import sqlite3

PACKET_STATS_SELECT = """
    SELECT
        COUNT(*) AS total_packets,
        COUNT(CASE WHEN direction = 'request' THEN 1 END) AS total_requests,
        COUNT(CASE WHEN direction = 'response' THEN 1 END) AS total_responses,
        COUNT(CASE WHEN status_code >= 400 THEN 1 END) AS total_errors,
        COUNT(DISTINCT session_id) AS unique_sessions,
        AVG(length) AS avg_packet_size,
        SUM(length) AS total_bytes,
        MIN(timestamp_ns) AS first_packet_ns,
        MAX(timestamp_ns) AS last_packet_ns
    FROM packets
"""

CONVERSATION_STATS_SELECT = """
    SELECT
        COUNT(*) AS total_conversations,
        COUNT(CASE WHEN status = 'completed' THEN 1 END) AS completed,
        COUNT(CASE WHEN status = 'pending' THEN 1 END) AS pending,
        COUNT(CASE WHEN status = 'error' THEN 1 END) AS errors,
        COUNT(CASE WHEN status = 'timeout' THEN 1 END) AS timeouts,
        AVG(duration_ms) AS avg_duration_ms,
        MIN(duration_ms) AS min_duration_ms,
        MAX(duration_ms) AS max_duration_ms
    FROM conversations
"""


def get_statistics(
    conn: sqlite3.Connection,
    session_id: Optional[str] = None,
    start_time: Optional[int] = None,
    end_time: Optional[int] = None,
) -> dict:
    """Get packet statistics.

    Returns:
        Dict with total_packets, total_requests, total_responses,
        total_errors (status >= 400), unique_sessions, avg_packet_size,
        total_bytes, first_packet_ns and last_packet_ns. Averages and
        bounds are None when nothing matches.
    """
    query, params = (
        QueryBuilder(PACKET_STATS_SELECT)
        .where("session_id", "=", session_id)
        .where("timestamp_ns", ">=", start_time)
        .where("timestamp_ns", "<=", end_time)
        .build()
    )
    row = conn.execute(query, params).fetchone()
    return dict(row)


def get_conversation_statistics(
    conn: sqlite3.Connection,
    session_id: Optional[str] = None,
    start_time: Optional[int] = None,
    end_time: Optional[int] = None,
) -> dict:
    """Get conversation counts by status and round-trip durations.

    Returns:
        Dict with total_conversations, completed, pending, errors,
        timeouts, avg_duration_ms, min_duration_ms and max_duration_ms
    """
    query, params = (
        QueryBuilder(CONVERSATION_STATS_SELECT)
        .where("session_id", "=", session_id)
        .where("request_timestamp_ns", ">=", start_time)
        .where("request_timestamp_ns", "<=", end_time)
        .build()
    )
    row = conn.execute(query, params).fetchone()
    return dict(row)
