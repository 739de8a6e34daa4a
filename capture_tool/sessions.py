"""Session aggregation: one row per normalized session id."""
from __future__ import annotations

from typing import TYPE_CHECKING, Optional

from .models import Session

if TYPE_CHECKING:
    import sqlite3


def _keep_unless_new(old: Optional[str], new: Optional[str]) -> Optional[str]:
    return new if new is not None else old


def merge_session(
    existing: Optional[Session],
    session_id: str,
    timestamp_ns: int,
    user_agent: Optional[str] = None,
    remote_address: Optional[str] = None,
    host: Optional[str] = None,
) -> Session:
    """Fold one observed packet into a session aggregate.

    Seen bounds are min/max of all timestamps, whatever order packets
    arrive in; network fields keep their previous value unless the new
    packet carries one.
    """
    if existing is None:
        return Session(
            session_id=session_id,
            first_seen_ns=timestamp_ns,
            last_seen_ns=timestamp_ns,
            packet_count=1,
            user_agent=user_agent,
            remote_address=remote_address,
            host=host,
        )
    return Session(
        session_id=existing.session_id,
        first_seen_ns=min(existing.first_seen_ns, timestamp_ns),
        last_seen_ns=max(existing.last_seen_ns, timestamp_ns),
        packet_count=existing.packet_count + 1,
        user_agent=_keep_unless_new(existing.user_agent, user_agent),
        remote_address=_keep_unless_new(existing.remote_address, remote_address),
        host=_keep_unless_new(existing.host, host),
    )


def _row_to_session(row: sqlite3.Row) -> Session:
    return Session(
        session_id=row["session_id"],
        first_seen_ns=row["first_seen_ns"],
        last_seen_ns=row["last_seen_ns"],
        packet_count=row["packet_count"] or 0,
        user_agent=row["user_agent"],
        remote_address=row["remote_address"],
        host=row["host"],
    )


def get_session(conn: sqlite3.Connection, session_id: str) -> Optional[Session]:
    """Get a session by its normalized id."""
    row = conn.execute(
        "SELECT * FROM sessions WHERE session_id = ?",
        (session_id,),
    ).fetchone()
    if row is None:
        return None
    return _row_to_session(row)


def upsert_session(
    conn: sqlite3.Connection,
    session_id: str,
    timestamp_ns: int,
    user_agent: Optional[str] = None,
    remote_address: Optional[str] = None,
    host: Optional[str] = None,
) -> Session:
    """Record one packet against its session and return the merged row.

    Does not commit; the capture call owns the transaction.
    """
    existing = get_session(conn, session_id)
    merged = merge_session(existing, session_id, timestamp_ns, user_agent, remote_address, host)
    if existing is None:
        conn.execute(
            """
            INSERT INTO sessions (session_id, first_seen_ns, last_seen_ns, packet_count,
                                  user_agent, remote_address, host)
            VALUES (?, ?, ?, ?, ?, ?, ?)
            """,
            (
                merged.session_id,
                merged.first_seen_ns,
                merged.last_seen_ns,
                merged.packet_count,
                merged.user_agent,
                merged.remote_address,
                merged.host,
            ),
        )
    else:
        conn.execute(
            """
            UPDATE sessions
            SET first_seen_ns = ?, last_seen_ns = ?, packet_count = ?,
                user_agent = ?, remote_address = ?, host = ?
            WHERE session_id = ?
            """,
            (
                merged.first_seen_ns,
                merged.last_seen_ns,
                merged.packet_count,
                merged.user_agent,
                merged.remote_address,
                merged.host,
                merged.session_id,
            ),
        )
    return merged
