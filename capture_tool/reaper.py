"""Sweep for conversations whose response never arrived.

Run on a schedule (for example `capture-tool reap` from cron); the capture
path never calls this.
"""
from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Optional

from .utils import monotonic_ns

if TYPE_CHECKING:
    import sqlite3

logger = logging.getLogger(__name__)


def reap_stale_conversations(
    conn: sqlite3.Connection,
    max_age_ms: float,
    now_ns: Optional[int] = None,
) -> int:
    """Mark pending conversations older than `max_age_ms` as timed out.

    Returns:
        The number of conversations moved to the timeout state
    """
    if max_age_ms < 0:
        raise ValueError("max_age_ms must not be negative")
    now_ns = monotonic_ns() if now_ns is None else now_ns
    cutoff_ns = now_ns - int(max_age_ms * 1_000_000)
    with conn:
        cursor = conn.execute(
            """
            UPDATE conversations
            SET status = 'timeout'
            WHERE status = 'pending' AND response_frame_number IS NULL
              AND request_timestamp_ns < ?
            """,
            (cutoff_ns,),
        )
    reaped = cursor.rowcount
    if reaped:
        logger.info("Marked %d stale conversation(s) as timed out", reaped)
    return reaped
