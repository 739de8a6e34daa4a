"""Database connection and schema management."""
from __future__ import annotations

import logging
import os
import sqlite3

logger = logging.getLogger(__name__)

SCHEMA_VERSION = 1
BUSY_TIMEOUT_SECONDS = 5.0

INDEXES = (
    ("idx_packets_timestamp", "packets(timestamp_ns)"),
    ("idx_packets_session", "packets(session_id)"),
    ("idx_packets_direction", "packets(direction)"),
    ("idx_packets_jsonrpc_id", "packets(jsonrpc_id)"),
    ("idx_packets_jsonrpc_method", "packets(jsonrpc_method)"),
    ("idx_packets_method", "packets(method)"),
    ("idx_packets_status_code", "packets(status_code)"),
    ("idx_packets_session_timestamp", "packets(session_id, timestamp_ns)"),
    ("idx_conversations_session", "conversations(session_id)"),
    ("idx_conversations_jsonrpc_id", "conversations(jsonrpc_id)"),
    ("idx_conversations_request_frame", "conversations(request_frame_number)"),
    ("idx_conversations_response_frame", "conversations(response_frame_number)"),
    ("idx_conversations_timestamp", "conversations(request_timestamp_ns)"),
    ("idx_sessions_first_seen", "sessions(first_seen_ns)"),
    ("idx_sessions_last_seen", "sessions(last_seen_ns)"),
)


def connect_db(path: str) -> sqlite3.Connection:
    """Connect to SQLite database."""
    directory = os.path.dirname(path)
    if directory:
        os.makedirs(directory, exist_ok=True)
    conn = sqlite3.connect(path, timeout=BUSY_TIMEOUT_SECONDS)
    conn.row_factory = sqlite3.Row
    conn.execute("PRAGMA foreign_keys = ON")
    return conn


def ensure_meta_table(conn: sqlite3.Connection) -> None:
    """Ensure meta table exists."""
    conn.execute(
        """
        CREATE TABLE IF NOT EXISTS meta (
            key TEXT PRIMARY KEY,
            value TEXT NOT NULL
        )
        """
    )


def get_schema_version(conn: sqlite3.Connection) -> int:
    """Get current schema version."""
    ensure_meta_table(conn)
    row = conn.execute(
        "SELECT value FROM meta WHERE key = 'schema_version'",
    ).fetchone()
    if row is None:
        return 0
    try:
        return int(row["value"])
    except (TypeError, ValueError):
        return 0


def set_schema_version(conn: sqlite3.Connection, version: int) -> None:
    """Set schema version."""
    ensure_meta_table(conn)
    conn.execute(
        """
        INSERT INTO meta (key, value)
        VALUES ('schema_version', ?)
        ON CONFLICT(key) DO UPDATE SET value = excluded.value
        """,
        (str(version),),
    )


def configure_store(conn: sqlite3.Connection) -> str:
    """Switch the store to write-ahead logging and enforce foreign keys.

    Returns the journal mode SQLite settled on ("memory" for in-memory stores).
    """
    row = conn.execute("PRAGMA journal_mode = WAL").fetchone()
    conn.execute("PRAGMA foreign_keys = ON")
    return row[0] if row else ""


def ensure_schema(conn: sqlite3.Connection) -> sqlite3.Connection:
    """Create the packets, conversations and sessions tables and their indexes.

    Safe to call on every start: existing tables and rows are left untouched.
    """
    configure_store(conn)
    conn.execute(
        """
        CREATE TABLE IF NOT EXISTS packets (
            frame_number INTEGER PRIMARY KEY AUTOINCREMENT,
            timestamp_ns INTEGER NOT NULL,
            timestamp_iso TEXT NOT NULL,
            direction TEXT NOT NULL CHECK(direction IN ('request', 'response')),
            protocol TEXT NOT NULL DEFAULT 'HTTP',
            session_id TEXT,
            method TEXT,
            url TEXT,
            status_code INTEGER,
            headers_json TEXT NOT NULL,
            body_raw TEXT,
            body_json TEXT,
            jsonrpc_id TEXT,
            jsonrpc_method TEXT,
            jsonrpc_result TEXT,
            jsonrpc_error TEXT,
            length INTEGER NOT NULL CHECK(length >= 0),
            info TEXT,
            user_agent TEXT,
            remote_address TEXT,
            host TEXT
        )
        """
    )
    conn.execute(
        """
        CREATE TABLE IF NOT EXISTS conversations (
            conversation_id INTEGER PRIMARY KEY AUTOINCREMENT,
            request_frame_number INTEGER NOT NULL REFERENCES packets(frame_number),
            response_frame_number INTEGER REFERENCES packets(frame_number),
            session_id TEXT,
            jsonrpc_id TEXT,
            method TEXT,
            request_timestamp_ns INTEGER NOT NULL,
            response_timestamp_ns INTEGER,
            duration_ms REAL,
            status TEXT DEFAULT 'pending'
                CHECK(status IN ('pending', 'completed', 'timeout', 'error'))
        )
        """
    )
    conn.execute(
        """
        CREATE TABLE IF NOT EXISTS sessions (
            session_id TEXT PRIMARY KEY,
            first_seen_ns INTEGER NOT NULL,
            last_seen_ns INTEGER NOT NULL,
            packet_count INTEGER DEFAULT 0,
            user_agent TEXT,
            remote_address TEXT,
            host TEXT
        )
        """
    )
    for name, target in INDEXES:
        conn.execute(f"CREATE INDEX IF NOT EXISTS {name} ON {target}")
    migrate_schema(conn)
    conn.commit()
    return conn


def migrate_schema(conn: sqlite3.Connection) -> None:
    """Migrate database to current schema version."""
    version = get_schema_version(conn)
    if version > SCHEMA_VERSION:
        raise RuntimeError(
            f"Database schema version {version} is newer than this tool supports "
            f"(max {SCHEMA_VERSION})."
        )

    if version < 1:
        set_schema_version(conn, 1)
        logger.info("Schema version set to 1")


def open_db(path: str) -> sqlite3.Connection:
    """Open or create a capture database, ensuring its tables exist."""
    if not os.path.exists(path):
        logger.info("Creating new database at: %s", path)
    conn = connect_db(path)
    return ensure_schema(conn)


def init_db(path: str) -> None:
    """Initialize database."""
    conn = open_db(path)
    conn.close()
