"""Capture tool package."""
from __future__ import annotations

from .models import (
    BodyContent,
    CapturedRequest,
    Conversation,
    JsonRpcMetadata,
    Packet,
    Session,
    CONVERSATION_STATUSES,
    DIRECTIONS,
)
from .database import connect_db, ensure_schema, init_db, open_db, SCHEMA_VERSION
from .utils import (
    duration_ms,
    monotonic_ns,
    prepare_app_data_spaces,
    resolve_db_path,
    setup_logging,
    utc_now,
)
from .normalize import (
    coerce_jsonrpc_id,
    extract_body,
    extract_host,
    extract_jsonrpc_metadata,
    generate_info,
    normalize_session_id,
    packet_length,
    SESSION_HEADER_NAMES,
)
from .sessions import get_session, merge_session, upsert_session
from .conversations import get_conversation, get_conversation_by_request
from .capture import PacketLogger, get_packet_logger, log_request, log_response
from .query_builder import AnyOf, Predicate, QueryBuilder, contains, escape_like
from .queries import (
    get_packet,
    get_session_packets,
    get_session_requests,
    get_sessions,
    query_conversations,
    query_packets,
    query_requests,
)
from .analytics import get_conversation_statistics, get_statistics
from .reaper import reap_stale_conversations

__all__ = [
    # Models
    "BodyContent",
    "CapturedRequest",
    "Conversation",
    "JsonRpcMetadata",
    "Packet",
    "Session",
    "CONVERSATION_STATUSES",
    "DIRECTIONS",
    # Database
    "connect_db",
    "ensure_schema",
    "init_db",
    "open_db",
    "SCHEMA_VERSION",
    # Utils
    "duration_ms",
    "monotonic_ns",
    "prepare_app_data_spaces",
    "resolve_db_path",
    "setup_logging",
    "utc_now",
    # Normalizer
    "coerce_jsonrpc_id",
    "extract_body",
    "extract_host",
    "extract_jsonrpc_metadata",
    "generate_info",
    "normalize_session_id",
    "packet_length",
    "SESSION_HEADER_NAMES",
    # Sessions and conversations
    "get_session",
    "merge_session",
    "upsert_session",
    "get_conversation",
    "get_conversation_by_request",
    # Capture
    "PacketLogger",
    "get_packet_logger",
    "log_request",
    "log_response",
    # Queries
    "AnyOf",
    "Predicate",
    "QueryBuilder",
    "contains",
    "escape_like",
    "get_packet",
    "get_session_packets",
    "get_session_requests",
    "get_sessions",
    "query_conversations",
    "query_packets",
    "query_requests",
    # Analytics
    "get_conversation_statistics",
    "get_statistics",
    # Reaper
    "reap_stale_conversations",
]
