#!/usr/bin/env python3
"""Command-line interface for inspecting captured traffic."""
from __future__ import annotations

import argparse
import json
import sqlite3
import sys

from .analytics import get_conversation_statistics, get_statistics
from .database import init_db, open_db
from .models import CONVERSATION_STATUSES, DIRECTIONS
from .queries import (
    DEFAULT_LIMIT,
    SESSION_LIMIT,
    get_session_packets,
    get_session_requests,
    get_sessions,
    query_conversations,
    query_packets,
    query_requests,
)
from .reaper import reap_stale_conversations
from .utils import DEFAULT_LOG_LEVEL, resolve_db_path, setup_logging


def _add_time_range(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("--start-time", type=int, help="Lower bound, nanoseconds")
    parser.add_argument("--end-time", type=int, help="Upper bound, nanoseconds")


def _add_paging(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("--limit", type=int, default=DEFAULT_LIMIT)
    parser.add_argument("--offset", type=int, default=0)


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    """Parse command-line arguments."""
    parser = argparse.ArgumentParser(description="Forensic capture store for JSON-RPC over HTTP traffic")
    parser.add_argument("--db", default=None, help="Path to SQLite database")
    parser.add_argument("--log-level", default=DEFAULT_LOG_LEVEL, help="Logging level (default: WARNING)")

    subparsers = parser.add_subparsers(dest="command", required=True)

    # init
    subparsers.add_parser("init", help="Initialize the database")

    # packets
    packets_parser = subparsers.add_parser("packets", help="Filter packets by exact field values")
    packets_parser.add_argument("--session-id")
    packets_parser.add_argument("--direction", choices=DIRECTIONS)
    packets_parser.add_argument("--method")
    packets_parser.add_argument("--jsonrpc-method")
    packets_parser.add_argument("--status-code", type=int)
    packets_parser.add_argument("--jsonrpc-id")
    _add_time_range(packets_parser)
    _add_paging(packets_parser)

    # requests
    requests_parser = subparsers.add_parser("requests", help="Search packets, most recent first")
    requests_parser.add_argument("--search")
    requests_parser.add_argument("--server-name")
    requests_parser.add_argument("--session-id")
    requests_parser.add_argument("--direction", choices=DIRECTIONS)
    requests_parser.add_argument("--method")
    requests_parser.add_argument("--jsonrpc-method")
    requests_parser.add_argument("--status-code", type=int)
    requests_parser.add_argument("--jsonrpc-id")
    _add_time_range(requests_parser)
    _add_paging(requests_parser)

    # conversations
    conversations_parser = subparsers.add_parser("conversations", help="Request/response pairs")
    conversations_parser.add_argument("--session-id")
    conversations_parser.add_argument("--method")
    conversations_parser.add_argument("--status", choices=CONVERSATION_STATUSES)
    conversations_parser.add_argument("--jsonrpc-id")
    _add_time_range(conversations_parser)
    _add_paging(conversations_parser)

    # sessions
    sessions_parser = subparsers.add_parser("sessions", help="List sessions")
    _add_time_range(sessions_parser)
    _add_paging(sessions_parser)

    # session
    session_parser = subparsers.add_parser("session", help="All packets of one session")
    session_parser.add_argument("session_id")
    session_parser.add_argument("--order", choices=["asc", "desc"], default="asc")
    session_parser.add_argument("--limit", type=int, default=SESSION_LIMIT)

    # stats
    for name, help_text in (
        ("stats", "Packet statistics"),
        ("conversation-stats", "Conversation statistics"),
    ):
        stats_parser = subparsers.add_parser(name, help=help_text)
        stats_parser.add_argument("--session-id")
        _add_time_range(stats_parser)

    # reap
    reap_parser = subparsers.add_parser("reap", help="Time out stale pending conversations")
    reap_parser.add_argument("--max-age-ms", type=float, required=True)

    return parser.parse_args(argv)


def main(argv: list[str] | None = None) -> None:
    """Main entry point."""
    args = parse_args(argv)
    try:
        _run(args)
    except (ValueError, RuntimeError, sqlite3.Error) as exc:
        print(json.dumps({"ok": False, "error": str(exc)}, indent=2))
        sys.exit(1)


def _run(args: argparse.Namespace) -> None:
    setup_logging(args.log_level)
    db_path = resolve_db_path(args.db)

    if args.command == "init":
        init_db(db_path)
        print(json.dumps({"ok": True, "db": db_path}, indent=2))
        return

    conn = open_db(db_path)
    try:
        if args.command == "packets":
            _handle_packets(conn, args)
        elif args.command == "requests":
            _handle_requests(conn, args)
        elif args.command == "conversations":
            _handle_conversations(conn, args)
        elif args.command == "sessions":
            _handle_sessions(conn, args)
        elif args.command == "session":
            _handle_session(conn, args)
        elif args.command == "stats":
            _handle_stats(conn, args)
        elif args.command == "conversation-stats":
            _handle_conversation_stats(conn, args)
        elif args.command == "reap":
            _handle_reap(conn, args)
    finally:
        conn.close()


def _print_results(results) -> None:
    print(json.dumps({"ok": True, "count": len(results), "results": results}, indent=2))


def _handle_packets(conn, args):
    results = query_packets(
        conn,
        session_id=args.session_id,
        direction=args.direction,
        method=args.method,
        jsonrpc_method=args.jsonrpc_method,
        status_code=args.status_code,
        jsonrpc_id=args.jsonrpc_id,
        start_time=args.start_time,
        end_time=args.end_time,
        limit=args.limit,
        offset=args.offset,
    )
    _print_results(results)


def _handle_requests(conn, args):
    results = query_requests(
        conn,
        session_id=args.session_id,
        direction=args.direction,
        method=args.method,
        jsonrpc_method=args.jsonrpc_method,
        status_code=args.status_code,
        jsonrpc_id=args.jsonrpc_id,
        start_time=args.start_time,
        end_time=args.end_time,
        search=args.search,
        server_name=args.server_name,
        limit=args.limit,
        offset=args.offset,
    )
    _print_results(results)


def _handle_conversations(conn, args):
    results = query_conversations(
        conn,
        session_id=args.session_id,
        method=args.method,
        status=args.status,
        jsonrpc_id=args.jsonrpc_id,
        start_time=args.start_time,
        end_time=args.end_time,
        limit=args.limit,
        offset=args.offset,
    )
    _print_results(results)


def _handle_sessions(conn, args):
    results = get_sessions(conn, args.start_time, args.end_time, limit=args.limit, offset=args.offset)
    _print_results(results)


def _handle_session(conn, args):
    if args.order == "desc":
        results = get_session_requests(conn, args.session_id, limit=args.limit)
    else:
        results = get_session_packets(conn, args.session_id, limit=args.limit)
    _print_results(results)


def _handle_stats(conn, args):
    stats = get_statistics(conn, args.session_id, args.start_time, args.end_time)
    print(json.dumps({"ok": True, "stats": stats}, indent=2))


def _handle_conversation_stats(conn, args):
    stats = get_conversation_statistics(conn, args.session_id, args.start_time, args.end_time)
    print(json.dumps({"ok": True, "stats": stats}, indent=2))


def _handle_reap(conn, args):
    reaped = reap_stale_conversations(conn, args.max_age_ms)
    print(json.dumps({"ok": True, "reaped": reaped}, indent=2))


if __name__ == "__main__":
    main()
