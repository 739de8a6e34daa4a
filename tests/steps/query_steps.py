"""Step definitions for forensic queries and statistics."""
from __future__ import annotations

from pytest_bdd import parsers, then, when

from conftest import BDDTestContext, parse_datatable


@when(parsers.parse('I query packets with direction "{direction}"'))
def when_query_packets_direction(test_context: BDDTestContext, direction: str):
    from capture_tool.queries import query_packets

    test_context.results = query_packets(test_context.conn, direction=direction)


@when(parsers.parse("I query packets with status code {status:d}"))
def when_query_packets_status(test_context: BDDTestContext, status: int):
    from capture_tool.queries import query_packets

    test_context.results = query_packets(test_context.conn, status_code=status)


@when(parsers.parse('I search requests for "{search}"'))
def when_search_requests(test_context: BDDTestContext, search: str):
    from capture_tool.queries import query_requests

    test_context.results = query_requests(test_context.conn, search=search)


@when(parsers.parse('I filter requests by server name "{server_name}"'))
def when_filter_server_name(test_context: BDDTestContext, server_name: str):
    from capture_tool.queries import query_requests

    test_context.results = query_requests(test_context.conn, server_name=server_name)


@when(parsers.parse('I query conversations with status "{status}"'))
def when_query_conversations(test_context: BDDTestContext, status: str):
    from capture_tool.queries import query_conversations

    test_context.results = query_conversations(test_context.conn, status=status)


@when("I list sessions")
def when_list_sessions(test_context: BDDTestContext):
    from capture_tool.queries import get_sessions

    test_context.results = get_sessions(test_context.conn)


@when("I compute packet statistics")
def when_packet_statistics(test_context: BDDTestContext):
    from capture_tool.analytics import get_statistics

    test_context.stats = get_statistics(test_context.conn)


@when(parsers.parse('I compute packet statistics for session "{session_id}"'))
def when_packet_statistics_for_session(test_context: BDDTestContext, session_id: str):
    from capture_tool.analytics import get_statistics

    test_context.stats = get_statistics(test_context.conn, session_id=session_id)


@when("I compute conversation statistics")
def when_conversation_statistics(test_context: BDDTestContext):
    from capture_tool.analytics import get_conversation_statistics

    test_context.stats = get_conversation_statistics(test_context.conn)


@when(parsers.parse('I query conversations for session "{session_id}"'))
def when_query_conversations_session(test_context: BDDTestContext, session_id: str):
    from capture_tool.queries import query_conversations

    test_context.results = query_conversations(test_context.conn, session_id=session_id)


@when(parsers.parse('I query conversations with method "{method}"'))
def when_query_conversations_method(test_context: BDDTestContext, method: str):
    from capture_tool.queries import query_conversations

    test_context.results = query_conversations(test_context.conn, method=method)


@when(parsers.parse("I query conversations between {start:d} and {end:d}"))
def when_query_conversations_range(test_context: BDDTestContext, start: int, end: int):
    from capture_tool.queries import query_conversations

    test_context.results = query_conversations(test_context.conn, start_time=start, end_time=end)


@when(parsers.parse('I compute conversation statistics for session "{session_id}"'))
def when_conversation_statistics_for_session(test_context: BDDTestContext, session_id: str):
    from capture_tool.analytics import get_conversation_statistics

    test_context.stats = get_conversation_statistics(test_context.conn, session_id=session_id)


@when(parsers.parse("I compute conversation statistics from {start:d}"))
def when_conversation_statistics_from(test_context: BDDTestContext, start: int):
    from capture_tool.analytics import get_conversation_statistics

    test_context.stats = get_conversation_statistics(test_context.conn, start_time=start)


@then(parsers.parse("I should get {count:d} results"))
def result_count(test_context: BDDTestContext, count: int):
    assert len(test_context.results) == count


@then("the results should be in ascending time order")
def results_ascending(test_context: BDDTestContext):
    key = "request_timestamp_ns" if test_context.results and "conversation_id" in test_context.results[0] else "timestamp_ns"
    stamps = [row[key] for row in test_context.results]
    assert stamps == sorted(stamps)


@then("the results should be in descending time order")
def results_descending(test_context: BDDTestContext):
    stamps = [row["timestamp_ns"] for row in test_context.results]
    assert stamps == sorted(stamps, reverse=True)


@then(parsers.parse('every result should have {field} "{value}"'))
def every_result_has(test_context: BDDTestContext, field: str, value: str):
    assert test_context.results
    assert all(str(row[field]) == value for row in test_context.results)


@then(parsers.parse('the sessions should be listed as "{order}"'))
def sessions_listed(test_context: BDDTestContext, order: str):
    expected = [name.strip() for name in order.split(",")]
    assert [row["session_id"] for row in test_context.results] == expected


@then("the statistics should be:")
def statistics_are(test_context: BDDTestContext, datatable):
    assert test_context.stats is not None
    for field, expected in parse_datatable(datatable).items():
        actual = test_context.stats[field]
        assert actual == int(expected), f"{field} = {actual!r}"


@then("the average conversation duration should be positive")
def average_duration_positive(test_context: BDDTestContext):
    assert test_context.stats["avg_duration_ms"] > 0
    assert test_context.stats["min_duration_ms"] <= test_context.stats["max_duration_ms"]
