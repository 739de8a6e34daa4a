"""Common step definitions: capturing traffic and inspecting packets."""
from __future__ import annotations

import json

from pytest_bdd import given, parsers, then, when

from conftest import NULL_MARKER, BDDTestContext, cell, parse_datatable, parse_datatable_rows


def rpc_request_body(rpc_method: str, rpc_id: str) -> dict:
    return {"jsonrpc": "2.0", "id": json.loads(rpc_id), "method": rpc_method}


def rpc_response_body(rpc_id: str) -> dict:
    return {"jsonrpc": "2.0", "id": json.loads(rpc_id), "result": {}}


def session_headers(session_id: str | None) -> dict:
    headers = {"content-type": "application/json"}
    if session_id:
        headers["mcp-session-id"] = session_id
    return headers


def capture_request(ctx: BDDTestContext, method="POST", url="/mcp", headers=None, body=None,
                    timestamp_ns=None, **options):
    from capture_tool.capture import log_request

    captured = log_request(
        ctx.conn,
        method,
        url,
        headers=headers if headers is not None else session_headers(None),
        body=body,
        timestamp_ns=timestamp_ns if timestamp_ns is not None else ctx.next_ns(),
        **options,
    )
    ctx.requests.append(captured)
    ctx.remember(captured.frame_number)
    return captured


def capture_response(ctx: BDDTestContext, status_code: int, headers=None, body=None,
                     timestamp_ns=None, **options):
    from capture_tool.capture import log_response

    frame_number = log_response(
        ctx.conn,
        status_code,
        headers=headers if headers is not None else session_headers(None),
        body=body,
        timestamp_ns=timestamp_ns if timestamp_ns is not None else ctx.next_ns(),
        **options,
    )
    ctx.last_response_frame = frame_number
    ctx.remember(frame_number)
    return frame_number


@given("the following traffic has been captured:")
def given_traffic_captured(test_context: BDDTestContext, datatable):
    """Capture each table row as a request or response packet."""
    for row in parse_datatable_rows(datatable):
        headers = session_headers(cell(row.get("session")))
        if cell(row.get("host")):
            headers["host"] = row["host"]
        body = cell(row.get("body"))
        if row["direction"] == "request":
            capture_request(test_context, cell(row.get("method")), cell(row.get("url")), headers, body)
        else:
            capture_response(test_context, int(row["status"]), headers, body)


@when(parsers.parse('a "{rpc_method}" request with id {rpc_id} is captured in session "{session_id}"'))
def when_rpc_request_in_session(test_context: BDDTestContext, rpc_method: str, rpc_id: str, session_id: str):
    capture_request(test_context, headers=session_headers(session_id), body=rpc_request_body(rpc_method, rpc_id))


@when(parsers.parse('a "{rpc_method}" request with id {rpc_id} is captured in session "{session_id}" at {ts:d}'))
def when_rpc_request_in_session_at(test_context: BDDTestContext, rpc_method: str, rpc_id: str,
                                   session_id: str, ts: int):
    capture_request(
        test_context,
        headers=session_headers(session_id),
        body=rpc_request_body(rpc_method, rpc_id),
        timestamp_ns=ts,
    )


@when(parsers.parse('a "{http_method}" request without a JSON-RPC id is captured'))
def when_plain_request(test_context: BDDTestContext, http_method: str):
    capture_request(test_context, method=http_method, url="/health")


@when(parsers.parse('a "{http_method}" request without a JSON-RPC id is captured in session "{session_id}"'))
def when_plain_request_in_session(test_context: BDDTestContext, http_method: str, session_id: str):
    capture_request(test_context, method=http_method, url="/mcp", headers=session_headers(session_id),
                    body={"jsonrpc": "2.0", "method": "notifications/initialized"})


@when(parsers.parse('I capture a "{http_method}" request to "{url}" with body "{body}"'))
def when_request_with_text_body(test_context: BDDTestContext, http_method: str, url: str, body: str):
    capture_request(test_context, method=http_method, url=url, body=body)


@when("I capture a request with:")
def when_request_with_table(test_context: BDDTestContext, datatable):
    data = parse_datatable(datatable)
    headers = session_headers(cell(data.get("session")))
    if cell(data.get("host")):
        headers["host"] = data["host"]
    capture_request(
        test_context,
        method=data.get("method", "POST"),
        url=data.get("url", "/mcp"),
        headers=headers,
        body=cell(data.get("body")),
        user_agent=cell(data.get("user_agent")),
        remote_address=cell(data.get("remote_address")),
    )


@when(parsers.parse("a response with status {status:d} and id {rpc_id} is captured in session \"{session_id}\""))
def when_response_in_session(test_context: BDDTestContext, status: int, rpc_id: str, session_id: str):
    capture_response(test_context, status, headers=session_headers(session_id), body=rpc_response_body(rpc_id))


@when(parsers.parse("a response with status {status:d} and id {rpc_id} is captured in session \"{session_id}\" at {ts:d}"))
def when_response_in_session_at(test_context: BDDTestContext, status: int, rpc_id: str, session_id: str, ts: int):
    capture_response(
        test_context,
        status,
        headers=session_headers(session_id),
        body=rpc_response_body(rpc_id),
        timestamp_ns=ts,
    )


@when(parsers.parse("a response with status {status:d} and no body is captured"))
def when_response_without_body(test_context: BDDTestContext, status: int):
    capture_response(test_context, status)


@when(parsers.parse('a response with status {status:d} and no body is captured in session "{session_id}"'))
def when_response_without_body_in_session(test_context: BDDTestContext, status: int, session_id: str):
    capture_response(test_context, status, headers=session_headers(session_id))


@when(parsers.parse("a response with status {status:d} and body '{body}' is captured"))
def when_response_with_text_body(test_context: BDDTestContext, status: int, body: str):
    capture_response(test_context, status, body=body)


@then("the captured frame numbers should be strictly increasing")
def frames_strictly_increasing(test_context: BDDTestContext):
    frames = test_context.frames
    assert len(frames) > 1
    assert all(later > earlier for earlier, later in zip(frames, frames[1:]))
    assert len(set(frames)) == len(frames)


@then("the last packet should have:")
def last_packet_has(test_context: BDDTestContext, datatable):
    row = test_context.conn.execute(
        "SELECT * FROM packets WHERE frame_number = ?",
        (test_context.last_frame,),
    ).fetchone()
    assert row is not None
    for field, expected in parse_datatable(datatable).items():
        actual = row[field]
        if expected == NULL_MARKER:
            assert actual is None, f"{field} = {actual!r}"
        else:
            assert str(actual) == expected, f"{field} = {actual!r}"


@then("the last packet length should equal its headers plus body size")
def last_packet_length(test_context: BDDTestContext):
    row = test_context.conn.execute(
        "SELECT length, headers_json, body_raw FROM packets WHERE frame_number = ?",
        (test_context.last_frame,),
    ).fetchone()
    expected = len(row["headers_json"].encode("utf-8")) + len(row["body_raw"].encode("utf-8"))
    assert row["length"] == expected


@then(parsers.parse("there should be {count:d} conversations"))
def conversation_count(test_context: BDDTestContext, count: int):
    row = test_context.conn.execute("SELECT COUNT(*) AS total FROM conversations").fetchone()
    assert row["total"] == count


@then(parsers.parse("there should be {count:d} sessions"))
def session_count(test_context: BDDTestContext, count: int):
    row = test_context.conn.execute("SELECT COUNT(*) AS total FROM sessions").fetchone()
    assert row["total"] == count
