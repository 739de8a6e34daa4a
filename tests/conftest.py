"""Pytest configuration and fixtures for BDD tests."""
from __future__ import annotations

import sys
from pathlib import Path

import pytest
from pytest_bdd import given

# Add parent directory to path for imports
sys.path.insert(0, str(Path(__file__).resolve().parents[1]))

from capture_tool.database import connect_db, ensure_schema

NULL_MARKER = "<null>"


class BDDTestContext:
    """Holds test state across steps."""

    def __init__(self):
        self.db_path: Path | None = None
        self.conn = None
        self.clock_ns: int = 1_000_000_000
        self.frames: list[int] = []
        self.requests: list = []
        self.last_frame: int | None = None
        self.last_response_frame: int | None = None
        self.results: list = []
        self.stats: dict | None = None

    def next_ns(self, step_ns: int = 1_000_000) -> int:
        """Advance the fake capture clock so packets get distinct, ordered timestamps."""
        self.clock_ns += step_ns
        return self.clock_ns

    def remember(self, frame_number: int) -> None:
        self.frames.append(frame_number)
        self.last_frame = frame_number


@pytest.fixture
def test_context(tmp_path: Path):
    """Create a fresh test context with temporary database."""
    ctx = BDDTestContext()
    ctx.db_path = tmp_path / "capture.sqlite"
    ctx.conn = connect_db(str(ctx.db_path))
    ensure_schema(ctx.conn)

    yield ctx

    if ctx.conn:
        ctx.conn.close()


def parse_datatable(datatable: list[list[str]]) -> dict[str, str]:
    """Convert a two-column field/value datatable to a dict."""
    if not datatable or len(datatable) == 1:
        return {}
    headers = datatable[0]
    field_idx = headers.index("field")
    value_idx = headers.index("value")
    return {row[field_idx]: row[value_idx] for row in datatable[1:]}


def parse_datatable_rows(datatable: list[list[str]]) -> list[dict[str, str]]:
    """Convert pytest-bdd 8.x datatable to list of dicts."""
    if not datatable:
        return []
    headers = datatable[0]
    return [dict(zip(headers, row)) for row in datatable[1:]]


def cell(value: str | None) -> str | None:
    """Empty cells and the <null> marker both mean None."""
    if value is None or value == "" or value == NULL_MARKER:
        return None
    return value


@given("a new capture database")
def given_new_capture_database(test_context: BDDTestContext):
    """Database is already created by fixture."""
    pass
