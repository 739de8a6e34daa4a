"""Compose filtered read queries from typed predicates.

Every value is bound as a parameter. LIKE patterns carry their `%`
wildcards inside the bound value, never in the statement text.
"""
from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import List, Optional, Sequence, Tuple, Union

OPERATORS = ("=", ">=", "<=", "LIKE")
LIKE_ESCAPE = "\\"

_FIELD_RE = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*(\.[A-Za-z_][A-Za-z0-9_]*)?$")
_ORDER_RE = re.compile(r"^[A-Za-z_][A-Za-z0-9_.]*( (ASC|DESC))?$", re.IGNORECASE)


def escape_like(text: str) -> str:
    """Escape LIKE metacharacters so the text only matches itself."""
    return (
        text.replace(LIKE_ESCAPE, LIKE_ESCAPE * 2)
        .replace("%", LIKE_ESCAPE + "%")
        .replace("_", LIKE_ESCAPE + "_")
    )


def contains(text: str) -> str:
    """Pattern matching any value that contains `text`."""
    return f"%{escape_like(text)}%"


@dataclass(frozen=True)
class Predicate:
    field: str
    op: str
    value: object

    def __post_init__(self) -> None:
        if not _FIELD_RE.match(self.field):
            raise ValueError(f"Invalid field name: {self.field!r}")
        if self.op not in OPERATORS:
            raise ValueError(f"Unsupported operator: {self.op!r}")

    def compile(self) -> Tuple[str, List[object]]:
        if self.op == "LIKE":
            return f"{self.field} LIKE ? ESCAPE '{LIKE_ESCAPE}'", [self.value]
        return f"{self.field} {self.op} ?", [self.value]


@dataclass(frozen=True)
class AnyOf:
    """Predicates joined with OR."""

    predicates: Tuple[Predicate, ...]

    def compile(self) -> Tuple[str, List[object]]:
        clauses: List[str] = []
        params: List[object] = []
        for predicate in self.predicates:
            clause, values = predicate.compile()
            clauses.append(clause)
            params.extend(values)
        return "(" + " OR ".join(clauses) + ")", params


Condition = Union[Predicate, AnyOf]


@dataclass
class QueryBuilder:
    """Accumulates conditions, ordering and paging around a SELECT."""

    select: str
    conditions: List[Condition] = field(default_factory=list)
    ordering: List[str] = field(default_factory=list)
    limit: Optional[int] = None
    offset: Optional[int] = None

    def where(self, field_name: str, op: str, value: object) -> "QueryBuilder":
        """Add a predicate; a None value means no constraint."""
        if value is not None:
            self.conditions.append(Predicate(field_name, op, value))
        return self

    def where_any(self, predicates: Sequence[Predicate]) -> "QueryBuilder":
        if predicates:
            self.conditions.append(AnyOf(tuple(predicates)))
        return self

    def order_by(self, *terms: str) -> "QueryBuilder":
        for term in terms:
            if not _ORDER_RE.match(term):
                raise ValueError(f"Invalid ORDER BY term: {term!r}")
            self.ordering.append(term)
        return self

    def paginate(self, limit: int, offset: int = 0) -> "QueryBuilder":
        self.limit = int(limit)
        self.offset = int(offset)
        return self

    def build(self) -> Tuple[str, List[object]]:
        parts = [self.select.strip()]
        params: List[object] = []
        if self.conditions:
            clauses: List[str] = []
            for condition in self.conditions:
                clause, values = condition.compile()
                clauses.append(clause)
                params.extend(values)
            parts.append("WHERE " + " AND ".join(clauses))
        if self.ordering:
            parts.append("ORDER BY " + ", ".join(self.ordering))
        if self.limit is not None:
            parts.append("LIMIT ? OFFSET ?")
            params.extend([self.limit, self.offset or 0])
        return " ".join(parts), params
