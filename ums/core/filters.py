"""Composable query filters.

Listing endpoints take many optional parameters. Rather than branching on
each one inline, a ``FilterSpec`` collects the predicates that apply and
ANDs them onto a query in one go::

    spec = (
        FilterSpec()
        .where(Enrollment.course_id == course_id)
        .when(status, lambda v: Enrollment.status == v)
        .when(search, lambda v: User.full_name.ilike(f"%{v}%"))
    )
    query = spec.apply(db.query(Enrollment).join(User))
"""

from typing import Any, Callable, List

from sqlalchemy import and_, true
from sqlalchemy.orm import Query


def _present(value: Any) -> bool:
    if value is None:
        return False
    if isinstance(value, str):
        return value.strip() != ""
    return True


class FilterSpec:
    """A chain of predicates AND-ed together."""

    def __init__(self):
        self._clauses: List[Any] = []

    def where(self, clause) -> "FilterSpec":
        """Add an unconditional predicate."""
        self._clauses.append(clause)
        return self

    def when(self, value: Any, factory: Callable[[Any], Any]) -> "FilterSpec":
        """Add ``factory(value)`` only if ``value`` was supplied."""
        if _present(value):
            if isinstance(value, str):
                value = value.strip()
            self._clauses.append(factory(value))
        return self

    def __and__(self, other: "FilterSpec") -> "FilterSpec":
        combined = FilterSpec()
        combined._clauses = self._clauses + other._clauses
        return combined

    def __len__(self) -> int:
        return len(self._clauses)

    def clause(self):
        """The combined SQL expression (``TRUE`` when empty)."""
        if not self._clauses:
            return true()
        return and_(*self._clauses)

    def apply(self, query: Query) -> Query:
        if not self._clauses:
            return query
        return query.filter(self.clause())
