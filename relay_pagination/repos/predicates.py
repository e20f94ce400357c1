"""Keyset ("seek") predicate for composite orderings.

The row-value comparison ``(c0, c1, ..., ck-1) > (v0, v1, ..., vk-1)`` is
expanded into one disjunct per ordering prefix::

    (c0 > v0)
    OR (c0 = v0 AND c1 > v1)
    OR (c0 = v0 AND c1 = v1 AND c2 > v2)
    ...

with ``>`` replaced by ``<`` on every DESC column, which also covers mixed
directions. The tree is built without reference to any query builder; `to_sql`
compiles it for SQLAlchemy and `matches` evaluates it in memory.

Ordering columns are expected to be NOT NULL: a NULL compares as unknown in
SQL and the row falls out of every page after the first.
"""

import operator
from collections.abc import Sequence
from dataclasses import dataclass
from typing import Any

from sqlalchemy import Enum as SAEnum
from sqlalchemy import and_, or_
from sqlalchemy.sql.elements import ColumnElement

from relay_pagination.api.schemas.connection import CursorData
from relay_pagination.core.errors import InvalidCursorError
from relay_pagination.domain.enums import ComparisonOperator, OrderByDirection
from relay_pagination.repos.cursors import EnumMember
from relay_pagination.repos.ordering import OrderBy

_PYTHON_OPERATORS = {
    ComparisonOperator.EQUAL: operator.eq,
    ComparisonOperator.GREATER_THAN: operator.gt,
    ComparisonOperator.LESS_THAN: operator.lt,
}


@dataclass(frozen=True)
class Comparison:
    """`ordering[index] <operator> value`."""

    index: int
    operator: ComparisonOperator
    value: Any


@dataclass(frozen=True)
class And:
    clauses: tuple[Comparison, ...]


@dataclass(frozen=True)
class Or:
    clauses: tuple[And, ...]


def get_comparison_operator(order_by: OrderBy, entry_index: int) -> ComparisonOperator:
    """Operator for `entry_index` within the ordering prefix `order_by`.

    Every entry but the last of a prefix is pinned with equality; the last one
    seeks past the cursor in its own direction.
    """
    if len(order_by) - 1 > entry_index:
        return ComparisonOperator.EQUAL

    if order_by[entry_index].direction == OrderByDirection.ASC:
        return ComparisonOperator.GREATER_THAN

    return ComparisonOperator.LESS_THAN


def build_keyset_predicate(order_by: OrderBy, cursor_data: CursorData | None) -> Or | None:
    """Build the "rows strictly after this cursor" predicate.

    Args:
        order_by: Effective (possibly flipped) ordering
        cursor_data: Decoded cursor, or None for the first page

    Returns:
        Disjunction with one conjunctive clause per ordering prefix, or None
        when there is no cursor

    Raises:
        InvalidCursorError: If the cursor was built for an ordering of a different length
    """
    if cursor_data is None:
        return None

    values = cursor_data.order
    if len(values) != len(order_by):
        raise InvalidCursorError(
            "Invalid cursor: it does not match the requested ordering",
            details={"expected_values": len(order_by), "actual_values": len(values)},
        )

    clauses = []
    for prefix_length in range(1, len(order_by) + 1):
        prefix = order_by[:prefix_length]
        clauses.append(
            And(
                tuple(
                    Comparison(index, get_comparison_operator(prefix, index), values[index])
                    for index in range(prefix_length)
                )
            )
        )

    return Or(tuple(clauses))


def _bind_value(column: ColumnElement[Any], value: Any) -> Any:
    """Turn a decoded enum member back into what `column` binds.

    SQLAlchemy `Enum` columns with an enum class store member names, so the
    member is looked up by name; any other column gets the member value.
    """
    if not isinstance(value, EnumMember):
        return value

    column_type = getattr(getattr(column, "expression", column), "type", None)
    enum_class = column_type.enum_class if isinstance(column_type, SAEnum) else None
    if enum_class is None:
        return value.value
    try:
        return enum_class[value.name]
    except KeyError as e:
        raise InvalidCursorError(
            f"Invalid cursor: {enum_class.__name__} has no member {value.name!r}",
            details={"enum": enum_class.__name__},
        ) from e


def _compare_sql(column: ColumnElement[Any], comparison: Comparison) -> ColumnElement[bool]:
    value = _bind_value(column, comparison.value)
    if comparison.operator == ComparisonOperator.EQUAL:
        return column == value
    if comparison.operator == ComparisonOperator.GREATER_THAN:
        return column > value
    return column < value


def to_sql(predicate: Or, columns: Sequence[ColumnElement[Any]]) -> ColumnElement[bool]:
    """Compile the predicate against `columns` (aligned with the ordering).

    The result is self-grouped so it never mixes with OR conditions already
    present in the caller's WHERE clause.
    """
    return or_(
        *(
            and_(*(_compare_sql(columns[c.index], c) for c in clause.clauses))
            for clause in predicate.clauses
        )
    ).self_group()


def matches(predicate: Or | None, values: Sequence[Any]) -> bool:
    """Evaluate the predicate against a row's ordering values in memory."""
    if predicate is None:
        return True
    return any(
        all(_PYTHON_OPERATORS[c.operator](values[c.index], c.value) for c in clause.clauses)
        for clause in predicate.clauses
    )
