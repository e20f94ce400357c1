"""Relay connections from SQLAlchemy select statements.

`make_connection_from_query` is the entry point. It normalizes the ordering
for the requested direction, seeks past the decoded cursor with a keyset
predicate, fetches one lookahead row, counts the unpaginated query and
materializes a `Connection`.

All functions are async where they touch the database - use AsyncSession
from SQLAlchemy.
"""

import asyncio
import logging
from collections.abc import Callable, Sequence
from dataclasses import dataclass
from typing import Any

from sqlalchemy import Select, func, literal_column, select
from sqlalchemy.engine import Result
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncConnection, AsyncSession, async_sessionmaker
from sqlalchemy.sql.elements import ColumnElement
from sqlalchemy.sql.selectable import FromClause, Join

from relay_pagination.api.schemas.connection import (
    Connection,
    Cursor,
    CursorData,
    Edge,
    PageInfo,
    PaginationArgs,
)
from relay_pagination.core.db import get_async_sessionmaker
from relay_pagination.core.errors import QueryExecutionError
from relay_pagination.core.observability import db_metrics, metrics
from relay_pagination.domain.enums import OrderByDirection
from relay_pagination.repos.cursors import decode_cursor, encode_cursor
from relay_pagination.repos.ordering import (
    OrderBy,
    OrderByEntry,
    get_cursor,
    is_backward_pagination_args,
    is_forward_pagination_args,
    normalize,
)
from relay_pagination.repos.predicates import build_keyset_predicate, to_sql

logger = logging.getLogger(__name__)

__all__ = [
    "DBOptions",
    "MakeConnectionFromQueryArgs",
    "make_connection_from_query",
    "resolve_column",
    "add_where_clauses_for_pagination",
    "add_order_by_clauses_for_pagination",
    "assemble",
    "make_count_query",
    "make_cursor",
    "make_edges",
    "make_page_info",
    "materialize",
]


@dataclass(frozen=True)
class DBOptions:
    """Execution context for one pagination call.

    Attributes:
        transaction: Ambient session or connection. When set, the page and
            count queries both run on it and read the same snapshot.
        sessionmaker: Session factory used when no transaction is given.
            Defaults to the library's configured sessionmaker.
    """

    transaction: AsyncSession | AsyncConnection | None = None
    sessionmaker: async_sessionmaker[AsyncSession] | None = None


@dataclass(frozen=True)
class MakeConnectionFromQueryArgs:
    order_by: OrderBy
    pagination_args: PaginationArgs


# ============================================================================
# Query Assembly
# ============================================================================


def _iter_tables(from_clause: FromClause):
    if isinstance(from_clause, Join):
        yield from _iter_tables(from_clause.left)
        yield from _iter_tables(from_clause.right)
    else:
        yield from_clause


def resolve_column(query: Select, entry: OrderByEntry) -> ColumnElement[Any]:
    """Column expression for an ordering entry.

    String names are looked up among the statement's selected columns
    (unqualified names) and its FROM tables (qualified or not), so the
    rendered identifier is properly quoted. Unknown names fall back to a
    literal column.
    """
    name = entry.column_name
    if not isinstance(name, str):
        return name

    table_name, _, column_key = name.rpartition(".")

    if not table_name and column_key in query.selected_columns:
        return query.selected_columns[column_key]

    for from_clause in query.get_final_froms():
        for table in _iter_tables(from_clause):
            if table_name and table_name not in (
                getattr(table, "name", None),
                getattr(table, "fullname", None),
            ):
                continue
            if column_key in table.c:
                return table.c[column_key]

    return literal_column(name)


def add_where_clauses_for_pagination(
    query: Select, order_by: OrderBy, pagination_args: PaginationArgs
) -> Select:
    """Seek past the active cursor, if any."""
    cursor = get_cursor(pagination_args)
    if cursor is None:
        return query

    predicate = build_keyset_predicate(order_by, decode_cursor(cursor))
    columns = [resolve_column(query, entry) for entry in order_by]
    return query.where(to_sql(predicate, columns))


def add_order_by_clauses_for_pagination(query: Select, order_by: OrderBy) -> Select:
    """Replace any existing ordering with the pagination ordering."""
    clauses = []
    for entry in order_by:
        column = resolve_column(query, entry)
        clauses.append(column.asc() if entry.direction == OrderByDirection.ASC else column.desc())
    return query.order_by(None).order_by(*clauses)


def assemble(
    query: Select, order_by: OrderBy, pagination_args: PaginationArgs, limit: int
) -> Select:
    """Page statement: keyset predicate, pagination ordering, lookahead limit.

    Select statements are immutable, so `query` itself is left untouched and
    remains usable for the total count.

    Raises:
        InvalidCursorError: If the active cursor cannot be decoded or does not fit the ordering
    """
    query = add_where_clauses_for_pagination(query, order_by, pagination_args)
    query = add_order_by_clauses_for_pagination(query, order_by)
    return query.limit(limit)


def make_count_query(query: Select) -> Select:
    """COUNT(*) over the unpaginated query, without its ordering.

    Plain queries have their projection replaced by the count. Grouped,
    DISTINCT or limited queries are counted over a subquery so the total
    matches the rows the query returns.
    """
    query = query.order_by(None)
    if (
        query._group_by_clauses
        or query._distinct
        or query._limit_clause is not None
        or query._offset_clause is not None
    ):
        return select(func.count()).select_from(query.subquery())
    return query.with_only_columns(func.count(), maintain_column_froms=True)


# ============================================================================
# Execution
# ============================================================================


def _returns_single_entity(query: Select) -> bool:
    descriptions = query.column_descriptions
    return (
        len(descriptions) == 1
        and descriptions[0]["entity"] is not None
        and descriptions[0]["expr"] is descriptions[0]["entity"]
    )


def _page_rows_reader(query: Select) -> Callable[[Result[Any]], list[Any]]:
    if _returns_single_entity(query):
        return lambda result: list(result.scalars().all())
    return lambda result: list(result.all())


def _count_reader(result: Result[Any]) -> int:
    return int(result.scalar_one())


async def _execute(
    executor: AsyncSession | AsyncConnection,
    query: Select,
    reader: Callable[[Result[Any]], Any],
    operation: str,
) -> Any:
    with db_metrics.track(operation):
        result = await executor.execute(query)
        return reader(result)


async def _execute_in_new_session(
    sessionmaker: async_sessionmaker[AsyncSession],
    query: Select,
    reader: Callable[[Result[Any]], Any],
    operation: str,
) -> Any:
    async with sessionmaker() as session:
        return await _execute(session, query, reader, operation)


async def _fetch(
    page_query: Select, count_query: Select, options: DBOptions
) -> tuple[list[Any], int]:
    """Run the page and count queries; both must succeed."""
    page_reader = _page_rows_reader(page_query)

    if options.transaction is not None:
        # One connection cannot run two statements at once.
        rows = await _execute(options.transaction, page_query, page_reader, "page_rows")
        total_count = await _execute(
            options.transaction, count_query, _count_reader, "total_count"
        )
        return rows, total_count

    sessionmaker = options.sessionmaker or get_async_sessionmaker()
    tasks = [
        asyncio.create_task(
            _execute_in_new_session(sessionmaker, page_query, page_reader, "page_rows")
        ),
        asyncio.create_task(
            _execute_in_new_session(sessionmaker, count_query, _count_reader, "total_count")
        ),
    ]
    try:
        rows, total_count = await asyncio.gather(*tasks)
    except BaseException:
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
        raise
    return rows, total_count


# ============================================================================
# Page Materialization
# ============================================================================


def make_cursor(node: Any, order_by: OrderBy) -> Cursor:
    """Cursor for `node` built from the caller's (unflipped) ordering."""
    return encode_cursor(CursorData(order=[entry.value_from(node) for entry in order_by]))


def are_there_more_rows(rows: Sequence[Any], limit: int) -> bool:
    return len(rows) == limit


def make_edges(rows: Sequence[Any], order_by: OrderBy, limit: int) -> list[Edge[Any]]:
    """Edges for every row but the lookahead one, in query order."""
    page_rows = rows if len(rows) < limit else rows[:-1]
    return [Edge(node=row, cursor=make_cursor(row, order_by)) for row in page_rows]


def get_start_cursor(edges: Sequence[Edge[Any]]) -> Cursor | None:
    if not edges:
        return None
    return edges[0].cursor


def get_end_cursor(edges: Sequence[Edge[Any]]) -> Cursor | None:
    if not edges:
        return None
    return edges[-1].cursor


def make_page_info(
    pagination_args: PaginationArgs,
    rows: Sequence[Any],
    edges: Sequence[Edge[Any]],
    limit: int,
) -> PageInfo:
    """Page info for a fetched page.

    Only the side being paginated towards is checked: forward pages never
    report `has_previous_page` and backward pages never report `has_next_page`.
    """
    has_more = are_there_more_rows(rows, limit)
    return PageInfo(
        start_cursor=get_start_cursor(edges),
        end_cursor=get_end_cursor(edges),
        has_next_page=is_forward_pagination_args(pagination_args) and has_more,
        has_previous_page=is_backward_pagination_args(pagination_args) and has_more,
    )


def materialize(
    rows: Sequence[Any],
    requested_order_by: OrderBy,
    pagination_args: PaginationArgs,
    limit: int,
    total_count: int,
) -> Connection[Any]:
    """Build the connection for fetched rows.

    Backward pages keep the query's physical order, i.e. nearest-to-cursor
    first, which is the reverse of the logical ordering.
    """
    edges = make_edges(rows, requested_order_by, limit)
    page_info = make_page_info(pagination_args, rows, edges, limit)
    return Connection(edges=edges, page_info=page_info, total_count=total_count)


# ============================================================================
# Entry Point
# ============================================================================


async def make_connection_from_query(
    query: Select,
    args: MakeConnectionFromQueryArgs,
    options: DBOptions | None = None,
) -> Connection[Any]:
    """Fetch one Relay page of `query`.

    Args:
        query: Base statement (projection, joins, filters). Any ordering it
            carries is replaced by `args.order_by`.
        args: Ordering (must be unique-key complete) and pagination arguments
        options: Ambient transaction or sessionmaker

    Returns:
        Connection with edges, page info and the unpaginated total count

    Raises:
        InvalidCursorError: If the active cursor cannot be decoded or does not fit the ordering
        InvalidOrderByError: If the ordering is empty
        QueryExecutionError: If the page or count query fails
    """
    options = options or DBOptions()
    pagination_args = args.pagination_args

    order_by, limit = normalize(args.order_by, pagination_args)

    page_query = assemble(query, order_by, pagination_args, limit)
    count_query = make_count_query(query)

    try:
        rows, total_count = await _fetch(page_query, count_query, options)
    except SQLAlchemyError as e:
        logger.error(
            "Pagination query failed",
            extra={"error_type": type(e).__name__, "limit": limit},
            exc_info=True,
        )
        raise QueryExecutionError(
            f"Pagination query failed: {type(e).__name__}",
            details={"error_type": type(e).__name__},
        ) from e

    connection = materialize(rows, args.order_by, pagination_args, limit, total_count)

    direction = pagination_args.direction
    metrics.pages_served_total.labels(direction=direction.value).inc()
    metrics.page_size.labels(direction=direction.value).observe(len(connection.edges))
    logger.debug(
        "Materialized connection",
        extra={
            "direction": direction.value,
            "limit": limit,
            "edges": len(connection.edges),
            "total_count": total_count,
            "has_cursor": get_cursor(pagination_args) is not None,
        },
    )

    return connection
