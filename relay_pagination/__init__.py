"""
Relay-style keyset pagination for SQLAlchemy select statements.

Usage:
    from relay_pagination import (
        DBOptions,
        ForwardPaginationArgs,
        MakeConnectionFromQueryArgs,
        OrderByDirection,
        OrderByEntry,
        make_connection_from_query,
    )

    connection = await make_connection_from_query(
        select(User),
        MakeConnectionFromQueryArgs(
            order_by=[OrderByEntry("users.created_at", OrderByDirection.DESC),
                      OrderByEntry("users.id", OrderByDirection.DESC)],
            pagination_args=ForwardPaginationArgs(first=20, after=cursor),
        ),
        DBOptions(transaction=session),
    )
"""

from relay_pagination.api.schemas.connection import (
    BackwardPaginationArgs,
    Connection,
    Cursor,
    CursorData,
    Edge,
    ForwardPaginationArgs,
    PageInfo,
    PaginationArgs,
    RelayPaginationArgs,
)
from relay_pagination.core.errors import (
    InvalidCursorError,
    InvalidOrderByError,
    InvalidPaginationArgsError,
    QueryExecutionError,
    RelayPaginationError,
)
from relay_pagination.domain.enums import OrderByDirection
from relay_pagination.repos.cursors import EnumMember, decode_cursor, encode_cursor
from relay_pagination.repos.ordering import OrderBy, OrderByEntry
from relay_pagination.repos.pagination import (
    DBOptions,
    MakeConnectionFromQueryArgs,
    make_connection_from_query,
)

__all__ = [
    "BackwardPaginationArgs",
    "Connection",
    "Cursor",
    "CursorData",
    "DBOptions",
    "Edge",
    "EnumMember",
    "ForwardPaginationArgs",
    "InvalidCursorError",
    "InvalidOrderByError",
    "InvalidPaginationArgsError",
    "MakeConnectionFromQueryArgs",
    "OrderBy",
    "OrderByDirection",
    "OrderByEntry",
    "PageInfo",
    "PaginationArgs",
    "QueryExecutionError",
    "RelayPaginationArgs",
    "RelayPaginationError",
    "decode_cursor",
    "encode_cursor",
    "make_connection_from_query",
]
