"""Ordering entries and their normalization for a page request."""

from collections.abc import Callable, Mapping, Sequence
from dataclasses import dataclass, replace
from typing import Any

from sqlalchemy.orm import QueryableAttribute
from sqlalchemy.sql.elements import ColumnElement

from relay_pagination.api.schemas.connection import PaginationArgs
from relay_pagination.core.errors import InvalidOrderByError, InvalidPaginationArgsError
from relay_pagination.domain.enums import OrderByDirection

ValueExtractor = Callable[[Any], Any]


@dataclass(frozen=True)
class OrderByEntry:
    """One sort key.

    Attributes:
        column_name: Column to sort on. Either a (possibly qualified) name such
            as ``"users.created_at"`` or a SQLAlchemy column/ORM attribute.
        direction: ASC or DESC
        extract: Reads this key's comparison value off a result row. Defaults
            to a lookup by the column key (unqualified name suffix).
    """

    column_name: str | ColumnElement[Any] | QueryableAttribute[Any]
    direction: OrderByDirection = OrderByDirection.ASC
    extract: ValueExtractor | None = None

    @property
    def key(self) -> str:
        """Unqualified column key used to read values off rows."""
        if isinstance(self.column_name, str):
            return self.column_name.rsplit(".", 1)[-1]
        key = getattr(self.column_name, "key", None)
        if not key:
            raise InvalidOrderByError(
                "Ordering column has no key; pass an explicit `extract` function",
                details={"column": str(self.column_name)},
            )
        return key

    def value_from(self, row: Any) -> Any:
        """Comparison value of this key for `row`."""
        if self.extract is not None:
            return self.extract(row)
        return read_row_key(row, self.key)


OrderBy = Sequence[OrderByEntry]


def read_row_key(row: Any, key: str) -> Any:
    """Read `key` from a mapping, a SQLAlchemy Row or an ORM entity."""
    if isinstance(row, Mapping):
        return row[key]
    mapping = getattr(row, "_mapping", None)
    if mapping is not None:
        return mapping[key]
    return getattr(row, key)


def is_forward_pagination_args(pagination_args: PaginationArgs) -> bool:
    first = getattr(pagination_args, "first", None)
    return isinstance(first, int) and not isinstance(first, bool)


def is_backward_pagination_args(pagination_args: PaginationArgs) -> bool:
    if is_forward_pagination_args(pagination_args):
        return False
    last = getattr(pagination_args, "last", None)
    return isinstance(last, int) and not isinstance(last, bool)


def flip_order_by_direction(order_by_entry: OrderByEntry) -> OrderByEntry:
    return replace(order_by_entry, direction=order_by_entry.direction.flipped())


def get_order_by(naive_order_by: OrderBy, pagination_args: PaginationArgs) -> list[OrderByEntry]:
    """Ordering actually applied to the query.

    Backward pagination flips every direction so that seeking forward from the
    cursor in query order yields the rows just before it in logical order.
    """
    if not naive_order_by:
        raise InvalidOrderByError("Ordering must contain at least one entry")

    if is_backward_pagination_args(pagination_args):
        return [flip_order_by_direction(entry) for entry in naive_order_by]
    return list(naive_order_by)


def get_limit(pagination_args: PaginationArgs) -> int:
    """Requested count plus one lookahead row."""
    if is_forward_pagination_args(pagination_args):
        quantity = pagination_args.first
    elif is_backward_pagination_args(pagination_args):
        quantity = pagination_args.last
    else:
        raise InvalidPaginationArgsError("Pagination arguments need a `first` or `last` count")

    return quantity + 1


def get_cursor(pagination_args: PaginationArgs) -> str | None:
    """The active cursor: `after` for forward pages, `before` for backward ones."""
    if is_forward_pagination_args(pagination_args):
        return pagination_args.after
    return pagination_args.before


def normalize(
    order_by: OrderBy, pagination_args: PaginationArgs
) -> tuple[list[OrderByEntry], int]:
    """Return (effective ordering, limit) for a page request."""
    return get_order_by(order_by, pagination_args), get_limit(pagination_args)
