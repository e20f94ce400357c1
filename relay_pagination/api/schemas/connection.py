"""Relay cursor connection schemas.

Shapes follow the Relay Cursor Connections contract. Field names are
snake_case in Python and serialise to the Relay camelCase names with
``model_dump(by_alias=True)``.
"""

from typing import Any

from pydantic import BaseModel, ConfigDict, Field, NonNegativeInt
from pydantic.alias_generators import to_camel

from relay_pagination.core.config import settings
from relay_pagination.core.errors import InvalidPaginationArgsError
from relay_pagination.domain.enums import PaginationDirection

Cursor = str


class _RelayModel(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        arbitrary_types_allowed=True,
        frozen=True,
    )


class CursorData(BaseModel):
    """Decoded cursor payload, positionally aligned with the ordering it was built from."""

    order: list[Any]


class ForwardPaginationArgs(_RelayModel):
    """`first` rows after the optional `after` cursor."""

    first: NonNegativeInt
    after: Cursor | None = None

    @property
    def direction(self) -> PaginationDirection:
        return PaginationDirection.FORWARD


class BackwardPaginationArgs(_RelayModel):
    """`last` rows before the optional `before` cursor."""

    last: NonNegativeInt
    before: Cursor | None = None

    @property
    def direction(self) -> PaginationDirection:
        return PaginationDirection.BACKWARD


PaginationArgs = ForwardPaginationArgs | BackwardPaginationArgs


class RelayPaginationArgs(_RelayModel):
    """Raw Relay arguments as received by a transport layer.

    Exactly one of `first`/`last` must be set. Use `to_pagination_args()` to
    obtain the discriminated `PaginationArgs` the pagination core accepts.
    """

    first: int | None = None
    after: Cursor | None = None
    last: int | None = None
    before: Cursor | None = None

    def to_pagination_args(self, max_page_size: int | None = None) -> PaginationArgs:
        """Validate the argument combination and pick the active direction.

        Args:
            max_page_size: Largest accepted count (default: settings.pagination_max_page_size)

        Returns:
            ForwardPaginationArgs or BackwardPaginationArgs

        Raises:
            InvalidPaginationArgsError: If the arguments do not describe exactly one direction
        """
        limit = max_page_size if max_page_size is not None else settings.pagination_max_page_size
        details = {"first": self.first, "last": self.last}

        if self.first is not None and self.last is not None:
            raise InvalidPaginationArgsError(
                "Passing both `first` and `last` is not supported", details=details
            )
        if self.first is None and self.last is None:
            raise InvalidPaginationArgsError(
                "One of `first` or `last` must be provided", details=details
            )

        count = self.first if self.first is not None else self.last
        if count < 0:
            raise InvalidPaginationArgsError(
                "Page size must be a non-negative integer", details=details
            )
        if count > limit:
            raise InvalidPaginationArgsError(
                f"Page size must not exceed {limit}", details={**details, "max": limit}
            )

        if self.first is not None:
            if self.before is not None:
                raise InvalidPaginationArgsError("`before` cannot be combined with `first`")
            return ForwardPaginationArgs(first=self.first, after=self.after)

        if self.after is not None:
            raise InvalidPaginationArgsError("`after` cannot be combined with `last`")
        return BackwardPaginationArgs(last=self.last, before=self.before)


class PageInfo(_RelayModel):
    """Pagination metadata for one connection."""

    start_cursor: Cursor | None = None
    end_cursor: Cursor | None = None
    has_next_page: bool
    has_previous_page: bool


class Edge[T](_RelayModel):
    """One node with the cursor that points at it."""

    node: T
    cursor: Cursor


class Connection[T](_RelayModel):
    """A page of nodes plus pagination metadata and the unpaginated total."""

    edges: list[Edge[T]] = Field(default_factory=list)
    page_info: PageInfo
    total_count: NonNegativeInt
