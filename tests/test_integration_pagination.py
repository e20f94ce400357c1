"""
Integration tests for make_connection_from_query against SQLite (aiosqlite).

Each test gets a fresh database file; pages are fetched through the real
page and count queries, concurrently on two sessions unless a transaction
is passed.
"""

from datetime import datetime, timedelta
from typing import Any

import pytest
from sqlalchemy import func, select

from relay_pagination import (
    BackwardPaginationArgs,
    Connection,
    DBOptions,
    ForwardPaginationArgs,
    InvalidCursorError,
    MakeConnectionFromQueryArgs,
    OrderByDirection,
    OrderByEntry,
    RelayPaginationArgs,
    make_connection_from_query,
)
from relay_pagination.core.observability import metrics
from tests.models import Item, Job, JobStatus, seed_items, seed_jobs

ASC = OrderByDirection.ASC
DESC = OrderByDirection.DESC

BY_ID = [OrderByEntry("items.id", ASC)]


async def _page(session_factory, pagination_args, order_by=BY_ID, query=None) -> Connection[Any]:
    return await make_connection_from_query(
        query if query is not None else select(Item),
        MakeConnectionFromQueryArgs(order_by=order_by, pagination_args=pagination_args),
        DBOptions(sessionmaker=session_factory),
    )


def _ids(connection: Connection[Any]) -> list[int]:
    return [edge.node.id for edge in connection.edges]


async def _walk_forward(session_factory, first, order_by, query=None) -> list[Connection[Any]]:
    pages = []
    after = None
    while True:
        args = ForwardPaginationArgs(first=first, after=after)
        page = await _page(session_factory, args, order_by, query)
        pages.append(page)
        if not page.page_info.has_next_page:
            return pages
        after = page.page_info.end_cursor


async def _walk_backward(session_factory, last, order_by, query=None) -> list[Connection[Any]]:
    pages = []
    before = None
    while True:
        args = BackwardPaginationArgs(last=last, before=before)
        page = await _page(session_factory, args, order_by, query)
        pages.append(page)
        if not page.page_info.has_previous_page:
            return pages
        before = page.page_info.end_cursor


# =============================================================================
# Forward pagination
# =============================================================================


class TestForwardPagination:
    @pytest.mark.anyio
    async def test_first_page(self, session_factory, seeded_items):
        page = await _page(session_factory, ForwardPaginationArgs(first=2))

        assert _ids(page) == [1, 2]
        assert [edge.node.name for edge in page.edges] == ["a", "b"]
        assert page.page_info.has_next_page is True
        assert page.page_info.has_previous_page is False
        assert page.page_info.start_cursor == page.edges[0].cursor
        assert page.page_info.end_cursor == page.edges[1].cursor
        assert page.total_count == 5

    @pytest.mark.anyio
    async def test_following_pages(self, session_factory, seeded_items):
        first = await _page(session_factory, ForwardPaginationArgs(first=2))
        second = await _page(
            session_factory, ForwardPaginationArgs(first=2, after=first.page_info.end_cursor)
        )
        third = await _page(
            session_factory, ForwardPaginationArgs(first=2, after=second.page_info.end_cursor)
        )

        assert _ids(second) == [3, 4]
        assert second.page_info.has_next_page is True
        assert _ids(third) == [5]
        assert third.page_info.has_next_page is False
        assert third.total_count == 5

    @pytest.mark.anyio
    async def test_exact_fit_has_no_next_page(self, session_factory, seeded_items):
        page = await _page(session_factory, ForwardPaginationArgs(first=5))

        assert _ids(page) == [1, 2, 3, 4, 5]
        assert page.page_info.has_next_page is False

    @pytest.mark.anyio
    async def test_one_short_of_total_has_next_page(self, session_factory, seeded_items):
        page = await _page(session_factory, ForwardPaginationArgs(first=4))

        assert len(page.edges) == 4
        assert page.page_info.has_next_page is True

    @pytest.mark.anyio
    async def test_zero_count_only_looks_ahead(self, session_factory, seeded_items):
        page = await _page(session_factory, ForwardPaginationArgs(first=0))

        assert page.edges == []
        assert page.page_info.start_cursor is None
        assert page.page_info.has_next_page is True
        assert page.total_count == 5

    @pytest.mark.anyio
    async def test_empty_table(self, session_factory):
        page = await _page(session_factory, ForwardPaginationArgs(first=3))

        assert page.edges == []
        assert page.page_info.start_cursor is None
        assert page.page_info.end_cursor is None
        assert page.page_info.has_next_page is False
        assert page.page_info.has_previous_page is False
        assert page.total_count == 0

    @pytest.mark.anyio
    async def test_cursor_past_the_end(self, session_factory, seeded_items):
        last = await _page(session_factory, ForwardPaginationArgs(first=5))

        page = await _page(
            session_factory, ForwardPaginationArgs(first=2, after=last.page_info.end_cursor)
        )

        assert page.edges == []
        assert page.page_info.has_next_page is False
        assert page.total_count == 5

    @pytest.mark.anyio
    async def test_caller_ordering_is_replaced(self, session_factory, seeded_items):
        query = select(Item).order_by(Item.name.desc())

        page = await _page(session_factory, ForwardPaginationArgs(first=3), query=query)

        assert _ids(page) == [1, 2, 3]


# =============================================================================
# Backward pagination
# =============================================================================


class TestBackwardPagination:
    @pytest.mark.anyio
    async def test_last_page_keeps_physical_order(self, session_factory, seeded_items):
        page = await _page(session_factory, BackwardPaginationArgs(last=2))

        assert _ids(page) == [5, 4]
        assert page.page_info.has_previous_page is True
        assert page.page_info.has_next_page is False
        assert page.total_count == 5

    @pytest.mark.anyio
    async def test_walk_back_to_the_start(self, session_factory, seeded_items):
        pages = await _walk_backward(session_factory, 2, BY_ID)

        assert [_ids(page) for page in pages] == [[5, 4], [3, 2], [1]]
        assert pages[-1].page_info.has_previous_page is False

    @pytest.mark.anyio
    async def test_before_a_forward_cursor(self, session_factory, seeded_items):
        forward = await _page(session_factory, ForwardPaginationArgs(first=4))

        page = await _page(
            session_factory, BackwardPaginationArgs(last=10, before=forward.page_info.end_cursor)
        )

        assert _ids(page) == [3, 2, 1]
        assert page.page_info.has_previous_page is False

    @pytest.mark.anyio
    async def test_back_then_forward_returns_to_the_same_row(self, session_factory, seeded_items):
        anchor = await _page(session_factory, ForwardPaginationArgs(first=3))

        back = await _page(
            session_factory, BackwardPaginationArgs(last=2, before=anchor.page_info.end_cursor)
        )
        forward = await _page(
            session_factory, ForwardPaginationArgs(first=1, after=back.page_info.start_cursor)
        )

        assert _ids(back) == [2, 1]
        assert _ids(forward) == [3]

    @pytest.mark.anyio
    async def test_backward_walk_mirrors_forward_walk(self, session_factory):
        await seed_items(
            session_factory,
            [{"id": i, "name": f"n{i % 3}", "dept": "AB"[i % 2]} for i in range(1, 12)],
        )
        order_by = [
            OrderByEntry("items.dept", DESC),
            OrderByEntry("items.name", ASC),
            OrderByEntry("items.id", ASC),
        ]

        forward_pages = await _walk_forward(session_factory, 3, order_by)
        backward_pages = await _walk_backward(session_factory, 4, order_by)
        forward = [i for page in forward_pages for i in _ids(page)]
        backward = [i for page in backward_pages for i in _ids(page)]

        assert sorted(forward) == list(range(1, 12))
        assert backward == list(reversed(forward))


# =============================================================================
# Composite orderings and projections
# =============================================================================


class TestCompositeOrdering:
    @pytest.mark.anyio
    async def test_ties_on_leading_column_are_broken_by_the_next(self, session_factory):
        await seed_items(
            session_factory,
            [
                {"id": 1, "name": "a", "dept": "B"},
                {"id": 2, "name": "y", "dept": "A"},
                {"id": 3, "name": "x", "dept": "A"},
            ],
        )
        order_by = [OrderByEntry("items.dept", ASC), OrderByEntry("items.name", ASC)]
        first = await _page(session_factory, ForwardPaginationArgs(first=1), order_by)

        page = await _page(
            session_factory,
            ForwardPaginationArgs(first=2, after=first.page_info.end_cursor),
            order_by,
        )

        assert [edge.node.name for edge in first.edges] == ["x"]
        assert [(edge.node.dept, edge.node.name) for edge in page.edges] == [("A", "y"), ("B", "a")]

    @pytest.mark.anyio
    async def test_mixed_directions_walk_without_gaps_or_repeats(self, session_factory):
        await seed_items(
            session_factory,
            [
                {"id": 1, "name": "a", "dept": "B"},
                {"id": 2, "name": "b", "dept": "A"},
                {"id": 3, "name": "c", "dept": "B"},
                {"id": 4, "name": "d", "dept": "A"},
                {"id": 5, "name": "e", "dept": "C"},
                {"id": 6, "name": "f", "dept": "A"},
            ],
        )
        order_by = [OrderByEntry("items.dept", ASC), OrderByEntry("items.id", DESC)]

        pages = await _walk_forward(session_factory, 2, order_by)

        assert [_ids(page) for page in pages] == [[6, 4], [2, 3], [1, 5]]
        assert all(page.total_count == 6 for page in pages)

    @pytest.mark.anyio
    async def test_caller_or_filter_does_not_leak_rows(self, session_factory):
        await seed_items(
            session_factory,
            [{"id": i, "name": str(i), "dept": "ABC"[i % 3]} for i in range(1, 10)],
        )
        query = select(Item).where((Item.dept == "A") | (Item.dept == "B"))

        pages = await _walk_forward(session_factory, 2, BY_ID, query)
        ids = [i for page in pages for i in _ids(page)]

        assert ids == [1, 3, 4, 6, 7, 9]
        assert all(page.total_count == 6 for page in pages)

    @pytest.mark.anyio
    async def test_datetime_ordering(self, session_factory):
        base = datetime(2024, 3, 1, 8, 30)
        await seed_items(
            session_factory,
            [
                {"id": i, "name": str(i), "created_at": base + timedelta(minutes=i // 2)}
                for i in range(1, 8)
            ],
        )
        order_by = [OrderByEntry(Item.created_at, DESC), OrderByEntry(Item.id, ASC)]

        pages = await _walk_forward(session_factory, 3, order_by)

        assert [_ids(page) for page in pages] == [[6, 7, 4], [5, 2, 3], [1]]

    @pytest.mark.anyio
    async def test_column_projection_returns_rows(self, session_factory, seeded_items):
        query = select(Item.id, Item.name)

        first = await _page(session_factory, ForwardPaginationArgs(first=2), query=query)
        second = await _page(
            session_factory,
            ForwardPaginationArgs(first=2, after=first.page_info.end_cursor),
            query=query,
        )

        assert [tuple(edge.node) for edge in first.edges] == [(1, "a"), (2, "b")]
        assert [edge.node.name for edge in second.edges] == ["c", "d"]

    @pytest.mark.anyio
    async def test_unqualified_name_resolves_to_selected_column(
        self, session_factory, seeded_items
    ):
        page = await _page(
            session_factory,
            BackwardPaginationArgs(last=1),
            order_by=[OrderByEntry("name", ASC)],
            query=select(Item.id, Item.name),
        )

        assert [edge.node.name for edge in page.edges] == ["e"]


# =============================================================================
# Column types and query shapes
# =============================================================================


class TestQueryShapes:
    @pytest.mark.anyio
    async def test_enum_column_pages_by_stored_name(self, session_factory):
        await seed_jobs(
            session_factory, [(1, JobStatus.ACTIVE), (2, JobStatus.PAUSED), (3, JobStatus.PAUSED)]
        )
        order_by = [OrderByEntry("jobs.status", ASC), OrderByEntry("jobs.id", ASC)]

        pages = await _walk_forward(session_factory, 1, order_by, query=select(Job))

        assert [_ids(page) for page in pages] == [[1], [2], [3]]
        assert all(page.total_count == 3 for page in pages)

    @pytest.mark.anyio
    async def test_enum_column_pages_backward(self, session_factory):
        await seed_jobs(
            session_factory, [(1, JobStatus.ACTIVE), (2, JobStatus.PAUSED), (3, JobStatus.PAUSED)]
        )
        order_by = [OrderByEntry(Job.status, DESC), OrderByEntry(Job.id, DESC)]

        pages = await _walk_backward(session_factory, 1, order_by, query=select(Job))

        assert [_ids(page) for page in pages] == [[1], [2], [3]]

    @pytest.mark.anyio
    async def test_distinct_query_counts_distinct_rows(self, session_factory):
        await seed_items(
            session_factory,
            [
                {"id": 1, "name": "a", "dept": "A"},
                {"id": 2, "name": "b", "dept": "A"},
                {"id": 3, "name": "c", "dept": "B"},
            ],
        )

        page = await _page(
            session_factory,
            ForwardPaginationArgs(first=5),
            order_by=[OrderByEntry("dept", ASC)],
            query=select(Item.dept).distinct(),
        )

        assert [edge.node.dept for edge in page.edges] == ["A", "B"]
        assert page.total_count == 2

    @pytest.mark.anyio
    async def test_grouped_query_counts_groups(self, session_factory):
        await seed_items(
            session_factory,
            [
                {"id": 1, "name": "a", "dept": "A"},
                {"id": 2, "name": "b", "dept": "A"},
                {"id": 3, "name": "c", "dept": "B"},
            ],
        )
        query = select(Item.dept, func.count().label("n")).group_by(Item.dept)

        first = await _page(
            session_factory,
            ForwardPaginationArgs(first=1),
            order_by=[OrderByEntry("dept", ASC)],
            query=query,
        )
        second = await _page(
            session_factory,
            ForwardPaginationArgs(first=1, after=first.page_info.end_cursor),
            order_by=[OrderByEntry("dept", ASC)],
            query=query,
        )

        assert [(edge.node.dept, edge.node.n) for edge in first.edges] == [("A", 2)]
        assert [(edge.node.dept, edge.node.n) for edge in second.edges] == [("B", 1)]
        assert first.total_count == second.total_count == 2


# =============================================================================
# Execution context and errors
# =============================================================================


class TestExecutionContext:
    @pytest.mark.anyio
    async def test_ambient_transaction_sees_uncommitted_rows(self, session_factory, seeded_items):
        async with session_factory() as session:
            session.add(Item(id=6, name="f"))
            await session.flush()

            page = await make_connection_from_query(
                select(Item),
                MakeConnectionFromQueryArgs(
                    order_by=BY_ID, pagination_args=BackwardPaginationArgs(last=1)
                ),
                DBOptions(transaction=session),
            )

            assert _ids(page) == [6]
            assert page.total_count == 6
            await session.rollback()

        committed = await _page(session_factory, ForwardPaginationArgs(first=10))
        assert committed.total_count == 5

    @pytest.mark.anyio
    async def test_invalid_cursor_propagates(self, session_factory, seeded_items):
        with pytest.raises(InvalidCursorError):
            await _page(session_factory, ForwardPaginationArgs(first=2, after="garbage!!"))

    @pytest.mark.anyio
    async def test_cursor_from_another_ordering_is_rejected(self, session_factory, seeded_items):
        order_by = [OrderByEntry("items.dept", ASC), OrderByEntry("items.id", ASC)]
        page = await _page(session_factory, ForwardPaginationArgs(first=1), order_by)

        with pytest.raises(InvalidCursorError, match="does not match"):
            await _page(
                session_factory, ForwardPaginationArgs(first=1, after=page.page_info.end_cursor)
            )

    @pytest.mark.anyio
    async def test_relay_arguments_end_to_end(self, session_factory, seeded_items):
        raw = RelayPaginationArgs.model_validate({"first": 2, "after": None})

        page = await _page(session_factory, raw.to_pagination_args())

        dumped = page.model_dump(by_alias=True, exclude={"edges"})
        assert dumped["pageInfo"]["hasNextPage"] is True
        assert dumped["totalCount"] == 5

    @pytest.mark.anyio
    async def test_pages_served_metric(self, session_factory, seeded_items):
        def served() -> float:
            return (
                metrics.registry.get_sample_value(
                    "relay_pagination_pages_served_total", {"direction": "backward"}
                )
                or 0.0
            )

        before = served()

        await _page(session_factory, BackwardPaginationArgs(last=2))

        assert served() == before + 1
