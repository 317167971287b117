"""Unit tests for the bookmark item service.

Write paths are checked against a mocked queue where only the composition
matters, and against an aiosqlite-backed queue elsewhere.
"""

from __future__ import annotations

import uuid
from unittest.mock import AsyncMock, MagicMock

import pytest

from altpocket.core.exceptions import InvalidURLError, JobNotFoundError
from altpocket.core.item_service import ItemDetail, ItemService, Pagination
from altpocket.core.models import JobStatus


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


@pytest.fixture
def service(job_queue) -> ItemService:
    return ItemService(job_queue)


async def _fetched(
    service: ItemService,
    job_queue,
    owner_id: uuid.UUID,
    url: str,
    title: str,
    body: str = "",
    tags: list[str] | None = None,
) -> uuid.UUID:
    """Create an item and record a successful fetch for it."""
    job_id, _ = await service.create_item(owner_id, url, tags or [])
    await job_queue.claim(10)
    await job_queue.record_success(
        job_id,
        title=title,
        excerpt=body[:200],
        content_full=body,
        content_search=body,
        content_bytes=len(body.encode("utf-8")),
    )
    return job_id


# ---------------------------------------------------------------------------
# create_item / request_refetch
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
class TestCreateItem:
    async def test_composes_canonicalization_and_tag_normalisation(self, owner_id) -> None:
        queue = MagicMock()
        queue.create = AsyncMock(return_value=(uuid.uuid4(), True))
        service = ItemService(queue)

        await service.create_item(
            owner_id, " https://a.com/x/?utm_source=t&b=2&a=1 ", ["News", "news", " "]
        )

        args = queue.create.await_args.args
        assert args[0] == owner_id
        assert args[1] == "https://a.com/x/?utm_source=t&b=2&a=1"
        assert args[2] == "https://a.com/x?a=1&b=2"
        assert len(args[3]) == 64
        assert args[4] == ["news"]

    async def test_invalid_url_never_reaches_queue(self, owner_id) -> None:
        queue = MagicMock()
        queue.create = AsyncMock()
        service = ItemService(queue)

        with pytest.raises(InvalidURLError):
            await service.create_item(owner_id, "not a url")
        queue.create.assert_not_awaited()

    async def test_duplicate_submission(self, service, owner_id) -> None:
        first_id, created = await service.create_item(owner_id, "https://a.com/x?b=2&a=1")
        second_id, duplicate_created = await service.create_item(
            owner_id, "https://a.com/x/?a=1&b=2&fbclid=zzz"
        )
        assert created is True
        assert duplicate_created is False
        assert second_id == first_id

    async def test_request_refetch_missing_job(self, service, owner_id) -> None:
        with pytest.raises(JobNotFoundError):
            await service.request_refetch(owner_id, uuid.uuid4())


# ---------------------------------------------------------------------------
# get_item
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
class TestGetItem:
    async def test_returns_detail_with_content_and_tags(
        self, service, job_queue, session_factory, owner_id
    ) -> None:
        job_id = await _fetched(
            service, job_queue, owner_id, "https://a.com/x", "Title", "Body text", ["b", "a"]
        )

        async with session_factory() as db:
            detail = await service.get_item(db, owner_id, job_id)

        assert isinstance(detail, ItemDetail)
        assert detail.id == job_id
        assert detail.status == JobStatus.SUCCESS
        assert detail.title == "Title"
        assert detail.content_full == "Body text"
        assert [tag.normalized_name for tag in detail.tags] == ["a", "b"]

    async def test_pending_item_has_empty_content(
        self, service, session_factory, owner_id
    ) -> None:
        job_id, _ = await service.create_item(owner_id, "https://a.com/x")

        async with session_factory() as db:
            detail = await service.get_item(db, owner_id, job_id)

        assert detail is not None
        assert detail.status == JobStatus.PENDING
        assert detail.content_full == ""
        assert detail.tags == []

    async def test_other_owner_gets_none(self, service, session_factory, owner_id) -> None:
        job_id, _ = await service.create_item(owner_id, "https://a.com/x")

        async with session_factory() as db:
            assert await service.get_item(db, uuid.uuid4(), job_id) is None


# ---------------------------------------------------------------------------
# list_items
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
class TestListItems:
    async def test_newest_first_with_pagination(
        self, service, session_factory, owner_id
    ) -> None:
        ids = [
            (await service.create_item(owner_id, f"https://a.com/{n}"))[0] for n in range(5)
        ]

        async with session_factory() as db:
            first_page, pagination = await service.list_items(db, owner_id, page=1, per_page=2)
            last_page, _ = await service.list_items(db, owner_id, page=3, per_page=2)

        assert [row.id for row in first_page] == [ids[4], ids[3]]
        assert [row.id for row in last_page] == [ids[0]]
        assert pagination == Pagination(page=1, per_page=2, total=5)
        assert pagination.total_pages == 3

    async def test_out_of_range_paging_arguments_clamped(
        self, service, session_factory, owner_id
    ) -> None:
        await service.create_item(owner_id, "https://a.com/x")

        async with session_factory() as db:
            rows, pagination = await service.list_items(db, owner_id, page=0, per_page=0)

        assert len(rows) == 1
        assert pagination.page == 1
        assert pagination.per_page == 30

    async def test_only_owner_items_listed(self, service, session_factory, owner_id) -> None:
        await service.create_item(owner_id, "https://a.com/mine")
        await service.create_item(uuid.uuid4(), "https://a.com/theirs")

        async with session_factory() as db:
            rows, pagination = await service.list_items(db, owner_id)

        assert [row.canonical_url for row in rows] == ["https://a.com/mine"]
        assert pagination.total == 1

    async def test_query_matches_title_content_url_and_tags(
        self, service, job_queue, session_factory, owner_id
    ) -> None:
        by_title = await _fetched(service, job_queue, owner_id, "https://a.com/1", "Postgres Locking")
        by_body = await _fetched(
            service, job_queue, owner_id, "https://a.com/2", "Other", "all about POSTGRES internals"
        )
        by_url = await _fetched(service, job_queue, owner_id, "https://postgres.example/3", "Third")
        by_tag = await _fetched(
            service, job_queue, owner_id, "https://a.com/4", "Fourth", tags=["postgres", "db"]
        )
        await _fetched(service, job_queue, owner_id, "https://a.com/5", "Unrelated", "nothing")

        async with session_factory() as db:
            rows, pagination = await service.list_items(db, owner_id, q="postgres")

        assert {row.id for row in rows} == {by_title, by_body, by_url, by_tag}
        assert pagination.total == 4
        tagged = next(row for row in rows if row.id == by_tag)
        assert [tag.normalized_name for tag in tagged.tags] == ["db", "postgres"]

    async def test_tag_filter_is_normalised(
        self, service, session_factory, owner_id
    ) -> None:
        tagged, _ = await service.create_item(owner_id, "https://a.com/1", ["Python"])
        await service.create_item(owner_id, "https://a.com/2", ["go"])

        async with session_factory() as db:
            rows, pagination = await service.list_items(db, owner_id, tag=" PYTHON ")

        assert [row.id for row in rows] == [tagged]
        assert pagination.total == 1

    async def test_relevance_sort_falls_back_to_newest_first_off_postgres(
        self, service, job_queue, session_factory, owner_id
    ) -> None:
        older = await _fetched(service, job_queue, owner_id, "https://a.com/1", "python python")
        newer = await _fetched(service, job_queue, owner_id, "https://a.com/2", "python")

        async with session_factory() as db:
            rows, _ = await service.list_items(db, owner_id, q="python", sort="relevance")

        assert [row.id for row in rows] == [newer, older]


# ---------------------------------------------------------------------------
# Tags
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
class TestTagQueries:
    async def test_list_tags_counts_per_owner(
        self, service, session_factory, owner_id
    ) -> None:
        await service.create_item(owner_id, "https://a.com/1", ["python", "db"])
        await service.create_item(owner_id, "https://a.com/2", ["python"])
        await service.create_item(uuid.uuid4(), "https://a.com/3", ["python", "rust"])

        async with session_factory() as db:
            tags = await service.list_tags(db, owner_id)

        assert [(tag.normalized_name, tag.count) for tag in tags] == [("db", 1), ("python", 2)]

    async def test_suggest_tags_substring_match(
        self, service, session_factory, owner_id
    ) -> None:
        await service.create_item(owner_id, "https://a.com/1", ["python", "cpython", "go"])

        async with session_factory() as db:
            tags = await service.suggest_tags(db, "PYTH")

        assert [tag.normalized_name for tag in tags] == ["cpython", "python"]

    async def test_suggest_tags_capped_at_twenty(
        self, service, session_factory, owner_id
    ) -> None:
        await service.create_item(
            owner_id, "https://a.com/1", [f"tag{n:02d}" for n in range(25)]
        )

        async with session_factory() as db:
            tags = await service.suggest_tags(db, "tag")

        assert len(tags) == 20
        assert tags[0].normalized_name == "tag00"


# ---------------------------------------------------------------------------
# delete_item
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
class TestDeleteItem:
    async def test_delete_removes_item_content_and_orphan_tags(
        self, service, job_queue, session_factory, owner_id
    ) -> None:
        doomed = await _fetched(
            service, job_queue, owner_id, "https://a.com/1", "Doomed", "text", ["only-here", "shared"]
        )
        await service.create_item(owner_id, "https://a.com/2", ["shared"])

        async with session_factory() as db:
            await service.delete_item(db, owner_id, doomed)

        async with session_factory() as db:
            assert await service.get_item(db, owner_id, doomed) is None
            remaining = await service.suggest_tags(db, "")

        assert [tag.normalized_name for tag in remaining] == ["shared"]

    async def test_second_delete_raises(self, service, session_factory, owner_id) -> None:
        job_id, _ = await service.create_item(owner_id, "https://a.com/1")

        async with session_factory() as db:
            await service.delete_item(db, owner_id, job_id)
        async with session_factory() as db:
            with pytest.raises(JobNotFoundError):
                await service.delete_item(db, owner_id, job_id)

    async def test_other_owner_cannot_delete(
        self, service, session_factory, owner_id
    ) -> None:
        job_id, _ = await service.create_item(owner_id, "https://a.com/1", ["keep"])

        async with session_factory() as db:
            with pytest.raises(JobNotFoundError):
                await service.delete_item(db, uuid.uuid4(), job_id)

        async with session_factory() as db:
            detail = await service.get_item(db, owner_id, job_id)
        assert detail is not None
        assert [tag.normalized_name for tag in detail.tags] == ["keep"]
