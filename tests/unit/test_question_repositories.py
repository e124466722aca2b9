"""Unit tests for the SQL-backed catalog and usage collaborators."""

from __future__ import annotations

import random
from collections.abc import AsyncIterator, Iterable
from types import SimpleNamespace

import pytest
from sqlalchemy import insert
from sqlalchemy.exc import OperationalError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from exam_allocator.allocation.algorithm import AllocationAlgorithm
from exam_allocator.allocation.contracts import CatalogItem
from exam_allocator.core.exceptions import StorageError
from exam_allocator.models import ExamPackage, Question, Topic, package_questions
from exam_allocator.repositories.question_catalog import (
    QuestionCatalogLookup,
    QuestionCatalogScanner,
)
from exam_allocator.repositories.question_usage import QuestionUsageCounter, QuestionUsageIndex


async def _seed(session: AsyncSession) -> None:
    session.add_all(
        [
            Topic(id=1, code="signs", name="Road signs"),
            Topic(id=2, code="rules", name="Traffic rules"),
        ]
    )
    await session.flush()
    session.add_all(
        [Question(id=i, topic_id=1, text=f"q{i}") for i in range(1, 6)]
        + [Question(id=i, topic_id=2, text=f"q{i}") for i in range(6, 11)]
        + [
            Question(id=11, topic_id=1, text="inactive", is_active=False),
            Question(id=12, topic_id=1, text="deleted", deleted=True),
        ]
    )
    session.add_all(
        [
            ExamPackage(id=1, name="A", question_count=3, generation_type="auto_any"),
            ExamPackage(id=2, name="B", question_count=2, generation_type="auto_any"),
            ExamPackage(
                id=3, name="C", question_count=2, generation_type="auto_any", deleted=True
            ),
            ExamPackage(
                id=4, name="D", question_count=1, generation_type="auto_any", is_active=False
            ),
        ]
    )
    await session.flush()
    await session.execute(
        insert(package_questions),
        [
            {"package_id": 1, "question_id": 1},
            {"package_id": 1, "question_id": 2},
            {"package_id": 1, "question_id": 3},
            {"package_id": 2, "question_id": 1},
            {"package_id": 2, "question_id": 6},
            {"package_id": 3, "question_id": 7},
            {"package_id": 3, "question_id": 1},
            {"package_id": 4, "question_id": 8},
        ],
    )
    await session.commit()


@pytest.mark.asyncio
async def test_scanner_counts_only_active_questions(
    session_maker: async_sessionmaker[AsyncSession],
) -> None:
    async with session_maker() as session:
        await _seed(session)
        scanner = QuestionCatalogScanner(session)

        assert await scanner.count() == 10
        assert await scanner.count(1) == 5
        assert await scanner.count(3) == 0


@pytest.mark.asyncio
async def test_scanner_streams_eligible_questions_in_small_batches(
    session_maker: async_sessionmaker[AsyncSession],
) -> None:
    async with session_maker() as session:
        await _seed(session)
        scanner = QuestionCatalogScanner(session, batch_size=2)

        async with scanner.stream(1) as items:
            scanned = [item async for item in items]

    assert scanned == [CatalogItem(id=i, category_id=1) for i in range(1, 6)]


@pytest.mark.asyncio
async def test_scanner_stream_can_be_abandoned_early(
    session_maker: async_sessionmaker[AsyncSession],
) -> None:
    async with session_maker() as session:
        await _seed(session)
        stream = QuestionCatalogScanner(session, batch_size=2).stream()

        async with stream as items:
            seen = []
            async for item in items:
                seen.append(item.id)
                if len(seen) == 3:
                    break

        await stream.aclose()
        # The session stays usable once the cursor is released.
        assert await QuestionCatalogScanner(session).count() == 10

    assert seen == [1, 2, 3]


@pytest.mark.asyncio
async def test_usage_index_ignores_deleted_and_inactive_packages(
    session_maker: async_sessionmaker[AsyncSession],
) -> None:
    async with session_maker() as session:
        await _seed(session)

        used = await QuestionUsageIndex(session).currently_used_ids()

    assert used == {1, 2, 3, 6}


@pytest.mark.asyncio
async def test_usage_counter_counts_active_packages_and_zero_fills(
    session_maker: async_sessionmaker[AsyncSession],
) -> None:
    async with session_maker() as session:
        await _seed(session)
        counter = QuestionUsageCounter(session)

        counts = await counter.batch_count({1, 2, 7, 8, 9})
        empty = await counter.batch_count([])

    assert counts == {1: 2, 2: 1, 7: 0, 8: 0, 9: 0}
    assert empty == {}


@pytest.mark.asyncio
async def test_lookup_returns_inactive_rows_and_skips_unknown_ids(
    session_maker: async_sessionmaker[AsyncSession],
) -> None:
    async with session_maker() as session:
        await _seed(session)

        found = await QuestionCatalogLookup(session).find_by_ids([1, 11, 12, 999])

    by_id = {item.id: item for item in found}
    assert set(by_id) == {1, 11, 12}
    assert by_id[1].is_eligible
    assert not by_id[11].is_eligible
    assert not by_id[12].is_eligible


class _BrokenSession:
    async def scalar(self, _query: object) -> int:
        raise OperationalError("SELECT count(*)", {}, Exception("server closed the connection"))


class _FailingResult:
    """Cursor that drops the connection after ``fail_after`` rows."""

    def __init__(self, rows: int, fail_after: int) -> None:
        self._rows = rows
        self._fail_after = fail_after
        self.closed = False

    def __aiter__(self) -> AsyncIterator[SimpleNamespace]:
        return self._iterate()

    async def _iterate(self) -> AsyncIterator[SimpleNamespace]:
        for index in range(1, self._rows + 1):
            if index > self._fail_after:
                raise OperationalError("FETCH", {}, Exception("connection is closed"))
            yield SimpleNamespace(id=index, topic_id=None, is_active=True, deleted=False)

    async def close(self) -> None:
        self.closed = True


class _DroppingSession:
    def __init__(self, result: _FailingResult) -> None:
        self.result = result

    async def scalar(self, _query: object) -> int:
        return self.result._rows

    async def stream(self, _query: object) -> _FailingResult:
        return self.result


class _NoUsage:
    async def currently_used_ids(self) -> set[int]:
        return set()

    async def batch_count(self, ids: Iterable[int]) -> dict[int, int]:
        return {item_id: 0 for item_id in ids}


@pytest.mark.asyncio
async def test_scanner_translates_driver_errors_to_storage_error() -> None:
    scanner = QuestionCatalogScanner(_BrokenSession())  # type: ignore[arg-type]

    with pytest.raises(StorageError) as exc_info:
        await scanner.count()

    assert exc_info.value.details["operation"] == "catalog_count"
    assert exc_info.value.transient is True


@pytest.mark.asyncio
async def test_scan_failing_midway_surfaces_storage_error_and_closes_cursor() -> None:
    result = _FailingResult(rows=10, fail_after=2)
    usage = _NoUsage()
    algorithm = AllocationAlgorithm(
        usage_index=usage,
        scanner=QuestionCatalogScanner(_DroppingSession(result), batch_size=2),  # type: ignore[arg-type]
        usage_counter=usage,
        rng=random.Random(1),
    )

    with pytest.raises(StorageError) as exc_info:
        await algorithm.select(5)

    assert exc_info.value.details["operation"] == "catalog_stream_read"
    assert exc_info.value.transient is True
    assert result.closed
