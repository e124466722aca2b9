"""SQL-backed catalog scanner and lookup over the questions table."""

from __future__ import annotations

import logging
from collections.abc import AsyncIterator, Iterable
from types import TracebackType
from typing import Any

from sqlalchemy import Select, func, select
from sqlalchemy.ext.asyncio import AsyncResult, AsyncSession

from exam_allocator.allocation.contracts import CatalogItem, CategoryId, ItemId
from exam_allocator.core.db_kernel import translate_error, translate_storage_errors
from exam_allocator.models.question import Question

logger = logging.getLogger(__name__)

DEFAULT_SCAN_BATCH_SIZE = 500


def _eligible_filter(stmt: Select[Any], category_id: CategoryId | None) -> Select[Any]:
    stmt = stmt.where(Question.deleted.is_(False), Question.is_active.is_(True))
    if category_id is not None:
        stmt = stmt.where(Question.topic_id == category_id)
    return stmt


def _to_item(row: Any) -> CatalogItem:
    return CatalogItem(
        id=row.id,
        category_id=row.topic_id,
        is_active=bool(row.is_active),
        deleted=bool(row.deleted),
    )


class SqlCatalogStream:
    """Server-side cursor over eligible questions, fetched ``batch_size`` rows at a time."""

    def __init__(self, session: AsyncSession, stmt: Select[Any], *, batch_size: int) -> None:
        self._session = session
        self._stmt = stmt.execution_options(yield_per=batch_size)
        self._result: AsyncResult[Any] | None = None
        self._closed = False

    async def __aenter__(self) -> SqlCatalogStream:
        if self._closed:
            raise RuntimeError("Catalog stream is closed")
        async with translate_storage_errors("catalog_stream_open"):
            self._result = await self._session.stream(self._stmt)
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        await self.aclose()

    def __aiter__(self) -> AsyncIterator[CatalogItem]:
        return self._iterate()

    async def _iterate(self) -> AsyncIterator[CatalogItem]:
        if self._result is None:
            raise RuntimeError("Catalog stream must be entered before iterating")
        try:
            async for row in self._result:
                yield _to_item(row)
        except Exception as exc:
            raise translate_error(exc, operation_name="catalog_stream_read") from exc

    async def aclose(self) -> None:
        if self._closed:
            return
        self._closed = True
        if self._result is not None:
            result, self._result = self._result, None
            await result.close()
            logger.debug("Catalog stream closed")


class QuestionCatalogScanner:
    """Count and stream active, non-deleted questions."""

    def __init__(
        self,
        session: AsyncSession,
        *,
        batch_size: int = DEFAULT_SCAN_BATCH_SIZE,
    ) -> None:
        self._session = session
        self._batch_size = max(1, batch_size)

    async def count(self, category_id: CategoryId | None = None) -> int:
        stmt = _eligible_filter(select(func.count()).select_from(Question), category_id)
        async with translate_storage_errors("catalog_count"):
            return int(await self._session.scalar(stmt) or 0)

    def stream(self, category_id: CategoryId | None = None) -> SqlCatalogStream:
        stmt = _eligible_filter(
            select(Question.id, Question.topic_id, Question.is_active, Question.deleted),
            category_id,
        ).order_by(Question.id)
        return SqlCatalogStream(self._session, stmt, batch_size=self._batch_size)


class QuestionCatalogLookup:
    """Fetch questions by id regardless of status, in one query."""

    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def find_by_ids(self, ids: Iterable[ItemId]) -> list[CatalogItem]:
        unique_ids = set(ids)
        if not unique_ids:
            return []
        stmt = select(
            Question.id,
            Question.topic_id,
            Question.is_active,
            Question.deleted,
        ).where(Question.id.in_(unique_ids))
        async with translate_storage_errors("catalog_find_by_ids"):
            rows = (await self._session.execute(stmt)).all()
        return [_to_item(row) for row in rows]
