"""SQL-backed usage index and usage counter over package question links."""

from __future__ import annotations

from collections.abc import Iterable

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from exam_allocator.allocation.contracts import ItemId
from exam_allocator.core.db_kernel import translate_storage_errors
from exam_allocator.models.exam_package import ExamPackage, package_questions

_ACTIVE_PACKAGE = (ExamPackage.deleted.is_(False), ExamPackage.is_active.is_(True))


class QuestionUsageIndex:
    """Questions referenced by at least one active, non-deleted package."""

    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def currently_used_ids(self) -> set[ItemId]:
        stmt = (
            select(package_questions.c.question_id)
            .distinct()
            .join(ExamPackage, ExamPackage.id == package_questions.c.package_id)
            .where(*_ACTIVE_PACKAGE)
        )
        async with translate_storage_errors("usage_index_read"):
            result = await self._session.scalars(stmt)
            return set(result.all())


class QuestionUsageCounter:
    """Number of active packages referencing each question."""

    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def batch_count(self, ids: Iterable[ItemId]) -> dict[ItemId, int]:
        unique_ids = set(ids)
        if not unique_ids:
            return {}

        stmt = (
            select(
                package_questions.c.question_id,
                func.count(func.distinct(package_questions.c.package_id)),
            )
            .join(ExamPackage, ExamPackage.id == package_questions.c.package_id)
            .where(package_questions.c.question_id.in_(unique_ids), *_ACTIVE_PACKAGE)
            .group_by(package_questions.c.question_id)
        )
        async with translate_storage_errors("usage_batch_count"):
            rows = (await self._session.execute(stmt)).all()

        usage: dict[ItemId, int] = {item_id: 0 for item_id in unique_ids}
        for question_id, package_count in rows:
            usage[question_id] = int(package_count)
        return usage
