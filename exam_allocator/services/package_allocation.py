"""Create and regenerate exam packages inside the allocation critical section."""

from __future__ import annotations

import logging
import random
from collections.abc import Sequence
from contextlib import AbstractAsyncContextManager
from dataclasses import dataclass

from sqlalchemy import delete, insert, select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from exam_allocator.allocation.contracts import ItemId
from exam_allocator.allocation.facade import AllocationFacade
from exam_allocator.allocation.guard import ConcurrencyGuard, get_allocation_guard
from exam_allocator.allocation.policy import AllocationPolicy, validate_count
from exam_allocator.allocation.statistics import OverlapStatistics, RegenerationStatistics
from exam_allocator.allocation.types import AllocationMode, AllocationRequest, SelectionResult
from exam_allocator.config import settings
from exam_allocator.core.database import get_session_context, get_session_maker
from exam_allocator.core.db_retry import run_with_transient_db_retry
from exam_allocator.core.exceptions import (
    ManualOnlyOperationError,
    PackageNotFoundError,
    RegenerationNotAllowedError,
)
from exam_allocator.models.exam_package import ExamPackage, package_questions
from exam_allocator.repositories.question_catalog import (
    QuestionCatalogLookup,
    QuestionCatalogScanner,
)
from exam_allocator.repositories.question_usage import QuestionUsageCounter, QuestionUsageIndex

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PackageAllocation:
    """Outcome of one package write."""

    package_id: int
    selection: SelectionResult
    regeneration: RegenerationStatistics | None = None


class PackageAllocationService:
    """Persist package question sets while the allocation lock is held.

    Every write follows lock -> select -> persist + commit -> unlock, so the next
    waiter's usage index already contains this package's questions. Nothing is
    retried unless ``attempts`` > 1; each retry re-acquires the lock.
    """

    def __init__(
        self,
        *,
        session_maker: async_sessionmaker[AsyncSession] | None = None,
        policy: AllocationPolicy | None = None,
        guard: ConcurrencyGuard | None = None,
        rng: random.Random | None = None,
        scan_batch_size: int | None = None,
    ) -> None:
        self._session_maker = session_maker
        self.policy = policy or AllocationPolicy.from_settings(settings)
        self.guard = guard or get_allocation_guard()
        self._rng = rng
        self._scan_batch_size = scan_batch_size or settings.catalog_scan_batch_size

    def facade_for(self, session: AsyncSession) -> AllocationFacade:
        """Build an allocation facade reading through ``session``."""
        return AllocationFacade(
            usage_index=QuestionUsageIndex(session),
            scanner=QuestionCatalogScanner(session, batch_size=self._scan_batch_size),
            usage_counter=QuestionUsageCounter(session),
            lookup=QuestionCatalogLookup(session),
            policy=self.policy,
            guard=self.guard,
            rng=self._rng,
        )

    async def create_package(
        self,
        *,
        name: str,
        request: AllocationRequest,
        attempts: int = 1,
    ) -> PackageAllocation:
        """Create a package and its question links in one locked transaction."""

        async def _create_once() -> PackageAllocation:
            async with self._session() as session:
                facade = self.facade_for(session)
                async with facade.reserve(request) as selection:
                    package = ExamPackage(
                        name=name,
                        question_count=selection.size,
                        generation_type=request.mode.value,
                        topic_id=request.category_id,
                        is_active=True,
                        deleted=False,
                    )
                    session.add(package)
                    await session.flush()
                    await _link_questions(session, package.id, selection.item_ids)
                    await session.commit()
                    package_id = package.id

                await self._log_overlap(session, package_id, selection)

            logger.info(
                "Package created",
                extra={
                    "package_id": package_id,
                    "mode": request.mode.value,
                    "question_count": selection.size,
                },
            )
            return PackageAllocation(package_id=package_id, selection=selection)

        return await run_with_transient_db_retry(
            _create_once,
            operation_name="package_create",
            attempts=attempts,
            log_context={"mode": request.mode.value, "count": request.count},
        )

    async def regenerate_package(self, package_id: int, *, attempts: int = 1) -> PackageAllocation:
        """Replace an automatic package's questions with a fresh selection."""

        async def _regenerate_once() -> PackageAllocation:
            async with self._session() as session:
                package = await _load_package(session, package_id)
                if package.generation_type == AllocationMode.MANUAL.value:
                    raise RegenerationNotAllowedError(package_id)
                return await self._regenerate_in_session(session, package)

        return await run_with_transient_db_retry(
            _regenerate_once,
            operation_name="package_regenerate",
            attempts=attempts,
            log_context={"package_id": package_id},
        )

    async def change_question_count(
        self,
        package_id: int,
        count: int,
        *,
        attempts: int = 1,
    ) -> PackageAllocation:
        """Resize an automatic package and regenerate its questions."""
        validate_count(count)

        async def _resize_once() -> PackageAllocation:
            async with self._session() as session:
                package = await _load_package(session, package_id)
                if package.generation_type == AllocationMode.MANUAL.value:
                    raise ManualOnlyOperationError(
                        package_id,
                        "Question count cannot be changed for a manual package",
                    )
                package.question_count = count
                return await self._regenerate_in_session(session, package)

        return await run_with_transient_db_retry(
            _resize_once,
            operation_name="package_change_question_count",
            attempts=attempts,
            log_context={"package_id": package_id, "count": count},
        )

    async def replace_manual_questions(
        self,
        package_id: int,
        item_ids: Sequence[ItemId],
        *,
        attempts: int = 1,
    ) -> PackageAllocation:
        """Swap a manual package's questions for an operator-chosen list."""
        request = AllocationRequest.manual(item_ids)

        async def _replace_once() -> PackageAllocation:
            async with self._session() as session:
                package = await _load_package(session, package_id)
                if package.generation_type != AllocationMode.MANUAL.value:
                    raise ManualOnlyOperationError(
                        package_id,
                        "Question ids can only be set on a manual package",
                    )
                old_ids = await _linked_question_ids(session, package_id)
                facade = self.facade_for(session)
                async with facade.reserve(request) as selection:
                    await _unlink_questions(session, package_id)
                    await _link_questions(session, package_id, selection.item_ids)
                    package.question_count = selection.size
                    await session.commit()

            stats = RegenerationStatistics.compare(old_ids, selection.item_ids)
            stats.log(package_id)
            return PackageAllocation(package_id=package_id, selection=selection, regeneration=stats)

        return await run_with_transient_db_retry(
            _replace_once,
            operation_name="package_replace_manual_questions",
            attempts=attempts,
            log_context={"package_id": package_id, "count": request.count},
        )

    async def _regenerate_in_session(
        self,
        session: AsyncSession,
        package: ExamPackage,
    ) -> PackageAllocation:
        request = AllocationRequest(
            mode=AllocationMode(package.generation_type),
            count=package.question_count,
            category_id=package.topic_id,
        )
        package_id = package.id
        old_ids = await _linked_question_ids(session, package_id)
        facade = self.facade_for(session)

        async with self.guard.hold():
            # Drop the old links inside the transaction first so the package's own
            # questions count as unused for its new selection.
            await _unlink_questions(session, package_id)
            selection = await facade.select(request)
            await _link_questions(session, package_id, selection.item_ids)
            await session.commit()

        stats = RegenerationStatistics.compare(old_ids, selection.item_ids)
        stats.log(package_id)
        logger.info(
            "Package questions regenerated",
            extra={"package_id": package_id, "question_count": selection.size},
        )
        return PackageAllocation(package_id=package_id, selection=selection, regeneration=stats)

    async def _log_overlap(
        self,
        session: AsyncSession,
        package_id: int,
        selection: SelectionResult,
    ) -> None:
        usage = await QuestionUsageCounter(session).batch_count(selection.item_ids)
        OverlapStatistics.from_usage(selection.item_ids, usage).log(package_id)

    def _session(self) -> AbstractAsyncContextManager[AsyncSession]:
        maker = self._session_maker or get_session_maker()
        return get_session_context(commit_on_exit=False, session_maker=maker)


async def _load_package(session: AsyncSession, package_id: int) -> ExamPackage:
    result = await session.execute(
        select(ExamPackage).where(
            ExamPackage.id == package_id,
            ExamPackage.deleted.is_(False),
        )
    )
    package = result.scalar_one_or_none()
    if package is None:
        raise PackageNotFoundError(package_id)
    return package


async def _linked_question_ids(session: AsyncSession, package_id: int) -> set[ItemId]:
    result = await session.scalars(
        select(package_questions.c.question_id).where(
            package_questions.c.package_id == package_id
        )
    )
    return set(result.all())


async def _unlink_questions(session: AsyncSession, package_id: int) -> None:
    await session.execute(
        delete(package_questions).where(package_questions.c.package_id == package_id)
    )


async def _link_questions(
    session: AsyncSession,
    package_id: int,
    item_ids: Sequence[ItemId],
) -> None:
    if not item_ids:
        return
    await session.execute(
        insert(package_questions),
        [{"package_id": package_id, "question_id": item_id} for item_id in item_ids],
    )
