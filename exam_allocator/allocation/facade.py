"""Public entry point for question allocation."""

from __future__ import annotations

import logging
import random
from collections.abc import AsyncIterator, Awaitable, Callable
from contextlib import asynccontextmanager

from exam_allocator.allocation.algorithm import AllocationAlgorithm
from exam_allocator.allocation.contracts import (
    CatalogLookup,
    CatalogScanner,
    UsageCounter,
    UsageIndex,
)
from exam_allocator.allocation.guard import ConcurrencyGuard, get_allocation_guard
from exam_allocator.allocation.manual import ManualSelector
from exam_allocator.allocation.policy import AllocationPolicy, validate_count
from exam_allocator.allocation.types import AllocationMode, AllocationRequest, SelectionResult
from exam_allocator.core.db_kernel import translate_error
from exam_allocator.core.exceptions import (
    AllocationError,
    CategoryRequiredError,
    StorageError,
)

logger = logging.getLogger(__name__)

PersistCallback = Callable[[SelectionResult], Awaitable[None]]


class AllocationFacade:
    """Choose questions for a package under the process-wide allocation lock.

    Critical section contract: the lock must stay held from the usage-index read
    until the new package's question links are committed. Use ``reserve()`` and
    persist inside the block, or pass ``persist`` to ``allocate()``. Persisting
    after the lock is released lets a concurrent request see the same questions
    as unused, which degrades freshness to best effort.
    """

    def __init__(
        self,
        *,
        usage_index: UsageIndex,
        scanner: CatalogScanner,
        usage_counter: UsageCounter,
        lookup: CatalogLookup,
        policy: AllocationPolicy | None = None,
        guard: ConcurrencyGuard | None = None,
        rng: random.Random | None = None,
    ) -> None:
        self.policy = policy or AllocationPolicy()
        self.guard = guard or get_allocation_guard()
        self._algorithm = AllocationAlgorithm(
            usage_index=usage_index,
            scanner=scanner,
            usage_counter=usage_counter,
            policy=self.policy,
            rng=rng,
        )
        self._manual = ManualSelector(lookup=lookup)

    async def allocate(
        self,
        request: AllocationRequest,
        *,
        persist: PersistCallback | None = None,
    ) -> SelectionResult:
        """Select questions and, if given, run ``persist`` before releasing the lock."""
        async with self.reserve(request) as result:
            if persist is not None:
                await persist(result)
        return result

    @asynccontextmanager
    async def reserve(self, request: AllocationRequest) -> AsyncIterator[SelectionResult]:
        """Yield a selection while holding the lock; persist it inside the block."""
        async with self.guard.hold():
            yield await self.select(request)

    async def select(self, request: AllocationRequest) -> SelectionResult:
        """Run one selection; the caller must already hold ``guard``."""
        if not self.guard.held_by_current_task:
            raise RuntimeError("Allocation lock must be held while selecting questions")
        self._validate(request)
        try:
            if request.mode is AllocationMode.MANUAL:
                return await self._manual.select_manual(request.item_ids)
            if request.mode is AllocationMode.AUTO_CATEGORY:
                return await self._algorithm.select(request.count, request.category_id)
            return await self._algorithm.select(request.count)
        except StorageError as exc:
            exc.details.update(request.log_context())
            logger.error(
                "Question allocation failed on store read",
                extra={**request.log_context(), "operation": exc.details.get("operation")},
            )
            raise
        except AllocationError as exc:
            logger.info(
                "Question allocation rejected",
                extra={**request.log_context(), "kind": exc.kind, "details": exc.details},
            )
            raise
        except Exception as exc:
            storage_error = translate_error(exc, operation_name="question_allocation")
            storage_error.details.update(request.log_context())
            logger.error(
                "Question allocation failed on store read",
                extra={**request.log_context(), "error": repr(exc)},
            )
            raise storage_error from exc

    @staticmethod
    def _validate(request: AllocationRequest) -> None:
        if request.mode is AllocationMode.MANUAL:
            return
        validate_count(request.count)
        if request.mode is AllocationMode.AUTO_CATEGORY and request.category_id is None:
            raise CategoryRequiredError()
