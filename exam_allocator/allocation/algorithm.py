"""Automatic question selection with minimal reuse across packages."""

from __future__ import annotations

import logging
import random

from exam_allocator.allocation.contracts import (
    CatalogItem,
    CatalogScanner,
    CategoryId,
    ItemId,
    UsageCounter,
    UsageIndex,
)
from exam_allocator.allocation.policy import AllocationPolicy, validate_count
from exam_allocator.allocation.types import AllocationMode, SelectionResult
from exam_allocator.core.exceptions import (
    InsufficientCatalogError,
    InsufficientUniqueItemsError,
    NoEligibleItemsError,
    SelectionInvariantViolatedError,
)

logger = logging.getLogger(__name__)


class AllocationAlgorithm:
    """Pick ``count`` questions, preferring ones no active package uses.

    Unused questions are taken first, in random order. Only when they run out
    are previously used questions added, least-used first and never more than
    the policy's overlap cap. The algorithm only reads; callers must hold the
    allocation lock until the resulting package is persisted.
    """

    def __init__(
        self,
        *,
        usage_index: UsageIndex,
        scanner: CatalogScanner,
        usage_counter: UsageCounter,
        policy: AllocationPolicy | None = None,
        rng: random.Random | None = None,
    ) -> None:
        self._usage_index = usage_index
        self._scanner = scanner
        self._usage_counter = usage_counter
        self._policy = policy or AllocationPolicy()
        self._rng = rng or random.Random()

    @property
    def policy(self) -> AllocationPolicy:
        return self._policy

    async def select(
        self,
        count: int,
        category_id: CategoryId | None = None,
    ) -> SelectionResult:
        count = validate_count(count)
        mode = AllocationMode.AUTO_ANY if category_id is None else AllocationMode.AUTO_CATEGORY
        min_fresh = self._policy.min_fresh_required(count)
        max_reuse = self._policy.max_reuse_allowed(count)
        logger.info(
            "Starting question selection",
            extra={
                "count": count,
                "category_id": category_id,
                "mode": mode.value,
                "max_overlap_percent": self._policy.max_overlap_percent,
                "min_fresh_percent": self._policy.min_fresh_percent,
            },
        )

        used_ids = await self._usage_index.currently_used_ids()

        total = await self._scanner.count(category_id)
        if total == 0:
            raise NoEligibleItemsError(category_id)
        if total < count:
            raise InsufficientCatalogError(count, total, category_id)

        fresh, reused = await self._partition(category_id, used_ids)
        logger.info(
            "Catalog partitioned",
            extra={
                "total_available": total,
                "used_index_size": len(used_ids),
                "fresh_available": len(fresh),
                "reused_available": len(reused),
            },
        )

        if len(fresh) < min_fresh:
            logger.warning(
                "Not enough unused questions for freshness quota",
                extra={"fresh_available": len(fresh), "min_fresh": min_fresh, "count": count},
            )
            if len(fresh) + len(reused) < count:
                raise self._insufficient(count, fresh, reused, max_reuse, min_fresh)

        self._rng.shuffle(fresh)
        selected_fresh = [item.id for item in fresh[: min(count, len(fresh))]]
        selected_reused: list[ItemId] = []

        remaining = count - len(selected_fresh)
        if remaining > 0:
            actual_reuse = min(remaining, max_reuse)
            if actual_reuse < remaining or len(reused) < actual_reuse:
                raise self._insufficient(count, fresh, reused, max_reuse, min_fresh)
            selected_reused = await self._least_used(reused, actual_reuse)

        if len(selected_fresh) < min_fresh:
            raise self._insufficient(count, fresh, reused, max_reuse, min_fresh)

        item_ids = tuple(selected_fresh + selected_reused)
        if len(item_ids) != count or len(set(item_ids)) != count:
            logger.error(
                "Selection failed invariant check",
                extra={"expected": count, "actual": len(set(item_ids))},
            )
            raise SelectionInvariantViolatedError(count, len(set(item_ids)))

        result = SelectionResult(
            item_ids=item_ids,
            fresh_ids=frozenset(selected_fresh),
            reused_ids=frozenset(selected_reused),
            mode=mode,
        )
        logger.info(
            "Question selection completed",
            extra={
                "count": count,
                "fresh": result.fresh_count,
                "reused": result.reused_count,
                "fresh_percent": round(100.0 - result.overlap_percent, 1),
                "overlap_percent": round(result.overlap_percent, 1),
            },
        )
        return result

    async def _partition(
        self,
        category_id: CategoryId | None,
        used_ids: set[ItemId],
    ) -> tuple[list[CatalogItem], list[CatalogItem]]:
        fresh: list[CatalogItem] = []
        reused: list[CatalogItem] = []
        seen: set[ItemId] = set()
        async with self._scanner.stream(category_id) as items:
            async for item in items:
                if item.id in seen:
                    continue
                seen.add(item.id)
                if item.id in used_ids:
                    reused.append(item)
                else:
                    fresh.append(item)
        return fresh, reused

    async def _least_used(self, reused: list[CatalogItem], take: int) -> list[ItemId]:
        usage = await self._usage_counter.batch_count({item.id for item in reused})
        ordered = sorted(reused, key=lambda item: usage.get(item.id, 0))

        # Shuffle the low-usage prefix so ties don't always resolve the same way.
        shuffle_limit = min(len(ordered), take * 2)
        prefix = ordered[:shuffle_limit]
        self._rng.shuffle(prefix)
        ordered[:shuffle_limit] = prefix

        return [item.id for item in ordered[:take]]

    @staticmethod
    def _insufficient(
        count: int,
        fresh: list[CatalogItem],
        reused: list[CatalogItem],
        max_reuse: int,
        min_fresh: int,
    ) -> InsufficientUniqueItemsError:
        return InsufficientUniqueItemsError(
            count,
            fresh_available=len(fresh),
            reused_available=len(reused),
            max_reuse=max_reuse,
            min_fresh=min_fresh,
        )
