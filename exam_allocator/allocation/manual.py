"""Validation of operator-chosen question lists."""

from __future__ import annotations

import logging
from collections import Counter
from collections.abc import Sequence

from exam_allocator.allocation.contracts import CatalogLookup, ItemId
from exam_allocator.allocation.types import AllocationMode, SelectionResult
from exam_allocator.core.exceptions import (
    DuplicateIdentifiersError,
    InactiveItemsError,
    ItemsNotFoundError,
    ManualSelectionRequiredError,
)

logger = logging.getLogger(__name__)


class ManualSelector:
    """Accept an explicit question list after existence and status checks.

    No count, freshness, or overlap policy applies; the operator's list is
    authoritative once every id exists, is active, and appears only once.
    """

    def __init__(self, *, lookup: CatalogLookup) -> None:
        self._lookup = lookup

    async def select_manual(self, ids: Sequence[ItemId]) -> SelectionResult:
        requested = list(ids)
        if not requested:
            raise ManualSelectionRequiredError()

        duplicates = [item_id for item_id, seen in Counter(requested).items() if seen > 1]
        if duplicates:
            logger.error(
                "Duplicate question ids in manual selection",
                extra={"requested": len(requested), "unique": len(set(requested))},
            )
            raise DuplicateIdentifiersError(duplicates)

        found = await self._lookup.find_by_ids(requested)
        found_by_id = {item.id: item for item in found}

        missing = [item_id for item_id in requested if item_id not in found_by_id]
        if missing:
            logger.error("Questions not found", extra={"missing_ids": missing})
            raise ItemsNotFoundError(missing)

        inactive = [item_id for item_id in requested if not found_by_id[item_id].is_eligible]
        if inactive:
            logger.error("Inactive questions in manual selection", extra={"inactive_ids": inactive})
            raise InactiveItemsError(inactive)

        logger.info("Manual selection validated", extra={"count": len(requested)})
        return SelectionResult(
            item_ids=tuple(requested),
            mode=AllocationMode.MANUAL,
        )
