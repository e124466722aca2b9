"""Overlap and regeneration statistics for persisted packages."""

from __future__ import annotations

import logging
from collections.abc import Hashable, Iterable, Mapping
from dataclasses import dataclass

from exam_allocator.allocation.contracts import ItemId

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class OverlapStatistics:
    """How many of a package's questions are shared with other packages."""

    total: int
    shared: int

    @property
    def unique(self) -> int:
        return self.total - self.shared

    @property
    def unique_percent(self) -> float:
        if self.total == 0:
            return 100.0
        return self.unique * 100.0 / self.total

    @classmethod
    def from_usage(
        cls,
        item_ids: Iterable[ItemId],
        usage_counts: Mapping[ItemId, int],
    ) -> OverlapStatistics:
        """Build from usage counts taken after the package was persisted.

        A count above one means another active package also uses the question.
        """
        ids = set(item_ids)
        shared = sum(1 for item_id in ids if usage_counts.get(item_id, 0) > 1)
        return cls(total=len(ids), shared=shared)

    def log(self, package_id: Hashable) -> None:
        logger.info(
            "Package overlap analysis",
            extra={
                "package_id": package_id,
                "total": self.total,
                "shared": self.shared,
                "unique": self.unique,
                "unique_percent": round(self.unique_percent, 1),
            },
        )


@dataclass(frozen=True)
class RegenerationStatistics:
    """Difference between a package's question set before and after regeneration."""

    total: int
    retained: int
    removed: int
    added: int

    @classmethod
    def compare(
        cls,
        old_ids: Iterable[ItemId],
        new_ids: Iterable[ItemId],
    ) -> RegenerationStatistics:
        old = set(old_ids)
        new = set(new_ids)
        retained = len(old & new)
        return cls(
            total=len(new),
            retained=retained,
            removed=len(old) - retained,
            added=len(new) - retained,
        )

    def log(self, package_id: Hashable) -> None:
        logger.info(
            "Package regeneration statistics",
            extra={
                "package_id": package_id,
                "total": self.total,
                "retained": self.retained,
                "removed": self.removed,
                "added": self.added,
            },
        )
