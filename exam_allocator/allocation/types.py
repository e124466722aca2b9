"""Allocation requests and results."""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass, field
from enum import Enum

from exam_allocator.allocation.contracts import CategoryId, ItemId


class AllocationMode(str, Enum):
    """How questions are chosen for a package."""

    AUTO_ANY = "auto_any"
    AUTO_CATEGORY = "auto_category"
    MANUAL = "manual"

    @property
    def is_auto(self) -> bool:
        return self is not AllocationMode.MANUAL


@dataclass(frozen=True)
class AllocationRequest:
    """One request for a package's question set."""

    mode: AllocationMode
    count: int
    category_id: CategoryId | None = None
    item_ids: tuple[ItemId, ...] = ()

    @classmethod
    def auto_any(cls, count: int) -> AllocationRequest:
        return cls(mode=AllocationMode.AUTO_ANY, count=count)

    @classmethod
    def auto_category(cls, category_id: CategoryId | None, count: int) -> AllocationRequest:
        return cls(mode=AllocationMode.AUTO_CATEGORY, count=count, category_id=category_id)

    @classmethod
    def manual(cls, item_ids: Sequence[ItemId]) -> AllocationRequest:
        ids = tuple(item_ids)
        return cls(mode=AllocationMode.MANUAL, count=len(ids), item_ids=ids)

    def log_context(self) -> dict[str, object]:
        return {
            "mode": self.mode.value,
            "count": self.count,
            "category_id": self.category_id,
        }


@dataclass(frozen=True)
class SelectionResult:
    """Selected question ids, split into fresh and reused.

    ``item_ids`` lists fresh ids first, then reused ones. Manual selections
    keep the order the operator gave and leave both splits empty, since usage
    is not consulted for them.
    """

    item_ids: tuple[ItemId, ...]
    fresh_ids: frozenset[ItemId] = field(default_factory=frozenset)
    reused_ids: frozenset[ItemId] = field(default_factory=frozenset)
    mode: AllocationMode = AllocationMode.AUTO_ANY

    @property
    def ids(self) -> frozenset[ItemId]:
        return frozenset(self.item_ids)

    @property
    def size(self) -> int:
        return len(self.item_ids)

    @property
    def fresh_count(self) -> int:
        return len(self.fresh_ids)

    @property
    def reused_count(self) -> int:
        return len(self.reused_ids)

    @property
    def overlap_percent(self) -> float:
        if not self.item_ids:
            return 0.0
        return self.reused_count * 100.0 / len(self.item_ids)
