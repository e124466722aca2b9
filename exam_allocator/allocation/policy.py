"""Freshness quota and overlap cap arithmetic."""

from __future__ import annotations

import math
from dataclasses import dataclass
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from exam_allocator.config import Settings

DEFAULT_MAX_OVERLAP_PERCENT = 10.0
DEFAULT_MIN_FRESH_PERCENT = 80.0


def validate_count(count: object) -> int:
    """Reject non-integer and non-positive question counts."""
    if isinstance(count, bool) or not isinstance(count, int):
        raise ValueError(f"count must be an integer, got {count!r}")
    if count < 1:
        raise ValueError(f"count must be >= 1, got {count}")
    return count


@dataclass(frozen=True)
class AllocationPolicy:
    """Limits applied to every automatic selection.

    Both thresholds round up, so the overlap cap is slightly permissive at
    fractional boundaries: 7 questions at 10% allow ceil(0.7) = 1 reused.
    """

    max_overlap_percent: float = DEFAULT_MAX_OVERLAP_PERCENT
    min_fresh_percent: float = DEFAULT_MIN_FRESH_PERCENT

    def __post_init__(self) -> None:
        for name in ("max_overlap_percent", "min_fresh_percent"):
            value = getattr(self, name)
            if not 0 <= value <= 100:
                raise ValueError(f"{name} must be between 0 and 100, got {value}")

    @classmethod
    def from_settings(cls, settings: Settings) -> AllocationPolicy:
        return cls(
            max_overlap_percent=settings.allocation_max_overlap_percent,
            min_fresh_percent=settings.allocation_min_fresh_percent,
        )

    def min_fresh_required(self, count: int) -> int:
        return math.ceil(count * self.min_fresh_percent / 100.0)

    def max_reuse_allowed(self, count: int) -> int:
        return math.ceil(count * self.max_overlap_percent / 100.0)
