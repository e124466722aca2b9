"""Question allocation engine."""

from exam_allocator.allocation.algorithm import AllocationAlgorithm
from exam_allocator.allocation.contracts import (
    CatalogItem,
    CatalogLookup,
    CatalogScanner,
    CatalogStream,
    UsageCounter,
    UsageIndex,
)
from exam_allocator.allocation.facade import AllocationFacade
from exam_allocator.allocation.guard import ConcurrencyGuard, get_allocation_guard
from exam_allocator.allocation.manual import ManualSelector
from exam_allocator.allocation.policy import AllocationPolicy
from exam_allocator.allocation.types import AllocationMode, AllocationRequest, SelectionResult

__all__ = [
    "AllocationAlgorithm",
    "AllocationFacade",
    "AllocationMode",
    "AllocationPolicy",
    "AllocationRequest",
    "CatalogItem",
    "CatalogLookup",
    "CatalogScanner",
    "CatalogStream",
    "ConcurrencyGuard",
    "ManualSelector",
    "SelectionResult",
    "UsageCounter",
    "UsageIndex",
    "get_allocation_guard",
]
