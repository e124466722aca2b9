"""Custom exception classes for the application."""

from collections.abc import Hashable, Iterable
from typing import Any


class ExamAllocatorError(Exception):
    """Base exception for all application errors."""

    def __init__(self, message: str, details: dict[str, Any] | None = None) -> None:
        self.message = message
        self.details = details or {}
        super().__init__(self.message)


def _sorted_ids(ids: Iterable[Hashable]) -> list[Hashable]:
    values = list(ids)
    try:
        return sorted(values)  # type: ignore[type-var]
    except TypeError:
        return values


# Allocation Errors
class AllocationError(ExamAllocatorError):
    """Base class for question allocation failures.

    ``kind`` is a stable, locale-agnostic identifier; ``details`` carries the
    structured parameters (counts, identifiers) for the caller to render.
    """

    kind = "allocation_error"


class NoEligibleItemsError(AllocationError):
    """No active questions match the requested scope."""

    kind = "no_eligible_items"

    def __init__(self, category_id: Hashable | None = None) -> None:
        scope = f"category {category_id}" if category_id is not None else "the catalog"
        super().__init__(
            f"No eligible questions in {scope}",
            {"category_id": category_id},
        )


class InsufficientCatalogError(AllocationError):
    """Fewer eligible questions than requested."""

    kind = "insufficient_catalog"

    def __init__(self, requested: int, available: int, category_id: Hashable | None = None) -> None:
        super().__init__(
            f"Requested {requested} questions but only {available} are available",
            {"requested": requested, "available": available, "category_id": category_id},
        )


class InsufficientUniqueItemsError(AllocationError):
    """Freshness quota and overlap cap cannot both be satisfied."""

    kind = "insufficient_unique_items"

    def __init__(
        self,
        requested: int,
        *,
        fresh_available: int,
        reused_available: int,
        max_reuse: int,
        min_fresh: int,
    ) -> None:
        super().__init__(
            f"Cannot select {requested} questions: {fresh_available} unused and "
            f"at most {max_reuse} reused allowed",
            {
                "requested": requested,
                "fresh_available": fresh_available,
                "reused_available": reused_available,
                "max_reuse": max_reuse,
                "min_fresh": min_fresh,
            },
        )


class SelectionInvariantViolatedError(AllocationError):
    """The selection did not produce exactly the requested number of questions."""

    kind = "selection_invariant_violated"

    def __init__(self, expected: int, actual: int) -> None:
        super().__init__(
            f"Selection invariant violated: expected {expected}, got {actual}",
            {"expected": expected, "actual": actual},
        )


class DuplicateIdentifiersError(AllocationError):
    """Manual selection lists the same question more than once."""

    kind = "duplicate_identifiers"

    def __init__(self, duplicate_ids: Iterable[Hashable]) -> None:
        duplicates = _sorted_ids(duplicate_ids)
        super().__init__(
            f"Duplicate question ids: {duplicates}",
            {"duplicate_ids": duplicates},
        )


class ItemsNotFoundError(AllocationError):
    """Manual selection references questions that do not exist."""

    kind = "items_not_found"

    def __init__(self, missing_ids: Iterable[Hashable]) -> None:
        missing = _sorted_ids(missing_ids)
        super().__init__(f"Questions not found: {missing}", {"missing_ids": missing})


class InactiveItemsError(AllocationError):
    """Manual selection references inactive or deleted questions."""

    kind = "inactive_items"

    def __init__(self, inactive_ids: Iterable[Hashable]) -> None:
        inactive = _sorted_ids(inactive_ids)
        super().__init__(f"Inactive questions: {inactive}", {"inactive_ids": inactive})


class ManualSelectionRequiredError(AllocationError):
    """Manual mode was requested without any question ids."""

    kind = "manual_selection_required"

    def __init__(self) -> None:
        super().__init__("Manual selection requires at least one question id")


class CategoryRequiredError(AllocationError):
    """Category mode was requested without a category."""

    kind = "category_required"

    def __init__(self) -> None:
        super().__init__("Category allocation requires a category id")


class LockTimeoutError(AllocationError):
    """The allocation lock could not be acquired within the configured wait."""

    kind = "lock_timeout"

    def __init__(self, timeout_seconds: float) -> None:
        super().__init__(
            f"Allocation lock not acquired within {timeout_seconds:.2f}s",
            {"timeout_seconds": timeout_seconds},
        )


class StorageError(AllocationError):
    """A collaborator failed to read from the backing store."""

    kind = "storage_error"

    def __init__(
        self,
        message: str,
        *,
        operation: str | None = None,
        transient: bool = False,
        details: dict[str, Any] | None = None,
    ) -> None:
        payload = dict(details or {})
        payload.setdefault("operation", operation)
        payload.setdefault("transient", transient)
        super().__init__(message, payload)

    @property
    def transient(self) -> bool:
        return bool(self.details.get("transient"))


# Package Errors
class PackageError(ExamAllocatorError):
    """Base class for exam package errors."""

    pass


class PackageNotFoundError(PackageError):
    """Exam package not found."""

    def __init__(self, package_id: Hashable) -> None:
        super().__init__(f"Exam package not found: {package_id}", {"package_id": package_id})


class RegenerationNotAllowedError(PackageError):
    """Manually assembled packages cannot be regenerated."""

    def __init__(self, package_id: Hashable) -> None:
        super().__init__(
            f"Manual package cannot be regenerated: {package_id}",
            {"package_id": package_id},
        )


class ManualOnlyOperationError(PackageError):
    """Operation applies only to (or never to) manually assembled packages."""

    def __init__(self, package_id: Hashable, message: str) -> None:
        super().__init__(f"{message}: {package_id}", {"package_id": package_id})
