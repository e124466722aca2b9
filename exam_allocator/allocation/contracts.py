"""Contracts for the stores the allocation engine reads from."""

from __future__ import annotations

from collections.abc import AsyncIterator, Hashable, Iterable
from dataclasses import dataclass
from types import TracebackType
from typing import Protocol, runtime_checkable

ItemId = Hashable
CategoryId = Hashable


@dataclass(frozen=True, slots=True)
class CatalogItem:
    """Read-only view of one catalog question."""

    id: ItemId
    category_id: CategoryId | None = None
    is_active: bool = True
    deleted: bool = False

    @property
    def is_eligible(self) -> bool:
        return self.is_active and not self.deleted


@runtime_checkable
class CatalogStream(Protocol):
    """Closeable async iterator over catalog items.

    Leaving the ``async with`` block releases the store-side cursor, whether the
    caller read everything, stopped early, or raised.
    """

    def __aiter__(self) -> AsyncIterator[CatalogItem]:
        """Iterate items one at a time."""

    async def __aenter__(self) -> CatalogStream:
        """Open the underlying cursor."""

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        """Close the underlying cursor."""

    async def aclose(self) -> None:
        """Close the underlying cursor; safe to call more than once."""


class UsageIndex(Protocol):
    """Which questions are referenced by at least one active package."""

    async def currently_used_ids(self) -> set[ItemId]:
        """Return ids referenced by any non-deleted, active package."""


class CatalogScanner(Protocol):
    """Lazy enumeration of eligible catalog questions."""

    async def count(self, category_id: CategoryId | None = None) -> int:
        """Return the number of active, non-deleted questions in scope."""

    def stream(self, category_id: CategoryId | None = None) -> CatalogStream:
        """Return a fresh stream of active, non-deleted questions in scope."""


class UsageCounter(Protocol):
    """Batch package-usage counts."""

    async def batch_count(self, ids: Iterable[ItemId]) -> dict[ItemId, int]:
        """Return active-package counts for every id in one round trip."""


class CatalogLookup(Protocol):
    """Batch lookup of questions by id, including inactive ones."""

    async def find_by_ids(self, ids: Iterable[ItemId]) -> list[CatalogItem]:
        """Return the questions that exist among ``ids``."""
