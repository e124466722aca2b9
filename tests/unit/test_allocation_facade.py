"""Unit tests for the allocation facade and its critical section."""

from __future__ import annotations

import asyncio
import random
from collections.abc import AsyncIterator, Iterable

import pytest

from exam_allocator.allocation.contracts import CatalogItem
from exam_allocator.allocation.facade import AllocationFacade
from exam_allocator.allocation.guard import ConcurrencyGuard
from exam_allocator.allocation.types import AllocationMode, AllocationRequest, SelectionResult
from exam_allocator.core.exceptions import (
    CategoryRequiredError,
    DuplicateIdentifiersError,
    StorageError,
)


class _FakeStream:
    def __init__(self, items: list[CatalogItem]) -> None:
        self._items = items

    async def __aenter__(self) -> _FakeStream:
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.aclose()

    def __aiter__(self) -> AsyncIterator[CatalogItem]:
        return self._iterate()

    async def _iterate(self) -> AsyncIterator[CatalogItem]:
        for item in self._items:
            await asyncio.sleep(0)
            yield item

    async def aclose(self) -> None:
        return None


class _FakeStore:
    """Catalog plus package links; every read yields to the event loop."""

    def __init__(self, items: list[CatalogItem]) -> None:
        self.items = items
        self.packages: dict[int, tuple[int, ...]] = {}
        self.fail_usage_reads = False

    async def currently_used_ids(self) -> set[int]:
        await asyncio.sleep(0)
        if self.fail_usage_reads:
            raise ConnectionError("connection is closed")
        return {item_id for ids in self.packages.values() for item_id in ids}

    async def batch_count(self, ids: Iterable[int]) -> dict[int, int]:
        await asyncio.sleep(0)
        return {
            item_id: sum(1 for linked in self.packages.values() if item_id in linked)
            for item_id in ids
        }

    async def count(self, category_id: object | None = None) -> int:
        await asyncio.sleep(0)
        return len(self._eligible(category_id))

    def stream(self, category_id: object | None = None) -> _FakeStream:
        return _FakeStream(self._eligible(category_id))

    async def find_by_ids(self, ids: Iterable[int]) -> list[CatalogItem]:
        wanted = set(ids)
        return [item for item in self.items if item.id in wanted]

    async def persist(self, result: SelectionResult) -> None:
        await asyncio.sleep(0)
        self.packages[len(self.packages) + 1] = result.item_ids

    def _eligible(self, category_id: object | None) -> list[CatalogItem]:
        return [
            item
            for item in self.items
            if item.is_eligible and (category_id is None or item.category_id == category_id)
        ]


def _facade(store: _FakeStore, guard: ConcurrencyGuard | None = None) -> AllocationFacade:
    return AllocationFacade(
        usage_index=store,
        scanner=store,
        usage_counter=store,
        lookup=store,
        guard=guard or ConcurrencyGuard(),
        rng=random.Random(3),
    )


def _store(size: int, *, category_id: int | None = None) -> _FakeStore:
    return _FakeStore([CatalogItem(id=i, category_id=category_id) for i in range(1, size + 1)])


@pytest.mark.asyncio
async def test_allocate_routes_auto_any_to_algorithm() -> None:
    store = _store(100)

    result = await _facade(store).allocate(AllocationRequest.auto_any(20))

    assert result.size == 20
    assert result.mode is AllocationMode.AUTO_ANY


@pytest.mark.asyncio
async def test_allocate_routes_category_requests_with_category_scope() -> None:
    store = _FakeStore(
        [CatalogItem(id=i, category_id=1) for i in range(1, 11)]
        + [CatalogItem(id=i, category_id=2) for i in range(11, 31)]
    )

    result = await _facade(store).allocate(AllocationRequest.auto_category(1, 10))

    assert result.ids == frozenset(range(1, 11))
    assert result.mode is AllocationMode.AUTO_CATEGORY


@pytest.mark.asyncio
async def test_allocate_routes_manual_requests_to_validation() -> None:
    store = _store(10)

    result = await _facade(store).allocate(AllocationRequest.manual([3, 1, 2]))

    assert result.item_ids == (3, 1, 2)
    with pytest.raises(DuplicateIdentifiersError):
        await _facade(store).allocate(AllocationRequest.manual([1, 1]))


@pytest.mark.asyncio
async def test_category_mode_requires_a_category() -> None:
    guard = ConcurrencyGuard()

    with pytest.raises(CategoryRequiredError):
        await _facade(_store(10), guard).allocate(AllocationRequest.auto_category(None, 5))

    assert not guard.locked


@pytest.mark.asyncio
async def test_allocate_runs_persist_while_lock_is_held() -> None:
    store = _store(10)
    guard = ConcurrencyGuard()
    observed: list[bool] = []

    async def _persist(result: SelectionResult) -> None:
        observed.append(guard.held_by_current_task)
        await store.persist(result)

    await _facade(store, guard).allocate(AllocationRequest.auto_any(5), persist=_persist)

    assert observed == [True]
    assert not guard.locked
    assert len(store.packages) == 1


@pytest.mark.asyncio
async def test_reserve_holds_lock_until_block_exits() -> None:
    store = _store(10)
    guard = ConcurrencyGuard()

    async with _facade(store, guard).reserve(AllocationRequest.auto_any(5)) as result:
        assert guard.locked
        await store.persist(result)

    assert not guard.locked


@pytest.mark.asyncio
async def test_select_requires_the_lock() -> None:
    with pytest.raises(RuntimeError, match="must be held"):
        await _facade(_store(10)).select(AllocationRequest.auto_any(5))


@pytest.mark.asyncio
async def test_concurrent_allocations_never_share_fresh_items() -> None:
    store = _store(100)
    guard = ConcurrencyGuard()
    requests = 5

    results = await asyncio.gather(
        *(
            _facade(store, guard).allocate(AllocationRequest.auto_any(20), persist=store.persist)
            for _ in range(requests)
        )
    )

    all_ids = [item_id for result in results for item_id in result.item_ids]
    assert len(all_ids) == requests * 20
    assert len(set(all_ids)) == len(all_ids)
    assert all(result.reused_count == 0 for result in results)


@pytest.mark.asyncio
async def test_store_failures_surface_as_storage_error_with_context() -> None:
    store = _store(10)
    store.fail_usage_reads = True
    guard = ConcurrencyGuard()

    with pytest.raises(StorageError) as exc_info:
        await _facade(store, guard).allocate(AllocationRequest.auto_any(5))

    assert exc_info.value.kind == "storage_error"
    assert exc_info.value.transient is True
    assert exc_info.value.details["mode"] == "auto_any"
    assert exc_info.value.details["count"] == 5
    assert not guard.locked
