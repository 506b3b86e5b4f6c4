"""Tests for the shared metadata cache."""

from __future__ import annotations

import asyncio

import pytest
from conftest import FakeConnection

from access_audit.connection import AuditContext, MetadataCache


def _connection() -> FakeConnection:
    return FakeConnection(
        metadata={"Profile": {name: {"fullName": name} for name in ("A", "B", "C", "D", "E")}},
    )


@pytest.mark.asyncio
async def test_concurrent_requests_share_one_retrieve() -> None:
    connection = _connection()
    cache = MetadataCache(connection)
    first, second = await asyncio.gather(cache.retrieve("Profile", ["A"]), cache.retrieve("Profile", ["A"]))
    assert first == second == {"A": {"fullName": "A"}}
    assert connection.retrieves == [("Profile", ["A"])]


@pytest.mark.asyncio
async def test_cached_documents_are_not_fetched_again() -> None:
    connection = _connection()
    cache = MetadataCache(connection)
    await cache.retrieve("Profile", ["A", "B"])
    result = await cache.retrieve("Profile", ["B", "C"])
    assert set(result) == {"B", "C"}
    assert connection.retrieves == [("Profile", ["A", "B"]), ("Profile", ["C"])]


@pytest.mark.asyncio
async def test_types_are_cached_separately() -> None:
    connection = _connection()
    cache = MetadataCache(connection)
    await cache.retrieve("Profile", ["A"])
    assert await cache.retrieve("PermissionSet", ["A"]) == {}
    assert connection.retrieves == [("Profile", ["A"]), ("PermissionSet", ["A"])]


@pytest.mark.asyncio
async def test_missing_names_are_absent() -> None:
    cache = MetadataCache(_connection())
    assert await cache.retrieve("Profile", ["A", "Missing"]) == {"A": {"fullName": "A"}}


@pytest.mark.asyncio
async def test_retrieves_in_batches() -> None:
    connection = _connection()
    cache = MetadataCache(connection, batch_size=2)
    result = await cache.retrieve("Profile", ["A", "B", "C", "D", "E"])
    assert len(result) == 5
    assert [names for _, names in connection.retrieves] == [["A", "B"], ["C", "D"], ["E"]]


@pytest.mark.asyncio
async def test_duplicate_names_are_fetched_once() -> None:
    connection = _connection()
    cache = MetadataCache(connection)
    await cache.retrieve("Profile", ["A", "A", "B"])
    assert connection.retrieves == [("Profile", ["A", "B"])]


@pytest.mark.asyncio
async def test_failures_are_not_cached() -> None:
    connection = _connection()
    connection.failing_types.add("Profile")
    cache = MetadataCache(connection)
    with pytest.raises(RuntimeError, match="Retrieve of Profile failed"):
        await cache.retrieve("Profile", ["A"])

    connection.failing_types.clear()
    assert await cache.retrieve("Profile", ["A"]) == {"A": {"fullName": "A"}}
    assert len(connection.retrieves) == 2


@pytest.mark.asyncio
async def test_failure_reaches_concurrent_waiters() -> None:
    connection = _connection()
    connection.failing_types.add("Profile")
    cache = MetadataCache(connection)
    outcomes = await asyncio.gather(
        cache.retrieve("Profile", ["A"]),
        cache.retrieve("Profile", ["A"]),
        return_exceptions=True,
    )
    assert all(isinstance(o, RuntimeError) for o in outcomes)
    assert len(connection.retrieves) == 1


@pytest.mark.asyncio
async def test_disabled_cache_always_fetches() -> None:
    connection = _connection()
    context = AuditContext.create(connection, cache_metadata=False)
    await context.cache.retrieve("Profile", ["A"])
    await context.cache.retrieve("Profile", ["A"])
    assert len(connection.retrieves) == 2
