"""Remote org capability used by the audit engine, plus a shared metadata cache.

The engine depends on exactly three remote operations. Transport, retries
and timeouts belong to the concrete connection.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Protocol

logger = logging.getLogger(__name__)


class Connection(Protocol):
    """Connection to the audited org."""

    async def query(self, soql: str) -> list[dict[str, Any]]:
        """Run a structured query and return all records."""
        ...

    async def describe(self, sobject: str) -> dict[str, Any]:
        """Describe an object type (fields, capabilities)."""
        ...

    async def retrieve(self, metadata_type: str, names: list[str]) -> dict[str, dict[str, Any]]:
        """Bulk-fetch named metadata documents.

        Returns parsed documents keyed by name. Names that do not exist
        on the org are absent from the result.
        """
        ...


class MetadataCache:
    """Memoizes retrieved metadata documents for the duration of a run.

    Concurrent requests for the same uncached component share one
    in-flight future. Failed retrieves are not cached.
    """

    def __init__(self, connection: Connection, *, batch_size: int = 50, enabled: bool = True) -> None:
        self._connection = connection
        self._batch_size = max(batch_size, 1)
        self._enabled = enabled
        self._entries: dict[tuple[str, str], asyncio.Future[dict[str, Any] | None]] = {}

    async def retrieve(self, metadata_type: str, names: list[str]) -> dict[str, dict[str, Any]]:
        """Return metadata documents for ``names``, fetching only what is missing."""
        loop = asyncio.get_running_loop()
        waiting: list[tuple[str, asyncio.Future[dict[str, Any] | None]]] = []
        to_fetch: list[tuple[str, asyncio.Future[dict[str, Any] | None]]] = []

        for name in dict.fromkeys(names):
            key = (metadata_type, name)
            future = self._entries.get(key) if self._enabled else None
            if future is None:
                future = loop.create_future()
                if self._enabled:
                    self._entries[key] = future
                to_fetch.append((name, future))
            waiting.append((name, future))

        if to_fetch:
            logger.debug(
                "Retrieving %d %s component(s), %d served from cache",
                len(to_fetch),
                metadata_type,
                len(waiting) - len(to_fetch),
            )
            await self._fetch(metadata_type, to_fetch)

        result: dict[str, dict[str, Any]] = {}
        for name, future in waiting:
            document = await future
            if document is not None:
                result[name] = document
        return result

    async def _fetch(
        self,
        metadata_type: str,
        items: list[tuple[str, asyncio.Future[dict[str, Any] | None]]],
    ) -> None:
        for start in range(0, len(items), self._batch_size):
            batch = items[start : start + self._batch_size]
            try:
                documents = await self._connection.retrieve(metadata_type, [n for n, _ in batch])
            except BaseException as exc:
                self._abandon(metadata_type, items[start:], exc)
                raise
            for name, future in batch:
                if not future.done():
                    future.set_result(documents.get(name))

    def _abandon(
        self,
        metadata_type: str,
        items: list[tuple[str, asyncio.Future[dict[str, Any] | None]]],
        exc: BaseException,
    ) -> None:
        """Release waiters of a failed fetch and forget the entries."""
        for name, future in items:
            if self._entries.get((metadata_type, name)) is future:
                del self._entries[(metadata_type, name)]
            if future.done():
                continue
            if isinstance(exc, asyncio.CancelledError):
                future.cancel()
            else:
                future.set_exception(exc)
                # mark retrieved; the fetching caller re-raises
                future.exception()


@dataclass(frozen=True)
class AuditContext:
    """Remote capabilities shared by all policies of one run."""

    connection: Connection
    cache: MetadataCache

    @classmethod
    def create(cls, connection: Connection, *, batch_size: int = 50, cache_metadata: bool = True) -> AuditContext:
        return cls(
            connection=connection,
            cache=MetadataCache(connection, batch_size=batch_size, enabled=cache_metadata),
        )
