"""SemanticStore: one record kind, one table, one connection handle."""

from __future__ import annotations

import asyncio
import logging
from collections import Counter
from datetime import datetime
from typing import Any

from .config import StoreConfig
from .connection import LanceConnection, fetch_rows
from .embedding import EmbeddingAdapter, create_provider
from .errors import ConfigurationError, StoreUnavailable
from .kinds import IDEAS, MEMORIES, RecordKind
from .models import BaseRecord, RecordFilter, Reminder, SearchResult
from .query import QueryEngine
from .reminders import ReminderStore
from .repository import RecordRepository
from .schema import IndexSchema

logger = logging.getLogger(__name__)


class SemanticStore:
    """Facade over the repository, query engine and reminder scan of one kind.

    ``initialize()`` connects and provisions the tables; it must complete
    before any other call. Use as ``async with`` to close automatically.
    """

    def __init__(
        self,
        kind: RecordKind,
        config: StoreConfig,
        embedder: EmbeddingAdapter | None = None,
        connection: LanceConnection | None = None,
    ) -> None:
        self.kind = kind
        self.config = config
        self.embedder = embedder or EmbeddingAdapter(create_provider(config), config.vector_dimension)
        if self.embedder.dimension != config.vector_dimension:
            raise ConfigurationError(
                f"Embedder dimension {self.embedder.dimension} does not match "
                f"vector_dimension {config.vector_dimension}"
            )
        self.connection = connection or LanceConnection(config.uri, config.api_key, config.region)
        self.schema = IndexSchema(
            kind,
            config.table_name,
            config.vector_dimension,
            policy=config.provision_policy,
            ann_min_rows=config.ann_min_rows,
        )
        self._table: Any = None
        self._reminder_table: Any = None
        self._repository: RecordRepository | None = None
        self._query: QueryEngine | None = None
        self._reminders: ReminderStore | None = None

    async def initialize(self) -> None:
        db = await asyncio.to_thread(self.connection.connect)
        self._table, self._reminder_table = await asyncio.to_thread(self.schema.provision, db)
        self._reminders = ReminderStore(self.connection, self._reminder_table)
        self._repository = RecordRepository(
            self.kind,
            self.connection,
            self._table,
            self.schema.record_schema(),
            self.embedder,
            self._reminders,
        )
        self._query = QueryEngine(
            self.kind,
            self.connection,
            self._table,
            self.embedder,
            self._reminders,
            max_limit=self.config.max_limit,
        )
        logger.info("%s store initialized (table=%s)", self.kind.name.capitalize(), self.config.table_name)

    async def close(self) -> None:
        self._repository = self._query = self._reminders = None
        self._table = self._reminder_table = None
        self.connection.disconnect()

    async def __aenter__(self) -> SemanticStore:
        await self.initialize()
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.close()

    @property
    def is_ready(self) -> bool:
        return self._repository is not None

    def _ready(self) -> tuple[RecordRepository, QueryEngine, ReminderStore]:
        if self._repository is None or self._query is None or self._reminders is None:
            raise StoreUnavailable(f"{self.kind.name} store is not initialized")
        return self._repository, self._query, self._reminders

    # -- records -------------------------------------------------------------

    async def create(self, data: Any) -> BaseRecord:
        return await self._ready()[0].create(data)

    async def get(self, record_id: str) -> BaseRecord | None:
        return await self._ready()[0].get(record_id)

    async def update(self, record_id: str, patch: Any) -> BaseRecord | None:
        return await self._ready()[0].update(record_id, patch)

    async def delete(self, record_id: str) -> bool:
        return await self._ready()[0].delete(record_id)

    # -- queries -------------------------------------------------------------

    async def search(
        self,
        query: str,
        limit: int | None = None,
        threshold: float | None = None,
        filter: RecordFilter | dict | None = None,
    ) -> list[SearchResult]:
        return await self._ready()[1].search(
            query,
            limit=self.config.default_search_limit if limit is None else limit,
            threshold=self.config.default_threshold if threshold is None else threshold,
            filter=filter,
        )

    async def list(
        self, filter: RecordFilter | dict | None = None, limit: int | None = None
    ) -> list[BaseRecord]:
        return await self._ready()[1].list(
            filter, limit=self.config.default_list_limit if limit is None else limit
        )

    # -- reminders -----------------------------------------------------------

    async def due_reminders(self, now: datetime | None = None) -> list[Reminder]:
        return await self._ready()[2].due(now)

    async def mark_sent(self, reminder_id: str) -> bool:
        return await self._ready()[2].mark_sent(reminder_id)

    async def deactivate_reminder(self, reminder_id: str) -> bool:
        return await self._ready()[2].deactivate(reminder_id)

    # -- maintenance ---------------------------------------------------------

    async def reindex(self) -> list[str]:
        """Build any secondary index the table has grown enough data for."""
        self._ready()
        return await self.connection.run(
            "Reindex", self.schema.ensure_indexes, self._table, self._reminder_table
        )

    async def stats(self) -> dict[str, Any]:
        """Record and reminder counts, records per category, and built indexes."""
        self._ready()
        total = await self.connection.run("Count records", self._table.count_rows)
        reminder_total = await self.connection.run("Count reminders", self._reminder_table.count_rows)

        by_category: Counter[str] = Counter()
        if self.kind.metadata_field("category") is not None and total:
            rows = await self.connection.run("Load categories", fetch_rows, self._table, None, ["category"])
            by_category.update(row["category"] for row in rows if row.get("category") is not None)

        try:
            indices = await asyncio.to_thread(self._table.list_indices)
        except Exception as e:
            logger.warning("Could not list indices: %s", e)
            indices = []

        return {
            "kind": self.kind.name,
            "table": self.config.table_name,
            "count": total,
            "reminders": reminder_total,
            "by_category": dict(sorted(by_category.items())),
            "indexes": sorted(
                f"{getattr(idx, 'index_type', 'index')}({', '.join(getattr(idx, 'columns', []) or [])})"
                for idx in indices
            ),
            "vector_index": any(
                "vector" in (getattr(idx, "columns", None) or []) for idx in indices
            ),
        }


def idea_store(config: StoreConfig | None = None, embedder: EmbeddingAdapter | None = None) -> SemanticStore:
    return SemanticStore(IDEAS, config or StoreConfig.from_env(IDEAS.default_table), embedder)


def memory_store(config: StoreConfig | None = None, embedder: EmbeddingAdapter | None = None) -> SemanticStore:
    return SemanticStore(MEMORIES, config or StoreConfig.from_env(MEMORIES.default_table), embedder)
