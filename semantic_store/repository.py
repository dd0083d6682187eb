"""CRUD for records and the text/vector consistency invariant."""

from __future__ import annotations

import logging
import uuid
from typing import Any

import pyarrow as pa

from .connection import LanceConnection, fetch_rows
from .embedding import EmbeddingAdapter, EmbeddingResult
from .errors import EmbeddingFailed, ProviderError, StoreError, ValidationError
from .filters import quote
from .kinds import VECTOR_FIELD, RecordKind
from .models import BaseRecord, parse_model
from .reminders import ReminderStore, now_ms

logger = logging.getLogger(__name__)


async def embed_or_fail(embedder: EmbeddingAdapter, text: str) -> EmbeddingResult:
    """Embed ``text``; any provider failure becomes EmbeddingFailed."""
    try:
        return await embedder.embed(text)
    except ProviderError as e:
        logger.error("Embedding failed (retryable=%s): %s", e.retryable, e)
        raise EmbeddingFailed.from_provider(e) from e


def _check_id(record_id: str) -> None:
    if not isinstance(record_id, str) or not record_id.strip():
        raise ValidationError("Record id is required", field="id")


class RecordRepository:
    """Owns one kind's record table and, through ReminderStore, its reminders.

    Every write embeds first and persists second, so an embedding failure
    leaves nothing behind.
    """

    def __init__(
        self,
        kind: RecordKind,
        connection: LanceConnection,
        table: Any,
        schema: pa.Schema,
        embedder: EmbeddingAdapter,
        reminders: ReminderStore,
    ) -> None:
        self.kind = kind
        self.connection = connection
        self.table = table
        self.schema = schema
        self.embedder = embedder
        self.reminders = reminders

    def _to_arrow(self, rows: list[dict[str, Any]]) -> pa.Table:
        return pa.Table.from_pylist(rows, schema=self.schema)

    def _upsert(self, rows: list[dict[str, Any]]) -> None:
        # Single-key atomic replace; no version check, last writer wins
        (
            self.table.merge_insert("id")
            .when_matched_update_all()
            .when_not_matched_insert_all()
            .execute(self._to_arrow(rows))
        )

    async def fetch_row(self, record_id: str, with_vector: bool = False) -> dict[str, Any] | None:
        columns = None if with_vector else self.kind.columns
        rows = await self.connection.run(
            f"Get {self.kind.name}", fetch_rows, self.table, f"id = {quote(record_id)}", columns
        )
        return rows[0] if rows else None

    async def create(self, data: Any) -> BaseRecord:
        item = parse_model(self.kind.create_model, data)
        values = item.model_dump(exclude={"reminders"})

        embedding = await embed_or_fail(self.embedder, self.kind.primary_text(values))

        timestamp = now_ms()
        record_id = uuid.uuid4().hex
        values.update(id=record_id, created_at=timestamp, updated_at=timestamp)
        row = self.kind.to_row(values)
        row[VECTOR_FIELD] = embedding.vector

        await self.connection.run(f"Create {self.kind.name}", self.table.add, self._to_arrow([row]))
        reminders = []
        if item.reminders:
            try:
                reminders = await self.reminders.replace(record_id, item.reminders, timestamp)
            except StoreError:
                # A failed create leaves nothing behind
                await self.connection.run(
                    f"Roll back {self.kind.name}", self.table.delete, f"id = {quote(record_id)}"
                )
                raise

        logger.info(
            "Created %s %s (tokens=%d, reminders=%d)",
            self.kind.name,
            record_id,
            embedding.tokens,
            len(reminders),
        )
        return self.kind.from_row(row, reminders)

    async def get(self, record_id: str) -> BaseRecord | None:
        _check_id(record_id)
        row = await self.fetch_row(record_id)
        if row is None:
            return None
        return self.kind.from_row(row, await self.reminders.for_record(record_id))

    async def update(self, record_id: str, patch: Any) -> BaseRecord | None:
        """Apply provided fields only. Returns None when the record does not exist."""
        _check_id(record_id)
        item = parse_model(self.kind.update_model, patch)
        changes = item.model_dump(exclude_unset=True, exclude={"reminders"})
        record_fields = self.kind.record_model.model_fields
        for name, value in changes.items():
            if value is None and record_fields[name].default is not None:
                raise ValidationError(f"{name} cannot be cleared", field=name)

        existing = await self.fetch_row(record_id, with_vector=True)
        if existing is None:
            return None

        merged = {**existing, **changes}

        text_changed = any(
            name in changes and changes[name] != existing[name] for name in self.kind.text_fields
        )
        if text_changed:
            embedding = await embed_or_fail(self.embedder, self.kind.primary_text(merged))
            vector = embedding.vector
        else:
            vector = existing[VECTOR_FIELD]

        # updated_at must advance even when the clock has not
        merged["updated_at"] = max(now_ms(), existing["updated_at"] + 1)
        row = self.kind.to_row(merged)
        row[VECTOR_FIELD] = vector

        await self.connection.run(f"Update {self.kind.name}", self._upsert, [row])
        if item.reminders is not None:
            reminders = await self.reminders.replace(record_id, item.reminders, merged["updated_at"])
        else:
            reminders = await self.reminders.for_record(record_id)

        logger.info(
            "Updated %s %s (fields=%s, re-embedded=%s)",
            self.kind.name,
            record_id,
            sorted(changes) + (["reminders"] if item.reminders is not None else []),
            text_changed,
        )
        return self.kind.from_row(row, reminders)

    async def delete(self, record_id: str) -> bool:
        """True iff the record existed. Its reminders go with it."""
        _check_id(record_id)
        where = f"id = {quote(record_id)}"
        count = await self.connection.run(f"Count {self.kind.name}", self.table.count_rows, where)
        if count == 0:
            logger.info("Delete %s %s: not found", self.kind.name, record_id)
            return False
        # Reminders first so a half-finished delete never leaves orphans due
        await self.reminders.delete_for(record_id)
        await self.connection.run(f"Delete {self.kind.name}", self.table.delete, where)
        logger.info("Deleted %s %s", self.kind.name, record_id)
        return True
