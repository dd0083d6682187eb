"""Similarity search and filtered listing.

Score convention: the table is searched with cosine distance, which LanceDB
reports as ``_distance = 1 - cosine_similarity`` (0 for identical
direction, 2 for opposite). A hit's ``score`` is the similarity
``1 - _distance`` (higher is better) and its ``distance`` is ``1 - score``.
Hits come back nearest first, i.e. by descending score, and any hit below
the threshold is dropped.
"""

from __future__ import annotations

import logging
import math
from typing import Any

from .connection import LanceConnection, fetch_arrow
from .embedding import EmbeddingAdapter
from .errors import ValidationError
from .filters import build_predicate
from .kinds import VECTOR_FIELD, RecordKind
from .models import BaseRecord, RecordFilter, SearchResult, parse_model
from .reminders import ReminderStore
from .repository import embed_or_fail

logger = logging.getLogger(__name__)

DEFAULT_THRESHOLD = 0.1
DEFAULT_SEARCH_LIMIT = 10
DEFAULT_LIST_LIMIT = 50


class QueryEngine:
    def __init__(
        self,
        kind: RecordKind,
        connection: LanceConnection,
        table: Any,
        embedder: EmbeddingAdapter,
        reminders: ReminderStore,
        max_limit: int = 100,
    ) -> None:
        self.kind = kind
        self.connection = connection
        self.table = table
        self.embedder = embedder
        self.reminders = reminders
        self.max_limit = max_limit

    def _prepare(self, flt: RecordFilter | dict | None, limit: int) -> str | None:
        if isinstance(limit, bool) or not isinstance(limit, int) or limit <= 0:
            raise ValidationError(f"limit must be a positive integer, got {limit!r}", field="limit")
        if limit > self.max_limit:
            raise ValidationError(f"limit cannot exceed {self.max_limit}, got {limit}", field="limit")
        if flt is None:
            return None
        parsed = parse_model(RecordFilter, flt)
        self.kind.validate_filter(parsed)
        return build_predicate(self.kind, parsed)

    def _vector_query(self, vector: list[float], where: str | None, limit: int) -> list[dict]:
        query = (
            self.table.search(vector, vector_column_name=VECTOR_FIELD)
            .distance_type("cosine")
            .select(list(self.kind.columns))
            .limit(limit)
        )
        if where:
            query = query.where(where, prefilter=True)
        return query.to_list()

    async def search(
        self,
        query_text: str,
        limit: int = DEFAULT_SEARCH_LIMIT,
        threshold: float = DEFAULT_THRESHOLD,
        filter: RecordFilter | dict | None = None,
    ) -> list[SearchResult]:
        """Nearest records to ``query_text`` with ``score >= threshold``, best first.

        The query text is always sent to the embedding provider, even when
        empty, so a provider that rejects it surfaces as EmbeddingFailed.
        """
        if not isinstance(query_text, str):
            raise ValidationError("query must be a string", field="query")
        if isinstance(threshold, bool) or not isinstance(threshold, (int, float)) or math.isnan(threshold):
            raise ValidationError(f"threshold must be a number, got {threshold!r}", field="threshold")
        if not -1.0 <= threshold <= 1.0:
            raise ValidationError(f"threshold must be within [-1, 1], got {threshold}", field="threshold")
        where = self._prepare(filter, limit)

        embedding = await embed_or_fail(self.embedder, query_text)
        rows = await self.connection.run(
            f"Search {self.kind.name}", self._vector_query, embedding.vector, where, limit
        )

        hits: list[tuple[dict, float]] = []
        for row in rows:
            score = 1.0 - float(row["_distance"])
            if score >= threshold:
                hits.append((row, score))

        reminders = await self.reminders.for_records([row["id"] for row, _ in hits])
        results = [
            SearchResult(
                record=self.kind.from_row(row, reminders.get(row["id"], [])),
                score=score,
                distance=1.0 - score,
            )
            for row, score in hits
        ]
        logger.info(
            "%s search completed (query=%r, candidates=%d, results=%d, threshold=%.2f)",
            self.kind.name.capitalize(),
            query_text[:100],
            len(rows),
            len(results),
            threshold,
        )
        return results

    async def list(
        self,
        filter: RecordFilter | dict | None = None,
        limit: int = DEFAULT_LIST_LIMIT,
    ) -> list[BaseRecord]:
        """Records matching ``filter``, newest first, at most ``limit``."""
        where = self._prepare(filter, limit)
        arrow_table = await self.connection.run(
            f"List {self.kind.name}", fetch_arrow, self.table, where, self.kind.columns
        )
        if arrow_table is None:
            return []
        rows = (
            arrow_table.sort_by([("created_at", "descending"), ("id", "ascending")])
            .slice(0, limit)
            .to_pylist()
        )
        reminders = await self.reminders.for_records([row["id"] for row in rows])
        records = [self.kind.from_row(row, reminders.get(row["id"], [])) for row in rows]
        logger.info("Listed %d %s record(s) (filter=%s)", len(records), self.kind.name, where or "*")
        return records
