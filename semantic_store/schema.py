"""Table schemas and index provisioning for a record kind."""

from __future__ import annotations

import logging
from typing import Any

import pyarrow as pa
from lancedb.index import FTS, Bitmap, BTree, HnswSq, LabelList
from lancedb.pydantic import LanceModel, Vector
from pydantic import create_model

from .config import ProvisionPolicy
from .errors import ConfigurationError, StoreError, StoreUnavailable
from .kinds import VECTOR_FIELD, RecordKind

logger = logging.getLogger(__name__)

SCALAR_INDEX_CONFIGS = {"BTREE": BTree, "BITMAP": Bitmap, "LABEL_LIST": LabelList}

# Scalar indexes on the columns every kind filters or sorts by
COMMON_SCALAR_INDEXES = {
    "owner_id": "BTREE",
    "conversation_id": "BTREE",
    "created_at": "BTREE",
    "tags": "LABEL_LIST",
}


class ReminderRow(LanceModel):
    """LanceDB schema for reminders. Times are epoch milliseconds."""

    id: str
    record_id: str
    type: str
    scheduled_for: int
    message: str | None = None
    is_active: bool
    is_sent: bool
    created_at: int
    updated_at: int


REMINDER_SCHEMA = ReminderRow.to_arrow_schema()


def record_row_model(kind: RecordKind, dimension: int) -> type[LanceModel]:
    """LanceDB row model for ``kind`` with a ``dimension``-wide vector column."""
    fields: dict[str, Any] = {"id": (str, ...)}
    fields.update({name: (str, ...) for name in kind.text_fields})
    for column in kind.metadata_fields:
        fields[column.name] = (column.type, ...)
    fields.update(
        tags=(list[str], ...),
        owner_id=(str | None, None),
        conversation_id=(int | None, None),
        created_at=(int, ...),  # epoch ms
        updated_at=(int, ...),
    )
    fields[VECTOR_FIELD] = (Vector(dimension), ...)
    return create_model(f"{kind.name.capitalize()}Row", __base__=LanceModel, **fields)


class IndexSchema:
    """Declares and provisions the record and reminder tables of one store."""

    def __init__(
        self,
        kind: RecordKind,
        table_name: str,
        dimension: int,
        policy: ProvisionPolicy = ProvisionPolicy.IDEMPOTENT,
        ann_min_rows: int = 256,
    ) -> None:
        self.kind = kind
        self.table_name = table_name
        self.reminder_table_name = f"{table_name}_reminders"
        self.dimension = dimension
        self.policy = policy
        self.ann_min_rows = ann_min_rows
        self.row_model = record_row_model(kind, dimension)

    def record_schema(self) -> pa.Schema:
        return self.row_model.to_arrow_schema()

    def reminder_schema(self) -> pa.Schema:
        return REMINDER_SCHEMA

    def provision(self, db: Any) -> tuple[Any, Any]:
        """Create or open both tables. Returns ``(records, reminders)``."""
        try:
            if self.policy is ProvisionPolicy.RECREATE:
                logger.warning(
                    "Recreating table '%s' (policy=recreate): existing records and reminders are discarded",
                    self.table_name,
                )
                table = db.create_table(self.table_name, schema=self.record_schema(), mode="overwrite")
                reminders = db.create_table(
                    self.reminder_table_name, schema=self.reminder_schema(), mode="overwrite"
                )
            else:
                table = _open_or_create(db, self.table_name, self.record_schema())
                reminders = _open_or_create(db, self.reminder_table_name, self.reminder_schema())
                self._check_dimension(table)
        except StoreError:
            raise
        except Exception as e:
            logger.error("Failed to provision table '%s': %s", self.table_name, e)
            raise StoreUnavailable(f"Failed to provision table '{self.table_name}': {e}") from e

        self.ensure_indexes(table, reminders)
        logger.info(
            "Table '%s' ready (dimension=%d, policy=%s)",
            self.table_name,
            self.dimension,
            self.policy.value,
        )
        return table, reminders

    def _check_dimension(self, table: Any) -> None:
        field = table.schema.field(VECTOR_FIELD)
        actual = getattr(field.type, "list_size", None)
        if actual != self.dimension:
            raise ConfigurationError(
                f"Table '{self.table_name}' stores {actual}-dim vectors but "
                f"vector_dimension is {self.dimension}"
            )

    def ensure_indexes(self, table: Any, reminders: Any | None = None) -> list[str]:
        """Build missing secondary indexes. Returns the columns newly indexed.

        Index builds need data to train on, so nothing is built for an
        empty table, and the ANN index waits for ``ann_min_rows`` rows;
        below that, flat search is exact. A refused build is logged, not
        raised: every query stays correct without it.
        """
        row_count = table.count_rows()
        if row_count == 0:
            return []

        indexed = _indexed_columns(table)
        created: list[str] = []

        for name in self.kind.text_fields:
            if name not in indexed and _try_index(
                f"FTS index on '{name}'", table.create_index, name, config=FTS()
            ):
                created.append(name)

        scalar = dict(COMMON_SCALAR_INDEXES)
        scalar.update({f.name: f.index for f in self.kind.metadata_fields if f.index})
        for name, index_type in scalar.items():
            if name not in indexed and _try_index(
                f"{index_type} index on '{name}'",
                table.create_index,
                name,
                config=SCALAR_INDEX_CONFIGS[index_type](),
            ):
                created.append(name)

        if VECTOR_FIELD not in indexed and row_count >= self.ann_min_rows:
            if _try_index(
                "IVF_HNSW_SQ vector index",
                table.create_index,
                VECTOR_FIELD,
                config=HnswSq(distance_type="cosine", num_partitions=max(1, int(row_count**0.5) // 4)),
            ):
                created.append(VECTOR_FIELD)

        if reminders is not None and reminders.count_rows() > 0:
            reminder_indexed = _indexed_columns(reminders)
            for name in ("record_id", "scheduled_for"):
                if name not in reminder_indexed and _try_index(
                    f"BTREE index on reminders '{name}'",
                    reminders.create_index,
                    name,
                    config=BTree(),
                ):
                    created.append(f"reminders.{name}")

        if created:
            logger.info("Created indexes on '%s': %s", self.table_name, ", ".join(created))
        return created


def _indexed_columns(table: Any) -> set[str]:
    try:
        indices = table.list_indices()
    except Exception as e:
        logger.warning("Could not list indices: %s", e)
        return set()
    columns: set[str] = set()
    for idx in indices:
        columns.update(getattr(idx, "columns", None) or [])
    return columns


def _try_index(description: str, build, *args, **kwargs) -> bool:
    try:
        build(*args, **kwargs)
    except Exception as e:
        logger.warning("%s not built: %s", description, e)
        return False
    return True


def _table_names(db: Any) -> list[str]:
    try:
        listed = db.list_tables()
        return list(getattr(listed, "tables", listed))
    except AttributeError:
        return list(db.table_names())


def _open_or_create(db: Any, name: str, schema: pa.Schema) -> Any:
    try:
        return db.open_table(name)
    except Exception:
        if name in _table_names(db):
            raise
    logger.info("Creating table '%s'", name)
    return db.create_table(name, schema=schema)
