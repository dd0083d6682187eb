"""Record kinds: the metadata schema a generic store is parameterised by.

Ideas and memories share storage, query and reminder logic. They differ
only in which text fields feed the embedding and which metadata columns
sit next to it.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any

from .errors import ValidationError
from .models import (
    BaseRecord,
    Idea,
    IdeaCategory,
    IdeaCreate,
    IdeaPriority,
    IdeaStatus,
    IdeaUpdate,
    Memory,
    MemoryCreate,
    MemoryUpdate,
    RecordFilter,
    Reminder,
    from_epoch_ms,
)

# Columns every kind carries besides its metadata and the vector
TIMESTAMP_FIELDS = ("created_at", "updated_at")
VECTOR_FIELD = "vector"
HIDDEN_FIELDS = frozenset({VECTOR_FIELD, "_distance", "_relevance_score", "_score", "_rowid"})


@dataclass(frozen=True)
class MetadataField:
    """A scalar column. ``type`` is its row-model annotation; ``index`` names the scalar index type, if any."""

    name: str
    type: Any
    index: str | None = None
    choices: frozenset[str] | None = None


@dataclass(frozen=True)
class RecordKind:
    name: str
    default_table: str
    text_fields: tuple[str, ...]
    metadata_fields: tuple[MetadataField, ...]
    record_model: type[BaseRecord]
    create_model: type
    update_model: type

    @property
    def columns(self) -> tuple[str, ...]:
        """Every stored column except the vector."""
        return (
            "id",
            *self.text_fields,
            *(f.name for f in self.metadata_fields),
            "tags",
            "owner_id",
            "conversation_id",
            *TIMESTAMP_FIELDS,
        )

    @property
    def filterable(self) -> frozenset[str]:
        names = {"owner_id", "conversation_id", "tags", "created_after", "created_before"}
        names.update(f.name for f in self.metadata_fields if f.name in {"category", "priority", "status"})
        return frozenset(names)

    def metadata_field(self, name: str) -> MetadataField | None:
        return next((f for f in self.metadata_fields if f.name == name), None)

    def primary_text(self, values: dict[str, Any]) -> str:
        return " ".join(str(values[name]) for name in self.text_fields)

    def validate_filter(self, flt: RecordFilter) -> None:
        """Reject predicates this kind cannot evaluate."""
        for name in flt.model_fields_set:
            value = getattr(flt, name)
            if value is None:
                continue
            if name not in self.filterable:
                raise ValidationError(f"{self.name} records cannot be filtered by '{name}'", field=name)
            column = self.metadata_field(name)
            if column is not None and column.choices is not None and value not in column.choices:
                raise ValidationError(
                    f"Invalid {name} '{value}'. Valid: {sorted(column.choices)}", field=name
                )
        if flt.tags is not None and any(not tag.strip() for tag in flt.tags):
            raise ValidationError("Filter tags must not be blank", field="tags")

    def to_row(self, values: dict[str, Any]) -> dict[str, Any]:
        """Flatten model values into a storage row. Enums become their values."""
        row = {}
        for name in self.columns:
            value = values.get(name)
            if isinstance(value, Enum):
                value = value.value
            row[name] = value
        if row["tags"] is None:
            row["tags"] = []
        return row

    def from_row(self, row: dict[str, Any], reminders: list[Reminder] | None = None) -> BaseRecord:
        """Build the caller-facing record: no vector, semantic timestamps."""
        data = {k: v for k, v in row.items() if k not in HIDDEN_FIELDS}
        for name in TIMESTAMP_FIELDS:
            data[name] = from_epoch_ms(data[name])
        data["tags"] = list(data.get("tags") or [])
        data["reminders"] = reminders or []
        return self.record_model.model_validate(data)


def _choices(enum: type[Enum]) -> frozenset[str]:
    return frozenset(member.value for member in enum)


IDEAS = RecordKind(
    name="idea",
    default_table="ideas",
    text_fields=("title", "content"),
    metadata_fields=(
        MetadataField("category", str, index="BITMAP", choices=_choices(IdeaCategory)),
        MetadataField("priority", str, index="BITMAP", choices=_choices(IdeaPriority)),
        MetadataField("status", str, index="BITMAP", choices=_choices(IdeaStatus)),
    ),
    record_model=Idea,
    create_model=IdeaCreate,
    update_model=IdeaUpdate,
)

MEMORIES = RecordKind(
    name="memory",
    default_table="memories",
    text_fields=("content",),
    metadata_fields=(
        MetadataField("category", str | None, index="BITMAP"),
        MetadataField("importance", int, index="BTREE"),
        MetadataField("source", str | None),
    ),
    record_model=Memory,
    create_model=MemoryCreate,
    update_model=MemoryUpdate,
)
