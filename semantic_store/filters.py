"""Translate a RecordFilter into a LanceDB SQL ``where`` clause."""

from __future__ import annotations

from .kinds import RecordKind
from .models import RecordFilter, to_epoch_ms

ENUM_FILTER_FIELDS = ("category", "priority", "status")


def escape(value: str) -> str:
    """Escape single quotes in filter values to prevent injection."""
    return value.replace("'", "''")


def quote(value: object) -> str:
    return f"'{escape(str(value))}'"


def build_predicate(kind: RecordKind, flt: RecordFilter | None) -> str | None:
    """AND together one clause per present field. ``None`` matches everything.

    ``conversation_id`` is matched as the single-point range ``[v, v]`` and
    ``tags`` as "has any of". The filter must already have passed
    ``kind.validate_filter``.
    """
    if flt is None:
        return None

    clauses: list[str] = []
    if flt.owner_id is not None:
        clauses.append(f"owner_id = {quote(flt.owner_id)}")
    if flt.conversation_id is not None:
        value = int(flt.conversation_id)
        clauses.append(f"(conversation_id >= {value} AND conversation_id <= {value})")
    for name in ENUM_FILTER_FIELDS:
        value = getattr(flt, name)
        if value is not None and kind.metadata_field(name) is not None:
            clauses.append(f"{name} = {quote(value)}")
    if flt.tags:
        tags = ", ".join(quote(tag) for tag in flt.tags)
        clauses.append(f"array_has_any(tags, [{tags}])")
    if flt.created_after is not None:
        clauses.append(f"created_at >= {to_epoch_ms(flt.created_after)}")
    if flt.created_before is not None:
        clauses.append(f"created_at <= {to_epoch_ms(flt.created_before)}")

    return " AND ".join(clauses) if clauses else None
