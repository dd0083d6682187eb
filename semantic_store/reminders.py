"""Reminders owned by records, and the due-reminder scan.

Delivery and rescheduling of recurring reminders belong to the caller:
this module only records state and answers "what is due now".
"""

from __future__ import annotations

import logging
import uuid
from collections import defaultdict
from datetime import datetime
from typing import Any

import pyarrow as pa

from .connection import LanceConnection, fetch_rows
from .filters import quote
from .models import Reminder, ReminderInput, from_epoch_ms, to_epoch_ms, utcnow
from .schema import REMINDER_SCHEMA

logger = logging.getLogger(__name__)


def now_ms() -> int:
    return to_epoch_ms(utcnow())


def _to_reminder(row: dict[str, Any]) -> Reminder:
    return Reminder(
        id=row["id"],
        record_id=row["record_id"],
        type=row["type"],
        scheduled_for=from_epoch_ms(row["scheduled_for"]),
        message=row.get("message"),
        is_active=bool(row["is_active"]),
        is_sent=bool(row["is_sent"]),
        created_at=from_epoch_ms(row["created_at"]),
        updated_at=from_epoch_ms(row["updated_at"]),
    )


class ReminderStore:
    """Reminder table access for one record kind."""

    def __init__(self, connection: LanceConnection, table: Any) -> None:
        self.connection = connection
        self.table = table

    async def replace(self, record_id: str, inputs: list[ReminderInput], timestamp: int) -> list[Reminder]:
        """Swap the record's full reminder set for fresh active, unsent reminders.

        The new set is written before the old one is removed, so a failed
        write keeps the previous reminders.
        """
        rows = [
            {
                "id": uuid.uuid4().hex,
                "record_id": record_id,
                "type": item.type.value,
                "scheduled_for": to_epoch_ms(item.scheduled_for),
                "message": item.message,
                "is_active": True,
                "is_sent": False,
                "created_at": timestamp,
                "updated_at": timestamp,
            }
            for item in inputs
        ]
        if not rows:
            await self.delete_for(record_id)
            return []

        data = pa.Table.from_pylist(rows, schema=REMINDER_SCHEMA)
        await self.connection.run("Add reminders", self.table.add, data)
        keep = ", ".join(quote(row["id"]) for row in rows)
        await self.connection.run(
            "Delete replaced reminders",
            self.table.delete,
            f"record_id = {quote(record_id)} AND id NOT IN ({keep})",
        )
        return [_to_reminder(row) for row in rows]

    async def delete_for(self, record_id: str) -> None:
        await self.connection.run(
            "Delete reminders", self.table.delete, f"record_id = {quote(record_id)}"
        )

    async def for_record(self, record_id: str) -> list[Reminder]:
        return (await self.for_records([record_id])).get(record_id, [])

    async def for_records(self, record_ids: list[str]) -> dict[str, list[Reminder]]:
        if not record_ids:
            return {}
        ids = ", ".join(quote(rid) for rid in dict.fromkeys(record_ids))
        rows = await self.connection.run(
            "Load reminders", fetch_rows, self.table, f"record_id IN ({ids})"
        )
        grouped: dict[str, list[Reminder]] = defaultdict(list)
        for row in sorted(rows, key=lambda r: (r["scheduled_for"], r["id"])):
            grouped[row["record_id"]].append(_to_reminder(row))
        return dict(grouped)

    async def due(self, now: datetime | None = None) -> list[Reminder]:
        """Active, unsent reminders scheduled at or before ``now``, across all records."""
        cutoff = to_epoch_ms(now or utcnow())
        rows = await self.connection.run(
            "Scan due reminders",
            fetch_rows,
            self.table,
            f"is_active = true AND is_sent = false AND scheduled_for <= {cutoff}",
        )
        rows.sort(key=lambda r: (r["scheduled_for"], r["id"]))
        logger.debug("Due reminder scan found %d reminder(s)", len(rows))
        return [_to_reminder(row) for row in rows]

    async def _get_row(self, reminder_id: str) -> dict[str, Any] | None:
        rows = await self.connection.run(
            "Get reminder", fetch_rows, self.table, f"id = {quote(reminder_id)}"
        )
        return rows[0] if rows else None

    async def mark_sent(self, reminder_id: str) -> bool:
        """Mark a reminder sent. Already sent is a no-op success; unknown id is False."""
        row = await self._get_row(reminder_id)
        if row is None:
            return False
        if row["is_sent"]:
            return True
        await self.connection.run(
            "Mark reminder sent",
            self.table.update,
            where=f"id = {quote(reminder_id)}",
            values={"is_sent": True, "updated_at": max(now_ms(), row["updated_at"] + 1)},
        )
        logger.info("Reminder %s marked as sent", reminder_id)
        return True

    async def deactivate(self, reminder_id: str) -> bool:
        row = await self._get_row(reminder_id)
        if row is None:
            return False
        if not row["is_active"]:
            return True
        await self.connection.run(
            "Deactivate reminder",
            self.table.update,
            where=f"id = {quote(reminder_id)}",
            values={"is_active": False, "updated_at": max(now_ms(), row["updated_at"] + 1)},
        )
        logger.info("Reminder %s deactivated", reminder_id)
        return True
