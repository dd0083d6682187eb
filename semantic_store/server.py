#!/usr/bin/env python3
"""
Semantic Store MCP Server - ideas and memories over LanceDB

Exposes the idea and memory stores as MCP tools:
- FastMCP for the stdio tool surface
- LanceDB for cosine similarity search with metadata pre-filtering
- Ollama / Google Gemini embeddings (or offline hash embeddings)
- Reminders attached to ideas, with a due-reminder scan

Tools return plain text; failures come back as "Error: ..." strings.
"""

from __future__ import annotations

import asyncio
import logging
import os
from datetime import datetime
from typing import Any

from mcp.server.fastmcp import FastMCP
from mcp.types import ToolAnnotations

from .errors import ConfigurationError, StoreError
from .logging_config import configure_logging
from .models import BaseRecord, Idea, Memory, Reminder, ReminderInput, SearchResult
from .store import SemanticStore, idea_store, memory_store

logger = logging.getLogger(__name__)

READ_ONLY = ToolAnnotations(readOnlyHint=True, destructiveHint=False, idempotentHint=True)
WRITE = ToolAnnotations(readOnlyHint=False, destructiveHint=False, idempotentHint=False)
IDEMPOTENT_WRITE = ToolAnnotations(readOnlyHint=False, destructiveHint=False, idempotentHint=True)
DESTRUCTIVE = ToolAnnotations(readOnlyHint=False, destructiveHint=True, idempotentHint=True)


# =============================================================================
# Formatting
# =============================================================================


def _format_record(index: int, record: BaseRecord, score: float | None = None) -> list[str]:
    if isinstance(record, Idea):
        header = f"[{index}] {record.category.value.upper()} | {record.priority.value} | {record.status.value} (ID: {record.id})"
        body = f"    {record.title}: {record.content}"
    else:
        assert isinstance(record, Memory)
        label = (record.category or "memory").upper()
        header = f"[{index}] {label} | importance {record.importance} (ID: {record.id})"
        body = f"    {record.content}"

    lines = [header, body]
    if record.tags:
        lines.append(f"    Tags: {', '.join(record.tags)}")
    lines.append(f"    Created: {record.created_at.isoformat(timespec='seconds')}")
    for reminder in record.reminders:
        lines.append(f"    {_format_reminder(reminder)}")
    if score is not None:
        lines.append(f"    Similarity: {score:.0%}")
    lines.append("")
    return lines


def _format_reminder(reminder: Reminder) -> str:
    state = "sent" if reminder.is_sent else ("active" if reminder.is_active else "inactive")
    text = f"Reminder {reminder.id} ({reminder.type.value}, {state}) at {reminder.scheduled_for.isoformat(timespec='minutes')}"
    if reminder.message:
        text += f": {reminder.message}"
    return text


def _format_results(noun: str, results: list[SearchResult], query: str) -> str:
    if not results:
        return f"No {noun} found for '{query}'"
    lines = [f"Found {len(results)} {noun}:\n"]
    for i, hit in enumerate(results, 1):
        lines.extend(_format_record(i, hit.record, hit.score))
    return "\n".join(lines)


def _format_list(noun: str, records: list[BaseRecord]) -> str:
    if not records:
        return f"No {noun} stored yet."
    lines = [f"{len(records)} {noun} (newest first):\n"]
    for i, record in enumerate(records, 1):
        lines.extend(_format_record(i, record))
    return "\n".join(lines)


def _filter(**fields: Any) -> dict[str, Any]:
    return {k: v for k, v in fields.items() if v is not None and v != []}


# =============================================================================
# Tools
# =============================================================================


class StoreTools:
    """Tool implementations bound to an idea store and a memory store."""

    def __init__(self, ideas: SemanticStore, memories: SemanticStore, owner_id: str = "local") -> None:
        self.ideas = ideas
        self.memories = memories
        self.owner_id = owner_id

    async def idea_save(
        self,
        title: str,
        content: str,
        category: str = "strategy",
        priority: str = "medium",
        tags: list[str] | None = None,
        remind_at: str | None = None,
        remind_type: str = "once",
        reminder_message: str | None = None,
    ) -> str:
        """Save a business idea with semantic embedding, optionally with a reminder.

        Args:
            title: Short title
            content: The idea itself
            category: strategy, product, sales, partnerships, competitive, market, team, operations
            priority: low, medium, high, urgent
            tags: Optional tags
            remind_at: Optional ISO 8601 time for a reminder
            remind_type: once, daily, weekly, monthly, custom
            reminder_message: Optional reminder text
        """
        data: dict[str, Any] = {
            "title": title,
            "content": content,
            "category": category,
            "priority": priority,
            "tags": tags or [],
            "owner_id": self.owner_id,
        }
        try:
            if remind_at:
                data["reminders"] = [
                    ReminderInput(
                        type=remind_type,
                        scheduled_for=datetime.fromisoformat(remind_at),
                        message=reminder_message,
                    )
                ]
            idea = await self.ideas.create(data)
        except (StoreError, ValueError) as e:
            return f"Error: {e}"

        parts = [f"Saved idea (ID: {idea.id}, {idea.category.value}, {idea.priority.value})"]
        parts.append(f"Tags: {idea.tags}")
        for reminder in idea.reminders:
            parts.append(_format_reminder(reminder))
        return "\n".join(parts)

    async def idea_search(
        self,
        query: str,
        category: str | None = None,
        priority: str | None = None,
        status: str | None = None,
        tags: list[str] | None = None,
        limit: int = 5,
        threshold: float = 0.1,
    ) -> str:
        """Semantic search over your ideas with optional metadata filters.

        Args:
            query: What to look for
            category: Optional category filter
            priority: Optional priority filter
            status: Optional status filter
            tags: Match ideas carrying any of these tags
            limit: Max results
            threshold: Minimum similarity (0-1)
        """
        flt = _filter(
            owner_id=self.owner_id, category=category, priority=priority, status=status, tags=tags
        )
        try:
            results = await self.ideas.search(query, limit=limit, threshold=threshold, filter=flt)
        except StoreError as e:
            return f"Error: {e}"
        return _format_results("ideas", results, query)

    async def idea_list(
        self,
        category: str | None = None,
        status: str | None = None,
        limit: int = 20,
    ) -> str:
        """List your ideas, newest first.

        Args:
            category: Optional category filter
            status: Optional status filter
            limit: Max ideas
        """
        try:
            ideas = await self.ideas.list(
                _filter(owner_id=self.owner_id, category=category, status=status), limit=limit
            )
        except StoreError as e:
            return f"Error: {e}"
        return _format_list("ideas", ideas)

    async def idea_get(self, idea_id: str) -> str:
        """Show one idea with its reminders.

        Args:
            idea_id: Full idea ID
        """
        try:
            idea = await self.ideas.get(idea_id)
        except StoreError as e:
            return f"Error: {e}"
        if idea is None:
            return f"Idea {idea_id} not found"
        return "\n".join(_format_record(1, idea)).rstrip()

    async def idea_update(
        self,
        idea_id: str,
        title: str | None = None,
        content: str | None = None,
        category: str | None = None,
        priority: str | None = None,
        status: str | None = None,
        tags: list[str] | None = None,
    ) -> str:
        """Update an existing idea. Title or content changes are re-embedded.

        Args:
            idea_id: Full idea ID
            title: New title
            content: New content
            category: New category
            priority: New priority
            status: New status
            tags: New tags (replaces existing)
        """
        patch = _filter(
            title=title, content=content, category=category, priority=priority, status=status
        )
        if tags is not None:
            patch["tags"] = tags
        try:
            idea = await self.ideas.update(idea_id, patch)
        except StoreError as e:
            return f"Error: {e}"
        if idea is None:
            return f"Idea {idea_id} not found"
        return f"Updated idea {idea.id}"

    async def idea_delete(self, idea_id: str) -> str:
        """Delete an idea and its reminders.

        Args:
            idea_id: Full idea ID
        """
        try:
            deleted = await self.ideas.delete(idea_id)
        except StoreError as e:
            return f"Error: {e}"
        return f"Deleted idea {idea_id}" if deleted else f"Idea {idea_id} not found"

    async def memory_save(
        self,
        content: str,
        category: str | None = None,
        importance: int = 1,
        tags: list[str] | None = None,
        source: str | None = None,
    ) -> str:
        """Save a memory with semantic embedding.

        Args:
            content: What to remember
            category: Optional free-form category
            importance: Importance weight (default 1)
            tags: Optional tags
            source: Optional origin of the memory
        """
        try:
            memory = await self.memories.create(
                {
                    "content": content,
                    "category": category,
                    "importance": importance,
                    "tags": tags or [],
                    "source": source,
                    "owner_id": self.owner_id,
                }
            )
        except StoreError as e:
            return f"Error: {e}"
        return f"Saved memory (ID: {memory.id})\nTags: {memory.tags}"

    async def memory_recall(
        self,
        query: str,
        category: str | None = None,
        tags: list[str] | None = None,
        limit: int = 5,
        threshold: float = 0.1,
    ) -> str:
        """Semantic search over your memories.

        Args:
            query: What to recall
            category: Optional category filter
            tags: Match memories carrying any of these tags
            limit: Max results
            threshold: Minimum similarity (0-1)
        """
        flt = _filter(owner_id=self.owner_id, category=category, tags=tags)
        try:
            results = await self.memories.search(query, limit=limit, threshold=threshold, filter=flt)
        except StoreError as e:
            return f"Error: {e}"
        return _format_results("memories", results, query)

    async def memory_list(self, category: str | None = None, limit: int = 20) -> str:
        """List your memories, newest first.

        Args:
            category: Optional category filter
            limit: Max memories
        """
        try:
            memories = await self.memories.list(
                _filter(owner_id=self.owner_id, category=category), limit=limit
            )
        except StoreError as e:
            return f"Error: {e}"
        return _format_list("memories", memories)

    async def memory_delete(self, memory_id: str) -> str:
        """Delete a memory by ID.

        Args:
            memory_id: Full memory ID
        """
        try:
            deleted = await self.memories.delete(memory_id)
        except StoreError as e:
            return f"Error: {e}"
        return f"Deleted memory {memory_id}" if deleted else f"Memory {memory_id} not found"

    async def reminders_due(self) -> str:
        """List idea reminders that are due now and not yet sent."""
        try:
            due = await self.ideas.due_reminders()
        except StoreError as e:
            return f"Error: {e}"
        if not due:
            return "No reminders due."
        lines = [f"{len(due)} reminder(s) due:"]
        lines.extend(f"- {_format_reminder(r)} (idea {r.record_id})" for r in due)
        return "\n".join(lines)

    async def reminder_mark_sent(self, reminder_id: str) -> str:
        """Mark a reminder as sent so it is no longer reported as due.

        Args:
            reminder_id: Reminder ID
        """
        try:
            found = await self.ideas.mark_sent(reminder_id)
        except StoreError as e:
            return f"Error: {e}"
        return f"Reminder {reminder_id} marked as sent" if found else f"Reminder {reminder_id} not found"

    async def store_stats(self) -> str:
        """Get store statistics - totals, by category, indexes."""
        try:
            stats = [await self.ideas.stats(), await self.memories.stats()]
        except StoreError as e:
            return f"Error: {e}"

        lines = ["=== Semantic Store Statistics (LanceDB) ==="]
        for s in stats:
            lines.append(f"\n{s['table']} ({s['kind']} records): {s['count']}")
            lines.append(f"  Reminders: {s['reminders']}")
            lines.append(f"  Vector index: {'Yes' if s['vector_index'] else 'Flat (brute-force)'}")
            for category, count in s["by_category"].items():
                lines.append(f"  {category}: {count}")
        return "\n".join(lines)


def build_server(tools: StoreTools) -> FastMCP:
    mcp = FastMCP(
        "semantic-store",
        instructions="Ideas and memories with LanceDB semantic search, metadata filters and reminders",
    )
    registrations = [
        (tools.idea_save, WRITE),
        (tools.idea_search, READ_ONLY),
        (tools.idea_list, READ_ONLY),
        (tools.idea_get, READ_ONLY),
        (tools.idea_update, IDEMPOTENT_WRITE),
        (tools.idea_delete, DESTRUCTIVE),
        (tools.memory_save, WRITE),
        (tools.memory_recall, READ_ONLY),
        (tools.memory_list, READ_ONLY),
        (tools.memory_delete, DESTRUCTIVE),
        (tools.reminders_due, READ_ONLY),
        (tools.reminder_mark_sent, IDEMPOTENT_WRITE),
        (tools.store_stats, READ_ONLY),
    ]
    for fn, annotations in registrations:
        mcp.add_tool(fn, name=fn.__name__, annotations=annotations)
    return mcp


# =============================================================================
# Server Entry Point
# =============================================================================


async def run_server() -> None:
    """Initialize both stores, then serve over stdio until the client disconnects."""
    ideas = idea_store()
    memories = memory_store()
    await ideas.initialize()
    await memories.initialize()
    try:
        owner_id = os.environ.get("SEMANTIC_STORE_OWNER_ID", "local").strip() or "local"
        await build_server(StoreTools(ideas, memories, owner_id)).run_stdio_async()
    finally:
        await ideas.close()
        await memories.close()


def main() -> None:
    """Entry point."""
    configure_logging()
    try:
        asyncio.run(run_server())
    except ConfigurationError as e:
        logger.error("Configuration error: %s", e)
        raise SystemExit(1) from e


if __name__ == "__main__":
    main()
