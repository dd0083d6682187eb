"""Explicit LanceDB connection handle shared by one store's components."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable, Iterable
from pathlib import Path
from typing import Any, TypeVar

import lancedb

from .errors import StoreError, StoreUnavailable

logger = logging.getLogger(__name__)

T = TypeVar("T")


class LanceConnection:
    """Owns the ``lancedb`` connection. No module-level singleton.

    Local paths are created on connect; ``db://`` URIs go to LanceDB Cloud
    and need ``api_key``.
    """

    def __init__(self, uri: str, api_key: str | None = None, region: str | None = None) -> None:
        self.uri = uri
        self._api_key = api_key
        self._region = region
        self._db: lancedb.DBConnection | None = None

    @property
    def is_connected(self) -> bool:
        return self._db is not None

    @property
    def is_local(self) -> bool:
        return "://" not in self.uri

    @property
    def db(self) -> lancedb.DBConnection:
        if self._db is None:
            raise StoreUnavailable(f"Not connected to {self.uri}")
        return self._db

    def connect(self) -> lancedb.DBConnection:
        if self._db is not None:
            return self._db
        kwargs: dict[str, Any] = {}
        if self._api_key:
            kwargs["api_key"] = self._api_key
        if self._region:
            kwargs["region"] = self._region
        try:
            if self.is_local:
                Path(self.uri).mkdir(parents=True, exist_ok=True)
            self._db = lancedb.connect(self.uri, **kwargs)
        except Exception as e:
            logger.error("Failed to connect to %s: %s", self.uri, e)
            raise StoreUnavailable(f"Failed to connect to {self.uri}: {e}") from e
        logger.info("Connected to %s", self.uri)
        return self._db

    def disconnect(self) -> None:
        if self._db is not None:
            self._db = None
            logger.info("Disconnected from %s", self.uri)

    async def run(self, operation: str, fn: Callable[..., T], *args: Any, **kwargs: Any) -> T:
        """Run a blocking engine call off the event loop.

        Engine failures surface as StoreUnavailable; this layer's own
        errors pass through untouched.
        """
        if self._db is None:
            raise StoreUnavailable(f"Not connected to {self.uri}")
        try:
            return await asyncio.to_thread(fn, *args, **kwargs)
        except StoreError:
            raise
        except Exception as e:
            logger.error("%s failed: %s", operation, e)
            raise StoreUnavailable(f"{operation} failed: {e}") from e


def fetch_rows(table: Any, where: str | None = None, columns: Iterable[str] | None = None) -> list[dict]:
    """Every row matching ``where``. Plain queries default to 10 rows, so size the limit first."""
    total = table.count_rows(where)
    if total == 0:
        return []
    return _scan(table, where, columns).limit(total).to_list()


def fetch_arrow(table: Any, where: str | None = None, columns: Iterable[str] | None = None):
    total = table.count_rows(where)
    if total == 0:
        return None
    return _scan(table, where, columns).limit(total).to_arrow()


def _scan(table: Any, where: str | None, columns: Iterable[str] | None):
    query = table.search()
    if where:
        query = query.where(where)
    if columns is not None:
        query = query.select(list(columns))
    return query
