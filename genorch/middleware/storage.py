"""Tracker storage for the rate limit middleware.

Trackers live in a durable SQLite database (one per state directory) and are
mirrored in memory. When the durable store fails, the storage degrades to its
in-memory map for the rest of its life. Persistence is a best-effort
durability optimization: storage errors are logged and never raised to the
generation caller.

Row layout: ``key = "<instance signature>_<partition key>"``,
``value = {"timestamps": [...], "lastCleanup": <ms>}`` as JSON.
"""

from __future__ import annotations

import asyncio
import json
import logging
import sqlite3
from dataclasses import dataclass, field
from pathlib import Path
from typing import Protocol

from genorch.config import RateLimitConfig
from genorch.errors import StorageError

logger = logging.getLogger(__name__)


@dataclass
class RequestTracker:
    """Timestamps (ms) of admitted requests for one partition key."""

    timestamps: list[float] = field(default_factory=list)
    last_cleanup: float = 0.0

    def to_json(self) -> str:
        return json.dumps({"timestamps": self.timestamps, "lastCleanup": self.last_cleanup})

    @classmethod
    def from_json(cls, raw: str) -> RequestTracker:
        data = json.loads(raw)
        return cls(
            timestamps=[float(t) for t in data.get("timestamps", [])],
            last_cleanup=float(data.get("lastCleanup", 0.0)),
        )

    def copy(self) -> RequestTracker:
        return RequestTracker(list(self.timestamps), self.last_cleanup)


def storage_key(signature: str, key: str) -> str:
    return f"{signature}_{key}"


class TrackerStore(Protocol):
    async def get(self, key: str) -> RequestTracker | None: ...

    async def put(self, key: str, tracker: RequestTracker) -> None: ...

    async def delete(self, key: str) -> None: ...

    async def items(self) -> dict[str, RequestTracker]: ...


# ---------------------------------------------------------------------------
# Stores
# ---------------------------------------------------------------------------


class MemoryTrackerStore:
    """Dict-backed store. Returns copies so callers never share trackers."""

    def __init__(self) -> None:
        self._trackers: dict[str, RequestTracker] = {}

    async def get(self, key: str) -> RequestTracker | None:
        tracker = self._trackers.get(key)
        return tracker.copy() if tracker is not None else None

    async def put(self, key: str, tracker: RequestTracker) -> None:
        self._trackers[key] = tracker.copy()

    async def delete(self, key: str) -> None:
        self._trackers.pop(key, None)

    async def items(self) -> dict[str, RequestTracker]:
        return {k: v.copy() for k, v in self._trackers.items()}

    def clear(self) -> None:
        self._trackers.clear()


class SQLiteTrackerStore:
    """Durable store backed by one SQLite file.

    Blocking ``sqlite3`` calls run in a worker thread. Every ``sqlite3``
    failure is raised as :class:`StorageError`.
    """

    _SCHEMA = "CREATE TABLE IF NOT EXISTS trackers (key TEXT PRIMARY KEY, value TEXT NOT NULL)"

    def __init__(self, path: Path) -> None:
        self.path = Path(path)

    def _connect(self) -> sqlite3.Connection:
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise StorageError(f"Cannot create {self.path.parent}: {e}") from e
        con = sqlite3.connect(self.path, timeout=5.0)
        con.execute(self._SCHEMA)
        return con

    def _run(self, sql: str, params: tuple = ()) -> list[tuple]:
        try:
            con = self._connect()
            try:
                with con:
                    return con.execute(sql, params).fetchall()
            finally:
                con.close()
        except sqlite3.Error as e:
            raise StorageError(f"Tracker database {self.path} failed: {e}") from e

    async def get(self, key: str) -> RequestTracker | None:
        rows = await asyncio.to_thread(self._run, "SELECT value FROM trackers WHERE key = ?", (key,))
        if not rows:
            return None
        try:
            return RequestTracker.from_json(rows[0][0])
        except (ValueError, TypeError, AttributeError) as e:
            raise StorageError(f"Corrupt tracker {key!r}: {e}") from e

    async def put(self, key: str, tracker: RequestTracker) -> None:
        await asyncio.to_thread(
            self._run,
            "INSERT OR REPLACE INTO trackers (key, value) VALUES (?, ?)",
            (key, tracker.to_json()),
        )

    async def delete(self, key: str) -> None:
        await asyncio.to_thread(self._run, "DELETE FROM trackers WHERE key = ?", (key,))

    async def items(self) -> dict[str, RequestTracker]:
        rows = await asyncio.to_thread(self._run, "SELECT key, value FROM trackers ORDER BY key")
        result: dict[str, RequestTracker] = {}
        for key, value in rows:
            try:
                result[key] = RequestTracker.from_json(value)
            except (ValueError, TypeError, AttributeError):
                logger.warning("Skipping corrupt tracker row %r", key)
        return result


# ---------------------------------------------------------------------------
# Composite storage
# ---------------------------------------------------------------------------


class TrackerStorage:
    """Durable store with a transparent in-memory fallback."""

    def __init__(
        self,
        durable: TrackerStore | None = None,
        memory: MemoryTrackerStore | None = None,
    ) -> None:
        self._durable = durable
        self.memory = memory or MemoryTrackerStore()

    @property
    def durable_available(self) -> bool:
        return self._durable is not None

    def _degrade(self, operation: str, error: Exception) -> None:
        logger.warning(
            "Rate limit storage %s failed, falling back to in-memory trackers: %s",
            operation, error,
        )
        self._durable = None

    async def load(self, signature: str, key: str) -> RequestTracker | None:
        combined = storage_key(signature, key)
        if self._durable is not None:
            try:
                return await self._durable.get(combined)
            except Exception as e:
                self._degrade("read", e)
        return await self.memory.get(combined)

    async def save(self, signature: str, key: str, tracker: RequestTracker) -> None:
        combined = storage_key(signature, key)
        await self.memory.put(combined, tracker)
        if self._durable is not None:
            try:
                await self._durable.put(combined, tracker)
            except Exception as e:
                self._degrade("write", e)

    async def items(self) -> dict[str, RequestTracker]:
        if self._durable is not None:
            try:
                return await self._durable.items()
            except Exception as e:
                self._degrade("read", e)
        return await self.memory.items()

    async def clear(self) -> int:
        """Delete every tracker. Returns how many were removed."""
        trackers = await self.items()
        for combined in trackers:
            await self.memory.delete(combined)
            if self._durable is not None:
                try:
                    await self._durable.delete(combined)
                except Exception as e:
                    self._degrade("delete", e)
        return len(trackers)


def storage_from_config(config: RateLimitConfig) -> TrackerStorage:
    durable = SQLiteTrackerStore(config.db_path()) if config.durable else None
    return TrackerStorage(durable=durable)


_shared_storages: dict[tuple[Path, bool], TrackerStorage] = {}


def default_storage(config: RateLimitConfig | None = None) -> TrackerStorage:
    """Process-wide storage for ``config``, shared by limiters without injected storage.

    One instance exists per database location and durability, so limiters
    built from the same settings share counters while a config pointing at
    another ``state_dir`` or ``db_name`` gets its own trackers.
    """
    config = config or RateLimitConfig()
    location = (config.db_path(), config.durable)
    storage = _shared_storages.get(location)
    if storage is None:
        storage = _shared_storages[location] = storage_from_config(config)
    return storage


def reset_default_storage() -> None:
    _shared_storages.clear()
