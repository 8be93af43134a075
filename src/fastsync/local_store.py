"""Local key/value store for fastsync.

Each collection is persisted as one JSON array under a fixed key in a
single SQLite table; scalars (the sync timestamp, the auth token) are
plain strings. The store holds no merge logic.

Every public method is a coroutine. The blocking SQLite work runs in a
worker thread on one shared connection guarded by a lock, so a
read-modify-write helper such as save_fast() is atomic with respect to
other store calls.

CRITICAL: This module must have NO network dependencies.
"""

from __future__ import annotations

import asyncio
import json
import logging
import sqlite3
import threading
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Union

from .models import Fast, UserProfile, WaterEntry, WeightEntry, default_profile

logger = logging.getLogger(__name__)

__all__ = [
    "LocalStore",
    "LocalStoreError",
    "FASTS_KEY",
    "WEIGHTS_KEY",
    "PROFILE_KEY",
    "WATER_KEY",
    "ACTIVE_FAST_KEY",
    "LAST_SYNC_KEY",
    "DELETED_FASTS_KEY",
]

FASTS_KEY = "fasts"
WEIGHTS_KEY = "weights"
PROFILE_KEY = "profile"
WATER_KEY = "water"
ACTIVE_FAST_KEY = "activeFast"
LAST_SYNC_KEY = "last_sync_timestamp"
DELETED_FASTS_KEY = "deleted_fasts"

_SCHEMA = """
CREATE TABLE IF NOT EXISTS kv_store (
    key TEXT PRIMARY KEY,
    value TEXT NOT NULL
)
"""


class LocalStoreError(Exception):
    """Raised when the underlying storage cannot be read or written."""


class LocalStore:
    """SQLite-backed key/value store holding the on-device copy of all data.

    Attributes:
        db_path: Path to the SQLite file, or ':memory:'
    """

    def __init__(self, db_path: Union[Path, str]) -> None:
        """Open (and create if needed) the store.

        Args:
            db_path: Path to the SQLite database file, or ':memory:' for in-memory
        """
        self.db_path = str(db_path)
        self._lock = threading.RLock()
        try:
            self._conn = sqlite3.connect(self.db_path, check_same_thread=False)
            self._conn.execute(_SCHEMA)
            self._conn.commit()
        except sqlite3.Error as e:
            raise LocalStoreError(f"Cannot open local store at {self.db_path}: {e}") from e
        logger.info(f"Opened local store at {self.db_path}")

    def close(self) -> None:
        """Close the database connection."""
        with self._lock:
            self._conn.close()

    def __enter__(self) -> "LocalStore":
        return self

    def __exit__(self, *exc_info: Any) -> None:
        self.close()

    # ===== Blocking primitives (run in a worker thread) =====

    def _get_sync(self, key: str) -> Optional[str]:
        with self._lock:
            try:
                row = self._conn.execute(
                    "SELECT value FROM kv_store WHERE key = ?", (key,)
                ).fetchone()
            except sqlite3.Error as e:
                raise LocalStoreError(f"Failed to read '{key}': {e}") from e
        return row[0] if row else None

    def _set_sync(self, key: str, value: str) -> None:
        with self._lock:
            try:
                self._conn.execute(
                    "INSERT INTO kv_store (key, value) VALUES (?, ?) "
                    "ON CONFLICT(key) DO UPDATE SET value = excluded.value",
                    (key, value),
                )
                self._conn.commit()
            except sqlite3.Error as e:
                self._conn.rollback()
                raise LocalStoreError(f"Failed to write '{key}': {e}") from e

    def _remove_sync(self, key: str) -> None:
        with self._lock:
            try:
                self._conn.execute("DELETE FROM kv_store WHERE key = ?", (key,))
                self._conn.commit()
            except sqlite3.Error as e:
                self._conn.rollback()
                raise LocalStoreError(f"Failed to remove '{key}': {e}") from e

    def _load_json(self, key: str, default: Any) -> Any:
        raw = self._get_sync(key)
        if raw is None:
            return default
        try:
            return json.loads(raw)
        except json.JSONDecodeError as e:
            logger.warning(f"Ignoring malformed JSON stored under '{key}': {e}")
            return default

    def _read_sync(self, key: str) -> List[Dict[str, Any]]:
        data = self._load_json(key, [])
        if not isinstance(data, list):
            logger.warning(f"Expected a list under '{key}', got {type(data).__name__}")
            return []
        return [item for item in data if isinstance(item, dict)]

    def _write_sync(self, key: str, items: List[Dict[str, Any]]) -> None:
        self._set_sync(key, json.dumps(items))

    def _update_sync(
        self,
        key: str,
        update: Callable[[List[Dict[str, Any]]], List[Dict[str, Any]]],
    ) -> None:
        with self._lock:
            self._write_sync(key, update(self._read_sync(key)))

    # ===== Raw key/value access =====

    async def get_item(self, key: str) -> Optional[str]:
        return await asyncio.to_thread(self._get_sync, key)

    async def set_item(self, key: str, value: str) -> None:
        await asyncio.to_thread(self._set_sync, key, value)

    async def remove_item(self, key: str) -> None:
        await asyncio.to_thread(self._remove_sync, key)

    async def read(self, collection: str) -> List[Dict[str, Any]]:
        """Read a collection as a list of JSON objects ([] if absent)."""
        return await asyncio.to_thread(self._read_sync, collection)

    async def write(self, collection: str, items: List[Dict[str, Any]]) -> None:
        """Replace a collection."""
        await asyncio.to_thread(self._write_sync, collection, items)

    async def read_object(self, key: str) -> Optional[Dict[str, Any]]:
        data = await asyncio.to_thread(self._load_json, key, None)
        return data if isinstance(data, dict) else None

    async def write_object(self, key: str, obj: Dict[str, Any]) -> None:
        await asyncio.to_thread(self._set_sync, key, json.dumps(obj))

    # ===== Fasts =====

    async def get_fasts(self) -> List[Fast]:
        return [Fast.from_dict(item) for item in await self.read(FASTS_KEY)]

    async def replace_fasts(self, fasts: List[Fast]) -> None:
        await self.write(FASTS_KEY, [fast.to_dict() for fast in fasts])

    async def save_fast(self, fast: Fast) -> None:
        """Insert or update a fast. New fasts go to the front of the list."""

        def upsert(items: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
            for i, item in enumerate(items):
                if item.get("id") == fast.id:
                    items[i] = fast.to_dict()
                    return items
            return [fast.to_dict()] + items

        await asyncio.to_thread(self._update_sync, FASTS_KEY, upsert)

    async def delete_fast(self, fast_id: str, deleted_at: int) -> bool:
        """Remove a fast and record a deletion marker for the next sync.

        Returns:
            True if a fast with that id existed locally
        """

        def remove() -> bool:
            with self._lock:
                items = self._read_sync(FASTS_KEY)
                remaining = [item for item in items if item.get("id") != fast_id]
                self._write_sync(FASTS_KEY, remaining)
                markers = self._load_markers_sync()
                markers[fast_id] = deleted_at
                self._set_sync(DELETED_FASTS_KEY, json.dumps(markers))
                return len(remaining) != len(items)

        return await asyncio.to_thread(remove)

    async def get_active_fast(self) -> Optional[Fast]:
        data = await self.read_object(ACTIVE_FAST_KEY)
        return Fast.from_dict(data) if data else None

    async def set_active_fast(self, fast: Optional[Fast]) -> None:
        if fast is None:
            await self.remove_item(ACTIVE_FAST_KEY)
        else:
            await self.write_object(ACTIVE_FAST_KEY, fast.to_dict())

    # ===== Deletion markers =====

    def _load_markers_sync(self) -> Dict[str, int]:
        data = self._load_json(DELETED_FASTS_KEY, {})
        if not isinstance(data, dict):
            return {}
        return {
            str(key): int(value)
            for key, value in data.items()
            if isinstance(value, (int, float)) and not isinstance(value, bool)
        }

    async def get_deleted_fasts(self) -> Dict[str, int]:
        """Pending fast deletions as {fast_id: deleted_at_ms}."""
        return await asyncio.to_thread(self._load_markers_sync)

    async def clear_deleted_fasts(self, fast_ids: List[str]) -> None:
        """Drop deletion markers once the remote no longer holds the fasts."""
        if not fast_ids:
            return

        def clear() -> None:
            with self._lock:
                markers = self._load_markers_sync()
                for fast_id in fast_ids:
                    markers.pop(fast_id, None)
                self._set_sync(DELETED_FASTS_KEY, json.dumps(markers))

        await asyncio.to_thread(clear)

    # ===== Profile =====

    async def get_profile(self) -> UserProfile:
        data = await self.read_object(PROFILE_KEY)
        return UserProfile.from_dict(data) if data else default_profile()

    async def save_profile(self, profile: UserProfile) -> None:
        await self.write_object(PROFILE_KEY, profile.to_dict())

    # ===== Weights =====

    async def get_weights(self) -> List[WeightEntry]:
        return [WeightEntry.from_dict(item) for item in await self.read(WEIGHTS_KEY)]

    async def replace_weights(self, weights: List[WeightEntry]) -> None:
        await self.write(WEIGHTS_KEY, [entry.to_dict() for entry in weights])

    async def save_weight(self, entry: WeightEntry) -> None:
        """Add a weight entry at the front of the list."""
        await asyncio.to_thread(
            self._update_sync, WEIGHTS_KEY, lambda items: [entry.to_dict()] + items
        )

    # ===== Water =====

    async def get_water(self) -> List[WaterEntry]:
        return [WaterEntry.from_dict(item) for item in await self.read(WATER_KEY)]

    async def get_water_for_date(self, date: str) -> int:
        for entry in await self.get_water():
            if entry.date == date:
                return entry.cups
        return 0

    async def save_water_for_date(self, date: str, cups: int) -> None:
        def upsert(items: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
            for item in items:
                if item.get("date") == date:
                    item["cups"] = cups
                    return items
            return items + [{"date": date, "cups": cups}]

        await asyncio.to_thread(self._update_sync, WATER_KEY, upsert)

    # ===== Sync metadata =====

    async def get_last_sync_timestamp(self) -> Optional[int]:
        raw = await self.get_item(LAST_SYNC_KEY)
        if raw is None:
            return None
        try:
            return int(raw)
        except ValueError:
            logger.warning(f"Ignoring malformed {LAST_SYNC_KEY} value: {raw!r}")
            return None

    async def set_last_sync_timestamp(self, timestamp_ms: int) -> None:
        await self.set_item(LAST_SYNC_KEY, str(int(timestamp_ms)))
