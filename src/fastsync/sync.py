"""Sync orchestration for fastsync.

This module coordinates a full sync cycle between the Local Store and the
backend:

1. Check for a stored credential (no network I/O without one)
2. Read fasts, profile, weights and the water log concurrently
3. Upload them in one bulk request and receive the remote's state
4. Merge per entity kind against the local snapshot from step 2
5. Write the merged collections back, then the new sync timestamp

Local data is only written after a fully successful round trip, so a failed
sync leaves the store exactly as it was. The writes themselves are not
atomic as a group; the merges are idempotent, so re-running a sync after an
interruption converges to the same state.

It also exposes best-effort single-entity pushes used right after a local
mutation. Those never raise and report success as a bool; the next full sync
reconciles anything they missed.

No public operation raises: every failure path returns a value.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, List, Optional, Set

from .auth import CredentialStore
from .converters import (
    fast_to_wire,
    profile_to_wire,
    water_to_wire,
    weight_to_wire,
    wire_to_fast,
    wire_to_profile,
    wire_to_water,
    wire_to_weight,
)
from .local_store import LocalStore, LocalStoreError
from .merge import merge_fasts, merge_profiles, merge_weights
from .models import Fast, UserProfile, WaterEntry, WeightEntry
from .remote_client import NOT_AUTHENTICATED, RemoteClient
from .timestamp_utils import current_timestamp_ms

logger = logging.getLogger(__name__)

__all__ = [
    "SyncErrorKind",
    "SyncError",
    "MergedSnapshot",
    "FullSyncResult",
    "PushResult",
    "SyncOrchestrator",
    "build_sync_payload",
]

DEFAULT_TOMBSTONE_TTL_DAYS = 30
MS_PER_DAY = 24 * 60 * 60 * 1000


class SyncErrorKind(Enum):
    """Why a full sync failed."""

    AUTHENTICATION = "authentication"
    TRANSPORT = "transport"
    REMOTE = "remote"
    LOCAL_READ = "local_read"
    LOCAL_WRITE = "local_write"
    UNEXPECTED = "unexpected"


@dataclass(frozen=True)
class SyncError:
    kind: SyncErrorKind
    message: str

    def __str__(self) -> str:
        return self.message


@dataclass
class MergedSnapshot:
    """State after a successful full sync.

    fasts, weights and profile are the merged values just written to the
    Local Store. water is the remote's water log as returned (it is not
    merged locally). results holds the server's per-kind counters.
    """

    fasts: List[Fast]
    weights: List[WeightEntry]
    profile: UserProfile
    water: List[WaterEntry] = field(default_factory=list)
    results: Dict[str, Any] = field(default_factory=dict)
    synced_at: Optional[int] = None


@dataclass
class FullSyncResult:
    """Result of perform_full_sync(): data on success, error otherwise."""

    success: bool
    data: Optional[MergedSnapshot] = None
    error: Optional[SyncError] = None

    @classmethod
    def failure(cls, kind: SyncErrorKind, message: str) -> "FullSyncResult":
        return cls(success=False, error=SyncError(kind, message))


@dataclass(frozen=True)
class PushResult:
    """Outcome of a single-entity push. Callers usually only look at ok."""

    ok: bool
    error: Optional[str] = None


def build_sync_payload(
    fasts: List[Fast],
    profile: UserProfile,
    weights: List[WeightEntry],
    water: List[WaterEntry],
) -> Dict[str, Any]:
    """Build the bulk sync request body in wire format."""
    return {
        "fasts": [fast_to_wire(fast) for fast in fasts],
        "profile": profile_to_wire(profile),
        "weights": [weight_to_wire(entry) for entry in weights],
        "water": [water_to_wire(entry) for entry in water],
    }


def _wire_items(data: Dict[str, Any], key: str, require_id: bool = True) -> List[Dict[str, Any]]:
    items = data.get(key)
    if not isinstance(items, list):
        return []
    return [
        item
        for item in items
        if isinstance(item, dict) and (not require_id or item.get("id") is not None)
    ]


class SyncOrchestrator:
    """Runs full syncs and best-effort pushes against the backend.

    Concurrent calls to perform_full_sync() are serialized by a lock, so two
    near-simultaneous triggers never interleave their reads and writes.
    Single-entity pushes do not take the lock; they do not touch local
    entity collections.
    """

    def __init__(
        self,
        store: LocalStore,
        client: RemoteClient,
        credentials: CredentialStore,
        clock: Callable[[], int] = current_timestamp_ms,
        tombstone_ttl_days: int = DEFAULT_TOMBSTONE_TTL_DAYS,
    ) -> None:
        """Initialize the orchestrator.

        Args:
            store: Local Store holding the on-device data
            client: Backend client
            credentials: Source of the bearer token
            clock: Returns the current time in epoch milliseconds
            tombstone_ttl_days: Age after which a pending fast deletion is
                forgotten even if the remote never confirmed it
        """
        self.store = store
        self.client = client
        self.credentials = credentials
        self.clock = clock
        self.tombstone_ttl_ms = tombstone_ttl_days * MS_PER_DAY
        self._sync_lock = asyncio.Lock()

    @property
    def is_syncing(self) -> bool:
        return self._sync_lock.locked()

    # ===== Full sync =====

    async def perform_full_sync(self) -> FullSyncResult:
        """Run one complete sync cycle.

        Returns:
            FullSyncResult with the merged snapshot, or the error that
            stopped the sync. Local data is untouched on any failure before
            the write-back step.
        """
        try:
            authenticated = await self.credentials.is_authenticated()
        except LocalStoreError as e:
            logger.error(f"Cannot read credentials: {e}")
            return FullSyncResult.failure(SyncErrorKind.LOCAL_READ, str(e))
        if not authenticated:
            return FullSyncResult.failure(SyncErrorKind.AUTHENTICATION, NOT_AUTHENTICATED)

        async with self._sync_lock:
            logger.info("Starting full sync")
            try:
                result = await self._run_full_sync()
            except Exception as e:
                logger.error(f"Sync error: {e}", exc_info=True)
                return FullSyncResult.failure(SyncErrorKind.UNEXPECTED, str(e) or "Sync failed")

        if result.success:
            logger.info(
                f"Sync complete: fasts={len(result.data.fasts)}, "
                f"weights={len(result.data.weights)}"
            )
        else:
            logger.warning(f"Sync failed ({result.error.kind.value}): {result.error.message}")
        return result

    async def _run_full_sync(self) -> FullSyncResult:
        try:
            (
                local_fasts,
                local_profile,
                local_weights,
                local_water,
                deleted_markers,
                previous_sync,
            ) = await asyncio.gather(
                self.store.get_fasts(),
                self.store.get_profile(),
                self.store.get_weights(),
                self.store.get_water(),
                self.store.get_deleted_fasts(),
                self.store.get_last_sync_timestamp(),
            )
        except LocalStoreError as e:
            return FullSyncResult.failure(SyncErrorKind.LOCAL_READ, str(e))

        payload = build_sync_payload(local_fasts, local_profile, local_weights, local_water)
        response = await self.client.sync_data(payload)

        if not response["success"]:
            error = response.get("error") or "Sync failed"
            kind = (
                SyncErrorKind.AUTHENTICATION
                if error == NOT_AUTHENTICATED or response.get("status") == 401
                else SyncErrorKind.TRANSPORT
            )
            return FullSyncResult.failure(kind, error)

        body = response.get("data")
        if not isinstance(body, dict) or body.get("success") is False:
            message = body.get("error") if isinstance(body, dict) else None
            return FullSyncResult.failure(
                SyncErrorKind.REMOTE, message or "Sync rejected by server"
            )
        remote_data = body.get("data")
        if not isinstance(remote_data, dict):
            return FullSyncResult.failure(SyncErrorKind.REMOTE, "No data returned from sync")

        remote_fasts = [wire_to_fast(item) for item in _wire_items(remote_data, "fasts")]
        remote_weights = [wire_to_weight(item) for item in _wire_items(remote_data, "weights")]
        remote_water = [
            wire_to_water(item) for item in _wire_items(remote_data, "water", require_id=False)
        ]
        wire_profile = remote_data.get("profile")
        remote_profile = wire_to_profile(wire_profile) if isinstance(wire_profile, dict) else None

        now = self.clock()
        pending_deletes = {
            fast_id
            for fast_id, deleted_at in deleted_markers.items()
            if now - deleted_at <= self.tombstone_ttl_ms
        }
        expired_deletes = set(deleted_markers) - pending_deletes
        remote_ids: Set[str] = {fast.id for fast in remote_fasts}
        still_remote = sorted(pending_deletes & remote_ids)
        confirmed_gone = sorted((pending_deletes - remote_ids) | expired_deletes)

        merged_fasts = merge_fasts(local_fasts, remote_fasts, deleted_ids=pending_deletes)
        merged_weights = merge_weights(local_weights, remote_weights)
        merged_profile = merge_profiles(local_profile, remote_profile)

        synced_at = max(now, previous_sync or 0)
        try:
            await self.store.replace_fasts(merged_fasts)
            await self._release_finished_active_fast(merged_fasts)
            await self.store.save_profile(merged_profile)
            await self.store.replace_weights(merged_weights)
            await self.store.set_last_sync_timestamp(synced_at)
            await self.store.clear_deleted_fasts(confirmed_gone)
        except LocalStoreError as e:
            return FullSyncResult.failure(SyncErrorKind.LOCAL_WRITE, str(e))

        for fast_id in still_remote:
            logger.info(f"Re-sending deletion of fast {fast_id}")
            await self.delete_fast_remote(fast_id)

        results = body.get("results")
        return FullSyncResult(
            success=True,
            data=MergedSnapshot(
                fasts=merged_fasts,
                weights=merged_weights,
                profile=merged_profile,
                water=remote_water,
                results=results if isinstance(results, dict) else {},
                synced_at=synced_at,
            ),
        )

    async def _release_finished_active_fast(self, merged_fasts: List[Fast]) -> None:
        """Clear the active fast once the merged copy has ended or is gone."""
        active = await self.store.get_active_fast()
        if active is None:
            return
        merged = next((fast for fast in merged_fasts if fast.id == active.id), None)
        if merged is None or merged.end_time is not None:
            logger.info(f"Active fast {active.id} was ended or removed elsewhere")
            await self.store.set_active_fast(None)

    # ===== Best-effort single-entity pushes =====

    async def _push(
        self, description: str, call: Callable[[], Awaitable[Dict[str, Any]]]
    ) -> PushResult:
        try:
            if not await self.credentials.is_authenticated():
                return PushResult(ok=False, error=NOT_AUTHENTICATED)
            response = await call()
        except Exception as e:
            logger.warning(f"Push of {description} failed: {e}")
            return PushResult(ok=False, error=str(e))

        if not response["success"]:
            logger.warning(f"Push of {description} failed: {response.get('error')}")
            return PushResult(ok=False, error=response.get("error"))
        return PushResult(ok=True)

    async def push_fast(self, fast: Fast) -> PushResult:
        return await self._push(f"fast {fast.id}", lambda: self.client.save_fast(fast_to_wire(fast)))

    async def push_fast_deletion(self, fast_id: str) -> PushResult:
        """Delete a fast remotely and drop its local deletion marker on success.

        A 404 from the remote counts as success: the fast is already gone.
        """

        async def call() -> Dict[str, Any]:
            response = await self.client.delete_fast(fast_id)
            if not response["success"] and response.get("status") == 404:
                response = {"success": True, "data": None}
            if response["success"]:
                await self.store.clear_deleted_fasts([fast_id])
            return response

        return await self._push(f"deletion of fast {fast_id}", call)

    async def push_profile(self, profile: UserProfile) -> PushResult:
        return await self._push("profile", lambda: self.client.update_profile(profile_to_wire(profile)))

    async def push_weight(self, weight: WeightEntry) -> PushResult:
        return await self._push(
            f"weight {weight.id}", lambda: self.client.save_weight(weight_to_wire(weight))
        )

    async def sync_single_fast(self, fast: Fast) -> bool:
        return (await self.push_fast(fast)).ok

    async def delete_fast_remote(self, fast_id: str) -> bool:
        return (await self.push_fast_deletion(fast_id)).ok

    async def sync_profile(self, profile: UserProfile) -> bool:
        return (await self.push_profile(profile)).ok

    async def sync_weight(self, weight: WeightEntry) -> bool:
        return (await self.push_weight(weight)).ok

    # ===== Sync metadata =====

    async def get_last_sync_time(self) -> Optional[int]:
        """Epoch ms of the last successful full sync, or None if never synced."""
        try:
            return await self.store.get_last_sync_timestamp()
        except LocalStoreError as e:
            logger.error(f"Cannot read last sync time: {e}")
            return None

    async def set_last_sync_time(self, timestamp_ms: int) -> bool:
        try:
            await self.store.set_last_sync_timestamp(timestamp_ms)
        except LocalStoreError as e:
            logger.error(f"Cannot store last sync time: {e}")
            return False
        return True
