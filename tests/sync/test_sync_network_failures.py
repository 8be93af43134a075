"""Tests for sync behavior under network failures.

Tests network failure scenarios:
- Server unavailable
- Request timeout
- Recovery once the server is reachable again
"""

from __future__ import annotations

import pytest

from fastsync.auth import CredentialStore
from fastsync.local_store import LocalStore
from fastsync.remote_client import RemoteClient
from fastsync.sync import SyncErrorKind, SyncOrchestrator

from tests.helpers import make_fast, make_weight

from .conftest import FakeBackend, FakeClock

pytestmark = pytest.mark.sync


class TestServerUnavailable:
    """Tests for when the backend is not running."""

    async def test_sync_fails_when_server_down(
        self, offline_orchestrator: SyncOrchestrator, store: LocalStore
    ) -> None:
        await store.replace_fasts([make_fast("f1")])
        await store.replace_weights([make_weight("w1")])

        result = await offline_orchestrator.perform_full_sync()

        assert result.success is False
        assert result.error.kind is SyncErrorKind.TRANSPORT
        assert result.error.message.startswith("Network error:")
        assert [fast.id for fast in await store.get_fasts()] == ["f1"]
        assert [entry.id for entry in await store.get_weights()] == ["w1"]
        assert await store.get_last_sync_timestamp() is None

    async def test_sync_fails_after_server_stops(
        self, orchestrator: SyncOrchestrator, backend: FakeBackend
    ) -> None:
        assert (await orchestrator.perform_full_sync()).success is True

        backend.stop()
        result = await orchestrator.perform_full_sync()

        assert result.success is False
        assert result.error.kind is SyncErrorKind.TRANSPORT


class TestTimeout:
    """Tests for a backend that answers too slowly."""

    async def test_slow_server_times_out(
        self,
        store: LocalStore,
        backend: FakeBackend,
        signed_in: CredentialStore,
        clock: FakeClock,
    ) -> None:
        backend.sync_delay = 1.0
        client = RemoteClient(backend.url, signed_in, timeout=0.2)
        orchestrator = SyncOrchestrator(store, client, signed_in, clock=clock)
        await store.replace_fasts([make_fast("f1")])

        result = await orchestrator.perform_full_sync()

        assert result.success is False
        assert result.error.kind is SyncErrorKind.TRANSPORT
        assert [fast.id for fast in await store.get_fasts()] == ["f1"]


class TestRecovery:
    """Tests for recovery after the network returns."""

    async def test_local_changes_upload_on_next_sync(
        self,
        offline_orchestrator: SyncOrchestrator,
        store: LocalStore,
        backend: FakeBackend,
        signed_in: CredentialStore,
        clock: FakeClock,
    ) -> None:
        await store.save_fast(make_fast("offline-fast"))
        assert await offline_orchestrator.sync_single_fast(make_fast("offline-fast")) is False
        assert (await offline_orchestrator.perform_full_sync()).success is False

        online = SyncOrchestrator(store, RemoteClient(backend.url, signed_in), signed_in, clock=clock)
        result = await online.perform_full_sync()

        assert result.success is True
        assert "offline-fast" in backend.fasts
        assert await store.get_last_sync_timestamp() == clock.now
