"""Pytest fixtures for fastsync tests.

This module provides fixtures for a temporary config directory, a Local
Store on disk, and credential stores with and without a token.
"""

from __future__ import annotations

import sys
from pathlib import Path
from typing import Generator

import pytest

# Add src to path
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from fastsync.auth import CredentialStore
from fastsync.config import Config
from fastsync.local_store import LocalStore

from tests.helpers import TEST_EMAIL, TEST_TOKEN


@pytest.fixture
def test_config_dir(tmp_path: Path) -> Path:
    """Create temporary config directory for tests."""
    config_dir = tmp_path / "fastsync_test"
    config_dir.mkdir(parents=True, exist_ok=True)
    return config_dir


@pytest.fixture
def test_config(test_config_dir: Path) -> Config:
    return Config(config_dir=test_config_dir)


@pytest.fixture
def store(test_config_dir: Path) -> Generator[LocalStore, None, None]:
    """Empty Local Store backed by a temporary SQLite file."""
    local_store = LocalStore(test_config_dir / "test_store.db")
    yield local_store
    local_store.close()


@pytest.fixture
def credentials(store: LocalStore) -> CredentialStore:
    """Credential store with no token."""
    return CredentialStore(store)


@pytest.fixture
async def signed_in(store: LocalStore) -> CredentialStore:
    """Credential store holding a valid token."""
    creds = CredentialStore(store)
    await creds.set_token(TEST_TOKEN, email=TEST_EMAIL)
    return creds
