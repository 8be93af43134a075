"""Pytest fixtures for sync integration tests.

This module provides fixtures for:
- A fake backend (Flask app served on a free local port in a thread)
- Remote clients and orchestrators wired to a temporary Local Store
- A controllable clock
- Network failure simulation (a port nothing listens on)
"""

from __future__ import annotations

import socket
import sys
import threading
import time
from pathlib import Path
from typing import Any, Dict, Generator, List, Optional

import pytest
import requests
from flask import Flask, jsonify, request
from werkzeug.serving import make_server

# Add src to path
sys.path.insert(0, str(Path(__file__).parent.parent.parent / "src"))

from fastsync.auth import CredentialStore
from fastsync.local_store import LocalStore
from fastsync.remote_client import RemoteClient
from fastsync.sync import SyncOrchestrator

from tests.helpers import TEST_EMAIL, TEST_PASSWORD, TEST_TOKEN, FakeClock

BASE_TIME = 1_700_000_000_000
TEST_USER_ID = 1


def find_free_port() -> int:
    """Find a free TCP port."""
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as s:
        s.bind(("127.0.0.1", 0))
        s.listen(1)
        return s.getsockname()[1]


class FakeBackend:
    """In-memory stand-in for the fasting tracker backend.

    Holds one user's data. Knobs on the instance force failures:
    - sync_error: (status, message) returned by /api/sync
    - sync_response: body returned verbatim by /api/sync (status 200)
    - push_error: (status, message) returned by the single-entity endpoints
    - sync_delay: seconds /api/sync sleeps before answering
    """

    def __init__(self) -> None:
        self.lock = threading.Lock()
        self.users: Dict[str, str] = {TEST_EMAIL: TEST_PASSWORD}
        self.tokens: Dict[str, str] = {TEST_TOKEN: TEST_EMAIL}
        self.fasts: Dict[str, Dict[str, Any]] = {}
        self.weights: Dict[str, Dict[str, Any]] = {}
        self.water: Dict[str, Dict[str, Any]] = {}
        self.profile: Optional[Dict[str, Any]] = None
        self.requests: List[Dict[str, Any]] = []

        self.sync_error: Optional[tuple] = None
        self.sync_response: Optional[Dict[str, Any]] = None
        self.push_error: Optional[tuple] = None
        self.sync_delay = 0.0
        self.active_syncs = 0
        self.max_concurrent_syncs = 0

        self.app = self._create_app()
        self.server = None
        self.thread: Optional[threading.Thread] = None
        self.port = 0

    @property
    def url(self) -> str:
        return f"http://127.0.0.1:{self.port}"

    # ===== Seeding =====

    def add_fast(self, wire_fast: Dict[str, Any]) -> None:
        fast = dict(wire_fast)
        fast.setdefault("completed", False)
        fast["userId"] = TEST_USER_ID
        self.fasts[fast["id"]] = fast

    def add_weight(self, wire_weight: Dict[str, Any]) -> None:
        self.weights[wire_weight["id"]] = dict(wire_weight, userId=TEST_USER_ID)

    def set_profile(self, wire_profile: Dict[str, Any]) -> None:
        self.profile = dict(wire_profile, userId=TEST_USER_ID)

    def requests_to(self, method: str, path: str) -> List[Dict[str, Any]]:
        return [r for r in self.requests if r["method"] == method and r["path"] == path]

    # ===== Lifecycle =====

    def start(self) -> None:
        self.server = make_server("127.0.0.1", 0, self.app, threaded=True)
        self.port = self.server.server_port
        self.thread = threading.Thread(target=self.server.serve_forever, daemon=True)
        self.thread.start()
        if not self.wait_for_server():
            raise RuntimeError("Fake backend did not start")

    def stop(self) -> None:
        if self.server is not None:
            self.server.shutdown()
            self.server.server_close()
            self.server = None
        if self.thread is not None:
            self.thread.join(timeout=5)
            self.thread = None

    def is_server_running(self) -> bool:
        """Check if the fake backend is responding."""
        try:
            resp = requests.get(f"{self.url}/api/health", timeout=1)
            return resp.status_code == 200
        except requests.exceptions.RequestException:
            return False

    def wait_for_server(self, timeout: float = 10.0) -> bool:
        """Wait for server to become available."""
        start = time.time()
        while time.time() - start < timeout:
            if self.is_server_running():
                return True
            time.sleep(0.05)
        return False

    # ===== Routes =====

    def _create_app(self) -> Flask:
        app = Flask("fake_backend")
        backend = self

        @app.before_request
        def record() -> None:
            if request.path == "/api/health":
                return
            with backend.lock:
                backend.requests.append({
                    "method": request.method,
                    "path": request.path,
                    "json": request.get_json(silent=True),
                    "authorization": request.headers.get("Authorization"),
                })

        def authenticate() -> Optional[Any]:
            header = request.headers.get("Authorization", "")
            if not header.startswith("Bearer "):
                return jsonify({"error": "No token provided"}), 401
            if header[len("Bearer "):] not in backend.tokens:
                return jsonify({"error": "Invalid or expired token"}), 401
            return None

        def push_failure() -> Optional[Any]:
            if backend.push_error is not None:
                status, message = backend.push_error
                return jsonify({"error": message}), status
            return None

        @app.route("/api/health", methods=["GET"])
        def health():
            return jsonify({"status": "ok"})

        @app.route("/api/auth/login", methods=["POST"])
        def login():
            body = request.get_json(silent=True) or {}
            email = str(body.get("email", "")).lower()
            if not email or not body.get("password"):
                return jsonify({"error": "Email and password are required"}), 400
            if backend.users.get(email) != body["password"]:
                return jsonify({"error": "Invalid email or password"}), 401
            return jsonify({"user": {"id": TEST_USER_ID, "email": email}, "token": TEST_TOKEN})

        @app.route("/api/auth/register", methods=["POST"])
        def register():
            body = request.get_json(silent=True) or {}
            email = str(body.get("email", "")).lower()
            if not email or not body.get("password"):
                return jsonify({"error": "Email and password are required"}), 400
            with backend.lock:
                if email in backend.users:
                    return jsonify({"error": "User already exists"}), 409
                backend.users[email] = body["password"]
                token = f"token-{len(backend.tokens) + 1}"
                backend.tokens[token] = email
            return jsonify({"user": {"id": len(backend.users), "email": email}, "token": token}), 201

        @app.route("/api/sync", methods=["POST"])
        def sync():
            denied = authenticate()
            if denied is not None:
                return denied

            with backend.lock:
                backend.active_syncs += 1
                backend.max_concurrent_syncs = max(
                    backend.max_concurrent_syncs, backend.active_syncs
                )
            try:
                if backend.sync_delay:
                    time.sleep(backend.sync_delay)
                if backend.sync_error is not None:
                    status, message = backend.sync_error
                    return jsonify({"error": message}), status
                if backend.sync_response is not None:
                    return jsonify(backend.sync_response)
                return jsonify(backend._apply_sync(request.get_json(silent=True) or {}))
            finally:
                with backend.lock:
                    backend.active_syncs -= 1

        @app.route("/api/fasts", methods=["POST"])
        def save_fast():
            denied = authenticate() or push_failure()
            if denied is not None:
                return denied
            body = request.get_json(silent=True) or {}
            with backend.lock:
                backend.add_fast(body)
                return jsonify({"success": True, "fast": backend.fasts[body["id"]]})

        @app.route("/api/fasts/<fast_id>", methods=["DELETE"])
        def delete_fast(fast_id: str):
            denied = authenticate() or push_failure()
            if denied is not None:
                return denied
            with backend.lock:
                if backend.fasts.pop(fast_id, None) is None:
                    return jsonify({"error": "Fast not found"}), 404
            return jsonify({"success": True})

        @app.route("/api/profile", methods=["PUT"])
        def update_profile():
            denied = authenticate() or push_failure()
            if denied is not None:
                return denied
            body = request.get_json(silent=True) or {}
            with backend.lock:
                backend.set_profile(dict(backend.profile or {}, **body))
                return jsonify({"success": True, "profile": backend.profile})

        @app.route("/api/weights", methods=["POST"])
        def save_weight():
            denied = authenticate() or push_failure()
            if denied is not None:
                return denied
            body = request.get_json(silent=True) or {}
            with backend.lock:
                backend.add_weight(body)
                return jsonify({"success": True, "weight": backend.weights[body["id"]]})

        return app

    def _apply_sync(self, body: Dict[str, Any]) -> Dict[str, Any]:
        results = {
            "fasts": {"synced": 0, "errors": 0},
            "weights": {"synced": 0, "errors": 0},
            "profile": {"synced": False},
            "water": {"synced": 0, "errors": 0},
        }
        with self.lock:
            for fast in body.get("fasts") or []:
                self.add_fast(fast)
                results["fasts"]["synced"] += 1
            for weight in body.get("weights") or []:
                self.add_weight(weight)
                results["weights"]["synced"] += 1
            if body.get("profile"):
                self.set_profile(dict(self.profile or {}, **body["profile"]))
                results["profile"]["synced"] = True
            for entry in body.get("water") or []:
                self.water[entry["date"]] = dict(entry, userId=TEST_USER_ID)
                results["water"]["synced"] += 1

            return {
                "success": True,
                "results": results,
                "data": {
                    "fasts": list(self.fasts.values()),
                    "weights": list(self.weights.values()),
                    "profile": self.profile,
                    "water": list(self.water.values()),
                },
            }


@pytest.fixture
def backend() -> Generator[FakeBackend, None, None]:
    """Running fake backend, stopped after the test."""
    fake = FakeBackend()
    fake.start()
    yield fake
    fake.stop()


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock(BASE_TIME)


@pytest.fixture
def client(backend: FakeBackend, signed_in: CredentialStore) -> RemoteClient:
    """Remote client holding a valid token for the fake backend."""
    return RemoteClient(backend.url, signed_in, timeout=5)


@pytest.fixture
def orchestrator(
    store: LocalStore,
    client: RemoteClient,
    signed_in: CredentialStore,
    clock: FakeClock,
) -> SyncOrchestrator:
    return SyncOrchestrator(store, client, signed_in, clock=clock)


@pytest.fixture
def signed_out_orchestrator(
    store: LocalStore,
    backend: FakeBackend,
    credentials: CredentialStore,
    clock: FakeClock,
) -> SyncOrchestrator:
    client = RemoteClient(backend.url, credentials, timeout=5)
    return SyncOrchestrator(store, client, credentials, clock=clock)


@pytest.fixture
def offline_orchestrator(
    store: LocalStore,
    signed_in: CredentialStore,
    clock: FakeClock,
) -> SyncOrchestrator:
    """Orchestrator pointed at a port nothing listens on."""
    client = RemoteClient(f"http://127.0.0.1:{find_free_port()}", signed_in, timeout=2)
    return SyncOrchestrator(store, client, signed_in, clock=clock)
