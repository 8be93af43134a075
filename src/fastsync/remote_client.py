"""HTTP client for the fastsync backend.

Thin request/response wrapper around the backend's REST endpoints. Every
call carries the stored bearer token; without one, calls short-circuit to a
"Not authenticated" result and no request is made.

Requests never raise. They return a dict with either
{"success": True, "data": <decoded JSON body>} or
{"success": False, "error": <message>}.

The blocking urllib request runs in a worker thread so callers can await it.
"""

from __future__ import annotations

import asyncio
import json
import logging
import socket
import urllib.error
import urllib.parse
import urllib.request
from typing import Any, Dict, Optional

from .auth import CredentialStore

logger = logging.getLogger(__name__)

NOT_AUTHENTICATED = "Not authenticated"
DEFAULT_TIMEOUT = 30

Response = Dict[str, Any]


class RemoteClient:
    """Client for the backend's sync, fast, profile and weight endpoints."""

    def __init__(
        self,
        base_url: str,
        credentials: CredentialStore,
        timeout: float = DEFAULT_TIMEOUT,
    ) -> None:
        """Initialize the client.

        Args:
            base_url: Backend root, e.g. "https://api.example.com"
            credentials: Source of the bearer token
            timeout: Per-request timeout in seconds
        """
        self.base_url = base_url.rstrip("/")
        self.credentials = credentials
        self.timeout = timeout

    # ===== Endpoints =====

    async def sync_data(self, payload: Dict[str, Any]) -> Response:
        """Upload local state and receive the remote's authoritative state.

        Args:
            payload: {"fasts": [...], "weights": [...], "profile": {...}, "water": [...]}
                in wire format

        Returns:
            On success, data is {"success", "results", "data"} as sent by the server
        """
        return await self._request("POST", "/api/sync", payload)

    async def save_fast(self, wire_fast: Dict[str, Any]) -> Response:
        return await self._request("POST", "/api/fasts", wire_fast)

    async def delete_fast(self, fast_id: str) -> Response:
        quoted = urllib.parse.quote(fast_id, safe="")
        return await self._request("DELETE", f"/api/fasts/{quoted}")

    async def update_profile(self, wire_profile: Dict[str, Any]) -> Response:
        return await self._request("PUT", "/api/profile", wire_profile)

    async def save_weight(self, wire_weight: Dict[str, Any]) -> Response:
        return await self._request("POST", "/api/weights", wire_weight)

    async def login(self, email: str, password: str) -> Response:
        """Exchange credentials for a token. Does not require a stored token."""
        return await self._request(
            "POST",
            "/api/auth/login",
            {"email": email, "password": password},
            require_auth=False,
        )

    async def register(self, email: str, password: str) -> Response:
        return await self._request(
            "POST",
            "/api/auth/register",
            {"email": email, "password": password},
            require_auth=False,
        )

    # ===== Transport =====

    async def _request(
        self,
        method: str,
        path: str,
        data: Optional[Any] = None,
        require_auth: bool = True,
    ) -> Response:
        headers: Dict[str, str] = {}
        if require_auth:
            token = await self.credentials.get_token()
            if not token:
                return {"success": False, "error": NOT_AUTHENTICATED}
            headers["Authorization"] = f"Bearer {token}"

        url = f"{self.base_url}{path}"
        return await asyncio.to_thread(self._make_request, url, method, data, headers)

    def _make_request(
        self,
        url: str,
        method: str = "GET",
        data: Optional[Any] = None,
        headers: Optional[Dict[str, str]] = None,
    ) -> Response:
        """Make a blocking HTTP(S) request.

        Args:
            url: Full URL to request
            method: HTTP method
            data: JSON-serializable body (None for no body)
            headers: Extra request headers

        Returns:
            Dict with success status and response data or error
        """
        request_headers = {"Content-Type": "application/json", "Accept": "application/json"}
        request_headers.update(headers or {})
        body = json.dumps(data).encode("utf-8") if data is not None else None

        try:
            request = urllib.request.Request(
                url, data=body, method=method, headers=request_headers
            )
            with urllib.request.urlopen(request, timeout=self.timeout) as response:
                raw = response.read().decode("utf-8")
            response_data = json.loads(raw) if raw.strip() else {}
            return {"success": True, "data": response_data}

        except urllib.error.HTTPError as e:
            error_msg = f"Request failed: {e.code}"
            try:
                error_data = json.loads(e.read().decode("utf-8"))
                if isinstance(error_data, dict) and error_data.get("error"):
                    error_msg = str(error_data["error"])
            except (ValueError, UnicodeDecodeError):
                pass
            finally:
                e.close()
            logger.error(f"{method} {url} failed: {error_msg}")
            return {"success": False, "error": error_msg, "status": e.code}

        except (urllib.error.URLError, socket.timeout, ConnectionError) as e:
            reason = getattr(e, "reason", e)
            error_msg = f"Network error: {reason}"
            logger.error(f"{method} {url} failed: {error_msg}")
            return {"success": False, "error": error_msg}

        except json.JSONDecodeError as e:
            error_msg = f"Invalid response from server: {e}"
            logger.error(f"{method} {url} failed: {error_msg}")
            return {"success": False, "error": error_msg}

        except Exception as e:
            logger.error(f"{method} {url} failed: {e}")
            return {"success": False, "error": str(e)}

