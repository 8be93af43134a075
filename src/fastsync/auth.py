"""Credential storage for fastsync.

The bearer token and the signed-in user's email are kept in the Local Store.
A stored token is the only precondition the sync layer checks before
touching the network.
"""

from __future__ import annotations

import logging
from typing import Optional

from .local_store import LocalStore

logger = logging.getLogger(__name__)

TOKEN_KEY = "auth_token"
USER_KEY = "auth_user"


class CredentialStore:
    """Reads and writes the bearer credential."""

    def __init__(self, store: LocalStore) -> None:
        self.store = store

    async def get_token(self) -> Optional[str]:
        token = await self.store.get_item(TOKEN_KEY)
        return token or None

    async def set_token(self, token: str, email: Optional[str] = None) -> None:
        await self.store.set_item(TOKEN_KEY, token)
        if email is not None:
            await self.store.set_item(USER_KEY, email)
        logger.info("Stored new auth token")

    async def clear_token(self) -> None:
        await self.store.remove_item(TOKEN_KEY)
        await self.store.remove_item(USER_KEY)
        logger.info("Cleared auth token")

    async def get_user_email(self) -> Optional[str]:
        return await self.store.get_item(USER_KEY)

    async def is_authenticated(self) -> bool:
        return await self.get_token() is not None
