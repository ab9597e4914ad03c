"""PocketBase-backed token store for Spotify users.

PocketBase stores Spotify tokens server-side so the frontend never
sees them.  The ``spotify_users`` collection (use a *custom* collection,
not the built-in auth collection) should have these fields:

    spotify_id      (text, unique)   – Spotify user ID
    display_name    (text)           – Spotify display name
    email           (text, optional) – Spotify email
    avatar_url      (text, optional) – Spotify profile image
    access_token    (text)           – Spotify access token
    refresh_token   (text)           – Spotify refresh token
    token_expires   (number)         – Unix timestamp when access_token expires

Create the collection via the PocketBase Admin UI or auto-migrate.

Uses: https://pypi.org/project/pocketbase/
"""

from __future__ import annotations

import asyncio
import logging
import time
from typing import Any, Awaitable, Callable, Optional

from pocketbase import PocketBase
from pocketbase.utils import ClientResponseError

import config

logger = logging.getLogger(__name__)

_COLLECTION = "spotify_users"

# Refresh the access token when it has less than this many seconds left.
_EXPIRY_BUFFER = 60

Refresher = Callable[[str], Awaitable[dict[str, Any]]]


class TokenStoreError(RuntimeError):
    """Raised when a user record cannot be found."""


def _record_to_dict(record: Any) -> dict[str, Any]:
    """Convert a PocketBase record object to a plain dict."""
    if isinstance(record, dict):
        return record
    # The SDK record stores user-defined fields as attributes.
    d: dict[str, Any] = {}
    for key in (
        "id", "spotify_id", "display_name", "email",
        "avatar_url", "access_token", "refresh_token", "token_expires",
    ):
        d[key] = getattr(record, key, None)
    return d


class TokenStore:
    """Reads and writes Spotify credentials in PocketBase.

    Args:
        client: A PocketBase client.  Defaults to one pointed at
            ``config.POCKETBASE_URL``.
        refresher: Coroutine that trades a refresh token for a new token
            payload.  Defaults to :func:`spotify_auth.refresh_access_token`.
    """

    def __init__(
        self,
        client: Optional[PocketBase] = None,
        refresher: Optional[Refresher] = None,
        admin_email: str = config.POCKETBASE_ADMIN_EMAIL,
        admin_password: str = config.POCKETBASE_ADMIN_PASSWORD,
    ):
        if refresher is None:
            from spotify_auth import refresh_access_token as refresher

        self._client = client if client is not None else PocketBase(config.POCKETBASE_URL)
        self._refresher = refresher
        self._admin_email = admin_email
        self._admin_password = admin_password
        self._admin_token_expires_at: float = 0.0

    # ------------------------------------------------------------------
    # Admin auth
    # ------------------------------------------------------------------

    def _ensure_admin_auth(self, force: bool = False) -> None:
        """Authenticate as a PocketBase superuser if the token is missing or stale."""
        current_time = time.time()
        needs_auth = (
            not self._client.auth_store.token
            or current_time >= (self._admin_token_expires_at - 300)  # 5-minute buffer
            or force
        )

        if needs_auth:
            self._client.collection("_superusers").auth_with_password(
                self._admin_email,
                self._admin_password,
            )
            # Admin tokens last 24 hours; renew an hour early.
            self._admin_token_expires_at = current_time + (23 * 3600)

    def _with_retry(self, func, *args, **kwargs):
        """Call *func*, reauthenticating and retrying once on 401/403."""
        try:
            return func(*args, **kwargs)
        except ClientResponseError as e:
            if e.status in (401, 403):
                logger.info("PocketBase admin token rejected, reauthenticating")
                self._ensure_admin_auth(force=True)
                return func(*args, **kwargs)
            raise

    # ------------------------------------------------------------------
    # Synchronous helpers (run inside asyncio.to_thread)
    # ------------------------------------------------------------------

    def _find_sync(self, spotify_id: str) -> Optional[dict[str, Any]]:
        self._ensure_admin_auth()
        result = self._with_retry(
            self._client.collection(_COLLECTION).get_list,
            1, 1, {"filter": f'spotify_id="{spotify_id}"'}
        )
        if result.items:
            return _record_to_dict(result.items[0])
        return None

    def _upsert_sync(self, payload: dict[str, Any]) -> dict[str, Any]:
        existing = self._find_sync(payload["spotify_id"])
        if existing:
            record = self._with_retry(
                self._client.collection(_COLLECTION).update,
                existing["id"], payload
            )
        else:
            record = self._with_retry(
                self._client.collection(_COLLECTION).create,
                payload
            )
        return _record_to_dict(record)

    def _update_tokens_sync(
        self,
        spotify_id: str,
        access_token: str,
        expires_in: int,
        refresh_token: Optional[str] = None,
    ) -> None:
        existing = self._find_sync(spotify_id)
        if not existing:
            raise TokenStoreError(f"User {spotify_id} not found in PocketBase")

        payload: dict[str, Any] = {
            "access_token": access_token,
            "token_expires": int(time.time()) + expires_in,
        }
        if refresh_token:
            payload["refresh_token"] = refresh_token

        self._with_retry(
            self._client.collection(_COLLECTION).update,
            existing["id"], payload
        )

    # ------------------------------------------------------------------
    # Async public API
    # ------------------------------------------------------------------

    async def upsert_user(
        self,
        spotify_id: str,
        display_name: str,
        email: Optional[str],
        avatar_url: Optional[str],
        access_token: str,
        refresh_token: str,
        expires_in: int,
    ) -> dict[str, Any]:
        """Create or update a user record and return it as a dict."""
        payload = {
            "spotify_id": spotify_id,
            "display_name": display_name,
            "email": email or "",
            "avatar_url": avatar_url or "",
            "access_token": access_token,
            "refresh_token": refresh_token,
            "token_expires": int(time.time()) + expires_in,
        }
        return await asyncio.to_thread(self._upsert_sync, payload)

    async def get_user(self, spotify_id: str) -> Optional[dict[str, Any]]:
        """Fetch a user record by Spotify ID, or None if not found."""
        return await asyncio.to_thread(self._find_sync, spotify_id)

    async def update_tokens(
        self,
        spotify_id: str,
        access_token: str,
        expires_in: int,
        refresh_token: Optional[str] = None,
    ) -> None:
        await asyncio.to_thread(
            self._update_tokens_sync, spotify_id, access_token, expires_in, refresh_token,
        )

    async def get_valid_access_token(self, spotify_id: str) -> str:
        """Return a non-expired Spotify access token, refreshing if needed."""
        user = await self.get_user(spotify_id)
        if not user:
            raise TokenStoreError(f"User {spotify_id} not found")

        if (user.get("token_expires") or 0) > int(time.time()) + _EXPIRY_BUFFER:
            return user["access_token"]

        logger.info(f"Access token for {spotify_id} expired, refreshing")
        token_data = await self._refresher(user["refresh_token"])
        await self.update_tokens(
            spotify_id=spotify_id,
            access_token=token_data["access_token"],
            expires_in=token_data["expires_in"],
            # Spotify may or may not return a new refresh token
            refresh_token=token_data.get("refresh_token"),
        )
        return token_data["access_token"]
