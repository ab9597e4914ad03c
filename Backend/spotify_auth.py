"""Spotify Authorization Code flow (web flow used by the API server).

Generates the authorize URL, exchanges the callback code for tokens,
refreshes expired access tokens and fetches the current user's profile.
"""

from __future__ import annotations

from urllib.parse import urlencode
from typing import Any

from aiohttp import BasicAuth, ClientSession

import config

# Scopes needed to read the user's playlists and write new ones.
SCOPES = " ".join(
    [
        "user-read-email",
        "playlist-read-private",
        "playlist-read-collaborative",
        "playlist-modify-private",
        "playlist-modify-public",
        "user-library-read",
    ]
)

SPOTIFY_AUTH_URL = "https://accounts.spotify.com/authorize"
SPOTIFY_TOKEN_URL = "https://accounts.spotify.com/api/token"
SPOTIFY_ME_URL = "https://api.spotify.com/v1/me"


class SpotifyAuthFlowError(RuntimeError):
    """Token exchange, refresh or profile lookup failed."""


def build_authorize_url(state: str) -> str:
    """Return the Spotify authorize URL the frontend should redirect to."""
    params = urlencode(
        {
            "client_id": config.SPOTIFY_CLIENT_ID,
            "response_type": "code",
            "redirect_uri": config.SPOTIFY_REDIRECT_URI,
            "scope": SCOPES,
            "state": state,
        }
    )
    return f"{SPOTIFY_AUTH_URL}?{params}"


async def _token_request(data: dict[str, str], what: str) -> dict[str, Any]:
    async with ClientSession() as session:
        async with session.post(
            SPOTIFY_TOKEN_URL,
            data=data,
            auth=BasicAuth(config.SPOTIFY_CLIENT_ID, config.SPOTIFY_CLIENT_SECRET),
        ) as resp:
            body = await resp.json()
            if resp.status != 200:
                raise SpotifyAuthFlowError(f"{what} failed: {body}")
            return body


async def exchange_code(code: str) -> dict[str, Any]:
    """Exchange an authorization *code* for a token payload.

    Returns the full Spotify response which includes at least::

        {
            "access_token": "...",
            "token_type": "Bearer",
            "scope": "...",
            "expires_in": 3600,
            "refresh_token": "..."
        }
    """
    return await _token_request(
        {
            "grant_type": "authorization_code",
            "code": code,
            "redirect_uri": config.SPOTIFY_REDIRECT_URI,
        },
        "Token exchange",
    )


async def refresh_access_token(refresh_token: str) -> dict[str, Any]:
    """Use a refresh token to obtain a new access token from Spotify."""
    if not refresh_token:
        raise SpotifyAuthFlowError("Missing refresh token")
    return await _token_request(
        {
            "grant_type": "refresh_token",
            "refresh_token": refresh_token,
        },
        "Token refresh",
    )


async def get_spotify_user(access_token: str) -> dict[str, Any]:
    """Fetch the current user's Spotify profile (/v1/me)."""
    async with ClientSession() as session:
        async with session.get(
            SPOTIFY_ME_URL,
            headers={"Authorization": f"Bearer {access_token}"},
        ) as resp:
            body = await resp.json()
            if resp.status != 200:
                raise SpotifyAuthFlowError(f"Failed to fetch profile: {body}")
            return body
