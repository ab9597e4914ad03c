"""Signed session tokens handed to the frontend after Spotify login.

The frontend sends the token back on every request as::

    Authorization: Bearer <jwt>

The payload carries only the Spotify user ID and display name; the
Spotify access/refresh tokens never leave the server.
"""

from __future__ import annotations

import time
from typing import Optional

import jwt  # PyJWT

import config

_ALGORITHM = "HS256"
_DEFAULT_TTL = 60 * 60 * 24 * 7  # 7 days


def create_session_token(
    spotify_id: str,
    display_name: str,
    ttl: int = _DEFAULT_TTL,
    secret: Optional[str] = None,
) -> str:
    """Create a signed JWT for the given user."""
    now = int(time.time())
    payload = {
        "sub": spotify_id,
        "name": display_name,
        "iat": now,
        "exp": now + ttl,
    }
    return jwt.encode(payload, secret or config.JWT_SECRET, algorithm=_ALGORITHM)


def verify_session_token(token: str, secret: Optional[str] = None) -> Optional[dict]:
    """Decode a session JWT, or return None if it is invalid or expired."""
    try:
        return jwt.decode(token, secret or config.JWT_SECRET, algorithms=[_ALGORITHM])
    except jwt.InvalidTokenError:
        return None


def get_spotify_id(token: str) -> Optional[str]:
    payload = verify_session_token(token)
    return payload["sub"] if payload else None
