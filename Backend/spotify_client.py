"""Spotify Web API helpers – playlist listing, track and audio-feature fetching,
and playlist creation."""

from __future__ import annotations

import asyncio
import logging
from typing import Any, AsyncIterator, Optional

import aiohttp
from aiohttp import ClientSession

from models import AudioFeatures, Track

SPOTIFY_API = "https://api.spotify.com/v1"

# Maximum retries when Spotify returns 429 (Too Many Requests) or the
# connection drops.
_MAX_RETRIES = 5

_PAGE_SIZE = 50

# /audio-features and /playlists/{id}/tracks both cap a call at 100 IDs.
_BATCH_SIZE = 100

# Set up logging
logger = logging.getLogger(__name__)
logging.basicConfig(
    level=logging.INFO,
    format="[%(asctime)s] %(name)s - %(levelname)s - %(message)s",
)


class SpotifyError(RuntimeError):
    """Base class for failed Spotify Web API calls."""

    def __init__(self, message: str, status: Optional[int] = None):
        super().__init__(message)
        self.status = status


class SpotifyAuthError(SpotifyError):
    """The access token was rejected (401)."""


class SpotifyPermissionError(SpotifyError):
    """The token lacks a scope or the resource is off limits (403)."""


class SpotifyRateLimitError(SpotifyError):
    """Still rate limited after all retries (429)."""


class SpotifyAPIError(SpotifyError):
    """Any other non-success response."""


def _auth_header(token: str) -> dict[str, str]:
    return {"Authorization": f"Bearer {token}"}


def _raise_for(status: int, detail: str, label: str) -> None:
    logger.error(f"[{label}] HTTP {status} error: {detail[:200]}")
    message = f"Spotify {label} request failed ({status}): {detail[:200]}"
    if status == 401:
        raise SpotifyAuthError(message, status)
    if status == 403 or "Bad OAuth" in detail:
        raise SpotifyPermissionError(message, status)
    raise SpotifyAPIError(message, status)


async def _request_json(
    session: ClientSession,
    method: str,
    url: str,
    token: str,
    label: str,
    json: Optional[dict] = None,
) -> dict[str, Any]:
    """Send one request, retrying on 429 and transient network errors."""
    cumulative_wait = 0
    for attempt in range(_MAX_RETRIES):
        try:
            async with session.request(
                method, url, headers=_auth_header(token), json=json
            ) as resp:
                if resp.status == 429:
                    retry_after = int(resp.headers.get("Retry-After", 1))
                    cumulative_wait += retry_after
                    logger.warning(
                        f"[{label}] Rate limited (429). Waiting {retry_after}s "
                        f"(attempt {attempt + 1}/{_MAX_RETRIES}, cumulative wait: {cumulative_wait}s)"
                    )
                    await asyncio.sleep(retry_after)
                    continue

                if resp.status not in (200, 201):
                    _raise_for(resp.status, await resp.text(), label)

                return await resp.json()
        except (aiohttp.ClientConnectionError, asyncio.TimeoutError) as e:
            logger.error(f"[{label}] Request failed: {type(e).__name__}: {e}")
            if attempt < _MAX_RETRIES - 1:
                await asyncio.sleep(2 ** attempt)
                continue
            raise SpotifyAPIError(f"Spotify {label} request failed: {e}") from e

    raise SpotifyRateLimitError("Spotify rate limit exceeded after max retries", 429)


async def get_user_playlists(
    token: str,
) -> list[dict]:
    """Return *all* of the current user's playlists (handles pagination).

    Each dict has at least ``id``, ``name``, ``tracks["total"]``,
    ``owner["display_name"]``.
    """
    playlists: list[dict] = []
    url: str | None = f"{SPOTIFY_API}/me/playlists?limit={_PAGE_SIZE}"

    async with ClientSession() as session:
        while url:
            data = await _request_json(session, "GET", url, token, "playlists")
            playlists.extend(data.get("items", []))
            url = data.get("next")

    return playlists


def _track_from_item(item: dict) -> Optional[Track]:
    t = item.get("track")
    if t is None or t.get("id") is None:
        return None  # local files / unavailable tracks

    return Track(
        spotify_id=t["id"],
        title=t.get("name", ""),
        artists=[a["name"] for a in t.get("artists", [])],
        album_name=(t.get("album") or {}).get("name", "Unknown Album"),
        duration_ms=t.get("duration_ms", 0),
        uri=t.get("uri") or "",
    )


async def iter_playlist_track_pages(
    token: str,
    playlist_id: str,
) -> AsyncIterator[list[Track]]:
    """Yield the tracks of a playlist one page at a time.

    The stream ends when Spotify reports no ``next`` page or returns an
    empty page.  It cannot be restarted; call again for a fresh stream.
    """
    url: str | None = (
        f"{SPOTIFY_API}/playlists/{playlist_id}/tracks"
        f"?limit={_PAGE_SIZE}&offset=0"
    )

    async with ClientSession() as session:
        while url:
            data = await _request_json(session, "GET", url, token, "tracks")
            items = data.get("items", [])
            if not items:
                break

            page = [t for t in (_track_from_item(i) for i in items) if t is not None]
            skipped = len(items) - len(page)
            if skipped:
                logger.info(f"[tracks] Skipped {skipped} local/unavailable item(s)")
            yield page

            url = data.get("next")


async def get_playlist_tracks(
    token: str,
    playlist_id: str,
) -> list[Track]:
    """Fetch every track in a playlist.

    Duplicate tracks (same ``spotify_id``) are kept once, at their first
    position.
    """
    seen: set[str] = set()
    tracks: list[Track] = []

    async for page in iter_playlist_track_pages(token, playlist_id):
        for t in page:
            if t.spotify_id in seen:
                continue
            seen.add(t.spotify_id)
            tracks.append(t)

    return tracks


def _features_from_item(item: dict) -> AudioFeatures:
    return AudioFeatures(
        tempo=item.get("tempo"),
        energy=item.get("energy"),
        acousticness=item.get("acousticness"),
        instrumentalness=item.get("instrumentalness"),
        valence=item.get("valence"),
        danceability=item.get("danceability"),
        liveness=item.get("liveness"),
        loudness=item.get("loudness"),
        speechiness=item.get("speechiness"),
        key=item.get("key"),
        mode=item.get("mode"),
    )


async def get_audio_features(
    token: str,
    track_ids: list[str],
) -> dict[str, AudioFeatures]:
    """Fetch audio features in batches of 100.

    Returns ``{spotify_id: AudioFeatures}``; tracks Spotify has no analysis
    for are simply missing from the result.  Any failed batch aborts the
    whole call.
    """
    features: dict[str, AudioFeatures] = {}

    async with ClientSession() as session:
        for i in range(0, len(track_ids), _BATCH_SIZE):
            batch = track_ids[i:i + _BATCH_SIZE]
            url = f"{SPOTIFY_API}/audio-features?ids={','.join(batch)}"
            label = f"audio-features batch {i // _BATCH_SIZE + 1}"
            data = await _request_json(session, "GET", url, token, label)

            for item in data.get("audio_features") or []:
                if item is None or not item.get("id"):
                    continue
                features[item["id"]] = _features_from_item(item)

    return features


async def create_new_playlist(
    token: str,
    user_id: str,
    name: str,
    description: str,
) -> str:
    """Create a new empty private playlist for the user and return its Spotify ID."""
    url = f"{SPOTIFY_API}/users/{user_id}/playlists"
    payload = {
        "name": name,
        "description": description,
        "public": False
    }

    async with ClientSession() as session:
        data = await _request_json(session, "POST", url, token, "create_playlist", json=payload)
        return data["id"]


async def add_tracks_to_playlist(
    token: str,
    playlist_id: str,
    track_uris: list[str]
) -> None:
    """Add tracks to a playlist, chunking into batches of 100 (Spotify API limit)."""
    url = f"{SPOTIFY_API}/playlists/{playlist_id}/tracks"

    async with ClientSession() as session:
        for i in range(0, len(track_uris), _BATCH_SIZE):
            chunk = track_uris[i:i + _BATCH_SIZE]
            await _request_json(
                session, "POST", url, token, "add_tracks", json={"uris": chunk}
            )
