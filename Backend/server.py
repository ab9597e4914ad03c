"""FastAPI server for the sauna session playlist generator.

Endpoints
---------
GET  /                  → health check
GET  /auth/login        → redirect user to Spotify
GET  /auth/callback     → handle Spotify redirect, issue JWT, redirect to frontend
GET  /auth/me           → return current user info (requires JWT)

GET  /playlists         → the user's Spotify playlists (requires JWT)
POST /source-playlist   → tracks of a playlist with their audio features
POST /session           → assemble a calm/building session from a playlist
POST /session/preview   → count tracks matching a sauna style
POST /create-playlist   → save a list of track IDs as a new Spotify playlist

All protected routes use the ``require_auth`` dependency to extract the
Spotify user ID from the JWT, and ``get_access_token`` to turn it into a
fresh Spotify access token via the injected :class:`TokenStore`.

Run with::

    uvicorn server:app --host 0.0.0.0 --port 8888 --reload
"""

from __future__ import annotations

import secrets
import logging
from dataclasses import asdict
from typing import Optional

from fastapi import FastAPI, Depends, HTTPException, Query, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, RedirectResponse
from pydantic import BaseModel
import uvicorn

import config
from enricher import ProfileError, analyze_playlist
from models import MoodCategory, Playlist, SaunaStyle
from planner import default_description, plan_session, publish_playlist
from pocketbase_client import TokenStore, TokenStoreError
from session import create_session_token, verify_session_token
from session_builder import filter_by_style, style_description
from spotify_auth import (
    SpotifyAuthFlowError,
    build_authorize_url,
    exchange_code,
    get_spotify_user,
)
from spotify_client import (
    SpotifyAuthError,
    SpotifyError,
    SpotifyPermissionError,
    SpotifyRateLimitError,
    get_user_playlists,
)

# Set up logging
logger = logging.getLogger(__name__)
logging.basicConfig(
    level=logging.INFO,
    format="[%(asctime)s] %(levelname)s - %(message)s",
)
# Silence noisy HTTP libraries
logging.getLogger("httpcore").setLevel(logging.WARNING)
logging.getLogger("httpx").setLevel(logging.WARNING)


# ---------------------------------------------------------------------------
# Request bodies
# ---------------------------------------------------------------------------

class SourcePlaylistRequest(BaseModel):
    playlist_id: str = ""


class SessionRequestBody(BaseModel):
    playlist_id: str = ""
    mood: MoodCategory
    target_minutes: Optional[float] = None


class PreviewRequest(BaseModel):
    playlist_id: str = ""
    style: SaunaStyle = SaunaStyle.RELAXING


class CreatePlaylistRequest(BaseModel):
    name: str = ""
    description: Optional[str] = None
    tracks: list[str] = []


# ---------------------------------------------------------------------------
# Dependencies
# ---------------------------------------------------------------------------

def get_token_store(request: Request) -> TokenStore:
    return request.app.state.token_store


async def require_auth(request: Request) -> str:
    """FastAPI dependency that validates the JWT and returns the spotify_id.

    Raises 401 if the token is missing or invalid.
    """
    auth = request.headers.get("Authorization", "")
    token: Optional[str] = auth[7:] if auth.startswith("Bearer ") else None
    if not token:
        raise HTTPException(status_code=401, detail="Not authenticated")
    payload = verify_session_token(token)
    if not payload:
        raise HTTPException(status_code=401, detail="Not authenticated")
    return payload["sub"]


async def get_access_token(
    spotify_id: str = Depends(require_auth),
    store: TokenStore = Depends(get_token_store),
) -> str:
    """Valid Spotify access token for the signed-in user (auto-refreshes)."""
    try:
        return await store.get_valid_access_token(spotify_id)
    except (TokenStoreError, SpotifyAuthFlowError) as e:
        logger.warning(f"No usable Spotify token for {spotify_id}: {e}")
        raise HTTPException(status_code=401, detail="Not authenticated")


# ---------------------------------------------------------------------------
# Error mapping
# ---------------------------------------------------------------------------

def _spotify_error_status(exc: SpotifyError) -> int:
    if isinstance(exc, SpotifyAuthError):
        return 401
    if isinstance(exc, SpotifyPermissionError):
        return 403
    if isinstance(exc, SpotifyRateLimitError):
        return 429
    return 500


async def _handle_spotify_error(request: Request, exc: SpotifyError) -> JSONResponse:
    status = _spotify_error_status(exc)
    logger.error(f"Spotify call failed on {request.url.path}: {exc}")
    return JSONResponse(status_code=status, content={"detail": str(exc)})


async def _handle_profile_error(request: Request, exc: ProfileError) -> JSONResponse:
    logger.error(f"Bad audio features on {request.url.path}: {exc}")
    return JSONResponse(status_code=502, content={"detail": str(exc)})


# ---------------------------------------------------------------------------
# Routes
# ---------------------------------------------------------------------------

async def root():
    """Health check / root endpoint."""
    return {
        "status": "ok",
        "service": "Sauna Playlist Generator API",
        "docs": "/docs",
    }


async def login(request: Request):
    """Redirect to Spotify authorize page."""
    state = secrets.token_urlsafe(16)
    request.app.state.pending_states.add(state)
    return RedirectResponse(build_authorize_url(state))


async def callback(
    request: Request,
    code: Optional[str] = Query(None),
    state: Optional[str] = Query(None),
    error: Optional[str] = Query(None),
    store: TokenStore = Depends(get_token_store),
):
    """Handle Spotify redirect after user approves."""
    if error:
        raise HTTPException(status_code=400, detail=f"Spotify auth error: {error}")

    pending: set[str] = request.app.state.pending_states
    if not state or state not in pending:
        raise HTTPException(status_code=400, detail="Invalid state parameter")
    pending.discard(state)

    if not code:
        raise HTTPException(status_code=400, detail="Missing authorization code")

    try:
        token_data = await exchange_code(code)
        profile = await get_spotify_user(token_data["access_token"])
    except SpotifyAuthFlowError as e:
        logger.error(f"Spotify login failed: {e}")
        raise HTTPException(status_code=401, detail="Spotify login failed")

    spotify_id = profile["id"]
    display_name = profile.get("display_name") or spotify_id
    images = profile.get("images") or []

    await store.upsert_user(
        spotify_id=spotify_id,
        display_name=display_name,
        email=profile.get("email"),
        avatar_url=images[0]["url"] if images else None,
        access_token=token_data["access_token"],
        refresh_token=token_data.get("refresh_token", ""),
        expires_in=token_data.get("expires_in", 3600),
    )

    jwt_token = create_session_token(spotify_id, display_name)
    frontend_base = config.FRONTEND_URL.rstrip("/")
    return RedirectResponse(f"{frontend_base}/?token={jwt_token}", status_code=302)


async def me(
    spotify_id: str = Depends(require_auth),
    store: TokenStore = Depends(get_token_store),
):
    """Return current user profile (requires JWT)."""
    user = await store.get_user(spotify_id)
    if not user:
        raise HTTPException(status_code=404, detail="User not found")

    return {
        "spotify_id": user["spotify_id"],
        "display_name": user["display_name"],
        "email": user.get("email", ""),
        "avatar_url": user.get("avatar_url", ""),
    }


async def my_playlists(access_token: str = Depends(get_access_token)):
    """Fetch the user's Spotify playlists."""
    playlists = await get_user_playlists(access_token)

    results = []
    for p in playlists:
        tracks_field = p.get("tracks")
        track_count = tracks_field.get("total", 0) if isinstance(tracks_field, dict) else 0
        images = p.get("images") or []

        results.append(
            Playlist(
                spotify_id=p["id"],
                name=p["name"],
                total_tracks=track_count,
                owner=(p.get("owner") or {}).get("display_name", ""),
                description=p.get("description"),
                image_url=images[0].get("url") if images else None,
            )
        )
    return results


async def source_playlist(
    body: SourcePlaylistRequest,
    access_token: str = Depends(get_access_token),
):
    """Return a playlist's tracks with their audio features attached."""
    if not body.playlist_id:
        raise HTTPException(status_code=400, detail="Playlist ID is required")

    tracks = await analyze_playlist(access_token, body.playlist_id)
    return {"tracks": [asdict(t) for t in tracks]}


def _target_ms(target_minutes: Optional[float]) -> int:
    minutes = config.DEFAULT_TARGET_MINUTES if target_minutes is None else target_minutes
    if minutes <= 0:
        raise HTTPException(status_code=400, detail="target_minutes must be positive")
    return int(round(minutes * 60 * 1000))


async def build_session(
    body: SessionRequestBody,
    access_token: str = Depends(get_access_token),
):
    """Assemble a calm or building session from a source playlist."""
    if not body.playlist_id:
        raise HTTPException(status_code=400, detail="Playlist ID is required")
    target_ms = _target_ms(body.target_minutes)

    tracks = await analyze_playlist(access_token, body.playlist_id)
    plan = plan_session(tracks, body.mood, target_ms)

    result = asdict(plan)
    result["track_ids"] = plan.track_ids
    return result


async def preview_style(
    body: PreviewRequest,
    access_token: str = Depends(get_access_token),
):
    """Count how many of a playlist's tracks fit a sauna style."""
    if not body.playlist_id:
        raise HTTPException(status_code=400, detail="Playlist ID is required")

    tracks = await analyze_playlist(access_token, body.playlist_id)
    matching = filter_by_style(tracks, body.style)
    return {
        "style": body.style.value,
        "num_tracks": len(tracks),
        "num_matching": len(matching),
        "track_ids": [t.spotify_id for t in matching],
        "description": style_description(body.style),
    }


async def create_playlist_endpoint(
    body: CreatePlaylistRequest,
    spotify_id: str = Depends(require_auth),
    access_token: str = Depends(get_access_token),
    store: TokenStore = Depends(get_token_store),
):
    """Create a Spotify playlist from a list of Spotify track IDs."""
    if not body.name or not body.tracks:
        raise HTTPException(status_code=400, detail="Invalid request data")

    description = body.description
    if description is None:
        user = await store.get_user(spotify_id)
        description = default_description(user.get("display_name") if user else None)

    created = await publish_playlist(
        token=access_token,
        user_id=spotify_id,
        name=body.name,
        track_ids=body.tracks,
        description=description,
    )
    return {"playlist": asdict(created)}


# ---------------------------------------------------------------------------
# App factory
# ---------------------------------------------------------------------------

def create_app(token_store: Optional[TokenStore] = None) -> FastAPI:
    """Build the API with its collaborators wired in explicitly."""
    app = FastAPI(title="Sauna Playlist Generator API")
    app.state.token_store = token_store if token_store is not None else TokenStore()
    # CSRF states for in-flight OAuth logins
    app.state.pending_states = set()

    app.add_middleware(
        CORSMiddleware,
        allow_origins=[config.FRONTEND_URL],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.middleware("http")
    async def log_requests(request: Request, call_next):
        """Log incoming request path for debugging."""
        logger.info(f"[request] {request.method} {request.url.path}")
        return await call_next(request)

    app.add_exception_handler(SpotifyError, _handle_spotify_error)
    app.add_exception_handler(ProfileError, _handle_profile_error)

    app.add_api_route("/", root, methods=["GET"])
    app.add_api_route("/auth/login", login, methods=["GET"])
    app.add_api_route("/auth/callback", callback, methods=["GET"])
    app.add_api_route("/auth/me", me, methods=["GET"])
    app.add_api_route("/playlists", my_playlists, methods=["GET"], response_model=list[Playlist])
    app.add_api_route("/source-playlist", source_playlist, methods=["POST"])
    app.add_api_route("/session", build_session, methods=["POST"])
    app.add_api_route("/session/preview", preview_style, methods=["POST"])
    app.add_api_route("/create-playlist", create_playlist_endpoint, methods=["POST"])
    return app


app = create_app()


# ---------------------------------------------------------------------------
# Entry point
# ---------------------------------------------------------------------------

if __name__ == "__main__":
    uvicorn.run("server:app", host="0.0.0.0", port=8888, reload=True)
