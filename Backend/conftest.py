"""Pytest configuration for backend tests.

Sets the Spotify environment ``config`` requires before any module imports
it, and provides an in-process stand-in for the Spotify Web API.
"""

import asyncio
import os

os.environ.setdefault("SPOTIFY_CLIENT_ID", "test-client-id")
os.environ.setdefault("SPOTIFY_CLIENT_SECRET", "test-client-secret")
os.environ.setdefault("SPOTIFY_REDIRECT_URI", "http://127.0.0.1:8888/auth/callback")
os.environ.setdefault("JWT_SECRET", "test-secret")

import pytest
from aiohttp import web
from aiohttp.test_utils import TestServer

import spotify_client
from models import AnalyzedTrack, AudioFeatures, TrackAudioProfile


@pytest.fixture
def fake_spotify(monkeypatch):
    """Run a coroutine factory against an aiohttp app posing as api.spotify.com.

    Usage::

        result = fake_spotify(app, lambda: get_playlist_tracks("tok", "pl1"))
    """

    def _run(app: web.Application, make_coro):
        async def _main():
            server = TestServer(app)
            await server.start_server()
            monkeypatch.setattr(spotify_client, "SPOTIFY_API", str(server.make_url("/v1")))
            try:
                return await make_coro()
            finally:
                await server.close()

        return asyncio.run(_main())

    return _run


def make_profile(
    track_id: str,
    duration_ms: int = 200_000,
    tempo: float = 80.0,
    energy: float = 0.3,
    acousticness: float = 0.1,
    instrumentalness: float = 0.0,
    valence: float = 0.5,
) -> TrackAudioProfile:
    return TrackAudioProfile(
        id=track_id,
        name=f"Song {track_id}",
        artists=("Artist",),
        duration_ms=duration_ms,
        tempo=tempo,
        energy=energy,
        acousticness=acousticness,
        instrumentalness=instrumentalness,
        valence=valence,
        uri=f"spotify:track:{track_id}",
    )


def make_analyzed(
    track_id: str,
    duration_ms: int = 200_000,
    features: AudioFeatures | None = None,
) -> AnalyzedTrack:
    return AnalyzedTrack(
        spotify_id=track_id,
        title=f"Song {track_id}",
        artists=["Artist"],
        album_name="Album",
        duration_ms=duration_ms,
        uri=f"spotify:track:{track_id}",
        audio_features=features,
    )


def calm_features(energy: float = 0.3, tempo: float = 80.0) -> AudioFeatures:
    return AudioFeatures(
        tempo=tempo,
        energy=energy,
        acousticness=0.2,
        instrumentalness=0.0,
        valence=0.4,
    )


def building_features(energy: float = 0.8, tempo: float = 128.0) -> AudioFeatures:
    return AudioFeatures(
        tempo=tempo,
        energy=energy,
        acousticness=0.1,
        instrumentalness=0.0,
        valence=0.7,
    )
