"""Tests for the FastAPI application."""

from __future__ import annotations

import pytest
from fastapi.testclient import TestClient

import server
from conftest import building_features, calm_features, make_analyzed
from enricher import ProfileError
from models import AudioFeatures, CreatedPlaylist
from pocketbase_client import TokenStoreError
from session import create_session_token
from spotify_client import (
    SpotifyAPIError,
    SpotifyAuthError,
    SpotifyPermissionError,
    SpotifyRateLimitError,
)


class FakeTokenStore:
    def __init__(self):
        self.users = {
            "user-1": {
                "id": "rec1",
                "spotify_id": "user-1",
                "display_name": "Sam",
                "email": "sam@example.com",
                "avatar_url": "",
            }
        }
        self.upserts = []

    async def get_user(self, spotify_id):
        return self.users.get(spotify_id)

    async def upsert_user(self, **kwargs):
        self.upserts.append(kwargs)
        return kwargs

    async def get_valid_access_token(self, spotify_id):
        if spotify_id not in self.users:
            raise TokenStoreError(f"User {spotify_id} not found")
        return "spotify-access"


@pytest.fixture
def store():
    return FakeTokenStore()


@pytest.fixture
def client(store):
    return TestClient(server.create_app(token_store=store))


@pytest.fixture
def auth():
    return {"Authorization": f"Bearer {create_session_token('user-1', 'Sam')}"}


SOURCE = [
    make_analyzed("a", duration_ms=600_000, features=calm_features(energy=0.1)),
    make_analyzed("b", duration_ms=900_000, features=calm_features(energy=0.2)),
    make_analyzed("c", duration_ms=900_000, features=calm_features(energy=0.3)),
    make_analyzed("d", duration_ms=240_000, features=building_features()),
    make_analyzed("e", duration_ms=240_000, features=None),
]


@pytest.fixture
def source(monkeypatch):
    seen = []

    async def fake_analyze(token, playlist_id):
        seen.append((token, playlist_id))
        return SOURCE

    monkeypatch.setattr(server, "analyze_playlist", fake_analyze)
    return seen


def test_root(client):
    response = client.get("/")
    assert response.status_code == 200
    assert response.json()["status"] == "ok"


@pytest.mark.parametrize("header", [None, "Bearer nonsense", "Token abc"])
def test_protected_routes_need_a_valid_jwt(client, header):
    headers = {"Authorization": header} if header else {}
    assert client.get("/playlists", headers=headers).status_code == 401
    assert client.post("/session", json={"playlist_id": "p", "mood": "calm"}, headers=headers).status_code == 401


def test_unknown_user_is_not_authenticated(client):
    headers = {"Authorization": f"Bearer {create_session_token('ghost', 'Ghost')}"}
    assert client.get("/playlists", headers=headers).status_code == 401


def test_login_redirects_to_spotify(client):
    response = client.get("/auth/login", follow_redirects=False)
    assert response.status_code in (302, 307)
    assert response.headers["location"].startswith("https://accounts.spotify.com/authorize?")
    assert "playlist-modify-private" in response.headers["location"]


def test_callback_rejects_unknown_state(client):
    response = client.get("/auth/callback", params={"code": "c", "state": "bogus"}, follow_redirects=False)
    assert response.status_code == 400


def test_callback_stores_user_and_issues_jwt(client, store, monkeypatch):
    async def fake_exchange(code):
        assert code == "the-code"
        return {"access_token": "acc", "refresh_token": "ref", "expires_in": 3600}

    async def fake_profile(token):
        return {"id": "user-2", "display_name": "Alex", "images": [{"url": "http://img"}]}

    monkeypatch.setattr(server, "exchange_code", fake_exchange)
    monkeypatch.setattr(server, "get_spotify_user", fake_profile)

    login = client.get("/auth/login", follow_redirects=False)
    state = login.headers["location"].split("state=")[1]

    response = client.get(
        "/auth/callback", params={"code": "the-code", "state": state}, follow_redirects=False
    )

    assert response.status_code == 302
    assert "?token=" in response.headers["location"]
    assert store.upserts[0]["spotify_id"] == "user-2"
    assert store.upserts[0]["avatar_url"] == "http://img"

    # state is single use
    again = client.get(
        "/auth/callback", params={"code": "the-code", "state": state}, follow_redirects=False
    )
    assert again.status_code == 400


def test_me(client, auth):
    response = client.get("/auth/me", headers=auth)
    assert response.status_code == 200
    assert response.json()["display_name"] == "Sam"


def test_playlists(client, auth, monkeypatch):
    async def fake_playlists(token):
        assert token == "spotify-access"
        return [
            {
                "id": "p1",
                "name": "Morning",
                "tracks": {"total": 12},
                "owner": {"display_name": "Sam"},
                "images": [{"url": "http://cover"}],
            },
            {"id": "p2", "name": "Bare"},
        ]

    monkeypatch.setattr(server, "get_user_playlists", fake_playlists)

    response = client.get("/playlists", headers=auth)

    assert response.status_code == 200
    body = response.json()
    assert body[0]["spotify_id"] == "p1"
    assert body[0]["total_tracks"] == 12
    assert body[0]["image_url"] == "http://cover"
    assert body[1]["total_tracks"] == 0


def test_source_playlist(client, auth, source):
    response = client.post("/source-playlist", json={"playlist_id": "pl1"}, headers=auth)

    assert response.status_code == 200
    tracks = response.json()["tracks"]
    assert [t["spotify_id"] for t in tracks] == ["a", "b", "c", "d", "e"]
    assert tracks[4]["audio_features"] is None
    assert source == [("spotify-access", "pl1")]


def test_source_playlist_requires_id(client, auth, source):
    response = client.post("/source-playlist", json={}, headers=auth)
    assert response.status_code == 400
    assert source == []


def test_session_calm(client, auth, source):
    response = client.post("/session", json={"playlist_id": "pl1", "mood": "calm"}, headers=auth)

    assert response.status_code == 200
    body = response.json()
    assert body["track_ids"] == ["a", "b"]
    assert body["total_duration_ms"] == 1_500_000
    assert body["total_duration"] == "25:00"
    assert body["target_duration_ms"] == 2_280_000
    assert body["mood"] == "calm"


def test_session_building_with_custom_length(client, auth, source):
    response = client.post(
        "/session",
        json={"playlist_id": "pl1", "mood": "building", "target_minutes": 5},
        headers=auth,
    )
    assert response.status_code == 200
    assert response.json()["track_ids"] == ["d"]


def test_session_rejects_bad_target(client, auth, source):
    response = client.post(
        "/session", json={"playlist_id": "pl1", "mood": "calm", "target_minutes": 0}, headers=auth
    )
    assert response.status_code == 400


def test_session_rejects_unknown_mood(client, auth, source):
    response = client.post("/session", json={"playlist_id": "pl1", "mood": "sleepy"}, headers=auth)
    assert response.status_code == 422


def test_preview(client, auth, source):
    response = client.post(
        "/session/preview", json={"playlist_id": "pl1", "style": "relaxing"}, headers=auth
    )
    assert response.status_code == 200
    body = response.json()
    assert body["num_tracks"] == 5
    assert body["num_matching"] == 3
    assert body["description"].startswith("relaxing sauna playlist")


def test_create_playlist(client, auth, monkeypatch):
    captured = {}

    async def fake_publish(token, user_id, name, track_ids, description):
        captured.update(token=token, user_id=user_id, name=name, track_ids=track_ids,
                        description=description)
        return CreatedPlaylist(spotify_id="new", name=name, num_tracks=len(track_ids),
                               url="https://open.spotify.com/playlist/new")

    monkeypatch.setattr(server, "publish_playlist", fake_publish)

    response = client.post(
        "/create-playlist", json={"name": "Evening", "tracks": ["a", "b"]}, headers=auth
    )

    assert response.status_code == 200
    assert response.json()["playlist"]["spotify_id"] == "new"
    assert captured["user_id"] == "user-1"
    assert captured["description"] == "Sauna playlist created for Sam"


@pytest.mark.parametrize(
    "body",
    [
        {"name": "", "tracks": ["a"]},
        {"name": "Evening", "tracks": []},
        {"name": "Evening"},
    ],
)
def test_create_playlist_rejects_invalid_body(client, auth, body):
    assert client.post("/create-playlist", json=body, headers=auth).status_code == 400


def test_create_playlist_only_accepts_post(client, auth):
    assert client.get("/create-playlist", headers=auth).status_code == 405


@pytest.mark.parametrize(
    "error, status",
    [
        (SpotifyAuthError("expired", 401), 401),
        (SpotifyPermissionError("scope", 403), 403),
        (SpotifyRateLimitError("slow down", 429), 429),
        (SpotifyAPIError("boom", 500), 500),
        (ProfileError("Track a is missing audio features: energy"), 502),
    ],
)
def test_catalog_errors_map_to_status_codes(client, auth, monkeypatch, error, status):
    async def failing(token, playlist_id):
        raise error

    monkeypatch.setattr(server, "analyze_playlist", failing)

    response = client.post("/source-playlist", json={"playlist_id": "pl1"}, headers=auth)
    assert response.status_code == status
    assert response.json()["detail"] == str(error)


def test_session_with_incomplete_features_is_a_data_error(client, auth, monkeypatch):
    broken = make_analyzed(
        "x",
        features=AudioFeatures(tempo=None, energy=0.4, acousticness=0.1,
                               instrumentalness=0.0, valence=0.5),
    )

    async def fake_analyze(token, playlist_id):
        return [broken]

    monkeypatch.setattr(server, "analyze_playlist", fake_analyze)

    response = client.post("/session", json={"playlist_id": "pl1", "mood": "calm"}, headers=auth)
    assert response.status_code == 502
