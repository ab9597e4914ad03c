"""Session planning and publishing – glue between the catalog, the session
builder and the playlist sink.

Public entry points: :func:`plan_session` and :func:`publish_playlist`.
"""

from __future__ import annotations

import logging
from typing import Optional

from enricher import to_profiles
from models import (
    DEFAULT_TARGET_DURATION_MS,
    AnalyzedTrack,
    CreatedPlaylist,
    MoodCategory,
    SessionPlan,
)
from session_builder import build_playlist, format_duration, total_duration_ms
from spotify_client import add_tracks_to_playlist, create_new_playlist

logger = logging.getLogger(__name__)


def plan_session(
    tracks: list[AnalyzedTrack],
    mood: MoodCategory,
    target_duration_ms: int = DEFAULT_TARGET_DURATION_MS,
) -> SessionPlan:
    """Build a session playlist from already analyzed tracks."""
    profiles = to_profiles(tracks)
    selected = build_playlist(profiles, mood, target_duration_ms)
    total = total_duration_ms(selected)

    logger.info(
        f"Planned {mood.value} session: {len(selected)}/{len(profiles)} track(s), "
        f"{format_duration(total)} of {format_duration(target_duration_ms)}"
    )
    return SessionPlan(
        mood=mood,
        target_duration_ms=target_duration_ms,
        total_duration_ms=total,
        total_duration=format_duration(total),
        num_candidates=len(profiles),
        tracks=selected,
    )


def default_description(display_name: Optional[str]) -> str:
    return f"Sauna playlist created for {display_name or 'you'}"


def _unique(ids: list[str]) -> list[str]:
    seen: set[str] = set()
    out: list[str] = []
    for tid in ids:
        if tid not in seen:
            seen.add(tid)
            out.append(tid)
    return out


async def publish_playlist(
    token: str,
    user_id: str,
    name: str,
    track_ids: list[str],
    description: str,
) -> CreatedPlaylist:
    """Create a private playlist and fill it with the given tracks, in order."""
    track_ids = _unique(track_ids)
    playlist_id = await create_new_playlist(
        token=token,
        user_id=user_id,
        name=name,
        description=description,
    )

    track_uris = [f"spotify:track:{tid}" for tid in track_ids]
    await add_tracks_to_playlist(token, playlist_id, track_uris)
    logger.info(f"Created playlist {playlist_id} with {len(track_uris)} track(s).")

    return CreatedPlaylist(
        spotify_id=playlist_id,
        name=name,
        num_tracks=len(track_uris),
        url=f"https://open.spotify.com/playlist/{playlist_id}",
    )
