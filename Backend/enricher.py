"""Playlist enrichment – takes a Spotify playlist and returns its tracks with
audio features attached.

Public entry points: :func:`analyze_playlist` and :func:`to_profiles`.
"""

from __future__ import annotations

import logging
from typing import Optional

from models import AnalyzedTrack, AudioFeatures, Track, TrackAudioProfile
from spotify_client import get_audio_features, get_playlist_tracks

logger = logging.getLogger(__name__)

_REQUIRED_FEATURES = ("tempo", "energy", "acousticness", "instrumentalness", "valence")


class ProfileError(ValueError):
    """A track carries an incomplete feature vector or a negative duration."""


def _fuse(
    tracks: list[Track],
    features_map: dict[str, AudioFeatures],
) -> list[AnalyzedTrack]:
    """Merge Spotify track data with its audio features."""
    analyzed: list[AnalyzedTrack] = []
    for t in tracks:
        analyzed.append(
            AnalyzedTrack(
                spotify_id=t.spotify_id,
                title=t.title,
                artists=t.artists,
                album_name=t.album_name,
                duration_ms=t.duration_ms,
                uri=t.uri,
                audio_features=features_map.get(t.spotify_id),
            )
        )
    return analyzed


async def analyze_playlist(token: str, playlist_id: str) -> list[AnalyzedTrack]:
    """Fetch every track of a playlist together with its audio features.

    Parameters
    ----------
    token:
        A valid Spotify access token.
    playlist_id:
        The source playlist's Spotify ID.

    Returns
    -------
    One :class:`AnalyzedTrack` per unique track, in playlist order.  Tracks
    Spotify has no analysis for come back with ``audio_features=None``.
    """
    tracks = await get_playlist_tracks(token, playlist_id)
    logger.info(f"Found {len(tracks)} track(s) in playlist {playlist_id}.")
    if not tracks:
        return []

    features_map = await get_audio_features(token, [t.spotify_id for t in tracks])
    logger.info(f"Fetched audio features for {len(features_map)}/{len(tracks)} track(s).")

    return _fuse(tracks, features_map)


def _profile_from(track: AnalyzedTrack) -> Optional[TrackAudioProfile]:
    af = track.audio_features
    if af is None:
        return None

    missing = [name for name in _REQUIRED_FEATURES if getattr(af, name) is None]
    if missing:
        raise ProfileError(
            f"Track {track.spotify_id} is missing audio features: {', '.join(missing)}"
        )
    if track.duration_ms is None or track.duration_ms < 0:
        raise ProfileError(
            f"Track {track.spotify_id} has an invalid duration: {track.duration_ms}"
        )

    return TrackAudioProfile(
        id=track.spotify_id,
        name=track.title,
        artists=tuple(track.artists),
        duration_ms=int(track.duration_ms),
        tempo=float(af.tempo),
        energy=float(af.energy),
        acousticness=float(af.acousticness),
        instrumentalness=float(af.instrumentalness),
        valence=float(af.valence),
        uri=track.uri,
    )


def to_profiles(tracks: list[AnalyzedTrack]) -> list[TrackAudioProfile]:
    """Turn analyzed tracks into classifier input.

    Tracks without a feature vector are left out.  A vector with a missing
    numeric field raises :class:`ProfileError` instead of being read as 0.
    """
    profiles: list[TrackAudioProfile] = []
    for t in tracks:
        profile = _profile_from(t)
        if profile is not None:
            profiles.append(profile)

    excluded = len(tracks) - len(profiles)
    if excluded:
        logger.warning(f"Excluded {excluded} track(s) without audio features.")
    return profiles
