"""Track classification and duration-constrained session assembly.

Public entry points: :func:`classify_track` and :func:`build_playlist`.

Everything here is synchronous and pure: callers hand in fully fetched
profiles and get fresh lists back.
"""

from __future__ import annotations

from typing import Iterable, List, Sequence

from models import (
    DEFAULT_TARGET_DURATION_MS,
    AnalyzedTrack,
    MoodCategory,
    SaunaStyle,
    SessionRequest,
    TrackAudioProfile,
)

# Classification thresholds. A track is calm if any one of these holds.
CALM_MAX_TEMPO = 100
CALM_MAX_ENERGY = 0.5
CALM_MIN_ACOUSTICNESS = 0.6
CALM_MIN_INSTRUMENTALNESS = 0.5


def classify_track(profile: TrackAudioProfile) -> MoodCategory:
    """Return CALM for slow, low-energy, acoustic or instrumental tracks."""
    if (
        profile.tempo < CALM_MAX_TEMPO
        or profile.energy < CALM_MAX_ENERGY
        or profile.acousticness > CALM_MIN_ACOUSTICNESS
        or profile.instrumentalness > CALM_MIN_INSTRUMENTALNESS
    ):
        return MoodCategory.CALM
    return MoodCategory.BUILDING


def format_duration(ms: int) -> str:
    """Format milliseconds as ``m:ss`` (minutes are not wrapped into hours)."""
    minutes = ms // 60000
    seconds = (ms % 60000) // 1000
    return f"{minutes}:{seconds:02d}"


def total_duration_ms(tracks: Iterable[TrackAudioProfile]) -> int:
    return sum(t.duration_ms for t in tracks)


def _candidates(
    tracks: Sequence[TrackAudioProfile],
    mood: MoodCategory,
) -> List[TrackAudioProfile]:
    """Tracks of the requested mood with a usable duration, first id wins."""
    seen: set[str] = set()
    out: List[TrackAudioProfile] = []
    for t in tracks:
        if t.duration_ms <= 0 or t.id in seen:
            continue
        if classify_track(t) != mood:
            continue
        seen.add(t.id)
        out.append(t)
    return out


def build_playlist(
    tracks: Sequence[TrackAudioProfile],
    mood: MoodCategory,
    target_duration_ms: int = DEFAULT_TARGET_DURATION_MS,
) -> List[TrackAudioProfile]:
    """Pack tracks of one mood into a playlist no longer than the target.

    Candidates are ordered by energy (rising for CALM, falling for BUILDING;
    ties keep input order) and taken greedily until the first one that would
    overflow.  At that point a single pass over the whole sorted list picks
    the first unused track that still fits, and assembly stops whether or
    not budget remains.
    """
    candidates = _candidates(tracks, mood)
    ordered = sorted(
        candidates,
        key=lambda t: t.energy,
        reverse=mood is MoodCategory.BUILDING,
    )

    playlist: List[TrackAudioProfile] = []
    chosen: set[str] = set()
    current = 0

    for track in ordered:
        if current + track.duration_ms <= target_duration_ms:
            playlist.append(track)
            chosen.add(track.id)
            current += track.duration_ms
            continue

        remaining = target_duration_ms - current
        fallback = next(
            (s for s in ordered if s.duration_ms <= remaining and s.id not in chosen),
            None,
        )
        if fallback is not None:
            playlist.append(fallback)
            chosen.add(fallback.id)
            current += fallback.duration_ms
        break

    return playlist


def assemble(request: SessionRequest) -> List[TrackAudioProfile]:
    """Run :func:`build_playlist` for a :class:`SessionRequest`."""
    return build_playlist(request.tracks, request.mood, request.target_duration_ms)


# ---------------------------------------------------------------------------
# Sauna style preview
# ---------------------------------------------------------------------------

def matches_style(track: AnalyzedTrack, style: SaunaStyle) -> bool:
    af = track.audio_features
    if af is None or af.energy is None or af.tempo is None:
        return False
    if style is SaunaStyle.RELAXING:
        return af.energy < 0.5 and af.tempo < 100
    if style is SaunaStyle.ENERGIZING:
        return af.energy > 0.6 and af.tempo > 110
    return 0.4 <= af.energy <= 0.7 and 90 <= af.tempo <= 120


def filter_by_style(
    tracks: Iterable[AnalyzedTrack],
    style: SaunaStyle,
) -> List[AnalyzedTrack]:
    """Keep the analyzed tracks that fit a sauna style."""
    return [t for t in tracks if matches_style(t, style)]


def style_description(style: SaunaStyle) -> str:
    return f"{style.value} sauna playlist created with Sauna Playlist Generator"
