"""Data classes shared across modules."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import List, Optional

DEFAULT_TARGET_DURATION_MS = 38 * 60 * 1000


class MoodCategory(str, Enum):
    """The two session buckets a track can fall into."""

    CALM = "calm"
    BUILDING = "building"


class SaunaStyle(str, Enum):
    """Preview filters offered next to the session picker."""

    RELAXING = "relaxing"
    ENERGIZING = "energizing"
    BALANCED = "balanced"


@dataclass
class Track:
    """Minimal Spotify track info collected from a playlist."""

    spotify_id: str
    title: str
    artists: list[str]
    album_name: str
    duration_ms: int
    uri: str = ""

    def __post_init__(self) -> None:
        if not self.uri:
            self.uri = f"spotify:track:{self.spotify_id}"


@dataclass
class AudioFeatures:
    """Audio features retrieved from the Spotify catalog."""

    tempo: float
    energy: float
    acousticness: float
    instrumentalness: float
    valence: float
    danceability: Optional[float] = None
    liveness: Optional[float] = None
    loudness: Optional[float] = None
    speechiness: Optional[float] = None
    key: Optional[int] = None
    mode: Optional[int] = None


@dataclass
class AnalyzedTrack:
    """A playlist track plus its audio features (None when the catalog has none)."""

    spotify_id: str
    title: str
    artists: list[str]
    album_name: str
    duration_ms: int
    uri: str
    audio_features: Optional[AudioFeatures] = None


@dataclass(frozen=True)
class TrackAudioProfile:
    """Everything the classifier and the session builder look at for one song."""

    id: str
    name: str
    artists: tuple[str, ...]
    duration_ms: int
    tempo: float
    energy: float
    acousticness: float
    instrumentalness: float
    valence: float
    uri: str


@dataclass
class SessionRequest:
    """Input to one session assembly call."""

    mood: MoodCategory
    tracks: List[TrackAudioProfile] = field(default_factory=list)
    target_duration_ms: int = DEFAULT_TARGET_DURATION_MS


@dataclass
class SessionPlan:
    """Result of assembling a session playlist."""

    mood: MoodCategory
    target_duration_ms: int
    total_duration_ms: int
    total_duration: str
    num_candidates: int
    tracks: List[TrackAudioProfile] = field(default_factory=list)

    @property
    def track_ids(self) -> list[str]:
        return [t.id for t in self.tracks]


@dataclass
class Playlist:
    """Basic Spotify playlist metadata (without tracks)."""

    spotify_id: str
    name: str
    total_tracks: int
    owner: str
    description: Optional[str] = None
    image_url: Optional[str] = None


@dataclass
class CreatedPlaylist:
    """A playlist written back to the user's Spotify account."""

    spotify_id: str
    name: str
    num_tracks: int
    url: str
