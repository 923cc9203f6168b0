"""
Playback data types shared by the resolver, the navigation helpers and the
per-client playback session.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import List, Optional


class RepeatMode(str, Enum):
    OFF = "off"
    TRACK = "track"
    CONTEXT = "context"

    @classmethod
    def parse(cls, value):
        try:
            return cls(value)
        except ValueError:
            raise ValueError(f"Invalid repeat mode: {value!r} (use off, track or context)")


class TrackKind(str, Enum):
    LOCAL = "local"
    REMOTE = "remote"


@dataclass
class RemoteTrack:
    """Cached copy of a Spotify track, read-only for us"""

    uri: str
    name: str = ""
    artists: List[str] = field(default_factory=list)
    album: str = ""
    album_images: list = field(default_factory=list)
    duration_ms: int = 0
    preview_url: Optional[str] = None
    id: Optional[str] = None

    kind = TrackKind.REMOTE

    @classmethod
    def from_spotify(cls, payload):
        """Build from a Web API track object"""
        album = payload.get("album") or {}
        artists = payload.get("artists") or []
        return cls(
            uri=payload.get("uri", ""),
            id=payload.get("id"),
            name=payload.get("name", ""),
            artists=[a["name"] if isinstance(a, dict) else a for a in artists],
            album=album.get("name", "") if isinstance(album, dict) else album,
            album_images=album.get("images", []) if isinstance(album, dict) else [],
            duration_ms=payload.get("duration_ms") or 0,
            preview_url=payload.get("preview_url") or None,
        )

    @property
    def has_preview(self):
        return bool(self.preview_url)

    @property
    def artist_names(self):
        return ", ".join(self.artists)

    @property
    def key(self):
        return f"remote:{self.uri}"

    @property
    def title(self):
        return self.name

    def to_dict(self):
        return {
            "id": self.id,
            "uri": self.uri,
            "name": self.name,
            "artists": self.artist_names,
            "album": {"name": self.album, "images": self.album_images},
            "duration_ms": self.duration_ms,
            "preview_url": self.preview_url,
            "type": self.kind.value,
        }


@dataclass
class Device:
    id: str
    name: str
    type: str
    is_active: bool = False
    volume_percent: Optional[int] = None

    @classmethod
    def from_spotify(cls, payload):
        return cls(
            id=payload.get("id"),
            name=payload.get("name", ""),
            type=payload.get("type", ""),
            is_active=bool(payload.get("is_active")),
            volume_percent=payload.get("volume_percent"),
        )

    def to_dict(self):
        return {
            "id": self.id,
            "name": self.name,
            "type": self.type,
            "is_active": self.is_active,
            "volume_percent": self.volume_percent,
        }


@dataclass
class PlayRequest:
    """
    A request to play one track.

    ``track`` is a LocalTrack, a RemoteTrack, or for local playback just the
    catalog id (``local_id``). ``context_uris`` and ``offset`` describe batch
    playback (liked tracks, playlists) on the remote device.
    """

    track: object = None
    local_id: Optional[str] = None
    context_uri: Optional[str] = None
    context_uris: Optional[List[str]] = None
    offset: Optional[int] = None
    owner: str = ""

    @property
    def is_local(self):
        return self.local_id is not None or getattr(self.track, "kind", None) == TrackKind.LOCAL

    @property
    def track_id(self):
        if self.local_id is not None:
            return self.local_id
        return getattr(self.track, "id", None)

    @property
    def key(self):
        if self.is_local:
            return f"local:{self.track_id}"
        return self.track.key

    @classmethod
    def from_payload(cls, data, owner=""):
        """Build from the JSON body sent by the dashboard"""
        data = data or {}
        if data.get("type") == "local" or data.get("local_id"):
            local_id = data.get("local_id") or data.get("id")
            if not local_id:
                raise ValueError("Local track id is required")
            return cls(local_id=local_id, owner=owner)

        uri = data.get("uri")
        if not uri:
            raise ValueError("Track URI is required")
        artists = data.get("artists") or []
        if isinstance(artists, str):
            artists = [a.strip() for a in artists.split(",") if a.strip()]
        album = data.get("album") or {}
        track = RemoteTrack(
            uri=uri,
            id=data.get("id"),
            name=data.get("name", ""),
            artists=[a["name"] if isinstance(a, dict) else a for a in artists],
            album=album.get("name", "") if isinstance(album, dict) else album,
            album_images=album.get("images", []) if isinstance(album, dict) else [],
            duration_ms=data.get("duration_ms") or 0,
            preview_url=data.get("preview_url") or None,
        )
        offset = data.get("offset")
        return cls(
            track=track,
            context_uri=data.get("context_uri"),
            context_uris=data.get("uris"),
            offset=int(offset) if offset is not None else None,
            owner=owner,
        )
