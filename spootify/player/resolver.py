"""
Playback target resolution for Spootify Web.

Decides, for one play request, whether the track plays on the user's active
Spotify device, as a preview in the embedded player, or from the local
library, walking a fixed fallback chain:

    START -> CHECK_DEVICE -> REMOTE_PLAY                      (remote device)
                          -> NO_DEVICE -> EMBEDDED_PLAY       (track preview)
                                       -> ALTERNATIVE_SEARCH  (similar track preview)
                                       -> RECOMMENDATIONS     (recommended preview)
                                       -> FAILED
    START -> LOCAL_PLAY                                       (local catalog)

Each fallback is taken only on a specific error: 401 always stops the chain.
"""

import logging
import threading
from dataclasses import dataclass, field
from enum import Enum
from typing import List, Optional

from spootify.errors import NotFound, NoActiveDevice, SpotifyAPIError, Unauthorized
from spootify.player.models import RemoteTrack


logger = logging.getLogger(__name__)

NO_PLAYABLE_SOURCE = "Nothing playable found. Open Spotify on a device or add local music."
LOCAL_NOT_FOUND = "Local track not found. Refresh the local library."


class ResolutionState(str, Enum):
    START = "start"
    CHECK_DEVICE = "check_device"
    REMOTE_PLAY = "remote_play"
    NO_DEVICE = "no_device"
    ALTERNATIVE_SEARCH = "alternative_search"
    RECOMMENDATIONS = "recommendations"
    LOCAL_PLAY = "local_play"
    REMOTE_PLAYBACK = "remote_playback"
    EMBEDDED_PLAY = "embedded_play"
    UNAUTHORIZED = "unauthorized"
    FAILED = "failed"


TERMINAL_STATES = frozenset({
    ResolutionState.LOCAL_PLAY,
    ResolutionState.REMOTE_PLAYBACK,
    ResolutionState.EMBEDDED_PLAY,
    ResolutionState.UNAUTHORIZED,
    ResolutionState.FAILED,
})


class PlaybackTarget(str, Enum):
    REMOTE = "remote"
    EMBEDDED = "embedded"
    LOCAL = "local"


@dataclass
class Resolution:
    request_key: str
    state: ResolutionState
    target: Optional[PlaybackTarget] = None
    track: object = None
    url: Optional[str] = None
    message: Optional[str] = None
    substituted: bool = False
    trail: List[ResolutionState] = field(default_factory=list)

    @property
    def ok(self):
        return self.target is not None

    def to_dict(self):
        return {
            "request_key": self.request_key,
            "state": self.state.value,
            "target": self.target.value if self.target else None,
            "track": self.track.to_dict() if self.track is not None else None,
            "url": self.url,
            "message": self.message,
            "substituted": self.substituted,
            "trail": [s.value for s in self.trail],
        }


class _Attempt:
    """Mutable context carried through one resolution"""

    def __init__(self, request, gateway):
        self.request = request
        self.gateway = gateway
        self.track = request.track
        self.candidate = None
        self.message = None
        self.trail = []


def default_stream_url(track_id):
    return f"/api/local/stream/{track_id}"


class PlaybackTargetResolver:
    def __init__(self, catalog, stream_url_for=default_stream_url, recommendation_limit=10, alternative_limit=10):
        self.catalog = catalog
        self.stream_url_for = stream_url_for
        self.recommendation_limit = recommendation_limit
        self.alternative_limit = alternative_limit
        self._pending = set()
        self._lock = threading.Lock()
        self._transitions = {
            ResolutionState.START: self._start,
            ResolutionState.CHECK_DEVICE: self._check_device,
            ResolutionState.REMOTE_PLAY: self._remote_play,
            ResolutionState.NO_DEVICE: self._no_device,
            ResolutionState.ALTERNATIVE_SEARCH: self._alternative_search,
            ResolutionState.RECOMMENDATIONS: self._recommendations,
        }

    def is_pending(self, request):
        with self._lock:
            return (request.owner, request.key) in self._pending

    def resolve(self, request, gateway=None):
        """
        Run the fallback chain for one request.

        Returns None without doing anything when the same owner already has a
        request for the same track in flight.
        """
        pending_key = (request.owner, request.key)
        with self._lock:
            if pending_key in self._pending:
                logger.info("Ignoring duplicate play request for %s", request.key)
                return None
            self._pending.add(pending_key)

        try:
            return self._run(_Attempt(request, gateway))
        finally:
            with self._lock:
                self._pending.discard(pending_key)

    def _run(self, attempt):
        state = ResolutionState.START
        while state not in TERMINAL_STATES:
            attempt.trail.append(state)
            state = self._transitions[state](attempt)
        attempt.trail.append(state)
        logger.info("Resolved %s -> %s", attempt.request.key, state.value)
        return self._finish(attempt, state)

    # Transitions

    def _start(self, attempt):
        if attempt.request.is_local:
            return ResolutionState.LOCAL_PLAY
        return ResolutionState.CHECK_DEVICE

    def _check_device(self, attempt):
        try:
            active = attempt.gateway.get_active_devices()
        except Unauthorized:
            return ResolutionState.UNAUTHORIZED
        except NoActiveDevice:
            return ResolutionState.NO_DEVICE
        except SpotifyAPIError as e:
            attempt.message = e.message
            return ResolutionState.FAILED
        return ResolutionState.REMOTE_PLAY if active else ResolutionState.NO_DEVICE

    def _remote_play(self, attempt):
        request = attempt.request
        uris = request.context_uris or ([request.track.uri] if not request.context_uri else None)
        try:
            attempt.gateway.start_playback(uris=uris, context_uri=request.context_uri, offset=request.offset)
        except Unauthorized:
            return ResolutionState.UNAUTHORIZED
        except NoActiveDevice:
            return ResolutionState.NO_DEVICE
        except SpotifyAPIError as e:
            attempt.message = e.message
            return ResolutionState.FAILED
        return ResolutionState.REMOTE_PLAYBACK

    def _no_device(self, attempt):
        track = attempt.track
        if not track.name and not track.has_preview:
            try:
                hydrated = attempt.gateway.get_track(track.uri)
            except Unauthorized:
                return ResolutionState.UNAUTHORIZED
            except SpotifyAPIError as e:
                logger.warning("Could not look up %s: %s", track.uri, e)
            else:
                if hydrated is not None:
                    attempt.track = track = hydrated

        if track.has_preview:
            attempt.candidate = track
            return ResolutionState.EMBEDDED_PLAY
        return ResolutionState.ALTERNATIVE_SEARCH

    def _alternative_search(self, attempt):
        track = attempt.track
        if not track.name:
            return ResolutionState.RECOMMENDATIONS
        artist = track.artists[0] if track.artists else ""
        try:
            alternatives = attempt.gateway.find_alternatives(
                track.name, artist, exclude_uri=track.uri, limit=self.alternative_limit
            )
        except Unauthorized:
            return ResolutionState.UNAUTHORIZED
        except SpotifyAPIError as e:
            logger.warning("Alternative search failed for %s: %s", track.uri, e)
            return ResolutionState.RECOMMENDATIONS

        candidate = next((t for t in alternatives if t.has_preview), None)
        if candidate is None:
            return ResolutionState.RECOMMENDATIONS
        attempt.candidate = candidate
        return ResolutionState.EMBEDDED_PLAY

    def _recommendations(self, attempt):
        try:
            recommended = attempt.gateway.get_liked_recommendations(limit=self.recommendation_limit)
        except Unauthorized:
            return ResolutionState.UNAUTHORIZED
        except SpotifyAPIError as e:
            logger.warning("Recommendations failed: %s", e)
            return ResolutionState.FAILED

        candidate = next((t for t in recommended if t.has_preview), None)
        if candidate is None:
            return ResolutionState.FAILED
        attempt.candidate = candidate
        return ResolutionState.EMBEDDED_PLAY

    # Terminal states

    def _finish(self, attempt, state):
        request = attempt.request
        resolution = Resolution(request_key=request.key, state=state, trail=attempt.trail)

        if state == ResolutionState.LOCAL_PLAY:
            try:
                track = self.catalog.find(request.track_id)
            except NotFound:
                resolution.state = ResolutionState.FAILED
                resolution.message = LOCAL_NOT_FOUND
                resolution.trail.append(ResolutionState.FAILED)
                return resolution
            resolution.target = PlaybackTarget.LOCAL
            resolution.track = track
            resolution.url = self.stream_url_for(track.id)
            resolution.message = f"Playing local track: {track.title} - {track.artist}"

        elif state == ResolutionState.REMOTE_PLAYBACK:
            resolution.target = PlaybackTarget.REMOTE
            resolution.track = attempt.track
            resolution.message = "Playing on Spotify"

        elif state == ResolutionState.EMBEDDED_PLAY:
            candidate = attempt.candidate
            resolution.target = PlaybackTarget.EMBEDDED
            resolution.track = candidate
            resolution.url = candidate.preview_url
            resolution.substituted = isinstance(candidate, RemoteTrack) and candidate.uri != request.track.uri
            if resolution.substituted:
                resolution.message = f"Spotify unavailable, playing a preview of {candidate.name} - {candidate.artist_names}"
            else:
                resolution.message = "Spotify unavailable, playing a preview in the web player"

        elif state == ResolutionState.UNAUTHORIZED:
            resolution.message = Unauthorized.default_message

        else:
            resolution.message = attempt.message or NO_PLAYABLE_SOURCE

        return resolution
