"""
Per-client playback session for Spootify Web.
Mirrors what one connected browser is playing: the active source, the current
track and its progress, volume, shuffle/repeat and the playlist cursor.
"""

import logging
import threading
from enum import Enum

from spootify.errors import SpotifyAPIError
from spootify.player import navigation
from spootify.player.models import RemoteTrack, RepeatMode
from spootify.player.navigation import NavigationOutcome, PlaylistCursor
from spootify.player.resolver import PlaybackTarget


logger = logging.getLogger(__name__)

REPEAT_CYCLE = {
    RepeatMode.OFF: RepeatMode.CONTEXT,
    RepeatMode.CONTEXT: RepeatMode.TRACK,
    RepeatMode.TRACK: RepeatMode.OFF,
}

AUDIO_EVENTS = ("timeupdate", "loadedmetadata", "play", "pause", "ended", "error")


class PlaybackSource(str, Enum):
    NONE = "none"
    REMOTE = "remote"
    LOCAL = "local"


def _run_inline(func, *args):
    func(*args)


class PlaybackSession:
    """
    Playback state of one client.

    Only one source is active at a time. Remote status pushes are ignored
    while the local audio element is playing, and resolutions that arrive
    after the user asked for another track are dropped.

    ``emit(event, payload)`` sends to this client only. ``gateway_factory()``
    returns a SpotifyGateway for the client's token (or None when signed out);
    ``run_async(func, *args)`` runs remote calls off the event handler.
    """

    def __init__(self, owner, emit=None, gateway_factory=None, run_async=None, rng=None):
        self.owner = owner
        self._emit = emit or (lambda event, payload: None)
        self._gateway_factory = gateway_factory or (lambda: None)
        self._run_async = run_async or _run_inline
        self._rng = rng
        self._lock = threading.RLock()
        self._listeners = []

        self.source = PlaybackSource.NONE
        self.track = None
        self.stream_url = None
        self.is_playing = False
        self.position_ms = 0
        self.duration_ms = 0
        self.volume = 50
        self.shuffle = False
        self.repeat = RepeatMode.OFF
        self.cursor = PlaylistCursor()
        self.wanted_key = None

    # Observers

    def subscribe(self, callback):
        """Register ``callback(event, snapshot)``; returns an unsubscribe function"""
        self._listeners.append(callback)

        def unsubscribe():
            if callback in self._listeners:
                self._listeners.remove(callback)

        return unsubscribe

    def _publish(self, event):
        snapshot = self.snapshot()
        for callback in list(self._listeners):
            callback(event, snapshot)

    def notice(self, message, level="info"):
        self._emit("notice", {"message": message, "level": level})

    def _audio_command(self, action, **kwargs):
        self._emit("audio_command", dict(action=action, **kwargs))

    # Resolutions

    def begin_request(self, key):
        with self._lock:
            self.wanted_key = key

    def apply_resolution(self, resolution):
        """Switch to the resolved track unless a newer request superseded it"""
        if resolution is None:
            return False

        with self._lock:
            if resolution.request_key != self.wanted_key:
                logger.info("Dropping stale resolution for %s (wanted %s)", resolution.request_key, self.wanted_key)
                return False
            self.wanted_key = None

            if not resolution.ok:
                self.notice(resolution.message, level="error")
                return False

            track = resolution.track
            if resolution.target == PlaybackTarget.REMOTE:
                source, url = PlaybackSource.REMOTE, None
                if self.source == PlaybackSource.LOCAL:
                    self._audio_command("stop")
            else:
                source, url = PlaybackSource.LOCAL, resolution.url

            self.source = source
            self.track = track
            self.stream_url = url
            self.position_ms = 0
            self.duration_ms = getattr(track, "duration_ms", 0) or 0
            self.is_playing = True

            index = self.cursor.index_of(track.key)
            if index is not None:
                self.cursor.move_to(index)

        if url:
            self._audio_command("load", url=url, autoplay=True, volume=self.volume / 100)
        if resolution.message:
            self.notice(resolution.message)
        self._publish("track_changed")
        return True

    def apply_remote_status(self, status):
        """
        Apply a playback state pushed for the remote device.

        ``status`` is the formatted player state (see format_playback_state).
        Ignored while local audio is the active source.
        """
        with self._lock:
            if self.source == PlaybackSource.LOCAL:
                return False

            item = status.get("track")
            track = self.track
            if item:
                track = RemoteTrack(
                    uri=item.get("uri", ""),
                    id=item.get("id"),
                    name=item.get("name", ""),
                    artists=list(item.get("artists") or []),
                    album=(item.get("album") or {}).get("name", ""),
                    album_images=(item.get("album") or {}).get("images", []),
                    duration_ms=item.get("duration") or 0,
                    preview_url=item.get("preview_url"),
                )

            repeat = self.repeat
            if status.get("repeatState") in (m.value for m in RepeatMode):
                repeat = RepeatMode(status["repeatState"])

            self.track = track
            self.source = PlaybackSource.REMOTE if track is not None else self.source
            self.is_playing = bool(status.get("isPlaying"))
            self.position_ms = status.get("progress") or 0
            self.duration_ms = status.get("duration") or (track.duration_ms if track else 0)
            if status.get("volume") is not None:
                self.volume = status["volume"]
            if status.get("shuffleState") is not None:
                self.shuffle = bool(status["shuffleState"])
            self.repeat = repeat

        self._publish("remote_status")
        return True

    # Local audio surface

    def handle_audio_event(self, event_type, data=None):
        """Events reported by the browser's audio element; returns a NavigationOutcome on 'ended'"""
        if event_type not in AUDIO_EVENTS:
            raise ValueError(f"Unknown audio event: {event_type}")

        data = data or {}
        with self._lock:
            if self.source != PlaybackSource.LOCAL:
                return None

            if event_type == "timeupdate":
                self.position_ms = int(float(data.get("currentTime", 0)) * 1000)
            elif event_type == "loadedmetadata":
                self.duration_ms = int(float(data.get("duration", 0)) * 1000)
            elif event_type == "play":
                self.is_playing = True
            elif event_type == "pause":
                self.is_playing = False
            elif event_type == "error":
                self.is_playing = False
                name = getattr(self.track, "name", "track")
                self.notice(f"Could not play {name}", level="error")

        if event_type == "ended":
            return self.track_ended()
        if event_type != "timeupdate":
            self._publish(event_type)
        return None

    # Transport

    def set_volume(self, volume):
        volume = int(volume)
        if not 0 <= volume <= 100:
            raise ValueError("Volume must be between 0 and 100")

        with self._lock:
            self.volume = volume
            source = self.source

        if source == PlaybackSource.REMOTE:
            self._run_async(self._remote_call, "set_volume", volume)
        else:
            self._audio_command("volume", value=volume / 100)
        self._publish("volume")

    def seek(self, position_ms):
        position_ms = int(position_ms)
        if position_ms < 0:
            raise ValueError("Position must be a non-negative number")

        with self._lock:
            if self.duration_ms:
                position_ms = min(position_ms, self.duration_ms)
            self.position_ms = position_ms
            source = self.source

        if source == PlaybackSource.REMOTE:
            self._run_async(self._remote_call, "seek", position_ms)
        elif source == PlaybackSource.LOCAL:
            self._audio_command("seek", position=position_ms / 1000)
        self._publish("seek")

    def toggle_shuffle(self):
        with self._lock:
            self.shuffle = not self.shuffle
            if self.shuffle:
                self.cursor.enable_shuffle(self._rng)
            else:
                self.cursor.disable_shuffle()
            shuffle, source = self.shuffle, self.source

        if source == PlaybackSource.REMOTE:
            self._run_async(self._remote_call, "set_shuffle", shuffle)
        self._publish("shuffle")
        return shuffle

    def cycle_repeat(self):
        with self._lock:
            self.repeat = REPEAT_CYCLE[self.repeat]
            repeat, source = self.repeat, self.source

        if source == PlaybackSource.REMOTE:
            self._run_async(self._remote_call, "set_repeat", repeat.value)
        self._publish("repeat")
        return repeat

    # Playlist

    def load_playlist(self, tracks, index=0, source="local"):
        with self._lock:
            self.cursor = PlaylistCursor(tracks, index, source)
            if self.shuffle:
                self.cursor.enable_shuffle(self._rng)
        self._publish("playlist")

    def extend_playlist(self, tracks):
        with self._lock:
            self.cursor.extend(tracks, self._rng)
        self._publish("playlist")

    def next(self):
        return self._navigate(navigation.next_track, "next_track")

    def previous(self):
        return self._navigate(navigation.previous_track, "previous_track")

    def track_ended(self):
        with self._lock:
            self.is_playing = False
        outcome = self._navigate(navigation.track_ended, None)
        if outcome.replay:
            self._audio_command("seek", position=0)
            self._audio_command("play")
            with self._lock:
                self.position_ms = 0
                self.is_playing = True
        return outcome

    def _navigate(self, move, remote_method):
        """
        Step the cursor. The caller resolves ``outcome.track``; while the
        remote device is in charge the skip is delegated to it instead.
        """
        with self._lock:
            if self.source == PlaybackSource.REMOTE and remote_method:
                remote = True
            else:
                remote = False
                outcome = move(self.cursor, self.repeat)

        if remote:
            self._run_async(self._remote_call, remote_method)
            return NavigationOutcome()

        if outcome.halted:
            with self._lock:
                self.is_playing = False
            self.notice(outcome.notice)
            self._publish("halted")
        return outcome

    def _remote_call(self, method, *args):
        gateway = self._gateway_factory()
        if gateway is None:
            self.notice("Sign in to Spotify to control playback", level="error")
            return
        try:
            getattr(gateway, method)(*args)
        except SpotifyAPIError as e:
            logger.warning("Remote %s failed for %s: %s", method, self.owner, e)
            self.notice(e.message, level="error")

    def snapshot(self):
        with self._lock:
            return {
                "source": self.source.value,
                "track": self.track.to_dict() if self.track is not None else None,
                "streamUrl": self.stream_url,
                "isPlaying": self.is_playing,
                "position": self.position_ms,
                "duration": self.duration_ms,
                "volume": self.volume,
                "shuffle": self.shuffle,
                "repeat": self.repeat.value,
                "playlist": {
                    "source": self.cursor.source,
                    "length": len(self.cursor),
                    "index": self.cursor.index,
                },
            }
