import os
import re
import time

import pytest

# Set test environment before importing the app
os.environ['FLASK_SECRET'] = 'test-secret'
os.environ['SPOTIFY_CLIENT_ID'] = 'test-client-id'
os.environ['SPOTIFY_CLIENT_SECRET'] = 'test-client-secret'
os.environ['SPOTIFY_REDIRECT_URI'] = 'http://localhost:5000/auth/callback'
os.environ.pop('REDIS_URL', None)
os.environ.pop('FLASK_ENV', None)

from spootify.app import create_app
from spootify.errors import MetadataExtractionError
from spootify.player.models import Device, RemoteTrack


def fake_extractor(file_path, display_name=None):
    """Metadata from the file name: '<artist> - <title>.mp3'; names containing 'corrupt' fail"""
    name = os.path.basename(file_path)
    if "corrupt" in name:
        raise MetadataExtractionError(f"Could not read metadata from {name}")
    stem = re.sub(r"^\d+-\d+-", "", os.path.splitext(name)[0]).replace("_", " ")
    artist, _, title = stem.partition(" - ")
    return {
        "title": title or stem,
        "artist": artist if title else "Unknown artist",
        "album": "Test Album",
        "duration_ms": 180000,
    }


class FakeGateway:
    """In-memory stand-in for SpotifyGateway that records every call"""

    def __init__(self):
        self.calls = []
        self.devices = []
        self.devices_error = None
        self.on_devices = None
        self.play_error = None
        self.track = None
        self.track_error = None
        self.alternatives = []
        self.alternatives_error = None
        self.recommendations = []
        self.recommendations_error = None
        self.remote_error = None

    def _record(self, name, *args, **kwargs):
        self.calls.append((name, args, kwargs))

    def called(self, name):
        return [c for c in self.calls if c[0] == name]

    def get_devices(self):
        self._record("get_devices")
        if self.on_devices:
            self.on_devices()
        if self.devices_error:
            raise self.devices_error
        return list(self.devices)

    def get_active_devices(self):
        return [d for d in self.get_devices() if d.is_active]

    def start_playback(self, uris=None, context_uri=None, offset=None, device_id=None):
        self._record("start_playback", uris=uris, context_uri=context_uri, offset=offset)
        if self.play_error:
            raise self.play_error
        return {}

    def get_track(self, uri):
        self._record("get_track", uri)
        if self.track_error:
            raise self.track_error
        return self.track

    def find_alternatives(self, track_name, artist_name="", exclude_uri=None, limit=10):
        self._record("find_alternatives", track_name, artist_name)
        if self.alternatives_error:
            raise self.alternatives_error
        return list(self.alternatives)

    def get_liked_recommendations(self, limit=10, seed_count=5):
        self._record("get_liked_recommendations", limit=limit)
        if self.recommendations_error:
            raise self.recommendations_error
        return list(self.recommendations)

    def _remote(self, name, *args):
        self._record(name, *args)
        if self.remote_error:
            raise self.remote_error
        return {}

    def pause(self):
        return self._remote("pause")

    def next_track(self):
        return self._remote("next_track")

    def previous_track(self):
        return self._remote("previous_track")

    def seek(self, position_ms):
        return self._remote("seek", position_ms)

    def set_volume(self, volume):
        return self._remote("set_volume", volume)

    def set_shuffle(self, state):
        return self._remote("set_shuffle", state)

    def set_repeat(self, state):
        return self._remote("set_repeat", state)


def active_device():
    return Device(id="dev1", name="Laptop", type="Computer", is_active=True, volume_percent=60)


def remote_track(uri="spotify:track:abc", name="Song", artist="Artist", preview_url=None):
    return RemoteTrack(uri=uri, id=uri.split(":")[-1], name=name, artists=[artist], duration_ms=200000, preview_url=preview_url)


@pytest.fixture
def fake_gateway():
    return FakeGateway()


@pytest.fixture
def music_dir(tmp_path):
    path = tmp_path / "music"
    path.mkdir()
    return path


@pytest.fixture
def app(music_dir):
    """Create an app wired to a temporary music directory"""
    app = create_app({
        "TESTING": True,
        "SECRET_KEY": "test-secret",
        "LOCAL_MUSIC_DIR": str(music_dir),
        "BACKGROUND_TASKS": False,
    })
    app.catalog.extractor = fake_extractor
    return app


@pytest.fixture
def client(app):
    """Create a test client"""
    with app.test_client() as client:
        yield client


@pytest.fixture
def signed_in(client):
    """Put a valid Spotify token in the client's session"""
    with client.session_transaction() as sess:
        sess["spotify_token"] = {
            "access_token": "test-access-token",
            "refresh_token": "test-refresh-token",
            "expires_at": int(time.time()) + 3600,
        }
        sess["user_id"] = "test-user"
    return client
