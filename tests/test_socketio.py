"""
Socket.IO tests for Spootify Web
Handlers run synchronously under the Flask-SocketIO test client
"""

import pytest

from spootify.websockets import handlers


@pytest.fixture
def library(app, music_dir):
    for name in ("Artist - First.mp3", "Artist - Second.mp3", "Artist - Third.mp3"):
        (music_dir / name).write_bytes(b"audio")
    return app.catalog.scan()


@pytest.fixture
def sio(app, client):
    sio = app.socketio.test_client(app, flask_test_client=client)
    yield sio
    if sio.is_connected():
        sio.disconnect()


def received(sio, name):
    return [event["args"][0] for event in sio.get_received() if event["name"] == name]


def split(events):
    by_name = {}
    for event in events:
        by_name.setdefault(event["name"], []).append(event["args"][0])
    return by_name


class TestConnection:
    """Test connect and disconnect"""

    def test_connect_sends_initial_state(self, sio):
        assert sio.is_connected()

        states = received(sio, "session_state")

        assert states[0]["event"] == "connected"
        assert states[0]["source"] == "none"
        assert states[0]["volume"] == 50

    def test_disconnect_drops_session(self, sio):
        assert len(handlers.sessions) >= 1
        before = len(handlers.sessions)

        sio.disconnect()

        assert len(handlers.sessions) == before - 1


class TestLocalPlayback:
    """Test local playback through the socket channel"""

    def test_play_request_for_local_track(self, sio, library):
        sio.get_received()

        sio.emit("play_request", {"type": "local", "id": library[0].id})

        events = split(sio.get_received())
        assert events["resolution"][0]["target"] == "local"
        load = events["audio_command"][0]
        assert load["action"] == "load"
        assert load["url"] == f"/api/local/stream/{library[0].id}"
        assert events["session_state"][-1]["track"]["id"] == library[0].id
        assert events["notice"][0]["message"] == "Playing local track: First - Artist"

    def test_unknown_local_track_sends_notice(self, sio):
        sio.get_received()

        sio.emit("play_request", {"type": "local", "id": "local_missing"})

        notices = received(sio, "notice")
        assert notices[-1]["level"] == "error"
        assert "Refresh the local library" in notices[-1]["message"]

    def test_local_request_without_id_sends_notice(self, sio):
        sio.get_received()

        sio.emit("play_request", {"type": "local"})

        events = split(sio.get_received())
        assert events["notice"][-1] == {"message": "Local track id is required", "level": "error"}
        assert "resolution" not in events

    def test_track_end_plays_next_track(self, sio, library):
        sio.emit("load_local_library", {"play": True})
        sio.get_received()

        sio.emit("audio_event", {"type": "ended"})

        loads = [c for c in received(sio, "audio_command") if c["action"] == "load"]
        assert loads[-1]["url"] == f"/api/local/stream/{library[1].id}"

    def test_load_local_library_from_track(self, sio, library):
        sio.get_received()

        sio.emit("load_local_library", {"track_id": library[2].id})

        state = received(sio, "session_state")[-1]
        assert state["playlist"] == {"source": "local", "length": 3, "index": 2}

    def test_unknown_audio_event(self, sio):
        sio.get_received()

        sio.emit("audio_event", {"type": "stalled"})

        assert received(sio, "notice")[-1]["level"] == "error"


class TestTransport:
    """Test volume and mode changes"""

    def test_volume_controls_audio_element(self, sio):
        sio.get_received()

        sio.emit("volume", {"volume": 30})

        assert received(sio, "audio_command")[-1] == {"action": "volume", "value": 0.3}

    @pytest.mark.parametrize("volume", [150, "loud", None])
    def test_invalid_volume(self, sio, volume):
        sio.get_received()

        sio.emit("volume", {"volume": volume})

        assert received(sio, "notice")[-1]["message"] == "Volume must be between 0 and 100"

    def test_cycle_repeat(self, sio):
        sio.get_received()

        sio.emit("cycle_repeat")

        assert received(sio, "session_state")[-1]["repeat"] == "context"

    def test_remote_track_without_sign_in(self, sio):
        sio.get_received()

        sio.emit("play_request", {"uri": "spotify:track:abc", "name": "Song"})

        assert received(sio, "notice")[-1]["message"] == handlers.SIGN_IN_NOTICE

    def test_liked_previews_require_sign_in(self, sio):
        sio.get_received()

        sio.emit("play_liked_previews")

        assert received(sio, "notice")[-1]["message"] == handlers.SIGN_IN_NOTICE


class TestBroadcast:
    """Test status rebroadcast between clients"""

    def test_status_update_reaches_other_clients(self, app, sio):
        other = app.socketio.test_client(app)
        sio.get_received()
        other.get_received()

        sio.emit("player-status-update", {"isPlaying": True})

        assert received(other, "player-status-changed") == [{"isPlaying": True}]
        assert received(sio, "player-status-changed") == []
        other.disconnect()
