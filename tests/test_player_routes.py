import io
import json
import time
from unittest.mock import MagicMock, patch

import pytest
from spotipy.oauth2 import SpotifyOauthError

from conftest import active_device, remote_track
from spootify.errors import Forbidden, NoActiveDevice, Unauthorized


PREVIEW = "https://p.scdn.co/mp3-preview/abc"


@pytest.fixture
def gateway():
    gateway = MagicMock()
    gateway.get_active_devices.return_value = [active_device()]
    gateway.start_playback.return_value = {}
    return gateway


@pytest.fixture
def authed(signed_in, gateway):
    """Signed-in client whose routes talk to the mock gateway"""
    with patch("spootify.auth.spotify_auth.SpotifyGateway", return_value=gateway):
        yield signed_in


def post_json(client, url, body=None):
    return client.post(url, data=json.dumps(body or {}), content_type="application/json")


class TestAuthentication:
    """Test token handling for player routes"""

    def test_requires_session_token(self, client):
        response = client.get("/api/player/status")

        assert response.status_code == 401
        data = json.loads(response.data)
        assert data["needsRefresh"] is True

    def test_expired_token_is_refreshed_once(self, client, gateway):
        with client.session_transaction() as sess:
            sess["spotify_token"] = {"access_token": "old", "refresh_token": "r", "expires_at": int(time.time()) - 10}

        oauth = MagicMock()
        oauth.refresh_access_token.return_value = {"access_token": "new", "refresh_token": "r", "expires_at": int(time.time()) + 3600}
        gateway.get_playback_state.return_value = None

        with patch("spootify.auth.spotify_auth.get_oauth", return_value=oauth), \
                patch("spootify.auth.spotify_auth.SpotifyGateway", return_value=gateway) as gateway_cls:
            response = client.get("/api/player/status")

        assert response.status_code == 200
        oauth.refresh_access_token.assert_called_once_with("r")
        gateway_cls.assert_called_once_with("new")
        with client.session_transaction() as sess:
            assert sess["spotify_token"]["access_token"] == "new"

    def test_failed_refresh_is_unauthorized(self, client):
        with client.session_transaction() as sess:
            sess["spotify_token"] = {"access_token": "old", "refresh_token": "r", "expires_at": int(time.time()) - 10}

        oauth = MagicMock()
        oauth.refresh_access_token.side_effect = SpotifyOauthError("invalid_grant")

        with patch("spootify.auth.spotify_auth.get_oauth", return_value=oauth):
            response = client.get("/api/player/status")

        assert response.status_code == 401
        assert oauth.refresh_access_token.call_count == 1

    def test_refresh_endpoint_without_session(self, client):
        assert client.post("/auth/refresh").status_code == 401


class TestRemotePlayback:
    """Test remote playback control"""

    def test_status(self, authed, gateway):
        gateway.get_playback_state.return_value = {
            "is_playing": True, "progress_ms": 10, "device": {"name": "Laptop"}, "item": None
        }

        data = json.loads(authed.get("/api/player/status").data)

        assert data["isPlaying"] is True
        assert data["device"]["name"] == "Laptop"

    def test_play_checks_for_active_device(self, authed, gateway):
        gateway.get_active_devices.return_value = []

        response = post_json(authed, "/api/player/play", {"uri": "spotify:track:abc"})

        data = json.loads(response.data)
        assert response.status_code == 404
        assert data["code"] == "NO_ACTIVE_DEVICE"
        assert "Open Spotify" in data["error"]
        gateway.start_playback.assert_not_called()

    def test_play_track(self, authed, gateway):
        response = post_json(authed, "/api/player/play", {"uri": "spotify:track:abc"})

        assert response.status_code == 200
        gateway.start_playback.assert_called_once_with(
            uris=["spotify:track:abc"], context_uri=None, offset=None, device_id=None
        )

    def test_play_context(self, authed, gateway):
        post_json(authed, "/api/player/play", {"context_uri": "spotify:playlist:p", "offset": 3})

        gateway.start_playback.assert_called_once_with(
            uris=None, context_uri="spotify:playlist:p", offset=3, device_id=None
        )

    def test_expired_session_during_play(self, authed, gateway):
        gateway.start_playback.side_effect = Unauthorized()

        response = post_json(authed, "/api/player/play", {"uri": "spotify:track:abc"})

        data = json.loads(response.data)
        assert response.status_code == 401
        assert data["needsRefresh"] is True
        assert data["error"] == Unauthorized.default_message

    def test_forbidden_is_passed_through(self, authed, gateway):
        gateway.pause.side_effect = Forbidden()

        response = post_json(authed, "/api/player/pause")

        assert response.status_code == 403
        assert json.loads(response.data)["code"] == "ACCESS_DENIED"

    def test_next_without_device(self, authed, gateway):
        gateway.next_track.side_effect = NoActiveDevice()

        assert post_json(authed, "/api/player/next").status_code == 404

    @pytest.mark.parametrize("volume", [-1, 101, "loud", None, True])
    def test_invalid_volume(self, authed, gateway, volume):
        response = post_json(authed, "/api/player/volume", {"volume_percent": volume})

        assert response.status_code == 400
        gateway.set_volume.assert_not_called()

    def test_volume(self, authed, gateway):
        assert post_json(authed, "/api/player/volume", {"volume_percent": 65}).status_code == 200
        gateway.set_volume.assert_called_once_with(65)

    def test_invalid_repeat(self, authed, gateway):
        response = post_json(authed, "/api/player/repeat", {"state": "forever"})

        assert response.status_code == 400
        gateway.set_repeat.assert_not_called()

    def test_repeat(self, authed, gateway):
        post_json(authed, "/api/player/repeat", {"state": "track"})

        gateway.set_repeat.assert_called_once_with("track")

    def test_seek_requires_position(self, authed):
        assert post_json(authed, "/api/player/seek", {}).status_code == 400

    def test_transfer_requires_device(self, authed):
        assert post_json(authed, "/api/player/transfer", {}).status_code == 400

    def test_queue_requires_uri(self, authed):
        assert post_json(authed, "/api/player/queue", {}).status_code == 400

    def test_devices(self, authed, gateway):
        gateway.get_devices.return_value = [active_device()]

        data = json.loads(authed.get("/api/player/devices").data)

        assert data["devices"][0]["name"] == "Laptop"


class TestLikedTracks:
    """Test liked-track endpoints"""

    def liked_page(self, *tracks):
        return {
            "items": [{"track": t} for t in tracks],
            "total": len(tracks),
            "next": None,
        }

    def track(self, n, preview=None):
        return {"id": f"t{n}", "uri": f"spotify:track:t{n}", "name": f"T{n}", "artists": [], "album": {}, "preview_url": preview}

    def test_play_liked_tracks(self, authed, gateway):
        gateway.get_liked_tracks.return_value = self.liked_page(self.track(1), self.track(2))

        response = post_json(authed, "/api/player/liked-tracks/play", {"offset": 1})

        assert response.status_code == 200
        gateway.start_playback.assert_called_once_with(uris=["spotify:track:t1", "spotify:track:t2"], offset=1)

    def test_play_liked_tracks_when_none(self, authed, gateway):
        gateway.get_liked_tracks.return_value = self.liked_page()

        assert post_json(authed, "/api/player/liked-tracks/play").status_code == 404

    def test_previews_filter(self, authed, gateway):
        gateway.get_liked_tracks.return_value = self.liked_page(self.track(1, PREVIEW), self.track(2))

        data = json.loads(authed.get("/api/player/liked-tracks/previews").data)

        assert [t["uri"] for t in data["tracks"]] == ["spotify:track:t1"]
        assert data["next_offset"] is None

    def test_alternatives_are_cached(self, authed, gateway):
        gateway.find_alternatives.return_value = [remote_track(preview_url=PREVIEW)]

        first = json.loads(authed.get("/api/player/liked-tracks/alternatives?name=Song&artist=Artist").data)
        second = json.loads(authed.get("/api/player/liked-tracks/alternatives?name=Song&artist=Artist").data)

        assert first["cached"] is False
        assert second["cached"] is True
        assert second["tracks"][0]["preview_url"] == PREVIEW
        assert gateway.find_alternatives.call_count == 1

    def test_alternatives_require_name(self, authed):
        assert authed.get("/api/player/liked-tracks/alternatives").status_code == 400


class TestResolve:
    """Test the fallback resolver endpoint"""

    @pytest.fixture
    def local_id(self, client):
        response = client.post(
            "/api/local/upload",
            data={"audioFiles": [(io.BytesIO(b"audio"), "Artist - Local.mp3", "audio/mpeg")]},
            content_type="multipart/form-data"
        )
        return json.loads(response.data)["tracks"][0]["id"]

    def test_local_track_needs_no_sign_in(self, client, local_id):
        response = post_json(client, "/api/player/resolve", {"type": "local", "id": local_id})

        data = json.loads(response.data)
        assert response.status_code == 200
        assert data["target"] == "local"
        assert data["url"] == f"/api/local/stream/{local_id}"

    def test_unknown_local_track(self, client):
        response = post_json(client, "/api/player/resolve", {"local_id": "local_missing"})

        data = json.loads(response.data)
        assert response.status_code == 404
        assert data["code"] == "NO_PLAYABLE_SOURCE"

    def test_local_request_without_id(self, client):
        response = post_json(client, "/api/player/resolve", {"type": "local"})

        data = json.loads(response.data)
        assert response.status_code == 400
        assert data["error"] == "Local track id is required"

    def test_remote_track_requires_sign_in(self, client):
        response = post_json(client, "/api/player/resolve", {"uri": "spotify:track:abc"})

        assert response.status_code == 401

    def test_missing_uri(self, client):
        assert post_json(client, "/api/player/resolve", {"name": "Song"}).status_code == 400

    def test_no_device_falls_back_to_preview(self, signed_in, fake_gateway):
        with patch("spootify.routes.player.SpotifyGateway", return_value=fake_gateway):
            response = post_json(signed_in, "/api/player/resolve", {
                "uri": "spotify:track:abc", "name": "Song", "artists": "Artist", "preview_url": PREVIEW
            })

        data = json.loads(response.data)
        assert response.status_code == 200
        assert data["target"] == "embedded"
        assert data["url"] == PREVIEW

    def test_nothing_playable(self, signed_in, fake_gateway):
        with patch("spootify.routes.player.SpotifyGateway", return_value=fake_gateway):
            response = post_json(signed_in, "/api/player/resolve", {"uri": "spotify:track:abc", "name": "Song"})

        data = json.loads(response.data)
        assert response.status_code == 404
        assert data["code"] == "NO_PLAYABLE_SOURCE"
        assert "add local music" in data["error"]

    def test_unauthorized_resolution(self, signed_in, fake_gateway):
        fake_gateway.devices_error = Unauthorized()

        with patch("spootify.routes.player.SpotifyGateway", return_value=fake_gateway):
            response = post_json(signed_in, "/api/player/resolve", {"uri": "spotify:track:abc"})

        assert response.status_code == 401
        assert json.loads(response.data)["needsRefresh"] is True

    def test_duplicate_request_is_accepted_but_not_run(self, app, signed_in, fake_gateway):
        body = {"uri": "spotify:track:abc", "name": "Song"}
        app.resolver._pending.add(("test-user", "remote:spotify:track:abc"))

        with patch("spootify.routes.player.SpotifyGateway", return_value=fake_gateway):
            response = post_json(signed_in, "/api/player/resolve", body)

        assert response.status_code == 202
        assert fake_gateway.calls == []
