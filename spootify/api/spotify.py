"""
Spotify Web API gateway for Spootify Web.
Wraps the remote-control, library, search and recommendation endpoints with
bearer-token injection and maps failures onto typed exceptions.
"""

import logging
import time

import requests

from spootify.errors import RemoteServiceError, SpotifyAPIError, error_for_status
from spootify.player.models import Device, RemoteTrack


logger = logging.getLogger(__name__)

API_BASE_URL = "https://api.spotify.com/v1"
LIKED_PAGE_SIZE = 50
PAGE_DELAY = 0.15


def make_spotify_api_request(endpoint, access_token, method='GET', data=None, params=None, timeout_config=(3, 10)):
    """
    Centralized function for making Spotify API requests.

    Returns the decoded JSON body ({} for empty 2xx answers) and raises a
    SpotifyAPIError subclass for anything else, so callers can tell an expired
    token (401) from a missing device (404).
    """
    if not access_token:
        raise error_for_status(401, "No access token provided")

    full_url = f"{API_BASE_URL}/{endpoint.lstrip('/')}"
    headers = {
        'Authorization': f'Bearer {access_token}',
        'Content-Type': 'application/json',
        'User-Agent': 'SpootifyWeb/1.0'
    }

    try:
        response = requests.request(
            method=method,
            url=full_url,
            headers=headers,
            json=data if method != 'GET' else None,
            params=params,
            timeout=timeout_config
        )
    except requests.RequestException as e:
        logger.error("❌ %s %s failed: %s", method, endpoint, e)
        raise RemoteServiceError(message=f"Could not reach Spotify: {e}")

    if response.status_code in (200, 201, 202, 204):
        if not response.content:
            return {}
        try:
            return response.json()
        except ValueError:
            return {}

    payload = None
    message = None
    try:
        payload = response.json()
        error = payload.get("error") if isinstance(payload, dict) else None
        if isinstance(error, dict):
            message = error.get("message")
    except ValueError:
        pass

    logger.warning("❌ %s %s -> %s %s", method, endpoint, response.status_code, message or "")
    raise error_for_status(response.status_code, None, payload)


def format_duration(duration_ms):
    """Format duration from milliseconds to MM:SS format"""
    if not duration_ms:
        return "0:00"

    total_seconds = duration_ms // 1000
    minutes = total_seconds // 60
    seconds = total_seconds % 60
    return f"{minutes}:{seconds:02d}"


def format_track(track):
    """Trim a Web API track object to what the dashboard displays"""
    album = track.get("album") or {}
    return {
        "id": track.get("id"),
        "name": track.get("name"),
        "artists": [{"id": a.get("id"), "name": a.get("name")} for a in track.get("artists", [])],
        "album": {
            "id": album.get("id"),
            "name": album.get("name"),
            "images": album.get("images", [])
        },
        "duration_ms": track.get("duration_ms"),
        "preview_url": track.get("preview_url"),
        "uri": track.get("uri"),
        "popularity": track.get("popularity"),
        "explicit": track.get("explicit")
    }


def format_playback_state(playback_state):
    """Dashboard view of GET /me/player (None when nothing is active)"""
    if not playback_state:
        return {"isPlaying": False, "message": "No active device found"}

    device = playback_state.get("device") or {}
    current = playback_state.get("item")
    return {
        "isPlaying": playback_state.get("is_playing", False),
        "progress": playback_state.get("progress_ms"),
        "duration": current.get("duration_ms") if current else None,
        "volume": device.get("volume_percent"),
        "shuffleState": playback_state.get("shuffle_state"),
        "repeatState": playback_state.get("repeat_state"),
        "device": {
            "name": device.get("name"),
            "type": device.get("type"),
            "volume": device.get("volume_percent")
        },
        "track": {
            "id": current.get("id"),
            "uri": current.get("uri"),
            "name": current.get("name"),
            "artists": [a.get("name") for a in current.get("artists", [])],
            "album": {
                "name": (current.get("album") or {}).get("name"),
                "images": (current.get("album") or {}).get("images", [])
            },
            "duration": current.get("duration_ms"),
            "preview_url": current.get("preview_url"),
            "external_urls": current.get("external_urls")
        } if current else None
    }


class SpotifyGateway:
    """Remote service operations bound to one user's access token"""

    def __init__(self, access_token, timeout_config=(3, 10)):
        self.access_token = access_token
        self.timeout_config = timeout_config

    def request(self, endpoint, method='GET', data=None, params=None):
        return make_spotify_api_request(
            endpoint, self.access_token, method=method, data=data,
            params=params, timeout_config=self.timeout_config
        )

    # Profile and playback state

    def get_profile(self):
        return self.request("me")

    def get_playback_state(self):
        return self.request("me/player") or None

    def get_devices(self):
        data = self.request("me/player/devices")
        return [Device.from_spotify(d) for d in data.get("devices", [])]

    def get_active_devices(self):
        return [d for d in self.get_devices() if d.is_active]

    def get_track_details(self, track_id_or_uri):
        """Raw Web API track object"""
        track_id = track_id_or_uri.split(":")[-1]
        return self.request(f"tracks/{track_id}")

    def get_track(self, track_id_or_uri):
        return RemoteTrack.from_spotify(self.get_track_details(track_id_or_uri))

    # Transport control

    def start_playback(self, uris=None, context_uri=None, offset=None, device_id=None):
        body = {}
        if uris:
            body["uris"] = uris
        if context_uri:
            body["context_uri"] = context_uri
        if offset is not None and offset > 0:
            body["offset"] = {"position": offset}
        params = {"device_id": device_id} if device_id else None
        return self.request("me/player/play", method="PUT", data=body or None, params=params)

    def pause(self):
        return self.request("me/player/pause", method="PUT")

    def next_track(self):
        return self.request("me/player/next", method="POST")

    def previous_track(self):
        return self.request("me/player/previous", method="POST")

    def seek(self, position_ms):
        return self.request("me/player/seek", method="PUT", params={"position_ms": int(position_ms)})

    def set_volume(self, volume_percent):
        return self.request("me/player/volume", method="PUT", params={"volume_percent": int(volume_percent)})

    def set_shuffle(self, state):
        return self.request("me/player/shuffle", method="PUT", params={"state": "true" if state else "false"})

    def set_repeat(self, state):
        return self.request("me/player/repeat", method="PUT", params={"state": state})

    def transfer_playback(self, device_id, play=False):
        return self.request("me/player", method="PUT", data={"device_ids": [device_id], "play": bool(play)})

    def add_to_queue(self, uri):
        return self.request("me/player/queue", method="POST", params={"uri": uri})

    # Library

    def get_liked_tracks(self, limit=LIKED_PAGE_SIZE, offset=0):
        return self.request("me/tracks", params={"limit": limit, "offset": offset})

    def get_recently_played(self, limit=50):
        return self.request("me/player/recently-played", params={"limit": limit})

    def get_playlists(self, limit=20, offset=0):
        return self.request("me/playlists", params={"limit": limit, "offset": offset})

    def get_playlist(self, playlist_id):
        return self.request(f"playlists/{playlist_id}")

    def get_playlist_tracks(self, playlist_id, limit=50, offset=0):
        return self.request(f"playlists/{playlist_id}/tracks", params={"limit": limit, "offset": offset})

    def create_playlist(self, user_id, name, description="", public=False):
        data = {"name": name, "description": description, "public": bool(public)}
        return self.request(f"users/{user_id}/playlists", method="POST", data=data)

    def update_playlist(self, playlist_id, **details):
        """Change name, description and/or public flag; unset fields are left alone"""
        data = {k: v for k, v in details.items() if v is not None}
        return self.request(f"playlists/{playlist_id}", method="PUT", data=data)

    def add_playlist_tracks(self, playlist_id, uris, position=None):
        data = {"uris": list(uris)}
        if position is not None:
            data["position"] = int(position)
        return self.request(f"playlists/{playlist_id}/tracks", method="POST", data=data)

    def remove_playlist_tracks(self, playlist_id, uris):
        data = {"tracks": [{"uri": uri} for uri in uris]}
        return self.request(f"playlists/{playlist_id}/tracks", method="DELETE", data=data)

    def get_featured_playlists(self, limit=20, offset=0, country=None):
        params = {"limit": limit, "offset": offset}
        if country:
            params["country"] = country
        return self.request("browse/featured-playlists", params=params)

    # Search and discovery

    def search(self, query, types=("track",), limit=20, offset=0):
        params = {
            "q": query,
            "type": ",".join(types),
            "limit": min(int(limit), 50),
            "offset": int(offset)
        }
        return self.request("search", params=params)

    def search_tracks(self, query, limit=20):
        data = self.search(query, types=("track",), limit=limit)
        return [RemoteTrack.from_spotify(t) for t in data.get("tracks", {}).get("items", []) if t]

    def get_artist(self, artist_id):
        return self.request(f"artists/{artist_id}")

    def get_artist_top_tracks(self, artist_id, country="FR"):
        return self.request(f"artists/{artist_id}/top-tracks", params={"market": country})

    def find_alternatives(self, track_name, artist_name="", exclude_uri=None, limit=10):
        """Tracks with the same or a similar identity that do carry a preview URL"""
        queries = []
        if artist_name:
            queries.append(f'track:"{track_name}" artist:"{artist_name}"')
        queries.append(f"{track_name} {artist_name}".strip())

        for query in queries:
            candidates = [
                t for t in self.search_tracks(query, limit=limit)
                if t.has_preview and t.uri != exclude_uri
            ]
            if candidates:
                return candidates
        return []

    def get_liked_recommendations(self, limit=10, seed_count=5):
        """Recommendations seeded from the first liked tracks, preview-eligible only"""
        liked = self.get_liked_tracks(limit=LIKED_PAGE_SIZE, offset=0)
        seeds = [
            item["track"]["id"] for item in liked.get("items", [])
            if item.get("track") and item["track"].get("id")
        ][:seed_count]
        if not seeds:
            return []

        data = self.request("recommendations", params={"seed_tracks": ",".join(seeds), "limit": limit})
        tracks = [RemoteTrack.from_spotify(t) for t in data.get("tracks", []) if t]
        return [t for t in tracks if t.has_preview]


def iter_liked_track_pages(gateway, page_size=LIKED_PAGE_SIZE, delay=PAGE_DELAY, previews_only=False, sleep=time.sleep):
    """
    Page through the liked tracks, one list of RemoteTrack per page.

    The first page is yielded as soon as it arrives; later pages follow after a
    short pause to stay clear of rate limits. A failure on the first page
    propagates; a failure later ends the iteration and keeps what was loaded.
    """
    offset = 0
    while True:
        try:
            page = gateway.get_liked_tracks(limit=page_size, offset=offset)
        except SpotifyAPIError as e:
            if offset == 0:
                raise
            logger.warning("Stopped loading liked tracks at offset %d: %s", offset, e)
            return

        items = page.get("items", [])
        tracks = [RemoteTrack.from_spotify(item["track"]) for item in items if item.get("track")]
        if previews_only:
            tracks = [t for t in tracks if t.has_preview]
        yield tracks

        offset += len(items)
        total = page.get("total")
        if len(items) < page_size or (total is not None and offset >= total):
            return
        sleep(delay)
