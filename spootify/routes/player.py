"""
Playback control routes for Spootify Web.
Handles remote playback, devices, liked tracks, fallback resolution and status.
"""

import logging

from flask import Blueprint, current_app, g, jsonify, request, session

from spootify.api.spotify import SpotifyGateway, format_playback_state, format_track
from spootify.auth.spotify_auth import get_access_token, require_auth, unauthorized_response
from spootify.errors import NoActiveDevice, Unauthorized
from spootify.player.models import PlayRequest, RepeatMode
from spootify.player.resolver import ResolutionState


logger = logging.getLogger(__name__)

player_bp = Blueprint('player', __name__)

ALTERNATIVES_TTL = 600


def bad_request(message):
    return jsonify({"error": message, "code": "BAD_REQUEST"}), 400


def ensure_active_device(gateway):
    """Fresh device lookup before remote playback; raises NoActiveDevice when none is active"""
    if not gateway.get_active_devices():
        raise NoActiveDevice()


def request_owner():
    return session.get("user_id") or request.remote_addr or "anonymous"


@player_bp.route("/status")
@require_auth
def get_status():
    """Current playback state of the user's Spotify account"""
    return jsonify(format_playback_state(g.spotify.get_playback_state()))


@player_bp.route("/play", methods=["POST"])
@require_auth
def play():
    """Start remote playback of a track, a list of URIs or a context"""
    data = request.get_json(silent=True) or {}
    uri = data.get("uri")
    uris = data.get("uris") or ([uri] if uri else None)
    context_uri = data.get("context_uri")

    ensure_active_device(g.spotify)
    g.spotify.start_playback(
        uris=uris if not context_uri else None,
        context_uri=context_uri,
        offset=data.get("offset"),
        device_id=data.get("device_id")
    )
    logger.info("▶️ Started remote playback of %s", context_uri or uri or "current queue")
    return jsonify({"status": "success"})


@player_bp.route("/resolve", methods=["POST"])
def resolve():
    """
    Decide where a track plays: remote device, embedded preview or local file.

    202 means the same track is already being resolved for this user.
    """
    try:
        play_request = PlayRequest.from_payload(request.get_json(silent=True), owner=request_owner())
    except ValueError as e:
        return bad_request(str(e))

    gateway = None
    if not play_request.is_local:
        try:
            gateway = SpotifyGateway(get_access_token())
        except Unauthorized as e:
            return unauthorized_response(e)

    return resolution_response(play_request, current_app.resolver.resolve(play_request, gateway))


def resolution_response(play_request, resolution):
    """JSON answer for a resolver result: 202 while coalesced, 401, 404 or the resolution"""
    if resolution is None:
        return jsonify({"status": "pending", "request_key": play_request.key}), 202

    body = resolution.to_dict()
    if resolution.state == ResolutionState.UNAUTHORIZED:
        body.update({"error": resolution.message, "code": "UNAUTHORIZED", "needsRefresh": True})
        return jsonify(body), 401
    if not resolution.ok:
        body.update({"error": resolution.message, "code": "NO_PLAYABLE_SOURCE"})
        return jsonify(body), 404
    return jsonify(body)


@player_bp.route("/pause", methods=["POST"])
@require_auth
def pause():
    g.spotify.pause()
    return jsonify({"status": "success"})


@player_bp.route("/next", methods=["POST"])
@require_auth
def next_track():
    g.spotify.next_track()
    return jsonify({"status": "success"})


@player_bp.route("/previous", methods=["POST"])
@require_auth
def previous_track():
    g.spotify.previous_track()
    return jsonify({"status": "success"})


@player_bp.route("/seek", methods=["POST"])
@require_auth
def seek():
    data = request.get_json(silent=True) or {}
    position = data.get("position_ms")
    if not isinstance(position, (int, float)) or isinstance(position, bool) or position < 0:
        return bad_request("position_ms must be a non-negative number")
    g.spotify.seek(position)
    return jsonify({"status": "success"})


@player_bp.route("/volume", methods=["POST"])
@require_auth
def set_volume():
    data = request.get_json(silent=True) or {}
    volume = data.get("volume_percent")
    if not isinstance(volume, (int, float)) or isinstance(volume, bool) or not 0 <= volume <= 100:
        return bad_request("Volume must be between 0 and 100")
    g.spotify.set_volume(volume)
    return jsonify({"status": "success"})


@player_bp.route("/shuffle", methods=["POST"])
@require_auth
def set_shuffle():
    data = request.get_json(silent=True) or {}
    state = data.get("state")
    if not isinstance(state, bool):
        return bad_request("state must be true or false")
    g.spotify.set_shuffle(state)
    return jsonify({"status": "success", "shuffle": state})


@player_bp.route("/repeat", methods=["POST"])
@require_auth
def set_repeat():
    data = request.get_json(silent=True) or {}
    try:
        mode = RepeatMode.parse(data.get("state"))
    except ValueError as e:
        return bad_request(str(e))
    g.spotify.set_repeat(mode.value)
    return jsonify({"status": "success", "repeat": mode.value})


@player_bp.route("/devices")
@require_auth
def get_devices():
    devices = g.spotify.get_devices()
    return jsonify({"devices": [d.to_dict() for d in devices]})


@player_bp.route("/transfer", methods=["POST"])
@require_auth
def transfer():
    data = request.get_json(silent=True) or {}
    device_id = data.get("device_id")
    if not device_id:
        return bad_request("device_id is required")
    g.spotify.transfer_playback(device_id, play=data.get("play", False))
    return jsonify({"status": "success"})


@player_bp.route("/liked-tracks")
@require_auth
def get_liked_tracks():
    limit = request.args.get("limit", 50, type=int)
    offset = request.args.get("offset", 0, type=int)
    page = g.spotify.get_liked_tracks(limit=min(max(limit, 1), 50), offset=max(offset, 0))
    tracks = [format_track(item["track"]) for item in page.get("items", []) if item.get("track")]
    return jsonify({
        "tracks": tracks,
        "total": page.get("total", len(tracks)),
        "offset": offset,
        "next": page.get("next")
    })


@player_bp.route("/recently-played")
@require_auth
def get_recently_played():
    limit = request.args.get("limit", 50, type=int)
    data = g.spotify.get_recently_played(limit=min(max(limit, 1), 50))
    tracks = [
        dict(format_track(item["track"]), played_at=item.get("played_at"))
        for item in data.get("items", []) if item.get("track")
    ]
    return jsonify({"tracks": tracks})


@player_bp.route("/liked-tracks/play", methods=["POST"])
@require_auth
def play_liked_tracks():
    """Play the first page of liked tracks on the active device"""
    data = request.get_json(silent=True) or {}
    page = g.spotify.get_liked_tracks(limit=50, offset=0)
    uris = [item["track"]["uri"] for item in page.get("items", []) if item.get("track")]
    if not uris:
        return jsonify({"error": "No liked tracks found", "code": "NOT_FOUND"}), 404

    try:
        offset = int(data.get("offset") or 0)
    except (TypeError, ValueError):
        return bad_request("offset must be a number")
    ensure_active_device(g.spotify)
    g.spotify.start_playback(uris=uris, offset=offset if offset < len(uris) else 0)
    return jsonify({"status": "success", "total": len(uris)})


@player_bp.route("/liked-tracks/previews")
@require_auth
def get_liked_previews():
    """One page of liked tracks that carry a preview URL"""
    offset = request.args.get("offset", 0, type=int)
    page = g.spotify.get_liked_tracks(limit=50, offset=max(offset, 0))
    items = page.get("items", [])
    tracks = [
        format_track(item["track"]) for item in items
        if item.get("track") and item["track"].get("preview_url")
    ]
    next_offset = offset + len(items) if page.get("next") else None
    return jsonify({"tracks": tracks, "total": page.get("total"), "next_offset": next_offset})


@player_bp.route("/liked-tracks/alternatives")
@require_auth
def get_alternatives():
    """Preview-eligible substitutes for a track without a preview"""
    name = request.args.get("name", "").strip()
    artist = request.args.get("artist", "").strip()
    exclude = request.args.get("exclude")
    if not name:
        return bad_request("name is required")

    cache_key = f"alternatives:{name.lower()}:{artist.lower()}"
    cached = current_app.cache.get(cache_key)
    if cached is not None:
        return jsonify({"tracks": cached, "cached": True})

    tracks = [t.to_dict() for t in g.spotify.find_alternatives(name, artist, exclude_uri=exclude)]
    current_app.cache.set(cache_key, tracks, timeout=ALTERNATIVES_TTL)
    return jsonify({"tracks": tracks, "cached": False})


@player_bp.route("/liked-tracks/recommendations")
@require_auth
def get_recommendations():
    limit = request.args.get("limit", 10, type=int)
    tracks = g.spotify.get_liked_recommendations(limit=min(max(limit, 1), 100))
    return jsonify({"tracks": [t.to_dict() for t in tracks]})


@player_bp.route("/queue", methods=["POST"])
@require_auth
def add_to_queue():
    data = request.get_json(silent=True) or {}
    uri = data.get("uri")
    if not uri:
        return bad_request("uri is required")
    g.spotify.add_to_queue(uri)
    return jsonify({"status": "success"})
