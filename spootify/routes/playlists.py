"""
Playlist routes for Spootify Web.
Handles playlist and track fetching with short-lived caching, playlist editing
and playing a playlist through the fallback resolver.
"""

import logging

from flask import Blueprint, current_app, g, jsonify, request, session

from spootify.api.spotify import format_track
from spootify.auth.spotify_auth import require_auth
from spootify.player.models import PlayRequest, RemoteTrack
from spootify.routes.player import bad_request, request_owner, resolution_response


logger = logging.getLogger(__name__)

playlists_bp = Blueprint('playlists', __name__)

PLAYLISTS_TTL = 300
FEATURED_COUNTRY = "FR"


def simplify_playlists_data(data):
    """Reduce a /me/playlists page to what the sidebar needs"""
    return {
        "items": [
            {
                "id": playlist["id"],
                "uri": playlist.get("uri"),
                "name": playlist["name"],
                "description": playlist.get("description", ""),
                "tracks": {"total": (playlist.get("tracks") or {}).get("total", 0)},
                "images": (playlist.get("images") or [])[:1],
                "owner": {"display_name": (playlist.get("owner") or {}).get("display_name")}
            }
            for playlist in data.get("items", []) if playlist
        ],
        "total": data.get("total", 0)
    }


def _cache_version_key():
    return f"playlists-version:{session.get('user_id', 'anonymous')}"


def invalidate_playlists_cache():
    """Bump the user's listing version so cached pages are no longer read"""
    key = _cache_version_key()
    current_app.cache.set(key, (current_app.cache.get(key) or 0) + 1, timeout=0)


@playlists_bp.route("")
@require_auth
def playlists():
    """Get user playlists, served from cache when fresh"""
    limit = min(max(request.args.get("limit", 20, type=int), 1), 50)
    offset = max(request.args.get("offset", 0, type=int), 0)
    version = current_app.cache.get(_cache_version_key()) or 0
    cache_key = f"playlists:{session.get('user_id', 'anonymous')}:{version}:{limit}:{offset}"

    cached = current_app.cache.get(cache_key)
    if cached is not None:
        logger.info("Serving %d playlists from cache", len(cached["items"]))
        return jsonify(dict(cached, cached=True))

    simplified = simplify_playlists_data(g.spotify.get_playlists(limit=limit, offset=offset))
    current_app.cache.set(cache_key, simplified, timeout=PLAYLISTS_TTL)
    return jsonify(dict(simplified, cached=False))


@playlists_bp.route("/<playlist_id>")
@require_auth
def playlist_detail(playlist_id):
    """Playlist metadata plus one page of its tracks"""
    limit = min(max(request.args.get("limit", 50, type=int), 1), 100)
    offset = max(request.args.get("offset", 0, type=int), 0)

    playlist = g.spotify.get_playlist(playlist_id)
    page = g.spotify.get_playlist_tracks(playlist_id, limit=limit, offset=offset)
    tracks = [format_track(item["track"]) for item in page.get("items", []) if item.get("track")]

    return jsonify({
        "id": playlist.get("id"),
        "uri": playlist.get("uri"),
        "name": playlist.get("name"),
        "description": playlist.get("description", ""),
        "images": (playlist.get("images") or [])[:1],
        "owner": (playlist.get("owner") or {}).get("display_name"),
        "tracks": tracks,
        "total": page.get("total", len(tracks)),
        "offset": offset
    })


@playlists_bp.route("/<playlist_id>/play", methods=["POST"])
@require_auth
def play_playlist(playlist_id):
    """
    Play a playlist from ``offset`` on the active device.

    The track at the offset leads the request, so without a device the
    resolver can fall back to its preview like any other track.
    """
    data = request.get_json(silent=True) or {}
    try:
        offset = max(int(data.get("offset") or 0), 0)
    except (TypeError, ValueError):
        return bad_request("Offset must be a number")

    page = g.spotify.get_playlist_tracks(playlist_id, limit=1, offset=offset)
    items = [item["track"] for item in page.get("items", []) if item.get("track")]
    if not items:
        return jsonify({"error": "No track at this position in the playlist", "code": "NOT_FOUND"}), 404

    play_request = PlayRequest(
        track=RemoteTrack.from_spotify(items[0]),
        context_uri=f"spotify:playlist:{playlist_id}",
        offset=offset or None,
        owner=request_owner()
    )
    logger.info("▶️ Playing playlist %s from position %d", playlist_id, offset)
    return resolution_response(play_request, current_app.resolver.resolve(play_request, g.spotify))


@playlists_bp.route("/create", methods=["POST"])
@require_auth
def create_playlist():
    data = request.get_json(silent=True) or {}
    name = (data.get("name") or "").strip()
    if not name:
        return bad_request("Playlist name is required")

    user_id = session.get("user_id") or g.spotify.get_profile().get("id")
    playlist = g.spotify.create_playlist(
        user_id, name, description=data.get("description", ""), public=bool(data.get("public", False))
    )
    invalidate_playlists_cache()
    logger.info("Created playlist %s for %s", playlist.get("id"), user_id)
    return jsonify({
        "id": playlist.get("id"),
        "uri": playlist.get("uri"),
        "name": playlist.get("name"),
        "description": playlist.get("description", ""),
        "public": playlist.get("public")
    }), 201


@playlists_bp.route("/<playlist_id>/tracks", methods=["POST"])
@require_auth
def add_tracks(playlist_id):
    data = request.get_json(silent=True) or {}
    uris = data.get("uris")
    if not isinstance(uris, list) or not uris:
        return bad_request("A list of track URIs is required")

    result = g.spotify.add_playlist_tracks(playlist_id, uris, position=data.get("position"))
    invalidate_playlists_cache()
    return jsonify({"snapshot_id": result.get("snapshot_id"), "added": len(uris)})


@playlists_bp.route("/<playlist_id>/tracks", methods=["DELETE"])
@require_auth
def remove_tracks(playlist_id):
    data = request.get_json(silent=True) or {}
    tracks = data.get("tracks")
    if not isinstance(tracks, list) or not tracks:
        return bad_request("A list of tracks to remove is required")

    uris = [t.get("uri") if isinstance(t, dict) else t for t in tracks]
    uris = [uri for uri in uris if uri]
    if not uris:
        return bad_request("A list of tracks to remove is required")

    result = g.spotify.remove_playlist_tracks(playlist_id, uris)
    invalidate_playlists_cache()
    return jsonify({"snapshot_id": result.get("snapshot_id"), "removed": len(uris)})


@playlists_bp.route("/<playlist_id>", methods=["PUT"])
@require_auth
def update_playlist(playlist_id):
    """Rename a playlist or change its description or visibility"""
    data = request.get_json(silent=True) or {}
    details = {key: data[key] for key in ("name", "description", "public") if key in data}
    if not details:
        return bad_request("Nothing to update: send name, description or public")

    g.spotify.update_playlist(playlist_id, **details)
    invalidate_playlists_cache()
    return jsonify({"status": "success", "updated": sorted(details)})


@playlists_bp.route("/featured/playlists")
@require_auth
def featured_playlists():
    limit = min(max(request.args.get("limit", 20, type=int), 1), 50)
    offset = max(request.args.get("offset", 0, type=int), 0)
    country = request.args.get("country", FEATURED_COUNTRY)

    data = g.spotify.get_featured_playlists(limit=limit, offset=offset, country=country)
    return jsonify(dict(
        simplify_playlists_data(data.get("playlists") or {}),
        message=data.get("message")
    ))
