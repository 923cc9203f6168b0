"""
Music search routes for Spootify Web.
"""

from flask import Blueprint, g, jsonify, request

from spootify.api.spotify import format_track
from spootify.auth.spotify_auth import require_auth


search_bp = Blueprint('search', __name__)

SEARCH_TYPES = ("track", "album", "artist", "playlist")
TOP_TRACKS_COUNTRY = "FR"


def simplify_results(data):
    """Keep the fields the dashboard shows for each result type"""
    results = {}
    if "tracks" in data:
        results["tracks"] = [format_track(t) for t in data["tracks"].get("items", []) if t]
    if "albums" in data:
        results["albums"] = [
            {
                "id": a.get("id"),
                "uri": a.get("uri"),
                "name": a.get("name"),
                "artists": [ar.get("name") for ar in a.get("artists", [])],
                "images": a.get("images", [])[:1],
                "release_date": a.get("release_date")
            }
            for a in data["albums"].get("items", []) if a
        ]
    if "artists" in data:
        results["artists"] = [
            {"id": a.get("id"), "uri": a.get("uri"), "name": a.get("name"), "images": a.get("images", [])[:1]}
            for a in data["artists"].get("items", []) if a
        ]
    if "playlists" in data:
        results["playlists"] = [
            {
                "id": p.get("id"),
                "uri": p.get("uri"),
                "name": p.get("name"),
                "owner": (p.get("owner") or {}).get("display_name"),
                "tracks": (p.get("tracks") or {}).get("total", 0)
            }
            for p in data["playlists"].get("items", []) if p
        ]
    return results


@search_bp.route("")
@require_auth
def search():
    """Search the Spotify catalog"""
    query = request.args.get('q', '').strip()
    if not query:
        return jsonify({"error": "Search query is required", "code": "BAD_REQUEST"}), 400

    types = [t.strip() for t in request.args.get('type', 'track').split(',') if t.strip()]
    invalid = [t for t in types if t not in SEARCH_TYPES]
    if not types or invalid:
        return jsonify({"error": f"Invalid search type: {', '.join(invalid) or 'none'}", "code": "BAD_REQUEST"}), 400

    limit = min(max(request.args.get('limit', 20, type=int), 1), 50)
    offset = max(request.args.get('offset', 0, type=int), 0)

    data = g.spotify.search(query, types=types, limit=limit, offset=offset)
    return jsonify(dict(simplify_results(data), query=query))


def _first_image_url(images):
    return images[0].get("url") if images else None


@search_bp.route("/suggestions")
@require_auth
def suggestions():
    """Autocomplete: artists first, then tracks, at most ``limit`` in total"""
    query = request.args.get('q', '').strip()
    limit = min(max(request.args.get('limit', 5, type=int), 1), 50)
    if len(query) < 2:
        return jsonify({"suggestions": []})

    data = g.spotify.search(query, types=("track", "artist"), limit=limit)
    found = [
        {
            "type": "artist",
            "id": artist.get("id"),
            "name": artist.get("name"),
            "image": _first_image_url(artist.get("images"))
        }
        for artist in (data.get("artists") or {}).get("items", []) if artist
    ]
    found.extend(
        {
            "type": "track",
            "id": track.get("id"),
            "name": track.get("name"),
            "artist": (track.get("artists") or [{}])[0].get("name"),
            "image": _first_image_url((track.get("album") or {}).get("images"))
        }
        for track in (data.get("tracks") or {}).get("items", []) if track
    )
    return jsonify({"suggestions": found[:limit]})


@search_bp.route("/track/<track_id>")
@require_auth
def track_detail(track_id):
    track = g.spotify.get_track_details(track_id)
    details = format_track(track)
    details["album"]["release_date"] = (track.get("album") or {}).get("release_date")
    details["external_urls"] = track.get("external_urls", {})
    return jsonify(details)


@search_bp.route("/artist/<artist_id>")
@require_auth
def artist_detail(artist_id):
    artist = g.spotify.get_artist(artist_id)
    return jsonify({
        "id": artist.get("id"),
        "name": artist.get("name"),
        "images": artist.get("images", []),
        "genres": artist.get("genres", []),
        "popularity": artist.get("popularity"),
        "followers": (artist.get("followers") or {}).get("total", 0),
        "uri": artist.get("uri"),
        "external_urls": artist.get("external_urls", {})
    })


@search_bp.route("/artist/<artist_id>/top-tracks")
@require_auth
def artist_top_tracks(artist_id):
    country = request.args.get('country', TOP_TRACKS_COUNTRY)
    data = g.spotify.get_artist_top_tracks(artist_id, country=country)
    return jsonify({"tracks": [format_track(t) for t in data.get("tracks", []) if t]})
