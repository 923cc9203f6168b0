"""
Local library routes for Spootify Web.
Handles upload, listing, search, detail, byte-range streaming and deletion of
locally hosted audio files.
"""

import logging

from flask import Blueprint, Response, current_app, jsonify, request, stream_with_context

from spootify.errors import FileTooLarge, MetadataExtractionError, UnsupportedFormat


logger = logging.getLogger(__name__)

local_bp = Blueprint('local', __name__)


@local_bp.route("/library")
def get_library():
    """List every track in the local catalog"""
    tracks = [track.to_dict() for track in current_app.catalog]
    return jsonify({"tracks": tracks, "total": len(tracks)})


@local_bp.route("/search")
def search_library():
    """Case-insensitive search over title, artist and album"""
    query = request.args.get("q", "")
    tracks = [track.to_dict() for track in current_app.catalog.search(query)]
    return jsonify({"tracks": tracks, "total": len(tracks), "query": query})


@local_bp.route("/refresh", methods=["POST"])
def refresh_library():
    """Rescan the music directory"""
    tracks = current_app.catalog.scan()
    return jsonify({"status": "success", "total": len(tracks)})


@local_bp.route("/upload", methods=["POST"])
def upload_tracks():
    """
    Add up to MAX_UPLOAD_FILES audio files sent as ``audioFiles``.

    Files are processed one by one: an unsupported or oversized file is
    reported and skipped; a metadata failure is reported and turns the whole
    answer into a 500, while the body still lists what was added.
    """
    files = [f for f in request.files.getlist("audioFiles") if f and f.filename]
    if not files:
        return jsonify({"error": "No files uploaded"}), 400

    max_files = current_app.config.get("MAX_UPLOAD_FILES", 10)
    if len(files) > max_files:
        return jsonify({"error": f"Upload at most {max_files} files at a time"}), 400

    uploaded = []
    failed = []
    extraction_failed = False

    for upload in files:
        try:
            track = current_app.catalog.save_upload(upload)
        except (UnsupportedFormat, FileTooLarge) as e:
            failed.append({"fileName": upload.filename, "error": e.message, "code": e.code})
            continue
        except MetadataExtractionError as e:
            logger.error("Metadata extraction failed for %s: %s", upload.filename, e)
            failed.append({"fileName": upload.filename, "error": e.message, "code": e.code})
            extraction_failed = True
            continue
        uploaded.append(track.to_dict())

    body = {
        "message": f"{len(uploaded)} file(s) uploaded",
        "tracks": uploaded,
        "failed": failed,
    }
    if extraction_failed:
        body["error"] = "Some files could not be processed"
        return jsonify(body), 500
    return jsonify(body)


@local_bp.route("/tracks/<track_id>")
def get_track(track_id):
    """Track detail"""
    return jsonify(current_app.catalog.find(track_id).to_detail())


@local_bp.route("/tracks/<track_id>", methods=["DELETE"])
def delete_track(track_id):
    """Delete a track and its file"""
    track = current_app.catalog.remove(track_id)
    return jsonify({"status": "success", "message": f"Deleted {track.title}", "id": track.id})


@local_bp.route("/stream/<track_id>")
def stream_track(track_id):
    """Stream a track, honouring Range requests"""
    result = current_app.streamer.open(track_id, request.headers.get("Range"))
    response = Response(
        stream_with_context(result.body),
        status=result.status,
        headers=result.headers,
        direct_passthrough=True,
    )
    return response
