"""
Application factory for Spootify Web.
Wires configuration, the local catalog, the resolver, the HTTP blueprints and
the Socket.IO channel onto one Flask app.
"""

import logging

from flask import Flask, jsonify, session
from werkzeug.datastructures import ContentRange

from spootify.auth.spotify_auth import auth_bp
from spootify.errors import RangeNotSatisfiable, SpootifyError, SpotifyAPIError, Unauthorized
from spootify.library.catalog import LocalCatalog
from spootify.library.streamer import RangeStreamer
from spootify.player.resolver import PlaybackTargetResolver
from spootify.routes.local import local_bp
from spootify.routes.player import player_bp
from spootify.routes.playlists import playlists_bp
from spootify.routes.search import search_bp
from spootify.utils import config
from spootify.websockets import handlers


logger = logging.getLogger(__name__)


def register_error_handlers(app):
    """Translate library and Spotify failures into JSON answers with actionable messages"""

    @app.errorhandler(SpootifyError)
    def handle_library_error(e):
        response = jsonify({"error": e.message, "code": e.code})
        response.status_code = e.status_code
        if isinstance(e, RangeNotSatisfiable):
            response.headers["Content-Range"] = ContentRange("bytes", None, None, e.file_size).to_header()
        return response

    @app.errorhandler(SpotifyAPIError)
    def handle_spotify_error(e):
        body = {"error": e.message, "code": e.code}
        if isinstance(e, Unauthorized):
            body["needsRefresh"] = True
        logger.warning("Spotify error %s: %s", e.status, e.message)
        return jsonify(body), e.http_status


def create_app(test_config=None):
    """Create the Flask app; ``test_config`` overrides settings and skips server-side sessions"""
    logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(name)s: %(message)s")

    app = Flask(__name__)
    app.cache = config.init_app(app, test_config)

    app.catalog = LocalCatalog(app.config["LOCAL_MUSIC_DIR"])
    app.catalog.scan()
    app.streamer = RangeStreamer(app.catalog)
    app.resolver = PlaybackTargetResolver(app.catalog)

    app.register_blueprint(auth_bp)
    app.register_blueprint(local_bp, url_prefix="/api/local")
    app.register_blueprint(player_bp, url_prefix="/api/player")
    app.register_blueprint(search_bp, url_prefix="/api/search")
    app.register_blueprint(playlists_bp, url_prefix="/api/playlists")
    register_error_handlers(app)

    @app.route("/health")
    def health():
        return jsonify(status="ok", localTracks=len(app.catalog))

    @app.route("/")
    def index():
        return jsonify({
            "name": "Spootify Web",
            "signedIn": bool(session.get("spotify_token")),
            "displayName": session.get("display_name")
        })

    app.socketio = handlers.init_socketio(app)
    return app
