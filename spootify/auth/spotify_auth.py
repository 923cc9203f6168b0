"""
Authentication routes for Spootify Web.
Handles the Spotify OAuth login, callback, token refresh and logout.
"""

import logging
import time
from functools import wraps

from flask import Blueprint, current_app, g, jsonify, redirect, request, session
from spotipy.cache_handler import MemoryCacheHandler
from spotipy.oauth2 import SpotifyOAuth, SpotifyOauthError

from spootify.api.spotify import SpotifyGateway
from spootify.errors import SpotifyAPIError, Unauthorized


logger = logging.getLogger(__name__)

SCOPES = (
    "user-read-playback-state user-modify-playback-state user-read-currently-playing "
    "user-library-read user-read-recently-played playlist-read-private user-read-private user-read-email"
)
REFRESH_MARGIN = 60

auth_bp = Blueprint('auth', __name__)


def get_oauth():
    """SpotifyOAuth manager for this app, created on first use"""
    oauth = getattr(current_app, "spotify_oauth", None)
    if oauth is None:
        oauth = SpotifyOAuth(
            client_id=current_app.config.get("SPOTIFY_CLIENT_ID"),
            client_secret=current_app.config.get("SPOTIFY_CLIENT_SECRET"),
            redirect_uri=current_app.config.get("SPOTIFY_REDIRECT_URI"),
            scope=SCOPES,
            cache_handler=MemoryCacheHandler()
        )
        current_app.spotify_oauth = oauth
    return oauth


def refresh_session_token(token_info):
    """Exchange the stored refresh token once; raises Unauthorized when that fails"""
    refresh_token = token_info.get("refresh_token")
    if not refresh_token:
        raise Unauthorized()

    try:
        new_token = get_oauth().refresh_access_token(refresh_token)
    except SpotifyOauthError as e:
        logger.warning("Token refresh failed: %s", e)
        raise Unauthorized()

    session["spotify_token"] = new_token
    logger.info("🔄 Refreshed Spotify access token")
    return new_token


def get_access_token():
    """Access token from the session, refreshed once if it is about to expire"""
    token_info = session.get("spotify_token")
    if not token_info or not token_info.get("access_token"):
        raise Unauthorized("Not authenticated")

    expires_at = token_info.get("expires_at")
    if expires_at and expires_at - REFRESH_MARGIN < time.time():
        token_info = refresh_session_token(token_info)

    return token_info["access_token"]


def unauthorized_response(error):
    return jsonify({"error": error.message, "code": error.code, "needsRefresh": True}), 401


def require_auth(f):
    """Route decorator: binds g.spotify to a gateway for the session's token"""
    @wraps(f)
    def decorated(*args, **kwargs):
        try:
            g.spotify = SpotifyGateway(get_access_token())
        except Unauthorized as e:
            return unauthorized_response(e)
        return f(*args, **kwargs)
    return decorated


@auth_bp.route("/auth/login")
def login():
    """Initiate Spotify OAuth flow"""
    return redirect(get_oauth().get_authorize_url())


@auth_bp.route("/auth/callback")
def callback():
    """Handle Spotify OAuth callback"""
    code = request.args.get('code')
    error = request.args.get('error')

    if error or not code:
        logger.warning("OAuth callback without code: %s", error)
        return redirect("/?error=oauth_failed")

    try:
        token_info = get_oauth().get_access_token(code, as_dict=True, check_cache=False)
    except SpotifyOauthError as e:
        logger.error("Token exchange failed: %s", e)
        return redirect("/?error=oauth_failed")

    session["spotify_token"] = token_info
    session.permanent = True

    try:
        profile = SpotifyGateway(token_info["access_token"]).get_profile()
    except SpotifyAPIError as e:
        logger.warning("Could not fetch profile after login: %s", e)
    else:
        session["user_id"] = profile.get("id")
        session["display_name"] = profile.get("display_name") or profile.get("id")
        logger.info("✅ Signed in as %s", session["display_name"])

    return redirect("/")


@auth_bp.route("/auth/refresh", methods=["POST"])
def refresh():
    """Refresh the session's access token"""
    token_info = session.get("spotify_token")
    if not token_info:
        return jsonify({"error": "Not authenticated", "code": "UNAUTHORIZED"}), 401

    try:
        new_token = refresh_session_token(token_info)
    except Unauthorized as e:
        return unauthorized_response(e)

    return jsonify({"status": "success", "expires_at": new_token.get("expires_at")})


@auth_bp.route("/logout")
def logout():
    """Clear the session"""
    session.clear()
    return redirect("/")
