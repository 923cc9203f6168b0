"""
Socket.IO event handlers for Spootify Web.
Each connected browser gets its own PlaybackSession; this module feeds it the
audio element's events and the user's transport actions, runs play requests
through the resolver, and pushes the resulting state back to that client.
"""

import logging

from flask import current_app, request, session
from flask_socketio import SocketIO, emit

from spootify.api.spotify import SpotifyGateway, format_playback_state, iter_liked_track_pages
from spootify.errors import SpotifyAPIError
from spootify.player.models import PlayRequest
from spootify.player.session import PlaybackSession


logger = logging.getLogger(__name__)

# SocketIO instance is created by the app factory
socketio = None

# {sid: PlaybackSession}
sessions = {}
# {sid: access token seen on the client's last event}
access_tokens = {}

SIGN_IN_NOTICE = "Sign in to Spotify to play this track"


def init_socketio(app):
    """Initialize Socket.IO with the Flask app"""
    global socketio
    socketio = SocketIO(
        app,
        cors_allowed_origins="*",
        ping_timeout=120,
        ping_interval=30,
        manage_session=False,  # Let Flask handle sessions
        engineio_logger=False,
        logger=False,
        async_mode='threading'
    )

    register_handlers()

    return socketio


def run_task(func, *args):
    """Run func off the event handler, or inline when background tasks are disabled"""
    if current_app.config.get("BACKGROUND_TASKS", True):
        return socketio.start_background_task(func, *args)
    return func(*args)


def bind_access_token(sid):
    token_info = session.get("spotify_token") or {}
    access_tokens[sid] = token_info.get("access_token")


def gateway_for(sid):
    access_token = access_tokens.get(sid)
    return SpotifyGateway(access_token) if access_token else None


def get_playback_session():
    """PlaybackSession of the client behind the current event (created on first use)"""
    sid = request.sid
    bind_access_token(sid)
    playback = sessions.get(sid)
    if playback is None:
        playback = create_playback_session(sid, current_app._get_current_object())
    return playback


def create_playback_session(sid, app):
    def send(event, payload):
        socketio.emit(event, payload, to=sid)

    def run_async(func, *args):
        with app.app_context():
            run_task(func, *args)

    playback = PlaybackSession(
        owner=sid,
        emit=send,
        gateway_factory=lambda: gateway_for(sid),
        run_async=run_async
    )
    playback.subscribe(lambda event, snapshot: send("session_state", dict(snapshot, event=event)))
    sessions[sid] = playback
    return playback


def play_track(playback, track, app):
    return submit_request(playback, PlayRequest(track=track, owner=playback.owner), app)


def submit_request(playback, play_request, app):
    """Resolve a play request for this client and apply the result to its session"""
    gateway = None
    if not play_request.is_local:
        gateway = gateway_for(playback.owner)
        if gateway is None:
            playback.notice(SIGN_IN_NOTICE, level="error")
            return None

    playback.begin_request(play_request.key)
    resolution = app.resolver.resolve(play_request, gateway)
    if resolution is None:
        return None

    socketio.emit("resolution", resolution.to_dict(), to=playback.owner)
    playback.apply_resolution(resolution)
    return resolution


def follow_outcome(playback, outcome):
    """Start the track a navigation step landed on"""
    if outcome is not None and outcome.track is not None and not outcome.replay:
        play_track(playback, outcome.track, current_app._get_current_object())


def load_remaining_liked_pages(playback, pages, loaded):
    """Append the rest of the liked previews as the pages arrive"""
    sid = playback.owner
    for page in pages:
        playback.extend_playlist(page)
        loaded += len(page)
        socketio.emit("liked_previews_page", {"tracks": [t.to_dict() for t in page], "loaded": loaded}, to=sid)

    socketio.emit("liked_previews_complete", {"total": loaded}, to=sid)
    logger.info("Loaded %d liked previews for %s", loaded, sid)


def register_handlers():
    """Register all Socket.IO event handlers"""

    @socketio.on("connect")
    def handle_connect(auth=None):
        """Create the client's playback session and send its initial state"""
        playback = create_playback_session(request.sid, current_app._get_current_object())
        bind_access_token(request.sid)
        logger.info("[CONNECTION] Client connected: %s (signed in: %s)", request.sid, bool(access_tokens.get(request.sid)))
        emit("session_state", dict(playback.snapshot(), event="connected"))

    @socketio.on("disconnect")
    def handle_disconnect(reason=None):
        """Drop the client's playback session"""
        sessions.pop(request.sid, None)
        access_tokens.pop(request.sid, None)
        logger.info("[DISCONNECTION] Client disconnected: %s (reason: %s)", request.sid, reason)

    @socketio.on_error_default
    def default_error_handler(e):
        """Default error handler for all events"""
        logger.exception("[SOCKET ERROR] %s during %s", e, request.event.get("message") if request.event else None)
        emit("notice", {"message": "Something went wrong. Try again.", "level": "error"})
        return False

    @socketio.on("play_request")
    def handle_play_request(data):
        """Play a local or remote track chosen by the user"""
        playback = get_playback_session()
        try:
            play_request = PlayRequest.from_payload(data, owner=request.sid)
        except ValueError as e:
            playback.notice(str(e), level="error")
            return

        submit_request(playback, play_request, current_app._get_current_object())

    @socketio.on("audio_event")
    def handle_audio_event(data):
        """timeupdate/loadedmetadata/play/pause/ended/error from the audio element"""
        playback = get_playback_session()
        data = data or {}
        try:
            outcome = playback.handle_audio_event(data.get("type"), data)
        except ValueError as e:
            playback.notice(str(e), level="error")
            return
        follow_outcome(playback, outcome)

    @socketio.on("next")
    def handle_next(data=None):
        playback = get_playback_session()
        follow_outcome(playback, playback.next())

    @socketio.on("previous")
    def handle_previous(data=None):
        playback = get_playback_session()
        follow_outcome(playback, playback.previous())

    @socketio.on("seek")
    def handle_seek(data):
        playback = get_playback_session()
        try:
            playback.seek((data or {}).get("position_ms"))
        except (TypeError, ValueError):
            playback.notice("Position must be a non-negative number", level="error")

    @socketio.on("volume")
    def handle_volume(data):
        playback = get_playback_session()
        try:
            playback.set_volume((data or {}).get("volume"))
        except (TypeError, ValueError):
            playback.notice("Volume must be between 0 and 100", level="error")

    @socketio.on("toggle_shuffle")
    def handle_toggle_shuffle(data=None):
        get_playback_session().toggle_shuffle()

    @socketio.on("cycle_repeat")
    def handle_cycle_repeat(data=None):
        get_playback_session().cycle_repeat()

    @socketio.on("load_local_library")
    def handle_load_local_library(data=None):
        """Make the local catalog the active playlist, optionally starting a track"""
        playback = get_playback_session()
        data = data or {}
        tracks = current_app.catalog.list()

        index = 0
        if data.get("track_id"):
            index = next((i for i, t in enumerate(tracks) if t.id == data["track_id"]), 0)
        playback.load_playlist(tracks, index=index, source="local")

        if data.get("play") and tracks:
            play_track(playback, tracks[index], current_app._get_current_object())

    @socketio.on("play_liked_previews")
    def handle_play_liked_previews(data=None):
        """Play liked tracks with previews; later pages keep loading in the background"""
        playback = get_playback_session()
        gateway = gateway_for(request.sid)
        if gateway is None:
            playback.notice(SIGN_IN_NOTICE, level="error")
            return

        pages = iter_liked_track_pages(gateway, previews_only=True)
        try:
            first_page = next(pages, [])
        except SpotifyAPIError as e:
            playback.notice(e.message, level="error")
            return

        playback.load_playlist(first_page, index=0, source="liked")
        emit("liked_previews_page", {"tracks": [t.to_dict() for t in first_page], "loaded": len(first_page)})
        if first_page:
            play_track(playback, first_page[0], current_app._get_current_object())
        else:
            playback.notice("No previews on the first page of liked tracks, still looking")

        run_task(load_remaining_liked_pages, playback, pages, len(first_page))

    @socketio.on("refresh_status")
    def handle_refresh_status(data=None):
        """Pull the remote device state into the session"""
        playback = get_playback_session()
        gateway = gateway_for(request.sid)
        if gateway is None:
            return
        try:
            state = gateway.get_playback_state()
        except SpotifyAPIError as e:
            playback.notice(e.message, level="error")
            return
        playback.apply_remote_status(format_playback_state(state))

    @socketio.on("player-status-update")
    def handle_player_status_update(data):
        """Rebroadcast a player status change to the other clients"""
        emit("player-status-changed", data, broadcast=True, include_self=False)
