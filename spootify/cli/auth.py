"""
Authorization-code-with-PKCE sign-in for the command-line client.
"""

import logging
import os
import time

from spotipy.oauth2 import SpotifyOauthError, SpotifyPKCE

from spootify.cli.config_store import ConfigCacheHandler
from spootify.errors import ConfigurationError, Unauthorized


logger = logging.getLogger(__name__)

REDIRECT_URI = "http://127.0.0.1:8888/callback"
SCOPES = [
    "user-read-playback-state",
    "user-modify-playback-state",
    "user-read-currently-playing",
    "playlist-read-private",
    "playlist-read-collaborative",
    "user-library-read",
    "user-top-read",
]
# Refresh when the token expires within five minutes
REFRESH_MARGIN = 300


class AuthManager:
    def __init__(self, store):
        self.store = store
        self.client_id = os.getenv("SPOTIFY_CLIENT_ID") or store.get("client_id")
        self._oauth = None

    @property
    def oauth(self):
        if not self.client_id:
            raise ConfigurationError()
        if self._oauth is None:
            self._oauth = SpotifyPKCE(
                client_id=self.client_id,
                redirect_uri=REDIRECT_URI,
                scope=" ".join(SCOPES),
                cache_handler=ConfigCacheHandler(self.store),
                open_browser=True
            )
        return self._oauth

    def is_authenticated(self):
        return bool(self.store.get("access_token"))

    def authenticate(self):
        """Reuse the stored refresh token when it still works, otherwise run the browser flow"""
        oauth = self.oauth
        self.store.set("client_id", self.client_id)

        refresh_token = self.store.get("refresh_token")
        if refresh_token:
            try:
                oauth.refresh_access_token(refresh_token)
                return
            except SpotifyOauthError as e:
                logger.info("Stored refresh token rejected (%s), signing in again", e)

        oauth.get_access_token(check_cache=False)

    def refresh(self):
        refresh_token = self.store.get("refresh_token")
        if not refresh_token:
            raise Unauthorized("No refresh token available. Run 'spootify auth' first.")
        try:
            return self.oauth.refresh_access_token(refresh_token)["access_token"]
        except SpotifyOauthError as e:
            raise Unauthorized(f"Token refresh failed: {e}. Run 'spootify auth' again.")

    def get_valid_access_token(self):
        token = self.store.get("access_token")
        if not token:
            raise Unauthorized("No access token. Run 'spootify auth' first.")

        expires_at = self.store.get("expires_at")
        if expires_at and time.time() > expires_at - REFRESH_MARGIN:
            return self.refresh()
        return token

    def logout(self):
        self.store.delete("access_token", "refresh_token", "expires_at", "scope")
