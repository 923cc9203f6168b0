"""
JSON-backed settings for the command-line client.
"""

import json
import os
from pathlib import Path

from spotipy.cache_handler import CacheHandler


TOKEN_KEYS = ("access_token", "refresh_token", "expires_at")


def default_config_dir():
    return Path(os.getenv("SPOOTIFY_CONFIG_DIR") or Path.home() / ".config" / "spootify")


class ConfigStore:
    """Small key/value store persisted as config.json"""

    def __init__(self, config_dir=None):
        self.config_dir = Path(config_dir) if config_dir else default_config_dir()
        self.path = self.config_dir / "config.json"

    def load(self):
        if not self.path.exists():
            return {}
        with open(self.path, "r", encoding="utf-8") as f:
            return json.load(f)

    def save(self, data):
        self.config_dir.mkdir(parents=True, exist_ok=True)
        with open(self.path, "w", encoding="utf-8") as f:
            json.dump(data, f, indent=2)
        os.chmod(self.path, 0o600)

    def get(self, key, default=None):
        return self.load().get(key, default)

    def set(self, key, value):
        data = self.load()
        data[key] = value
        self.save(data)

    def update(self, values):
        data = self.load()
        data.update(values)
        self.save(data)

    def delete(self, *keys):
        data = self.load()
        for key in keys:
            data.pop(key, None)
        self.save(data)

    def reset(self):
        if self.path.exists():
            self.path.unlink()


class ConfigCacheHandler(CacheHandler):
    """Lets spotipy read and write its token through the ConfigStore"""

    def __init__(self, store):
        self.store = store

    def get_cached_token(self):
        data = self.store.load()
        if not data.get("access_token"):
            return None
        token_info = {key: data.get(key) for key in TOKEN_KEYS}
        token_info["scope"] = data.get("scope")
        token_info["token_type"] = "Bearer"
        return token_info

    def save_token_to_cache(self, token_info):
        values = {key: token_info.get(key) for key in TOKEN_KEYS if token_info.get(key) is not None}
        values["scope"] = token_info.get("scope")
        self.store.update(values)
