"""
Configuration module for Spootify Web.
Handles app configuration, session storage, and cache initialization.
"""

import logging
import os
from urllib.parse import urlparse

import redis
from dotenv import load_dotenv
from flask_caching import Cache
from flask_session import Session

# Load environment variables from .env file
load_dotenv()

logger = logging.getLogger(__name__)

SESSION_DIR = "/tmp/spootify_session"


def is_production():
    return os.getenv("FLASK_ENV") == "production"


def get_redis_url():
    """Get Redis URL with SSL settings for hosted rediss:// instances"""
    redis_url = os.getenv("REDIS_URL")

    if redis_url and redis_url.startswith("rediss://"):
        return redis_url + "?ssl_cert_reqs=none"
    elif redis_url:
        return redis_url
    else:
        return "redis://localhost:6379/0"


def create_redis_client():
    """Connect to Redis with short timeouts; None when it is unreachable"""
    parsed = urlparse(get_redis_url())
    client = redis.Redis(
        host=parsed.hostname or "localhost",
        port=parsed.port or 6379,
        password=parsed.password,
        ssl=parsed.scheme == "rediss",
        socket_connect_timeout=3,
        socket_timeout=3,
        retry_on_timeout=False
    )

    try:
        client.ping()
    except redis.RedisError as e:
        logger.warning("Redis connection failed: %s", e)
        return None

    logger.info("Redis client connected to %s:%s", parsed.hostname, parsed.port or 6379)
    return client


def load_settings():
    """Application settings read from the environment"""
    return {
        "SECRET_KEY": os.getenv("FLASK_SECRET", "spootify-secret-change-in-production"),
        "SPOTIFY_CLIENT_ID": os.getenv("SPOTIFY_CLIENT_ID"),
        "SPOTIFY_CLIENT_SECRET": os.getenv("SPOTIFY_CLIENT_SECRET"),
        "SPOTIFY_REDIRECT_URI": os.getenv("SPOTIFY_REDIRECT_URI", "http://localhost:5000/auth/callback"),
        "LOCAL_MUSIC_DIR": os.getenv("LOCAL_MUSIC_DIR", os.path.join(os.getcwd(), "local_music")),
        "MAX_UPLOAD_FILES": 10,
        "CACHE_DEFAULT_TIMEOUT": 300,
    }


def configure_session_storage(app, redis_client=None):
    """Configure server-side sessions: redis in production when reachable, filesystem otherwise"""
    app.config["SESSION_PERMANENT"] = True
    app.config["SESSION_USE_SIGNER"] = True
    app.config["SESSION_COOKIE_HTTPONLY"] = True
    app.config["SESSION_COOKIE_SAMESITE"] = "Lax"

    if is_production() and redis_client is not None:
        app.config["SESSION_TYPE"] = "redis"
        app.config["SESSION_REDIS"] = redis_client
        app.config["SESSION_KEY_PREFIX"] = "spootify:"
        app.config["SESSION_COOKIE_SECURE"] = True
        logger.info("Using Redis for session storage (production)")
        return True

    app.config["SESSION_TYPE"] = "filesystem"
    app.config["SESSION_FILE_DIR"] = SESSION_DIR
    os.makedirs(SESSION_DIR, exist_ok=True)
    logger.info("Using filesystem for session storage")
    return False


def configure_cache(app, redis_client=None):
    if redis_client is not None:
        app.config["CACHE_TYPE"] = "RedisCache"
        app.config["CACHE_REDIS_URL"] = get_redis_url()
        app.config["CACHE_KEY_PREFIX"] = "spootify-cache:"
        logger.info("Using Redis for caching")
    else:
        app.config["CACHE_TYPE"] = "SimpleCache"
        logger.info("Redis not available for caching, using simple memory cache")
    return Cache(app)


def init_app(app, test_config=None):
    """Initialize Flask app with configuration and return the cache instance"""
    app.config.update(load_settings())

    if test_config is not None:
        # Tests keep Flask's signed-cookie sessions and an in-memory cache
        app.config.update(test_config)
        app.config.setdefault("CACHE_TYPE", "SimpleCache")
        return Cache(app)

    redis_client = create_redis_client() if is_production() or os.getenv("REDIS_URL") else None
    configure_session_storage(app, redis_client)
    Session(app)

    cache = configure_cache(app, redis_client)
    logger.info("Configuration and caching initialized successfully")
    return cache
