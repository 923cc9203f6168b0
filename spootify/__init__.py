"""
Spootify Web: Spotify remote control with a local library and in-browser fallback playback.
"""

__version__ = "1.0.0"
