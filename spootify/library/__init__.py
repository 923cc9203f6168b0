"""
Local music library for Spootify
"""

from .catalog import LocalCatalog, LocalTrack
from .streamer import RangeStreamer
