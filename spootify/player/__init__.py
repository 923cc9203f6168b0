"""
Playback models, resolution and per-client sessions for Spootify
"""

from .models import Device, PlayRequest, RemoteTrack, RepeatMode, TrackKind
from .resolver import PlaybackTarget, PlaybackTargetResolver, Resolution, ResolutionState
