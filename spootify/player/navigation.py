"""
Next/previous navigation over the active playlist cursor.
"""

import random
from dataclasses import dataclass
from typing import Optional

from spootify.player.models import RepeatMode


END_OF_LIST = "End of the playlist"
START_OF_LIST = "Start of the playlist"
EMPTY_LIST = "Nothing to play. Add local music or load your liked tracks."


class PlaylistCursor:
    """
    Ordered track references plus the position of the current one.

    While shuffle is on, a permutation of the indexes is kept (current track
    first) and navigation walks that permutation, so previous undoes next.
    """

    def __init__(self, tracks=None, index=0, source="local"):
        self.tracks = list(tracks or [])
        self.index = index if self.tracks else 0
        self.source = source
        self._order = None
        self._order_pos = 0

    def __len__(self):
        return len(self.tracks)

    @property
    def current(self):
        if not self.tracks:
            return None
        return self.tracks[self.index]

    @property
    def shuffled(self):
        return self._order is not None

    @property
    def position(self):
        return self._order_pos if self.shuffled else self.index

    @position.setter
    def position(self, value):
        if self.shuffled:
            self._order_pos = value
            self.index = self._order[value]
        else:
            self.index = value

    def enable_shuffle(self, rng=None):
        rng = rng or random
        rest = [i for i in range(len(self.tracks)) if i != self.index]
        rng.shuffle(rest)
        self._order = ([self.index] if self.tracks else []) + rest
        self._order_pos = 0

    def disable_shuffle(self):
        self._order = None
        self._order_pos = 0

    def extend(self, tracks, rng=None):
        start = len(self.tracks)
        self.tracks.extend(tracks)
        if self.shuffled:
            added = list(range(start, len(self.tracks)))
            (rng or random).shuffle(added)
            self._order.extend(added)

    def move_to(self, index):
        if not 0 <= index < len(self.tracks):
            raise IndexError(index)
        if self.shuffled:
            self._order_pos = self._order.index(index)
        self.index = index

    def index_of(self, key):
        for i, track in enumerate(self.tracks):
            if getattr(track, "key", None) == key:
                return i
        return None


@dataclass
class NavigationOutcome:
    track: object = None
    index: Optional[int] = None
    halted: bool = False
    replay: bool = False
    notice: Optional[str] = None


def step(cursor, direction, repeat=RepeatMode.OFF, auto=False):
    """
    Move the cursor one track forward (direction=1) or back (direction=-1).

    With repeat off and shuffle off, running past either end halts instead of
    wrapping; a shuffled cursor always wraps. With repeat track, an automatic
    advance (track ended) replays the current track; manual skips still move.
    """
    repeat = RepeatMode(repeat)
    if not len(cursor):
        return NavigationOutcome(halted=True, notice=EMPTY_LIST)

    if auto and repeat == RepeatMode.TRACK:
        return NavigationOutcome(track=cursor.current, index=cursor.index, replay=True)

    target = cursor.position + direction
    if target >= len(cursor) or target < 0:
        if repeat == RepeatMode.OFF and not cursor.shuffled:
            return NavigationOutcome(halted=True, notice=END_OF_LIST if direction > 0 else START_OF_LIST)
        target %= len(cursor)

    cursor.position = target
    return NavigationOutcome(track=cursor.current, index=cursor.index)


def next_track(cursor, repeat=RepeatMode.OFF):
    return step(cursor, 1, repeat)


def previous_track(cursor, repeat=RepeatMode.OFF):
    return step(cursor, -1, repeat)


def track_ended(cursor, repeat=RepeatMode.OFF):
    return step(cursor, 1, repeat, auto=True)
