import random

import pytest

from spootify.player.models import RepeatMode
from spootify.player.navigation import (
    EMPTY_LIST,
    END_OF_LIST,
    START_OF_LIST,
    PlaylistCursor,
    next_track,
    previous_track,
    track_ended,
)


TRACKS = ["a", "b", "c", "d", "e"]


class TestOrderedNavigation:
    """Test next/previous with shuffle off"""

    def test_next_and_previous_move_by_one(self):
        cursor = PlaylistCursor(TRACKS, index=1)

        assert next_track(cursor).track == "c"
        assert previous_track(cursor).track == "b"
        assert previous_track(cursor).track == "a"

    def test_next_past_last_halts_with_repeat_off(self):
        cursor = PlaylistCursor(TRACKS, index=4)

        outcome = next_track(cursor, RepeatMode.OFF)

        assert outcome.halted
        assert outcome.notice == END_OF_LIST
        assert cursor.index == 4

    def test_previous_before_first_halts_with_repeat_off(self):
        cursor = PlaylistCursor(TRACKS, index=0)

        outcome = previous_track(cursor, RepeatMode.OFF)

        assert outcome.halted
        assert outcome.notice == START_OF_LIST

    def test_repeat_context_wraps_both_ways(self):
        cursor = PlaylistCursor(TRACKS, index=4)

        assert next_track(cursor, RepeatMode.CONTEXT).track == "a"
        assert previous_track(cursor, RepeatMode.CONTEXT).track == "e"

    def test_repeat_track_replays_on_end_only(self):
        cursor = PlaylistCursor(TRACKS, index=2)

        ended = track_ended(cursor, RepeatMode.TRACK)
        assert ended.replay
        assert ended.track == "c"

        skipped = next_track(cursor, RepeatMode.TRACK)
        assert not skipped.replay
        assert skipped.track == "d"

    def test_track_end_advances_with_repeat_off(self):
        cursor = PlaylistCursor(TRACKS, index=0)

        assert track_ended(cursor).track == "b"

    def test_empty_playlist(self):
        outcome = next_track(PlaylistCursor([]))

        assert outcome.halted
        assert outcome.notice == EMPTY_LIST
        assert outcome.track is None

    def test_repeat_accepts_plain_strings(self):
        cursor = PlaylistCursor(TRACKS, index=4)

        assert next_track(cursor, "context").track == "a"


class TestShuffledNavigation:
    """Test the shuffle permutation"""

    def test_current_track_stays_first(self):
        cursor = PlaylistCursor(TRACKS, index=3)

        cursor.enable_shuffle(random.Random(7))

        assert cursor.current == "d"
        assert cursor.position == 0

    def test_shuffle_visits_every_track_once(self):
        cursor = PlaylistCursor(TRACKS, index=0)
        cursor.enable_shuffle(random.Random(1))

        seen = [cursor.current]
        for _ in range(len(TRACKS) - 1):
            seen.append(next_track(cursor).track)

        assert sorted(seen) == sorted(TRACKS)
        assert next_track(cursor).track == "a"

    def test_previous_inverts_next(self):
        cursor = PlaylistCursor(TRACKS, index=2)
        cursor.enable_shuffle(random.Random(3))

        forward = [next_track(cursor).track for _ in range(3)]
        backward = [previous_track(cursor).track for _ in range(3)]

        assert backward == [forward[1], forward[0], "c"]

    def test_shuffle_wraps_with_repeat_context(self):
        cursor = PlaylistCursor(TRACKS, index=0)
        cursor.enable_shuffle(random.Random(5))
        for _ in range(len(TRACKS) - 1):
            next_track(cursor)

        assert next_track(cursor, RepeatMode.CONTEXT).track == "a"

    def test_shuffle_never_halts_with_repeat_off(self):
        """Both ends of the permutation wrap even though repeat is off"""
        cursor = PlaylistCursor(["a", "b", "c"], index=0)
        cursor.enable_shuffle(random.Random(6))
        order = [cursor.current] + [next_track(cursor).track for _ in range(2)]

        outcome = next_track(cursor, RepeatMode.OFF)

        assert not outcome.halted
        assert outcome.track == order[0]

        outcome = previous_track(cursor, RepeatMode.OFF)

        assert not outcome.halted
        assert outcome.track == order[-1]

    def test_disable_shuffle_keeps_current_track(self):
        cursor = PlaylistCursor(TRACKS, index=0)
        cursor.enable_shuffle(random.Random(9))
        current = next_track(cursor).track

        cursor.disable_shuffle()

        assert cursor.current == current
        assert next_track(cursor, RepeatMode.CONTEXT).track == TRACKS[(TRACKS.index(current) + 1) % len(TRACKS)]

    def test_extend_adds_new_tracks_to_the_permutation(self):
        cursor = PlaylistCursor(["a", "b"], index=0)
        cursor.enable_shuffle(random.Random(2))

        cursor.extend(["c", "d"], random.Random(2))

        seen = [cursor.current]
        for _ in range(3):
            seen.append(next_track(cursor).track)

        assert sorted(seen) == ["a", "b", "c", "d"]
        assert next_track(cursor).track == "a"

    def test_move_to_follows_the_permutation(self):
        cursor = PlaylistCursor(TRACKS, index=0)
        cursor.enable_shuffle(random.Random(4))

        cursor.move_to(4)

        assert cursor.current == "e"
        with pytest.raises(IndexError):
            cursor.move_to(10)
