"""
Tests for feed sequence composition, navigation and preloading.
"""
import asyncio

import pytest

from thriver.feed.navigation import WheelEvent, delta_for
from thriver.feed.sequencer import FeedSequence, FeedSequencer, build_sequence, preload_target
from thriver.models import ChallengeBlock, VideoUnit

from conftest import make_attempt


def V(attempt_id):
    return VideoUnit(attempt_id=attempt_id)


def B(*challenge_ids):
    return ChallengeBlock(challenge_ids=tuple(challenge_ids))


def _sequencer(units, cooldown=0.05):
    sequencer = FeedSequencer(cooldown=cooldown)
    sequencer.replace(FeedSequence(units))
    return sequencer


class TestBuildSequence:

    def test_nine_videos_six_challenges(self):
        videos = [f"v{i}" for i in range(1, 10)]
        challenges = [f"c{i}" for i in range(1, 7)]

        seq = build_sequence(videos, challenges)

        assert list(seq.units) == [
            V("v1"), V("v2"), V("v3"), V("v4"),
            B("c1", "c2", "c3"),
            V("v5"), V("v6"), V("v7"), V("v8"),
            B("c4", "c5", "c6"),
            V("v9"),
        ]
        assert seq.cursor == 0

    def test_fewer_than_four_videos_never_get_a_block(self):
        seq = build_sequence(["v1", "v2"], ["c1", "c2", "c3"])
        assert list(seq.units) == [V("v1"), V("v2")]

    def test_empty_videos_give_empty_sequence(self):
        seq = build_sequence([], ["c1", "c2", "c3"])
        assert len(seq) == 0
        assert seq.current is None

    def test_short_trailing_block_and_exhausted_challenges(self):
        videos = [f"v{i}" for i in range(1, 13)]
        seq = build_sequence(videos, ["c1", "c2", "c3", "c4"])

        blocks = [u for u in seq.units if isinstance(u, ChallengeBlock)]
        assert blocks == [B("c1", "c2", "c3"), B("c4")]
        # After the 12th video the challenges are used up: no third block.
        assert isinstance(seq.units[-1], VideoUnit)

    def test_videos_keep_count_and_order(self):
        videos = [f"v{i}" for i in range(1, 31)]
        seq = build_sequence(videos, [f"c{i}" for i in range(1, 40)])

        out = [u.attempt_id for u in seq.units if isinstance(u, VideoUnit)]
        assert out == videos

    def test_blocks_only_follow_every_fourth_video(self):
        videos = [f"v{i}" for i in range(1, 18)]
        seq = build_sequence(videos, [f"c{i}" for i in range(1, 40)])

        videos_seen = 0
        for unit in seq.units:
            if isinstance(unit, VideoUnit):
                videos_seen += 1
            else:
                assert videos_seen % 4 == 0
                assert 1 <= len(unit.challenge_ids) <= 3

    def test_no_challenges_means_only_videos(self):
        seq = build_sequence(["v1", "v2", "v3", "v4", "v5"], [])
        assert all(isinstance(u, VideoUnit) for u in seq.units)
        assert len(seq) == 5


class TestStep:

    async def test_clamps_at_last_index(self):
        sequencer = _sequencer([V("v1"), V("v2")], cooldown=0)
        sequencer.step(+1)
        await asyncio.sleep(0.001)

        assert sequencer.step(+1) is True
        assert sequencer.cursor == 1

    async def test_clamps_at_first_index(self):
        sequencer = _sequencer([V("v1"), V("v2")])
        sequencer.step(-1)
        assert sequencer.cursor == 0

    async def test_cursor_stays_in_bounds_for_large_deltas(self):
        sequencer = _sequencer([V("v1"), V("v2"), V("v3")], cooldown=0)
        for delta in (5, -7, 100, -1, 2):
            sequencer.step(delta)
            await asyncio.sleep(0.001)
            assert 0 <= sequencer.cursor <= 2

    async def test_empty_sequence_is_a_no_op(self):
        sequencer = _sequencer([])
        assert sequencer.step(+1) is False
        assert sequencer.cursor == 0
        assert sequencer.current is None
        assert sequencer.locked is False

    async def test_calls_inside_cooldown_are_dropped(self):
        sequencer = _sequencer([V("v1"), V("v2"), V("v3")], cooldown=0.05)

        assert sequencer.step(+1) is True
        assert sequencer.step(+1) is False
        assert sequencer.cursor == 1

    async def test_calls_after_cooldown_each_move(self):
        sequencer = _sequencer([V("v1"), V("v2"), V("v3")], cooldown=0.02)

        assert sequencer.step(+1) is True
        await asyncio.sleep(0.05)
        assert sequencer.step(+1) is True
        assert sequencer.cursor == 2

    async def test_rapid_wheel_burst_moves_one_unit(self):
        sequencer = FeedSequencer()  # default 220ms cooldown
        sequencer.replace(build_sequence([f"v{i}" for i in range(1, 6)], []))

        accepted = []
        for dy in (30, 25, 40):
            delta = delta_for(WheelEvent(delta_y=dy), sequencer.current)
            accepted.append(sequencer.step(delta))
            await asyncio.sleep(0.03)

        assert accepted == [True, False, False]
        assert sequencer.cursor == 1
        sequencer.close()

    async def test_replace_resets_cursor(self):
        sequencer = _sequencer([V("v1"), V("v2")], cooldown=0)
        sequencer.step(+1)
        sequencer.replace(FeedSequence([V("x1"), V("x2")]))
        assert sequencer.cursor == 0
        assert sequencer.current == V("x1")

    async def test_close_cancels_timer_and_blocks_steps(self):
        sequencer = _sequencer([V("v1"), V("v2"), V("v3")], cooldown=10)
        sequencer.step(+1)
        assert sequencer.locked

        sequencer.close()

        assert sequencer.locked is False
        assert sequencer.step(+1) is False
        assert sequencer.cursor == 1


class TestPreload:

    def test_first_resolved_video_after_cursor(self):
        seq = FeedSequence([V("v1"), B("c1"), V("v2"), V("v3")])
        attempts = {"v1": make_attempt("v1"), "v3": make_attempt("v3")}

        # v2 is unresolved, so the scan continues to v3
        assert preload_target(seq, attempts).id == "v3"

    def test_none_when_nothing_ahead_is_resolved(self):
        seq = FeedSequence([V("v1"), V("v2")])
        assert preload_target(seq, {"v1": make_attempt("v1")}) is None

    def test_never_returns_current_or_earlier_unit(self):
        seq = FeedSequence([V("v1"), V("v2"), V("v3")])
        seq.move(+2)
        attempts = {i: make_attempt(i) for i in ("v1", "v2", "v3")}
        assert preload_target(seq, attempts) is None

    def test_preload_url_uses_resolver(self):
        sequencer = _sequencer([V("v1"), V("v2")])
        url = sequencer.preload_url(
            {"v2": make_attempt("v2", user_id="u9")},
            lambda path: f"https://cdn.example/{path}",
        )
        assert url == "https://cdn.example/u9/v2.mp4"

    def test_preload_does_not_move_cursor(self):
        sequencer = _sequencer([V("v1"), V("v2")])
        sequencer.preload_url({"v2": make_attempt("v2")}, lambda p: p)
        assert sequencer.cursor == 0


@pytest.mark.parametrize("every,size", [(2, 1), (3, 2)])
def test_custom_block_layout(every, size):
    seq = build_sequence([f"v{i}" for i in range(1, 7)], [f"c{i}" for i in range(1, 10)], every, size)
    blocks = [u for u in seq.units if isinstance(u, ChallengeBlock)]
    assert len(blocks) == 6 // every
    assert all(len(b.challenge_ids) == size for b in blocks)
