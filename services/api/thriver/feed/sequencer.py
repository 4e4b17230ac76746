"""
Feed sequencer - the navigable list of display units behind one feed view.

Composition:
  Ranked attempt ids become VideoUnits in order. After every 4th video a
  ChallengeBlock with the next (up to) 3 ranked challenge ids is inserted,
  while challenge ids remain. Fewer than 4 videos means no blocks at all.

  videos     v1 v2 v3 v4        v5 v6 v7 v8        v9
  challenges             c1-c3               c4-c6
  units      v1 v2 v3 v4 [c1 c2 c3] v5 v6 v7 v8 [c4 c5 c6] v9

Navigation:
  One focused unit at a time. step(±1) clamps at both ends (never wraps) and
  is guarded by a short cooldown lock so one burst of wheel/key events moves
  exactly one unit. Input arriving while locked is dropped, not queued.

Preloading:
  The first *resolved* video after the cursor is exposed as a preload URL so
  the next transition starts instantly.
"""
import asyncio
import logging
from typing import Callable, Iterable, Mapping, Optional, Sequence, Union

from thriver.config import settings
from thriver.models import AttemptRef, ChallengeBlock, VideoUnit
from thriver.telemetry import NAV_STEPS_TOTAL

logger = logging.getLogger(__name__)

Unit = Union[VideoUnit, ChallengeBlock]


class FeedSequence:
    """Ordered units plus a cursor. Cursor is 0 on construction."""

    def __init__(self, units: Iterable[Unit] = ()) -> None:
        self.units: tuple[Unit, ...] = tuple(units)
        self.cursor = 0

    def __len__(self) -> int:
        return len(self.units)

    @property
    def current(self) -> Optional[Unit]:
        if not self.units:
            return None
        return self.units[self.cursor]

    def move(self, delta: int) -> int:
        """Clamp cursor + delta into [0, len - 1]; no-op on an empty sequence."""
        if not self.units:
            return self.cursor
        self.cursor = max(0, min(len(self.units) - 1, self.cursor + delta))
        return self.cursor


def build_sequence(
    video_ids: Sequence[str],
    challenge_ids: Sequence[str],
    videos_per_block: Optional[int] = None,
    block_size: Optional[int] = None,
) -> FeedSequence:
    every = videos_per_block or settings.feed_videos_per_block
    size = block_size or settings.feed_block_size

    units: list[Unit] = []
    ch_idx = 0
    for i, attempt_id in enumerate(video_ids):
        units.append(VideoUnit(attempt_id=attempt_id))

        if (i + 1) % every == 0 and ch_idx < len(challenge_ids):
            block = tuple(challenge_ids[ch_idx:ch_idx + size])
            if block:
                units.append(ChallengeBlock(challenge_ids=block))
            # Advance by a full block even if the slice came up short.
            ch_idx += size

    return FeedSequence(units)


def preload_target(
    sequence: FeedSequence,
    attempts: Mapping[str, AttemptRef],
) -> Optional[AttemptRef]:
    """First resolved attempt strictly after the cursor, or None."""
    for unit in sequence.units[sequence.cursor + 1:]:
        if isinstance(unit, VideoUnit):
            attempt = attempts.get(unit.attempt_id)
            if attempt is not None:
                return attempt
    return None


class FeedSequencer:
    """
    Owns the FeedSequence and the navigation cooldown lock.

    The lock is a boolean armed on every accepted step and released by a
    loop.call_later timer; close() cancels that timer so nothing fires after
    the view is torn down.
    """

    def __init__(
        self,
        cooldown: Optional[float] = None,
        loop: Optional[asyncio.AbstractEventLoop] = None,
    ) -> None:
        self.cooldown = settings.nav_cooldown_seconds if cooldown is None else cooldown
        self._loop = loop
        self._sequence = FeedSequence()
        self._locked = False
        self._unlock_handle: Optional[asyncio.TimerHandle] = None
        self._closed = False

    # ── Read side ─────────────────────────────────────────────────────────

    @property
    def cursor(self) -> int:
        return self._sequence.cursor

    @property
    def units(self) -> tuple[Unit, ...]:
        return self._sequence.units

    @property
    def current(self) -> Optional[Unit]:
        return self._sequence.current

    @property
    def is_empty(self) -> bool:
        return len(self._sequence) == 0

    @property
    def locked(self) -> bool:
        return self._locked

    def preload_url(
        self,
        attempts: Mapping[str, AttemptRef],
        resolve: Callable[[str], Optional[str]],
    ) -> Optional[str]:
        attempt = preload_target(self._sequence, attempts)
        if attempt is None:
            return None
        return resolve(attempt.video_path)

    # ── Write side ────────────────────────────────────────────────────────

    def replace(self, sequence: FeedSequence) -> None:
        """Swap in a freshly built sequence; cursor restarts at 0."""
        sequence.cursor = 0
        self._sequence = sequence

    def step(self, delta: int) -> bool:
        """
        Move focus by `delta`. Returns True when the step was accepted
        (the lock was free), even if clamping left the cursor where it was.
        """
        if self._closed or self.is_empty:
            NAV_STEPS_TOTAL.labels(result="ignored").inc()
            return False
        if self._locked:
            NAV_STEPS_TOTAL.labels(result="dropped").inc()
            return False

        self._arm_lock()
        before = self._sequence.cursor
        after = self._sequence.move(delta)
        NAV_STEPS_TOTAL.labels(result="accepted" if after != before else "clamped").inc()
        logger.debug("step(%+d): cursor %d -> %d", delta, before, after)
        return True

    def close(self) -> None:
        self._closed = True
        if self._unlock_handle is not None:
            self._unlock_handle.cancel()
            self._unlock_handle = None
        self._locked = False

    # ── Lock ──────────────────────────────────────────────────────────────

    def _arm_lock(self) -> None:
        self._locked = True
        loop = self._loop or asyncio.get_running_loop()
        self._unlock_handle = loop.call_later(self.cooldown, self._release)

    def _release(self) -> None:
        self._locked = False
        self._unlock_handle = None
