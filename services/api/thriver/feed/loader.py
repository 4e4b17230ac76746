"""
Feed loader - one logical "load" of a feed view.

  Stage 1 │ Candidates
  ────────┼──────────────────────────────────────────────────────────────
          │  Ranked attempt ids + ranked challenge ids for (viewer, mode),
          │  fetched in parallel from the backend RPCs.

  Stage 2 │ Record resolution
  ────────┼──────────────────────────────────────────────────────────────
          │  Attempts (+ challenge titles) → author profiles, in parallel
          │  with the challenge cards for the blocks.

  Stage 3 │ Apply
  ────────┼──────────────────────────────────────────────────────────────
          │  Rebuild the sequence (cursor → 0) and swap the record maps,
          │  only if this load is still the latest one issued.

Every load takes a new generation number. A slower, older load that finishes
after a newer one is discarded instead of overwriting fresher state.
A failed load leaves the previous sequence and records in place and reports
an error status; nothing is retried automatically.
"""
import asyncio
import logging
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Optional

from opentelemetry import trace
from pydantic import ValidationError

from thriver.clients.auth import ViewerContext
from thriver.clients.candidates import CandidateClient, candidate_client
from thriver.clients.records import RecordClient, record_client
from thriver.clients.supabase_client import BackendError
from thriver.feed.sequencer import FeedSequence, FeedSequencer, build_sequence
from thriver.models import AttemptRef, ChallengeRef, FeedMode, ProfileRef
from thriver.telemetry import FEED_LOAD_LATENCY, FEED_LOADS_TOTAL, FEED_UNITS_BUILT

logger = logging.getLogger(__name__)
tracer = trace.get_tracer(__name__)


class LoadStatus(str, Enum):
    IDLE = "idle"
    LOADING = "loading"
    READY = "ready"
    ERROR = "error"


@dataclass
class FeedSnapshot:
    sequence: FeedSequence
    attempts: dict[str, AttemptRef] = field(default_factory=dict)
    challenges: dict[str, ChallengeRef] = field(default_factory=dict)
    profiles: dict[str, ProfileRef] = field(default_factory=dict)


class FeedLoader:
    def __init__(
        self,
        sequencer: FeedSequencer,
        candidates: Optional[CandidateClient] = None,
        records: Optional[RecordClient] = None,
    ) -> None:
        self.sequencer = sequencer
        self.candidates = candidates or candidate_client
        self.records = records or record_client

        self.status = LoadStatus.IDLE
        self.error: Optional[str] = None
        self.attempts: dict[str, AttemptRef] = {}
        self.challenges: dict[str, ChallengeRef] = {}
        self.profiles: dict[str, ProfileRef] = {}
        self._generation = 0

    @property
    def generation(self) -> int:
        return self._generation

    def is_current(self, generation: int) -> bool:
        return generation == self._generation

    async def load(self, viewer: ViewerContext, mode: FeedMode) -> bool:
        """Run one load. Returns True when its result was applied."""
        self._generation += 1
        generation = self._generation
        self.status = LoadStatus.LOADING
        start_time = time.time()

        with tracer.start_as_current_span("feed_load") as span:
            span.set_attribute("viewer.id", viewer.viewer_id)
            span.set_attribute("feed.mode", mode.value)
            span.set_attribute("feed.generation", generation)

            try:
                snapshot = await self._fetch(viewer, mode)
            except (BackendError, ValidationError) as exc:
                if not self.is_current(generation):
                    FEED_LOADS_TOTAL.labels(outcome="stale").inc()
                    logger.info("Discarding failed stale load #%d: %s", generation, exc)
                    return False
                FEED_LOADS_TOTAL.labels(outcome="failed").inc()
                logger.warning(
                    "Feed load failed (viewer=%s mode=%s): %s", viewer.viewer_id, mode.value, exc
                )
                self._fail(str(exc))
                span.set_attribute("feed.outcome", "failed")
                return False
            except BaseException:
                # Unexpected errors and cancellation still propagate, but the
                # latest load must not stay in LOADING.
                if self.is_current(generation):
                    FEED_LOADS_TOTAL.labels(outcome="failed").inc()
                    logger.exception("Feed load #%d aborted", generation)
                    self._fail("Feed load aborted")
                    span.set_attribute("feed.outcome", "aborted")
                raise

            if not self.is_current(generation):
                FEED_LOADS_TOTAL.labels(outcome="stale").inc()
                logger.info(
                    "Discarding stale load #%d (latest is #%d)", generation, self._generation
                )
                span.set_attribute("feed.outcome", "stale")
                return False

            self._apply(snapshot)
            FEED_LOADS_TOTAL.labels(outcome="applied").inc()
            FEED_UNITS_BUILT.observe(len(snapshot.sequence))
            FEED_LOAD_LATENCY.observe(time.time() - start_time)
            span.set_attribute("feed.outcome", "applied")
            span.set_attribute("feed.units", len(snapshot.sequence))
            return True

    async def _fetch(self, viewer: ViewerContext, mode: FeedMode) -> FeedSnapshot:
        token = viewer.access_token

        with tracer.start_as_current_span("stage1_candidates") as span:
            attempt_ids, challenge_ids = await asyncio.gather(
                self.candidates.ranked_attempt_ids(viewer.viewer_id, mode, token=token),
                self.candidates.ranked_challenge_ids(viewer.viewer_id, mode, token=token),
            )
            span.set_attribute("candidates.attempts", len(attempt_ids))
            span.set_attribute("candidates.challenges", len(challenge_ids))

        sequence = build_sequence(attempt_ids, challenge_ids)

        with tracer.start_as_current_span("stage2_records"):
            attempts_and_profiles, challenges = await asyncio.gather(
                self._resolve_attempts_and_profiles(attempt_ids, token),
                self.records.resolve_challenges(challenge_ids, token),
            )
        attempts, profiles = attempts_and_profiles

        return FeedSnapshot(
            sequence=sequence,
            attempts=attempts,
            challenges=challenges,
            profiles=profiles,
        )

    async def _resolve_attempts_and_profiles(
        self,
        attempt_ids: list[str],
        token: str,
    ) -> tuple[dict[str, AttemptRef], dict[str, ProfileRef]]:
        attempts = await self.records.resolve_attempts(attempt_ids, token)
        profiles = await self.records.resolve_profiles(
            (a.user_id for a in attempts.values()), token
        )
        return attempts, profiles

    def _apply(self, snapshot: FeedSnapshot) -> None:
        self.sequencer.replace(snapshot.sequence)
        self.attempts = snapshot.attempts
        self.challenges = snapshot.challenges
        self.profiles = snapshot.profiles
        self.status = LoadStatus.READY
        self.error = None

    def _fail(self, message: str) -> None:
        """Previous sequence and records stay as they were."""
        self.status = LoadStatus.ERROR
        self.error = message
