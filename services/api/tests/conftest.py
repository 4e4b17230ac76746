"""
Shared fixtures: in-memory stand-ins for the candidate and record services,
plus an httpx MockTransport-backed Supabase client.
"""
import asyncio
from datetime import datetime, timezone

import httpx
import pytest

from thriver.clients.auth import ViewerContext
from thriver.clients.supabase_client import BackendError, SupabaseClient
from thriver.models import AttemptRef, ChallengeRef, FeedMode, ProfileRef

CREATED = datetime(2025, 1, 1, tzinfo=timezone.utc)


def make_attempt(attempt_id: str, user_id: str = "user-1", **overrides) -> AttemptRef:
    fields = dict(
        id=attempt_id,
        challenge_id=f"ch-of-{attempt_id}",
        user_id=user_id,
        caption=f"caption {attempt_id}",
        video_path=f"{user_id}/{attempt_id}.mp4",
        like_count=0,
        created_at=CREATED,
        challenge_title=f"Title of {attempt_id}",
    )
    fields.update(overrides)
    return AttemptRef(**fields)


def make_challenge(challenge_id: str) -> ChallengeRef:
    return ChallengeRef(
        id=challenge_id,
        title=f"Challenge {challenge_id}",
        description="Do the thing",
        hype_count=3,
        created_at=CREATED,
    )


class StubCandidates:
    """Ranked ids per mode; a mode can be gated on an asyncio.Event or made to fail."""

    def __init__(self, attempts: dict, challenges: dict) -> None:
        self.attempts = attempts
        self.challenges = challenges
        self.gates: dict[FeedMode, asyncio.Event] = {}
        self.failing: set[FeedMode] = set()
        self.calls: list[FeedMode] = []

    async def ranked_attempt_ids(self, viewer_id, mode, limit=None, token=None):
        self.calls.append(mode)
        if mode in self.gates:
            await self.gates[mode].wait()
        if mode in self.failing:
            raise BackendError("rpc:get_video_feed", "boom", 500)
        return list(self.attempts.get(mode, []))

    async def ranked_challenge_ids(self, viewer_id, mode, limit=None, token=None):
        return list(self.challenges.get(mode, []))


class StubRecords:
    """Resolves every id except those listed in `missing`."""

    def __init__(self, missing=()) -> None:
        self.missing = set(missing)

    async def resolve_attempts(self, attempt_ids, token=None):
        return {i: make_attempt(i) for i in attempt_ids if i not in self.missing}

    async def resolve_challenges(self, challenge_ids, token=None):
        return {i: make_challenge(i) for i in challenge_ids if i not in self.missing}

    async def resolve_profiles(self, user_ids, token=None):
        return {u: ProfileRef(id=u, username="@skater") for u in user_ids}


@pytest.fixture
def viewer():
    return ViewerContext(viewer_id="viewer-1", access_token="token-1")


@pytest.fixture
def stub_candidates():
    return StubCandidates(
        attempts={
            FeedMode.FOR_YOU: [f"v{i}" for i in range(1, 10)],
            FeedMode.FOLLOWING: ["f1", "f2"],
        },
        challenges={
            FeedMode.FOR_YOU: [f"c{i}" for i in range(1, 7)],
            FeedMode.FOLLOWING: ["c1", "c2", "c3"],
        },
    )


@pytest.fixture
def stub_records():
    return StubRecords()


@pytest.fixture
def backend_requests():
    return []


@pytest.fixture
async def make_backend(backend_requests):
    """Build a started SupabaseClient whose requests go to `handler`."""
    clients = []

    async def _make(handler):
        def recording(request: httpx.Request) -> httpx.Response:
            backend_requests.append(request)
            return handler(request)

        client = SupabaseClient(transport=httpx.MockTransport(recording))
        await client.start()
        clients.append(client)
        return client

    yield _make
    for client in clients:
        await client.stop()
