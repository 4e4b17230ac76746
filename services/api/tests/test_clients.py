"""
Tests for the Supabase-backed clients against an httpx MockTransport.
"""
import json

import httpx
import pytest

from thriver.clients.auth import AuthClient, ViewerContext
from thriver.clients.candidates import CandidateClient
from thriver.clients.media import get_public_url
from thriver.clients.reactions import ReactionClient, SelfFollowError
from thriver.clients.records import RecordClient, unique_ids
from thriver.clients.supabase_client import BackendError, in_filter
from thriver.config import settings
from thriver.models import DirectChallenge, FeedMode

VIEWER = ViewerContext(viewer_id="me", access_token="tok")


def _ids_from_filter(value: str) -> list[str]:
    inner = value[len("in.("):-1]
    return [v.strip('"') for v in inner.split(",")]


def test_in_filter_quotes_values():
    assert in_filter(["a", "b"]) == 'in.("a","b")'


def test_unique_ids_keeps_first_seen_order_and_cap():
    assert unique_ids(["b", "a", "b", None, "", "c"], cap=2) == ["b", "a"]


def test_public_url_for_video_path():
    url = get_public_url("user 1/clip.mp4")
    assert url == f"{settings.storage_public_url}/user%201/clip.mp4"
    assert get_public_url(None) is None


class TestCandidates:

    async def test_for_you_calls_ranked_rpcs(self, make_backend, backend_requests):
        def handler(request):
            if request.url.path.endswith("get_video_feed_for_you"):
                return httpx.Response(200, json=[{"attempt_id": "a2"}, {"attempt_id": "a1"}])
            if request.url.path.endswith("get_public_challenges_for_you"):
                return httpx.Response(200, json=[{"challenge_id": 7}])
            return httpx.Response(404)

        client = CandidateClient(await make_backend(handler))

        assert await client.ranked_attempt_ids("me", FeedMode.FOR_YOU, token="tok") == ["a2", "a1"]
        assert await client.ranked_challenge_ids("me", FeedMode.FOR_YOU) == ["7"]

        body = json.loads(backend_requests[0].content)
        assert body == {"p_viewer_id": "me", "p_limit": settings.feed_attempt_limit}
        assert backend_requests[0].headers["Authorization"] == "Bearer tok"

    async def test_following_uses_following_rpcs(self, make_backend, backend_requests):
        client = CandidateClient(await make_backend(lambda r: httpx.Response(200, json=[])))
        await client.ranked_attempt_ids("me", FeedMode.FOLLOWING, limit=5)
        await client.ranked_challenge_ids("me", FeedMode.FOLLOWING)

        paths = [r.url.path for r in backend_requests]
        assert paths == [
            "/rest/v1/rpc/get_video_feed_following",
            "/rest/v1/rpc/get_public_challenges_following",
        ]
        assert json.loads(backend_requests[0].content)["p_limit"] == 5

    async def test_html_body_on_success_raises_backend_error(self, make_backend):
        backend = await make_backend(lambda r: httpx.Response(200, text="<html>gateway</html>"))
        with pytest.raises(BackendError) as exc_info:
            await CandidateClient(backend).ranked_attempt_ids("me", FeedMode.FOR_YOU)
        assert exc_info.value.status_code == 200
        assert "invalid JSON" in exc_info.value.message

        with pytest.raises(BackendError):
            await backend.select("attempts", "id", {})

    async def test_rpc_error_raises_backend_error(self, make_backend):
        client = CandidateClient(
            await make_backend(lambda r: httpx.Response(500, json={"message": "rpc exploded"}))
        )
        with pytest.raises(BackendError) as exc_info:
            await client.ranked_attempt_ids("me", FeedMode.FOR_YOU)
        assert exc_info.value.status_code == 500
        assert exc_info.value.message == "rpc exploded"


class TestRecords:

    async def test_attempts_get_challenge_titles_from_second_query(self, make_backend, backend_requests):
        def handler(request):
            table = request.url.path.rsplit("/", 1)[-1]
            ids = _ids_from_filter(request.url.params["id"])
            if table == "attempts":
                return httpx.Response(200, json=[
                    {
                        "id": i,
                        "challenge_id": "ch1",
                        "user_id": "u1",
                        "caption": None,
                        "video_path": f"u1/{i}.mp4",
                        "like_count": 2,
                        "created_at": "2025-01-01T00:00:00Z",
                    }
                    for i in ids
                ])
            if table == "challenges":
                return httpx.Response(200, json=[{"id": "ch1", "title": "Backflip"}])
            return httpx.Response(404)

        records = RecordClient(await make_backend(handler))
        attempts = await records.resolve_attempts(["a1", "a2", "a1"])

        assert set(attempts) == {"a1", "a2"}
        assert attempts["a1"].challenge_title == "Backflip"
        assert len(backend_requests) == 2
        assert backend_requests[1].url.params["select"] == "id,title"

    async def test_no_ids_no_requests(self, make_backend, backend_requests):
        records = RecordClient(await make_backend(lambda r: httpx.Response(500)))
        assert await records.resolve_attempts([]) == {}
        assert await records.resolve_challenges([]) == {}
        assert await records.resolve_profiles([]) == {}
        assert backend_requests == []

    async def test_record_batch_is_capped(self, make_backend, backend_requests):
        records = RecordClient(await make_backend(lambda r: httpx.Response(200, json=[])))
        await records.resolve_challenges([f"c{i}" for i in range(200)])
        sent = _ids_from_filter(backend_requests[0].url.params["id"])
        assert len(sent) == settings.feed_record_batch

    async def test_get_challenge_returns_typed_variant(self, make_backend):
        row = {
            "id": "ch1",
            "creator_id": "alice",
            "type": "direct",
            "target_user_id": "bob",
            "title": "Eat a lemon",
            "description": "",
            "rules": None,
            "proof_requirements": None,
            "difficulty": 1,
            "tags": [],
            "hype_count": 0,
            "ends_at": None,
            "is_finalized": False,
            "finalized_at": None,
            "winner_attempt_id": None,
            "created_at": "2025-01-01T00:00:00Z",
        }
        records = RecordClient(await make_backend(lambda r: httpx.Response(200, json=[row])))
        challenge = await records.get_challenge("ch1")
        assert isinstance(challenge, DirectChallenge)
        assert challenge.target_user_id == "bob"


class TestReactions:

    async def test_toggle_like_inserts_when_not_liked(self, make_backend, backend_requests):
        liked = {"value": False}

        def handler(request):
            if request.method == "HEAD":
                return httpx.Response(200, headers={"content-range": f"*/{int(liked['value'])}"})
            if request.method == "GET":
                return httpx.Response(200, json=[{"attempt_id": "a1"}] if liked["value"] else [])
            if request.method == "POST":
                liked["value"] = True
                return httpx.Response(201)
            return httpx.Response(405)

        reactions = ReactionClient(await make_backend(handler))
        state = await reactions.toggle_like("a1", VIEWER)

        assert state.liked is True
        assert state.like_count == 1
        post = next(r for r in backend_requests if r.method == "POST")
        assert json.loads(post.content) == {"attempt_id": "a1", "liker_id": "me"}

    async def test_toggle_hype_deletes_existing_vote(self, make_backend, backend_requests):
        hyped = {"value": True}

        def handler(request):
            table = request.url.path.rsplit("/", 1)[-1]
            if request.method == "DELETE":
                hyped["value"] = False
                return httpx.Response(204)
            if table == "challenges":
                return httpx.Response(200, json=[{"hype_count": 5 if hyped["value"] else 4}])
            return httpx.Response(200, json=[{"challenge_id": "c1"}] if hyped["value"] else [])

        reactions = ReactionClient(await make_backend(handler))
        state = await reactions.toggle_hype("c1", VIEWER)

        assert state.hyped is False
        assert state.hype_count == 4
        delete = next(r for r in backend_requests if r.method == "DELETE")
        assert delete.url.params["voter_id"] == "eq.me"

    async def test_self_follow_is_rejected(self, make_backend, backend_requests):
        reactions = ReactionClient(await make_backend(lambda r: httpx.Response(500)))
        with pytest.raises(SelfFollowError):
            await reactions.toggle_follow("me", VIEWER)
        assert backend_requests == []

    async def test_completion_vote_upserts_and_tallies(self, make_backend, backend_requests):
        def handler(request):
            if request.method == "HEAD":
                yes = request.url.params["is_complete"] == "eq.true"
                return httpx.Response(200, headers={"content-range": "*/3" if yes else "*/1"})
            if request.method == "GET":
                return httpx.Response(200, json=[{"is_complete": True}])
            return httpx.Response(201)

        reactions = ReactionClient(await make_backend(handler))
        state = await reactions.cast_completion_vote("a1", True, VIEWER)

        upsert = backend_requests[0]
        assert upsert.url.params["on_conflict"] == "attempt_id,voter_id"
        assert "merge-duplicates" in upsert.headers["Prefer"]
        assert state.tally.yes == 3
        assert state.tally.no == 1
        assert state.tally.earns_reward is True
        assert state.my_vote is True


class TestAuth:

    async def test_valid_token_resolves_viewer(self, make_backend):
        auth = AuthClient(await make_backend(lambda r: httpx.Response(200, json={"id": "u-42"})))
        viewer = await auth.resolve_viewer("tok")
        assert viewer == ViewerContext(viewer_id="u-42", access_token="tok")

    async def test_rejected_token_is_anonymous(self, make_backend):
        auth = AuthClient(await make_backend(lambda r: httpx.Response(401, json={"msg": "expired"})))
        assert await auth.resolve_viewer("tok") is None
        assert await auth.resolve_viewer(None) is None

    async def test_backend_outage_propagates(self, make_backend):
        auth = AuthClient(await make_backend(lambda r: httpx.Response(503, text="down")))
        with pytest.raises(BackendError):
            await auth.resolve_viewer("tok")

    async def test_html_user_body_is_backend_error(self, make_backend):
        auth = AuthClient(await make_backend(lambda r: httpx.Response(200, text="<html>login</html>")))
        with pytest.raises(BackendError):
            await auth.resolve_viewer("tok")
