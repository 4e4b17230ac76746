"""
Reaction service - community signals written straight to backend tables.

  attempt_likes         (attempt_id, liker_id)           like toggle
  challenge_hype_votes  (challenge_id, voter_id)         hype toggle
  follows               (follower_id, following_id)      follow toggle
  completion_votes      (attempt_id, voter_id) PK        yes/no upsert
  comments              (entity_type, entity_id, ...)    drawer list / post

Counters (hype_count, like_count), reward award/revoke and public-challenge
winners are maintained by backend triggers and the finalize RPC; every toggle
re-reads state afterwards instead of guessing the new value locally.
"""
import logging
from typing import Optional

from pydantic import BaseModel

from thriver.clients.auth import ViewerContext
from thriver.clients.supabase_client import SupabaseClient, eq, supabase
from thriver.models import Comment, CommentTarget, CompletionTally

logger = logging.getLogger(__name__)

COMMENT_PAGE_SIZE = 60


class SelfFollowError(ValueError):
    pass


class EmptyCommentError(ValueError):
    pass


class LikeState(BaseModel):
    liked: bool
    like_count: int


class HypeState(BaseModel):
    hyped: bool
    hype_count: int


class FollowState(BaseModel):
    following: bool


class CompletionState(BaseModel):
    tally: CompletionTally
    my_vote: Optional[bool] = None


class ReactionClient:
    def __init__(self, backend: SupabaseClient) -> None:
        self.backend = backend

    # ── Likes ─────────────────────────────────────────────────────────────

    async def like_state(self, attempt_id: str, viewer: Optional[ViewerContext]) -> LikeState:
        token = viewer.access_token if viewer else None
        count = await self.backend.count("attempt_likes", {"attempt_id": eq(attempt_id)}, token)
        liked = False
        if viewer:
            mine = await self.backend.select_one(
                "attempt_likes",
                "attempt_id",
                {"attempt_id": eq(attempt_id), "liker_id": eq(viewer.viewer_id)},
                token,
            )
            liked = mine is not None
        return LikeState(liked=liked, like_count=count)

    async def toggle_like(self, attempt_id: str, viewer: ViewerContext) -> LikeState:
        current = await self.like_state(attempt_id, viewer)
        if current.liked:
            await self.backend.delete(
                "attempt_likes",
                {"attempt_id": eq(attempt_id), "liker_id": eq(viewer.viewer_id)},
                viewer.access_token,
            )
        else:
            await self.backend.insert(
                "attempt_likes",
                {"attempt_id": attempt_id, "liker_id": viewer.viewer_id},
                viewer.access_token,
            )
        return await self.like_state(attempt_id, viewer)

    # ── Hype ──────────────────────────────────────────────────────────────

    async def hype_state(self, challenge_id: str, viewer: Optional[ViewerContext]) -> HypeState:
        token = viewer.access_token if viewer else None
        row = await self.backend.select_one(
            "challenges", "hype_count", {"id": eq(challenge_id)}, token
        )
        hype_count = int(row["hype_count"]) if row else 0
        hyped = False
        if viewer:
            vote = await self.backend.select_one(
                "challenge_hype_votes",
                "challenge_id",
                {"challenge_id": eq(challenge_id), "voter_id": eq(viewer.viewer_id)},
                token,
            )
            hyped = vote is not None
        return HypeState(hyped=hyped, hype_count=hype_count)

    async def toggle_hype(self, challenge_id: str, viewer: ViewerContext) -> HypeState:
        current = await self.hype_state(challenge_id, viewer)
        if current.hyped:
            await self.backend.delete(
                "challenge_hype_votes",
                {"challenge_id": eq(challenge_id), "voter_id": eq(viewer.viewer_id)},
                viewer.access_token,
            )
        else:
            await self.backend.insert(
                "challenge_hype_votes",
                {"challenge_id": challenge_id, "voter_id": viewer.viewer_id},
                viewer.access_token,
            )
        return await self.hype_state(challenge_id, viewer)

    # ── Follows ───────────────────────────────────────────────────────────

    async def is_following(self, target_user_id: str, viewer: ViewerContext) -> bool:
        row = await self.backend.select_one(
            "follows",
            "follower_id",
            {"follower_id": eq(viewer.viewer_id), "following_id": eq(target_user_id)},
            viewer.access_token,
        )
        return row is not None

    async def toggle_follow(self, target_user_id: str, viewer: ViewerContext) -> FollowState:
        if target_user_id == viewer.viewer_id:
            raise SelfFollowError("Users cannot follow themselves")
        if await self.is_following(target_user_id, viewer):
            await self.backend.delete(
                "follows",
                {"follower_id": eq(viewer.viewer_id), "following_id": eq(target_user_id)},
                viewer.access_token,
            )
        else:
            await self.backend.insert(
                "follows",
                {"follower_id": viewer.viewer_id, "following_id": target_user_id},
                viewer.access_token,
            )
        return FollowState(following=await self.is_following(target_user_id, viewer))

    # ── Completion votes (direct challenges) ──────────────────────────────

    async def completion_state(
        self,
        attempt_id: str,
        viewer: Optional[ViewerContext],
    ) -> CompletionState:
        token = viewer.access_token if viewer else None
        yes = await self.backend.count(
            "completion_votes", {"attempt_id": eq(attempt_id), "is_complete": eq(True)}, token
        )
        no = await self.backend.count(
            "completion_votes", {"attempt_id": eq(attempt_id), "is_complete": eq(False)}, token
        )
        my_vote: Optional[bool] = None
        if viewer:
            row = await self.backend.select_one(
                "completion_votes",
                "is_complete",
                {"attempt_id": eq(attempt_id), "voter_id": eq(viewer.viewer_id)},
                token,
            )
            if row is not None:
                my_vote = bool(row["is_complete"])
        return CompletionState(tally=CompletionTally(yes=yes, no=no), my_vote=my_vote)

    async def cast_completion_vote(
        self,
        attempt_id: str,
        is_complete: bool,
        viewer: ViewerContext,
    ) -> CompletionState:
        # Reward award/revoke happens in the backend trigger on this table.
        await self.backend.upsert(
            "completion_votes",
            {"attempt_id": attempt_id, "voter_id": viewer.viewer_id, "is_complete": is_complete},
            on_conflict="attempt_id,voter_id",
            token=viewer.access_token,
        )
        return await self.completion_state(attempt_id, viewer)

    # ── Comments ──────────────────────────────────────────────────────────

    async def list_comments(
        self,
        entity_type: CommentTarget,
        entity_id: str,
        viewer: Optional[ViewerContext] = None,
    ) -> list[Comment]:
        rows = await self.backend.select(
            "comments",
            "id,author_id,body,created_at",
            {"entity_type": eq(entity_type.value), "entity_id": eq(entity_id)},
            viewer.access_token if viewer else None,
            order="created_at.desc",
            limit=COMMENT_PAGE_SIZE,
        )
        return [Comment(**r) for r in rows]

    async def add_comment(
        self,
        entity_type: CommentTarget,
        entity_id: str,
        body: str,
        viewer: ViewerContext,
    ) -> list[Comment]:
        text = body.strip()
        if not text:
            raise EmptyCommentError("Comment body is empty")
        await self.backend.insert(
            "comments",
            {
                "author_id": viewer.viewer_id,
                "entity_type": entity_type.value,
                "entity_id": entity_id,
                "body": text,
            },
            viewer.access_token,
        )
        return await self.list_comments(entity_type, entity_id, viewer)

    # ── Finalize (public challenges) ──────────────────────────────────────

    async def finalize_public_challenge(self, challenge_id: str, viewer: ViewerContext) -> None:
        """Lock the outcome; the RPC picks the most-liked attempt as winner."""
        await self.backend.rpc(
            "finalize_public_challenge", {"p_challenge_id": challenge_id}, viewer.access_token
        )
        logger.info("Challenge %s finalized by %s", challenge_id, viewer.viewer_id)


# Singleton
reaction_client = ReactionClient(supabase)
