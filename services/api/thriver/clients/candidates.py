"""
Ranked-candidate service.

Ranking lives in backend RPCs; this client only asks for ordered ids:

  mode       attempts RPC               challenges RPC
  for_you    get_video_feed_for_you     get_public_challenges_for_you
  following  get_video_feed_following   get_public_challenges_following

Both take { p_viewer_id, p_limit } and return rows carrying attempt_id /
challenge_id in rank order.
"""
import logging
from typing import Optional

from thriver.clients.supabase_client import SupabaseClient, supabase
from thriver.config import settings
from thriver.models import FeedMode

logger = logging.getLogger(__name__)

ATTEMPT_RPC = {
    FeedMode.FOR_YOU: "get_video_feed_for_you",
    FeedMode.FOLLOWING: "get_video_feed_following",
}

CHALLENGE_RPC = {
    FeedMode.FOR_YOU: "get_public_challenges_for_you",
    FeedMode.FOLLOWING: "get_public_challenges_following",
}


class CandidateClient:
    def __init__(self, backend: SupabaseClient) -> None:
        self.backend = backend

    async def ranked_attempt_ids(
        self,
        viewer_id: str,
        mode: FeedMode,
        limit: Optional[int] = None,
        token: Optional[str] = None,
    ) -> list[str]:
        rows = await self.backend.rpc(
            ATTEMPT_RPC[mode],
            {"p_viewer_id": viewer_id, "p_limit": limit or settings.feed_attempt_limit},
            token,
        )
        return [str(r["attempt_id"]) for r in rows or []]

    async def ranked_challenge_ids(
        self,
        viewer_id: str,
        mode: FeedMode,
        limit: Optional[int] = None,
        token: Optional[str] = None,
    ) -> list[str]:
        rows = await self.backend.rpc(
            CHALLENGE_RPC[mode],
            {"p_viewer_id": viewer_id, "p_limit": limit or settings.feed_challenge_limit},
            token,
        )
        return [str(r["challenge_id"]) for r in rows or []]


# Singleton
candidate_client = CandidateClient(supabase)
