"""
Record resolution service - turns ranked ids into value objects.

Attempts are fetched without an implicit join; their challenge titles come
from a second `challenges` select keyed by the distinct challenge ids.
Profile lists (videos, created challenges, liked videos) are capped at
PROFILE_LIST_LIMIT rows.
"""
import logging
from typing import Iterable, Optional, Sequence

from pydantic import TypeAdapter

from thriver.clients.supabase_client import SupabaseClient, eq, in_filter, supabase
from thriver.config import settings
from thriver.models import (
    Attempt,
    AttemptRef,
    Challenge,
    ChallengeAttempt,
    ChallengeRef,
    ChallengeSort,
    ChallengeSummary,
    ProfileRef,
    VideoSort,
)

logger = logging.getLogger(__name__)

ATTEMPT_COLUMNS = "id,challenge_id,user_id,caption,video_path,like_count,created_at"
CHALLENGE_CARD_COLUMNS = "id,title,description,hype_count,ends_at,created_at"
CHALLENGE_DETAIL_COLUMNS = (
    "id,creator_id,type,target_user_id,title,description,rules,proof_requirements,"
    "difficulty,tags,hype_count,ends_at,is_finalized,finalized_at,winner_attempt_id,created_at"
)
CHALLENGE_ATTEMPT_COLUMNS = "id,user_id,created_at,status,is_rewarded,awarded_hype"
ATTEMPT_DETAIL_COLUMNS = (
    "id,challenge_id,user_id,caption,video_path,status,is_rewarded,awarded_hype,like_count,created_at"
)
CHALLENGE_SUMMARY_COLUMNS = "id,type,title,hype_count,target_user_id,created_at"

PROFILE_LIST_LIMIT = 60

VIDEO_ORDER = {VideoSort.RECENT: "created_at.desc", VideoSort.LIKES: "like_count.desc"}
CHALLENGE_ORDER = {ChallengeSort.RECENT: "created_at.desc", ChallengeSort.HYPE: "hype_count.desc"}

_challenge_adapter: TypeAdapter[Challenge] = TypeAdapter(Challenge)


def unique_ids(ids: Iterable[Optional[str]], cap: Optional[int] = None) -> list[str]:
    """Distinct, non-empty ids in first-seen order, truncated to `cap`."""
    seen: dict[str, None] = {}
    for i in ids:
        if i:
            seen.setdefault(i, None)
    out = list(seen)
    return out[:cap] if cap is not None else out


class RecordClient:
    def __init__(self, backend: SupabaseClient) -> None:
        self.backend = backend

    async def resolve_attempts(
        self,
        attempt_ids: Iterable[str],
        token: Optional[str] = None,
    ) -> dict[str, AttemptRef]:
        ids = unique_ids(attempt_ids, settings.feed_record_batch)
        if not ids:
            return {}

        rows = await self.backend.select(
            "attempts", ATTEMPT_COLUMNS, {"id": in_filter(ids)}, token
        )
        return {a.id: a for a in await self._with_titles(rows, token)}

    async def _with_titles(self, rows: Sequence[dict], token: Optional[str]) -> list[AttemptRef]:
        """Attach parent challenge titles, keeping row order."""
        challenge_ids = unique_ids(r.get("challenge_id") for r in rows)
        titles: dict[str, str] = {}
        if challenge_ids:
            title_rows = await self.backend.select(
                "challenges", "id,title", {"id": in_filter(challenge_ids)}, token
            )
            titles = {str(c["id"]): c["title"] for c in title_rows}

        return [
            AttemptRef(**r, challenge_title=titles.get(str(r["challenge_id"])))
            for r in rows
        ]

    async def resolve_challenges(
        self,
        challenge_ids: Iterable[str],
        token: Optional[str] = None,
    ) -> dict[str, ChallengeRef]:
        ids = unique_ids(challenge_ids, settings.feed_record_batch)
        if not ids:
            return {}
        rows = await self.backend.select(
            "challenges", CHALLENGE_CARD_COLUMNS, {"id": in_filter(ids)}, token
        )
        return {str(r["id"]): ChallengeRef(**r) for r in rows}

    async def resolve_profiles(
        self,
        user_ids: Iterable[str],
        token: Optional[str] = None,
    ) -> dict[str, ProfileRef]:
        ids = unique_ids(user_ids)
        if not ids:
            return {}
        rows = await self.backend.select(
            "profiles", "id,username", {"id": in_filter(ids)}, token
        )
        return {str(r["id"]): ProfileRef(**r) for r in rows}

    async def get_challenge(self, challenge_id: str, token: Optional[str] = None) -> Optional[Challenge]:
        row = await self.backend.select_one(
            "challenges", CHALLENGE_DETAIL_COLUMNS, {"id": eq(challenge_id)}, token
        )
        if row is None:
            return None
        return _challenge_adapter.validate_python(row)

    async def list_challenge_attempts(
        self,
        challenge_id: str,
        token: Optional[str] = None,
    ) -> list[ChallengeAttempt]:
        rows = await self.backend.select(
            "attempts",
            CHALLENGE_ATTEMPT_COLUMNS,
            {"challenge_id": eq(challenge_id)},
            token,
            order="created_at.desc",
        )
        return [ChallengeAttempt(**r) for r in rows]

    async def get_attempt(self, attempt_id: str, token: Optional[str] = None) -> Optional[Attempt]:
        row = await self.backend.select_one(
            "attempts", ATTEMPT_DETAIL_COLUMNS, {"id": eq(attempt_id)}, token
        )
        return Attempt(**row) if row else None

    # ── Profile lists ─────────────────────────────────────────────────────

    async def list_user_attempts(
        self,
        user_id: str,
        sort: VideoSort = VideoSort.RECENT,
        token: Optional[str] = None,
    ) -> list[AttemptRef]:
        rows = await self.backend.select(
            "attempts",
            ATTEMPT_COLUMNS,
            {"user_id": eq(user_id)},
            token,
            order=VIDEO_ORDER[sort],
            limit=PROFILE_LIST_LIMIT,
        )
        return await self._with_titles(rows, token)

    async def list_user_challenges(
        self,
        creator_id: str,
        sort: ChallengeSort = ChallengeSort.RECENT,
        token: Optional[str] = None,
    ) -> list[ChallengeSummary]:
        rows = await self.backend.select(
            "challenges",
            CHALLENGE_SUMMARY_COLUMNS,
            {"creator_id": eq(creator_id)},
            token,
            order=CHALLENGE_ORDER[sort],
            limit=PROFILE_LIST_LIMIT,
        )
        return [ChallengeSummary(**r) for r in rows]

    async def list_liked_attempts(
        self,
        user_id: str,
        token: Optional[str] = None,
    ) -> list[AttemptRef]:
        """Attempts the user liked, most recently liked first."""
        likes = await self.backend.select(
            "attempt_likes",
            "attempt_id,created_at",
            {"liker_id": eq(user_id)},
            token,
            order="created_at.desc",
            limit=PROFILE_LIST_LIMIT,
        )
        ordered = unique_ids(str(r["attempt_id"]) for r in likes)
        attempts = await self.resolve_attempts(ordered, token)
        # Deleted attempts drop out
        return [attempts[i] for i in ordered if i in attempts]


# Singleton
record_client = RecordClient(supabase)
