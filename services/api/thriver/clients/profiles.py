"""
Profile service - public profiles, their stats, and onboarding.

  profiles            (id, username, avatar_url)     one row per user, username unique
  get_profile_stats   RPC → [{posts, hype, likes}]   aggregate counters for the header
"""
import logging
from typing import Optional

from thriver.clients.auth import ViewerContext
from thriver.clients.supabase_client import BackendError, SupabaseClient, eq, supabase
from thriver.models import Profile, ProfileStats, normalize_username

logger = logging.getLogger(__name__)

PROFILE_COLUMNS = "id,username,avatar_url"
UNIQUE_VIOLATION = "23505"


class ProfileExistsError(ValueError):
    pass


class UsernameTakenError(ValueError):
    pass


class ProfileClient:
    def __init__(self, backend: SupabaseClient) -> None:
        self.backend = backend

    async def get_by_username(self, username: str, token: Optional[str] = None) -> Optional[Profile]:
        row = await self.backend.select_one(
            "profiles", PROFILE_COLUMNS, {"username": eq(username.strip().lower())}, token
        )
        return Profile(**row) if row else None

    async def get(self, user_id: str, token: Optional[str] = None) -> Optional[Profile]:
        row = await self.backend.select_one("profiles", PROFILE_COLUMNS, {"id": eq(user_id)}, token)
        return Profile(**row) if row else None

    async def stats(self, user_id: str, token: Optional[str] = None) -> ProfileStats:
        rows = await self.backend.rpc("get_profile_stats", {"p_user_id": user_id}, token)
        if isinstance(rows, list) and rows:
            return ProfileStats(**rows[0])
        if isinstance(rows, dict):
            return ProfileStats(**rows)
        return ProfileStats()

    async def create(self, username: str, viewer: ViewerContext) -> Profile:
        """Claim a username for the viewer. Each user onboards once."""
        username = normalize_username(username)
        if await self.get(viewer.viewer_id, viewer.access_token) is not None:
            raise ProfileExistsError("Profile already exists")

        try:
            await self.backend.insert(
                "profiles", {"id": viewer.viewer_id, "username": username}, viewer.access_token
            )
        except BackendError as exc:
            if exc.code == UNIQUE_VIOLATION or "duplicate" in exc.message.lower():
                raise UsernameTakenError("That username is taken") from exc
            raise

        logger.info("Profile @%s created for %s", username, viewer.viewer_id)
        return Profile(id=viewer.viewer_id, username=username)


# Singleton
profile_client = ProfileClient(supabase)
