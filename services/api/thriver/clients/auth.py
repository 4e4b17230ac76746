"""
Viewer identity.

The access token issued by Supabase Auth is resolved once per request into a
ViewerContext and injected into routes, instead of each call re-reading the
session. Sign-out on the client simply stops sending the token; an expired or
revoked token fails resolution and the request is treated as anonymous.
"""
import logging
from dataclasses import dataclass
from typing import Optional

from thriver.clients.supabase_client import BackendError, SupabaseClient, supabase

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ViewerContext:
    viewer_id: str
    access_token: str


class AuthClient:
    def __init__(self, backend: SupabaseClient) -> None:
        self.backend = backend

    async def resolve_viewer(self, access_token: Optional[str]) -> Optional[ViewerContext]:
        if not access_token:
            return None
        try:
            user = await self.backend.get_user(access_token)
        except BackendError as exc:
            if exc.status_code in (401, 403):
                logger.info("Rejected access token (%s)", exc.message)
                return None
            raise
        user_id = user.get("id") if isinstance(user, dict) else None
        if not user_id:
            return None
        return ViewerContext(viewer_id=str(user_id), access_token=access_token)


# Singleton
auth_client = AuthClient(supabase)
