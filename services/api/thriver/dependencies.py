"""
FastAPI dependencies that inject the viewer identity into routes.
"""
from typing import Optional

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from thriver.clients.auth import ViewerContext, auth_client
from thriver.clients.supabase_client import BackendError
from thriver.feed.sessions import SessionRegistry, session_registry

security = HTTPBearer(auto_error=False)


async def get_optional_viewer(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
) -> Optional[ViewerContext]:
    if credentials is None:
        return None
    try:
        return await auth_client.resolve_viewer(credentials.credentials)
    except BackendError as exc:
        raise HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail=exc.message) from exc


async def get_viewer(
    viewer: Optional[ViewerContext] = Depends(get_optional_viewer),
) -> ViewerContext:
    if viewer is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Log in to continue",
            headers={"WWW-Authenticate": "Bearer"},
        )
    return viewer


def get_registry() -> SessionRegistry:
    return session_registry
