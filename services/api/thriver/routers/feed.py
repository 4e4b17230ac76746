"""
Feed session endpoints - the host UI drives a feed view through these:

  POST   /feed/sessions                open a view and run the first load
  GET    /feed/sessions/{id}           focused unit + preload URL
  POST   /feed/sessions/{id}/events    key / wheel / video-ended input
  POST   /feed/sessions/{id}/mode      tab switch (reloads)
  POST   /feed/sessions/{id}/reload    retry after a failed load
  DELETE /feed/sessions/{id}           unmount
"""
import logging

from fastapi import APIRouter, Depends, HTTPException, status
from opentelemetry import trace

from thriver.clients.auth import ViewerContext
from thriver.clients.media import get_public_url
from thriver.dependencies import get_registry, get_viewer
from thriver.feed.sessions import (
    FeedSession,
    SessionCapacityError,
    SessionNotFound,
    SessionRegistry,
)
from thriver.models import ChallengeBlock, VideoUnit, overlay_handle
from thriver.schemas import (
    ChallengeBlockCard,
    ChallengeCard,
    FeedView,
    NavigationEventRequest,
    NavigationResult,
    OpenSessionRequest,
    SwitchModeRequest,
    VideoCard,
)

logger = logging.getLogger(__name__)
router = APIRouter()
tracer = trace.get_tracer(__name__)


def _video_card(session: FeedSession, unit: VideoUnit) -> VideoCard:
    attempt = session.loader.attempts.get(unit.attempt_id)
    if attempt is None:
        return VideoCard(attempt_id=unit.attempt_id, loading=True)

    profile = session.loader.profiles.get(attempt.user_id)
    caption = (attempt.caption or "").strip()
    return VideoCard(
        attempt_id=attempt.id,
        challenge_id=attempt.challenge_id,
        challenge_title=attempt.challenge_title or "Challenge",
        caption=caption or None,
        handle=overlay_handle(attempt.user_id, profile.username if profile else None),
        author_id=attempt.user_id,
        video_url=get_public_url(attempt.video_path),
        like_count=attempt.like_count,
    )


def _block_card(session: FeedSession, unit: ChallengeBlock) -> ChallengeBlockCard:
    resolved = [
        session.loader.challenges[cid]
        for cid in unit.challenge_ids
        if cid in session.loader.challenges
    ]
    return ChallengeBlockCard(
        challenge_ids=list(unit.challenge_ids),
        anchor_challenge_id=unit.challenge_ids[0],
        loading=not resolved,
        challenges=[
            ChallengeCard(
                challenge_id=c.id,
                title=c.title,
                description=c.description,
                hype_count=c.hype_count,
                ends_at=c.ends_at,
            )
            for c in resolved
        ],
    )


def build_view(session: FeedSession) -> FeedView:
    sequencer = session.sequencer
    unit = sequencer.current

    current = None
    state = "empty"
    if isinstance(unit, VideoUnit):
        current, state = _video_card(session, unit), "video"
    elif isinstance(unit, ChallengeBlock):
        current, state = _block_card(session, unit), "challenge_block"

    return FeedView(
        session_id=session.session_id,
        viewer_id=session.viewer.viewer_id,
        mode=session.mode,
        status=session.loader.status,
        error=session.loader.error,
        state=state,
        cursor=sequencer.cursor,
        length=len(sequencer.units),
        current=current,
        preload_url=sequencer.preload_url(session.loader.attempts, get_public_url),
    )


def _lookup(registry: SessionRegistry, session_id: str, viewer: ViewerContext) -> FeedSession:
    try:
        return registry.get(session_id, viewer)
    except SessionNotFound:
        raise HTTPException(status_code=404, detail="Feed session not found")


@router.post("/sessions", response_model=FeedView, status_code=status.HTTP_201_CREATED)
async def open_session(
    body: OpenSessionRequest,
    viewer: ViewerContext = Depends(get_viewer),
    registry: SessionRegistry = Depends(get_registry),
):
    """
    Mount a feed view. A failed first load still returns the session (status
    'error', empty feed) so the client can retry with /reload.
    """
    with tracer.start_as_current_span("open_feed_session") as span:
        span.set_attribute("viewer.id", viewer.viewer_id)
        try:
            session = await registry.open(viewer, body.mode)
        except SessionCapacityError as exc:
            raise HTTPException(status_code=status.HTTP_429_TOO_MANY_REQUESTS, detail=str(exc))
        span.set_attribute("feed.session_id", session.session_id)
        return build_view(session)


@router.get("/sessions/{session_id}", response_model=FeedView)
async def get_session(
    session_id: str,
    viewer: ViewerContext = Depends(get_viewer),
    registry: SessionRegistry = Depends(get_registry),
):
    return build_view(_lookup(registry, session_id, viewer))


@router.post("/sessions/{session_id}/events", response_model=NavigationResult)
async def navigate(
    session_id: str,
    body: NavigationEventRequest,
    viewer: ViewerContext = Depends(get_viewer),
    registry: SessionRegistry = Depends(get_registry),
):
    session = _lookup(registry, session_id, viewer)
    accepted = session.handle(body.event)
    return NavigationResult(accepted=accepted, view=build_view(session))


@router.post("/sessions/{session_id}/mode", response_model=FeedView)
async def switch_mode(
    session_id: str,
    body: SwitchModeRequest,
    viewer: ViewerContext = Depends(get_viewer),
    registry: SessionRegistry = Depends(get_registry),
):
    session = _lookup(registry, session_id, viewer)
    await session.switch_mode(body.mode, viewer)
    return build_view(session)


@router.post("/sessions/{session_id}/reload", response_model=FeedView)
async def reload_session(
    session_id: str,
    viewer: ViewerContext = Depends(get_viewer),
    registry: SessionRegistry = Depends(get_registry),
):
    session = _lookup(registry, session_id, viewer)
    await session.reload(viewer)
    return build_view(session)


@router.delete("/sessions/{session_id}", status_code=status.HTTP_204_NO_CONTENT)
async def close_session(
    session_id: str,
    viewer: ViewerContext = Depends(get_viewer),
    registry: SessionRegistry = Depends(get_registry),
):
    _lookup(registry, session_id, viewer)
    registry.close(session_id)
