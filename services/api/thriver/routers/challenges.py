"""
Challenge endpoints:
  POST /challenges/               - create a direct or public challenge
  GET  /challenges/{id}           - detail + attempts (likes / winner for public)
  POST /challenges/{id}/attempts  - submit an attempt video
  POST /challenges/{id}/hype      - toggle the viewer's hype vote
  POST /challenges/{id}/finalize  - lock a public challenge and pick the winner
"""
import asyncio
import logging
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, status
from opentelemetry import trace

from thriver.clients.auth import ViewerContext
from thriver.clients.publishing import (
    InvalidAttemptError,
    SelfChallengeError,
    UnknownUserError,
    UploadNotAllowedError,
    VideoTooLargeError,
    publishing_client,
)
from thriver.clients.reactions import HypeState, reaction_client
from thriver.clients.records import record_client
from thriver.dependencies import get_optional_viewer, get_viewer
from thriver.models import (
    Challenge,
    DirectChallenge,
    PublicChallenge,
    can_finalize,
    can_upload,
)
from thriver.routers.attempts import build_attempt_detail
from thriver.schemas import (
    AttemptCreate,
    AttemptDetail,
    ChallengeAttemptOut,
    ChallengeCreate,
    ChallengeDetail,
)

logger = logging.getLogger(__name__)
router = APIRouter()
tracer = trace.get_tracer(__name__)


async def _load_challenge(challenge_id: str, viewer: Optional[ViewerContext]) -> Challenge:
    challenge = await record_client.get_challenge(
        challenge_id, viewer.access_token if viewer else None
    )
    if challenge is None:
        raise HTTPException(status_code=404, detail="Challenge not found")
    return challenge


@router.get("/{challenge_id}", response_model=ChallengeDetail)
async def get_challenge(
    challenge_id: str,
    viewer: Optional[ViewerContext] = Depends(get_optional_viewer),
):
    with tracer.start_as_current_span("get_challenge") as span:
        span.set_attribute("challenge.id", challenge_id)
        token = viewer.access_token if viewer else None
        challenge = await _load_challenge(challenge_id, viewer)

        hype, attempts = await asyncio.gather(
            reaction_client.hype_state(challenge_id, viewer),
            record_client.list_challenge_attempts(challenge_id, token),
        )

        if isinstance(challenge, PublicChallenge):
            states = await asyncio.gather(
                *(reaction_client.like_state(a.id, None) for a in attempts)
            )
            rows = [
                ChallengeAttemptOut(
                    attempt=a,
                    like_count=s.like_count,
                    is_winner=challenge.is_finalized and challenge.winner_attempt_id == a.id,
                )
                for a, s in zip(attempts, states)
            ]
        elif isinstance(challenge, DirectChallenge):
            rows = [ChallengeAttemptOut(attempt=a) for a in attempts]
        else:
            raise TypeError(f"Unknown challenge variant: {type(challenge).__name__}")

        viewer_id = viewer.viewer_id if viewer else None
        return ChallengeDetail(
            challenge=challenge,
            has_hyped=hype.hyped,
            can_upload=can_upload(challenge, viewer_id),
            can_finalize=can_finalize(challenge, viewer_id),
            attempts=rows,
        )


@router.post("/{challenge_id}/hype", response_model=HypeState)
async def toggle_hype(challenge_id: str, viewer: ViewerContext = Depends(get_viewer)):
    with tracer.start_as_current_span("toggle_hype"):
        return await reaction_client.toggle_hype(challenge_id, viewer)


@router.post("/{challenge_id}/finalize", response_model=ChallengeDetail)
async def finalize_challenge(challenge_id: str, viewer: ViewerContext = Depends(get_viewer)):
    """
    Only the creator of an ended, not-yet-finalized public challenge may
    finalize it. The winner is chosen by the backend RPC.
    """
    with tracer.start_as_current_span("finalize_challenge"):
        challenge = await _load_challenge(challenge_id, viewer)
        if not isinstance(challenge, PublicChallenge):
            raise HTTPException(status_code=409, detail="Only public challenges can be finalized")
        if not can_finalize(challenge, viewer.viewer_id):
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail="Challenge cannot be finalized by this user right now",
            )

        await reaction_client.finalize_public_challenge(challenge_id, viewer)
        return await get_challenge(challenge_id, viewer)


@router.post("/", response_model=ChallengeDetail, status_code=status.HTTP_201_CREATED)
async def create_challenge(body: ChallengeCreate, viewer: ViewerContext = Depends(get_viewer)):
    """
    Direct challenges name their target by username; public ones need ends_at
    (checked by the request schema).
    """
    with tracer.start_as_current_span("create_challenge") as span:
        span.set_attribute("challenge.type", body.type)
        try:
            challenge_id = await publishing_client.create_challenge(body, viewer)
        except UnknownUserError as exc:
            raise HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail=str(exc))
        except SelfChallengeError as exc:
            raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(exc))
        span.set_attribute("challenge.id", challenge_id)
        return await get_challenge(challenge_id, viewer)


@router.post(
    "/{challenge_id}/attempts",
    response_model=AttemptDetail,
    status_code=status.HTTP_201_CREATED,
)
async def submit_attempt(
    challenge_id: str,
    body: AttemptCreate,
    viewer: ViewerContext = Depends(get_viewer),
):
    with tracer.start_as_current_span("submit_attempt") as span:
        span.set_attribute("challenge.id", challenge_id)
        challenge = await _load_challenge(challenge_id, viewer)
        try:
            attempt_id = await publishing_client.submit_attempt(challenge, viewer, body)
        except UploadNotAllowedError as exc:
            raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=str(exc))
        except VideoTooLargeError as exc:
            raise HTTPException(status_code=status.HTTP_413_REQUEST_ENTITY_TOO_LARGE, detail=str(exc))
        except InvalidAttemptError as exc:
            raise HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail=str(exc))
        span.set_attribute("attempt.id", attempt_id)

        attempt = await record_client.get_attempt(attempt_id, viewer.access_token)
        if attempt is None:
            raise HTTPException(status_code=404, detail="Attempt not found")
        return await build_attempt_detail(attempt, challenge, viewer)
