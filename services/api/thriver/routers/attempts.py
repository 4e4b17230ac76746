"""
Attempt endpoints:
  GET  /attempts/{id}                    - attempt page: video, likes or completion tally
  POST /attempts/{id}/like               - toggle like
  GET  /attempts/{id}/completion         - completion vote tally (direct challenges)
  POST /attempts/{id}/completion-vote    - cast / change a yes-no vote (direct challenges)
"""
import logging
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, status
from opentelemetry import trace

from thriver.clients.auth import ViewerContext
from thriver.clients.media import get_public_url
from thriver.clients.reactions import LikeState, reaction_client
from thriver.clients.records import record_client
from thriver.dependencies import get_optional_viewer, get_viewer
from thriver.models import Attempt, Challenge, DirectChallenge, PublicChallenge
from thriver.schemas import AttemptDetail, CompletionResponse, CompletionVoteRequest

logger = logging.getLogger(__name__)
router = APIRouter()
tracer = trace.get_tracer(__name__)


async def _load(attempt_id: str, viewer: Optional[ViewerContext]) -> tuple[Attempt, Challenge]:
    token = viewer.access_token if viewer else None
    attempt = await record_client.get_attempt(attempt_id, token)
    if attempt is None:
        raise HTTPException(status_code=404, detail="Attempt not found")
    challenge = await record_client.get_challenge(attempt.challenge_id, token)
    if challenge is None:
        raise HTTPException(status_code=404, detail="Challenge not found")
    return attempt, challenge


def _require_direct(challenge: Challenge) -> DirectChallenge:
    if not isinstance(challenge, DirectChallenge):
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail="Completion votes only apply to direct-challenge attempts",
        )
    return challenge


async def build_attempt_detail(
    attempt: Attempt,
    challenge: Challenge,
    viewer: Optional[ViewerContext],
) -> AttemptDetail:
    """Public attempts carry likes and the winner flag; direct ones the completion tally."""
    detail = AttemptDetail(
        attempt=attempt,
        challenge=challenge,
        video_url=get_public_url(attempt.video_path),
    )
    if isinstance(challenge, PublicChallenge):
        detail.likes = await reaction_client.like_state(attempt.id, viewer)
        detail.is_winner = challenge.is_finalized and challenge.winner_attempt_id == attempt.id
    elif isinstance(challenge, DirectChallenge):
        state = await reaction_client.completion_state(attempt.id, viewer)
        detail.completion = CompletionResponse.from_state(attempt.id, state)
    else:
        raise TypeError(f"Unknown challenge variant: {type(challenge).__name__}")
    return detail


@router.get("/{attempt_id}", response_model=AttemptDetail)
async def get_attempt(
    attempt_id: str,
    viewer: Optional[ViewerContext] = Depends(get_optional_viewer),
):
    with tracer.start_as_current_span("get_attempt") as span:
        span.set_attribute("attempt.id", attempt_id)
        attempt, challenge = await _load(attempt_id, viewer)
        return await build_attempt_detail(attempt, challenge, viewer)


@router.post("/{attempt_id}/like", response_model=LikeState)
async def toggle_like(attempt_id: str, viewer: ViewerContext = Depends(get_viewer)):
    with tracer.start_as_current_span("toggle_like"):
        return await reaction_client.toggle_like(attempt_id, viewer)


@router.get("/{attempt_id}/completion", response_model=CompletionResponse)
async def get_completion(
    attempt_id: str,
    viewer: Optional[ViewerContext] = Depends(get_optional_viewer),
):
    _, challenge = await _load(attempt_id, viewer)
    _require_direct(challenge)
    state = await reaction_client.completion_state(attempt_id, viewer)
    return CompletionResponse.from_state(attempt_id, state)


@router.post("/{attempt_id}/completion-vote", response_model=CompletionResponse)
async def vote_completion(
    attempt_id: str,
    body: CompletionVoteRequest,
    viewer: ViewerContext = Depends(get_viewer),
):
    """Public attempts are judged by likes, so they refuse completion votes."""
    with tracer.start_as_current_span("vote_completion"):
        _, challenge = await _load(attempt_id, viewer)
        _require_direct(challenge)
        state = await reaction_client.cast_completion_vote(attempt_id, body.is_complete, viewer)
        return CompletionResponse.from_state(attempt_id, state)
