"""
Profile endpoints:
  GET  /me                             - who am I, and do I still need a username
  POST /me/profile                     - onboarding: claim a username
  GET  /users/{username}               - profile header + stats
  GET  /users/{username}/videos        - their attempts (?sort=recent|likes)
  GET  /users/{username}/challenges    - challenges they created (?sort=recent|hype)
  GET  /users/{username}/liked         - attempts they liked
"""
import logging
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query, status
from opentelemetry import trace

from thriver.clients.auth import ViewerContext
from thriver.clients.media import get_public_url
from thriver.clients.profiles import ProfileExistsError, UsernameTakenError, profile_client
from thriver.clients.reactions import reaction_client
from thriver.clients.records import record_client
from thriver.dependencies import get_optional_viewer, get_viewer
from thriver.models import AttemptRef, ChallengeSort, Profile, VideoSort
from thriver.schemas import (
    MeResponse,
    OnboardingRequest,
    ProfileChallenges,
    ProfileVideo,
    ProfileVideos,
    ProfileView,
)

logger = logging.getLogger(__name__)
router = APIRouter()
tracer = trace.get_tracer(__name__)


def _token(viewer: Optional[ViewerContext]) -> Optional[str]:
    return viewer.access_token if viewer else None


async def _profile_or_404(username: str, viewer: Optional[ViewerContext]) -> Profile:
    profile = await profile_client.get_by_username(username, _token(viewer))
    if profile is None:
        raise HTTPException(status_code=404, detail="Profile not found")
    return profile


def _videos(attempts: list[AttemptRef]) -> ProfileVideos:
    return ProfileVideos(
        videos=[
            ProfileVideo(
                attempt_id=a.id,
                challenge_id=a.challenge_id,
                challenge_title=a.challenge_title,
                video_url=get_public_url(a.video_path),
                like_count=a.like_count,
                created_at=a.created_at,
            )
            for a in attempts
        ]
    )


@router.get("/me", response_model=MeResponse, tags=["Profiles"])
async def get_me(viewer: ViewerContext = Depends(get_viewer)):
    profile = await profile_client.get(viewer.viewer_id, viewer.access_token)
    return MeResponse(viewer_id=viewer.viewer_id, profile=profile, needs_onboarding=profile is None)


@router.post(
    "/me/profile",
    response_model=Profile,
    status_code=status.HTTP_201_CREATED,
    tags=["Profiles"],
)
async def create_profile(body: OnboardingRequest, viewer: ViewerContext = Depends(get_viewer)):
    try:
        return await profile_client.create(body.username, viewer)
    except (ProfileExistsError, UsernameTakenError) as exc:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(exc))


@router.get("/users/{username}", response_model=ProfileView, tags=["Profiles"])
async def get_profile(
    username: str,
    viewer: Optional[ViewerContext] = Depends(get_optional_viewer),
):
    with tracer.start_as_current_span("get_profile") as span:
        profile = await _profile_or_404(username, viewer)
        span.set_attribute("profile.id", profile.id)

        stats = await profile_client.stats(profile.id, _token(viewer))
        is_following = None
        if viewer is not None and viewer.viewer_id != profile.id:
            is_following = await reaction_client.is_following(profile.id, viewer)
        return ProfileView(profile=profile, stats=stats, is_following=is_following)


@router.get("/users/{username}/videos", response_model=ProfileVideos, tags=["Profiles"])
async def list_videos(
    username: str,
    sort: VideoSort = Query(VideoSort.RECENT),
    viewer: Optional[ViewerContext] = Depends(get_optional_viewer),
):
    profile = await _profile_or_404(username, viewer)
    return _videos(await record_client.list_user_attempts(profile.id, sort, _token(viewer)))


@router.get("/users/{username}/challenges", response_model=ProfileChallenges, tags=["Profiles"])
async def list_challenges(
    username: str,
    sort: ChallengeSort = Query(ChallengeSort.RECENT),
    viewer: Optional[ViewerContext] = Depends(get_optional_viewer),
):
    profile = await _profile_or_404(username, viewer)
    challenges = await record_client.list_user_challenges(profile.id, sort, _token(viewer))
    return ProfileChallenges(challenges=challenges)


@router.get("/users/{username}/liked", response_model=ProfileVideos, tags=["Profiles"])
async def list_liked(
    username: str,
    viewer: Optional[ViewerContext] = Depends(get_optional_viewer),
):
    profile = await _profile_or_404(username, viewer)
    return _videos(await record_client.list_liked_attempts(profile.id, _token(viewer)))
