"""
Pydantic request / response schemas for the API layer.
Kept separate from the domain value objects so the wire shape can evolve.
"""
from datetime import datetime, timezone
from typing import Literal, Optional, Union

from pydantic import BaseModel, Field, field_validator, model_validator

from thriver.clients.reactions import CompletionState, LikeState
from thriver.feed.loader import LoadStatus
from thriver.feed.navigation import InputEvent
from thriver.models import (
    Attempt,
    Challenge,
    ChallengeAttempt,
    ChallengeSummary,
    Comment,
    FeedMode,
    Profile,
    ProfileStats,
    normalize_tags,
    normalize_username,
)


# ──────────────────────────── Feed sessions ───────────────────────────────

class OpenSessionRequest(BaseModel):
    mode: FeedMode = FeedMode.FOR_YOU


class SwitchModeRequest(BaseModel):
    mode: FeedMode


class NavigationEventRequest(BaseModel):
    event: InputEvent


class VideoCard(BaseModel):
    """The focused video. `loading` while its attempt record is unresolved."""
    kind: Literal["video"] = "video"
    attempt_id: str
    loading: bool = False
    challenge_id: Optional[str] = None
    challenge_title: Optional[str] = None
    caption: Optional[str] = None
    handle: Optional[str] = None
    author_id: Optional[str] = None
    video_url: Optional[str] = None
    like_count: int = 0


class ChallengeCard(BaseModel):
    challenge_id: str
    title: str
    description: str
    hype_count: int
    ends_at: Optional[datetime]


class ChallengeBlockCard(BaseModel):
    kind: Literal["challenge_block"] = "challenge_block"
    challenge_ids: list[str]
    # Actions on a block (hype, comments) are pinned to its first challenge
    anchor_challenge_id: str
    loading: bool = False
    challenges: list[ChallengeCard] = Field(default_factory=list)


class FeedView(BaseModel):
    session_id: str
    viewer_id: str
    mode: FeedMode
    status: LoadStatus
    error: Optional[str] = None
    state: Literal["empty", "video", "challenge_block"]
    cursor: int
    length: int
    current: Optional[Union[VideoCard, ChallengeBlockCard]] = None
    preload_url: Optional[str] = None


class NavigationResult(BaseModel):
    accepted: bool
    view: FeedView


# ──────────────────────────── Reactions ───────────────────────────────────

class CompletionVoteRequest(BaseModel):
    is_complete: bool


class CompletionResponse(BaseModel):
    attempt_id: str
    yes: int
    no: int
    yes_percent: int
    earns_reward: bool
    my_vote: Optional[bool]

    @classmethod
    def from_state(cls, attempt_id: str, state: CompletionState) -> "CompletionResponse":
        return cls(
            attempt_id=attempt_id,
            yes=state.tally.yes,
            no=state.tally.no,
            yes_percent=state.tally.yes_percent,
            earns_reward=state.tally.earns_reward,
            my_vote=state.my_vote,
        )


class CommentCreate(BaseModel):
    body: str = Field(..., min_length=1, max_length=2000)


class CommentList(BaseModel):
    comments: list[Comment]


# ──────────────────────────── Challenges ──────────────────────────────────

class ChallengeAttemptOut(BaseModel):
    attempt: ChallengeAttempt
    like_count: Optional[int] = None      # public challenges only
    is_winner: bool = False


class ChallengeDetail(BaseModel):
    challenge: Challenge
    has_hyped: bool
    can_upload: bool
    can_finalize: bool
    attempts: list[ChallengeAttemptOut]


class ChallengeCreate(BaseModel):
    type: Literal["direct", "public"] = "public"
    title: str
    description: str
    rules: Optional[str] = None
    proof_requirements: Optional[str] = None
    difficulty: int = Field(1, ge=1, le=5)
    tags: list[str] = Field(default_factory=list)
    target_username: Optional[str] = None   # direct only
    ends_at: Optional[datetime] = None      # public only, required there

    @field_validator("title", "description")
    @classmethod
    def _required_text(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("Title and description are required")
        return v

    @field_validator("rules", "proof_requirements")
    @classmethod
    def _optional_text(cls, v: Optional[str]) -> Optional[str]:
        return (v or "").strip() or None

    @field_validator("tags", mode="before")
    @classmethod
    def _tags(cls, v):
        return normalize_tags(v)

    @field_validator("ends_at")
    @classmethod
    def _utc(cls, v: Optional[datetime]) -> Optional[datetime]:
        if v is not None and v.tzinfo is None:
            return v.replace(tzinfo=timezone.utc)
        return v

    @model_validator(mode="after")
    def _fields_for_type(self) -> "ChallengeCreate":
        if self.type == "direct":
            self.target_username = (self.target_username or "").strip().lower()
            if not self.target_username:
                raise ValueError("Target username is required for a direct challenge")
        elif self.ends_at is None:
            raise ValueError("Public challenges require an end date/time (ends_at)")
        return self


# ──────────────────────────── Attempts ────────────────────────────────────

class AttemptDetail(BaseModel):
    attempt: Attempt
    challenge: Challenge
    video_url: Optional[str] = None         # None until the upload has landed
    is_winner: bool = False
    likes: Optional[LikeState] = None       # public challenges only
    completion: Optional[CompletionResponse] = None   # direct challenges only


# ──────────────────────────── Profiles ────────────────────────────────────

class ProfileView(BaseModel):
    profile: Profile
    stats: ProfileStats
    # None when anonymous or looking at your own profile
    is_following: Optional[bool] = None


class ProfileVideo(BaseModel):
    attempt_id: str
    challenge_id: str
    challenge_title: Optional[str]
    video_url: Optional[str]
    like_count: int
    created_at: datetime


class ProfileVideos(BaseModel):
    videos: list[ProfileVideo]


class ProfileChallenges(BaseModel):
    challenges: list[ChallengeSummary]


class OnboardingRequest(BaseModel):
    username: str

    @field_validator("username")
    @classmethod
    def _username(cls, v: str) -> str:
        return normalize_username(v)


class MeResponse(BaseModel):
    viewer_id: str
    profile: Optional[Profile] = None
    needs_onboarding: bool


class AttemptCreate(BaseModel):
    # Base64-encoded video payload, stored in the videos bucket
    video_base64: str
    content_type: str = Field("video/mp4", pattern="^video/")
    filename: Optional[str] = None
    caption: Optional[str] = None
