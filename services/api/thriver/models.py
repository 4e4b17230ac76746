"""
Domain value objects for the feed.

Backend rows (resolved from Supabase):
  AttemptRef   - a video attempt snapshot (+ parent challenge title)
  ChallengeRef - a challenge card snapshot shown inside challenge blocks
  ProfileRef   - author handle for the video overlay
  Challenge    - full challenge detail, a closed union of Direct | Public
  Attempt      - full attempt row (status, reward) for the attempt page
  Profile      - public profile + stats for the profile page

Feed units (built locally, never mutated):
  VideoUnit      - one attempt
  ChallengeBlock - up to 3 challenge ids shown together
"""
import math
import re
from datetime import datetime, timezone
from enum import Enum
from typing import Annotated, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field


class FeedMode(str, Enum):
    FOR_YOU = "for_you"
    FOLLOWING = "following"


class _Frozen(BaseModel):
    model_config = ConfigDict(frozen=True, extra="ignore")


# ──────────────────────────── Backend records ─────────────────────────────

class AttemptRef(_Frozen):
    id: str
    challenge_id: str
    user_id: str
    caption: Optional[str] = None
    video_path: str
    like_count: int = 0
    created_at: datetime
    challenge_title: Optional[str] = None


class ChallengeRef(_Frozen):
    id: str
    title: str
    description: str = ""
    hype_count: int = 0
    ends_at: Optional[datetime] = None
    created_at: datetime


class ProfileRef(_Frozen):
    id: str
    username: Optional[str] = None


def overlay_handle(user_id: str, username: Optional[str]) -> str:
    """Handle shown on a video: username, else a short user-id prefix, never '@'-prefixed."""
    return (username or user_id[:6]).lstrip("@")


USERNAME_PATTERN = re.compile(r"^[a-z0-9_]{3,20}$")


def normalize_username(raw: str) -> str:
    """Lower-cased, trimmed username; ValueError unless 3-20 of a-z, 0-9, _."""
    username = raw.strip().lower()
    if not USERNAME_PATTERN.match(username):
        raise ValueError("Username must be 3-20 chars: a-z, 0-9, underscore")
    return username


def normalize_tags(raw: Union[str, list[str], None]) -> list[str]:
    """Comma-separated or listed tags, trimmed and lower-cased, blanks dropped."""
    if raw is None:
        return []
    parts = raw.split(",") if isinstance(raw, str) else raw
    return [t.strip().lower() for t in parts if t and t.strip()]


class _ChallengeBase(_Frozen):
    id: str
    creator_id: str
    title: str
    description: str = ""
    rules: Optional[str] = None
    proof_requirements: Optional[str] = None
    difficulty: int = 1
    tags: list[str] = Field(default_factory=list)
    hype_count: int = 0
    created_at: datetime


class DirectChallenge(_ChallengeBase):
    """A dare aimed at one user; resolved by community completion votes."""
    type: Literal["direct"] = "direct"
    target_user_id: str


class PublicChallenge(_ChallengeBase):
    """An open, time-boxed contest; resolved by likes at finalize time."""
    type: Literal["public"] = "public"
    ends_at: Optional[datetime] = None
    is_finalized: bool = False
    finalized_at: Optional[datetime] = None
    winner_attempt_id: Optional[str] = None

    def has_ended(self, now: Optional[datetime] = None) -> bool:
        if self.ends_at is None:
            return False
        now = now or datetime.now(timezone.utc)
        ends_at = self.ends_at
        if ends_at.tzinfo is None:
            ends_at = ends_at.replace(tzinfo=timezone.utc)
        return ends_at <= now


Challenge = Annotated[
    Union[DirectChallenge, PublicChallenge], Field(discriminator="type")
]


def can_upload(challenge: Challenge, viewer_id: Optional[str]) -> bool:
    """Anyone signed in may attempt a public challenge; only the target may attempt a direct one."""
    if viewer_id is None:
        return False
    if isinstance(challenge, PublicChallenge):
        return True
    if isinstance(challenge, DirectChallenge):
        return challenge.target_user_id == viewer_id
    raise TypeError(f"Unknown challenge variant: {type(challenge).__name__}")


def can_finalize(
    challenge: Challenge,
    viewer_id: Optional[str],
    now: Optional[datetime] = None,
) -> bool:
    if isinstance(challenge, DirectChallenge):
        return False
    if isinstance(challenge, PublicChallenge):
        return (
            viewer_id is not None
            and viewer_id == challenge.creator_id
            and challenge.ends_at is not None
            and challenge.has_ended(now)
            and not challenge.is_finalized
        )
    raise TypeError(f"Unknown challenge variant: {type(challenge).__name__}")


class ChallengeAttempt(_Frozen):
    """Attempt row as listed on a challenge page."""
    id: str
    user_id: str
    created_at: datetime
    status: Optional[str] = None
    is_rewarded: bool = False
    awarded_hype: int = 0


class Attempt(_Frozen):
    """Full attempt row. `video_path` is "pending" until the upload lands."""
    id: str
    challenge_id: str
    user_id: str
    caption: Optional[str] = None
    video_path: str
    status: Optional[str] = None
    is_rewarded: bool = False
    awarded_hype: int = 0
    like_count: int = 0
    created_at: datetime


class ChallengeSummary(_Frozen):
    """Challenge row as listed on its creator's profile."""
    id: str
    type: Literal["direct", "public"]
    title: str
    hype_count: int = 0
    target_user_id: Optional[str] = None
    created_at: datetime


class Profile(_Frozen):
    id: str
    username: str
    avatar_url: Optional[str] = None


class ProfileStats(_Frozen):
    posts: int = 0
    hype: int = 0
    likes: int = 0


class VideoSort(str, Enum):
    RECENT = "recent"
    LIKES = "likes"


class ChallengeSort(str, Enum):
    RECENT = "recent"
    HYPE = "hype"


class Comment(_Frozen):
    id: str
    author_id: str
    body: str
    created_at: datetime


class CommentTarget(str, Enum):
    CHALLENGE = "challenge"
    ATTEMPT = "attempt"


class CompletionTally(_Frozen):
    """Yes/no completion votes on a direct-challenge attempt."""
    yes: int = 0
    no: int = 0

    @property
    def total(self) -> int:
        return self.yes + self.no

    @property
    def yes_percent(self) -> int:
        if self.total == 0:
            return 0
        # Half rounds up, as the vote meter shows it.
        return math.floor(self.yes * 100 / self.total + 0.5)

    @property
    def earns_reward(self) -> bool:
        # Strictly over half; an exact 50% tie revokes.
        return self.yes * 2 > self.total


# ──────────────────────────── Feed units ──────────────────────────────────

class VideoUnit(_Frozen):
    kind: Literal["video"] = "video"
    attempt_id: str


class ChallengeBlock(_Frozen):
    kind: Literal["challenge_block"] = "challenge_block"
    challenge_ids: tuple[str, ...]
