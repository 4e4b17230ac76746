"""
Publishing service - new challenges and new attempts.

Challenge creation:
  direct  target looked up by username; challenging yourself is refused
  public  needs an end time; the winner is picked at finalize

Attempt submission (three writes, in this order):
  1. insert the attempts row with video_path "pending" to get its id
  2. upload the video to attempts/{user_id}/{attempt_id}.{ext}
  3. point the row's video_path at the uploaded object
"""
import base64
import binascii
import logging
from typing import Optional

from thriver.clients.auth import ViewerContext
from thriver.clients.media import PENDING_VIDEO_PATH
from thriver.clients.profiles import ProfileClient, profile_client
from thriver.clients.supabase_client import SupabaseClient, eq, supabase
from thriver.config import settings
from thriver.models import Challenge, can_upload
from thriver.schemas import AttemptCreate, ChallengeCreate

logger = logging.getLogger(__name__)

DEFAULT_VIDEO_EXT = "mp4"


class UnknownUserError(LookupError):
    pass


class SelfChallengeError(ValueError):
    pass


class UploadNotAllowedError(PermissionError):
    pass


class InvalidAttemptError(ValueError):
    pass


class VideoTooLargeError(ValueError):
    pass


def video_extension(filename: Optional[str]) -> str:
    if not filename or "." not in filename:
        return DEFAULT_VIDEO_EXT
    return filename.rsplit(".", 1)[-1].strip().lower() or DEFAULT_VIDEO_EXT


def attempt_video_path(user_id: str, attempt_id: str, filename: Optional[str]) -> str:
    return f"attempts/{user_id}/{attempt_id}.{video_extension(filename)}"


class PublishingClient:
    def __init__(self, backend: SupabaseClient, profiles: ProfileClient) -> None:
        self.backend = backend
        self.profiles = profiles

    async def create_challenge(self, draft: ChallengeCreate, viewer: ViewerContext) -> str:
        """Insert the challenge and return its id."""
        token = viewer.access_token
        target_user_id: Optional[str] = None
        ends_at: Optional[str] = None

        if draft.type == "direct":
            target = await self.profiles.get_by_username(draft.target_username or "", token)
            if target is None:
                raise UnknownUserError("No user found with that username")
            if target.id == viewer.viewer_id:
                raise SelfChallengeError("You can't challenge yourself")
            target_user_id = target.id
        else:
            ends_at = draft.ends_at.isoformat()

        row = await self.backend.insert(
            "challenges",
            {
                "creator_id": viewer.viewer_id,
                "type": draft.type,
                "title": draft.title,
                "description": draft.description,
                "rules": draft.rules,
                "proof_requirements": draft.proof_requirements,
                "difficulty": draft.difficulty,
                "tags": draft.tags,
                "target_user_id": target_user_id,
                "ends_at": ends_at,
            },
            token,
            returning="id",
        )
        challenge_id = str(row["id"])
        logger.info("Challenge %s (%s) created by %s", challenge_id, draft.type, viewer.viewer_id)
        return challenge_id

    async def submit_attempt(
        self,
        challenge: Challenge,
        viewer: ViewerContext,
        upload: AttemptCreate,
    ) -> str:
        """Create the attempt, upload its video and return the attempt id."""
        if not can_upload(challenge, viewer.viewer_id):
            raise UploadNotAllowedError("Only the challenged user can answer a direct challenge")

        text = (upload.caption or "").strip()
        if len(text) > settings.attempt_caption_max_chars:
            raise InvalidAttemptError(
                f"Caption too long. Max {settings.attempt_caption_max_chars} characters"
            )
        try:
            video = base64.b64decode(upload.video_base64, validate=True)
        except binascii.Error as exc:
            raise InvalidAttemptError("Video payload is not valid base64") from exc
        if not video:
            raise InvalidAttemptError("Please choose a video file")
        size_mb = len(video) / (1024 * 1024)
        if size_mb > settings.attempt_max_upload_mb:
            raise VideoTooLargeError(
                f"File too large ({size_mb:.1f}MB). Max {settings.attempt_max_upload_mb}MB"
            )

        token = viewer.access_token
        row = await self.backend.insert(
            "attempts",
            {
                "challenge_id": challenge.id,
                "user_id": viewer.viewer_id,
                "video_path": PENDING_VIDEO_PATH,
                "caption": text or None,
            },
            token,
            returning="id",
        )
        attempt_id = str(row["id"])

        path = attempt_video_path(viewer.viewer_id, attempt_id, upload.filename)
        await self.backend.upload(settings.videos_bucket, path, video, upload.content_type, token)
        await self.backend.update("attempts", {"video_path": path}, {"id": eq(attempt_id)}, token)

        logger.info("Attempt %s uploaded to %s (%.1fMB)", attempt_id, path, size_mb)
        return attempt_id


# Singleton
publishing_client = PublishingClient(supabase, profile_client)
