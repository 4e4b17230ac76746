"""
Media locator resolver.

Attempt videos live in the public `videos` Storage bucket, so a stored
video_path maps to a fetchable URL without a round trip:

  {supabase_url}/storage/v1/object/public/{bucket}/{video_path}

The player streams straight from Storage; the API never proxies bytes.
An attempt whose upload has not finished has no URL yet.
"""
import logging
from typing import Optional
from urllib.parse import quote

from thriver.config import settings

logger = logging.getLogger(__name__)

PENDING_VIDEO_PATH = "pending"


def get_public_url(video_path: Optional[str]) -> Optional[str]:
    if not video_path or video_path == PENDING_VIDEO_PATH:
        return None
    return f"{settings.storage_public_url}/{quote(video_path.lstrip('/'), safe='/')}"
