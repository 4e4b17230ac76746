"""
Input events forwarded by the host UI and their mapping onto step(±1).

  key    ArrowDown / PageDown / " "   → +1
         ArrowUp / PageUp             → -1
  wheel  delta_y >=  threshold        → +1
         delta_y <= -threshold        → -1   (smaller deltas are ignored)
  ended  focused video finished       → +1
"""
from typing import Annotated, Literal, Optional, Union

from pydantic import BaseModel, Field

from thriver.config import settings
from thriver.models import ChallengeBlock, VideoUnit

NEXT_KEYS = frozenset({"ArrowDown", "PageDown", " "})
PREV_KEYS = frozenset({"ArrowUp", "PageUp"})


class KeyEvent(BaseModel):
    type: Literal["key"] = "key"
    key: str


class WheelEvent(BaseModel):
    type: Literal["wheel"] = "wheel"
    delta_y: float


class MediaEndedEvent(BaseModel):
    type: Literal["ended"] = "ended"
    attempt_id: str


InputEvent = Annotated[
    Union[KeyEvent, WheelEvent, MediaEndedEvent], Field(discriminator="type")
]


def delta_for(
    event: Union[KeyEvent, WheelEvent, MediaEndedEvent],
    current: Optional[Union[VideoUnit, ChallengeBlock]],
    wheel_threshold: Optional[float] = None,
) -> Optional[int]:
    """Return +1, -1, or None when the event should not move the feed."""
    if isinstance(event, KeyEvent):
        if event.key in NEXT_KEYS:
            return +1
        if event.key in PREV_KEYS:
            return -1
        return None

    if isinstance(event, WheelEvent):
        threshold = settings.nav_wheel_threshold if wheel_threshold is None else wheel_threshold
        if abs(event.delta_y) < threshold:
            return None
        return +1 if event.delta_y > 0 else -1

    if isinstance(event, MediaEndedEvent):
        # Only the focused video may advance the feed.
        if isinstance(current, VideoUnit) and current.attempt_id == event.attempt_id:
            return +1
        return None

    return None
