"""
Feed sessions - one per mounted feed view on a client.

A session bundles the viewer, the active tab (for_you / following), the
sequencer that owns the cursor, and the loader that owns the records.
Closing a session cancels the navigation timer; the registry closes every
session on shutdown.

Limits:
  per viewer  opening one more than `max_sessions_per_viewer` evicts that
              viewer's own oldest session (a stale tab)
  process     at `max_open_sessions` new opens are refused; other viewers'
              sessions are never evicted
"""
import logging
import secrets
import time
from dataclasses import dataclass, field
from typing import Optional, Union

from thriver.clients.auth import ViewerContext
from thriver.clients.candidates import CandidateClient
from thriver.clients.records import RecordClient
from thriver.config import settings
from thriver.feed.loader import FeedLoader
from thriver.feed.navigation import KeyEvent, MediaEndedEvent, WheelEvent, delta_for
from thriver.feed.sequencer import FeedSequencer
from thriver.models import FeedMode
from thriver.telemetry import FEED_SESSIONS_OPEN

logger = logging.getLogger(__name__)


class SessionNotFound(KeyError):
    pass


class SessionCapacityError(RuntimeError):
    """No room for another session in this process."""


@dataclass
class FeedSession:
    session_id: str
    viewer: ViewerContext
    mode: FeedMode
    sequencer: FeedSequencer
    loader: FeedLoader
    created_at: float = field(default_factory=time.time)

    async def reload(self, viewer: Optional[ViewerContext] = None) -> bool:
        if viewer is not None:
            # Tokens rotate; keep the freshest one for backend calls.
            self.viewer = viewer
        return await self.loader.load(self.viewer, self.mode)

    async def switch_mode(self, mode: FeedMode, viewer: Optional[ViewerContext] = None) -> bool:
        self.mode = mode
        return await self.reload(viewer)

    def handle(self, event: Union[KeyEvent, WheelEvent, MediaEndedEvent]) -> bool:
        """Apply one input event. True if the cursor step was accepted."""
        delta = delta_for(event, self.sequencer.current)
        if delta is None:
            return False
        return self.sequencer.step(delta)

    def close(self) -> None:
        self.sequencer.close()


class SessionRegistry:
    def __init__(
        self,
        candidates: Optional[CandidateClient] = None,
        records: Optional[RecordClient] = None,
        max_sessions: Optional[int] = None,
        max_per_viewer: Optional[int] = None,
        cooldown: Optional[float] = None,
    ) -> None:
        self._candidates = candidates
        self._records = records
        self._cooldown = cooldown
        self._max_sessions = max_sessions or settings.max_open_sessions
        self._max_per_viewer = max_per_viewer or settings.max_sessions_per_viewer
        self._sessions: dict[str, FeedSession] = {}

    def __len__(self) -> int:
        return len(self._sessions)

    async def open(self, viewer: ViewerContext, mode: FeedMode = FeedMode.FOR_YOU) -> FeedSession:
        own = self.sessions_of(viewer)
        while len(own) >= self._max_per_viewer:
            oldest = own.pop(0)
            logger.info(
                "Viewer %s at session limit - evicting %s", viewer.viewer_id, oldest.session_id
            )
            self.close(oldest.session_id)

        if len(self._sessions) >= self._max_sessions:
            logger.warning("Session capacity reached (%d open)", len(self._sessions))
            raise SessionCapacityError(f"{len(self._sessions)} feed sessions already open")

        sequencer = FeedSequencer(cooldown=self._cooldown)
        session = FeedSession(
            session_id=secrets.token_urlsafe(16),
            viewer=viewer,
            mode=mode,
            sequencer=sequencer,
            loader=FeedLoader(sequencer, self._candidates, self._records),
        )
        self._sessions[session.session_id] = session
        FEED_SESSIONS_OPEN.set(len(self._sessions))
        logger.info("Opened feed session %s (viewer=%s mode=%s)", session.session_id, viewer.viewer_id, mode.value)

        await session.reload()
        return session

    def sessions_of(self, viewer: ViewerContext) -> list[FeedSession]:
        """The viewer's open sessions, oldest first."""
        return [s for s in self._sessions.values() if s.viewer.viewer_id == viewer.viewer_id]

    def get(self, session_id: str, viewer: ViewerContext) -> FeedSession:
        session = self._sessions.get(session_id)
        if session is None or session.viewer.viewer_id != viewer.viewer_id:
            raise SessionNotFound(session_id)
        return session

    def close(self, session_id: str) -> None:
        session = self._sessions.pop(session_id, None)
        if session is None:
            raise SessionNotFound(session_id)
        session.close()
        FEED_SESSIONS_OPEN.set(len(self._sessions))
        logger.info("Closed feed session %s", session_id)

    def close_all(self) -> None:
        for session_id in list(self._sessions):
            self.close(session_id)


# Singleton - closed in app lifespan (main.py)
session_registry = SessionRegistry()
