"""Tool-protocol sessions: explicit lifecycle and the server-to-client event queue."""

from enum import Enum
from collections import OrderedDict
from typing import Any, AsyncIterator, Dict, Optional
import asyncio
import logging
import uuid

logger = logging.getLogger(__name__)

# Seconds between keepalive comments on an idle event stream
KEEPALIVE_INTERVAL = 15.0

# Closed session ids remembered for rejection; oldest are forgotten first
RETIRED_LIMIT = 10_000


class SessionState(str, Enum):
    UNESTABLISHED = "unestablished"
    ESTABLISHED = "established"
    CLOSED = "closed"


class SessionStateError(Exception):
    """Raised on a transition or call the current session state does not allow."""


class ToolSession:
    """One agent connection. Tool calls are only accepted while ESTABLISHED."""

    def __init__(self, session_id: str):
        self.session_id = session_id
        self.state = SessionState.UNESTABLISHED
        self.stream_attached = False
        self._events: "asyncio.Queue[Optional[Dict[str, Any]]]" = asyncio.Queue()

    def __repr__(self) -> str:
        return f"ToolSession({self.session_id!r}, {self.state.value})"

    def establish(self) -> None:
        if self.state is not SessionState.UNESTABLISHED:
            raise SessionStateError(f"Cannot establish session in state {self.state.value}")
        self.state = SessionState.ESTABLISHED

    def close(self) -> None:
        if self.state is SessionState.CLOSED:
            raise SessionStateError("Session already closed")
        self.state = SessionState.CLOSED
        # Wake up the event stream so it can finish
        self._events.put_nowait(None)

    def require_established(self) -> None:
        if self.state is not SessionState.ESTABLISHED:
            raise SessionStateError(f"Session is {self.state.value}")

    def publish(self, message: Dict[str, Any]) -> bool:
        """Queue a server-to-client message. Dropped unless a stream is attached."""
        if self.state is not SessionState.ESTABLISHED or not self.stream_attached:
            return False
        self._events.put_nowait(message)
        return True

    async def events(self, keepalive: float = KEEPALIVE_INTERVAL) -> AsyncIterator[Optional[Dict[str, Any]]]:
        """
        Yield queued messages until the session closes.

        Messages queued before closing are still delivered. Yields None after
        ``keepalive`` idle seconds so the caller can emit a ping.
        """
        while True:
            if self.state is not SessionState.ESTABLISHED and self._events.empty():
                break
            try:
                message = await asyncio.wait_for(self._events.get(), timeout=keepalive)
            except asyncio.TimeoutError:
                yield None
                continue
            if message is None:
                break
            yield message


class SessionManager:
    """Mints, tracks and retires sessions. Used from the event loop only."""

    def __init__(self, retired_limit: int = RETIRED_LIMIT):
        self._sessions: Dict[str, ToolSession] = {}
        self._retired: "OrderedDict[str, None]" = OrderedDict()
        self._retired_limit = retired_limit

    def __len__(self) -> int:
        return len(self._sessions)

    def _mint_id(self) -> str:
        while True:
            session_id = uuid.uuid4().hex
            if session_id not in self._sessions and session_id not in self._retired:
                return session_id

    def open(self) -> ToolSession:
        """Create and establish a new session."""
        session = ToolSession(self._mint_id())
        session.establish()
        self._sessions[session.session_id] = session
        logger.info(f"Tool session {session.session_id} established")
        return session

    def get(self, session_id: str) -> Optional[ToolSession]:
        """Return a live session, or None for unknown and closed ids."""
        session = self._sessions.get(session_id)
        if session is None or session.state is not SessionState.ESTABLISHED:
            return None
        return session

    def close(self, session_id: str) -> bool:
        session = self._sessions.pop(session_id, None)
        if session is None:
            return False
        self._retired[session_id] = None
        while len(self._retired) > self._retired_limit:
            self._retired.popitem(last=False)
        if session.state is not SessionState.CLOSED:
            session.close()
        logger.info(f"Tool session {session_id} closed")
        return True

    def close_all(self) -> None:
        for session_id in list(self._sessions):
            self.close(session_id)

    def is_retired(self, session_id: str) -> bool:
        return session_id in self._retired
