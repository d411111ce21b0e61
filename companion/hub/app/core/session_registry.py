"""
Process-wide map of which session currently speaks for which user.
"""
import logging
import threading
from dataclasses import dataclass
from typing import Dict, List, Optional

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SessionHandle:
    """One network session: its transport id and the verified uid, if any."""
    sid: str
    uid: Optional[str] = None

    @property
    def is_authenticated(self) -> bool:
        return self.uid is not None


class SessionRegistry:
    """
    Maps a user id to its live session handle.

    At most one handle is kept per user; registering again replaces the
    previous handle, which is then treated as stale. All access goes
    through one lock that is only held for the dict operation itself, so
    the registry can be shared by any number of sessions and threads.
    """

    def __init__(self):
        self._sessions: Dict[str, SessionHandle] = {}
        self._lock = threading.Lock()

    def register(self, uid: str, handle: SessionHandle) -> Optional[SessionHandle]:
        """Bind `uid` to `handle` and return the handle it replaced, if any."""
        with self._lock:
            previous = self._sessions.get(uid)
            self._sessions[uid] = handle

        if previous is not None and previous != handle:
            logger.info(
                f"User {uid} moved from session {previous.sid} to {handle.sid}"
            )
            return previous
        logger.info(f"Registered session: user {uid} <-> sid {handle.sid}")
        return None

    def unregister(self, uid: str,
                   handle: Optional[SessionHandle] = None) -> bool:
        """
        Remove the entry for `uid`.

        When `handle` is given the entry is only removed if it is still that
        handle, so a stale session cannot evict its replacement.
        """
        with self._lock:
            current = self._sessions.get(uid)
            if current is None:
                return False
            if handle is not None and current != handle:
                return False
            del self._sessions[uid]
        logger.info(f"Unregistered session: user {uid} <-> sid {current.sid}")
        return True

    def lookup(self, uid: str) -> Optional[SessionHandle]:
        with self._lock:
            return self._sessions.get(uid)

    def is_current(self, uid: str, handle: SessionHandle) -> bool:
        """True if `handle` is the session currently registered for `uid`."""
        with self._lock:
            return self._sessions.get(uid) == handle

    def handles(self) -> List[SessionHandle]:
        with self._lock:
            return list(self._sessions.values())

    def __len__(self) -> int:
        with self._lock:
            return len(self._sessions)

    def __contains__(self, uid: object) -> bool:
        with self._lock:
            return uid in self._sessions
