import logging
import threading
import uuid
from contextlib import contextmanager
from dataclasses import replace
from datetime import datetime, timedelta, timezone
from typing import Callable, Dict, Iterator, List, Optional

from modules.signing.exceptions import SessionNotFound
from modules.signing.models.session import (
    SIGNED_STATUSES,
    SessionPool,
    SessionStatus,
    SessionView,
)

logger = logging.getLogger(__name__)

Clock = Callable[[], datetime]


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def new_session_id() -> str:
    return f"sign_{uuid.uuid4().hex}"


class _Entry:
    __slots__ = ("view", "lock")

    def __init__(self, view: SessionView):
        self.view = view
        self.lock = threading.RLock()


class SessionRegistry:
    """
    Metadatos del ciclo de vida de cada sesión de firma.

    Cada entrada tiene su propio lock; el lock del mapa solo protege altas y
    bajas. Los lectores reciben instantáneas inmutables (``SessionView``).
    """

    def __init__(self, clock: Clock = utc_now):
        self._clock = clock
        self._sessions: Dict[str, _Entry] = {}
        self._lock = threading.Lock()

    def create(
        self,
        file_name: str,
        session_id: Optional[str] = None,
        pool: SessionPool = SessionPool.SESSION,
    ) -> SessionView:
        session_id = session_id or new_session_id()
        view = SessionView(
            id=session_id,
            file_name=file_name,
            status=SessionStatus.PENDING,
            created_at=self._clock(),
            pool=pool,
        )
        with self._lock:
            self._sessions[session_id] = _Entry(view)
        logger.info("Nueva sesión %s para %s (%s)", session_id, file_name, pool.value)
        return view

    def get(self, session_id: str) -> Optional[SessionView]:
        entry = self._sessions.get(session_id)
        return entry.view if entry else None

    def transition(
        self,
        session_id: str,
        new_status: SessionStatus,
        signed: bool = False,
        error: Optional[str] = None,
    ) -> SessionView:
        """
        Changes the status of a session.

        ``signed`` requires a signed status and ``error`` requires ERROR; both
        together are rejected. Out-of-order transitions are accepted: the last
        write wins.
        """
        if signed and error is not None:
            raise ValueError("signed data and error are mutually exclusive")
        if signed and new_status not in SIGNED_STATUSES:
            raise ValueError(f"signed data requires a signed status, got {new_status.value}")
        if error is not None and new_status != SessionStatus.ERROR:
            raise ValueError(f"error requires status 'error', got {new_status.value}")
        if new_status == SessionStatus.NOT_FOUND:
            raise ValueError("not_found is never stored")

        entry = self._entry(session_id)
        with entry.lock:
            previous = entry.view
            if new_status == SessionStatus.ERROR:
                has_signed = False
            elif new_status in SIGNED_STATUSES:
                has_signed = signed or previous.has_signed_data
            else:
                has_signed = previous.has_signed_data
            entry.view = replace(
                previous,
                status=new_status,
                has_signed_data=has_signed,
                error=error if new_status == SessionStatus.ERROR else None,
            )
            current = entry.view

        if previous.status != new_status:
            logger.info(
                "Sesión %s: %s -> %s", session_id, previous.status.value, new_status.value
            )
        return current

    @contextmanager
    def locked(self, session_id: str) -> Iterator[None]:
        """Holds the session lock so several steps apply as one transition."""
        entry = self._entry(session_id)
        with entry.lock:
            yield

    def mark_downloaded(self, session_id: str, when: Optional[datetime] = None) -> SessionView:
        entry = self._entry(session_id)
        with entry.lock:
            if entry.view.downloaded_at is None:
                entry.view = replace(entry.view, downloaded_at=when or self._clock())
            return entry.view

    def expire(
        self,
        now: datetime,
        ttl: timedelta,
        pool: Optional[SessionPool] = None,
    ) -> List[str]:
        """Ids of sessions older than ``ttl`` at ``now``. Does not mutate."""
        cutoff = now - ttl
        return [
            session_id
            for session_id, entry in list(self._sessions.items())
            if entry.view.created_at < cutoff
            and (pool is None or entry.view.pool == pool)
        ]

    def consumed(self, now: datetime, grace: timedelta) -> List[str]:
        """Ids of downloaded sessions whose grace window has elapsed."""
        return [
            session_id
            for session_id, entry in list(self._sessions.items())
            if entry.view.downloaded_at is not None
            and entry.view.downloaded_at + grace <= now
        ]

    def delete(self, session_id: str) -> bool:
        with self._lock:
            return self._sessions.pop(session_id, None) is not None

    def ids(self) -> List[str]:
        return list(self._sessions.keys())

    def __contains__(self, session_id: str) -> bool:
        return session_id in self._sessions

    def __len__(self) -> int:
        return len(self._sessions)

    def _entry(self, session_id: str) -> _Entry:
        entry = self._sessions.get(session_id)
        if entry is None:
            raise SessionNotFound(session_id)
        return entry
