from dataclasses import dataclass
from datetime import datetime
from enum import Enum as PyEnum
from typing import Optional


class SessionStatus(str, PyEnum):
    PENDING = "pending"
    UPLOADED = "uploaded"
    SIGNED = "signed"
    COMPLETED = "completed"
    ERROR = "error"
    # Sintético: nunca se almacena, se devuelve para ids desconocidos
    NOT_FOUND = "not_found"


SIGNED_STATUSES = (SessionStatus.SIGNED, SessionStatus.COMPLETED)


class SessionPool(str, PyEnum):
    SESSION = "session"
    PRESTORAGE = "prestorage"


@dataclass(frozen=True)
class SessionView:
    """Immutable snapshot of a session as seen by readers."""
    id: str
    file_name: str
    status: SessionStatus
    created_at: datetime
    pool: SessionPool = SessionPool.SESSION
    has_signed_data: bool = False
    error: Optional[str] = None
    downloaded_at: Optional[datetime] = None

    @property
    def is_ready(self) -> bool:
        return self.status == SessionStatus.COMPLETED and self.has_signed_data
