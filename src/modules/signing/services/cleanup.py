import logging
from datetime import datetime, timedelta
from typing import Iterable, List, Optional, Set

from modules.signing.models.session import SessionPool
from modules.signing.services.document_store import DocumentStore
from modules.signing.services.session_registry import Clock, SessionRegistry, utc_now

logger = logging.getLogger(__name__)


class RetentionSweeper:
    """
    Borra sesiones caducadas, sesiones ya descargadas tras la ventana de
    gracia y documentos huérfanos. Un fallo al borrar una entrada no detiene
    la pasada.
    """

    def __init__(
        self,
        registry: SessionRegistry,
        store: DocumentStore,
        session_ttl: timedelta = timedelta(hours=1),
        prestorage_ttl: timedelta = timedelta(minutes=30),
        grace: timedelta = timedelta(seconds=10),
        clock: Clock = utc_now,
    ):
        self.registry = registry
        self.store = store
        self.session_ttl = session_ttl
        self.prestorage_ttl = prestorage_ttl
        self.grace = grace
        self._clock = clock
        self._orphans_seen: Set[str] = set()

    def remove(self, session_id: str) -> bool:
        """Deletes the registry entry and any stored documents."""
        existed = self.registry.delete(session_id)
        self.store.remove(session_id)
        return existed

    def sweep(self, now: Optional[datetime] = None) -> List[str]:
        now = now or self._clock()
        expired = self.registry.expire(now, self.session_ttl)
        consumed = self.registry.consumed(now, self.grace)

        removed = self._remove_all(expired, "Sesión antigua eliminada")
        removed += self._remove_all(
            [sid for sid in consumed if sid not in expired], "Sesión descargada eliminada"
        )
        removed += self._reclaim_orphans()
        return removed

    def sweep_prestorage(self, now: Optional[datetime] = None) -> List[str]:
        now = now or self._clock()
        expired = self.registry.expire(now, self.prestorage_ttl, pool=SessionPool.PRESTORAGE)
        return self._remove_all(expired, "Storage limpiado")

    def _reclaim_orphans(self) -> List[str]:
        # Un documento sin sesión solo se borra si sigue huérfano en la pasada
        # siguiente: entre store.put y registry.create hay una ventana.
        orphans = {sid for sid in self.store.ids() if sid not in self.registry}
        stale = orphans & self._orphans_seen
        self._orphans_seen = orphans - stale
        removed = []
        for session_id in stale:
            try:
                self.store.remove(session_id)
                removed.append(session_id)
                logger.info("Documento huérfano eliminado: %s", session_id)
            except Exception as e:
                logger.error("Error eliminando documento huérfano %s: %s", session_id, e)
        return removed

    def _remove_all(self, session_ids: Iterable[str], message: str) -> List[str]:
        removed = []
        for session_id in session_ids:
            try:
                self.remove(session_id)
                removed.append(session_id)
                logger.info("%s: %s", message, session_id)
            except Exception as e:
                logger.error("Error eliminando sesión %s: %s", session_id, e)
        return removed
