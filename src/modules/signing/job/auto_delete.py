import logging
from datetime import datetime, timedelta, timezone
from typing import Optional

from apscheduler.schedulers.background import BackgroundScheduler

from config import Settings
from modules.signing.services.cleanup import RetentionSweeper

logger = logging.getLogger(__name__)


class DeletionJobs:
    """Periodic sweeps plus one-shot post-download deletions."""

    def __init__(
        self,
        sweeper: RetentionSweeper,
        settings: Settings,
        scheduler: Optional[BackgroundScheduler] = None,
    ):
        self.sweeper = sweeper
        self.settings = settings
        self.scheduler = scheduler or BackgroundScheduler(timezone="UTC")

    def start(self):
        self.scheduler.add_job(
            self.sweeper.sweep,
            "interval",
            minutes=self.settings.SWEEP_INTERVAL_MINUTES,
            id="sweep-sessions",
            replace_existing=True,
        )
        self.scheduler.add_job(
            self.sweeper.sweep_prestorage,
            "interval",
            minutes=self.settings.PRESTORAGE_SWEEP_INTERVAL_MINUTES,
            id="sweep-prestorage",
            replace_existing=True,
        )
        self.scheduler.start()
        logger.info(
            "Limpieza programada cada %d min (prestorage cada %d min)",
            self.settings.SWEEP_INTERVAL_MINUTES,
            self.settings.PRESTORAGE_SWEEP_INTERVAL_MINUTES,
        )

    def shutdown(self):
        if self.scheduler.running:
            self.scheduler.shutdown(wait=False)

    def schedule_removal(self, session_id: str):
        """Deletes the session once the download grace window has passed."""
        session = self.sweeper.registry.get(session_id)
        downloaded_at = session.downloaded_at if session else None
        # El temporizador usa la hora real; las pasadas de sweep usan el reloj inyectado
        run_date = datetime.now(timezone.utc) + timedelta(
            seconds=self.settings.DOWNLOAD_GRACE_SECONDS
        )
        self.scheduler.add_job(
            self._reap,
            "date",
            run_date=run_date,
            args=[session_id, downloaded_at],
            id=f"reap-{session_id}",
            replace_existing=True,
        )

    def _reap(self, session_id: str, downloaded_at: Optional[datetime] = None):
        # Un id re-registrado dentro de la ventana es otra sesión: no se toca
        session = self.sweeper.registry.get(session_id)
        if session is not None and session.downloaded_at != downloaded_at:
            logger.info("Sesión %s re-registrada, se mantiene", session_id)
            return
        try:
            if self.sweeper.remove(session_id):
                logger.info("Sesión %s eliminada", session_id)
        except Exception as e:
            logger.error("Error eliminando sesión %s: %s", session_id, e)
