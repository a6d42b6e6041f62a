"""
Gestionnaire de taches planifiees avec APScheduler.

Gere les jobs periodiques:
- Audit des soumissions restees PENDING (crash ou arret pendant un dispatch)
"""

from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone
from typing import Optional

from apscheduler.events import EVENT_JOB_ERROR, EVENT_JOB_EXECUTED, JobExecutionEvent
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger

from formrelay.core.config import settings
from formrelay.core.error_handler import error_handler
from formrelay.core.repository import Repository

logger = logging.getLogger(__name__)

PENDING_AUDIT_JOB_ID = "pending_audit"


class SchedulerService:
    """
    Service de gestion des taches planifiees.

    Utilise APScheduler pour executer des jobs a intervalle fixe.
    """

    def __init__(self, store: Repository):
        """Initialise le scheduler."""
        self.store = store
        self.scheduler = AsyncIOScheduler(
            timezone="UTC",
            job_defaults={
                "coalesce": True,  # Fusionne les jobs rates
                "max_instances": 1,  # Une seule instance par job
                "misfire_grace_time": 300
            }
        )
        self._setup_event_listeners()
        self._is_running = False

    def _setup_event_listeners(self):
        """Configure les listeners d'evenements."""
        self.scheduler.add_listener(self._on_job_executed, EVENT_JOB_EXECUTED)
        self.scheduler.add_listener(self._on_job_error, EVENT_JOB_ERROR)

    def _on_job_executed(self, event: JobExecutionEvent):
        logger.debug(f"Job execute: {event.job_id}")

    def _on_job_error(self, event: JobExecutionEvent):
        """Callback quand un job echoue."""
        error_handler.handle_error(
            event.exception,
            workflow="scheduler",
            node=event.job_id
        )

    @property
    def is_running(self) -> bool:
        return self._is_running

    def start(self):
        """Demarre le scheduler."""
        if self._is_running:
            logger.warning("Scheduler deja en cours d'execution")
            return

        self._register_jobs()
        self.scheduler.start()
        self._is_running = True
        logger.info("Scheduler demarre avec succes")

    def stop(self):
        """Arrete le scheduler."""
        if not self._is_running:
            return

        self.scheduler.shutdown(wait=False)
        self._is_running = False
        logger.info("Scheduler arrete")

    def _register_jobs(self):
        """Enregistre tous les jobs planifies."""
        self.scheduler.add_job(
            self.audit_pending_submissions,
            IntervalTrigger(minutes=settings.pending_audit_interval_minutes),
            id=PENDING_AUDIT_JOB_ID,
            name="Audit des soumissions PENDING",
            replace_existing=True
        )
        logger.info(
            f"Job '{PENDING_AUDIT_JOB_ID}' enregistre "
            f"(toutes les {settings.pending_audit_interval_minutes} min)"
        )

    async def audit_pending_submissions(self, now: Optional[datetime] = None) -> list[str]:
        """
        Signale les soumissions encore PENDING au-dela de l'age configure.

        Ne modifie jamais leur statut: aucune reconciliation automatique.

        Returns:
            IDs des soumissions signalees.
        """
        now = now or datetime.now(timezone.utc)
        threshold = now - timedelta(minutes=settings.pending_audit_age_minutes)
        stale = await self.store.list_pending_submissions(older_than=threshold)

        if stale:
            ids = [submission.id for submission in stale]
            logger.warning(
                f"{len(ids)} soumission(s) PENDING depuis plus de "
                f"{settings.pending_audit_age_minutes} min: {', '.join(ids)}"
            )
            return ids

        logger.debug("Aucune soumission PENDING en retard")
        return []

    def list_jobs(self) -> list[dict]:
        """
        Liste tous les jobs enregistres.

        Returns:
            Liste des jobs avec leurs infos
        """
        jobs = []
        for job in self.scheduler.get_jobs():
            jobs.append({
                "id": job.id,
                "name": job.name,
                "next_run": str(job.next_run_time) if job.next_run_time else None,
                "trigger": str(job.trigger)
            })
        return jobs
