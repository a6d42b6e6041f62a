"""
Pool de workers pour le dispatch des intégrations.

Remplace le "fire and forget" par une file asyncio consommée par un
nombre borné de workers. Chaque job porte son propre instantané: un job
ne bloque jamais un autre et ne partage aucun état avec lui.

Pas de persistance de la file: un arrêt du process abandonne les jobs
non terminés, qui restent PENDING avec leur dernier compteur persisté.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Optional

from formrelay.core.error_handler import error_handler
from formrelay.services.integration_dispatcher import DispatchJob, IntegrationDispatcher

logger = logging.getLogger(__name__)


class DispatchQueueUnavailable(Exception):
    """La file refuse le job (pleine ou pool arrêté)."""


class DispatchWorkerPool:
    """
    File de jobs + workers asyncio.

    Observable via pending, in_flight, processed et is_running.
    """

    def __init__(
        self,
        dispatcher: IntegrationDispatcher,
        workers: int = 4,
        queue_size: int = 0
    ):
        """
        Args:
            dispatcher: Dispatcher exécutant chaque job.
            workers: Nombre de workers concurrents.
            queue_size: Taille max de la file (0 = illimitée).
        """
        self.dispatcher = dispatcher
        self.worker_count = workers
        self.queue_size = queue_size
        self._queue: Optional[asyncio.Queue[DispatchJob]] = None
        self._workers: list[asyncio.Task] = []
        self._in_flight: dict[str, DispatchJob] = {}
        self._accepting = False
        self.processed = 0
        self.failed = 0

    @property
    def is_running(self) -> bool:
        return self._accepting

    @property
    def pending(self) -> int:
        """Jobs en attente dans la file."""
        return self._queue.qsize() if self._queue is not None else 0

    @property
    def in_flight(self) -> int:
        """Jobs en cours d'exécution."""
        return len(self._in_flight)

    def stats(self) -> dict:
        return {
            "running": self.is_running,
            "workers": len(self._workers),
            "pending": self.pending,
            "in_flight": self.in_flight,
            "processed": self.processed,
            "failed": self.failed,
        }

    def start(self) -> None:
        """Démarre les workers (à appeler dans la boucle asyncio)."""
        if self._accepting:
            logger.warning("Pool de dispatch déjà démarré")
            return

        self._queue = asyncio.Queue(maxsize=self.queue_size)
        self._workers = [
            asyncio.create_task(self._worker(index, self._queue), name=f"dispatch-worker-{index}")
            for index in range(self.worker_count)
        ]
        self._accepting = True
        logger.info(f"Pool de dispatch démarré ({self.worker_count} workers)")

    def submit(self, job: DispatchJob) -> None:
        """
        Ajoute un job à la file sans attendre.

        Raises:
            DispatchQueueUnavailable: pool arrêté ou file pleine.
        """
        if not self._accepting or self._queue is None:
            raise DispatchQueueUnavailable("dispatch pool is not running")
        try:
            self._queue.put_nowait(job)
        except asyncio.QueueFull as e:
            raise DispatchQueueUnavailable("dispatch queue is full") from e
        logger.debug(f"Job de dispatch en file: {job.submission_id}")

    async def join(self) -> None:
        """Attend que tous les jobs en file soient traités."""
        if self._queue is not None:
            await self._queue.join()

    async def stop(self, timeout: float = 5.0) -> list[str]:
        """
        Arrête le pool.

        Refuse les nouveaux jobs, laisse `timeout` secondes aux jobs en file
        et en cours, puis annule les workers restants.

        Returns:
            IDs des soumissions abandonnées (restées PENDING).
        """
        if not self._workers:
            return []

        self._accepting = False
        abandoned: list[str] = []

        try:
            await asyncio.wait_for(self.join(), timeout=timeout)
        except asyncio.TimeoutError:
            abandoned.extend(self._in_flight)
            while self._queue is not None and not self._queue.empty():
                abandoned.append(self._queue.get_nowait().submission_id)
                self._queue.task_done()

        for task in self._workers:
            task.cancel()
        await asyncio.gather(*self._workers, return_exceptions=True)
        self._workers = []
        self._in_flight.clear()

        if abandoned:
            logger.warning(
                f"Pool de dispatch arrêté: {len(abandoned)} soumission(s) abandonnée(s) "
                f"en PENDING: {', '.join(abandoned)}"
            )
        else:
            logger.info("Pool de dispatch arrêté")

        await self.dispatcher.aclose()
        return abandoned

    async def _worker(self, index: int, queue: asyncio.Queue) -> None:
        while True:
            job = await queue.get()
            self._in_flight[job.submission_id] = job
            try:
                outcome = await self.dispatcher.dispatch(job)
                self.processed += 1
                if not outcome.succeeded:
                    self.failed += 1
            except asyncio.CancelledError:
                raise
            except Exception as e:
                # Erreur de persistance: le job est perdu, le worker continue
                self.processed += 1
                self.failed += 1
                error_handler.handle_error(
                    e,
                    workflow="dispatch",
                    node=f"worker-{index}",
                    context={"submission_id": job.submission_id},
                )
            finally:
                self._in_flight.pop(job.submission_id, None)
                queue.task_done()
