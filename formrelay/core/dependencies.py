"""
Assemblage des services de l'application.

Les services sont construits une fois par application (lifespan) et
exposés aux endpoints via les dépendances FastAPI.
"""

from __future__ import annotations

import logging
from typing import Optional

import httpx
from fastapi import Request

from formrelay.core.config import Settings, settings
from formrelay.core.repository import Repository
from formrelay.core.scheduler import SchedulerService
from formrelay.services.dispatch_pool import DispatchWorkerPool
from formrelay.services.form_resolver import FormResolver
from formrelay.services.integration_dispatcher import IntegrationDispatcher
from formrelay.services.submission_ingestor import SubmissionIngestor

logger = logging.getLogger(__name__)


def build_store(config: Settings = settings) -> Repository:
    """Sélectionne le backend de persistance selon STORAGE_BACKEND."""
    if config.storage_backend == "memory":
        if config.is_production:
            raise ValueError("STORAGE_BACKEND=memory est interdit en production")
        from formrelay.core.memory_store import InMemoryStore
        logger.warning("Backend mémoire actif: les données ne sont pas persistées")
        return InMemoryStore()

    from formrelay.core.database import SupabaseStore
    return SupabaseStore()


class Services:
    """Conteneur des services partagés par les endpoints."""

    def __init__(
        self,
        store: Optional[Repository] = None,
        http_client: Optional[httpx.AsyncClient] = None,
        enable_scheduler: bool = True,
        config: Settings = settings
    ):
        self.config = config
        self.store = store or build_store(config)
        self.dispatcher = IntegrationDispatcher(
            self.store,
            http_client=http_client,
            max_attempts=config.dispatch_max_attempts,
            backoff_ms=config.dispatch_backoff_ms,
            timeout_seconds=config.dispatch_timeout_seconds,
        )
        self.dispatch_pool = DispatchWorkerPool(
            self.dispatcher,
            workers=config.dispatch_workers,
            queue_size=config.dispatch_queue_size,
        )
        self.resolver = FormResolver(self.store, section_id_prefix=config.section_id_prefix)
        self.ingestor = SubmissionIngestor(self.store, self.dispatch_pool)
        self.scheduler: Optional[SchedulerService] = (
            SchedulerService(self.store) if enable_scheduler else None
        )

    async def startup(self) -> None:
        """Démarre le pool de dispatch puis le scheduler."""
        self.dispatch_pool.start()
        if self.scheduler is not None:
            self.scheduler.start()

    async def shutdown(self) -> list[str]:
        """
        Arrête le scheduler puis le pool (délai de grâce configuré).

        Returns:
            IDs des soumissions abandonnées en PENDING.
        """
        if self.scheduler is not None:
            self.scheduler.stop()
        abandoned = await self.dispatch_pool.stop(
            timeout=self.config.dispatch_shutdown_grace_seconds
        )
        return abandoned


# === Dépendances FastAPI ===

def get_services(request: Request) -> Services:
    return request.app.state.services


def get_resolver(request: Request) -> FormResolver:
    return get_services(request).resolver


def get_ingestor(request: Request) -> SubmissionIngestor:
    return get_services(request).ingestor

