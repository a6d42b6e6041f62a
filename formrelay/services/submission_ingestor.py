"""
Ingestion des soumissions de formulaire.

Flux:
1. Vérifie l'application (existe, active, non supprimée)
2. Vérifie le formulaire (existe, appartient à l'application, non supprimé)
3. Enregistre la soumission (PENDING si une intégration est configurée, NONE sinon)
4. Met le dispatch en file sans l'attendre

La latence de l'appelant est bornée par l'écriture en base, jamais par
la livraison sortante.
"""

from __future__ import annotations

import logging

from formrelay.core.error_handler import AccessDeniedError, NotFoundError, error_handler
from formrelay.core.repository import Repository
from formrelay.models.submission import (
    IntegrationStatus,
    PublicSubmitRequest,
    Submission,
    SubmissionCreate,
)
from formrelay.services.dispatch_pool import DispatchQueueUnavailable, DispatchWorkerPool
from formrelay.services.integration_dispatcher import DispatchJob

logger = logging.getLogger(__name__)

QUEUE_UNAVAILABLE_ERROR = "dispatch queue unavailable"


class SubmissionIngestor:
    """Valide et enregistre une soumission, puis délègue sa livraison."""

    def __init__(self, store: Repository, dispatch_pool: DispatchWorkerPool):
        self.store = store
        self.dispatch_pool = dispatch_pool

    async def ingest(self, request: PublicSubmitRequest) -> Submission:
        """
        Enregistre une soumission.

        Args:
            request: Payload validé du widget.

        Returns:
            La soumission créée.

        Raises:
            NotFoundError: Application ou formulaire inconnu.
            AccessDeniedError: Application désactivée ou supprimée.
        """
        application = await self.store.get_application(
            request.application_id, include_deleted=True
        )
        if application is None:
            raise NotFoundError("Application not found")
        if not application.is_active:
            raise AccessDeniedError("Application is disabled")

        form = await self.store.get_form(request.form_id)
        if form is None or form.application_id != application.id:
            raise NotFoundError("Form not found")

        config = await self.store.get_integration_config(form.id)
        requires_dispatch = config is not None and config.requires_dispatch

        submission = await self.store.create_submission(SubmissionCreate(
            form_id=form.id,
            application_id=application.id,
            hostname=request.hostname,
            path=request.path,
            payload=request.payload,
            integration_status=(
                IntegrationStatus.PENDING if requires_dispatch else IntegrationStatus.NONE
            ),
            integration_attempt_count=0,
        ))
        logger.info(
            f"Soumission enregistrée: {submission.id} "
            f"(form={form.id}, intégration={submission.integration_status.value})"
        )

        if requires_dispatch:
            job = DispatchJob.snapshot(submission, form, application, config)
            await self._enqueue(job)

        return submission

    async def _enqueue(self, job: DispatchJob) -> None:
        """Met le job en file; en cas de refus la soumission passe en FAILED."""
        try:
            self.dispatch_pool.submit(job)
        except DispatchQueueUnavailable as e:
            error_handler.handle_error(
                e,
                workflow="ingestion",
                node="enqueue_dispatch",
                context={"submission_id": job.submission_id},
            )
            await self.store.update_submission_integration(
                job.submission_id,
                status=IntegrationStatus.FAILED,
                attempt_count=0,
                last_error=QUEUE_UNAVAILABLE_ERROR,
            )
