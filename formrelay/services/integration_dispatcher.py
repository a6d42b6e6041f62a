"""
Dispatch des soumissions vers l'intégration Google Sheets.

Flux pour une soumission:
1. Vérifie que le secret d'intégration de l'application est configuré
2. Construit le payload canonique et le signe (HMAC-SHA256)
3. POST vers l'URL du web app Apps Script, jusqu'à 3 tentatives
   (attente 500 ms puis 1500 ms entre les tentatives)
4. Persiste le compteur de tentatives et l'erreur après chaque tentative
5. Passe la soumission en SUCCESS ou FAILED

La signature voyage dans le body (champ "signature"): Apps Script
n'expose pas les headers HTTP de manière fiable.
"""

from __future__ import annotations

import asyncio
import copy
import logging
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable, Optional, Sequence

import httpx
from pydantic import BaseModel, ConfigDict, Field

from formrelay.core.config import settings
from formrelay.core.error_handler import (
    ConfigurationError,
    DeliveryExhaustedError,
    DispatchError,
    SignatureError,
    TransientDeliveryError,
    error_handler,
)
from formrelay.core.repository import Repository
from formrelay.models.submission import IntegrationStatus, Submission
from formrelay.models.tenant import Application, Form, IntegrationConfig
from formrelay.services.hmac_service import HMACService, canonical_json, hmac_service

logger = logging.getLogger(__name__)

MISSING_SECRET_ERROR = "integration secret not configured"
NEGATIVE_RESULT_ERROR = "Integration returned success: false"
SIGNATURE_ERROR_PREFIX = "Failed to create signature"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def isoformat_utc(moment: datetime) -> str:
    """ISO-8601 UTC à la milliseconde avec suffixe Z (ex: 2024-01-15T10:30:00.123Z)."""
    return (
        moment.astimezone(timezone.utc)
        .isoformat(timespec="milliseconds")
        .replace("+00:00", "Z")
    )


class DispatchJob(BaseModel):
    """
    Instantané d'une soumission à relayer.

    Capturé au moment de l'ingestion: le job ne relit ni le secret ni la
    configuration, et ne partage aucun état avec les autres jobs.
    """

    model_config = ConfigDict(frozen=True)

    submission_id: str
    application_id: str
    integration_secret: Optional[str] = None
    form_id: str
    sheet_name: str
    web_app_url: str
    hostname: str
    path: str
    payload: dict[str, Any] = Field(default_factory=dict)

    @classmethod
    def snapshot(
        cls,
        submission: Submission,
        form: Form,
        application: Application,
        config: IntegrationConfig
    ) -> "DispatchJob":
        """Construit le job à partir des entités chargées par l'ingestion."""
        return cls(
            submission_id=submission.id,
            application_id=application.id,
            integration_secret=application.integration_secret,
            form_id=form.id,
            sheet_name=config.sheet_name,
            web_app_url=config.web_app_url.strip(),
            hostname=submission.hostname,
            path=submission.path,
            payload=copy.deepcopy(submission.payload),
        )


class DispatchOutcome(BaseModel):
    """Résultat final d'un dispatch."""

    submission_id: str
    status: IntegrationStatus
    attempts: int
    last_error: Optional[str] = None

    @property
    def succeeded(self) -> bool:
        return self.status is IntegrationStatus.SUCCESS


class IntegrationDispatcher:
    """
    Livre une soumission au webhook configuré, avec signature et retries.

    Les erreurs ne sont jamais propagées à l'appelant HTTP d'origine:
    elles sont loguées et persistées sur la soumission et l'intégration.
    """

    def __init__(
        self,
        store: Repository,
        http_client: Optional[httpx.AsyncClient] = None,
        max_attempts: Optional[int] = None,
        backoff_ms: Optional[Sequence[int]] = None,
        timeout_seconds: Optional[float] = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
        clock: Callable[[], datetime] = _utcnow,
        signer: HMACService = hmac_service
    ):
        """
        Initialise le dispatcher.

        Args:
            store: Repository pour persister l'état des tentatives.
            http_client: Client httpx partagé (créé à la demande sinon).
            max_attempts: Nombre de tentatives (settings par défaut: 3).
            backoff_ms: Attente avant chaque nouvelle tentative (défaut: [500, 1500]).
            timeout_seconds: Timeout HTTP d'une tentative.
            sleep: Fonction d'attente (injectable pour les tests).
            clock: Horloge UTC (injectable pour les tests).
            signer: Service HMAC.
        """
        self.store = store
        self.max_attempts = max_attempts or settings.dispatch_max_attempts
        self.backoff_ms = list(backoff_ms if backoff_ms is not None else settings.dispatch_backoff_ms)
        self.timeout_seconds = timeout_seconds or settings.dispatch_timeout_seconds
        self._sleep = sleep
        self._clock = clock
        self._signer = signer
        self._http_client = http_client
        self._owns_client = http_client is None

    @property
    def http_client(self) -> httpx.AsyncClient:
        """Lazy loading du client HTTP."""
        if self._http_client is None:
            # Les web apps Apps Script répondent par une redirection 302
            self._http_client = httpx.AsyncClient(
                timeout=self.timeout_seconds,
                follow_redirects=True
            )
        return self._http_client

    async def aclose(self) -> None:
        """Ferme le client HTTP s'il a été créé par le dispatcher."""
        if self._owns_client and self._http_client is not None:
            await self._http_client.aclose()
            self._http_client = None

    def backoff_seconds(self, attempt: int) -> float:
        """Attente après l'échec de la tentative n (1-indexée)."""
        if not self.backoff_ms:
            return 0.0
        index = min(attempt - 1, len(self.backoff_ms) - 1)
        return self.backoff_ms[index] / 1000

    def build_payload(self, job: DispatchJob, created_at: datetime) -> dict:
        """Objet canonique signé (ordre des clés significatif)."""
        return {
            "sheetName": job.sheet_name,
            "applicationId": job.application_id,
            "formId": job.form_id,
            "hostname": job.hostname,
            "path": job.path,
            "createdAt": isoformat_utc(created_at),
            "payload": job.payload,
        }

    async def dispatch(self, job: DispatchJob) -> DispatchOutcome:
        """
        Relaie une soumission jusqu'à succès ou épuisement des tentatives.

        Args:
            job: Instantané de la soumission à relayer.

        Returns:
            DispatchOutcome avec le statut final persisté.
        """
        log_context = {"submission_id": job.submission_id, "application_id": job.application_id}

        # 1. Garde de configuration: aucun appel réseau sans secret
        if not (job.integration_secret and job.integration_secret.strip()):
            return await self._fail_before_delivery(
                job, ConfigurationError(MISSING_SECRET_ERROR), "config_guard", log_context
            )

        # 2. Payload canonique + signature dans le body
        try:
            integration_data = self.build_payload(job, self._clock())
            signed = self._signer.attach_signature(job.integration_secret, integration_data)
            body = canonical_json(signed).encode("utf-8")
        except (TypeError, ValueError) as e:
            return await self._fail_before_delivery(
                job,
                SignatureError(f"{SIGNATURE_ERROR_PREFIX}: {e}"),
                "signature",
                log_context,
            )

        # 3. Boucle de livraison
        last_error: Optional[str] = None
        for attempt in range(1, self.max_attempts + 1):
            try:
                await self._send(job.web_app_url, body, attempt)
            except TransientDeliveryError as e:
                last_error = e.message
                logger.warning(
                    f"Tentative {attempt}/{self.max_attempts} échouée pour "
                    f"la soumission {job.submission_id}: {last_error}"
                )
                await self._record_failed_attempt(job, attempt, last_error)

                if attempt < self.max_attempts:
                    await self._sleep(self.backoff_seconds(attempt))
                continue

            await self._record_success(job, attempt)
            logger.info(
                f"Soumission {job.submission_id} relayée avec succès "
                f"(tentative {attempt})"
            )
            return DispatchOutcome(
                submission_id=job.submission_id,
                status=IntegrationStatus.SUCCESS,
                attempts=attempt,
            )

        # 4. Toutes les tentatives ont échoué
        await self.store.update_submission_integration(
            job.submission_id,
            status=IntegrationStatus.FAILED,
            attempt_count=self.max_attempts,
            last_error=last_error,
        )
        error_handler.handle_error(
            DeliveryExhaustedError(
                f"Delivery failed after {self.max_attempts} attempts: {last_error}",
                attempts=self.max_attempts,
            ),
            "dispatch",
            "delivery_loop",
            log_context,
        )
        return DispatchOutcome(
            submission_id=job.submission_id,
            status=IntegrationStatus.FAILED,
            attempts=self.max_attempts,
            last_error=last_error,
        )

    async def _fail_before_delivery(
        self,
        job: DispatchJob,
        error: DispatchError,
        node: str,
        log_context: dict
    ) -> DispatchOutcome:
        """Echec terminal sans appel réseau: FAILED, 0 tentative."""
        error_handler.handle_error(error, "dispatch", node, log_context)
        await self.store.update_submission_integration(
            job.submission_id,
            status=IntegrationStatus.FAILED,
            attempt_count=0,
            last_error=error.message,
        )
        return DispatchOutcome(
            submission_id=job.submission_id,
            status=IntegrationStatus.FAILED,
            attempts=0,
            last_error=error.message,
        )

    async def _send(self, url: str, body: bytes, attempt: int) -> None:
        """
        Exécute une tentative.

        Raises:
            TransientDeliveryError: erreur réseau, statut non 2xx, ou réponse
                dont success n'est pas true.
        """
        try:
            response = await self.http_client.post(
                url,
                content=body,
                headers={"Content-Type": "application/json"},
                timeout=self.timeout_seconds,
            )
        except httpx.HTTPError as e:
            raise TransientDeliveryError(
                f"Network error: {type(e).__name__}: {e}".rstrip(": "),
                attempt=attempt,
            ) from e

        if not response.is_success:
            raise TransientDeliveryError(
                f"HTTP {response.status_code}: {response.reason_phrase}".rstrip(": "),
                attempt=attempt,
                status=response.status_code,
            )

        try:
            result = response.json()
        except ValueError as e:
            raise TransientDeliveryError(
                "Invalid JSON response from integration",
                attempt=attempt,
                status=response.status_code,
            ) from e

        if not isinstance(result, dict) or result.get("success") is not True:
            error = result.get("error") if isinstance(result, dict) else None
            raise TransientDeliveryError(
                str(error) if error else NEGATIVE_RESULT_ERROR,
                attempt=attempt,
                status=response.status_code,
            )

    async def _record_failed_attempt(self, job: DispatchJob, attempt: int, error: str) -> None:
        """Persiste la progression après une tentative échouée."""
        await self.store.update_submission_integration(
            job.submission_id,
            status=IntegrationStatus.PENDING,
            attempt_count=attempt,
            last_error=error,
        )
        await self.store.update_integration_status(
            job.form_id,
            last_attempt_at=self._clock(),
            last_error=error,
        )

    async def _record_success(self, job: DispatchJob, attempt: int) -> None:
        await self.store.update_submission_integration(
            job.submission_id,
            status=IntegrationStatus.SUCCESS,
            attempt_count=attempt,
            last_error=None,
        )
        await self.store.update_integration_status(
            job.form_id,
            last_attempt_at=self._clock(),
            last_error=None,
        )
