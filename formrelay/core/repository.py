"""
Interface de persistance consommée par FormRelay.

La couche CRUD (tenants, formulaires, règles) est externe: FormRelay ne
fait que lire sa configuration, créer les soumissions et mettre à jour
leur statut d'intégration.

Invariant: les méthodes get_*/list_* ne retournent jamais une entité
supprimée logiquement, sauf appel explicite avec include_deleted=True.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from datetime import datetime
from typing import Optional

from formrelay.models.submission import IntegrationStatus, Submission, SubmissionCreate
from formrelay.models.tenant import Application, Form, FormField, IntegrationConfig, UrlRule


class Repository(ABC):
    """Repository des entités FormRelay."""

    # === Configuration du tenant (lecture seule) ===

    @abstractmethod
    async def get_application(
        self,
        application_id: str,
        include_deleted: bool = False
    ) -> Optional[Application]:
        ...

    @abstractmethod
    async def get_url_rule(
        self,
        rule_id: str,
        include_deleted: bool = False
    ) -> Optional[UrlRule]:
        ...

    @abstractmethod
    async def list_url_rules(
        self,
        application_id: str,
        include_deleted: bool = False
    ) -> list[UrlRule]:
        """Règles de l'application, par ordre de création."""

    @abstractmethod
    async def get_form(self, form_id: str, include_deleted: bool = False) -> Optional[Form]:
        ...

    @abstractmethod
    async def list_forms(
        self,
        application_id: str,
        include_deleted: bool = False
    ) -> list[Form]:
        """Formulaires de l'application, par ordre de création."""

    @abstractmethod
    async def list_form_fields(
        self,
        form_id: str,
        include_deleted: bool = False
    ) -> list[FormField]:
        """Champs du formulaire, triés par position."""

    @abstractmethod
    async def get_integration_config(self, form_id: str) -> Optional[IntegrationConfig]:
        ...

    # === Soumissions ===

    @abstractmethod
    async def create_submission(self, data: SubmissionCreate) -> Submission:
        ...

    @abstractmethod
    async def get_submission(self, submission_id: str) -> Optional[Submission]:
        ...

    @abstractmethod
    async def update_submission_integration(
        self,
        submission_id: str,
        status: IntegrationStatus,
        attempt_count: int,
        last_error: Optional[str]
    ) -> Submission:
        """
        Met à jour les champs d'intégration d'une soumission.

        Raises:
            InvalidIntegrationUpdate: transition arrière ou compteur décroissant.
            DatabaseError: soumission introuvable ou écriture impossible.
        """

    @abstractmethod
    async def update_integration_status(
        self,
        form_id: str,
        last_attempt_at: datetime,
        last_error: Optional[str]
    ) -> None:
        """Horodate la dernière tentative de l'intégration d'un formulaire."""

    @abstractmethod
    async def list_pending_submissions(self, older_than: datetime) -> list[Submission]:
        """Soumissions encore PENDING créées avant older_than."""

    @abstractmethod
    async def ping(self) -> bool:
        """Vérifie que le backend répond."""
