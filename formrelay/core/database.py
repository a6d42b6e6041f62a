"""
Backend Supabase pour FormRelay.

Fournit un client singleton configuré et le store qui implémente
l'interface Repository sur les tables gérées par la couche CRUD.
"""

from __future__ import annotations

import logging
from datetime import datetime
from functools import lru_cache
from typing import Optional

from supabase import Client, create_client

from formrelay.core.config import settings
from formrelay.core.error_handler import DatabaseError
from formrelay.core.repository import Repository
from formrelay.models.submission import (
    IntegrationStatus,
    Submission,
    SubmissionCreate,
    check_integration_update,
)
from formrelay.models.tenant import Application, Form, FormField, IntegrationConfig, UrlRule

logger = logging.getLogger(__name__)


@lru_cache
def get_supabase_client(use_service_key: bool = False) -> Client:
    """
    Retourne un client Supabase configuré.

    Args:
        use_service_key: Si True, utilise la clé service role pour les opérations admin.
                        Sinon, utilise la clé anon standard.

    Returns:
        Client Supabase configuré.

    Raises:
        ValueError: Si la clé service est demandée mais non configurée.
    """
    if use_service_key:
        if not settings.supabase_service_key:
            raise ValueError(
                "La clé service Supabase n'est pas configurée. "
                "Définissez SUPABASE_SERVICE_KEY dans votre .env"
            )
        return create_client(settings.supabase_url, settings.supabase_service_key)

    return create_client(settings.supabase_url, settings.supabase_key)


class SupabaseRepository:
    """
    Repository de base pour une table Supabase.

    Toutes les lectures filtrent deleted_at IS NULL sauf demande explicite.
    """

    def __init__(self, table_name: str, client: Client, soft_delete: bool = True):
        """
        Initialise le repository.

        Args:
            table_name: Nom de la table Supabase.
            client: Client Supabase.
            soft_delete: Si True, la table possède une colonne deleted_at.
        """
        self.table_name = table_name
        self.client = client
        self.soft_delete = soft_delete

    @property
    def table(self):
        """Retourne une référence à la table."""
        return self.client.table(self.table_name)

    def _select(self, include_deleted: bool = False):
        query = self.table.select("*")
        if self.soft_delete and not include_deleted:
            query = query.is_("deleted_at", "null")
        return query

    async def insert(self, data: dict) -> dict:
        """
        Insère un enregistrement dans la table.

        Returns:
            L'enregistrement créé avec son ID.

        Raises:
            DatabaseError: Si l'insertion échoue.
        """
        response = self.table.insert(data).execute()
        if response.data:
            return response.data[0]
        raise DatabaseError(f"Échec de l'insertion dans {self.table_name}")

    async def update(self, id: str, data: dict) -> dict:
        """Met à jour un enregistrement par son ID."""
        response = self.table.update(data).eq("id", id).execute()
        if response.data:
            return response.data[0]
        raise DatabaseError(f"Échec de la mise à jour dans {self.table_name}")

    async def get_by_id(self, id: str, include_deleted: bool = False) -> Optional[dict]:
        """Récupère un enregistrement par son ID, None si absent."""
        response = self._select(include_deleted).eq("id", id).execute()
        return response.data[0] if response.data else None

    async def get_by_field(
        self,
        field: str,
        value: str,
        include_deleted: bool = False
    ) -> Optional[dict]:
        """Premier enregistrement dont le champ vaut value."""
        response = self._select(include_deleted).eq(field, value).execute()
        return response.data[0] if response.data else None

    async def list_by_field(
        self,
        field: str,
        value: str,
        order_by: str = "created_at",
        include_deleted: bool = False
    ) -> list[dict]:
        """Liste les enregistrements d'un parent, par ordre croissant de order_by."""
        response = (
            self._select(include_deleted)
            .eq(field, value)
            .order(order_by, desc=False)
            .execute()
        )
        return response.data or []


class SupabaseStore(Repository):
    """Implémentation Supabase de l'interface Repository."""

    def __init__(self, client: Optional[Client] = None):
        """
        Args:
            client: Client Supabase optionnel (service role par défaut si configuré).
        """
        if client is None:
            client = get_supabase_client(use_service_key=bool(settings.supabase_service_key))
        self.client = client
        self.applications = SupabaseRepository("applications", client)
        self.url_rules = SupabaseRepository("url_rules", client)
        self.forms = SupabaseRepository("forms", client)
        self.form_fields = SupabaseRepository("form_fields", client)
        self.integrations = SupabaseRepository(
            "google_sheets_integrations", client, soft_delete=False
        )
        self.submissions = SupabaseRepository("submissions", client, soft_delete=False)

    async def get_application(
        self,
        application_id: str,
        include_deleted: bool = False
    ) -> Optional[Application]:
        row = await self.applications.get_by_id(application_id, include_deleted)
        return Application.model_validate(row) if row else None

    async def get_url_rule(
        self,
        rule_id: str,
        include_deleted: bool = False
    ) -> Optional[UrlRule]:
        row = await self.url_rules.get_by_id(rule_id, include_deleted)
        return UrlRule.model_validate(row) if row else None

    async def list_url_rules(
        self,
        application_id: str,
        include_deleted: bool = False
    ) -> list[UrlRule]:
        rows = await self.url_rules.list_by_field(
            "application_id", application_id, include_deleted=include_deleted
        )
        return [UrlRule.model_validate(row) for row in rows]

    async def get_form(self, form_id: str, include_deleted: bool = False) -> Optional[Form]:
        row = await self.forms.get_by_id(form_id, include_deleted)
        return Form.model_validate(row) if row else None

    async def list_forms(
        self,
        application_id: str,
        include_deleted: bool = False
    ) -> list[Form]:
        rows = await self.forms.list_by_field(
            "application_id", application_id, include_deleted=include_deleted
        )
        return [Form.model_validate(row) for row in rows]

    async def list_form_fields(
        self,
        form_id: str,
        include_deleted: bool = False
    ) -> list[FormField]:
        rows = await self.form_fields.list_by_field(
            "form_id", form_id, order_by="position", include_deleted=include_deleted
        )
        return [FormField.model_validate(row) for row in rows]

    async def get_integration_config(self, form_id: str) -> Optional[IntegrationConfig]:
        row = await self.integrations.get_by_field("form_id", form_id)
        return IntegrationConfig.model_validate(row) if row else None

    async def create_submission(self, data: SubmissionCreate) -> Submission:
        row = await self.submissions.insert(data.to_db_dict())
        return Submission.model_validate(row)

    async def get_submission(self, submission_id: str) -> Optional[Submission]:
        row = await self.submissions.get_by_id(submission_id)
        return Submission.model_validate(row) if row else None

    async def update_submission_integration(
        self,
        submission_id: str,
        status: IntegrationStatus,
        attempt_count: int,
        last_error: Optional[str]
    ) -> Submission:
        current = await self.get_submission(submission_id)
        if current is None:
            raise DatabaseError(f"Submission {submission_id} not found")

        check_integration_update(current, status, attempt_count)

        row = await self.submissions.update(submission_id, {
            "integration_status": status.value,
            "integration_attempt_count": attempt_count,
            "integration_last_error": last_error,
        })
        return Submission.model_validate(row)

    async def update_integration_status(
        self,
        form_id: str,
        last_attempt_at: datetime,
        last_error: Optional[str]
    ) -> None:
        # Aucune ligne touchée si l'intégration a été retirée entre-temps
        (
            self.integrations.table
            .update({
                "last_attempt_at": last_attempt_at.isoformat(),
                "last_error": last_error,
            })
            .eq("form_id", form_id)
            .execute()
        )

    async def list_pending_submissions(self, older_than: datetime) -> list[Submission]:
        response = (
            self.submissions.table
            .select("*")
            .eq("integration_status", IntegrationStatus.PENDING.value)
            .lt("created_at", older_than.isoformat())
            .order("created_at", desc=False)
            .execute()
        )
        return [Submission.model_validate(row) for row in response.data or []]

    async def ping(self) -> bool:
        try:
            self.applications.table.select("id").limit(1).execute()
            return True
        except Exception as e:
            logger.error(f"Supabase injoignable: {e}")
            return False
