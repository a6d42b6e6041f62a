"""
Backend de persistance en mémoire.

Utilisé en développement local (STORAGE_BACKEND=memory) et par les tests.
Respecte les mêmes invariants que le backend Supabase.
"""

from __future__ import annotations

import uuid
from datetime import datetime, timezone
from typing import Callable, Optional

from formrelay.core.error_handler import DatabaseError
from formrelay.core.repository import Repository
from formrelay.models.submission import (
    IntegrationStatus,
    Submission,
    SubmissionCreate,
    check_integration_update,
)
from formrelay.models.tenant import (
    Application,
    Form,
    FormField,
    IntegrationConfig,
    SoftDeletable,
    UrlRule,
)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _visible(entity: SoftDeletable, include_deleted: bool) -> bool:
    return include_deleted or not entity.is_deleted


class InMemoryStore(Repository):
    """Store en mémoire, ordonné par insertion (= ordre de création)."""

    def __init__(self, clock: Callable[[], datetime] = _utcnow):
        self._clock = clock
        self.applications: dict[str, Application] = {}
        self.url_rules: dict[str, UrlRule] = {}
        self.forms: dict[str, Form] = {}
        self.form_fields: dict[str, FormField] = {}
        self.integrations: dict[str, IntegrationConfig] = {}
        self.submissions: dict[str, Submission] = {}

    # === Alimentation (couche CRUD simulée) ===

    def add_application(self, application: Application) -> Application:
        self.applications[application.id] = application
        return application

    def add_url_rule(self, rule: UrlRule) -> UrlRule:
        self.url_rules[rule.id] = rule
        return rule

    def add_form(self, form: Form) -> Form:
        self.forms[form.id] = form
        return form

    def add_form_field(self, field: FormField) -> FormField:
        self.form_fields[field.id] = field
        return field

    def add_integration_config(self, config: IntegrationConfig) -> IntegrationConfig:
        self.integrations[config.form_id] = config
        return config

    # === Lecture ===

    async def get_application(
        self,
        application_id: str,
        include_deleted: bool = False
    ) -> Optional[Application]:
        application = self.applications.get(application_id)
        if application is None or not _visible(application, include_deleted):
            return None
        return application.model_copy()

    async def get_url_rule(
        self,
        rule_id: str,
        include_deleted: bool = False
    ) -> Optional[UrlRule]:
        rule = self.url_rules.get(rule_id)
        if rule is None or not _visible(rule, include_deleted):
            return None
        return rule.model_copy()

    async def list_url_rules(
        self,
        application_id: str,
        include_deleted: bool = False
    ) -> list[UrlRule]:
        return [
            rule.model_copy()
            for rule in self.url_rules.values()
            if rule.application_id == application_id and _visible(rule, include_deleted)
        ]

    async def get_form(self, form_id: str, include_deleted: bool = False) -> Optional[Form]:
        form = self.forms.get(form_id)
        if form is None or not _visible(form, include_deleted):
            return None
        return form.model_copy()

    async def list_forms(
        self,
        application_id: str,
        include_deleted: bool = False
    ) -> list[Form]:
        return [
            form.model_copy()
            for form in self.forms.values()
            if form.application_id == application_id and _visible(form, include_deleted)
        ]

    async def list_form_fields(
        self,
        form_id: str,
        include_deleted: bool = False
    ) -> list[FormField]:
        fields = [
            field.model_copy()
            for field in self.form_fields.values()
            if field.form_id == form_id and _visible(field, include_deleted)
        ]
        # sorted() est stable: à position égale, l'ordre d'insertion est conservé
        return sorted(fields, key=lambda f: f.position)

    async def get_integration_config(self, form_id: str) -> Optional[IntegrationConfig]:
        config = self.integrations.get(form_id)
        return config.model_copy() if config else None

    # === Soumissions ===

    async def create_submission(self, data: SubmissionCreate) -> Submission:
        submission = Submission(
            id=str(uuid.uuid4()),
            created_at=self._clock(),
            **data.model_dump()
        )
        self.submissions[submission.id] = submission
        return submission.model_copy()

    async def get_submission(self, submission_id: str) -> Optional[Submission]:
        submission = self.submissions.get(submission_id)
        return submission.model_copy() if submission else None

    async def update_submission_integration(
        self,
        submission_id: str,
        status: IntegrationStatus,
        attempt_count: int,
        last_error: Optional[str]
    ) -> Submission:
        current = self.submissions.get(submission_id)
        if current is None:
            raise DatabaseError(f"Submission {submission_id} not found")

        check_integration_update(current, status, attempt_count)

        updated = current.model_copy(update={
            "integration_status": status,
            "integration_attempt_count": attempt_count,
            "integration_last_error": last_error,
        })
        self.submissions[submission_id] = updated
        return updated.model_copy()

    async def update_integration_status(
        self,
        form_id: str,
        last_attempt_at: datetime,
        last_error: Optional[str]
    ) -> None:
        config = self.integrations.get(form_id)
        if config is None:
            return
        self.integrations[form_id] = config.model_copy(update={
            "last_attempt_at": last_attempt_at,
            "last_error": last_error,
        })

    async def list_pending_submissions(self, older_than: datetime) -> list[Submission]:
        return [
            submission.model_copy()
            for submission in self.submissions.values()
            if submission.integration_status is IntegrationStatus.PENDING
            and submission.created_at is not None
            and submission.created_at < older_than
        ]

    async def ping(self) -> bool:
        return True
