"""
Résolution des formulaires applicables à une page vue.

Pour un couple (hostname, path) et une application, sélectionne tous les
formulaires à afficher. Chaque formulaire est évalué indépendamment: une
page peut afficher plusieurs formulaires, sans classement de pertinence.
"""

from __future__ import annotations

import logging
from typing import Optional

from formrelay.core.config import settings
from formrelay.core.error_handler import NotFoundError
from formrelay.core.repository import Repository
from formrelay.models.public import Resolution, ResolvedField, ResolvedForm
from formrelay.models.tenant import Application, Form, FormField, UrlRule
from formrelay.utils.hostname import normalize_hostname, same_hostname
from formrelay.utils.path_matcher import matches_path_pattern
from formrelay.utils.section_id import compute_section_id

logger = logging.getLogger(__name__)


def rule_matches(rule: UrlRule, normalized_hostname: str, path: str) -> bool:
    """Une règle générale correspond si hostname et chemin correspondent."""
    return (
        same_hostname(rule.hostname, normalized_hostname)
        and matches_path_pattern(rule.path_pattern, path)
    )


def form_matches(
    form: Form,
    application: Application,
    rules: list[UrlRule],
    bound_rule: Optional[UrlRule],
    normalized_hostname: str,
    path: str
) -> bool:
    """
    Décide si un formulaire s'applique à la page.

    - Formulaire lié à une règle: hostname de l'APPLICATION + pattern de
      la règle liée, jamais via les autres règles.
    - Formulaire non lié: n'importe quelle règle active de l'application.
    """
    if form.url_rule_id:
        if bound_rule is None:
            return False
        return (
            same_hostname(application.hostname, normalized_hostname)
            and matches_path_pattern(bound_rule.path_pattern, path)
        )

    return any(rule_matches(rule, normalized_hostname, path) for rule in rules)


class FormResolver:
    """
    Sélectionne les formulaires d'un tenant pour une page vue.

    Combine la normalisation des hostnames et la correspondance des
    chemins avec la configuration lue dans le repository.
    """

    def __init__(self, store: Repository, section_id_prefix: Optional[str] = None):
        self.store = store
        self.section_id_prefix = section_id_prefix or settings.section_id_prefix

    async def resolve(self, application_id: str, hostname: str, path: str) -> Resolution:
        """
        Résout les formulaires à afficher.

        Args:
            application_id: ID de l'application.
            hostname: Hostname de la page (brut, normalisé ici).
            path: Chemin de la page, comparé tel quel.

        Returns:
            Resolution.disabled() si l'application est inactive ou supprimée,
            sinon la liste (éventuellement vide) des formulaires applicables,
            dans l'ordre de création.

        Raises:
            NotFoundError: Application inconnue.
        """
        application = await self.store.get_application(application_id, include_deleted=True)
        if application is None:
            raise NotFoundError("Application not found")

        if not application.is_active:
            logger.info(f"Application {application_id} désactivée: widget interdit")
            return Resolution.disabled()

        normalized_hostname = normalize_hostname(hostname)
        rules = await self.store.list_url_rules(application.id)
        forms = await self.store.list_forms(application.id)

        matches: list[ResolvedForm] = []
        for form in forms:
            bound_rule = await self._bound_rule(form, application)
            if form_matches(form, application, rules, bound_rule, normalized_hostname, path):
                matches.append(await self.build_resolved_form(form))

        logger.debug(
            f"Résolution {application_id} {normalized_hostname}{path}: "
            f"{len(matches)} formulaire(s)"
        )
        return Resolution.of(matches)

    async def public_form(self, form_id: str) -> ResolvedForm:
        """
        Définition d'un formulaire partagé publiquement.

        Raises:
            NotFoundError: formulaire non partagé, supprimé, ou application inactive.
        """
        form = await self.store.get_form(form_id)
        if form is None or not form.share_publicly:
            raise NotFoundError("Form not found")

        application = await self.store.get_application(form.application_id)
        if application is None or not application.is_active:
            raise NotFoundError("Form not found")

        return await self.build_resolved_form(form)

    async def build_resolved_form(self, form: Form) -> ResolvedForm:
        """Construit la vue widget d'un formulaire et de ses champs actifs."""
        fields = await self.store.list_form_fields(form.id)
        return ResolvedForm(
            form_id=form.id,
            name=form.name,
            render_as_section=form.render_as_section,
            computed_section_id=compute_section_id(
                form.application_id,
                form.name,
                override=form.section_id_override,
                prefix=self.section_id_prefix,
            ),
            can_render_widget=not form.render_as_section,
            fields=[self._resolved_field(field) for field in fields],
        )

    async def _bound_rule(self, form: Form, application: Application) -> Optional[UrlRule]:
        if not form.url_rule_id:
            return None
        rule = await self.store.get_url_rule(form.url_rule_id)
        if rule is None or rule.application_id != application.id:
            return None
        return rule

    @staticmethod
    def _resolved_field(field: FormField) -> ResolvedField:
        return ResolvedField(
            id=field.id,
            name=field.name,
            key=field.key,
            type=field.type,
            required=field.required,
            placeholder=field.placeholder,
            options=field.options,
        )
