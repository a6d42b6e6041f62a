"""
Modèles Pydantic pour la configuration d'un tenant.

Définit les schémas pour:
- Application (le tenant et son secret d'intégration)
- Règles d'URL (hostname + pattern de chemin)
- Formulaires et champs
- Configuration d'intégration Google Sheets

Ces entités sont créées et modifiées par la couche CRUD externe;
FormRelay ne fait que les lire.
"""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Any, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field


# === Types ===
ApplicationStatus = Literal["ACTIVE", "DISABLED"]

FieldType = Literal[
    "TEXT",
    "TEXTAREA",
    "EMAIL",
    "PHONE",
    "NUMBER",
    "CHECKBOX",
    "RADIO",
]


class LifecycleState(str, Enum):
    """État de cycle de vie d'une entité supprimable logiquement."""

    ACTIVE = "ACTIVE"
    DELETED = "DELETED"


class SoftDeletable(BaseModel):
    """Base des entités à suppression logique (colonne deleted_at)."""

    model_config = ConfigDict(extra="ignore")

    deleted_at: Optional[datetime] = None

    @property
    def lifecycle(self) -> LifecycleState:
        if self.deleted_at is not None:
            return LifecycleState.DELETED
        return LifecycleState.ACTIVE

    @property
    def is_deleted(self) -> bool:
        return self.lifecycle is LifecycleState.DELETED


class Application(SoftDeletable):
    """Application (tenant) propriétaire des règles, formulaires et soumissions."""

    id: str
    name: str = ""
    hostname: str
    status: ApplicationStatus = "ACTIVE"
    integration_secret: Optional[str] = Field(
        default=None,
        description="Secret HMAC des webhooks sortants (peut être vide)"
    )
    created_at: Optional[datetime] = None

    @property
    def is_active(self) -> bool:
        """Active = statut ACTIVE et non supprimée."""
        return self.status == "ACTIVE" and not self.is_deleted


class UrlRule(SoftDeletable):
    """Règle d'URL: couple (hostname, pattern de chemin)."""

    id: str
    application_id: str
    hostname: str
    path_pattern: str
    created_at: Optional[datetime] = None


class FormField(SoftDeletable):
    """Champ d'un formulaire, ordonné par position."""

    id: str
    form_id: str
    name: str
    key: str
    type: FieldType = "TEXT"
    required: bool = False
    placeholder: Optional[str] = None
    options: Optional[dict[str, Any]] = Field(
        default=None,
        description="Valeur -> libellé (CHECKBOX, RADIO)"
    )
    position: int = 0


class IntegrationConfig(BaseModel):
    """Configuration de l'intégration Google Sheets d'un formulaire (1-1)."""

    model_config = ConfigDict(extra="ignore")

    id: Optional[str] = None
    form_id: str
    enabled: bool = False
    sheet_name: str = ""
    web_app_url: str = ""
    deployment_id: Optional[str] = None
    last_attempt_at: Optional[datetime] = None
    last_error: Optional[str] = None

    @property
    def requires_dispatch(self) -> bool:
        """Une soumission doit être relayée si l'intégration est active avec une URL."""
        return self.enabled and bool(self.web_app_url and self.web_app_url.strip())


class Form(SoftDeletable):
    """
    Formulaire d'une application.

    Si url_rule_id est renseigné, le formulaire n'est affiché que via
    cette règle, jamais via les autres règles de l'application.
    """

    id: str
    application_id: str
    name: str
    url_rule_id: Optional[str] = None
    render_as_section: bool = False
    section_id_override: Optional[str] = None
    share_publicly: bool = False
    created_at: Optional[datetime] = None
