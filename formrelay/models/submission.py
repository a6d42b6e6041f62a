"""
Modèles Pydantic pour les soumissions de formulaire.

Définit:
- Le payload du endpoint public de soumission
- La soumission en base et ses champs d'intégration
- Les règles de transition du statut d'intégration
"""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from formrelay.services.hmac_service import canonical_json


class IntegrationStatus(str, Enum):
    """Statut de livraison d'une soumission vers l'intégration externe."""

    NONE = "NONE"
    PENDING = "PENDING"
    SUCCESS = "SUCCESS"
    FAILED = "FAILED"


# Transitions autorisées (NONE et les statuts finaux sont terminaux)
ALLOWED_TRANSITIONS: dict[IntegrationStatus, frozenset[IntegrationStatus]] = {
    IntegrationStatus.NONE: frozenset(),
    IntegrationStatus.PENDING: frozenset({
        IntegrationStatus.PENDING,
        IntegrationStatus.SUCCESS,
        IntegrationStatus.FAILED,
    }),
    IntegrationStatus.SUCCESS: frozenset(),
    IntegrationStatus.FAILED: frozenset(),
}


class InvalidIntegrationUpdate(ValueError):
    """Mise à jour qui violerait les invariants d'intégration."""


def check_integration_update(
    current: "Submission",
    status: IntegrationStatus,
    attempt_count: int
) -> None:
    """
    Vérifie qu'une mise à jour des champs d'intégration est valide.

    Raises:
        InvalidIntegrationUpdate: transition arrière ou compteur décroissant.
    """
    if status not in ALLOWED_TRANSITIONS[current.integration_status]:
        raise InvalidIntegrationUpdate(
            f"Transition interdite {current.integration_status.value} -> {status.value} "
            f"(soumission {current.id})"
        )
    if attempt_count < current.integration_attempt_count:
        raise InvalidIntegrationUpdate(
            f"Le compteur de tentatives ne peut pas diminuer "
            f"({current.integration_attempt_count} -> {attempt_count})"
        )


# === Payload public (depuis le widget) ===
class PublicSubmitRequest(BaseModel):
    """Payload reçu sur POST /public/v1/submit."""

    model_config = ConfigDict(populate_by_name=True, str_strip_whitespace=True)

    application_id: str = Field(..., min_length=1, alias="applicationId")
    form_id: str = Field(..., min_length=1, alias="formId")
    hostname: str = Field(..., min_length=1)
    path: str = Field(..., min_length=1)
    payload: dict[str, Any]

    @field_validator("hostname", "path", "payload")
    @classmethod
    def validate_signable(cls, v: Any) -> Any:
        """Tout ce qui est relayé doit pouvoir être signé: nombres finis, texte UTF-8 valide."""
        try:
            canonical_json(v).encode("utf-8")
        except ValueError as e:
            raise ValueError("must contain only finite numbers and valid UTF-8 text") from e
        return v


class PublicSubmitResponse(BaseModel):
    """Réponse du endpoint de soumission."""

    id: str
    success: bool = True


# === Soumission en base ===
class SubmissionCreate(BaseModel):
    """Données pour créer une soumission."""

    form_id: str
    application_id: str
    hostname: str
    path: str
    payload: dict[str, Any] = Field(default_factory=dict)
    integration_status: IntegrationStatus = IntegrationStatus.NONE
    integration_attempt_count: int = 0

    def to_db_dict(self) -> dict:
        """Convertit en dictionnaire pour insertion."""
        data = self.model_dump()
        data["integration_status"] = self.integration_status.value
        return data


class Submission(BaseModel):
    """
    Soumission enregistrée.

    Immuable sauf les champs integration_*, modifiés uniquement par le dispatch.
    """

    model_config = ConfigDict(extra="ignore")

    id: str
    form_id: str
    application_id: str
    hostname: str
    path: str
    payload: dict[str, Any] = Field(default_factory=dict)
    integration_status: IntegrationStatus = IntegrationStatus.NONE
    integration_attempt_count: int = Field(default=0, ge=0)
    integration_last_error: Optional[str] = None
    created_at: Optional[datetime] = None
