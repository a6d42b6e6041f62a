"""
Modèles du contrat public de configuration du widget.

Résultat de la résolution (hostname, path) -> formulaires, sérialisé
pour GET /public/v1/config.
"""

from __future__ import annotations

from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field

from formrelay.models.tenant import ApplicationStatus


class ResolvedField(BaseModel):
    """Champ tel qu'exposé au widget."""

    id: str
    name: str
    key: str
    type: str
    required: bool
    placeholder: Optional[str] = None
    options: Optional[dict[str, Any]] = None


class ResolvedForm(BaseModel):
    """Formulaire applicable à une page."""

    model_config = ConfigDict(populate_by_name=True)

    form_id: str = Field(..., alias="formId")
    name: str
    render_as_section: bool = Field(default=False, alias="renderAsSection")
    computed_section_id: str = Field(..., alias="computedSectionId")
    can_render_widget: bool = Field(default=True, alias="canRenderWidget")
    fields: list[ResolvedField] = Field(default_factory=list)


class Resolution(BaseModel):
    """
    Résultat de la résolution d'une page vue.

    Distingue "tenant suspendu" (DISABLED, widget interdit) de
    "aucun formulaire sur cette page" (ACTIVE, matches vide).
    """

    model_config = ConfigDict(populate_by_name=True)

    application_status: ApplicationStatus = Field(..., alias="applicationStatus")
    widget_allowed: bool = Field(..., alias="widgetAllowed")
    matches: list[ResolvedForm] = Field(default_factory=list)

    @classmethod
    def disabled(cls) -> "Resolution":
        """Application désactivée ou supprimée."""
        return cls(application_status="DISABLED", widget_allowed=False, matches=[])

    @classmethod
    def of(cls, matches: list[ResolvedForm]) -> "Resolution":
        """Application active avec ses formulaires applicables (liste éventuellement vide)."""
        return cls(application_status="ACTIVE", widget_allowed=True, matches=matches)

    @property
    def is_disabled(self) -> bool:
        return not self.widget_allowed

    def to_response(self) -> dict:
        """Sérialise au format camelCase attendu par le widget."""
        return self.model_dump(by_alias=True)


class ErrorResponse(BaseModel):
    """Erreur structurée renvoyée par l'API publique."""

    code: str
    message: str
