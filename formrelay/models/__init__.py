"""
Modèles Pydantic pour FormRelay.

Modules:
- tenant: Application, règles d'URL, formulaires, champs, intégration
- submission: Soumissions et statut d'intégration
- public: Contrat public du widget (résolution, erreurs)
"""

from formrelay.models.public import Resolution, ResolvedField, ResolvedForm
from formrelay.models.submission import (
    IntegrationStatus,
    PublicSubmitRequest,
    PublicSubmitResponse,
    Submission,
)
from formrelay.models.tenant import (
    Application,
    Form,
    FormField,
    IntegrationConfig,
    LifecycleState,
    UrlRule,
)

__all__ = [
    "Application",
    "Form",
    "FormField",
    "IntegrationConfig",
    "IntegrationStatus",
    "LifecycleState",
    "PublicSubmitRequest",
    "PublicSubmitResponse",
    "Resolution",
    "ResolvedField",
    "ResolvedForm",
    "Submission",
    "UrlRule",
]
