"""
Gestionnaire d'erreurs centralisé pour FormRelay.

Taxonomie:
- Erreurs du chemin d'ingestion (validation, ressource introuvable, accès
  refusé, rate limit): renvoyées à l'appelant en {code, message}
- Erreurs du chemin de dispatch (configuration, livraison): jamais
  renvoyées à l'appelant, seulement loguées et persistées
"""

from __future__ import annotations

import logging
import traceback
from datetime import datetime, timezone
from typing import Optional

from fastapi import Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

logger = logging.getLogger(__name__)


# === Codes d'erreur du contrat public ===
VALIDATION_ERROR = "VALIDATION_ERROR"
RESOURCE_NOT_FOUND = "RESOURCE_NOT_FOUND"
RESOURCE_ACCESS_DENIED = "RESOURCE_ACCESS_DENIED"
RATE_LIMIT_EXCEEDED = "RATE_LIMIT_EXCEEDED"
INTERNAL_ERROR = "INTERNAL_ERROR"


class FormRelayError(Exception):
    """Exception de base pour FormRelay."""

    code = INTERNAL_ERROR
    status_code = 500

    def __init__(
        self,
        message: str,
        details: dict | None = None,
        code: str | None = None,
        status_code: int | None = None
    ):
        self.message = message
        self.details = details or {}
        if code:
            self.code = code
        if status_code:
            self.status_code = status_code
        self.timestamp = datetime.now(timezone.utc).isoformat()
        super().__init__(message)

    def to_response(self) -> dict:
        return {"code": self.code, "message": self.message}


class ValidationError(FormRelayError):
    """Requête malformée. Jamais rejouée."""

    code = VALIDATION_ERROR
    status_code = 400


class NotFoundError(FormRelayError):
    """Application ou formulaire inconnu."""

    code = RESOURCE_NOT_FOUND
    status_code = 404


class AccessDeniedError(FormRelayError):
    """Application désactivée ou supprimée."""

    code = RESOURCE_ACCESS_DENIED
    status_code = 403


class RateLimitError(FormRelayError):
    """Trop de requêtes dans la fenêtre courante."""

    code = RATE_LIMIT_EXCEEDED
    status_code = 429

    def __init__(self, message: str = "Too many requests", reset_at_ms: int = 0):
        super().__init__(message, details={"reset_at": reset_at_ms})
        self.reset_at_ms = reset_at_ms


class DatabaseError(FormRelayError):
    """Erreur avec le backend de persistance."""

    status_code = 503


# === Erreurs du chemin de dispatch (enregistrées, jamais renvoyées) ===

class DispatchError(FormRelayError):
    """Base des erreurs de livraison d'une soumission."""

    code = "DELIVERY_FAILED"


class ConfigurationError(DispatchError):
    """Secret d'intégration absent: terminal, aucune tentative réseau."""

    code = "INTEGRATION_NOT_CONFIGURED"


class SignatureError(DispatchError):
    """Payload impossible à sérialiser ou signer: terminal, aucune tentative réseau."""

    code = "SIGNATURE_FAILED"


class TransientDeliveryError(DispatchError):
    """Echec réseau, HTTP ou logique d'une tentative; rejouée dans le budget."""

    code = "DELIVERY_FAILED"

    def __init__(self, message: str, attempt: int = 0, status: Optional[int] = None):
        super().__init__(message, details={"attempt": attempt, "http_status": status})
        self.attempt = attempt
        self.http_status = status


class DeliveryExhaustedError(DispatchError):
    """Toutes les tentatives ont échoué: terminal."""

    code = "DELIVERY_EXHAUSTED"

    def __init__(self, message: str, attempts: int):
        super().__init__(message, details={"attempts": attempts})
        self.attempts = attempts


class ErrorHandler:
    """
    Gestionnaire centralisé des erreurs.

    Formate et logue les erreurs de manière cohérente.
    """

    def handle_error(
        self,
        error: Exception,
        workflow: str = "unknown",
        node: str = "unknown",
        context: dict | None = None
    ) -> dict:
        """
        Gère une erreur de manière centralisée.

        Args:
            error: L'exception capturée.
            workflow: Chemin fonctionnel (ingestion, dispatch, config...).
            node: Nom de la fonction ou de l'étape.
            context: Identifiants utiles (submission_id, application_id...).

        Returns:
            Dictionnaire avec les détails de l'erreur loguée.
        """
        if isinstance(error, FormRelayError):
            error_data = {
                "workflow": workflow,
                "node": node,
                "code": error.code,
                "message": error.message,
                "details": error.details,
                "status_code": error.status_code,
                "timestamp": error.timestamp,
            }
        else:
            error_data = {
                "workflow": workflow,
                "node": node,
                "code": INTERNAL_ERROR,
                "message": str(error),
                "details": {
                    "type": type(error).__name__,
                    "traceback": "".join(
                        traceback.format_exception(type(error), error, error.__traceback__)
                    ),
                },
                "status_code": 500,
                "timestamp": datetime.now(timezone.utc).isoformat(),
            }

        if context:
            error_data["context"] = context

        if error_data["status_code"] >= 500:
            logger.error(
                f"[{workflow}:{node}] {error_data['code']}: {error_data['message']}",
                exc_info=not isinstance(error, FormRelayError)
            )
        else:
            logger.warning(f"[{workflow}:{node}] {error_data['code']}: {error_data['message']}")

        return error_data


# Instance globale
error_handler = ErrorHandler()


def error_response(code: str, message: str, status_code: int) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"code": code, "message": message})


async def global_exception_handler(
    request: Request,
    exc: Exception
) -> JSONResponse:
    """
    Handler global pour FastAPI.

    Capture toutes les exceptions et les formate en {code, message}.
    """
    if isinstance(exc, FormRelayError):
        error_handler.handle_error(exc, workflow="api", node=request.url.path)
        response = JSONResponse(status_code=exc.status_code, content=exc.to_response())
        if isinstance(exc, RateLimitError):
            response.headers["X-RateLimit-Reset"] = str(exc.reset_at_ms)
        return response

    if isinstance(exc, RequestValidationError):
        errors = exc.errors()
        message = "Validation failed"
        if errors:
            first = errors[0]
            location = ".".join(str(part) for part in first.get("loc", ()) if part != "body")
            message = f"{location}: {first.get('msg')}" if location else str(first.get("msg"))
        return error_response(VALIDATION_ERROR, message, 400)

    # Erreur inattendue
    error_handler.handle_error(exc, workflow="unhandled", node=request.url.path)
    return error_response(INTERNAL_ERROR, "Internal server error", 500)
