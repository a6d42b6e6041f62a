"""
API publique consommée par le widget embarqué.

Endpoints:
- GET  /public/v1/config       Formulaires applicables à une page vue
- POST /public/v1/submit       Enregistrement d'une soumission
- GET  /public/v1/forms/{id}   Définition d'un formulaire partagé publiquement

Chaque endpoint est soumis à un rate limit par client avant toute
validation.
"""

import json
import logging
from typing import Optional

from fastapi import APIRouter, Depends, Header, Query, Request
from pydantic import ValidationError as PydanticValidationError

from formrelay.core.dependencies import get_ingestor, get_resolver
from formrelay.core.error_handler import ValidationError
from formrelay.core.rate_limit import (
    CONFIG_MESSAGE,
    CONFIG_SCOPE,
    SUBMIT_MESSAGE,
    config_limit,
    limiter,
    submit_limit,
)
from formrelay.models.public import ErrorResponse, ResolvedForm
from formrelay.models.submission import PublicSubmitRequest, PublicSubmitResponse
from formrelay.services.form_resolver import FormResolver
from formrelay.services.submission_ingestor import SubmissionIngestor

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/public/v1", tags=["public"])

ERROR_RESPONSES = {
    400: {"model": ErrorResponse},
    403: {"model": ErrorResponse},
    404: {"model": ErrorResponse},
    429: {"model": ErrorResponse},
}


def _first_validation_message(error: PydanticValidationError) -> str:
    errors = error.errors()
    if not errors:
        return "Validation failed"
    first = errors[0]
    location = ".".join(str(part) for part in first.get("loc", ()))
    return f"{location}: {first.get('msg')}" if location else str(first.get("msg"))


@router.get(
    "/config",
    summary="Configuration du widget pour une page",
    responses=ERROR_RESPONSES,
)
@limiter.shared_limit(config_limit, scope=CONFIG_SCOPE, error_message=CONFIG_MESSAGE)
async def get_public_config(
    request: Request,
    application_id: Optional[str] = Query(None, alias="applicationId"),
    hostname: Optional[str] = Query(None),
    path: Optional[str] = Query(None),
    x_hostname: Optional[str] = Header(None, alias="X-Hostname"),
    x_path: Optional[str] = Header(None, alias="X-Path"),
    resolver: FormResolver = Depends(get_resolver),
):
    """
    Résout les formulaires à afficher.

    Le hostname et le chemin sont lus dans les headers X-Hostname / X-Path,
    sinon dans la query string (chemin par défaut: "/").

    Returns:
        {applicationStatus, widgetAllowed, matches: [...]}
    """
    if not application_id or not application_id.strip():
        raise ValidationError("applicationId is required")

    page_hostname = x_hostname or hostname or ""
    page_path = x_path or path or "/"

    resolution = await resolver.resolve(application_id.strip(), page_hostname, page_path)
    return resolution.to_response()


@router.post(
    "/submit",
    status_code=201,
    response_model=PublicSubmitResponse,
    summary="Soumission d'un formulaire",
    responses=ERROR_RESPONSES,
)
@limiter.limit(submit_limit, error_message=SUBMIT_MESSAGE)
async def submit_form(
    request: Request,
    ingestor: SubmissionIngestor = Depends(get_ingestor),
):
    """
    Enregistre une soumission et planifie sa livraison.

    La réponse n'attend jamais le dispatch de l'intégration.

    Raises:
        ValidationError 400: Body invalide.
        AccessDeniedError 403: Application désactivée ou supprimée.
        NotFoundError 404: Application ou formulaire inconnu.
        RateLimitError 429: Trop de soumissions.
    """
    try:
        body = await request.json()
    except (json.JSONDecodeError, UnicodeDecodeError):
        raise ValidationError("Invalid JSON body")

    if not isinstance(body, dict):
        raise ValidationError("Request body must be a JSON object")

    try:
        payload = PublicSubmitRequest.model_validate(body)
    except PydanticValidationError as e:
        raise ValidationError(_first_validation_message(e))

    submission = await ingestor.ingest(payload)
    return PublicSubmitResponse(id=submission.id)


@router.get(
    "/forms/{form_id}",
    response_model=ResolvedForm,
    response_model_by_alias=True,
    summary="Formulaire partagé publiquement",
    responses={404: {"model": ErrorResponse}, 429: {"model": ErrorResponse}},
)
@limiter.shared_limit(config_limit, scope=CONFIG_SCOPE, error_message=CONFIG_MESSAGE)
async def get_public_form(
    form_id: str,
    request: Request,
    resolver: FormResolver = Depends(get_resolver),
):
    """Définition d'un formulaire dont le partage public est activé."""
    form = await resolver.public_form(form_id)
    return form.model_dump(by_alias=True)
