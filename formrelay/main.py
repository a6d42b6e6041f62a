"""
Point d'entrée principal de l'application FormRelay.

FastAPI application avec:
- API publique du widget (config, submit, formulaires publics)
- Pool de dispatch des intégrations et scheduler (lifespan)
- Middleware de logging avec identifiant de requête
- Rate limiting slowapi (Redis ou mémoire)
- Gestion globale des erreurs
"""

from __future__ import annotations

import logging
import time
from contextlib import asynccontextmanager
from typing import Optional

import httpx
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from slowapi.errors import RateLimitExceeded

from formrelay.api.health import VERSION
from formrelay.api.health import router as health_router
from formrelay.api.public import router as public_router
from formrelay.core.config import settings
from formrelay.core.dependencies import Services
from formrelay.core.error_handler import (
    FormRelayError,
    RateLimitError,
    global_exception_handler,
)
from formrelay.core.rate_limit import limiter, rate_limit_reset_ms
from formrelay.core.repository import Repository
from formrelay.core.request_context import (
    REQUEST_ID_HEADER,
    install_request_id_filter,
    set_request_id,
)

# Configuration du logging
logging.basicConfig(
    level=logging.DEBUG if settings.debug else logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - [%(request_id)s] %(message)s"
)
install_request_id_filter()
logger = logging.getLogger(__name__)


def create_app(
    store: Optional[Repository] = None,
    http_client: Optional[httpx.AsyncClient] = None,
    enable_scheduler: bool = True
) -> FastAPI:
    """
    Crée l'application FastAPI.

    Args:
        store: Backend de persistance (STORAGE_BACKEND par défaut).
        http_client: Client httpx du dispatch (créé à la demande sinon).
        enable_scheduler: Active le job d'audit des soumissions PENDING.
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """
        Gestionnaire de cycle de vie de l'application.

        Démarre le pool de dispatch et le scheduler, puis les arrête en
        laissant aux jobs en cours le délai de grâce configuré.
        """
        # Startup
        logger.info(f"Demarrage de {settings.app_name} en mode {settings.app_env}")
        logger.info(f"API disponible sur {settings.api_host}:{settings.api_port}")

        services = Services(
            store=store,
            http_client=http_client,
            enable_scheduler=enable_scheduler,
        )
        app.state.services = services
        await services.startup()

        yield

        # Shutdown
        logger.info(f"Arret de {settings.app_name}")
        await services.shutdown()

    app = FastAPI(
        title=settings.app_name,
        description="""
    ## FormRelay - Formulaires embarqués et relais d'intégrations

    ### API publique (widget):
    - **GET /public/v1/config**: formulaires applicables à une page
    - **POST /public/v1/submit**: enregistrement d'une soumission
    - **GET /public/v1/forms/{formId}**: formulaire partagé publiquement

    Les soumissions sont relayées vers Google Sheets via un webhook signé
    (HMAC-SHA256), en arrière-plan.
    """,
        version=VERSION,
        docs_url="/docs" if settings.debug else None,
        redoc_url="/redoc" if settings.debug else None,
        openapi_url="/openapi.json" if settings.debug else None,
        lifespan=lifespan
    )

    app.state.limiter = limiter

    # Middleware CORS (widget embarqué sur des sites tiers)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=False,
        allow_methods=["GET", "POST", "OPTIONS"],
        allow_headers=["Content-Type", "X-Hostname", "X-Path"],
        max_age=86400,
    )

    # Middleware de logging des requêtes
    @app.middleware("http")
    async def log_requests(request: Request, call_next):
        """Log toutes les requêtes entrantes."""
        request_id = set_request_id(request.headers.get(REQUEST_ID_HEADER))
        start_time = time.perf_counter()

        logger.info(
            f"📥 {request.method} {request.url.path} "
            f"from {request.client.host if request.client else 'unknown'}"
        )

        response = await call_next(request)

        process_time = time.perf_counter() - start_time

        logger.info(
            f"📤 {request.method} {request.url.path} "
            f"- {response.status_code} ({process_time:.3f}s)"
        )

        response.headers["X-Process-Time"] = str(process_time)
        response.headers[REQUEST_ID_HEADER] = request_id

        return response

    # Handlers d'exceptions
    @app.exception_handler(FormRelayError)
    async def formrelay_exception_handler(request: Request, exc: FormRelayError):
        """Handler pour les exceptions FormRelay."""
        return await global_exception_handler(request, exc)

    @app.exception_handler(RateLimitExceeded)
    async def rate_limit_exception_handler(request: Request, exc: RateLimitExceeded):
        """Limite slowapi atteinte -> 429 RATE_LIMIT_EXCEEDED."""
        error = RateLimitError(exc.detail, reset_at_ms=rate_limit_reset_ms(request))
        return await global_exception_handler(request, error)

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(request: Request, exc: RequestValidationError):
        """Erreurs de validation FastAPI -> 400 VALIDATION_ERROR."""
        return await global_exception_handler(request, exc)

    @app.exception_handler(Exception)
    async def generic_exception_handler(request: Request, exc: Exception):
        """Handler pour toutes les autres exceptions."""
        return await global_exception_handler(request, exc)

    # Enregistrement des routers
    app.include_router(health_router)
    app.include_router(public_router)

    return app


app = create_app()


# === Point d'entrée pour uvicorn ===

if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "formrelay.main:app",
        host=settings.api_host,
        port=settings.api_port,
        reload=settings.debug,
        log_level="debug" if settings.debug else "info"
    )
