"""
Rate limiting de l'API publique (slowapi).

Fenêtre fixe par client: 10 soumissions / 60 s sur /submit, 30 requêtes
/ 60 s partagées entre /config et /forms/{id} (configurable). Les
compteurs vivent dans Redis quand REDIS_URL est défini, sinon en mémoire
du process (memory://). Si Redis tombe, slowapi bascule en mémoire.

Ce limiteur ne concerne que les requêtes entrantes: il ne bride jamais
le dispatch des intégrations.
"""

from __future__ import annotations

import logging

from fastapi import Request
from slowapi import Limiter

from formrelay.core.config import settings

logger = logging.getLogger(__name__)

CONFIG_SCOPE = "public-config"
SUBMIT_MESSAGE = "Too many submissions"
CONFIG_MESSAGE = "Too many requests"


def get_client_identifier(request: Request) -> str:
    """IP du client: premier X-Forwarded-For, sinon X-Real-IP, sinon "unknown"."""
    forwarded = request.headers.get("x-forwarded-for")
    if forwarded:
        return forwarded.split(",")[0].strip() or "unknown"
    return request.headers.get("x-real-ip") or "unknown"


def _per_window(max_requests: int, window_ms: int) -> str:
    # Granularité limits: la seconde
    return f"{max_requests} per {max(1, window_ms // 1000)} second"


def submit_limit() -> str:
    return _per_window(settings.rate_limit_submit_max, settings.rate_limit_submit_window_ms)


def config_limit() -> str:
    return _per_window(settings.rate_limit_config_max, settings.rate_limit_config_window_ms)


limiter = Limiter(
    key_func=get_client_identifier,
    storage_uri=settings.redis_url or "memory://",
    key_prefix="formrelay",
    in_memory_fallback_enabled=True,
)


def rate_limit_reset_ms(request: Request) -> int:
    """
    Fin de la fenêtre courante (epoch ms) pour la limite atteinte.

    slowapi pose la limite évaluée dans request.state.view_rate_limit
    avant de lever RateLimitExceeded.
    """
    current = getattr(request.state, "view_rate_limit", None)
    if not current:
        return 0
    limit, args = current
    reset_at, _ = limiter.limiter.get_window_stats(limit, *args)
    return int(reset_at * 1000)
