"""
Identifiant de requête propagé dans les logs.

Le middleware HTTP pose l'identifiant dans une contextvar; le filtre de
logging l'ajoute à chaque record (champ request_id).
"""

from __future__ import annotations

import logging
import uuid
from contextvars import ContextVar
from typing import Optional

REQUEST_ID_HEADER = "X-Request-ID"

_request_id: ContextVar[str] = ContextVar("request_id", default="-")


def new_request_id() -> str:
    return uuid.uuid4().hex[:21]


def set_request_id(request_id: Optional[str] = None) -> str:
    """Pose l'identifiant de la requête courante (généré si absent)."""
    value = request_id or new_request_id()
    _request_id.set(value)
    return value


class RequestIdFilter(logging.Filter):
    """Injecte request_id dans chaque record de log."""

    def filter(self, record: logging.LogRecord) -> bool:
        record.request_id = _request_id.get()
        return True


def install_request_id_filter(logger: Optional[logging.Logger] = None) -> None:
    """Ajoute le filtre aux handlers du logger (root par défaut)."""
    target = logger or logging.getLogger()
    for handler in target.handlers:
        if not any(isinstance(f, RequestIdFilter) for f in handler.filters):
            handler.addFilter(RequestIdFilter())
