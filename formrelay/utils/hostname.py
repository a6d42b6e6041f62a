"""
Normalisation des hostnames.

Utilisée partout où deux hostnames sont comparés (règles d'URL,
hostname de l'application, hostname de la page qui appelle le widget).
"""

from __future__ import annotations

import re
from typing import Optional

_PROTOCOL_RE = re.compile(r"^https?://", re.IGNORECASE)
_WWW_RE = re.compile(r"^www\.", re.IGNORECASE)


def _normalize_once(value: str) -> str:
    normalized = _PROTOCOL_RE.sub("", value.strip())
    normalized = normalized.split("/", 1)[0].strip()
    normalized = _WWW_RE.sub("", normalized)
    return normalized.lower().strip()


def normalize_hostname(raw: Optional[str]) -> str:
    """
    Normalise un hostname pour comparaison.

    Supprime le protocole, tout ce qui suit le premier "/", le préfixe
    "www.", puis passe en minuscules. Fonction totale et idempotente:
    les étapes sont répétées jusqu'à stabilité (ex: "www.www.site.fr").

    Args:
        raw: Hostname brut (peut contenir protocole, www, chemin).

    Returns:
        Hostname normalisé, chaîne vide si l'entrée est vide.

    Examples:
        >>> normalize_hostname("https://WWW.Example.com/path")
        'example.com'
        >>> normalize_hostname(None)
        ''
    """
    if not raw:
        return ""

    current = raw
    while True:
        normalized = _normalize_once(current)
        if normalized == current:
            return normalized
        current = normalized


def same_hostname(left: Optional[str], right: Optional[str]) -> bool:
    """Compare deux hostnames après normalisation."""
    return normalize_hostname(left) == normalize_hostname(right)
