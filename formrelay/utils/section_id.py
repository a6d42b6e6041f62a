"""
Identifiants de section pour le rendu inline des formulaires.

Le widget cherche un élément DOM portant cet id pour y injecter le formulaire.
"""

from __future__ import annotations

import re
from typing import Optional

_SPECIAL_CHARS_RE = re.compile(r"[^\w\s-]", re.ASCII)
_SEPARATORS_RE = re.compile(r"[\s_-]+", re.ASCII)


def slugify(value: str) -> str:
    """
    Convertit une chaîne en slug compatible URL/DOM.

    Examples:
        >>> slugify("  Demande de Devis!  ")
        'demande-de-devis'
    """
    slug = value.lower().strip()
    slug = _SPECIAL_CHARS_RE.sub("", slug)
    slug = _SEPARATORS_RE.sub("-", slug)
    return slug.strip("-")


def build_section_id(application_id: str, form_name: str, prefix: str = "meform") -> str:
    """Construit l'id de section: {prefix}_{application_id}_{slug}."""
    return f"{prefix}_{application_id}_{slugify(form_name)}"


def compute_section_id(
    application_id: str,
    form_name: str,
    override: Optional[str] = None,
    prefix: str = "meform"
) -> str:
    """Retourne l'override s'il est renseigné, sinon l'id calculé."""
    if override and override.strip():
        return override.strip()
    return build_section_id(application_id, form_name, prefix)
