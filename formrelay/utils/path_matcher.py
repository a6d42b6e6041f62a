"""
Correspondance des chemins de page avec les patterns des règles d'URL.

Trois formes de pattern, testées dans cet ordre:
- Regex: commence par "^" (ex: "^/docs/.*$")
- Wildcard suffixe: finit par "/*" (ex: "/blog/*")
- Exact: tout le reste (ex: "/pricing")
"""

from __future__ import annotations

import logging
import re
from functools import lru_cache
from typing import Optional, Pattern

logger = logging.getLogger(__name__)

WILDCARD_SUFFIX = "/*"


def _end_anchors_to_absolute(pattern: str) -> str:
    r"""
    Remplace les "$" d'ancrage par "\Z".

    Sans flag multiline, "$" en JavaScript ne correspond qu'à la fin exacte
    de la chaîne; en Python il accepte aussi un "\n" final. Les "$"
    échappés ou placés dans une classe de caractères restent littéraux.
    """
    translated = []
    escaped = False
    in_class = False
    for char in pattern:
        if escaped:
            translated.append(char)
            escaped = False
        elif char == "\\":
            translated.append(char)
            escaped = True
        elif in_class:
            translated.append(char)
            in_class = char != "]"
        elif char == "[":
            translated.append(char)
            in_class = True
        elif char == "$":
            translated.append(r"\Z")
        else:
            translated.append(char)
    return "".join(translated)


@lru_cache(maxsize=512)
def _compile(pattern: str) -> Optional[Pattern[str]]:
    """Compile un pattern regex, None s'il est invalide."""
    try:
        return re.compile(_end_anchors_to_absolute(pattern))
    except re.error as e:
        logger.warning(f"Pattern regex invalide ignoré: {pattern!r} ({e})")
        return None


def is_regex_pattern(pattern: str) -> bool:
    return pattern.startswith("^")


def matches_path_pattern(pattern: str, path: str) -> bool:
    """
    Vérifie si un chemin satisfait un pattern de règle.

    Le chemin est comparé tel quel, sans normalisation. Un regex invalide
    ne lève jamais d'exception et ne correspond à rien.

    Args:
        pattern: Pattern de la règle (exact, wildcard ou regex).
        path: Chemin demandé (ex: "/blog/mon-article").

    Returns:
        True si le chemin correspond.

    Examples:
        >>> matches_path_pattern("/blog/*", "/blog")
        True
        >>> matches_path_pattern("^/docs/.*$", "/docs")
        False
    """
    if is_regex_pattern(pattern):
        compiled = _compile(pattern)
        if compiled is None:
            return False
        return compiled.search(path) is not None

    if pattern.endswith(WILDCARD_SUFFIX):
        prefix = pattern[: -len(WILDCARD_SUFFIX)]
        return path == prefix or path.startswith(prefix + "/")

    return pattern == path
