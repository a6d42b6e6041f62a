"""
Utilitaires purs pour FormRelay.

Modules:
- hostname: Normalisation des hostnames
- path_matcher: Correspondance des chemins (exact, wildcard, regex)
- section_id: Identifiants de section pour le rendu inline
"""
